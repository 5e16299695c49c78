"""Error taxonomy shared by every cloudkube component.

Every error carries the identifying fields (provider, context, cluster) that a
caller needs to render an actionable message. The MCP tool layer turns these
into ``{"ok": False, ...}`` payloads via :meth:`CloudKubeError.to_dict`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class CloudKubeError(RuntimeError):
    """Base class for all cloudkube failures."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        context: Optional[str] = None,
        cluster: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.context = context
        self.cluster = cluster

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": False, "error": self.message, "type": type(self).__name__}
        for key in ("provider", "context", "cluster"):
            value = getattr(self, key)
            if value:
                out[key] = value
        return out


class ValidationError(CloudKubeError, ValueError):
    """Untrusted input failed its whitelist. Never reaches an external process."""

    def __init__(self, message: str, *, field: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        if self.field:
            out["field"] = self.field
        return out


class CredentialError(CloudKubeError):
    """A provider-required scope identifier (region, project, ...) is missing."""


class ConnectionError(CloudKubeError):  # noqa: A001
    """A provider CLI exited non-zero or produced unparseable output."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[Sequence[str]] = None,
        exit_code: Optional[int] = None,
        stderr: str = "",
        unauthorized: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.command: List[str] = list(command or [])
        self.exit_code = exit_code
        self.stderr = stderr
        self.unauthorized = unauthorized

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        if self.command:
            out["command"] = self.command
        if self.exit_code is not None:
            out["exit_code"] = self.exit_code
        if self.stderr:
            out["details"] = self.stderr
        return out


class NotFoundError(CloudKubeError):
    """The addressed resource or context does not exist."""


class UnsupportedKindError(ValidationError):
    def __init__(self, kind: str, supported: Sequence[str], **kwargs: Any) -> None:
        super().__init__(
            f"Unsupported resource kind: {kind}. Supported kinds: {', '.join(supported)}",
            field="kind",
            **kwargs,
        )
        self.kind = kind
        self.supported = list(supported)


class ReconciliationError(CloudKubeError):
    """A document in an apply batch failed for a reason other than not-found."""

    def __init__(self, message: str, *, kind: Optional[str] = None, name: Optional[str] = None, status: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.kind = kind
        self.name = name
        self.status = status


class TransportError(CloudKubeError):
    """The cluster API could not be reached, or an exec/log session failed."""


class ExecFailedError(TransportError):
    """The remote command reported a ``Failure`` status."""

    def __init__(self, message: str, *, reason: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        if self.reason:
            out["reason"] = self.reason
        return out


class ExecTimeoutError(TransportError):
    def __init__(self, message: str, *, output: str = "", error: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.output = output
        self.error_output = error

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["output"] = self.output
        out["stderr"] = self.error_output
        return out


__all__ = [
    "CloudKubeError",
    "ConnectionError",
    "CredentialError",
    "ExecFailedError",
    "ExecTimeoutError",
    "NotFoundError",
    "ReconciliationError",
    "TransportError",
    "UnsupportedKindError",
    "ValidationError",
]
