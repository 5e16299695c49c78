from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from cloudkube.errors import ValidationError


class Provider(str, Enum):
    AWS = "aws"
    GCP = "gcp"
    AZURE = "azure"

    @classmethod
    def parse(cls, value: Union[str, "Provider"]) -> "Provider":
        if isinstance(value, Provider):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            supported = ", ".join(p.value for p in cls)
            raise ValidationError(f"Unsupported cloud provider: {value}. Supported: {supported}", field="provider") from None


@dataclass(frozen=True)
class Credential:
    """A locally configured cloud credential.

    ``id`` is the AWS profile, the GCP project id or the Azure subscription id,
    so ``(provider, id)`` identifies the credential.
    """

    id: str
    provider: Provider
    name: str
    profile: Optional[str] = None
    project: Optional[str] = None
    subscription: Optional[str] = None
    regions: Tuple[str, ...] = ()
    locations: Tuple[str, ...] = ()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.provider.value, self.id)

    @property
    def scope_ref(self) -> Optional[str]:
        if self.provider is Provider.AWS:
            return self.profile
        if self.provider is Provider.GCP:
            return self.project
        if self.provider is Provider.AZURE:
            return self.subscription
        raise AssertionError(f"unhandled provider {self.provider!r}")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "provider": self.provider.value, "name": self.name}
        for key in ("profile", "project", "subscription"):
            value = getattr(self, key)
            if value:
                out[key] = value
        if self.regions:
            out["regions"] = list(self.regions)
        if self.locations:
            out["locations"] = list(self.locations)
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        provider = Provider.parse(data.get("provider") or "")
        profile = data.get("profile")
        project = data.get("project")
        subscription = data.get("subscription")
        ident = data.get("id") or {Provider.AWS: profile, Provider.GCP: project, Provider.AZURE: subscription}[provider] or ""
        return cls(
            id=str(ident),
            provider=provider,
            name=str(data.get("name") or f"{provider.value}: {ident}"),
            profile=profile,
            project=project,
            subscription=subscription,
            regions=tuple(data.get("regions") or ()),
            locations=tuple(data.get("locations") or ()),
        )


@dataclass(frozen=True)
class AwsCluster:
    name: str
    region: Optional[str] = None

    provider = Provider.AWS


@dataclass(frozen=True)
class GcpCluster:
    name: str
    project: Optional[str] = None
    location: Optional[str] = None

    provider = Provider.GCP


@dataclass(frozen=True)
class AzureCluster:
    """AKS clusters are only unique per resource group, hence the wider identity."""

    name: str
    resource_group: Optional[str] = None
    location: Optional[str] = None

    provider = Provider.AZURE


ClusterIdentity = Union[AwsCluster, GcpCluster, AzureCluster]


def identity_to_dict(identity: ClusterIdentity) -> Dict[str, Any]:
    if isinstance(identity, AwsCluster):
        return {"provider": "aws", "name": identity.name, "region": identity.region}
    if isinstance(identity, GcpCluster):
        return {"provider": "gcp", "name": identity.name, "project": identity.project, "location": identity.location}
    if isinstance(identity, AzureCluster):
        return {
            "provider": "azure",
            "name": identity.name,
            "resourceGroup": identity.resource_group,
            "location": identity.location,
        }
    raise TypeError(f"Unknown cluster identity: {identity!r}")


def identity_from_dict(provider: Union[str, Provider], data: Union[str, Dict[str, Any]]) -> ClusterIdentity:
    """Build an identity from a bare name or a provider-specific mapping."""

    p = Provider.parse(provider)
    if isinstance(data, str):
        data = {"name": data}
    name = str(data.get("name") or "")
    if p is Provider.AWS:
        return AwsCluster(name=name, region=data.get("region"))
    if p is Provider.GCP:
        return GcpCluster(name=name, project=data.get("project"), location=data.get("location"))
    if p is Provider.AZURE:
        return AzureCluster(
            name=name,
            resource_group=data.get("resourceGroup") or data.get("resource_group"),
            location=data.get("location"),
        )
    raise AssertionError(f"unhandled provider {p!r}")


@dataclass(frozen=True)
class ClusterRef:
    identity: ClusterIdentity
    source_credential_id: str

    @property
    def provider(self) -> Provider:
        return self.identity.provider


@dataclass(frozen=True)
class ConnectionRecord:
    context_name: str
    provider: str
    cluster_name: Optional[str] = None
    server: Optional[str] = None
    user: Optional[str] = None
    namespace: str = "default"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.context_name,
            "context": self.context_name,
            "provider": self.provider,
            "cluster": self.cluster_name,
            "server": self.server,
            "user": self.user,
            "namespace": self.namespace,
        }


class Outcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass(frozen=True)
class ApplyOutcome:
    kind: Optional[str]
    name: Optional[str]
    outcome: Outcome
    namespace: Optional[str] = None
    error: Optional[Exception] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind, "name": self.name, "status": self.outcome.value}
        if self.namespace:
            out["namespace"] = self.namespace
        if self.error is not None:
            out["error"] = str(self.error)
        return out


@dataclass
class ApplyReport:
    """Per-document results of one apply batch.

    Apply is not transactional: documents reported as created/updated stay
    applied even when a later document fails.
    """

    outcomes: List[ApplyOutcome] = field(default_factory=list)
    ignored: int = 0

    def _with(self, outcome: Outcome) -> List[ApplyOutcome]:
        return [o for o in self.outcomes if o.outcome is outcome]

    @property
    def created(self) -> List[ApplyOutcome]:
        return self._with(Outcome.CREATED)

    @property
    def updated(self) -> List[ApplyOutcome]:
        return self._with(Outcome.UPDATED)

    @property
    def failed(self) -> List[ApplyOutcome]:
        return self._with(Outcome.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "results": [o.to_dict() for o in self.outcomes],
            "ignored": self.ignored,
            "transactional": False,
        }


@dataclass(frozen=True)
class ExecResult:
    output: str = ""
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"output": self.output, "error": self.error}
