"""Pod logs and command execution over the Kubernetes exec websocket.

An exec session terminates on whichever arrives first: the command's status,
the websocket closing, a transport error, cancellation or the timeout. The
first signal decides the outcome; every later one is ignored.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from kubernetes.client import ApiException
from kubernetes.stream import stream
from kubernetes.stream.ws_client import ERROR_CHANNEL
from urllib3.exceptions import HTTPError
from websocket import WebSocketException

from cloudkube.config import get_config
from cloudkube.errors import (
    ExecFailedError,
    ExecTimeoutError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from cloudkube.utils.clients import KubernetesClientSet, load_clients
from cloudkube.utils.models import ExecResult
from cloudkube.utils.sanitize import Field, validate, validate_optional

logger = logging.getLogger(__name__)

_POLL_SECONDS = 1


class ExecSession:
    """Collects exec output and resolves exactly once."""

    def __init__(self, close_transport: Optional[Callable[[], None]] = None) -> None:
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._stdout: List[str] = []
        self._stderr: List[str] = []
        self._result: Optional[ExecResult] = None
        self._error: Optional[Exception] = None
        self._terminated = False
        self._close_transport = close_transport

    @property
    def terminated(self) -> bool:
        return self._terminated

    def _snapshot(self) -> ExecResult:
        return ExecResult(output="".join(self._stdout), error="".join(self._stderr))

    def _terminate(self, make_error: Optional[Callable[[ExecResult], Exception]] = None) -> bool:
        with self._lock:
            if self._terminated:
                return False
            self._terminated = True
            snapshot = self._snapshot()
            if make_error is None:
                self._result = snapshot
            else:
                self._error = make_error(snapshot)
        self._done.set()
        return True

    def _close(self) -> None:
        if self._close_transport is None:
            return
        try:
            self._close_transport()
        except (WebSocketException, OSError) as exc:
            logger.debug("Ignoring error while closing exec transport: %s", exc)

    def on_stdout(self, data: str) -> None:
        with self._lock:
            if not self._terminated:
                self._stdout.append(data)

    def on_stderr(self, data: str) -> None:
        with self._lock:
            if not self._terminated:
                self._stderr.append(data)

    def on_status(self, status: Mapping[str, Any]) -> bool:
        if (status or {}).get("status") == "Success":
            return self._terminate()
        reason = (status or {}).get("reason")
        message = (status or {}).get("message") or f"Command execution failed: {reason}"
        return self._terminate(lambda _: ExecFailedError(message, reason=reason))

    def on_close(self) -> bool:
        return self._terminate()

    def on_error(self, exc: BaseException) -> bool:
        return self._terminate(lambda _: TransportError(f"WebSocket error during exec: {exc}"))

    def cancel(self) -> bool:
        """Stop the session and resolve with whatever output has arrived."""

        resolved = self._terminate()
        if resolved:
            self._close()
        return resolved

    def wait(self, timeout: Optional[float] = None) -> ExecResult:
        if not self._done.wait(timeout):
            resolved = self._terminate(
                lambda partial: ExecTimeoutError(
                    f"Command did not finish within {timeout}s",
                    output=partial.output,
                    error=partial.error,
                )
            )
            if resolved:
                self._close()
        if self._error is not None:
            raise self._error
        if self._result is None:
            raise TransportError("Exec session ended without a result")
        return self._result


def _read_status(ws: Any) -> Mapping[str, Any]:
    raw = ws.read_channel(ERROR_CHANNEL)
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        return {"status": "Failure", "message": raw}


def _drain(ws: Any, session: ExecSession) -> None:
    if ws.peek_stdout():
        session.on_stdout(ws.read_stdout())
    if ws.peek_stderr():
        session.on_stderr(ws.read_stderr())
    if ws.peek_channel(ERROR_CHANNEL):
        status = _read_status(ws)
        if status:
            session.on_status(status)


def pump(ws: Any, session: ExecSession, poll_seconds: float = _POLL_SECONDS) -> None:
    """Feed websocket channels into ``session`` until one of them terminates it."""

    try:
        while ws.is_open() and not session.terminated:
            ws.update(timeout=poll_seconds)
            _drain(ws, session)
        if not session.terminated:
            _drain(ws, session)
            session.on_close()
    except Exception as exc:
        # Runs on a daemon thread; the waiter sees the failure through the session.
        session.on_error(exc)
    finally:
        try:
            ws.close()
        except (WebSocketException, OSError) as exc:
            logger.debug("Ignoring error while closing exec websocket: %s", exc)


def _normalize_command(command: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(command, str):
        argv = ["sh", "-c", command] if command.strip() else []
    else:
        argv = [str(part) for part in command]
    if not argv:
        raise ValidationError("command is required", field="command")
    return argv


def open_exec_session(
    context: str,
    namespace: str,
    pod: str,
    container: Optional[str],
    command: Union[str, Sequence[str]],
    *,
    clients: Optional[KubernetesClientSet] = None,
) -> ExecSession:
    """Start a command in a pod; output is pumped into the returned session on a background thread."""

    namespace = validate(namespace, Field.K8S_NAMESPACE)
    pod = validate(pod, Field.K8S_RESOURCE_NAME)
    container = validate_optional(container, Field.K8S_RESOURCE_NAME)
    argv = _normalize_command(command)

    # stream() patches the client's request method, so exec always gets its own client.
    c = clients or load_clients(context)
    kwargs: dict = {"command": argv, "stderr": True, "stdin": False, "stdout": True, "tty": False, "_preload_content": False}
    if container:
        kwargs["container"] = container
    try:
        ws = stream(c.core.connect_get_namespaced_pod_exec, pod, namespace, **kwargs)
    except ApiException as exc:
        if exc.status == 404:
            raise NotFoundError(f"Pod {namespace}/{pod} not found", context=context) from exc
        raise TransportError(f"Failed to start exec in {namespace}/{pod}: {exc.reason}", context=context) from exc
    except (WebSocketException, HTTPError, OSError) as exc:
        raise TransportError(f"Failed to start exec in {namespace}/{pod}: {exc}", context=context) from exc

    logger.debug("Exec started in %s/%s: %s", namespace, pod, argv[0])
    session = ExecSession(close_transport=ws.close)
    threading.Thread(target=pump, args=(ws, session), name=f"exec-{pod}", daemon=True).start()
    return session


def exec_in_pod(
    context: str,
    namespace: str,
    pod: str,
    container: Optional[str],
    command: Union[str, Sequence[str]],
    *,
    timeout: Optional[float] = None,
    clients: Optional[KubernetesClientSet] = None,
) -> ExecResult:
    """Run ``command`` in a pod and block until it terminates.

    ``timeout=None`` uses the configured default; ``0`` waits indefinitely.
    """

    if timeout is None:
        timeout = get_config().exec_timeout
    session = open_exec_session(context, namespace, pod, container, command, clients=clients)
    return session.wait(timeout or None)


def get_pod_logs(
    context: str,
    namespace: str,
    pod: str,
    container: Optional[str] = None,
    *,
    tail_lines: Optional[int] = None,
    clients: Optional[KubernetesClientSet] = None,
) -> str:
    """Read a container's log. The full log is returned unless ``tail_lines`` is given."""

    namespace = validate(namespace, Field.K8S_NAMESPACE)
    pod = validate(pod, Field.K8S_RESOURCE_NAME)
    container = validate_optional(container, Field.K8S_RESOURCE_NAME)
    c = clients or load_clients(context)
    try:
        if not container:
            spec = c.core.read_namespaced_pod(name=pod, namespace=namespace).spec
            containers = (spec.containers if spec is not None else None) or []
            if not containers:
                raise TransportError(f"Pod {namespace}/{pod} has no containers", context=context)
            container = containers[0].name
        kwargs: dict = {"name": pod, "namespace": namespace, "container": container}
        if tail_lines:
            kwargs["tail_lines"] = int(tail_lines)
        return c.core.read_namespaced_pod_log(**kwargs)
    except ApiException as exc:
        if exc.status == 404:
            raise NotFoundError(f"Pod {namespace}/{pod} not found", context=context) from exc
        raise TransportError(f"Failed to read logs for {namespace}/{pod}: {exc.reason}", context=context) from exc
    except (HTTPError, OSError) as exc:
        raise TransportError(f"Failed to read logs for {namespace}/{pod}: {exc}", context=context) from exc
