"""Typed CRUD over a closed set of Kubernetes resource kinds."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError

from cloudkube.errors import CloudKubeError, NotFoundError, TransportError, UnsupportedKindError, ValidationError
from cloudkube.utils.clients import KubernetesClientSet, load_clients
from cloudkube.utils.formatting import to_plain, to_yaml_text
from cloudkube.utils.sanitize import Field, validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceKind:
    name: str
    kind: str
    api_version: str
    api: str
    method_suffix: str
    namespaced: bool = True
    aliases: Tuple[str, ...] = ()

    def method(self, clients: KubernetesClientSet, op: str) -> Callable[..., Any]:
        scope = "namespaced_" if self.namespaced else ""
        return getattr(getattr(clients, self.api), f"{op}_{scope}{self.method_suffix}")


KINDS: Tuple[ResourceKind, ...] = (
    ResourceKind("namespace", "Namespace", "v1", "core", "namespace", namespaced=False, aliases=("namespaces", "ns")),
    ResourceKind("node", "Node", "v1", "core", "node", namespaced=False, aliases=("nodes", "no")),
    ResourceKind("pod", "Pod", "v1", "core", "pod", aliases=("pods", "po")),
    ResourceKind("deployment", "Deployment", "apps/v1", "apps", "deployment", aliases=("deployments", "deploy")),
    ResourceKind("statefulset", "StatefulSet", "apps/v1", "apps", "stateful_set", aliases=("statefulsets", "sts")),
    ResourceKind("daemonset", "DaemonSet", "apps/v1", "apps", "daemon_set", aliases=("daemonsets", "ds")),
    ResourceKind("replicaset", "ReplicaSet", "apps/v1", "apps", "replica_set", aliases=("replicasets", "rs")),
    ResourceKind("service", "Service", "v1", "core", "service", aliases=("services", "svc")),
    ResourceKind("configmap", "ConfigMap", "v1", "core", "config_map", aliases=("configmaps", "cm")),
    ResourceKind("secret", "Secret", "v1", "core", "secret", aliases=("secrets",)),
    ResourceKind("job", "Job", "batch/v1", "batch", "job", aliases=("jobs",)),
    ResourceKind("cronjob", "CronJob", "batch/v1", "batch", "cron_job", aliases=("cronjobs", "cj")),
    ResourceKind("ingress", "Ingress", "networking.k8s.io/v1", "networking", "ingress", aliases=("ingresses", "ing")),
    ResourceKind("serviceaccount", "ServiceAccount", "v1", "core", "service_account", aliases=("serviceaccounts", "sa")),
)

_BY_ALIAS: Dict[str, ResourceKind] = {}
for _kind in KINDS:
    for _alias in (_kind.name, _kind.kind.lower(), *_kind.aliases):
        _BY_ALIAS[_alias] = _kind

# Removed from exported documents so they can be re-applied anywhere.
_SERVER_METADATA = ("managedFields", "resourceVersion", "selfLink", "uid", "creationTimestamp")


def supported_kinds() -> List[str]:
    return [k.name for k in KINDS]


def resolve_kind(kind: str) -> ResourceKind:
    found = _BY_ALIAS.get((kind or "").strip().lower())
    if found is None:
        raise UnsupportedKindError(kind, supported_kinds())
    return found


def _api_error(exc: ApiException, rk: ResourceKind, name: Optional[str], namespace: Optional[str], context: str) -> CloudKubeError:
    where = f"{namespace}/{name}" if namespace and name else (name or namespace or "")
    if exc.status == 404:
        return NotFoundError(f"{rk.kind} {where} not found", context=context)
    return CloudKubeError(f"Kubernetes API error {exc.status} for {rk.kind} {where}: {exc.reason}", context=context)


def _call(
    rk: ResourceKind,
    op: str,
    c: KubernetesClientSet,
    context: str,
    **kwargs: Any,
) -> Any:
    try:
        return rk.method(c, op)(**kwargs)
    except ApiException as exc:
        raise _api_error(exc, rk, kwargs.get("name"), kwargs.get("namespace"), context) from exc
    except (HTTPError, OSError) as exc:
        raise TransportError(f"Cannot reach the API server of context {context}: {exc}", context=context) from exc


def _scope_args(rk: ResourceKind, namespace: Optional[str]) -> Dict[str, str]:
    if not rk.namespaced:
        return {}
    if not namespace:
        raise ValidationError(f"namespace is required for {rk.name}", field="namespace")
    return {"namespace": validate(namespace, Field.K8S_NAMESPACE)}


def _hidden(rk: ResourceKind, item: Dict[str, Any]) -> bool:
    name = (item.get("metadata") or {}).get("name") or ""
    return rk.name == "secret" and name.startswith("default-token-")


def list_resources(
    kind: str,
    context: str,
    namespace: Optional[str] = None,
    *,
    clients: Optional[KubernetesClientSet] = None,
) -> List[Dict[str, Any]]:
    rk = resolve_kind(kind)
    args = _scope_args(rk, namespace)
    c = clients or load_clients(context)
    result = _call(rk, "list", c, context, **args)
    items = [to_plain(c.api_client, item) for item in result.items or []]
    return [item for item in items if not _hidden(rk, item)]


def get_resource(
    kind: str,
    context: str,
    namespace: Optional[str],
    name: str,
    *,
    clients: Optional[KubernetesClientSet] = None,
) -> Dict[str, Any]:
    rk = resolve_kind(kind)
    args = _scope_args(rk, namespace)
    name = validate(name, Field.K8S_RESOURCE_NAME)
    c = clients or load_clients(context)
    obj = _call(rk, "read", c, context, name=name, **args)
    data = to_plain(c.api_client, obj)
    # Read responses from typed clients do not always carry the type fields.
    data.setdefault("apiVersion", rk.api_version)
    data.setdefault("kind", rk.kind)
    return data


def delete_resource(
    kind: str,
    context: str,
    namespace: Optional[str],
    name: str,
    *,
    clients: Optional[KubernetesClientSet] = None,
) -> Dict[str, Any]:
    rk = resolve_kind(kind)
    args = _scope_args(rk, namespace)
    name = validate(name, Field.K8S_RESOURCE_NAME)
    c = clients or load_clients(context)
    _call(rk, "delete", c, context, name=name, **args)
    logger.info("Deleted %s %s in context %s", rk.kind, name, context)
    out: Dict[str, Any] = {"kind": rk.kind, "name": name, "deleted": True}
    if args:
        out["namespace"] = args["namespace"]
    return out


def strip_server_fields(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(doc)
    metadata = out.get("metadata")
    if isinstance(metadata, dict):
        for key in _SERVER_METADATA:
            metadata.pop(key, None)
    out.pop("status", None)
    return out


def get_declarative_document(
    kind: str,
    context: str,
    namespace: Optional[str],
    name: str,
    *,
    clients: Optional[KubernetesClientSet] = None,
) -> Dict[str, Any]:
    """The live object without server-populated fields, ready to be applied again."""
    return strip_server_fields(get_resource(kind, context, namespace, name, clients=clients))


def get_resource_yaml(
    kind: str,
    context: str,
    namespace: Optional[str],
    name: str,
    *,
    clients: Optional[KubernetesClientSet] = None,
) -> str:
    return to_yaml_text(get_declarative_document(kind, context, namespace, name, clients=clients))


def list_namespaces(context: str, *, clients: Optional[KubernetesClientSet] = None) -> List[str]:
    items = list_resources("namespace", context, clients=clients)
    return [(item.get("metadata") or {}).get("name") for item in items]
