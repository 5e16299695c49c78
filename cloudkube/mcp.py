from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from fastmcp import FastMCP

from .config import get_config
from .errors import CloudKubeError
from .logging_config import configure_logging
from .utils.cluster import cluster_health as cluster_health_impl
from .utils.cluster import cluster_metrics as cluster_metrics_impl
from .utils.clusters import list_clusters as list_clusters_impl
from .utils.connect import connect as connect_impl
from .utils.credentials import AuthConfig, AuthConfigStore
from .utils.credentials import discover_credentials as discover_credentials_impl
from .utils.credentials import provider_suggestions as provider_suggestions_impl
from .utils.credentials import validate_credential as validate_credential_impl
from .utils.kubeconfig import current_context
from .utils.kubeconfig import list_contexts as list_contexts_impl
from .utils.manifests import apply_yaml as apply_yaml_impl
from .utils.models import Credential, Provider, identity_from_dict, identity_to_dict
from .utils.pod_exec import exec_in_pod as exec_in_pod_impl
from .utils.pod_exec import get_pod_logs as get_pod_logs_impl
from .utils.resources import delete_resource as delete_resource_impl
from .utils.resources import get_resource as get_resource_impl
from .utils.resources import get_resource_yaml as get_resource_yaml_impl
from .utils.resources import list_namespaces as list_namespaces_impl
from .utils.resources import list_resources as list_resources_impl

logger = logging.getLogger(__name__)

mcp = FastMCP("cloudkube")


def _run(fn: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    try:
        return fn()
    except CloudKubeError as exc:
        logger.info("Tool call failed: %s", exc)
        return exc.to_dict()


def _credential(provider: str, credential_id: str) -> Credential:
    p = Provider.parse(provider)
    scope_key = {Provider.AWS: "profile", Provider.GCP: "project", Provider.AZURE: "subscription"}[p]
    return Credential.from_dict({"provider": p.value, "id": credential_id, scope_key: credential_id})


@mcp.tool
def discover_credentials() -> Dict[str, Any]:
    """List cloud credentials configured on this machine (AWS profiles, GCP projects, Azure subscriptions)."""
    return _run(lambda: {"ok": True, "credentials": [c.to_dict() for c in discover_credentials_impl()]})


@mcp.tool
def list_auth_configs() -> Dict[str, Any]:
    store = AuthConfigStore()
    return _run(lambda: {"ok": True, "configs": [c.to_dict() for c in store.load()]})


@mcp.tool
def save_auth_config(
    provider: str,
    display_name: str,
    credentials: Optional[Dict[str, Any]] = None,
    regions: Optional[List[str]] = None,
    locations: Optional[List[str]] = None,
    is_default: bool = False,
) -> Dict[str, Any]:
    """Create or update a saved auth configuration (keyed by display name and provider)."""

    def _save() -> Dict[str, Any]:
        config = AuthConfig.from_dict(
            {
                "provider": provider,
                "displayName": display_name,
                "credentials": credentials or {},
                "regions": regions or [],
                "locations": locations or [],
                "isDefault": is_default,
            }
        )
        # Rejects unusable scope values before anything is written.
        credential = config.to_credential()
        saved = AuthConfigStore().add(config)
        return {"ok": True, "config": saved.to_dict(), "credential": credential.to_dict()}

    return _run(_save)


@mcp.tool
def remove_auth_config(provider: str, display_name: str) -> Dict[str, Any]:
    return _run(lambda: {"ok": True, "removed": AuthConfigStore().remove(display_name, provider)})


@mcp.tool
def validate_credential(provider: str, credential_id: str) -> Dict[str, Any]:
    """Check a credential with a read-only provider call."""
    return _run(lambda: {"ok": True, "valid": validate_credential_impl(_credential(provider, credential_id))})


@mcp.tool
def provider_suggestions(provider: str) -> Dict[str, Any]:
    return _run(lambda: {"ok": True, "provider": provider, **provider_suggestions_impl(provider)})


@mcp.tool
def list_clusters(provider: str, credential_id: str, scopes: Optional[List[str]] = None) -> Dict[str, Any]:
    """List clusters for one credential.

    `scopes` overrides the regions (AWS) or locations (GCP/Azure) that are scanned.
    """

    def _list() -> Dict[str, Any]:
        clusters = list_clusters_impl(_credential(provider, credential_id), scopes or None)
        return {"ok": True, "clusters": [identity_to_dict(c) for c in clusters]}

    return _run(_list)


@mcp.tool
def connect_cluster(
    provider: str,
    credential_id: str,
    cluster: Union[str, Dict[str, Any]],
    region: Optional[str] = None,
) -> Dict[str, Any]:
    """Write a kubeconfig context for a cluster returned by `list_clusters`."""

    def _connect() -> Dict[str, Any]:
        identity = identity_from_dict(provider, cluster)
        record = connect_impl(identity, _credential(provider, credential_id), region=region)
        return {"ok": True, "context": record.to_dict()}

    return _run(_connect)


@mcp.tool
def list_contexts() -> Dict[str, Any]:
    return _run(
        lambda: {
            "ok": True,
            "kubeconfig": get_config().kubeconfig,
            "current": current_context(),
            "contexts": [r.to_dict() for r in list_contexts_impl()],
        }
    )


@mcp.tool
def list_namespaces(context: str) -> Dict[str, Any]:
    return _run(lambda: {"ok": True, "namespaces": list_namespaces_impl(context)})


@mcp.tool
def list_resources(context: str, kind: str, namespace: Optional[str] = None) -> Dict[str, Any]:
    """List resources of one kind. Namespaced kinds require `namespace`."""
    return _run(lambda: {"ok": True, "items": list_resources_impl(kind, context, namespace)})


@mcp.tool
def get_resource(context: str, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
    return _run(lambda: {"ok": True, "resource": get_resource_impl(kind, context, namespace, name)})


@mcp.tool
def get_resource_yaml(context: str, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
    """Export a resource as YAML without server-populated fields."""
    return _run(lambda: {"ok": True, "yaml": get_resource_yaml_impl(kind, context, namespace, name)})


@mcp.tool
def delete_resource(context: str, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
    return _run(lambda: {"ok": True, **delete_resource_impl(kind, context, namespace, name)})


@mcp.tool
def apply_yaml(context: str, yaml_text: str) -> Dict[str, Any]:
    """Create or replace every document in a YAML stream.

    Not transactional: documents applied before a failure stay applied.
    """
    return _run(lambda: apply_yaml_impl(context, yaml_text).to_dict())


@mcp.tool
def get_pod_logs(
    context: str,
    namespace: str,
    pod: str,
    container: Optional[str] = None,
    tail_lines: Optional[int] = None,
) -> Dict[str, Any]:
    return _run(
        lambda: {"ok": True, "logs": get_pod_logs_impl(context, namespace, pod, container, tail_lines=tail_lines)}
    )


@mcp.tool
def exec_in_pod(
    context: str,
    namespace: str,
    pod: str,
    command: List[str],
    container: Optional[str] = None,
    timeout_seconds: Optional[int] = None,
) -> Dict[str, Any]:
    """Run a command in a pod and return its stdout/stderr."""

    def _exec() -> Dict[str, Any]:
        result = exec_in_pod_impl(context, namespace, pod, container, command, timeout=timeout_seconds)
        return {"ok": True, **result.to_dict()}

    return _run(_exec)


@mcp.tool
def cluster_health(context: str) -> Dict[str, Any]:
    return _run(lambda: cluster_health_impl(context))


@mcp.tool
def cluster_metrics(context: str) -> Dict[str, Any]:
    return _run(lambda: cluster_metrics_impl(context))


def run() -> None:
    """Run the cloudkube MCP server over HTTP."""

    cfg = get_config()
    configure_logging(cfg.log_level)
    logger.info("Starting cloudkube MCP on %s:%s", cfg.mcp_host, cfg.mcp_port)
    mcp.run(transport="http", host=cfg.mcp_host, port=cfg.mcp_port)


if __name__ == "__main__":
    run()
