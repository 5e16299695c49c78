from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError

from cloudkube.errors import CloudKubeError
from cloudkube.utils.clients import KubernetesClientSet, load_clients

logger = logging.getLogger(__name__)

_MEMORY_UNITS = {
    "Ki": 1024,
    "Mi": 1024 ** 2,
    "Gi": 1024 ** 3,
    "Ti": 1024 ** 4,
    "K": 1000,
    "M": 1000 ** 2,
    "G": 1000 ** 3,
    "T": 1000 ** 4,
}


def parse_cpu(value: str) -> float:
    """Kubernetes CPU quantity to millicores."""

    value = str(value).strip()
    if value.endswith("m"):
        return float(int(value[:-1]))
    if value.endswith("n"):
        return int(value[:-1]) / 1_000_000
    return float(value) * 1000


def parse_memory(value: str) -> int:
    """Kubernetes memory quantity to bytes."""

    value = str(value).strip()
    for unit in ("Ki", "Mi", "Gi", "Ti", "K", "M", "G", "T"):
        if value.endswith(unit):
            return int(float(value[: -len(unit)]) * _MEMORY_UNITS[unit])
    return int(float(value))


def _percent(part: int, total: int) -> float:
    # Nothing to be unhealthy about.
    return (part / total) * 100 if total else 100.0


def _node_ready(node: Any) -> bool:
    conditions = (node.status.conditions if node.status else None) or []
    return any(c.type == "Ready" and c.status == "True" for c in conditions)


def _pod_running(pod: Any) -> bool:
    return bool(pod.status and pod.status.phase == "Running")


def _deployment_ready(deployment: Any) -> bool:
    status = deployment.status
    spec = deployment.spec
    if status is None or spec is None:
        return False
    return status.ready_replicas == status.replicas and status.replicas == spec.replicas


def cluster_health(context: str, *, clients: Optional[KubernetesClientSet] = None) -> Dict[str, Any]:
    """Readiness summary of nodes, pods and deployments.

    Never raises for an unreachable cluster; the result is reported as critical.
    """

    checked_at = datetime.now(timezone.utc).isoformat()
    try:
        c = clients or load_clients(context)
        nodes = c.core.list_node().items or []
        pods = c.core.list_pod_for_all_namespaces().items or []
        deployments = c.apps.list_deployment_for_all_namespaces().items or []
    except (ApiException, HTTPError, CloudKubeError) as exc:
        logger.warning("Health check failed for context %s: %s", context, exc)
        return {
            "ok": False,
            "status": "critical",
            "message": "Unable to connect to cluster",
            "error": str(exc),
            "checkedAt": checked_at,
        }

    ready_nodes = sum(1 for n in nodes if _node_ready(n))
    running_pods = sum(1 for p in pods if _pod_running(p))
    ready_deployments = sum(1 for d in deployments if _deployment_ready(d))

    node_pct = _percent(ready_nodes, len(nodes))
    pod_pct = _percent(running_pods, len(pods))
    deployment_pct = _percent(ready_deployments, len(deployments))

    status, message = "healthy", "All systems operational"
    if node_pct < 100 or pod_pct < 90 or deployment_pct < 90:
        status, message = "warning", "Some resources are not fully operational"
    if node_pct < 50 or pod_pct < 50 or deployment_pct < 50:
        status, message = "critical", "Cluster experiencing significant issues"

    return {
        "ok": True,
        "status": status,
        "message": message,
        "checkedAt": checked_at,
        "details": {
            "nodes": {"ready": ready_nodes, "total": len(nodes)},
            "pods": {"running": running_pods, "total": len(pods)},
            "deployments": {"ready": ready_deployments, "total": len(deployments)},
        },
    }


def cluster_metrics(context: str, *, clients: Optional[KubernetesClientSet] = None) -> Dict[str, Any]:
    """Capacity totals summed over all nodes, plus the running pod count."""

    c = clients or load_clients(context)
    try:
        nodes = c.core.list_node().items or []
        pods = c.core.list_pod_for_all_namespaces().items or []
    except ApiException as exc:
        raise CloudKubeError(f"Kubernetes API error {exc.status} while reading metrics: {exc.reason}", context=context) from exc

    cpu = 0.0
    memory = 0
    pod_capacity = 0
    for node in nodes:
        capacity = (node.status.capacity if node.status else None) or {}
        if capacity.get("cpu"):
            cpu += parse_cpu(capacity["cpu"])
        if capacity.get("memory"):
            memory += parse_memory(capacity["memory"])
        if capacity.get("pods"):
            pod_capacity += int(capacity["pods"])

    return {
        "ok": True,
        "cpu": {"capacity": cpu, "unit": "millicores"},
        "memory": {"capacity": memory, "unit": "bytes"},
        "pods": {"running": sum(1 for p in pods if _pod_running(p)), "capacity": pod_capacity},
        "checkedAt": datetime.now(timezone.utc).isoformat(),
    }
