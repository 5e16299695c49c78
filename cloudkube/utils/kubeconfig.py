from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from cloudkube.config import get_config
from cloudkube.errors import NotFoundError, ValidationError
from cloudkube.utils.models import ConnectionRecord

logger = logging.getLogger(__name__)


def kubeconfig_path() -> str:
    """Path of the kubeconfig that connect writes and the registry reads."""
    return get_config().kubeconfig


def guess_provider(context_name: str) -> str:
    lowered = (context_name or "").lower()
    if "eks" in lowered or "aws" in lowered:
        return "aws"
    if "aks" in lowered or "azure" in lowered:
        return "azure"
    if "gke" in lowered or "gcp" in lowered:
        return "gcp"
    return "other"


def load_kubeconfig(path: Optional[str] = None) -> Dict[str, Any]:
    p = Path(path or kubeconfig_path()).expanduser()
    if not p.is_file():
        logger.info("Kubeconfig not found at %s", p)
        return {}
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValidationError(f"Kubeconfig at {p} is not valid YAML: {exc}", field="kubeconfig") from exc
    return data if isinstance(data, dict) else {}


def _by_name(entries: Any) -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {}
    for entry in entries or []:
        if isinstance(entry, dict) and entry.get("name"):
            out[str(entry["name"])] = entry
    return out


def list_contexts(path: Optional[str] = None) -> List[ConnectionRecord]:
    """Every context in the kubeconfig, in file order."""

    data = load_kubeconfig(path)
    clusters = _by_name(data.get("clusters"))
    records: List[ConnectionRecord] = []
    for name, entry in _by_name(data.get("contexts")).items():
        ctx = entry.get("context") or {}
        cluster_name = ctx.get("cluster")
        cluster = (clusters.get(cluster_name) or {}).get("cluster") or {}
        records.append(
            ConnectionRecord(
                context_name=name,
                provider=guess_provider(name),
                cluster_name=cluster_name,
                server=cluster.get("server"),
                user=ctx.get("user"),
                namespace=ctx.get("namespace") or "default",
            )
        )
    return records


def get_context(name: str, path: Optional[str] = None) -> ConnectionRecord:
    for record in list_contexts(path):
        if record.context_name == name:
            return record
    raise NotFoundError(f"Context not found in kubeconfig: {name}", context=name)


def current_context(path: Optional[str] = None) -> Optional[str]:
    value = load_kubeconfig(path).get("current-context")
    return str(value) if value else None
