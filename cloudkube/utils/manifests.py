"""Declarative apply: read each document's target, then replace it or create it.

A batch is not transactional. Documents applied before a failure stay applied.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, Optional

from kubernetes.client import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import DynamicApiError, NotFoundError as DynamicNotFoundError, ResourceNotFoundError
from urllib3.exceptions import HTTPError

from cloudkube.errors import ReconciliationError, TransportError
from cloudkube.utils.clients import KubernetesClientSet, load_clients
from cloudkube.utils.formatting import parse_yaml_documents
from cloudkube.utils.models import ApplyOutcome, ApplyReport, Outcome

logger = logging.getLogger(__name__)


def _is_applicable(doc: Any) -> bool:
    if not isinstance(doc, dict):
        return False
    metadata = doc.get("metadata")
    return bool(doc.get("apiVersion") and doc.get("kind") and isinstance(metadata, dict) and metadata.get("name"))


def _live_resource_version(live: Any) -> Optional[str]:
    metadata = getattr(live, "metadata", None)
    return getattr(metadata, "resourceVersion", None) if metadata is not None else None


def _failed(doc: Dict[str, Any], namespace: Optional[str], context: str, message: str, status: Optional[int] = None) -> ApplyOutcome:
    kind = doc["kind"]
    name = doc["metadata"]["name"]
    error = ReconciliationError(message, kind=kind, name=name, status=status, context=context)
    logger.warning("%s", error)
    return ApplyOutcome(kind, name, Outcome.FAILED, namespace, error=error)


def _apply_one(dynamic: Any, doc: Dict[str, Any], context: str) -> ApplyOutcome:
    kind = doc["kind"]
    name = doc["metadata"]["name"]
    try:
        resource = dynamic.resources.get(api_version=doc["apiVersion"], kind=kind)
    except ResourceNotFoundError:
        return _failed(doc, doc["metadata"].get("namespace"), context, f"{doc['apiVersion']}/{kind} is not served by the cluster")
    except (ApiException, HTTPError, OSError) as exc:
        return _failed(doc, doc["metadata"].get("namespace"), context, f"Cannot look up {doc['apiVersion']}/{kind}: {exc}", getattr(exc, "status", None))

    namespace = None
    if resource.namespaced:
        namespace = doc["metadata"].get("namespace") or "default"
    scope: Dict[str, Any] = {"namespace": namespace} if namespace else {}

    try:
        try:
            live = resource.get(name=name, **scope)
        except DynamicNotFoundError:
            resource.create(body=doc, **scope)
            logger.info("Created %s %s", kind, name)
            return ApplyOutcome(kind, name, Outcome.CREATED, namespace)

        body = copy.deepcopy(doc)
        if not body["metadata"].get("resourceVersion"):
            version = _live_resource_version(live)
            if version:
                body["metadata"]["resourceVersion"] = version
        resource.replace(body=body, name=name, **scope)
        logger.info("Updated %s %s", kind, name)
        return ApplyOutcome(kind, name, Outcome.UPDATED, namespace)
    except DynamicApiError as exc:
        return _failed(doc, namespace, context, f"Failed to apply {kind} {name}: {exc.summary()}", exc.status)
    except ApiException as exc:
        return _failed(doc, namespace, context, f"Failed to apply {kind} {name}: {exc.status} {exc.reason}", exc.status)
    except (HTTPError, OSError) as exc:
        return _failed(doc, namespace, context, f"Failed to apply {kind} {name}: {exc}")


def apply_documents(
    context: str,
    documents: Iterable[Any],
    *,
    clients: Optional[KubernetesClientSet] = None,
    dynamic: Any = None,
) -> ApplyReport:
    """Apply each document in order; per-document failures do not stop the batch."""

    if dynamic is None:
        api_client = (clients or load_clients(context)).api_client
        try:
            dynamic = DynamicClient(api_client)
        except (ApiException, HTTPError, OSError) as exc:
            raise TransportError(f"Cannot discover API resources of context {context}: {exc}", context=context) from exc
    report = ApplyReport()
    for doc in documents:
        if not _is_applicable(doc):
            report.ignored += 1
            continue
        report.outcomes.append(_apply_one(dynamic, doc, context))
    logger.info(
        "Applied to %s: %d created, %d updated, %d failed, %d ignored",
        context,
        len(report.created),
        len(report.updated),
        len(report.failed),
        report.ignored,
    )
    return report


def apply_yaml(
    context: str,
    text: str,
    *,
    clients: Optional[KubernetesClientSet] = None,
    dynamic: Any = None,
) -> ApplyReport:
    return apply_documents(context, parse_yaml_documents(text), clients=clients, dynamic=dynamic)
