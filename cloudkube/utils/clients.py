from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from kubernetes import client
from kubernetes.config import new_client_from_config
from kubernetes.config.config_exception import ConfigException

from cloudkube.errors import NotFoundError
from cloudkube.utils.kubeconfig import kubeconfig_path
from cloudkube.utils.sanitize import Field, validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KubernetesClientSet:
    api_client: client.ApiClient
    core: client.CoreV1Api
    apps: client.AppsV1Api
    batch: client.BatchV1Api
    networking: client.NetworkingV1Api
    version: client.VersionApi


def load_clients(context: str, kubeconfig: Optional[str] = None) -> KubernetesClientSet:
    """Create Kubernetes API clients bound to one kubeconfig context.

    Each call builds its own ApiClient, so concurrent callers on different
    contexts never share configuration.
    """

    context = validate(context, Field.CONTEXT_NAME)
    path = kubeconfig or kubeconfig_path()
    try:
        api_client = new_client_from_config(config_file=path, context=context)
    except ConfigException as exc:
        raise NotFoundError(f"Cannot load context {context} from {path}: {exc}", context=context) from exc
    logger.debug("Loaded client for context %s from %s", context, path)

    return KubernetesClientSet(
        api_client=api_client,
        core=client.CoreV1Api(api_client),
        apps=client.AppsV1Api(api_client),
        batch=client.BatchV1Api(api_client),
        networking=client.NetworkingV1Api(api_client),
        version=client.VersionApi(api_client),
    )
