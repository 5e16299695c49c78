"""Materialize a kubeconfig context for a cloud cluster through the provider CLI."""

from __future__ import annotations

import logging
import os
import re
import sys
import threading
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from cloudkube.config import get_config
from cloudkube.errors import ConnectionError, CredentialError, NotFoundError
from cloudkube.utils import cli
from cloudkube.utils.cli import Runner
from cloudkube.utils.kubeconfig import current_context, get_context, kubeconfig_path as default_kubeconfig_path, list_contexts
from cloudkube.utils.models import AwsCluster, AzureCluster, ClusterIdentity, ConnectionRecord, Credential, GcpCluster
from cloudkube.utils.sanitize import Field, validate, validate_optional, validate_path

if sys.platform != "win32":
    import fcntl
else:
    fcntl = None

logger = logging.getLogger(__name__)

# "my-cluster (us-east-1)" as shown in cluster pickers.
_DISPLAY_SUFFIX = re.compile(r"^(?P<name>.+?)\s*\((?P<region>[a-z0-9-]+)\)\s*$")
_REGION_IN_NAME = re.compile(
    r"(us(-gov)?|ap|ca|cn|eu|sa|me|af|il|mx)-"
    r"(central|east|north|northeast|northwest|south|southeast|southwest|west)-[0-9]+"
)

_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


@contextmanager
def kubeconfig_writer_lock(path: str) -> Iterator[None]:
    """Serialize writers of one kubeconfig file, in-process and across processes."""

    key = os.path.abspath(os.path.expanduser(path))
    with _LOCKS_GUARD:
        lock = _LOCKS.setdefault(key, threading.Lock())
    with lock:
        if fcntl is None:
            yield
            return
        Path(key).parent.mkdir(parents=True, exist_ok=True)
        with open(key + ".lock", "a", encoding="utf-8") as fh:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)


def infer_aws_region(name: str) -> Tuple[str, Optional[str]]:
    """Split a display name into (cluster name, region guessed from it)."""

    match = _DISPLAY_SUFFIX.match(name or "")
    if match:
        return match.group("name"), match.group("region")
    found = _REGION_IN_NAME.search(name or "")
    return name, (found.group(0) if found else None)


def _aws_command(identity: AwsCluster, credential: Credential, region: Optional[str], kubeconfig: str) -> Tuple[str, List[str], Dict[str, str]]:
    name, inferred = infer_aws_region(identity.name)
    region = region or identity.region or inferred
    if not region:
        raise CredentialError(
            f"Region is required to connect to EKS cluster {name}",
            provider="aws",
            cluster=name,
        )
    name = validate(name, Field.CLUSTER_NAME)
    region = validate(region, Field.AWS_REGION)
    profile = validate(credential.profile or credential.id, Field.AWS_PROFILE)
    context_name = f"eks-{region}-{name}"
    argv = [
        "aws", "eks", "update-kubeconfig",
        "--name", name,
        "--region", region,
        "--kubeconfig", kubeconfig,
        "--alias", context_name,
    ]
    return context_name, argv, {"AWS_PROFILE": profile}


def _gcp_command(identity: GcpCluster, credential: Credential, kubeconfig: str) -> Tuple[Optional[str], List[str], Dict[str, str]]:
    project = identity.project or credential.project
    if not project:
        raise CredentialError(
            f"GCP project is required to connect to GKE cluster {identity.name}",
            provider="gcp",
            cluster=identity.name,
        )
    name = validate(identity.name, Field.CLUSTER_NAME)
    project = validate(project, Field.GCP_PROJECT)
    location = validate_optional(identity.location, Field.GCP_LOCATION)
    argv = ["gcloud", "container", "clusters", "get-credentials", name, "--project", project]
    if location:
        argv += ["--location", location]
    # gcloud picks the context name itself; without a location it is resolved after the write.
    context_name = f"gke_{project}_{location}_{name}" if location else None
    return context_name, argv, {"KUBECONFIG": kubeconfig}


def _azure_command(identity: AzureCluster, credential: Credential, kubeconfig: str) -> Tuple[str, List[str], Dict[str, str]]:
    if not identity.resource_group:
        raise CredentialError(
            f"Resource group is required to connect to AKS cluster {identity.name}",
            provider="azure",
            cluster=identity.name,
        )
    if not credential.subscription:
        raise CredentialError(
            f"Azure subscription is required to connect to AKS cluster {identity.name}",
            provider="azure",
            cluster=identity.name,
        )
    name = validate(identity.name, Field.CLUSTER_NAME)
    group = validate(identity.resource_group, Field.AZURE_RESOURCE_GROUP)
    subscription = validate(credential.subscription, Field.AZURE_SUBSCRIPTION)
    context_name = f"aks-{group}-{name}"
    argv = [
        "az", "aks", "get-credentials",
        "--name", name,
        "--resource-group", group,
        "--subscription", subscription,
        "--file", kubeconfig,
        "--context", context_name,
        "--overwrite-existing",
    ]
    return context_name, argv, {}


def _find_gke_context(identity: GcpCluster, project: str, path: str) -> Optional[str]:
    prefix = f"gke_{project}_"
    suffix = f"_{identity.name}"
    matches = [
        r.context_name for r in list_contexts(path) if r.context_name.startswith(prefix) and r.context_name.endswith(suffix)
    ]
    # get-credentials switches current-context to the entry it just wrote.
    current = current_context(path)
    if current in matches:
        return current
    return matches[0] if matches else None


def connect(
    identity: ClusterIdentity,
    credential: Credential,
    *,
    region: Optional[str] = None,
    kubeconfig_path: Optional[str] = None,
    runner: Optional[Runner] = None,
) -> ConnectionRecord:
    """Write one kubeconfig context for ``identity`` and return it as read back from the file.

    Every value placed on the provider command line is validated first, so a
    rejected input never starts a process.
    """

    if not isinstance(identity, (AwsCluster, GcpCluster, AzureCluster)):
        raise TypeError(f"Unknown cluster identity: {identity!r}")
    path = validate_path(kubeconfig_path or default_kubeconfig_path(), "kubeconfig path")
    if identity.provider is not credential.provider:
        raise CredentialError(
            f"Credential {credential.name} is for {credential.provider.value}, not {identity.provider.value}",
            provider=identity.provider.value,
            cluster=identity.name,
        )

    if isinstance(identity, AwsCluster):
        context_name, argv, env = _aws_command(identity, credential, validate_optional(region, Field.AWS_REGION), path)
    elif isinstance(identity, GcpCluster):
        context_name, argv, env = _gcp_command(identity, credential, path)
    else:
        context_name, argv, env = _azure_command(identity, credential, path)

    provider = identity.provider.value
    logger.info("Connecting to %s cluster %s", provider, identity.name)
    with kubeconfig_writer_lock(path):
        cli.run(
            argv,
            env=env,
            runner=runner,
            timeout_seconds=get_config().cli_timeout,
            provider=provider,
            cluster=identity.name,
        )
        if context_name is None and isinstance(identity, GcpCluster):
            context_name = _find_gke_context(identity, argv[argv.index("--project") + 1], path)

    if not context_name:
        raise ConnectionError(
            f"{argv[0]} succeeded but no context for {identity.name} was written to {path}",
            command=argv,
            provider=provider,
            cluster=identity.name,
        )
    try:
        record = replace(get_context(context_name, path), provider=provider)
    except NotFoundError as exc:
        raise ConnectionError(
            f"{argv[0]} succeeded but context {context_name} is missing from {path}",
            command=argv,
            provider=provider,
            cluster=identity.name,
        ) from exc
    logger.info("Connected %s cluster %s as context %s", provider, identity.name, record.context_name)
    return record
