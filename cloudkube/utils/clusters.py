"""Cluster enumeration per credential, fanned out across regions/locations."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from cloudkube.config import AZURE_ALL_LOCATIONS, get_config
from cloudkube.errors import CloudKubeError, ConnectionError, CredentialError
from cloudkube.utils import cli
from cloudkube.utils.cli import Runner
from cloudkube.utils.models import AwsCluster, AzureCluster, ClusterIdentity, Credential, GcpCluster, Provider
from cloudkube.utils.sanitize import Field, validate

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _expect(data: Any, shape: type, provider: str, scope: str) -> Any:
    """Reject CLI JSON that is not the expected top-level shape; ``None`` becomes empty."""

    if data is None:
        return shape()
    if not isinstance(data, shape):
        raise ConnectionError(
            f"Unexpected {provider} cluster list for {scope}: expected a JSON {shape.__name__}, got {type(data).__name__}",
            provider=provider,
        )
    return data


def _fan_out(
    credential: Credential,
    scopes: Sequence[str],
    scan: Callable[[str], List[T]],
    max_workers: Optional[int],
) -> List[T]:
    """Run ``scan`` for every scope; collect in scope order and swallow per-scope failures.

    Raises only when every scope failed with an authorization failure.
    """

    if not scopes:
        return []
    workers = max(1, min(int(max_workers or get_config().scan_workers), len(scopes)))
    results: List[T] = []
    failures: List[Tuple[str, Exception]] = []
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [(scope, pool.submit(scan, scope)) for scope in scopes]
        for scope, future in futures:
            try:
                results.extend(future.result())
            except CloudKubeError as exc:
                logger.warning("Cluster scan failed for %s %s in %s: %s", credential.provider.value, credential.id, scope, exc)
                failures.append((scope, exc))

    if len(failures) == len(scopes) and all(isinstance(e, ConnectionError) and e.unauthorized for _, e in failures):
        first = failures[0][1]
        raise ConnectionError(
            f"Not authorized to list clusters with {credential.name} in any of: {', '.join(scopes)}",
            command=getattr(first, "command", None),
            exit_code=getattr(first, "exit_code", None),
            stderr=getattr(first, "stderr", ""),
            unauthorized=True,
            provider=credential.provider.value,
        )
    return results


def _aws_clusters(credential: Credential, scopes: Optional[Sequence[str]], runner: Optional[Runner], max_workers: Optional[int]) -> List[AwsCluster]:
    profile = validate(credential.profile or credential.id, Field.AWS_PROFILE)
    regions = [validate(r, Field.AWS_REGION) for r in (scopes or credential.regions or get_config().aws_regions)]
    timeout = get_config().cli_timeout

    def scan(region: str) -> List[AwsCluster]:
        data = cli.run_json(
            ["aws", "eks", "list-clusters", "--region", region, "--output", "json"],
            env={"AWS_PROFILE": profile},
            runner=runner,
            timeout_seconds=timeout,
            provider="aws",
        )
        names = _expect(_expect(data, dict, "aws", region).get("clusters"), list, "aws", region)
        return [AwsCluster(name=str(name), region=region) for name in names]

    found = _fan_out(credential, regions, scan, max_workers)
    return list(dict.fromkeys(found))


def _gcp_clusters(credential: Credential, scopes: Optional[Sequence[str]], runner: Optional[Runner]) -> List[GcpCluster]:
    if not credential.project:
        raise CredentialError(f"GCP project is required to list clusters for {credential.name}", provider="gcp")
    project = validate(credential.project, Field.GCP_PROJECT)
    wanted = [validate(loc, Field.GCP_LOCATION) for loc in (scopes or credential.locations)]
    timeout = get_config().cli_timeout

    def scan(scope: str) -> List[GcpCluster]:
        data = cli.run_json(
            ["gcloud", "container", "clusters", "list", "--project", scope, "--format=json"],
            runner=runner,
            timeout_seconds=timeout,
            provider="gcp",
        )
        out: List[GcpCluster] = []
        for item in _expect(data, list, "gcp", scope):
            if not isinstance(item, dict):
                continue
            location = item.get("location") or item.get("zone")
            if wanted and location not in wanted:
                continue
            out.append(GcpCluster(name=str(item.get("name")), project=scope, location=location))
        return out

    return _fan_out(credential, [project], scan, 1)


def _azure_clusters(credential: Credential, scopes: Optional[Sequence[str]], runner: Optional[Runner], max_workers: Optional[int]) -> List[AzureCluster]:
    if not credential.subscription:
        raise CredentialError(f"Azure subscription is required to list clusters for {credential.name}", provider="azure")
    subscription = validate(credential.subscription, Field.AZURE_SUBSCRIPTION)
    locations = list(scopes or credential.locations or get_config().azure_locations)
    if AZURE_ALL_LOCATIONS in locations:
        locations = [AZURE_ALL_LOCATIONS]
    else:
        locations = [validate(loc, Field.AZURE_LOCATION) for loc in locations]
    timeout = get_config().cli_timeout

    def scan(location: str) -> List[AzureCluster]:
        argv = ["az", "aks", "list", "--subscription", subscription, "--output", "json"]
        if location != AZURE_ALL_LOCATIONS:
            argv += ["--query", f"[?location=='{location}']"]
        data = cli.run_json(argv, runner=runner, timeout_seconds=timeout, provider="azure")
        return [
            AzureCluster(name=str(item.get("name")), resource_group=item.get("resourceGroup"), location=item.get("location"))
            for item in _expect(data, list, "azure", location)
            if isinstance(item, dict)
        ]

    return _fan_out(credential, locations, scan, max_workers)


def list_clusters(
    credential: Credential,
    scope_override: Optional[Sequence[str]] = None,
    *,
    runner: Optional[Runner] = None,
    max_workers: Optional[int] = None,
) -> List[ClusterIdentity]:
    """List clusters reachable with ``credential``.

    ``scope_override`` replaces the regions (AWS) or locations (GCP/Azure)
    that are scanned. Unsafe scope values raise ``ValidationError`` before any
    provider CLI is started.
    """

    if credential.provider is Provider.AWS:
        clusters: List[ClusterIdentity] = list(_aws_clusters(credential, scope_override, runner, max_workers))
    elif credential.provider is Provider.GCP:
        clusters = list(_gcp_clusters(credential, scope_override, runner))
    elif credential.provider is Provider.AZURE:
        clusters = list(_azure_clusters(credential, scope_override, runner, max_workers))
    else:
        raise AssertionError(f"unhandled provider {credential.provider!r}")
    logger.info("Found %d %s clusters for %s", len(clusters), credential.provider.value, credential.name)
    return clusters

