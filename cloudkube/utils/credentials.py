"""Local cloud credential discovery, saved auth configurations and validation.

Discovery never raises for a missing or broken provider: the provider yields
zero credentials and the failure is logged.
"""

from __future__ import annotations

import configparser
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from cloudkube.config import get_config
from cloudkube.errors import CloudKubeError, ValidationError
from cloudkube.utils import cli
from cloudkube.utils.cli import Runner
from cloudkube.utils.models import Credential, Provider
from cloudkube.utils.sanitize import Field, validate

logger = logging.getLogger(__name__)


def _aws_dir() -> Path:
    return Path.home() / ".aws"


def _aws_credentials_file() -> Path:
    explicit = os.environ.get("AWS_SHARED_CREDENTIALS_FILE")
    return Path(explicit).expanduser() if explicit else _aws_dir() / "credentials"


def _aws_config_file() -> Path:
    explicit = os.environ.get("AWS_CONFIG_FILE")
    return Path(explicit).expanduser() if explicit else _aws_dir() / "config"


def _read_sections(path: Path) -> List[str]:
    if not path.is_file():
        return []
    parser = configparser.RawConfigParser(strict=False, default_section="__cloudkube_none__")
    parser.read(path, encoding="utf-8")
    return list(parser.sections())


def _aws_profiles() -> List[str]:
    names = _read_sections(_aws_credentials_file())
    for section in _read_sections(_aws_config_file()):
        if section.startswith("profile "):
            names.append(section[len("profile "):].strip())
        elif section == "default":
            names.append(section)
    return names


def _discover_aws(runner: Optional[Runner]) -> List[Credential]:
    out: List[Credential] = []
    for profile in _aws_profiles():
        try:
            validate(profile, Field.AWS_PROFILE)
        except ValidationError:
            logger.warning("Skipping AWS profile with unsafe name: %r", profile)
            continue
        out.append(Credential(id=profile, provider=Provider.AWS, name=f"AWS: {profile}", profile=profile))
    return out


def _discover_gcp(runner: Optional[Runner]) -> List[Credential]:
    timeout = get_config().cli_timeout
    projects: List[Tuple[str, str]] = []

    try:
        active = cli.run_json(["gcloud", "config", "list", "--format=json"], runner=runner, timeout_seconds=timeout, provider="gcp")
    except CloudKubeError as exc:
        logger.warning("Could not read active gcloud configuration: %s", exc)
        active = None
    active_project = ((active or {}).get("core") or {}).get("project") if isinstance(active, dict) else None
    if active_project:
        projects.append((str(active_project), str(active_project)))

    listed = cli.run_json(["gcloud", "projects", "list", "--format=json"], runner=runner, timeout_seconds=timeout, provider="gcp")
    for item in listed or []:
        project_id = item.get("projectId")
        if project_id:
            projects.append((str(project_id), str(item.get("name") or project_id)))

    out: List[Credential] = []
    for project_id, display in projects:
        try:
            validate(project_id, Field.GCP_PROJECT)
        except ValidationError:
            logger.warning("Skipping GCP project with unsafe id: %r", project_id)
            continue
        out.append(Credential(id=project_id, provider=Provider.GCP, name=f"GCP: {display}", project=project_id))
    return out


def _discover_azure(runner: Optional[Runner]) -> List[Credential]:
    accounts = cli.run_json(
        ["az", "account", "list", "--output", "json"],
        runner=runner,
        timeout_seconds=get_config().cli_timeout,
        provider="azure",
    )
    out: List[Credential] = []
    for account in accounts or []:
        sub_id = account.get("id")
        try:
            sub_id = validate(sub_id, Field.AZURE_SUBSCRIPTION)
        except ValidationError:
            logger.warning("Skipping Azure subscription with unsafe id: %r", sub_id)
            continue
        name = account.get("name") or sub_id
        out.append(Credential(id=sub_id, provider=Provider.AZURE, name=f"Azure: {name}", subscription=sub_id))
    return out


_DISCOVERERS: Tuple[Tuple[Provider, Callable[[Optional[Runner]], List[Credential]]], ...] = (
    (Provider.AWS, _discover_aws),
    (Provider.GCP, _discover_gcp),
    (Provider.AZURE, _discover_azure),
)


def discover_credentials(runner: Optional[Runner] = None) -> List[Credential]:
    """Enumerate credentials configured on this machine, AWS then GCP then Azure."""

    seen = set()
    out: List[Credential] = []
    for provider, discover in _DISCOVERERS:
        try:
            found = discover(runner)
        except (CloudKubeError, OSError, configparser.Error) as exc:
            logger.warning("Credential discovery failed for %s: %s", provider.value, exc)
            continue
        for credential in found:
            if credential.key in seen:
                continue
            seen.add(credential.key)
            out.append(credential)
    logger.debug("Discovered %d credentials", len(out))
    return out


# ----------------------------- saved auth configurations ---------------------------


@dataclass
class AuthConfig:
    """A named credential configuration saved by the operator."""

    provider: Provider
    display_name: str
    credentials: Dict[str, Any] = field(default_factory=dict)
    is_default: bool = False
    last_used: Optional[str] = None
    regions: List[str] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthConfig":
        display_name = str(data.get("displayName") or data.get("display_name") or "").strip()
        if not display_name:
            raise ValidationError("Auth configuration requires a displayName", field="displayName")
        return cls(
            provider=Provider.parse(data.get("provider") or ""),
            display_name=display_name,
            credentials=dict(data.get("credentials") or {}),
            is_default=bool(data.get("isDefault", False)),
            last_used=data.get("lastUsed"),
            regions=list(data.get("regions") or []),
            locations=list(data.get("locations") or []),
            tags=list(data.get("tags") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "provider": self.provider.value,
            "displayName": self.display_name,
            "credentials": dict(self.credentials),
        }
        if self.is_default:
            out["isDefault"] = True
        if self.last_used:
            out["lastUsed"] = self.last_used
        for key in ("regions", "locations", "tags"):
            value = getattr(self, key)
            if value:
                out[key] = list(value)
        return out

    @property
    def key(self) -> Tuple[str, str]:
        return (self.display_name, self.provider.value)

    def to_credential(self) -> Credential:
        """Map the saved configuration onto a discoverable-style credential."""

        creds = self.credentials
        if self.provider is Provider.AWS:
            regions = tuple(validate(r, Field.AWS_REGION) for r in self.regions)
            profile = validate(creds.get("profile") or self.display_name, Field.AWS_PROFILE)
            return Credential(id=profile, provider=self.provider, name=self.display_name, profile=profile, regions=regions)
        if self.provider is Provider.GCP:
            project = validate(creds.get("projectId"), Field.GCP_PROJECT)
            locations = tuple(validate(loc, Field.GCP_LOCATION) for loc in self.locations)
            return Credential(id=project, provider=self.provider, name=self.display_name, project=project, locations=locations)
        if self.provider is Provider.AZURE:
            subscription = validate(creds.get("subscriptionId"), Field.AZURE_SUBSCRIPTION)
            locations = tuple(validate(loc, Field.AZURE_LOCATION) for loc in self.locations)
            return Credential(
                id=subscription,
                provider=self.provider,
                name=self.display_name,
                subscription=subscription,
                locations=locations,
            )
        raise AssertionError(f"unhandled provider {self.provider!r}")


class AuthConfigStore:
    """JSON-backed store of saved auth configurations (``{"configs": [...]}``)."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path or get_config().auth_config_file).expanduser()

    def load(self) -> List[AuthConfig]:
        if not self.path.is_file():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            logger.warning("Could not read auth configurations from %s: %s", self.path, exc)
            return []
        out: List[AuthConfig] = []
        for raw in (data or {}).get("configs") or []:
            try:
                out.append(AuthConfig.from_dict(raw))
            except ValidationError as exc:
                logger.warning("Skipping invalid auth configuration: %s", exc)
        return out

    def _save(self, configs: Iterable[AuthConfig]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"configs": [c.to_dict() for c in configs]}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def add(self, config: AuthConfig) -> AuthConfig:
        """Insert ``config`` or merge it over the entry with the same name and provider."""

        configs = self.load()
        for idx, existing in enumerate(configs):
            if existing.key == config.key:
                merged = existing.to_dict()
                merged.update(config.to_dict())
                configs[idx] = AuthConfig.from_dict(merged)
                config = configs[idx]
                break
        else:
            configs.append(config)
        self._save(configs)
        logger.info("Saved auth configuration %s (%s)", config.display_name, config.provider.value)
        return config

    def remove(self, display_name: str, provider: str) -> bool:
        key = (display_name, Provider.parse(provider).value)
        configs = self.load()
        kept = [c for c in configs if c.key != key]
        if len(kept) == len(configs):
            return False
        self._save(kept)
        logger.info("Removed auth configuration %s (%s)", display_name, key[1])
        return True


# ------------------------------- validation / hints --------------------------------


def validate_credential(credential: Credential, *, runner: Optional[Runner] = None) -> bool:
    """Check that ``credential`` is usable with read-only provider calls."""

    timeout = get_config().cli_timeout
    try:
        if credential.provider is Provider.AWS:
            profile = validate(credential.profile or credential.id, Field.AWS_PROFILE)
            identity = cli.run_json(
                ["aws", "sts", "get-caller-identity", "--profile", profile, "--output", "json"],
                runner=runner,
                timeout_seconds=timeout,
                provider="aws",
            )
            return bool((identity or {}).get("Account"))
        if credential.provider is Provider.GCP:
            accounts = cli.run_json(
                ["gcloud", "auth", "list", "--format=json"], runner=runner, timeout_seconds=timeout, provider="gcp"
            )
            return any((a or {}).get("status") == "ACTIVE" for a in accounts or [])
        if credential.provider is Provider.AZURE:
            subscription = validate(credential.subscription or credential.id, Field.AZURE_SUBSCRIPTION)
            account = cli.run_json(
                ["az", "account", "show", "--subscription", subscription, "--output", "json"],
                runner=runner,
                timeout_seconds=timeout,
                provider="azure",
            )
            return bool((account or {}).get("id"))
    except CloudKubeError as exc:
        logger.warning("Credential validation failed for %s %s: %s", credential.provider.value, credential.id, exc)
        return False
    raise AssertionError(f"unhandled provider {credential.provider!r}")


def provider_suggestions(provider: str, *, runner: Optional[Runner] = None) -> Dict[str, Any]:
    """Regions, locations or projects the operator can pick from for ``provider``."""

    p = Provider.parse(provider)
    timeout = get_config().cli_timeout
    try:
        if p is Provider.AWS:
            data = cli.run_json(
                ["aws", "ec2", "describe-regions", "--output", "json"], runner=runner, timeout_seconds=timeout, provider="aws"
            )
            return {"regions": [r.get("RegionName") for r in (data or {}).get("Regions") or [] if r.get("RegionName")]}
        if p is Provider.AZURE:
            data = cli.run_json(
                ["az", "account", "list-locations", "--output", "json"], runner=runner, timeout_seconds=timeout, provider="azure"
            )
            return {"locations": [loc.get("name") for loc in data or [] if loc.get("name")]}
        if p is Provider.GCP:
            data = cli.run_json(
                ["gcloud", "projects", "list", "--format=json"], runner=runner, timeout_seconds=timeout, provider="gcp"
            )
            return {
                "projects": [
                    {"id": item.get("projectId"), "name": item.get("name") or item.get("projectId")}
                    for item in data or []
                    if item.get("projectId")
                ]
            }
    except CloudKubeError as exc:
        logger.warning("Could not fetch %s suggestions: %s", p.value, exc)
        return {}
    raise AssertionError(f"unhandled provider {p!r}")
