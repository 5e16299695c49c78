from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from cloudkube.config_utils import env_int, env_list, env_optional_str, env_str

DEFAULT_AWS_REGIONS: Tuple[str, ...] = (
    "us-east-1",
    "us-east-2",
    "us-west-1",
    "us-west-2",
    "eu-west-1",
    "eu-west-2",
    "eu-central-1",
    "ap-northeast-1",
    "ap-northeast-2",
    "ap-southeast-1",
    "ap-southeast-2",
)

AZURE_ALL_LOCATIONS = "all"


def default_kubeconfig_path() -> str:
    """Resolve the connection-record store path.

    CLOUDKUBE_KUBECONFIG wins, then the first entry of KUBECONFIG, then
    ~/.kube/config.
    """

    explicit = env_optional_str("CLOUDKUBE_KUBECONFIG")
    if explicit:
        return str(Path(explicit).expanduser())
    kubeconfig_env = env_optional_str("KUBECONFIG")
    if kubeconfig_env:
        first = kubeconfig_env.split(os.pathsep)[0].strip()
        if first:
            return str(Path(first).expanduser())
    return str(Path.home() / ".kube" / "config")


@dataclass(frozen=True)
class CloudKubeConfig:
    """Runtime configuration for cloudkube.

    Env vars:
    - CLOUDKUBE_KUBECONFIG: kubeconfig written by connect (falls back to KUBECONFIG)
    - CLOUDKUBE_HOME: directory for saved auth configurations
    - CLOUDKUBE_AWS_REGIONS: comma-separated default EKS scan regions
    - CLOUDKUBE_AZURE_LOCATIONS: comma-separated AKS locations, or "all"
    - CLOUDKUBE_SCAN_WORKERS: parallel region/location scans per credential
    - CLOUDKUBE_CLI_TIMEOUT: seconds before a provider CLI call is killed
    - CLOUDKUBE_EXEC_TIMEOUT: seconds before a pod exec is force-terminated (0 disables)
    - CLOUDKUBE_LOG_LEVEL

    MCP transport:
    - CLOUDKUBE_MCP_HOST
    - CLOUDKUBE_MCP_PORT
    """

    kubeconfig: str
    home_dir: str
    aws_regions: Tuple[str, ...] = DEFAULT_AWS_REGIONS
    azure_locations: Tuple[str, ...] = (AZURE_ALL_LOCATIONS,)
    scan_workers: int = 4
    cli_timeout: int = 120
    exec_timeout: Optional[int] = 300
    log_level: str = "INFO"
    mcp_host: str = "0.0.0.0"
    mcp_port: int = 8000

    DEFAULT_SCAN_WORKERS: int = 4
    DEFAULT_CLI_TIMEOUT: int = 120
    DEFAULT_EXEC_TIMEOUT: int = 300
    DEFAULT_MCP_HOST: str = "0.0.0.0"
    DEFAULT_MCP_PORT: int = 8000

    @classmethod
    def from_env(cls) -> "CloudKubeConfig":
        exec_timeout = env_int("CLOUDKUBE_EXEC_TIMEOUT", cls.DEFAULT_EXEC_TIMEOUT, minimum=0)
        return cls(
            kubeconfig=default_kubeconfig_path(),
            home_dir=str(Path(env_str("CLOUDKUBE_HOME", str(Path.home() / ".cloudkube"))).expanduser()),
            aws_regions=tuple(env_list("CLOUDKUBE_AWS_REGIONS", DEFAULT_AWS_REGIONS)),
            azure_locations=tuple(env_list("CLOUDKUBE_AZURE_LOCATIONS", (AZURE_ALL_LOCATIONS,))),
            scan_workers=env_int("CLOUDKUBE_SCAN_WORKERS", cls.DEFAULT_SCAN_WORKERS, minimum=1),
            cli_timeout=env_int("CLOUDKUBE_CLI_TIMEOUT", cls.DEFAULT_CLI_TIMEOUT, minimum=1),
            exec_timeout=exec_timeout or None,
            log_level=env_str("CLOUDKUBE_LOG_LEVEL", "INFO").upper(),
            mcp_host=env_str("CLOUDKUBE_MCP_HOST", cls.DEFAULT_MCP_HOST),
            mcp_port=env_int("CLOUDKUBE_MCP_PORT", cls.DEFAULT_MCP_PORT, minimum=1),
        )

    @property
    def auth_config_file(self) -> str:
        return str(Path(self.home_dir) / "auth-config.json")


_config: Optional[CloudKubeConfig] = None


def get_config() -> CloudKubeConfig:
    """Get the cloudkube configuration (cached)."""
    global _config
    if _config is None:
        _config = CloudKubeConfig.from_env()
    return _config


def reset_config() -> None:
    global _config
    _config = None
