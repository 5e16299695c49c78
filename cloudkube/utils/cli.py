from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from cloudkube.errors import ConnectionError
from cloudkube.utils.sanitize import render_command, validate_env

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120

_UNAUTHORIZED_MARKERS = (
    "accessdenied",
    "access denied",
    "unauthorizedoperation",
    "unrecognizedclientexception",
    "invalidclienttokenid",
    "expiredtoken",
    "not authorized",
    "authorizationfailed",
    "permission_denied",
    "permission denied",
    "please run 'az login'",
    "az login",
    "gcloud auth login",
    "could not be found in your credentials",
    "the config profile",
    "unable to locate credentials",
)


@dataclass(frozen=True)
class CliResult:
    code: int
    stdout: str
    stderr: str
    command: List[str]


Runner = Callable[[Sequence[str], Dict[str, str], int], CliResult]


def subprocess_runner(argv: Sequence[str], env: Dict[str, str], timeout_seconds: int) -> CliResult:
    """Run ``argv`` without a shell and return (code, stdout, stderr, command)."""

    binary = shutil.which(argv[0]) or argv[0]
    cmd = [binary, *argv[1:]]
    merged = dict(os.environ)
    merged.update(env)
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, env=merged, timeout=timeout_seconds, shell=False)
    except FileNotFoundError as exc:
        raise ConnectionError(
            f"{argv[0]} not found in PATH",
            command=list(argv),
            stderr=f"Install the {argv[0]} CLI or ensure it is on PATH.",
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise ConnectionError(
            f"{argv[0]} timed out after {timeout_seconds}s: {render_command(argv)}",
            command=list(argv),
        ) from exc
    return CliResult(int(proc.returncode), proc.stdout or "", proc.stderr or "", list(argv))


def looks_unauthorized(text: str) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in _UNAUTHORIZED_MARKERS)


def run(
    argv: Sequence[str],
    *,
    env: Optional[Mapping[str, str]] = None,
    runner: Optional[Runner] = None,
    timeout_seconds: Optional[int] = None,
    provider: Optional[str] = None,
    cluster: Optional[str] = None,
) -> CliResult:
    """Run a provider CLI and raise ConnectionError on a non-zero exit."""

    safe_env = validate_env(env or {})
    timeout = int(timeout_seconds or DEFAULT_TIMEOUT_SECONDS)
    logger.debug("Running %s (env: %s)", render_command(argv), sorted(safe_env))
    result = (runner or subprocess_runner)(list(argv), safe_env, timeout)
    if result.code != 0:
        details = result.stderr.strip() or result.stdout.strip() or f"{argv[0]} exited {result.code}"
        raise ConnectionError(
            f"{argv[0]} failed: {details}",
            command=list(argv),
            exit_code=result.code,
            stderr=details,
            unauthorized=looks_unauthorized(details),
            provider=provider,
            cluster=cluster,
        )
    return result


def run_json(
    argv: Sequence[str],
    *,
    env: Optional[Mapping[str, str]] = None,
    runner: Optional[Runner] = None,
    timeout_seconds: Optional[int] = None,
    provider: Optional[str] = None,
    cluster: Optional[str] = None,
) -> Any:
    result = run(argv, env=env, runner=runner, timeout_seconds=timeout_seconds, provider=provider, cluster=cluster)
    text = result.stdout.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ConnectionError(
            f"Unexpected output from {argv[0]}: {text[:200]}",
            command=list(argv),
            exit_code=result.code,
            provider=provider,
            cluster=cluster,
        ) from exc
