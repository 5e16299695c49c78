import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest
import yaml

from cloudkube.config import reset_config
from cloudkube.utils.cli import CliResult


class FakeRunner:
    """Stands in for the subprocess runner.

    ``responses`` maps a predicate over argv to either a JSON-able payload, a
    ``CliResult`` or an exception to raise.
    """

    def __init__(self, responses: Optional[List[Tuple[Callable[[List[str]], bool], Any]]] = None):
        self.responses = list(responses or [])
        self.calls: List[Tuple[List[str], Dict[str, str]]] = []

    def when(self, predicate: Callable[[List[str]], bool], response: Any) -> "FakeRunner":
        self.responses.append((predicate, response))
        return self

    def __call__(self, argv: Sequence[str], env: Dict[str, str], timeout_seconds: int) -> CliResult:
        argv = list(argv)
        self.calls.append((argv, dict(env)))
        for predicate, response in self.responses:
            if predicate(argv):
                if isinstance(response, BaseException):
                    raise response
                if isinstance(response, CliResult):
                    return response
                return CliResult(0, json.dumps(response), "", argv)
        return CliResult(1, "", f"unexpected command: {' '.join(argv)}", argv)


def has(*parts: str) -> Callable[[List[str]], bool]:
    return lambda argv: all(p in argv for p in parts)


def failed(stderr: str, code: int = 1) -> CliResult:
    return CliResult(code, "", stderr, [])


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("CLOUDKUBE_HOME", str(tmp_path / ".cloudkube"))
    monkeypatch.setenv("CLOUDKUBE_KUBECONFIG", str(tmp_path / "kubeconfig"))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "aws-credentials"))
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "aws-config"))
    for name in ("KUBECONFIG", "CLOUDKUBE_AWS_REGIONS", "CLOUDKUBE_AZURE_LOCATIONS", "CLOUDKUBE_EXEC_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def runner():
    return FakeRunner()


def write_kubeconfig(path, contexts, current=None):
    """Write a kubeconfig with one cluster/user per ``(context_name, namespace)`` pair."""

    doc = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": f"{name}-cluster", "cluster": {"server": f"https://{name}.example"}} for name, _ in contexts],
        "contexts": [
            {"name": name, "context": {"cluster": f"{name}-cluster", "user": f"{name}-user", **({"namespace": ns} if ns else {})}}
            for name, ns in contexts
        ],
        "users": [{"name": f"{name}-user", "user": {}} for name, _ in contexts],
    }
    if current:
        doc["current-context"] = current
    path.write_text(yaml.safe_dump(doc))
