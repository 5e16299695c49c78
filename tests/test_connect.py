import threading

import pytest

from cloudkube.errors import ConnectionError, CredentialError, ValidationError
from cloudkube.utils.cli import CliResult
from cloudkube.utils.connect import connect, infer_aws_region, kubeconfig_writer_lock
from cloudkube.utils.models import AwsCluster, AzureCluster, Credential, GcpCluster, Provider
from cloudkube.utils.sanitize import Field, validate

from conftest import write_kubeconfig

AWS = Credential(id="dev", provider=Provider.AWS, name="AWS: dev", profile="dev")
GCP = Credential(id="proj", provider=Provider.GCP, name="GCP: proj", project="proj")
AZURE = Credential(id="abc-1", provider=Provider.AZURE, name="Azure", subscription="abc-1")


class WritingRunner:
    """Pretends to be the provider CLI: records the call and writes the context."""

    def __init__(self, path, context_name, code=0, stderr=""):
        self.path = path
        self.context_name = context_name
        self.code = code
        self.stderr = stderr
        self.calls = []

    def __call__(self, argv, env, timeout_seconds):
        self.calls.append((list(argv), dict(env)))
        if self.code == 0:
            write_kubeconfig(self.path, [(self.context_name, None)])
        return CliResult(self.code, "", self.stderr, list(argv))


@pytest.mark.parametrize(
    "name,expected",
    [
        ("prod (eu-west-1)", ("prod", "eu-west-1")),
        ("prod-us-west-2-blue", ("prod-us-west-2-blue", "us-west-2")),
        ("gov-us-gov-west-1", ("gov-us-gov-west-1", "us-gov-west-1")),
        ("plain", ("plain", None)),
    ],
)
def test_infer_aws_region(name, expected):
    assert infer_aws_region(name) == expected


def test_aws_connect_infers_region_from_name(tmp_path):
    runner = WritingRunner(tmp_path / "kubeconfig", "eks-us-west-2-prod-us-west-2")
    record = connect(AwsCluster("prod-us-west-2"), AWS, runner=runner)

    argv, env = runner.calls[0]
    assert argv[:3] == ["aws", "eks", "update-kubeconfig"]
    assert argv[argv.index("--region") + 1] == "us-west-2"
    assert argv[argv.index("--kubeconfig") + 1] == str(tmp_path / "kubeconfig")
    assert argv[argv.index("--alias") + 1] == "eks-us-west-2-prod-us-west-2"
    assert env == {"AWS_PROFILE": "dev"}
    assert record.context_name == "eks-us-west-2-prod-us-west-2"
    assert record.provider == "aws"


def test_aws_explicit_region_wins(tmp_path):
    runner = WritingRunner(tmp_path / "kubeconfig", "eks-eu-central-1-prod-us-west-2")
    connect(AwsCluster("prod-us-west-2", "ap-south-1"), AWS, region="eu-central-1", runner=runner)
    argv, _ = runner.calls[0]
    assert argv[argv.index("--region") + 1] == "eu-central-1"


def test_aws_region_required_before_any_process(tmp_path):
    runner = WritingRunner(tmp_path / "kubeconfig", "unused")
    with pytest.raises(CredentialError) as excinfo:
        connect(AwsCluster("prod"), AWS, runner=runner)
    assert "Region is required" in str(excinfo.value)
    assert runner.calls == []


def test_unsafe_cluster_name_rejected_before_any_process(tmp_path):
    runner = WritingRunner(tmp_path / "kubeconfig", "unused")
    with pytest.raises(ValidationError):
        connect(AwsCluster("prod;reboot", "us-east-1"), AWS, runner=runner)
    assert runner.calls == []


def test_gcp_connect_sets_kubeconfig_env(tmp_path):
    runner = WritingRunner(tmp_path / "kubeconfig", "gke_proj_us-central1_web")
    record = connect(GcpCluster("web", "proj", "us-central1"), GCP, runner=runner)

    argv, env = runner.calls[0]
    assert argv == ["gcloud", "container", "clusters", "get-credentials", "web", "--project", "proj", "--location", "us-central1"]
    assert env == {"KUBECONFIG": str(tmp_path / "kubeconfig")}
    assert record.context_name == "gke_proj_us-central1_web"
    assert record.provider == "gcp"


def test_gcp_without_location_finds_written_context(tmp_path):
    runner = WritingRunner(tmp_path / "kubeconfig", "gke_proj_europe-west1-b_web")
    record = connect(GcpCluster("web"), GCP, runner=runner)
    assert record.context_name == "gke_proj_europe-west1-b_web"


def test_gcp_requires_project(tmp_path):
    with pytest.raises(CredentialError):
        connect(GcpCluster("web"), Credential(id="x", provider=Provider.GCP, name="x"))


def test_azure_connect(tmp_path):
    runner = WritingRunner(tmp_path / "kubeconfig", "aks-rg-a-aks1")
    record = connect(AzureCluster("aks1", "rg-a", "westeurope"), AZURE, runner=runner)
    argv, _ = runner.calls[0]
    assert argv[argv.index("--resource-group") + 1] == "rg-a"
    assert argv[argv.index("--subscription") + 1] == "abc-1"
    assert argv[argv.index("--file") + 1] == str(tmp_path / "kubeconfig")
    assert "--overwrite-existing" in argv
    assert record.context_name == "aks-rg-a-aks1"
    assert record.provider == "azure"


def test_azure_requires_resource_group():
    with pytest.raises(CredentialError):
        connect(AzureCluster("aks1"), AZURE)


def test_provider_failure_carries_stderr(tmp_path):
    runner = WritingRunner(tmp_path / "kubeconfig", "x", code=1, stderr="ResourceNotFoundException: No cluster found")
    with pytest.raises(ConnectionError) as excinfo:
        connect(AwsCluster("prod", "us-east-1"), AWS, runner=runner)
    err = excinfo.value
    assert err.provider == "aws"
    assert err.cluster == "prod"
    assert "No cluster found" in err.stderr


def test_mismatched_credential_rejected():
    with pytest.raises(CredentialError):
        connect(AwsCluster("prod", "us-east-1"), GCP)


def test_writer_lock_serializes_writers(tmp_path):
    path = str(tmp_path / "kubeconfig")
    active = []
    overlaps = []

    def writer():
        with kubeconfig_writer_lock(path):
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            threading.Event().wait(0.01)
            active.pop()

    threads = [threading.Thread(target=writer) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert overlaps == []


def test_azure_resource_group_with_parentheses_gives_a_usable_context(tmp_path):
    runner = WritingRunner(tmp_path / "kubeconfig", "aks-rg(prod)-aks1")
    record = connect(AzureCluster("aks1", "rg(prod)", "westeurope"), AZURE, runner=runner)
    assert record.context_name == "aks-rg(prod)-aks1"
    assert validate(record.context_name, Field.CONTEXT_NAME) == "aks-rg(prod)-aks1"


def test_azure_requires_subscription(tmp_path):
    runner = WritingRunner(tmp_path / "kubeconfig", "unused")
    no_subscription = Credential(id="x", provider=Provider.AZURE, name="Azure")
    with pytest.raises(CredentialError, match="subscription"):
        connect(AzureCluster("aks1", "rg-a"), no_subscription, runner=runner)
    assert runner.calls == []


def test_gcp_without_location_prefers_the_context_just_written(tmp_path):
    path = tmp_path / "kubeconfig"

    def runner(argv, env, timeout_seconds):
        write_kubeconfig(
            path,
            [("gke_proj_europe-west1-b_web", None), ("gke_proj_us-central1_web", None)],
            current="gke_proj_us-central1_web",
        )
        return CliResult(0, "", "", list(argv))

    record = connect(GcpCluster("web"), GCP, runner=runner)
    assert record.context_name == "gke_proj_us-central1_web"
