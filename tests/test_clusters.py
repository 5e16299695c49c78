import pytest

from cloudkube.config import reset_config
from cloudkube.errors import ConnectionError, CredentialError, ValidationError
from cloudkube.utils.clusters import list_clusters
from cloudkube.utils.models import AwsCluster, AzureCluster, Credential, GcpCluster, Provider

from conftest import FakeRunner, failed, has

AWS = Credential(id="dev", provider=Provider.AWS, name="AWS: dev", profile="dev")


def test_aws_union_of_regions_when_one_fails():
    runner = (
        FakeRunner()
        .when(has("us-east-1"), {"clusters": ["alpha"]})
        .when(has("eu-west-1"), failed("Could not connect to the endpoint URL"))
        .when(has("ap-southeast-2"), {"clusters": ["beta", "gamma"]})
    )

    clusters = list_clusters(AWS, ["us-east-1", "eu-west-1", "ap-southeast-2"], runner=runner)

    assert clusters == [
        AwsCluster("alpha", "us-east-1"),
        AwsCluster("beta", "ap-southeast-2"),
        AwsCluster("gamma", "ap-southeast-2"),
    ]
    assert all(env == {"AWS_PROFILE": "dev"} for _, env in runner.calls)


def test_aws_same_name_in_two_regions_stays_distinct():
    runner = FakeRunner().when(has("eks"), {"clusters": ["prod"]})
    clusters = list_clusters(AWS, ["us-east-1", "us-west-2"], runner=runner)
    assert clusters == [AwsCluster("prod", "us-east-1"), AwsCluster("prod", "us-west-2")]


def test_aws_uses_credential_regions_then_defaults(monkeypatch):
    runner = FakeRunner().when(has("eks"), {"clusters": []})
    list_clusters(Credential(id="dev", provider=Provider.AWS, name="d", profile="dev", regions=("ca-central-1",)), runner=runner)
    assert [argv[argv.index("--region") + 1] for argv, _ in runner.calls] == ["ca-central-1"]

    monkeypatch.setenv("CLOUDKUBE_AWS_REGIONS", "us-east-2,eu-north-1")
    reset_config()
    runner = FakeRunner().when(has("eks"), {"clusters": []})
    list_clusters(AWS, runner=runner)
    assert sorted(argv[argv.index("--region") + 1] for argv, _ in runner.calls) == ["eu-north-1", "us-east-2"]


def test_every_scope_unauthorized_raises():
    runner = FakeRunner().when(has("eks"), failed("An error occurred (UnrecognizedClientException)"))
    with pytest.raises(ConnectionError) as excinfo:
        list_clusters(AWS, ["us-east-1", "us-west-2"], runner=runner)
    assert excinfo.value.unauthorized


def test_every_scope_failing_for_other_reasons_returns_empty():
    runner = FakeRunner().when(has("eks"), failed("endpoint unreachable"))
    assert list_clusters(AWS, ["us-east-1", "us-west-2"], runner=runner) == []


def test_invalid_region_rejected_before_any_process(runner):
    with pytest.raises(ValidationError):
        list_clusters(AWS, ["us-east-1", "us-east-1;id"], runner=runner)
    assert runner.calls == []


def test_gcp_requires_project(runner):
    with pytest.raises(CredentialError):
        list_clusters(Credential(id="x", provider=Provider.GCP, name="x"), runner=runner)
    assert runner.calls == []


def test_gcp_clusters_with_location_filter():
    runner = FakeRunner().when(
        has("container", "clusters", "list"),
        [
            {"name": "one", "location": "us-central1"},
            {"name": "two", "zone": "europe-west1-b"},
        ],
    )
    cred = Credential(id="proj", provider=Provider.GCP, name="g", project="proj")
    assert list_clusters(cred, runner=runner) == [
        GcpCluster("one", "proj", "us-central1"),
        GcpCluster("two", "proj", "europe-west1-b"),
    ]
    assert list_clusters(cred, ["europe-west1-b"], runner=runner) == [GcpCluster("two", "proj", "europe-west1-b")]


def test_azure_all_locations_is_a_single_call():
    runner = FakeRunner().when(
        has("aks", "list"),
        [{"name": "aks1", "resourceGroup": "rg-a", "location": "westeurope"}],
    )
    cred = Credential(id="abc-1", provider=Provider.AZURE, name="a", subscription="abc-1")
    assert list_clusters(cred, runner=runner) == [AzureCluster("aks1", "rg-a", "westeurope")]
    assert len(runner.calls) == 1
    assert "--query" not in runner.calls[0][0]


def test_azure_per_location_scan_uses_query_filter():
    runner = FakeRunner().when(has("aks", "list"), [])
    cred = Credential(id="abc-1", provider=Provider.AZURE, name="a", subscription="abc-1")
    list_clusters(cred, ["westeurope", "eastus"], runner=runner)
    queries = sorted(argv[argv.index("--query") + 1] for argv, _ in runner.calls)
    assert queries == ["[?location=='eastus']", "[?location=='westeurope']"]


def test_azure_requires_subscription(runner):
    with pytest.raises(CredentialError):
        list_clusters(Credential(id="x", provider=Provider.AZURE, name="x"), runner=runner)


def test_malformed_scope_output_is_skipped_like_a_failure():
    runner = (
        FakeRunner()
        .when(has("us-east-1"), ["not", "a", "dict"])
        .when(has("us-west-2"), {"clusters": ["prod"]})
        .when(has("eu-west-1"), {"clusters": "prod"})
    )
    clusters = list_clusters(AWS, ["us-east-1", "us-west-2", "eu-west-1"], runner=runner)
    assert clusters == [AwsCluster("prod", "us-west-2")]


def test_azure_entries_that_are_not_objects_are_ignored():
    azure = Credential(id="abc-1", provider=Provider.AZURE, name="Azure", subscription="abc-1")
    runner = FakeRunner().when(has("aks"), ["junk", {"name": "aks1", "resourceGroup": "rg", "location": "westeurope"}])
    assert list_clusters(azure, ["all"], runner=runner) == [AzureCluster("aks1", "rg", "westeurope")]
