from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client import ApiException
from urllib3.exceptions import MaxRetryError

from cloudkube.errors import CloudKubeError
from cloudkube.utils.clients import KubernetesClientSet
from cloudkube.utils.cluster import cluster_health, cluster_metrics, parse_cpu, parse_memory


def _clients():
    return KubernetesClientSet(
        api_client=client.ApiClient(),
        core=MagicMock(),
        apps=MagicMock(),
        batch=MagicMock(),
        networking=MagicMock(),
        version=MagicMock(),
    )


def _node(ready=True, capacity=None):
    return client.V1Node(
        metadata=client.V1ObjectMeta(name="n"),
        status=client.V1NodeStatus(
            conditions=[client.V1NodeCondition(type="Ready", status="True" if ready else "False")],
            capacity=capacity,
        ),
    )


def _pod(phase="Running"):
    return client.V1Pod(metadata=client.V1ObjectMeta(name="p"), status=client.V1PodStatus(phase=phase))


def _deployment(ready=1, replicas=1, desired=1):
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name="d"),
        spec=client.V1DeploymentSpec(
            replicas=desired,
            selector=client.V1LabelSelector(match_labels={"app": "d"}),
            template=client.V1PodTemplateSpec(),
        ),
        status=client.V1DeploymentStatus(ready_replicas=ready, replicas=replicas),
    )


def _cluster(nodes, pods, deployments):
    c = _clients()
    c.core.list_node.return_value = client.V1NodeList(items=nodes)
    c.core.list_pod_for_all_namespaces.return_value = client.V1PodList(items=pods)
    c.apps.list_deployment_for_all_namespaces.return_value = client.V1DeploymentList(items=deployments)
    return c


@pytest.mark.parametrize("value,expected", [("2", 2000.0), ("500m", 500.0), ("0.5", 500.0), ("250000000n", 250.0)])
def test_parse_cpu(value, expected):
    assert parse_cpu(value) == expected


@pytest.mark.parametrize(
    "value,expected",
    [("1Ki", 1024), ("16Gi", 16 * 1024 ** 3), ("1M", 1000 ** 2), ("512", 512)],
)
def test_parse_memory(value, expected):
    assert parse_memory(value) == expected


def test_healthy_cluster():
    c = _cluster([_node(), _node()], [_pod()] * 10, [_deployment()] * 3)
    result = cluster_health("ctx", clients=c)
    assert result["ok"] is True
    assert result["status"] == "healthy"
    assert result["details"] == {
        "nodes": {"ready": 2, "total": 2},
        "pods": {"running": 10, "total": 10},
        "deployments": {"ready": 3, "total": 3},
    }
    assert result["checkedAt"]


def test_empty_cluster_is_healthy():
    assert cluster_health("ctx", clients=_cluster([], [], []))["status"] == "healthy"


def test_one_not_ready_node_is_a_warning():
    c = _cluster([_node(), _node(), _node(ready=False)], [_pod()], [_deployment()])
    assert cluster_health("ctx", clients=c)["status"] == "warning"


def test_pending_pods_below_ninety_percent_is_a_warning():
    pods = [_pod()] * 8 + [_pod("Pending")] * 2
    assert cluster_health("ctx", clients=_cluster([_node()], pods, []))["status"] == "warning"


def test_half_broken_cluster_is_critical():
    deployments = [_deployment(), _deployment(ready=0), _deployment(ready=None, replicas=2, desired=2)]
    result = cluster_health("ctx", clients=_cluster([_node()], [_pod()], deployments))
    assert result["status"] == "critical"
    assert result["details"]["deployments"] == {"ready": 1, "total": 3}


def test_unreachable_cluster_is_reported_not_raised():
    c = _clients()
    c.core.list_node.side_effect = MaxRetryError(None, "https://api.example", "connection refused")
    result = cluster_health("ctx", clients=c)
    assert result["ok"] is False
    assert result["status"] == "critical"
    assert result["message"] == "Unable to connect to cluster"


def test_forbidden_health_check_is_reported():
    c = _clients()
    c.core.list_node.side_effect = ApiException(status=403, reason="Forbidden")
    assert cluster_health("ctx", clients=c)["ok"] is False


def test_metrics_sum_node_capacity():
    nodes = [
        _node(capacity={"cpu": "4", "memory": "16Gi", "pods": "110"}),
        _node(capacity={"cpu": "500m", "memory": "1024Mi", "pods": "10"}),
        _node(capacity=None),
    ]
    c = _cluster(nodes, [_pod(), _pod(), _pod("Succeeded")], [])
    metrics = cluster_metrics("ctx", clients=c)
    assert metrics["cpu"] == {"capacity": 4500.0, "unit": "millicores"}
    assert metrics["memory"] == {"capacity": 17 * 1024 ** 3, "unit": "bytes"}
    assert metrics["pods"] == {"running": 2, "capacity": 120}


def test_metrics_api_error_raises():
    c = _clients()
    c.core.list_node.side_effect = ApiException(status=401, reason="Unauthorized")
    with pytest.raises(CloudKubeError):
        cluster_metrics("ctx", clients=c)
