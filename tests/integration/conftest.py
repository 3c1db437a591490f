from collections.abc import Iterator
from uuid import uuid4

import pytest
from kubernetes import config
from kubernetes.client import CoreV1Api, RbacAuthorizationV1Api, VersionApi
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from kcgen.cluster import ClusterConnection


def pytest_collection_modifyitems(items):
    for item in items:
        item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def k8s_available() -> bool:
    try:
        config.load_kube_config()
        VersionApi().get_code(_request_timeout=5)
    except (ConfigException, OSError, HTTPError, ApiException):
        return False
    return True


@pytest.fixture
def k8s_core(k8s_available) -> CoreV1Api:
    if not k8s_available:
        pytest.skip("No kubernetes cluster is reachable through the local kubeconfig")
    return CoreV1Api()


@pytest.fixture
def k8s_rbac(k8s_available) -> RbacAuthorizationV1Api:
    if not k8s_available:
        pytest.skip("No kubernetes cluster is reachable through the local kubeconfig")
    return RbacAuthorizationV1Api()


@pytest.fixture
def connection(k8s_core) -> Iterator[ClusterConnection]:
    with ClusterConnection.from_kubeconfig(config.KUBE_CONFIG_DEFAULT_LOCATION, request_timeout=30) as conn:
        yield conn


@pytest.fixture
def unique_name() -> str:
    return "kcgen-" + str(uuid4())[:8]


@pytest.fixture
def cleanup(k8s_core: CoreV1Api, k8s_rbac: RbacAuthorizationV1Api):
    """Collect what a test provisions and remove it afterwards."""
    namespaces = []
    cluster_roles = []

    def _cleanup(new_namespaces=(), new_cluster_roles=()):
        namespaces.extend(new_namespaces)
        cluster_roles.extend(new_cluster_roles)

    yield _cleanup
    for cluster_role in cluster_roles:
        for delete, name in [
            (k8s_rbac.delete_cluster_role_binding, f"{cluster_role}-clusterrolebinding"),
            (k8s_rbac.delete_cluster_role, cluster_role),
        ]:
            try:
                delete(name=name)
            except ApiException as err:
                if err.status != 404:
                    raise
    for namespace in namespaces:
        try:
            k8s_core.delete_namespace(name=namespace, propagation_policy="Foreground")
        except ApiException as err:
            if err.status != 404:
                raise
