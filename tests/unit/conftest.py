from datetime import datetime, timedelta, timezone

import pytest
import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from kubernetes import client as k8s_client

from kcgen.cluster import ClusterConnection
from kcgen.descriptor import PrincipalDescriptor, PrincipalKind, UserCredentials
from tests.unit.fake_k8s import (
    ADMIN_SERVER,
    CLUSTER_INFO_SERVER,
    FakeCluster,
    FakeCoreV1Api,
    FakeRbacV1Api,
)


@pytest.fixture
def fake_cluster():
    cluster = FakeCluster()
    cluster.add("Namespace", "kube-system")
    cluster.add("Namespace", "kube-public")
    cluster_info = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [
            {
                "name": "",
                "cluster": {"certificate-authority-data": "Y2E=", "server": CLUSTER_INFO_SERVER},
            }
        ],
    }
    cluster.add(
        "ConfigMap",
        "cluster-info",
        "kube-public",
        k8s_client.V1ConfigMap(
            metadata=k8s_client.V1ObjectMeta(name="cluster-info", namespace="kube-public"),
            data={"kubeconfig": yaml.safe_dump(cluster_info)},
        ),
    )
    return cluster


@pytest.fixture
def admin_kubeconfig(tmp_path):
    kubeconfig = {
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": "admin@test",
        "clusters": [
            {"name": "other", "cluster": {"server": "https://other.example:6443"}},
            {"name": "test", "cluster": {"server": ADMIN_SERVER}},
        ],
        "contexts": [
            {"name": "admin@other", "context": {"cluster": "other", "user": "admin"}},
            {"name": "admin@test", "context": {"cluster": "test", "user": "admin"}},
        ],
        "users": [{"name": "admin", "user": {"token": "admin-token"}}],
    }
    path = tmp_path / "admin-config"
    path.write_text(yaml.safe_dump(kubeconfig))
    yield path


@pytest.fixture
def connection(fake_cluster, admin_kubeconfig):
    yield ClusterConnection(
        core=FakeCoreV1Api(fake_cluster),
        rbac=FakeRbacV1Api(fake_cluster),
        admin_kubeconfig=str(admin_kubeconfig),
    )


@pytest.fixture
def make_credentials():
    def _make_credentials(common_name="bob", organization="developers", valid_days=30, other_key=False):
        key = ec.generate_private_key(ec.SECP256R1())
        subject = x509.Name(
            [
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            ]
        )
        now = datetime.now(timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=7))
            .not_valid_after(now + timedelta(days=valid_days))
            .sign(key, hashes.SHA256())
        )
        if other_key:
            key = ec.generate_private_key(ec.SECP256R1())
        return UserCredentials(
            client_certificate=cert.public_bytes(serialization.Encoding.PEM),
            client_key=key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            ),
        )

    yield _make_credentials


@pytest.fixture
def user_descriptor(make_credentials):
    def _user_descriptor(**kwargs):
        values = {
            "identity": "bob",
            "kind": PrincipalKind.User,
            "namespaces": ["ns1"],
            "roles": ["editor"],
            "cluster_roles": [],
            **kwargs,
        }
        if "credential_seed" not in kwargs:
            values["credential_seed"] = make_credentials(common_name=values["identity"])
        return PrincipalDescriptor(**values)

    yield _user_descriptor


@pytest.fixture
def sa_descriptor():
    def _sa_descriptor(**kwargs):
        values = {
            "identity": "ci-bot",
            "kind": PrincipalKind.ServiceAccount,
            "namespaces": ["build"],
            "roles": ["deployer"],
            "cluster_roles": ["view"],
            **kwargs,
        }
        return PrincipalDescriptor(**values)

    yield _sa_descriptor
