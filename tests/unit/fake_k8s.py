import json
from datetime import datetime, timedelta, timezone

from kubernetes import client as k8s_client
from kubernetes.client.rest import ApiException

ADMIN_SERVER = "https://127.0.0.1:6443"
CLUSTER_INFO_SERVER = "https://10.0.0.1:6443"
ROOT_CA_PEM = "-----BEGIN CERTIFICATE-----\nZmFrZSByb290IGNh\n-----END CERTIFICATE-----\n"


def api_exception(status, reason, message):
    err = ApiException(status=status, reason=reason)
    err.body = json.dumps({"kind": "Status", "status": "Failure", "message": message, "code": status})
    return err


class FakeCluster:
    """
    In-memory stand-in for the API server. Objects are keyed by kind,
    namespace and name. Like a real cluster every new namespace gets the
    kube-root-ca.crt config map and namespaced objects cannot be created in
    namespaces that do not exist.
    """

    def __init__(self):
        self.objects = {}
        self.failures = {}
        self.calls = []
        self.request_kwargs = []

    def add(self, kind, name, namespace=None, obj=None):
        self.objects[(kind, namespace, name)] = obj if obj is not None else {"metadata": {"name": name}}
        if kind == "Namespace":
            self.objects[("ConfigMap", name, "kube-root-ca.crt")] = k8s_client.V1ConfigMap(
                metadata=k8s_client.V1ObjectMeta(name="kube-root-ca.crt", namespace=name),
                data={"ca.crt": ROOT_CA_PEM},
            )

    def get(self, kind, name, namespace=None):
        return self.objects.get((kind, namespace, name))

    def has(self, kind, name, namespace=None):
        return (kind, namespace, name) in self.objects

    def fail(self, verb, kind, name, status=403, reason="Forbidden"):
        """Make every future `verb` call on the object fail with the given status."""
        self.failures[(verb, kind, name)] = (status, reason)

    def calls_for(self, verb, kind=None):
        return [call for call in self.calls if call[0] == verb and (kind is None or call[1] == kind)]

    def _check_failure(self, verb, kind, name):
        if (verb, kind, name) in self.failures:
            status, reason = self.failures[(verb, kind, name)]
            raise api_exception(status, reason, f"{verb} of {kind} {name} is not allowed")

    def read(self, kind, name, namespace=None, **kwargs):
        self.calls.append(("read", kind, namespace, name))
        self.request_kwargs.append(kwargs)
        self._check_failure("read", kind, name)
        if not self.has(kind, name, namespace):
            raise api_exception(404, "Not Found", f'{kind.lower()}s "{name}" not found')
        return self.get(kind, name, namespace)

    def create(self, kind, body, namespace=None, obj=None, **kwargs):
        name = body["metadata"]["name"]
        self.calls.append(("create", kind, namespace, name))
        self.request_kwargs.append(kwargs)
        self._check_failure("create", kind, name)
        if namespace is not None and not self.has("Namespace", namespace):
            raise api_exception(404, "Not Found", f'namespaces "{namespace}" not found')
        if self.has(kind, name, namespace):
            raise api_exception(409, "Conflict", f'{kind.lower()}s "{name}" already exists')
        self.add(kind, name, namespace, obj if obj is not None else body)
        return self.get(kind, name, namespace)


class FakeCoreV1Api:
    def __init__(self, cluster: FakeCluster):
        self.cluster = cluster

    def read_namespace(self, name, **kwargs):
        return self.cluster.read("Namespace", name, **kwargs)

    def create_namespace(self, body, **kwargs):
        return self.cluster.create("Namespace", body, **kwargs)

    def read_namespaced_service_account(self, name, namespace, **kwargs):
        return self.cluster.read("ServiceAccount", name, namespace, **kwargs)

    def create_namespaced_service_account(self, namespace, body, **kwargs):
        service_account = k8s_client.V1ServiceAccount(
            metadata=k8s_client.V1ObjectMeta(
                name=body["metadata"]["name"],
                namespace=namespace,
                labels=body["metadata"].get("labels"),
            )
        )
        return self.cluster.create("ServiceAccount", body, namespace, obj=service_account, **kwargs)

    def read_namespaced_secret(self, name, namespace, **kwargs):
        return self.cluster.read("Secret", name, namespace, **kwargs)

    def read_namespaced_config_map(self, name, namespace, **kwargs):
        return self.cluster.read("ConfigMap", name, namespace, **kwargs)

    def create_namespaced_service_account_token(self, name, namespace, body, **kwargs):
        self.cluster.read("ServiceAccount", name, namespace, **kwargs)
        self.cluster._check_failure("create", "TokenRequest", name)
        expiration = datetime.now(timezone.utc) + timedelta(seconds=body.spec.expiration_seconds)
        return k8s_client.AuthenticationV1TokenRequest(
            spec=body.spec,
            status=k8s_client.V1TokenRequestStatus(
                token=f"issued-token-for-{name}",
                expiration_timestamp=expiration,
            ),
        )


class FakeRbacV1Api:
    def __init__(self, cluster: FakeCluster):
        self.cluster = cluster

    def read_namespaced_role(self, name, namespace, **kwargs):
        return self.cluster.read("Role", name, namespace, **kwargs)

    def create_namespaced_role(self, namespace, body, **kwargs):
        return self.cluster.create("Role", body, namespace, **kwargs)

    def read_namespaced_role_binding(self, name, namespace, **kwargs):
        return self.cluster.read("RoleBinding", name, namespace, **kwargs)

    def create_namespaced_role_binding(self, namespace, body, **kwargs):
        return self.cluster.create("RoleBinding", body, namespace, **kwargs)

    def read_cluster_role(self, name, **kwargs):
        return self.cluster.read("ClusterRole", name, **kwargs)

    def create_cluster_role(self, body, **kwargs):
        return self.cluster.create("ClusterRole", body, **kwargs)

    def read_cluster_role_binding(self, name, **kwargs):
        return self.cluster.read("ClusterRoleBinding", name, **kwargs)

    def create_cluster_role_binding(self, body, **kwargs):
        return self.cluster.create("ClusterRoleBinding", body, **kwargs)
