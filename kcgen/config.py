import os

from kcgen.config_types import EndpointConfig, TokenConfig


def _default_admin_kubeconfig():
    # KUBECONFIG may hold a list of files, the first one is the admin config
    kubeconfig_env = os.getenv("KUBECONFIG", "")
    if kubeconfig_env:
        return kubeconfig_env.split(os.pathsep)[0]
    return os.path.join(os.path.expanduser("~"), ".kube", "config")


ADMIN_KUBECONFIG: str = _default_admin_kubeconfig()
ADMIN_CONTEXT: str | None = os.getenv("KCGEN_ADMIN_CONTEXT") or None
OUTPUT_DIR: str = os.getenv("KCGEN_OUTPUT_DIR", os.path.join(os.path.expanduser("~"), ".kube"))

# Names used inside the generated kubeconfig
CLUSTER_NAME: str = os.getenv("KCGEN_CLUSTER_NAME", "kubernetes")
CONTEXT_NAME: str = os.getenv("KCGEN_CONTEXT_NAME", "kubernetes")

# Well-known config map published by the cluster with its root CA
ROOT_CA_CONFIGMAP_NAME = "kube-root-ca.crt"
ROOT_CA_CONFIGMAP_NAMESPACE: str = os.getenv("KCGEN_ROOT_CA_NAMESPACE", "kube-system")
ROOT_CA_CONFIGMAP_KEY = "ca.crt"

REQUEST_TIMEOUT_SECONDS = (
    None
    if os.getenv("KCGEN_REQUEST_TIMEOUT_SECONDS", "") == ""
    else float(os.getenv("KCGEN_REQUEST_TIMEOUT_SECONDS"))
)
REACHABILITY_TIMEOUT_SECONDS = float(os.getenv("KCGEN_REACHABILITY_TIMEOUT_SECONDS", 5))

RBAC_API_GROUP = "rbac.authorization.k8s.io"
MANAGED_BY_LABEL_KEY = "app.kubernetes.io/managed-by"
MANAGED_BY_LABEL_VALUE = "kcgen"

TOKEN: TokenConfig = TokenConfig.dataconf_from_env()
ENDPOINT: EndpointConfig = EndpointConfig.dataconf_from_env()

VERBOSE = os.environ.get("VERBOSE", "false").lower() == "true"
DEBUG = os.environ.get("DEBUG", "false").lower() == "true"
