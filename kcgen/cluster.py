import logging
import socket
from typing import Optional, Tuple
from urllib.parse import urlsplit

import yaml
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.config.config_exception import ConfigException

from kcgen import config
from kcgen.errors import ClusterConnectionError


class ClusterConnection:
    """
    Handle on the cluster a run provisions into. Holds the typed APIs used by
    the reconciler and the assembler, the admin kubeconfig they were built
    from and the request timeout shared by every call of a run.
    """

    def __init__(
        self,
        core,
        rbac,
        admin_kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
        request_timeout: Optional[float] = None,
        api_client=None,
    ):
        self.core = core
        self.rbac = rbac
        self.admin_kubeconfig = admin_kubeconfig
        self.context = context
        self.request_timeout = request_timeout
        self._api_client = api_client

    @classmethod
    def from_kubeconfig(
        cls,
        path: str = config.ADMIN_KUBECONFIG,
        context: Optional[str] = None,
        request_timeout: Optional[float] = config.REQUEST_TIMEOUT_SECONDS,
    ) -> "ClusterConnection":
        """Connect with the admin credentials from a kubeconfig file."""
        try:
            api_client = k8s_config.new_client_from_config(config_file=path, context=context)
        except (ConfigException, OSError) as err:
            raise ClusterConnectionError(f"Error loading kubeconfig file {path}: {err}") from err
        logging.debug(f"Loaded admin kubeconfig {path} with context {context or '<current>'}")
        return cls(
            core=k8s_client.CoreV1Api(api_client),
            rbac=k8s_client.RbacAuthorizationV1Api(api_client),
            admin_kubeconfig=path,
            context=context,
            request_timeout=request_timeout,
            api_client=api_client,
        )

    @property
    def request_options(self):
        """Keyword arguments passed along with every API call."""
        if self.request_timeout is None:
            return {}
        return {"_request_timeout": self.request_timeout}

    def admin_cluster(self) -> Tuple[str, str]:
        """
        Find the context name and the API server of the admin kubeconfig. The
        explicitly selected context wins over the current context of the file.
        """
        if self.admin_kubeconfig is None:
            raise ClusterConnectionError("No admin kubeconfig is known for this connection.")
        try:
            with open(self.admin_kubeconfig, "r") as f:
                kubeconfig = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as err:
            raise ClusterConnectionError(
                f"Failed to load kubeconfig {self.admin_kubeconfig}: {err}"
            ) from err

        context_name = self.context or kubeconfig.get("current-context")
        if not context_name:
            raise ClusterConnectionError(f"No current context is set in {self.admin_kubeconfig}")
        contexts = {
            item["name"]: item.get("context") or {} for item in kubeconfig.get("contexts") or []
        }
        if context_name not in contexts:
            raise ClusterConnectionError(
                f"Context {context_name} not found in {self.admin_kubeconfig}"
            )
        cluster_name = contexts[context_name].get("cluster")
        clusters = {
            item["name"]: item.get("cluster") or {} for item in kubeconfig.get("clusters") or []
        }
        if cluster_name not in clusters or not clusters[cluster_name].get("server"):
            raise ClusterConnectionError(
                f"Cluster {cluster_name} not found in {self.admin_kubeconfig}"
            )
        return context_name, clusters[cluster_name]["server"]

    def close(self):
        if self._api_client is not None:
            self._api_client.close()
            self._api_client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def server_address(server: str) -> Tuple[str, int]:
    """Split an API server URL into the host and port to dial."""
    url = urlsplit(server if "://" in server else f"https://{server}")
    if url.hostname is None:
        raise ClusterConnectionError(f"Cannot parse the API server address {server}")
    try:
        port = url.port
    except ValueError as err:
        raise ClusterConnectionError(f"Cannot parse the API server address {server}: {err}") from err
    if port is None:
        port = 80 if url.scheme == "http" else 443
    return url.hostname, port


def check_reachable(server: str, timeout: float = config.REACHABILITY_TIMEOUT_SECONDS):
    """Make sure a TCP connection to the API server can be opened."""
    host, port = server_address(server)
    try:
        with socket.create_connection((host, port), timeout=timeout):
            pass
    except OSError as err:
        raise ClusterConnectionError(
            f"Kubernetes appears to be offline! Failed to connect to {host}:{port}: {err}"
        ) from err
    logging.info(f"The API server at {host}:{port} is reachable")
