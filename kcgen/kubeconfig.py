import base64
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from kcgen import config
from kcgen.errors import OutputError


def _b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


@dataclass
class Cluster:
    server: str
    certificate_authority_data: bytes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "server": self.server,
            "certificate-authority-data": _b64(self.certificate_authority_data),
        }


@dataclass
class AuthInfo:
    """Credentials of a user entry, either a client certificate pair or a bearer token."""

    client_certificate_data: Optional[bytes] = None
    client_key_data: Optional[bytes] = None
    token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        user = {}
        if self.client_certificate_data is not None:
            user["client-certificate-data"] = _b64(self.client_certificate_data)
        if self.client_key_data is not None:
            user["client-key-data"] = _b64(self.client_key_data)
        if self.token is not None:
            user["token"] = self.token
        return user


@dataclass
class Context:
    cluster: str
    user: str
    namespace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        context = {"cluster": self.cluster, "user": self.user}
        if self.namespace:
            context["namespace"] = self.namespace
        return context


@dataclass
class KubeConfig:
    """A kubeconfig with a single cluster, user and context which is also the current one."""

    cluster_name: str
    cluster: Cluster
    user_name: str
    auth_info: AuthInfo
    context_name: str
    context: Context

    @classmethod
    def single(
        cls,
        server: str,
        certificate_authority_data: bytes,
        user_name: str,
        auth_info: AuthInfo,
        namespace: Optional[str] = None,
        cluster_name: Optional[str] = None,
        context_name: Optional[str] = None,
    ) -> "KubeConfig":
        cluster_name = cluster_name or config.CLUSTER_NAME
        context_name = context_name or config.CONTEXT_NAME
        return cls(
            cluster_name=cluster_name,
            cluster=Cluster(server=server, certificate_authority_data=certificate_authority_data),
            user_name=user_name,
            auth_info=auth_info,
            context_name=context_name,
            context=Context(cluster=cluster_name, user=user_name, namespace=namespace),
        )

    @property
    def current_context(self) -> str:
        return self.context_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Config",
            "preferences": {},
            "clusters": [{"name": self.cluster_name, "cluster": self.cluster.to_dict()}],
            "users": [{"name": self.user_name, "user": self.auth_info.to_dict()}],
            "contexts": [{"name": self.context_name, "context": self.context.to_dict()}],
            "current-context": self.current_context,
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False)


def default_output_path(identity: str) -> Path:
    return Path(config.OUTPUT_DIR) / f"{identity}-kubeconfig.yaml"


def write_kubeconfig(kubeconfig: KubeConfig, path) -> Path:
    """Write the kubeconfig as YAML, readable by the current user only."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(kubeconfig.to_yaml())
        # O_CREAT does not change the mode of a file that already exists
        os.chmod(path, 0o600)
    except OSError as err:
        raise OutputError(f"Failed to write kubeconfig to file {path}: {err}") from err
    logging.info(f"Successfully wrote kubeconfig to {path}")
    return path
