from dataclasses import dataclass, field
from enum import Enum
import dataconf
import json
from typing import List, Union


class TokenSource(Enum):
    """Where the bearer token of a service account comes from."""

    Auto = "auto"
    Secret = "secret"
    TokenRequest = "token-request"

    @classmethod
    def list(cls):
        return list(map(lambda c: c.value, cls))


class EndpointSource(Enum):
    """Where the API server endpoint of a service account kubeconfig comes from."""

    ClusterInfo = "cluster-info"
    AdminKubeconfig = "admin-kubeconfig"

    @classmethod
    def list(cls):
        return list(map(lambda c: c.value, cls))


@dataclass
class TokenConfig:
    """How service account tokens are obtained."""

    source: Union[str, TokenSource] = TokenSource.Auto.value
    expiration_seconds: Union[str, int] = 86400
    audiences: Union[str, List[str]] = field(default_factory=list)

    def __post_init__(self):
        if type(self.source) is str:
            if self.source not in TokenSource.list():
                raise ValueError(
                    f"Unknown token source {self.source}, expected one of {TokenSource.list()}."
                )
            self.source = TokenSource(self.source)
        if type(self.expiration_seconds) is str:
            self.expiration_seconds = int(self.expiration_seconds)
        if type(self.audiences) is str:
            self.audiences = json.loads(self.audiences)

    @classmethod
    def dataconf_from_env(cls, prefix="KCGEN_TOKEN_"):
        return dataconf.env(prefix, cls)


@dataclass
class EndpointConfig:
    """The cluster object that publishes the API server endpoint."""

    source: Union[str, EndpointSource] = EndpointSource.ClusterInfo.value
    configmap_namespace: str = "kube-public"
    configmap_name: str = "cluster-info"
    configmap_key: str = "kubeconfig"

    def __post_init__(self):
        if type(self.source) is str:
            if self.source not in EndpointSource.list():
                raise ValueError(
                    f"Unknown endpoint source {self.source}, expected one of {EndpointSource.list()}."
                )
            self.source = EndpointSource(self.source)

    @classmethod
    def dataconf_from_env(cls, prefix="KCGEN_ENDPOINT_"):
        return dataconf.env(prefix, cls)
