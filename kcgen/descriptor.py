import base64
import binascii
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from kcgen.errors import DescriptorError


class PrincipalKind(Enum):
    """The kind of subject a descriptor provisions."""

    User = "User"
    ServiceAccount = "ServiceAccount"

    @classmethod
    def list(cls):
        return list(map(lambda c: c.value, cls))

    @classmethod
    def from_string(cls, kind: Optional[str]) -> Optional["PrincipalKind"]:
        return None if kind is None else cls(kind)


# Keys understood in a descriptor file, anything else is ignored
KNOWN_KEYS = {
    "kind",
    "name",
    "username",
    "saname",
    "existing",
    "namespaces",
    "roles",
    "clusterroles",
    "clientcert",
    "clientkey",
}


@dataclass(frozen=True)
class UserCredentials:
    """Client certificate and private key of a user principal, PEM encoded."""

    client_certificate: bytes
    client_key: bytes


@dataclass(frozen=True)
class PrincipalDescriptor:
    """Everything needed to provision one principal on a cluster."""

    identity: str
    kind: PrincipalKind
    namespaces: List[str] = field(default_factory=list)
    roles: List[str] = field(default_factory=list)
    cluster_roles: List[str] = field(default_factory=list)
    existing: bool = False
    credential_seed: Optional[UserCredentials] = None

    def __post_init__(self):
        if not self.identity:
            raise DescriptorError("The principal name must not be empty.")
        if self.kind is PrincipalKind.ServiceAccount and len(self.namespaces) == 0:
            raise DescriptorError(
                f"Service account {self.identity} needs at least one namespace."
            )

    @property
    def home_namespace(self) -> Optional[str]:
        """The namespace a service account lives in, also the default namespace of the context."""
        return self.namespaces[0] if len(self.namespaces) > 0 else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrincipalDescriptor":
        """
        Build a descriptor from the parsed descriptor file. Both the user layout
        (`username`, `clientcert`, `clientkey`) and the service account layout
        (`saname`) are accepted, as is an explicit `kind` together with `name`.
        """
        if not isinstance(data, dict):
            raise DescriptorError("The descriptor has to be a YAML mapping.")

        for key in data.keys() - KNOWN_KEYS:
            logging.debug(f"Ignoring unknown descriptor key {key}")

        kind, identity = _resolve_kind_and_identity(data)
        credential_seed = None
        if kind is PrincipalKind.User:
            credential_seed = _read_credentials(data)
        elif data.get("clientcert") or data.get("clientkey"):
            logging.warning(
                f"Ignoring client certificate material for service account {identity}"
            )

        return cls(
            identity=identity,
            kind=kind,
            namespaces=_read_names(data, "namespaces"),
            roles=_read_names(data, "roles"),
            cluster_roles=_read_names(data, "clusterroles"),
            existing=_read_flag(data, "existing"),
            credential_seed=credential_seed,
        )


def _resolve_kind_and_identity(data):
    if "kind" in data:
        try:
            kind = PrincipalKind.from_string(data["kind"])
        except ValueError:
            raise DescriptorError(
                f"Unknown principal kind {data['kind']}, expected one of {PrincipalKind.list()}."
            )
        identity = data.get("name") or data.get(
            "username" if kind is PrincipalKind.User else "saname"
        )
    elif "username" in data and "saname" in data:
        raise DescriptorError("A descriptor can either set username or saname, not both.")
    elif "username" in data:
        kind, identity = PrincipalKind.User, data["username"]
    elif "saname" in data:
        kind, identity = PrincipalKind.ServiceAccount, data["saname"]
    else:
        raise DescriptorError("The descriptor has to set one of username, saname or kind.")

    if not isinstance(identity, str) or identity.strip() == "":
        raise DescriptorError("The principal name must be a non-empty string.")
    return kind, identity.strip()


def _read_names(data, key):
    names = data.get(key) or []
    if not isinstance(names, list) or not all(isinstance(name, str) for name in names):
        raise DescriptorError(f"The descriptor field {key} has to be a list of names.")
    return [name.strip() for name in names]


def _read_flag(data, key):
    value = data.get(key)
    if value is None:
        return False
    if type(value) is str:
        value = value.lower() == "true"
    if type(value) is not bool:
        raise DescriptorError(f"The descriptor field {key} has to be true or false.")
    return value


def _read_credentials(data):
    cert = data.get("clientcert")
    key = data.get("clientkey")
    if not cert and not key:
        return None
    if not cert or not key:
        raise DescriptorError("Both clientcert and clientkey have to be provided.")
    return UserCredentials(
        client_certificate=_decode_pem(cert, "clientcert"),
        client_key=_decode_pem(key, "clientkey"),
    )


def _decode_pem(value, key):
    """Accept PEM text as is, anything else has to be base64 encoded PEM."""
    if not isinstance(value, str):
        raise DescriptorError(f"The descriptor field {key} has to be a string.")
    value = value.strip()
    if value.startswith("-----BEGIN"):
        return (value + "\n").encode()
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise DescriptorError(f"The descriptor field {key} is neither PEM nor base64 encoded.")


def load_descriptor(path) -> PrincipalDescriptor:
    """Read a principal descriptor from a YAML file."""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (FileNotFoundError, IsADirectoryError, PermissionError) as err:
        raise DescriptorError(f"Could not access file {path} for reading: {err}") from err
    except yaml.YAMLError as err:
        raise DescriptorError(f"Could not parse yaml in {path} - please validate syntax: {err}") from err
    return PrincipalDescriptor.from_dict(data)
