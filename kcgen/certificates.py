import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from kcgen.descriptor import UserCredentials


@dataclass
class CertificateSummary:
    common_name: Optional[str]
    organizations: List[str]
    not_valid_after: datetime
    key_matches: Optional[bool]

    @property
    def expired(self):
        return self.not_valid_after <= datetime.now(timezone.utc)


def _public_key_bytes(public_key):
    return public_key.public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def inspect_client_certificate(
    credentials: UserCredentials, identity: str
) -> Optional[CertificateSummary]:
    """
    Look at the client certificate a user brings along. The API server maps
    the common name to the user name and the organizations to groups, so a
    mismatch with the descriptor means the bindings will not apply. Problems
    are only reported, the material is used as given.
    """
    try:
        cert = x509.load_pem_x509_certificate(credentials.client_certificate)
    except ValueError as err:
        logging.warning(f"The client certificate of {identity} is not a PEM certificate: {err}")
        return None

    common_names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    common_name = common_names[0].value if len(common_names) > 0 else None
    organizations = [
        attribute.value for attribute in cert.subject.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)
    ]

    try:
        private_key = serialization.load_pem_private_key(credentials.client_key, password=None)
    except (ValueError, TypeError) as err:
        logging.warning(f"The client key of {identity} cannot be loaded: {err}")
        key_matches = None
    else:
        key_matches = _public_key_bytes(private_key.public_key()) == _public_key_bytes(cert.public_key())

    summary = CertificateSummary(
        common_name=common_name,
        organizations=organizations,
        not_valid_after=cert.not_valid_after_utc,
        key_matches=key_matches,
    )

    if common_name != identity:
        logging.warning(
            f"The client certificate is issued to {common_name}, "
            f"the bindings are created for {identity}"
        )
    if summary.expired:
        logging.warning(f"The client certificate of {identity} expired on {summary.not_valid_after}")
    else:
        logging.info(f"The client certificate of {identity} is valid until {summary.not_valid_after}")
    if key_matches is False:
        logging.warning(f"The client key of {identity} does not belong to its certificate")
    return summary
