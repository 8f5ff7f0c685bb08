"""PKCS#12 bundle encoding for issued leaf certificates."""

import logging

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from localca.ca.keys import KeyPair
from localca.domain.errors import PKCS12ExportError

logger = logging.getLogger(__name__)


def export_pkcs12(
    key_pair: KeyPair,
    certificate: x509.Certificate,
    chain: list[x509.Certificate],
    password: str | None = None,
    friendly_name: str | None = None,
) -> bytes:
    """Encode a key, its certificate and the CA chain as a PKCS#12 bundle.

    Args:
        key_pair: Private key matching certificate.
        certificate: The leaf certificate.
        chain: Issuer certificates to include, intermediate first.
        password: Optional bundle password; no encryption when empty.
        friendly_name: Optional bag name shown by importing applications.

    Raises:
        PKCS12ExportError: If encoding fails.
    """
    encryption: serialization.KeySerializationEncryption
    if password:
        encryption = serialization.BestAvailableEncryption(password.encode("utf-8"))
    else:
        encryption = serialization.NoEncryption()

    try:
        return pkcs12.serialize_key_and_certificates(
            name=friendly_name.encode("utf-8") if friendly_name else None,
            key=key_pair.private_key,
            cert=certificate,
            cas=chain or None,
            encryption_algorithm=encryption,
        )
    except Exception as e:
        logger.error("pkcs12_export_failed", extra={"error": str(e)})
        raise PKCS12ExportError(f"Failed to encode PKCS#12: {e}") from e
