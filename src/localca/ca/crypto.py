"""Cryptographic utilities for certificate operations.

Provides PEM encoding helpers, CA serial generation and thumbprint computation.
"""

import hashlib
import logging
import secrets

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from localca.domain.errors import CSRMalformedError

logger = logging.getLogger(__name__)

CA_SERIAL_BITS = 128


def random_ca_serial() -> int:
    """Draw a positive serial number from the 128-bit CA serial space."""
    return secrets.randbelow((1 << CA_SERIAL_BITS) - 1) + 1


def certificate_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def crl_pem(crl: x509.CertificateRevocationList) -> bytes:
    """Encode a CRL as an "X509 CRL" PEM block."""
    return crl.public_bytes(serialization.Encoding.PEM)


def load_certificate_pem(data: bytes) -> x509.Certificate:
    return x509.load_pem_x509_certificate(data)


def load_csr_pem(data: bytes) -> x509.CertificateSigningRequest:
    """Parse a "CERTIFICATE REQUEST" PEM block.

    Raises:
        CSRMalformedError: If the data is not a parseable CSR.
    """
    try:
        return x509.load_pem_x509_csr(data)
    except Exception as e:
        raise CSRMalformedError(f"Failed to parse CSR: {e}") from e


def common_name(name: x509.Name) -> str | None:
    attrs = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return None
    value = attrs[0].value
    return value.decode("utf-8") if isinstance(value, bytes) else value


def compute_thumbprint(cert: x509.Certificate) -> str:
    """Compute the lowercase hexadecimal SHA-256 thumbprint of a certificate."""
    der_bytes = cert.public_bytes(serialization.Encoding.DER)
    return hashlib.sha256(der_bytes).hexdigest().lower()
