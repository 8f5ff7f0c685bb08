"""Key pair variant over RSA and elliptic-curve private keys.

Callers never switch on the key type: signing hash selection and PEM
marshalling are exposed uniformly by KeyPair.
"""

import logging
from dataclasses import dataclass
from typing import TypeVar

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificatePublicKeyTypes,
)

from localca.domain.errors import KeyGenerationError, SigningError
from localca.domain.policy import ECDSA_KEY_SIZES, RSA_KEY_SIZES
from localca.domain.states import KeyAlgorithm

logger = logging.getLogger(__name__)

RSA_PUBLIC_EXPONENT = 65537

CURVES: dict[int, ec.EllipticCurve] = {
    256: ec.SECP256R1(),
    384: ec.SECP384R1(),
    521: ec.SECP521R1(),
}

# Signature hash per EC curve size; RSA always uses SHA-256
_EC_HASHES: dict[int, type[hashes.HashAlgorithm]] = {
    256: hashes.SHA256,
    384: hashes.SHA384,
    521: hashes.SHA512,
}

Signable = TypeVar(
    "Signable",
    x509.CertificateBuilder,
    x509.CertificateRevocationListBuilder,
    x509.CertificateSigningRequestBuilder,
)


@dataclass(frozen=True)
class KeyPair:
    """An RSA or EC private key tagged with its algorithm."""

    algorithm: KeyAlgorithm
    private_key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey

    @classmethod
    def generate(cls, algorithm: KeyAlgorithm, size: int) -> "KeyPair":
        """Generate a key pair.

        Args:
            algorithm: RSA or ECDSA.
            size: RSA modulus bits (2048/3072/4096) or curve size (256/384/521).

        Raises:
            KeyGenerationError: If the parameters are unsupported or generation fails.
        """
        try:
            if algorithm == KeyAlgorithm.ECDSA:
                if size not in ECDSA_KEY_SIZES:
                    raise ValueError(f"unsupported ECDSA curve size {size}")
                return cls(algorithm, ec.generate_private_key(CURVES[size]))
            if size not in RSA_KEY_SIZES:
                raise ValueError(f"unsupported RSA key size {size}")
            return cls(
                algorithm,
                rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=size),
            )
        except Exception as e:
            logger.error(
                "key_generation_failed",
                extra={"algorithm": str(algorithm), "size": size, "error": str(e)},
            )
            raise KeyGenerationError(f"Failed to generate {algorithm} key: {e}") from e

    @classmethod
    def from_private_key(cls, key: object) -> "KeyPair":
        if isinstance(key, rsa.RSAPrivateKey):
            return cls(KeyAlgorithm.RSA, key)
        if isinstance(key, ec.EllipticCurvePrivateKey):
            return cls(KeyAlgorithm.ECDSA, key)
        raise TypeError(f"unsupported private key type: {type(key).__name__}")

    @classmethod
    def from_pem(cls, data: bytes) -> "KeyPair":
        """Load a PKCS#1, SEC1 or PKCS#8 PEM private key."""
        return cls.from_private_key(serialization.load_pem_private_key(data, password=None))

    @property
    def public_key(self) -> CertificatePublicKeyTypes:
        return self.private_key.public_key()

    @property
    def size(self) -> int:
        if isinstance(self.private_key, rsa.RSAPrivateKey):
            return self.private_key.key_size
        return self.private_key.curve.key_size

    @property
    def name(self) -> str:
        """Human-readable algorithm name, e.g. RSA-2048 or ECDSA-secp256r1."""
        if isinstance(self.private_key, rsa.RSAPrivateKey):
            return f"RSA-{self.private_key.key_size}"
        return f"ECDSA-{self.private_key.curve.name}"

    def signing_hash(self) -> hashes.HashAlgorithm:
        if isinstance(self.private_key, ec.EllipticCurvePrivateKey):
            return _EC_HASHES.get(self.private_key.curve.key_size, hashes.SHA256)()
        return hashes.SHA256()

    def sign(self, builder: Signable) -> object:
        """Sign a certificate, CRL or CSR builder with this key.

        Raises:
            SigningError: If the builder is incomplete or signing fails.
        """
        issuer_key: CertificateIssuerPrivateKeyTypes = self.private_key
        try:
            return builder.sign(issuer_key, self.signing_hash())
        except Exception as e:
            logger.error("signing_failed", extra={"algorithm": self.name, "error": str(e)})
            raise SigningError(f"Failed to sign with {self.name} key: {e}") from e

    def private_pem(self) -> bytes:
        """Marshal as "RSA PRIVATE KEY" (PKCS#1) or "EC PRIVATE KEY" (SEC1)."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
