"""CA hierarchy construction and loading.

Builds a self-signed root CA (path length 1) and an intermediate CA signed
by the root (path length 0), persists both to the CA directory, and loads
them back for signing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.x509.oid import NameOID
from opentelemetry import trace

from localca.ca.crypto import certificate_pem, load_certificate_pem, random_ca_serial
from localca.ca.keys import KeyPair
from localca.domain.errors import (
    CAAlreadyInstalledError,
    CAMaterialError,
    CANotInstalledError,
)
from localca.domain.policy import IssuancePolicy
from localca.metrics import ca_metrics
from localca.repository.serial import SerialAllocator
from localca.repository.store import (
    INTERMEDIATE_CERT,
    INTERMEDIATE_KEY,
    ROOT_CERT,
    ROOT_KEY,
    CAStore,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ROOT_COMMON_NAME = "localca Root CA"
INTERMEDIATE_COMMON_NAME = "localca Intermediate CA"
ORGANIZATION_NAME = "localca"

ROOT_PATH_LENGTH = 1
INTERMEDIATE_PATH_LENGTH = 0

# Backdating tolerates clock skew between the CA host and relying parties
CLOCK_SKEW_TOLERANCE = timedelta(days=1)


@dataclass
class CAKeyPair:
    """Holds a CA key pair and its certificate."""

    key: KeyPair
    certificate: x509.Certificate

    @property
    def certificate_pem(self) -> str:
        """Get CA certificate as PEM string."""
        return certificate_pem(self.certificate).decode("utf-8")

    @property
    def subject(self) -> x509.Name:
        return self.certificate.subject


@dataclass
class CAHierarchy:
    """Root and intermediate CA material produced by install."""

    root: CAKeyPair
    intermediate: CAKeyPair


def ca_key_usage() -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=False,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=True,
        crl_sign=True,
        encipher_only=False,
        decipher_only=False,
    )


def crl_distribution_points(url: str) -> x509.CRLDistributionPoints:
    return x509.CRLDistributionPoints(
        [
            x509.DistributionPoint(
                full_name=[x509.UniformResourceIdentifier(url)],
                relative_name=None,
                reasons=None,
                crl_issuer=None,
            )
        ]
    )


def _ca_name(common_name: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION_NAME),
        ]
    )


class CAHierarchyBuilder:
    """Installs and loads the two-tier CA hierarchy of a CA directory."""

    def __init__(self, store: CAStore, policy: IssuancePolicy) -> None:
        self.store = store
        self.policy = policy

    def install(self, force: bool = False) -> CAHierarchy:
        """Generate, sign and persist the root and intermediate CAs.

        Installation is not transactional: files written before a failure stay
        in place and the directory must be treated as not installed.

        Args:
            force: Overwrite existing CA material instead of refusing.

        Returns:
            The generated CAHierarchy.

        Raises:
            CAAlreadyInstalledError: If CA material exists and force is False.
            KeyGenerationError, SigningError, OutputWriteError: On failure.
        """
        with tracer.start_as_current_span("CAHierarchyBuilder.install") as span:
            span.set_attribute("ca_dir", str(self.store.directory))
            span.set_attribute("force", force)

            if self.store.has_any_material() and not force:
                raise CAAlreadyInstalledError(
                    f"CA material already exists in {self.store.directory}; use force to overwrite"
                )
            if self.store.has_any_material():
                logger.warning(
                    "ca_overwrite", extra={"ca_dir": str(self.store.directory)}
                )

            self.store.ensure_directory()
            now = datetime.now(timezone.utc)

            logger.info(
                "Generating root CA",
                extra={
                    "key_type": self.policy.default_key_type.value,
                    "key_size": self.policy.default_key_size,
                },
            )
            root = self._build_root(now)
            self.store.write_key_and_cert(
                "rootCA", root.key.private_pem(), certificate_pem(root.certificate)
            )

            logger.info("Generating intermediate CA")
            intermediate = self._build_intermediate(root, now)
            self.store.write_key_and_cert(
                "intermediateCA",
                intermediate.key.private_pem(),
                certificate_pem(intermediate.certificate),
            )

            SerialAllocator(self.store).reset()

            span.set_attribute("algorithm", root.key.name)
            span.set_attribute(
                "root_expires", root.certificate.not_valid_after_utc.isoformat()
            )
            ca_metrics.record_ca_installed(root.key.name)
            logger.info(
                "ca_installed",
                extra={
                    "ca_dir": str(self.store.directory),
                    "algorithm": root.key.name,
                    "root_expires": root.certificate.not_valid_after_utc.isoformat(),
                    "intermediate_expires": intermediate.certificate.not_valid_after_utc.isoformat(),
                },
            )
            return CAHierarchy(root=root, intermediate=intermediate)

    def _generate_key(self) -> KeyPair:
        return KeyPair.generate(self.policy.default_key_type, self.policy.default_key_size)

    def _build_root(self, now: datetime) -> CAKeyPair:
        key = self._generate_key()
        subject = issuer = _ca_name(ROOT_COMMON_NAME)
        ski = x509.SubjectKeyIdentifier.from_public_key(key.public_key)

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(key.public_key)
            .serial_number(random_ca_serial())
            .not_valid_before(now - CLOCK_SKEW_TOLERANCE)
            .not_valid_after(now + timedelta(days=self.policy.root_ca_validity_days))
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=ROOT_PATH_LENGTH),
                critical=True,
            )
            .add_extension(ca_key_usage(), critical=True)
            .add_extension(ski, critical=False)
        )

        # Self-signed: the root key signs its own template
        return CAKeyPair(key=key, certificate=key.sign(builder))

    def _build_intermediate(self, root: CAKeyPair, now: datetime) -> CAKeyPair:
        key = self._generate_key()
        not_after = min(
            now + timedelta(days=self.policy.intermediate_ca_validity_days),
            root.certificate.not_valid_after_utc,
        )

        builder = (
            x509.CertificateBuilder()
            .subject_name(_ca_name(INTERMEDIATE_COMMON_NAME))
            .issuer_name(root.subject)
            .public_key(key.public_key)
            .serial_number(random_ca_serial())
            .not_valid_before(now - CLOCK_SKEW_TOLERANCE)
            .not_valid_after(not_after)
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=INTERMEDIATE_PATH_LENGTH),
                critical=True,
            )
            .add_extension(ca_key_usage(), critical=True)
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(key.public_key),
                critical=False,
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(root.key.public_key),
                critical=False,
            )
        )
        if self.policy.crl_url:
            builder = builder.add_extension(
                crl_distribution_points(self.policy.crl_url), critical=False
            )

        return CAKeyPair(key=key, certificate=root.key.sign(builder))

    def load_intermediate(self) -> CAKeyPair:
        """Load the intermediate CA used to sign leaves and CRLs.

        Raises:
            CANotInstalledError: If the CA directory has not been installed.
            CAMaterialError: If the key or certificate cannot be parsed.
        """
        return self._load(INTERMEDIATE_KEY, INTERMEDIATE_CERT)

    def load_root(self) -> CAKeyPair:
        return self._load(ROOT_KEY, ROOT_CERT)

    def _load(self, key_file: str, cert_file: str) -> CAKeyPair:
        if not self.store.is_installed():
            raise CANotInstalledError(
                f"CA not found in {self.store.directory}; run install first"
            )

        key_path = self.store.path(key_file)
        cert_path = self.store.path(cert_file)
        try:
            key = KeyPair.from_pem(key_path.read_bytes())
            certificate = load_certificate_pem(cert_path.read_bytes())
        except Exception as e:
            logger.error(
                "ca_key_load_failed",
                extra={"key_path": str(key_path), "cert_path": str(cert_path), "error": str(e)},
            )
            raise CAMaterialError(f"Failed to load CA from {key_path.name}/{cert_path.name}: {e}") from e

        if key.public_key.public_numbers() != certificate.public_key().public_numbers():
            raise CAMaterialError(f"{key_path.name} does not match {cert_path.name}")

        logger.debug(
            "ca_key_loaded",
            extra={
                "algorithm": key.name,
                "ca_cert_expires": certificate.not_valid_after_utc.isoformat(),
            },
        )
        return CAKeyPair(key=key, certificate=certificate)
