"""Certificate service for issuance, output files and PKCS#12 export."""

import logging
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from opentelemetry import trace

from localca.ca.certificate_generator import (
    CertificateGenerator,
    IssuedCertificate,
    classify_inputs,
    detect_certificate_class,
)
from localca.ca.crypto import certificate_pem, load_certificate_pem
from localca.ca.hierarchy import CAHierarchyBuilder
from localca.ca.keys import KeyPair
from localca.ca.pkcs12 import export_pkcs12
from localca.domain.errors import CAMaterialError, CSRMalformedError
from localca.metrics import ca_metrics
from localca.repository.policy_repository import PolicyRepository
from localca.repository.serial import SerialAllocator
from localca.repository.store import CAStore, write_private, write_public

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_FILENAME_REPLACEMENTS = (
    ("*", "wildcard"),
    (":", "-"),
    ("/", "-"),
    ("\\", "-"),
    ("@", "-at-"),
)


def sanitize_filename(value: str) -> str:
    for old, new in _FILENAME_REPLACEMENTS:
        value = value.replace(old, new)
    return value


def output_stem(inputs: list[str]) -> str:
    """Sanitized first input, suffixed +N when N further inputs follow."""
    if not inputs:
        raise ValueError("at least one input is required to derive output paths")
    stem = sanitize_filename(inputs[0])
    if len(inputs) > 1:
        stem = f"{stem}+{len(inputs) - 1}"
    return stem


def derive_output_paths(
    inputs: list[str],
    cert_file: str | Path | None = None,
    key_file: str | Path | None = None,
    output_dir: str | Path = ".",
) -> tuple[Path, Path]:
    """Resolve certificate and key paths; explicit paths win independently."""
    stem = output_stem(inputs)
    cert_path = Path(cert_file) if cert_file else Path(output_dir) / f"{stem}.pem"
    key_path = Path(key_file) if key_file else Path(output_dir) / f"{stem}-key.pem"
    return cert_path, key_path


def default_pkcs12_path(cert_path: Path) -> Path:
    return Path(cert_path).with_suffix(".p12")


@dataclass
class IssueResult:
    """Files written for one issuance."""

    issued: IssuedCertificate
    cert_path: Path
    key_path: Path | None = None
    p12_path: Path | None = None


class CertificateService:
    """Issues leaf certificates against one CA directory and writes them out."""

    def __init__(self, store: CAStore) -> None:
        self.store = store
        self.policy_repo = PolicyRepository(store)
        self.hierarchy = CAHierarchyBuilder(store, self.policy_repo.load())
        self._generator: CertificateGenerator | None = None

    @property
    def generator(self) -> CertificateGenerator:
        """Get certificate generator (lazy initialization)."""
        if self._generator is None:
            self._generator = CertificateGenerator(
                self.hierarchy.load_intermediate(),
                SerialAllocator(self.store),
                self.hierarchy.policy,
            )
        return self._generator

    def issue(
        self,
        inputs: list[str],
        client: bool = False,
        use_ecdsa: bool = False,
        cert_file: str | Path | None = None,
        key_file: str | Path | None = None,
        output_dir: str | Path = ".",
        pkcs12: bool = False,
        p12_file: str | Path | None = None,
        p12_password: str | None = None,
    ) -> IssueResult:
        """Issue a leaf certificate for inputs and write cert, key and optional PKCS#12.

        Raises:
            InvalidInputError: If an input is empty or cannot be encoded.
            CANotInstalledError, CAMaterialError: If the intermediate CA cannot be loaded.
            KeyGenerationError, SigningError, OutputWriteError, PKCS12ExportError.
        """
        with tracer.start_as_current_span("CertificateService.issue") as span:
            certificate_class = detect_certificate_class(inputs, client)
            span.set_attribute("certificate_class", certificate_class.value)

            # Fail on a bad input list before loading the CA or touching the serial counter
            cert_path, key_path = derive_output_paths(inputs, cert_file, key_file, output_dir)
            classify_inputs(inputs)

            issued = self.generator.generate(inputs, certificate_class, use_ecdsa)

            write_public(cert_path, certificate_pem(issued.certificate))
            write_private(key_path, issued.key_pair.private_pem())
            result = IssueResult(issued=issued, cert_path=cert_path, key_path=key_path)

            if pkcs12:
                result.p12_path = self._write_pkcs12(
                    issued.key_pair,
                    issued.certificate,
                    Path(p12_file) if p12_file else default_pkcs12_path(cert_path),
                    p12_password,
                )

            logger.info(
                "certificate_issued",
                extra={
                    "serial": issued.serial_number,
                    "certificate_class": certificate_class.value,
                    "cert_path": str(cert_path),
                    "key_path": str(key_path),
                },
            )
            return result

    def issue_from_csr(
        self,
        csr_path: str | Path,
        cert_file: str | Path | None = None,
        output_dir: str | Path = ".",
    ) -> IssueResult:
        """Sign a CSR file and write the certificate.

        The default output is the CSR file's stem with a .pem suffix.

        Raises:
            CSRMalformedError: If the CSR file is unreadable or not a CSR.
            CSRSignatureError: If the CSR signature is invalid.
        """
        csr_path = Path(csr_path)
        try:
            csr_pem = csr_path.read_bytes()
        except OSError as e:
            raise CSRMalformedError(f"Failed to read CSR file {csr_path}: {e}") from e

        # Verify before loading CA material or consuming a serial
        CertificateGenerator.verify_csr(csr_pem)

        cert_path = Path(cert_file) if cert_file else Path(output_dir) / f"{csr_path.stem}.pem"
        issued = self.generator.generate_from_csr(csr_pem)
        write_public(cert_path, certificate_pem(issued.certificate))

        logger.info(
            "certificate_issued",
            extra={
                "serial": issued.serial_number,
                "certificate_class": issued.certificate_class.value,
                "cert_path": str(cert_path),
            },
        )
        return IssueResult(issued=issued, cert_path=cert_path)

    def export_pkcs12(
        self,
        cert_path: str | Path,
        key_path: str | Path,
        p12_path: str | Path | None = None,
        password: str | None = None,
    ) -> Path:
        """Bundle an existing certificate and key with the intermediate CA certificate."""
        try:
            certificate = load_certificate_pem(Path(cert_path).read_bytes())
            key_pair = KeyPair.from_pem(Path(key_path).read_bytes())
        except (OSError, ValueError, TypeError) as e:
            raise CAMaterialError(f"Failed to read certificate or key: {e}") from e

        target = Path(p12_path) if p12_path else default_pkcs12_path(Path(cert_path))
        return self._write_pkcs12(key_pair, certificate, target, password)

    def _write_pkcs12(
        self,
        key_pair: KeyPair,
        certificate: x509.Certificate,
        target: Path,
        password: str | None,
    ) -> Path:
        intermediate = self.hierarchy.load_intermediate()
        data = export_pkcs12(
            key_pair,
            certificate,
            [intermediate.certificate],
            password=password,
            friendly_name=target.stem,
        )
        write_private(target, data)
        ca_metrics.record_pkcs12_exported(bool(password))
        logger.info("pkcs12_exported", extra={"p12_path": str(target)})
        return target
