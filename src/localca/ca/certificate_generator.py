"""X.509 leaf certificate generation.

Builds TLS server, client-auth and S/MIME certificates from identifier
inputs, or certifies the public key of an externally supplied CSR. Every
leaf is signed by the intermediate CA.
"""

import ipaddress
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from opentelemetry import trace

from localca.ca.crypto import common_name, compute_thumbprint, load_csr_pem
from localca.ca.hierarchy import CAKeyPair, crl_distribution_points
from localca.ca.keys import KeyPair
from localca.domain.errors import CSRMalformedError, CSRSignatureError, InvalidInputError
from localca.domain.models import SubjectInputs
from localca.domain.policy import IssuancePolicy
from localca.domain.states import CertificateClass, KeyAlgorithm, SubjectInputType
from localca.metrics import ca_metrics
from localca.repository.serial import SerialAllocator

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

LEAF_ECDSA_CURVE_SIZE = 256
FALLBACK_RSA_KEY_SIZE = 2048

# ub-common-name, RFC 5280 appendix A
MAX_COMMON_NAME_LENGTH = 64


@dataclass(frozen=True)
class UsageProfile:
    digital_signature: bool
    key_encipherment: bool
    extended_key_usage: tuple[x509.ObjectIdentifier, ...]

    def key_usage(self) -> x509.KeyUsage:
        return x509.KeyUsage(
            digital_signature=self.digital_signature,
            content_commitment=False,
            key_encipherment=self.key_encipherment,
            data_encipherment=False,
            key_agreement=False,
            key_cert_sign=False,
            crl_sign=False,
            encipher_only=False,
            decipher_only=False,
        )


# Fixed mapping; not configurable
USAGE_PROFILES: dict[CertificateClass, UsageProfile] = {
    CertificateClass.TLS_SERVER: UsageProfile(
        digital_signature=True,
        key_encipherment=True,
        extended_key_usage=(ExtendedKeyUsageOID.SERVER_AUTH,),
    ),
    CertificateClass.CLIENT_AUTH: UsageProfile(
        digital_signature=True,
        key_encipherment=False,
        extended_key_usage=(ExtendedKeyUsageOID.CLIENT_AUTH,),
    ),
    CertificateClass.SMIME: UsageProfile(
        digital_signature=True,
        key_encipherment=True,
        extended_key_usage=(ExtendedKeyUsageOID.EMAIL_PROTECTION,),
    ),
    CertificateClass.FROM_CSR: UsageProfile(
        digital_signature=True,
        key_encipherment=True,
        extended_key_usage=(ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH),
    ),
}


@dataclass
class IssuedCertificate:
    """Result of leaf issuance. key_pair is None for CSR-based issuance."""

    certificate: x509.Certificate
    key_pair: KeyPair | None
    certificate_class: CertificateClass
    thumbprint: str

    @property
    def serial_number(self) -> int:
        return self.certificate.serial_number

    @property
    def not_before(self) -> datetime:
        return self.certificate.not_valid_before_utc

    @property
    def not_after(self) -> datetime:
        return self.certificate.not_valid_after_utc


def classify_input(value: str) -> SubjectInputType:
    """IP if it parses as IPv4/IPv6, else email if it contains '@', else DNS."""
    try:
        ipaddress.ip_address(value)
        return SubjectInputType.IP
    except ValueError:
        pass
    if "@" in value:
        return SubjectInputType.EMAIL
    return SubjectInputType.DNS


def to_a_label(domain: str) -> str:
    """Encode an internationalized domain name as ASCII A-labels."""
    if domain.isascii():
        return domain
    try:
        return domain.encode("idna").decode("ascii")
    except UnicodeError as e:
        raise InvalidInputError(f"invalid internationalized domain name {domain!r}: {e}") from e


def normalize_input(value: str, kind: SubjectInputType) -> str:
    """Return the ASCII form of an input as it is written into the certificate.

    Raises:
        InvalidInputError: If the input is empty or cannot be expressed in ASCII.
    """
    if not value.strip():
        raise InvalidInputError("empty domain, IP address or email address")
    if kind == SubjectInputType.DNS:
        return to_a_label(value)
    if kind == SubjectInputType.EMAIL:
        local, _, domain = value.rpartition("@")
        if not local or not domain:
            raise InvalidInputError(f"invalid email address {value!r}")
        if not local.isascii():
            raise InvalidInputError(
                f"email address {value!r} has a non-ASCII local part, which RFC 822 names cannot carry"
            )
        return f"{local}@{to_a_label(domain)}"
    return value


def classify_inputs(inputs: list[str]) -> SubjectInputs:
    """Partition inputs by type, normalized to their ASCII certificate form.

    Raises:
        InvalidInputError: If any input is empty or not encodable.
    """
    result = SubjectInputs(inputs=[])
    for raw in inputs:
        kind = classify_input(raw)
        value = normalize_input(raw, kind)
        result.inputs.append(value)
        result.types.append(kind)
        if kind == SubjectInputType.IP:
            result.ip_addresses.append(ipaddress.ip_address(value))
        elif kind == SubjectInputType.EMAIL:
            result.emails.append(value)
        else:
            result.dns_names.append(value)
    return result


def detect_certificate_class(inputs: list[str], client: bool = False) -> CertificateClass:
    """S/MIME when the first input is an email, else client auth if asked, else TLS."""
    if inputs and "@" in inputs[0]:
        return CertificateClass.SMIME
    if client:
        return CertificateClass.CLIENT_AUTH
    return CertificateClass.TLS_SERVER


def determine_common_name(subject: SubjectInputs, certificate_class: CertificateClass) -> str:
    if not subject.inputs:
        raise ValueError("at least one domain, IP address or email address is required")
    if certificate_class == CertificateClass.SMIME and subject.first_email:
        return subject.first_email
    for value, kind in zip(subject.inputs, subject.types):
        if kind != SubjectInputType.EMAIL:
            return value
    return subject.inputs[0]


def subject_name(common_name: str) -> x509.Name:
    """Subject carrying the CN, or an empty subject when the CN exceeds its upper bound.

    Names longer than 64 characters are still certified through the SAN.
    """
    if len(common_name) > MAX_COMMON_NAME_LENGTH:
        return x509.Name([])
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def subject_alternative_names(subject: SubjectInputs) -> x509.SubjectAlternativeName:
    names: list[x509.GeneralName] = [x509.DNSName(d) for d in subject.dns_names]
    names += [x509.IPAddress(ip) for ip in subject.ip_addresses]
    names += [x509.RFC822Name(e) for e in subject.emails]
    return x509.SubjectAlternativeName(names)


class CertificateGenerator:
    """Generates leaf certificates signed by the intermediate CA.

    Certificate attributes:
    - Basic Constraints: CA=false (critical)
    - Validity: now() to now() + default_validity_days
    - Serial: next value of the CA's sequential counter
    - Key/extended key usage: fixed per CertificateClass
    """

    def __init__(
        self,
        ca_key_pair: CAKeyPair,
        serials: SerialAllocator,
        policy: IssuancePolicy,
    ) -> None:
        """Initialize generator with the intermediate CA key pair.

        Args:
            ca_key_pair: The intermediate CA's key and certificate for signing.
            serials: Serial source for issued certificates.
            policy: Validity and key defaults.
        """
        self._ca = ca_key_pair
        self._serials = serials
        self._policy = policy

    def generate(
        self,
        inputs: list[str],
        certificate_class: CertificateClass,
        use_ecdsa: bool = False,
    ) -> IssuedCertificate:
        """Generate a key pair and a certificate for the given identifiers.

        Args:
            inputs: DNS names, IP addresses and/or email addresses.
            certificate_class: TLS server, client auth or S/MIME.
            use_ecdsa: Generate an ECDSA P-256 key instead of RSA.

        Returns:
            IssuedCertificate carrying the new key pair.

        Raises:
            ValueError: If inputs is empty or the class is FROM_CSR.
            InvalidInputError: If an input cannot be encoded into the certificate.
            KeyGenerationError: If key generation fails.
            SigningError: If signing fails.
        """
        if certificate_class == CertificateClass.FROM_CSR:
            raise ValueError("use generate_from_csr for CSR-based issuance")

        with tracer.start_as_current_span("CertificateGenerator.generate") as span:
            span.set_attribute("certificate_class", certificate_class.value)
            start_time = time.time()

            subject = classify_inputs(inputs)
            cn = determine_common_name(subject, certificate_class)
            span.set_attribute("common_name", cn)

            try:
                name = subject_name(cn)
                san = subject_alternative_names(subject)
            except ValueError as e:
                logger.error("subject_encoding_failed", extra={"common_name": cn, "error": str(e)})
                raise InvalidInputError(f"cannot encode {cn!r} into a certificate: {e}") from e

            key_pair = self._generate_leaf_key(use_ecdsa)
            span.set_attribute("algorithm", key_pair.name)

            builder = self._base_builder(key_pair.public_key, certificate_class)
            builder = builder.subject_name(name)
            if len(san):
                # RFC 5280 4.2.1.6: critical when the subject is empty
                builder = builder.add_extension(san, critical=len(name) == 0)

            issued = self._sign(builder, key_pair, certificate_class, start_time, span)
            logger.info(
                "certificate_generated",
                extra={
                    "common_name": cn,
                    "serial": issued.serial_number,
                    "certificate_class": certificate_class.value,
                    "dns_names": len(subject.dns_names),
                    "ip_addresses": len(subject.ip_addresses),
                    "emails": len(subject.emails),
                    "not_after": issued.not_after.isoformat(),
                },
            )
            return issued

    def generate_from_csr(self, csr_pem: bytes) -> IssuedCertificate:
        """Certify the public key of a CSR, copying its subject and SANs.

        The CSR self-signature is verified before any serial is allocated.

        Raises:
            CSRMalformedError: If the CSR cannot be parsed.
            CSRSignatureError: If the CSR signature does not verify.
            SigningError: If signing fails.
        """
        with tracer.start_as_current_span("CertificateGenerator.generate_from_csr") as span:
            start_time = time.time()
            csr = self.verify_csr(csr_pem)
            span.set_attribute("common_name", common_name(csr.subject) or "")

            builder = self._base_builder(csr.public_key(), CertificateClass.FROM_CSR)
            builder = builder.subject_name(csr.subject)
            try:
                san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
                builder = builder.add_extension(san.value, critical=san.critical)
            except x509.ExtensionNotFound:
                pass

            issued = self._sign(builder, None, CertificateClass.FROM_CSR, start_time, span)
            logger.info(
                "certificate_generated_from_csr",
                extra={
                    "subject": csr.subject.rfc4514_string(),
                    "serial": issued.serial_number,
                    "not_after": issued.not_after.isoformat(),
                },
            )
            return issued

    @staticmethod
    def verify_csr(csr_pem: bytes) -> x509.CertificateSigningRequest:
        """Parse a CSR and check its self-signature."""
        try:
            csr = load_csr_pem(csr_pem)
        except CSRMalformedError:
            ca_metrics.record_csr_rejected("malformed")
            raise
        if not csr.is_signature_valid:
            ca_metrics.record_csr_rejected("bad_signature")
            logger.error("csr_signature_invalid", extra={"subject": csr.subject.rfc4514_string()})
            raise CSRSignatureError("invalid CSR signature")
        return csr

    def _generate_leaf_key(self, use_ecdsa: bool) -> KeyPair:
        if use_ecdsa:
            return KeyPair.generate(KeyAlgorithm.ECDSA, LEAF_ECDSA_CURVE_SIZE)
        size = (
            self._policy.default_key_size
            if self._policy.default_key_type == KeyAlgorithm.RSA
            else FALLBACK_RSA_KEY_SIZE
        )
        return KeyPair.generate(KeyAlgorithm.RSA, size)

    def _base_builder(self, public_key, certificate_class: CertificateClass) -> x509.CertificateBuilder:
        profile = USAGE_PROFILES[certificate_class]
        now = datetime.now(timezone.utc)
        not_after = now + timedelta(days=self._policy.default_validity_days)

        builder = (
            x509.CertificateBuilder()
            .issuer_name(self._ca.subject)
            .public_key(public_key)
            .not_valid_before(now)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(profile.key_usage(), critical=True)
            .add_extension(x509.ExtendedKeyUsage(list(profile.extended_key_usage)), critical=False)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(self._ca.key.public_key),
                critical=False,
            )
        )
        if self._policy.crl_url:
            builder = builder.add_extension(
                crl_distribution_points(self._policy.crl_url), critical=False
            )
        return builder

    def _sign(
        self,
        builder: x509.CertificateBuilder,
        key_pair: KeyPair | None,
        certificate_class: CertificateClass,
        start_time: float,
        span,
    ) -> IssuedCertificate:
        # Allocate last so a failed key generation or CSR check does not consume a serial
        serial = self._serials.allocate()
        span.set_attribute("serial", serial)

        certificate = self._ca.key.sign(builder.serial_number(serial))

        generation_time = time.time() - start_time
        ca_metrics.record_certificate_issued(certificate_class.value, generation_time)

        return IssuedCertificate(
            certificate=certificate,
            key_pair=key_pair,
            certificate_class=certificate_class,
            thumbprint=compute_thumbprint(certificate),
        )
