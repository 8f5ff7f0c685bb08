"""Certificate revocation list assembly."""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from opentelemetry import trace

from localca.ca.crypto import crl_pem
from localca.ca.hierarchy import CAKeyPair
from localca.domain.models import RevocationEntry
from localca.domain.states import RevocationReason
from localca.metrics import ca_metrics
from localca.repository.revocation import RevocationLedger
from localca.repository.store import write_public

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CRL_VALIDITY = timedelta(days=30)

_REASON_FLAGS: dict[RevocationReason, x509.ReasonFlags] = {
    RevocationReason.KEY_COMPROMISE: x509.ReasonFlags.key_compromise,
    RevocationReason.CA_COMPROMISE: x509.ReasonFlags.ca_compromise,
    RevocationReason.AFFILIATION_CHANGED: x509.ReasonFlags.affiliation_changed,
    RevocationReason.SUPERSEDED: x509.ReasonFlags.superseded,
    RevocationReason.CESSATION_OF_OPERATION: x509.ReasonFlags.cessation_of_operation,
    RevocationReason.CERTIFICATE_HOLD: x509.ReasonFlags.certificate_hold,
    RevocationReason.REMOVE_FROM_CRL: x509.ReasonFlags.remove_from_crl,
    RevocationReason.PRIVILEGE_WITHDRAWN: x509.ReasonFlags.privilege_withdrawn,
    RevocationReason.AA_COMPROMISE: x509.ReasonFlags.aa_compromise,
}


def revoked_certificate(entry: RevocationEntry) -> x509.RevokedCertificate:
    builder = (
        x509.RevokedCertificateBuilder()
        .serial_number(entry.serial)
        .revocation_date(entry.revoked_at)
    )
    # RFC 5280 omits the reasonCode entry extension for "unspecified"
    flag = _REASON_FLAGS.get(RevocationReason(entry.reason))
    if flag is not None:
        builder = builder.add_extension(x509.CRLReason(flag), critical=False)
    return builder.build()


class CRLBuilder:
    """Builds CRLs from the revocation ledger, signed by the intermediate CA."""

    def __init__(self, ca_key_pair: CAKeyPair, ledger: RevocationLedger) -> None:
        self._ca = ca_key_pair
        self._ledger = ledger

    def build(self, output_path: Path | None = None) -> x509.CertificateRevocationList:
        """Sign a CRL listing every ledger entry and optionally write it as PEM.

        thisUpdate is now, nextUpdate is now + 30 days and the CRL number is
        now in Unix seconds, so successive CRLs never decrease in number.

        Raises:
            LedgerMalformedError: If the ledger does not parse.
            LedgerReadError: If the ledger cannot be read.
            SigningError: If signing fails.
            OutputWriteError: If output_path cannot be written.
        """
        with tracer.start_as_current_span("CRLBuilder.build") as span:
            entries = self._ledger.load()
            span.set_attribute("entries", len(entries))

            now = datetime.now(timezone.utc).replace(microsecond=0)
            builder = (
                x509.CertificateRevocationListBuilder()
                .issuer_name(self._ca.subject)
                .last_update(now)
                .next_update(now + CRL_VALIDITY)
                .add_extension(x509.CRLNumber(int(now.timestamp())), critical=False)
                .add_extension(
                    x509.AuthorityKeyIdentifier.from_issuer_public_key(self._ca.key.public_key),
                    critical=False,
                )
            )
            for entry in entries:
                builder = builder.add_revoked_certificate(revoked_certificate(entry))

            crl = self._ca.key.sign(builder)

            if output_path is not None:
                write_public(Path(output_path), crl_pem(crl))

            ca_metrics.record_crl_generated(len(entries))
            logger.info(
                "crl_generated",
                extra={
                    "entries": len(entries),
                    "crl_number": int(now.timestamp()),
                    "next_update": (now + CRL_VALIDITY).isoformat(),
                    "output_path": str(output_path) if output_path else None,
                },
            )
            return crl
