"""CA service for installation, revocation and CRL publication."""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from cryptography import x509
from opentelemetry import trace

from localca.ca.crl import CRLBuilder
from localca.ca.crypto import common_name
from localca.ca.hierarchy import CAHierarchy, CAHierarchyBuilder
from localca.domain.models import RevocationEntry
from localca.domain.policy import IssuancePolicy
from localca.domain.states import RevocationReason
from localca.metrics import ca_metrics
from localca.repository.policy_repository import PolicyRepository
from localca.repository.revocation import RevocationLedger
from localca.repository.serial import SerialAllocator
from localca.repository.store import CAStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class CAStatus:
    """Summary of a CA directory."""

    ca_dir: Path
    installed: bool
    root_subject: str | None = None
    root_not_after: datetime | None = None
    intermediate_subject: str | None = None
    intermediate_not_after: datetime | None = None
    algorithm: str | None = None
    next_serial: int | None = None
    revoked_count: int = 0


class CAService:
    """Service for CA lifecycle operations on one CA directory."""

    def __init__(self, store: CAStore) -> None:
        self.store = store
        self.policy_repo = PolicyRepository(store)
        self.ledger = RevocationLedger(store)
        self.serials = SerialAllocator(store)

    def install(self, force: bool = False, policy: IssuancePolicy | None = None) -> CAHierarchy:
        """Create the root and intermediate CAs.

        An explicit policy is saved to config.yml. Otherwise config.yml is
        used when present and written with defaults when absent.

        Raises:
            CAAlreadyInstalledError: If CA material exists and force is False.
            ConfigurationError: If config.yml is invalid.
        """
        explicit = policy is not None
        if policy is None:
            policy = self.policy_repo.load()

        # A refused install leaves config.yml untouched
        if force or not self.store.has_any_material():
            if explicit or not self.policy_repo.exists():
                self.policy_repo.save(policy)
        return CAHierarchyBuilder(self.store, policy).install(force=force)

    def revoke(
        self,
        serial: int,
        reason: RevocationReason | int = RevocationReason.UNSPECIFIED,
    ) -> RevocationEntry:
        """Record a revocation; the next CRL will list it.

        Raises:
            AlreadyRevokedError: If serial is already revoked.
            LedgerMalformedError: If revoked.db does not parse.
            LedgerReadError: If revoked.db cannot be read.
        """
        with tracer.start_as_current_span("CAService.revoke") as span:
            span.set_attribute("serial", serial)
            entry = self.ledger.revoke(serial, reason)
            span.set_attribute("reason", entry.reason.name)
            ca_metrics.record_certificate_revoked(entry.reason.name.lower())
            return entry

    def generate_crl(self, output_path: str | Path | None = None) -> tuple[x509.CertificateRevocationList, Path]:
        """Sign a CRL from the ledger and write it (default: crl.pem in the CA directory).

        Raises:
            CANotInstalledError, CAMaterialError: If the intermediate CA cannot be loaded.
            LedgerMalformedError: If revoked.db does not parse.
            LedgerReadError: If revoked.db cannot be read.
        """
        target = Path(output_path) if output_path else self.store.crl_path
        hierarchy = CAHierarchyBuilder(self.store, self.policy_repo.load())
        crl = CRLBuilder(hierarchy.load_intermediate(), self.ledger).build(target)
        return crl, target

    def status(self) -> CAStatus:
        status = CAStatus(ca_dir=self.store.directory, installed=self.store.is_installed())
        if not status.installed:
            return status

        hierarchy = CAHierarchyBuilder(self.store, self.policy_repo.load())
        root = hierarchy.load_root()
        intermediate = hierarchy.load_intermediate()
        status.root_subject = common_name(root.subject)
        status.root_not_after = root.certificate.not_valid_after_utc
        status.intermediate_subject = common_name(intermediate.subject)
        status.intermediate_not_after = intermediate.certificate.not_valid_after_utc
        status.algorithm = root.key.name
        status.next_serial = self.serials.peek()
        status.revoked_count = len(self.ledger.load())
        return status
