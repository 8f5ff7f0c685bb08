"""Revocation ledger persisted as revoked.db.

Each line is one record ``serial,unix_seconds,reason``. Lines are decoded
through an explicit record schema; a line that does not match is an error
rather than being skipped or partially read.
"""

import logging
import re
from datetime import datetime, timezone

from filelock import FileLock
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from localca.domain.errors import AlreadyRevokedError, LedgerMalformedError, LedgerReadError
from localca.domain.models import RevocationEntry, utc_now
from localca.domain.states import RevocationReason
from localca.repository.store import CAStore, write_public

logger = logging.getLogger(__name__)

FIELD_DELIMITER = ","

_RECORD_RE = re.compile(r"^(\d+),(\d+),(\d+)$")


class LedgerRecord(BaseModel):
    """Schema for one persisted ledger line."""

    model_config = ConfigDict(frozen=True, strict=True)

    serial: int = Field(ge=0)
    revoked_at: int = Field(ge=0)
    reason: RevocationReason

    def to_entry(self) -> RevocationEntry:
        return RevocationEntry(
            serial=self.serial,
            revoked_at=datetime.fromtimestamp(self.revoked_at, tz=timezone.utc),
            reason=self.reason,
        )

    @classmethod
    def from_entry(cls, entry: RevocationEntry) -> "LedgerRecord":
        return cls(
            serial=entry.serial,
            revoked_at=int(entry.revoked_at.timestamp()),
            reason=RevocationReason(entry.reason),
        )


def decode_line(line: str, line_number: int) -> LedgerRecord:
    """Decode one ledger line.

    Raises:
        LedgerMalformedError: Naming the line if it does not match the schema.
    """
    match = _RECORD_RE.match(line)
    if not match:
        raise LedgerMalformedError(
            line_number, line, "expected three decimal fields serial,timestamp,reason"
        )
    serial, revoked_at, reason = (int(g) for g in match.groups())
    try:
        return LedgerRecord(serial=serial, revoked_at=revoked_at, reason=RevocationReason(reason))
    except (ValueError, ValidationError) as e:
        raise LedgerMalformedError(line_number, line, str(e)) from e


def encode_record(record: LedgerRecord) -> str:
    return FIELD_DELIMITER.join(
        (str(record.serial), str(record.revoked_at), str(int(record.reason)))
    )


class RevocationLedger:
    """Set of revoked serials with revocation time and reason."""

    def __init__(self, store: CAStore) -> None:
        self.store = store
        self._lock = FileLock(f"{store.ledger_path}.lock")

    def load(self) -> list[RevocationEntry]:
        """Return all ledger entries in file order; empty when no ledger exists.

        Raises:
            LedgerMalformedError: If any non-blank line does not parse.
            LedgerReadError: If the ledger file exists but cannot be read.
        """
        path = self.store.ledger_path
        if not path.exists():
            return []
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("ledger_read_failed", extra={"path": str(path), "error": str(e)})
            raise LedgerReadError(f"Failed to read revoked certificates from {path}: {e}") from e

        entries = []
        for number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line:
                continue
            entries.append(decode_line(line, number).to_entry())
        return entries

    def is_revoked(self, serial: int) -> bool:
        return any(entry.serial == serial for entry in self.load())

    def revoke(
        self,
        serial: int,
        reason: RevocationReason | int = RevocationReason.UNSPECIFIED,
    ) -> RevocationEntry:
        """Add serial to the ledger, stamped with the current time.

        Raises:
            ValueError: If serial is negative or reason is not a CRLReason code.
            AlreadyRevokedError: If serial is already in the ledger.
            LedgerMalformedError: If the existing ledger does not parse.
            OutputWriteError: If the ledger cannot be rewritten.
        """
        if serial < 0:
            raise ValueError("serial must be non-negative")
        reason = RevocationReason(reason)

        self.store.ensure_directory()
        with self._lock:
            entries = self.load()
            if any(entry.serial == serial for entry in entries):
                raise AlreadyRevokedError(serial)

            entry = RevocationEntry(
                serial=serial,
                revoked_at=utc_now().replace(microsecond=0),
                reason=reason,
            )
            entries.append(entry)
            self._rewrite(entries)

        logger.info(
            "certificate_revoked",
            extra={"serial": serial, "reason": reason.name, "ledger_size": len(entries)},
        )
        return entry

    def _rewrite(self, entries: list[RevocationEntry]) -> None:
        """Replace the ledger as a whole so readers never see a partial entry."""
        body = "".join(encode_record(LedgerRecord.from_entry(e)) + "\n" for e in entries)
        write_public(self.store.ledger_path, body.encode("utf-8"))
