"""Unit tests for the revocation ledger."""

import pytest

from localca.domain.errors import AlreadyRevokedError, LedgerMalformedError, LedgerReadError
from localca.domain.states import RevocationReason
from localca.repository.revocation import LedgerRecord, RevocationLedger, decode_line, encode_record
from localca.repository.store import CAStore


class TestLedgerRecord:
    """Tests for the ledger line schema."""

    def test_decode_line(self):
        """Test a well-formed line."""
        record = decode_line("12,1700000000,1", 1)

        assert record.serial == 12
        assert record.revoked_at == 1700000000
        assert record.reason == RevocationReason.KEY_COMPROMISE

    def test_encode_record(self):
        """Test the persisted line format."""
        record = LedgerRecord(serial=5, revoked_at=1700000000, reason=RevocationReason.SUPERSEDED)

        assert encode_record(record) == "5,1700000000,4"

    @pytest.mark.parametrize(
        "line",
        ["12,1700000000", "12;1700000000;0", "x,1700000000,0", "12,1700000000,0,9", "-1,1,0"],
    )
    def test_decode_malformed_line_raises(self, line):
        """Test lines that do not match the schema."""
        with pytest.raises(LedgerMalformedError, match="line 3"):
            decode_line(line, 3)

    def test_decode_unassigned_reason_raises(self):
        """Test reason code 7 is unassigned."""
        with pytest.raises(LedgerMalformedError):
            decode_line("1,1700000000,7", 1)


class TestRevocationLedger:
    """Tests for RevocationLedger."""

    def test_empty_ledger(self, store):
        """Test a directory with no revoked.db."""
        ledger = RevocationLedger(store)

        assert ledger.load() == []
        assert not ledger.is_revoked(1)

    def test_revoke_and_load(self, store):
        """Test a revocation is persisted with its reason."""
        ledger = RevocationLedger(store)

        entry = ledger.revoke(7, RevocationReason.KEY_COMPROMISE)

        assert entry.revoked_at.microsecond == 0
        loaded = RevocationLedger(store).load()
        assert loaded == [entry]
        assert ledger.is_revoked(7)
        assert store.ledger_path.read_text().startswith("7,")

    def test_double_revoke_raises(self, store):
        """Test a serial can be revoked only once."""
        ledger = RevocationLedger(store)
        ledger.revoke(3)

        with pytest.raises(AlreadyRevokedError, match="serial 3 is already revoked") as exc_info:
            ledger.revoke(3, RevocationReason.SUPERSEDED)

        assert exc_info.value.serial == 3
        assert len(ledger.load()) == 1

    def test_revocation_order_does_not_matter(self, tmp_path):
        """Test the revoked set is independent of revocation order."""
        first = RevocationLedger(CAStore(tmp_path / "a"))
        second = RevocationLedger(CAStore(tmp_path / "b"))
        for serial in (1, 2, 3):
            first.revoke(serial)
        for serial in (3, 1, 2):
            second.revoke(serial)

        assert {e.serial for e in first.load()} == {e.serial for e in second.load()} == {1, 2, 3}

    def test_negative_serial_raises(self, store):
        """Test serials must be non-negative."""
        with pytest.raises(ValueError):
            RevocationLedger(store).revoke(-1)

    def test_invalid_reason_raises(self, store):
        """Test reason 7 is refused."""
        with pytest.raises(ValueError):
            RevocationLedger(store).revoke(1, 7)

    def test_blank_lines_are_skipped(self, store):
        """Test trailing and interior blank lines."""
        store.ensure_directory()
        store.ledger_path.write_text("1,1700000000,0\n\n2,1700000001,1\n\n")

        assert [e.serial for e in RevocationLedger(store).load()] == [1, 2]

    def test_malformed_line_names_the_line(self, store):
        """Test a corrupt line is reported with its number."""
        store.ensure_directory()
        store.ledger_path.write_text("1,1700000000,0\ngarbage\n")

        with pytest.raises(LedgerMalformedError, match="line 2") as exc_info:
            RevocationLedger(store).load()

        assert exc_info.value.line == "garbage"

    def test_malformed_ledger_blocks_revoke(self, store):
        """Test revoking does not rewrite a corrupt ledger."""
        store.ensure_directory()
        store.ledger_path.write_text("garbage\n")

        with pytest.raises(LedgerMalformedError):
            RevocationLedger(store).revoke(1)

        assert store.ledger_path.read_text() == "garbage\n"

    def test_unreadable_ledger_raises_read_error(self, store):
        """Test an I/O failure is not reported as a malformed line."""
        store.ensure_directory()
        store.ledger_path.mkdir()

        with pytest.raises(LedgerReadError, match="Failed to read") as exc_info:
            RevocationLedger(store).load()

        assert not isinstance(exc_info.value, LedgerMalformedError)

    def test_undecodable_ledger_raises_read_error(self, store):
        store.ensure_directory()
        store.ledger_path.write_bytes(b"\xff\xfe1,1700000000,0\n")

        with pytest.raises(LedgerReadError):
            RevocationLedger(store).load()

    def test_revoke_leaves_no_temp_files(self, store):
        ledger = RevocationLedger(store)
        ledger.revoke(1)
        ledger.revoke(2)

        assert list(store.directory.glob("*.tmp")) == []
        assert [e.serial for e in ledger.load()] == [1, 2]
