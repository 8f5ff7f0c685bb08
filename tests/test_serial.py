"""Unit tests for the serial counter."""

import stat
from unittest.mock import patch

import pytest

from localca.domain.errors import SerialStoreError, SerialStoreMalformedError
from localca.repository.serial import SerialAllocator


class TestSerialAllocator:
    """Tests for SerialAllocator."""

    def test_absent_file_starts_at_one(self, store):
        """Test the first allocation in a new directory."""
        allocator = SerialAllocator(store)

        assert allocator.allocate() == 1
        assert store.serial_path.read_text().strip() == "2"

    def test_sequence_is_strictly_increasing(self, store):
        """Test N allocations yield 1..N."""
        allocator = SerialAllocator(store)

        assert [allocator.allocate() for _ in range(10)] == list(range(1, 11))
        assert allocator.peek() == 11

    def test_independent_allocators_share_counter(self, store):
        """Test state lives in the file, not in the allocator."""
        SerialAllocator(store).allocate()

        assert SerialAllocator(store).allocate() == 2

    def test_existing_value_is_honoured(self, store):
        """Test a pre-set counter value."""
        store.ensure_directory()
        store.serial_path.write_text("41\n")

        assert SerialAllocator(store).allocate() == 41
        assert SerialAllocator(store).peek() == 42

    def test_reset(self, store):
        """Test reset writes the given value."""
        allocator = SerialAllocator(store)
        allocator.allocate()
        allocator.allocate()

        allocator.reset()

        assert allocator.allocate() == 1

    def test_reset_negative_raises(self, store):
        """Test counters cannot go negative."""
        with pytest.raises(ValueError):
            SerialAllocator(store).reset(-1)

    @pytest.mark.parametrize("content", ["", "abc", "-3", "1.5", "12 13"])
    def test_malformed_counter_raises(self, store, content):
        """Test non-integer content is rejected."""
        store.ensure_directory()
        store.serial_path.write_text(content)

        with pytest.raises(SerialStoreMalformedError):
            SerialAllocator(store).allocate()

    def test_malformed_is_serial_store_error(self):
        """Test the error hierarchy."""
        assert issubclass(SerialStoreMalformedError, SerialStoreError)

    def test_counter_file_is_world_readable(self, store):
        """Test serial.txt permissions."""
        SerialAllocator(store).allocate()

        assert stat.S_IMODE(store.serial_path.stat().st_mode) == 0o644

    def test_failed_write_keeps_previous_value(self, store):
        """Test an interrupted update leaves the counter and no temp files behind."""
        allocator = SerialAllocator(store)
        allocator.allocate()

        with patch("localca.repository.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(SerialStoreError, match="disk full"):
                allocator.allocate()

        assert store.serial_path.read_text() == "2"
        assert list(store.directory.glob("*.tmp")) == []
        assert allocator.allocate() == 2
