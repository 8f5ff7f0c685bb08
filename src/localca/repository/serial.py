"""Sequential serial number source for leaf certificates."""

import logging
import re

from filelock import FileLock

from localca.domain.errors import OutputWriteError, SerialStoreError, SerialStoreMalformedError
from localca.repository.store import CAStore, write_public

logger = logging.getLogger(__name__)

INITIAL_SERIAL = 1

_SERIAL_RE = re.compile(r"^\d+$")


class SerialAllocator:
    """Persists a strictly increasing counter in serial.txt.

    The read-increment-write sequence runs under an exclusive file lock, so
    processes sharing a CA directory never observe the same value. Each
    update replaces the file atomically, so a failed write keeps the old value.
    """

    def __init__(self, store: CAStore) -> None:
        self.store = store
        self._lock = FileLock(f"{store.serial_path}.lock")

    def allocate(self) -> int:
        """Return the current counter value and persist value + 1.

        An absent counter file starts at 1.

        Raises:
            SerialStoreError: If the counter cannot be read or written.
            SerialStoreMalformedError: If the stored value is not a non-negative integer.
        """
        self.store.ensure_directory()
        with self._lock:
            current = self._read()
            self._write(current + 1)

        logger.debug("serial_allocated", extra={"serial": current})
        return current

    def peek(self) -> int:
        """Return the value the next allocate() call would hand out."""
        return self._read()

    def reset(self, value: int = INITIAL_SERIAL) -> None:
        if value < 0:
            raise ValueError("serial counter must be non-negative")
        self.store.ensure_directory()
        with self._lock:
            self._write(value)

    def _read(self) -> int:
        path = self.store.serial_path
        if not path.exists():
            return INITIAL_SERIAL
        try:
            raw = path.read_text(encoding="ascii")
        except (OSError, UnicodeDecodeError) as e:
            raise SerialStoreError(f"Failed to read serial file {path}: {e}") from e

        text = raw.strip()
        if not _SERIAL_RE.match(text):
            raise SerialStoreMalformedError(
                f"serial file {path} does not hold a non-negative integer: {raw!r}"
            )
        return int(text)

    def _write(self, value: int) -> None:
        try:
            write_public(self.store.serial_path, str(value).encode("ascii"))
        except OutputWriteError as e:
            raise SerialStoreError(f"Failed to update serial file: {e}") from e
