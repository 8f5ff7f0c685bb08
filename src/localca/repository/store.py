"""CA directory layout and file persistence.

A CAStore is bound to one directory and is passed explicitly to every
component, so independent CA directories never share state.
"""

import logging
import os
import tempfile
from pathlib import Path

from localca.domain.errors import OutputWriteError

logger = logging.getLogger(__name__)

ROOT_CERT = "rootCA.pem"
ROOT_KEY = "rootCA-key.pem"
INTERMEDIATE_CERT = "intermediateCA.pem"
INTERMEDIATE_KEY = "intermediateCA-key.pem"
SERIAL_FILE = "serial.txt"
LEDGER_FILE = "revoked.db"
POLICY_FILE = "config.yml"
CRL_FILE = "crl.pem"

CA_MATERIAL_FILES = (ROOT_CERT, ROOT_KEY, INTERMEDIATE_CERT, INTERMEDIATE_KEY)

PRIVATE_MODE = 0o600
PUBLIC_MODE = 0o644
DIR_MODE = 0o755


def write_file(path: Path, data: bytes, mode: int) -> Path:
    """Write data to path with exact permissions, creating parent directories.

    The data goes to a temporary file in the same directory, which has its final
    mode before any byte is written and then replaces path. Readers see either
    the old or the new content, never a truncated file.

    Raises:
        OutputWriteError: If the directory or file cannot be written.
    """
    path = Path(path)
    try:
        if path.parent and not path.parent.exists():
            path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-", suffix=".tmp")
        try:
            # fchmod ignores the umask
            os.fchmod(fd, mode)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
    except OSError as e:
        logger.error("output_write_failed", extra={"path": str(path), "error": str(e)})
        raise OutputWriteError(f"Failed to write {path}: {e}") from e
    return path


def write_private(path: Path, data: bytes) -> Path:
    """Write owner-only material (private keys, PKCS#12 bundles)."""
    return write_file(path, data, PRIVATE_MODE)


def write_public(path: Path, data: bytes) -> Path:
    """Write world-readable material (certificates, CRLs)."""
    return write_file(path, data, PUBLIC_MODE)


class CAStore:
    """Resolves and writes files inside a single CA directory."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory).expanduser().absolute()

    def __repr__(self) -> str:
        return f"CAStore({str(self.directory)!r})"

    def path(self, filename: str) -> Path:
        return self.directory / filename

    @property
    def serial_path(self) -> Path:
        return self.path(SERIAL_FILE)

    @property
    def ledger_path(self) -> Path:
        return self.path(LEDGER_FILE)

    @property
    def policy_path(self) -> Path:
        return self.path(POLICY_FILE)

    @property
    def crl_path(self) -> Path:
        return self.path(CRL_FILE)

    def ensure_directory(self) -> None:
        try:
            self.directory.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise OutputWriteError(f"Failed to create CA directory {self.directory}: {e}") from e

    def is_installed(self) -> bool:
        """True when all four CA key and certificate files are present."""
        return all(self.path(name).is_file() for name in CA_MATERIAL_FILES)

    def has_any_material(self) -> bool:
        return any(self.path(name).exists() for name in CA_MATERIAL_FILES)

    def write_key_and_cert(self, base_name: str, key_pem: bytes, cert_pem: bytes) -> None:
        """Persist <base_name>-key.pem (0600) and <base_name>.pem (0644)."""
        write_private(self.path(f"{base_name}-key.pem"), key_pem)
        write_public(self.path(f"{base_name}.pem"), cert_pem)
        logger.debug("ca_material_written", extra={"base_name": base_name, "ca_dir": str(self.directory)})
