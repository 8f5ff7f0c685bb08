"""Error taxonomy for the local CA.

Every failure surfaced to a caller is a subclass of LocalCAError. None of them
are retried internally and no partially written files are rolled back.
"""


class LocalCAError(Exception):
    """Base class for all local CA errors."""

    pass


class ConfigurationError(LocalCAError):
    """Raised when the issuance policy is invalid."""

    pass


class CANotInstalledError(LocalCAError):
    """Raised when CA material is missing from the CA directory."""

    pass


class CAAlreadyInstalledError(LocalCAError):
    """Raised when install would overwrite an existing CA without force."""

    pass


class CAMaterialError(LocalCAError):
    """Raised when CA key or certificate files are unreadable or corrupt."""

    pass


class KeyGenerationError(LocalCAError):
    """Raised when a private key cannot be generated."""

    pass


class SigningError(LocalCAError):
    """Raised when a certificate or CRL cannot be signed."""

    pass


class CSRMalformedError(LocalCAError):
    """Raised when a certificate signing request cannot be parsed."""

    pass


class CSRSignatureError(LocalCAError):
    """Raised when a certificate signing request's self-signature is invalid."""

    pass


class AlreadyRevokedError(LocalCAError):
    """Raised when revoking a serial that is already in the ledger."""

    def __init__(self, serial: int) -> None:
        super().__init__(f"certificate with serial {serial} is already revoked")
        self.serial = serial


class LedgerMalformedError(LocalCAError):
    """Raised when the revocation ledger contains a line that does not parse."""

    def __init__(self, line_number: int, line: str, reason: str) -> None:
        super().__init__(f"revoked.db line {line_number}: {reason}: {line!r}")
        self.line_number = line_number
        self.line = line


class SerialStoreError(LocalCAError):
    """Raised when the serial counter cannot be read or written."""

    pass


class SerialStoreMalformedError(SerialStoreError):
    """Raised when the serial counter does not hold a non-negative integer."""

    pass


class OutputWriteError(LocalCAError):
    """Raised when an output file cannot be written."""

    pass


class PKCS12ExportError(LocalCAError):
    """Raised when a PKCS#12 bundle cannot be encoded."""

    pass


class InvalidInputError(LocalCAError):
    """Raised when an identifier input cannot be encoded into a certificate."""

    pass


class LedgerReadError(LocalCAError):
    """Raised when the revocation ledger exists but cannot be read."""

    pass
