from dataclasses import dataclass, field
from datetime import datetime, timezone
from ipaddress import IPv4Address, IPv6Address

from .states import RevocationReason, SubjectInputType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RevocationEntry:
    """A revoked serial number. At most one entry exists per serial."""

    serial: int
    revoked_at: datetime
    reason: RevocationReason = RevocationReason.UNSPECIFIED


@dataclass
class SubjectInputs:
    """Identifier inputs partitioned by type, each list in input order."""

    inputs: list[str]
    dns_names: list[str] = field(default_factory=list)
    ip_addresses: list[IPv4Address | IPv6Address] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)
    types: list[SubjectInputType] = field(default_factory=list)

    @property
    def first_email(self) -> str | None:
        return self.emails[0] if self.emails else None
