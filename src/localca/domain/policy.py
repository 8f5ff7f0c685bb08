"""Issuance policy stored in the CA directory as config.yml."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError
from .states import KeyAlgorithm

RSA_KEY_SIZES = (2048, 3072, 4096)
ECDSA_KEY_SIZES = (256, 384, 521)

DEFAULT_CRL_URL = "http://crl.local/intermediate.crl"


class IssuancePolicy(BaseModel):
    """Validity windows, default key parameters and CRL location for the CA."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    default_validity_days: int = Field(default=365, ge=1, le=825)
    root_ca_validity_days: int = Field(default=3650, ge=365, le=7300)
    intermediate_ca_validity_days: int = Field(default=1825, ge=365, le=3650)
    default_key_type: KeyAlgorithm = KeyAlgorithm.RSA
    default_key_size: int = 2048
    crl_url: str | None = DEFAULT_CRL_URL

    @field_validator("crl_url")
    @classmethod
    def _blank_crl_url_disables(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_key_size_and_chain(self) -> "IssuancePolicy":
        allowed = RSA_KEY_SIZES if self.default_key_type == KeyAlgorithm.RSA else ECDSA_KEY_SIZES
        if self.default_key_size not in allowed:
            raise ValueError(
                f"default_key_size for {self.default_key_type.value} must be one of "
                f"{', '.join(str(s) for s in allowed)}, got {self.default_key_size}"
            )
        if self.intermediate_ca_validity_days >= self.root_ca_validity_days:
            raise ValueError(
                f"intermediate_ca_validity_days ({self.intermediate_ca_validity_days}) must be "
                f"less than root_ca_validity_days ({self.root_ca_validity_days})"
            )
        return self

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> "IssuancePolicy":
        """Build a validated policy, raising ConfigurationError on any violation."""
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            raise ConfigurationError(f"invalid configuration: {_describe(e)}") from e

    def to_mapping(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        msg = item.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)
