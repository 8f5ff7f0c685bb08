"""Load and save the issuance policy (config.yml)."""

import logging

import yaml

from localca.domain.errors import ConfigurationError
from localca.domain.policy import IssuancePolicy
from localca.repository.store import CAStore, write_public

logger = logging.getLogger(__name__)


class PolicyRepository:
    """Reads and writes config.yml in a CA directory."""

    def __init__(self, store: CAStore) -> None:
        self.store = store

    def exists(self) -> bool:
        return self.store.policy_path.is_file()

    def load(self) -> IssuancePolicy:
        """Return the stored policy, or defaults when no config.yml exists.

        Raises:
            ConfigurationError: If the file is unreadable, not YAML, or fails validation.
        """
        path = self.store.policy_path
        if not path.exists():
            return IssuancePolicy()

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"failed to parse config file {path}: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(f"config file {path} must contain a mapping")

        policy = IssuancePolicy.from_mapping(data)
        logger.debug("policy_loaded", extra={"path": str(path)})
        return policy

    def save(self, policy: IssuancePolicy) -> None:
        # Re-validate: model_copy(update=...) bypasses validation
        policy = IssuancePolicy.from_mapping(policy.to_mapping())
        body = yaml.safe_dump(policy.to_mapping(), sort_keys=False)
        self.store.ensure_directory()
        write_public(self.store.policy_path, body.encode("utf-8"))
        logger.info("policy_saved", extra={"path": str(self.store.policy_path)})
