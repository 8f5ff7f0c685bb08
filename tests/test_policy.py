"""Unit tests for the issuance policy and config.yml persistence."""

import pytest
import yaml

from localca.domain.errors import ConfigurationError
from localca.domain.policy import DEFAULT_CRL_URL, IssuancePolicy
from localca.domain.states import KeyAlgorithm
from localca.repository.policy_repository import PolicyRepository


class TestIssuancePolicy:
    """Tests for IssuancePolicy validation."""

    def test_defaults(self):
        """Test default values."""
        policy = IssuancePolicy()

        assert policy.default_validity_days == 365
        assert policy.root_ca_validity_days == 3650
        assert policy.intermediate_ca_validity_days == 1825
        assert policy.default_key_type == KeyAlgorithm.RSA
        assert policy.default_key_size == 2048
        assert policy.crl_url == DEFAULT_CRL_URL

    @pytest.mark.parametrize(
        "data,match",
        [
            ({"default_validity_days": 0}, "default_validity_days"),
            ({"default_validity_days": 826}, "default_validity_days"),
            ({"root_ca_validity_days": 364}, "root_ca_validity_days"),
            ({"root_ca_validity_days": 7301}, "root_ca_validity_days"),
            ({"intermediate_ca_validity_days": 3651}, "intermediate_ca_validity_days"),
            ({"default_key_type": "dsa"}, "default_key_type"),
            ({"default_key_size": 1024}, "default_key_size"),
            ({"default_key_type": "ecdsa", "default_key_size": 2048}, "default_key_size"),
        ],
    )
    def test_out_of_bounds_rejected(self, data, match):
        """Test each bound is enforced."""
        with pytest.raises(ConfigurationError, match=match):
            IssuancePolicy.from_mapping(data)

    def test_intermediate_must_be_shorter_than_root(self):
        """Test the chain ordering rule."""
        with pytest.raises(ConfigurationError, match="less than root_ca_validity_days"):
            IssuancePolicy.from_mapping(
                {"root_ca_validity_days": 1000, "intermediate_ca_validity_days": 1000}
            )

    @pytest.mark.parametrize("size", [256, 384, 521])
    def test_ecdsa_sizes_accepted(self, size):
        """Test valid curve sizes."""
        policy = IssuancePolicy.from_mapping({"default_key_type": "ecdsa", "default_key_size": size})

        assert policy.default_key_size == size

    def test_blank_crl_url_disables(self):
        """Test an empty crl_url becomes None."""
        assert IssuancePolicy.from_mapping({"crl_url": ""}).crl_url is None
        assert IssuancePolicy.from_mapping({"crl_url": None}).crl_url is None

    def test_unknown_keys_ignored(self):
        """Test forward-compatible config files."""
        policy = IssuancePolicy.from_mapping({"future_option": True})

        assert policy == IssuancePolicy()


class TestPolicyRepository:
    """Tests for PolicyRepository."""

    def test_load_defaults_when_absent(self, store):
        """Test a directory without config.yml."""
        repo = PolicyRepository(store)

        assert not repo.exists()
        assert repo.load() == IssuancePolicy()

    def test_save_and_load(self, store):
        """Test config.yml round trip."""
        repo = PolicyRepository(store)
        policy = IssuancePolicy(default_validity_days=90, default_key_type=KeyAlgorithm.ECDSA, default_key_size=384)

        repo.save(policy)

        assert repo.exists()
        assert repo.load() == policy
        data = yaml.safe_load(store.policy_path.read_text())
        assert data["default_key_type"] == "ecdsa"
        assert data["default_validity_days"] == 90

    def test_empty_file_yields_defaults(self, store):
        """Test an empty config.yml."""
        store.ensure_directory()
        store.policy_path.write_text("")

        assert PolicyRepository(store).load() == IssuancePolicy()

    def test_invalid_yaml_raises(self, store):
        """Test unparseable YAML."""
        store.ensure_directory()
        store.policy_path.write_text("default_validity_days: [unclosed\n")

        with pytest.raises(ConfigurationError, match="failed to parse"):
            PolicyRepository(store).load()

    def test_non_mapping_raises(self, store):
        """Test a YAML list is not a policy."""
        store.ensure_directory()
        store.policy_path.write_text("- 1\n- 2\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            PolicyRepository(store).load()

    def test_invalid_values_raise(self, store):
        """Test validation applies to stored files."""
        store.ensure_directory()
        store.policy_path.write_text("default_validity_days: 9999\n")

        with pytest.raises(ConfigurationError, match="default_validity_days"):
            PolicyRepository(store).load()
