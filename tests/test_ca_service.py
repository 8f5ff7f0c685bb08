"""Tests for CAService install, revoke, CRL and status."""

from unittest.mock import patch

import pytest
from cryptography import x509

from localca.domain.errors import AlreadyRevokedError, CAAlreadyInstalledError, CANotInstalledError
from localca.domain.policy import IssuancePolicy
from localca.domain.states import RevocationReason
from localca.repository.policy_repository import PolicyRepository
from localca.services.ca_service import CAService


class TestInstall:
    """Tests for CAService.install."""

    def test_install_writes_default_policy(self, store):
        """Test config.yml is created with defaults on first install."""
        hierarchy = CAService(store).install()

        assert PolicyRepository(store).load() == IssuancePolicy()
        assert hierarchy.root.key.name == "RSA-2048"

    def test_install_keeps_existing_policy(self, store, ecdsa_policy):
        """Test an existing config.yml drives the install."""
        PolicyRepository(store).save(ecdsa_policy.model_copy(update={"default_validity_days": 30}))

        hierarchy = CAService(store).install()

        assert hierarchy.root.key.name == "ECDSA-secp256r1"
        assert PolicyRepository(store).load().default_validity_days == 30

    def test_refused_install_leaves_policy_untouched(self, installed_store):
        """Test a refused reinstall does not rewrite config.yml."""
        before = installed_store.policy_path.read_text()

        with pytest.raises(CAAlreadyInstalledError):
            CAService(installed_store).install(policy=IssuancePolicy(default_validity_days=10))

        assert installed_store.policy_path.read_text() == before


class TestRevokeAndCRL:
    """Tests for revocation and CRL generation through the service."""

    def test_revoke_records_metric(self, installed_store):
        """Test revocation metrics use the lower-case reason name."""
        with patch("localca.services.ca_service.ca_metrics") as mock_metrics:
            entry = CAService(installed_store).revoke(5, RevocationReason.SUPERSEDED)

        assert entry.serial == 5
        mock_metrics.record_certificate_revoked.assert_called_once_with("superseded")

    def test_double_revoke_raises(self, installed_store):
        """Test the ledger rule surfaces through the service."""
        service = CAService(installed_store)
        service.revoke(5)

        with pytest.raises(AlreadyRevokedError):
            service.revoke(5)

    def test_generate_crl_default_path(self, installed_store, intermediate):
        """Test the CRL is written to crl.pem in the CA directory."""
        service = CAService(installed_store)
        service.revoke(1)
        service.revoke(2, RevocationReason.KEY_COMPROMISE)

        crl, path = service.generate_crl()

        assert path == installed_store.crl_path
        loaded = x509.load_pem_x509_crl(path.read_bytes())
        assert {r.serial_number for r in loaded} == {1, 2}
        assert loaded.is_signature_valid(intermediate.key.public_key)
        assert len(crl) == 2

    def test_generate_crl_without_ca_raises(self, store):
        """Test CRL generation needs the intermediate CA."""
        with pytest.raises(CANotInstalledError):
            CAService(store).generate_crl()


class TestStatus:
    """Tests for CAService.status."""

    def test_status_not_installed(self, store):
        """Test an empty directory."""
        status = CAService(store).status()

        assert not status.installed
        assert status.root_subject is None

    def test_status_installed(self, installed_store):
        """Test an installed CA with one revocation."""
        service = CAService(installed_store)
        service.revoke(1)

        status = service.status()

        assert status.installed
        assert status.root_subject == "localca Root CA"
        assert status.intermediate_subject == "localca Intermediate CA"
        assert status.algorithm == "ECDSA-secp256r1"
        assert status.next_serial == 1
        assert status.revoked_count == 1
        assert status.intermediate_not_after <= status.root_not_after
