"""Shared fixtures: CA directories under tmp_path."""

import pytest

from localca.ca.hierarchy import CAHierarchyBuilder
from localca.domain.policy import IssuancePolicy
from localca.domain.states import KeyAlgorithm
from localca.repository.serial import SerialAllocator
from localca.repository.store import CAStore
from localca.services.ca_service import CAService


@pytest.fixture
def store(tmp_path):
    """An empty CA directory."""
    return CAStore(tmp_path / "ca")


@pytest.fixture
def ecdsa_policy():
    """EC CA keys keep installs fast."""
    return IssuancePolicy(default_key_type=KeyAlgorithm.ECDSA, default_key_size=256)


@pytest.fixture
def installed_store(store, ecdsa_policy):
    """A CA directory with root and intermediate installed."""
    CAService(store).install(policy=ecdsa_policy)
    return store


@pytest.fixture
def intermediate(installed_store, ecdsa_policy):
    return CAHierarchyBuilder(installed_store, ecdsa_policy).load_intermediate()


@pytest.fixture
def root(installed_store, ecdsa_policy):
    return CAHierarchyBuilder(installed_store, ecdsa_policy).load_root()


@pytest.fixture
def serials(installed_store):
    return SerialAllocator(installed_store)
