"""
Shared fixtures: a deterministic in-memory provider and a materialized
network + security groups to build the workload tiers on.
"""

from __future__ import annotations

import pytest

from config.settings import Settings
from provisioning.identity import BASTION_ROLE, COMPUTE_ROLE, IdentityBinder
from provisioning.images import StaticImageLookup
from provisioning.network import NetworkTopologyBuilder
from provisioning.provider import InMemoryProvider
from provisioning.secrets import ProviderSecretStore
from provisioning.security import SecurityPolicyComposer

TEST_IMAGE = "ami-0123456789abcdef0"


@pytest.fixture
def config():
    return Settings()


@pytest.fixture
def provider():
    return InMemoryProvider(stack_name="TestStack", region="us-east-1", account_id="123456789012")


@pytest.fixture
def images():
    return StaticImageLookup(TEST_IMAGE)


@pytest.fixture
def secret_store(provider):
    return ProviderSecretStore(provider)


@pytest.fixture
def network(provider, config):
    return NetworkTopologyBuilder(provider, config).build("10.0.0.0/16", 2)


@pytest.fixture
def security_groups(provider, config, network):
    return SecurityPolicyComposer(provider, config).build(network)


@pytest.fixture
def binder(provider, config):
    return IdentityBinder(provider, config)


@pytest.fixture
def compute_role(binder):
    return binder.create_service_role(COMPUTE_ROLE)


@pytest.fixture
def bastion_role(binder):
    return binder.create_bastion_role(BASTION_ROLE)
