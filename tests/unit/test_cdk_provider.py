"""
Unit tests for the CDK-backed provider.

`CfnResource` is replaced with a recording stand-in, so only the
provider's bookkeeping and serialization are exercised here.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest

try:
    import aws_cdk as cdk
except Exception as e:  # jsii needs a Node.js runtime to load the assembly
    pytest.skip(f"aws_cdk unavailable: {e}", allow_module_level=True)

from infra.cdk_provider import CdkResourceProvider
from provisioning.errors import UnresolvedReferenceError
from schemas.resources import RemovalPolicy, ResourceType


class _RecordingResource:
    """Counts how many resources are being constructed at the same time."""

    guard = threading.Lock()
    active = 0
    peak = 0

    def __init__(self, scope, logical_id, *, type, properties):
        cls = _RecordingResource
        with cls.guard:
            cls.active += 1
            cls.peak = max(cls.peak, cls.active)
        time.sleep(0.005)
        self.logical_id = logical_id
        self.resource_type = type
        self.ref = f"token-{logical_id}"
        self.dependencies = []
        self.removal_policy = None
        with cls.guard:
            cls.active -= 1

    def add_dependency(self, other):
        self.dependencies.append(other)

    def apply_removal_policy(self, policy):
        self.removal_policy = policy


@pytest.fixture
def cdk_provider(monkeypatch):
    _RecordingResource.active = 0
    _RecordingResource.peak = 0
    monkeypatch.setattr(cdk, "CfnResource", _RecordingResource)
    return CdkResourceProvider(MagicMock())


class TestCdkResourceProvider:

    def test_concurrent_declarations_are_serialized(self, cdk_provider):
        with ThreadPoolExecutor(max_workers=8) as pool:
            refs = list(pool.map(
                lambda i: cdk_provider.create(ResourceType.VPC, f"vpc-{i}", {}),
                range(16),
            ))

        assert _RecordingResource.peak == 1
        assert len(cdk_provider.records()) == 16
        assert {r.logical_id for r in refs} == {f"vpc-{i}" for i in range(16)}

    def test_dependencies_and_removal_policy(self, cdk_provider):
        subnet_group = cdk_provider.create(ResourceType.DB_SUBNET_GROUP, "rds-subnet-group", {})
        cdk_provider.create(
            ResourceType.SECRET, "secret", {}, depends_on=[subnet_group], removal_policy=RemovalPolicy.RETAIN
        )
        construct = cdk_provider.construct("secret")
        assert construct.dependencies == [cdk_provider.construct("rds-subnet-group")]
        assert construct.removal_policy == cdk.RemovalPolicy.RETAIN

    def test_idempotent_by_logical_id(self, cdk_provider):
        first = cdk_provider.create(ResourceType.VPC, "my-vpc", {})
        assert cdk_provider.create(ResourceType.VPC, "my-vpc", {}) == first
        assert len(cdk_provider.records()) == 1

    def test_undeclared_dependency(self, cdk_provider):
        stray = CdkResourceProvider(MagicMock()).create(ResourceType.VPC, "elsewhere", {})
        with pytest.raises(UnresolvedReferenceError):
            cdk_provider.create(ResourceType.SUBNET, "subnet", {}, depends_on=[stray])

    def test_delete_removes_construct(self, cdk_provider):
        cdk_provider.create(ResourceType.VPC, "my-vpc", {})
        cdk_provider.delete("my-vpc")
        assert cdk_provider.describe("my-vpc") is None
        cdk_provider.scope.node.try_remove_child.assert_called_once_with("my-vpc")
