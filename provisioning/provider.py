"""
Provider resource API — the seam between the components and the cloud.

Each call takes a stable logical identifier and a CloudFormation-shaped
property bag and returns a reference carrying the physical id and ARN.
Creation is idempotent by logical identifier: declaring the same id twice
returns the first reference and never creates a duplicate.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from config.settings import settings
from provisioning.errors import UnresolvedReferenceError
from schemas.resources import RemovalPolicy, ResourceRecord, ResourceRef, ResourceType

logger = logging.getLogger(__name__)


class ResourceProvider(ABC):
    """Create/describe/delete operations over logical identifiers."""

    @abstractmethod
    def create(
        self,
        resource_type: ResourceType,
        logical_id: str,
        properties: dict[str, Any],
        depends_on: Sequence[ResourceRef] = (),
        removal_policy: RemovalPolicy | None = None,
    ) -> ResourceRef:
        """Declare a resource, returning the existing reference if already declared."""

    @abstractmethod
    def describe(self, logical_id: str) -> ResourceRecord | None:
        """Look up a declared resource."""

    @abstractmethod
    def delete(self, logical_id: str) -> None:
        """Remove a declared resource."""

    @abstractmethod
    def records(self) -> list[ResourceRecord]:
        """All declared resources in creation order."""


def check_reuse(existing: ResourceRecord, resource_type: ResourceType) -> ResourceRef:
    """Return the existing reference, refusing to re-type a logical id."""
    if existing.ref.resource_type != resource_type:
        raise ValueError(
            f"Logical id {existing.logical_id!r} already declared as "
            f"{existing.ref.resource_type.value}, not {resource_type.value}"
        )
    logger.debug("Re-using %s (%s)", existing.logical_id, resource_type.value)
    return existing.ref


# resource type -> (physical id prefix, ARN template)
_IDENTITY: dict[ResourceType, tuple[str, str]] = {
    ResourceType.VPC: ("vpc", "arn:aws:ec2:{region}:{account}:vpc/{id}"),
    ResourceType.SUBNET: ("subnet", "arn:aws:ec2:{region}:{account}:subnet/{id}"),
    ResourceType.INTERNET_GATEWAY: ("igw", "arn:aws:ec2:{region}:{account}:internet-gateway/{id}"),
    ResourceType.GATEWAY_ATTACHMENT: ("igw-attach", "{id}"),
    ResourceType.ELASTIC_IP: ("eipalloc", "arn:aws:ec2:{region}:{account}:elastic-ip/{id}"),
    ResourceType.NAT_GATEWAY: ("nat", "arn:aws:ec2:{region}:{account}:natgateway/{id}"),
    ResourceType.ROUTE_TABLE: ("rtb", "arn:aws:ec2:{region}:{account}:route-table/{id}"),
    ResourceType.ROUTE: ("r", "{id}"),
    ResourceType.ROUTE_TABLE_ASSOCIATION: ("rtbassoc", "{id}"),
    ResourceType.SECURITY_GROUP: ("sg", "arn:aws:ec2:{region}:{account}:security-group/{id}"),
    ResourceType.SECURITY_GROUP_INGRESS: ("sgr", "arn:aws:ec2:{region}:{account}:security-group-rule/{id}"),
    ResourceType.INSTANCE: ("i", "arn:aws:ec2:{region}:{account}:instance/{id}"),
    ResourceType.DB_SUBNET_GROUP: ("dbsubnet", "arn:aws:rds:{region}:{account}:subgrp:{id}"),
    ResourceType.DB_INSTANCE: ("db", "arn:aws:rds:{region}:{account}:db:{id}"),
    ResourceType.SECRET: ("secret", "arn:aws:secretsmanager:{region}:{account}:secret:{id}"),
    ResourceType.SECRET_TARGET_ATTACHMENT: ("secretattach", "{id}"),
    ResourceType.LOAD_BALANCER: ("alb", "arn:aws:elasticloadbalancing:{region}:{account}:loadbalancer/app/{id}"),
    ResourceType.LISTENER: ("listener", "arn:aws:elasticloadbalancing:{region}:{account}:listener/app/{id}"),
    ResourceType.TARGET_GROUP: ("tg", "arn:aws:elasticloadbalancing:{region}:{account}:targetgroup/{id}"),
    ResourceType.ROLE: ("role", "arn:aws:iam::{account}:role/{id}"),
    ResourceType.POLICY: ("policy", "{id}"),
    ResourceType.INSTANCE_PROFILE: ("profile", "arn:aws:iam::{account}:instance-profile/{id}"),
    ResourceType.OIDC_PROVIDER: ("oidc", "arn:aws:iam::{account}:oidc-provider/{id}"),
}


class InMemoryProvider(ResourceProvider):
    """
    Deterministic, thread-safe provider that keeps the declared graph in memory.

    Physical ids are derived from a hash of the stack name and logical id,
    so two providers fed the same declarations produce identical mappings.
    Used for local planning and tests.
    """

    def __init__(
        self,
        stack_name: str | None = None,
        region: str | None = None,
        account_id: str | None = None,
    ) -> None:
        self.stack_name = stack_name or settings.stack_name
        self.region = region or settings.aws.region
        self.account_id = account_id or settings.aws.account_id
        self.snapshots: dict[str, str] = {}
        self._records: dict[str, ResourceRecord] = {}
        self._lock = threading.Lock()

    def create(
        self,
        resource_type: ResourceType,
        logical_id: str,
        properties: dict[str, Any],
        depends_on: Sequence[ResourceRef] = (),
        removal_policy: RemovalPolicy | None = None,
    ) -> ResourceRef:
        with self._lock:
            existing = self._records.get(logical_id)
            if existing is not None:
                return check_reuse(existing, resource_type)

            dependency_ids = tuple(dep.logical_id for dep in depends_on)
            missing = [d for d in dependency_ids if d not in self._records]
            if missing:
                raise UnresolvedReferenceError(
                    logical_id, f"depends on undeclared resources {missing}"
                )

            ref = self._make_ref(resource_type, logical_id)
            self._records[logical_id] = ResourceRecord(
                ref=ref,
                properties=properties,
                depends_on=dependency_ids,
                removal_policy=removal_policy,
            )
            logger.debug("Declared %s %s -> %s", resource_type.value, logical_id, ref.physical_id)
            return ref

    def describe(self, logical_id: str) -> ResourceRecord | None:
        with self._lock:
            return self._records.get(logical_id)

    def delete(self, logical_id: str) -> None:
        with self._lock:
            record = self._records.pop(logical_id, None)
            if record is None:
                raise UnresolvedReferenceError(logical_id, "cannot delete an undeclared resource")
            if record.removal_policy == RemovalPolicy.SNAPSHOT:
                self.snapshots[logical_id] = f"{record.ref.physical_id}-final-snapshot"
            logger.debug("Deleted %s", logical_id)

    def records(self) -> list[ResourceRecord]:
        with self._lock:
            return list(self._records.values())

    def _make_ref(self, resource_type: ResourceType, logical_id: str) -> ResourceRef:
        prefix, arn_template = _IDENTITY[resource_type]
        digest = hashlib.sha256(f"{self.stack_name}/{logical_id}".encode()).hexdigest()[:17]
        physical_id = f"{prefix}-{digest}"
        arn = arn_template.format(region=self.region, account=self.account_id, id=physical_id)
        return ResourceRef(
            logical_id=logical_id,
            resource_type=resource_type,
            physical_id=physical_id,
            arn=arn,
        )
