"""
CDK-backed resource provider.

Every declaration becomes one `CfnResource` in the stack, so the same
components that drive the in-memory plan render a CloudFormation
template. Physical ids and ARNs are CloudFormation tokens resolved at
deploy time.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import Any

import aws_cdk as cdk
from constructs import Construct

from provisioning.errors import UnresolvedReferenceError
from provisioning.provider import ResourceProvider, check_reuse
from schemas.resources import RemovalPolicy, ResourceRecord, ResourceRef, ResourceType

logger = logging.getLogger(__name__)

# Types whose `Ref` is not the id other resources need
_PHYSICAL_ID_ATTRIBUTE = {
    ResourceType.ELASTIC_IP: "AllocationId",
}

# Types exposing their ARN as an attribute; everything else uses `Ref`
_ARN_ATTRIBUTE = {
    ResourceType.ROLE: "Arn",
    ResourceType.INSTANCE_PROFILE: "Arn",
    ResourceType.DB_INSTANCE: "DBInstanceArn",
}

_REMOVAL_POLICIES = {
    RemovalPolicy.DESTROY: cdk.RemovalPolicy.DESTROY,
    RemovalPolicy.SNAPSHOT: cdk.RemovalPolicy.SNAPSHOT,
    RemovalPolicy.RETAIN: cdk.RemovalPolicy.RETAIN,
}


class CdkResourceProvider(ResourceProvider):
    """
    Declares into a CDK scope.

    The construct tree and the jsii kernel behind it are not thread-safe,
    so every call is serialized even when graph levels run concurrently.
    """

    def __init__(self, scope: Construct) -> None:
        self.scope = scope
        self._records: dict[str, ResourceRecord] = {}
        self._constructs: dict[str, cdk.CfnResource] = {}
        self._lock = threading.RLock()

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

            for dep in depends_on:
                if dep.logical_id not in self._constructs:
                    raise UnresolvedReferenceError(
                        logical_id, f"depends on undeclared resource {dep.logical_id!r}"
                    )

            resource = cdk.CfnResource(
                self.scope,
                logical_id,
                type=resource_type.value,
                properties=properties,
            )
            for dep in depends_on:
                resource.add_dependency(self._constructs[dep.logical_id])
            if removal_policy is not None:
                resource.apply_removal_policy(_REMOVAL_POLICIES[removal_policy])

            id_attribute = _PHYSICAL_ID_ATTRIBUTE.get(resource_type)
            arn_attribute = _ARN_ATTRIBUTE.get(resource_type)
            ref = ResourceRef(
                logical_id=logical_id,
                resource_type=resource_type,
                physical_id=resource.get_att(id_attribute).to_string() if id_attribute else resource.ref,
                arn=resource.get_att(arn_attribute).to_string() if arn_attribute else resource.ref,
            )

            self._constructs[logical_id] = resource
            self._records[logical_id] = ResourceRecord(
                ref=ref,
                properties=properties,
                depends_on=tuple(dep.logical_id for dep in depends_on),
                removal_policy=removal_policy,
            )
            logger.debug("Declared %s %s", resource_type.value, logical_id)
            return ref

    def describe(self, logical_id: str) -> ResourceRecord | None:
        with self._lock:
            return self._records.get(logical_id)

    def delete(self, logical_id: str) -> None:
        with self._lock:
            if self._records.pop(logical_id, None) is None:
                raise UnresolvedReferenceError(logical_id, "cannot delete an undeclared resource")
            self._constructs.pop(logical_id)
            self.scope.node.try_remove_child(logical_id)

    def records(self) -> list[ResourceRecord]:
        with self._lock:
            return list(self._records.values())

    def construct(self, logical_id: str) -> cdk.CfnResource:
        with self._lock:
            return self._constructs[logical_id]
