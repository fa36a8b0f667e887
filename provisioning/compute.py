"""
Compute Fleet Provisioner — application instances in the egress subnets.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from config.settings import Settings, settings as default_settings
from provisioning.errors import CapacityError, PlacementError, UnresolvedReferenceError
from provisioning.images import ImageLookup
from provisioning.provider import ResourceProvider
from schemas.identity import Role
from schemas.network import Subnet, SubnetTier
from schemas.resources import ComputeInstance, ResourceRef, ResourceType
from schemas.security import SecurityGroup

logger = logging.getLogger(__name__)

FLEET_NAME = "ec2-instance"


def assign_slots(fleet_size: int, slot_count: int, cycle: bool, fleet: str = FLEET_NAME) -> list[int]:
    """
    Subnet index for each fleet member.

    With cycling, instance `i` lands in subnet `i mod slot_count`, so three
    instances over two subnets give `[0, 1, 0]`.
    """
    if slot_count < 1:
        raise CapacityError(fleet, "no subnets available for placement")
    if fleet_size > slot_count and not cycle:
        raise CapacityError(
            fleet,
            f"fleet of {fleet_size} exceeds {slot_count} subnet slots and cycling is disabled",
        )
    return [i % slot_count for i in range(fleet_size)]


class ComputeFleetProvisioner:
    """Creates N identical instances attached to the compute group and role."""

    def __init__(
        self,
        provider: ResourceProvider,
        image_lookup: ImageLookup,
        config: Settings | None = None,
        cycle_subnets: bool | None = None,
    ) -> None:
        self.provider = provider
        self.image_lookup = image_lookup
        self.config = config or default_settings
        self.cycle_subnets = (
            cycle_subnets if cycle_subnets is not None else self.config.compute.cycle_subnets
        )

    def provision(
        self,
        fleet_size: int,
        subnets: Sequence[Subnet],
        security_group: SecurityGroup,
        role: Role,
    ) -> tuple[ComputeInstance, ...]:
        for subnet in subnets:
            if subnet.tier != SubnetTier.PRIVATE_EGRESS:
                raise PlacementError(
                    subnet.logical_id,
                    f"compute instances belong in private-egress subnets, not {subnet.tier.value}",
                )
        if security_group.ref is None:
            raise UnresolvedReferenceError(security_group.logical_id, "security group is not materialized")
        if role.instance_profile is None:
            raise UnresolvedReferenceError(role.logical_id, "role has no instance profile")

        slots = assign_slots(fleet_size, len(subnets), self.cycle_subnets)
        image_id = self.image_lookup.latest_image_id()
        instance_type = self.config.compute.instance_type

        fleet = []
        for i, slot in enumerate(slots):
            subnet = subnets[slot]
            logical_id = f"{FLEET_NAME}-{i}"
            ref = self._declare_instance(
                logical_id, subnet, security_group, role, image_id, instance_type
            )
            fleet.append(
                ComputeInstance(
                    logical_id=logical_id,
                    ref=ref,
                    subnet_logical_id=subnet.logical_id,
                    subnet_index=slot,
                    security_group_id=security_group.group_id,
                    role_logical_id=role.logical_id,
                    instance_type=instance_type,
                    image_id=image_id,
                )
            )

        logger.info(
            "Compute fleet: %d x %s across subnets %s",
            len(fleet),
            instance_type,
            slots,
        )
        return tuple(fleet)

    def _declare_instance(
        self,
        logical_id: str,
        subnet: Subnet,
        security_group: SecurityGroup,
        role: Role,
        image_id: str,
        instance_type: str,
    ) -> ResourceRef:
        return self.provider.create(
            ResourceType.INSTANCE,
            logical_id,
            {
                "ImageId": image_id,
                "InstanceType": instance_type,
                "SubnetId": subnet.physical_id,
                "AvailabilityZone": subnet.availability_zone,
                "SecurityGroupIds": [security_group.group_id],
                "IamInstanceProfile": role.instance_profile.physical_id,
                "Tags": [{"Key": "Name", "Value": logical_id}],
            },
            depends_on=[subnet.ref, security_group.ref, role.instance_profile],
        )
