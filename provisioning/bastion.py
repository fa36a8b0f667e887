"""
Bastion host: a Linux jump host in the public tier.

Its security group is the side-branch trust source into the database
tier; its role is extended with credential-read once databases exist.
"""

from __future__ import annotations

import logging

from config.settings import Settings, settings as default_settings
from provisioning.errors import PlacementError, UnresolvedReferenceError
from provisioning.images import ImageLookup
from provisioning.provider import ResourceProvider
from schemas.identity import Role
from schemas.network import Network
from schemas.resources import BastionHost, ResourceType
from schemas.security import SecurityGroup

logger = logging.getLogger(__name__)

BASTION_HOST = "my-bastion-host"


class BastionProvisioner:
    def __init__(
        self,
        provider: ResourceProvider,
        image_lookup: ImageLookup,
        config: Settings | None = None,
    ) -> None:
        self.provider = provider
        self.image_lookup = image_lookup
        self.config = config or default_settings

    def provision(self, network: Network, security_group: SecurityGroup, role: Role) -> BastionHost:
        public = network.public_subnets
        if not public:
            raise PlacementError(BASTION_HOST, "no public subnet to place the bastion host in")
        if security_group.ref is None:
            raise UnresolvedReferenceError(security_group.logical_id, "security group is not materialized")
        if role.instance_profile is None:
            raise UnresolvedReferenceError(role.logical_id, "role has no instance profile")

        subnet = public[0]
        ref = self.provider.create(
            ResourceType.INSTANCE,
            BASTION_HOST,
            {
                "ImageId": self.image_lookup.latest_image_id(),
                "InstanceType": self.config.compute.bastion_instance_type,
                "SubnetId": subnet.physical_id,
                "AvailabilityZone": subnet.availability_zone,
                "SecurityGroupIds": [security_group.group_id],
                "IamInstanceProfile": role.instance_profile.physical_id,
                "Tags": [{"Key": "Name", "Value": self.config.compute.bastion_name}],
            },
            depends_on=[subnet.ref, security_group.ref, role.instance_profile],
        )
        logger.info("Bastion %s placed in %s", self.config.compute.bastion_name, subnet.logical_id)

        return BastionHost(
            logical_id=BASTION_HOST,
            ref=ref,
            subnet_logical_id=subnet.logical_id,
            security_group_id=security_group.group_id,
            role_logical_id=role.logical_id,
        )
