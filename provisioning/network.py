"""
Network Topology Builder — allocates the VPC and carves subnet tiers.

CIDR allocation is a pure, deterministic planning step (public tier first,
then egress, then isolated; AZ order within a tier) that completes before
anything is materialized, so concurrent consumers never race on the
address space. Materialization then declares the VPC, subnets and the
per-tier routing through the provider.
"""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Sequence

from config.settings import Settings, settings as default_settings
from provisioning.errors import AllocationError, UnresolvedReferenceError
from provisioning.provider import ResourceProvider
from schemas.network import Network, Subnet, SubnetTier, TierSpec
from schemas.resources import ResourceRef, ResourceType

logger = logging.getLogger(__name__)

VPC_LOGICAL_ID = "my-vpc"
ANY_IPV4 = "0.0.0.0/0"


def default_tiers(config: Settings | None = None) -> tuple[TierSpec, ...]:
    """The three tiers of the reference topology."""
    net = (config or default_settings).network
    return (
        TierSpec(name=net.public_name, tier=SubnetTier.PUBLIC, cidr_mask=net.public_mask),
        TierSpec(name=net.egress_name, tier=SubnetTier.PRIVATE_EGRESS, cidr_mask=net.egress_mask),
        TierSpec(name=net.isolated_name, tier=SubnetTier.PRIVATE_ISOLATED, cidr_mask=net.isolated_mask),
    )


def allocate_subnets(
    base_cidr: str,
    az_count: int,
    tiers: Sequence[TierSpec],
    zone_names: Sequence[str],
    vpc_logical_id: str = VPC_LOGICAL_ID,
) -> tuple[Subnet, ...]:
    """
    Carve one subnet per tier x AZ out of `base_cidr`.

    Blocks are handed out from the bottom of the range, each aligned to
    its own prefix length, never overlapping a previous block.
    """
    try:
        base = ipaddress.IPv4Network(base_cidr)
    except ValueError as e:
        raise AllocationError(vpc_logical_id, f"invalid base CIDR {base_cidr!r}: {e}") from e

    if az_count < 1:
        raise AllocationError(vpc_logical_id, f"az_count must be at least 1, got {az_count}")
    if len(zone_names) < az_count:
        raise AllocationError(
            vpc_logical_id,
            f"{az_count} availability zones requested but only {len(zone_names)} known",
        )

    if not tiers:
        raise AllocationError(vpc_logical_id, "at least one subnet tier is required")

    names = [t.name for t in tiers]
    if len(set(names)) != len(names):
        raise AllocationError(vpc_logical_id, f"tier names must be unique: {names}")

    ordered = sorted(tiers, key=lambda t: t.tier.rank)
    cursor = int(base.network_address)
    end = int(base.broadcast_address)
    subnets: list[Subnet] = []

    for spec in ordered:
        if spec.cidr_mask < base.prefixlen:
            raise AllocationError(
                f"{vpc_logical_id}-{spec.name}",
                f"/{spec.cidr_mask} subnets cannot fit inside {base}",
            )
        size = 2 ** (32 - spec.cidr_mask)
        for az in range(az_count):
            start = -(-cursor // size) * size  # round up to block alignment
            if start + size - 1 > end:
                raise AllocationError(
                    f"{vpc_logical_id}-{spec.name}-subnet-{az + 1}",
                    f"{base} exhausted: cannot place {len(ordered)} tiers x "
                    f"{az_count} AZs with the requested masks",
                )
            block = ipaddress.IPv4Network((start, spec.cidr_mask))
            subnets.append(
                Subnet(
                    logical_id=f"{vpc_logical_id}-{spec.name}-subnet-{az + 1}",
                    name=spec.name,
                    tier=spec.tier,
                    cidr=str(block),
                    availability_zone=zone_names[az],
                    az_index=az,
                )
            )
            cursor = start + size

    return tuple(subnets)


class NetworkTopologyBuilder:
    """Plans and materializes the VPC with its public/egress/isolated tiers."""

    def __init__(
        self,
        provider: ResourceProvider,
        config: Settings | None = None,
        vpc_logical_id: str = VPC_LOGICAL_ID,
    ) -> None:
        self.provider = provider
        self.config = config or default_settings
        self.vpc_logical_id = vpc_logical_id

    def plan(
        self,
        base_cidr: str,
        az_count: int,
        tiers: Sequence[TierSpec] | None = None,
    ) -> Network:
        """Allocate CIDRs without touching the provider."""
        if tiers is None:
            tiers = default_tiers(self.config)
        kinds = {t.tier for t in tiers}
        if SubnetTier.PRIVATE_EGRESS in kinds and (
            SubnetTier.PUBLIC not in kinds or self.config.network.nat_gateways < 1
        ):
            raise AllocationError(
                self.vpc_logical_id,
                "private-egress subnets need at least one NAT gateway in a public subnet",
            )

        subnets = allocate_subnets(
            base_cidr,
            az_count,
            tiers,
            self.config.aws.zone_names(az_count),
            self.vpc_logical_id,
        )
        return Network(
            logical_id=self.vpc_logical_id,
            cidr=base_cidr,
            az_count=az_count,
            subnets=subnets,
        )

    def build(
        self,
        base_cidr: str,
        az_count: int,
        tiers: Sequence[TierSpec] | None = None,
    ) -> Network:
        return self.materialize(self.plan(base_cidr, az_count, tiers))

    def materialize(self, network: Network) -> Network:
        """Declare the VPC, subnets, gateways and routes for a planned network."""
        vpc = self.provider.create(
            ResourceType.VPC,
            network.logical_id,
            {
                "CidrBlock": network.cidr,
                "EnableDnsHostnames": True,
                "EnableDnsSupport": True,
                "Tags": [{"Key": "Name", "Value": network.logical_id}],
            },
        )

        subnets = tuple(
            subnet.model_copy(update={"ref": self._declare_subnet(vpc, subnet)})
            for subnet in network.subnets
        )
        materialized = network.model_copy(update={"ref": vpc, "subnets": subnets})

        public = materialized.public_subnets
        egress = materialized.egress_subnets

        gateway_attachment = None
        if public:
            gateway_attachment = self._declare_internet_gateway(vpc, public)

        if egress:
            nat_gateways = self._declare_nat_gateways(public, gateway_attachment)
            for i, subnet in enumerate(egress):
                table = self._declare_route_table(vpc, subnet)
                nat = nat_gateways[i % len(nat_gateways)]
                self.provider.create(
                    ResourceType.ROUTE,
                    f"{subnet.logical_id}-default-route",
                    {
                        "RouteTableId": table.physical_id,
                        "DestinationCidrBlock": ANY_IPV4,
                        "NatGatewayId": nat.physical_id,
                    },
                    depends_on=[table, nat],
                )

        for subnet in materialized.isolated_subnets:
            self._declare_route_table(vpc, subnet)

        logger.info(
            "Network %s (%s): %d subnets across %d AZs",
            materialized.logical_id,
            materialized.cidr,
            len(subnets),
            materialized.az_count,
        )
        return materialized

    def _declare_subnet(self, vpc: ResourceRef, subnet: Subnet) -> ResourceRef:
        return self.provider.create(
            ResourceType.SUBNET,
            subnet.logical_id,
            {
                "VpcId": vpc.physical_id,
                "CidrBlock": subnet.cidr,
                "AvailabilityZone": subnet.availability_zone,
                "MapPublicIpOnLaunch": subnet.tier == SubnetTier.PUBLIC,
                "Tags": [
                    {"Key": "Name", "Value": subnet.logical_id},
                    {"Key": "tier", "Value": subnet.tier.value},
                    {"Key": "subnet-group", "Value": subnet.name},
                ],
            },
            depends_on=[vpc],
        )

    def _declare_route_table(self, vpc: ResourceRef, subnet: Subnet) -> ResourceRef:
        table = self.provider.create(
            ResourceType.ROUTE_TABLE,
            f"{subnet.logical_id}-route-table",
            {
                "VpcId": vpc.physical_id,
                "Tags": [{"Key": "Name", "Value": subnet.logical_id}],
            },
            depends_on=[vpc],
        )
        self.provider.create(
            ResourceType.ROUTE_TABLE_ASSOCIATION,
            f"{subnet.logical_id}-route-table-association",
            {"RouteTableId": table.physical_id, "SubnetId": subnet.physical_id},
            depends_on=[table, subnet.ref],
        )
        return table

    def _declare_internet_gateway(
        self,
        vpc: ResourceRef,
        public: Sequence[Subnet],
    ) -> ResourceRef:
        gateway = self.provider.create(
            ResourceType.INTERNET_GATEWAY,
            f"{vpc.logical_id}-igw",
            {"Tags": [{"Key": "Name", "Value": vpc.logical_id}]},
        )
        attachment = self.provider.create(
            ResourceType.GATEWAY_ATTACHMENT,
            f"{vpc.logical_id}-igw-attachment",
            {"VpcId": vpc.physical_id, "InternetGatewayId": gateway.physical_id},
            depends_on=[vpc, gateway],
        )
        for subnet in public:
            table = self._declare_route_table(vpc, subnet)
            self.provider.create(
                ResourceType.ROUTE,
                f"{subnet.logical_id}-default-route",
                {
                    "RouteTableId": table.physical_id,
                    "DestinationCidrBlock": ANY_IPV4,
                    "GatewayId": gateway.physical_id,
                },
                depends_on=[table, attachment],
            )
        return attachment

    def _declare_nat_gateways(
        self,
        public: Sequence[Subnet],
        gateway_attachment: ResourceRef | None,
    ) -> list[ResourceRef]:
        count = min(self.config.network.nat_gateways, len(public))
        if gateway_attachment is None or count < 1:
            raise UnresolvedReferenceError(
                self.vpc_logical_id, "no internet gateway or public subnet for NAT"
            )

        gateways = []
        for subnet in public[:count]:
            eip = self.provider.create(
                ResourceType.ELASTIC_IP,
                f"{subnet.logical_id}-eip",
                {"Domain": "vpc"},
                depends_on=[gateway_attachment],
            )
            gateways.append(
                self.provider.create(
                    ResourceType.NAT_GATEWAY,
                    f"{subnet.logical_id}-nat-gateway",
                    {
                        "SubnetId": subnet.physical_id,
                        "AllocationId": eip.physical_id,
                        "Tags": [{"Key": "Name", "Value": subnet.logical_id}],
                    },
                    depends_on=[eip, subnet.ref],
                )
            )
        return gateways
