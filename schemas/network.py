"""
The VPC and its subnet tiers.
"""

from __future__ import annotations

import ipaddress
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.resources import ResourceRef


class SubnetTier(StrEnum):
    """Routing/exposure category of a subnet."""

    PUBLIC = "public"
    PRIVATE_EGRESS = "private-egress"
    PRIVATE_ISOLATED = "private-isolated"

    @property
    def rank(self) -> int:
        """Allocation order: public first, then egress, then isolated."""
        return _TIER_ORDER.index(self)

    @property
    def is_private(self) -> bool:
        return self is not SubnetTier.PUBLIC


_TIER_ORDER = [SubnetTier.PUBLIC, SubnetTier.PRIVATE_EGRESS, SubnetTier.PRIVATE_ISOLATED]


class TierSpec(BaseModel):
    """Requested subnet group: one subnet of `cidr_mask` per availability zone."""

    model_config = ConfigDict(frozen=True)

    name: str
    tier: SubnetTier
    cidr_mask: int = Field(ge=1, le=32)


class Subnet(BaseModel):
    """A single subnet carved from the network range."""

    model_config = ConfigDict(frozen=True)

    logical_id: str
    name: str
    tier: SubnetTier
    cidr: str
    availability_zone: str
    az_index: int
    ref: ResourceRef | None = Field(
        default=None,
        description="Provider reference, set once the subnet is materialized",
    )

    @property
    def network(self) -> ipaddress.IPv4Network:
        return ipaddress.ip_network(self.cidr)

    @property
    def physical_id(self) -> str:
        return self.ref.physical_id if self.ref else ""


class Network(BaseModel):
    """
    The VPC and every subnet it owns.

    Subnet ranges are pairwise disjoint and contained in `cidr`; this is
    checked on construction so an invalid plan can never be materialized.
    """

    model_config = ConfigDict(frozen=True)

    logical_id: str
    cidr: str
    az_count: int
    subnets: tuple[Subnet, ...] = ()
    ref: ResourceRef | None = None

    @model_validator(mode="after")
    def _check_layout(self) -> Network:
        base = ipaddress.ip_network(self.cidr)
        seen: list[Subnet] = []
        for subnet in self.subnets:
            block = subnet.network
            if not block.subnet_of(base):
                raise ValueError(f"subnet {subnet.logical_id} ({block}) lies outside {base}")
            for other in seen:
                if block.overlaps(other.network):
                    raise ValueError(
                        f"subnet {subnet.logical_id} ({block}) overlaps "
                        f"{other.logical_id} ({other.network})"
                    )
            seen.append(subnet)
        return self

    def subnets_in(self, tier: SubnetTier) -> tuple[Subnet, ...]:
        """Subnets of one tier, ordered by availability zone."""
        return tuple(
            sorted(
                (s for s in self.subnets if s.tier == tier),
                key=lambda s: s.az_index,
            )
        )

    @property
    def public_subnets(self) -> tuple[Subnet, ...]:
        return self.subnets_in(SubnetTier.PUBLIC)

    @property
    def egress_subnets(self) -> tuple[Subnet, ...]:
        return self.subnets_in(SubnetTier.PRIVATE_EGRESS)

    @property
    def isolated_subnets(self) -> tuple[Subnet, ...]:
        return self.subnets_in(SubnetTier.PRIVATE_ISOLATED)

    @property
    def physical_id(self) -> str:
        return self.ref.physical_id if self.ref else ""
