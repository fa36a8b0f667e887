"""
Security group schemas — ingress rules and the tier trust chain.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from schemas.resources import ResourceRef


class IpProtocol(StrEnum):
    TCP = "tcp"
    UDP = "udp"
    ICMP = "icmp"


class CidrSource(BaseModel):
    """Raw address range as a traffic source."""

    model_config = ConfigDict(frozen=True)

    cidr: str


class GroupSource(BaseModel):
    """Another security group as a traffic source (a trust edge)."""

    model_config = ConfigDict(frozen=True)

    group: str = Field(description="Logical id of the source security group")


class IngressRule(BaseModel):
    """One inbound permission on a security group."""

    model_config = ConfigDict(frozen=True)

    source: CidrSource | GroupSource
    port: int = Field(ge=0, le=65535)
    protocol: IpProtocol = IpProtocol.TCP
    description: str = ""

    @property
    def is_trust_edge(self) -> bool:
        return isinstance(self.source, GroupSource)


class SecurityGroup(BaseModel):
    """
    A security group and its ordered ingress rules.

    Only groups marked `public` may admit a raw CIDR source. Every rule
    into a private-tier group must name another group.
    """

    model_config = ConfigDict(frozen=True)

    logical_id: str
    description: str
    public: bool = False
    rules: tuple[IngressRule, ...] = ()
    ref: ResourceRef | None = None

    @property
    def group_id(self) -> str:
        return self.ref.physical_id if self.ref else ""

    @property
    def trusted_sources(self) -> tuple[str, ...]:
        """Logical ids of the groups this one accepts traffic from."""
        return tuple(r.source.group for r in self.rules if isinstance(r.source, GroupSource))

    def with_rule(self, rule: IngressRule) -> SecurityGroup:
        return self.model_copy(update={"rules": self.rules + (rule,)})
