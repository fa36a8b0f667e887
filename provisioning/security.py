"""
Security Policy Composer — security groups as a directed trust graph.

The chain is: internet -> load balancer -> compute -> database, with a
side branch bastion -> database. Each group-sourced ingress rule is an
edge `source -> target`. Before anything is materialized the graph is
checked as a standalone pass:

  1. Raw-CIDR ingress is only allowed on public-facing groups.
  2. Every edge names a group that is part of the policy.
  3. The trust graph is acyclic.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from config.settings import Settings, settings as default_settings
from provisioning.errors import PolicyViolationError, UnresolvedReferenceError
from provisioning.provider import ResourceProvider
from schemas.network import Network
from schemas.security import CidrSource, GroupSource, IngressRule, SecurityGroup
from schemas.resources import ResourceType

logger = logging.getLogger(__name__)

ALB_GROUP = "sg-alb"
COMPUTE_GROUP = "SG-EC2"
DATABASE_GROUP = "SG-RDS"
BASTION_GROUP = "sg-bastion"

ANY_IPV4 = "0.0.0.0/0"


@dataclass(frozen=True)
class SecurityGroupSet:
    """The four materialized groups of the topology."""

    alb: SecurityGroup
    compute: SecurityGroup
    database: SecurityGroup
    bastion: SecurityGroup

    def all(self) -> tuple[SecurityGroup, ...]:
        return (self.alb, self.compute, self.database, self.bastion)

    def get(self, logical_id: str) -> SecurityGroup:
        for group in self.all():
            if group.logical_id == logical_id:
                return group
        raise KeyError(logical_id)


def compose_trust_chain(web_port: int = 80, db_port: int = 3306) -> tuple[SecurityGroup, ...]:
    """Rule sets for the load balancer, compute, database and bastion groups."""
    alb = SecurityGroup(
        logical_id=ALB_GROUP,
        description="Allow web traffic from the internet",
        public=True,
        rules=(
            IngressRule(
                source=CidrSource(cidr=ANY_IPV4),
                port=web_port,
                description="Allow web traffic from the internet",
            ),
        ),
    )
    compute = SecurityGroup(
        logical_id=COMPUTE_GROUP,
        description="Only allow sg-alb traffic",
        rules=(
            IngressRule(
                source=GroupSource(group=ALB_GROUP),
                port=web_port,
                description="Only allow sg-alb traffic",
            ),
        ),
    )
    database = SecurityGroup(
        logical_id=DATABASE_GROUP,
        description="Only allow EC2 Instance with IAM role",
        rules=(
            IngressRule(
                source=GroupSource(group=COMPUTE_GROUP),
                port=db_port,
                description="Only allow EC2 Instance with IAM role",
            ),
            IngressRule(
                source=GroupSource(group=BASTION_GROUP),
                port=db_port,
                description="Allow MySQL access from the Bastion Host",
            ),
        ),
    )
    bastion = SecurityGroup(
        logical_id=BASTION_GROUP,
        description="Bastion host, reached through Session Manager",
        public=True,
    )
    return (alb, compute, database, bastion)


def trust_edges(groups: Sequence[SecurityGroup]) -> list[tuple[str, str]]:
    """`(source, target)` for every group-sourced rule."""
    return [
        (source, group.logical_id)
        for group in groups
        for source in group.trusted_sources
    ]


def trust_order(groups: Sequence[SecurityGroup]) -> list[SecurityGroup]:
    """
    Groups ordered so every trust source precedes the groups trusting it.

    Raises PolicyViolationError naming a group on the cycle if the trust
    graph is cyclic.
    """
    by_id = {g.logical_id: g for g in groups}
    visiting: list[str] = []
    done: set[str] = set()
    order: list[SecurityGroup] = []

    def visit(logical_id: str) -> None:
        if logical_id in done:
            return
        if logical_id in visiting:
            cycle = visiting[visiting.index(logical_id):] + [logical_id]
            raise PolicyViolationError(
                logical_id, f"trust cycle between security groups: {' -> '.join(cycle)}"
            )
        visiting.append(logical_id)
        for source in by_id[logical_id].trusted_sources:
            visit(source)
        visiting.pop()
        done.add(logical_id)
        order.append(by_id[logical_id])

    for group in groups:
        visit(group.logical_id)
    return order


def validate_policy(groups: Sequence[SecurityGroup]) -> list[SecurityGroup]:
    """Check the whole policy; returns the groups in trust order."""
    known = {g.logical_id for g in groups}
    for group in groups:
        for rule in group.rules:
            if isinstance(rule.source, CidrSource) and not group.public:
                raise PolicyViolationError(
                    group.logical_id,
                    f"private-tier group admits raw CIDR {rule.source.cidr} on port "
                    f"{rule.port}; ingress must reference a security group",
                )
            if isinstance(rule.source, GroupSource) and rule.source.group not in known:
                raise UnresolvedReferenceError(
                    group.logical_id,
                    f"ingress rule trusts unknown security group {rule.source.group!r}",
                )
    return trust_order(groups)


class SecurityPolicyComposer:
    """Builds, validates and materializes the tier trust chain."""

    def __init__(self, provider: ResourceProvider, config: Settings | None = None) -> None:
        self.provider = provider
        self.config = config or default_settings

    def compose(self) -> tuple[SecurityGroup, ...]:
        groups = compose_trust_chain(
            web_port=self.config.compute.http_port,
            db_port=self.config.database.port,
        )
        validate_policy(groups)
        return groups

    def build(self, network: Network) -> SecurityGroupSet:
        return self.materialize(self.compose(), network)

    def materialize(
        self,
        groups: Sequence[SecurityGroup],
        network: Network,
    ) -> SecurityGroupSet:
        """
        Declare every group, then one ingress resource per trust edge.

        Validation runs first, so a violating policy never reaches the
        provider.
        """
        ordered = validate_policy(groups)
        if network.ref is None:
            raise UnresolvedReferenceError(network.logical_id, "network is not materialized")

        declared: dict[str, SecurityGroup] = {}
        for group in ordered:
            ref = self.provider.create(
                ResourceType.SECURITY_GROUP,
                group.logical_id,
                {
                    "GroupDescription": group.description,
                    "VpcId": network.physical_id,
                    "SecurityGroupIngress": [
                        {
                            "CidrIp": rule.source.cidr,
                            "IpProtocol": rule.protocol.value,
                            "FromPort": rule.port,
                            "ToPort": rule.port,
                            "Description": rule.description,
                        }
                        for rule in group.rules
                        if isinstance(rule.source, CidrSource)
                    ],
                    "SecurityGroupEgress": [
                        {
                            "CidrIp": ANY_IPV4,
                            "IpProtocol": "-1",
                            "Description": "Allow all outbound traffic by default",
                        }
                    ],
                },
                depends_on=[network.ref],
            )
            declared[group.logical_id] = group.model_copy(update={"ref": ref})

        for group in ordered:
            target = declared[group.logical_id]
            for rule in group.rules:
                if not isinstance(rule.source, GroupSource):
                    continue
                source = declared[rule.source.group]
                self.provider.create(
                    ResourceType.SECURITY_GROUP_INGRESS,
                    f"{target.logical_id}-from-{source.logical_id}-{rule.port}",
                    {
                        "GroupId": target.group_id,
                        "SourceSecurityGroupId": source.group_id,
                        "IpProtocol": rule.protocol.value,
                        "FromPort": rule.port,
                        "ToPort": rule.port,
                        "Description": rule.description,
                    },
                    depends_on=[target.ref, source.ref],
                )

        for source, target in trust_edges(ordered):
            logger.info("Trust edge %s -> %s", source, target)

        return SecurityGroupSet(
            alb=declared[ALB_GROUP],
            compute=declared[COMPUTE_GROUP],
            database=declared[DATABASE_GROUP],
            bastion=declared[BASTION_GROUP],
        )
