"""
Load Balancer Binder — internet-facing ALB in front of the compute fleet.

Target membership is fixed at provisioning time to exactly the fleet
passed in.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from config.settings import Settings, settings as default_settings
from provisioning.errors import PlacementError, UnresolvedReferenceError
from provisioning.provider import ResourceProvider
from schemas.network import Network, SubnetTier
from schemas.resources import ComputeInstance, LoadBalancerBinding, ResourceType
from schemas.security import SecurityGroup

logger = logging.getLogger(__name__)

LOAD_BALANCER = "app-load-balancer"
LISTENER = "http-listener"
TARGET_GROUP = "ApplicationFleet"


class LoadBalancerBinder:
    def __init__(self, provider: ResourceProvider, config: Settings | None = None) -> None:
        self.provider = provider
        self.config = config or default_settings

    def bind(
        self,
        network: Network,
        security_group: SecurityGroup,
        fleet: Sequence[ComputeInstance],
    ) -> LoadBalancerBinding:
        if not fleet:
            raise UnresolvedReferenceError(TARGET_GROUP, "no compute instances to register as targets")
        if not security_group.public:
            raise PlacementError(
                security_group.logical_id,
                "an internet-facing load balancer needs the public-facing security group",
            )
        if security_group.ref is None:
            raise UnresolvedReferenceError(security_group.logical_id, "security group is not materialized")

        subnets = network.subnets_in(SubnetTier.PUBLIC)
        if not subnets:
            raise PlacementError(LOAD_BALANCER, "no public subnets for an internet-facing load balancer")

        port = self.config.compute.http_port

        load_balancer = self.provider.create(
            ResourceType.LOAD_BALANCER,
            LOAD_BALANCER,
            {
                "Type": "application",
                "Scheme": "internet-facing",
                "Subnets": [s.physical_id for s in subnets],
                "SecurityGroups": [security_group.group_id],
            },
            depends_on=[*(s.ref for s in subnets), security_group.ref],
        )

        target_ids = tuple(instance.ref.physical_id for instance in fleet)
        target_group = self.provider.create(
            ResourceType.TARGET_GROUP,
            TARGET_GROUP,
            {
                "VpcId": network.physical_id,
                "Port": port,
                "Protocol": "HTTP",
                "TargetType": "instance",
                "HealthCheckProtocol": "HTTP",
                "HealthCheckPort": str(port),
                "HealthCheckPath": "/",
                "Targets": [{"Id": target_id, "Port": port} for target_id in target_ids],
            },
            depends_on=[network.ref, *(instance.ref for instance in fleet)],
        )

        listener = self.provider.create(
            ResourceType.LISTENER,
            LISTENER,
            {
                "LoadBalancerArn": load_balancer.arn,
                "Port": port,
                "Protocol": "HTTP",
                "DefaultActions": [{"Type": "forward", "TargetGroupArn": target_group.arn}],
            },
            depends_on=[load_balancer, target_group],
        )

        logger.info("Load balancer %s forwarding :%d to %d targets", LOAD_BALANCER, port, len(target_ids))
        return LoadBalancerBinding(
            load_balancer=load_balancer,
            listener=listener,
            target_group=target_group,
            target_ids=target_ids,
            port=port,
        )
