"""
Unit tests for the Load Balancer Binder.
"""

from __future__ import annotations

import pytest

from provisioning.compute import ComputeFleetProvisioner
from provisioning.errors import PlacementError, UnresolvedReferenceError
from provisioning.load_balancer import LISTENER, LOAD_BALANCER, TARGET_GROUP, LoadBalancerBinder


@pytest.fixture
def fleet(provider, images, config, network, security_groups, compute_role):
    return ComputeFleetProvisioner(provider, images, config).provision(
        2, network.egress_subnets, security_groups.compute, compute_role
    )


@pytest.fixture
def lb_binder(provider, config):
    return LoadBalancerBinder(provider, config)


class TestLoadBalancerBinder:

    def test_targets_are_exactly_the_fleet(self, lb_binder, network, security_groups, fleet):
        binding = lb_binder.bind(network, security_groups.alb, fleet)
        assert binding.target_ids == tuple(i.ref.physical_id for i in fleet)
        assert binding.port == 80

    def test_internet_facing_in_public_subnets(self, provider, lb_binder, network, security_groups, fleet):
        lb_binder.bind(network, security_groups.alb, fleet)
        props = provider.describe(LOAD_BALANCER).properties
        assert props["Scheme"] == "internet-facing"
        assert props["Subnets"] == [s.physical_id for s in network.public_subnets]
        assert props["SecurityGroups"] == [security_groups.alb.group_id]

    def test_listener_forwards_to_target_group(self, provider, lb_binder, network, security_groups, fleet):
        binding = lb_binder.bind(network, security_groups.alb, fleet)
        listener = provider.describe(LISTENER).properties
        assert listener["Port"] == 80
        assert listener["DefaultActions"] == [
            {"Type": "forward", "TargetGroupArn": binding.target_group.arn}
        ]
        targets = provider.describe(TARGET_GROUP).properties["Targets"]
        assert [t["Id"] for t in targets] == list(binding.target_ids)
        assert provider.describe(TARGET_GROUP).properties["HealthCheckPort"] == "80"

    def test_empty_fleet(self, lb_binder, network, security_groups):
        with pytest.raises(UnresolvedReferenceError):
            lb_binder.bind(network, security_groups.alb, ())

    def test_private_group_rejected(self, lb_binder, network, security_groups, fleet):
        with pytest.raises(PlacementError):
            lb_binder.bind(network, security_groups.compute, fleet)
