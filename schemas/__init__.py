# Multi-Tier Provisioning — Schemas Package
from schemas.resources import (
    BastionHost,
    ComputeInstance,
    DatabaseInstance,
    LoadBalancerBinding,
    RemovalPolicy,
    ResourceRecord,
    ResourceRef,
    ResourceType,
    SecretRef,
)
from schemas.network import Network, Subnet, SubnetTier, TierSpec
from schemas.security import CidrSource, GroupSource, IngressRule, IpProtocol, SecurityGroup
from schemas.identity import Effect, PolicyStatement, Role, TrustPolicy
from schemas.parameters import StackParameters

__all__ = [
    "BastionHost",
    "ComputeInstance",
    "DatabaseInstance",
    "LoadBalancerBinding",
    "RemovalPolicy",
    "ResourceRecord",
    "ResourceRef",
    "ResourceType",
    "SecretRef",
    "Network",
    "Subnet",
    "SubnetTier",
    "TierSpec",
    "CidrSource",
    "GroupSource",
    "IngressRule",
    "IpProtocol",
    "SecurityGroup",
    "Effect",
    "PolicyStatement",
    "Role",
    "TrustPolicy",
    "StackParameters",
]
