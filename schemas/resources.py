"""
Resource references and the provisioned workload entities.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResourceType(StrEnum):
    """CloudFormation type names for every resource the stack declares."""

    VPC = "AWS::EC2::VPC"
    SUBNET = "AWS::EC2::Subnet"
    INTERNET_GATEWAY = "AWS::EC2::InternetGateway"
    GATEWAY_ATTACHMENT = "AWS::EC2::VPCGatewayAttachment"
    ELASTIC_IP = "AWS::EC2::EIP"
    NAT_GATEWAY = "AWS::EC2::NatGateway"
    ROUTE_TABLE = "AWS::EC2::RouteTable"
    ROUTE = "AWS::EC2::Route"
    ROUTE_TABLE_ASSOCIATION = "AWS::EC2::SubnetRouteTableAssociation"
    SECURITY_GROUP = "AWS::EC2::SecurityGroup"
    SECURITY_GROUP_INGRESS = "AWS::EC2::SecurityGroupIngress"
    INSTANCE = "AWS::EC2::Instance"
    DB_SUBNET_GROUP = "AWS::RDS::DBSubnetGroup"
    DB_INSTANCE = "AWS::RDS::DBInstance"
    SECRET = "AWS::SecretsManager::Secret"
    SECRET_TARGET_ATTACHMENT = "AWS::SecretsManager::SecretTargetAttachment"
    LOAD_BALANCER = "AWS::ElasticLoadBalancingV2::LoadBalancer"
    LISTENER = "AWS::ElasticLoadBalancingV2::Listener"
    TARGET_GROUP = "AWS::ElasticLoadBalancingV2::TargetGroup"
    ROLE = "AWS::IAM::Role"
    POLICY = "AWS::IAM::Policy"
    INSTANCE_PROFILE = "AWS::IAM::InstanceProfile"
    OIDC_PROVIDER = "AWS::IAM::OIDCProvider"


class RemovalPolicy(StrEnum):
    """What happens to a resource when the stack is torn down."""

    DESTROY = "destroy"
    SNAPSHOT = "snapshot"
    RETAIN = "retain"


class ResourceRef(BaseModel):
    """Handle returned by the provider for one created resource."""

    model_config = ConfigDict(frozen=True)

    logical_id: str
    resource_type: ResourceType
    physical_id: str
    arn: str


class ResourceRecord(BaseModel):
    """Everything the provider knows about a declared resource."""

    model_config = ConfigDict(frozen=True)

    ref: ResourceRef
    properties: dict[str, Any] = Field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    removal_policy: RemovalPolicy | None = None

    @property
    def logical_id(self) -> str:
        return self.ref.logical_id

    def to_manifest_entry(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "logical_id": self.ref.logical_id,
            "type": self.ref.resource_type.value,
            "physical_id": self.ref.physical_id,
            "arn": self.ref.arn,
            "depends_on": list(self.depends_on),
            "removal_policy": self.removal_policy.value if self.removal_policy else None,
            "properties": self.properties,
        }


class SecretRef(BaseModel):
    """Opaque credential reference. The secret value itself is never held here."""

    model_config = ConfigDict(frozen=True)

    logical_id: str
    secret_id: str
    secret_arn: str
    username: str

    def password_reference(self) -> str:
        """CloudFormation dynamic reference resolving the password at deploy time."""
        return f"{{{{resolve:secretsmanager:{self.secret_arn}:SecretString:password}}}}"


class ComputeInstance(BaseModel):
    """Application node. Created once per fleet slot, never mutated."""

    model_config = ConfigDict(frozen=True)

    logical_id: str
    ref: ResourceRef
    subnet_logical_id: str
    subnet_index: int
    security_group_id: str
    role_logical_id: str
    instance_type: str
    image_id: str


class BastionHost(BaseModel):
    """Jump host in a public subnet with its own group and role."""

    model_config = ConfigDict(frozen=True)

    logical_id: str
    ref: ResourceRef
    subnet_logical_id: str
    security_group_id: str
    role_logical_id: str


class DatabaseInstance(BaseModel):
    """RDS instance placed in an isolated subnet."""

    model_config = ConfigDict(frozen=True)

    logical_id: str
    ref: ResourceRef
    subnet_logical_id: str
    security_group_id: str
    secret: SecretRef
    multi_az: bool
    iam_authentication: bool
    removal_policy: RemovalPolicy

    @property
    def arn(self) -> str:
        return self.ref.arn


class LoadBalancerBinding(BaseModel):
    """Internet-facing load balancer, its listener and the fixed target group."""

    model_config = ConfigDict(frozen=True)

    load_balancer: ResourceRef
    listener: ResourceRef
    target_group: ResourceRef
    target_ids: tuple[str, ...]
    port: int
