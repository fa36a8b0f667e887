"""
Centralized configuration for the multi-tier provisioning stack.

All settings are loaded from environment variables with sensible defaults
matching the reference topology. In CI these are injected as pipeline
variables; the CDK app may further override the stack parameters from
synthesis context.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings
from pydantic import Field


class AWSSettings(BaseSettings):
    """Core AWS configuration."""

    region: str = Field(default="us-east-1", alias="AWS_REGION")
    account_id: str = Field(default="123456789012", alias="AWS_ACCOUNT_ID")
    availability_zones: list[str] = Field(
        default_factory=list,
        alias="AWS_AVAILABILITY_ZONES",
        description="Explicit AZ names; derived from the region when empty",
    )

    def zone_names(self, count: int) -> list[str]:
        """First `count` availability zone names for the configured region."""
        if self.availability_zones:
            return list(self.availability_zones[:count])
        return [f"{self.region}{chr(ord('a') + i)}" for i in range(count)]


class NetworkSettings(BaseSettings):
    """VPC range and subnet tier layout."""

    base_cidr: str = Field(default="10.0.0.0/16", alias="BASE_CIDR")
    az_count: int = Field(default=2, alias="AZ_COUNT")
    public_name: str = Field(default="public")
    public_mask: int = Field(default=24, alias="PUBLIC_SUBNET_MASK")
    egress_name: str = Field(default="private-subnet-egress")
    egress_mask: int = Field(default=24, alias="EGRESS_SUBNET_MASK")
    isolated_name: str = Field(default="private-subnet-rds")
    isolated_mask: int = Field(default=28, alias="ISOLATED_SUBNET_MASK")
    nat_gateways: int = Field(default=1, alias="NAT_GATEWAYS")


class ComputeSettings(BaseSettings):
    """Application fleet configuration."""

    fleet_size: int = Field(default=2, alias="COMPUTE_FLEET_SIZE")
    instance_type: str = Field(default="t3.micro", alias="COMPUTE_INSTANCE_TYPE")
    cycle_subnets: bool = Field(
        default=True,
        alias="COMPUTE_CYCLE_SUBNETS",
        description="Wrap instances round the egress subnets when the fleet outgrows them",
    )
    http_port: int = Field(default=80)
    image_parameter: str = Field(
        default="/aws/service/ami-amazon-linux-latest/al2023-ami-kernel-default-x86_64",
        alias="COMPUTE_IMAGE_PARAMETER",
    )
    bastion_name: str = Field(default="MyBastionHost")
    bastion_instance_type: str = Field(default="t3.nano")


class DatabaseSettings(BaseSettings):
    """RDS fleet configuration."""

    fleet_size: int = Field(default=2, alias="DB_FLEET_SIZE")
    engine: str = Field(default="mysql")
    engine_version: str = Field(default="8.0.39", alias="DB_ENGINE_VERSION")
    instance_class: str = Field(default="db.t3.micro", alias="DB_INSTANCE_CLASS")
    storage_type: str = Field(default="gp3")
    allocated_storage: int = Field(default=20)
    port: int = Field(default=3306)
    master_username: str = Field(default="health_tech_admin", alias="DB_MASTER_USERNAME")
    multi_az: bool = Field(default=True)
    iam_authentication: bool = Field(default=True)
    removal_policy: str = Field(
        default="destroy",
        alias="DB_REMOVAL_POLICY",
        description="destroy | snapshot | retain. destroy drops all data on teardown",
    )


class IdentitySettings(BaseSettings):
    """Federated CI trust and role configuration."""

    oidc_provider_url: str = Field(
        default="https://token.actions.githubusercontent.com",
        alias="OIDC_PROVIDER_URL",
    )
    oidc_audience: str = Field(default="sts.amazonaws.com", alias="OIDC_AUDIENCE")
    trusted_repo_ref: str = Field(
        default="repo:iac23/AWS-Migration:ref:refs/heads/main",
        alias="TRUSTED_REPO_REF",
    )
    ci_managed_policy: str = Field(default="AdministratorAccess")
    bastion_managed_policy: str = Field(
        default="AmazonSSMManagedInstanceCore",
        alias="BASTION_MANAGED_POLICY",
        description="Lets Session Manager reach the bastion, which has no ingress",
    )
    compute_service_principal: str = Field(default="ec2.amazonaws.com")


class SynthesisSettings(BaseSettings):
    """Execution of the provisioning task graph."""

    max_workers: int = Field(
        default=1,
        alias="SYNTH_MAX_WORKERS",
        description="Thread fan-out for independent graph nodes (1 = sequential)",
    )


class Settings(BaseSettings):
    """Root settings container aggregating all sub-configurations."""

    aws: AWSSettings = Field(default_factory=AWSSettings)
    network: NetworkSettings = Field(default_factory=NetworkSettings)
    compute: ComputeSettings = Field(default_factory=ComputeSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    identity: IdentitySettings = Field(default_factory=IdentitySettings)
    synthesis: SynthesisSettings = Field(default_factory=SynthesisSettings)

    stack_name: str = Field(default="MultiTierStack", alias="STACK_NAME")


# Module-level singleton
settings = Settings()
