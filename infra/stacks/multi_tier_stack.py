"""
Multi-Tier Stack — VPC, bastion, web fleet behind an ALB, and RDS tier.

Runs the provisioning orchestrator against a CDK-backed provider, so the
synthesized template is exactly the resource graph the orchestrator
produced.
"""

from __future__ import annotations

import aws_cdk as cdk
from constructs import Construct

from config.settings import Settings
from infra.cdk_provider import CdkResourceProvider
from orchestration.orchestrator import ProvisioningOrchestrator
from provisioning.images import SsmDynamicReference
from provisioning.load_balancer import LOAD_BALANCER
from schemas.parameters import StackParameters


class MultiTierStack(cdk.Stack):
    """Secure multi-tier topology."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        parameters: StackParameters,
        config: Settings | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        provider = CdkResourceProvider(self)
        orchestrator = ProvisioningOrchestrator(
            provider,
            image_lookup=SsmDynamicReference(),
            parameters=parameters,
            config=config,
        )
        self.result = orchestrator.synthesize()

        # ---- Outputs ----
        cdk.CfnOutput(self, "VpcId", value=self.result.network.physical_id)
        cdk.CfnOutput(
            self,
            "LoadBalancerDns",
            value=provider.construct(LOAD_BALANCER).get_att("DNSName").to_string(),
        )
        cdk.CfnOutput(self, "CiRoleArn", value=self.result.ci_role.arn)
        for db in self.result.databases:
            cdk.CfnOutput(
                self,
                f"{db.logical_id}-secret-arn",
                value=db.secret.secret_arn,
                description=f"Credentials for {db.logical_id}",
            )
