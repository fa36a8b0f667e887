#!/usr/bin/env python3
"""
AWS CDK App — Secure multi-tier topology.

Stack parameters come from settings and may be overridden with context:

    cdk synth -c baseCidr=10.1.0.0/16 -c azCount=2 -c computeFleetSize=3
"""

import aws_cdk as cdk

from config.settings import settings
from infra.stacks.multi_tier_stack import MultiTierStack
from schemas.parameters import StackParameters

PARAMETER_KEYS = ("baseCidr", "azCount", "computeFleetSize", "dbFleetSize", "trustedRepoRef")

app = cdk.App()

env = cdk.Environment(
    account=app.node.try_get_context("account") or settings.aws.account_id,
    region=app.node.try_get_context("region") or settings.aws.region,
)

parameters = StackParameters.from_settings(
    settings,
    overrides={key: app.node.try_get_context(key) for key in PARAMETER_KEYS},
)

MultiTierStack(app, settings.stack_name, parameters=parameters, env=env)

app.synth()
