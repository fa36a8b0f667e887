"""
IAM roles, trust policies and policy statements.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from schemas.resources import ResourceRef


class Effect(StrEnum):
    ALLOW = "Allow"
    DENY = "Deny"


class PolicyStatement(BaseModel):
    """`resources x actions` grant, rendered into an IAM policy document."""

    model_config = ConfigDict(frozen=True)

    actions: tuple[str, ...]
    resources: tuple[str, ...]
    effect: Effect = Effect.ALLOW
    sid: str = ""

    def to_document(self) -> dict[str, Any]:
        statement: dict[str, Any] = {
            "Effect": self.effect.value,
            "Action": list(self.actions) if len(self.actions) > 1 else self.actions[0],
            "Resource": list(self.resources) if len(self.resources) > 1 else self.resources[0],
        }
        if self.sid:
            statement["Sid"] = self.sid
        return statement


class TrustPolicy(BaseModel):
    """
    Who may assume a role.

    Exactly one of `service` or `federated` is set. Federated trust is
    narrowed by `conditions` (IAM condition operator -> key -> value).
    """

    model_config = ConfigDict(frozen=True)

    service: str = ""
    federated: str = ""
    conditions: dict[str, dict[str, str]] = Field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        if self.federated:
            statement: dict[str, Any] = {
                "Effect": "Allow",
                "Principal": {"Federated": self.federated},
                "Action": "sts:AssumeRoleWithWebIdentity",
            }
        else:
            statement = {
                "Effect": "Allow",
                "Principal": {"Service": self.service},
                "Action": "sts:AssumeRole",
            }
        if self.conditions:
            statement["Condition"] = self.conditions
        return {"Version": "2012-10-17", "Statement": [statement]}


class Role(BaseModel):
    """An IAM role with its trust policy and attached grants."""

    model_config = ConfigDict(frozen=True)

    logical_id: str
    ref: ResourceRef
    trust: TrustPolicy
    statements: tuple[PolicyStatement, ...] = ()
    managed_policy_arns: tuple[str, ...] = ()
    instance_profile: ResourceRef | None = None

    @property
    def arn(self) -> str:
        return self.ref.arn

    def statements_for(self, action: str) -> tuple[PolicyStatement, ...]:
        return tuple(s for s in self.statements if action in s.actions)
