"""
Identity Binder — IAM roles and their policy statements.

Three identities:

  * a federated CI role trusted by an external OIDC provider and
    restricted to one repository/branch. It carries the AWS managed
    administrator policy: a deliberate high-privilege bootstrap grant,
    unlike the least-privilege roles below;
  * the compute role, trusted only by the EC2 service principal;
  * the bastion role, created with the bastion host.

Database grants name the concrete secret and instance ARNs produced by
database provisioning, so binding has to run after it.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from config.settings import Settings, settings as default_settings
from provisioning.errors import UnresolvedReferenceError
from provisioning.provider import ResourceProvider
from schemas.identity import PolicyStatement, Role, TrustPolicy
from schemas.resources import DatabaseInstance, ResourceType, SecretRef

logger = logging.getLogger(__name__)

CI_ROLE = "githubrole"
CI_OIDC_PROVIDER = "MyProvider"
COMPUTE_ROLE = "EC2Role"
BASTION_ROLE = "BastionRole"

SECRET_READ_ACTION = "secretsmanager:GetSecretValue"
DB_CONNECT_ACTION = "rds-db:connect"


def secret_read_statement(secret: SecretRef) -> PolicyStatement:
    """Read access to exactly one credential secret."""
    return PolicyStatement(
        actions=(SECRET_READ_ACTION,),
        resources=(secret.secret_arn,),
        sid="ReadDatabaseCredentials",
    )


def database_connect_statement(databases: Sequence[DatabaseInstance]) -> PolicyStatement:
    """IAM database authentication scoped to the provisioned instance ARNs."""
    return PolicyStatement(
        actions=(DB_CONNECT_ACTION,),
        resources=tuple(db.arn for db in databases),
        sid="ConnectWithIamAuth",
    )


class IdentityBinder:
    """Creates roles and attaches least-privilege statements once targets exist."""

    def __init__(self, provider: ResourceProvider, config: Settings | None = None) -> None:
        self.provider = provider
        self.config = config or default_settings

    # ---- Initial roles ----

    def create_ci_role(self, trusted_repo_ref: str | None = None) -> Role:
        """OIDC provider plus the federated role it may assume."""
        identity = self.config.identity
        repo_ref = trusted_repo_ref or identity.trusted_repo_ref
        issuer = identity.oidc_provider_url.removeprefix("https://")

        oidc = self.provider.create(
            ResourceType.OIDC_PROVIDER,
            CI_OIDC_PROVIDER,
            {
                "Url": identity.oidc_provider_url,
                "ClientIdList": [identity.oidc_audience],
            },
        )

        trust = TrustPolicy(
            federated=oidc.arn,
            conditions={
                "StringLike": {f"{issuer}:sub": repo_ref},
                "StringEquals": {f"{issuer}:aud": identity.oidc_audience},
            },
        )
        managed = (f"arn:aws:iam::aws:policy/{identity.ci_managed_policy}",)

        ref = self.provider.create(
            ResourceType.ROLE,
            CI_ROLE,
            {
                "AssumeRolePolicyDocument": trust.to_document(),
                "ManagedPolicyArns": list(managed),
            },
            depends_on=[oidc],
        )
        logger.warning(
            "CI role %s carries %s (broad administrative grant), trusted for %s",
            CI_ROLE,
            identity.ci_managed_policy,
            repo_ref,
        )
        return Role(logical_id=CI_ROLE, ref=ref, trust=trust, managed_policy_arns=managed)

    def create_service_role(
        self,
        logical_id: str,
        service: str | None = None,
        managed_policies: Sequence[str] = (),
    ) -> Role:
        """
        Role assumable only by a service principal, with an instance profile.

        `managed_policies` are AWS managed policy names, attached by ARN.
        """
        trust = TrustPolicy(service=service or self.config.identity.compute_service_principal)
        managed = tuple(f"arn:aws:iam::aws:policy/{name}" for name in managed_policies)

        properties: dict = {"AssumeRolePolicyDocument": trust.to_document()}
        if managed:
            properties["ManagedPolicyArns"] = list(managed)
        ref = self.provider.create(ResourceType.ROLE, logical_id, properties)
        profile = self.provider.create(
            ResourceType.INSTANCE_PROFILE,
            f"{logical_id}-instance-profile",
            {"Roles": [ref.physical_id]},
            depends_on=[ref],
        )
        logger.info("Created role %s trusted by %s", logical_id, trust.service)
        return Role(
            logical_id=logical_id,
            ref=ref,
            trust=trust,
            managed_policy_arns=managed,
            instance_profile=profile,
        )

    def create_bastion_role(self, logical_id: str = BASTION_ROLE) -> Role:
        """Service role for the bastion, reachable only through Session Manager."""
        return self.create_service_role(
            logical_id,
            managed_policies=(self.config.identity.bastion_managed_policy,),
        )

    # ---- Post-provisioning binding ----

    def bind_database_access(
        self,
        compute_role: Role,
        bastion_role: Role,
        databases: Sequence[DatabaseInstance],
    ) -> tuple[Role, Role]:
        """
        Grant the compute role secret-read on the first database's credentials
        and `rds-db:connect` on every database; grant the bastion the same
        secret-read.

        Returns updated copies of both roles.
        """
        if not databases:
            raise UnresolvedReferenceError(
                compute_role.logical_id,
                "database access cannot be bound before any database instance exists",
            )
        for db in databases:
            if not db.arn:
                raise UnresolvedReferenceError(db.logical_id, "database instance has no ARN")

        secret_read = secret_read_statement(databases[0].secret)
        connect = database_connect_statement(databases)
        db_refs = [db.ref for db in databases]

        compute_role = self._attach(compute_role, (secret_read, connect), db_refs)
        bastion_role = self._attach(bastion_role, (secret_read,), db_refs)

        logger.info(
            "Bound %s to %d database(s) and secret %s",
            compute_role.logical_id,
            len(databases),
            databases[0].secret.logical_id,
        )
        return compute_role, bastion_role

    def _attach(self, role: Role, statements: Sequence[PolicyStatement], depends_on) -> Role:
        combined = role.statements + tuple(statements)
        self.provider.create(
            ResourceType.POLICY,
            f"{role.logical_id}-default-policy",
            {
                "PolicyName": f"{role.logical_id}DefaultPolicy",
                "PolicyDocument": {
                    "Version": "2012-10-17",
                    "Statement": [s.to_document() for s in combined],
                },
                "Roles": [role.ref.physical_id],
            },
            depends_on=[role.ref, *depends_on],
        )
        return role.model_copy(update={"statements": combined})
