"""
Unit tests for the Identity Binder.
"""

from __future__ import annotations

import pytest

from provisioning.database import DatabaseClusterProvisioner
from provisioning.errors import UnresolvedReferenceError
from provisioning.identity import (
    BASTION_ROLE,
    CI_OIDC_PROVIDER,
    CI_ROLE,
    COMPUTE_ROLE,
    DB_CONNECT_ACTION,
    SECRET_READ_ACTION,
)


@pytest.fixture
def databases(provider, secret_store, config, network, security_groups):
    return DatabaseClusterProvisioner(provider, secret_store, config).provision(
        2, network.isolated_subnets, security_groups.database
    )


class TestFederatedCiRole:
    """Tests for the OIDC-trusted CI role."""

    def test_trust_bound_to_repository(self, binder):
        role = binder.create_ci_role("repo:acme/infra:ref:refs/heads/main")
        statement = role.trust.to_document()["Statement"][0]

        assert statement["Action"] == "sts:AssumeRoleWithWebIdentity"
        assert statement["Principal"]["Federated"] == role.trust.federated
        assert statement["Condition"]["StringLike"] == {
            "token.actions.githubusercontent.com:sub": "repo:acme/infra:ref:refs/heads/main"
        }
        assert statement["Condition"]["StringEquals"] == {
            "token.actions.githubusercontent.com:aud": "sts.amazonaws.com"
        }

    def test_oidc_provider_declared(self, provider, binder):
        role = binder.create_ci_role()
        oidc = provider.describe(CI_OIDC_PROVIDER)
        assert oidc.properties["ClientIdList"] == ["sts.amazonaws.com"]
        assert role.trust.federated == oidc.ref.arn
        assert CI_OIDC_PROVIDER in provider.describe(CI_ROLE).depends_on

    def test_administrator_grant_retained(self, binder):
        role = binder.create_ci_role()
        assert role.managed_policy_arns == ("arn:aws:iam::aws:policy/AdministratorAccess",)


class TestServiceRoles:
    """Tests for EC2-assumable roles."""

    def test_trusted_by_service_only(self, compute_role):
        statement = compute_role.trust.to_document()["Statement"][0]
        assert statement["Principal"] == {"Service": "ec2.amazonaws.com"}
        assert "Condition" not in statement
        assert compute_role.statements == ()

    def test_instance_profile(self, provider, compute_role):
        profile = provider.describe(compute_role.instance_profile.logical_id)
        assert profile.properties["Roles"] == [compute_role.ref.physical_id]

    def test_compute_role_has_no_managed_policies(self, provider, compute_role):
        assert compute_role.managed_policy_arns == ()
        assert "ManagedPolicyArns" not in provider.describe(COMPUTE_ROLE).properties

    def test_bastion_reachable_through_session_manager(self, provider, bastion_role):
        ssm_core = "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"
        assert bastion_role.managed_policy_arns == (ssm_core,)
        assert provider.describe(BASTION_ROLE).properties["ManagedPolicyArns"] == [ssm_core]
        assert bastion_role.instance_profile is not None


class TestDatabaseBinding:
    """Tests for least-privilege binding to provisioned databases."""

    def test_before_any_database(self, binder, compute_role, bastion_role):
        with pytest.raises(UnresolvedReferenceError) as exc:
            binder.bind_database_access(compute_role, bastion_role, [])
        assert exc.value.logical_id == compute_role.logical_id

    def test_connect_scoped_to_every_database(self, binder, compute_role, bastion_role, databases):
        compute, _ = binder.bind_database_access(compute_role, bastion_role, databases)
        connect, = compute.statements_for(DB_CONNECT_ACTION)
        assert set(connect.resources) == {db.arn for db in databases}
        assert len(connect.resources) == len(databases)
        assert "*" not in connect.resources

    def test_secret_read_is_first_database_only(self, binder, compute_role, bastion_role, databases):
        compute, bastion = binder.bind_database_access(compute_role, bastion_role, databases)
        for role in (compute, bastion):
            read, = role.statements_for(SECRET_READ_ACTION)
            assert read.resources == (databases[0].secret.secret_arn,)

    def test_bastion_gets_no_connect(self, binder, compute_role, bastion_role, databases):
        _, bastion = binder.bind_database_access(compute_role, bastion_role, databases)
        assert bastion.statements_for(DB_CONNECT_ACTION) == ()

    def test_policy_documents_declared(self, provider, binder, compute_role, bastion_role, databases):
        binder.bind_database_access(compute_role, bastion_role, databases)
        policy = provider.describe(f"{compute_role.logical_id}-default-policy")
        statements = policy.properties["PolicyDocument"]["Statement"]
        assert [s["Action"] for s in statements] == [SECRET_READ_ACTION, DB_CONNECT_ACTION]
        assert policy.properties["Roles"] == [compute_role.ref.physical_id]
        assert set(policy.depends_on) >= {db.logical_id for db in databases}

    def test_input_roles_not_mutated(self, binder, compute_role, bastion_role, databases):
        binder.bind_database_access(compute_role, bastion_role, databases)
        assert compute_role.statements == ()
        assert bastion_role.statements == ()
