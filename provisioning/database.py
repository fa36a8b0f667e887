"""
Database Cluster Provisioner — RDS instances in the isolated tier.

Each instance gets its own generated credential (delegated to the secret
store), multi-AZ, IAM database authentication and, by default, a DESTROY
removal policy: no final snapshot is kept, so tearing the stack down loses
all data. That default suits non-production stacks only; set
`DB_REMOVAL_POLICY=snapshot` or `retain` otherwise; either keeps the
credentials and their attachment to the instance past teardown.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from config.settings import Settings, settings as default_settings
from provisioning.errors import PlacementError, UnresolvedReferenceError
from provisioning.provider import ResourceProvider
from provisioning.secrets import SecretStore
from schemas.network import Subnet, SubnetTier
from schemas.resources import DatabaseInstance, RemovalPolicy, ResourceRef, ResourceType, SecretRef
from schemas.security import SecurityGroup

logger = logging.getLogger(__name__)

FLEET_NAME = "rds-instance"
SUBNET_GROUP = "rds-subnet-group"


class DatabaseClusterProvisioner:
    """Creates M database instances, one per isolated subnet."""

    def __init__(
        self,
        provider: ResourceProvider,
        secret_store: SecretStore,
        config: Settings | None = None,
        removal_policy: RemovalPolicy | None = None,
    ) -> None:
        self.provider = provider
        self.secret_store = secret_store
        self.config = config or default_settings
        self.removal_policy = removal_policy or RemovalPolicy(self.config.database.removal_policy)

    def provision(
        self,
        fleet_size: int,
        subnets: Sequence[Subnet],
        security_group: SecurityGroup,
    ) -> tuple[DatabaseInstance, ...]:
        for subnet in subnets:
            if subnet.tier != SubnetTier.PRIVATE_ISOLATED:
                raise PlacementError(
                    subnet.logical_id,
                    f"database instances may only be placed in isolated subnets, not {subnet.tier.value}",
                )
        if len(subnets) < fleet_size:
            raise PlacementError(
                FLEET_NAME,
                f"{fleet_size} database instances requested but only {len(subnets)} isolated subnets",
            )
        if fleet_size == 0:
            return ()
        if security_group.ref is None:
            raise UnresolvedReferenceError(security_group.logical_id, "security group is not materialized")

        if self.removal_policy == RemovalPolicy.DESTROY:
            logger.warning(
                "Database removal policy is DESTROY: teardown deletes %d instance(s) without a snapshot",
                fleet_size,
            )

        subnet_group = self.provider.create(
            ResourceType.DB_SUBNET_GROUP,
            SUBNET_GROUP,
            {
                "DBSubnetGroupDescription": "Isolated subnets for the database tier",
                "SubnetIds": [s.physical_id for s in subnets],
            },
            depends_on=[s.ref for s in subnets],
            removal_policy=self._supporting_policy(keep_on_snapshot=False),
        )

        instances = []
        for i in range(fleet_size):
            logical_id = f"{FLEET_NAME}-{i}"
            subnet = subnets[i]
            secret = self.secret_store.create_database_secret(
                f"{logical_id}-secret",
                self.config.database.master_username,
                removal_policy=self._supporting_policy(keep_on_snapshot=True),
            )
            ref = self._declare_instance(logical_id, subnet, subnet_group, security_group, secret)
            self._attach_secret(logical_id, ref, secret)
            instances.append(
                DatabaseInstance(
                    logical_id=logical_id,
                    ref=ref,
                    subnet_logical_id=subnet.logical_id,
                    security_group_id=security_group.group_id,
                    secret=secret,
                    multi_az=self.config.database.multi_az,
                    iam_authentication=self.config.database.iam_authentication,
                    removal_policy=self.removal_policy,
                )
            )

        logger.info(
            "Database cluster: %d x %s %s",
            len(instances),
            self.config.database.engine,
            self.config.database.engine_version,
        )
        return tuple(instances)

    def _supporting_policy(self, keep_on_snapshot: bool) -> RemovalPolicy | None:
        """
        Removal policy for resources a kept database still needs.

        Credentials are kept for a final snapshot as well as a retained
        instance; the subnet group only for a retained one.
        """
        if self.removal_policy == RemovalPolicy.RETAIN:
            return RemovalPolicy.RETAIN
        if self.removal_policy == RemovalPolicy.SNAPSHOT and keep_on_snapshot:
            return RemovalPolicy.RETAIN
        return None

    def _attach_secret(self, logical_id: str, instance: ResourceRef, secret: SecretRef) -> ResourceRef:
        """Link the secret to its instance so it also carries host, port and engine."""
        secret_record = self.provider.describe(secret.logical_id)
        depends_on = [instance] if secret_record is None else [secret_record.ref, instance]
        return self.provider.create(
            ResourceType.SECRET_TARGET_ATTACHMENT,
            f"{logical_id}-secret-attachment",
            {
                "SecretId": secret.secret_arn,
                "TargetId": instance.physical_id,
                "TargetType": ResourceType.DB_INSTANCE.value,
            },
            depends_on=depends_on,
            removal_policy=self._supporting_policy(keep_on_snapshot=True),
        )

    def _declare_instance(
        self,
        logical_id: str,
        subnet: Subnet,
        subnet_group: ResourceRef,
        security_group: SecurityGroup,
        secret: SecretRef,
    ) -> ResourceRef:
        db = self.config.database
        properties = {
            "Engine": db.engine,
            "EngineVersion": db.engine_version,
            "DBInstanceClass": db.instance_class,
            "StorageType": db.storage_type,
            "AllocatedStorage": str(db.allocated_storage),
            "Port": str(db.port),
            "MultiAZ": db.multi_az,
            "EnableIAMDatabaseAuthentication": db.iam_authentication,
            "PubliclyAccessible": False,
            "DeletionProtection": self.removal_policy == RemovalPolicy.RETAIN,
            "VPCSecurityGroups": [security_group.group_id],
            "DBSubnetGroupName": subnet_group.physical_id,
            "MasterUsername": secret.username,
            "MasterUserPassword": secret.password_reference(),
        }
        # Multi-AZ instances pick their own zones
        if not db.multi_az:
            properties["AvailabilityZone"] = subnet.availability_zone

        return self.provider.create(
            ResourceType.DB_INSTANCE,
            logical_id,
            properties,
            depends_on=[subnet_group, security_group.ref],
            removal_policy=self.removal_policy,
        )
