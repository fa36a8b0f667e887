"""
Provisioning Orchestrator — one forward synthesis pass over the task graph.

  network -> security_groups -> roles -> {bastion, compute_fleet, database_cluster}
          -> identity_binding -> load_balancer

Each component returns an immutable result; the orchestrator only hands
outputs along the graph edges and never shares a mutable collection
between components. Any failure aborts the whole synthesis.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from config.settings import Settings, settings as default_settings
from orchestration.task_graph import TaskGraph
from provisioning.bastion import BastionProvisioner
from provisioning.compute import ComputeFleetProvisioner
from provisioning.database import DatabaseClusterProvisioner
from provisioning.identity import BASTION_ROLE, COMPUTE_ROLE, IdentityBinder
from provisioning.images import ImageLookup, SsmDynamicReference
from provisioning.load_balancer import LoadBalancerBinder
from provisioning.network import NetworkTopologyBuilder
from provisioning.provider import ResourceProvider
from provisioning.secrets import ProviderSecretStore, SecretStore
from provisioning.security import SecurityGroupSet, SecurityPolicyComposer
from schemas.identity import Role
from schemas.network import Network
from schemas.parameters import StackParameters
from schemas.resources import (
    BastionHost,
    ComputeInstance,
    DatabaseInstance,
    LoadBalancerBinding,
    RemovalPolicy,
    ResourceRecord,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InitialRoles:
    ci: Role
    compute: Role
    bastion: Role


@dataclass(frozen=True)
class SynthesisResult:
    """Complete resource graph produced by one synthesis pass."""

    parameters: StackParameters
    network: Network
    security_groups: SecurityGroupSet
    ci_role: Role
    compute_role: Role
    bastion_role: Role
    bastion: BastionHost
    compute_fleet: tuple[ComputeInstance, ...]
    databases: tuple[DatabaseInstance, ...]
    load_balancer: LoadBalancerBinding
    execution_levels: tuple[tuple[str, ...], ...]
    resources: tuple[ResourceRecord, ...]

    def resource_map(self) -> dict[str, str]:
        """Logical identifier -> physical identifier."""
        return {r.logical_id: r.ref.physical_id for r in self.resources}

    def to_manifest(self) -> dict[str, Any]:
        """JSON-compatible view of the graph, ready for the provider API."""
        return {
            "parameters": self.parameters.model_dump(by_alias=True),
            "execution_levels": [list(level) for level in self.execution_levels],
            "resources": [r.to_manifest_entry() for r in self.resources],
        }


@dataclass(frozen=True)
class TeardownReport:
    deleted: tuple[str, ...]
    retained: tuple[str, ...]
    snapshotted: tuple[str, ...]


class ProvisioningOrchestrator:
    """Wires the components into a task graph and runs it."""

    def __init__(
        self,
        provider: ResourceProvider,
        secret_store: SecretStore | None = None,
        image_lookup: ImageLookup | None = None,
        parameters: StackParameters | None = None,
        config: Settings | None = None,
        max_workers: int | None = None,
        cycle_subnets: bool | None = None,
    ) -> None:
        self.config = config or default_settings
        self.provider = provider
        self.secret_store = secret_store or ProviderSecretStore(provider)
        self.image_lookup = image_lookup or SsmDynamicReference(self.config.compute.image_parameter)
        self.parameters = parameters or StackParameters.from_settings(self.config)
        self.max_workers = max_workers or self.config.synthesis.max_workers

        self.network_builder = NetworkTopologyBuilder(provider, self.config)
        self.security_composer = SecurityPolicyComposer(provider, self.config)
        self.identity_binder = IdentityBinder(provider, self.config)
        self.bastion_provisioner = BastionProvisioner(provider, self.image_lookup, self.config)
        self.compute_provisioner = ComputeFleetProvisioner(
            provider, self.image_lookup, self.config, cycle_subnets=cycle_subnets
        )
        self.database_provisioner = DatabaseClusterProvisioner(
            provider, self.secret_store, self.config
        )
        self.load_balancer_binder = LoadBalancerBinder(provider, self.config)

    def build_graph(self) -> TaskGraph:
        params = self.parameters
        graph = TaskGraph()

        graph.add(
            "network",
            lambda _: self.network_builder.build(params.base_cidr, params.az_count),
        )
        graph.add(
            "security_groups",
            lambda inputs: self.security_composer.build(inputs["network"]),
            depends_on=["network"],
        )
        graph.add(
            "roles",
            lambda _: self._create_roles(),
            depends_on=["security_groups"],
        )
        graph.add(
            "bastion",
            lambda inputs: self.bastion_provisioner.provision(
                inputs["network"],
                inputs["security_groups"].bastion,
                inputs["roles"].bastion,
            ),
            depends_on=["network", "security_groups", "roles"],
        )
        graph.add(
            "compute_fleet",
            lambda inputs: self.compute_provisioner.provision(
                params.compute_fleet_size,
                inputs["network"].egress_subnets,
                inputs["security_groups"].compute,
                inputs["roles"].compute,
            ),
            depends_on=["network", "security_groups", "roles"],
        )
        graph.add(
            "database_cluster",
            lambda inputs: self.database_provisioner.provision(
                params.db_fleet_size,
                inputs["network"].isolated_subnets,
                inputs["security_groups"].database,
            ),
            depends_on=["network", "security_groups", "roles"],
        )
        graph.add(
            "identity_binding",
            self._bind_identities,
            depends_on=["roles", "bastion", "compute_fleet", "database_cluster"],
        )
        graph.add(
            "load_balancer",
            lambda inputs: self.load_balancer_binder.bind(
                inputs["network"],
                inputs["security_groups"].alb,
                inputs["compute_fleet"],
            ),
            depends_on=["network", "security_groups", "compute_fleet", "identity_binding"],
        )
        return graph

    def synthesize(self) -> SynthesisResult:
        """Run the whole graph once; raises the first component error."""
        graph = self.build_graph()
        levels = graph.levels()
        logger.info(
            "Synthesizing %s: %s",
            self.config.stack_name,
            " -> ".join("{" + ", ".join(level) + "}" for level in levels),
        )

        outputs = graph.execute(max_workers=self.max_workers)
        compute_role, bastion_role = outputs["identity_binding"]

        result = SynthesisResult(
            parameters=self.parameters,
            network=outputs["network"],
            security_groups=outputs["security_groups"],
            ci_role=outputs["roles"].ci,
            compute_role=compute_role,
            bastion_role=bastion_role,
            bastion=outputs["bastion"],
            compute_fleet=outputs["compute_fleet"],
            databases=outputs["database_cluster"],
            load_balancer=outputs["load_balancer"],
            execution_levels=tuple(tuple(level) for level in levels),
            resources=tuple(self.provider.records()),
        )
        logger.info("Synthesis complete: %d resources", len(result.resources))
        return result

    def teardown(self, result: SynthesisResult | None = None) -> TeardownReport:
        """
        Delete the resources of `result` (default: everything the provider
        holds) in reverse creation order.
        """
        deleted: list[str] = []
        retained: list[str] = []
        snapshotted: list[str] = []

        records = self.provider.records() if result is None else [
            record for record in result.resources
            if self.provider.describe(record.logical_id) is not None
        ]
        for record in reversed(records):
            if record.removal_policy == RemovalPolicy.RETAIN:
                retained.append(record.logical_id)
                continue
            if record.removal_policy == RemovalPolicy.SNAPSHOT:
                snapshotted.append(record.logical_id)
            self.provider.delete(record.logical_id)
            deleted.append(record.logical_id)

        logger.info(
            "Teardown: %d deleted, %d retained, %d snapshotted",
            len(deleted),
            len(retained),
            len(snapshotted),
        )
        return TeardownReport(
            deleted=tuple(deleted),
            retained=tuple(retained),
            snapshotted=tuple(snapshotted),
        )

    def _create_roles(self) -> InitialRoles:
        return InitialRoles(
            ci=self.identity_binder.create_ci_role(self.parameters.trusted_repo_ref),
            compute=self.identity_binder.create_service_role(COMPUTE_ROLE),
            bastion=self.identity_binder.create_bastion_role(BASTION_ROLE),
        )

    def _bind_identities(self, inputs: Mapping[str, Any]) -> tuple[Role, Role]:
        roles: InitialRoles = inputs["roles"]
        return self.identity_binder.bind_database_access(
            roles.compute,
            roles.bastion,
            inputs["database_cluster"],
        )
