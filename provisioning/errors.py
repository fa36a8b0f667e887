"""
Synthesis-time errors.

Every error is fatal to the current synthesis and names the logical
identifier that caused the failure.
"""

from __future__ import annotations


class ProvisioningError(Exception):
    """Base class for all synthesis failures."""

    def __init__(self, logical_id: str, message: str) -> None:
        self.logical_id = logical_id
        self.message = message
        super().__init__(f"[{logical_id}] {message}")


class AllocationError(ProvisioningError):
    """Subnet/CIDR planning is infeasible."""


class PlacementError(ProvisioningError):
    """Not enough (or the wrong kind of) subnet slots for the requested fleet."""


class CapacityError(ProvisioningError):
    """Fleet size exceeds the subnet slots and cycling is disabled."""


class UnresolvedReferenceError(ProvisioningError):
    """A step needs resources that do not exist yet."""


class PolicyViolationError(ProvisioningError):
    """A security-group rule breaks the tier trust policy."""


class DependencyCycleError(ProvisioningError):
    """The provisioning task graph is not acyclic."""
