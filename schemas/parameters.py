"""
Stack parameters: the recognized option set supplied by the caller.
"""

from __future__ import annotations

import ipaddress
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.settings import Settings, settings as default_settings


class StackParameters(BaseModel):
    """
    `{baseCidr, azCount, computeFleetSize, dbFleetSize, trustedRepoRef}`.

    Accepts the camelCase option names as well as snake_case field names.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    base_cidr: str = Field(alias="baseCidr")
    az_count: int = Field(ge=1, alias="azCount")
    compute_fleet_size: int = Field(ge=1, alias="computeFleetSize")
    db_fleet_size: int = Field(ge=0, alias="dbFleetSize")
    trusted_repo_ref: str = Field(min_length=1, alias="trustedRepoRef")

    @field_validator("base_cidr")
    @classmethod
    def _valid_cidr(cls, value: str) -> str:
        ipaddress.IPv4Network(value)
        return value

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> StackParameters:
        """Build from settings, then apply any non-empty `overrides` (e.g. CDK context)."""
        config = config or default_settings
        values: dict[str, Any] = {
            "baseCidr": config.network.base_cidr,
            "azCount": config.network.az_count,
            "computeFleetSize": config.compute.fleet_size,
            "dbFleetSize": config.database.fleet_size,
            "trustedRepoRef": config.identity.trusted_repo_ref,
        }
        for key, value in (overrides or {}).items():
            if value is not None:
                values[key] = value
        return cls.model_validate(values)
