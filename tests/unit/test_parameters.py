"""
Unit tests for stack parameters and settings.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from config.settings import Settings
from schemas.parameters import StackParameters


class TestStackParameters:

    def test_defaults_from_settings(self, config):
        params = StackParameters.from_settings(config)
        assert params.base_cidr == "10.0.0.0/16"
        assert params.az_count == 2
        assert params.compute_fleet_size == 2
        assert params.db_fleet_size == 2
        assert params.trusted_repo_ref == "repo:iac23/AWS-Migration:ref:refs/heads/main"

    def test_overrides_ignore_none(self, config):
        params = StackParameters.from_settings(
            config, overrides={"computeFleetSize": 3, "dbFleetSize": None}
        )
        assert params.compute_fleet_size == 3
        assert params.db_fleet_size == 2

    def test_camel_and_snake_names(self):
        camel = StackParameters(
            baseCidr="10.1.0.0/16", azCount=3, computeFleetSize=1, dbFleetSize=0, trustedRepoRef="repo:a/b:*"
        )
        snake = StackParameters(
            base_cidr="10.1.0.0/16", az_count=3, compute_fleet_size=1, db_fleet_size=0, trusted_repo_ref="repo:a/b:*"
        )
        assert camel == snake
        assert camel.model_dump(by_alias=True)["azCount"] == 3

    @pytest.mark.parametrize(
        "override",
        [
            {"baseCidr": "not-a-cidr"},
            {"baseCidr": "10.0.0.1/16"},
            {"azCount": 0},
            {"computeFleetSize": 0},
            {"dbFleetSize": -1},
            {"trustedRepoRef": ""},
        ],
    )
    def test_rejected(self, config, override):
        with pytest.raises(ValidationError):
            StackParameters.from_settings(config, overrides=override)

    def test_frozen(self, config):
        params = StackParameters.from_settings(config)
        with pytest.raises(ValidationError):
            params.az_count = 3


class TestSettings:

    def test_zone_names_from_region(self, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        assert Settings().aws.zone_names(2) == ["eu-west-1a", "eu-west-1b"]

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DB_REMOVAL_POLICY", "snapshot")
        monkeypatch.setenv("COMPUTE_FLEET_SIZE", "4")
        config = Settings()
        assert config.database.removal_policy == "snapshot"
        assert config.compute.fleet_size == 4
