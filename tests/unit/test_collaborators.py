"""
Unit tests for the secret store and image lookup collaborators.

AWS clients are replaced with MagicMock, no network calls are made.
"""

from __future__ import annotations

import itertools
import json
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from provisioning.images import SsmDynamicReference, SsmImageLookup, StaticImageLookup
from provisioning.secrets import ProviderSecretStore, SecretsManagerStore
from schemas.resources import ResourceType

SECRET_ARN = "arn:aws:secretsmanager:us-east-1:123456789012:secret:MultiTierStack/rds-instance-0-secret-AbCdEf"


def _client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "DescribeSecret")


class TestProviderSecretStore:

    def test_declares_generated_secret(self, provider):
        secret = ProviderSecretStore(provider).create_database_secret("rds-instance-0-secret", "admin")
        record = provider.describe("rds-instance-0-secret")

        assert record.ref.resource_type == ResourceType.SECRET
        generate = record.properties["GenerateSecretString"]
        assert json.loads(generate["SecretStringTemplate"]) == {"username": "admin"}
        assert generate["GenerateStringKey"] == "password"
        assert secret.secret_arn == record.ref.arn
        assert "password" not in secret.model_dump()


class TestSecretsManagerStore:

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.describe_secret.side_effect = _client_error("ResourceNotFoundException")
        client.get_random_password.return_value = {"RandomPassword": "s3cr3t-value"}
        client.create_secret.return_value = {
            "Name": "MultiTierStack/rds-instance-0-secret",
            "ARN": SECRET_ARN,
        }
        return client

    def test_creates_when_missing(self, client):
        store = SecretsManagerStore(client=client, name_prefix="MultiTierStack")
        secret = store.create_database_secret("rds-instance-0-secret", "admin")

        kwargs = client.create_secret.call_args.kwargs
        assert kwargs["Name"] == "MultiTierStack/rds-instance-0-secret"
        assert json.loads(kwargs["SecretString"]) == {"username": "admin", "password": "s3cr3t-value"}
        assert secret.secret_arn == SECRET_ARN
        assert "s3cr3t-value" not in secret.model_dump_json()

    def test_reuses_existing(self, client):
        client.describe_secret.side_effect = None
        client.describe_secret.return_value = {
            "Name": "MultiTierStack/rds-instance-0-secret",
            "ARN": SECRET_ARN,
        }
        store = SecretsManagerStore(client=client, name_prefix="MultiTierStack")
        secret = store.create_database_secret("rds-instance-0-secret", "admin")

        assert secret.secret_arn == SECRET_ARN
        client.create_secret.assert_not_called()

    def test_other_errors_propagate(self, client):
        client.describe_secret.side_effect = _client_error("AccessDeniedException")
        store = SecretsManagerStore(client=client, name_prefix="MultiTierStack")
        with pytest.raises(ClientError):
            store.create_database_secret("rds-instance-0-secret", "admin")


class TestImageLookup:

    def test_ssm_lookup_cached(self):
        client = MagicMock()
        client.get_parameter.return_value = {"Parameter": {"Value": "ami-0abc"}}
        lookup = SsmImageLookup(client=client, parameter="/aws/service/ami")

        assert lookup.latest_image_id() == "ami-0abc"
        assert lookup.latest_image_id() == "ami-0abc"
        client.get_parameter.assert_called_once_with(Name="/aws/service/ami")

    def test_concurrent_lookups_share_one_call(self):
        def slow_parameter(Name):
            time.sleep(0.01)
            return {"Parameter": {"Value": f"ami-{next(counter)}"}}

        counter = itertools.count()
        client = MagicMock()
        client.get_parameter.side_effect = slow_parameter
        lookup = SsmImageLookup(client=client, parameter="/aws/service/ami")

        with ThreadPoolExecutor(max_workers=4) as pool:
            image_ids = list(pool.map(lambda _: lookup.latest_image_id(), range(8)))

        assert set(image_ids) == {"ami-0"}
        client.get_parameter.assert_called_once()

    def test_dynamic_reference(self):
        assert SsmDynamicReference("/aws/service/ami").latest_image_id() == "{{resolve:ssm:/aws/service/ami}}"

    def test_static(self):
        assert StaticImageLookup("ami-1").latest_image_id() == "ami-1"
