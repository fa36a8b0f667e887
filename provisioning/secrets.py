"""
Credential storage for generated database passwords.

Callers only ever receive a `SecretRef` (identifier + ARN); the generated
password stays inside the secret store.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import boto3
from botocore.exceptions import ClientError

from config.settings import settings
from provisioning.provider import ResourceProvider
from schemas.resources import RemovalPolicy, ResourceType, SecretRef

logger = logging.getLogger(__name__)

PASSWORD_LENGTH = 30
EXCLUDED_CHARACTERS = " %+~`#$&*()|[]{}:;<>?!'/@\"\\"


class SecretStore(ABC):
    """Generates and stores one credential per database instance."""

    @abstractmethod
    def create_database_secret(
        self,
        logical_id: str,
        username: str,
        removal_policy: RemovalPolicy | None = None,
    ) -> SecretRef:
        """
        Return a reference to a secret holding `username` and a generated password.

        `removal_policy` is what happens to the secret on teardown; it must
        outlive any database kept with its credentials.
        """


class ProviderSecretStore(SecretStore):
    """Declares the secret as a stack resource with a server-generated password."""

    def __init__(self, provider: ResourceProvider) -> None:
        self.provider = provider

    def create_database_secret(
        self,
        logical_id: str,
        username: str,
        removal_policy: RemovalPolicy | None = None,
    ) -> SecretRef:
        ref = self.provider.create(
            ResourceType.SECRET,
            logical_id,
            {
                "Description": f"Generated credentials for {logical_id}",
                "GenerateSecretString": {
                    "SecretStringTemplate": json.dumps({"username": username}),
                    "GenerateStringKey": "password",
                    "PasswordLength": PASSWORD_LENGTH,
                    "ExcludeCharacters": EXCLUDED_CHARACTERS,
                },
            },
            removal_policy=removal_policy,
        )
        return SecretRef(
            logical_id=logical_id,
            secret_id=ref.physical_id,
            secret_arn=ref.arn,
            username=username,
        )


class SecretsManagerStore(SecretStore):
    """
    Creates secrets directly in AWS Secrets Manager.

    Idempotent by name: an existing secret is described and returned
    rather than recreated.
    """

    def __init__(self, client: Any | None = None, name_prefix: str | None = None) -> None:
        self.client = client or boto3.client("secretsmanager", region_name=settings.aws.region)
        self.name_prefix = name_prefix or settings.stack_name

    def create_database_secret(
        self,
        logical_id: str,
        username: str,
        removal_policy: RemovalPolicy | None = None,
    ) -> SecretRef:
        # Secrets created here live outside the stack and are never torn down
        name = f"{self.name_prefix}/{logical_id}"

        try:
            existing = self.client.describe_secret(SecretId=name)
            logger.info("Secret %s already exists, re-using", name)
            return SecretRef(
                logical_id=logical_id,
                secret_id=existing["Name"],
                secret_arn=existing["ARN"],
                username=username,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ResourceNotFoundException":
                raise

        password = self.client.get_random_password(
            PasswordLength=PASSWORD_LENGTH,
            ExcludeCharacters=EXCLUDED_CHARACTERS,
        )["RandomPassword"]

        response = self.client.create_secret(
            Name=name,
            Description=f"Generated credentials for {logical_id}",
            SecretString=json.dumps({"username": username, "password": password}),
        )
        logger.info("Created secret %s", name)

        return SecretRef(
            logical_id=logical_id,
            secret_id=response["Name"],
            secret_arn=response["ARN"],
            username=username,
        )
