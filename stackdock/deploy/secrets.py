"""Secret Broker: acquire secret parameters at deploy time.

Secret values never touch disk. They are held in memory for the deploy call
and registered with the log redaction filter as soon as they are fetched.
"""

import asyncio
import getpass
import json
import logging
import os
import re
import sys
from abc import ABC, abstractmethod

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from stackdock.errors import InvalidInputError, SecretUnavailableError
from stackdock.redact import register_secret

logger = logging.getLogger(__name__)

ENV_PREFIX = "STACKDOCK_SECRET_"


class SecretProvider(ABC):
    """Source of secret parameter values."""

    name = "abstract"

    @abstractmethod
    async def fetch(self, key) -> str:
        """Return the value for key or raise SecretUnavailableError."""


class PromptSecretProvider(SecretProvider):
    """Interactive terminal prompt with input echo suppressed."""

    name = "prompt"

    def __init__(self, prompt=getpass.getpass, stdin=None):
        self._prompt = prompt
        self._stdin = stdin or sys.stdin

    async def fetch(self, key) -> str:
        if not self._stdin.isatty():
            raise SecretUnavailableError(
                "Cannot prompt for a secret without a terminal; use --secret-provider env or secretsmanager",
                key,
            )
        try:
            value = await asyncio.to_thread(self._prompt, f"Enter {key}: ")
        except EOFError as e:
            raise SecretUnavailableError("No input received", key) from e
        if not value:
            raise SecretUnavailableError("Empty value entered", key)
        return value


def env_var_name(key) -> str:
    """DatabasePassword -> STACKDOCK_SECRET_DATABASE_PASSWORD."""
    return ENV_PREFIX + re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", key).upper()


class EnvSecretProvider(SecretProvider):
    """Reads STACKDOCK_SECRET_<KEY> variables, for CI and other automated runs."""

    name = "env"

    def __init__(self, environ=None):
        self._environ = os.environ if environ is None else environ

    async def fetch(self, key) -> str:
        var = env_var_name(key)
        value = self._environ.get(var)
        if not value:
            raise SecretUnavailableError(f"Environment variable {var} is not set", key)
        return value


class SecretsManagerProvider(SecretProvider):
    """AWS Secrets Manager lookup of secret id ``<project>/<environment>/<key>``.

    A JSON object secret may hold several values; the entry named after the
    key wins over the whole string.
    """

    name = "secretsmanager"

    def __init__(self, project, environment, region, client=None):
        self.project = project
        self.environment = environment
        self.client = client or boto3.client("secretsmanager", region_name=region)

    def secret_id(self, key) -> str:
        return f"{self.project}/{self.environment}/{key}"

    async def fetch(self, key) -> str:
        secret_id = self.secret_id(key)
        try:
            resp = await asyncio.to_thread(self.client.get_secret_value, SecretId=secret_id)
        except (ClientError, BotoCoreError) as e:
            raise SecretUnavailableError(f"Could not read secret {secret_id}: {e}", key) from e

        value = resp.get("SecretString")
        if value is None:
            raise SecretUnavailableError(f"Secret {secret_id} has no string value", key)
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return value
        if isinstance(parsed, dict) and key in parsed:
            return str(parsed[key])
        return value


PROVIDERS = ("prompt", "env", "secretsmanager")


def make_secret_provider(name, project=None, environment=None, region=None) -> SecretProvider:
    if name == "prompt":
        return PromptSecretProvider()
    if name == "env":
        return EnvSecretProvider()
    if name == "secretsmanager":
        return SecretsManagerProvider(project, environment, region)
    raise InvalidInputError(f"Unknown secret provider: {name}. Must be one of: {', '.join(PROVIDERS)}", name)


class SecretBroker:
    """Fetches every secret key through one provider, redacting values from logs."""

    def __init__(self, provider: SecretProvider):
        self.provider = provider

    async def acquire(self, keys) -> dict[str, str]:
        values = {}
        for key in keys:
            logger.debug(f"Fetching secret parameter {key} via {self.provider.name}")
            value = await self.provider.fetch(key)
            register_secret(value)
            values[key] = value
        if values:
            logger.info(f"Acquired {len(values)} secret parameter(s) via {self.provider.name}")
        return values
