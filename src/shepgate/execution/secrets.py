"""
Secret lookup for executors.

The credential vault is an external collaborator; ShepGate only needs a
name -> value lookup. Values are handed to executors when they open a
connection and are never stored by the policy core.
"""

import os
from abc import ABC, abstractmethod
from typing import Mapping


class SecretProvider(ABC):
    """Opaque name -> value lookup."""

    @abstractmethod
    def get_secret(self, name: str) -> str | None:
        """Return the secret value, or None if it is not defined."""
        ...


class EnvSecretProvider(SecretProvider):
    """
    Reads secrets from environment variables.

    Args:
        prefix: Prepended to every name (e.g. "SHEPGATE_SECRET_")
    """

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def get_secret(self, name: str) -> str | None:
        return os.environ.get(f"{self.prefix}{name}")


class StaticSecretProvider(SecretProvider):
    """Serves secrets from an in-memory mapping."""

    def __init__(self, secrets: Mapping[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def get_secret(self, name: str) -> str | None:
        return self._secrets.get(name)
