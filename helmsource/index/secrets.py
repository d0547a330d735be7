"""Secret lookup for repository credentials."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from helmsource.index.options import SecretOptions


class SecretError(RuntimeError):
    """Base class for secret resolution failures."""


class SecretNotFoundError(SecretError):
    """Raised when the referenced secret does not exist."""


class SecretDataError(SecretError):
    """Raised when the secret exists but its data is unusable."""


class SecretResolver(Protocol):
    def resolve(self, namespace: str, name: str) -> SecretOptions:
        """Return the options carried by secret ``namespace/name``."""
        ...


def options_from_secret_data(data: Mapping[str, str]) -> SecretOptions:
    """Build options from secret data keys ``username``, ``password`` and
    ``caFile``. Username and password must be given together."""
    username = data.get("username")
    password = data.get("password")
    if (username is None) != (password is None):
        raise SecretDataError(
            "invalid secret data: both 'username' and 'password' are required for basic auth"
        )
    ca_data = data.get("caFile")
    if ca_data is not None and "-----BEGIN CERTIFICATE-----" not in ca_data:
        raise SecretDataError("invalid secret data: 'caFile' is not a PEM certificate bundle")
    return SecretOptions(username=username, password=password, ca_data=ca_data)


class StaticSecretResolver:
    """Resolves secrets from an in-process mapping keyed ``namespace/name``."""

    def __init__(self, secrets: Mapping[str, Mapping[str, str]] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def add(self, namespace: str, name: str, data: Mapping[str, str]) -> None:
        self._secrets[f"{namespace}/{name}"] = dict(data)

    def resolve(self, namespace: str, name: str) -> SecretOptions:
        key = f"{namespace}/{name}"
        data = self._secrets.get(key)
        if data is None:
            raise SecretNotFoundError(f"secret '{key}' not found")
        return options_from_secret_data(data)
