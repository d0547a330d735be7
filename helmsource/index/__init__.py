"""Remote repository index access."""

from helmsource.index.client import HttpIndexClient, IndexFetchError, RemoteIndexClient
from helmsource.index.handle import (
    IndexConstructionError,
    IndexHandle,
    IndexValidationError,
    InvalidURLError,
)
from helmsource.index.options import ClientOptions, SecretOptions
from helmsource.index.secrets import (
    SecretDataError,
    SecretError,
    SecretNotFoundError,
    SecretResolver,
    StaticSecretResolver,
)

__all__ = [
    "ClientOptions",
    "HttpIndexClient",
    "IndexConstructionError",
    "IndexFetchError",
    "IndexHandle",
    "IndexValidationError",
    "InvalidURLError",
    "RemoteIndexClient",
    "SecretDataError",
    "SecretError",
    "SecretNotFoundError",
    "SecretOptions",
    "SecretResolver",
    "StaticSecretResolver",
]
