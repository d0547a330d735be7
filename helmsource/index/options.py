"""Remote access options for fetching a repository index."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ClientOptions(BaseModel):
    """Everything the index client needs to reach a repository.

    ``pass_credentials`` allows credentials to be sent to hosts other than
    the repository host when the server redirects.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    timeout: float = 60.0
    pass_credentials: bool = False
    username: str | None = None
    password: str | None = None
    ca_data: str | None = None  # PEM bundle used to verify the server

    @property
    def has_basic_auth(self) -> bool:
        return self.username is not None and self.password is not None


class SecretOptions(BaseModel):
    """Authentication and TLS settings extracted from a secret."""

    model_config = ConfigDict(frozen=True)

    username: str | None = None
    password: str | None = None
    ca_data: str | None = None

    def apply(self, options: ClientOptions) -> ClientOptions:
        return options.model_copy(
            update={
                "username": self.username,
                "password": self.password,
                "ca_data": self.ca_data,
            }
        )
