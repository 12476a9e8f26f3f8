"""
API credentials model.

Credentials are immutable once constructed. The secret is held in a pydantic
SecretStr so it renders masked in repr(), str() and log output.
"""

import string

from pydantic import BaseModel, Field, SecretStr, field_validator

from bybit_connector.errors import InvalidCredentialsError

_PRINTABLE = frozenset(string.ascii_letters + string.digits + string.punctuation)


class Credentials(BaseModel):
    """
    Bybit API key pair.

    Attributes:
        api_key: Public API key, sent in the X-BAPI-API-KEY header.
        api_secret: HMAC secret, never sent or logged.

    Raises:
        InvalidCredentialsError: If the key or secret is empty or contains
            characters that can never form a valid Bybit key.

    Example:
        >>> creds = Credentials(api_key="XXXX", api_secret="YYYY")
        >>> creds
        Credentials(api_key='XXXX', api_secret=SecretStr('**********'))
    """

    model_config = {"frozen": True, "extra": "forbid"}

    api_key: str = Field(
        ...,
        description="Public API key",
    )
    api_secret: SecretStr = Field(
        ...,
        description="API secret used as the HMAC key",
    )

    @field_validator("api_key")
    @classmethod
    def _check_key(cls, value: str) -> str:
        if not value or not set(value) <= _PRINTABLE:
            raise InvalidCredentialsError(
                "api_key must be a non-empty printable ASCII string without whitespace"
            )
        return value

    @field_validator("api_secret")
    @classmethod
    def _check_secret(cls, value: SecretStr) -> SecretStr:
        secret = value.get_secret_value()
        if not secret or not set(secret) <= _PRINTABLE:
            raise InvalidCredentialsError(
                "api_secret must be a non-empty printable ASCII string without whitespace"
            )
        return value

    def secret_bytes(self) -> bytes:
        """Return the secret encoded for use as an HMAC key."""
        return self.api_secret.get_secret_value().encode("ascii")
