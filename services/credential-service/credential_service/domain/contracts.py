"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, EmailStr, SecretStr, field_validator

from .errors import ValidationError
from ..security.passwords import MAX_SECRET_BYTES


def _first_error(exc: pydantic.ValidationError) -> ValidationError:
    """Translate the first pydantic error into a field-level ``ValidationError``."""
    error = exc.errors()[0]
    field = str(error["loc"][0]) if error.get("loc") else "input"
    message = error["msg"].removeprefix("Value error, ")
    return ValidationError(field, message)


def _require_secret(value: SecretStr, name: str) -> SecretStr:
    secret = value.get_secret_value()
    if not secret:
        raise ValueError(f"{name} must not be empty")
    if len(secret.encode("utf-8")) > MAX_SECRET_BYTES:
        raise ValueError(f"{name} must be at most {MAX_SECRET_BYTES} bytes")
    return value


class RegistrationInput(BaseModel):
    """Validated inputs required to register an account.

    Usernames are case-sensitive and kept verbatim; emails are lower-cased so
    uniqueness is case-insensitive.
    """

    model_config = ConfigDict(frozen=True)

    username: str
    email: EmailStr
    password: SecretStr

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("username must not be empty")
        if value != value.strip():
            raise ValueError("username must not start or end with whitespace")
        return value

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: SecretStr) -> SecretStr:
        return _require_secret(value, "password")

    @classmethod
    def build(cls, **fields: Any) -> "RegistrationInput":
        """Validate raw registration fields, raising the domain ``ValidationError``."""
        try:
            return cls(**fields)
        except pydantic.ValidationError as exc:
            raise _first_error(exc) from exc


class PasswordChangeInput(BaseModel):
    """Current and replacement secrets for a password change."""

    model_config = ConfigDict(frozen=True)

    current_password: SecretStr
    new_password: SecretStr

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, value: SecretStr) -> SecretStr:
        return _require_secret(value, "new_password")

    @classmethod
    def build(cls, **fields: Any) -> "PasswordChangeInput":
        try:
            return cls(**fields)
        except pydantic.ValidationError as exc:
            raise _first_error(exc) from exc
