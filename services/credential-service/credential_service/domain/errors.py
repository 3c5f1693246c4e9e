"""Error hierarchy raised by the account workflows."""

from __future__ import annotations

from typing import Any


class AccountError(Exception):
    """Base exception for credential and account workflow failures."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AccountError):
    """Raised when registration input is malformed; carries the offending field."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            details={"field": field},
        )


class DuplicateKeyError(AccountError):
    """Raised when a username or email is already taken."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(
            code="DUPLICATE_KEY",
            message=f"an account with this {field} already exists",
            details={"field": field},
        )


class HashingFailure(AccountError):
    """Raised when the password hashing primitive cannot produce a hash."""

    def __init__(self, message: str = "password hashing failed") -> None:
        super().__init__(code="HASHING_FAILURE", message=message)


class AccountNotFoundError(AccountError):
    def __init__(self, account_id: str) -> None:
        super().__init__(
            code="NOT_FOUND",
            message="account not found",
            details={"account_id": account_id},
        )


class InvalidCredentialsError(AccountError):
    """Raised by workflows that must reject a password; message is uniform."""

    def __init__(self) -> None:
        super().__init__(code="INVALID_CREDENTIALS", message="invalid credentials")


class TooManyAttemptsError(AccountError):
    def __init__(self) -> None:
        super().__init__(code="RATE_LIMITED", message="rate limited")
