"""Account service orchestrating registration, login verification, and auditing."""

from __future__ import annotations

import dataclasses
import logging
import secrets
from typing import Any, Protocol

from .account import Account
from .contracts import PasswordChangeInput, RegistrationInput
from .errors import AccountNotFoundError, DuplicateKeyError, InvalidCredentialsError, TooManyAttemptsError
from ..config import get_settings
from ..security.passwords import hash_secret, needs_rehash, verify_secret
from ..security.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class AccountStore(Protocol):
    """Storage operations the workflows rely on."""

    def create_account(self, account: Account) -> Account: ...

    def get_account(self, account_id: str) -> Account | None: ...

    def find_by_username(self, username: str) -> Account | None: ...

    def find_by_email(self, email: str) -> Account | None: ...

    def update_password_hash(self, account_id: str, password_hash: str) -> None: ...

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


class AccountService:
    """Registration and authentication workflows over an ``AccountStore``."""

    def __init__(
        self,
        repository: AccountStore,
        rate_limiter: RateLimiter | None = None,
        hash_rounds: int | None = None,
        rehash_on_login: bool | None = None,
    ) -> None:
        """Store dependencies; unset options fall back to the configured settings.

        With ``rehash_on_login`` off, a stored hash is only ever replaced by an
        explicit password change, whatever its cost factor.
        """
        settings = get_settings()
        self._repository = repository
        self._rate_limiter = rate_limiter
        self._hash_rounds = hash_rounds if hash_rounds is not None else settings.password_hash_rounds
        self._rehash_on_login = (
            rehash_on_login if rehash_on_login is not None else settings.password_rehash_on_login
        )
        self._dummy_hash: str | None = None

    def register(self, payload: RegistrationInput) -> Account:
        """Create an account, hashing the password exactly once before it is stored.

        Duplicate usernames or emails are rejected before any hashing work is
        done. A duplicate that slips in concurrently is still reported by the
        repository as ``DuplicateKeyError``.
        """
        if self._repository.find_by_username(payload.username) is not None:
            raise DuplicateKeyError("username")
        if self._repository.find_by_email(payload.email) is not None:
            raise DuplicateKeyError("email")

        password_hash = hash_secret(payload.password.get_secret_value(), self._hash_rounds)
        account = self._repository.create_account(
            Account.new(username=payload.username, email=payload.email, password_hash=password_hash)
        )
        logger.info("account registered account_id=%s", account.account_id)
        self._repository.write_audit_event(
            account_id=account.account_id,
            event_type="account.registered",
            metadata={"username": account.username},
        )
        return account

    def get_account(self, account_id: str) -> Account | None:
        return self._repository.get_account(account_id)

    def authenticate(self, identifier: str, password: str) -> Account | None:
        """Return the matching account, or ``None`` for any kind of mismatch.

        Parameters
        ----------
        identifier:
            Username (case-sensitive) or email (case-insensitive, detected by ``@``).
        password:
            Plaintext from the login attempt.

        Raises
        ------
        TooManyAttemptsError
            When the identifier has exhausted its login attempts or is locked out.
        """
        rate_key = f"login:{identifier.lower() if '@' in identifier else identifier}"
        if self._rate_limiter is not None and not self._rate_limiter.allow(rate_key):
            logger.warning("login attempts throttled")
            raise TooManyAttemptsError()

        account = self._lookup(identifier)
        if account is None:
            # spend the same verification cost as for a real account
            verify_secret(password, self._get_dummy_hash())
            self._record_failure(None, "unknown_identifier")
            return None

        if not verify_secret(password, account.password_hash):
            self._record_failure(account.account_id, "password_mismatch")
            return None

        if self._rehash_on_login and needs_rehash(account.password_hash, self._hash_rounds):
            account = self._store_new_hash(account, password)
            logger.info("password hash upgraded account_id=%s", account.account_id)

        if self._rate_limiter is not None:
            self._rate_limiter.reset(rate_key)
        self._repository.write_audit_event(
            account_id=account.account_id,
            event_type="auth.succeeded",
        )
        return account

    def change_password(self, account_id: str, payload: PasswordChangeInput) -> Account:
        """Replace an account's password after checking the current one."""
        account = self._repository.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)

        current = payload.current_password.get_secret_value()
        if not verify_secret(current, account.password_hash):
            self._record_failure(account.account_id, "password_change_rejected")
            raise InvalidCredentialsError()

        new_password = payload.new_password.get_secret_value()
        if secrets.compare_digest(current.encode("utf-8"), new_password.encode("utf-8")):
            return account

        account = self._store_new_hash(account, new_password)
        self._repository.write_audit_event(
            account_id=account.account_id,
            event_type="account.password_changed",
        )
        logger.info("password changed account_id=%s", account.account_id)
        return account

    def _lookup(self, identifier: str) -> Account | None:
        if "@" in identifier:
            return self._repository.find_by_email(identifier.lower())
        return self._repository.find_by_username(identifier)

    def _store_new_hash(self, account: Account, password: str) -> Account:
        password_hash = hash_secret(password, self._hash_rounds)
        self._repository.update_password_hash(account.account_id, password_hash)
        return dataclasses.replace(account, password_hash=password_hash)

    def _record_failure(self, account_id: str | None, reason: str) -> None:
        logger.info("authentication failed reason=%s", reason)
        self._repository.write_audit_event(
            account_id=account_id,
            event_type="auth.failed",
            metadata={"reason": reason},
        )

    def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = hash_secret(secrets.token_urlsafe(16), self._hash_rounds)
        return self._dummy_hash
