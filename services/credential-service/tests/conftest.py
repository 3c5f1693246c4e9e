from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest

from credential_service.domain.account import Account
from credential_service.domain.errors import DuplicateKeyError
from credential_service.domain.service import AccountService
from credential_service.security.rate_limiter import SlidingWindowRateLimiter

# Lowest bcrypt cost keeps the suite fast.
TEST_ROUNDS = 4


@dataclass
class FakeAuditRecord:
    account_id: str | None
    event_type: str
    metadata: dict
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class FakeRepository:
    """In-memory repository mimicking the Postgres unique constraints."""

    def __init__(self, *, skip_lookups: bool = False) -> None:
        # skip_lookups hides existing rows from find_*, as a concurrent writer would
        self._skip_lookups = skip_lookups
        self._accounts: dict[str, Account] = {}
        self.audit_log: list[FakeAuditRecord] = []
        self.insert_attempts = 0
        self.hash_updates: list[tuple[str, str]] = []

    def create_account(self, account: Account) -> Account:
        self.insert_attempts += 1
        for existing in self._accounts.values():
            if existing.username == account.username:
                raise DuplicateKeyError("username")
            if existing.email == account.email:
                raise DuplicateKeyError("email")
        self._accounts[account.account_id] = account
        return account

    def get_account(self, account_id: str) -> Account | None:
        return self._accounts.get(account_id)

    def find_by_username(self, username: str) -> Account | None:
        if self._skip_lookups:
            return None
        return next((a for a in self._accounts.values() if a.username == username), None)

    def find_by_email(self, email: str) -> Account | None:
        if self._skip_lookups:
            return None
        return next((a for a in self._accounts.values() if a.email == email.lower()), None)

    def update_password_hash(self, account_id: str, password_hash: str) -> None:
        account = self._accounts[account_id]
        self._accounts[account_id] = Account(
            account_id=account.account_id,
            username=account.username,
            email=account.email,
            password_hash=password_hash,
            created_at=account.created_at,
        )
        self.hash_updates.append((account_id, password_hash))

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        metadata: dict | None = None,
    ) -> None:
        self.audit_log.append(
            FakeAuditRecord(account_id=account_id, event_type=event_type, metadata=metadata or {})
        )

    @property
    def accounts(self) -> list[Account]:
        return list(self._accounts.values())


@pytest.fixture
def hash_rounds() -> int:
    return TEST_ROUNDS


@pytest.fixture
def repository_factory():
    """Build additional isolated repositories within a test."""
    return FakeRepository


@pytest.fixture
def repository(repository_factory) -> FakeRepository:
    return repository_factory()


@pytest.fixture
def limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(max_requests=3, window_seconds=60)


@pytest.fixture
def service(repository, limiter, hash_rounds) -> AccountService:
    """Provide an account service with isolated state."""
    return AccountService(repository, rate_limiter=limiter, hash_rounds=hash_rounds)
