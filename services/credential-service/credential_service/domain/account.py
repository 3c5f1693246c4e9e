from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True, slots=True)
class Account:
    """Aggregate root for a user account and its hashed password."""

    account_id: str
    username: str
    email: str
    password_hash: str = field(repr=False)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def new(cls, *, username: str, email: str, password_hash: str) -> "Account":
        """Build a fresh account with a random identifier from an already hashed password."""
        if not password_hash:
            raise ValueError("password_hash must not be empty")
        return cls(
            account_id=str(uuid.uuid4()),
            username=username,
            email=email,
            password_hash=password_hash,
        )
