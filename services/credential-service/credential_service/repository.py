"""Database repository for account credentials."""

from __future__ import annotations

from typing import Any

from psycopg import errors
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.errors import DuplicateKeyError

_ACCOUNT_COLUMNS = "account_id, username, email, password_hash, created_at"

_UNIQUE_CONSTRAINTS = {
    "accounts_pkey": "account_id",
    "accounts_username_key": "username",
    "accounts_email_key": "email",
}


def _duplicate_field(exc: errors.UniqueViolation) -> str:
    """Work out which unique column a violation refers to.

    Only the constraint name, or failing that the primary message line, is
    inspected; the DETAIL line echoes the offending value.
    """
    constraint = exc.diag.constraint_name
    if constraint:
        return _UNIQUE_CONSTRAINTS.get(constraint, "account_id")
    primary = exc.diag.message_primary
    if not primary:
        # errors raised without server diagnostics only carry their text
        lines = str(exc).splitlines()
        primary = lines[0] if lines else ""
    for name, field in _UNIQUE_CONSTRAINTS.items():
        if f'"{name}"' in primary:
            return field
    return "account_id"


class AccountRepository:
    """Postgres-backed account persistence enforcing username/email uniqueness."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def create_account(self, account: Account) -> Account:
        """Insert a fully hashed account, raising ``DuplicateKeyError`` on conflicts."""
        with self._pool.connection() as conn:
            try:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO accounts ({_ACCOUNT_COLUMNS})
                        VALUES (%s, %s, %s, %s, %s)
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (
                            account.account_id,
                            account.username,
                            account.email,
                            account.password_hash,
                            account.created_at,
                        ),
                    )
                    record = cur.fetchone()
                conn.commit()
            except errors.UniqueViolation as exc:
                conn.rollback()
                raise DuplicateKeyError(_duplicate_field(exc)) from exc
        return self._map_record(record)

    def get_account(self, account_id: str) -> Account | None:
        """Fetch an account by identifier or return ``None``."""
        return self._fetch_one("account_id", account_id)

    def find_by_username(self, username: str) -> Account | None:
        return self._fetch_one("username", username)

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_one("email", email.lower())

    def _fetch_one(self, column: str, value: str) -> Account | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE {column} = %s",
                    (value,),
                )
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def update_password_hash(self, account_id: str, password_hash: str) -> None:
        """Replace the stored hash; no other column is touched."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE accounts
                    SET password_hash = %s, updated_at = NOW()
                    WHERE account_id = %s
                    """,
                    (password_hash, account_id),
                )
                conn.commit()

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=str(row[0]),
            username=row[1],
            email=row[2],
            password_hash=row[3],
            created_at=row[4],
        )

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record an audit trail entry capturing credential workflow activity."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO account_audit_log (account_id, event_type, metadata)
                    VALUES (%s, %s, %s)
                    """,
                    (account_id, event_type, Json(metadata or {})),
                )
                conn.commit()
