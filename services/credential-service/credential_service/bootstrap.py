"""Wiring of shared resources (Postgres pool, rate limiter) into the account service."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from psycopg_pool import ConnectionPool

from .config import Settings, get_settings
from .domain.service import AccountService
from .repository import AccountRepository
from .security.rate_limiter import build_rate_limiter

logger = logging.getLogger(__name__)


@contextmanager
def open_account_service(settings: Settings | None = None) -> Iterator[AccountService]:
    """Open the connection pool for the lifetime of the block and yield a ready service."""
    settings = settings or get_settings()
    pool = ConnectionPool(
        settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        open=False,
    )
    pool.open()
    logger.info("%s %s connected to storage", settings.app_name, settings.version)
    try:
        yield AccountService(
            AccountRepository(pool),
            rate_limiter=build_rate_limiter(settings),
            hash_rounds=settings.password_hash_rounds,
            rehash_on_login=settings.password_rehash_on_login,
        )
    finally:
        pool.close()
