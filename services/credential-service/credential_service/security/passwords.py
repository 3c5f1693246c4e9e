"""Salted bcrypt hashing and verification for account passwords."""

from __future__ import annotations

import asyncio
import logging
import re

import bcrypt

from ..config import get_settings
from ..domain.errors import HashingFailure, ValidationError

logger = logging.getLogger(__name__)

# bcrypt only consumes the first 72 bytes of the secret.
MAX_SECRET_BYTES = 72
MIN_ROUNDS = 4
MAX_ROUNDS = 31

_BCRYPT_RE = re.compile(r"^\$2[aby]\$(\d{2})\$[./A-Za-z0-9]{53}$")


def _resolve_rounds(rounds: int | None) -> int:
    cost = get_settings().password_hash_rounds if rounds is None else rounds
    if not MIN_ROUNDS <= cost <= MAX_ROUNDS:
        raise ValueError(f"bcrypt cost factor must be between {MIN_ROUNDS} and {MAX_ROUNDS}")
    return cost


def hash_secret(plaintext: str, rounds: int | None = None) -> str:
    """Derive a salted bcrypt hash for a plaintext secret.

    Parameters
    ----------
    plaintext:
        Secret supplied by the registration workflow. Must be non-empty and at
        most 72 bytes once UTF-8 encoded.
    rounds:
        Cost factor (log2 of the key expansion rounds). Defaults to
        ``Settings.password_hash_rounds``.

    Returns
    -------
    str
        Modular crypt string ``$2b$<cost>$<salt><hash>``. The salt is embedded,
        so repeated calls with the same plaintext return different strings.

    Raises
    ------
    ValidationError
        When the plaintext is empty or too long.
    HashingFailure
        When the salt or the hash cannot be produced.
    """
    if not isinstance(plaintext, str) or not plaintext:
        raise ValidationError("password", "password must not be empty")
    secret = plaintext.encode("utf-8")
    if len(secret) > MAX_SECRET_BYTES:
        raise ValidationError("password", f"password must be at most {MAX_SECRET_BYTES} bytes")

    cost = _resolve_rounds(rounds)
    try:
        salt = bcrypt.gensalt(rounds=cost)
        hashed = bcrypt.hashpw(secret, salt).decode("ascii")
    except (OSError, NotImplementedError, ValueError) as exc:
        logger.error("bcrypt hashing failed: %s", type(exc).__name__)
        raise HashingFailure() from exc

    if not hashed or hashed == plaintext:
        raise HashingFailure("password hashing produced an unusable value")
    return hashed


def verify_secret(candidate: str, stored_hash: str) -> bool:
    """Return ``True`` only when ``candidate`` matches the secret behind ``stored_hash``.

    Malformed input of any kind yields ``False``.
    """
    if not isinstance(candidate, str) or not isinstance(stored_hash, str):
        return False
    if not _BCRYPT_RE.match(stored_hash):
        return False
    secret = candidate.encode("utf-8")
    if len(secret) > MAX_SECRET_BYTES:
        return False
    try:
        return bcrypt.checkpw(secret, stored_hash.encode("ascii"))
    except (ValueError, TypeError):
        return False


def hash_cost(stored_hash: str) -> int | None:
    """Return the cost factor embedded in a bcrypt hash, or ``None`` if it is not one."""
    match = _BCRYPT_RE.match(stored_hash) if isinstance(stored_hash, str) else None
    if match is None:
        return None
    return int(match.group(1))


def needs_rehash(stored_hash: str, rounds: int | None = None) -> bool:
    """Check whether a stored hash should be replaced with one at the configured cost."""
    cost = hash_cost(stored_hash)
    if cost is None:
        return True
    return cost != _resolve_rounds(rounds)


async def hash_secret_async(plaintext: str, rounds: int | None = None) -> str:
    """Run :func:`hash_secret` on a worker thread."""
    return await asyncio.to_thread(hash_secret, plaintext, rounds)


async def verify_secret_async(candidate: str, stored_hash: str) -> bool:
    """Run :func:`verify_secret` on a worker thread."""
    return await asyncio.to_thread(verify_secret, candidate, stored_hash)
