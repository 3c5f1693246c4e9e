"""Account credential storage: salted password hashing and verification."""

from .security.passwords import hash_secret, verify_secret

__all__ = ["hash_secret", "verify_secret"]
