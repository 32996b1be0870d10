# services/api/core/security.py
"""
Project password hashing and verification.

New hashes are bcrypt. Projects created by older clients carry a base64
encoding of the password instead; those still verify and are flagged for
re-hashing on the next successful check.
"""
from __future__ import annotations

import base64
import binascii
import hmac
import logging
from typing import Optional

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def is_bcrypt_hash(password_hash: str) -> bool:
    return (password_hash or "").startswith(("$2a$", "$2b$", "$2y$"))


def get_password_hash(password: str, rounds: int = 12) -> str:
    """Hash password with configurable rounds (BCRYPT_ROUNDS in .env)."""
    hashed = bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def _verify_legacy(password: str, password_hash: str) -> bool:
    try:
        encoded = base64.b64encode(password.encode("utf-8")).decode("ascii")
    except (UnicodeError, binascii.Error):
        return False
    return hmac.compare_digest(encoded, password_hash)


def verify_password(password: str, password_hash: str) -> bool:
    """True if `password` matches the stored hash (bcrypt or legacy base64)."""
    if not password or not password_hash:
        return False
    if is_bcrypt_hash(password_hash):
        try:
            return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
        except ValueError:
            logger.warning("Stored bcrypt hash is malformed")
            return False
    return _verify_legacy(password, password_hash)


def check_project_password(
    password: str,
    password_hash: str,
    universal_password: Optional[str] = None,
) -> bool:
    """
    Project gate: the configured universal password opens every project,
    otherwise the project's own hash must match.
    """
    if universal_password and password and hmac.compare_digest(password, universal_password):
        return True
    return verify_password(password, password_hash)


def needs_rehash(password_hash: str) -> bool:
    return not is_bcrypt_hash(password_hash)
