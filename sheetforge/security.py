# File: sheetforge/security.py
"""
SheetForge - Credential Helpers
===============================
bcrypt hashing and HS256 token issuance used by the in-process runtime.
The generated backend carries its own copy of these helpers in
``support.py``; both sides use the same cost factor and claim layout so a
hash or token produced by one is accepted by the other.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import bcrypt
from jose import JWTError, jwt

logger: logging.Logger = logging.getLogger("sheetforge.security")

PASSWORD_HASH_ROUNDS: int = 10
TOKEN_ALGORITHM: str = "HS256"
DEFAULT_TOKEN_EXPIRY: int = 86400


def hash_password(plain: str, rounds: int = PASSWORD_HASH_ROUNDS) -> str:
    """One-way salted bcrypt hash of *plain*."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """
    Compare *plain* against a stored bcrypt hash.

    A malformed stored value is treated as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.debug("Stored password is not a bcrypt hash")
        return False


def issue_token(
    subject: Any,
    secret: str,
    expires_in: int = DEFAULT_TOKEN_EXPIRY,
    algorithm: str = TOKEN_ALGORITHM,
) -> str:
    """Signed token carrying ``id`` and an ``exp`` *expires_in* seconds ahead."""
    expires = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    claims: Dict[str, Any] = {"id": str(subject), "exp": expires}
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = TOKEN_ALGORITHM) -> Dict[str, Any]:
    """
    Verify signature and expiry of *token*.

    Raises:
        ValueError: The token is invalid or expired.
    """
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as exc:
        raise ValueError(f"Invalid token: {exc}") from exc
