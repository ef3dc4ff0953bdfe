"""Password hashing for org members."""

from __future__ import annotations

import base64
import hashlib
import hmac
import os
from typing import Tuple


PBKDF2_ALGORITHM = "pbkdf2_sha256"
PBKDF2_ROUNDS = 260_000
MIN_PASSWORD_LENGTH = 8


def _derive(password: str, salt: bytes, rounds: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)


def _decode_hash(encoded_hash: str) -> Tuple[int, bytes, bytes]:
    algorithm, rounds_str, salt_b64, digest_b64 = encoded_hash.split("$", 3)
    if algorithm != PBKDF2_ALGORITHM:
        raise ValueError(f"Unsupported password hash algorithm: {algorithm}")
    return (
        int(rounds_str),
        base64.b64decode(salt_b64.encode("ascii")),
        base64.b64decode(digest_b64.encode("ascii")),
    )


def hash_password(password: str) -> str:
    """Hash password with PBKDF2-SHA256 and a random salt."""

    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    salt = os.urandom(16)
    digest = _derive(password, salt, PBKDF2_ROUNDS)
    salt_b64 = base64.b64encode(salt).decode("ascii")
    digest_b64 = base64.b64encode(digest).decode("ascii")
    return f"{PBKDF2_ALGORITHM}${PBKDF2_ROUNDS}${salt_b64}${digest_b64}"


def verify_password(password: str, encoded_hash: str) -> bool:
    try:
        rounds, salt, expected = _decode_hash(encoded_hash)
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(_derive(password, salt, rounds), expected)
