"""Org-scoped bearer tokens for the content queue API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from src.core.config import get_settings


TOKEN_ISSUER = "content_queue"
TOKEN_AUDIENCE = "content_queue.api"
REQUIRED_CLAIMS = ("sub", "org_id", "role", "exp", "iss", "aud")


class InvalidToken(ValueError):
    """Raised for tokens that are malformed, expired or issued for another audience."""


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    org_id: str
    role: str
    email: str = ""

    def to_claims(self) -> Dict[str, Any]:
        return {"sub": self.user_id, "org_id": self.org_id, "role": self.role, "email": self.email}

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "AuthContext":
        return cls(
            user_id=str(claims["sub"]),
            org_id=str(claims["org_id"]),
            role=str(claims["role"]).strip().lower(),
            email=str(claims.get("email") or ""),
        )


def create_access_token(context: AuthContext, *, now: Optional[datetime] = None) -> tuple[str, int]:
    """Sign a token for one org membership; returns (token, lifetime_seconds)."""

    settings = get_settings()
    issued_at = now or datetime.now(timezone.utc)
    lifetime = settings.access_token_exp_minutes * 60
    claims = context.to_claims()
    claims.update(
        {
            "iss": TOKEN_ISSUER,
            "aud": TOKEN_AUDIENCE,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + timedelta(seconds=lifetime)).timestamp()),
        }
    )
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm), lifetime


def decode_access_token(token: str) -> AuthContext:
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=TOKEN_AUDIENCE,
            issuer=TOKEN_ISSUER,
            options={"require": list(REQUIRED_CLAIMS)},
        )
    except jwt.ExpiredSignatureError as exc:
        raise InvalidToken("token_expired") from exc
    except jwt.PyJWTError as exc:
        raise InvalidToken("token_invalid") from exc
    return AuthContext.from_claims(claims)
