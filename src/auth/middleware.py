"""Authentication middleware helpers."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from src.auth.jwt import AuthContext, InvalidToken, decode_access_token
from src.core.logger import get_logger


AUTH_CONTEXT_KEY = "auth_context"

logger = get_logger("content_queue.auth")


def _extract_bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization")
    if not authorization:
        return None

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def resolve_request_auth_context(request: Request) -> Optional[AuthContext]:
    """Decode the bearer token if present; invalid tokens resolve to anonymous."""

    token = _extract_bearer_token(request)
    if not token:
        return None

    try:
        return decode_access_token(token)
    except InvalidToken as exc:
        logger.info("bearer_token_rejected", reason=str(exc), path=request.url.path)
        return None
