"""FastAPI dependencies for auth and capability enforcement."""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from src.auth.capabilities import has_capability
from src.auth.jwt import AuthContext
from src.auth.middleware import AUTH_CONTEXT_KEY


def get_optional_auth_context(request: Request) -> Optional[AuthContext]:
    return getattr(request.state, AUTH_CONTEXT_KEY, None)


def require_auth_context(auth: Optional[AuthContext] = Depends(get_optional_auth_context)) -> AuthContext:
    if auth is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return auth


def require_capability(capability: str) -> Callable[[AuthContext], AuthContext]:
    def dependency(auth: AuthContext = Depends(require_auth_context)) -> AuthContext:
        if not has_capability(auth.role, capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing capability: {capability}",
            )
        return auth

    return dependency


def enforce_org_scope(auth: AuthContext, org_id: str) -> None:
    if auth.org_id != org_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Org scope mismatch",
        )
