"""Login and caller identity routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.auth.capabilities import capabilities_for
from src.auth.dependencies import require_auth_context
from src.auth.jwt import AuthContext, create_access_token
from src.core.logger import get_logger
from src.orgs.service import authenticate_org_user
from src.schemas.auth import CallerIdentity, LoginRequest, TokenResponse
from src.storage.db import get_session
from src.storage.tenant import set_org_context


router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_logger("content_queue.auth")


def _identity(context: AuthContext) -> CallerIdentity:
    return CallerIdentity(
        user_id=context.user_id,
        org_id=context.org_id,
        email=context.email,
        role=context.role,
        capabilities=capabilities_for(context.role),
    )


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, session: Session = Depends(get_session)) -> TokenResponse:
    set_org_context(session, payload.org_id)
    user, membership = authenticate_org_user(
        session,
        email=payload.email,
        password=payload.password,
        org_id=payload.org_id,
    )
    context = AuthContext(user_id=user.id, org_id=payload.org_id, role=membership.role, email=user.email)
    token, expires_in = create_access_token(context)
    logger.info("member_logged_in", org_id=context.org_id, user_id=context.user_id, role=context.role)

    return TokenResponse(
        **_identity(context).model_dump(),
        access_token=token,
        expires_in=expires_in,
    )


@router.get("/me", response_model=CallerIdentity)
def whoami(auth: AuthContext = Depends(require_auth_context)) -> CallerIdentity:
    return _identity(auth)
