"""Org management API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.auth.capabilities import CAP_MANAGE_MEMBERS
from src.auth.dependencies import enforce_org_scope, require_capability
from src.auth.jwt import AuthContext
from src.orgs.service import add_org_member, create_org_with_owner
from src.schemas.org import MemberCreateRequest, MemberResponse, OrgCreateRequest, OrgCreateResponse
from src.storage.db import get_session
from src.storage.tenant import set_org_context


router = APIRouter(prefix="/orgs", tags=["orgs"])


@router.post("", response_model=OrgCreateResponse, status_code=201)
def create_org(
    payload: OrgCreateRequest,
    session: Session = Depends(get_session),
) -> OrgCreateResponse:
    org, user, role_name = create_org_with_owner(
        session,
        org_name=payload.name,
        owner_email=payload.owner_email,
        owner_password=payload.owner_password,
        brand_voice=payload.brand_voice,
    )
    return OrgCreateResponse(
        org_id=org.id,
        name=org.name,
        owner_user_id=user.id,
        owner_role=role_name,
    )


@router.post("/{org_id}/members", response_model=MemberResponse, status_code=201)
def create_member(
    org_id: str,
    payload: MemberCreateRequest,
    auth: AuthContext = Depends(require_capability(CAP_MANAGE_MEMBERS)),
    session: Session = Depends(get_session),
) -> MemberResponse:
    enforce_org_scope(auth, org_id)
    set_org_context(session, org_id)
    user, membership = add_org_member(
        session,
        org_id=org_id,
        email=payload.email,
        password=payload.password,
        role=payload.role,
    )
    return MemberResponse(
        id=membership.id,
        org_id=membership.org_id,
        user_id=user.id,
        email=user.email,
        role=membership.role,
    )
