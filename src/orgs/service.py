"""Org and membership application services."""

from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.auth.capabilities import load_capability_table
from src.core.logger import get_logger
from src.storage.models import Org, OrgMember, User
from src.storage.security import hash_password, verify_password


logger = get_logger("content_queue.orgs")


def _get_or_create_user(session: Session, *, email: str, password: str) -> User:
    user = session.scalar(select(User).where(User.email == email))
    if user is None:
        user = User(id=str(uuid.uuid4()), email=email, password_hash=hash_password(password))
        session.add(user)
        session.flush()
    elif not verify_password(password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User email already exists with different credentials",
        )
    return user


def create_org_with_owner(
    session: Session,
    *,
    org_name: str,
    owner_email: str,
    owner_password: str,
    brand_voice: str | None = None,
) -> tuple[Org, User, str]:
    existing_org = session.scalar(select(Org).where(Org.name == org_name))
    if existing_org is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Org name already exists",
        )

    user = _get_or_create_user(session, email=owner_email, password=owner_password)
    org = Org(id=str(uuid.uuid4()), name=org_name, brand_voice=brand_voice)
    session.add(org)
    session.flush()

    session.add(OrgMember(id=str(uuid.uuid4()), org_id=org.id, user_id=user.id, role="owner"))
    session.commit()
    logger.info("org_created", org_id=org.id, owner_user_id=user.id)
    return org, user, "owner"


def add_org_member(
    session: Session,
    *,
    org_id: str,
    email: str,
    password: str,
    role: str,
) -> tuple[User, OrgMember]:
    normalized_role = role.strip().lower()
    if normalized_role not in load_capability_table():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown role: {role}",
        )

    org = session.get(Org, org_id)
    if org is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Org not found")

    user = _get_or_create_user(session, email=email, password=password)
    membership = session.scalar(
        select(OrgMember).where(OrgMember.org_id == org_id, OrgMember.user_id == user.id)
    )
    if membership is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User is already a member of this org",
        )

    membership = OrgMember(id=str(uuid.uuid4()), org_id=org_id, user_id=user.id, role=normalized_role)
    session.add(membership)
    session.commit()
    logger.info("org_member_added", org_id=org_id, user_id=user.id, role=normalized_role)
    return user, membership


def authenticate_org_user(
    session: Session,
    *,
    email: str,
    password: str,
    org_id: str,
) -> tuple[User, OrgMember]:
    user = session.scalar(select(User).where(User.email == email, User.is_active.is_(True)))
    if user is None or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    membership = session.scalar(
        select(OrgMember).where(OrgMember.user_id == user.id, OrgMember.org_id == org_id)
    )
    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a member of this org",
        )
    return user, membership
