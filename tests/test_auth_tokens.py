from datetime import datetime, timedelta, timezone

import jwt
import pytest

from src.auth.jwt import TOKEN_ISSUER, AuthContext, InvalidToken, create_access_token, decode_access_token
from tests.conftest import TEST_SECRET_KEY, seed_org


def test_token_carries_org_membership() -> None:
    token, lifetime = create_access_token(AuthContext(user_id="user-1", org_id="org-1", role="Editor", email="e@acme.io"))

    context = decode_access_token(token)

    assert context == AuthContext(user_id="user-1", org_id="org-1", role="editor", email="e@acme.io")
    assert lifetime > 0


def test_expired_token_is_rejected() -> None:
    issued = datetime.now(timezone.utc) - timedelta(days=30)
    token, _ = create_access_token(AuthContext(user_id="user-1", org_id="org-1", role="member"), now=issued)

    with pytest.raises(InvalidToken, match="token_expired"):
        decode_access_token(token)


def test_token_for_another_audience_is_rejected() -> None:
    now = datetime.now(timezone.utc)
    foreign = jwt.encode(
        {
            "sub": "user-1",
            "org_id": "org-1",
            "role": "owner",
            "iss": TOKEN_ISSUER,
            "aud": "reports.api",
            "exp": int((now + timedelta(minutes=5)).timestamp()),
        },
        TEST_SECRET_KEY,
        algorithm="HS256",
    )

    with pytest.raises(InvalidToken, match="token_invalid"):
        decode_access_token(foreign)


def test_invalid_bearer_token_is_treated_as_anonymous(client) -> None:
    response = client.get("/blog-queue", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401


def test_login_returns_role_capabilities_and_me_echoes_them(client, session) -> None:
    org = seed_org(session)

    response = client.post(
        "/auth/login",
        json={"org_id": org.org_id, "email": "member@acme.io", "password": "member-pass-123"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == org.member_id
    assert body["role"] == "member"
    assert body["token_type"] == "bearer"
    assert body["capabilities"] == ["create_job", "edit_own_job", "view_queue", "view_stats"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json() == {
        "user_id": org.member_id,
        "org_id": org.org_id,
        "email": "member@acme.io",
        "role": "member",
        "capabilities": ["create_job", "edit_own_job", "view_queue", "view_stats"],
    }


def test_me_requires_a_token(client) -> None:
    assert client.get("/auth/me").status_code == 401
