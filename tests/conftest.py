from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import Dict, List, Optional, Sequence

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import src.api.main as api_main
from src.auth.capabilities import reset_capability_table_cache
from src.auth.jwt import AuthContext, create_access_token
from src.core.config import get_settings
from src.core.metrics import reset_metrics_for_tests
from src.core.observability import reset_observability_for_tests
from src.generation.client import ContentRequest, GeneratedContent, reset_content_generator_cache
from src.media.providers import GeneratedImage, ImageProviderError, ImageRequest, reset_image_provider_cache
from src.orgs.service import add_org_member, create_org_with_owner
from src.progress.channel import get_progress_hub
from src.publishing.platforms import (
    PlatformPost,
    PlatformPublishError,
    PlatformPublishResult,
    reset_platform_publisher_cache,
)
from src.storage.db import Base, get_session, load_models


TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"


@dataclass(frozen=True)
class OrgFixture:
    org_id: str
    owner_id: str
    editor_id: str
    member_id: str
    other_member_id: str


class FakeContentGenerator:
    provider_name = "fake"

    def __init__(
        self,
        *,
        fail_generate: Optional[Exception] = None,
        fail_analyze: Optional[Exception] = None,
    ) -> None:
        self.fail_generate = fail_generate
        self.fail_analyze = fail_analyze
        self.generate_calls: List[ContentRequest] = []
        self.analyze_calls = 0

    def generate(self, request: ContentRequest) -> GeneratedContent:
        self.generate_calls.append(request)
        if self.fail_generate is not None:
            raise self.fail_generate
        return GeneratedContent(
            title=f"Guide to {request.topic}",
            content=f"<h2>Intro</h2><p>Everything about {request.topic} and marketing automation.</p>",
            excerpt=f"Short guide to {request.topic}.",
            metadata={"word_count": 9, "seo_data": {"focus": request.topic}},
        )

    def analyze(self, *, title: str, content: str, keywords: Sequence[str]) -> Dict[str, float]:
        del title, content, keywords
        self.analyze_calls += 1
        if self.fail_analyze is not None:
            raise self.fail_analyze
        return {"readability": 80.0, "seo": 70.0, "quality": 90.0}


class FakeImageProvider:
    provider_name = "fake-images"

    def __init__(
        self,
        *,
        release: Optional[threading.Event] = None,
        error: Optional[Exception] = None,
        image_bytes: Optional[bytes] = None,
    ) -> None:
        self.release = release
        self.error = error
        self.image_bytes = image_bytes
        self.requests: List[ImageRequest] = []

    def generate_image(self, request: ImageRequest) -> GeneratedImage:
        self.requests.append(request)
        if self.release is not None:
            self.release.wait(timeout=5)
        if self.error is not None:
            raise self.error
        width, height = request.dimensions
        return GeneratedImage(
            provider=self.provider_name,
            mime_type="image/png",
            width=width,
            height=height,
            image_url=None if self.image_bytes else f"https://images.test/{request.aspect_ratio.replace(':', 'x')}.png",
            image_bytes=self.image_bytes,
            quality_score=90.0,
        )


@dataclass
class FakePlatformPublisher:
    platform: str
    fail: bool = False
    posts: List[PlatformPost] = field(default_factory=list)

    def publish(self, post: PlatformPost) -> PlatformPublishResult:
        self.posts.append(post)
        if self.fail:
            raise PlatformPublishError(f"{self.platform}_webhook_failed status=500 detail=boom")
        return PlatformPublishResult(
            platform=self.platform,
            platform_post_id=f"{self.platform}-1",
            platform_url=f"https://{self.platform}.test/{post.slug or post.queue_id}",
            payload={"ok": True},
        )


def build_sqlite_session_factory() -> sessionmaker:
    load_models()
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def seed_org(session: Session, *, name: str = "acme") -> OrgFixture:
    org, owner, _ = create_org_with_owner(
        session,
        org_name=name,
        owner_email=f"owner@{name}.io",
        owner_password="owner-pass-123",
        brand_voice="Plain spoken and practical",
    )
    editor, _ = add_org_member(
        session,
        org_id=org.id,
        email=f"editor@{name}.io",
        password="editor-pass-123",
        role="editor",
    )
    member, _ = add_org_member(
        session,
        org_id=org.id,
        email=f"member@{name}.io",
        password="member-pass-123",
        role="member",
    )
    other, _ = add_org_member(
        session,
        org_id=org.id,
        email=f"member2@{name}.io",
        password="member-pass-456",
        role="member",
    )
    return OrgFixture(
        org_id=org.id,
        owner_id=owner.id,
        editor_id=editor.id,
        member_id=member.id,
        other_member_id=other.id,
    )


def auth_headers(*, user_id: str, org_id: str, role: str) -> Dict[str, str]:
    token, _ = create_access_token(AuthContext(user_id=user_id, org_id=org_id, role=role, email=""))
    return {"Authorization": f"Bearer {token}"}


def _clear_caches() -> None:
    get_settings.cache_clear()
    reset_capability_table_cache()
    reset_content_generator_cache()
    reset_image_provider_cache()
    reset_platform_publisher_cache()
    get_progress_hub.cache_clear()
    reset_metrics_for_tests()
    reset_observability_for_tests()


@pytest.fixture(autouse=True)
def app_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("SECRET_KEY", TEST_SECRET_KEY)
    monkeypatch.setenv("MEDIA_STORAGE_PATH", str(tmp_path / "media"))
    monkeypatch.setenv("APP_PUBLIC_BASE_URL", "https://queue.test")
    monkeypatch.setenv("SENTRY_DSN", "")
    _clear_caches()
    yield
    api_main.app.dependency_overrides.clear()
    _clear_caches()


@pytest.fixture
def session_factory() -> sessionmaker:
    return build_sqlite_session_factory()


@pytest.fixture
def session(session_factory):
    db_session = session_factory()
    try:
        yield db_session
    finally:
        db_session.close()


@pytest.fixture
def org(session) -> OrgFixture:
    return seed_org(session)


@pytest.fixture
def client(session_factory) -> TestClient:
    def override_get_session():
        db_session = session_factory()
        try:
            yield db_session
        finally:
            db_session.close()

    api_main.app.dependency_overrides[get_session] = override_get_session
    return TestClient(api_main.app)


__all__ = [
    "FakeContentGenerator",
    "FakeImageProvider",
    "FakePlatformPublisher",
    "ImageProviderError",
    "OrgFixture",
    "auth_headers",
    "build_sqlite_session_factory",
    "seed_org",
]
