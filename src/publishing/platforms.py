"""Per-platform publishers: a webhook client per platform, or a mock for development."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
import hashlib
import json
from typing import Any, Dict, Optional, Protocol

import httpx

from src.core.config import get_settings


SUPPORTED_PLATFORMS = ("webflow", "wordpress", "shopify")


class PlatformPublishError(RuntimeError):
    """Raised when a platform rejects or cannot receive a post."""


@dataclass(frozen=True)
class PlatformPost:
    queue_id: str
    org_id: str
    title: str
    content: str
    slug: Optional[str] = None
    excerpt: Optional[str] = None
    seo: Dict[str, Any] = field(default_factory=dict)
    images: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PlatformPublishResult:
    platform: str
    platform_post_id: Optional[str]
    platform_url: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)


class PlatformPublisher(Protocol):
    platform: str

    def publish(self, post: PlatformPost) -> PlatformPublishResult:
        raise NotImplementedError


class MockPlatformPublisher(PlatformPublisher):
    def __init__(self, platform: str) -> None:
        self.platform = platform

    def publish(self, post: PlatformPost) -> PlatformPublishResult:
        post_id = hashlib.sha1(f"{self.platform}:{post.queue_id}".encode("utf-8")).hexdigest()[:16]
        slug = post.slug or post_id
        return PlatformPublishResult(
            platform=self.platform,
            platform_post_id=post_id,
            platform_url=f"https://{self.platform}.example.com/blog/{slug}",
            payload={"mock": True},
        )


class WebhookPlatformPublisher(PlatformPublisher):
    def __init__(
        self,
        *,
        platform: str,
        webhook_url: str,
        webhook_token: str = "",
        timeout_seconds: int = 20,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.platform = platform
        self._webhook_url = webhook_url.strip()
        self._webhook_token = webhook_token.strip()
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._webhook_token:
            headers["Authorization"] = f"Bearer {self._webhook_token}"
        return headers

    def publish(self, post: PlatformPost) -> PlatformPublishResult:
        if not self._webhook_url:
            raise PlatformPublishError(f"{self.platform}_webhook_url_missing")
        if not post.title.strip():
            raise PlatformPublishError("post_title_missing")
        if not post.content.strip():
            raise PlatformPublishError("post_body_missing")

        payload: Dict[str, Any] = {
            "platform": self.platform,
            "org_id": post.org_id,
            "queue_id": post.queue_id,
            "title": post.title.strip(),
            "content": post.content,
            "slug": post.slug,
            "excerpt": post.excerpt,
            "seo": post.seo,
            "images": post.images,
        }

        try:
            if self._client is not None:
                response = self._client.post(self._webhook_url, headers=self._headers(), json=payload)
            else:
                with httpx.Client(timeout=self._timeout_seconds) as client:
                    response = client.post(self._webhook_url, headers=self._headers(), json=payload)
        except httpx.HTTPError as exc:
            raise PlatformPublishError(f"{self.platform}_webhook_unreachable error={exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            detail = response.text.strip()
            if len(detail) > 200:
                detail = detail[:200] + "..."
            raise PlatformPublishError(
                f"{self.platform}_webhook_failed status={response.status_code} detail={detail}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise PlatformPublishError(f"{self.platform}_webhook_invalid_json_response") from exc
        if not isinstance(body, dict):
            raise PlatformPublishError(f"{self.platform}_webhook_invalid_payload")

        post_id = body.get("post_id") or body.get("id")
        url = body.get("url") or body.get("platform_url")
        return PlatformPublishResult(
            platform=self.platform,
            platform_post_id=str(post_id) if post_id else None,
            platform_url=str(url) if url else None,
            payload=body,
        )


def parse_webhook_urls(raw: str) -> Dict[str, str]:
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError as exc:
        raise ValueError("PUBLISHING_WEBHOOK_URLS must be a JSON object") from exc
    if not isinstance(parsed, dict):
        raise ValueError("PUBLISHING_WEBHOOK_URLS must be a JSON object")
    return {str(platform).strip().lower(): str(url) for platform, url in parsed.items()}


@lru_cache(maxsize=len(SUPPORTED_PLATFORMS))
def get_platform_publisher(platform: str) -> PlatformPublisher:
    normalized = platform.strip().lower()
    if normalized not in SUPPORTED_PLATFORMS:
        raise ValueError(f"Unsupported publishing platform: {platform}")

    settings = get_settings()
    if settings.publishing_provider.strip().lower() != "webhook":
        return MockPlatformPublisher(normalized)
    return WebhookPlatformPublisher(
        platform=normalized,
        webhook_url=parse_webhook_urls(settings.publishing_webhook_urls).get(normalized, ""),
        webhook_token=settings.publishing_webhook_token,
        timeout_seconds=settings.publishing_webhook_timeout_seconds,
    )


def reset_platform_publisher_cache() -> None:
    get_platform_publisher.cache_clear()
