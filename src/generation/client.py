"""Client for the external content-generation service."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
import hashlib
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from src.core.config import get_settings
from src.core.errors import UpstreamUnavailable


@dataclass(frozen=True)
class ContentRequest:
    topic: str
    keywords: List[str]
    target_audience: Optional[str]
    tone: str
    word_count: int
    quality_level: str
    brand_voice: Optional[str] = None
    content_goal_prompt: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "topic": self.topic,
            "keywords": list(self.keywords),
            "target_audience": self.target_audience,
            "tone": self.tone,
            "word_count": self.word_count,
            "quality_level": self.quality_level,
        }
        if self.brand_voice:
            payload["brand_voice"] = self.brand_voice
        if self.content_goal_prompt:
            payload["content_goal_prompt"] = self.content_goal_prompt
        return payload


@dataclass(frozen=True)
class GeneratedContent:
    title: str
    content: str
    excerpt: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


class ContentGenerator(Protocol):
    provider_name: str

    def generate(self, request: ContentRequest) -> GeneratedContent:
        raise NotImplementedError

    def analyze(self, *, title: str, content: str, keywords: Sequence[str]) -> Dict[str, float]:
        raise NotImplementedError


class MockContentGenerator(ContentGenerator):
    """Deterministic offline generator for development and tests."""

    provider_name = "mock"

    def generate(self, request: ContentRequest) -> GeneratedContent:
        keywords = ", ".join(request.keywords) or request.topic
        title = f"{request.topic.strip().title()}: A Practical Guide"
        sections = [
            f"<h2>Why {request.topic} matters</h2>",
            f"<p>{request.topic} shapes how {request.target_audience or 'teams'} work. Key ideas: {keywords}.</p>",
            "<h2>Getting started</h2>",
            f"<p>Start small, measure results and iterate on {request.topic}.</p>",
        ]
        content = "\n".join(sections)
        digest = hashlib.sha1(request.topic.encode("utf-8")).hexdigest()[:12]
        return GeneratedContent(
            title=title,
            content=content,
            excerpt=f"A practical guide to {request.topic}.",
            metadata={"word_count": len(content.split()), "model": "mock", "request_hash": digest},
        )

    def analyze(self, *, title: str, content: str, keywords: Sequence[str]) -> Dict[str, float]:
        del title, keywords
        words = len(content.split())
        return {
            "readability": 70.0,
            "seo": 65.0,
            "quality": min(100.0, 40.0 + words / 10.0),
        }


class HttpContentGenerator(ContentGenerator):
    provider_name = "http"

    def __init__(
        self,
        *,
        base_url: str,
        token: str = "",
        timeout_seconds: int = 300,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._base_url = base_url.strip().rstrip("/")
        self._token = token.strip()
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self._base_url:
            raise UpstreamUnavailable("content_generation_url_missing")
        url = f"{self._base_url}{path}"
        try:
            if self._client is not None:
                response = self._client.post(url, headers=self._headers(), json=payload)
            else:
                with httpx.Client(timeout=self._timeout_seconds) as client:
                    response = client.post(url, headers=self._headers(), json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"content_service_unreachable path={path}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            detail = response.text.strip()
            if len(detail) > 200:
                detail = detail[:200] + "..."
            raise UpstreamUnavailable(
                f"content_service_failed status={response.status_code} detail={detail}",
                upstream_status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable("content_service_invalid_json_response") from exc
        if not isinstance(body, dict):
            raise UpstreamUnavailable("content_service_invalid_payload")
        return body

    def generate(self, request: ContentRequest) -> GeneratedContent:
        body = self._post("/generate", request.to_payload())
        title = str(body.get("title") or "").strip()
        content = str(body.get("content") or "").strip()
        if not title or not content:
            raise UpstreamUnavailable("content_service_empty_content")
        metadata = body.get("metadata")
        return GeneratedContent(
            title=title,
            content=content,
            excerpt=str(body.get("excerpt") or "").strip(),
            metadata=metadata if isinstance(metadata, dict) else {},
        )

    def analyze(self, *, title: str, content: str, keywords: Sequence[str]) -> Dict[str, float]:
        body = self._post("/analyze", {"title": title, "content": content, "keywords": list(keywords)})
        scores = body.get("scores") if isinstance(body.get("scores"), dict) else body
        return {
            name: float(value)
            for name, value in scores.items()
            if isinstance(value, (int, float)) and not isinstance(value, bool)
        }


@lru_cache(maxsize=1)
def get_content_generator() -> ContentGenerator:
    settings = get_settings()
    if settings.content_generation_provider.strip().lower() == "http":
        return HttpContentGenerator(
            base_url=settings.content_generation_url,
            token=settings.content_generation_token,
            timeout_seconds=settings.content_generation_timeout_seconds,
        )
    return MockContentGenerator()


def reset_content_generator_cache() -> None:
    get_content_generator.cache_clear()
