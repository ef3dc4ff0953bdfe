import json

import httpx
import pytest

from src.core.config import get_settings
from src.core.errors import UpstreamUnavailable
from src.generation.client import (
    ContentRequest,
    HttpContentGenerator,
    MockContentGenerator,
    get_content_generator,
    reset_content_generator_cache,
)


def _request(**overrides) -> ContentRequest:
    values = {
        "topic": "Cold email",
        "keywords": ["outreach", "email"],
        "target_audience": "founders",
        "tone": "professional",
        "word_count": 1200,
        "quality_level": "high",
        "brand_voice": "Plain spoken",
    }
    values.update(overrides)
    return ContentRequest(**values)


def _generator(handler) -> HttpContentGenerator:
    return HttpContentGenerator(
        base_url="https://generator.example.com/",
        token="gen-token",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_generate_posts_request_and_parses_content() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "title": " Cold Email Guide ",
                "content": "<p>Body</p>",
                "excerpt": "Short",
                "metadata": {"word_count": 1180},
            },
        )

    generated = _generator(handler).generate(_request())

    assert seen["url"] == "https://generator.example.com/generate"
    assert seen["auth"] == "Bearer gen-token"
    assert seen["body"]["keywords"] == ["outreach", "email"]
    assert seen["body"]["brand_voice"] == "Plain spoken"
    assert "content_goal_prompt" not in seen["body"]
    assert generated.title == "Cold Email Guide"
    assert generated.excerpt == "Short"
    assert generated.metadata == {"word_count": 1180}


def test_generate_raises_on_non_2xx() -> None:
    generator = _generator(lambda request: httpx.Response(503, text="overloaded"))

    with pytest.raises(UpstreamUnavailable) as exc_info:
        generator.generate(_request())

    assert "status=503" in str(exc_info.value)
    assert exc_info.value.details["upstream_status"] == 503
    assert exc_info.value.to_payload()["retriable"] is True


def test_generate_rejects_empty_content() -> None:
    generator = _generator(lambda request: httpx.Response(200, json={"title": "Only a title", "content": "  "}))

    with pytest.raises(UpstreamUnavailable, match="content_service_empty_content"):
        generator.generate(_request())


def test_transport_errors_are_upstream_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamUnavailable, match="content_service_unreachable path=/generate"):
        _generator(handler).generate(_request())


def test_analyze_reads_numeric_scores_only() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/analyze"
        return httpx.Response(200, json={"scores": {"readability": 72, "seo": 64.5, "notes": "ok", "flag": True}})

    scores = _generator(handler).analyze(title="T", content="<p>C</p>", keywords=["a"])

    assert scores == {"readability": 72.0, "seo": 64.5}


def test_missing_url_fails_without_network() -> None:
    generator = HttpContentGenerator(base_url="  ")

    with pytest.raises(UpstreamUnavailable, match="content_generation_url_missing"):
        generator.generate(_request())


def test_mock_generator_is_deterministic() -> None:
    generator = MockContentGenerator()

    first = generator.generate(_request())
    second = generator.generate(_request())

    assert first == second
    assert first.title == "Cold Email: A Practical Guide"
    assert "outreach, email" in first.content
    assert set(generator.analyze(title=first.title, content=first.content, keywords=[])) == {
        "readability",
        "seo",
        "quality",
    }


def test_factory_selects_provider_from_settings(monkeypatch) -> None:
    assert isinstance(get_content_generator(), MockContentGenerator)

    monkeypatch.setenv("CONTENT_GENERATION_PROVIDER", "http")
    monkeypatch.setenv("CONTENT_GENERATION_URL", "https://generator.example.com")
    get_settings.cache_clear()
    reset_content_generator_cache()

    assert isinstance(get_content_generator(), HttpContentGenerator)
