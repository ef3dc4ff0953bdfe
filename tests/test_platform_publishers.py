import json

import httpx
import pytest

from src.core.config import get_settings
from src.publishing.platforms import (
    MockPlatformPublisher,
    PlatformPost,
    PlatformPublishError,
    WebhookPlatformPublisher,
    get_platform_publisher,
    parse_webhook_urls,
    reset_platform_publisher_cache,
)


def _post(**overrides) -> PlatformPost:
    values = {
        "queue_id": "queue-1",
        "org_id": "org-1",
        "title": "Ship It",
        "content": "<p>Body</p>",
        "slug": "ship-it",
        "seo": {"seo_title": "Ship It | Guide"},
    }
    values.update(overrides)
    return PlatformPost(**values)


def _publisher(handler, *, url="https://hooks.example.com/wordpress") -> WebhookPlatformPublisher:
    return WebhookPlatformPublisher(
        platform="wordpress",
        webhook_url=url,
        webhook_token="hook-token",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_webhook_publisher_sends_post_and_reads_identifiers() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": 991, "url": "https://blog.example.com/ship-it"})

    result = _publisher(handler).publish(_post())

    assert seen["auth"] == "Bearer hook-token"
    assert seen["body"]["platform"] == "wordpress"
    assert seen["body"]["slug"] == "ship-it"
    assert seen["body"]["seo"] == {"seo_title": "Ship It | Guide"}
    assert result.platform_post_id == "991"
    assert result.platform_url == "https://blog.example.com/ship-it"


def test_webhook_publisher_reports_platform_failures() -> None:
    publisher = _publisher(lambda request: httpx.Response(422, text="slug taken"))

    with pytest.raises(PlatformPublishError, match="wordpress_webhook_failed status=422 detail=slug taken"):
        publisher.publish(_post())


def test_webhook_publisher_validates_before_sending() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(PlatformPublishError, match="wordpress_webhook_url_missing"):
        _publisher(handler, url="").publish(_post())
    with pytest.raises(PlatformPublishError, match="post_title_missing"):
        _publisher(handler).publish(_post(title="  "))
    with pytest.raises(PlatformPublishError, match="post_body_missing"):
        _publisher(handler).publish(_post(content=""))
    assert calls == []


def test_parse_webhook_urls() -> None:
    assert parse_webhook_urls('{"WordPress": "https://hooks.example.com/wp"}') == {
        "wordpress": "https://hooks.example.com/wp"
    }
    assert parse_webhook_urls("") == {}
    with pytest.raises(ValueError):
        parse_webhook_urls("[1, 2]")
    with pytest.raises(ValueError):
        parse_webhook_urls("not json")


def test_factory_returns_mock_by_default() -> None:
    publisher = get_platform_publisher("Shopify")

    assert isinstance(publisher, MockPlatformPublisher)
    result = publisher.publish(_post())
    assert result.platform_url == "https://shopify.example.com/blog/ship-it"
    with pytest.raises(ValueError):
        get_platform_publisher("myspace")


def test_factory_builds_webhook_publishers(monkeypatch) -> None:
    monkeypatch.setenv("PUBLISHING_PROVIDER", "webhook")
    monkeypatch.setenv("PUBLISHING_WEBHOOK_URLS", '{"webflow": "https://hooks.example.com/webflow"}')
    get_settings.cache_clear()
    reset_platform_publisher_cache()

    webflow = get_platform_publisher("webflow")
    wordpress = get_platform_publisher("wordpress")

    assert isinstance(webflow, WebhookPlatformPublisher)
    assert webflow.platform == "webflow"
    with pytest.raises(PlatformPublishError, match="wordpress_webhook_url_missing"):
        wordpress.publish(_post())
