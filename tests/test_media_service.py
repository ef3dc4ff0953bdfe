import base64
import json
from pathlib import Path

import httpx
import pytest

from src.core.config import get_settings
from src.media.providers import (
    ImageProviderError,
    ImageRequest,
    MockImageProvider,
    WebhookImageProvider,
    get_image_provider,
    reset_image_provider_cache,
)
from src.media.service import build_image_prompt, generate_blog_images, resolve_media_file, store_media_bytes
from tests.conftest import FakeImageProvider


def _generate(provider, **overrides):
    values = {
        "org_id": "org-1",
        "queue_id": "queue-1",
        "title": "Cold Email Guide",
        "excerpt": "Short guide.",
        "keywords": ["email"],
        "style": "photographic",
        "timeout_seconds": 2.0,
        "provider": provider,
    }
    values.update(overrides)
    return generate_blog_images(**values)


def test_both_images_requested_with_their_aspect_ratios() -> None:
    provider = FakeImageProvider()

    result = _generate(provider)

    assert result.image_generated is True
    assert result.degraded_reason is None
    assert sorted(request.aspect_ratio for request in provider.requests) == ["16:9", "1:1"]
    assert result.featured_image.url == "https://images.test/16x9.png"
    assert (result.featured_image.width, result.featured_image.height) == (1600, 900)
    assert result.thumbnail_image.url == "https://images.test/1x1.png"


def test_image_bytes_are_stored_and_served_publicly(tmp_path) -> None:
    result = _generate(FakeImageProvider(image_bytes=b"\x89PNG fake"))

    featured = result.featured_image
    assert featured.storage_path.startswith("org-1/")
    assert featured.storage_path.endswith(".png")
    assert featured.url == f"https://queue.test/media/public/{featured.storage_path}"
    stored = tmp_path / "media" / featured.storage_path
    assert stored.read_bytes() == b"\x89PNG fake"


def test_provider_errors_degrade_per_slot() -> None:
    result = _generate(FakeImageProvider(error=ImageProviderError("image_webhook_failed status=500")))

    assert result.image_generated is False
    assert result.featured_image is None
    assert result.degraded_reason == "featured_image_provider_error,thumbnail_image_provider_error"


def test_unexpected_provider_crash_degrades() -> None:
    result = _generate(FakeImageProvider(error=KeyError("boom")))

    assert result.degraded_reason == "featured_image_error,thumbnail_image_error"


def test_disabled_image_generation_skips_provider(monkeypatch) -> None:
    monkeypatch.setenv("IMAGE_GENERATION_ENABLED", "false")
    get_settings.cache_clear()
    provider = FakeImageProvider()

    result = _generate(provider)

    assert result.degraded_reason == "image_generation_disabled"
    assert provider.requests == []


def test_resolve_media_file_stays_inside_org_folder() -> None:
    relative_path, digest, size = store_media_bytes(
        org_id="org-1",
        asset_id="asset",
        mime_type="image/webp",
        content=b"webp",
    )
    assert relative_path == "org-1/asset.webp"
    assert size == 4
    assert len(digest) == 64

    resolved = resolve_media_file("org-1", "asset.webp")
    assert isinstance(resolved, Path)
    assert resolved.read_bytes() == b"webp"
    assert resolve_media_file("org-2", "asset.webp") is None
    assert resolve_media_file("org-1", "../asset.webp") is None
    assert resolve_media_file("..", "media") is None
    assert resolve_media_file("org-1", "missing.png") is None


def test_prompt_truncates_long_excerpts() -> None:
    prompt = build_image_prompt(title=" Guide ", excerpt="word " * 200, keywords=["a", "b"], style="flat")

    assert prompt.startswith("Blog header image for 'Guide'.")
    assert "..." in prompt
    assert "Keywords: a, b." in prompt
    assert "Style: flat." in prompt


def test_public_media_route(client) -> None:
    store_media_bytes(org_id="org-1", asset_id="served", mime_type="image/png", content=b"png-bytes")

    response = client.get("/media/public/org-1/served.png")
    missing = client.get("/media/public/org-1/nothing.png")

    assert response.status_code == 200
    assert response.content == b"png-bytes"
    assert missing.status_code == 404


def test_webhook_provider_decodes_inline_images() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["aspect_ratio"] == "1:1"
        return httpx.Response(
            200,
            json={"image_base64": "data:image/png;base64," + base64.b64encode(b"thumb").decode("ascii")},
        )

    provider = WebhookImageProvider(
        webhook_url="https://images.example.com/hook",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    image = provider.generate_image(ImageRequest(prompt="p", style="flat", aspect_ratio="1:1"))

    assert image.image_bytes == b"thumb"
    assert (image.width, image.height) == (1080, 1080)
    assert "image_base64" not in image.payload


def test_webhook_provider_errors_are_provider_errors() -> None:
    provider = WebhookImageProvider(
        webhook_url="https://images.example.com/hook",
        client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))),
    )

    with pytest.raises(ImageProviderError, match="image_webhook_missing_image"):
        provider.generate_image(ImageRequest(prompt="p", style="flat", aspect_ratio="16:9"))


def test_provider_factory_follows_settings(monkeypatch) -> None:
    assert isinstance(get_image_provider(), MockImageProvider)

    monkeypatch.setenv("IMAGE_PROVIDER", "webhook")
    get_settings.cache_clear()
    reset_image_provider_cache()

    assert isinstance(get_image_provider(), WebhookImageProvider)
