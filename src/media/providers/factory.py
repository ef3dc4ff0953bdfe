"""Resolves the configured image provider."""

from __future__ import annotations

from functools import lru_cache
from typing import Callable, Dict

from src.core.config import Settings, get_settings
from src.media.providers.base import ImageProvider
from src.media.providers.mock_provider import MockImageProvider
from src.media.providers.webhook_provider import WebhookImageProvider


def _webhook_provider(settings: Settings) -> ImageProvider:
    return WebhookImageProvider(
        webhook_url=settings.image_webhook_url,
        webhook_token=settings.image_webhook_token,
        timeout_seconds=settings.image_generation_timeout_seconds,
    )


PROVIDER_BUILDERS: Dict[str, Callable[[Settings], ImageProvider]] = {
    "mock": lambda settings: MockImageProvider(),
    "webhook": _webhook_provider,
}


def build_image_provider(settings: Settings) -> ImageProvider:
    name = settings.image_provider.strip().lower()
    try:
        builder = PROVIDER_BUILDERS[name]
    except KeyError as exc:
        raise ValueError(f"Unknown image provider: {settings.image_provider}") from exc
    return builder(settings)


@lru_cache(maxsize=1)
def get_image_provider() -> ImageProvider:
    return build_image_provider(get_settings())


def reset_image_provider_cache() -> None:
    get_image_provider.cache_clear()
