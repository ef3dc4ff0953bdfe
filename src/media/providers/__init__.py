"""Image generation provider integrations."""

from src.media.providers.base import (
    ASPECT_RATIO_DIMENSIONS,
    GeneratedImage,
    ImageProvider,
    ImageProviderError,
    ImageRequest,
)
from src.media.providers.factory import get_image_provider, reset_image_provider_cache
from src.media.providers.mock_provider import MockImageProvider
from src.media.providers.webhook_provider import WebhookImageProvider

__all__ = [
    "ASPECT_RATIO_DIMENSIONS",
    "GeneratedImage",
    "ImageProvider",
    "ImageProviderError",
    "ImageRequest",
    "MockImageProvider",
    "WebhookImageProvider",
    "get_image_provider",
    "reset_image_provider_cache",
]
