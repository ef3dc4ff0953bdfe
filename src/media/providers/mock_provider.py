"""Deterministic mock image provider for local/dev usage."""

from __future__ import annotations

import hashlib

from src.media.providers.base import GeneratedImage, ImageProvider, ImageRequest


class MockImageProvider(ImageProvider):
    provider_name = "mock"

    def generate_image(self, request: ImageRequest) -> GeneratedImage:
        width, height = request.dimensions
        seed_source = f"{request.prompt}:{request.style}:{request.aspect_ratio}".encode("utf-8")
        seed = hashlib.sha1(seed_source).hexdigest()[:16]
        return GeneratedImage(
            provider=self.provider_name,
            image_url=f"https://picsum.photos/seed/{seed}/{width}/{height}",
            width=width,
            height=height,
            mime_type="image/jpeg",
            quality_score=80.0,
            payload={"seed": seed},
        )
