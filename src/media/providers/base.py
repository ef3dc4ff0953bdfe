"""Provider contracts for image generation backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol


ASPECT_RATIO_DIMENSIONS: Dict[str, tuple[int, int]] = {
    "16:9": (1600, 900),
    "1:1": (1080, 1080),
    "4:3": (1200, 900),
    "4:5": (1080, 1350),
}


class ImageProviderError(RuntimeError):
    """Raised when an image provider cannot fulfill a generation request."""


@dataclass(frozen=True)
class ImageRequest:
    prompt: str
    style: str
    aspect_ratio: str

    @property
    def dimensions(self) -> tuple[int, int]:
        return ASPECT_RATIO_DIMENSIONS.get(self.aspect_ratio, (1200, 630))


@dataclass(frozen=True)
class GeneratedImage:
    provider: str
    mime_type: str = "image/png"
    width: Optional[int] = None
    height: Optional[int] = None
    image_url: Optional[str] = None
    image_bytes: Optional[bytes] = None
    quality_score: Optional[float] = None
    payload: Dict[str, Any] = field(default_factory=dict)


class ImageProvider(Protocol):
    provider_name: str

    def generate_image(self, request: ImageRequest) -> GeneratedImage:
        raise NotImplementedError
