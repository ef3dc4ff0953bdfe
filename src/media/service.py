"""Blog image generation with bounded waiting and local asset storage."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from functools import lru_cache
import hashlib
from pathlib import Path
import time
from typing import Dict, Optional, Sequence
import uuid

from src.core.config import get_settings
from src.core.logger import get_logger
from src.core.observability import capture_exception
from src.media.providers import GeneratedImage, ImageProvider, ImageProviderError, ImageRequest, get_image_provider
from src.workflow.phases import ImageAsset, ImagesResult


logger = get_logger("content_queue.media")

FEATURED_ASPECT_RATIO = "16:9"
THUMBNAIL_ASPECT_RATIO = "1:1"

_MIME_EXTENSIONS: Dict[str, str] = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}


def _mime_extension(mime_type: str) -> str:
    return _MIME_EXTENSIONS.get(mime_type.strip().lower(), ".bin")


def media_storage_root() -> Path:
    settings = get_settings()
    configured = Path(settings.media_storage_path)
    if configured.is_absolute():
        return configured
    return Path.cwd() / configured


def _public_media_url(relative_path: str) -> Optional[str]:
    base = get_settings().app_public_base_url.strip().rstrip("/")
    if not base:
        return None
    return f"{base}/media/public/{relative_path}"


def store_media_bytes(*, org_id: str, asset_id: str, mime_type: str, content: bytes) -> tuple[str, str, int]:
    """Write image bytes under the org's folder; returns (relative_path, sha256, size)."""

    storage_root = media_storage_root() / org_id
    storage_root.mkdir(parents=True, exist_ok=True)
    filename = f"{asset_id}{_mime_extension(mime_type)}"
    (storage_root / filename).write_bytes(content)
    digest = hashlib.sha256(content).hexdigest()
    return (Path(org_id) / filename).as_posix(), digest, len(content)


def resolve_media_file(org_id: str, filename: str) -> Optional[Path]:
    storage_root = media_storage_root().resolve()
    root = (storage_root / org_id).resolve()
    candidate = (root / filename).resolve()
    if root.parent != storage_root or candidate.parent != root or not candidate.is_file():
        return None
    return candidate


def build_image_prompt(*, title: str, excerpt: str, keywords: Sequence[str], style: str) -> str:
    summary = " ".join((excerpt or "").split())
    if len(summary) > 300:
        summary = summary[:300].rstrip() + "..."
    keyword_text = ", ".join(keywords[:5]) if keywords else "none"
    return (
        f"Blog header image for '{title.strip()}'. Summary: {summary or title}. "
        f"Keywords: {keyword_text}. Style: {style}. No text overlays, clean composition."
    )


@lru_cache(maxsize=1)
def _image_executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=4, thread_name_prefix="image-gen")


def _to_asset(*, org_id: str, aspect_ratio: str, generated: GeneratedImage) -> Optional[ImageAsset]:
    url = (generated.image_url or "").strip() or None
    storage_path = None
    if generated.image_bytes is not None:
        try:
            storage_path, _sha256, _size = store_media_bytes(
                org_id=org_id,
                asset_id=str(uuid.uuid4()),
                mime_type=generated.mime_type,
                content=generated.image_bytes,
            )
            url = _public_media_url(storage_path) or url
        except OSError as exc:
            logger.warning("media_asset_store_failed", org_id=org_id, aspect_ratio=aspect_ratio, error=str(exc))
            capture_exception(exc)
    if not url and not storage_path:
        return None
    return ImageAsset(
        url=url,
        storage_path=storage_path,
        aspect_ratio=aspect_ratio,
        width=generated.width,
        height=generated.height,
        quality_score=generated.quality_score,
        provider=generated.provider,
    )


def generate_blog_images(
    *,
    org_id: str,
    queue_id: str,
    title: str,
    excerpt: str,
    keywords: Sequence[str],
    style: str,
    timeout_seconds: float,
    provider: Optional[ImageProvider] = None,
) -> ImagesResult:
    """Featured (16:9) and thumbnail (1:1) images, never raising.

    Both provider calls run in worker threads. After ``timeout_seconds`` the
    caller stops waiting and whatever has not finished counts as missing; the
    in-flight calls are not aborted.
    """

    settings = get_settings()
    if not settings.image_generation_enabled:
        return ImagesResult(image_generated=False, degraded_reason="image_generation_disabled")

    active_provider = provider or get_image_provider()
    prompt = build_image_prompt(title=title, excerpt=excerpt, keywords=keywords, style=style)
    requests = {
        "featured_image": ImageRequest(prompt=prompt, style=style, aspect_ratio=FEATURED_ASPECT_RATIO),
        "thumbnail_image": ImageRequest(prompt=prompt, style=style, aspect_ratio=THUMBNAIL_ASPECT_RATIO),
    }

    started = time.monotonic()
    executor = _image_executor()
    futures: Dict[str, Future] = {
        slot: executor.submit(active_provider.generate_image, request) for slot, request in requests.items()
    }
    _done, pending = wait(futures.values(), timeout=max(0.0, timeout_seconds))

    assets: Dict[str, Optional[ImageAsset]] = {}
    reasons = []
    for slot, future in futures.items():
        if future in pending:
            reasons.append(f"{slot}_timeout")
            assets[slot] = None
            continue
        try:
            assets[slot] = _to_asset(org_id=org_id, aspect_ratio=requests[slot].aspect_ratio, generated=future.result())
        except ImageProviderError as exc:
            reasons.append(f"{slot}_provider_error")
            assets[slot] = None
            logger.warning("image_generation_failed", queue_id=queue_id, slot=slot, error=str(exc))
        except Exception as exc:
            reasons.append(f"{slot}_error")
            assets[slot] = None
            logger.error("image_generation_crashed", queue_id=queue_id, slot=slot, error=str(exc))
            capture_exception(exc)

    featured = assets.get("featured_image")
    result = ImagesResult(
        featured_image=featured,
        thumbnail_image=assets.get("thumbnail_image"),
        image_generated=featured is not None,
        degraded_reason=",".join(reasons) or None,
    )
    logger.info(
        "blog_images_generated",
        queue_id=queue_id,
        provider=active_provider.provider_name,
        image_generated=result.image_generated,
        degraded_reason=result.degraded_reason,
        elapsed_seconds=round(time.monotonic() - started, 3),
    )
    return result
