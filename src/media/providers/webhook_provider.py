"""Webhook-backed image provider."""

from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, Optional

import httpx

from src.media.providers.base import GeneratedImage, ImageProvider, ImageProviderError, ImageRequest


class WebhookImageProvider(ImageProvider):
    provider_name = "webhook"

    def __init__(
        self,
        *,
        webhook_url: str,
        webhook_token: str = "",
        timeout_seconds: int = 30,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._webhook_url = webhook_url.strip()
        self._webhook_token = webhook_token.strip()
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._webhook_token:
            headers["Authorization"] = f"Bearer {self._webhook_token}"
        return headers

    @staticmethod
    def _decode_base64(data: str) -> bytes:
        cleaned = data.strip()
        if cleaned.startswith("data:") and "," in cleaned:
            cleaned = cleaned.split(",", 1)[1]
        return base64.b64decode(cleaned)

    def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(self._webhook_url, headers=self._headers(), json=payload)
        with httpx.Client(timeout=self._timeout_seconds) as client:
            return client.post(self._webhook_url, headers=self._headers(), json=payload)

    def generate_image(self, request: ImageRequest) -> GeneratedImage:
        if not self._webhook_url:
            raise ImageProviderError("image_webhook_url_missing")

        try:
            response = self._post(
                {"prompt": request.prompt, "style": request.style, "aspect_ratio": request.aspect_ratio}
            )
        except httpx.HTTPError as exc:
            raise ImageProviderError(f"image_webhook_unreachable error={exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            detail = response.text.strip()
            if len(detail) > 240:
                detail = detail[:240] + "..."
            raise ImageProviderError(f"image_webhook_failed status={response.status_code} detail={detail}")

        try:
            body = response.json()
        except ValueError as exc:
            raise ImageProviderError("image_webhook_invalid_json_response") from exc
        if not isinstance(body, dict):
            raise ImageProviderError("image_webhook_invalid_payload")

        image_url = str(body.get("image_url") or "").strip() or None
        image_data = str(body.get("image_data") or body.get("image_base64") or "").strip() or None
        image_bytes = None
        if image_data:
            try:
                image_bytes = self._decode_base64(image_data)
            except (binascii.Error, ValueError) as exc:
                raise ImageProviderError("image_webhook_invalid_base64_payload") from exc

        if not image_url and not image_bytes:
            raise ImageProviderError("image_webhook_missing_image")

        width, height = request.dimensions
        out_width = body.get("width")
        out_height = body.get("height")
        quality = body.get("quality_score")
        return GeneratedImage(
            provider=self.provider_name,
            mime_type=str(body.get("mime_type") or "image/png").strip() or "image/png",
            width=out_width if isinstance(out_width, int) else width,
            height=out_height if isinstance(out_height, int) else height,
            image_url=image_url,
            image_bytes=image_bytes,
            quality_score=float(quality) if isinstance(quality, (int, float)) else None,
            payload={key: value for key, value in body.items() if key not in {"image_data", "image_base64"}},
        )
