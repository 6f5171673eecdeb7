from __future__ import annotations

import httpx

from . import moderation
from .config import settings
from .logging_utils import log_warning


SAFE_SEARCH_FEATURE = "SAFE_SEARCH_DETECTION"


class VisionClient:
    """SafeSearch classifier adapter.

    ``moderate`` never raises: every failure to obtain a usable annotation is
    turned into the fail-closed verdict.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url or settings.vision_api_url
        self.timeout = timeout if timeout is not None else settings.vision_timeout_seconds
        self._transport = transport

    def _build_request(self, *, image_url: str | None, image_base64: str | None) -> dict:
        if image_base64:
            image = {"content": image_base64}
        else:
            image = {"source": {"imageUri": image_url}}
        return {"requests": [{"image": image, "features": [{"type": SAFE_SEARCH_FEATURE}]}]}

    def moderate(self, *, image_url: str | None = None, image_base64: str | None = None) -> moderation.ModerationVerdict:
        if not self.api_key:
            log_warning("vision_api_not_configured")
            return moderation.evaluate_unavailable(
                "Content moderation is not configured. Please contact the administrator."
            )
        if not image_url and not image_base64:
            log_warning("vision_api_missing_image")
            return moderation.evaluate_unavailable("No image provided")

        body = self._build_request(image_url=image_url, image_base64=image_base64)
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(self.api_url, params={"key": self.api_key}, json=body)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            log_warning("vision_api_error", status_code=exc.response.status_code)
            return moderation.evaluate_unavailable("Unable to verify image safety")
        except httpx.HTTPError as exc:
            log_warning("vision_api_unreachable", error=str(exc))
            return moderation.evaluate_unavailable("Moderation service unavailable")
        except ValueError as exc:
            log_warning("vision_api_invalid_json", error=str(exc))
            return moderation.evaluate_unavailable("Unable to analyze image")

        responses = data.get("responses") if isinstance(data, dict) else None
        first = responses[0] if isinstance(responses, list) and responses else None
        if not isinstance(first, dict):
            log_warning("vision_api_empty_response")
            return moderation.evaluate_unavailable("Unable to analyze image")
        if first.get("error"):
            log_warning("vision_api_image_error", error=first["error"])
            return moderation.evaluate_unavailable("Unable to analyze image")

        annotation = first.get("safeSearchAnnotation")
        if annotation is None:
            log_warning("vision_api_missing_annotation")
            return moderation.evaluate_unavailable("Unable to analyze image content")
        return moderation.parse_annotation(annotation)


def get_vision_client() -> VisionClient:
    return VisionClient(api_key=settings.vision_api_key)
