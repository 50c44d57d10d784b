import base64
import logging
from typing import Optional

import requests

from shelf_catalog.core.clustering import sort_fragments
from shelf_catalog.errors import PermanentServiceError, RateLimitedError, TransientServiceError
from shelf_catalog.llm_providers.client import raise_for_service_status
from shelf_catalog.ocr_engines.base import fragment_from_polygon
from shelf_catalog.schemas import OcrResult

logger = logging.getLogger(__name__)

# google.rpc.Code values reported in a per-image error body
_RETRYABLE_CODES = {1, 4, 10, 13, 14}
_RATE_LIMITED_CODE = 8


def raise_for_annotate_error(error: dict, service: str) -> None:
    """Translate a per-image annotate error into the service error taxonomy."""
    code = error.get("code")
    message = f"{service} error {code}: {error.get('message', '')}"
    if code == _RATE_LIMITED_CODE:
        raise RateLimitedError(message, service=service)
    if code in _RETRYABLE_CODES or code is None:
        raise TransientServiceError(message, service=service)
    raise PermanentServiceError(message, service=service)


class GoogleVisionOcr:
    """Cloud Vision TEXT_DETECTION over the REST endpoint."""

    name = "google_vision"
    BASE = "https://vision.googleapis.com/v1/images:annotate"

    def __init__(self, api_key: str, session: Optional[requests.Session] = None, timeout_seconds: float = 60.0):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds

    def extract_text(self, image_bytes: bytes) -> OcrResult:
        payload = {
            "requests": [{
                "image": {"content": base64.b64encode(image_bytes).decode("ascii")},
                "features": [{"type": "TEXT_DETECTION"}],
            }]
        }
        try:
            resp = self.session.post(self.BASE, params={"key": self.api_key}, json=payload,
                                     timeout=self.timeout_seconds)
        except requests.RequestException as e:
            raise TransientServiceError(f"Vision request failed: {e}", service=self.name) from e
        raise_for_service_status(resp, self.name)
        try:
            data = resp.json()
        except ValueError as e:
            raise TransientServiceError("Vision returned a non-JSON body", service=self.name) from e

        response = (data.get("responses") or [{}])[0]
        if response.get("error"):
            raise_for_annotate_error(response["error"], self.name)

        annotations = response.get("textAnnotations") or []
        if not annotations:
            return OcrResult()

        # first annotation is the whole text, the rest are individual words
        fragments = []
        for ann in annotations[1:]:
            vertices = [(v.get("x", 0), v.get("y", 0)) for v in ann.get("boundingPoly", {}).get("vertices", [])]
            if not vertices:
                continue
            fragments.append(fragment_from_polygon(ann.get("description", ""), vertices, ann.get("confidence", 0.0)))
        logger.info("Vision OCR found %s text fragments", len(fragments))
        return OcrResult(full_text=annotations[0].get("description", ""), blocks=sort_fragments(fragments))
