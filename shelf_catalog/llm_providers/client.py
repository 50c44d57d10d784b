"""
Pluggable inference backends for shelf candidate extraction.

Backends:
- gemini: POST https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent
- openai: POST {OPENAI_BASE_URL}/chat/completions with text+image parts
- ollama (local): POST {OLLAMA_URL}/api/generate with base64 images

Every backend asks for a JSON reply at temperature 0 and maps HTTP failures
onto the transient/rate-limited/permanent error taxonomy.
"""

import base64
import logging
from typing import Dict, List, Optional

import requests

from shelf_catalog.config import Settings
from shelf_catalog.core.images import detect_mime_type
from shelf_catalog.errors import (
    PermanentServiceError,
    RateLimitedError,
    ServiceConfigurationError,
    TransientServiceError,
)

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a precise book cataloguing assistant. Reply with JSON only. "
    "Hebrew titles may contain gershayim (״) or a plain double quote for "
    "abbreviations; always escape double quotes inside JSON strings."
)


def raise_for_service_status(resp: requests.Response, service: str) -> None:
    """Translate an HTTP error status into the service error taxonomy."""
    status = resp.status_code
    if status < 400:
        return
    snippet = (resp.text or "")[:200]
    message = f"{service} returned HTTP {status}: {snippet}"
    if status == 429:
        raise RateLimitedError(message, service=service, status_code=status)
    if status >= 500:
        raise TransientServiceError(message, service=service, status_code=status)
    raise PermanentServiceError(message, service=service, status_code=status)


class InferenceClient:
    name = "inference"

    def __init__(self, session: Optional[requests.Session] = None, timeout_seconds: float = 120.0):
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds

    def infer(self, prompt: str, image_bytes: Optional[bytes] = None) -> str:
        """Send a prompt (and optional image) and return the raw text reply."""
        raise NotImplementedError

    def _post(self, url: str, payload: Dict, headers: Optional[Dict[str, str]] = None) -> Dict:
        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=self.timeout_seconds)
        except requests.Timeout as exc:
            raise TransientServiceError(f"{self.name} request timed out: {exc}", service=self.name) from exc
        except requests.RequestException as exc:
            raise TransientServiceError(f"{self.name} request failed: {exc}", service=self.name) from exc
        raise_for_service_status(resp, self.name)
        try:
            return resp.json()
        except ValueError as exc:
            raise TransientServiceError(f"{self.name} returned a non-JSON body", service=self.name) from exc


class GeminiClient(InferenceClient):
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com",
        session: Optional[requests.Session] = None,
    ):
        super().__init__(session=session)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    def infer(self, prompt: str, image_bytes: Optional[bytes] = None) -> str:
        url = f"{self.base_url}/v1beta/models/{self.model}:generateContent?key={self.api_key}"
        parts: List[dict] = [{"text": prompt}]
        if image_bytes:
            parts.append({
                "inline_data": {
                    "mime_type": detect_mime_type(image_bytes) or "image/jpeg",
                    "data": base64.b64encode(image_bytes).decode("ascii"),
                }
            })
        payload = {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": [{"parts": parts}],
            "generationConfig": {"temperature": 0, "responseMimeType": "application/json"},
        }
        data = self._post(url, payload)
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        t = candidates[0].get("content", {}).get("parts", [])
        return "".join(p.get("text", "") for p in t)


class OpenAIClient(InferenceClient):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        session: Optional[requests.Session] = None,
    ):
        super().__init__(session=session)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    def infer(self, prompt: str, image_bytes: Optional[bytes] = None) -> str:
        content: List[dict] = [{"type": "text", "text": prompt}]
        if image_bytes:
            mime = detect_mime_type(image_bytes) or "image/jpeg"
            data_url = f"data:{mime};base64,{base64.b64encode(image_bytes).decode('ascii')}"
            content.append({"type": "image_url", "image_url": {"url": data_url}})
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": content},
            ],
            "temperature": 0,
            "response_format": {"type": "json_object"},
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        data = self._post(f"{self.base_url}/chat/completions", payload, headers=headers)
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""


class OllamaClient(InferenceClient):
    name = "ollama"

    def __init__(self, base_url: str = "http://127.0.0.1:11434", model: str = "gemma3:4b",
                 session: Optional[requests.Session] = None):
        super().__init__(session=session)
        self.base_url = base_url.rstrip("/")
        self.model = model

    def infer(self, prompt: str, image_bytes: Optional[bytes] = None) -> str:
        payload = {
            "model": self.model,
            "system": SYSTEM_INSTRUCTION,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {"temperature": 0},
        }
        if image_bytes:
            payload["images"] = [base64.b64encode(image_bytes).decode("ascii")]
        data = self._post(f"{self.base_url}/api/generate", payload)
        return data.get("response", "")


def create_inference_client(backend: str, settings: Settings,
                            *, session: Optional[requests.Session] = None) -> Optional[InferenceClient]:
    """Build the named backend, or None when it has no credentials configured."""
    b = (backend or "").strip().lower()
    if b in ("gemini", "google"):
        if not settings.gemini_api_key:
            return None
        return GeminiClient(settings.gemini_api_key, model=settings.gemini_model, session=session)
    if b in ("openai", "gpt"):
        if not settings.openai_api_key:
            return None
        return OpenAIClient(settings.openai_api_key, model=settings.openai_model,
                            base_url=settings.openai_base_url, session=session)
    if b == "ollama":
        if not settings.ollama_url:
            return None
        return OllamaClient(settings.ollama_url, model=settings.ollama_model, session=session)
    logger.warning("Unknown inference backend %r ignored", backend)
    return None


def resolve_inference_client(settings: Settings,
                             *, session: Optional[requests.Session] = None) -> InferenceClient:
    """Pick the first backend in priority order that has credentials."""
    for backend in settings.llm_priority:
        client = create_inference_client(backend, settings, session=session)
        if client is not None:
            logger.info("Using %s inference backend", client.name)
            return client
    raise ServiceConfigurationError(
        "No inference backend is configured; set GEMINI_API_KEY, OPENAI_API_KEY or OLLAMA_URL"
    )
