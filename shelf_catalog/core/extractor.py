"""
Candidate extraction: turn clustered OCR text plus the shelf photo into
validated book candidates via a generative inference service.

The inference call is wrapped in the transient-only retry loop. Parsing the
reply happens outside that loop: a reply that cannot be parsed after every
fallback strategy is a terminal MalformedResponseError.
"""

import asyncio
import json
import logging
import math
import os
import re
from string import Template
from typing import Any, List, Optional

import jsonschema

from shelf_catalog.config import RETRY_ATTEMPTS, RETRY_BASE_DELAY_SECONDS
from shelf_catalog.core.clustering import format_structured_ocr
from shelf_catalog.core.retry import Sleep, call_with_retry
from shelf_catalog.errors import MalformedResponseError
from shelf_catalog.llm_providers.client import InferenceClient
from shelf_catalog.schemas import AGE_RANGES, GENRES, DetectedBook, OcrResult

logger = logging.getLogger(__name__)

PROMPTS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "prompts")

CANDIDATE_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": ["string", "number"]},
    },
    "required": ["title"],
}

_candidate_validator = jsonschema.Draft7Validator(CANDIDATE_SCHEMA)

_FENCED_ARRAY = re.compile(r"```(?:json)?\s*(\[[\s\S]*?\])\s*```")
_BARE_ARRAY = re.compile(r"(\[[\s\S]*?\])")
_DIGITS = re.compile(r"\d+")


def normalize_series_number(value: Any) -> Optional[int]:
    """Coerce a raw series number to an int, or None when no digits are present."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            return int(value)
    text = str(value).strip()
    if not text:
        return None
    match = _DIGITS.search(text)
    return int(match.group(0)) if match else None


def _clean(value: Any) -> str:
    # numbers are stringified, lists and objects are discarded
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return ""
    return str(value).strip()


def is_meaningful_title(title: str) -> bool:
    stripped = title.strip()
    return len(stripped) >= 2 and sum(ch.isalnum() for ch in stripped) >= 2


def validate_candidates(items: List[Any]) -> List[DetectedBook]:
    """Drop entries without a usable title and normalize the rest."""
    books: List[DetectedBook] = []
    for item in items:
        if not isinstance(item, dict) or not _candidate_validator.is_valid(item):
            logger.debug("Dropping malformed candidate: %r", item)
            continue
        title = _clean(item.get("title"))
        if not is_meaningful_title(title):
            logger.debug("Dropping candidate with unusable title: %r", item.get("title"))
            continue

        series = _clean(item.get("series")) or _clean(item.get("series_title"))
        raw_number = item.get("series_number")
        if raw_number is None:
            raw_number = item.get("seriesNumber", item.get("seriesIndex"))
        genre = _clean(item.get("genre"))
        age_range = _clean(item.get("age_range"))

        books.append(DetectedBook(
            title=title,
            author=_clean(item.get("author")),
            series=series or None,
            series_number=normalize_series_number(raw_number),
            genre=genre if genre in GENRES else None,
            age_range=age_range if age_range in AGE_RANGES else None,
        ))
    return books


def parse_candidates(content: str) -> List[DetectedBook]:
    """Parse a model reply into candidates.

    Accepts a bare JSON array, an object with a ``books`` array, or an array
    embedded in markdown/prose (first ``[...]`` span wins).
    """
    try:
        parsed = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        parsed = None

    if isinstance(parsed, list):
        return validate_candidates(parsed)
    if isinstance(parsed, dict) and isinstance(parsed.get("books"), list):
        return validate_candidates(parsed["books"])

    logger.debug("Direct JSON parse failed, extracting array from text")
    match = _FENCED_ARRAY.search(content or "") or _BARE_ARRAY.search(content or "")
    if match:
        try:
            extracted = json.loads(match.group(1))
        except json.JSONDecodeError as exc:
            logger.warning("Extracted array is not valid JSON: %s", exc)
        else:
            if isinstance(extracted, list):
                return validate_candidates(extracted)

    raise MalformedResponseError("Could not parse JSON response from inference service", raw=content or "")


def _load_template(filename: str) -> Template:
    with open(os.path.join(PROMPTS_DIR, filename), "r", encoding="utf-8") as f:
        return Template(f.read())


class CandidateExtractor:
    """Extract book candidates from a shelf image with an injected inference client."""

    def __init__(
        self,
        client: InferenceClient,
        *,
        attempts: int = RETRY_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.attempts = attempts
        self.base_delay = base_delay
        self.sleep = sleep
        self.prompt_template = _load_template("shelf_detection_prompt.txt")
        self.image_only_template = _load_template("image_only_prompt.txt")

    def build_prompt(self, structured_ocr: str) -> str:
        return self.prompt_template.safe_substitute(
            structured_ocr=structured_ocr,
            genres=", ".join(f"'{g}'" for g in GENRES),
            age_ranges=", ".join(f"'{a}'" for a in AGE_RANGES),
        )

    def build_image_only_prompt(self) -> str:
        return self.image_only_template.safe_substitute(
            genres=", ".join(f"'{g}'" for g in GENRES),
            age_ranges=", ".join(f"'{a}'" for a in AGE_RANGES),
        )

    async def extract(self, image_bytes: bytes, ocr: OcrResult) -> List[DetectedBook]:
        prompt = self.build_prompt(format_structured_ocr(ocr))
        return await self._run(prompt, image_bytes)

    async def extract_image_only(self, image_bytes: bytes) -> List[DetectedBook]:
        return await self._run(self.build_image_only_prompt(), image_bytes)

    async def _run(self, prompt: str, image_bytes: bytes) -> List[DetectedBook]:
        raw = await call_with_retry(
            lambda: self.client.infer(prompt, image_bytes),
            label=f"{self.client.name} inference",
            attempts=self.attempts,
            base_delay=self.base_delay,
            sleep=self.sleep,
        )
        logger.debug("Inference raw response: %s", raw)
        books = parse_candidates(raw)
        logger.info("Inference identified %s candidate books", len(books))
        return books
