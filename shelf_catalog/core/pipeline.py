"""
End-to-end shelf detection: OCR -> clustering -> candidate extraction ->
concurrent per-candidate enrichment -> merge -> ownership check.

Every failure leaves this module as a DetectionError carrying one of the
codes in shelf_catalog.errors.DETECTION_ERROR_CODES.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from shelf_catalog.config import RETRY_ATTEMPTS, RETRY_BASE_DELAY_SECONDS, Settings
from shelf_catalog.core.aggregator import MetadataAggregator
from shelf_catalog.core.dedup import CatalogStore, find_existing_book
from shelf_catalog.core.extractor import CandidateExtractor
from shelf_catalog.core.images import validate_image
from shelf_catalog.core.ingest import UNKNOWN_AUTHOR
from shelf_catalog.core.merge import merge_candidate
from shelf_catalog.core.retry import Sleep, call_with_retry
from shelf_catalog.errors import (
    DetectionError,
    ImageValidationError,
    MalformedResponseError,
    PermanentServiceError,
    RateLimitedError,
    TransientServiceError,
)
from shelf_catalog.llm_providers.client import resolve_inference_client
from shelf_catalog.ocr_engines import create_ocr_service
from shelf_catalog.ocr_engines.base import OcrService
from shelf_catalog.schemas import DetectedBook, DetectionResult, EnrichedBook, OcrResult

logger = logging.getLogger(__name__)

_TIER_ORDER = {"high": 0, "medium": 1, "low": 2}


def _service_error_code(exc: Exception, transient_code: str) -> str:
    if isinstance(exc, RateLimitedError):
        return "RATE_LIMITED"
    if isinstance(exc, TransientServiceError):
        return transient_code
    if isinstance(exc, PermanentServiceError):
        return "SERVICE_MISCONFIGURED"
    if isinstance(exc, MalformedResponseError):
        return "AI_FAILED"
    return "UNEXPECTED_ERROR"


def book_key(book: EnrichedBook) -> Tuple[str, str, str, Optional[int]]:
    return (
        book.title.strip().lower(),
        (book.author or "").strip().lower(),
        (book.series or "").strip().lower(),
        book.series_number,
    )


def dedupe_and_sort(books: List[EnrichedBook]) -> List[EnrichedBook]:
    """Keep the first book per (title, author, series, number); order by tier then score."""
    seen = set()
    unique = []
    for book in books:
        key = book_key(book)
        if key in seen:
            continue
        seen.add(key)
        unique.append(book)
    return sorted(unique, key=lambda b: (_TIER_ORDER[b.confidence], -b.confidence_score))


class DetectionPipeline:
    def __init__(
        self,
        ocr: OcrService,
        extractor: CandidateExtractor,
        aggregator: MetadataAggregator,
        catalog: Optional[CatalogStore] = None,
        *,
        timeout_seconds: float = 600.0,
        fallback_to_image_only: bool = False,
        attempts: int = RETRY_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ):
        self.ocr = ocr
        self.extractor = extractor
        self.aggregator = aggregator
        self.catalog = catalog
        self.timeout_seconds = timeout_seconds
        self.fallback_to_image_only = fallback_to_image_only
        self.attempts = attempts
        self.base_delay = base_delay
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, catalog: Optional[CatalogStore] = None) -> "DetectionPipeline":
        """Wire the configured OCR engine, inference backend and providers."""
        return cls(
            create_ocr_service(settings),
            CandidateExtractor(resolve_inference_client(settings)),
            MetadataAggregator.from_settings(settings),
            catalog,
            timeout_seconds=settings.detection_timeout_seconds,
            fallback_to_image_only=settings.ocr_fallback_to_image_only,
        )

    async def detect(self, image_bytes: bytes, family_id: Optional[str] = None) -> DetectionResult:
        try:
            validate_image(image_bytes)
        except ImageValidationError as e:
            raise DetectionError(e.code, str(e)) from e

        try:
            return await asyncio.wait_for(self._run(image_bytes, family_id), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error("Detection exceeded %ss", self.timeout_seconds)
            raise DetectionError("TIMEOUT", f"exceeded {self.timeout_seconds}s") from e
        except DetectionError:
            raise
        except Exception as e:
            logger.exception("Unexpected detection failure")
            raise DetectionError("UNEXPECTED_ERROR", str(e)) from e

    async def _run(self, image_bytes: bytes, family_id: Optional[str]) -> DetectionResult:
        ocr = await self._ocr(image_bytes)

        if ocr is None:
            candidates = await self._extract(self.extractor.extract_image_only, image_bytes)
        elif not ocr.full_text.strip():
            logger.info("No text found in image")
            return DetectionResult(success=True, books=[], count=0)
        else:
            logger.info("OCR extracted %s characters in %s fragments", len(ocr.full_text), len(ocr.blocks))
            candidates = await self._extract(self.extractor.extract, image_bytes, ocr)

        if not candidates:
            return DetectionResult(success=True, books=[], count=0)

        enriched = await asyncio.gather(*(self._enrich(c) for c in candidates))
        books = dedupe_and_sort(list(enriched))

        if family_id and self.catalog is not None:
            for book in books:
                book.already_owned = self._is_owned(book, family_id)

        logger.info("Detected %s books (%s candidates)", len(books), len(candidates))
        return DetectionResult(success=True, books=books, count=len(books))

    async def _ocr(self, image_bytes: bytes) -> Optional[OcrResult]:
        """Run OCR; returns None when it failed transiently and image-only fallback is on."""
        try:
            return await call_with_retry(
                lambda: self.ocr.extract_text(image_bytes),
                label=f"{self.ocr.name} OCR",
                attempts=self.attempts,
                base_delay=self.base_delay,
                sleep=self.sleep,
            )
        except TransientServiceError as e:
            if self.fallback_to_image_only and not isinstance(e, RateLimitedError):
                logger.warning("OCR failed, falling back to image-only inference: %s", e)
                return None
            raise DetectionError(_service_error_code(e, "OCR_FAILED"), str(e)) from e
        except PermanentServiceError as e:
            raise DetectionError("SERVICE_MISCONFIGURED", str(e)) from e

    async def _extract(self, fn, *args) -> List[DetectedBook]:
        try:
            return await fn(*args)
        except (TransientServiceError, PermanentServiceError, MalformedResponseError) as e:
            raise DetectionError(_service_error_code(e, "SERVICE_UNAVAILABLE"), str(e)) from e

    async def _enrich(self, candidate: DetectedBook) -> EnrichedBook:
        try:
            match, score = await self.aggregator.search_book_details(candidate.title, candidate.author or None)
            return merge_candidate(candidate, match, score)
        except Exception as e:
            logger.warning("Enrichment failed for %r: %s", candidate.title, e)
            return merge_candidate(candidate, None, 0)

    def _is_owned(self, book: EnrichedBook, family_id: str) -> bool:
        try:
            catalog_id = find_existing_book(
                self.catalog,
                title=book.title,
                author=book.author or UNKNOWN_AUTHOR,
                isbn=book.isbn,
                series=book.series,
                series_number=book.series_number,
            )
            return catalog_id is not None and self.catalog.is_owned(catalog_id, family_id)
        except Exception as e:
            logger.warning("Ownership check failed for %r: %s", book.title, e)
            return False
