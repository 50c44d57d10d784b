import asyncio

import pytest
from conftest import FakeInference, FakeOcr, fragment, no_sleep, static_provider

from shelf_catalog.core.aggregator import MetadataAggregator, ProviderEntry
from shelf_catalog.core.extractor import CandidateExtractor
from shelf_catalog.core.ingest import bulk_add_books
from shelf_catalog.core.pipeline import DetectionPipeline
from shelf_catalog.errors import (
    DetectionError,
    PermanentServiceError,
    RateLimitedError,
    TransientServiceError,
)
from shelf_catalog.schemas import OcrResult

SHELF_OCR = OcrResult(
    full_text="הארי פוטר\nרולינג\nדיונה",
    blocks=[fragment("הארי פוטר", 10, 10), fragment("רולינג", 12, 14), fragment("דיונה", 10, 200)],
)


def build(ocr, inference, aggregator, catalog=None, **kw):
    return DetectionPipeline(
        ocr,
        CandidateExtractor(inference, sleep=no_sleep),
        aggregator,
        catalog,
        sleep=no_sleep,
        **kw,
    )


def test_detects_enriches_and_sorts(png_bytes, make_aggregator, harry_potter):
    inference = FakeInference([
        {"title": "ספר לא מוכר", "author": "מישהו"},
        {"title": "Harry Potter", "author": "Rowling", "series": "Harry Potter", "series_number": "1"},
    ])
    agg = make_aggregator(static_provider("p", [harry_potter]))
    result = asyncio.run(build(FakeOcr(SHELF_OCR), inference, agg).detect(png_bytes))

    assert result.success
    assert result.count == 2
    top, other = result.books
    assert top.confidence == "high"
    assert top.isbn == "9780747532699"
    assert top.confidence_score >= 90
    assert other.confidence == "low"
    assert other.title == "ספר לא מוכר"


def test_no_text_returns_empty_without_inference(png_bytes, make_aggregator):
    inference = FakeInference()
    result = asyncio.run(build(FakeOcr(OcrResult(full_text="  ")), inference, make_aggregator()).detect(png_bytes))
    assert result.count == 0
    assert result.books == []
    assert inference.calls == 0


def test_duplicate_candidates_are_collapsed(png_bytes, make_aggregator):
    inference = FakeInference([{"title": "Dune"}, {"title": "dune "}, {"title": "Dune", "series": "S", "series_number": 2}])
    result = asyncio.run(build(FakeOcr(SHELF_OCR), inference, make_aggregator()).detect(png_bytes))
    assert result.count == 2


def test_one_failing_enrichment_degrades_only_that_book(png_bytes, harry_potter):
    async def search(query, max_results=10):
        return [harry_potter]

    # search_book_details swallows provider errors, so fail one level up
    class FlakyAggregator(MetadataAggregator):
        async def search_book_details(self, title, author=None, max_results=5):
            if title == "boom":
                raise RuntimeError("enrichment exploded")
            return await super().search_book_details(title, author, max_results)

    agg = FlakyAggregator([ProviderEntry("p", "P", True, search)])
    inference = FakeInference([{"title": "boom"}, {"title": "Harry Potter", "author": "Rowling"}])
    result = asyncio.run(build(FakeOcr(SHELF_OCR), inference, agg).detect(png_bytes))

    by_title = {b.title: b for b in result.books}
    assert by_title["boom"].confidence == "low"
    assert by_title["boom"].confidence_score == 0
    assert by_title["Harry Potter"].confidence == "high"


def test_invalid_image_rejected_before_ocr(make_aggregator):
    ocr = FakeOcr(SHELF_OCR)
    with pytest.raises(DetectionError) as exc:
        asyncio.run(build(ocr, FakeInference(), make_aggregator()).detect(b"not an image"))
    assert exc.value.code == "INVALID_IMAGE"
    assert not exc.value.can_retry
    assert ocr.calls == 0


def test_corrupt_image(make_aggregator):
    truncated = b"\x89PNG\r\n\x1a\n" + b"\x00" * 20
    with pytest.raises(DetectionError) as exc:
        asyncio.run(build(FakeOcr(), FakeInference(), make_aggregator()).detect(truncated))
    assert exc.value.code == "CORRUPT_IMAGE"


def test_image_too_large(make_aggregator, png_bytes):
    big = png_bytes + b"\x00" * (10 * 1024 * 1024)
    with pytest.raises(DetectionError) as exc:
        asyncio.run(build(FakeOcr(), FakeInference(), make_aggregator()).detect(big))
    assert exc.value.code == "IMAGE_TOO_LARGE"
    assert exc.value.status_code == 413


@pytest.mark.parametrize(
    "ocr_errors, inference_errors, reply, code",
    [
        ([TransientServiceError("down")] * 3, [], "[]", "OCR_FAILED"),
        ([PermanentServiceError("forbidden", status_code=403)], [], "[]", "SERVICE_MISCONFIGURED"),
        ([RateLimitedError("quota", status_code=429)] * 3, [], "[]", "RATE_LIMITED"),
        ([], [TransientServiceError("503")] * 3, "[]", "SERVICE_UNAVAILABLE"),
        ([], [PermanentServiceError("401", status_code=401)], "[]", "SERVICE_MISCONFIGURED"),
        ([], [], "not json", "AI_FAILED"),
    ],
)
def test_error_codes(png_bytes, make_aggregator, ocr_errors, inference_errors, reply, code):
    pipeline = build(FakeOcr(SHELF_OCR, errors=ocr_errors), FakeInference(reply, errors=inference_errors), make_aggregator())
    with pytest.raises(DetectionError) as exc:
        asyncio.run(pipeline.detect(png_bytes))
    assert exc.value.code == code


def test_permanent_ocr_error_is_not_retried(png_bytes, make_aggregator):
    ocr = FakeOcr(SHELF_OCR, errors=[PermanentServiceError("forbidden", status_code=403)])
    with pytest.raises(DetectionError):
        asyncio.run(build(ocr, FakeInference(), make_aggregator()).detect(png_bytes))
    assert ocr.calls == 1


def test_ocr_recovers_within_retry_budget(png_bytes, make_aggregator):
    ocr = FakeOcr(SHELF_OCR, errors=[TransientServiceError("blip")])
    inference = FakeInference([{"title": "Dune"}])
    result = asyncio.run(build(ocr, inference, make_aggregator()).detect(png_bytes))
    assert ocr.calls == 2
    assert result.count == 1


def test_image_only_fallback(png_bytes, make_aggregator):
    ocr = FakeOcr(errors=[TransientServiceError("down")] * 3)
    inference = FakeInference([{"title": "Dune"}])
    pipeline = build(ocr, inference, make_aggregator(), fallback_to_image_only=True)
    result = asyncio.run(pipeline.detect(png_bytes))
    assert result.books[0].title == "Dune"
    assert "Structured text blocks" not in inference.prompts[0]


def test_timeout(png_bytes, make_aggregator):
    async def slow(query, max_results=10):
        await asyncio.sleep(1)
        return []

    agg = make_aggregator(ProviderEntry("slow", "Slow", True, slow))
    pipeline = build(FakeOcr(SHELF_OCR), FakeInference([{"title": "Dune"}]), agg, timeout_seconds=0.05)
    with pytest.raises(DetectionError) as exc:
        asyncio.run(pipeline.detect(png_bytes))
    assert exc.value.code == "TIMEOUT"
    assert exc.value.to_response()["canRetry"] is True


def test_marks_books_already_owned(png_bytes, make_aggregator, catalog):
    bulk_add_books(catalog, "family-1", [{"title": "Dune", "author": "Herbert"}])
    inference = FakeInference([{"title": "Dune", "author": "Herbert"}, {"title": "Emma", "author": "Austen"}])
    pipeline = build(FakeOcr(SHELF_OCR), inference, make_aggregator(), catalog)

    owned = {b.title: b.already_owned for b in asyncio.run(pipeline.detect(png_bytes, family_id="family-1")).books}
    assert owned == {"Dune": True, "Emma": False}

    other = asyncio.run(pipeline.detect(png_bytes, family_id="family-2")).books
    assert not any(b.already_owned for b in other)
