from typing import Optional

from shelf_catalog.core.extractor import normalize_series_number
from shelf_catalog.schemas import ConfidenceTier, DetectedBook, EnrichedBook, ProviderBook

HIGH_CONFIDENCE = 70
MEDIUM_CONFIDENCE = 40


def confidence_tier(score: int) -> ConfidenceTier:
    if score >= HIGH_CONFIDENCE:
        return "high"
    if score >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def merge_candidate(detected: DetectedBook, match: Optional[ProviderBook], score: int = 0) -> EnrichedBook:
    """Combine a detected candidate with its best provider match.

    high: provider fields win wherever the provider has a value.
    medium: detected title/author/series stay, provider fills the rest.
    low (or no match): the candidate passes through as detected.
    """
    score = score if match is not None else 0
    tier = confidence_tier(score)
    shown = min(score, 100)

    if match is None or tier == "low":
        return EnrichedBook(
            **detected.model_dump(),
            confidence="low",
            confidence_score=shown,
        )

    if tier == "high":
        return EnrichedBook(
            title=match.title or detected.title,
            author=match.author or detected.author,
            publisher=match.publisher,
            publish_year=match.publish_year,
            pages=match.pages,
            description=match.description,
            cover_image_url=match.cover_image_url,
            isbn=match.isbn,
            genre=match.genre or detected.genre,
            age_range=match.age_range or detected.age_range,
            series=match.series or detected.series,
            series_number=normalize_series_number(
                match.series_number if match.series_number is not None else detected.series_number
            ),
            language=match.language,
            source=match.source,
            confidence="high",
            confidence_score=shown,
        )

    series_number = detected.series_number if detected.series_number is not None else match.series_number
    return EnrichedBook(
        title=detected.title,
        author=detected.author or match.author,
        publisher=match.publisher,
        publish_year=match.publish_year,
        pages=match.pages,
        description=match.description,
        cover_image_url=match.cover_image_url,
        isbn=match.isbn,
        genre=detected.genre or match.genre,
        age_range=detected.age_range or match.age_range,
        series=detected.series or match.series,
        series_number=normalize_series_number(series_number),
        language=match.language,
        source=match.source,
        confidence="medium",
        confidence_score=shown,
    )
