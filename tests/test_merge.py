from shelf_catalog.core.merge import confidence_tier, merge_candidate
from shelf_catalog.core.scoring import find_best_match
from shelf_catalog.schemas import DetectedBook, ProviderBook


def provider(**kw):
    base = dict(
        title="Harry Potter and the Philosopher's Stone",
        author="J.K. Rowling",
        publisher="Bloomsbury",
        isbn="9780747532699",
        series="Harry Potter",
        series_number=1,
        genre="פנטזיה",
        language="en",
        source="Simania",
        confidence=85,
    )
    base.update(kw)
    return ProviderBook(**base)


def test_tier_boundaries():
    assert confidence_tier(100) == "high"
    assert confidence_tier(70) == "high"
    assert confidence_tier(69) == "medium"
    assert confidence_tier(40) == "medium"
    assert confidence_tier(39) == "low"


def test_no_match_passes_through_as_low():
    detected = DetectedBook(title="ספר", author="מחבר", genre="רומן")
    merged = merge_candidate(detected, None)
    assert merged.confidence == "low"
    assert merged.confidence_score == 0
    assert merged.title == "ספר"
    assert merged.genre == "רומן"
    assert merged.isbn is None


def test_low_score_keeps_detection_and_reports_score():
    detected = DetectedBook(title="ספר", author="מחבר")
    merged = merge_candidate(detected, provider(), 25)
    assert merged.confidence == "low"
    assert merged.confidence_score == 25
    assert merged.publisher is None


def test_high_takes_provider_fields_and_falls_back_to_detection():
    detected = DetectedBook(title="Harry Potter", author="Rowling", age_range="10-12")
    merged = merge_candidate(detected, provider(author=""), 95)
    assert merged.confidence == "high"
    assert merged.title == "Harry Potter and the Philosopher's Stone"
    assert merged.author == "Rowling"
    assert merged.isbn == "9780747532699"
    assert merged.age_range == "10-12"
    assert merged.series_number == 1
    assert merged.source == "Simania"


def test_medium_preserves_detected_title_and_author():
    detected = DetectedBook(title="הארי פוטר", author="רולינג", series="הארי פוטר")
    merged = merge_candidate(detected, provider(series_number=None), 55)
    assert merged.confidence == "medium"
    assert merged.title == "הארי פוטר"
    assert merged.author == "רולינג"
    assert merged.publisher == "Bloomsbury"
    assert merged.isbn == "9780747532699"
    assert merged.series == "הארי פוטר"
    assert merged.series_number is None


def test_medium_fills_missing_author_and_series_number():
    detected = DetectedBook(title="הארי פוטר")
    merged = merge_candidate(detected, provider(), 45)
    assert merged.author == "J.K. Rowling"
    assert merged.series_number == 1


def test_score_above_100_is_capped_for_display():
    rich = provider(cover_image_url="http://x/c.jpg", description="x" * 200)
    merged = merge_candidate(DetectedBook(title="x"), rich, 120)
    assert merged.confidence_score == 100


def test_harry_potter_scenario_is_high(harry_potter):
    match, score = find_best_match([harry_potter], "Harry Potter", "Rowling")
    assert score >= 90
    merged = merge_candidate(DetectedBook(title="Harry Potter", author="Rowling"), match, score)
    assert merged.confidence == "high"
    assert merged.model_dump(by_alias=True)["confidenceScore"] == score
