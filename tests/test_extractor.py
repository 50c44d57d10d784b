import asyncio

import pytest
from conftest import FakeInference, fragment

from shelf_catalog.core.extractor import normalize_series_number, parse_candidates, validate_candidates
from shelf_catalog.errors import MalformedResponseError, PermanentServiceError, TransientServiceError
from shelf_catalog.schemas import GENRES, OcrResult


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1 (כרך ראשון)", 1),
        ("כרך 12", 12),
        (3, 3),
        (2.0, 2),
        ("3rd", 3),
        ("ראשון", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_series_number(raw, expected):
    assert normalize_series_number(raw) == expected


def test_validation_drops_short_titles_only():
    books = validate_candidates([
        {"title": "א"},
        {"title": "  "},
        {"title": "--"},
        {"author": "no title"},
        "not an object",
        {"title": "הארי פוטר"},
    ])
    assert [b.title for b in books] == ["הארי פוטר"]
    assert books[0].author == ""
    assert books[0].series is None
    assert books[0].genre is None


def test_validation_normalizes_series_and_vocabularies():
    [book] = validate_candidates([{
        "title": "הארי פוטר",
        "author": "",
        "series": "הארי פוטר",
        "series_number": "1 (כרך ראשון)",
        "genre": "פנטזיה",
        "age_range": "not-a-range",
    }])
    assert book.series_number == 1
    assert book.genre == "פנטזיה"
    assert book.age_range is None


def test_validation_keeps_titled_candidates_with_odd_optional_fields():
    books = validate_candidates([
        {"title": "Dune", "author": 42},
        {"title": "Emma", "genre": ["רומן"], "series": {"name": "x"}, "age_range": 8},
    ])
    assert [b.title for b in books] == ["Dune", "Emma"]
    assert books[0].author == "42"
    assert books[1].genre is None
    assert books[1].series is None
    assert books[1].age_range is None


def test_parse_plain_array():
    books = parse_candidates('[{"title": "Dune", "author": "Frank Herbert"}]')
    assert books[0].title == "Dune"


def test_parse_books_object():
    books = parse_candidates('{"books": [{"title": "Dune"}, {"title": "Emma"}]}')
    assert [b.title for b in books] == ["Dune", "Emma"]


def test_parse_markdown_fence_with_commentary():
    content = 'Here you go:\n```json\n[{"title": "Dune"}]\n```\nEnjoy'
    assert parse_candidates(content)[0].title == "Dune"


def test_parse_bare_array_inside_prose():
    assert [b.title for b in parse_candidates('Found these: [{"title": "Dune"}] hope it helps')] == ["Dune"]


def test_parse_invalid_bare_array_is_malformed():
    with pytest.raises(MalformedResponseError):
        parse_candidates("Found these: [Dune, Emma] hope it helps")


def test_parse_failure_is_malformed():
    with pytest.raises(MalformedResponseError):
        parse_candidates("I could not find any books, sorry.")


def test_prompt_carries_ocr_groups_and_vocabularies(make_extractor):
    client = FakeInference([{"title": "Dune"}])
    extractor = make_extractor(client)
    ocr = OcrResult(full_text="Dune", blocks=[fragment("Dune", 10, 10)])

    books = asyncio.run(extractor.extract(b"img", ocr))

    assert [b.title for b in books] == ["Dune"]
    prompt = client.prompts[0]
    assert '"Dune"' in prompt
    assert GENRES[0] in prompt
    assert "$structured_ocr" not in prompt


def test_transient_errors_are_retried(make_extractor):
    client = FakeInference([{"title": "Dune"}], errors=[TransientServiceError("down"), TransientServiceError("down")])
    books = asyncio.run(make_extractor(client).extract(b"img", OcrResult(full_text="Dune")))
    assert client.calls == 3
    assert books[0].title == "Dune"


def test_transient_errors_give_up_after_three_attempts(make_extractor):
    client = FakeInference(errors=[TransientServiceError("down")] * 5)
    with pytest.raises(TransientServiceError):
        asyncio.run(make_extractor(client).extract(b"img", OcrResult(full_text="x")))
    assert client.calls == 3


def test_permanent_error_fails_fast(make_extractor):
    client = FakeInference(errors=[PermanentServiceError("forbidden", status_code=403)])
    with pytest.raises(PermanentServiceError):
        asyncio.run(make_extractor(client).extract(b"img", OcrResult(full_text="x")))
    assert client.calls == 1


def test_malformed_reply_is_not_retried(make_extractor):
    client = FakeInference("no json here")
    with pytest.raises(MalformedResponseError):
        asyncio.run(make_extractor(client).extract(b"img", OcrResult(full_text="x")))
    assert client.calls == 1
