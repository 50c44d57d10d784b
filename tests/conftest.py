import io
import json
from typing import List

import pytest
from PIL import Image

from shelf_catalog.core.aggregator import MetadataAggregator, ProviderEntry
from shelf_catalog.core.extractor import CandidateExtractor
from shelf_catalog.schemas import OcrResult, Position, ProviderBook, TextFragment
from shelf_catalog.storage import SqliteCatalog


async def no_sleep(_seconds: float) -> None:
    return None


def fragment(text: str, x: float, y: float, confidence: float = 0.9, orientation: str = "horizontal") -> TextFragment:
    return TextFragment(
        text=text,
        confidence=confidence,
        position=Position(center_x=x, center_y=y, top=y, left=x),
        orientation=orientation,
    )


class FakeOcr:
    name = "fake"

    def __init__(self, result: OcrResult = None, errors: List[Exception] = None):
        self.result = result or OcrResult()
        self.errors = list(errors or [])
        self.calls = 0

    def extract_text(self, image_bytes: bytes) -> OcrResult:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class FakeInference:
    name = "fake"

    def __init__(self, reply="[]", errors: List[Exception] = None):
        self.reply = reply if isinstance(reply, str) else json.dumps(reply, ensure_ascii=False)
        self.errors = list(errors or [])
        self.calls = 0
        self.prompts: List[str] = []

    def infer(self, prompt: str, image_bytes: bytes = None) -> str:
        self.calls += 1
        self.prompts.append(prompt)
        if self.errors:
            raise self.errors.pop(0)
        return self.reply


def static_provider(name: str, results: List[ProviderBook], enabled: bool = True, calls: list = None) -> ProviderEntry:
    async def search(query: str, max_results: int = 10) -> List[ProviderBook]:
        if calls is not None:
            calls.append((name, query))
        return results[:max_results]

    return ProviderEntry(name=name, label=name.title(), enabled=enabled, search=search)


@pytest.fixture
def catalog():
    cat = SqliteCatalog(":memory:")
    yield cat
    cat.close()


@pytest.fixture
def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), color="white").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def harry_potter() -> ProviderBook:
    return ProviderBook(
        title="Harry Potter",
        author="J.K. Rowling",
        isbn="9780747532699",
        publisher="Bloomsbury",
        source="Simania",
        confidence=85,
    )


@pytest.fixture
def make_extractor():
    def _make(client) -> CandidateExtractor:
        return CandidateExtractor(client, sleep=no_sleep)
    return _make


@pytest.fixture
def make_aggregator():
    def _make(*entries: ProviderEntry) -> MetadataAggregator:
        return MetadataAggregator(list(entries))
    return _make
