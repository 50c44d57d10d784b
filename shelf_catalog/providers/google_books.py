import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from shelf_catalog.core.extractor import normalize_series_number
from shelf_catalog.providers.base import to_int
from shelf_catalog.schemas import ProviderBook

logger = logging.getLogger(__name__)

# first matching key wins, so more specific categories come first
CATEGORY_GENRES: List[Tuple[str, str]] = [
    ("juvenile fiction", "ילדים"),
    ("young adult fiction", "נוער"),
    ("science fiction", "מדע בדיוני"),
    ("fantasy", "פנטזיה"),
    ("mystery", "מתח"),
    ("thriller", "מתח"),
    ("romance", "רומן"),
    ("biography", "ביוגרפיה"),
    ("history", "היסטוריה"),
    ("science", "מדע"),
    ("poetry", "שירה"),
    ("fiction", "רומן"),
]

_SUBTITLE_SERIES = re.compile(r"Book\s+(\d+)\s+of\s+(.+)", re.IGNORECASE)
_TITLE_PATTERNS = [
    re.compile(r"(.+?)\s+[-–]\s+Book\s+(\d+)", re.IGNORECASE),
    re.compile(r"(.+?)\s+#(\d+)"),
    re.compile(r"(.+?)\s*,?\s*חלק\s+(\d+)"),
]
_DESCRIPTION_SERIES = re.compile(r"Book\s+(\d+)\s+of\s+([^.\n]+)", re.IGNORECASE)


def map_category(categories: Optional[List[str]]) -> Optional[str]:
    if not categories:
        return None
    category = categories[0].lower()
    for key, genre in CATEGORY_GENRES:
        if key in category:
            return genre
    return None


def extract_series_info(volume: Dict[str, Any]) -> Tuple[Optional[str], Optional[int]]:
    """Find (series, number) in seriesInfo, then subtitle, title and description patterns."""
    series: Optional[str] = None
    number: Optional[int] = None

    info = volume.get("seriesInfo") or volume.get("seriesinfo")
    if info:
        series = info.get("bookDisplaySeriesTitle") or info.get("series") or info.get("seriesTitle")
        volume_series = info.get("volumeSeries") or []
        if not series and volume_series:
            series = volume_series[0].get("series")
            number = normalize_series_number(volume_series[0].get("volumeSeriesNumber"))
        if number is None and info.get("volumeSeriesNumber"):
            number = normalize_series_number(info.get("volumeSeriesNumber"))

    if not series and volume.get("subtitle"):
        m = _SUBTITLE_SERIES.search(volume["subtitle"])
        if m:
            number = normalize_series_number(m.group(1))
            series = m.group(2).strip()

    title = volume.get("title") or ""
    if not series and title:
        for pattern in _TITLE_PATTERNS:
            m = pattern.search(title)
            if m:
                series = m.group(1).strip()
                if number is None:
                    number = normalize_series_number(m.group(2))
                break

    if not series and volume.get("description"):
        m = _DESCRIPTION_SERIES.search(volume["description"])
        if m:
            number = normalize_series_number(m.group(1))
            series = m.group(2).strip()

    return series or None, number


class GoogleBooksProvider:
    name = "google_books"
    label = "Google Books"
    BASE = "https://www.googleapis.com/books/v1/volumes"
    CONFIDENCE = 75

    def __init__(self, api_key: Optional[str] = None, timeout_seconds: float = 8.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def search(self, query: str, max_results: int = 10) -> List[ProviderBook]:
        params: Dict[str, Any] = {"q": query, "maxResults": max_results, "langRestrict": "he,en"}
        if self.api_key:
            params["key"] = self.api_key
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                r = await client.get(self.BASE, params=params)
            if r.status_code != 200:
                logger.warning("Google Books API error: %s", r.status_code)
                return []
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Google Books search failed for %r: %s", query, e)
            return []

        items = data.get("items", []) or []
        return [self._to_result(it.get("volumeInfo", {})) for it in items[:max_results]]

    def _to_result(self, vi: Dict[str, Any]) -> ProviderBook:
        identifiers = vi.get("industryIdentifiers", []) or []
        isbn13 = next((i.get("identifier") for i in identifiers if i.get("type") == "ISBN_13"), None)
        isbn10 = next((i.get("identifier") for i in identifiers if i.get("type") == "ISBN_10"), None)
        images = vi.get("imageLinks") or {}
        series, series_number = extract_series_info(vi)
        published = vi.get("publishedDate") or ""
        return ProviderBook(
            title=vi.get("title") or "",
            author=(vi.get("authors") or [""])[0],
            publisher=vi.get("publisher"),
            publish_year=to_int(published[:4]) if published else None,
            pages=vi.get("pageCount"),
            description=vi.get("description"),
            cover_image_url=images.get("thumbnail") or images.get("smallThumbnail"),
            isbn=isbn13 or isbn10,
            genre=map_category(vi.get("categories")),
            series=series,
            series_number=series_number,
            language=vi.get("language"),
            source=self.label,
            confidence=self.CONFIDENCE,
        )
