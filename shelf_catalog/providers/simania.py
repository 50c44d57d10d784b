import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from shelf_catalog.core.extractor import normalize_series_number
from shelf_catalog.providers.base import to_int
from shelf_catalog.schemas import ProviderBook

logger = logging.getLogger(__name__)

_IMAGE_NAME = re.compile(r"[?&]imageName=([^&]+)")


def resolve_cover_url(book: Dict[str, Any], origin: str = "https://simania.co.il") -> Optional[str]:
    """Turn Simania's COVER/imageLink fields into an absolute image URL."""
    if book.get("COVER"):
        return book["COVER"]
    path = book.get("imageLink")
    if not path:
        return None
    if path.startswith("http://") or path.startswith("https://"):
        return path
    if "loadJpg.php" in path:
        match = _IMAGE_NAME.search(path)
        if match:
            return f"{origin}/bookimages/{match.group(1)}"
    return f"{origin}{path}"


class SimaniaProvider:
    name = "simania"
    label = "Simania"
    BASE = "https://simania.co.il/api/search"
    ORIGIN = "https://simania.co.il"
    CONFIDENCE = 85

    def __init__(self, timeout_seconds: float = 8.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def search(self, query: str, max_results: int = 10) -> List[ProviderBook]:
        params = {"query": query, "page": 1}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                r = await client.get(self.BASE, params=params)
            if r.status_code != 200:
                logger.warning("Simania API error: %s", r.status_code)
                return []
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Simania search failed for %r: %s", query, e)
            return []

        books = (data.get("data") or {}).get("books") or [] if data.get("success") else []
        return [self._to_result(book) for book in books[:max_results]]

    def _to_result(self, book: Dict[str, Any]) -> ProviderBook:
        return ProviderBook(
            title=book.get("NAME") or "",
            author=book.get("AUTHOR") or "",
            publisher=book.get("PUBLISHER") or None,
            publish_year=to_int(book.get("YEAR") or book.get("bookYear")),
            pages=to_int(book.get("PAGES")),
            description=book.get("DESCRIPTION") or None,
            cover_image_url=resolve_cover_url(book, self.ORIGIN),
            isbn=str(book["ISBN"]) if book.get("ISBN") else None,
            genre=book.get("CATEGORY") or None,
            series=book.get("SERIES") or None,
            series_number=normalize_series_number(book.get("seriesNumber")),
            language="he",
            source=self.label,
            confidence=self.CONFIDENCE,
        )
