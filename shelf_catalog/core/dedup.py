from typing import Any, Dict, Optional, Protocol

MIN_ISBN_LENGTH = 10


class CatalogStore(Protocol):
    def find_by_isbn(self, isbn: str) -> Optional[int]: ...

    def find_by_title_author(self, title: str, author: Optional[str]) -> list: ...

    def insert(self, attrs: Dict[str, Any]) -> int: ...

    def link_ownership(self, catalog_id: int, family_id: str) -> Dict[str, Any]: ...

    def is_owned(self, catalog_id: int, family_id: str) -> bool: ...


def usable_isbn(isbn: Any) -> Optional[str]:
    """Return the ISBN as a string when it is trustworthy enough to look up, else None.

    Blank, "0" and anything shorter than 10 characters (e.g. an OCR'd "978"
    prefix) are treated as absent.
    """
    if isbn is None:
        return None
    text = str(isbn).strip()
    if not text or text == "0" or len(text) < MIN_ISBN_LENGTH:
        return None
    return text


def _blank(value: Optional[str]) -> bool:
    return value is None or str(value).strip() == ""


def find_existing_book(
    catalog: CatalogStore,
    *,
    title: str,
    author: Optional[str] = None,
    isbn: Optional[str] = None,
    series: Optional[str] = None,
    series_number: Optional[int] = None,
) -> Optional[int]:
    """Resolve a proposed book to an existing catalog id, or None to create a new entry.

    1. exact ISBN, when the ISBN is usable
    2. with a series: title, author and series must match, and the series
       numbers must be equal or both missing
    3. without a series: title and author must match and the catalog row must
       have no series either
    """
    key = usable_isbn(isbn)
    if key:
        found = catalog.find_by_isbn(key)
        if found is not None:
            return found

    rows = catalog.find_by_title_author(title, author)
    if not _blank(series):
        wanted = series.strip().lower()
        for row in rows:
            if _blank(row.get("series")) or row["series"].strip().lower() != wanted:
                continue
            if row.get("series_number") == series_number:
                return row["id"]
        return None

    for row in rows:
        if _blank(row.get("series")):
            return row["id"]
    return None
