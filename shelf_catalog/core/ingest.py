"""
Bulk ingestion of user-confirmed books into the shared catalog.

Each item is resolved against the catalog, inserted when new, and linked to
the acting family. Items are processed independently: a bad item is recorded
under ``failed`` and never aborts its siblings.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel

from shelf_catalog.config import MAX_BATCH_SIZE
from shelf_catalog.core.dedup import CatalogStore, find_existing_book, usable_isbn
from shelf_catalog.core.extractor import normalize_series_number
from shelf_catalog.errors import BatchValidationError, DuplicateEntryError
from shelf_catalog.providers.base import to_int
from shelf_catalog.schemas import BulkAddResult

logger = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "לא ידוע"

BookInput = Union[Mapping[str, Any], BaseModel]


def _as_dict(book: BookInput) -> Dict[str, Any]:
    if isinstance(book, BaseModel):
        return book.model_dump()
    return dict(book)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_book(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Build catalog attributes from a confirmed book, applying the storage defaults."""
    series_number = raw.get("series_number")
    if series_number is None:
        series_number = raw.get("seriesNumber")
    return {
        "title": raw["title"].strip(),
        "author": _text(raw.get("author")) or UNKNOWN_AUTHOR,
        "isbn": usable_isbn(raw.get("isbn")),
        "publisher": _text(raw.get("publisher")),
        "publish_year": to_int(raw.get("publish_year")),
        "pages": to_int(raw.get("pages")),
        "description": _text(raw.get("description")),
        "cover_image_url": _text(raw.get("cover_image_url")),
        "genre": _text(raw.get("genre")),
        "age_range": _text(raw.get("age_range")),
        "series": _text(raw.get("series")),
        "series_number": normalize_series_number(series_number),
        "language": _text(raw.get("language")),
    }


def _skipped(attrs: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": attrs["title"],
        "author": attrs["author"],
        "reason": "already_owned",
        "message": "הספר כבר קיים בספרייה שלך",
    }


def _resolve(catalog: CatalogStore, attrs: Dict[str, Any]) -> Optional[int]:
    return find_existing_book(
        catalog,
        title=attrs["title"],
        author=attrs["author"],
        isbn=attrs["isbn"],
        series=attrs["series"],
        series_number=attrs["series_number"],
    )


def validate_batch(books: Any, max_size: int = MAX_BATCH_SIZE) -> List[Any]:
    if not isinstance(books, list) or not books:
        raise BatchValidationError("Books array is required")
    if len(books) > max_size:
        raise BatchValidationError(f"Maximum {max_size} books per batch")
    return books


def bulk_add_books(catalog: CatalogStore, family_id: str, books: List[BookInput]) -> BulkAddResult:
    """Add a batch of books for one family.

    Raises BatchValidationError before touching the catalog when the batch is
    empty or larger than MAX_BATCH_SIZE.
    """
    validate_batch(books)
    result = BulkAddResult()

    for book in books:
        raw = _as_dict(book)
        title = raw.get("title")
        if not isinstance(title, str) or not title.strip():
            result.failed.append({"book": raw, "error": "Title is required"})
            continue

        try:
            attrs = normalize_book(raw)
            catalog_id = _resolve(catalog, attrs)

            if catalog_id is not None and catalog.is_owned(catalog_id, family_id):
                result.skipped_books.append(_skipped(attrs))
                continue

            if catalog_id is None:
                try:
                    catalog_id = catalog.insert(attrs)
                    logger.info("Created catalog entry %s for %r", catalog_id, attrs["title"])
                except DuplicateEntryError:
                    # inserted concurrently, or collides on the unique key
                    catalog_id = _resolve(catalog, attrs)
                    if catalog_id is None:
                        raise

            try:
                link = catalog.link_ownership(catalog_id, family_id)
            except DuplicateEntryError:
                result.skipped_books.append(_skipped(attrs))
                continue

            result.added.append({
                "id": link.get("id"),
                "book_catalog_id": catalog_id,
                "family_id": family_id,
                "title": attrs["title"],
                "author": attrs["author"],
                "series": attrs["series"],
                "series_number": attrs["series_number"],
                "isbn": attrs["isbn"],
            })
        except Exception as e:
            logger.warning("Failed to add %r: %s", raw.get("title"), e)
            result.failed.append({"book": raw, "error": str(e)})

    logger.info(
        "Bulk add for family %s: %s added, %s skipped, %s failed",
        family_id, len(result.added), len(result.skipped_books), len(result.failed),
    )
    return result
