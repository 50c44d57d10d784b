"""
SQLite-backed shared book catalog and per-family ownership links.

The unique indexes are the last line of defence for concurrent inserts of
the same book: a violation surfaces as DuplicateEntryError so callers can
treat it as "already exists".
"""

import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from shelf_catalog.errors import DuplicateEntryError

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS book_catalog (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    author TEXT,
    isbn TEXT UNIQUE,
    publisher TEXT,
    publish_year INTEGER,
    pages INTEGER,
    description TEXT,
    cover_image_url TEXT,
    genre TEXT,
    age_range TEXT,
    series TEXT,
    series_number INTEGER,
    language TEXT,
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_book_catalog_key ON book_catalog (
    lower(title),
    lower(coalesce(author, '')),
    lower(coalesce(series, '')),
    coalesce(series_number, -1)
);

CREATE TABLE IF NOT EXISTS family_books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    family_id TEXT NOT NULL,
    book_catalog_id INTEGER NOT NULL REFERENCES book_catalog(id),
    status TEXT NOT NULL DEFAULT 'available',
    created_at TEXT DEFAULT (datetime('now')),
    UNIQUE (family_id, book_catalog_id)
);
"""

CATALOG_COLUMNS = (
    "title", "author", "isbn", "publisher", "publish_year", "pages", "description",
    "cover_image_url", "genre", "age_range", "series", "series_number", "language",
)


class SqliteCatalog:
    def __init__(self, path: Union[str, Path] = ":memory:"):
        self.path = str(path)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(SCHEMA)
        logger.debug("Catalog opened at %s", self.path)

    def close(self) -> None:
        self.conn.close()

    def find_by_isbn(self, isbn: str) -> Optional[int]:
        row = self.conn.execute("SELECT id FROM book_catalog WHERE isbn = ? LIMIT 1", (isbn,)).fetchone()
        return row["id"] if row else None

    def find_by_title_author(self, title: str, author: Optional[str]) -> List[Dict[str, Any]]:
        """Case-insensitive title+author match; rows carry series info for the caller to filter."""
        rows = self.conn.execute(
            """
            SELECT id, title, author, series, series_number FROM book_catalog
            WHERE lower(title) = lower(?) AND lower(coalesce(author, '')) = lower(?)
            ORDER BY id
            """,
            (title, author or ""),
        ).fetchall()
        return [dict(r) for r in rows]

    def get(self, catalog_id: int) -> Optional[Dict[str, Any]]:
        row = self.conn.execute("SELECT * FROM book_catalog WHERE id = ?", (int(catalog_id),)).fetchone()
        return dict(row) if row else None

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM book_catalog").fetchone()[0]

    def insert(self, attrs: Dict[str, Any]) -> int:
        cols = [c for c in CATALOG_COLUMNS if attrs.get(c) is not None]
        sql = "INSERT INTO book_catalog ({}) VALUES ({})".format(
            ", ".join(cols), ", ".join("?" for _ in cols)
        )
        try:
            with self.conn:
                cur = self.conn.execute(sql, [attrs[c] for c in cols])
        except sqlite3.IntegrityError as e:
            raise DuplicateEntryError(f"Catalog entry already exists: {e}") from e
        return int(cur.lastrowid)

    def link_ownership(self, catalog_id: int, family_id: str) -> Dict[str, Any]:
        try:
            with self.conn:
                cur = self.conn.execute(
                    "INSERT INTO family_books (family_id, book_catalog_id) VALUES (?, ?)",
                    (family_id, int(catalog_id)),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateEntryError(f"Family {family_id} already owns book {catalog_id}") from e
        row = self.conn.execute("SELECT * FROM family_books WHERE id = ?", (cur.lastrowid,)).fetchone()
        return dict(row)

    def is_owned(self, catalog_id: int, family_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM family_books WHERE family_id = ? AND book_catalog_id = ? LIMIT 1",
            (family_id, int(catalog_id)),
        ).fetchone()
        return row is not None
