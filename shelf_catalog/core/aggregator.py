"""
Metadata search across bibliographic providers.

Providers are held in an ordered table of {name, enabled, search}. ``auto``
mode walks the enabled entries in order and returns the first non-empty
result set; results are never merged across providers.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from shelf_catalog.config import Settings
from shelf_catalog.core.scoring import find_best_match
from shelf_catalog.providers import GoogleBooksProvider, SimaniaProvider
from shelf_catalog.schemas import ProviderBook

logger = logging.getLogger(__name__)

SearchFn = Callable[[str, int], Awaitable[List[ProviderBook]]]


@dataclass
class ProviderEntry:
    name: str
    label: str
    enabled: bool
    search: SearchFn


class MetadataAggregator:
    def __init__(self, providers: List[ProviderEntry]):
        self.providers = providers

    @classmethod
    def from_settings(cls, settings: Settings, transport=None) -> "MetadataAggregator":
        simania = SimaniaProvider(timeout_seconds=settings.provider_timeout_seconds, transport=transport)
        google = GoogleBooksProvider(
            api_key=settings.google_books_api_key,
            timeout_seconds=settings.provider_timeout_seconds,
            transport=transport,
        )
        return cls([
            ProviderEntry(simania.name, simania.label, settings.simania_enabled, simania.search),
            ProviderEntry(google.name, google.label, settings.google_books_enabled, google.search),
        ])

    def list_providers(self) -> List[Dict[str, Any]]:
        return [{"name": p.name, "label": p.label, "enabled": p.enabled} for p in self.providers]

    def _entry(self, name: str) -> ProviderEntry:
        for p in self.providers:
            if p.name == name:
                return p
        raise ValueError(f"Unknown provider: {name}")

    async def search_books(self, query: str, provider: str = "auto", max_results: int = 10) -> List[ProviderBook]:
        logger.info("Searching books: %r (provider: %s)", query, provider)
        if provider == "auto":
            for entry in self.providers:
                if not entry.enabled:
                    continue
                results = await self._run(entry, query, max_results)
                if results:
                    logger.info("Found %s results from %s", len(results), entry.label)
                    return results
            logger.info("No results found from any provider for %r", query)
            return []

        entry = self._entry(provider)
        if not entry.enabled:
            raise ValueError(f"Provider {provider} is disabled")
        return await self._run(entry, query, max_results)

    async def _run(self, entry: ProviderEntry, query: str, max_results: int) -> List[ProviderBook]:
        # a misbehaving provider reads as "no results" so auto mode can fall through
        try:
            return list(await entry.search(query, max_results))
        except Exception as e:
            logger.warning("Provider %s failed for %r: %s", entry.name, query, e)
            return []

    async def search_book_details(
        self,
        title: str,
        author: Optional[str] = None,
        max_results: int = 5,
    ) -> Tuple[Optional[ProviderBook], int]:
        """Title+author search, retried with the title alone; returns (best match, score)."""
        query = f"{title} {author}" if author else title
        results = await self.search_books(query, max_results=max_results)
        if not results and author:
            logger.info("No results for %r, retrying with title only", query)
            results = await self.search_books(title, max_results=max_results)
        if not results:
            return None, 0

        best, score = find_best_match(results, title, author)
        logger.info("Best match for %r: %r (score %s)", title, best.title if best else None, score)
        return best, score
