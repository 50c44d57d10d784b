from shelf_catalog.providers.google_books import GoogleBooksProvider
from shelf_catalog.providers.simania import SimaniaProvider

__all__ = ["GoogleBooksProvider", "SimaniaProvider"]
