from shelf_catalog.storage.catalog import SqliteCatalog

__all__ = ["SqliteCatalog"]
