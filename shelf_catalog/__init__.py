"""Shelf photo book detection, metadata enrichment and catalog ingestion."""

__version__ = "0.1.0"
