import logging
from typing import List, Optional

from shelf_catalog.core.clustering import sort_fragments
from shelf_catalog.errors import PermanentServiceError
from shelf_catalog.ocr_engines.base import fragment_from_polygon, join_fragments
from shelf_catalog.schemas import OcrResult

logger = logging.getLogger(__name__)


class EasyOcrEngine:
    name = "easyocr"

    def __init__(self, languages: Optional[List[str]] = None, reader=None):
        if reader is None:
            import easyocr  # heavy, loaded only when this engine is selected
            reader = easyocr.Reader(languages or ["he", "en"])
        self.reader = reader

    def extract_text(self, image_bytes: bytes) -> OcrResult:
        try:
            results = self.reader.readtext(image_bytes)
        except Exception as e:
            raise PermanentServiceError(f"EasyOCR failed: {e}", service=self.name) from e

        fragments = [
            fragment_from_polygon(text, [(x, y) for x, y in box], float(conf))
            for box, text, conf in results
            if text and text.strip()
        ]
        fragments = sort_fragments(fragments)
        logger.info("EasyOCR found %s text fragments", len(fragments))
        return OcrResult(full_text=join_fragments(fragments), blocks=fragments)
