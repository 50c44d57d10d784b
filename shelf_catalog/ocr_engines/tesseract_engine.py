import io
import logging
from typing import List, Optional

from PIL import Image

from shelf_catalog.core.clustering import sort_fragments
from shelf_catalog.errors import PermanentServiceError
from shelf_catalog.ocr_engines.base import fragment_from_polygon, join_fragments
from shelf_catalog.schemas import OcrResult

logger = logging.getLogger(__name__)

# pytesseract language codes
_LANGS = {"he": "heb", "en": "eng"}


class TesseractEngine:
    name = "tesseract"

    def __init__(self, languages: Optional[List[str]] = None):
        import pytesseract  # optional extra
        self.pytesseract = pytesseract
        self.lang = "+".join(_LANGS.get(l, l) for l in (languages or ["he", "en"]))

    def extract_text(self, image_bytes: bytes) -> OcrResult:
        try:
            image = Image.open(io.BytesIO(image_bytes))
            data = self.pytesseract.image_to_data(image, lang=self.lang, output_type=self.pytesseract.Output.DICT)
        except Exception as e:
            raise PermanentServiceError(f"Tesseract failed: {e}", service=self.name) from e

        fragments = []
        for i, text in enumerate(data.get("text", [])):
            conf = float(data["conf"][i])
            if not text or not text.strip() or conf < 0:
                continue
            left, top = data["left"][i], data["top"][i]
            right, bottom = left + data["width"][i], top + data["height"][i]
            vertices = [(left, top), (right, top), (right, bottom), (left, bottom)]
            fragments.append(fragment_from_polygon(text.strip(), vertices, conf / 100.0))

        fragments = sort_fragments(fragments)
        logger.info("Tesseract found %s words", len(fragments))
        return OcrResult(full_text=join_fragments(fragments), blocks=fragments)
