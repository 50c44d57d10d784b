from shelf_catalog.config import Settings
from shelf_catalog.errors import ServiceConfigurationError
from shelf_catalog.ocr_engines.base import OcrService, fragment_from_polygon
from shelf_catalog.ocr_engines.easyocr_engine import EasyOcrEngine
from shelf_catalog.ocr_engines.google_vision import GoogleVisionOcr
from shelf_catalog.ocr_engines.tesseract_engine import TesseractEngine


def create_ocr_service(settings: Settings) -> OcrService:
    engine = settings.ocr_engine
    if engine == "google_vision":
        if not settings.google_vision_api_key:
            raise ServiceConfigurationError("OCR_ENGINE=google_vision requires GOOGLE_VISION_API_KEY")
        return GoogleVisionOcr(settings.google_vision_api_key)
    if engine == "easyocr":
        return EasyOcrEngine(settings.ocr_languages)
    if engine == "tesseract":
        return TesseractEngine(settings.ocr_languages)
    raise ServiceConfigurationError(f"Unknown OCR engine: {engine}")


__all__ = [
    "EasyOcrEngine",
    "GoogleVisionOcr",
    "OcrService",
    "TesseractEngine",
    "create_ocr_service",
    "fragment_from_polygon",
]
