"""Pydantic schemas shared by the OCR, inference, provider and catalog layers."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

GENRES: List[str] = [
    "רומן", "מתח", "מדע בדיוני", "פנטזיה", "ביוגרפיה", "היסטוריה",
    "מדע", "ילדים", "נוער", "עיון", "שירה", "אחר",
]

AGE_RANGES: List[str] = [
    "0-3", "4-6", "7-9", "10-12", "13-15", "16-18", "מבוגרים", "כל הגילאים",
]

ConfidenceTier = Literal["high", "medium", "low"]


class Position(BaseModel):
    center_x: float
    center_y: float
    top: float = 0
    left: float = 0


class TextFragment(BaseModel):
    """A single OCR text segment with its position on the image."""
    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float = 0.0
    position: Position
    orientation: Literal["horizontal", "vertical"] = "horizontal"


class OcrResult(BaseModel):
    full_text: str = ""
    blocks: List[TextFragment] = Field(default_factory=list)


class DetectedBook(BaseModel):
    """A provisional identification returned by the inference step."""
    title: str
    author: str = ""
    series: Optional[str] = None
    series_number: Optional[int] = None
    genre: Optional[str] = None
    age_range: Optional[str] = None


class ProviderBook(BaseModel):
    """Provider search result normalized to one shape.

    ``confidence`` is the provider's static prior, not a match score.
    """
    title: str = ""
    author: str = ""
    publisher: Optional[str] = None
    publish_year: Optional[int] = None
    pages: Optional[int] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    isbn: Optional[str] = None
    genre: Optional[str] = None
    age_range: Optional[str] = None
    series: Optional[str] = None
    series_number: Optional[int] = None
    language: Optional[str] = None
    source: str
    confidence: int = 0


class EnrichedBook(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    author: str = ""
    publisher: Optional[str] = None
    publish_year: Optional[int] = None
    pages: Optional[int] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    isbn: Optional[str] = None
    genre: Optional[str] = None
    age_range: Optional[str] = None
    series: Optional[str] = None
    series_number: Optional[int] = None
    language: Optional[str] = None
    source: Optional[str] = None
    confidence: ConfidenceTier = "low"
    confidence_score: int = Field(0, alias="confidenceScore")
    already_owned: bool = Field(False, alias="alreadyOwned")


class DetectionResult(BaseModel):
    success: bool = True
    books: List[EnrichedBook] = Field(default_factory=list)
    count: int = 0


class BulkAddResult(BaseModel):
    added: List[Dict[str, Any]] = Field(default_factory=list)
    skipped_books: List[Dict[str, Any]] = Field(default_factory=list)
    failed: List[Dict[str, Any]] = Field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "added": len(self.added),
            "skipped": len(self.skipped_books),
            "failed": len(self.failed),
            "books": self.added,
            "skippedBooks": self.skipped_books,
            "errors": self.failed,
        }
