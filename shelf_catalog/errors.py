"""
Error taxonomy for the detection and ingestion pipeline.

External services raise one of the ExternalServiceError subclasses so callers
can tell a retryable failure from a permanent one. DetectionError carries a
machine-readable code from DETECTION_ERROR_CODES back to the API/CLI layer.
"""

from dataclasses import dataclass
from typing import Dict, Optional


class ShelfCatalogError(Exception):
    pass


class ExternalServiceError(ShelfCatalogError):
    def __init__(self, message: str, *, service: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class TransientServiceError(ExternalServiceError):
    """Network error, timeout or 5xx. Worth retrying."""


class RateLimitedError(TransientServiceError):
    pass


class PermanentServiceError(ExternalServiceError):
    """Auth/permission failure or a rejected request. Never retried."""


class MalformedResponseError(ShelfCatalogError):
    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class ServiceConfigurationError(ShelfCatalogError):
    pass


class ImageValidationError(ShelfCatalogError):
    def __init__(self, code: str, message: str = ""):
        super().__init__(message or DETECTION_ERROR_CODES[code].message)
        self.code = code


class BatchValidationError(ShelfCatalogError):
    pass


class DuplicateEntryError(ShelfCatalogError):
    pass


@dataclass(frozen=True)
class DetectionErrorCode:
    code: str
    message: str
    can_retry: bool
    status_code: int


DETECTION_ERROR_CODES: Dict[str, DetectionErrorCode] = {
    "INVALID_IMAGE": DetectionErrorCode(
        "INVALID_IMAGE", "Invalid image format. Please upload a JPEG or PNG image.", False, 400),
    "CORRUPT_IMAGE": DetectionErrorCode(
        "CORRUPT_IMAGE", "Image file is corrupted or unreadable. Please try another image.", False, 400),
    "IMAGE_TOO_LARGE": DetectionErrorCode(
        "IMAGE_TOO_LARGE", "Image is too large. Maximum 10MB allowed.", False, 413),
    "OCR_FAILED": DetectionErrorCode(
        "OCR_FAILED", "Failed to extract text from image. Please try a clearer image.", True, 422),
    "AI_FAILED": DetectionErrorCode(
        "AI_FAILED", "Failed to identify books. Please try another image.", True, 422),
    "TIMEOUT": DetectionErrorCode(
        "TIMEOUT", "Processing took too long. Please try a simpler image.", True, 504),
    "RATE_LIMITED": DetectionErrorCode(
        "RATE_LIMITED", "Processing limit reached. Please try again in a few minutes.", True, 429),
    "SERVICE_UNAVAILABLE": DetectionErrorCode(
        "SERVICE_UNAVAILABLE", "Processing service is temporarily unavailable. Please try again later.", True, 503),
    "SERVICE_MISCONFIGURED": DetectionErrorCode(
        "SERVICE_MISCONFIGURED", "This image cannot be processed right now: the recognition service rejected our credentials.", False, 503),
    "UNEXPECTED_ERROR": DetectionErrorCode(
        "UNEXPECTED_ERROR", "An unexpected error occurred. Please try again.", True, 500),
}


class DetectionError(ShelfCatalogError):
    def __init__(self, code: str, detail: str = ""):
        if code not in DETECTION_ERROR_CODES:
            code = "UNEXPECTED_ERROR"
        self.code = code
        self.detail = detail
        super().__init__(f"{code}: {detail}" if detail else code)

    @property
    def can_retry(self) -> bool:
        return DETECTION_ERROR_CODES[self.code].can_retry

    @property
    def status_code(self) -> int:
        return DETECTION_ERROR_CODES[self.code].status_code

    def to_response(self) -> Dict[str, object]:
        return error_response(self.code)


def error_response(code: str) -> Dict[str, object]:
    err = DETECTION_ERROR_CODES.get(code) or DETECTION_ERROR_CODES["UNEXPECTED_ERROR"]
    return {"code": err.code, "message": err.message, "canRetry": err.can_retry}
