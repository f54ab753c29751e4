from enum import Enum
from typing import Any, Dict, List, Optional


class ExtractionFailureReason(str, Enum):
    """Why a document could not be turned into text"""

    DOWNLOAD = "download"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    PARSE_FAILURE = "parse_failure"
    EMPTY_CONTENT = "empty_content"
    FILE_NOT_FOUND = "file_not_found"


class QueryServiceError(Exception):
    """Base exception for all document query errors.

    Subclasses that reach the HTTP layer are rendered with ``error``,
    ``message`` and ``http_status``; ``details`` is a list of field-level
    entries when present.
    """

    error: str = "Internal Server Error"
    http_status: int = 500

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class RequestValidationFailed(QueryServiceError):
    """Request body or upload failed validation (400)."""

    error = "Validation Error"
    http_status = 400


class ExtractionError(QueryServiceError):
    """Document download or parsing failed.

    Recovered by the orchestrator, never surfaced to the caller.
    """

    error = "Extraction Error"
    http_status = 422

    def __init__(self, reason: ExtractionFailureReason, message: str):
        super().__init__(message)
        self.reason = reason

    def __str__(self) -> str:
        return f"[{self.reason.value}] {self.message}"


class GenerationError(QueryServiceError):
    """A single question could not be answered by the LLM service.

    Converted to the fallback answer inside the generator.
    """

    error = "Generation Error"
    http_status = 502


class DocumentProcessingError(QueryServiceError):
    """Structural pipeline failure outside the per-question boundary (422)."""

    error = "Document Processing Error"
    http_status = 422


class LLMServiceUnavailableError(QueryServiceError):
    """The LLM service cannot be used at all (502)."""

    error = "AI Service Error"
    http_status = 502
