from pydantic import BaseModel, ConfigDict, Field, StrictStr, AfterValidator
from pydantic_core import PydanticCustomError
from typing import Annotated, Any, List, Optional, Union
from urllib.parse import urlparse

from app.utils.helpers import sanitize_string

MIN_QUESTIONS = 1
MAX_QUESTIONS = 10
MIN_QUESTION_LENGTH = 5
MAX_QUESTION_LENGTH = 1000
ALLOWED_URL_SCHEMES = ("http", "https")


def _check_document_url(value: str) -> str:
    parsed = urlparse(value.strip())
    if parsed.scheme.lower() not in ALLOWED_URL_SCHEMES or not parsed.netloc:
        raise PydanticCustomError("document_url", "Documents must be a valid HTTP/HTTPS URL")
    return value.strip()


def _check_question(value: str) -> str:
    cleaned = sanitize_string(value)
    if len(cleaned) < MIN_QUESTION_LENGTH:
        raise PydanticCustomError(
            "question_too_short",
            "Each question must be at least {min_length} characters long",
            {"min_length": MIN_QUESTION_LENGTH},
        )
    if len(cleaned) > MAX_QUESTION_LENGTH:
        raise PydanticCustomError(
            "question_too_long",
            "Each question must not exceed {max_length} characters",
            {"max_length": MAX_QUESTION_LENGTH},
        )
    return cleaned


DocumentURL = Annotated[StrictStr, AfterValidator(_check_document_url)]
Question = Annotated[StrictStr, AfterValidator(_check_question)]
QuestionList = Annotated[List[Question], Field(min_length=MIN_QUESTIONS, max_length=MAX_QUESTIONS)]


class DocumentRequest(BaseModel):
    """JSON body of /hackrx/run"""
    model_config = ConfigDict(extra="forbid")

    documents: DocumentURL  # URL to document
    questions: QuestionList


class RemoteURL(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str


class LocalPath(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str


DocumentReference = Union[RemoteURL, LocalPath]


class ValidatedRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    document: DocumentReference
    questions: List[str]


class FieldViolation(BaseModel):
    field: str
    message: str
    value: Optional[Any] = None


class ValidationResult(BaseModel):
    request: Optional[ValidatedRequest] = None
    errors: List[FieldViolation] = []

    @property
    def is_valid(self) -> bool:
        return self.request is not None and not self.errors


class DocumentResponse(BaseModel):
    answers: List[str]

class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[List[FieldViolation]] = None
    timestamp: str
    request_id: Optional[str] = None

class HealthResponse(BaseModel):
    service: str
    status: str
    message: str
    version: str
    timestamp: str
    memory_usage_mb: Optional[float] = None
