"""Request validation for the run and upload endpoints.

Both entry points are pure functions: they never raise for bad input and
never touch the filesystem or network. Every violation is collected and
reported with its field path.
"""
import json
import logging
from typing import Any, List, Optional

from fastapi import UploadFile
from pydantic import TypeAdapter, ValidationError

from app.models.schemas import (
    DocumentRequest,
    FieldViolation,
    LocalPath,
    MAX_QUESTIONS,
    QuestionList,
    RemoteURL,
    ValidatedRequest,
    ValidationResult,
)

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
MAX_UPLOAD_SIZE = 20 * 1024 * 1024  # default; the app passes settings.max_document_size
MAX_ECHO_LENGTH = 200

_questions_adapter = TypeAdapter(QuestionList)

# Messages for pydantic's built-in error types, keyed by (field, type)
_FIELD_MESSAGES = {
    ("documents", "missing"): "Documents field is required",
    ("documents", "string_type"): "Documents must be a valid HTTP/HTTPS URL",
    ("questions", "missing"): "Questions field is required",
    ("questions", "list_type"): "Questions must be an array",
    ("questions", "too_short"): "At least one question is required",
    ("questions", "too_long"): f"Maximum {MAX_QUESTIONS} questions allowed per request",
}


def _safe_value(value: Any) -> Optional[Any]:
    """Return the offending value if it is small and scalar enough to echo back"""
    if isinstance(value, bool) or isinstance(value, (int, float)):
        return value
    if isinstance(value, str) and len(value) <= MAX_ECHO_LENGTH:
        return value
    return None


def _field_path(loc: tuple, prefix: str = "") -> str:
    parts = [str(part) for part in loc]
    if prefix:
        parts.insert(0, prefix)
    return ".".join(parts) or "body"


def _to_violations(exc: ValidationError, prefix: str = "") -> List[FieldViolation]:
    violations = []
    for err in exc.errors():
        loc = err.get("loc", ())
        field = _field_path(loc, prefix)
        err_type = err.get("type", "")
        top = field.split(".")[0]

        if err_type == "extra_forbidden":
            message = f"Unknown field '{field}' is not allowed"
        elif err_type == "model_type":
            message = "Request body must be a JSON object"
        elif err_type == "string_type" and top == "questions":
            message = "Each question must be a string"
        else:
            message = _FIELD_MESSAGES.get((top, err_type), err.get("msg", "Invalid value"))

        value = None if err_type in ("missing", "model_type") else _safe_value(err.get("input"))
        violations.append(FieldViolation(field=field, message=message, value=value))
    return violations


def validate_run_request(body: Any) -> ValidationResult:
    """Validate the JSON body of a URL-mode request.

    Returns a ValidationResult holding either the normalized request
    (sanitized questions, RemoteURL document) or the list of violations.
    """
    try:
        parsed = DocumentRequest.model_validate(body)
    except ValidationError as e:
        violations = _to_violations(e)
        logger.debug(f"Run request rejected with {len(violations)} violation(s)")
        return ValidationResult(errors=violations)

    return ValidationResult(
        request=ValidatedRequest(
            document=RemoteURL(url=parsed.documents),
            questions=list(parsed.questions),
        )
    )


def _decode_questions(questions_raw: Optional[str]) -> tuple:
    """Decode the JSON-encoded questions form field.

    Returns (questions, violations); questions is None when invalid.
    """
    if questions_raw is None:
        return None, [FieldViolation(field="questions", message="Questions field is required")]

    try:
        decoded = json.loads(questions_raw)
    except (TypeError, ValueError):
        return None, [FieldViolation(
            field="questions",
            message="Questions must be valid JSON",
            value=_safe_value(questions_raw),
        )]

    try:
        questions = _questions_adapter.validate_python(decoded)
    except ValidationError as e:
        return None, _to_violations(e, prefix="questions")
    return questions, []


def _check_upload_file(file: Optional[UploadFile], max_file_size: int) -> List[FieldViolation]:
    if file is None:
        return [FieldViolation(field="document", message="A PDF file is required")]

    violations = []
    if file.content_type != PDF_MIME_TYPE:
        violations.append(FieldViolation(
            field="document",
            message=f"Expected PDF file, got {file.content_type}",
            value=_safe_value(file.content_type),
        ))

    size = file.size
    if size is not None and size > max_file_size:
        violations.append(FieldViolation(
            field="document",
            message=f"File size {size / 1024 / 1024:.2f}MB exceeds {max_file_size / 1024 / 1024:g}MB limit",
            value=size,
        ))

    if not file.filename or not file.filename.lower().endswith(".pdf"):
        violations.append(FieldViolation(
            field="document",
            message="File must have .pdf extension",
            value=_safe_value(file.filename),
        ))
    return violations


def validate_upload_request(
    file: Optional[UploadFile],
    questions_raw: Optional[str],
    max_file_size: int = MAX_UPLOAD_SIZE,
) -> ValidationResult:
    """Validate an upload-mode request.

    The document reference in the result is a placeholder LocalPath holding
    the client filename; the route swaps in the staged path once the file has
    been written to disk.
    """
    violations = _check_upload_file(file, max_file_size)
    questions, question_violations = _decode_questions(questions_raw)
    violations.extend(question_violations)

    if violations:
        logger.debug(f"Upload request rejected with {len(violations)} violation(s)")
        return ValidationResult(errors=violations)

    return ValidationResult(
        request=ValidatedRequest(
            document=LocalPath(path=file.filename),
            questions=list(questions),
        )
    )
