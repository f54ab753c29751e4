from fastapi import APIRouter, HTTPException, Depends, Header, Request
from starlette.datastructures import UploadFile
from typing import Annotated, Optional
import json
import logging
import secrets
import time

from app.config import Settings
from app.models.schemas import DocumentResponse, FieldViolation, HealthResponse, LocalPath
from app.services.exceptions import RequestValidationFailed
from app.services.file_storage import FileStorage
from app.services.query_service import QueryService
from app.services.request_validator import validate_run_request, validate_upload_request
from app.utils.helpers import get_memory_usage, mask_token, optimize_memory, utc_timestamp

logger = logging.getLogger(__name__)
router = APIRouter()

HIGH_MEMORY_MB = 400


def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_query_service(request: Request) -> QueryService:
    return request.app.state.query_service

def get_file_storage(request: Request) -> FileStorage:
    return request.app.state.file_storage


async def verify_bearer_token(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[Optional[str], Header()] = None,
):
    """Verify Bearer token"""
    request_id = request.state.request_id
    if not authorization:
        logger.warning(f"[{request_id}] Authentication failed: no Authorization header on {request.url.path}")
        raise HTTPException(status_code=401, detail="Authorization header is missing")

    if not authorization.startswith("Bearer "):
        logger.warning(f"[{request_id}] Authentication failed: invalid authorization format")
        raise HTTPException(status_code=401, detail="Authorization header must use Bearer token format")

    token = authorization[len("Bearer "):]
    if not secrets.compare_digest(token.encode(), settings.api_bearer_token.encode()):
        logger.warning(f"[{request_id}] Authentication failed: invalid bearer token {mask_token(token)}")
        raise HTTPException(status_code=401, detail="Invalid bearer token")

    return token


def _check_memory():
    memory_usage = get_memory_usage()
    if memory_usage > HIGH_MEMORY_MB:
        optimize_memory()
        logger.warning(f"High memory usage detected: {memory_usage:.2f} MB")


@router.post("/hackrx/run", response_model=DocumentResponse, dependencies=[Depends(verify_bearer_token)])
async def process_document_query(
    request: Request,
    query_service: Annotated[QueryService, Depends(get_query_service)],
):
    """Main endpoint for processing documents and answering questions"""
    request_id = request.state.request_id
    start_time = time.perf_counter()

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise RequestValidationFailed(
            "Request body validation failed",
            details=[FieldViolation(field="body", message="Request body must be valid JSON").model_dump()],
        )

    result = validate_run_request(body)
    if not result.is_valid:
        logger.warning(f"[{request_id}] Request validation failed: {[e.message for e in result.errors]}")
        raise RequestValidationFailed(
            "Request body validation failed",
            details=[e.model_dump(exclude_none=True) for e in result.errors],
        )

    validated = result.request
    logger.info(f"[{request_id}] Processing request with {len(validated.questions)} questions")
    _check_memory()

    answers = await query_service.run(validated.document, validated.questions, request_id=request_id)

    elapsed_ms = (time.perf_counter() - start_time) * 1000
    logger.info(f"[{request_id}] Request completed in {elapsed_ms:.0f} ms with {len(answers)} answers")
    return DocumentResponse(answers=answers)


@router.post("/hackrx/upload", response_model=DocumentResponse, dependencies=[Depends(verify_bearer_token)])
async def process_uploaded_document(
    request: Request,
    query_service: Annotated[QueryService, Depends(get_query_service)],
    file_storage: Annotated[FileStorage, Depends(get_file_storage)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Answer questions about an uploaded PDF (multipart: `document` + JSON `questions`)"""
    request_id = request.state.request_id

    async with request.form() as form:
        document = form.get("document")
        questions_raw = form.get("questions")

        if not isinstance(document, UploadFile):
            document = None
        if not isinstance(questions_raw, str):
            questions_raw = None

        result = validate_upload_request(document, questions_raw, max_file_size=settings.max_document_size)
        if not result.is_valid:
            logger.warning(f"[{request_id}] Upload validation failed: {[e.message for e in result.errors]}")
            raise RequestValidationFailed(
                "Uploaded file validation failed",
                details=[e.model_dump(exclude_none=True) for e in result.errors],
            )

        validated = result.request
        logger.info(f"[{request_id}] Processing uploaded file {document.filename!r} with {len(validated.questions)} questions")
        _check_memory()

        async with file_storage.stage_upload(document, request_id) as staged_path:
            answers = await query_service.run(
                LocalPath(path=str(staged_path)),
                validated.questions,
                request_id=request_id,
            )

    logger.info(f"[{request_id}] Upload request completed with {len(answers)} answers")
    return DocumentResponse(answers=answers)


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Annotated[Settings, Depends(get_settings)]):
    """Health check endpoint"""
    return HealthResponse(
        service=settings.app_name,
        status="healthy",
        message=f"{settings.app_name} is running",
        version=settings.app_version,
        timestamp=utc_timestamp(),
        memory_usage_mb=round(get_memory_usage(), 2),
    )

@router.get("/")
async def root(settings: Annotated[Settings, Depends(get_settings)]):
    """Root endpoint"""
    return {"message": settings.app_name, "status": "running"}
