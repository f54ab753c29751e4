import json
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from app.config import Settings, is_production
from app.api.errors import register_exception_handlers
from app.api.routes import router
from app.services.file_storage import FileStorage
from app.services.query_service import QueryService, build_query_service
from app.utils.helpers import new_request_id, optimize_memory
from typing import AsyncGenerator, Optional
import uvicorn

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Handles application startup and shutdown events.
    """
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Current configuration: {json.dumps(settings.get_safe_config())}")
    app.state.file_storage.ensure_upload_dir()
    optimize_memory()
    yield  # The application runs here
    logger.info(f"Shutting down {settings.app_name}...")
    optimize_memory()


def create_app(
    settings: Optional[Settings] = None,
    query_service: Optional[QueryService] = None,
    file_storage: Optional[FileStorage] = None,
) -> FastAPI:
    """Build the application; collaborators can be injected for tests"""
    settings = settings or Settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description="Answers questions about PDF and DOCX documents with an LLM",
        version=settings.app_version,
        debug=settings.debug,
        docs_url=None if is_production(settings) else "/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.query_service = query_service or build_query_service(settings)
    app.state.file_storage = file_storage or FileStorage(
        upload_dir=settings.upload_dir,
        max_file_size=settings.max_document_size,
    )

    # CORS middleware
    origins = settings.get_cors_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
        max_age=86400,
    )

    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        request.state.request_id = new_request_id()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

    register_exception_handlers(app)

    # Include API routes
    app.include_router(router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {"message": settings.app_name, "status": "running", "docs": app.docs_url}

    return app


if __name__ == "__main__":
    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )
