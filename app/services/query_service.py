from typing import List, Optional
import logging

from app.models.schemas import DocumentReference, LocalPath, RemoteURL
from app.services.document_processor import DocumentProcessor
from app.services.exceptions import (
    DocumentProcessingError,
    ExtractionError,
    LLMServiceUnavailableError,
)
from app.services.llm_service import LLMService
from app.utils.helpers import log_memory_usage, optimize_memory

logger = logging.getLogger(__name__)

class QueryService:
    """Runs one document through extraction and answers every question about it.

    Extraction failure is not fatal: the questions are still answered, just
    without document context.
    """

    def __init__(self, document_processor: DocumentProcessor, llm_service: LLMService, max_context_chars: int = 100000):
        self.document_processor = document_processor
        self.llm_service = llm_service
        self.max_context_chars = max_context_chars

    async def _extract_context(self, document: DocumentReference, request_id: Optional[str]) -> str:
        try:
            if isinstance(document, RemoteURL):
                text = await self.document_processor.extract_from_url(document.url)
            elif isinstance(document, LocalPath):
                text = await self.document_processor.extract_from_path(document.path)
            else:
                raise TypeError(f"Unsupported document reference: {type(document).__name__}")
        except ExtractionError as e:
            logger.warning(f"[{request_id}] Failed to extract document content, proceeding without context: {e}")
            return ""

        if len(text) > self.max_context_chars:
            text = text[:self.max_context_chars]
            logger.warning(f"[{request_id}] Context truncated to {self.max_context_chars} characters")

        logger.info(f"[{request_id}] Successfully extracted document content ({len(text)} chars)")
        return text

    async def run(self, document: DocumentReference, questions: List[str], request_id: Optional[str] = None) -> List[str]:
        """Answer `questions` about `document`; one answer per question, same order.

        Raises:
            LLMServiceUnavailableError: the LLM service cannot be used at all.
            DocumentProcessingError: any other failure outside the
                per-question boundary.
        """
        logger.info(f"[{request_id}] Processing document and {len(questions)} questions")
        log_memory_usage("Start of query processing")

        context = await self._extract_context(document, request_id)

        try:
            answers = await self.llm_service.generate_all(questions, context, request_id=request_id)
        except LLMServiceUnavailableError:
            logger.error(f"[{request_id}] LLM service unavailable")
            raise
        except Exception as e:
            logger.error(f"[{request_id}] Error in answer generation: {e}")
            raise DocumentProcessingError("Failed to process document and questions") from e
        finally:
            optimize_memory()

        if len(answers) != len(questions):
            raise DocumentProcessingError(
                f"Expected {len(questions)} answers, got {len(answers)}"
            )

        log_memory_usage("End of query processing")
        logger.info(f"[{request_id}] Answered {len(answers)} questions")
        return answers


def build_query_service(settings) -> QueryService:
    """Wire the extractor and generator from settings"""
    document_processor = DocumentProcessor(
        download_timeout=settings.download_timeout,
        max_file_size=settings.max_document_size,
        user_agent=settings.user_agent,
    )
    return QueryService(
        document_processor=document_processor,
        llm_service=LLMService.from_settings(settings),
        max_context_chars=settings.max_context_chars,
    )
