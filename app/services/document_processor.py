import asyncio
import io
import logging
import re
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse, unquote

import PyPDF2
import requests
from docx import Document as DocxDocument
from urllib3.exceptions import ReadTimeoutError

from app.services.exceptions import ExtractionError, ExtractionFailureReason as Reason
from app.utils.helpers import log_memory_usage, optimize_memory

logger = logging.getLogger(__name__)


class DocumentProcessor:
    """Turns a document (remote URL or staged file) into a single text string.

    Holds only immutable configuration, so one instance can serve any number
    of concurrent requests.
    """

    def __init__(
        self,
        download_timeout: int = 30,
        max_file_size: int = 20 * 1024 * 1024,
        user_agent: str = "Mozilla/5.0 (compatible; DocumentQuery/1.0)",
    ):
        self.download_timeout = download_timeout
        self.max_file_size = max_file_size
        self.user_agent = user_agent

    def get_file_type_from_url(self, url: str) -> str:
        """Extract file type from URL, handling query parameters and URL encoding"""
        decoded_path = unquote(urlparse(url).path).lower()

        if decoded_path.endswith('.pdf'):
            return 'pdf'
        elif decoded_path.endswith('.docx'):
            return 'docx'
        return 'unknown'

    def get_file_type_from_content(self, content: bytes) -> str:
        """Determine file type from content headers"""
        if content.startswith(b'%PDF'):
            return 'pdf'
        if content.startswith(b'PK\x03\x04'):
            return 'docx'
        return 'unknown'

    def _clean_text(self, text: str) -> str:
        """Collapse runs of spaces and blank lines"""
        text = re.sub(r'[ \t\f\v]+', ' ', text)
        text = re.sub(r'\n\s*\n+', '\n\n', text)
        return text.strip()

    def _download(self, url: str) -> bytes:
        """Fetch the body; `download_timeout` bounds the whole transfer, not just each read"""
        deadline = time.monotonic() + self.download_timeout
        try:
            response = requests.get(
                url,
                timeout=self.download_timeout,
                stream=True,
                headers={'User-Agent': self.user_agent},
            )
        except requests.exceptions.Timeout as e:
            raise ExtractionError(Reason.TIMEOUT, "Timeout while downloading document") from e
        except requests.exceptions.ConnectionError as e:
            raise ExtractionError(Reason.NOT_FOUND, "Document not found at the provided URL") from e
        except requests.exceptions.RequestException as e:
            raise ExtractionError(Reason.DOWNLOAD, f"Failed to download document: {e}") from e

        with response:
            if response.status_code == 404:
                raise ExtractionError(Reason.NOT_FOUND, "Document not found at the provided URL")
            if not response.ok:
                raise ExtractionError(
                    Reason.DOWNLOAD,
                    f"Failed to download document: {response.status_code} {response.reason}",
                )

            content_length = response.headers.get('content-length')
            if content_length and content_length.isdigit() and int(content_length) > self.max_file_size:
                raise ExtractionError(Reason.DOWNLOAD, f"File too large: {content_length} bytes")

            chunks = []
            received = 0
            try:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    if time.monotonic() > deadline:
                        raise ExtractionError(Reason.TIMEOUT, "Timeout while downloading document")
                    received += len(chunk)
                    if received > self.max_file_size:
                        raise ExtractionError(Reason.DOWNLOAD, f"File too large: over {self.max_file_size} bytes")
                    chunks.append(chunk)
            except requests.exceptions.Timeout as e:
                raise ExtractionError(Reason.TIMEOUT, "Timeout while downloading document") from e
            except requests.exceptions.RequestException as e:
                # a read stall mid-body surfaces as ConnectionError(ReadTimeoutError)
                if e.args and isinstance(e.args[0], ReadTimeoutError):
                    raise ExtractionError(Reason.TIMEOUT, "Timeout while downloading document") from e
                raise ExtractionError(Reason.DOWNLOAD, f"Failed to download document: {e}") from e

        return b"".join(chunks)

    async def download_document(self, url: str) -> bytes:
        """Download document bytes without blocking the event loop"""
        log_memory_usage("Before document download")
        try:
            content = await asyncio.wait_for(asyncio.to_thread(self._download, url), timeout=self.download_timeout)
        except asyncio.TimeoutError as e:
            raise ExtractionError(Reason.TIMEOUT, "Timeout while downloading document") from e
        log_memory_usage("After document download")
        logger.info(f"Downloaded {len(content)} bytes from {url}")
        return content

    def extract_text_from_pdf(self, content: bytes) -> str:
        """Extract text from PDF, page by page"""
        try:
            reader = PyPDF2.PdfReader(io.BytesIO(content))
            pages = []
            for page in reader.pages:
                page_text = page.extract_text()
                if page_text:
                    cleaned_page = self._clean_text(page_text)
                    if cleaned_page:
                        pages.append(cleaned_page)
        except Exception as e:
            raise ExtractionError(Reason.PARSE_FAILURE, f"PDF processing failed: {e}") from e

        logger.debug(f"Parsed PDF: {len(reader.pages)} pages, {len(pages)} with text")
        return "\n\n".join(pages)

    def extract_text_from_docx(self, content: bytes) -> str:
        """Extract text from DOCX, keeping headings on their own lines"""
        try:
            doc = DocxDocument(io.BytesIO(content))
            text_parts = []
            for paragraph in doc.paragraphs:
                para_text = paragraph.text.strip()
                if para_text:
                    if paragraph.style is not None and paragraph.style.name.startswith('Heading'):
                        text_parts.append(f"\n{para_text}\n")
                    else:
                        text_parts.append(para_text)
        except Exception as e:
            raise ExtractionError(Reason.PARSE_FAILURE, f"DOCX processing failed: {e}") from e

        return self._clean_text("\n".join(text_parts))

    def parse_document(self, content: bytes, file_type: Optional[str] = None) -> str:
        """Parse raw bytes into text; an all-whitespace result is an error"""
        if not file_type or file_type == 'unknown':
            file_type = self.get_file_type_from_content(content)

        if file_type == 'pdf':
            text = self.extract_text_from_pdf(content)
        elif file_type == 'docx':
            text = self.extract_text_from_docx(content)
        else:
            raise ExtractionError(Reason.PARSE_FAILURE, "Unsupported or unrecognised document type")

        optimize_memory()

        if not text.strip():
            raise ExtractionError(Reason.EMPTY_CONTENT, "Document contains no extractable text")
        return text

    async def extract_from_url(self, url: str) -> str:
        """Download a document and return its text.

        Raises:
            ExtractionError: reason TIMEOUT, NOT_FOUND or DOWNLOAD for transport
                failures, PARSE_FAILURE or EMPTY_CONTENT for parsing.
        """
        logger.info(f"Extracting text from URL: {url}")
        content = await self.download_document(url)

        # Sniff the bytes first; the URL extension only breaks ties
        file_type = self.get_file_type_from_content(content)
        if file_type == 'unknown':
            file_type = self.get_file_type_from_url(url)
        logger.info(f"Detected file type: {file_type}")

        text = await asyncio.to_thread(self.parse_document, content, file_type)
        log_memory_usage("After document processing")
        logger.info(f"Document processed: {len(text)} characters")
        return text

    def _read_file(self, path: str) -> bytes:
        file_path = Path(path)
        if not file_path.is_file():
            raise ExtractionError(Reason.FILE_NOT_FOUND, f"File not found: {path}")
        try:
            return file_path.read_bytes()
        except OSError as e:
            raise ExtractionError(Reason.FILE_NOT_FOUND, f"File could not be read: {e}") from e

    async def extract_from_path(self, path: str) -> str:
        """Read a staged document from disk and return its text.

        Raises:
            ExtractionError: reason FILE_NOT_FOUND, PARSE_FAILURE or EMPTY_CONTENT.
        """
        logger.info(f"Extracting text from file: {path}")
        content = await asyncio.to_thread(self._read_file, path)
        text = await asyncio.to_thread(self.parse_document, content, 'pdf' if path.lower().endswith('.pdf') else None)
        logger.info(f"File processed: {len(text)} characters")
        return text
