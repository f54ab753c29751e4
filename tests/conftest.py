import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from docx import Document as DocxDocument
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from app.config import Settings

TEST_TOKEN = "test-bearer-token"


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF with known text content."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Termination clause: either party may terminate with notice.")
    c.drawString(72, 700, "Notice period: thirty days.")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with known text on each page."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Page one content")
    c.showPage()
    c.drawString(72, 720, "Page two content")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def empty_pdf_bytes() -> bytes:
    """Generate a valid PDF with no text content (blank page)."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def sample_docx_bytes() -> bytes:
    doc = DocxDocument()
    doc.add_heading("Policy Terms", level=1)
    doc.add_paragraph("The grace period is fifteen days.")
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        api_bearer_token=TEST_TOKEN,
        llm_api_key="test-key",
        upload_dir=str(tmp_path / "uploads"),
    )


def make_completion(content):
    """Shape of an OpenAI chat completion response with one choice."""
    choice = MagicMock()
    choice.message.content = content
    response = MagicMock()
    response.choices = [choice]
    return response


def question_from_prompt(prompt: str) -> str:
    if "Question: " in prompt:
        return prompt.split("Question: ", 1)[1].split("\n", 1)[0]
    return prompt.removeprefix("Answer the following question: ")


@pytest.fixture()
def llm_client() -> MagicMock:
    """AsyncOpenAI stand-in that answers "answer to: <question>"."""
    client = MagicMock()

    async def create(**kwargs):
        prompt = kwargs["messages"][-1]["content"]
        return make_completion(f"answer to: {question_from_prompt(prompt)}")

    client.chat.completions.create = AsyncMock(side_effect=create)
    return client
