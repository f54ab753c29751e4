import asyncio
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from app.services.exceptions import LLMServiceUnavailableError
from app.services.llm_service import LLMService
from conftest import make_completion, question_from_prompt


def _service(client, concurrency_limit: int = 3) -> LLMService:
    return LLMService(api_key="k", model="test-model", timeout=5, concurrency_limit=concurrency_limit, client=client)


class TestBuildPrompt:
    def test_with_context(self) -> None:
        prompt = _service(MagicMock()).build_prompt("What is covered?", "Doc text")
        assert prompt == (
            "Based on the following document content, answer the question.\n\n"
            "Document Content:\nDoc text\n\n"
            "Question: What is covered?\n\n"
            "Answer:"
        )

    def test_without_context(self) -> None:
        prompt = _service(MagicMock()).build_prompt("What is covered?", "")
        assert prompt == "Answer the following question: What is covered?"


class TestGenerateOne:
    @pytest.mark.asyncio
    async def test_returns_raw_text(self) -> None:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=make_completion("  30 days [1]  "))
        answer = await _service(client).generate_one("What is the notice period?", "ctx")
        assert answer == "  30 days [1]  "

        _, kwargs = client.chat.completions.create.call_args
        assert kwargs["model"] == "test-model"
        assert "ctx" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_api_error_becomes_fallback(self) -> None:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=MagicMock())
        )
        answer = await _service(client).generate_one("What is the notice period?")
        assert answer == "Sorry, I couldn't process this question: What is the notice period?"

    @pytest.mark.asyncio
    async def test_empty_content_becomes_fallback(self) -> None:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=make_completion(None))
        answer = await _service(client).generate_one("What is the notice period?")
        assert answer.startswith("Sorry, I couldn't process this question")

    @pytest.mark.asyncio
    async def test_no_choices_becomes_fallback(self) -> None:
        response = MagicMock()
        response.choices = []
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=response)
        answer = await _service(client).generate_one("What is the notice period?")
        assert answer.startswith("Sorry, I couldn't process this question")

    @pytest.mark.asyncio
    async def test_timeout_becomes_fallback(self) -> None:
        async def slow(**kwargs):
            await asyncio.sleep(10)

        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=slow)
        service = _service(client)
        service.timeout = 0.01
        answer = await service.generate_one("What is the notice period?")
        assert answer.startswith("Sorry, I couldn't process this question")

    @pytest.mark.asyncio
    async def test_fallback_embeds_question_verbatim(self) -> None:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=RuntimeError("boom"))
        question = '<script>alert("x")</script> and "quotes"?'
        answer = await _service(client).generate_one(question)
        assert answer == f"Sorry, I couldn't process this question: {question}"


class TestGenerateAll:
    @pytest.mark.asyncio
    async def test_order_preserved(self, llm_client: MagicMock) -> None:
        questions = [f"Question number {i}?" for i in range(10)]
        answers = await _service(llm_client).generate_all(questions, "ctx")
        assert answers == [f"answer to: {q}" for q in questions]

    @pytest.mark.asyncio
    async def test_order_preserved_when_completion_order_differs(self) -> None:
        async def create(**kwargs):
            question = question_from_prompt(kwargs["messages"][0]["content"])
            # earlier questions finish later
            await asyncio.sleep(0.01 * (5 - int(question[-2])))
            return make_completion(f"answer to: {question}")

        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=create)
        questions = [f"Question {i}?" for i in range(5)]
        answers = await _service(client, concurrency_limit=5).generate_all(questions)
        assert answers == [f"answer to: {q}" for q in questions]

    @pytest.mark.asyncio
    async def test_one_failure_is_isolated(self) -> None:
        async def create(**kwargs):
            question = question_from_prompt(kwargs["messages"][0]["content"])
            if "broken" in question:
                raise openai.APIError(message="server error", request=MagicMock(), body=None)
            return make_completion(f"answer to: {question}")

        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=create)
        questions = ["First question?", "The broken question?", "Third question?"]
        answers = await _service(client).generate_all(questions, "ctx")
        assert answers == [
            "answer to: First question?",
            "Sorry, I couldn't process this question: The broken question?",
            "answer to: Third question?",
        ]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        in_flight = 0
        peak = 0

        async def create(**kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return make_completion("ok")

        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=create)
        answers = await _service(client, concurrency_limit=2).generate_all([f"Question {i}?" for i in range(6)])
        assert len(answers) == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_limit_of_one_is_sequential(self) -> None:
        in_flight = 0
        peak = 0

        async def create(**kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return make_completion("ok")

        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=create)
        await _service(client, concurrency_limit=1).generate_all([f"Question {i}?" for i in range(4)])
        assert peak == 1

    @pytest.mark.asyncio
    async def test_unconfigured_service_is_unavailable(self) -> None:
        service = LLMService(api_key="", model="test-model")
        with pytest.raises(LLMServiceUnavailableError):
            await service.generate_all(["What is covered?"])

    @pytest.mark.asyncio
    async def test_unconfigured_service_single_question_falls_back(self) -> None:
        service = LLMService(api_key="", model="test-model")
        answer = await service.generate_one("What is covered?")
        assert answer == "Sorry, I couldn't process this question: What is covered?"
