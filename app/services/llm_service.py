import asyncio
import logging
from typing import List, Optional

from openai import AsyncOpenAI
import openai

from app.services.exceptions import GenerationError, LLMServiceUnavailableError

logger = logging.getLogger(__name__)

FALLBACK_ANSWER_TEMPLATE = "Sorry, I couldn't process this question: {question}"


class LLMService:
    """Answers questions through an OpenAI-compatible chat completion API.

    The instance keeps the client handle and model parameters and nothing
    else; it is safe to share between concurrent requests.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: int = 45,
        max_tokens: int = 8192,
        temperature: float = 0.7,
        top_p: float = 0.95,
        concurrency_limit: int = 3,
        app_url: str = "http://localhost:8000",
        app_name: str = "Document Query Service",
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p
        self.concurrency_limit = max(1, concurrency_limit)
        self.extra_headers = {"HTTP-Referer": app_url, "X-Title": app_name}

        if client is not None:
            self.client = client
        elif api_key:
            self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        else:
            self.client = None
            logger.warning("No LLM API key configured; question answering is unavailable")

        logger.info(f"LLMService initialized with model: {self.model}")

    @classmethod
    def from_settings(cls, settings) -> "LLMService":
        return cls(
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            timeout=settings.llm_timeout,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            top_p=settings.llm_top_p,
            concurrency_limit=settings.llm_concurrency_limit,
            app_url=settings.app_url,
            app_name=settings.app_name,
        )

    def build_prompt(self, question: str, context: str) -> str:
        """Embed the document text (if any) and the question into one prompt"""
        if context:
            return (
                "Based on the following document content, answer the question.\n\n"
                f"Document Content:\n{context}\n\n"
                f"Question: {question}\n\n"
                "Answer:"
            )
        return f"Answer the following question: {question}"

    def fallback_answer(self, question: str) -> str:
        return FALLBACK_ANSWER_TEMPLATE.format(question=question)

    async def _make_llm_request(self, prompt: str) -> str:
        """Single chat completion call; raises GenerationError on any failure"""
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                    top_p=self.top_p,
                    extra_headers=self.extra_headers,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Timeout with model {self.model}") from e
        except openai.APIError as e:
            raise GenerationError(f"LLM API error with model {self.model}: {e}") from e

        if not response.choices:
            raise GenerationError("LLM returned no choices")
        content = response.choices[0].message.content
        if content is None:
            raise GenerationError("LLM returned empty response")
        return content

    async def generate_one(self, question: str, context: str = "", request_id: Optional[str] = None) -> str:
        """Answer one question; failures become the fallback answer instead of raising"""
        try:
            if self.client is None:
                raise GenerationError("LLM client is not configured")
            answer = await self._make_llm_request(self.build_prompt(question, context))
        except Exception as e:
            logger.error(f"[{request_id}] Failed to answer question '{question[:100]}': {e}")
            return self.fallback_answer(question)

        logger.info(f"[{request_id}] Generated answer ({len(answer)} chars) for '{question[:100]}'")
        return answer

    async def generate_all(self, questions: List[str], context: str = "", request_id: Optional[str] = None) -> List[str]:
        """Answer every question, bounded-parallel, keeping input order.

        Raises:
            LLMServiceUnavailableError: no client is configured, so no question
                could ever be answered.
        """
        if self.client is None:
            raise LLMServiceUnavailableError("Failed to process questions with AI service")

        semaphore = asyncio.Semaphore(self.concurrency_limit)

        async def limited_generate(index: int, question: str) -> str:
            async with semaphore:
                logger.debug(f"[{request_id}] Processing question {index + 1}/{len(questions)}")
                return await self.generate_one(question, context, request_id)

        # gather returns results in submission order, not completion order
        answers = await asyncio.gather(
            *[limited_generate(i, question) for i, question in enumerate(questions)]
        )
        return list(answers)
