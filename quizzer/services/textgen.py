"""
Text-generation capability used for quiz generation, feedback and hints.

Callers depend only on ``TextGenerator.generate(prompt) -> str``; all prompt
wording and reply parsing lives in ``quizzer.services.prompts``.
"""
import logging
from typing import Optional, Protocol

import openai
from fastapi import Request
from openai import AsyncOpenAI

from quizzer.core.config import Settings
from quizzer.core.errors import TransientUpstreamError

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...

    async def aclose(self) -> None: ...


class OpenAITextGenerator:
    """Chat-completions client for any OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: Optional[str] = None,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
        max_retries: int = 0,
    ):
        self.model = model
        self.temperature = temperature
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=max_retries)

    async def generate(self, prompt: str) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
            )
        except openai.OpenAIError as e:
            logger.warning(f"Text generation call failed: {e}")
            raise TransientUpstreamError("Text generation service call failed") from e
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self._client.close()


class DisabledTextGenerator:
    """Stands in when no API key is configured; every call fails as unavailable."""

    async def generate(self, prompt: str) -> str:
        raise TransientUpstreamError("Text generation service is not configured")

    async def aclose(self) -> None:
        return None


def build_text_generator(settings: Settings) -> TextGenerator:
    if settings.AI_API_KEY is None:
        logger.warning("AI_API_KEY is not set; text generation is disabled")
        return DisabledTextGenerator()
    return OpenAITextGenerator(
        settings.AI_API_KEY.get_secret_value(),
        settings.AI_MODEL,
        base_url=settings.AI_BASE_URL,
        temperature=settings.AI_TEMPERATURE,
        timeout=settings.AI_TIMEOUT_SECONDS,
        max_retries=settings.AI_MAX_RETRIES,
    )


def get_text_generator(request: Request) -> TextGenerator:
    return request.app.state.generator
