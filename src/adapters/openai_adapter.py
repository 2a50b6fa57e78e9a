from __future__ import annotations

import logging
import os

from openai import AsyncOpenAI, RateLimitError

from .llm_base import LLMAdapter, LLMResponse, RateLimitSignal

logger = logging.getLogger(__name__)


class OpenAIAdapter(LLMAdapter):
    def __init__(self) -> None:
        self.api_key = os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY is not set.")
        self.client = AsyncOpenAI(api_key=self.api_key)
        self.model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    async def complete(self, prompt: str, max_tokens: int) -> LLMResponse:
        temperature = float(os.getenv("ORCH_TEMPERATURE", "0.2"))
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except RateLimitError as exc:
            error = getattr(exc, "error", None)
            code = getattr(error, "code", None)
            if code == "insufficient_quota":
                raise RuntimeError(
                    "OpenAI API quota exceeded. Please enable billing in your OpenAI account."
                ) from exc
            raise RateLimitSignal(str(exc)) from exc

        content = response.choices[0].message.content
        if content is None:
            raise RuntimeError("OpenAI returned empty content.")
        usage = getattr(response, "usage", None)
        tokens = 0
        if usage:
            tokens = getattr(usage, "completion_tokens", 0) or 0
            logger.info(
                "[openai] model=%s prompt_tokens=%s completion_tokens=%s total_tokens=%s",
                self.model,
                getattr(usage, "prompt_tokens", None),
                getattr(usage, "completion_tokens", None),
                getattr(usage, "total_tokens", None),
            )
        else:
            logger.info("[openai] usage not provided by SDK")
        return LLMResponse(raw_text=content, tokens_used=tokens)
