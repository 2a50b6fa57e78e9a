from __future__ import annotations

import logging
import os

from google import genai
from google.genai import errors, types

from .llm_base import LLMAdapter, LLMResponse, RateLimitSignal

logger = logging.getLogger(__name__)


class GeminiAdapter(LLMAdapter):
    def __init__(self) -> None:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY is not set.")

        self.client = genai.Client(api_key=api_key)
        self.model = os.getenv("GEMINI_MODEL", "gemini-flash-latest")

    async def complete(self, prompt: str, max_tokens: int) -> LLMResponse:
        temperature = float(os.getenv("ORCH_TEMPERATURE", "0.2"))
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    max_output_tokens=max_tokens,
                    temperature=temperature,
                ),
            )
        except errors.APIError as exc:
            if getattr(exc, "code", None) == 429:
                raise RateLimitSignal(str(exc)) from exc
            raise

        text = getattr(response, "text", None)
        if not text:
            raise RuntimeError("Gemini returned empty content.")
        usage = getattr(response, "usage_metadata", None)
        tokens = (getattr(usage, "candidates_token_count", 0) or 0) if usage else 0
        logger.info("[gemini] model=%s candidates_tokens=%s", self.model, tokens)
        return LLMResponse(raw_text=text, tokens_used=tokens)
