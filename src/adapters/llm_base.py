from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

RATE_LIMIT_PATTERN = re.compile(
    r"\b429\b|rate[ _]?limit|too many requests|resource_exhausted",
    re.IGNORECASE,
)


@dataclass
class LLMResponse:
    raw_text: str
    tokens_used: int = 0


class RateLimitSignal(RuntimeError):
    """Raised by adapters when the provider answers "too many requests"."""


InvokeFn = Callable[[str, int], Awaitable[LLMResponse]]


class LLMAdapter(Protocol):
    async def complete(self, prompt: str, max_tokens: int) -> LLMResponse:
        raise NotImplementedError

    async def __call__(self, prompt: str, max_tokens: int) -> LLMResponse:
        return await self.complete(prompt, max_tokens)


def is_rate_limit_error(err: BaseException) -> bool:
    if isinstance(err, RateLimitSignal):
        return True
    for attr in ("status_code", "code"):
        if getattr(err, attr, None) == 429:
            return True
    return bool(RATE_LIMIT_PATTERN.search(f"{type(err).__name__} {err}"))


def estimate_tokens(text: str) -> int:
    return max(1, len(text) // 4) if text else 0
