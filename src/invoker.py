from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Mapping, Optional

from src.adapters.llm_base import InvokeFn, LLMResponse, is_rate_limit_error
from src.errors import (
    InvocationCancelled,
    NotConfigured,
    RateLimitExceeded,
    TransientInvocationFailure,
)
from src.session import Session
from src.stages import Stage

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_SECONDS = 2.0

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class RetryState:
    attempt: int
    next_delay: float

    def advance(self) -> "RetryState":
        return RetryState(attempt=self.attempt + 1, next_delay=self.next_delay * 2)


def coerce_response(result: Any) -> LLMResponse:
    if isinstance(result, LLMResponse):
        return result
    if isinstance(result, Mapping):
        return LLMResponse(
            raw_text=str(result.get("output", "")),
            tokens_used=int(result.get("tokensUsed", 0) or 0),
        )
    if isinstance(result, tuple) and len(result) == 2:
        text, tokens = result
        return LLMResponse(raw_text=str(text), tokens_used=int(tokens or 0))
    if isinstance(result, str):
        return LLMResponse(raw_text=result)
    raise TypeError(f"Unsupported invocation result: {type(result).__name__}")


class ResilientInvoker:
    """Calls the model with exponential backoff on rate limits.

    Only rate-limit signals are retried; every other failure surfaces at once
    as ``TransientInvocationFailure`` so the orchestrator can decide.
    """

    def __init__(
        self,
        session: Session,
        invoke_fn: Optional[InvokeFn] = None,
        *,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep: SleepFn = asyncio.sleep,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.session = session
        self.invoke_fn = invoke_fn
        if max_retries is None:
            max_retries = int(os.getenv("ORCH_RATE_LIMIT_MAX_RETRIES", str(DEFAULT_MAX_RETRIES)))
        if base_delay is None:
            base_delay = float(
                os.getenv("ORCH_RATE_LIMIT_BASE_DELAY_SECONDS", str(DEFAULT_BASE_DELAY_SECONDS))
            )
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.sleep = sleep
        self.cancel_event = cancel_event
        self.waits: List[float] = []

    @property
    def total_wait(self) -> float:
        return sum(self.waits)

    async def invoke(
        self,
        prompt: str,
        token_budget: int,
        stage: Stage | str = "custom",
        context: Optional[Mapping[str, Any]] = None,
    ) -> LLMResponse:
        stage_name = stage.value if isinstance(stage, Stage) else str(stage)
        if self.invoke_fn is None:
            message = "No LLM invocation function configured."
            self.session.errors.append(message)
            raise NotConfigured(message)

        state = RetryState(attempt=1, next_delay=self.base_delay)
        while True:
            self._raise_if_cancelled(stage_name)
            try:
                result = await self.invoke_fn(prompt, token_budget)
            except Exception as exc:
                if not is_rate_limit_error(exc):
                    message = f"{stage_name} invocation failed: {exc}"
                    logger.warning("[invoker] %s", message)
                    self.session.errors.append(message)
                    raise TransientInvocationFailure(message) from exc

                if state.attempt > self.max_retries:
                    message = (
                        f"{stage_name} rate limit exceeded after {state.attempt} attempts: {exc}"
                    )
                    logger.error("[invoker] %s", message)
                    self.session.errors.append(message)
                    raise RateLimitExceeded(message, state.attempt) from exc

                logger.info(
                    "[invoker] stage=%s rate limited (attempt %d/%d), sleeping %.2fs",
                    stage_name,
                    state.attempt,
                    self.max_retries + 1,
                    state.next_delay,
                )
                await self._wait(state.next_delay, stage_name)
                state = state.advance()
                continue

            response = coerce_response(result)
            self.session.record_interaction(
                stage=stage_name,
                prompt=prompt,
                response=response.raw_text,
                tokens=response.tokens_used,
                context=context,
            )
            logger.info(
                "[invoker] stage=%s attempt=%d tokens=%d",
                stage_name,
                state.attempt,
                response.tokens_used,
            )
            return response

    async def _wait(self, delay: float, stage_name: str) -> None:
        self.waits.append(delay)
        if self.cancel_event is None:
            await self.sleep(delay)
            return

        sleeper = asyncio.ensure_future(self.sleep(delay))
        watcher = asyncio.ensure_future(self.cancel_event.wait())
        try:
            await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in (sleeper, watcher) if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        self._raise_if_cancelled(stage_name)

    def _raise_if_cancelled(self, stage_name: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            message = f"{stage_name} invocation cancelled."
            self.session.errors.append(message)
            raise InvocationCancelled(message)
