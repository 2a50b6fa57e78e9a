from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.gates.validation import ValidationReport


class PipelineError(Exception):
    """Base class for every failure raised by the generation pipeline."""


class InvocationError(PipelineError, RuntimeError):
    """Failure at the LLM invocation boundary."""


class NotConfigured(InvocationError):
    pass


class RateLimitExceeded(InvocationError):
    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class TransientInvocationFailure(InvocationError):
    pass


class InvocationCancelled(InvocationError):
    pass


class UnknownStage(PipelineError, ValueError):
    def __init__(self, stage: object) -> None:
        super().__init__(f"Unknown pipeline stage: {stage!r}")
        self.stage = stage


class UnparsableResponse(PipelineError, ValueError):
    def __init__(self, message: str, raw_text: str) -> None:
        super().__init__(message)
        self.raw_text = raw_text


class ValidationFailed(PipelineError):
    def __init__(self, report: "ValidationReport") -> None:
        errors = "; ".join(issue.message for issue in report.errors)
        super().__init__(f"Project validation failed: {errors or 'unknown error'}")
        self.report = report
