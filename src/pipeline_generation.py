from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from jsonschema import ValidationError, validate

from src.adapters.llm_base import InvokeFn, LLMAdapter
from src.adapters.mock_adapter import MockAdapter
from src.errors import InvocationError, UnparsableResponse
from src.gates.extractors import extract_artifacts, normalize_content, normalize_path, rejection_reason
from src.gates.parsers import extract_json_with_trace
from src.gates.validation import ValidationPipeline, ValidationReport
from src.invoker import ResilientInvoker, SleepFn
from src.prompt_composer import PromptComposer, PromptContext
from src.session import PROJECT_TYPES, Session, detect_project_type
from src.stack_config import REACT_VITE_TAILWIND, StackConfig
from src.stages import DEFAULT_TOKEN_BUDGETS, Stage
from src.utils.io import load_schema

logger = logging.getLogger(__name__)

_STAGE_SCHEMAS = {
    Stage.ANALYZE: "analysis.schema.json",
    Stage.PLAN: "plan.schema.json",
    Stage.VALIDATE: "review.schema.json",
}


class PipelineState(str, Enum):
    ANALYZING = "Analyzing"
    PLANNING = "Planning"
    GENERATING_CORE = "GeneratingCore"
    GENERATING_COMPONENTS = "GeneratingComponents"
    GENERATING_INTEGRATION = "GeneratingIntegration"
    COMPOSING = "Composing"
    VALIDATING = "Validating"
    IMPROVING = "Improving"
    DONE = "Done"
    FAILED = "Failed"


@dataclass(frozen=True)
class Step:
    state: PipelineState
    stage: Stage
    estimated_seconds: int
    message: str


STEPS: Tuple[Step, ...] = (
    Step(PipelineState.ANALYZING, Stage.ANALYZE, 10, "Analyzing requirements"),
    Step(PipelineState.PLANNING, Stage.PLAN, 10, "Planning project structure"),
    Step(PipelineState.GENERATING_CORE, Stage.GENERATE_CORE, 25, "Generating core files"),
    Step(PipelineState.GENERATING_COMPONENTS, Stage.GENERATE_COMPONENTS, 30, "Generating components"),
    Step(PipelineState.GENERATING_INTEGRATION, Stage.GENERATE_INTEGRATION, 20, "Generating integration layer"),
    Step(PipelineState.COMPOSING, Stage.COMPOSE, 20, "Composing application"),
    Step(PipelineState.VALIDATING, Stage.VALIDATE, 10, "Validating project"),
    Step(PipelineState.IMPROVING, Stage.IMPROVE, 15, "Improving project"),
)

TOTAL_ESTIMATED_SECONDS = sum(step.estimated_seconds for step in STEPS)


@dataclass(frozen=True)
class ProgressEvent:
    state: PipelineState
    percentage: int
    message: str


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class GenerationResult:
    success: bool
    session_id: str
    files: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    total_time_seconds: float = 0.0
    valid: bool = False
    tokens_used: int = 0
    error: Optional[str] = None
    report: Optional[ValidationReport] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {
                "success": False,
                "error": self.error,
                "sessionId": self.session_id,
                "errors": list(self.errors),
            }
        return {
            "success": True,
            "files": dict(self.files),
            "sessionId": self.session_id,
            "totalTimeSeconds": round(self.total_time_seconds, 3),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "valid": self.valid,
            "tokensUsed": self.tokens_used,
        }


def create_adapter(mode: str, provider: str = "openai", scenario: str = "default") -> LLMAdapter:
    if mode == "mock":
        return MockAdapter(scenario=scenario)
    if provider == "gemini":
        from src.adapters.gemini_adapter import GeminiAdapter

        return GeminiAdapter()
    from src.adapters.openai_adapter import OpenAIAdapter

    return OpenAIAdapter()


def resolve_token_budgets(overrides: Optional[Mapping[Union[Stage, str], int]] = None) -> Dict[Stage, int]:
    budgets = dict(DEFAULT_TOKEN_BUDGETS)
    for stage, budget in (overrides or {}).items():
        budgets[Stage.parse(stage)] = int(budget)
    forced = os.getenv("ORCH_MAX_OUTPUT_TOKENS")
    if forced:
        budgets = {stage: int(forced) for stage in budgets}
    return budgets


def _feature_map(features: Union[Mapping[str, Any], Iterable[str], None]) -> Dict[str, bool]:
    if features is None:
        return {}
    if isinstance(features, Mapping):
        return {str(name): bool(enabled) for name, enabled in features.items()}
    return {str(name): True for name in features}


def _issue_text(issue: Any) -> str:
    if isinstance(issue, Mapping):
        message = str(issue.get("message", ""))
        return f"{issue['file']}: {message}" if issue.get("file") else message
    return str(issue)


class GenerationPipeline:
    """Runs the staged generation of one project on an owned session."""

    def __init__(
        self,
        stack: StackConfig = REACT_VITE_TAILWIND,
        invoke_fn: Optional[InvokeFn] = None,
        *,
        session: Optional[Session] = None,
        on_progress: Optional[ProgressCallback] = None,
        token_budgets: Optional[Mapping[Union[Stage, str], int]] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep: SleepFn = asyncio.sleep,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.stack = stack
        self.session = session or Session()
        self.composer = PromptComposer(stack)
        self.validation = ValidationPipeline(stack)
        self.invoker = ResilientInvoker(
            self.session,
            invoke_fn,
            max_retries=max_retries,
            base_delay=base_delay,
            sleep=sleep,
            cancel_event=cancel_event,
        )
        self.token_budgets = resolve_token_budgets(token_budgets)
        self.on_progress = on_progress
        self.state: Optional[PipelineState] = None
        self.progress_events: List[ProgressEvent] = []
        self.last_report: Optional[ValidationReport] = None
        self._project_name = ""
        self._user_prompt = ""

    async def generate(
        self,
        project_name: str,
        user_prompt: str,
        *,
        enabled_features: Union[Mapping[str, Any], Iterable[str], None] = None,
        timeout: Optional[float] = None,
    ) -> GenerationResult:
        started = time.monotonic()
        self.session.reset()
        self.session.features = _feature_map(enabled_features)
        self.session.total_stages = len(STEPS)
        self.progress_events = []
        self.last_report = None
        self._project_name = project_name
        self._user_prompt = user_prompt
        logger.info("[pipeline] session=%s project=%s", self.session.session_id, project_name)

        try:
            if timeout is None:
                await self._run()
            else:
                await asyncio.wait_for(self._run(), timeout)
        except asyncio.TimeoutError:
            return self._fail(f"Generation timed out after {timeout}s", started, record=True)
        except InvocationError as exc:
            return self._fail(str(exc), started, record=False)
        except Exception as exc:
            return self._fail(str(exc) or type(exc).__name__, started, record=True)

        elapsed = time.monotonic() - started
        logger.info(
            "[pipeline] done files=%d tokens=%d valid=%s elapsed=%.2fs",
            len(self.session.files),
            self.session.total_tokens,
            self.last_report.passed if self.last_report else False,
            elapsed,
        )
        return GenerationResult(
            success=True,
            session_id=self.session.session_id,
            files=dict(self.session.files),
            errors=self.session.all_errors(),
            warnings=self.session.all_warnings(),
            total_time_seconds=elapsed,
            valid=self.last_report.passed if self.last_report else False,
            tokens_used=self.session.total_tokens,
            report=self.last_report,
        )

    async def generate_artifact(self, stage: Union[Stage, str], name: str, path: str) -> Dict[str, str]:
        """Generate a single page or component on top of the current session."""
        stage = Stage.parse(stage)
        if stage not in (Stage.PAGE, Stage.COMPONENT):
            raise ValueError(f"Single artifact generation supports page or component, got {stage.value}")
        return await self._run_artifact_stage(stage, name=name, path=path)

    async def edit_file(self, path: str, request: str, content: Optional[str] = None) -> str:
        """Apply a change request to one file and merge the updated content into the session."""
        path = normalize_path(path)
        current = self.session.files.get(path) if content is None else content
        if current is None:
            raise ValueError(f"No file to edit at {path}")
        context = self._context(path=path, edit_request=request, current_content=current)
        raw_text = await self._ask(Stage.EDIT, context)
        updated = normalize_content(raw_text, path)
        reason = rejection_reason(path, updated)
        if reason:
            raise UnparsableResponse(f"edit of {path} rejected: {reason}", raw_text)
        self.session.merge_files({path: updated})
        logger.info("[pipeline] edited %s (%d chars)", path, len(updated))
        return updated

    async def _run(self) -> None:
        handlers = {
            Stage.ANALYZE: self._analyze,
            Stage.PLAN: self._plan,
            Stage.VALIDATE: self._validate,
            Stage.IMPROVE: self._improve,
        }
        for index, step in enumerate(STEPS):
            self._enter(step.state, step.message, index)
            handler = handlers.get(step.stage)
            if handler is not None:
                await handler()
            else:
                await self._run_artifact_stage(step.stage)
            self.session.current_stage = index + 1

        self.validation.validate_project(self.session)
        self.last_report = self.validation.last_report
        self._enter(PipelineState.DONE, "Generation complete", len(STEPS))

    def _enter(self, state: PipelineState, message: str, index: int) -> None:
        self.state = state
        if state is PipelineState.DONE:
            percentage = 100
        else:
            elapsed = sum(step.estimated_seconds for step in STEPS[:index])
            percentage = min(99, int(elapsed * 100 / TOTAL_ESTIMATED_SECONDS))
        self._emit(ProgressEvent(state, percentage, message))

    def _emit(self, event: ProgressEvent) -> None:
        self.progress_events.append(event)
        logger.info("[pipeline] %3d%% %s: %s", event.percentage, event.state.value, event.message)
        if self.on_progress is not None:
            self.on_progress(event)

    def _fail(self, message: str, started: float, record: bool) -> GenerationResult:
        if record:
            self.session.errors.append(message)
        logger.error("[pipeline] failed in %s: %s", self.state.value if self.state else "setup", message)
        last = self.progress_events[-1].percentage if self.progress_events else 0
        self.state = PipelineState.FAILED
        self._emit(ProgressEvent(PipelineState.FAILED, last, message))
        return GenerationResult(
            success=False,
            session_id=self.session.session_id,
            errors=self.session.all_errors(),
            warnings=self.session.all_warnings(),
            total_time_seconds=time.monotonic() - started,
            tokens_used=self.session.total_tokens,
            error=message,
        )

    def _context(self, **extra: Any) -> PromptContext:
        return PromptContext.from_session(
            self.session, self.stack, self._project_name, self._user_prompt, **extra
        )

    async def _ask(self, stage: Stage, context: PromptContext) -> str:
        prompt = self.composer.compose(stage, context)
        response = await self.invoker.invoke(
            prompt,
            self.token_budgets[stage],
            stage=stage,
            context={"projectType": self.session.project_type, "files": len(self.session.files)},
        )
        return response.raw_text

    async def _ask_json(self, stage: Stage, context: PromptContext) -> Dict[str, Any]:
        raw_text = await self._ask(stage, context)
        payload, layer = extract_json_with_trace(raw_text)
        try:
            validate(instance=payload, schema=load_schema(_STAGE_SCHEMAS[stage]))
        except ValidationError as exc:
            raise UnparsableResponse(
                f"{stage.value} response does not match the expected shape: {exc.message}",
                raw_text,
            ) from exc
        logger.debug("[pipeline] %s json parsed via %s layer", stage.value, layer)
        return payload

    async def _analyze(self) -> None:
        analysis = await self._ask_json(Stage.ANALYZE, self._context())
        self.session.analysis = analysis

        project_type = analysis.get("projectType")
        if project_type in PROJECT_TYPES:
            self.session.set_project_type(project_type)
        else:
            detected = detect_project_type(self._user_prompt)
            self.session.set_project_type(detected)
            self.session.warnings.append(
                f"Unsupported project type {project_type!r} from analysis; using {detected}"
            )

        for name, enabled in analysis.get("featureToggles", {}).items():
            self.session.features.setdefault(name, bool(enabled))

    async def _plan(self) -> None:
        self.session.plan = await self._ask_json(Stage.PLAN, self._context())

    async def _run_artifact_stage(self, stage: Stage, **extra: Any) -> Dict[str, str]:
        raw_text = await self._ask(stage, self._context(**extra))
        result = extract_artifacts(raw_text)
        if result.rejected:
            self.session.rejected_artifacts += result.rejected_count
            logger.info("[pipeline] %s rejected %d artifact(s)", stage.value, result.rejected_count)
        if not result.files:
            self.session.warnings.append(f"{stage.value} produced no files")
        overwritten = self.session.merge_files(result.files)
        if overwritten:
            logger.debug("[pipeline] %s overwrote %s", stage.value, ", ".join(overwritten))
        return result.files

    async def _validate(self) -> None:
        self.validation.validate_project(self.session)
        self.last_report = self.validation.last_report
        issues = [issue.message for issue in self.last_report.issues] if self.last_report else []
        self.session.review = await self._ask_json(Stage.VALIDATE, self._context(issues=issues))

    async def _improve(self) -> None:
        issues: List[str] = []
        if self.last_report is not None:
            issues.extend(issue.message for issue in self.last_report.issues)
        issues.extend(_issue_text(issue) for issue in self.session.review.get("issues", []))
        issues.extend(str(item) for item in self.session.review.get("recommendations", []))
        quality = self.last_report.quality if self.last_report is not None else None
        if quality is not None and not quality.passed:
            issues.extend(quality.recommendations)
        await self._run_artifact_stage(Stage.IMPROVE, issues=issues)
