"""End-to-end tests of the generation pipeline on the offline adapter."""
import asyncio
import json

import pytest

from src.adapters.llm_base import LLMResponse, RateLimitSignal
from src.adapters.mock_adapter import MockAdapter
from src.errors import UnparsableResponse
from src.pipeline_generation import (
    STEPS,
    GenerationPipeline,
    PipelineState,
    resolve_token_budgets,
)
from src.stages import DEFAULT_TOKEN_BUDGETS, Stage


class FlakyMock(MockAdapter):
    """Mock adapter that rate-limits the first N calls."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    async def complete(self, prompt, max_tokens):
        if self.failures:
            self.failures -= 1
            raise RateLimitSignal("429 Too Many Requests")
        return await super().complete(prompt, max_tokens)


class ReplacingMock(MockAdapter):
    """Mock adapter with canned replies for selected stages."""

    def __init__(self, replies) -> None:
        super().__init__()
        self.replies = replies

    async def complete(self, prompt, max_tokens):
        for stage, reply in self.replies.items():
            if f"Stage: {stage}\n" in prompt:
                self.prompts.append(prompt)
                return LLMResponse(raw_text=reply, tokens_used=1)
        return await super().complete(prompt, max_tokens)


class TestFullRun:
    @pytest.mark.asyncio
    async def test_successful_run(self, stack):
        events = []
        pipeline = GenerationPipeline(stack, MockAdapter(), on_progress=events.append)

        result = await pipeline.generate("Acme", "A landing page for a coffee shop", enabled_features=["darkMode"])

        assert result.success
        assert result.valid
        assert result.errors == []
        assert set(stack.required_files) <= set(result.files)
        assert "src/components/ErrorBoundary.tsx" in result.files
        assert result.tokens_used == pipeline.session.total_tokens > 0
        assert len(pipeline.session.history) == len(STEPS)
        assert pipeline.state is PipelineState.DONE
        assert events == pipeline.progress_events

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_ends_at_100(self, stack):
        """Progress never decreases and only Done reports 100."""
        pipeline = GenerationPipeline(stack, MockAdapter())
        await pipeline.generate("Acme", "landing page")

        percentages = [event.percentage for event in pipeline.progress_events]
        assert percentages == sorted(percentages)
        assert percentages[-1] == 100
        assert pipeline.progress_events[-1].state is PipelineState.DONE
        assert all(event.percentage < 100 for event in pipeline.progress_events[:-1])
        assert [event.state for event in pipeline.progress_events[:-1]] == [step.state for step in STEPS]

    @pytest.mark.asyncio
    async def test_analysis_merges_into_session(self, stack):
        """Caller features win; analysis fills the rest."""
        pipeline = GenerationPipeline(stack, MockAdapter())
        await pipeline.generate("Acme", "landing page", enabled_features={"darkMode": False})
        assert pipeline.session.project_type == "landing"
        assert pipeline.session.features == {"darkMode": False, "animations": False}

    @pytest.mark.asyncio
    async def test_result_dict_shape(self, stack):
        pipeline = GenerationPipeline(stack, MockAdapter())
        payload = (await pipeline.generate("Acme", "landing page")).to_dict()
        assert set(payload) == {
            "success",
            "files",
            "sessionId",
            "totalTimeSeconds",
            "errors",
            "warnings",
            "valid",
            "tokensUsed",
        }
        assert payload["sessionId"] == pipeline.session.session_id
        json.dumps(payload)

    @pytest.mark.asyncio
    async def test_minimal_scenario_warns_but_passes(self, stack):
        """Empty stages and missing enterprise files only produce warnings."""
        pipeline = GenerationPipeline(stack, MockAdapter(scenario="minimal"))
        result = await pipeline.generate("Acme", "landing page")
        assert result.success
        assert result.valid
        assert "generate-integration produced no files" in result.warnings
        assert "improve produced no files" in result.warnings
        assert any("error boundary" in warning for warning in result.warnings)

    @pytest.mark.asyncio
    async def test_rate_limits_are_absorbed(self, stack, recording_sleep):
        pipeline = GenerationPipeline(
            stack, FlakyMock(failures=2), base_delay=1.5, max_retries=3, sleep=recording_sleep
        )
        result = await pipeline.generate("Acme", "landing page")
        assert result.success
        assert recording_sleep.delays == [1.5, 3.0]

    @pytest.mark.asyncio
    async def test_rerun_resets_but_keeps_history(self, stack):
        pipeline = GenerationPipeline(stack, MockAdapter())
        await pipeline.generate("Acme", "landing page")
        await pipeline.generate("Acme", "landing page")
        assert len(pipeline.session.history) == 2 * len(STEPS)
        assert pipeline.session.total_tokens == sum(record.tokens for record in pipeline.session.history[len(STEPS):])

    @pytest.mark.asyncio
    async def test_improve_prompt_carries_review_issues(self, stack):
        review = json.dumps({"score": 40, "issues": [{"file": "src/App.tsx", "message": "No routing"}]})
        adapter = ReplacingMock({"validate": review})
        pipeline = GenerationPipeline(stack, adapter)
        await pipeline.generate("Acme", "landing page")
        improve_prompt = next(prompt for prompt in adapter.prompts if "Stage: improve\n" in prompt)
        assert "- src/App.tsx: No routing" in improve_prompt
        assert "- Missing optional file: tsconfig.node.json" in improve_prompt


class TestValidationMessages:
    @pytest.mark.asyncio
    async def test_findings_fixed_by_improve_are_dropped(self, stack):
        """A required file missing at Validating but added by Improving leaves no error behind."""
        compose = "```tsx:src/pages/Home.tsx\nexport default function Home() {\n  return <main />\n}\n```\n"
        improve = "src/App.tsx:\nexport default function App() {\n  return null\n}\n"
        adapter = ReplacingMock({"compose": compose, "improve": improve})
        pipeline = GenerationPipeline(stack, adapter)

        result = await pipeline.generate("Acme", "landing page")

        improve_prompt = next(prompt for prompt in adapter.prompts if "Stage: improve\n" in prompt)
        assert "- Missing required file: src/App.tsx" in improve_prompt
        assert result.valid
        assert result.report.errors == []
        assert result.errors == []
        assert "Missing required file: src/App.tsx" not in pipeline.session.snapshot()["validation_errors"]

    @pytest.mark.asyncio
    async def test_unfixed_findings_stay(self, stack):
        compose = "```tsx:src/pages/Home.tsx\nexport default function Home() {\n  return <main />\n}\n```\n"
        pipeline = GenerationPipeline(stack, ReplacingMock({"compose": compose, "improve": "Nothing to add."}))
        result = await pipeline.generate("Acme", "landing page")
        assert result.success
        assert not result.valid
        assert result.errors == ["Missing required file: src/App.tsx"]


class TestConcurrentSessions:
    @pytest.mark.asyncio
    async def test_backoff_does_not_block_other_sessions(self, stack):
        """One session sleeping on a rate limit lets another finish on the same loop."""
        finished = []
        slow = GenerationPipeline(stack, FlakyMock(failures=1), base_delay=0.05, max_retries=2)
        fast = GenerationPipeline(stack, MockAdapter())

        async def run(label, pipeline):
            result = await pipeline.generate(label, "landing page")
            finished.append(label)
            return result

        slow_result, fast_result = await asyncio.gather(run("slow", slow), run("fast", fast))

        assert finished == ["fast", "slow"]
        assert slow_result.success and fast_result.success
        assert slow.invoker.waits == [0.05]
        assert fast.invoker.waits == []
        assert slow_result.session_id != fast_result.session_id
        assert slow.session.files is not fast.session.files
        fast.session.files["src/extra.ts"] = "export const extra = 1"
        assert "src/extra.ts" not in slow.session.files


class TestFailures:
    @pytest.mark.asyncio
    async def test_unparsable_analysis_fails(self, stack):
        adapter = ReplacingMock({"analyze": "I am not able to help with that."})
        pipeline = GenerationPipeline(stack, adapter)
        result = await pipeline.generate("Acme", "landing page")
        assert not result.success
        assert pipeline.state is PipelineState.FAILED
        assert "No JSON object found" in result.error
        assert result.errors == [result.error]
        payload = result.to_dict()
        assert set(payload) == {"success", "error", "sessionId", "errors"}
        assert len(adapter.prompts) == 1

    @pytest.mark.asyncio
    async def test_schema_mismatch_fails(self, stack):
        adapter = ReplacingMock({"plan": '{"files": "not-a-list"}'})
        result = await GenerationPipeline(stack, adapter).generate("Acme", "landing page")
        assert not result.success
        assert "plan response does not match the expected shape" in result.error

    @pytest.mark.asyncio
    async def test_unsupported_project_type_falls_back(self, stack):
        analysis = json.dumps({"projectType": "blog", "pages": [], "components": []})
        pipeline = GenerationPipeline(stack, ReplacingMock({"analyze": analysis}))
        result = await pipeline.generate("Acme", "An online shop for shoes")
        assert result.success
        assert pipeline.session.project_type == "ecommerce"
        assert any("Unsupported project type" in warning for warning in result.warnings)

    @pytest.mark.asyncio
    async def test_invocation_error_recorded_once(self, stack):
        async def broken(prompt, max_tokens):
            raise ConnectionError("connection reset")

        result = await GenerationPipeline(stack, broken).generate("Acme", "landing page")
        assert not result.success
        assert result.errors == ["analyze invocation failed: connection reset"]

    @pytest.mark.asyncio
    async def test_not_configured(self, stack):
        result = await GenerationPipeline(stack).generate("Acme", "landing page")
        assert not result.success
        assert result.error == "No LLM invocation function configured."

    @pytest.mark.asyncio
    async def test_timeout(self, stack):
        async def hang(prompt, max_tokens):
            await asyncio.sleep(3600)

        pipeline = GenerationPipeline(stack, hang)
        result = await pipeline.generate("Acme", "landing page", timeout=0.05)
        assert not result.success
        assert "timed out" in result.error
        assert pipeline.progress_events[-1].state is PipelineState.FAILED


class TestSingleArtifacts:
    @pytest.mark.asyncio
    async def test_page_generation_merges(self, stack):
        reply = "src/pages/About.tsx:\nexport default function About() { return null }\n"
        pipeline = GenerationPipeline(stack, ReplacingMock({"page": reply}))
        await pipeline.generate("Acme", "landing page")
        files = await pipeline.generate_artifact(Stage.PAGE, "About", "src/pages/About.tsx")
        assert list(files) == ["src/pages/About.tsx"]
        assert "src/pages/About.tsx" in pipeline.session.files

    @pytest.mark.asyncio
    async def test_rejects_pipeline_stages(self, stack):
        with pytest.raises(ValueError):
            await GenerationPipeline(stack, MockAdapter()).generate_artifact(Stage.PLAN, "x", "y")


class TestTokenBudgets:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ORCH_MAX_OUTPUT_TOKENS", raising=False)
        assert resolve_token_budgets() == DEFAULT_TOKEN_BUDGETS

    def test_overrides_and_env(self, monkeypatch):
        monkeypatch.delenv("ORCH_MAX_OUTPUT_TOKENS", raising=False)
        assert resolve_token_budgets({"plan": 99})[Stage.PLAN] == 99
        monkeypatch.setenv("ORCH_MAX_OUTPUT_TOKENS", "512")
        assert set(resolve_token_budgets().values()) == {512}


class TestEditFile:
    @pytest.mark.asyncio
    async def test_edit_merges_updated_content(self, stack):
        adapter = MockAdapter()
        pipeline = GenerationPipeline(stack, adapter)
        await pipeline.generate("Acme", "landing page")

        updated = await pipeline.edit_file("./src/components/Hero.tsx", "Add a call to action button")

        assert updated.startswith("export default function Hero()")
        assert updated.endswith("// Add a call to action button")
        assert "```" not in updated
        assert pipeline.session.files["src/components/Hero.tsx"] == updated
        assert "Stage: edit\n" in adapter.prompts[-1]
        assert pipeline.session.history[-1].stage == "edit"

    @pytest.mark.asyncio
    async def test_edit_with_supplied_content(self, stack):
        pipeline = GenerationPipeline(stack, MockAdapter())
        content = "export default function About() {\n  return null\n}"
        updated = await pipeline.edit_file("src/pages/About.tsx", "Add a heading", content=content)
        assert updated == content + "\n// Add a heading"
        assert pipeline.session.files == {"src/pages/About.tsx": updated}

    @pytest.mark.asyncio
    async def test_unknown_file(self, stack):
        with pytest.raises(ValueError, match="No file to edit"):
            await GenerationPipeline(stack, MockAdapter()).edit_file("src/Missing.tsx", "Anything")

    @pytest.mark.asyncio
    async def test_rejected_reply(self, stack):
        pipeline = GenerationPipeline(stack, ReplacingMock({"edit": "Sorry."}))
        with pytest.raises(UnparsableResponse, match="too short"):
            await pipeline.edit_file("src/App.tsx", "Refactor", content="export default function App() {}")
        assert pipeline.session.files == {}
