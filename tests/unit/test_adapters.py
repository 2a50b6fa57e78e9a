"""Tests for the adapter helpers and the offline adapter."""
import pytest

from src.adapters.llm_base import RateLimitSignal, estimate_tokens, is_rate_limit_error
from src.adapters.mock_adapter import MockAdapter
from src.gates.extractors import extract_artifacts
from src.gates.parsers import extract_json


class TestRateLimitDetection:
    @pytest.mark.parametrize(
        "error",
        [
            RateLimitSignal("slow down"),
            RuntimeError("Error code: 429"),
            RuntimeError("Rate limit reached for gpt-4o-mini"),
            RuntimeError("RESOURCE_EXHAUSTED"),
            RuntimeError("too many requests"),
        ],
    )
    def test_detected(self, error):
        assert is_rate_limit_error(error)

    def test_other_errors(self):
        assert not is_rate_limit_error(RuntimeError("invalid api key"))

    @pytest.mark.parametrize(
        "error",
        [
            ConnectionError("connect to 127.0.0.1:54290 refused"),
            RuntimeError("payload of 14293 bytes exceeds limit"),
            RuntimeError("request id 4291a7 failed"),
        ],
    )
    def test_embedded_429_digits_are_not_rate_limits(self, error):
        """Only a standalone 429 counts as a rate-limit status."""
        assert not is_rate_limit_error(error)

    def test_status_code_attribute(self):
        error = RuntimeError("provider said no")
        error.status_code = 429
        assert is_rate_limit_error(error)

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd" * 10) == 10


class TestMockAdapter:
    @pytest.mark.asyncio
    async def test_structured_stage(self):
        adapter = MockAdapter()
        response = await adapter("Stage: analyze\nDescribe it", 100)
        assert extract_json(response.raw_text)["projectType"] == "landing"
        assert response.tokens_used > 0
        assert adapter.prompts == ["Stage: analyze\nDescribe it"]

    @pytest.mark.asyncio
    async def test_artifact_stage(self):
        response = await MockAdapter().complete("Stage: generate-components\n", 100)
        files = extract_artifacts(response.raw_text).files
        assert "src/components/Hero.tsx" in files

    @pytest.mark.asyncio
    async def test_unknown_prompt(self):
        response = await MockAdapter().complete("hello", 100)
        assert response.raw_text == "{}"
