"""Shared fixtures for the orchestrator test suite."""
from __future__ import annotations

import json
from typing import Dict, List

import pytest

from src.adapters.llm_base import LLMResponse
from src.session import Session
from src.stack_config import REACT_VITE_TAILWIND

PACKAGE_JSON = {
    "name": "demo",
    "version": "1.0.0",
    "scripts": {"dev": "vite", "build": "vite build", "start": "vite preview"},
    "dependencies": {"react": "^18.3.1", "react-dom": "^18.3.1"},
    "devDependencies": {"typescript": "^5.5.3", "tailwindcss": "^3.4.1", "vite": "^5.4.2"},
}


class RecordingSleep:
    """Async stand-in for asyncio.sleep that only records delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedInvoke:
    """Async invocation fake returning (or raising) scripted outcomes in order."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls: List[tuple] = []

    async def __call__(self, prompt: str, max_tokens: int):
        self.calls.append((prompt, max_tokens))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def session() -> Session:
    return Session()


@pytest.fixture
def stack():
    return REACT_VITE_TAILWIND


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def required_files() -> Dict[str, str]:
    """A minimal artifact map that satisfies every fatal check."""
    return {
        "package.json": json.dumps(PACKAGE_JSON, indent=2),
        "vite.config.ts": (
            "import { defineConfig } from 'vite'\n"
            "import react from '@vitejs/plugin-react'\n"
            "export default defineConfig({ plugins: [react()] })"
        ),
        "tsconfig.json": json.dumps({"compilerOptions": {"target": "ES2020"}, "include": ["src"]}),
        "tailwind.config.js": "export default { content: ['./src/**/*.tsx'], theme: { extend: {} } }",
        "index.html": "<!DOCTYPE html><html><body><div id=\"root\"></div></body></html>",
        "src/main.tsx": "import App from './App'\nconsole.log(App)",
        "src/App.tsx": "export default function App() {\n  return null\n}",
        "src/index.css": "body { margin: 0; }",
    }


@pytest.fixture
def ok_response():
    return LLMResponse(raw_text='{"ok": true}', tokens_used=5)


@pytest.fixture
def scripted_invoke():
    return ScriptedInvoke
