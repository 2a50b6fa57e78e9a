from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Dict, List

from .llm_base import LLMAdapter, LLMResponse, estimate_tokens

_STAGE_MARKER = re.compile(r"^Stage:\s*([a-z\-]+)\s*$", re.MULTILINE)
_EDIT_TARGET = re.compile(
    r"^Change request: (?P<request>[^\n]*)\nCurrent contents of (?P<path>\S+):\n```\n(?P<content>.*?)\n```$",
    re.MULTILINE | re.DOTALL,
)
_COMMENTABLE = (".ts", ".tsx", ".js", ".jsx")

_PACKAGE_JSON = {
    "name": "mock-project",
    "version": "1.0.0",
    "private": True,
    "type": "module",
    "scripts": {
        "dev": "vite",
        "build": "tsc && vite build",
        "preview": "vite preview",
        "start": "vite preview --port 4173",
    },
    "dependencies": {
        "react": "^18.3.1",
        "react-dom": "^18.3.1",
        "zustand": "^4.5.4",
    },
    "devDependencies": {
        "@vitejs/plugin-react": "^4.3.1",
        "typescript": "^5.5.3",
        "vite": "^5.4.2",
        "tailwindcss": "^3.4.1",
        "postcss": "^8.4.35",
        "autoprefixer": "^10.4.18",
    },
}

_TSCONFIG = {
    "compilerOptions": {
        "target": "ES2020",
        "module": "ESNext",
        "jsx": "react-jsx",
        "strict": True,
        "moduleResolution": "bundler",
        "noEmit": True,
    },
    "include": ["src"],
}

_CORE_FILES = {
    "package.json": json.dumps(_PACKAGE_JSON, indent=2),
    "tsconfig.json": json.dumps(_TSCONFIG, indent=2),
    "vite.config.ts": (
        "import { defineConfig } from 'vite'\n"
        "import react from '@vitejs/plugin-react'\n\n"
        "export default defineConfig({\n  plugins: [react()],\n})"
    ),
    "tailwind.config.js": (
        "export default {\n"
        "  content: ['./index.html', './src/**/*.{ts,tsx}'],\n"
        "  theme: { extend: {} },\n"
        "  plugins: [],\n"
        "}"
    ),
    "postcss.config.js": (
        "export default {\n  plugins: {\n    tailwindcss: {},\n    autoprefixer: {},\n  },\n}"
    ),
    "index.html": (
        "<!DOCTYPE html>\n<html lang=\"en\">\n  <head>\n    <meta charset=\"UTF-8\" />\n"
        "    <title>Mock Project</title>\n  </head>\n  <body>\n    <div id=\"root\"></div>\n"
        "    <script type=\"module\" src=\"/src/main.tsx\"></script>\n  </body>\n</html>"
    ),
    "src/main.tsx": (
        "import React from 'react'\n"
        "import ReactDOM from 'react-dom/client'\n"
        "import App from './App'\n"
        "import './index.css'\n\n"
        "ReactDOM.createRoot(document.getElementById('root')!).render(<App />)"
    ),
    "src/index.css": "@tailwind base;\n@tailwind components;\n@tailwind utilities;\n\nbody { margin: 0; }",
}


def _component(name: str, tag: str = "section") -> str:
    return (
        f"export default function {name}() {{\n"
        f"  return <{tag} className=\"py-12\">{name}</{tag}>\n"
        "}"
    )


_COMPONENT_FILES = {
    f"src/components/{name}.tsx": _component(name)
    for name in ("Navbar", "Hero", "Features", "Testimonials", "Contact", "Footer")
}
_COMPONENT_FILES["src/components/LoadingSpinner.tsx"] = _component("LoadingSpinner", "div")

_INTEGRATION_FILES = {
    "src/store/index.ts": (
        "import { create } from 'zustand'\n\n"
        "export const useAppStore = create(() => ({ ready: true }))"
    ),
    "src/services/api.ts": (
        "export async function fetchJson(url: string) {\n"
        "  const response = await fetch(url)\n  return response.json()\n}"
    ),
    "src/types/index.ts": "export interface Item {\n  id: string\n  name: string\n}",
    "src/hooks/index.ts": "export const useNoop = () => undefined",
    "src/utils/index.ts": "export const cx = (...names: string[]) => names.join(' ')",
    "src/utils/validators.ts": "export const isEmail = (value: string) => value.includes('@')",
    "src/utils/helpers.ts": "export const sleep = (ms: number) => new Promise((r) => setTimeout(r, ms))",
    "src/constants/index.ts": "export const APP_NAME = 'Mock Project'",
}

_COMPOSE_FILES = {
    "src/App.tsx": (
        "import Navbar from './components/Navbar'\n"
        "import Home from './pages/Home'\n"
        "import Footer from './components/Footer'\n\n"
        "export default function App() {\n"
        "  return (\n    <>\n      <Navbar />\n      <Home />\n      <Footer />\n    </>\n  )\n}"
    ),
    "src/pages/Home.tsx": (
        "import Hero from '../components/Hero'\n"
        "import Features from '../components/Features'\n\n"
        "export default function Home() {\n"
        "  return (\n    <main>\n      <Hero />\n      <Features />\n    </main>\n  )\n}"
    ),
}

_IMPROVE_FILES = {
    "src/components/ErrorBoundary.tsx": (
        "import { Component, ReactNode } from 'react'\n\n"
        "export default class ErrorBoundary extends Component<{ children: ReactNode }> {\n"
        "  state = { failed: false }\n"
        "  static getDerivedStateFromError() {\n    return { failed: true }\n  }\n"
        "  render() {\n    return this.state.failed ? null : this.props.children\n  }\n}"
    ),
    "README.md": "# Mock Project\n\nGenerated offline by the mock adapter.\n\n    npm install\n    npm run dev",
}


def _as_line_headers(files: Dict[str, str]) -> str:
    blocks = [f"{path}:\n{content}" for path, content in files.items()]
    return "Here are the files.\n\n" + "\n\n".join(blocks) + "\n"


def _as_fenced_blocks(files: Dict[str, str]) -> str:
    blocks = []
    for path, content in files.items():
        language = path.rsplit(".", 1)[-1]
        blocks.append(f"```{language}:{path}\n{content}\n```")
    return "\n\n".join(blocks) + "\n"


def _edit_reply(prompt: str) -> str:
    match = _EDIT_TARGET.search(prompt)
    if not match:
        return ""
    content = match.group("content")
    if match.group("path").endswith(_COMMENTABLE):
        content += f"\n// {match.group('request')}"
    return f"```\n{content}\n```"


@dataclass
class MockAdapter(LLMAdapter):
    """Deterministic offline adapter; answers by the ``Stage:`` marker in the prompt."""

    scenario: str = "default"
    prompts: List[str] = field(default_factory=list)

    async def complete(self, prompt: str, max_tokens: int) -> LLMResponse:
        self.prompts.append(prompt)
        text = self._build_payload(prompt)
        return LLMResponse(raw_text=text, tokens_used=estimate_tokens(text))

    def _build_payload(self, prompt: str) -> str:
        match = _STAGE_MARKER.search(prompt)
        stage = match.group(1) if match else ""
        if stage == "analyze":
            return "Sure! Here is the analysis:\n" + json.dumps(
                {
                    "projectType": "landing",
                    "description": "Marketing landing page",
                    "pages": [{"name": "Home", "path": "/"}],
                    "components": [{"name": "Hero", "description": "Headline and CTA"}],
                    "featureToggles": {"darkMode": True, "animations": False},
                }
            )
        if stage == "plan":
            return json.dumps(
                {
                    "files": sorted(
                        list(_CORE_FILES) + list(_COMPONENT_FILES) + list(_COMPOSE_FILES)
                    ),
                    "routes": ["/"],
                }
            )
        if stage == "generate-core":
            return _as_line_headers(_CORE_FILES)
        if stage == "generate-components":
            return _as_fenced_blocks(_COMPONENT_FILES)
        if stage == "generate-integration":
            if self.scenario == "minimal":
                return "No integration files needed."
            return _as_line_headers(_INTEGRATION_FILES)
        if stage == "compose":
            return _as_fenced_blocks(_COMPOSE_FILES)
        if stage == "validate":
            return json.dumps({"score": 92, "issues": [], "recommendations": []})
        if stage == "improve":
            if self.scenario == "minimal":
                return "Nothing to improve."
            return _as_line_headers(_IMPROVE_FILES)
        if stage == "edit":
            return _edit_reply(prompt)
        return "{}"
