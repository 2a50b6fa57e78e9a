from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from jsonschema import validate

from src.session import PROJECT_TYPES
from src.stages import Stage
from src.utils.io import load_schema, read_text


@dataclass(frozen=True)
class StackConfig:
    """Read-only description of the target stack.

    ``prompts`` maps a stage name to an override template; ``blueprints`` is
    opaque hint data that is folded into prompts verbatim.
    """

    id: str
    name: str
    framework: str
    build_tool: str
    styling: str
    language: str
    project_types: Tuple[str, ...] = PROJECT_TYPES
    required_files: Tuple[str, ...] = ()
    optional_files: Tuple[str, ...] = ()
    section_components: Tuple[str, ...] = ()
    prompts: Mapping[str, str] = field(default_factory=dict)
    blueprints: Mapping[str, Any] = field(default_factory=dict)

    def prompt_override(self, stage: Stage) -> Optional[str]:
        return self.prompts.get(stage.value)

    def with_prompts(self, overrides: Mapping[str, str]) -> "StackConfig":
        merged = dict(self.prompts)
        merged.update(overrides)
        return _replace(self, prompts=merged)

    def descriptors(self) -> Dict[str, str]:
        return {
            "framework": self.framework,
            "buildTool": self.build_tool,
            "styling": self.styling,
            "language": self.language,
        }


def _replace(config: StackConfig, **changes: Any) -> StackConfig:
    values = {name: getattr(config, name) for name in config.__dataclass_fields__}
    values.update(changes)
    return StackConfig(**values)


REACT_VITE_TAILWIND = StackConfig(
    id="react-vite-tailwind",
    name="React + Vite + Tailwind",
    framework="react",
    build_tool="vite",
    styling="tailwind",
    language="typescript",
    required_files=(
        "package.json",
        "vite.config.ts",
        "tsconfig.json",
        "tailwind.config.js",
        "index.html",
        "src/main.tsx",
        "src/App.tsx",
        "src/index.css",
    ),
    optional_files=(
        "tsconfig.node.json",
        "postcss.config.js",
        "README.md",
    ),
    section_components=(
        "Navbar.tsx",
        "Hero.tsx",
        "Features.tsx",
        "Testimonials.tsx",
        "Contact.tsx",
        "Footer.tsx",
    ),
    blueprints={
        "HeroSection": {
            "variants": ["centered", "withCTA", "splitImage"],
            "contentHints": ["projectName", "headline", "subtext", "actionButtons"],
        },
        "FeaturesSection": {
            "variants": ["cardsGrid", "iconsWithText"],
            "contentHints": ["featureList", "icons", "titles", "descriptions"],
        },
        "CTASection": {
            "variants": ["fullWidth", "split", "minimal"],
            "contentHints": ["headline", "ctaButton", "benefitHighlight"],
        },
    },
)

STACK_CONFIGS: Dict[str, StackConfig] = {REACT_VITE_TAILWIND.id: REACT_VITE_TAILWIND}


def get_stack_config(stack_id: str) -> StackConfig:
    try:
        return STACK_CONFIGS[stack_id]
    except KeyError:
        raise ValueError(f"Stack configuration not found: {stack_id}") from None


def load_stack_config(path: Path) -> StackConfig:
    """Load a stack file (YAML or JSON), optionally extending a built-in stack."""
    payload = yaml.safe_load(read_text(path)) or {}
    validate(instance=payload, schema=load_schema("stack_config.schema.json"))
    for stage_name in payload.get("prompts", {}):
        Stage.parse(stage_name)

    base_id = payload.pop("extends", None)
    values: Dict[str, Any] = {}
    if base_id:
        base = get_stack_config(base_id)
        values = {name: getattr(base, name) for name in base.__dataclass_fields__}

    for key, value in payload.items():
        values[key] = tuple(value) if isinstance(value, list) else value

    missing = [
        name
        for name in ("id", "name", "framework", "build_tool", "styling", "language")
        if name not in values
    ]
    if missing:
        raise ValueError(f"Stack configuration {path} missing keys: {', '.join(missing)}")
    return StackConfig(**values)


def load_prompt_overrides(prompts_dir: Path) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    if not prompts_dir.is_dir():
        return overrides
    for prompt_path in sorted(prompts_dir.glob("*.md")):
        stage = Stage.parse(prompt_path.stem)
        overrides[stage.value] = read_text(prompt_path)
    return overrides


def list_stack_ids() -> List[str]:
    return sorted(STACK_CONFIGS)
