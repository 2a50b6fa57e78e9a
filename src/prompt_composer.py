from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from src.session import DEFAULT_PROJECT_TYPE, PROJECT_TYPES, Session
from src.stack_config import StackConfig
from src.stages import Stage

HISTORY_LIMIT = 8

_PLACEHOLDER = re.compile(r"\{[A-Za-z]+\}")

_JSON_INSTRUCTIONS = (
    "Respond with a single JSON object and nothing else. No markdown fences, no commentary."
)
_FILE_INSTRUCTIONS = (
    "Output every file as a header line `<path>:` followed by the complete file content.\n"
    "Use forward-slash paths relative to the project root. Do not wrap the whole answer in prose."
)
_EDIT_INSTRUCTIONS = (
    "Return only the complete updated file content. No explanations, no markdown fences, "
    "no file path comments."
)

_HEADER = """Stage: {stage}
You are a senior {framework} engineer building a {projectType} project named "{projectName}".
Stack: {framework} + {buildTool} + {styling} ({language}).
Request: {userPrompt}
Enabled features: {enabledFeatures}
"""

GENERIC_TEMPLATES: Dict[Stage, str] = {
    Stage.ANALYZE: """Analyse the request and decide what the project needs.
Return JSON of this shape:
{"projectType": "<one of {projectTypes}>", "description": "...",
 "pages": [{"name": "...", "path": "/...", "description": "..."}],
 "components": [{"name": "...", "description": "..."}],
 "featureToggles": {"<feature>": true}}
""",
    Stage.PLAN: """Plan the file layout for the project.
Analysis pages: {pages}
Analysis components: {components}
Required files: {requiredFiles}
Return JSON of this shape:
{"files": [{"path": "...", "purpose": "..."}], "dependencies": {"<package>": "<version>"},
 "routes": ["/..."], "notes": "..."}
""",
    Stage.GENERATE_CORE: """Generate the core configuration and entry files.
Required files: {requiredFiles}
Plan: {plan}
package.json must include dev, build and start scripts.
""",
    Stage.GENERATE_COMPONENTS: """Generate the reusable UI components and section components.
Components: {components}
Blueprint hints: {blueprints}
Include a loading indicator component.
Existing files: {existingFiles}
""",
    Stage.GENERATE_INTEGRATION: """Generate the integration layer: state store, API service, shared types,
hooks, utils, validators, helpers and constants.
Plan: {plan}
Existing files: {existingFiles}
""",
    Stage.COMPOSE: """Compose the application shell and pages from the existing components.
Pages: {pages}
Existing files: {existingFiles}
""",
    Stage.VALIDATE: """Review the generated project for correctness and completeness.
Existing files: {existingFiles}
Known issues: {issues}
Return JSON of this shape:
{"score": 0-100, "issues": [{"file": "...", "message": "...", "severity": "error|warning"}],
 "recommendations": ["..."]}
""",
    Stage.IMPROVE: """Fix the reported issues and add whatever the project is missing
(error boundary, README, missing sections). Only output files that change or are new.
Issues:
{issues}
Existing files: {existingFiles}
""",
    Stage.PAGE: """Generate the page "{name}" at {path}.
Existing files: {existingFiles}
""",
    Stage.COMPONENT: """Generate the component "{name}" at {path}.
Blueprint hints: {blueprints}
""",
    Stage.EDIT: """Apply a change request to {path}. Make minimal, focused changes and keep the
existing structure and style.
Change request: {editRequest}
Current contents of {path}:
```
{currentContent}
```
""",
}

_HISTORY_FOOTER = "Previous steps:\n{history}\n"


@dataclass
class PromptContext:
    project_name: str
    description: str
    project_type: str = DEFAULT_PROJECT_TYPE
    enabled_features: List[str] = field(default_factory=list)
    framework: str = ""
    build_tool: str = ""
    styling: str = ""
    language: str = ""
    pages: List[Any] = field(default_factory=list)
    components: List[Any] = field(default_factory=list)
    plan: Mapping[str, Any] = field(default_factory=dict)
    existing_files: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    history: List[str] = field(default_factory=list)
    blueprints: Mapping[str, Any] = field(default_factory=dict)
    required_files: List[str] = field(default_factory=list)
    project_types: Sequence[str] = PROJECT_TYPES
    name: str = ""
    path: str = ""
    edit_request: str = ""
    current_content: str = ""

    @classmethod
    def from_session(
        cls,
        session: Session,
        stack: StackConfig,
        project_name: str,
        description: str,
        *,
        issues: Optional[Sequence[str]] = None,
        name: str = "",
        path: str = "",
        edit_request: str = "",
        current_content: str = "",
    ) -> "PromptContext":
        descriptors = stack.descriptors()
        history = [
            f"{record.stage}: {record.tokens} tokens"
            for record in session.history[-HISTORY_LIMIT:]
        ]
        return cls(
            project_name=project_name,
            description=description,
            project_type=session.project_type,
            enabled_features=session.enabled_features(),
            framework=descriptors["framework"],
            build_tool=descriptors["buildTool"],
            styling=descriptors["styling"],
            language=descriptors["language"],
            pages=list(session.analysis.get("pages", [])),
            components=list(session.analysis.get("components", [])),
            plan=dict(session.plan),
            existing_files=sorted(session.files),
            issues=list(issues or []),
            history=history,
            blueprints=dict(stack.blueprints),
            required_files=list(stack.required_files),
            project_types=stack.project_types,
            name=name,
            path=path,
            edit_request=edit_request,
            current_content=current_content,
        )

    def placeholders(self) -> Dict[str, str]:
        return {
            "{projectName}": self.project_name,
            "{description}": self.description,
            "{userPrompt}": self.description,
            "{projectType}": self.project_type,
            "{projectTypes}": ", ".join(self.project_types) or self.project_type,
            "{enabledFeatures}": ", ".join(self.enabled_features) or "none",
            "{framework}": self.framework,
            "{buildTool}": self.build_tool,
            "{styling}": self.styling,
            "{language}": self.language,
            "{pages}": _names(self.pages),
            "{components}": _names(self.components),
            "{plan}": json.dumps(self.plan) if self.plan else "none",
            "{existingFiles}": ", ".join(self.existing_files) or "none",
            "{issues}": "\n".join(f"- {issue}" for issue in self.issues) or "none",
            "{history}": "\n".join(self.history) or "none",
            "{blueprints}": json.dumps(self.blueprints) if self.blueprints else "none",
            "{requiredFiles}": ", ".join(self.required_files) or "none",
            "{name}": self.name,
            "{path}": self.path,
            "{editRequest}": self.edit_request,
            "{currentContent}": self.current_content,
        }


def _names(items: Sequence[Any]) -> str:
    names = []
    for item in items:
        if isinstance(item, Mapping):
            names.append(str(item.get("name", "")))
        else:
            names.append(str(item))
    return ", ".join(name for name in names if name) or "none"


def render(template: str, values: Mapping[str, str]) -> str:
    return _PLACEHOLDER.sub(lambda match: values.get(match.group(0), match.group(0)), template)


class PromptComposer:
    """Builds the prompt text for one stage; never touches the session."""

    def __init__(self, stack: StackConfig) -> None:
        self.stack = stack

    def compose(self, stage: Stage | str, context: PromptContext) -> str:
        stage = Stage.parse(stage)
        values = context.placeholders()
        override = self.stack.prompt_override(stage)
        if override is not None:
            return render(override, values)

        template = _HEADER.replace("{stage}", stage.value) + "\n" + GENERIC_TEMPLATES[stage]
        if context.history:
            template += "\n" + _HISTORY_FOOTER
        if stage is Stage.EDIT:
            instructions = _EDIT_INSTRUCTIONS
        elif stage.expects_json:
            instructions = _JSON_INSTRUCTIONS
        else:
            instructions = _FILE_INSTRUCTIONS
        return render(template, values) + "\n" + instructions + "\n"
