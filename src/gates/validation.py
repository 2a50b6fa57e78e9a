"""Structural validation of a generated artifact map.

Every check runs and reports on its own; a single error flips ``passed``.
Warnings never do.
"""
from __future__ import annotations

import json
import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from jsonschema import Draft7Validator

from src.errors import ValidationFailed
from src.gates.quality import QualityAssessment, score_project
from src.session import Session
from src.stack_config import StackConfig
from src.utils.io import load_schema

logger = logging.getLogger(__name__)

ERROR = "error"
WARNING = "warning"

_FRAMEWORK_MANIFESTS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    "react": (
        (
            "package.json",
            "vite.config.ts",
            "tsconfig.json",
            "tailwind.config.js",
            "index.html",
            "src/main.tsx",
            "src/App.tsx",
            "src/index.css",
        ),
        ("tsconfig.node.json", "postcss.config.js", "README.md"),
    ),
    "vue": (
        (
            "package.json",
            "vite.config.ts",
            "tailwind.config.js",
            "index.html",
            "src/main.ts",
            "src/App.vue",
            "src/style.css",
        ),
        ("tsconfig.json", "postcss.config.js", "README.md"),
    ),
    "svelte": (
        (
            "package.json",
            "svelte.config.js",
            "vite.config.ts",
            "tailwind.config.js",
            "src/app.html",
            "src/routes/+layout.svelte",
            "src/app.css",
        ),
        ("tsconfig.json", "postcss.config.js", "README.md"),
    ),
}

_ESSENTIAL_DEPENDENCIES = {
    "react": ("react", "react-dom"),
    "vue": ("vue",),
    "svelte": ("svelte",),
}

_BUILD_PLUGIN_MARKERS = {
    "react": "plugin-react",
    "vue": "plugin-vue",
    "svelte": "svelte",
}

# (label, exact paths, file names matched anywhere in the tree)
ENTERPRISE_CHECKLIST: Tuple[Tuple[str, Tuple[str, ...], Tuple[str, ...]], ...] = (
    ("error boundary", ("src/components/ErrorBoundary.tsx",), ("ErrorBoundary.tsx", "ErrorBoundary.jsx")),
    ("loading component", ("src/components/LoadingSpinner.tsx",), ("LoadingSpinner.tsx", "Loading.tsx")),
    ("store entry", ("src/store/index.ts",), ("store.ts",)),
    ("validators", ("src/utils/validators.ts",), ("validators.ts",)),
    ("API service", ("src/services/api.ts",), ("api.ts",)),
    ("shared types", ("src/types/index.ts",), ("types.ts",)),
    ("utils", ("src/utils/index.ts",), ("utils.ts",)),
    ("hooks", ("src/hooks/index.ts",), ("hooks.ts",)),
    ("constants", ("src/constants/index.ts",), ("constants.ts",)),
    ("helpers", ("src/utils/helpers.ts",), ("helpers.ts",)),
)

_CODE_PATTERN = re.compile(r"\bimport\b|\bexport\b|\bfunction\b|=>")
_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}


@dataclass(frozen=True)
class ValidationIssue:
    severity: str
    message: str
    file: Optional[str] = None
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"severity": self.severity, "message": self.message}
        if self.file is not None:
            payload["file"] = self.file
        if self.line is not None:
            payload["line"] = self.line
        return payload


@dataclass
class ValidationReport:
    issues: List[ValidationIssue] = field(default_factory=list)
    checked_files: int = 0
    quality: Optional[QualityAssessment] = None

    @property
    def passed(self) -> bool:
        return not self.errors

    @property
    def errors(self) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == WARNING]

    def error(self, message: str, file: Optional[str] = None, line: Optional[int] = None) -> None:
        self.issues.append(ValidationIssue(ERROR, message, file, line))

    def warn(self, message: str, file: Optional[str] = None, line: Optional[int] = None) -> None:
        self.issues.append(ValidationIssue(WARNING, message, file, line))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "checkedFiles": self.checked_files,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "quality": self.quality.to_dict() if self.quality is not None else None,
        }


@dataclass(frozen=True)
class RequiredFileManifest:
    required: Tuple[str, ...]
    optional: Tuple[str, ...] = ()


def manifest_for(stack: StackConfig) -> RequiredFileManifest:
    required, optional = _FRAMEWORK_MANIFESTS.get(stack.framework, (("package.json",), ()))
    return RequiredFileManifest(
        required=stack.required_files or required,
        optional=stack.optional_files or optional,
    )


def _file_names(files: Iterable[str]) -> set:
    return {posixpath.basename(path) for path in files}


def _load_package_json(files: Mapping[str, str]) -> Optional[dict]:
    content = files.get("package.json")
    if content is None:
        return None
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def find_unbalanced_bracket(content: str) -> Optional[int]:
    """Return the 1-based line of the first bracket mismatch, skipping strings and comments."""
    stack: List[Tuple[str, int]] = []
    line = 1
    idx = 0
    quote: Optional[str] = None
    length = len(content)
    while idx < length:
        char = content[idx]
        nxt = content[idx + 1] if idx + 1 < length else ""
        if char == "\n":
            line += 1
        if quote:
            if char == "\\":
                if nxt == "\n":
                    line += 1
                idx += 2
                continue
            if char == quote or (char == "\n" and quote != "`"):
                quote = None
            idx += 1
            continue
        if char == "/" and nxt == "/":
            end = content.find("\n", idx)
            idx = length if end == -1 else end
            continue
        if char == "/" and nxt == "*":
            end = content.find("*/", idx + 2)
            end = length if end == -1 else end + 2
            line += content.count("\n", idx, end)
            idx = end
            continue
        if char in "'\"`":
            quote = char
        elif char in _OPENERS:
            stack.append((_OPENERS[char], line))
        elif char in _CLOSERS:
            if not stack or stack.pop()[0] != char:
                return line
        idx += 1
    if stack:
        return stack[-1][1]
    return None


class ValidationPipeline:
    def __init__(self, stack: StackConfig) -> None:
        self.stack = stack
        self.manifest = manifest_for(stack)
        self.last_report: Optional[ValidationReport] = None
        self._manifest_validator = Draft7Validator(load_schema("package_manifest.schema.json"))
        self.checks: Tuple[Tuple[str, Callable[[Mapping[str, str], ValidationReport], None]], ...] = (
            ("required-files", self.check_required_files),
            ("enterprise", self.check_enterprise_completeness),
            ("package-json", self.check_package_json),
            ("config", self.check_config_files),
            ("syntax", self.check_code_syntax),
            ("structure", self.check_structure),
            ("deployment", self.check_deployment_readiness),
        )

    def validate(self, files: Mapping[str, str]) -> ValidationReport:
        report = ValidationReport(checked_files=len(files))
        for name, check in self.checks:
            before = len(report.issues)
            check(files, report)
            logger.debug("[validate] %s: %d issue(s)", name, len(report.issues) - before)
        report.quality = score_project(
            files,
            required=self.manifest.required,
            essentials=self.essential_dependencies(),
        )
        logger.info(
            "[validate] files=%d errors=%d warnings=%d",
            len(files),
            len(report.errors),
            len(report.warnings),
        )
        self.last_report = report
        return report

    def validate_project(self, session: Session) -> bool:
        """Validate the session's files; the findings replace those of any earlier pass."""
        report = self.validate(session.files)
        session.replace_validation_messages(
            [issue.message for issue in report.errors],
            [issue.message for issue in report.warnings],
        )
        return report.passed

    def essential_dependencies(self) -> List[str]:
        essentials = list(_ESSENTIAL_DEPENDENCIES.get(self.stack.framework, ()))
        if self.stack.styling == "tailwind":
            essentials.append("tailwindcss")
        if self.stack.language == "typescript":
            essentials.append("typescript")
        return essentials

    def ensure_valid(self, files: Mapping[str, str]) -> ValidationReport:
        report = self.validate(files)
        if not report.passed:
            raise ValidationFailed(report)
        return report

    def check_required_files(self, files: Mapping[str, str], report: ValidationReport) -> None:
        for path in self.manifest.required:
            if path not in files:
                report.error(f"Missing required file: {path}", file=path)
        for path in self.manifest.optional:
            if path not in files:
                report.warn(f"Missing optional file: {path}", file=path)

    def check_enterprise_completeness(self, files: Mapping[str, str], report: ValidationReport) -> None:
        names = _file_names(files)
        for label, paths, file_names in ENTERPRISE_CHECKLIST:
            if any(path in files for path in paths) or names.intersection(file_names):
                continue
            report.warn(f"Missing {label} ({paths[0]})", file=paths[0])
        for component in self.stack.section_components:
            path = f"src/components/{component}"
            if path in files or component in names:
                continue
            report.warn(f"Missing section component: {component}", file=path)

    def check_package_json(self, files: Mapping[str, str], report: ValidationReport) -> None:
        if "package.json" not in files:
            return
        manifest = _load_package_json(files)
        if manifest is None:
            report.error("package.json is not a valid JSON object", file="package.json")
            return
        for error in sorted(self._manifest_validator.iter_errors(manifest), key=str):
            report.error(f"package.json: {error.message}", file="package.json")

        declared = {}
        for key in ("dependencies", "devDependencies"):
            section = manifest.get(key)
            if isinstance(section, dict):
                declared.update(section)
        for package in self.essential_dependencies():
            if package not in declared:
                report.warn(f"package.json missing essential dependency: {package}", file="package.json")

    def check_config_files(self, files: Mapping[str, str], report: ValidationReport) -> None:
        plugin = _BUILD_PLUGIN_MARKERS.get(self.stack.framework, "")
        for path in ("vite.config.ts", "vite.config.js"):
            content = files.get(path)
            if content is None:
                continue
            if "defineConfig" not in content or plugin not in content:
                report.error(f"Invalid configuration in {path}: expected defineConfig with {plugin}", file=path)

        for path in ("tailwind.config.js", "tailwind.config.ts"):
            content = files.get(path)
            if content is None:
                continue
            if "content" not in content or "theme" not in content:
                report.error(f"Invalid configuration in {path}: expected content and theme", file=path)

        content = files.get("tsconfig.json")
        if content is not None:
            try:
                tsconfig = json.loads(content)
            except json.JSONDecodeError as exc:
                report.error(f"Syntax error in tsconfig.json: {exc.msg}", file="tsconfig.json", line=exc.lineno)
                return
            if not isinstance(tsconfig, dict) or "compilerOptions" not in tsconfig or "include" not in tsconfig:
                report.error(
                    "Invalid configuration in tsconfig.json: expected compilerOptions and include",
                    file="tsconfig.json",
                )

    def check_code_syntax(self, files: Mapping[str, str], report: ValidationReport) -> None:
        for path in sorted(files):
            if not path.endswith((".ts", ".tsx")):
                continue
            content = files[path]
            if not _CODE_PATTERN.search(content):
                report.warn(f"{path} has no import, export, function or arrow function", file=path)
            line = find_unbalanced_bracket(content)
            if line is not None:
                report.warn(f"Unbalanced brackets in {path} near line {line}", file=path, line=line)

    def check_structure(self, files: Mapping[str, str], report: ValidationReport) -> None:
        segments = {segment for path in files for segment in path.split("/")[:-1]}
        if "components" not in segments:
            report.warn("Project has no components/ directory")
        if "pages" not in segments and "routes" not in segments:
            report.warn("Project has no pages/ or routes/ directory")

    def check_deployment_readiness(self, files: Mapping[str, str], report: ValidationReport) -> None:
        manifest = _load_package_json(files)
        if manifest is None:
            return
        scripts = manifest.get("scripts")
        scripts = scripts if isinstance(scripts, dict) else {}
        if "build" not in scripts:
            report.error("package.json missing build script", file="package.json")
        if "start" not in scripts:
            report.warn("package.json missing start script", file="package.json")
