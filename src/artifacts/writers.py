from __future__ import annotations

import posixpath
from pathlib import Path
from typing import Dict, List, Mapping

from src.gates.quality import QualityAssessment
from src.gates.validation import ValidationReport
from src.session import Session
from src.utils.io import write_json, write_text


def _safe_relative(path: str) -> str:
    normalized = path.replace("\\", "/")
    if normalized.startswith("/") or (len(normalized) > 1 and normalized[1] == ":"):
        raise ValueError(f"Refusing to write absolute path: {path}")
    cleaned = posixpath.normpath(normalized)
    if cleaned == ".." or cleaned.startswith("../"):
        raise ValueError(f"Refusing to write outside the output directory: {path}")
    return cleaned


def write_files(output_dir: Path, files: Mapping[str, str]) -> List[Path]:
    # every path is checked before anything touches the disk
    targets: Dict[str, str] = {_safe_relative(path): content for path, content in files.items()}
    written: List[Path] = []
    for relative, content in sorted(targets.items()):
        target = output_dir / relative
        write_text(target, content if content.endswith("\n") else content + "\n")
        written.append(target)
    return written


def write_validation_report(path: Path, report: ValidationReport, title: str = "Project Quality Report") -> None:
    status = "PASSED" if report.passed else "FAILED"
    lines: List[str] = [
        f"# {title}",
        "",
        f"- Status: **{status}**",
        f"- Files checked: {report.checked_files}",
        f"- Errors: {len(report.errors)}",
        f"- Warnings: {len(report.warnings)}",
    ]
    for heading, issues in (("Errors", report.errors), ("Warnings", report.warnings)):
        if not issues:
            continue
        lines.extend(["", f"## {heading}"])
        for issue in issues:
            location = ""
            if issue.file:
                location = f" (`{issue.file}`" + (f":{issue.line}" if issue.line else "") + ")"
            lines.append(f"- {issue.message}{location}")
    if report.quality is not None:
        lines.extend(_quality_lines(report.quality))
    write_text(path, "\n".join(lines) + "\n")


def _quality_lines(quality: QualityAssessment) -> List[str]:
    verdict = "PASSED" if quality.passed else f"BELOW {quality.minimum_score}"
    lines = ["", f"## Quality score: {quality.score}/100 ({verdict})", ""]
    lines.extend(["| Category | Score | Status |", "|----------|-------|--------|"])
    for name, category in quality.categories.items():
        status = "pass" if category.passed else "fail"
        lines.append(f"| {name} | {category.score} | {status} |")
    issues = quality.issues
    if issues:
        lines.extend(["", f"## Quality issues ({len(issues)})"])
        lines.extend(f"- {issue.severity.upper()} [{issue.category}] {issue.message}: {issue.fix}" for issue in issues)
    lines.extend(["", "## Recommendations"])
    lines.extend(f"- {text}" for text in quality.recommendations)
    return lines


def write_session_log(path: Path, session: Session) -> None:
    write_json(path, session.snapshot())
