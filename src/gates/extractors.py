"""Recover named files from a freeform model reply.

Strategies run in a fixed order (line headers, fenced blocks, known-filename
fallback). Every candidate goes through extension correction, normalisation
and the acceptance filter; the first accepted candidate for a path wins.
"""
from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from src.gates.parsers import parse_json_or_none

logger = logging.getLogger(__name__)

EXTENSIONS = ("tsx", "ts", "jsx", "js", "html", "css", "json", "md")
MIN_ARTIFACT_LENGTH = 10

_EXT_GROUP = "|".join(EXTENSIONS)
_PATH_CHARS = r"[\w@.\-/\[\]]"

HEADER_PATTERN = re.compile(
    rf"^[ \t]*(?P<path>{_PATH_CHARS}+\.(?:{_EXT_GROUP})):[ \t]?(?P<inline>.*)$"
)
_FENCE_OPEN = re.compile(r"^[ \t]*```[ \t]*(?P<annotation>[^\s`]*)[ \t]*$")
_FENCE_CLOSE = re.compile(r"^[ \t]*```[ \t]*$")
_CODE_KEYWORDS = re.compile(r"\b(?:import|export|function|const)\b")
_HTML_MARKER = re.compile(r"<!doctype html|<html", re.IGNORECASE)

EXTENSION_CORRECTIONS = {
    "package.js": "package.json",
    "tsconfig.js": "tsconfig.json",
    "tsconfig.node.js": "tsconfig.node.json",
}

KNOWN_FILENAMES = (
    "package.json",
    "tsconfig.json",
    "tsconfig.node.json",
    "vite.config.ts",
    "tailwind.config.js",
    "postcss.config.js",
    "index.html",
    "src/main.tsx",
    "src/App.tsx",
    "src/index.css",
    "README.md",
)


@dataclass
class Candidate:
    path: str
    content: str
    strategy: str


@dataclass
class ExtractionResult:
    files: Dict[str, str] = field(default_factory=dict)
    rejected: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


def normalize_path(path: str) -> str:
    cleaned = path.strip().strip("`'\"*").replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    cleaned = cleaned.lstrip("/")
    return posixpath.normpath(cleaned) if cleaned else cleaned


def correct_extension(path: str) -> str:
    directory, name = posixpath.split(path)
    corrected = EXTENSION_CORRECTIONS.get(name)
    if corrected is None:
        return path
    return posixpath.join(directory, corrected) if directory else corrected


def normalize_content(content: str, path: str) -> str:
    text = content.replace("\r\n", "\n").replace("\r", "\n").strip()
    lines = text.split("\n")
    if lines and _is_duplicated_header(lines[0], path):
        lines = lines[1:]
    if lines and _FENCE_OPEN.match(lines[0]):
        lines = lines[1:]
    if lines and _FENCE_CLOSE.match(lines[-1]):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def _is_duplicated_header(line: str, path: str) -> bool:
    stripped = line.strip().lstrip("/#* ").rstrip(":").strip()
    return bool(stripped) and normalize_path(stripped) == path


def rejection_reason(path: str, content: str) -> Optional[str]:
    if len(content) < MIN_ARTIFACT_LENGTH:
        return "too short"
    ext = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    if ext == "json" and parse_json_or_none(content) is None:
        return "invalid json"
    if ext == "html" and not _HTML_MARKER.search(content):
        return "missing doctype or html tag"
    if ext in ("ts", "tsx", "js") and not _CODE_KEYWORDS.search(content):
        return "no import/export/function/const"
    if ext == "css" and not ("{" in content and "}" in content):
        return "no rule block"
    return None


def scan_line_headers(text: str) -> Iterator[Candidate]:
    current_path: Optional[str] = None
    buffer: List[str] = []
    for line in text.split("\n"):
        fence = _FENCE_OPEN.match(line)
        if fence and ":" in fence.group("annotation"):
            # an annotated fence starts its own artifact
            if current_path is not None:
                yield Candidate(current_path, "\n".join(buffer), "line-header")
            current_path = None
            continue
        match = HEADER_PATTERN.match(line)
        if match:
            if current_path is not None:
                yield Candidate(current_path, "\n".join(buffer), "line-header")
            current_path = match.group("path")
            inline = match.group("inline").strip()
            buffer = [inline] if inline else []
            continue
        if current_path is not None:
            buffer.append(line)
    if current_path is not None:
        yield Candidate(current_path, "\n".join(buffer), "line-header")


def scan_fenced_blocks(text: str) -> Iterator[Candidate]:
    path: Optional[str] = None
    buffer: List[str] = []
    inside = False
    for line in text.split("\n"):
        if not inside:
            match = _FENCE_OPEN.match(line)
            if match:
                inside = True
                buffer = []
                annotation = match.group("annotation")
                path = annotation.split(":", 1)[1] if ":" in annotation else None
            continue
        if _FENCE_CLOSE.match(line):
            if path:
                yield Candidate(path, "\n".join(buffer), "fenced-block")
            inside = False
            path = None
            continue
        buffer.append(line)


def scan_known_filenames(text: str, already: Iterable[str]) -> Iterator[Candidate]:
    captured = set(already)
    for name in KNOWN_FILENAMES:
        if name in captured:
            continue
        pattern = re.compile(
            rf"(?<![\w/.]){re.escape(name)}\"?:[ \t]*(?P<content>.+?)(?:\n[ \t]*\n|\Z)",
            re.DOTALL,
        )
        match = pattern.search(text)
        if not match:
            continue
        content = match.group("content")
        if any(HEADER_PATTERN.match(line) for line in content.split("\n")):
            logger.debug("[extract] %s fallback skipped: nested file header", name)
            continue
        yield Candidate(name, content, "known-filename")


def extract_artifacts(raw_text: str) -> ExtractionResult:
    text = raw_text.replace("\r\n", "\n").replace("\r", "\n")
    result = ExtractionResult()
    _accept_all(result, scan_line_headers(text))
    _accept_all(result, scan_fenced_blocks(text))
    seen = set(result.files) | {path for path, _ in result.rejected}
    _accept_all(result, scan_known_filenames(text, seen))
    if result.rejected:
        logger.info(
            "[extract] accepted=%d rejected=%d (%s)",
            len(result.files),
            result.rejected_count,
            ", ".join(f"{path}: {reason}" for path, reason in result.rejected),
        )
    return result


def _accept_all(result: ExtractionResult, candidates: Iterable[Candidate]) -> None:
    for candidate in candidates:
        path = correct_extension(normalize_path(candidate.path))
        if not path or path.startswith("../") or path == "..":
            result.rejected.append((candidate.path, "invalid path"))
            continue
        if path in result.files:
            continue
        content = normalize_content(candidate.content, path)
        reason = rejection_reason(path, content)
        if reason:
            result.rejected.append((path, reason))
            continue
        result.files[path] = content
