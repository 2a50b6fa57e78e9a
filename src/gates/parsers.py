from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Optional, Tuple

from json_repair import repair_json

from src.errors import UnparsableResponse

logger = logging.getLogger(__name__)

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_$][\w$\-]*)(\s*:)")
_SINGLE_QUOTED = re.compile(r"'((?:[^'\\]|\\.)*)'")


def _try_parse(text: str) -> Optional[dict]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _first_object_span(text: str) -> Optional[str]:
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            char = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : idx + 1]
        start = text.find("{", start + 1)
    return None


def _strip_leading_prose(text: str) -> Optional[str]:
    start = text.find("{")
    if start == -1:
        return None
    return text[start:]


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def quote_bare_keys(text: str) -> str:
    return _BARE_KEY.sub(r'\1"\2"\3', text)


def normalize_single_quotes(text: str) -> str:
    def _swap(match: re.Match) -> str:
        inner = match.group(1).replace("\\'", "'").replace('"', '\\"')
        return f'"{inner}"'

    return _SINGLE_QUOTED.sub(_swap, text)


REPAIRS: Tuple[Callable[[str], str], ...] = (
    remove_trailing_commas,
    quote_bare_keys,
    normalize_single_quotes,
)


def _repair_candidate(text: str) -> Optional[str]:
    return _first_object_span(text) or _strip_leading_prose(text)


def _parse_direct(text: str) -> Optional[dict]:
    return _try_parse(text.strip())


def _parse_span(text: str) -> Optional[dict]:
    span = _first_object_span(text)
    return _try_parse(span) if span is not None else None


def _parse_after_prose(text: str) -> Optional[dict]:
    stripped = _strip_leading_prose(text)
    if stripped is None:
        return None
    try:
        parsed, _ = json.JSONDecoder().raw_decode(stripped)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _parse_repaired(text: str) -> Optional[dict]:
    candidate = _repair_candidate(text)
    if candidate is None:
        return None
    # repairs accumulate; each step gets its own parse attempt
    for repair in REPAIRS:
        candidate = repair(candidate)
        parsed = _try_parse(candidate) or _parse_after_prose(candidate)
        if parsed is not None:
            return parsed
    return None


def _parse_json_repair(text: str) -> Optional[dict]:
    candidate = _repair_candidate(text)
    if candidate is None:
        return None
    return _try_parse(repair_json(candidate))


LAYERS: Tuple[Tuple[str, Callable[[str], Optional[dict]]], ...] = (
    ("direct", _parse_direct),
    ("span", _parse_span),
    ("after-prose", _parse_after_prose),
    ("repaired", _parse_repaired),
    ("json-repair", _parse_json_repair),
)


def extract_json_with_trace(raw_text: str) -> Tuple[dict, str]:
    for name, layer in LAYERS:
        parsed = layer(raw_text)
        if parsed is not None:
            if name != "direct":
                logger.debug("[extract] json recovered via %s layer", name)
            return parsed, name

    snippet = raw_text.strip().replace("\n", " ")
    snippet = (snippet[:200] + "...") if len(snippet) > 200 else snippet
    raise UnparsableResponse(f"No JSON object found in response. Snippet: {snippet}", raw_text)


def extract_json(raw_text: str) -> dict:
    parsed, _ = extract_json_with_trace(raw_text)
    return parsed


def parse_json_or_none(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None
