from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

SCHEMAS_DIR = Path(__file__).resolve().parents[1] / "schemas"


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def load_schema(name: str) -> Dict:
    return json.loads(read_text(SCHEMAS_DIR / name))
