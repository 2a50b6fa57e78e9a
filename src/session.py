from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from src.utils.time import utc_isoformat

PROJECT_TYPES = (
    "landing",
    "dashboard",
    "crm",
    "ecommerce",
    "portfolio",
    "marketing",
    "saas",
    "budget-tracker",
    "task-manager",
    "analytics-dashboard",
)

DEFAULT_PROJECT_TYPE = "landing"

_TYPE_KEYWORDS = (
    ("ecommerce", ("ecommerce", "e-commerce", "shop", "store", "cart")),
    ("analytics-dashboard", ("analytics",)),
    ("dashboard", ("dashboard", "admin")),
    ("crm", ("crm", "customer relationship", "leads")),
    ("budget-tracker", ("budget", "expense")),
    ("task-manager", ("task", "todo", "to-do", "kanban")),
    ("portfolio", ("portfolio", "personal site", "resume")),
    ("saas", ("saas", "subscription", "software")),
    ("marketing", ("marketing", "campaign")),
)


def detect_project_type(text: str) -> str:
    lowered = text.lower()
    for project_type, keywords in _TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return project_type
    return DEFAULT_PROJECT_TYPE


@dataclass(frozen=True)
class InteractionRecord:
    timestamp: str
    stage: str
    prompt: str
    response: str
    tokens: int
    context: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "context", MappingProxyType(dict(self.context)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "stage": self.stage,
            "prompt": self.prompt,
            "response": self.response,
            "tokens": self.tokens,
            "context": dict(self.context),
        }


@dataclass
class Session:
    """State of one generation run.

    Owned by a single pipeline instance. ``reset`` starts a new run on the same
    session and keeps the interaction history for continuity.
    """

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    history: List[InteractionRecord] = field(default_factory=list)
    current_stage: int = 0
    total_stages: int = 0
    project_type: str = DEFAULT_PROJECT_TYPE
    features: Dict[str, bool] = field(default_factory=dict)
    files: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)
    total_tokens: int = 0
    analysis: Dict[str, Any] = field(default_factory=dict)
    plan: Dict[str, Any] = field(default_factory=dict)
    review: Dict[str, Any] = field(default_factory=dict)
    rejected_artifacts: int = 0

    def record_interaction(
        self,
        stage: str,
        prompt: str,
        response: str,
        tokens: int,
        context: Optional[Mapping[str, Any]] = None,
    ) -> InteractionRecord:
        record = InteractionRecord(
            timestamp=utc_isoformat(),
            stage=stage,
            prompt=prompt,
            response=response,
            tokens=tokens,
            context=context or {},
        )
        self.history.append(record)
        self.total_tokens += tokens
        return record

    def merge_files(self, files: Mapping[str, str]) -> List[str]:
        """Merge a stage's artifacts on top of earlier ones; returns overwritten paths."""
        overwritten = [path for path in files if path in self.files]
        self.files.update(files)
        return overwritten

    def set_project_type(self, value: str) -> None:
        if value not in PROJECT_TYPES:
            raise ValueError(f"Unsupported project type: {value}")
        self.project_type = value

    def enabled_features(self) -> List[str]:
        return [name for name, enabled in self.features.items() if enabled]

    def replace_validation_messages(self, errors: List[str], warnings: List[str]) -> None:
        """Swap in the latest validation findings; stage and invocation messages stay."""
        self.validation_errors = list(dict.fromkeys(errors))
        self.validation_warnings = list(dict.fromkeys(warnings))

    def all_errors(self) -> List[str]:
        return self.errors + self.validation_errors

    def all_warnings(self) -> List[str]:
        return self.warnings + self.validation_warnings

    def reset(self) -> None:
        self.current_stage = 0
        self.files = {}
        self.errors = []
        self.warnings = []
        self.validation_errors = []
        self.validation_warnings = []
        self.total_tokens = 0
        self.analysis = {}
        self.plan = {}
        self.review = {}
        self.rejected_artifacts = 0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "project_type": self.project_type,
            "current_stage": self.current_stage,
            "total_stages": self.total_stages,
            "features": dict(self.features),
            "files": sorted(self.files),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "validation_errors": list(self.validation_errors),
            "validation_warnings": list(self.validation_warnings),
            "total_tokens": self.total_tokens,
            "rejected_artifacts": self.rejected_artifacts,
            "analysis": self.analysis,
            "plan": self.plan,
            "review": self.review,
            "history": [record.to_dict() for record in self.history],
        }
