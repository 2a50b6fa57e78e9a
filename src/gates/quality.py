"""Weighted quality scoring of a generated project.

Six categories are scored 0-100 from their checks, each check weighted by
severity (error 3, warning 2, info 1). The overall score averages the
categories by ``CATEGORY_WEIGHTS``; a project reaches the quality bar at
``MINIMUM_SCORE``. Scoring is advisory and never changes structural validity.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

MINIMUM_SCORE = 90
MAX_DEPENDENCIES = 20
MIN_CONTENT_ITEMS = 5

SEVERITY_WEIGHTS = {"error": 3, "warning": 2, "info": 1}

CATEGORY_WEIGHTS = {
    "structure": 20,
    "code": 25,
    "performance": 15,
    "accessibility": 15,
    "design": 10,
    "content": 15,
}

CATEGORY_THRESHOLDS = {
    "structure": 80,
    "code": 70,
    "performance": 60,
    "accessibility": 70,
    "design": 50,
    "content": 60,
}

# (category, score below which the advice applies, advice)
RECOMMENDATIONS: Tuple[Tuple[str, int, str], ...] = (
    ("structure", 90, "Improve project structure: add the missing configuration files and organise components"),
    ("code", 80, "Enhance code quality: add error handling, loading states and proper TypeScript types"),
    ("performance", 70, "Optimise performance: add code splitting, lazy-loaded images and memoised components"),
    ("accessibility", 80, "Improve accessibility: add ARIA labels, semantic HTML and keyboard navigation"),
    ("design", 60, "Enhance design: add responsive classes, transitions and consistent spacing"),
    ("content", 70, "Improve content: replace placeholder text with realistic, professional copy"),
)
ALL_CLEAR = "Project meets every quality threshold."

_COMPONENT_EXTENSIONS = (".tsx", ".jsx", ".vue", ".svelte")
_SEMANTIC_TAGS = re.compile(r"<(?:header|main|nav|section|footer)\b")
_IMG_TAG = re.compile(r"<img\b[^>]*>")
_SPACING = re.compile(r"\b(?:[pm][xytblr]?|space-[xy]|gap)-\d")
_RESPONSIVE = re.compile(r"\b(?:sm|md|lg|xl):")
_PLACEHOLDER_COPY = re.compile(r"lorem ipsum|placeholder text|sample (?:text|content)", re.IGNORECASE)
_CONTENT_ITEM = re.compile(r"\{[^}]*\bname\b[^}]*\}")
_PROFESSIONAL_TERMS = re.compile(r"\b(?:solutions?|professional|innovative|experience)\b", re.IGNORECASE)


@dataclass(frozen=True)
class QualityCheck:
    name: str
    passed: bool
    severity: str
    fix: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name, "passed": self.passed, "severity": self.severity}
        if self.fix and not self.passed:
            payload["fix"] = self.fix
        return payload


@dataclass
class CategoryScore:
    name: str
    score: int
    passed: bool
    checks: List[QualityCheck] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "passed": self.passed,
            "checks": [check.to_dict() for check in self.checks],
        }


@dataclass(frozen=True)
class QualityIssue:
    category: str
    severity: str
    message: str
    fix: str


@dataclass
class QualityAssessment:
    score: int
    categories: Dict[str, CategoryScore]
    recommendations: List[str] = field(default_factory=list)
    minimum_score: int = MINIMUM_SCORE

    @property
    def passed(self) -> bool:
        return self.score >= self.minimum_score

    @property
    def issues(self) -> List[QualityIssue]:
        found = []
        for name, category in self.categories.items():
            for check in category.checks:
                if check.passed or check.severity == "info":
                    continue
                found.append(QualityIssue(name, check.severity, check.name, check.fix or "Manual review required"))
        return found

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "passed": self.passed,
            "minimumScore": self.minimum_score,
            "categories": {name: category.to_dict() for name, category in self.categories.items()},
            "issues": [
                {"category": issue.category, "severity": issue.severity, "message": issue.message, "fix": issue.fix}
                for issue in self.issues
            ],
            "recommendations": list(self.recommendations),
        }


def _rounded_ratio(part: float, whole: float) -> int:
    return int(part * 100 / whole + 0.5)


def category_score(checks: Sequence[QualityCheck]) -> int:
    if not checks:
        return 100
    total = sum(SEVERITY_WEIGHTS[check.severity] for check in checks)
    passed = sum(SEVERITY_WEIGHTS[check.severity] for check in checks if check.passed)
    return _rounded_ratio(passed, total)


def overall_score(categories: Mapping[str, CategoryScore]) -> int:
    total = sum(CATEGORY_WEIGHTS.get(name, 0) for name in categories)
    if not total:
        return 100
    weighted = sum(category.score * CATEGORY_WEIGHTS.get(name, 0) for name, category in categories.items())
    return _rounded_ratio(weighted, total * 100)


def _contains(files: Mapping[str, str], *needles: str) -> bool:
    return any(needle in content for content in files.values() for needle in needles)


def _matches(files: Mapping[str, str], pattern: re.Pattern) -> bool:
    return any(pattern.search(content) for content in files.values())


def _dependencies(files: Mapping[str, str]) -> Optional[Dict[str, Any]]:
    try:
        manifest = json.loads(files.get("package.json", ""))
    except json.JSONDecodeError:
        return None
    return manifest if isinstance(manifest, dict) else None


def _check(name: str, passed: bool, severity: str, fix: str) -> QualityCheck:
    return QualityCheck(name=name, passed=bool(passed), severity=severity, fix=fix)


def check_structure(
    files: Mapping[str, str], required: Sequence[str] = (), essentials: Sequence[str] = ()
) -> List[QualityCheck]:
    checks = [
        _check(f"Required file: {path}", path in files, "error", f"Create {path}")
        for path in required
    ]
    checks.append(
        _check(
            "Components directory",
            any("components/" in path for path in files),
            "error",
            "Create a components/ directory with the UI components",
        )
    )
    if "package.json" in files:
        manifest = _dependencies(files)
        checks.append(_check("package.json validity", manifest is not None, "error", "Fix the JSON syntax of package.json"))
        declared: Dict[str, Any] = {}
        for key in ("dependencies", "devDependencies"):
            section = (manifest or {}).get(key)
            if isinstance(section, dict):
                declared.update(section)
        missing = [name for name in essentials if name not in declared]
        checks.append(
            _check(
                "Essential dependencies",
                not missing,
                "error",
                "Add missing dependencies: " + ", ".join(missing),
            )
        )
    return checks


def check_code(files: Mapping[str, str]) -> List[QualityCheck]:
    components = [
        path for path in files if "components/" in path and path.endswith(_COMPONENT_EXTENSIONS)
    ]
    view_modules = [
        path
        for path in files
        if path.endswith((".tsx", ".jsx")) and ("components/" in path or "pages/" in path)
    ]
    return [
        _check(
            "TypeScript usage",
            any(path.endswith((".ts", ".tsx")) for path in files),
            "warning",
            "Write the sources in TypeScript",
        ),
        _check("UI components", components, "error", "Create components under src/components/"),
        _check(
            "Module exports",
            all("export" in files[path] for path in view_modules),
            "error",
            "Export every component and page module",
        ),
        _check(
            "Error handling",
            _contains(files, "ErrorBoundary", "componentDidCatch", "getDerivedStateFromError"),
            "warning",
            "Add an error boundary",
        ),
        _check(
            "Loading states",
            _contains(files, "loading", "Loading"),
            "warning",
            "Add loading states for async operations",
        ),
    ]


def check_performance(files: Mapping[str, str]) -> List[QualityCheck]:
    manifest = _dependencies(files) or {}
    dependencies = manifest.get("dependencies")
    count = len(dependencies) if isinstance(dependencies, dict) else 0
    return [
        _check("Code splitting", _contains(files, "lazy("), "warning", "Lazy-load routes with React.lazy()"),
        _check("Image optimization", _contains(files, 'loading="lazy"'), "info", 'Add loading="lazy" to images'),
        _check(
            "Component memoization",
            _contains(files, "memo(", "useMemo", "useCallback"),
            "info",
            "Memoise expensive components",
        ),
        _check(
            "Dependency count",
            count <= MAX_DEPENDENCIES,
            "warning",
            "Review and remove unnecessary dependencies",
        ),
    ]


def check_accessibility(files: Mapping[str, str]) -> List[QualityCheck]:
    images = [tag for content in files.values() for tag in _IMG_TAG.findall(content)]
    return [
        _check("Semantic HTML", _matches(files, _SEMANTIC_TAGS), "warning", "Use header, main, nav and section elements"),
        _check(
            "ARIA labels",
            _contains(files, "aria-label", "aria-describedby"),
            "warning",
            "Add aria-label and aria-describedby attributes",
        ),
        _check(
            "Image alt text",
            all("alt=" in tag for tag in images),
            "error",
            "Add descriptive alt attributes to every img element",
        ),
        _check(
            "Keyboard navigation",
            _contains(files, "onKeyDown", "tabIndex", "focus"),
            "info",
            "Add keyboard handlers and a sensible tab order",
        ),
    ]


def check_design(files: Mapping[str, str]) -> List[QualityCheck]:
    return [
        _check("Responsive design", _matches(files, _RESPONSIVE), "warning", "Add responsive classes (sm:, md:, lg:)"),
        _check("Dark mode support", _contains(files, "dark:", "darkMode"), "info", "Add dark: classes"),
        _check("Spacing system", _matches(files, _SPACING), "info", "Use the spacing utilities (p-, m-, space-)"),
        _check(
            "Animations",
            _contains(files, "transition", "animate-", "framer-motion"),
            "info",
            "Add transitions or animations",
        ),
    ]


def check_content(files: Mapping[str, str]) -> List[QualityCheck]:
    items = sum(len(_CONTENT_ITEM.findall(content)) for content in files.values())
    return [
        _check(
            "Realistic content",
            not _matches(files, _PLACEHOLDER_COPY),
            "warning",
            "Replace placeholder text with content for the domain",
        ),
        _check(
            "Content variety",
            items >= MIN_CONTENT_ITEMS,
            "info",
            f"Add at least {MIN_CONTENT_ITEMS} products, services or posts",
        ),
        _check(
            "Professional copy",
            _matches(files, _PROFESSIONAL_TERMS),
            "info",
            "Use professional business language",
        ),
        _check("Contact information", _contains(files, "@", "contact", "email"), "info", "Add an email or contact form"),
    ]


def recommendations_for(categories: Mapping[str, CategoryScore]) -> List[str]:
    advice = [
        text
        for name, below, text in RECOMMENDATIONS
        if name in categories and categories[name].score < below
    ]
    return advice or [ALL_CLEAR]


def score_project(
    files: Mapping[str, str],
    *,
    required: Sequence[str] = (),
    essentials: Sequence[str] = (),
    minimum_score: int = MINIMUM_SCORE,
) -> QualityAssessment:
    scorers: Tuple[Tuple[str, Callable[[], List[QualityCheck]]], ...] = (
        ("structure", lambda: check_structure(files, required, essentials)),
        ("code", lambda: check_code(files)),
        ("performance", lambda: check_performance(files)),
        ("accessibility", lambda: check_accessibility(files)),
        ("design", lambda: check_design(files)),
        ("content", lambda: check_content(files)),
    )
    categories: Dict[str, CategoryScore] = {}
    for name, scorer in scorers:
        checks = scorer()
        score = category_score(checks)
        categories[name] = CategoryScore(name, score, score >= CATEGORY_THRESHOLDS[name], checks)

    assessment = QualityAssessment(
        score=overall_score(categories),
        categories=categories,
        recommendations=recommendations_for(categories),
        minimum_score=minimum_score,
    )
    logger.info(
        "[quality] score=%d (%s) %s",
        assessment.score,
        "passed" if assessment.passed else f"below {minimum_score}",
        " ".join(f"{name}={category.score}" for name, category in categories.items()),
    )
    return assessment
