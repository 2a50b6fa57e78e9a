from __future__ import annotations

from enum import Enum

from src.errors import UnknownStage


class Stage(str, Enum):
    ANALYZE = "analyze"
    PLAN = "plan"
    GENERATE_CORE = "generate-core"
    GENERATE_COMPONENTS = "generate-components"
    GENERATE_INTEGRATION = "generate-integration"
    VALIDATE = "validate"
    COMPOSE = "compose"
    IMPROVE = "improve"
    PAGE = "page"
    COMPONENT = "component"
    EDIT = "edit"

    @classmethod
    def parse(cls, value: "Stage | str") -> "Stage":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownStage(value) from None

    @property
    def expects_json(self) -> bool:
        return self in STRUCTURED_STAGES


STRUCTURED_STAGES = frozenset({Stage.ANALYZE, Stage.PLAN, Stage.VALIDATE})

ARTIFACT_STAGES = frozenset(
    {
        Stage.GENERATE_CORE,
        Stage.GENERATE_COMPONENTS,
        Stage.GENERATE_INTEGRATION,
        Stage.COMPOSE,
        Stage.IMPROVE,
        Stage.PAGE,
        Stage.COMPONENT,
    }
)

DEFAULT_TOKEN_BUDGETS = {
    Stage.ANALYZE: 2048,
    Stage.PLAN: 2048,
    Stage.GENERATE_CORE: 4096,
    Stage.GENERATE_COMPONENTS: 4096,
    Stage.GENERATE_INTEGRATION: 4096,
    Stage.VALIDATE: 2048,
    Stage.COMPOSE: 4096,
    Stage.IMPROVE: 4096,
    Stage.PAGE: 3072,
    Stage.COMPONENT: 3072,
    Stage.EDIT: 2048,
}
