"""Demo conversation modules and per-conversation module progress."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ModuleId = Literal[
    "intro",
    "qualification",
    "overview",
    "feature_deep_dive",
    "pricing",
    "cta",
]


@dataclass(frozen=True)
class ModuleDefinition:
    """One stage of the demo conversation funnel."""

    module_id: ModuleId
    name: str
    order_index: int
    objective_ids: tuple[str, ...]


DEFAULT_PRODUCT_DEMO_MODULES: tuple[ModuleDefinition, ...] = (
    ModuleDefinition(
        module_id="intro",
        name="Introduction",
        order_index=1,
        objective_ids=("introduce_domo_agent",),
    ),
    ModuleDefinition(
        module_id="qualification",
        name="Qualification",
        order_index=2,
        objective_ids=("needs_discovery",),
    ),
    ModuleDefinition(
        module_id="overview",
        name="Product Overview",
        order_index=3,
        objective_ids=("explain_and_show_overview",),
    ),
    ModuleDefinition(
        module_id="feature_deep_dive",
        name="Feature Deep Dive",
        order_index=4,
        objective_ids=(
            "explain_and_show_specific_feature",
            "feature_deep_dive",
            "address_pain_points",
        ),
    ),
    ModuleDefinition(
        module_id="pricing",
        name="Pricing & Objections",
        order_index=5,
        objective_ids=("handle_objections", "show_social_proof"),
    ),
    ModuleDefinition(
        module_id="cta",
        name="Call to Action",
        order_index=6,
        objective_ids=("discuss_next_steps", "capture_contact_info", "complete_demo"),
    ),
)

# Built once at import; the module graph never changes at runtime.
MODULES_BY_ID: dict[str, ModuleDefinition] = {
    m.module_id: m for m in DEFAULT_PRODUCT_DEMO_MODULES
}
MODULE_BY_OBJECTIVE: dict[str, ModuleDefinition] = {
    objective_id: m
    for m in DEFAULT_PRODUCT_DEMO_MODULES
    for objective_id in m.objective_ids
}
_BY_ORDER: dict[int, ModuleDefinition] = {m.order_index: m for m in DEFAULT_PRODUCT_DEMO_MODULES}
NEXT_MODULE: dict[str, ModuleDefinition | None] = {
    m.module_id: _BY_ORDER.get(m.order_index + 1) for m in DEFAULT_PRODUCT_DEMO_MODULES
}
TOTAL_OBJECTIVES = len(MODULE_BY_OBJECTIVE)


def get_module_definition(module_id: str | None) -> ModuleDefinition | None:
    if module_id is None:
        return None
    return MODULES_BY_ID.get(module_id)


def get_module_for_objective(objective_id: str) -> ModuleDefinition | None:
    return MODULE_BY_OBJECTIVE.get(objective_id)


def get_next_module(module_id: str) -> ModuleDefinition | None:
    return NEXT_MODULE.get(module_id)


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class ModuleState(BaseModel):
    """Module progress stored on ``conversation_details.module_state``.

    Serialized with camelCase keys; the conversation UI reads the same JSON.
    """

    model_config = ConfigDict(populate_by_name=True)

    completed_modules: list[str] = Field(default_factory=list, alias="completedModules")
    completed_objectives: list[str] = Field(default_factory=list, alias="completedObjectives")
    current_module_started_at: str = Field(default_factory=_utc_now, alias="currentModuleStartedAt")
    module_data: dict[str, dict[str, Any]] = Field(default_factory=dict, alias="moduleData")

    def to_db(self) -> dict[str, Any]:
        """Serialize for storage."""
        return self.model_dump(by_alias=True)
