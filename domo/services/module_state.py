"""Forward-only module progression driven by objective completions.

Every function here is pure: it takes an explicit ``ModuleState`` and
returns a new one. Persisting the result is the caller's job (see
``objectives.ObjectiveProcessor``).

Adding an objective is set-like and idempotent, and a module is appended
to ``completed_modules`` at most once, so replays and reordered deliveries
of objective-completion events converge on the same state.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from domo.models.modules import (
    DEFAULT_PRODUCT_DEMO_MODULES,
    TOTAL_OBJECTIVES,
    ModuleState,
    get_module_definition,
    get_module_for_objective,
    get_next_module,
)


@dataclass(frozen=True)
class ModuleAdvance:
    """Result of applying one completed objective."""

    new_state: ModuleState
    new_module_id: str | None
    module_changed: bool
    previous_module_id: str | None


def create_initial_state() -> ModuleState:
    """Empty progress for a conversation that just started."""
    return ModuleState()


def advance(
    state: ModuleState | None,
    current_module_id: str | None,
    completed_objective: str,
) -> ModuleAdvance:
    """Apply a completed objective and move to the next module if due.

    Args:
        state: Current progress, or None for a fresh conversation.
        current_module_id: Module the conversation is currently in.
        completed_objective: Name of the objective Tavus reported complete.

    Returns:
        ModuleAdvance with the new state and module pointer.
    """
    state = state or create_initial_state()

    completed_objectives = list(state.completed_objectives)
    if completed_objective not in completed_objectives:
        completed_objectives.append(completed_objective)

    previous_module_id = current_module_id
    new_module_id = current_module_id
    if new_module_id is None:
        owner = get_module_for_objective(completed_objective)
        new_module_id = owner.module_id if owner else None

    completed_modules = list(state.completed_modules)
    module_changed = False

    current = get_module_definition(new_module_id)
    if current is not None:
        all_done = all(obj in completed_objectives for obj in current.objective_ids)
        if all_done and current.module_id not in completed_modules:
            completed_modules.append(current.module_id)
            next_module = get_next_module(current.module_id)
            if next_module is not None:
                new_module_id = next_module.module_id
                module_changed = True

    new_state = state.model_copy(
        update={
            "completed_modules": completed_modules,
            "completed_objectives": completed_objectives,
            "current_module_started_at": (
                datetime.now(UTC).isoformat()
                if module_changed
                else state.current_module_started_at
            ),
        }
    )
    return ModuleAdvance(
        new_state=new_state,
        new_module_id=new_module_id,
        module_changed=module_changed,
        previous_module_id=previous_module_id,
    )


def set_module_data(state: ModuleState, module_id: str, key: str, value: Any) -> ModuleState:
    """Return a copy of ``state`` with ``module_data[module_id][key] = value``."""
    module_data = {mid: dict(values) for mid, values in state.module_data.items()}
    module_data.setdefault(module_id, {})[key] = value
    return state.model_copy(update={"module_data": module_data})


def get_module_data(state: ModuleState, module_id: str, key: str) -> Any:
    return state.module_data.get(module_id, {}).get(key)


def is_module_completed(state: ModuleState, module_id: str) -> bool:
    return module_id in state.completed_modules


def module_progress(state: ModuleState, module_id: str) -> int:
    """Percentage (0-100) of a module's objectives that are complete."""
    definition = get_module_definition(module_id)
    if definition is None or not definition.objective_ids:
        return 0
    done = sum(1 for obj in definition.objective_ids if obj in state.completed_objectives)
    return round(done / len(definition.objective_ids) * 100)


def overall_progress(state: ModuleState) -> int:
    """Percentage (0-100) of all funnel objectives that are complete."""
    if TOTAL_OBJECTIVES == 0:
        return 0
    known = [
        obj
        for obj in state.completed_objectives
        if any(obj in m.objective_ids for m in DEFAULT_PRODUCT_DEMO_MODULES)
    ]
    return round(len(known) / TOTAL_OBJECTIVES * 100)


def state_summary(state: ModuleState, current_module_id: str | None) -> str:
    """One-line human-readable progress summary for logs."""
    parts: list[str] = []
    current = get_module_definition(current_module_id)
    if current is not None:
        parts.append(f"Current: {current.name}")
        parts.append(f"Progress: {module_progress(state, current.module_id)}%")
    if state.completed_modules:
        parts.append(f"Completed: {', '.join(state.completed_modules)}")
    parts.append(f"Overall: {overall_progress(state)}%")
    return " | ".join(parts)
