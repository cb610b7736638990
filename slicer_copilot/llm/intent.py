"""User optimization intent.

The intent describes what the user wants from the optimizer (primary goal,
constraints, parameters not to touch, free-text notes). Non-interactive runs
use the empty intent; an intent JSON file can supply explicit values.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any

from slicer_copilot.core.exceptions import SlicerCopilotError

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY_GOAL = "balanced"
PRIMARY_GOALS = ("balanced", "functional_strong", "visual_quality", "draft_fast", "custom")

# Dropped on load; superseded by the optimizer's own judgement
LEGACY_INTENT_KEYS = ("change_aggressiveness", "changeAggressiveness")

# canonical key -> accepted camelCase alias
INTENT_ALIASES = {
    "secondary_goals": "secondaryGoals",
    "locked_parameters": "lockedParameters",
    "preferred_focus": "preferredFocus",
    "free_text_description": "description",
}


def create_empty_intent() -> dict[str, Any]:
    """Return the default intent used for non-interactive runs."""
    return {
        "primary_goal": DEFAULT_PRIMARY_GOAL,
        "secondary_goals": [],
        "tolerance_importance": "medium",
        "load_bearing": False,
        "safety_critical": False,
        "constraints": {
            "max_print_time_hours": None,
            "material_saving_important": False,
        },
        "locked_parameters": [],
        "preferred_focus": [],
        "free_text_description": "",
    }


def normalize_intent(data: dict[str, Any] | None) -> dict[str, Any]:
    """Merge user-provided intent over the empty intent.

    camelCase aliases are accepted for list and description fields and
    legacy keys are dropped. Unknown keys are kept as-is.

    Args:
        data: Intent as loaded from JSON (may be None)

    Returns:
        A complete intent dictionary

    Example:
        >>> normalize_intent({"lockedParameters": ["nozzle_temp_c"]})["locked_parameters"]
        ['nozzle_temp_c']
    """
    base = create_empty_intent()
    raw = dict(data or {})
    for key in LEGACY_INTENT_KEYS:
        raw.pop(key, None)

    intent = {**base, **copy.deepcopy(raw)}
    constraints = raw.get("constraints")
    intent["constraints"] = {
        **base["constraints"],
        **(constraints if isinstance(constraints, dict) else {}),
    }
    for key, alias in INTENT_ALIASES.items():
        value = raw.get(key)
        if value is None:
            value = raw.get(alias)
        intent[key] = value if value is not None else base[key]
    return intent


def read_intent_file(path: Path) -> dict[str, Any]:
    """Load and normalize an intent JSON file.

    Raises:
        SlicerCopilotError: If the file cannot be read or is not a JSON object
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise SlicerCopilotError(
            f"Failed to read intent file: {e}", {"path": str(path)}
        ) from e
    except json.JSONDecodeError as e:
        raise SlicerCopilotError(
            f"Intent file is not valid JSON: {e}", {"path": str(path)}
        ) from e

    if not isinstance(data, dict):
        raise SlicerCopilotError("Intent file must contain a JSON object", {"path": str(path)})

    logger.debug(f"Loaded intent from {path}")
    return normalize_intent(data)


def build_intent_details(intent: dict[str, Any] | None) -> dict[str, Any]:
    """Reduce an intent to the fields the user explicitly provided.

    Only ``primary_goal`` is always present. Defaults (empty lists, false
    flags, empty text) are left out so the optimizer does not anchor on them.

    Example:
        >>> build_intent_details(create_empty_intent())
        {'primary_goal': 'balanced'}
    """
    intent = intent or {}
    details: dict[str, Any] = {"primary_goal": _primary_goal(intent.get("primary_goal"))}

    _set_if_non_empty_list(details, "secondary_goals", intent.get("secondary_goals"))
    constraints = _constraints(intent.get("constraints"))
    if constraints:
        details["constraints"] = constraints
    _set_if_true(details, "load_bearing", intent.get("load_bearing"))
    _set_if_true(details, "safety_critical", intent.get("safety_critical"))
    _set_if_non_empty_list(details, "locked_parameters", intent.get("locked_parameters"))
    _set_if_non_empty_list(details, "preferred_focus", intent.get("preferred_focus"))

    description = intent.get("free_text_description")
    if isinstance(description, str) and description.strip():
        details["free_text_description"] = description.strip()
    return details


def _primary_goal(goal: Any) -> str:
    if not isinstance(goal, str):
        return DEFAULT_PRIMARY_GOAL
    return goal.strip() or DEFAULT_PRIMARY_GOAL


def _constraints(constraints: Any) -> dict[str, Any]:
    if not isinstance(constraints, dict):
        return {}
    result: dict[str, Any] = {}
    max_time = constraints.get("max_print_time_hours")
    has_number = isinstance(max_time, (int, float)) and not isinstance(max_time, bool)
    if has_number or (isinstance(max_time, str) and max_time):
        result["max_print_time_hours"] = max_time
    if constraints.get("material_saving_important") is True:
        result["material_saving_important"] = True
    return result


def _set_if_non_empty_list(details: dict[str, Any], key: str, value: Any) -> None:
    if isinstance(value, list) and value:
        details[key] = value


def _set_if_true(details: dict[str, Any], key: str, value: Any) -> None:
    if value is True:
        details[key] = True
