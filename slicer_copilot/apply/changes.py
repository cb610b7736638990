"""Change application engine.

Applies validated optimizer suggestions to a copy of the canonical model.
Individual changes never raise: an unknown parameter, a missing object, a
non-numeric relative change or a locked user setting is reported as a warning
and only that change is skipped.

Changes are applied strictly in order, so later changes see the effects of
earlier ones. A change whose computed value equals the current value is a
silent no-op: no diff, no mutation, no warning.
"""

import copy
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from slicer_copilot.core.messages import Messages
from slicer_copilot.core.model import (
    ChangeScope,
    ChangeTarget,
    ChangeType,
    DiffRecord,
    NormalizedProject,
    OptimizerResponse,
    Plate,
    ProposedChange,
)
from slicer_copilot.core.overrides import (
    OVERRIDE_IDENTITY_KEYS,
    ensure_object_override,
    read_object_override,
)

logger = logging.getLogger(__name__)

SPEEDS_PARAMETER_PREFIX = "speeds."

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class _Missing:
    """Marker for a parameter that does not exist in a settings container."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass
class ApplyResult:
    """Outcome of applying an optimizer response.

    Attributes:
        updated: Deep copy of the input model with every applied change
        diffs: One record per applied (non no-op) change, in order
        warnings: Optimizer warnings followed by per-change warnings
    """

    updated: NormalizedProject
    diffs: list[DiffRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ParameterRef:
    """A resolved parameter inside one settings container."""

    current: Any
    set: Callable[[Any], None]


def apply_changes(
    model: NormalizedProject,
    response: OptimizerResponse,
    respect_user_settings: bool = True,
    messages: Messages | None = None,
) -> ApplyResult:
    """Apply an optimizer response to a copy of the canonical model.

    Args:
        model: Canonical model produced by the archive parser (not modified)
        response: Validated optimizer response
        respect_user_settings: Skip changes to user-modified settings
        messages: Warning message catalog (English when omitted)

    Returns:
        ApplyResult with the updated model, diffs and warnings

    Example:
        >>> result = apply_changes(model, OptimizerResponse(changes=[
        ...     ProposedChange(parameter="wall_line_count", new_value=3),
        ... ]))
        >>> result.diffs[0].to_value
        3
    """
    messages = messages or Messages()
    updated = copy.deepcopy(model)
    result = ApplyResult(updated=updated, warnings=list(response.warnings))
    locks = UserSettingLocks(updated.user_modified_settings)

    for index, change in enumerate(response.changes):
        if respect_user_settings and locks.is_locked(change.parameter):
            logger.debug(f"Change {index} skipped: {change.parameter} is user-modified")
            result.warnings.append(messages.format("user_setting_locked", parameter=change.parameter))
            continue

        if change.scope is ChangeScope.OBJECT:
            diff = _apply_object_change(updated, change, result.warnings, messages)
        else:
            diff = _apply_global_change(updated, change, result.warnings, messages)
        if diff is not None:
            result.diffs.append(diff)

    logger.info(
        f"Applied {len(result.diffs)} of {len(response.changes)} changes "
        f"({len(result.warnings)} warnings)"
    )
    return result


class UserSettingLocks:
    """Lookup of user-modified settings by exact or normalized name.

    Normalization lower-cases and strips every non-alphanumeric character,
    so ``"Wall Loops"`` locks ``wall_loops``.
    """

    def __init__(self, user_modified_settings: list[str]) -> None:
        self.raw: set[str] = set()
        self.normalized: set[str] = set()
        for entry in user_modified_settings:
            if not entry:
                continue
            self.raw.add(str(entry))
            self.normalized.add(normalize_setting_key(str(entry)))

    def is_locked(self, parameter: str) -> bool:
        if not self.raw:
            return False
        if parameter in self.raw:
            return True
        return normalize_setting_key(parameter) in self.normalized


def normalize_setting_key(key: str) -> str:
    return _NON_ALNUM.sub("", key.lower())


def resolve_parameter(container: dict[str, Any], parameter: str) -> ParameterRef:
    """Resolve a parameter name against a settings container.

    ``speeds.<role>`` addresses the nested speeds mapping; any further path
    segments are ignored. Every other name addresses a top-level key. Writes
    to a speed replace the speeds mapping with an updated copy.
    """
    if parameter.startswith(SPEEDS_PARAMETER_PREFIX):
        speed_key = parameter[len(SPEEDS_PARAMETER_PREFIX):].split(".")[0]
        speeds = container.get("speeds")

        def set_speed(value: Any) -> None:
            updated = dict(container.get("speeds") or {})
            updated[speed_key] = value
            container["speeds"] = updated

        current = speeds.get(speed_key, MISSING) if isinstance(speeds, dict) else MISSING
        return ParameterRef(current=current, set=set_speed)

    def set_value(value: Any) -> None:
        container[parameter] = value

    return ParameterRef(current=container.get(parameter, MISSING), set=set_value)


def compute_new_value(
    current: Any,
    change: ProposedChange,
    warnings: list[str],
    messages: Messages,
) -> Any:
    """Compute the value a change would write.

    Relative changes need numeric current and proposed values and yield
    ``current + current * delta``; otherwise a warning is recorded and the
    current value is returned unchanged.
    """
    if change.change_type is ChangeType.RELATIVE:
        if not (_is_number(current) and _is_number(change.new_value)):
            warnings.append(messages.format("relative_change_type", parameter=change.parameter))
            return current
        return current + current * change.new_value
    return change.new_value


def values_identical(a: Any, b: Any) -> bool:
    """Strict equality: booleans never equal numbers, ``2 == 2.0`` holds."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if _is_number(a) and _is_number(b):
        return a == b
    return type(a) is type(b) and a == b


def _apply_global_change(
    model: NormalizedProject,
    change: ProposedChange,
    warnings: list[str],
    messages: Messages,
) -> DiffRecord | None:
    ref = resolve_parameter(model.current_settings.global_process, change.parameter)
    if ref.current is MISSING:
        warnings.append(messages.format("unknown_parameter", parameter=change.parameter))
        return None

    proposed = compute_new_value(ref.current, change, warnings, messages)
    if values_identical(proposed, ref.current):
        return None

    ref.set(proposed)
    return DiffRecord(
        scope=ChangeScope.GLOBAL,
        target=None,
        parameter=change.parameter,
        from_value=ref.current,
        to_value=proposed,
        reason=change.reason,
    )


def _apply_object_change(
    model: NormalizedProject,
    change: ProposedChange,
    warnings: list[str],
    messages: Messages,
) -> DiffRecord | None:
    target = change.target or ChangeTarget()
    # Without an explicit object name the parameter name doubles as the object name
    object_name = target.object_name if target.object_name is not None else change.parameter
    plate = model.project_summary.find_plate(object_name, target.plate_index)
    if plate is None:
        warnings.append(
            messages.format("object_not_found", object=object_name, parameter=change.parameter)
        )
        return None

    overrides = model.current_settings.per_object_overrides
    existing = read_object_override(overrides, object_name, plate.index)
    current = MISSING
    if existing and change.parameter not in OVERRIDE_IDENTITY_KEYS:
        current = resolve_parameter(existing, change.parameter).current
    if current is MISSING:
        current = resolve_parameter(model.current_settings.global_process, change.parameter).current
    if current is MISSING:
        warnings.append(
            messages.format("unknown_object_parameter", parameter=change.parameter, object=object_name)
        )
        return None

    proposed = compute_new_value(current, change, warnings, messages)
    if values_identical(proposed, current):
        return None

    record = ensure_object_override(overrides, object_name, plate.index)
    resolve_parameter(record, change.parameter).set(proposed)
    _sync_plate_view(plate, object_name, change.parameter, proposed)
    return DiffRecord(
        scope=ChangeScope.OBJECT,
        target=ChangeTarget(object_name=object_name, plate_index=plate.index),
        parameter=change.parameter,
        from_value=current,
        to_value=proposed,
        reason=change.reason,
    )


def _sync_plate_view(plate: Plate, object_name: str, parameter: str, value: Any) -> None:
    obj = plate.find_object(object_name)
    if obj is None:
        return
    if obj.settings is None:
        obj.settings = {}
    obj.settings[parameter] = value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
