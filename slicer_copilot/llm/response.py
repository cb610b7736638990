"""Response adapter: untrusted optimizer output → validated OptimizerResponse.

The whole response is rejected when any part of it is structurally invalid;
a partially trusted payload is never returned. Rules:

- The content must parse as JSON and be an object with a ``changes`` array.
- Every change needs a non-empty ``parameter`` and a ``newValue`` key
  (``null`` is an accepted value).
- ``scope`` defaults to ``global`` and must be ``global`` or ``object``.
- ``changeType`` defaults to ``absolute`` and must be ``absolute`` or
  ``relative``.
- ``reason`` defaults to ``""``, ``version`` to ``1``, ``warnings`` to ``[]``.
"""

import json
from typing import Any

from slicer_copilot.core.exceptions import InvalidResponseError
from slicer_copilot.core.model import (
    ChangeScope,
    ChangeTarget,
    ChangeType,
    OptimizerResponse,
    ProposedChange,
)

# Strict structured-output schema sent with every chat completion request
RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "slicer_copilot_response",
        "strict": True,
        "schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "version": {"type": ["number", "null"]},
                "changes": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "additionalProperties": False,
                        "properties": {
                            "scope": {"type": ["string", "null"], "enum": ["global", "object"]},
                            "target": {
                                "type": "object",
                                "additionalProperties": False,
                                "properties": {
                                    "objectName": {"type": ["string", "null"]},
                                    "plateIndex": {"type": ["number", "null"]},
                                },
                                "required": ["objectName", "plateIndex"],
                            },
                            "parameter": {"type": ["string", "null"]},
                            "newValue": {"type": ["string", "number", "boolean", "null"]},
                            "changeType": {
                                "type": ["string", "null"],
                                "enum": ["absolute", "relative"],
                            },
                            "reason": {"type": ["string", "null"]},
                        },
                        "required": [
                            "scope",
                            "target",
                            "parameter",
                            "newValue",
                            "changeType",
                            "reason",
                        ],
                    },
                },
                "globalRationale": {"type": ["string", "null"]},
                "warnings": {"type": ["array", "null"], "items": {"type": "string"}},
            },
            "required": ["version", "changes", "globalRationale", "warnings"],
        },
    },
}


def parse_response(content: str | bytes | dict[str, Any]) -> OptimizerResponse:
    """Parse and validate optimizer output.

    Args:
        content: Raw JSON text or an already-decoded object

    Returns:
        Validated OptimizerResponse with defaults applied

    Raises:
        InvalidResponseError: If any part of the response is invalid

    Example:
        >>> response = parse_response('{"changes": [{"parameter": "wall_line_count", "newValue": 3}]}')
        >>> response.changes[0].scope
        <ChangeScope.GLOBAL: 'global'>
    """
    data: Any = content
    if isinstance(content, (str, bytes)):
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise InvalidResponseError(f"Invalid JSON from optimizer: {e}") from e

    if not isinstance(data, dict):
        raise InvalidResponseError("Optimizer response must be an object.", value=type(data).__name__)
    if not isinstance(data.get("changes"), list):
        raise InvalidResponseError("Optimizer response must include a changes array.", field="changes")

    changes = [validate_change(change, index) for index, change in enumerate(data["changes"])]

    warnings = data.get("warnings")
    if warnings is None:
        warnings = []
    if not isinstance(warnings, list):
        raise InvalidResponseError("Optimizer warnings must be an array.", field="warnings")

    version = data.get("version")
    rationale = data.get("globalRationale")
    return OptimizerResponse(
        changes=changes,
        version=version if version is not None else 1,
        global_rationale=rationale if isinstance(rationale, str) else None,
        warnings=[str(warning) for warning in warnings],
    )


def validate_change(change: Any, index: int) -> ProposedChange:
    """Validate one change entry and apply its defaults.

    Raises:
        InvalidResponseError: If the entry is not a valid change
    """
    if not isinstance(change, dict):
        raise InvalidResponseError(f"Change at index {index} must be an object.", change_index=index)

    parameter = change.get("parameter")
    if not parameter or not isinstance(parameter, str):
        raise InvalidResponseError(
            f"Change at index {index} is missing parameter.", change_index=index, field="parameter"
        )
    if "newValue" not in change:
        raise InvalidResponseError(
            f"Change for {parameter} is missing newValue.",
            change_index=index,
            parameter=parameter,
            field="newValue",
        )

    scope_value = change.get("scope")
    if scope_value is None:
        scope_value = ChangeScope.GLOBAL.value
    try:
        scope = ChangeScope(scope_value)
    except ValueError as e:
        raise InvalidResponseError(
            f"Unsupported scope {scope_value} for change {parameter}.",
            change_index=index,
            parameter=parameter,
            field="scope",
            value=scope_value,
        ) from e

    change_type_value = change.get("changeType")
    if change_type_value is None:
        change_type_value = ChangeType.ABSOLUTE.value
    try:
        change_type = ChangeType(change_type_value)
    except ValueError as e:
        raise InvalidResponseError(
            f"Unsupported changeType {change_type_value} for change {parameter}.",
            change_index=index,
            parameter=parameter,
            field="changeType",
            value=change_type_value,
        ) from e

    reason = change.get("reason")
    return ProposedChange(
        parameter=parameter,
        new_value=change["newValue"],
        scope=scope,
        target=_parse_target(change.get("target")),
        change_type=change_type,
        reason=reason if isinstance(reason, str) else "",
    )


def _parse_target(target: Any) -> ChangeTarget | None:
    if not isinstance(target, dict):
        return None
    object_name = target.get("objectName")
    if object_name is None:
        object_name = target.get("name")
    plate_index = target.get("plateIndex")
    if isinstance(plate_index, float) and plate_index.is_integer():
        plate_index = int(plate_index)
    if isinstance(plate_index, bool) or not isinstance(plate_index, int):
        plate_index = None
    return ChangeTarget(
        object_name=str(object_name) if object_name is not None else None,
        plate_index=plate_index,
    )
