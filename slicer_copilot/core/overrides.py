"""Per-object override store.

Overrides live in a plain dictionary keyed by a composite object key so that
same-named objects on different plates never share a record:

- ``"<plateIndex>::<objectName>"`` when the plate index is known
- ``"<objectName>"`` when the plate index is None

Two same-named objects without a plate index share one key. That ambiguity
comes from the source data and is preserved as-is.

A record is created lazily on the first override write and holds the object's
``plateIndex`` and ``objectName`` alongside the overridden settings. Absence
of a record means the object inherits every global setting.
"""

from typing import Any

DEFAULT_OBJECT_NAME = "object"

# Record fields that identify the object rather than override a setting
OVERRIDE_IDENTITY_KEYS = frozenset({"plateIndex", "objectName"})


def make_object_key(object_name: str | None, plate_index: int | None) -> str:
    """Build the store key for an object.

    Args:
        object_name: Object name (``"object"`` when missing)
        plate_index: Zero-based plate index, or None when unknown

    Returns:
        ``"<plate_index>::<object_name>"`` or ``object_name`` alone

    Example:
        >>> make_object_key("Cube", 1)
        '1::Cube'
        >>> make_object_key("Cube", None)
        'Cube'
    """
    name = object_name if object_name is not None else DEFAULT_OBJECT_NAME
    if plate_index is None:
        return name
    return f"{plate_index}::{name}"


def read_object_override(
    overrides: dict[str, dict[str, Any]],
    object_name: str | None,
    plate_index: int | None,
) -> dict[str, Any] | None:
    """Return the override record for an object, or None if it has none."""
    return overrides.get(make_object_key(object_name, plate_index))


def ensure_object_override(
    overrides: dict[str, dict[str, Any]],
    object_name: str | None,
    plate_index: int | None,
) -> dict[str, Any]:
    """Return the override record for an object, creating it when missing.

    Idempotent: the same target always yields the same dictionary instance,
    so mutations through one call are visible through the next.

    Args:
        overrides: The override store
        object_name: Object name
        plate_index: Zero-based plate index, or None when unknown

    Returns:
        The (possibly new) override record
    """
    key = make_object_key(object_name, plate_index)
    record = overrides.get(key)
    if record is None:
        record = {"plateIndex": plate_index, "objectName": object_name}
        overrides[key] = record
    return record
