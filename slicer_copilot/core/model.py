"""Canonical data structures shared by every pipeline stage.

The normalized project model is vendor-agnostic: the archive parser builds it,
the request builder serializes it for the optimizer, the change application
engine mutates a copy of it and the archive writer maps it back into the
vendor config. Settings themselves stay plain dictionaries because their key
set is open-ended (mapped keys plus pass-through vendor keys).

Structures:
    - NormalizedProject: project summary + current settings + user-modified keys
    - ProjectSummary: printer, filaments, base profile and optional plates
    - CurrentSettings: global process settings + per-object override store
    - ProposedChange / OptimizerResponse: validated optimizer suggestions
    - DiffRecord: one successfully applied change
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ChangeScope(Enum):
    """Where a proposed change applies.

    Attributes:
        GLOBAL: The canonical global process settings
        OBJECT: One object's override record
    """

    GLOBAL = "global"
    OBJECT = "object"


class ChangeType(Enum):
    """How a proposed value is combined with the current value.

    Attributes:
        ABSOLUTE: The proposed value replaces the current value
        RELATIVE: The proposed value is a fractional delta (current + current * delta)
    """

    ABSOLUTE = "absolute"
    RELATIVE = "relative"


@dataclass
class Printer:
    """Printer descriptor extracted from metadata and project config."""

    name: str
    nozzle_diameter_mm: float | None
    bed_size_mm: Any = None
    bed_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "nozzle_diameter_mm": self.nozzle_diameter_mm,
        }
        if self.bed_size_mm is not None:
            data["bed_size_mm"] = self.bed_size_mm
        if self.bed_type is not None:
            data["bed_type"] = self.bed_type
        return data


@dataclass
class Filament:
    """Filament descriptor with material family and recommended temperatures."""

    id: str
    name: str
    material_family: str
    color: str | None = None
    nozzle_temp_recommended_range_c: list[float] | None = None
    bed_temp_recommended_range_c: list[float] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "material_family": self.material_family,
        }
        if self.color is not None:
            data["color"] = self.color
        if self.nozzle_temp_recommended_range_c is not None:
            data["nozzle_temp_recommended_range_c"] = self.nozzle_temp_recommended_range_c
        if self.bed_temp_recommended_range_c is not None:
            data["bed_temp_recommended_range_c"] = self.bed_temp_recommended_range_c
        return data


@dataclass
class PlateObject:
    """An object placed on a plate.

    ``settings`` is the plate-level view of the object's overrides. It is kept
    consistent with the override store whenever an object-scoped change is
    committed.
    """

    name: str
    plate_index: int | None
    geometry: dict[str, Any] | None = None
    settings: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "plateIndex": self.plate_index,
            "geometry": self.geometry,
        }
        if self.settings is not None:
            data["settings"] = self.settings
        return data


@dataclass
class Plate:
    """A build plate with its ordered list of objects."""

    index: int
    name: str
    objects: list[PlateObject] = field(default_factory=list)

    def find_object(self, name: str) -> PlateObject | None:
        """Return the first object on this plate with the given name."""
        for obj in self.objects:
            if obj.name == name:
                return obj
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "objects": [obj.to_dict() for obj in self.objects],
        }


@dataclass
class ProjectSummary:
    """Printer, filaments, base profile and (when supplied) plates.

    Plates are present only when the source archive provides them; no
    synthetic plate is ever invented.
    """

    file_name: str
    printer: Printer
    filaments: list[Filament] = field(default_factory=list)
    base_profile: str | None = None
    plates: list[Plate] = field(default_factory=list)

    def find_plate(self, object_name: str, plate_index: int | None) -> Plate | None:
        """Find the plate holding ``object_name``.

        When ``plate_index`` is given the plate index must match; otherwise the
        first plate containing an object with that name wins.

        Args:
            object_name: Name of the object to look for
            plate_index: Zero-based plate index, or None for any plate

        Returns:
            The matching plate, or None when no plate holds the object
        """
        for plate in self.plates:
            if plate_index is not None and plate.index != plate_index:
                continue
            if plate.find_object(object_name) is not None:
                return plate
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileName": self.file_name,
            "printer": self.printer.to_dict(),
            "filaments": [filament.to_dict() for filament in self.filaments],
            "base_profile": self.base_profile,
            "plates": [plate.to_dict() for plate in self.plates],
        }


@dataclass
class CurrentSettings:
    """Global process settings plus the per-object override store.

    Attributes:
        global_process: Canonical key → typed value; ``speeds`` is a nested
            mapping from speed role to number
        per_object_overrides: Override store keyed by object key (see
            ``slicer_copilot.core.overrides.make_object_key``)
    """

    global_process: dict[str, Any] = field(default_factory=dict)
    per_object_overrides: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "globalProcess": self.global_process,
            "perObjectOverrides": self.per_object_overrides,
        }


@dataclass
class NormalizedProject:
    """The canonical normalized project model.

    Attributes:
        file_name: Name of the source archive
        project_summary: Printer/filament/plate description
        current_settings: Global process settings and per-object overrides
        user_modified_settings: Keys the user already tuned away from the base
            profile, in original casing and order
    """

    file_name: str
    project_summary: ProjectSummary
    current_settings: CurrentSettings
    user_modified_settings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileName": self.file_name,
            "projectSummary": self.project_summary.to_dict(),
            "currentSettings": self.current_settings.to_dict(),
            "userModifiedSettings": list(self.user_modified_settings),
        }


@dataclass
class PlateImage:
    """Embedded plate preview image as a base64 data URL."""

    plate_index: int | None
    name: str
    data_url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "plateIndex": self.plate_index,
            "name": self.name,
            "dataUrl": self.data_url,
        }


@dataclass(frozen=True)
class ChangeTarget:
    """Object addressed by an object-scoped change."""

    object_name: str | None = None
    plate_index: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"objectName": self.object_name, "plateIndex": self.plate_index}


@dataclass
class ProposedChange:
    """One suggested mutation returned by the optimizer.

    Attributes:
        parameter: Dot-path parameter name (``speeds.wall_outer`` addresses the
            nested speeds mapping)
        new_value: Proposed value, or fractional delta for relative changes
        scope: Global settings or one object's overrides
        target: Object addressed by object-scoped changes
        change_type: Absolute replacement or relative delta
        reason: Optional human-readable justification
    """

    parameter: str
    new_value: Any
    scope: ChangeScope = ChangeScope.GLOBAL
    target: ChangeTarget | None = None
    change_type: ChangeType = ChangeType.ABSOLUTE
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope.value,
            "target": self.target.to_dict() if self.target else None,
            "parameter": self.parameter,
            "newValue": self.new_value,
            "changeType": self.change_type.value,
            "reason": self.reason,
        }


@dataclass
class OptimizerResponse:
    """A validated optimizer response."""

    changes: list[ProposedChange] = field(default_factory=list)
    version: int = 1
    global_rationale: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class DiffRecord:
    """Record of one successfully applied change."""

    scope: ChangeScope
    target: ChangeTarget | None
    parameter: str
    from_value: Any
    to_value: Any
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope.value,
            "target": self.target.to_dict() if self.target else None,
            "parameter": self.parameter,
            "from": self.from_value,
            "to": self.to_value,
            "reason": self.reason,
        }
