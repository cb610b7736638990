"""Archive writer: updated canonical model → vendor metadata and config.

Only two entries are rewritten: the metadata document and the project config
the parser used. Every other archive entry is carried over byte-for-byte, and
inside the rewritten config every key the writer does not touch keeps its
original value.

Config write order:
    1. Mapped process settings (shape mode per mapping)
    2. Derived adhesion keys (``brim_width`` / ``raft_layers``)
    3. Printer and filament echo-back (nozzle diameter, filament type,
       base profile)
    4. Speed roles
    5. Allow-listed pass-through settings
    6. Bookkeeping of keys changed from the system profile
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any

from slicer_copilot.archive.io import write_archive_file
from slicer_copilot.archive.mapping import (
    BOOKKEEPING_KEY,
    GLOBAL_PROCESS_MAPPINGS,
    MAPPED_CONFIG_KEYS,
    MAPPED_TARGET_KEYS,
    SPEED_MAPPINGS,
    WriteMode,
    adhesion_config_values,
    is_pass_through_key,
    to_config_string,
    to_config_value,
)
from slicer_copilot.archive.parser import ParsedArchive
from slicer_copilot.core.exceptions import ArchiveWriteError
from slicer_copilot.core.model import NormalizedProject, ProjectSummary
from slicer_copilot.core.overrides import read_object_override

logger = logging.getLogger(__name__)

DEFAULT_METADATA_PATH = "metadata.json"

BOOKKEEPING_GROUP_COUNT = 3
PRINT_GROUP, FILAMENT_GROUP, PRINTER_GROUP = range(BOOKKEEPING_GROUP_COUNT)

# Always listed in the filament group whenever that group is non-empty
FILAMENT_GROUP_SENTINEL = "compatible_printers"

BOOKKEEPING_CATEGORIES: dict[int, frozenset[str]] = {
    PRINT_GROUP: frozenset(
        {
            "layer_height",
            "initial_layer_print_height",
            "wall_loops",
            "top_shell_layers",
            "bottom_shell_layers",
            "sparse_infill_density",
            "sparse_infill_pattern",
            "outer_wall_speed",
            "inner_wall_speed",
            "sparse_infill_speed",
            "initial_layer_speed",
            "enable_support",
            "brim_width",
            "raft_layers",
            "default_print_profile",
        }
    ),
    FILAMENT_GROUP: frozenset(
        {
            FILAMENT_GROUP_SENTINEL,
            "eng_plate_temp",
            "hot_plate_temp",
            "fan_max_speed",
            "first_x_layer_fan_speed",
            "nozzle_temperature",
            "nozzle_temperature_initial_layer",
            "filament_type",
        }
    ),
    PRINTER_GROUP: frozenset({"printer_model", "nozzle_diameter"}),
}


def update_metadata_from_normalized(
    metadata: dict[str, Any],
    model: NormalizedProject,
) -> dict[str, Any]:
    """Return a copy of the metadata document reflecting the updated model.

    Plates are rewritten only when the model has plates; each object's
    settings come from the override store so the two views cannot drift.

    Args:
        metadata: Metadata document from the parsed archive
        model: Updated canonical model

    Returns:
        New metadata document; the input is not modified
    """
    updated = copy.deepcopy(metadata)
    summary = model.project_summary
    overrides = model.current_settings.per_object_overrides

    updated["settings"] = copy.deepcopy(model.current_settings.global_process)
    if summary.plates:
        updated["plates"] = [
            {
                "index": plate.index,
                "name": plate.name,
                "objects": [
                    _object_metadata(obj.name, obj.geometry, read_object_override(overrides, obj.name, plate.index))
                    for obj in plate.objects
                ],
            }
            for plate in summary.plates
        ]

    quality_preset = summary.base_profile if summary.base_profile is not None else metadata.get("quality_preset")
    if quality_preset is not None:
        updated["quality_preset"] = quality_preset
    updated["printer"] = summary.printer.to_dict()
    updated["filaments"] = [filament.to_dict() for filament in summary.filaments]
    return updated


def build_config_from_normalized(
    base_config: dict[str, Any],
    model: NormalizedProject,
) -> dict[str, Any]:
    """Map the updated canonical model back onto a copy of the vendor config.

    Args:
        base_config: Vendor config snapshot taken at parse time
        model: Updated canonical model

    Returns:
        The rewritten vendor config; keys never touched are left unchanged

    Example:
        >>> config = build_config_from_normalized({"sparse_infill_density": "15%"}, model)
        >>> config["sparse_infill_density"]
        '30%'
    """
    config = copy.deepcopy(base_config)
    process = model.current_settings.global_process
    touched: list[str] = []

    _write_mapped_settings(config, process, touched)
    _write_adhesion(config, process.get("adhesion_type"), touched)
    _write_printer_and_filament(config, model.project_summary, touched)
    _write_speeds(config, process.get("speeds"), touched)
    _write_pass_through(config, process, touched)

    config[BOOKKEEPING_KEY] = update_bookkeeping(
        base_config.get(BOOKKEEPING_KEY), base_config, config, touched
    )
    logger.debug(f"Rewrote {len(touched)} config keys")
    return config


def update_bookkeeping(
    existing: Any,
    base_config: dict[str, Any],
    updated_config: dict[str, Any],
    touched_keys: list[str],
) -> list[str]:
    """Recompute the vendor's "changed from system profile" groups.

    Every touched key whose written value differs from the snapshot joins a
    group: the one it already occupied, else its static category, else the
    print group. Existing entries are never removed.

    Args:
        existing: Current bookkeeping value (list of three ``;``-joined groups)
        base_config: Vendor config snapshot taken at parse time
        updated_config: Rewritten vendor config
        touched_keys: Vendor keys written during this pass

    Returns:
        Three sorted, ``;``-joined group strings (empty string for empty groups)

    Example:
        >>> update_bookkeeping(["", "", ""], {"nozzle_temperature": ["220"]},
        ...                    {"nozzle_temperature": ["240"]}, ["nozzle_temperature"])
        ['', 'compatible_printers;nozzle_temperature', '']
    """
    groups = parse_bookkeeping_groups(existing)
    merged = [set(keys) for keys in groups]
    existing_group = {key: index for index, keys in enumerate(groups) for key in keys}

    for key in touched_keys:
        if key == BOOKKEEPING_KEY:
            continue
        if config_values_equal(base_config.get(key), updated_config.get(key)):
            continue
        merged[_resolve_group(key, existing_group)].add(key)

    if merged[FILAMENT_GROUP]:
        merged[FILAMENT_GROUP].add(FILAMENT_GROUP_SENTINEL)

    return [";".join(sorted(keys)) for keys in merged]


def parse_bookkeeping_groups(existing: Any) -> list[list[str]]:
    """Split the bookkeeping value into exactly three key lists."""
    raw_groups = existing if isinstance(existing, list) else []
    groups = []
    for index in range(BOOKKEEPING_GROUP_COUNT):
        raw = raw_groups[index] if index < len(raw_groups) and isinstance(raw_groups[index], str) else ""
        groups.append([key.strip() for key in raw.split(";") if key.strip()])
    return groups


def config_values_equal(a: Any, b: Any) -> bool:
    """Array-aware, type-strict equality of two vendor values."""
    if isinstance(a, list) or isinstance(b, list):
        if not (isinstance(a, list) and isinstance(b, list)) or len(a) != len(b):
            return False
        return all(config_values_equal(x, y) for x, y in zip(a, b))
    return type(a) is type(b) and a == b


def build_updated_archive_entries(
    parsed: ParsedArchive,
    model: NormalizedProject,
) -> dict[str, bytes]:
    """Return the archive entries with metadata and config rewritten.

    The metadata entry goes to its original path (``metadata.json`` when the
    archive had none). The config entry is rewritten only when the parser
    used one. Every other entry is returned unchanged.

    Raises:
        ArchiveWriteError: If the updated documents cannot be serialized
    """
    entries = dict(parsed.entries)
    metadata_path = parsed.metadata_path or DEFAULT_METADATA_PATH
    metadata = update_metadata_from_normalized(parsed.metadata, model)
    entries[metadata_path] = _dump_json(metadata, metadata_path)

    if parsed.config_path is not None:
        config = build_config_from_normalized(parsed.config_data or {}, model)
        entries[parsed.config_path] = _dump_json(config, parsed.config_path)
    return entries


def write_updated_archive(
    parsed: ParsedArchive,
    model: NormalizedProject,
    output_path: Path,
) -> None:
    """Write the updated archive to ``output_path``."""
    write_archive_file(build_updated_archive_entries(parsed, model), output_path)


def _object_metadata(name: str, geometry: dict[str, Any] | None, override: dict[str, Any] | None) -> dict[str, Any]:
    data: dict[str, Any] = {"name": name}
    if geometry and geometry.get("bounding_box_mm") is not None:
        data["bounding_box_mm"] = geometry["bounding_box_mm"]
    data["geometry"] = geometry
    if override is not None:
        data["settings"] = copy.deepcopy(override)
    return data


def _write_mapped_settings(config: dict[str, Any], process: dict[str, Any], touched: list[str]) -> None:
    for mapping in GLOBAL_PROCESS_MAPPINGS:
        if mapping.target_key not in process:
            continue
        formatted = mapping.serialize(process[mapping.target_key])
        if formatted is None:
            continue
        if mapping.mode is WriteMode.SHAPED:
            config[mapping.config_key] = to_config_value(config.get(mapping.config_key), formatted)
        else:
            config[mapping.config_key] = formatted
        _touch(touched, mapping.config_key)


def _write_adhesion(config: dict[str, Any], adhesion_type: Any, touched: list[str]) -> None:
    for key, value in adhesion_config_values(adhesion_type, config).items():
        config[key] = value
        _touch(touched, key)


def _write_printer_and_filament(config: dict[str, Any], summary: ProjectSummary, touched: list[str]) -> None:
    nozzle_diameter = summary.printer.nozzle_diameter_mm
    if nozzle_diameter is not None:
        existing = config.get("nozzle_diameter")
        if existing is None:
            config["nozzle_diameter"] = [to_config_string(nozzle_diameter)]
        else:
            config["nozzle_diameter"] = to_config_value(existing, nozzle_diameter)
        _touch(touched, "nozzle_diameter")

    family = summary.filaments[0].material_family if summary.filaments else None
    if family:
        # Only the first filament slot is described by the model
        existing = config.get("filament_type")
        rest = list(existing[1:]) if isinstance(existing, list) else []
        config["filament_type"] = [family, *rest]
        _touch(touched, "filament_type")

    base_profile = summary.base_profile if summary.base_profile is not None else config.get("default_print_profile")
    if base_profile is not None:
        config["default_print_profile"] = base_profile
        _touch(touched, "default_print_profile")


def _write_speeds(config: dict[str, Any], speeds: Any, touched: list[str]) -> None:
    if not isinstance(speeds, dict):
        return
    for mapping in SPEED_MAPPINGS:
        if speeds.get(mapping.speed_key) is None:
            continue
        config[mapping.config_key] = to_config_value(config.get(mapping.config_key), speeds[mapping.speed_key])
        _touch(touched, mapping.config_key)


def _write_pass_through(config: dict[str, Any], process: dict[str, Any], touched: list[str]) -> None:
    for key, value in process.items():
        if key in MAPPED_TARGET_KEYS or key in MAPPED_CONFIG_KEYS:
            continue
        if key in ("speeds", "adhesion_type") or not is_pass_through_key(key):
            continue
        if value is None:
            continue
        config[key] = to_config_value(config.get(key), value)
        _touch(touched, key)


def _touch(touched: list[str], key: str) -> None:
    if key not in touched:
        touched.append(key)


def _dump_json(document: dict[str, Any], entry_path: str) -> bytes:
    try:
        return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ArchiveWriteError(
            f"Failed to serialize {entry_path}: {e}",
            entry_path=entry_path,
            reason=type(e).__name__,
        ) from e


def _resolve_group(key: str, existing_group: dict[str, int]) -> int:
    if key in existing_group:
        return existing_group[key]
    for index, keys in BOOKKEEPING_CATEGORIES.items():
        if key in keys:
            return index
    return PRINT_GROUP
