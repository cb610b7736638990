"""Archive parser: raw project archive → canonical normalized project model.

The parser reads three kinds of entries:

1. A metadata document (JSON) holding printer, filaments, plates and
   canonical settings written by an earlier run or by the slicer.
2. The first "useful" vendor project config (JSON) that enriches the
   metadata with printer/filament details and mapped process settings.
3. Embedded plate preview images.

An archive without any metadata entry is a valid degraded case: the model
falls back to default global settings and has no plates. Malformed JSON in
the metadata entry or in a config candidate is fatal.
"""

import base64
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from slicer_copilot.archive.io import read_archive_entries
from slicer_copilot.archive.mapping import (
    BOOKKEEPING_KEY,
    first,
    map_config_to_settings,
    number_or_none,
)
from slicer_copilot.core.constants import (
    DEFAULT_GLOBAL_PROCESS,
    DEFAULT_NOZZLE_DIAMETER_MM,
    DEFAULT_SPEEDS,
    SLENDER_RATIO_THRESHOLD,
)
from slicer_copilot.core.exceptions import ArchiveFormatError
from slicer_copilot.core.model import (
    CurrentSettings,
    Filament,
    NormalizedProject,
    Plate,
    PlateImage,
    PlateObject,
    Printer,
    ProjectSummary,
)
from slicer_copilot.core.overrides import DEFAULT_OBJECT_NAME, make_object_key

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "project.3mf"
UNKNOWN_PRINTER = "Unknown printer"
UNKNOWN_FILAMENT = "Unknown filament"

METADATA_CANDIDATES = (
    "BambuStudio/metadata.json",
    "Metadata/metadata.json",
    "metadata.json",
)

CONFIG_NAME_MARKERS = ("config", "setting", "profile", "project", "preset")
CONFIG_SUFFIXES = (".json", ".config")

# A config is used only when it carries at least one of these keys
CONFIG_SIGNAL_KEYS = (
    "printer_model",
    "default_print_profile",
    "nozzle_diameter",
    "filament_type",
    "layer_height",
    "initial_layer_print_height",
    BOOKKEEPING_KEY,
    "curr_bed_type",
)

# Checked in order; the first substring match wins
MATERIAL_FAMILIES = (
    ("PLA", "PLA"),
    ("PETG", "PETG"),
    ("ABS", "ABS"),
    ("ASA", "ASA"),
    ("TPU", "TPU"),
    ("NYLON", "Nylon"),
    ("PC", "PC"),
)
OTHER_MATERIAL_FAMILY = "Other"

PLATE_IMAGE_PATTERN = re.compile(r"metadata/plate_(\d+)\.png$", re.IGNORECASE)


@dataclass
class ParsedArchive:
    """Everything the pipeline needs from a parsed archive.

    Attributes:
        file_name: Name of the source archive
        entries: Every archive entry as raw bytes, in archive order
        metadata_path: Path of the metadata entry, or None when absent
        metadata: Metadata document enriched with the project config
        config_path: Path of the project config used, or None
        config_data: The raw project config used, or None
        plate_images: Embedded plate previews
        normalized: The canonical normalized project model
    """

    file_name: str
    entries: dict[str, bytes]
    metadata_path: str | None
    metadata: dict[str, Any]
    config_path: str | None
    config_data: dict[str, Any] | None
    normalized: NormalizedProject
    plate_images: list[PlateImage] = field(default_factory=list)


def parse_archive_file(path: Path) -> ParsedArchive:
    """Parse a project archive from disk.

    Raises:
        ArchiveFormatError: If the file cannot be read or parsed
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ArchiveFormatError(
            f"Failed to read archive: {e}",
            file_name=str(path),
            reason=type(e).__name__,
        ) from e
    return parse_archive(data, str(path))


def parse_archive(data: bytes, file_name: str = DEFAULT_FILE_NAME) -> ParsedArchive:
    """Parse an in-memory project archive.

    Args:
        data: Raw archive bytes
        file_name: Archive name recorded in the model

    Returns:
        ParsedArchive with the normalized model and everything needed to
        write an updated archive later

    Raises:
        ArchiveFormatError: If the ZIP is unreadable or a required JSON entry
            is malformed

    Example:
        >>> parsed = parse_archive(Path("bracket.3mf").read_bytes(), "bracket.3mf")
        >>> parsed.normalized.current_settings.global_process["layer_height_mm"]
        0.2
    """
    entries = read_archive_entries(data, file_name)
    return parse_entries(entries, file_name)


def parse_entries(entries: dict[str, bytes], file_name: str = DEFAULT_FILE_NAME) -> ParsedArchive:
    """Parse an already-unpacked archive entry mapping."""
    metadata_path = find_metadata_path(entries)
    metadata: dict[str, Any] = {}
    if metadata_path is not None:
        raw = read_json_entry(entries, metadata_path, file_name)
        if isinstance(raw, dict):
            metadata = raw
        else:
            logger.warning(f"Metadata entry {metadata_path} is not a JSON object; ignoring it")
    else:
        logger.info(f"No metadata entry in {file_name}; using default settings")

    config_path, config_data = merge_config(entries, metadata, metadata_path, file_name)
    plate_images = collect_plate_images(entries)
    normalized = build_normalized_project(metadata, file_name, config_data)

    logger.debug(
        f"Parsed {file_name}: metadata={metadata_path}, config={config_path}, "
        f"plates={len(normalized.project_summary.plates)}, images={len(plate_images)}"
    )
    return ParsedArchive(
        file_name=file_name,
        entries=entries,
        metadata_path=metadata_path,
        metadata=metadata,
        config_path=config_path,
        config_data=config_data,
        plate_images=plate_images,
        normalized=normalized,
    )


def find_metadata_path(entries: dict[str, bytes]) -> str | None:
    for candidate in METADATA_CANDIDATES:
        if candidate in entries:
            return candidate
    return None


def read_json_entry(entries: dict[str, bytes], entry_path: str, file_name: str | None = None) -> Any:
    """Decode and parse one JSON archive entry.

    Raises:
        ArchiveFormatError: If the entry is not valid UTF-8 JSON
    """
    try:
        return json.loads(entries[entry_path].decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ArchiveFormatError(
            f"Failed to parse JSON at {entry_path}: {e}",
            entry_path=entry_path,
            file_name=file_name,
        ) from e


def find_config_candidates(entries: dict[str, bytes], metadata_path: str | None) -> list[str]:
    """List entries that look like a vendor project config, in archive order."""
    candidates = []
    for name in entries:
        if name == metadata_path:
            continue
        lower = name.lower()
        if lower.endswith(CONFIG_SUFFIXES) and any(marker in lower for marker in CONFIG_NAME_MARKERS):
            candidates.append(name)
    return candidates


def is_config_useful(config: dict[str, Any]) -> bool:
    """Check that a config carries at least one signal key with a value."""
    return any(_has_value(config.get(key)) for key in CONFIG_SIGNAL_KEYS)


def merge_config(
    entries: dict[str, bytes],
    metadata: dict[str, Any],
    metadata_path: str | None,
    file_name: str | None = None,
) -> tuple[str | None, dict[str, Any] | None]:
    """Find the first useful project config and merge it into ``metadata``.

    XML documents that share the config naming scheme (per-object model
    settings) are skipped rather than treated as malformed JSON.

    Returns:
        ``(config_path, config_data)``, or ``(None, None)`` when no useful
        config exists
    """
    for config_path in find_config_candidates(entries, metadata_path):
        if _looks_like_xml(entries[config_path]):
            logger.debug(f"Skipping XML config candidate {config_path}")
            continue
        config = read_json_entry(entries, config_path, file_name)
        if not isinstance(config, dict) or not is_config_useful(config):
            logger.debug(f"Ignoring config candidate {config_path} without signal keys")
            continue

        apply_config(metadata, config)
        logger.info(f"Using project config {config_path}")
        return config_path, config
    return None, None


def apply_config(metadata: dict[str, Any], config: dict[str, Any]) -> None:
    """Enrich the metadata document in place with project config values."""
    printer = metadata.get("printer")
    if not isinstance(printer, dict):
        printer = {}
        metadata["printer"] = printer
    printer["name"] = _coalesce(config.get("printer_model"), printer.get("name"))
    printer["nozzle_diameter_mm"] = _coalesce(
        number_or_none(first(config.get("nozzle_diameter"))),
        printer.get("nozzle_diameter_mm"),
    )
    printer["bed_type"] = _coalesce(config.get("curr_bed_type"), printer.get("bed_type"))

    filament_type = first(config.get("filament_type"))
    material_family = map_material_family(filament_type)
    settings_id = first(config.get("filament_settings_id"))
    filament_name = (
        settings_id
        or " ".join(str(part) for part in (config.get("filament_vendor"), filament_type) if part).strip()
        or UNKNOWN_FILAMENT
    )

    filaments = metadata.get("filaments")
    if isinstance(filaments, list) and filaments and isinstance(filaments[0], dict):
        if settings_id:
            filaments[0]["name"] = settings_id
        if material_family != OTHER_MATERIAL_FAMILY:
            filaments[0]["material_family"] = material_family
    else:
        nozzle_range = [
            number_or_none(first(config.get("nozzle_temperature_range_low"))),
            number_or_none(first(config.get("nozzle_temperature_range_high"))),
        ]
        metadata["filaments"] = [
            {
                "id": "0",
                "name": filament_name,
                "material_family": material_family,
                "color": first(config.get("filament_colour")),
                "nozzle_temp_recommended_range_c": [v for v in nozzle_range if v is not None],
            }
        ]

    metadata["quality_preset"] = _coalesce(
        config.get("default_print_profile"), metadata.get("quality_preset")
    )
    base_settings = metadata.get("settings")
    metadata["settings"] = map_config_to_settings(
        config, base_settings if isinstance(base_settings, dict) else {}
    )


def map_material_family(filament_type: Any) -> str:
    """Map a vendor filament type to a coarse material family.

    Example:
        >>> map_material_family("PETG-CF")
        'PETG'
        >>> map_material_family(None)
        'Other'
    """
    if not filament_type:
        return OTHER_MATERIAL_FAMILY
    upper = str(filament_type).upper()
    for marker, family in MATERIAL_FAMILIES:
        if marker in upper:
            return family
    return OTHER_MATERIAL_FAMILY


def build_normalized_project(
    metadata: dict[str, Any],
    file_name: str,
    config_data: dict[str, Any] | None,
) -> NormalizedProject:
    """Build the canonical model from enriched metadata and the used config."""
    printer = metadata.get("printer") if isinstance(metadata.get("printer"), dict) else {}
    raw_filaments = metadata.get("filaments") if isinstance(metadata.get("filaments"), list) else []
    settings = metadata.get("settings") if isinstance(metadata.get("settings"), dict) else {}
    plates = build_plates(metadata)

    summary = ProjectSummary(
        file_name=file_name,
        printer=Printer(
            name=_coalesce(printer.get("name"), UNKNOWN_PRINTER),
            nozzle_diameter_mm=_coalesce(printer.get("nozzle_diameter_mm"), DEFAULT_NOZZLE_DIAMETER_MM),
            bed_size_mm=printer.get("bed_size_mm"),
            bed_type=printer.get("bed_type"),
        ),
        filaments=[
            _build_filament(raw, index)
            for index, raw in enumerate(raw_filaments)
            if isinstance(raw, dict)
        ],
        base_profile=_coalesce(metadata.get("quality_preset"), metadata.get("base_profile")),
        plates=plates,
    )
    return NormalizedProject(
        file_name=file_name,
        project_summary=summary,
        current_settings=CurrentSettings(
            global_process=build_global_process(settings),
            per_object_overrides=collect_overrides(plates),
        ),
        user_modified_settings=extract_user_modified_settings(config_data),
    )


def build_global_process(settings: dict[str, Any]) -> dict[str, Any]:
    """Fill the fixed set of canonical defaults on top of the given settings.

    ``first_layer_height_mm`` falls back to ``layer_height_mm`` and
    ``first_layers_fan_percent`` to ``fan_speed_percent`` before the
    built-in defaults apply.
    """
    speeds = dict(DEFAULT_SPEEDS)
    if isinstance(settings.get("speeds"), dict):
        speeds.update(settings["speeds"])

    process = dict(settings)
    for key, default in DEFAULT_GLOBAL_PROCESS.items():
        process[key] = _coalesce(settings.get(key), default)
    process["first_layer_height_mm"] = _coalesce(
        settings.get("first_layer_height_mm"),
        settings.get("layer_height_mm"),
        DEFAULT_GLOBAL_PROCESS["first_layer_height_mm"],
    )
    process["first_layers_fan_percent"] = _coalesce(
        settings.get("first_layers_fan_percent"),
        settings.get("fan_speed_percent"),
        DEFAULT_GLOBAL_PROCESS["first_layers_fan_percent"],
    )
    process["speeds"] = speeds
    return process


def build_plates(metadata: dict[str, Any]) -> list[Plate]:
    raw_plates = metadata.get("plates")
    if not isinstance(raw_plates, list):
        return []

    plates = []
    for position, raw_plate in enumerate(raw_plates):
        raw_plate = raw_plate if isinstance(raw_plate, dict) else {}
        index = _coalesce(raw_plate.get("index"), position)
        objects = []
        raw_objects = raw_plate.get("objects")
        if not isinstance(raw_objects, list):
            raw_objects = []
        for raw_object in raw_objects:
            if not isinstance(raw_object, dict):
                continue
            objects.append(
                PlateObject(
                    name=_coalesce(raw_object.get("name"), DEFAULT_OBJECT_NAME),
                    plate_index=index,
                    geometry=_coalesce(
                        raw_object.get("geometry"),
                        build_geometry_from_bounding(raw_object.get("bounding_box_mm")),
                    ),
                    settings=raw_object.get("settings"),
                )
            )
        plates.append(
            Plate(
                index=index,
                name=_coalesce(raw_plate.get("name"), f"Plate {position + 1}"),
                objects=objects,
            )
        )
    return plates


def build_geometry_from_bounding(bounding: Any) -> dict[str, Any] | None:
    """Derive geometry hints from an ``[x, y, z]`` bounding box in mm.

    The slenderness ratio is height over the smallest extent; a zero extent
    leaves the ratio undefined and the object not slender.

    Example:
        >>> build_geometry_from_bounding([10, 10, 50])["is_slender"]
        True
    """
    if not isinstance(bounding, (list, tuple)) or len(bounding) < 3:
        return None
    dims = [number_or_none(value) for value in bounding[:3]]
    if any(value is None for value in dims):
        return None

    height = dims[2]
    max_dimension = max(dims)
    min_dimension = min(dims)
    ratio = None if min_dimension == 0 else height / min_dimension
    return {
        "bounding_box_mm": bounding,
        "max_dimension_mm": max_dimension,
        "min_dimension_mm": min_dimension,
        "height_to_min_footprint_ratio": ratio,
        "is_slender": bool(ratio) and ratio > SLENDER_RATIO_THRESHOLD,
    }


def collect_overrides(plates: list[Plate]) -> dict[str, dict[str, Any]]:
    """Seed the override store from plate-level object settings."""
    overrides: dict[str, dict[str, Any]] = {}
    for plate in plates:
        for obj in plate.objects:
            if not obj.settings:
                continue
            overrides[make_object_key(obj.name, plate.index)] = {
                **obj.settings,
                "plateIndex": plate.index,
                "objectName": obj.name,
            }
    return overrides


def extract_user_modified_settings(config: dict[str, Any] | None) -> list[str]:
    """Flatten the vendor bookkeeping groups into one ordered, deduplicated list.

    Example:
        >>> extract_user_modified_settings(
        ...     {"different_settings_to_system": ["wall_loops;layer_height", "", "wall_loops"]}
        ... )
        ['wall_loops', 'layer_height']
    """
    groups = (config or {}).get(BOOKKEEPING_KEY)
    if not isinstance(groups, list):
        return []

    keys: dict[str, None] = {}
    for group in groups:
        if not isinstance(group, str):
            continue
        for key in group.split(";"):
            key = key.strip()
            if key:
                keys.setdefault(key, None)
    return list(keys)


def collect_plate_images(entries: dict[str, bytes]) -> list[PlateImage]:
    """Collect ``Metadata/plate_<n>.png`` previews as base64 data URLs."""
    images: dict[str, PlateImage] = {}
    for entry_path, content in entries.items():
        match = PLATE_IMAGE_PATTERN.search(entry_path)
        if match is None:
            continue
        encoded = base64.b64encode(content).decode("ascii")
        images[entry_path] = PlateImage(
            plate_index=int(match.group(1)) - 1,
            name=entry_path.rsplit("/", 1)[-1],
            data_url=f"data:image/png;base64,{encoded}",
        )
    return list(images.values())


def _build_filament(raw: dict[str, Any], index: int) -> Filament:
    return Filament(
        id=str(_coalesce(raw.get("id"), index)),
        name=_coalesce(raw.get("name"), UNKNOWN_FILAMENT),
        material_family=_coalesce(raw.get("material_family"), OTHER_MATERIAL_FAMILY),
        color=raw.get("color"),
        nozzle_temp_recommended_range_c=raw.get("nozzle_temp_recommended_range_c"),
        bed_temp_recommended_range_c=raw.get("bed_temp_recommended_range_c"),
    )


def _coalesce(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _has_value(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (int, float)):
        return value != 0
    return True


def _looks_like_xml(content: bytes) -> bool:
    return content.lstrip(b"\xef\xbb\xbf \t\r\n").startswith(b"<")
