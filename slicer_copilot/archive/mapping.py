"""Bidirectional mapping between vendor config keys and canonical settings.

The vendor project config is loosely typed: every value is a string, and a
value may be a scalar or an array replicated once per extruder/filament. This
module declares how each known vendor key maps onto the canonical settings
model and back.

Mapping rules:
    - ``GLOBAL_PROCESS_MAPPINGS`` is evaluated in declaration order. Several
      vendor keys may feed the same canonical key; the first one that parses
      to a non-None value wins and later ones are skipped.
    - ``SPEED_MAPPINGS`` feeds the nested ``speeds`` mapping.
    - ``raft_layers`` / ``brim_width`` derive the canonical ``adhesion_type``.
    - ``PASS_THROUGH_CONFIG_KEYS`` are copied verbatim in both directions.
    - Everything else is dropped on the way in and never fabricated on the
      way out.

On the way out every value goes through ``VendorValue`` so the written entry
keeps the scalar/array shape (and array length) of the original entry.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

ADHESION_TYPES = ("none", "skirt", "brim", "raft")
DEFAULT_BRIM_WIDTH = "5"
DEFAULT_RAFT_LAYERS = "1"

BOOKKEEPING_KEY = "different_settings_to_system"


class WriteMode(Enum):
    """How a mapped value is written back into the vendor config.

    Attributes:
        SHAPED: Keep the original scalar/array shape of the entry
        DIRECT: Always write a scalar
    """

    SHAPED = "shaped"
    DIRECT = "direct"


@dataclass(frozen=True)
class VendorValue:
    """A vendor config value tagged with its shape.

    Vendor entries are either a scalar string or an array of strings. The tag
    is carried explicitly so writes can replicate new content into the exact
    original shape.

    Attributes:
        items: The element(s) of the value; empty when the key is absent
        is_array: True if the vendor entry is a JSON array

    Example:
        >>> VendorValue.from_raw(["240", "240"]).replace_content("250").to_raw()
        ['250', '250']
        >>> VendorValue.from_raw("0.2").replace_content("0.16").to_raw()
        '0.16'
    """

    items: tuple[Any, ...]
    is_array: bool

    @classmethod
    def from_raw(cls, raw: Any) -> "VendorValue":
        if raw is None:
            return cls(items=(), is_array=False)
        if isinstance(raw, (list, tuple)):
            return cls(items=tuple(raw), is_array=True)
        return cls(items=(raw,), is_array=False)

    @property
    def is_present(self) -> bool:
        return self.is_array or bool(self.items)

    def first(self) -> Any:
        return self.items[0] if self.items else None

    def replace_content(self, content: str) -> "VendorValue":
        """Return a value with the same shape holding ``content`` in every slot.

        An empty array becomes a one-element array; an absent value becomes a
        scalar.
        """
        if self.is_array:
            return VendorValue(items=(content,) * max(len(self.items), 1), is_array=True)
        return VendorValue(items=(content,), is_array=False)

    def to_raw(self) -> Any:
        if self.is_array:
            return list(self.items)
        return self.first()


def first(value: Any) -> Any:
    """Return the first element of an array value, or the value itself."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def unwrap_single(value: Any) -> Any:
    """Unwrap one-element arrays, which carry no meaning in vendor configs."""
    if isinstance(value, list) and len(value) == 1:
        return value[0]
    return value


def normalize_config_entries(config: dict[str, Any] | None) -> dict[str, Any]:
    """Return a copy of the config with every one-element array unwrapped."""
    return {key: unwrap_single(value) for key, value in (config or {}).items()}


def number_or_none(value: Any) -> int | float | None:
    """Coerce a vendor value to a number.

    Integral text becomes an ``int`` so that re-serialized values keep their
    original spelling (``"3"`` round-trips as ``"3"``, not ``"3.0"``).

    Args:
        value: String, number or None

    Returns:
        The parsed number, or None when missing, non-numeric or non-finite

    Example:
        >>> number_or_none("3")
        3
        >>> number_or_none("0.22")
        0.22
        >>> number_or_none("abc") is None
        True
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def percent_to_number(value: Any) -> int | float | None:
    """Convert a percent-like value (``"15%"``, ``"15"``, ``15``) to a number."""
    if value is None:
        return None
    return number_or_none(str(value).replace("%", "").strip())


def format_number(value: int | float) -> str:
    """Format a number the way the vendor config spells it (no trailing ``.0``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_config_string(value: Any) -> str:
    """Render a canonical scalar as vendor config text.

    Booleans use the vendor's ``"1"``/``"0"`` flag spelling.
    """
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return format_number(value)
    return str(value)


def to_config_value(existing: Any, value: Any) -> Any:
    """Write ``value`` into the shape of ``existing``.

    Lists supplied by pass-through settings are written element-wise as an
    array; every other value is replicated across the existing shape.

    Args:
        existing: The current raw vendor value (None when absent)
        value: The canonical value to write

    Returns:
        The raw vendor value to store, or ``existing`` when ``value`` is None
    """
    if value is None:
        return existing
    if isinstance(value, (list, tuple)):
        return [to_config_string(item) for item in value]
    return VendorValue.from_raw(existing).replace_content(to_config_string(value)).to_raw()


def parse_number(value: Any) -> int | float | None:
    return number_or_none(first(value))


def parse_percent(value: Any) -> int | float | None:
    return percent_to_number(first(value))


def parse_string(value: Any) -> str | None:
    raw = first(value)
    return None if raw is None else str(raw)


def parse_flag(value: Any) -> bool | None:
    raw = first(value)
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in ("1", "true")


def serialize_passthrough(value: Any) -> str | None:
    return None if value is None else to_config_string(value)


def serialize_percent(value: Any) -> str | None:
    if value is None:
        return None
    return f"{to_config_string(value).rstrip('%')}%"


def serialize_flag(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return "0" if value.strip().lower() in ("", "0", "false") else "1"
    return "1" if value else "0"


@dataclass(frozen=True)
class ConfigMapping:
    """One vendor key ⇄ canonical key mapping.

    Attributes:
        config_key: Vendor config key
        target_key: Canonical settings key
        parse: Vendor value → canonical value (None when absent/invalid)
        serialize: Canonical value → vendor text (None when not representable)
        mode: Shape handling on write
    """

    config_key: str
    target_key: str
    parse: Callable[[Any], Any] = parse_number
    serialize: Callable[[Any], str | None] = serialize_passthrough
    mode: WriteMode = WriteMode.SHAPED


@dataclass(frozen=True)
class SpeedMapping:
    """Vendor speed key ⇄ ``speeds.<role>`` entry."""

    config_key: str
    speed_key: str


# Order matters: the first mapping that parses wins for a shared target key
GLOBAL_PROCESS_MAPPINGS: tuple[ConfigMapping, ...] = (
    ConfigMapping("layer_height", "layer_height_mm"),
    ConfigMapping("initial_layer_print_height", "first_layer_height_mm"),
    ConfigMapping("wall_loops", "wall_line_count"),
    ConfigMapping("top_shell_layers", "top_layers"),
    ConfigMapping("bottom_shell_layers", "bottom_layers"),
    ConfigMapping(
        "sparse_infill_density",
        "infill_density_percent",
        parse=parse_percent,
        serialize=serialize_percent,
        mode=WriteMode.DIRECT,
    ),
    ConfigMapping(
        "sparse_infill_pattern",
        "infill_pattern",
        parse=parse_string,
        mode=WriteMode.DIRECT,
    ),
    ConfigMapping("nozzle_temperature", "nozzle_temp_c"),
    ConfigMapping("nozzle_temperature_initial_layer", "nozzle_temp_c"),
    ConfigMapping("eng_plate_temp", "bed_temp_c"),
    ConfigMapping("hot_plate_temp", "bed_temp_c"),
    ConfigMapping("fan_max_speed", "fan_speed_percent"),
    ConfigMapping("first_x_layer_fan_speed", "first_layers_fan_percent"),
    ConfigMapping(
        "enable_support",
        "supports_enabled",
        parse=parse_flag,
        serialize=serialize_flag,
        mode=WriteMode.DIRECT,
    ),
)

SPEED_MAPPINGS: tuple[SpeedMapping, ...] = (
    SpeedMapping("outer_wall_speed", "wall_outer"),
    SpeedMapping("inner_wall_speed", "wall_inner"),
    SpeedMapping("sparse_infill_speed", "infill"),
    SpeedMapping("initial_layer_speed", "first_layer"),
)

# Vendor keys copied verbatim into the canonical settings and back
PASS_THROUGH_CONFIG_KEYS: frozenset[str] = frozenset(
    {
        # Speeds
        "travel_speed",
        "bridge_speed",
        "small_perimeter_speed",
        "top_surface_speed",
        "gap_infill_speed",
        "support_speed",
        "support_interface_speed",
        "internal_solid_infill_speed",
        "initial_layer_infill_speed",
        "overhang_1_4_speed",
        "overhang_2_4_speed",
        "overhang_3_4_speed",
        "overhang_4_4_speed",
        # Acceleration and jerk
        "travel_acceleration",
        "travel_jerk",
        "outer_wall_acceleration",
        "inner_wall_acceleration",
        "sparse_infill_acceleration",
        "initial_layer_acceleration",
        "top_surface_acceleration",
        "default_acceleration",
        "default_jerk",
        "infill_jerk",
        "inner_wall_jerk",
        "outer_wall_jerk",
        "initial_layer_jerk",
        "top_surface_jerk",
        # Cooling
        "overhang_fan_speed",
        "overhang_fan_threshold",
        "overhang_threshold_participating_cooling",
        "slow_down_layer_time",
        "slow_down_min_speed",
        "fan_min_speed",
        "fan_cooling_layer_time",
        "full_fan_speed_layer",
        "close_fan_the_first_x_layers",
        "enable_overhang_bridge_fan",
        # Line widths
        "line_width",
        "outer_wall_line_width",
        "inner_wall_line_width",
        "sparse_infill_line_width",
        "initial_layer_line_width",
        "internal_solid_infill_line_width",
        "top_surface_line_width",
        "support_line_width",
        # Walls
        "wall_sequence",
        "wall_generator",
        "detect_thin_wall",
        "detect_overhang_wall",
        "only_one_wall_first_layer",
        "min_bead_width",
        "min_feature_size",
        "wall_distribution_count",
        "wall_transition_angle",
        "wall_transition_length",
        "wall_transition_filter_deviation",
        "precise_outer_wall",
        # Top/bottom surfaces
        "top_surface_pattern",
        "bottom_surface_pattern",
        "ironing_type",
        "ironing_speed",
        "ironing_flow",
        "ironing_spacing",
        "ironing_pattern",
        "top_solid_infill_flow_ratio",
        "top_one_wall_type",
        # Infill
        "sparse_infill_anchor",
        "sparse_infill_anchor_max",
        "infill_direction",
        "infill_wall_overlap",
        "infill_combination",
        "minimum_sparse_infill_area",
        "internal_solid_infill_pattern",
        "filter_out_gap_fill",
        # Supports
        "support_threshold_angle",
        "support_style",
        "support_type",
        "support_top_z_distance",
        "support_bottom_z_distance",
        "support_object_xy_distance",
        "support_on_build_plate_only",
        "support_critical_regions_only",
        "support_interface_top_layers",
        "support_interface_bottom_layers",
        "support_interface_spacing",
        "support_interface_pattern",
        "support_base_pattern",
        "support_base_pattern_spacing",
        "support_expansion",
        "independent_support_layer_height",
        "tree_support_branch_angle",
        "tree_support_branch_diameter",
        "tree_support_branch_diameter_angle",
        "tree_support_branch_distance",
        "tree_support_wall_count",
        # Adhesion
        "brim_width",
        "brim_type",
        "brim_object_gap",
        "skirt_distance",
        "skirt_loops",
        "skirt_height",
        "raft_layers",
        "raft_contact_distance",
        "raft_expansion",
        "raft_first_layer_density",
        "raft_first_layer_expansion",
        # Retraction
        "z_hop",
        "z_hop_types",
        "retraction_length",
        "retraction_speed",
        "retraction_minimum_travel",
        "retract_when_changing_layer",
        "wipe",
        "wipe_distance",
        "wipe_speed",
        "retract_before_wipe",
        "deretraction_speed",
        # Flow
        "filament_flow_ratio",
        "print_flow_ratio",
        "initial_layer_flow_ratio",
        "bridge_flow",
        "filament_max_volumetric_speed",
        # Seam
        "seam_position",
        "seam_gap",
        "seam_slope_type",
        "seam_slope_conditional",
        "seam_slope_inner_walls",
        "seam_slope_steps",
        "seam_slope_start_height",
        "seam_slope_min_length",
        # Dimensional accuracy
        "xy_hole_compensation",
        "xy_contour_compensation",
        "elefant_foot_compensation",
        "resolution",
        "slice_closing_radius",
        # Special modes
        "spiral_mode",
        "spiral_mode_smooth",
        "spiral_mode_max_xy_smoothing",
        "fuzzy_skin",
        "fuzzy_skin_thickness",
        "fuzzy_skin_point_distance",
        # Bridges
        "thick_bridges",
        "bridge_no_support",
        "bridge_angle",
        "max_bridge_length",
        "internal_bridge_support_thickness",
        # Pressure advance and arc fitting
        "pressure_advance",
        "enable_pressure_advance",
        "enable_arc_fitting",
        # Prime tower
        "enable_prime_tower",
        "prime_tower_width",
        "prime_tower_rib_width",
        "prime_tower_lift_height",
        "prime_tower_max_speed",
        "prime_tower_brim_width",
        "wipe_tower_x",
        "wipe_tower_y",
        # Misc
        "avoid_crossing_wall",
        "reduce_crossing_wall",
        "reduce_infill_retraction",
        "complete_objects",
        "print_sequence",
        "exclude_object",
    }
)

# Script and template fields are never echoed back as optimizable settings
_SCRIPT_KEY_MARKERS = ("gcode", "template", "script")

CONSUMED_CONFIG_KEYS: frozenset[str] = frozenset(
    [mapping.config_key for mapping in GLOBAL_PROCESS_MAPPINGS]
    + [mapping.config_key for mapping in SPEED_MAPPINGS]
    + ["raft_layers", BOOKKEEPING_KEY]
)

MAPPED_TARGET_KEYS: frozenset[str] = frozenset(
    mapping.target_key for mapping in GLOBAL_PROCESS_MAPPINGS
)

# Vendor keys owned by explicit or derived mappings on the way out
MAPPED_CONFIG_KEYS: frozenset[str] = frozenset(
    [mapping.config_key for mapping in GLOBAL_PROCESS_MAPPINGS]
    + [mapping.config_key for mapping in SPEED_MAPPINGS]
    + ["brim_width", "raft_layers"]
)


def is_pass_through_key(key: str) -> bool:
    """Check whether a vendor key may be copied verbatim in both directions."""
    if key not in PASS_THROUGH_CONFIG_KEYS:
        return False
    lowered = key.lower()
    return not any(marker in lowered for marker in _SCRIPT_KEY_MARKERS)


def map_config_to_settings(
    config: dict[str, Any] | None,
    base_settings: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Map a vendor project config onto the canonical settings shape.

    ``base_settings`` (typically settings from the metadata document) is the
    starting point. Mapped keys parsed from the config replace base values;
    base values survive only where the config yields nothing. Pass-through
    keys never replace a value already present in the base.

    Args:
        config: Raw vendor config (values are strings or arrays of strings)
        base_settings: Existing canonical settings to extend

    Returns:
        A new canonical settings dictionary

    Example:
        >>> settings = map_config_to_settings({"sparse_infill_density": "15%"})
        >>> settings["infill_density_percent"]
        15
    """
    normalized = normalize_config_entries(config)
    settings = dict(base_settings or {})
    populated: set[str] = set()

    for mapping in GLOBAL_PROCESS_MAPPINGS:
        if mapping.target_key in populated:
            continue
        parsed = mapping.parse(normalized.get(mapping.config_key))
        if parsed is None:
            continue
        settings[mapping.target_key] = parsed
        populated.add(mapping.target_key)

    _apply_adhesion_from_config(normalized, settings)
    _apply_speeds_from_config(normalized, settings)
    _merge_pass_through(normalized, settings)
    return settings


def infer_adhesion_type(config: dict[str, Any]) -> str | None:
    """Derive the canonical adhesion type from raft/brim vendor keys.

    Raft wins over brim when both are positive. Returns None when neither
    is positive, leaving any existing value in place.
    """
    raft = parse_number(config.get("raft_layers"))
    if raft is not None and raft > 0:
        return "raft"
    brim = parse_number(config.get("brim_width"))
    if brim is not None and brim > 0:
        return "brim"
    return None


def adhesion_config_values(adhesion_type: Any, config: dict[str, Any]) -> dict[str, Any]:
    """Expand a canonical adhesion type back into vendor raft/brim values.

    Args:
        adhesion_type: Canonical adhesion type (none/skirt/brim/raft)
        config: Vendor config being written (existing values are reused)

    Returns:
        Vendor values for ``brim_width`` and ``raft_layers``

    Example:
        >>> adhesion_config_values("brim", {})
        {'brim_width': '5', 'raft_layers': '0'}
    """
    brim_width = config.get("brim_width")
    raft_layers = config.get("raft_layers")
    return {
        "brim_width": (brim_width if brim_width is not None else DEFAULT_BRIM_WIDTH)
        if adhesion_type == "brim"
        else "0",
        "raft_layers": (raft_layers if raft_layers is not None else DEFAULT_RAFT_LAYERS)
        if adhesion_type == "raft"
        else "0",
    }


def _apply_adhesion_from_config(config: dict[str, Any], settings: dict[str, Any]) -> None:
    adhesion_type = infer_adhesion_type(config)
    if adhesion_type is not None:
        settings["adhesion_type"] = adhesion_type


def _apply_speeds_from_config(config: dict[str, Any], settings: dict[str, Any]) -> None:
    speeds = dict(settings.get("speeds") or {})
    touched = False
    for mapping in SPEED_MAPPINGS:
        value = parse_number(config.get(mapping.config_key))
        if value is None:
            continue
        speeds[mapping.speed_key] = value
        touched = True

    if touched:
        settings["speeds"] = speeds


def _merge_pass_through(config: dict[str, Any], settings: dict[str, Any]) -> None:
    for key, value in config.items():
        if key in CONSUMED_CONFIG_KEYS or not is_pass_through_key(key):
            continue
        if key in settings:
            continue
        settings[key] = value
