"""Default values shared across the parser, request builder and client.

The defaults fill the canonical global process settings when an archive does
not supply a value, so every consumer can read these keys without checking
for their presence.
"""

from typing import Any

DEFAULT_SPEEDS: dict[str, float] = {
    "wall_outer": 40,
    "wall_inner": 60,
    "infill": 80,
    "first_layer": 30,
}

DEFAULT_GLOBAL_PROCESS: dict[str, Any] = {
    "layer_height_mm": 0.2,
    "first_layer_height_mm": 0.2,
    "wall_line_count": 2,
    "top_layers": 4,
    "bottom_layers": 4,
    "infill_density_percent": 15,
    "infill_pattern": "grid",
    "nozzle_temp_c": 215,
    "bed_temp_c": 60,
    "fan_speed_percent": 80,
    "first_layers_fan_percent": 80,
    "supports_enabled": False,
    "adhesion_type": "none",
}

DEFAULT_NOZZLE_DIAMETER_MM = 0.4

# Height to smallest-extent ratio above which an object counts as slender
SLENDER_RATIO_THRESHOLD = 4.0

DEFAULT_MODEL = "gpt-4.1-mini"
DEFAULT_TEMPERATURE = 0.3
DEFAULT_LANGUAGE = "en"

REQUEST_PAYLOAD_VERSION = 1
