"""Shared test fixtures and Hypothesis strategies for slicer_copilot tests."""

import base64
import copy
import json
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Any

import pytest
from hypothesis import strategies as st
from hypothesis.strategies import composite

from slicer_copilot.archive.parser import ParsedArchive, parse_archive

SAMPLE_METADATA: dict[str, Any] = {
    "printer": {"name": "Bambu P1P", "nozzle_diameter_mm": 0.4},
    "filaments": [
        {
            "id": "0",
            "name": "Bambu PLA Basic",
            "material_family": "PLA",
            "color": "Gray",
            "nozzle_temp_recommended_range_c": [190, 220],
            "bed_temp_recommended_range_c": [45, 60],
        }
    ],
    "settings": {
        "layer_height_mm": 0.2,
        "first_layer_height_mm": 0.2,
        "wall_line_count": 2,
        "top_layers": 4,
        "bottom_layers": 4,
        "infill_density_percent": 15,
        "infill_pattern": "grid",
        "nozzle_temp_c": 205,
        "bed_temp_c": 60,
        "fan_speed_percent": 80,
        "first_layers_fan_percent": 40,
        "speeds": {"wall_outer": 40, "wall_inner": 60, "infill": 80, "first_layer": 30},
        "supports_enabled": False,
        "adhesion_type": "brim",
    },
    "quality_preset": "bambu_default_standard",
    "plates": [
        {
            "index": 0,
            "name": "Plate 1",
            "objects": [
                {
                    "name": "CalibrationCube",
                    "bounding_box_mm": [20, 20, 20],
                    "geometry": {
                        "bounding_box_mm": [20, 20, 20],
                        "max_dimension_mm": 20,
                        "min_dimension_mm": 20,
                        "height_to_min_footprint_ratio": 1,
                        "is_slender": False,
                    },
                    "settings": {"supports_enabled": False},
                }
            ],
        }
    ],
}

SAMPLE_CONFIG: dict[str, Any] = {
    "printer_model": "Bambu Lab H2S",
    "nozzle_diameter": ["0.4"],
    "filament_type": ["PETG"],
    "filament_vendor": "VendorX",
    "filament_colour": ["#898989"],
    "default_print_profile": "0.20mm Standard @BBL H2S",
    "layer_height": "0.22",
    "initial_layer_print_height": "0.2",
    "wall_loops": "3",
    "top_shell_layers": "5",
    "bottom_shell_layers": "4",
    "sparse_infill_density": "25%",
    "sparse_infill_pattern": "grid",
    "nozzle_temperature": ["245"],
    "eng_plate_temp": ["70"],
    "fan_max_speed": ["90"],
    "enable_support": "1",
    "brim_width": "5",
    "filament_colour_type": ["0"],
    "nozzle_temperature_range_low": ["230"],
    "nozzle_temperature_range_high": ["270"],
}

MODEL_XML = (
    '<model><resources><object id="1" name="CalibrationCube"><mesh><triangles>'
    '<triangle v1="0" v2="1" v3="2"/></triangles></mesh></object></resources></model>'
)

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/xcAAn8B9nHaxLkAAAAASUVORK5CYII="
)


def build_archive(entries: dict[str, Any]) -> bytes:
    """Build an in-memory ZIP archive.

    Dict and list values are written as indented JSON, strings as UTF-8 and
    bytes verbatim.
    """
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path, content in entries.items():
            if isinstance(content, (dict, list)):
                content = json.dumps(content, indent=2)
            archive.writestr(path, content)
    return buffer.getvalue()


def read_archive(data: bytes) -> dict[str, bytes]:
    with zipfile.ZipFile(BytesIO(data)) as archive:
        return {name: archive.read(name) for name in archive.namelist()}


def sample_entries(
    metadata: dict[str, Any] | None = None,
    config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Entries of the sample project: metadata, config, a model file and a stray text file."""
    return {
        "BambuStudio/metadata.json": copy.deepcopy(metadata if metadata is not None else SAMPLE_METADATA),
        "config.json": copy.deepcopy(config if config is not None else SAMPLE_CONFIG),
        "3D/3dmodel.model": MODEL_XML,
        "dummy.txt": "preserve me",
    }


def parse_sample(
    metadata: dict[str, Any] | None = None,
    config: dict[str, Any] | None = None,
) -> ParsedArchive:
    return parse_archive(build_archive(sample_entries(metadata, config)), "sample.3mf")


@pytest.fixture
def sample_archive_bytes() -> bytes:
    return build_archive(sample_entries())


@pytest.fixture
def sample_archive_path(tmp_path: Path, sample_archive_bytes: bytes) -> Path:
    path = tmp_path / "sample.3mf"
    path.write_bytes(sample_archive_bytes)
    return path


@pytest.fixture
def parsed_sample() -> ParsedArchive:
    return parse_sample()


@pytest.fixture
def mock_response_path(tmp_path: Path) -> Path:
    """A canned optimizer response with one global and one object change."""
    path = tmp_path / "response.json"
    path.write_text(
        json.dumps(
            {
                "version": 1,
                "changes": [
                    {
                        "scope": "global",
                        "parameter": "wall_line_count",
                        "newValue": 4,
                        "changeType": "absolute",
                        "reason": "Stronger walls",
                    },
                    {
                        "scope": "object",
                        "target": {"objectName": "CalibrationCube", "plateIndex": 0},
                        "parameter": "infill_density_percent",
                        "newValue": 40,
                        "changeType": "absolute",
                        "reason": "Solid cube",
                    },
                ],
                "globalRationale": "Tuned for strength.",
                "warnings": ["Check bed adhesion."],
            }
        ),
        encoding="utf-8",
    )
    return path


# Vendor config text for finite numbers, as the slicer spells them
config_number_text = st.one_of(
    st.integers(min_value=0, max_value=500).map(str),
    st.decimals(min_value=0, max_value=500, places=2, allow_nan=False, allow_infinity=False).map(
        lambda d: format(d.normalize(), "f")
    ),
)


@composite
def vendor_raw_value(draw: st.DrawFn) -> Any:
    """Generate a vendor value: a scalar string or an array of 0-4 strings.

    Example:
        >>> from hypothesis import given
        >>> @given(vendor_raw_value())
        ... def test_shape(raw):
        ...     assert isinstance(raw, (str, list))
    """
    if draw(st.booleans()):
        return draw(config_number_text)
    return draw(st.lists(config_number_text, min_size=0, max_size=4))


@composite
def user_modified_groups(draw: st.DrawFn) -> list[str]:
    """Generate a three-group bookkeeping value from a small key vocabulary."""
    vocabulary = ["wall_loops", "layer_height", "nozzle_temperature", "fan_max_speed", "printer_model"]
    groups = []
    for _ in range(3):
        keys = draw(st.lists(st.sampled_from(vocabulary), max_size=3, unique=True))
        groups.append(";".join(keys))
    return groups
