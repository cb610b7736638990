"""Tests for the archive parser."""

from pathlib import Path

import pytest

from slicer_copilot.archive.parser import (
    UNKNOWN_PRINTER,
    build_geometry_from_bounding,
    extract_user_modified_settings,
    map_material_family,
    parse_archive,
    parse_archive_file,
)
from slicer_copilot.core.constants import DEFAULT_GLOBAL_PROCESS, DEFAULT_SPEEDS
from slicer_copilot.core.exceptions import ArchiveFormatError
from tests.conftest import MODEL_XML, PNG_BYTES, SAMPLE_METADATA, build_archive, parse_sample


class TestParseSampleArchive:
    """Metadata enriched by the project config."""

    def test_config_values_win_over_metadata(self) -> None:
        parsed = parse_sample()
        assert parsed.metadata["settings"]["layer_height_mm"] == 0.22
        assert parsed.normalized.current_settings.global_process["layer_height_mm"] == 0.22

    def test_printer_and_profile(self) -> None:
        summary = parse_sample().normalized.project_summary
        assert summary.printer.name == "Bambu Lab H2S"
        assert summary.printer.nozzle_diameter_mm == 0.4
        assert summary.base_profile == "0.20mm Standard @BBL H2S"

    def test_material_family_from_config(self) -> None:
        filament = parse_sample().normalized.project_summary.filaments[0]
        assert filament.name == "Bambu PLA Basic"
        assert filament.material_family == "PETG"

    def test_settings(self) -> None:
        process = parse_sample().normalized.current_settings.global_process
        assert process["infill_pattern"] == "grid"
        assert process["wall_line_count"] == 3
        assert process["infill_density_percent"] == 25
        assert process["supports_enabled"] is True
        assert process["first_layers_fan_percent"] == 40
        assert process["speeds"]["wall_outer"] == 40

    def test_plates_and_geometry(self) -> None:
        plates = parse_sample().normalized.project_summary.plates
        assert len(plates) == 1
        cube = plates[0].objects[0]
        assert cube.name == "CalibrationCube"
        assert cube.plate_index == 0
        assert cube.geometry["is_slender"] is False

    def test_override_store_is_seeded(self) -> None:
        overrides = parse_sample().normalized.current_settings.per_object_overrides
        assert overrides == {
            "0::CalibrationCube": {
                "supports_enabled": False,
                "plateIndex": 0,
                "objectName": "CalibrationCube",
            }
        }

    def test_entries_and_paths(self) -> None:
        parsed = parse_sample()
        assert parsed.metadata_path == "BambuStudio/metadata.json"
        assert parsed.config_path == "config.json"
        assert parsed.entries["dummy.txt"] == b"preserve me"
        assert parsed.file_name == "sample.3mf"


class TestDegradedArchives:
    """Archives without metadata or config still parse."""

    def test_without_metadata(self) -> None:
        parsed = parse_archive(build_archive({"3D/3dmodel.model": MODEL_XML}), "no-meta.3mf")
        assert parsed.metadata_path is None
        assert parsed.metadata == {}
        assert parsed.config_path is None

        model = parsed.normalized
        assert model.project_summary.plates == []
        assert model.project_summary.printer.name == UNKNOWN_PRINTER
        process = model.current_settings.global_process
        for key, value in DEFAULT_GLOBAL_PROCESS.items():
            assert process[key] == value
        assert process["speeds"] == DEFAULT_SPEEDS

    def test_bambu_project_settings_config(self) -> None:
        config = {
            "printer_model": "Bambu Lab H2S",
            "nozzle_diameter": ["0.4"],
            "filament_type": ["PETG"],
            "default_print_profile": "0.20mm Standard @BBL H2S",
            "layer_height": "0.2",
            "sparse_infill_density": "18%",
        }
        parsed = parse_archive(
            build_archive(
                {
                    "Metadata/project_settings.config": config,
                    "3D/3dmodel.model": "<model><resources></resources></model>",
                }
            ),
            "project.3mf",
        )
        model = parsed.normalized
        assert parsed.config_path == "Metadata/project_settings.config"
        assert model.project_summary.printer.name == "Bambu Lab H2S"
        assert model.project_summary.base_profile == "0.20mm Standard @BBL H2S"
        assert model.current_settings.global_process["layer_height_mm"] == 0.2
        assert model.current_settings.global_process["infill_density_percent"] == 18
        assert model.project_summary.filaments[0].material_family == "PETG"

    def test_xml_config_candidate_is_skipped(self) -> None:
        parsed = parse_archive(
            build_archive(
                {
                    "Metadata/model_settings.config": '<?xml version="1.0"?><config></config>',
                    "Metadata/project_settings.config": {"layer_height": "0.16"},
                }
            )
        )
        assert parsed.config_path == "Metadata/project_settings.config"
        assert parsed.normalized.current_settings.global_process["layer_height_mm"] == 0.16

    def test_config_without_signal_keys_is_ignored(self) -> None:
        parsed = parse_archive(build_archive({"settings.json": {"colour": "red"}}))
        assert parsed.config_path is None
        assert parsed.config_data is None

    def test_user_modified_settings_from_config(self) -> None:
        parsed = parse_archive(
            build_archive(
                {
                    "Metadata/project_settings.config": {
                        "layer_height": "0.2",
                        "different_settings_to_system": ["wall_loops;layer_height", "nozzle_temperature", ""],
                    }
                }
            )
        )
        assert parsed.normalized.user_modified_settings == ["wall_loops", "layer_height", "nozzle_temperature"]


class TestMalformedArchives:
    """Unreadable archives and malformed JSON are fatal."""

    def test_not_a_zip(self) -> None:
        with pytest.raises(ArchiveFormatError):
            parse_archive(b"definitely not a zip", "bad.3mf")

    def test_malformed_metadata(self) -> None:
        data = build_archive({"Metadata/metadata.json": "{not json"})
        with pytest.raises(ArchiveFormatError) as exc_info:
            parse_archive(data)
        assert exc_info.value.context["entry_path"] == "Metadata/metadata.json"

    def test_malformed_config(self) -> None:
        data = build_archive({"metadata.json": SAMPLE_METADATA, "project_settings.json": "{oops"})
        with pytest.raises(ArchiveFormatError) as exc_info:
            parse_archive(data)
        assert exc_info.value.context["entry_path"] == "project_settings.json"

    def test_non_list_plate_objects_are_ignored(self) -> None:
        metadata = {"plates": [{"index": 0, "objects": 7}, {"index": 1, "objects": "Cube"}]}
        plates = parse_archive(build_archive({"metadata.json": metadata})).normalized.project_summary.plates
        assert [(plate.index, plate.objects) for plate in plates] == [(0, []), (1, [])]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ArchiveFormatError):
            parse_archive_file(tmp_path / "missing.3mf")


class TestPlateImages:
    """Test plate preview collection."""

    def test_collects_png_previews(self) -> None:
        parsed = parse_archive(
            build_archive({"3D/3dmodel.model": MODEL_XML, "Metadata/plate_1.png": PNG_BYTES}),
            "plates.3mf",
        )
        assert len(parsed.plate_images) == 1
        image = parsed.plate_images[0]
        assert image.plate_index == 0
        assert image.name == "plate_1.png"
        assert image.data_url.startswith("data:image/png;base64,")


class TestGeometry:
    """Test geometry hints derived from bounding boxes."""

    def test_slender_object(self) -> None:
        geometry = build_geometry_from_bounding([10, 10, 50])
        assert geometry["height_to_min_footprint_ratio"] == 5
        assert geometry["max_dimension_mm"] == 50
        assert geometry["is_slender"] is True

    def test_compact_object(self) -> None:
        assert build_geometry_from_bounding([20, 20, 20])["is_slender"] is False

    def test_zero_extent(self) -> None:
        geometry = build_geometry_from_bounding([10, 0, 5])
        assert geometry["height_to_min_footprint_ratio"] is None
        assert geometry["is_slender"] is False

    @pytest.mark.parametrize("bounding", [None, [1, 2], "10x10x10", [1, "a", 3]])
    def test_invalid_bounding_box(self, bounding: object) -> None:
        assert build_geometry_from_bounding(bounding) is None

    def test_geometry_built_when_metadata_has_none(self) -> None:
        metadata = {
            "plates": [{"index": 0, "name": "Plate 1", "objects": [{"name": "Tower", "bounding_box_mm": [10, 10, 60]}]}]
        }
        parsed = parse_archive(build_archive({"metadata.json": metadata}))
        tower = parsed.normalized.project_summary.plates[0].objects[0]
        assert tower.geometry["is_slender"] is True


class TestHelpers:
    """Test small parser helpers."""

    @pytest.mark.parametrize(
        ("filament_type", "family"),
        [
            ("PLA", "PLA"),
            ("PETG-CF", "PETG"),
            ("abs", "ABS"),
            ("Nylon", "Nylon"),
            ("PC", "PC"),
            ("PVA", "Other"),
            (None, "Other"),
        ],
    )
    def test_material_family(self, filament_type: object, family: str) -> None:
        assert map_material_family(filament_type) == family

    def test_user_modified_settings_deduplicated(self) -> None:
        config = {"different_settings_to_system": ["a;b", "b;c", None]}
        assert extract_user_modified_settings(config) == ["a", "b", "c"]

    def test_user_modified_settings_missing(self) -> None:
        assert extract_user_modified_settings(None) == []
        assert extract_user_modified_settings({"different_settings_to_system": "a;b"}) == []
