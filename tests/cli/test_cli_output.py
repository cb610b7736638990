"""Tests for CLI output formatting and error display."""

import io
import logging
from pathlib import Path

import pytest

from slicer_copilot.cli.exit_codes import ExitCode
from slicer_copilot.cli.output import (
    ProgressIndicator,
    configure_logging,
    format_diff,
    format_settings,
    format_value,
    handle_error,
)
from slicer_copilot.core.exceptions import ArchiveFormatError
from slicer_copilot.core.model import ChangeScope, ChangeTarget, DiffRecord


class FakeTTY(io.StringIO):
    def isatty(self) -> bool:
        return True


@pytest.mark.parametrize(
    ("value", "text"),
    [(None, "-"), (True, "true"), (False, "false"), ([0.4, 0.6], "[0.4, 0.6]"), ({"a": 1}, '{"a": 1}'), (0.2, "0.2")],
)
def test_format_value(value: object, text: str) -> None:
    assert format_value(value) == text


def test_format_global_diff() -> None:
    diff = DiffRecord(ChangeScope.GLOBAL, None, "layer_height_mm", 0.2, 0.16, "finer")
    assert format_diff(diff) == "global layer_height_mm: 0.2 → 0.16 (finer)"


def test_format_object_diff() -> None:
    diff = DiffRecord(
        ChangeScope.OBJECT, ChangeTarget(object_name="Bracket", plate_index=1), "supports_enabled", False, True
    )
    assert format_diff(diff) == "Bracket@plate1 supports_enabled: false → true"


def test_format_settings_flattens_speeds() -> None:
    lines = format_settings({"wall_line_count": 3, "speeds": {"wall_outer": 40, "infill": 80}})
    assert lines == ["  speeds.infill = 80", "  speeds.wall_outer = 40", "  wall_line_count = 3"]


def test_progress_disabled_when_not_a_tty(capsys: pytest.CaptureFixture[str]) -> None:
    stream = io.StringIO()
    progress = ProgressIndicator(enabled=True, stream=stream)
    progress.start("Optimizing")
    progress.success("Done")
    assert stream.getvalue() == ""
    assert capsys.readouterr().out == "Done\n"


def test_progress_on_a_tty(capsys: pytest.CaptureFixture[str]) -> None:
    stream = FakeTTY()
    progress = ProgressIndicator(enabled=True, stream=stream)
    progress.start("Optimizing")
    progress.error("boom")
    assert stream.getvalue() == "Optimizing... ✗\n"
    assert capsys.readouterr().err == "Error: boom\n"


def test_handle_error_shows_context(capsys: pytest.CaptureFixture[str]) -> None:
    error = ArchiveFormatError("Not a readable 3MF archive", file_name="bad.3mf")
    handle_error(error)
    err = capsys.readouterr().err
    assert "Error: Not a readable 3MF archive" in err
    assert "  file_name: bad.3mf" in err
    assert "Stack trace" not in err
    assert ExitCode.for_error(error) == ExitCode.ARCHIVE_READ_ERROR


def test_handle_error_verbose(capsys: pytest.CaptureFixture[str]) -> None:
    try:
        raise ValueError("unexpected")
    except ValueError as e:
        handle_error(e, verbose=True)
    err = capsys.readouterr().err
    assert "Stack trace" in err
    assert "ValueError: unexpected" in err


def test_configure_logging(tmp_path: Path) -> None:
    log_file = tmp_path / "run.log"
    configure_logging("error", log_file)
    assert logging.getLogger().level == logging.ERROR

    configure_logging("error", verbose=True)
    assert logging.getLogger().level == logging.DEBUG

    configure_logging("warning")
