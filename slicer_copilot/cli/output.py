"""Output formatting, logging setup and progress indicators for CLI operations.

This module provides:
- ProgressIndicator: TTY-aware progress indicators for long operations
- handle_error: Formatted error messages with context and optional stack traces
- configure_logging: Root logger setup from --log-level/--log-file/--verbose
- format_* helpers: Human-readable project summaries, diffs and warnings
"""

import json
import logging
import sys
import traceback
from pathlib import Path
from typing import Any, TextIO

from slicer_copilot.core.model import DiffRecord, NormalizedProject, PlateImage

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ProgressIndicator:
    """Simple progress indicator for CLI operations.

    Automatically detects TTY to disable progress indicators when output
    is redirected to a file or pipe. Progress messages are written to
    stderr to keep stdout clean for actual output.

    Example:
        progress = ProgressIndicator(enabled=not quiet)
        progress.start("Optimizing bracket.3mf")
        # ... do work ...
        progress.success("Wrote bracket.optimized.3mf")
    """

    def __init__(self, enabled: bool = True, stream: TextIO | None = None):
        """Initialize progress indicator.

        Args:
            enabled: Whether progress indicators are enabled (default True)
            stream: Output stream for progress messages (default sys.stderr)
        """
        self.stream = stream or sys.stderr
        # Disabled when output is redirected
        self.enabled = enabled and self.stream.isatty()

    def start(self, message: str) -> None:
        if self.enabled:
            self.stream.write(f"{message}... ")
            self.stream.flush()

    def success(self, message: str) -> None:
        """Display success marker; the message itself always goes to stdout."""
        if self.enabled:
            self.stream.write("✓\n")
        print(message)

    def error(self, message: str) -> None:
        if self.enabled:
            self.stream.write("✗\n")
        print(f"Error: {message}", file=sys.stderr)


def handle_error(error: Exception, verbose: bool = False) -> None:
    """Format and display error message with context.

    Displays error messages to stderr with the context fields carried by
    SlicerCopilotError exceptions. When verbose mode is enabled, also
    displays the full stack trace.

    Args:
        error: Exception to display
        verbose: Whether to show stack trace (default False)
    """
    print(f"Error: {error}", file=sys.stderr)

    context = getattr(error, "context", None)
    if context:
        print("Context:", file=sys.stderr)
        for key, value in context.items():
            print(f"  {key}: {value}", file=sys.stderr)

    if verbose:
        print("\nStack trace:", file=sys.stderr)
        traceback.print_exception(type(error), error, error.__traceback__, file=sys.stderr)


def configure_logging(level: str = "warning", log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure the root logger for one CLI invocation.

    Args:
        level: debug, info, warning or error
        log_file: Also write log records to this file
        verbose: Force debug level
    """
    numeric_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, handlers=handlers, force=True)


def format_value(value: Any) -> str:
    """Render a setting value compactly (JSON for containers, ``-`` for missing)."""
    if value is None:
        return "-"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_project_summary(model: NormalizedProject) -> list[str]:
    summary = model.project_summary
    printer = summary.printer
    lines = [
        f"File: {model.file_name}",
        f"Printer: {printer.name} (nozzle {format_value(printer.nozzle_diameter_mm)} mm,"
        f" bed {format_value(printer.bed_type)})",
        f"Base profile: {format_value(summary.base_profile)}",
    ]
    for filament in summary.filaments:
        lines.append(f"Filament: {filament.name} [{filament.material_family}]")
    for plate in summary.plates:
        lines.append(f"Plate {plate.index}: {plate.name} ({len(plate.objects)} objects)")
        for obj in plate.objects:
            marker = " *" if obj.settings else ""
            lines.append(f"  - {obj.name}{marker}")
    if model.user_modified_settings:
        lines.append(f"User-modified settings: {', '.join(model.user_modified_settings)}")
    return lines


def format_settings(settings: dict[str, Any]) -> list[str]:
    """Render global settings as ``key = value`` lines, speeds flattened."""
    lines = []
    for key in sorted(settings):
        value = settings[key]
        if key == "speeds" and isinstance(value, dict):
            for role in sorted(value):
                lines.append(f"  speeds.{role} = {format_value(value[role])}")
        else:
            lines.append(f"  {key} = {format_value(value)}")
    return lines


def format_overrides(overrides: dict[str, dict[str, Any]]) -> list[str]:
    lines = []
    for object_key, settings in overrides.items():
        lines.append(f"  {object_key}:")
        for key in sorted(settings):
            lines.append(f"    {key} = {format_value(settings[key])}")
    return lines


def format_images(images: list[PlateImage]) -> list[str]:
    return [
        f"  {image.name} (plate {format_value(image.plate_index)}, {len(image.data_url)} chars)"
        for image in images
    ]


def format_diff(diff: DiffRecord) -> str:
    """Render one applied change, e.g. ``global layer_height: 0.2 → 0.16 (finer)``."""
    if diff.target is not None:
        where = diff.target.object_name or "object"
        if diff.target.plate_index is not None:
            where += f"@plate{diff.target.plate_index}"
    else:
        where = "global"
    line = f"{where} {diff.parameter}: {format_value(diff.from_value)} → {format_value(diff.to_value)}"
    if diff.reason:
        line += f" ({diff.reason})"
    return line


def print_lines(lines: list[str], stream: TextIO | None = None) -> None:
    for line in lines:
        print(line, file=stream or sys.stdout)
