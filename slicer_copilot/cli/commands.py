"""CLI command implementations.

This module implements the CLI commands for the slicer_copilot tool:
- optimize: Run one optimize cycle on a project archive
- inspect: Display the normalized project model
- validate: Validate an optimizer response file
- check_config: Validate configuration files

Each command is implemented as a function that returns an exit code,
enabling both direct invocation and subprocess-based testing.
"""

import sys
from pathlib import Path
from typing import Annotated, Any

from cyclopts import Parameter

from slicer_copilot.apply.report import write_diff_report
from slicer_copilot.archive.parser import parse_archive_file
from slicer_copilot.cli.config import (
    ConfigError,
    load_config,
    load_env_file,
    merge_config,
    resolve_runtime_config,
    validate_config,
)
from slicer_copilot.cli.exit_codes import ExitCode
from slicer_copilot.cli.output import (
    ProgressIndicator,
    configure_logging,
    format_diff,
    format_images,
    format_overrides,
    format_project_summary,
    format_settings,
    handle_error,
    print_lines,
)
from slicer_copilot.core.exceptions import InvalidResponseError, SlicerCopilotError
from slicer_copilot.core.pipeline import execute_optimization
from slicer_copilot.llm.client import create_optimizer_client
from slicer_copilot.llm.intent import create_empty_intent, read_intent_file
from slicer_copilot.llm.response import parse_response

OPTIMIZED_SUFFIX = ".optimized"


def default_output_path(input_path: Path) -> Path:
    """Return ``<name>.optimized.3mf`` beside the input archive.

    Example:
        >>> default_output_path(Path("parts/bracket.3mf"))
        PosixPath('parts/bracket.optimized.3mf')
    """
    return input_path.with_name(f"{input_path.stem}{OPTIMIZED_SUFFIX}{input_path.suffix or '.3mf'}")


def load_intent(intent_file: Path | None) -> dict[str, Any]:
    """Load the intent file, or the empty intent when none is given.

    Raises:
        ConfigError: If the intent file cannot be read or parsed
    """
    if intent_file is None:
        return create_empty_intent()
    try:
        return read_intent_file(intent_file)
    except SlicerCopilotError as e:
        raise ConfigError(e.message, e.context) from e


def optimize(
    input_path: Annotated[Path, Parameter(help="Project archive (.3mf)")],
    output_path: Annotated[Path | None, Parameter(name=["--output", "-o"], help="Output archive path")] = None,
    dry_run: Annotated[bool, Parameter(help="Apply changes without writing an archive")] = False,
    intent_file: Annotated[Path | None, Parameter(help="Intent JSON file")] = None,
    model: Annotated[str | None, Parameter(help="Model name")] = None,
    base_url: Annotated[str | None, Parameter(help="OpenAI-compatible endpoint URL")] = None,
    api_key: Annotated[str | None, Parameter(help="API key (default: OPENAI_API_KEY)")] = None,
    temperature: Annotated[float | None, Parameter(help="Sampling temperature (0-2)")] = None,
    mock_response: Annotated[Path | None, Parameter(help="Use a canned optimizer response")] = None,
    force: Annotated[bool, Parameter(help="Allow changes to user-modified settings")] = False,
    language: Annotated[str | None, Parameter(help="Language for reasons and warnings")] = None,
    config: Annotated[Path | None, Parameter(help="Configuration file path")] = None,
    report: Annotated[Path | None, Parameter(help="Write a diff report (.csv, .json, .parquet)")] = None,
    quiet: Annotated[bool, Parameter(help="Suppress progress output")] = False,
    verbose: Annotated[bool, Parameter(help="Show detailed error information")] = False,
    log_level: Annotated[str, Parameter(help="Log level (debug, info, warning, error)")] = "warning",
    log_file: Annotated[Path | None, Parameter(help="Log file path")] = None,
) -> int:
    """Optimize a project archive.

    Parses the archive, asks the optimizer for setting changes, applies them
    to the project model and writes the updated archive (default
    ``<name>.optimized.3mf`` beside the input).

    Args:
        input_path: Path to the project archive
        output_path: Where to write the optimized archive
        dry_run: Show the applied changes without writing an archive
        intent_file: JSON file describing the optimization goal
        model: Model name
        base_url: OpenAI-compatible endpoint URL
        api_key: API key for the endpoint
        temperature: Sampling temperature
        mock_response: Response JSON file used instead of the network
        force: Allow changes to user-modified settings
        language: Language for optimizer reasons and warnings
        config: Path to configuration file (optional)
        report: Write the applied changes as a tabular report
        quiet: Suppress progress indicators
        verbose: Show stack traces and debug logging
        log_level: Logging level (debug, info, warning, error)
        log_file: Path to log file (optional)

    Returns:
        Exit code (0 for success, non-zero for errors)

    Example:
        >>> exit_code = optimize(
        ...     input_path=Path("bracket.3mf"),
        ...     mock_response=Path("response.json"),
        ...     dry_run=True,
        ... )
    """
    try:
        configure_logging(log_level, log_file, verbose)
        load_env_file()

        if not input_path.exists():
            print(f"Error: Input file not found: {input_path}", file=sys.stderr)
            return ExitCode.ARCHIVE_READ_ERROR

        cfg: dict[str, Any] = load_config(config) if config else {}
        cfg = merge_config(
            cfg,
            api_key=api_key,
            base_url=base_url,
            model=model,
            temperature=temperature,
            mock_response=str(mock_response) if mock_response else None,
            language=language,
            force=True if force else None,
        )
        runtime = resolve_runtime_config(cfg)
        allow_overrides = cfg.get("force") is True
        intent = load_intent(intent_file)

        optimizer = create_optimizer_client(
            api_key=runtime.api_key,
            base_url=runtime.base_url,
            model=runtime.model,
            temperature=runtime.temperature,
            mock_response_path=runtime.mock_response_path,
        )

        target = output_path or default_output_path(input_path)

        progress = ProgressIndicator(enabled=not quiet)
        progress.start(f"Optimizing {input_path.name}")
        outcome = execute_optimization(
            input_path,
            optimizer,
            None if dry_run else target,
            intent=intent,
            respect_user_settings=not allow_overrides,
            language=runtime.language,
            dry_run=dry_run,
        )

        result = outcome.result
        if dry_run:
            progress.success(f"Dry run: {len(result.diffs)} changes would be written to {target}")
        else:
            progress.success(f"Optimized {input_path.name} → {target.name} ({len(result.diffs)} changes)")

        if outcome.response.global_rationale:
            print(f"\nRationale: {outcome.response.global_rationale}")
        if result.diffs:
            print("\nChanges:")
            print_lines([f"  {format_diff(diff)}" for diff in result.diffs])
        if result.warnings:
            print("\nWarnings:")
            print_lines([f"  {warning}" for warning in result.warnings])

        if report is not None:
            write_diff_report(result.diffs, report)
            print(f"\nReport written to {report}")

        return ExitCode.SUCCESS

    except SlicerCopilotError as e:
        handle_error(e, verbose=verbose)
        return ExitCode.for_error(e)
    except Exception as e:
        handle_error(e, verbose=verbose)
        return ExitCode.UNEXPECTED_ERROR


def inspect(
    input_path: Annotated[Path, Parameter(help="Project archive (.3mf)")],
    settings: Annotated[bool, Parameter(help="Show global process settings")] = False,
    overrides: Annotated[bool, Parameter(help="Show per-object overrides")] = False,
    images: Annotated[bool, Parameter(help="Show plate preview images")] = False,
) -> int:
    """Inspect the normalized project model of an archive.

    Displays printer, filaments, base profile, plates and objects (objects
    with overrides are marked ``*``), and optionally the global settings,
    the override store and the plate previews.

    Args:
        input_path: Path to the project archive
        settings: Show global process settings
        overrides: Show per-object overrides
        images: Show plate preview images

    Returns:
        Exit code (0 for success, 3 for unreadable archives)
    """
    try:
        if not input_path.exists():
            print(f"Error: Input file not found: {input_path}", file=sys.stderr)
            return ExitCode.ARCHIVE_READ_ERROR

        parsed = parse_archive_file(input_path)
        model = parsed.normalized
        print_lines(format_project_summary(model))

        if settings:
            print("\nSettings:")
            print_lines(format_settings(model.current_settings.global_process))

        if overrides:
            print("\nOverrides:")
            store = model.current_settings.per_object_overrides
            print_lines(format_overrides(store) if store else ["  (none)"])

        if images:
            print("\nImages:")
            print_lines(format_images(parsed.plate_images) if parsed.plate_images else ["  (none)"])

        return ExitCode.SUCCESS

    except SlicerCopilotError as e:
        handle_error(e, verbose=False)
        return ExitCode.for_error(e)
    except Exception as e:
        handle_error(e, verbose=False)
        return ExitCode.UNEXPECTED_ERROR


def validate(
    response_path: Annotated[Path, Parameter(help="Optimizer response JSON file")],
    verbose: Annotated[bool, Parameter(help="List the validated changes")] = False,
) -> int:
    """Validate an optimizer response file.

    Args:
        response_path: Path to the response JSON file
        verbose: List every validated change

    Returns:
        Exit code (0 for success, 2 for invalid responses)
    """
    try:
        if not response_path.exists():
            print(f"Error: Input file not found: {response_path}", file=sys.stderr)
            return ExitCode.UNEXPECTED_ERROR

        response = parse_response(response_path.read_bytes())
        print(f"✓ Response is valid: {len(response.changes)} changes")

        if verbose:
            for change in response.changes:
                line = f"  {change.scope.value} {change.change_type.value} {change.parameter} = {change.new_value!r}"
                if change.target is not None and change.target.object_name:
                    line += f" [{change.target.object_name}]"
                print(line)
            for warning in response.warnings:
                print(f"  warning: {warning}")

        return ExitCode.SUCCESS

    except InvalidResponseError as e:
        print("✗ Response validation failed:", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        return ExitCode.INVALID_RESPONSE
    except Exception as e:
        handle_error(e, verbose=False)
        return ExitCode.UNEXPECTED_ERROR


def check_config(
    config_path: Annotated[Path, Parameter(help="Configuration file path")],
) -> int:
    """Validate configuration file.

    Loads and validates a configuration file, checking syntax, known keys
    and value types. Displays specific validation errors if found.

    Args:
        config_path: Path to configuration file to validate

    Returns:
        Exit code (0 for valid config, 6 for invalid config)
    """
    try:
        config = load_config(config_path)
        errors = validate_config(config)

        if errors:
            print("✗ Configuration validation failed:", file=sys.stderr)
            for error in errors:
                print(f"  {error}", file=sys.stderr)
            return ExitCode.CONFIG_ERROR

        print("✓ Configuration is valid")
        for key in ("model", "base_url", "temperature", "language", "mock_response"):
            if key in config:
                print(f"  {key}: {config[key]}")
        if "api_key" in config:
            print("  api_key: (set)")

        return ExitCode.SUCCESS

    except ConfigError as e:
        print("✗ Configuration error:", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        return ExitCode.CONFIG_ERROR
    except Exception as e:
        handle_error(e, verbose=False)
        return ExitCode.UNEXPECTED_ERROR
