"""Optimize pipeline orchestration: archive → request → response → archive.

The pipeline follows this flow:
1. Read: Parse the input archive into the canonical model
2. Build request: Serialize the model, intent and previews into a payload
3. Request: Await one optimizer response
4. Apply: Apply the suggested changes to a copy of the model
5. Write: Rewrite metadata/config and write the output archive (skipped
   for dry runs)

Typed errors (archive format, optimizer, invalid response, archive write)
propagate unchanged. Any other failure is wrapped in PipelineError with the
name of the failing step. Nothing is written unless every earlier step
succeeded.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from slicer_copilot.apply.changes import ApplyResult, apply_changes
from slicer_copilot.archive.parser import ParsedArchive, parse_archive_file
from slicer_copilot.archive.writer import write_updated_archive
from slicer_copilot.core.exceptions import (
    ArchiveFormatError,
    ArchiveWriteError,
    InvalidResponseError,
    OptimizerError,
    PipelineError,
    SlicerCopilotError,
)
from slicer_copilot.core.messages import Messages, normalize_language
from slicer_copilot.core.model import OptimizerResponse
from slicer_copilot.core.protocols import OptimizerClient
from slicer_copilot.llm.request import build_request_payload

logger = logging.getLogger(__name__)


@dataclass
class OptimizationOutcome:
    """Everything produced by one optimize cycle.

    Attributes:
        parsed: The parsed input archive
        payload: Request payload sent to the optimizer
        response: Validated optimizer response
        result: Updated model, applied diffs and warnings
        output_path: Written archive, or None for dry runs
        language: Two-letter language code used for output and warnings
    """

    parsed: ParsedArchive
    payload: dict[str, Any]
    response: OptimizerResponse
    result: ApplyResult
    output_path: Path | None = None
    language: str = "en"


async def optimize_archive(  # noqa: C901
    input_path: Path,
    optimizer: OptimizerClient,
    output_path: Path | None = None,
    intent: dict[str, Any] | None = None,
    respect_user_settings: bool = True,
    language: str | None = None,
    dry_run: bool = False,
) -> OptimizationOutcome:
    """Run one optimize cycle.

    Args:
        input_path: Project archive to optimize
        optimizer: Optimizer backend
        output_path: Where to write the updated archive (required unless dry_run)
        intent: Normalized user intent (None for the empty intent)
        respect_user_settings: Skip changes to user-modified settings
        language: Language tag for optimizer output and warnings
        dry_run: Stop after applying changes; write nothing

    Returns:
        OptimizationOutcome with the applied result

    Raises:
        ArchiveFormatError: If the input archive cannot be parsed
        OptimizerError: If the optimizer cannot be reached
        InvalidResponseError: If the optimizer reply is invalid
        ArchiveWriteError: If the output archive cannot be written
        PipelineError: If any step fails unexpectedly

    Example:
        >>> outcome = asyncio.run(optimize_archive(
        ...     Path("bracket.3mf"),
        ...     MockOptimizerClient(Path("response.json")),
        ...     output_path=Path("bracket.optimized.3mf"),
        ... ))
        >>> len(outcome.result.diffs)
        5
    """
    code = normalize_language(language)
    messages = Messages(code)

    try:
        # Step 1: Parse input archive
        try:
            parsed = parse_archive_file(input_path)
        except ArchiveFormatError:
            raise
        except Exception as e:
            raise PipelineError(
                f"Pipeline failed at read step: {e}",
                step="read",
                input_path=str(input_path),
            ) from e

        # Step 2: Build request payload
        try:
            payload = build_request_payload(
                parsed.normalized,
                intent=intent,
                plate_images=parsed.plate_images,
                allow_user_setting_overrides=not respect_user_settings,
                target_language=code,
            )
        except Exception as e:
            raise PipelineError(
                f"Pipeline failed at build_request step: {e}",
                step="build_request",
            ) from e

        # Step 3: Request optimization
        try:
            response = await optimizer.request(payload)
        except (OptimizerError, InvalidResponseError):
            raise
        except Exception as e:
            raise PipelineError(
                f"Pipeline failed at request step: {e}",
                step="request",
                optimizer=type(optimizer).__name__,
            ) from e
        logger.info(f"Optimizer proposed {len(response.changes)} changes")

        # Step 4: Apply changes
        try:
            result = apply_changes(
                parsed.normalized,
                response,
                respect_user_settings=respect_user_settings,
                messages=messages,
            )
        except Exception as e:
            raise PipelineError(
                f"Pipeline failed at apply step: {e}",
                step="apply",
                change_count=len(response.changes),
            ) from e

        outcome = OptimizationOutcome(
            parsed=parsed,
            payload=payload,
            response=response,
            result=result,
            language=code,
        )
        if dry_run:
            logger.info("Dry run: output archive not written")
            return outcome

        # Step 5: Write output archive
        if output_path is None:
            raise PipelineError("No output path given for a non-dry run", step="write")
        try:
            write_updated_archive(parsed, result.updated, output_path)
        except ArchiveWriteError:
            raise
        except Exception as e:
            raise PipelineError(
                f"Pipeline failed at write step: {e}",
                step="write",
                output_path=str(output_path),
            ) from e

        outcome.output_path = output_path
        return outcome

    except SlicerCopilotError:
        raise
    except Exception as e:
        raise PipelineError(
            f"Pipeline failed with unexpected error: {e}",
            step="unknown",
        ) from e


def execute_optimization(
    input_path: Path,
    optimizer: OptimizerClient,
    output_path: Path | None = None,
    **options: Any,
) -> OptimizationOutcome:
    """Synchronous wrapper around ``optimize_archive`` for CLI use."""
    return asyncio.run(optimize_archive(input_path, optimizer, output_path, **options))
