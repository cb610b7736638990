"""Tabular diff report.

Applied changes are exported as a Polars DataFrame with a fixed schema so
they can be reviewed or archived as CSV, JSON or Parquet. ``from`` / ``to``
values are mixed-type in the model, so they are stored as their JSON text.

Schema:
    - scope (Utf8): ``global`` or ``object``
    - object (Utf8): Target object name, null for global changes
    - plate_index (Int64): Target plate index, null for global changes
    - parameter (Utf8): Changed parameter
    - from (Utf8): Previous value as JSON text
    - to (Utf8): New value as JSON text
    - reason (Utf8): Optimizer justification
"""

import json
import logging
from pathlib import Path
from typing import Any

import polars as pl

from slicer_copilot.core.exceptions import ArchiveWriteError
from slicer_copilot.core.model import DiffRecord

logger = logging.getLogger(__name__)

DIFF_REPORT_SCHEMA = {
    "scope": pl.Utf8,
    "object": pl.Utf8,
    "plate_index": pl.Int64,
    "parameter": pl.Utf8,
    "from": pl.Utf8,
    "to": pl.Utf8,
    "reason": pl.Utf8,
}

REPORT_FORMATS = (".csv", ".json", ".parquet")


def diffs_to_frame(diffs: list[DiffRecord]) -> pl.DataFrame:
    """Build a diff report DataFrame.

    Args:
        diffs: Applied change records, in application order

    Returns:
        DataFrame with ``DIFF_REPORT_SCHEMA`` (empty when there are no diffs)

    Example:
        >>> frame = diffs_to_frame(result.diffs)
        >>> frame.columns
        ['scope', 'object', 'plate_index', 'parameter', 'from', 'to', 'reason']
    """
    rows = [
        {
            "scope": diff.scope.value,
            "object": diff.target.object_name if diff.target else None,
            "plate_index": diff.target.plate_index if diff.target else None,
            "parameter": diff.parameter,
            "from": _to_text(diff.from_value),
            "to": _to_text(diff.to_value),
            "reason": diff.reason,
        }
        for diff in diffs
    ]
    return pl.DataFrame(rows, schema=DIFF_REPORT_SCHEMA)


def write_diff_report(diffs: list[DiffRecord], path: Path) -> None:
    """Write the diff report, choosing the format from the file extension.

    Raises:
        ArchiveWriteError: If the extension is unsupported or writing fails
    """
    suffix = path.suffix.lower()
    if suffix not in REPORT_FORMATS:
        raise ArchiveWriteError(
            f"Unsupported report format: {suffix or '<none>'}",
            output_path=str(path),
            reason=f"expected one of {', '.join(REPORT_FORMATS)}",
        )

    frame = diffs_to_frame(diffs)
    try:
        if suffix == ".csv":
            frame.write_csv(path)
        elif suffix == ".json":
            frame.write_json(path)
        else:
            frame.write_parquet(path)
    except OSError as e:
        raise ArchiveWriteError(
            f"Failed to write report: {e}",
            output_path=str(path),
            reason=type(e).__name__,
        ) from e

    logger.info(f"Wrote diff report with {frame.height} rows to {path}")


def _to_text(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)
