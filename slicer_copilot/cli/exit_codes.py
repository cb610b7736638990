"""Exit code constants for CLI commands.

Exit codes:
    0: SUCCESS - Operation completed successfully
    1: UNEXPECTED_ERROR - Unexpected/unhandled exception
    2: INVALID_RESPONSE - Optimizer response rejected by validation
    3: ARCHIVE_READ_ERROR - Input archive reading/parsing failure
    4: ARCHIVE_WRITE_ERROR - Output archive or report writing failure
    5: OPTIMIZER_ERROR - Missing credentials or failed optimizer request
    6: CONFIG_ERROR - Configuration file, intent file or argument error
"""

from slicer_copilot.cli.config import ConfigError
from slicer_copilot.core.exceptions import (
    ArchiveFormatError,
    ArchiveWriteError,
    InvalidResponseError,
    OptimizerError,
)


class ExitCode:
    """Standard exit codes for CLI commands.

    Example:
        >>> from slicer_copilot.cli.exit_codes import ExitCode
        >>> ExitCode.for_error(ArchiveFormatError("bad zip"))
        3
    """

    SUCCESS = 0
    """Operation completed successfully."""

    UNEXPECTED_ERROR = 1
    """Unexpected or unhandled exception occurred."""

    INVALID_RESPONSE = 2
    """Optimizer response failed validation."""

    ARCHIVE_READ_ERROR = 3
    """Input archive reading or parsing failed."""

    ARCHIVE_WRITE_ERROR = 4
    """Output archive or report writing failed."""

    OPTIMIZER_ERROR = 5
    """Optimizer credentials missing or request failed."""

    CONFIG_ERROR = 6
    """Configuration file or argument error."""

    @classmethod
    def for_error(cls, error: Exception) -> int:
        """Map an exception to its exit code."""
        if isinstance(error, InvalidResponseError):
            return cls.INVALID_RESPONSE
        if isinstance(error, ArchiveFormatError):
            return cls.ARCHIVE_READ_ERROR
        if isinstance(error, ArchiveWriteError):
            return cls.ARCHIVE_WRITE_ERROR
        if isinstance(error, OptimizerError):
            return cls.OPTIMIZER_ERROR
        if isinstance(error, ConfigError):
            return cls.CONFIG_ERROR
        return cls.UNEXPECTED_ERROR
