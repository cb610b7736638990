"""Custom exception classes for slicer_copilot error handling.

This module defines the exception hierarchy for the optimize pipeline:
- ArchiveFormatError: Unreadable archives or malformed JSON entries
- InvalidResponseError: Optimizer responses rejected by the response adapter
- OptimizerError: Missing credentials or a failed request to the optimizer
- ArchiveWriteError: Output archive serialization failures
- PipelineError: Pipeline orchestration failures

All exceptions inherit from SlicerCopilotError for consistent error handling.
Per-change problems found while applying suggestions are never raised; they
are reported as warnings by the change application engine.
"""

from typing import Any


class SlicerCopilotError(Exception):
    """Base exception for all slicer_copilot errors.

    Provides a common base class for all custom exceptions in the pipeline,
    enabling catch-all error handling when needed.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Initialize the exception with a message and optional context.

        Args:
            message: Human-readable error description
            context: Optional dictionary of contextual information (entry paths,
                    parameter names, output paths, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return a formatted error message with context."""
        if not self.context:
            return self.message

        context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} [{context_str}]"


class ArchiveFormatError(SlicerCopilotError):
    """Exception raised when a project archive cannot be read.

    Raised by the archive parser when the ZIP container is corrupt or when a
    required JSON entry (metadata or project config) fails to parse. The
    offending entry path is always surfaced.

    Context typically includes:
        - entry_path: Path of the archive entry that failed to parse
        - file_name: Name of the archive being parsed
        - reason: Specific reason for the failure
    """

    def __init__(
        self,
        message: str,
        entry_path: str | None = None,
        file_name: str | None = None,
        reason: str | None = None,
        **extra_context: Any,
    ) -> None:
        """Initialize archive format error with entry details.

        Args:
            message: Human-readable error description
            entry_path: Path of the archive entry that failed
            file_name: Name of the archive being parsed
            reason: Specific reason for the failure
            **extra_context: Additional context information
        """
        context: dict[str, Any] = {}
        if entry_path is not None:
            context["entry_path"] = entry_path
        if file_name is not None:
            context["file_name"] = file_name
        if reason is not None:
            context["reason"] = reason
        context.update(extra_context)

        super().__init__(message, context)
        self.entry_path = entry_path


class InvalidResponseError(SlicerCopilotError):
    """Exception raised when an optimizer response fails validation.

    The response adapter rejects the entire response rather than accepting
    part of it: invalid JSON, a non-object payload, a missing ``changes``
    array, a change without ``parameter``/``newValue`` or an unsupported
    ``scope``/``changeType`` all end up here.

    Context typically includes:
        - change_index: Index of the offending change
        - parameter: Parameter of the offending change
        - field: Name of the invalid field
        - value: The rejected value
    """

    def __init__(
        self,
        message: str,
        change_index: int | None = None,
        parameter: str | None = None,
        field: str | None = None,
        value: Any = None,
        **extra_context: Any,
    ) -> None:
        """Initialize response error with change details.

        Args:
            message: Human-readable error description
            change_index: Index of the offending change in the changes array
            parameter: Parameter name of the offending change
            field: Name of the field that failed validation
            value: The rejected value
            **extra_context: Additional context information
        """
        context: dict[str, Any] = {}
        if change_index is not None:
            context["change_index"] = change_index
        if parameter is not None:
            context["parameter"] = parameter
        if field is not None:
            context["field"] = field
        if value is not None:
            context["value"] = value
        context.update(extra_context)

        super().__init__(message, context)


class OptimizerError(SlicerCopilotError):
    """Exception raised when the optimizer service cannot be used.

    Covers missing credentials, transport failures and empty replies. Always
    raised before any output file is written.

    Context typically includes:
        - model: Model name requested
        - base_url: Endpoint the request was sent to
        - reason: Specific reason for the failure
    """

    def __init__(
        self,
        message: str,
        model: str | None = None,
        base_url: str | None = None,
        reason: str | None = None,
        **extra_context: Any,
    ) -> None:
        """Initialize optimizer error with request details.

        Args:
            message: Human-readable error description
            model: Model name requested
            base_url: Endpoint the request was sent to
            reason: Specific reason for the failure
            **extra_context: Additional context information
        """
        context: dict[str, Any] = {}
        if model is not None:
            context["model"] = model
        if base_url is not None:
            context["base_url"] = base_url
        if reason is not None:
            context["reason"] = reason
        context.update(extra_context)

        super().__init__(message, context)


class ArchiveWriteError(SlicerCopilotError):
    """Exception raised when writing the updated archive fails.

    Context typically includes:
        - output_path: Path to the output file that failed to write
        - entry_path: Archive entry being serialized when the failure occurred
        - reason: Specific reason for the failure
    """

    def __init__(
        self,
        message: str,
        output_path: str | None = None,
        entry_path: str | None = None,
        reason: str | None = None,
        **extra_context: Any,
    ) -> None:
        """Initialize write error with output details.

        Args:
            message: Human-readable error description
            output_path: Path to the output file that failed
            entry_path: Archive entry being serialized
            reason: Specific reason for the failure
            **extra_context: Additional context information
        """
        context: dict[str, Any] = {}
        if output_path is not None:
            context["output_path"] = output_path
        if entry_path is not None:
            context["entry_path"] = entry_path
        if reason is not None:
            context["reason"] = reason
        context.update(extra_context)

        super().__init__(message, context)


class PipelineError(SlicerCopilotError):
    """Exception raised when pipeline orchestration fails.

    Wraps unexpected exceptions raised inside a pipeline step so the caller
    knows which step failed.

    Context typically includes:
        - step: Pipeline step that failed (read, build_request, request,
          apply, write)
        - input_path: Path to the input archive
        - output_path: Path to the output archive
    """

    def __init__(
        self,
        message: str,
        step: str | None = None,
        **extra_context: Any,
    ) -> None:
        """Initialize pipeline error with step context.

        Args:
            message: Human-readable error description
            step: Name of the pipeline step that failed
            **extra_context: Additional context information
        """
        context: dict[str, Any] = {}
        if step is not None:
            context["step"] = step
        context.update(extra_context)

        super().__init__(message, context)
