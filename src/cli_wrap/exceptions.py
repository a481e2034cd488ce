"""Exception types raised by cli-wrap.

Launch failures are not wrapped: whatever ``subprocess.Popen`` raises
(``FileNotFoundError``, ``PermissionError``, ...) reaches the caller as is.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ExecutionResult

__all__ = [
    "CliWrapError",
    "ExecutionCancelledError",
    "ExecutionResultValidationError",
    "ExitCodeValidationError",
    "StandardErrorValidationError",
]

# Keep messages readable when a tool dumps a lot to stderr
_STDERR_PREVIEW_LIMIT = 2000


class CliWrapError(Exception):
    """Base class for cli-wrap errors."""


class ExecutionCancelledError(CliWrapError):
    """The execution was cancelled through its cancellation token."""

    def __init__(self, message: str = "The execution was cancelled") -> None:
        super().__init__(message)


class ExecutionResultValidationError(CliWrapError):
    """A finished execution did not pass validation.

    Attributes:
        result: The full execution result, for diagnostics
    """

    def __init__(self, result: ExecutionResult, message: str) -> None:
        super().__init__(message)
        self.result = result


class ExitCodeValidationError(ExecutionResultValidationError):
    """The process exited with a non-zero exit code."""

    def __init__(self, result: ExecutionResult) -> None:
        message = f"Process exited with non-zero exit code ({result.exit_code})"
        stderr = result.standard_error.strip()
        if stderr:
            message += f"\nStandard error:\n{_preview(stderr)}"
        super().__init__(result, message)

    @property
    def exit_code(self) -> int:
        return self.result.exit_code


class StandardErrorValidationError(ExecutionResultValidationError):
    """The process wrote to standard error."""

    def __init__(self, result: ExecutionResult) -> None:
        message = (
            "Process reported an error on standard error:\n"
            f"{_preview(result.standard_error.strip())}"
        )
        super().__init__(result, message)

    @property
    def standard_error(self) -> str:
        return self.result.standard_error


def _preview(text: str) -> str:
    if len(text) <= _STDERR_PREVIEW_LIMIT:
        return text
    return text[:_STDERR_PREVIEW_LIMIT] + "..."
