"""Post-run validation of execution results."""

from __future__ import annotations

from .exceptions import ExitCodeValidationError, StandardErrorValidationError
from .models import ExecutionResult
from .utils.text import is_blank

__all__ = ["validate_result"]


def validate_result(
    result: ExecutionResult,
    *,
    exit_code_validation: bool = True,
    standard_error_validation: bool = False,
) -> None:
    """Raise if a finished execution should be treated as a failure.

    The exit code is checked first; only one error is raised per result.

    Args:
        result: Result of a completed run
        exit_code_validation: Fail on a non-zero exit code
        standard_error_validation: Fail on non-blank standard error

    Raises:
        ExitCodeValidationError: Exit code validation enabled and code != 0
        StandardErrorValidationError: Standard error validation enabled and
            stderr contains non-whitespace text
    """
    if exit_code_validation and result.exit_code != 0:
        raise ExitCodeValidationError(result)

    if standard_error_validation and not is_blank(result.standard_error):
        raise StandardErrorValidationError(result)
