"""Execution result type."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

__all__ = ["ExecutionResult"]


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a finished process.

    Attributes:
        exit_code: Process exit code (negative signal number on POSIX if killed)
        standard_output: Captured standard output, one ``\\n`` per line
        standard_error: Captured standard error, one ``\\n`` per line
        start_time: When the OS reported the process as running
        exit_time: When the process exit was observed
    """

    exit_code: int
    standard_output: str
    standard_error: str
    start_time: datetime
    exit_time: datetime

    @property
    def run_time(self) -> timedelta:
        """Time between start and exit."""
        return self.exit_time - self.start_time

    def __repr__(self) -> str:
        return (
            f"ExecutionResult(exit_code={self.exit_code}, "
            f"stdout={len(self.standard_output)} chars, "
            f"stderr={len(self.standard_error)} chars, "
            f"run_time={self.run_time.total_seconds():.3f}s)"
        )
