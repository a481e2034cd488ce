"""Runtime module for child process supervision.

This module provides the process supervisor, the completion signal it uses
to hand results to waiters, and the cancellation handle used to abort a run.
"""

from __future__ import annotations

from .cancellation import (
    CancellationRegistration,
    CancellationToken,
    CancellationTokenSource,
)
from .completion import CompletionSignal
from .process import CliProcess, ProcessSpec

__all__ = [
    "CancellationRegistration",
    "CancellationToken",
    "CancellationTokenSource",
    "CliProcess",
    "CompletionSignal",
    "ProcessSpec",
]
