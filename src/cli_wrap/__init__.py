"""cli-wrap - run command line tools and get structured results.

Environment variables:
    CLIWRAP_ENCODING: Default text encoding (default: locale encoding)
    CLIWRAP_DECODE_ERRORS: Output decoding error handler (default: replace)
    CLIWRAP_LOG_DEBUG: Write DEBUG logs to a temp file (default false)

Usage:
    from cli_wrap import Cli

    result = Cli.wrap("echo").set_arguments("hello").execute()
"""

__version__ = "0.1.0"

from .cli import Cli
from .exceptions import (
    CliWrapError,
    ExecutionCancelledError,
    ExecutionResultValidationError,
    ExitCodeValidationError,
    StandardErrorValidationError,
)
from .models import ExecutionResult
from .runtime import (
    CancellationRegistration,
    CancellationToken,
    CancellationTokenSource,
)

__all__ = [
    "__version__",
    "CancellationRegistration",
    "CancellationToken",
    "CancellationTokenSource",
    "Cli",
    "CliWrapError",
    "ExecutionCancelledError",
    "ExecutionResult",
    "ExecutionResultValidationError",
    "ExitCodeValidationError",
    "StandardErrorValidationError",
]
