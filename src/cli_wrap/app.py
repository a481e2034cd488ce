"""cli-wrap command line entry.

Runs one executable through Cli and mirrors its output and exit code.

Usage:
    python -m cli_wrap [--cwd DIR] [--env KEY=VALUE] [--input-file PATH]
                       [--timeout SECONDS] [--no-exit-code-validation]
                       [--stderr-validation] EXECUTABLE [ARGS...]

Exit codes:
    child's exit code  normal completion or exit code validation failure
    1                  stderr validation failure on an otherwise clean run
    2                  bad command line, missing --cwd directory or unreadable
                       --input-file
    124                cancelled by --timeout
    126 / 127          executable not runnable / not found
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from .cli import Cli
from .config import Config, get_config
from .exceptions import (
    ExecutionCancelledError,
    ExecutionResultValidationError,
    ExitCodeValidationError,
)
from .models import ExecutionResult
from .runtime.cancellation import CancellationTokenSource

__all__ = ["build_parser", "configure_logging", "main", "run"]

logger = logging.getLogger(__name__)

EXIT_USAGE = 2
EXIT_TIMEOUT = 124
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127


def configure_logging(config: Config) -> None:
    """Install log handlers according to the configuration."""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG mode: write to a temp file
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s [%(threadName)s]: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # Default: stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # Third-party loggers stay at WARNING
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("cli_wrap").setLevel(log_level)


def _parse_env(value: str) -> tuple[str, str]:
    key, sep, val = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {value!r}")
    return key, val


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cli-wrap",
        description="Run an executable, capture its output and validate the outcome.",
    )
    parser.add_argument("--cwd", help="Working directory for the process")
    parser.add_argument(
        "--env",
        action="append",
        default=[],
        type=_parse_env,
        metavar="KEY=VALUE",
        help="Environment variable override (repeatable)",
    )
    parser.add_argument("--input-file", help="File piped into the process stdin")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Kill the process after this many seconds",
    )
    parser.add_argument(
        "--no-exit-code-validation",
        action="store_true",
        help="Do not treat a non-zero exit code as a failure",
    )
    parser.add_argument(
        "--stderr-validation",
        action="store_true",
        help="Treat any standard error output as a failure",
    )
    parser.add_argument("executable", help="Executable to run")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the executable")
    return parser


def _exit_status(exit_code: int) -> int:
    # POSIX reports death by signal N as -N; shells report 128 + N
    if exit_code < 0:
        return 128 - exit_code
    return exit_code


def _echo(result: ExecutionResult) -> None:
    sys.stdout.write(result.standard_output)
    sys.stdout.flush()
    sys.stderr.write(result.standard_error)
    sys.stderr.flush()


def run(argv: Sequence[str] | None = None) -> int:
    """Run the command line front end.

    Returns:
        Process exit code for the front end
    """
    args = build_parser().parse_args(argv)

    cli = (
        Cli.wrap(args.executable)
        .set_arguments(args.args)
        .enable_exit_code_validation(not args.no_exit_code_validation)
        .enable_standard_error_validation(args.stderr_validation)
    )
    if args.cwd:
        if not Path(args.cwd).is_dir():
            logger.error(f"Working directory not found: {args.cwd}")
            return EXIT_USAGE
        cli.set_working_directory(args.cwd)
    for key, value in args.env:
        cli.set_environment_variable(key, value)
    if args.input_file:
        try:
            cli.set_standard_input(Path(args.input_file).read_bytes())
        except OSError as e:
            logger.error(f"Cannot read input file: {e}")
            return EXIT_USAGE

    with CancellationTokenSource() as cts:
        if args.timeout is not None:
            cts.cancel_after(args.timeout)
            cli.set_cancellation_token(cts.token)

        try:
            result = cli.execute()
        except FileNotFoundError as e:
            logger.error(f"Executable not found: {e}")
            return EXIT_NOT_FOUND
        except PermissionError as e:
            logger.error(f"Executable not runnable: {e}")
            return EXIT_NOT_EXECUTABLE
        except ExecutionCancelledError:
            logger.error(f"Process timed out after {args.timeout}s")
            return EXIT_TIMEOUT
        except ExecutionResultValidationError as e:
            _echo(e.result)
            logger.error(str(e).splitlines()[0])
            if isinstance(e, ExitCodeValidationError):
                return _exit_status(e.exit_code)
            return 1

    logger.debug(f"Finished: {result!r}")
    _echo(result)
    return _exit_status(result.exit_code)


def main() -> None:
    """Main entry point."""
    configure_logging(get_config())
    sys.exit(run())


if __name__ == "__main__":
    main()
