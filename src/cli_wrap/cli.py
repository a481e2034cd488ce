"""Command line interface wrapper.

Configure an executable with the fluent setters, then run it with one of:
- execute(): block until exit, return a validated ExecutionResult
- execute_async(): same, suspending instead of blocking
- execute_and_forget(): start, feed stdin, and walk away

Example:
    result = (
        Cli.wrap("git")
        .set_arguments(["log", "-1", "--format=%H"])
        .set_working_directory("/repo")
        .execute()
    )
    print(result.standard_output.strip())
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import shlex
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import BinaryIO

from .config import get_config
from .models import ExecutionResult
from .runtime.cancellation import CancellationToken
from .runtime.process import IS_WINDOWS, CliProcess, LineCallback, ProcessSpec
from .utils.guards import guard_not_blank, guard_not_none
from .utils.text import normalize_encoding, string_to_stream
from .validation import validate_result

__all__ = ["Cli"]

logger = logging.getLogger(__name__)

InputSource = Callable[[], BinaryIO]


def _empty_input() -> BinaryIO:
    return io.BytesIO()


class Cli:
    """Wrapper around one executable.

    A Cli holds configuration only; every execute call launches a fresh
    process, so one instance can be run several times. A stream passed to
    set_standard_input() is consumed by the first run.
    """

    def __init__(self, file_path: str | os.PathLike[str]) -> None:
        file_path = guard_not_none(file_path, "file_path")
        self._file_path = guard_not_blank(os.fspath(file_path), "file_path")

        config = get_config()
        self._default_encoding = config.encoding
        self._decode_errors = config.decode_errors

        self._working_directory: Path | None = None
        self._arguments: str | list[str] = []
        self._standard_input: InputSource = _empty_input
        self._environment_variables: dict[str, str | None] = {}
        self._standard_output_encoding = config.encoding
        self._standard_error_encoding = config.encoding
        self._standard_output_callback: LineCallback | None = None
        self._standard_error_callback: LineCallback | None = None
        self._cancellation_token = CancellationToken.none()
        self._exit_code_validation = True
        self._standard_error_validation = False

    @classmethod
    def wrap(cls, file_path: str | os.PathLike[str]) -> Cli:
        """Create a Cli for the target executable."""
        return cls(file_path)

    @property
    def file_path(self) -> str:
        return self._file_path

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def set_working_directory(self, working_directory: str | os.PathLike[str]) -> Cli:
        working_directory = guard_not_none(working_directory, "working_directory")
        self._working_directory = Path(working_directory)
        return self

    def set_arguments(self, arguments: str | Sequence[str]) -> Cli:
        """Set the command line arguments.

        Args:
            arguments: Either a command line string, already quoted for the
                platform, or a sequence of individual arguments.
        """
        arguments = guard_not_none(arguments, "arguments")
        if isinstance(arguments, str):
            self._arguments = arguments
        else:
            self._arguments = [guard_not_none(a, "arguments item") for a in arguments]
        return self

    def set_standard_input(
        self,
        standard_input: BinaryIO | bytes | str,
        encoding: str | None = None,
    ) -> Cli:
        """Set what gets piped into the process.

        Args:
            standard_input: Binary stream, bytes, or text
            encoding: Encoding for text input (default: configured encoding)

        Raises:
            TypeError: For None or a text-mode stream
            UnicodeEncodeError: If text cannot be encoded with the encoding
        """
        standard_input = guard_not_none(standard_input, "standard_input")

        if isinstance(standard_input, str):
            encoding = normalize_encoding(encoding or self._default_encoding)
            encoded = string_to_stream(standard_input, encoding).getvalue()
            self._standard_input = lambda: io.BytesIO(encoded)
        elif isinstance(standard_input, (bytes, bytearray, memoryview)):
            data = bytes(standard_input)
            self._standard_input = lambda: io.BytesIO(data)
        elif isinstance(standard_input, io.TextIOBase):
            raise TypeError("standard_input stream must be binary, not text")
        else:
            stream = standard_input
            self._standard_input = lambda: stream
        return self

    def set_environment_variable(self, key: str, value: str | None) -> Cli:
        """Override one environment variable of the child.

        Overrides are applied on top of the parent environment; a value of
        None removes the variable.
        """
        key = guard_not_blank(key, "key")
        self._environment_variables[key] = value
        return self

    def set_standard_output_encoding(self, encoding: str) -> Cli:
        self._standard_output_encoding = normalize_encoding(
            guard_not_none(encoding, "encoding")
        )
        return self

    def set_standard_error_encoding(self, encoding: str) -> Cli:
        self._standard_error_encoding = normalize_encoding(
            guard_not_none(encoding, "encoding")
        )
        return self

    def set_standard_output_callback(self, callback: LineCallback) -> Cli:
        """Call ``callback`` with every stdout line as it arrives."""
        self._standard_output_callback = guard_not_none(callback, "callback")
        return self

    def set_standard_error_callback(self, callback: LineCallback) -> Cli:
        """Call ``callback`` with every stderr line as it arrives."""
        self._standard_error_callback = guard_not_none(callback, "callback")
        return self

    def set_cancellation_token(self, token: CancellationToken) -> Cli:
        self._cancellation_token = guard_not_none(token, "token")
        return self

    def enable_exit_code_validation(self, is_enabled: bool = True) -> Cli:
        """Raise ExitCodeValidationError on non-zero exit (default on)."""
        self._exit_code_validation = is_enabled
        return self

    def enable_standard_error_validation(self, is_enabled: bool = True) -> Cli:
        """Raise StandardErrorValidationError on non-blank stderr (default off)."""
        self._standard_error_validation = is_enabled
        return self

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    def execute(self) -> ExecutionResult:
        """Run the process and wait for it to finish.

        Returns:
            The validated execution result

        Raises:
            OSError: If the process could not be started
            ExecutionCancelledError: If the cancellation token was triggered
            ExitCodeValidationError: Non-zero exit code with validation on
            StandardErrorValidationError: Non-blank stderr with validation on
        """
        with self._start_process() as process:
            with self._cancellation_token.register(process.try_kill):
                process.pipe_input(self._standard_input())
                process.wait_for_exit()

                self._cancellation_token.throw_if_cancellation_requested()

                result = self._create_result(process)
                self._validate(result)
                return result

    async def execute_async(self) -> ExecutionResult:
        """Run the process without blocking the event loop.

        If the awaiting task is cancelled, the process is killed before the
        CancelledError propagates.

        Raises:
            See execute().
        """
        with self._start_process() as process:
            with self._cancellation_token.register(process.try_kill):
                try:
                    await process.pipe_input_async(self._standard_input())
                    await process.wait_for_exit_async()
                except asyncio.CancelledError:
                    logger.debug(f"Task cancelled, killing pid={process.pid}")
                    process.try_kill()
                    raise

                self._cancellation_token.throw_if_cancellation_requested()

                result = self._create_result(process)
                self._validate(result)
                return result

    def execute_and_forget(self) -> None:
        """Start the process and feed its stdin without waiting for exit.

        Raises:
            OSError: If the process could not be started
        """
        with self._start_process() as process:
            process.pipe_input(self._standard_input())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_argv(self) -> list[str] | str:
        if isinstance(self._arguments, str):
            if IS_WINDOWS:
                # Windows: pass the pre-quoted command line through verbatim
                executable = subprocess.list2cmdline([self._file_path])
                return f"{executable} {self._arguments}".rstrip()
            return [self._file_path, *shlex.split(self._arguments)]
        return [self._file_path, *self._arguments]

    def _build_env(self) -> dict[str, str] | None:
        if not self._environment_variables:
            return None

        env = os.environ.copy()
        for key, value in self._environment_variables.items():
            if value is None:
                env.pop(key, None)
            else:
                env[key] = value
        return env

    def _build_spec(self) -> ProcessSpec:
        return ProcessSpec(
            argv=self._build_argv(),
            cwd=self._working_directory,
            env=self._build_env(),
            stdout_encoding=self._standard_output_encoding,
            stderr_encoding=self._standard_error_encoding,
            decode_errors=self._decode_errors,
        )

    def _start_process(self) -> CliProcess:
        process = CliProcess(
            self._build_spec(),
            on_stdout=self._standard_output_callback,
            on_stderr=self._standard_error_callback,
        )
        try:
            process.start()
        except BaseException:
            process.dispose()
            raise
        return process

    @staticmethod
    def _create_result(process: CliProcess) -> ExecutionResult:
        assert process.start_time is not None
        assert process.exit_time is not None
        return ExecutionResult(
            exit_code=process.exit_code,
            standard_output=process.standard_output,
            standard_error=process.standard_error,
            start_time=process.start_time,
            exit_time=process.exit_time,
        )

    def _validate(self, result: ExecutionResult) -> None:
        validate_result(
            result,
            exit_code_validation=self._exit_code_validation,
            standard_error_validation=self._standard_error_validation,
        )

    def __repr__(self) -> str:
        return (
            f"Cli(file_path={self._file_path!r}, "
            f"arguments={self._arguments!r}, "
            f"working_directory={self._working_directory}, "
            f"exit_code_validation={self._exit_code_validation}, "
            f"standard_error_validation={self._standard_error_validation})"
        )
