"""Child process supervisor with concurrent stream draining.

cli-wrap runtime module

This module provides:
- Launch of one child process with stdin/stdout/stderr redirected
- Line-oriented draining of stdout and stderr from the moment of start
- Exit watching with start/exit timestamps
- Blocking and asyncio waiting for exit plus both drains
- Best-effort forceful termination

Key design points:
- One daemon thread per output stream and one exit watcher thread, so a
  child that fills a pipe buffer never stalls waiting for the caller
- Each stream has a single writer thread; the accumulated text is frozen
  before its CompletionSignal is released, so readers never see partial data
- dispose() never kills the child: reader threads close their own pipe ends
  at end-of-data and the watcher reaps the child
"""

from __future__ import annotations

import errno
import io
import logging
import shutil
import subprocess
import sys
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, Any, BinaryIO

import anyio

from .completion import CompletionSignal

__all__ = [
    "CliProcess",
    "LineCallback",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

LineCallback = Callable[[str], None]


@dataclass(frozen=True)
class ProcessSpec:
    """Description of a child process to launch.

    Attributes:
        argv: Executable followed by its arguments, or a complete command
            line string (Windows only)
        cwd: Working directory (None = inherit)
        env: Complete environment for the child (None = inherit parent)
        stdout_encoding: Codec used to decode standard output
        stderr_encoding: Codec used to decode standard error
        decode_errors: Codec error handler for both output streams
    """

    argv: Sequence[str] | str
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    stdout_encoding: str = "utf-8"
    stderr_encoding: str = "utf-8"
    decode_errors: str = "replace"

    @property
    def executable(self) -> str:
        if isinstance(self.argv, str):
            return self.argv
        return self.argv[0]


def _now() -> datetime:
    return datetime.now().astimezone()


class _OutputCapture:
    """Accumulates one output stream and signals its end-of-data."""

    def __init__(self, name: str, callback: LineCallback | None) -> None:
        self.name = name
        self.callback = callback
        self.end_signal = CompletionSignal()
        self.text = ""
        self._chunks: list[str] = []

    def on_data(self, line: str | None) -> None:
        """Handle one line, or None for end-of-data."""
        if line is None:
            self.text = "".join(self._chunks)
            self._chunks = []
            self.end_signal.release()
            return

        self._chunks.append(line)
        self._chunks.append("\n")
        if self.callback is not None:
            try:
                self.callback(line)
            except Exception as e:
                logger.warning(f"Error in {self.name} callback: {e}")


class CliProcess:
    """Owns and drives one child process.

    Lifecycle: created -> start() -> (exited, stdout drained, stderr drained)
    -> dispose(). dispose() may be called at any point.

    Example:
        spec = ProcessSpec(argv=["git", "status"], cwd=Path("/repo"))
        with CliProcess(spec) as process:
            process.start()
            process.pipe_input(io.BytesIO())
            process.wait_for_exit()
            print(process.exit_code, process.standard_output)
    """

    def __init__(
        self,
        spec: ProcessSpec,
        on_stdout: LineCallback | None = None,
        on_stderr: LineCallback | None = None,
    ) -> None:
        self._spec = spec
        self._process: subprocess.Popen[bytes] | None = None
        self._exit_signal = CompletionSignal()
        self._stdout = _OutputCapture("stdout", on_stdout)
        self._stderr = _OutputCapture("stderr", on_stderr)
        self._start_time: datetime | None = None
        self._exit_time: datetime | None = None
        self._stdin_closed = False
        self._stdin_lock = threading.Lock()
        self._disposed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def spec(self) -> ProcessSpec:
        return self._spec

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def start_time(self) -> datetime | None:
        return self._start_time

    @property
    def exit_time(self) -> datetime | None:
        return self._exit_time

    @property
    def has_exited(self) -> bool:
        return self._exit_signal.is_set

    @property
    def exit_code(self) -> int:
        """Exit code of the finished process.

        Raises:
            RuntimeError: If the process has not exited yet
        """
        if self._process is None or self._process.returncode is None:
            raise RuntimeError("Process has not exited yet")
        return self._process.returncode

    @property
    def standard_output(self) -> str:
        """Captured stdout; final once the stdout drain has completed."""
        return self._stdout.text

    @property
    def standard_error(self) -> str:
        """Captured stderr; final once the stderr drain has completed."""
        return self._stderr.text

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Launch the process and begin draining its output.

        Raises:
            RuntimeError: If called more than once or after dispose()
            OSError: If the OS cannot launch the executable
                (FileNotFoundError, PermissionError, ...)
        """
        if self._disposed:
            raise RuntimeError("CliProcess is disposed")
        if self._process is not None:
            raise RuntimeError("Process has already been started")

        kwargs = self._build_subprocess_kwargs(self._spec)

        self._process = subprocess.Popen(
            self._spec.argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            **kwargs,
        )
        self._start_time = _now()

        pid = self._process.pid
        logger.debug(
            f"Started process pid={pid} "
            f"executable={self._spec.executable} cwd={self._spec.cwd}"
        )

        assert self._process.stdout is not None
        assert self._process.stderr is not None
        self._spawn(
            f"cli-wrap-stdout-{pid}",
            self._pump,
            self._process.stdout,
            self._spec.stdout_encoding,
            self._stdout,
        )
        self._spawn(
            f"cli-wrap-stderr-{pid}",
            self._pump,
            self._process.stderr,
            self._spec.stderr_encoding,
            self._stderr,
        )
        self._spawn(f"cli-wrap-exit-{pid}", self._watch_exit, self._process)

    def pipe_input(self, stream: BinaryIO) -> None:
        """Copy ``stream`` into the child's stdin, then close stdin.

        A child that exits without consuming its input is not an error.

        Args:
            stream: Readable binary stream; may be empty
        """
        process = self._require_started()
        stdin = process.stdin
        assert stdin is not None

        try:
            shutil.copyfileobj(stream, stdin)
        except BrokenPipeError:
            logger.debug(f"Child closed stdin early pid={process.pid}")
        except OSError as e:
            # Windows reports a vanished reader as EINVAL
            if e.errno != errno.EINVAL:
                raise
            logger.debug(f"Child closed stdin early pid={process.pid}")
        finally:
            self._close_stdin()

    async def pipe_input_async(self, stream: BinaryIO) -> None:
        """Like pipe_input(), without blocking the event loop.

        The copy runs on a worker thread. If the awaiting task is cancelled
        the copy is abandoned; it ends once the child dies or stdin closes.
        """
        await anyio.to_thread.run_sync(self.pipe_input, stream, abandon_on_cancel=True)

    def wait_for_exit(self) -> None:
        """Block until the process exited and both streams are drained."""
        self._require_started()
        self._exit_signal.wait()
        self._stdout.end_signal.wait()
        self._stderr.end_signal.wait()

    async def wait_for_exit_async(self) -> None:
        """Suspend until the process exited and both streams are drained."""
        self._require_started()
        await self._exit_signal.wait_async()
        await self._stdout.end_signal.wait_async()
        await self._stderr.end_signal.wait_async()

    def try_kill(self) -> bool:
        """Forcefully terminate the process.

        Termination races with natural exit, so failures are logged and
        reported as False instead of raised.

        Returns:
            Whether a kill was delivered to a running process
        """
        process = self._process
        if process is None or process.returncode is not None:
            return False

        try:
            process.kill()
        except Exception as e:
            logger.debug(f"Kill failed pid={process.pid}: {e}")
            return False

        logger.debug(f"Killed process pid={process.pid}")
        return True

    def dispose(self) -> None:
        """Release stdin and all completion signals.

        The child itself is left alone; output readers and the exit watcher
        finish on their own and release the OS resources.
        """
        if self._disposed:
            return
        self._disposed = True

        if self._process is not None:
            self._close_stdin()

        self._exit_signal.dispose()
        self._stdout.end_signal.dispose()
        self._stderr.end_signal.dispose()

    def __enter__(self) -> CliProcess:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return (
            f"CliProcess(executable={self._spec.executable!r}, pid={self.pid}, "
            f"exited={self.has_exited}, disposed={self._disposed})"
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific Popen kwargs.

        Args:
            spec: Process specification

        Returns:
            Dict of kwargs for subprocess.Popen
        """
        kwargs: dict[str, Any] = {}

        if spec.cwd is not None:
            kwargs["cwd"] = spec.cwd

        # Environment
        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        if IS_WINDOWS:
            # Windows: no console window for the child
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        return kwargs

    def _require_started(self) -> subprocess.Popen[bytes]:
        if self._process is None:
            raise RuntimeError("Process has not been started")
        return self._process

    def _spawn(self, name: str, target: Callable[..., None], *args: Any) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        thread.start()

    def _close_stdin(self) -> None:
        with self._stdin_lock:
            if self._stdin_closed:
                return
            self._stdin_closed = True

        stdin = self._process.stdin if self._process is not None else None
        if stdin is None:
            return
        try:
            stdin.close()
        except BrokenPipeError:
            logger.debug("stdin already closed by child")
        except OSError as e:
            if e.errno != errno.EINVAL:
                raise

    def _pump(self, pipe: IO[bytes], encoding: str, capture: _OutputCapture) -> None:
        """Read lines from ``pipe`` until end-of-data.

        Runs on a dedicated thread. Always finishes by signalling end-of-data,
        even if decoding or reading fails.
        """
        reader = io.TextIOWrapper(
            pipe,
            encoding=encoding,
            errors=self._spec.decode_errors,
            newline=None,
        )
        try:
            for line in reader:
                capture.on_data(line.rstrip("\n"))
        except (ValueError, OSError) as e:
            # Keep draining so the child is never blocked on a full pipe
            logger.warning(f"Failed to read {capture.name} pid={self.pid}: {e}")
            self._discard(pipe)
        finally:
            try:
                reader.close()
            except (ValueError, OSError) as e:
                logger.debug(f"Error closing {capture.name} pid={self.pid}: {e}")
            capture.on_data(None)

    @staticmethod
    def _discard(pipe: IO[bytes]) -> None:
        try:
            while pipe.read(65536):
                pass
        except (ValueError, OSError) as e:
            logger.debug(f"Stopped discarding output: {e}")

    def _watch_exit(self, process: subprocess.Popen[bytes]) -> None:
        returncode = process.wait()
        self._exit_time = _now()
        logger.debug(f"Process exited pid={process.pid} returncode={returncode}")
        self._exit_signal.release()
