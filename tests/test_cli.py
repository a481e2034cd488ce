"""Cli execution tests.

Test coverage:
- Scenario runs for execute() / execute_async()
- Validation (exit code, standard error, precedence)
- Cancellation via token (before start, during run, after completion)
- asyncio task cancellation
- Fire-and-forget execution
- Builder options (arguments, env, cwd, stdin, encodings, callbacks)
"""

from __future__ import annotations

import asyncio
import io
import os
import sys
import threading
import time
from pathlib import Path
from unittest import mock

import pytest

from cli_wrap import (
    CancellationToken,
    CancellationTokenSource,
    Cli,
    ExecutionCancelledError,
    ExecutionResult,
    ExitCodeValidationError,
    StandardErrorValidationError,
)
from cli_wrap.runtime.process import IS_WINDOWS, CliProcess

SLEEPER = [sys.executable, "-c", "import time; time.sleep(60)"]


def _sleeper() -> Cli:
    return Cli.wrap(SLEEPER[0]).set_arguments(SLEEPER[1:])


# =============================================================================
# Scenario Tests
# =============================================================================


class TestExecuteScenarios:
    """End-to-end runs with default validation."""

    @pytest.mark.timeout(30)
    def test_hello(self, fake_cli):
        result = fake_cli("--write-stdout", "hello\\n").execute()

        assert isinstance(result, ExecutionResult)
        assert result.exit_code == 0
        assert result.standard_output == "hello\n"
        assert result.standard_error == ""
        assert result.exit_time >= result.start_time
        assert result.run_time.total_seconds() >= 0

    @pytest.mark.timeout(30)
    def test_exit_code_2_fails_validation(self, fake_cli):
        with pytest.raises(ExitCodeValidationError) as exc_info:
            fake_cli("--exit-code", "2").execute()

        assert exc_info.value.exit_code == 2
        assert exc_info.value.result.exit_code == 2
        assert "(2)" in str(exc_info.value)

    @pytest.mark.timeout(30)
    def test_stderr_warning_with_stderr_validation(self, fake_cli):
        cli = fake_cli("--write-stderr", "warning\\n").enable_standard_error_validation()

        with pytest.raises(StandardErrorValidationError) as exc_info:
            cli.execute()

        assert exc_info.value.standard_error == "warning\n"
        assert exc_info.value.result.exit_code == 0

    @pytest.mark.timeout(30)
    def test_stderr_ignored_by_default(self, fake_cli):
        result = fake_cli("--write-stderr", "warning\\n").execute()
        assert result.standard_error == "warning\n"

    @pytest.mark.timeout(30)
    def test_whitespace_stderr_passes_stderr_validation(self, fake_cli):
        result = (
            fake_cli("--write-stderr", " \\t\\n\\n")
            .enable_standard_error_validation()
            .execute()
        )
        assert result.exit_code == 0

    @pytest.mark.timeout(30)
    def test_exit_code_failure_wins_over_stderr_failure(self, fake_cli):
        cli = (
            fake_cli("--exit-code", "1", "--write-stderr", "boom\\n")
            .enable_standard_error_validation()
        )
        with pytest.raises(ExitCodeValidationError):
            cli.execute()

    @pytest.mark.timeout(30)
    def test_exit_code_validation_disabled(self, fake_cli):
        result = fake_cli("--exit-code", "5").enable_exit_code_validation(False).execute()
        assert result.exit_code == 5

    @pytest.mark.timeout(30)
    def test_launch_failure_propagates(self):
        with pytest.raises(FileNotFoundError):
            Cli.wrap("nonexistent_command_xyz_123").execute()

    @pytest.mark.timeout(30)
    def test_cli_can_run_twice(self, fake_cli):
        cli = fake_cli("--echo-stdin").set_standard_input("again\n")
        assert cli.execute().standard_output == "again\n"
        assert cli.execute().standard_output == "again\n"


class TestExecuteAsyncScenarios:
    """End-to-end runs with execute_async()."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_hello(self, fake_cli):
        result = await fake_cli("--write-stdout", "hello\\n").execute_async()
        assert result.exit_code == 0
        assert result.standard_output == "hello\n"
        assert result.standard_error == ""

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_exit_code_failure(self, fake_cli):
        with pytest.raises(ExitCodeValidationError) as exc_info:
            await fake_cli("--exit-code", "2").execute_async()
        assert exc_info.value.exit_code == 2

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_stdin_and_large_output(self, fake_cli):
        result = await (
            fake_cli("--bulk", "500000", "--count-stdin")
            .set_standard_input(b"y" * 100_000)
            .execute_async()
        )
        assert len(result.standard_error) == 500_000
        assert result.standard_output.endswith("100000\n")

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_runs_concurrently(self, fake_cli):
        clis = [fake_cli("--sleep", "0.5", "--write-stdout", f"{i}\\n") for i in range(4)]

        start = time.monotonic()
        results = await asyncio.gather(*(cli.execute_async() for cli in clis))
        elapsed = time.monotonic() - start

        assert [r.standard_output for r in results] == ["0\n", "1\n", "2\n", "3\n"]
        assert elapsed < 4 * 0.5 + 1.5

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_event_loop_not_blocked(self, fake_cli):
        ticks = 0

        async def ticker() -> None:
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        tick_task = asyncio.create_task(ticker())
        try:
            await fake_cli("--sleep", "0.5").execute_async()
        finally:
            tick_task.cancel()

        assert ticks >= 10


# =============================================================================
# Cancellation Tests
# =============================================================================


class TestCancellation:
    """Test cancellation through the token."""

    @pytest.mark.timeout(30)
    def test_cancel_shortly_after_start(self):
        cts = CancellationTokenSource()
        cts.cancel_after(0.01)

        start = time.monotonic()
        with pytest.raises(ExecutionCancelledError):
            _sleeper().set_cancellation_token(cts.token).execute()

        assert time.monotonic() - start < 20

    @pytest.mark.timeout(30)
    def test_cancel_invokes_try_kill_and_disposes(self):
        cts = CancellationTokenSource()
        processes: list[CliProcess] = []
        original_start = CliProcess.start
        original_kill = CliProcess.try_kill

        def tracking_start(self: CliProcess) -> None:
            processes.append(self)
            original_start(self)

        with mock.patch.object(CliProcess, "try_kill", autospec=True, side_effect=original_kill) as kill, \
                mock.patch.object(CliProcess, "start", tracking_start):
            threading.Timer(0.2, cts.cancel).start()
            with pytest.raises(ExecutionCancelledError):
                _sleeper().set_cancellation_token(cts.token).execute()

        assert kill.call_count >= 1
        process = processes[0]
        assert process.has_exited
        assert process._exit_signal.is_disposed
        assert process._stdout.end_signal.is_disposed
        assert process._stderr.end_signal.is_disposed

    @pytest.mark.timeout(30)
    def test_already_cancelled_token(self, fake_cli):
        cts = CancellationTokenSource()
        cts.cancel()

        with pytest.raises(ExecutionCancelledError):
            fake_cli("--sleep", "30").set_cancellation_token(cts.token).execute()

    @pytest.mark.timeout(30)
    def test_cancellation_wins_over_validation_failure(self):
        cts = CancellationTokenSource()
        cts.cancel_after(0.05)

        # A killed process exits non-zero, which would otherwise fail validation
        with pytest.raises(ExecutionCancelledError):
            _sleeper().set_cancellation_token(cts.token).execute()

    @pytest.mark.timeout(30)
    def test_registration_released_after_run(self, fake_cli):
        cts = CancellationTokenSource()

        with mock.patch.object(CliProcess, "try_kill", autospec=True, return_value=False) as kill:
            result = fake_cli().set_cancellation_token(cts.token).execute()

            assert cts._callbacks == {}
            # Cancelling later must not reach the disposed process
            cts.cancel()

        assert result.exit_code == 0
        assert cts.is_cancellation_requested
        kill.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_cancel_async(self):
        cts = CancellationTokenSource()
        cts.cancel_after(0.01)

        with pytest.raises(ExecutionCancelledError):
            await _sleeper().set_cancellation_token(cts.token).execute_async()

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_task_cancellation_kills_process(self):
        processes: list[CliProcess] = []
        original_start = CliProcess.start

        def tracking_start(self: CliProcess) -> None:
            processes.append(self)
            original_start(self)

        with mock.patch.object(CliProcess, "start", tracking_start):
            task = asyncio.create_task(_sleeper().execute_async())
            await asyncio.sleep(0.3)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        popen = processes[0]._process
        assert popen is not None
        deadline = time.monotonic() + 10
        while popen.poll() is None and time.monotonic() < deadline:
            await asyncio.sleep(0.05)
        assert popen.poll() is not None


# =============================================================================
# Fire-and-forget Tests
# =============================================================================


class TestExecuteAndForget:
    """Test execute_and_forget()."""

    @pytest.mark.timeout(30)
    def test_returns_without_waiting(self, fake_cli):
        start = time.monotonic()
        assert fake_cli("--sleep", "3").execute_and_forget() is None
        assert time.monotonic() - start < 2.5

    @pytest.mark.timeout(30)
    def test_process_keeps_running_and_gets_input(self, temp_workspace):
        marker = temp_workspace / "out.txt"
        script = f"import sys, pathlib; pathlib.Path({str(marker)!r}).write_bytes(sys.stdin.buffer.read())"

        Cli.wrap(sys.executable).set_arguments(["-c", script]).set_standard_input(b"payload").execute_and_forget()

        deadline = time.monotonic() + 20
        while time.monotonic() < deadline:
            if marker.exists() and marker.read_bytes() == b"payload":
                break
            time.sleep(0.05)
        assert marker.read_bytes() == b"payload"

    @pytest.mark.timeout(30)
    def test_no_validation(self, fake_cli):
        fake_cli("--exit-code", "9").execute_and_forget()

    def test_launch_failure_propagates(self):
        with pytest.raises(FileNotFoundError):
            Cli.wrap("nonexistent_command_xyz_123").execute_and_forget()


# =============================================================================
# Builder Tests
# =============================================================================


class TestBuilderOptions:
    """Test the configuration setters."""

    @pytest.mark.timeout(30)
    def test_argument_sequence(self, fake_cli):
        result = fake_cli("--", "a b", "c").execute()
        assert result.standard_output == "a b\nc\n"

    @pytest.mark.timeout(30)
    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX quoting")
    def test_argument_string_is_split_like_a_shell(self, fake_cli_path: Path):
        result = (
            Cli.wrap(sys.executable)
            .set_arguments(f"'{fake_cli_path}' -- 'a b' c")
            .execute()
        )
        assert result.standard_output == "a b\nc\n"

    @pytest.mark.timeout(30)
    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX quoting")
    def test_argument_string_is_not_shell_interpreted(self, fake_cli_path: Path):
        result = (
            Cli.wrap(sys.executable)
            .set_arguments(f"'{fake_cli_path}' -- '$HOME' 'x;y'")
            .execute()
        )
        assert result.standard_output == "$HOME\nx;y\n"

    @pytest.mark.timeout(30)
    def test_working_directory(self, fake_cli, temp_workspace):
        result = fake_cli("--print-cwd").set_working_directory(temp_workspace).execute()
        assert Path(result.standard_output.strip()).resolve() == temp_workspace.resolve()

    @pytest.mark.timeout(30)
    def test_environment_override_is_additive(self, fake_cli):
        os.environ["CLIWRAP_PARENT_VAR"] = "from-parent"
        try:
            cli = fake_cli("--print-env", "CLIWRAP_PARENT_VAR").set_environment_variable("CLIWRAP_OTHER", "x")
            assert cli.execute().standard_output == "from-parent\n"

            cli = fake_cli("--print-env", "CLIWRAP_OTHER").set_environment_variable("CLIWRAP_OTHER", "x")
            assert cli.execute().standard_output == "x\n"
        finally:
            del os.environ["CLIWRAP_PARENT_VAR"]

    @pytest.mark.timeout(30)
    def test_environment_variable_removed_with_none(self, fake_cli):
        os.environ["CLIWRAP_REMOVED_VAR"] = "present"
        try:
            result = (
                fake_cli("--print-env", "CLIWRAP_REMOVED_VAR")
                .set_environment_variable("CLIWRAP_REMOVED_VAR", None)
                .execute()
            )
            assert result.standard_output == "<unset>\n"
        finally:
            del os.environ["CLIWRAP_REMOVED_VAR"]

    @pytest.mark.timeout(30)
    def test_standard_input_string_with_encoding(self, fake_cli):
        result = fake_cli("--count-stdin").set_standard_input("héllo", "utf-16-le").execute()
        assert result.standard_output == "10\n"

    @pytest.mark.timeout(30)
    def test_standard_input_stream(self, fake_cli):
        result = fake_cli("--echo-stdin").set_standard_input(io.BytesIO(b"from stream\n")).execute()
        assert result.standard_output == "from stream\n"

    def test_unencodable_standard_input_rejected_before_start(self, fake_cli):
        with mock.patch.object(CliProcess, "start") as start:
            with pytest.raises(UnicodeEncodeError):
                fake_cli("--count-stdin").set_standard_input("héllo", encoding="ascii")

        start.assert_not_called()

    @pytest.mark.timeout(30)
    def test_standard_input_string_reused_across_runs(self, fake_cli):
        cli = fake_cli("--count-stdin").set_standard_input("héllo", encoding="utf-8")

        assert cli.execute().standard_output == "6\n"
        assert cli.execute().standard_output == "6\n"

    def test_standard_input_text_stream_rejected(self, fake_cli):
        with pytest.raises(TypeError, match="binary"):
            fake_cli().set_standard_input(io.StringIO("text"))

    @pytest.mark.timeout(30)
    def test_output_encodings(self, fake_cli):
        result = (
            fake_cli("--encoding", "utf-16-le", "--unicode")
            .set_standard_output_encoding("utf-16-le")
            .set_standard_error_encoding("UTF-16LE")
            .execute()
        )
        assert result.standard_output == "héllo\n"
        assert result.standard_error == "wörld\n"

    def test_unknown_encoding_rejected(self, fake_cli):
        with pytest.raises(LookupError):
            fake_cli().set_standard_output_encoding("no-such-codec")

    @pytest.mark.timeout(30)
    def test_callbacks(self, fake_cli):
        out: list[str] = []
        err: list[str] = []
        result = (
            fake_cli("--stdout-lines", "3", "--stderr-lines", "2")
            .set_standard_output_callback(out.append)
            .set_standard_error_callback(err.append)
            .execute()
        )
        assert out == ["out1", "out2", "out3"]
        assert err == ["err1", "err2"]
        assert result.standard_output == "out1\nout2\nout3\n"

    def test_setters_return_self(self):
        cli = Cli.wrap("tool")
        assert cli.set_arguments("x") is cli
        assert cli.set_working_directory(".") is cli
        assert cli.set_environment_variable("K", "V") is cli
        assert cli.set_standard_input("in") is cli
        assert cli.set_standard_output_encoding("utf-8") is cli
        assert cli.set_standard_error_encoding("utf-8") is cli
        assert cli.set_standard_output_callback(print) is cli
        assert cli.set_standard_error_callback(print) is cli
        assert cli.set_cancellation_token(CancellationToken.none()) is cli
        assert cli.enable_exit_code_validation(False) is cli
        assert cli.enable_standard_error_validation() is cli

    @pytest.mark.parametrize(
        "setter",
        [
            "set_working_directory",
            "set_arguments",
            "set_standard_input",
            "set_standard_output_encoding",
            "set_standard_error_encoding",
            "set_standard_output_callback",
            "set_standard_error_callback",
            "set_cancellation_token",
        ],
    )
    def test_none_rejected(self, setter: str):
        with pytest.raises(TypeError, match="must not be None"):
            getattr(Cli.wrap("tool"), setter)(None)

    def test_blank_file_path_rejected(self):
        with pytest.raises(ValueError):
            Cli("  ")
        with pytest.raises(TypeError):
            Cli(None)  # type: ignore[arg-type]

    def test_default_encoding_from_config(self, monkeypatch):
        monkeypatch.setenv("CLIWRAP_ENCODING", "latin-1")
        cli = Cli.wrap("tool")
        spec = cli._build_spec()
        assert spec.stdout_encoding == "iso8859-1"
        assert spec.stderr_encoding == "iso8859-1"
