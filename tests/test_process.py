"""Tests for CommandRunner: exit codes, pipes, tracing and placeholders."""

import sys
import time
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from presubmit.errors import UnboundReferenceError
from presubmit.process import (
    EXIT_NOT_EXECUTABLE,
    EXIT_NOT_FOUND,
    EXIT_TIMEOUT,
    CommandRunner,
    as_command,
    expand_placeholders,
    normalize_returncode,
    pipe_status,
)
from tests.conftest import exits, python


@pytest.fixture
def runner(tmp_path: Path) -> CommandRunner:
    return CommandRunner(tmp_path)


class TestRunBasic:
    """Single commands."""

    def test_success(self, runner: CommandRunner) -> None:
        result = runner.run(exits(0))
        assert result.ok
        assert result.returncode == 0
        assert result.segment_codes == (0,)

    def test_exit_code_passes_through(self, runner: CommandRunner) -> None:
        result = runner.run(exits(42))
        assert not result.ok
        assert result.returncode == 42

    def test_capture_output(self, runner: CommandRunner) -> None:
        result = runner.run(python("print('hello')"), capture_output=True)
        assert result.stdout is not None
        assert result.stdout.strip() == b"hello"

    def test_output_not_captured_by_default(self, runner: CommandRunner) -> None:
        result = runner.run(python("print('hello')"))
        assert result.stdout is None

    def test_runs_in_cwd(self, tmp_path: Path) -> None:
        runner = CommandRunner(tmp_path)
        result = runner.run(python("import os; print(os.getcwd())"), capture_output=True)
        assert result.stdout is not None
        assert Path(result.stdout.decode().strip()).resolve() == tmp_path.resolve()

    def test_env_replaces_parent_environment(self, tmp_path: Path) -> None:
        runner = CommandRunner(tmp_path, env={"GATE_VALUE": "seen"})
        result = runner.run(python("import os; print(os.environ.get('GATE_VALUE'))"), capture_output=True)
        assert result.stdout is not None
        assert result.stdout.strip() == b"seen"


class TestLaunchFailures:
    """Problems starting a command map to shell exit codes."""

    def test_command_not_found(self, runner: CommandRunner) -> None:
        result = runner.run(["definitely-not-a-real-command-7c1e"])
        assert result.returncode == EXIT_NOT_FOUND
        assert result.error is not None
        assert "definitely-not-a-real-command-7c1e" in result.error

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_not_executable(self, tmp_path: Path) -> None:
        script = tmp_path / "script.sh"
        script.write_text("#!/bin/sh\nexit 0\n")
        script.chmod(0o644)

        result = CommandRunner(tmp_path).run(["./script.sh"])
        assert result.returncode == EXIT_NOT_EXECUTABLE

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    def test_killed_by_signal(self, runner: CommandRunner) -> None:
        result = runner.run(python("import os, signal; os.kill(os.getpid(), signal.SIGTERM)"))
        assert result.returncode == 128 + 15

    def test_timeout(self, tmp_path: Path) -> None:
        runner = CommandRunner(tmp_path, timeout=0.5)
        result = runner.run(python("import time; time.sleep(30)"))
        assert result.returncode == EXIT_TIMEOUT
        assert result.error is not None
        assert "timed out" in result.error

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")
    def test_timeout_kills_processes_the_command_started(self, tmp_path: Path) -> None:
        grandchild = (
            "import pathlib, time; pathlib.Path('started').touch(); time.sleep(2); pathlib.Path('survived').touch()"
        )
        child = (
            "import subprocess, sys, time; "
            f"subprocess.Popen([sys.executable, '-c', {grandchild!r}]); time.sleep(30)"
        )

        result = CommandRunner(tmp_path, timeout=1.0).run(python(child))
        assert result.returncode == EXIT_TIMEOUT

        time.sleep(2.5)
        assert (tmp_path / "started").exists()
        assert not (tmp_path / "survived").exists()


class TestPipes:
    """Any failing segment fails the pipe, not just the last one."""

    def test_data_flows_between_segments(self, runner: CommandRunner) -> None:
        command = (
            tuple(python("print('abc')")),
            tuple(python("import sys; print(sys.stdin.read().strip().upper())")),
        )
        result = runner.run(command, capture_output=True)

        assert result.ok
        assert result.stdout is not None
        assert result.stdout.strip() == b"ABC"

    def test_first_segment_failure_propagates(self, runner: CommandRunner) -> None:
        command = (tuple(exits(3)), tuple(python("import sys; sys.stdin.read()")))
        result = runner.run(command)

        assert result.segment_codes == (3, 0)
        assert result.returncode == 3

    def test_rightmost_failure_wins(self, runner: CommandRunner) -> None:
        command = (tuple(exits(3)), tuple(exits(5)), tuple(exits(0)))
        result = runner.run(command)
        assert result.returncode == 5

    def test_missing_middle_segment(self, runner: CommandRunner) -> None:
        command = (tuple(exits(0)), ("definitely-not-a-real-command-7c1e",), tuple(exits(0)))
        result = runner.run(command)
        assert result.returncode == EXIT_NOT_FOUND
        assert result.segment_codes == (0, EXIT_NOT_FOUND, 0)

    def test_large_output_through_capture_does_not_deadlock(self, runner: CommandRunner) -> None:
        command = (
            tuple(python("import sys; sys.stdout.write('x' * 1_000_000)")),
            tuple(python("import sys; sys.stdout.write(sys.stdin.read())")),
        )
        result = runner.run(command, capture_output=True)
        assert result.ok
        assert result.stdout is not None
        assert len(result.stdout) == 1_000_000


class TestTrace:
    """Every command executed is recorded, in order, with its stage."""

    def test_trace_records_commands(self, runner: CommandRunner) -> None:
        runner.stage = "build"
        runner.run(exits(0))
        runner.stage = "precheck"
        runner.run(exits(2))

        assert [t.stage for t in runner.trace] == ["build", "precheck"]
        assert [t.exit_code for t in runner.trace] == [0, 2]
        assert runner.trace[0].command == (tuple(exits(0)),)

    def test_trace_display_joins_pipes(self, runner: CommandRunner) -> None:
        runner.run([("echo", "a b"), ("cat",)])
        assert runner.trace[0].display == "echo 'a b' | cat"

    def test_command_logged_before_it_runs(self, runner: CommandRunner) -> None:
        runner.stage = "build"
        with capture_logs() as logs:
            runner.run([("echo", "a b"), ("cat",)])

        (entry,) = [e for e in logs if e["event"] == "command.exec"]
        assert entry["command"] == "echo 'a b' | cat"
        assert entry["argv"] == [["echo", "a b"], ["cat"]]
        assert entry["stage"] == "build"
        assert entry["log_level"] == "info"

    def test_shared_trace_list(self, tmp_path: Path) -> None:
        trace: list = []
        CommandRunner(tmp_path, trace=trace).run(exits(0))
        assert len(trace) == 1


class TestHelpers:
    def test_pipe_status(self) -> None:
        assert pipe_status([0, 0, 0]) == 0
        assert pipe_status([1, 0, 0]) == 1
        assert pipe_status([1, 0, 2]) == 2
        assert pipe_status([]) == 0

    def test_normalize_returncode(self) -> None:
        assert normalize_returncode(0) == 0
        assert normalize_returncode(3) == 3
        assert normalize_returncode(-9) == 137

    def test_as_command(self) -> None:
        assert as_command(["a", "b"]) == (("a", "b"),)
        assert as_command([["a"], ["b", "c"]]) == (("a",), ("b", "c"))


class TestPlaceholders:
    """${NAME} placeholders resolve strictly from the environment."""

    def test_expands_known_names(self) -> None:
        command = (("cargo", "build", "--target-dir", "${TARGET}"),)
        assert expand_placeholders(command, {"TARGET": "/tmp/t"}) == (("cargo", "build", "--target-dir", "/tmp/t"),)

    def test_unset_name_is_unbound(self) -> None:
        with pytest.raises(UnboundReferenceError) as excinfo:
            expand_placeholders((("echo", "${MISSING}"),), {})
        assert excinfo.value.name == "MISSING"

    def test_empty_value_is_still_bound(self) -> None:
        assert expand_placeholders((("echo", "x${EMPTY}y"),), {"EMPTY": ""}) == (("echo", "xy"),)

    def test_non_identifier_braces_left_alone(self) -> None:
        command = (("python", "-c", "print({1: 2})"),)
        assert expand_placeholders(command, {}) == command

    def test_bare_braces_are_literal(self) -> None:
        command = (("echo", "hi"), ("awk", "{print}"), ("jq", "{name}"))
        assert expand_placeholders(command, {}) == command

    def test_shell_style_dollars_pass_through(self) -> None:
        command = (("awk", "{print $1}"), ("sh", "-c", "echo $HOME"))
        assert expand_placeholders(command, {}) == command

    def test_double_dollar_escapes(self) -> None:
        command = (("sh", "-c", "echo $${HOME} $$"),)
        assert expand_placeholders(command, {}) == (("sh", "-c", "echo ${HOME} $"),)
