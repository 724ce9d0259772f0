"""Tests for the shell executor.

All subprocess calls are mocked; no real command is started.
"""

import io
import subprocess
from unittest.mock import Mock, patch

import pytest

from upterm_action.config import EnvironmentOverrides
from upterm_action.modules.executor import (
    COMMAND_NOT_FOUND,
    CommandResult,
    ShellCommandError,
    ShellExecutor,
    safe_run,
)


def _process(returncode=0, stdout=b"", stderr=b""):
    process = Mock()
    process.wait.return_value = None
    process.returncode = returncode
    process.stdout = io.BytesIO(stdout)
    process.stderr = io.BytesIO(stderr)
    return process


class TestSafeRun:
    """Unit tests for low-level execution."""

    def test_captures_output(self):
        with patch("subprocess.Popen") as mock_popen:
            mock_popen.return_value = _process(stdout=b"tmux 3.3a\n")

            result = safe_run(["tmux", "-V"])

            assert result.returncode == 0
            assert result.stdout == "tmux 3.3a\n"
            assert result.timed_out is False

    def test_nonzero_exit(self):
        with patch("subprocess.Popen") as mock_popen:
            mock_popen.return_value = _process(returncode=2, stderr=b"no server running")

            result = safe_run(["tmux", "ls"])

            assert result.returncode == 2
            assert result.stderr == "no server running"

    def test_command_not_found(self):
        with patch("subprocess.Popen") as mock_popen:
            mock_popen.side_effect = FileNotFoundError("missing")

            result = safe_run(["upterm", "version"])

            assert result.returncode == COMMAND_NOT_FOUND
            assert "upterm" in result.stderr

    def test_os_error(self):
        with patch("subprocess.Popen") as mock_popen:
            mock_popen.side_effect = PermissionError("denied")

            result = safe_run(["upterm"])

            assert result.returncode == 1
            assert "denied" in result.stderr

    def test_timeout_terminates_process(self):
        with patch("subprocess.Popen") as mock_popen:
            process = _process(returncode=-15)
            process.wait.side_effect = [subprocess.TimeoutExpired("ssh", 1), None]
            mock_popen.return_value = process

            result = safe_run(["ssh", "host"], timeout=1)

            assert result.timed_out is True
            process.terminate.assert_called_once()
            process.kill.assert_not_called()

    def test_timeout_kills_after_grace(self):
        with patch("subprocess.Popen") as mock_popen:
            process = _process(returncode=-9)
            process.wait.side_effect = [
                subprocess.TimeoutExpired("tmux", 1),
                subprocess.TimeoutExpired("tmux", 5),
                None,
            ]
            mock_popen.return_value = process

            result = safe_run(["tmux", "attach"], timeout=1)

            assert result.timed_out is True
            process.kill.assert_called_once()

    def test_large_output_fully_read(self):
        payload = b"debug1: " * 50000
        with patch("subprocess.Popen") as mock_popen:
            mock_popen.return_value = _process(returncode=255, stderr=payload)

            result = safe_run(["ssh", "-v", "host"])

            assert result.stderr == payload.decode()

    def test_environment_passed_through(self):
        with patch("subprocess.Popen") as mock_popen:
            mock_popen.return_value = _process()

            safe_run(["env"], env={"HOME": "/h"})

            assert mock_popen.call_args[1]["env"] == {"HOME": "/h"}


class TestShellExecutor:
    """Unit tests for the raising executor."""

    @patch("upterm_action.modules.executor.safe_run")
    def test_run_returns_stdout(self, mock_run):
        mock_run.return_value = CommandResult(0, "ok\n", "", False)

        assert ShellExecutor().run(["echo", "ok"]) == "ok\n"

    @patch("upterm_action.modules.executor.safe_run")
    def test_run_raises_with_stderr(self, mock_run):
        mock_run.return_value = CommandResult(3, "", "socket gone", False)

        with pytest.raises(ShellCommandError) as exc_info:
            ShellExecutor().run(["upterm", "session", "current"])

        assert exc_info.value.returncode == 3
        assert exc_info.value.stderr == "socket gone"
        assert "socket gone" in str(exc_info.value)
        assert exc_info.value.command == ["upterm", "session", "current"]

    @patch("upterm_action.modules.executor.safe_run")
    def test_run_raises_on_timeout(self, mock_run):
        mock_run.return_value = CommandResult(-1, "", "", True)

        with pytest.raises(ShellCommandError, match="timed out"):
            ShellExecutor().run(["ssh", "host"], timeout=5)

    @patch("upterm_action.modules.executor.safe_run")
    def test_execute_applies_overrides(self, mock_run, tmp_path):
        mock_run.return_value = CommandResult(0, "", "", False)
        overrides = EnvironmentOverrides(
            home=tmp_path, shell="/bin/bash", tmux_tmpdir=tmp_path / "tmux"
        )

        ShellExecutor(overrides).execute(["tmux", "-V"])

        env = mock_run.call_args[1]["env"]
        assert env["HOME"] == str(tmp_path)
        assert env["TMUX_TMPDIR"] == str(tmp_path / "tmux")

    @patch("upterm_action.modules.executor.safe_run")
    def test_execute_without_overrides_inherits_environment(self, mock_run):
        mock_run.return_value = CommandResult(0, "", "", False)

        ShellExecutor().execute(["true"])

        assert mock_run.call_args[1]["env"] is None
