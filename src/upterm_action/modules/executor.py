"""Run the external tools a session depends on.

Everything this project does on the runner goes through here: ssh-keygen,
the ssh trust probe, curl/tar/apt-get/brew installs, tmux and upterm. Each
command's stdout and stderr are read on background threads so a chatty
`ssh -v` probe cannot fill a pipe and stall the run.
"""

import logging
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path

from upterm_action.config import EnvironmentOverrides
from upterm_action.exceptions import UptermActionError

logger = logging.getLogger(__name__)

# Shell convention for a missing executable
COMMAND_NOT_FOUND = 127

# Seconds a timed out command gets to exit after SIGTERM
TERMINATE_GRACE = 5


@dataclass
class CommandResult:
    """Exit status and decoded output of one command."""

    returncode: int
    stdout: str
    stderr: str
    timed_out: bool

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class ShellCommandError(UptermActionError):
    """Raised when a command exits with nonzero status."""

    def __init__(self, command: list[str], returncode: int, stderr: str):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or "no error output"
        super().__init__(f"Command '{' '.join(command)}' failed with exit code {returncode}: {detail}")


def _not_started(returncode: int, message: str) -> CommandResult:
    return CommandResult(returncode=returncode, stdout="", stderr=message, timed_out=False)


class _PipeReader(threading.Thread):
    """Read one pipe to EOF on a daemon thread."""

    def __init__(self, pipe):
        super().__init__(daemon=True)
        self.pipe = pipe
        self.chunks: list[bytes] = []

    def run(self) -> None:
        try:
            for chunk in iter(lambda: self.pipe.read(65536), b""):
                self.chunks.append(chunk)
        except (OSError, ValueError):
            # Pipe closed underneath us after a kill
            pass

    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8", errors="replace")


def safe_run(
    cmd: list[str],
    cwd: Path | None = None,
    timeout: int | None = 30,
    env: dict | None = None,
) -> CommandResult:
    """
    Run a command to completion and capture its output.

    A command that cannot be started is reported as a result, not raised:
    a missing executable gets exit code 127. A command that outlives
    `timeout` is terminated, then killed after TERMINATE_GRACE seconds.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        timeout: Seconds to wait, or None to wait forever
        env: Full environment for the child process

    Returns:
        CommandResult: Exit status, output, and whether it timed out
    """
    try:
        process = subprocess.Popen(
            cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, cwd=cwd, env=env
        )
    except FileNotFoundError:
        return _not_started(COMMAND_NOT_FOUND, f"Command not found: {cmd[0] if cmd else 'unknown'}")
    except OSError as e:
        return _not_started(1, f"Error executing command: {e!s}")

    readers = [_PipeReader(process.stdout), _PipeReader(process.stderr)]
    for reader in readers:
        reader.start()

    timed_out = False
    try:
        process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        logger.debug(f"Timed out after {timeout}s: {' '.join(cmd)}")
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    for reader in readers:
        reader.join(timeout=1)

    stdout_reader, stderr_reader = readers
    return CommandResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout_reader.text(),
        stderr=stderr_reader.text(),
        timed_out=timed_out,
    )


class ShellExecutor:
    """Run external commands with the run's environment overrides."""

    DEFAULT_TIMEOUT = 60

    def __init__(self, overrides: EnvironmentOverrides | None = None):
        self.overrides = overrides

    def execute(self, cmd: list[str], timeout: int | None = DEFAULT_TIMEOUT) -> CommandResult:
        """Run a command and return its result without raising."""
        env = self.overrides.apply() if self.overrides else None
        logger.debug(f"Running: {' '.join(cmd)}")
        return safe_run(cmd, timeout=timeout, env=env)

    def run(self, cmd: list[str], timeout: int | None = DEFAULT_TIMEOUT) -> str:
        """
        Run a command to completion and return its stdout.

        Raises:
            ShellCommandError: If the command exits nonzero or times out
        """
        result = self.execute(cmd, timeout=timeout)
        if result.timed_out:
            raise ShellCommandError(cmd, result.returncode, f"timed out after {timeout}s")
        if result.returncode != 0:
            raise ShellCommandError(cmd, result.returncode, result.stderr or result.stdout)
        return result.stdout


__all__ = ["CommandResult", "ShellCommandError", "ShellExecutor", "safe_run"]
