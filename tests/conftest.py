"""
Shared test fixtures for upterm-action tests.

This module provides common fixtures used across all test types:
- A scripted executor that never runs real commands
- A temporary home directory with an .ssh directory
- Sample session requests
"""

import os
from pathlib import Path

import pytest

from upterm_action.config import EnvironmentOverrides, SessionRequest
from upterm_action.modules.executor import CommandResult, ShellExecutor


@pytest.fixture(autouse=True)
def protect_runner_environment(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.ssh and from CI inputs.

    CRITICAL PROTECTION: Tests must never touch the real authorized_keys,
    known_hosts or ssh config of the machine running them.

    This fixture:
    1. Points HOME at a throwaway directory
    2. Removes GitHub Actions inputs that would leak into CLI tests
    """
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in list(os.environ):
        if name.startswith("INPUT_") or name.startswith("GITHUB_") or name == "RUNNER_DEBUG":
            monkeypatch.delenv(name, raising=False)

# ============================================================================
# EXECUTOR FIXTURES
# ============================================================================


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(returncode=0, stdout=stdout, stderr="", timed_out=False)


def failed(stderr: str = "boom", returncode: int = 1) -> CommandResult:
    return CommandResult(returncode=returncode, stdout="", stderr=stderr, timed_out=False)


class FakeExecutor(ShellExecutor):
    """Executor that records commands and returns scripted results.

    Results are matched by command prefix; the longest matching prefix
    wins. A list of results is consumed one per call, the last one repeats.
    Unscripted commands succeed with empty output.
    """

    def __init__(self):
        super().__init__(overrides=None)
        self.commands: list[list[str]] = []
        self._scripts: dict[tuple[str, ...], list] = {}

    def script(self, prefix, *results) -> None:
        self._scripts[tuple(prefix)] = list(results)

    def execute(self, cmd, timeout=None):
        self.commands.append(list(cmd))
        matches = [p for p in self._scripts if tuple(cmd[: len(p)]) == p]
        if not matches:
            return ok()
        results = self._scripts[max(matches, key=len)]
        result = results.pop(0) if len(results) > 1 else results[0]
        if callable(result):
            result = result(cmd)
        return result

    def ran(self, *prefix) -> list[list[str]]:
        """Commands that started with the given prefix."""
        return [c for c in self.commands if tuple(c[: len(prefix)]) == prefix]


@pytest.fixture
def fake_executor():
    """Scripted executor; see FakeExecutor."""
    return FakeExecutor()


# ============================================================================
# DIRECTORY FIXTURES
# ============================================================================


@pytest.fixture
def temp_home_dir(tmp_path):
    """Temporary home directory with an empty .ssh directory."""
    home_dir = tmp_path / "runner-home"
    (home_dir / ".ssh").mkdir(parents=True, mode=0o700)
    return home_dir


@pytest.fixture
def overrides(temp_home_dir):
    """Environment overrides rooted at the temporary home."""
    return EnvironmentOverrides(
        home=temp_home_dir,
        shell="/bin/bash",
        tmux_tmpdir=temp_home_dir / ".tmux_tmpdir",
    )


# ============================================================================
# REQUEST FIXTURES
# ============================================================================


@pytest.fixture
def open_request(tmp_path):
    """Request without user restriction."""
    return SessionRequest(
        server="ssh://uptermd.upterm.dev:22",
        known_hosts=None,
        allowed_users=(),
        allow_actor=False,
        actor=None,
        workspace=tmp_path / "workspace",
    )


@pytest.fixture
def restricted_request(tmp_path):
    """Request restricted to alice."""
    return SessionRequest(
        server="example.upterm.dev:22",
        known_hosts=None,
        allowed_users=("alice",),
        allow_actor=False,
        actor=None,
        workspace=tmp_path / "workspace",
    )


@pytest.fixture
def sample_public_keys() -> list[str]:
    return [
        "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIAlice1",
        "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQAlice2",
    ]


def write_socket(home: Path, name: str = "abc123.sock") -> Path:
    sock_dir = home / ".upterm"
    sock_dir.mkdir(parents=True, exist_ok=True)
    sock = sock_dir / name
    sock.touch()
    return sock


@pytest.fixture
def admin_socket(temp_home_dir):
    """An upterm admin socket placeholder under the temporary home."""
    return write_socket(temp_home_dir)
