"""Shared terminal session launch and status.

The session is an upterm host process running inside a detached tmux
session ("upterm-wrapper"). Viewers are forced into a second tmux session
("upterm") so every participant shares the same terminal. The running
process is only observed through its admin socket under ~/.upterm.
"""

import logging
import shlex
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from upterm_action.exceptions import UptermActionError
from upterm_action.modules.executor import ShellCommandError, ShellExecutor

logger = logging.getLogger(__name__)

WRAPPER_SESSION = "upterm-wrapper"
INNER_SESSION = "upterm"


class SessionLaunchError(UptermActionError):
    """Raised when the shared session cannot be created."""

    pass


class SessionQueryError(UptermActionError):
    """Raised when the session status cannot be read."""

    pass


class SessionPhase(Enum):
    """Observed phase of the shared session."""

    STARTING = "starting"
    ACTIVE = "active"
    ENDED = "ended"


class EndReason(Enum):
    """Why a session ended."""

    NORMAL = "normal"
    REMOTE_CLOSED = "remote-closed"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionStatus:
    """Status derived from one poll; never stored between polls."""

    phase: SessionPhase
    connection_string: str | None = None
    reason: EndReason | None = None

    @classmethod
    def starting(cls) -> "SessionStatus":
        return cls(phase=SessionPhase.STARTING)

    @classmethod
    def active(cls, connection_string: str) -> "SessionStatus":
        return cls(phase=SessionPhase.ACTIVE, connection_string=connection_string)

    @classmethod
    def ended(cls, reason: EndReason) -> "SessionStatus":
        return cls(phase=SessionPhase.ENDED, reason=reason)


@dataclass(frozen=True)
class SessionHandle:
    """The running session: tmux session names and the admin socket pattern."""

    wrapper_session: str
    inner_session: str
    socket_dir: Path

    @property
    def socket_pattern(self) -> str:
        return str(self.socket_dir / "*.sock")

    def admin_socket(self) -> Path | None:
        """First admin socket currently present, if any."""
        sockets = sorted(self.socket_dir.glob("*.sock"))
        return sockets[0] if sockets else None

    def is_alive(self, executor: ShellExecutor) -> bool:
        """True while the wrapper tmux session exists."""
        result = executor.execute(["tmux", "has-session", "-t", self.wrapper_session])
        return result.succeeded


class SessionLauncher:
    """Create the shared session and query its connection details."""

    NUDGE_DELAY = 2.0

    def __init__(
        self,
        executor: ShellExecutor,
        home: Path,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.executor = executor
        self.socket_dir = Path(home) / ".upterm"
        self.sleep = sleep

    def cleanup_stale_sockets(self) -> int:
        """Remove admin sockets left over from an earlier session.

        Returns:
            int: Number of sockets removed
        """
        removed = 0
        if not self.socket_dir.exists():
            return removed
        for sock in self.socket_dir.glob("*.sock"):
            try:
                sock.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Error removing {sock}: {e}")
        return removed

    @staticmethod
    def build_host_command(server: str, authorized_keys: Path | None = None) -> str:
        """
        Build the upterm host command typed into the wrapper pane.

        Example:
            >>> SessionLauncher.build_host_command("ssh://uptermd.upterm.dev:22")
            "upterm host --server ssh://uptermd.upterm.dev:22 --force-command 'tmux attach -t upterm' -- tmux attach -t upterm"
        """
        inner = f"tmux attach -t {INNER_SESSION}"
        parts = ["upterm", "host", "--server", shlex.quote(server)]
        if authorized_keys is not None:
            parts.extend(["-a", shlex.quote(str(authorized_keys))])
        parts.extend(["--force-command", shlex.quote(inner), "--", inner])
        return " ".join(parts)

    def launch(self, server: str, authorized_keys: Path | None = None) -> SessionHandle:
        """
        Start upterm inside detached tmux sessions.

        Args:
            server: upterm server address
            authorized_keys: Restrict access to these keys, if given

        Returns:
            SessionHandle: Handle for status queries

        Raises:
            SessionLaunchError: If any launch command fails
        """
        logger.debug(f"Creating a new session. Connecting to upterm server {server}")
        host_command = self.build_host_command(server, authorized_keys)
        target = f"{WRAPPER_SESSION}.0"

        try:
            self.executor.run(["tmux", "new", "-d", "-s", WRAPPER_SESSION])
            self.executor.run(["tmux", "new", "-d", "-s", INNER_SESSION])
            self.executor.run(["tmux", "send-keys", "-t", target, host_command, "ENTER"])
            self.sleep(self.NUDGE_DELAY)
            # Dismiss upterm's confirmation prompt
            self.executor.run(["tmux", "send-keys", "-t", target, "q", "C-m"])
            # Size the terminal for the largest client
            for session in (WRAPPER_SESSION, INNER_SESSION):
                self.executor.run(["tmux", "set", "-t", session, "window-size", "largest"])
        except ShellCommandError as e:
            raise SessionLaunchError(f"Failed to create session: {e}") from e

        logger.debug("Created new session successfully")
        return SessionHandle(
            wrapper_session=WRAPPER_SESSION,
            inner_session=INNER_SESSION,
            socket_dir=self.socket_dir,
        )

    def is_alive(self, handle: SessionHandle) -> bool:
        return handle.is_alive(self.executor)

    def query_connection(self, handle: SessionHandle) -> str:
        """
        Read the current connection details from upterm.

        Raises:
            SessionQueryError: If no admin socket exists or upterm fails
        """
        socket = handle.admin_socket()
        if socket is None:
            raise SessionQueryError(f"No upterm admin socket matching {handle.socket_pattern}")
        try:
            output = self.executor.run(
                ["upterm", "session", "current", "--admin-socket", str(socket)]
            )
        except ShellCommandError as e:
            raise SessionQueryError(str(e)) from e
        return output.strip()


__all__ = [
    "EndReason",
    "SessionHandle",
    "SessionLaunchError",
    "SessionLauncher",
    "SessionPhase",
    "SessionQueryError",
    "SessionStatus",
]
