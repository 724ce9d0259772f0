"""Session lifecycle coordinator.

Owns the run's state machine and is the only place that decides the exit
status:

    UNINITIALIZED --setup ok--> PROVISIONING --first status ok--> ACTIVE
    UNINITIALIZED --setup error--> FAILED
    PROVISIONING --launch error / first status error--> FAILED
    ACTIVE --status ok--> ACTIVE
    ACTIVE --sentinel--> ENDED(normal)
    ACTIVE --status error--> ENDED(remote-closed)

FAILED maps to exit status 1, ENDED to 0. Session creation is never
retried and at most one SessionHandle exists per run.
"""

import logging
from enum import Enum
from pathlib import Path

from upterm_action.config import SessionRequest
from upterm_action.exceptions import UptermActionError
from upterm_action.modules.key_provider import GitHubKeyProvider
from upterm_action.modules.ssh_environment import SSHEnvironmentConfigurator
from upterm_action.session import (
    EndReason,
    SessionHandle,
    SessionLauncher,
    SessionQueryError,
    SessionStatus,
)

logger = logging.getLogger(__name__)


class CoordinatorState(Enum):
    """Lifecycle states of a run."""

    UNINITIALIZED = "uninitialized"
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    FAILED = "failed"
    ENDED = "ended"


TERMINAL_STATES = (CoordinatorState.FAILED, CoordinatorState.ENDED)


class LifecycleError(UptermActionError):
    """Raised when an operation is not valid in the current state."""

    pass


class SessionCoordinator:
    """Drive one debugging session from setup to termination."""

    def __init__(
        self,
        request: SessionRequest,
        configurator: SSHEnvironmentConfigurator,
        key_provider: GitHubKeyProvider,
        launcher: SessionLauncher,
    ):
        self.request = request
        self.configurator = configurator
        self.key_provider = key_provider
        self.launcher = launcher

        self.state = CoordinatorState.UNINITIALIZED
        self.end_reason: EndReason | None = None
        self.failure: str | None = None
        self.handle: SessionHandle | None = None
        self.connection_string: str | None = None
        self.status_queries = 0

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def exit_code(self) -> int:
        """Process exit status for a finished run.

        Raises:
            LifecycleError: If the run has not reached a terminal state
        """
        if self.state == CoordinatorState.FAILED:
            return 1
        if self.state == CoordinatorState.ENDED:
            return 0
        raise LifecycleError(f"No exit status while {self.state.value}")

    @property
    def status(self) -> SessionStatus:
        """Status as of the last poll, without querying the session."""
        if self.state in TERMINAL_STATES:
            return SessionStatus.ended(self.end_reason)
        if self.state == CoordinatorState.ACTIVE:
            return SessionStatus.active(self.connection_string)
        return SessionStatus.starting()

    def _fail(self, message: str) -> None:
        logger.error(message)
        self.failure = message
        self.end_reason = EndReason.FAILED
        self.state = CoordinatorState.FAILED

    def _setup(self) -> Path | None:
        """Run the idempotent SSH setup; returns the authorized_keys path."""
        self.configurator.ensure_key_pair()
        self.configurator.ensure_trust(self.request.server, self.request.known_hosts)

        if not self.request.restricted:
            return None

        if self.request.allow_actor and self.request.actor:
            logger.info(f'Adding actor "{self.request.actor}" to allowed users.')
        keys = self.key_provider.fetch_keys(self.request.effective_users)
        keys.require_keys(restricted=True)
        return self.configurator.write_authorized_keys(keys)

    def provision(self) -> CoordinatorState:
        """
        Prepare SSH and launch the shared session.

        Setup or launch errors move the run to FAILED; they are not retried.

        Returns:
            CoordinatorState: PROVISIONING on success, FAILED otherwise
        """
        if self.state != CoordinatorState.UNINITIALIZED:
            raise LifecycleError(f"Cannot provision while {self.state.value}")

        try:
            authorized_keys = self._setup()
        except (UptermActionError, OSError) as e:
            self._fail(str(e))
            return self.state

        self.state = CoordinatorState.PROVISIONING
        self.launcher.cleanup_stale_sockets()

        try:
            self.handle = self.launcher.launch(self.request.server, authorized_keys)
        except UptermActionError as e:
            self._fail(str(e))
        return self.state

    def poll(self) -> SessionStatus:
        """
        Query the session once and advance the state machine.

        Returns:
            SessionStatus: ACTIVE with the connection string, or ENDED
        """
        if self.state not in (CoordinatorState.PROVISIONING, CoordinatorState.ACTIVE):
            raise LifecycleError(f"Cannot poll while {self.state.value}")

        self.status_queries += 1
        try:
            connection = self.launcher.query_connection(self.handle)
        except SessionQueryError as e:
            if self.state == CoordinatorState.PROVISIONING:
                self._fail(f"Session did not report a connection string: {e}")
                return SessionStatus.ended(EndReason.FAILED)
            logger.error(f"{e}")
            if self.launcher.is_alive(self.handle):
                logger.info("Session closed by the remote side, shutting down")
            else:
                logger.info("upterm is no longer running, shutting down")
            self.end_reason = EndReason.REMOTE_CLOSED
            self.state = CoordinatorState.ENDED
            return SessionStatus.ended(EndReason.REMOTE_CLOSED)

        if self.state == CoordinatorState.PROVISIONING:
            logger.debug("Entering main loop")
            self.state = CoordinatorState.ACTIVE
        self.connection_string = connection
        logger.info(connection)
        return SessionStatus.active(connection)

    def observe_sentinel(self, path: Path) -> SessionStatus:
        """End an active session because a sentinel file appeared."""
        if self.state != CoordinatorState.ACTIVE:
            raise LifecycleError(f"Cannot end session while {self.state.value}")
        logger.info(f"Exiting debugging session because '{path}' file was created")
        self.end_reason = EndReason.NORMAL
        self.state = CoordinatorState.ENDED
        return SessionStatus.ended(EndReason.NORMAL)


__all__ = ["CoordinatorState", "LifecycleError", "SessionCoordinator"]
