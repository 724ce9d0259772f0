"""Idle loop that keeps the job alive while the session is in use."""

import logging
import time
from collections.abc import Callable
from pathlib import Path

from upterm_action.config import DEFAULT_POLL_INTERVAL
from upterm_action.coordinator import SessionCoordinator

logger = logging.getLogger(__name__)

SENTINEL_NAME = "continue"


def sentinel_paths(workspace: Path) -> tuple[Path, ...]:
    """The two places a 'continue' file ends the session."""
    return (Path("/") / SENTINEL_NAME, Path(workspace) / SENTINEL_NAME)


class PollDriver:
    """Poll the coordinator until the session reaches a terminal state.

    Each iteration queries status once, then checks for a sentinel file,
    then sleeps. Status interpretation is left to the coordinator.
    """

    def __init__(
        self,
        coordinator: SessionCoordinator,
        sentinels: tuple[Path, ...],
        interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.coordinator = coordinator
        self.sentinels = sentinels
        self.interval = interval
        self.sleep = sleep

    def find_sentinel(self) -> Path | None:
        for path in self.sentinels:
            if path.exists():
                return path
        return None

    def run(self) -> int:
        """Loop until the session ends; returns the process exit status."""
        logger.debug("Fetching connection strings")
        while not self.coordinator.is_terminal:
            self.coordinator.poll()
            if self.coordinator.is_terminal:
                break

            sentinel = self.find_sentinel()
            if sentinel is not None:
                self.coordinator.observe_sentinel(sentinel)
                break

            self.sleep(self.interval)

        return self.coordinator.exit_code


__all__ = ["SENTINEL_NAME", "PollDriver", "sentinel_paths"]
