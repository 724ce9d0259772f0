"""Tool capability probing.

Philosophy:
- Single responsibility: Report whether a tool can be run
- Missing tools are a result, not an exception

Public API (the "studs"):
    ProbeStatus: Installed/missing enum
    ProbeResult: Probe outcome dataclass
    probe_tool: Probe one tool by running its version command
    probe_all: Probe every tool a session needs
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from upterm_action.modules.executor import ShellExecutor

logger = logging.getLogger(__name__)


class ProbeStatus(Enum):
    """Tool availability."""

    INSTALLED = "installed"
    MISSING = "missing"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing a tool."""

    tool: str
    status: ProbeStatus
    version: str | None = None

    @property
    def installed(self) -> bool:
        return self.status == ProbeStatus.INSTALLED


class SessionTools:
    """Tools a debugging session depends on, with their version commands."""

    VERSION_ARGS: ClassVar[dict[str, list[str]]] = {
        "upterm": ["version"],
        "tmux": ["-V"],
    }


def probe_tool(executor: ShellExecutor, tool: str, version_args: list[str]) -> ProbeResult:
    """
    Probe a tool by running its version command.

    Args:
        executor: Executor used to run the command
        tool: Executable name
        version_args: Arguments that print the version

    Returns:
        ProbeResult: INSTALLED with the first output line, or MISSING

    Example:
        >>> result = probe_tool(ShellExecutor(), "tmux", ["-V"])
        >>> if not result.installed:
        ...     print("tmux is missing")
    """
    result = executor.execute([tool, *version_args], timeout=30)
    if not result.succeeded:
        logger.debug(f"{tool} is not installed: {result.stderr.strip()}")
        return ProbeResult(tool=tool, status=ProbeStatus.MISSING)

    lines = result.stdout.strip().splitlines()
    version = lines[0] if lines else None
    logger.debug(f"{tool} is already installed ({version or 'unknown version'})")
    return ProbeResult(tool=tool, status=ProbeStatus.INSTALLED, version=version)


def probe_all(executor: ShellExecutor) -> dict[str, ProbeResult]:
    """Probe all session tools, keyed by tool name."""
    return {
        tool: probe_tool(executor, tool, args) for tool, args in SessionTools.VERSION_ARGS.items()
    }


__all__ = ["ProbeResult", "ProbeStatus", "SessionTools", "probe_all", "probe_tool"]
