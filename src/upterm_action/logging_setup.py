"""Logging configuration.

Plain "%(message)s" output on a terminal. Under GitHub Actions, records are
rendered as workflow commands so warnings and errors show up as annotations
and debug lines only appear when step debugging is enabled.
"""

import logging
import sys

# Levels rendered as workflow commands; INFO stays plain text
_WORKFLOW_COMMANDS = {
    logging.DEBUG: "debug",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


def escape_data(value: str) -> str:
    """Escape a message for use in a workflow command."""
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class WorkflowCommandFormatter(logging.Formatter):
    """Render log records as GitHub Actions workflow commands."""

    def __init__(self) -> None:
        super().__init__("%(message)s")

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        command = _WORKFLOW_COMMANDS.get(record.levelno)
        if command is None:
            return message
        return f"::{command}::{escape_data(message)}"


def configure_logging(debug: bool = False, github_actions: bool = False) -> None:
    """Configure the root logger for a run.

    Args:
        debug: Enable DEBUG level output
        github_actions: Emit workflow commands instead of plain text
    """
    handler = logging.StreamHandler(sys.stdout)
    if github_actions:
        handler.setFormatter(WorkflowCommandFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    # Keep HTTP client chatter out of the session log
    logging.getLogger("urllib3").setLevel(logging.WARNING)


__all__ = ["WorkflowCommandFormatter", "configure_logging", "escape_data"]
