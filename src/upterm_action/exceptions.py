"""Base exception for upterm-action.

Every module defines its own error type derived from UptermActionError so
the CLI can turn any setup failure into a single message and exit status.
"""


class UptermActionError(Exception):
    """Base error for all upterm-action failures."""

    pass


__all__ = ["UptermActionError"]
