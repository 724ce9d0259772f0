"""Configuration module.

Assembles the immutable SessionRequest once at startup from command-line
options, GitHub Actions inputs and an optional TOML file, and captures the
process environment overrides handed to the executor and SSH components.

Precedence (highest first):
- Explicit option or INPUT_* environment variable
- [session] table of the TOML config file
- Built-in defaults
"""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from upterm_action.exceptions import UptermActionError

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Fallback for newer Python versions
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

logger = logging.getLogger(__name__)

DEFAULT_SERVER = "ssh://uptermd.upterm.dev:22"
DEFAULT_POLL_INTERVAL = 30
FALLBACK_SHELL = "/bin/bash"

# Keys accepted in the [session] table of the config file
FILE_KEYS = (
    "upterm_server",
    "ssh_known_hosts",
    "limit_access_to_users",
    "limit_access_to_actor",
    "poll_interval",
)

_USER_SEPARATORS = re.compile(r"[\s,]+")
_SCHEME_OR_PORT = re.compile(r"^[a-z]+://|:[0-9]+")


class ConfigError(UptermActionError):
    """Raised when configuration is missing or invalid."""

    pass


def parse_usernames(raw: str | None) -> tuple[str, ...]:
    """Split a newline/comma/space separated user list.

    Empty entries are dropped and duplicates removed, keeping the order in
    which names first appear.

    Example:
        >>> parse_usernames("alice, bob\\nalice")
        ('alice', 'bob')
    """
    if not raw:
        return ()
    users: dict[str, None] = {}
    for name in _USER_SEPARATORS.split(raw):
        if name:
            users.setdefault(name, None)
    return tuple(users)


def host_from_server(server: str) -> str:
    """Strip the scheme and port from an upterm server address.

    Example:
        >>> host_from_server("ssh://uptermd.upterm.dev:22")
        'uptermd.upterm.dev'
    """
    return _SCHEME_OR_PORT.sub("", server.strip())


@dataclass(frozen=True)
class SessionRequest:
    """Everything the run needs to know, fixed at startup."""

    server: str
    known_hosts: str | None
    allowed_users: tuple[str, ...]
    allow_actor: bool
    actor: str | None
    workspace: Path
    poll_interval: int = DEFAULT_POLL_INTERVAL

    @property
    def effective_users(self) -> tuple[str, ...]:
        """Allow-listed users, with the actor appended when requested."""
        users = list(self.allowed_users)
        if self.allow_actor and self.actor and self.actor not in users:
            users.append(self.actor)
        return tuple(users)

    @property
    def restricted(self) -> bool:
        """True when access must be limited to specific users' keys.

        Requesting the actor restricts access even when no actor is known.
        """
        return bool(self.allowed_users) or self.allow_actor


@dataclass(frozen=True)
class EnvironmentOverrides:
    """Environment values applied to every external command.

    Built once from the process environment and never mutated afterwards;
    components that need a variation get a new instance via with_extra().
    """

    home: Path
    shell: str
    tmux_tmpdir: Path
    extra: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @classmethod
    def from_environ(cls, environ: dict[str, str] | None = None) -> "EnvironmentOverrides":
        """Derive overrides from the current environment.

        SHELL falls back to /bin/bash unless it already is a bash, and
        TMUX_TMPDIR falls back to ~/.tmux_tmpdir.
        """
        if environ is None:
            environ = dict(os.environ)

        home = Path(environ.get("HOME") or Path.home())

        shell = environ.get("SHELL", "")
        if not shell.endswith("bash"):
            logger.debug(f"Setting SHELL to {FALLBACK_SHELL}")
            shell = FALLBACK_SHELL

        tmux_tmpdir = environ.get("TMUX_TMPDIR")
        if not tmux_tmpdir:
            tmux_tmpdir = str(home / ".tmux_tmpdir")
            logger.debug(f"Setting TMUX_TMPDIR={tmux_tmpdir}")

        return cls(home=home, shell=shell, tmux_tmpdir=Path(tmux_tmpdir))

    def with_extra(self, **values: str) -> "EnvironmentOverrides":
        """Return a copy with additional environment variables."""
        merged = dict(self.extra)
        merged.update(values)
        return replace(self, extra=tuple(sorted(merged.items())))

    def apply(self, environ: dict[str, str] | None = None) -> dict[str, str]:
        """Build a full environment for a child process."""
        env = dict(os.environ if environ is None else environ)
        env["HOME"] = str(self.home)
        env["SHELL"] = self.shell
        env["TMUX_TMPDIR"] = str(self.tmux_tmpdir)
        env.update(dict(self.extra))
        return env

    @property
    def ssh_dir(self) -> Path:
        return self.home / ".ssh"


def load_file_defaults(config_path: Path | None) -> dict[str, Any]:
    """Read the [session] table from a TOML config file.

    Args:
        config_path: Path to the file, or None for no file

    Returns:
        dict: Known keys found in the file

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    if config_path is None:
        return {}

    config_path = Path(config_path).expanduser()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to read config file {config_path}: {e}") from e

    section = data.get("session", {})
    if not isinstance(section, dict):
        raise ConfigError(f"[session] in {config_path} must be a table")

    unknown = set(section) - set(FILE_KEYS)
    if unknown:
        logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")

    return {key: section[key] for key in FILE_KEYS if key in section}


def build_request(
    server: str | None = None,
    known_hosts: str | None = None,
    users: str | None = None,
    allow_actor: bool | None = None,
    actor: str | None = None,
    workspace: str | Path | None = None,
    poll_interval: int | None = None,
    config_path: Path | None = None,
) -> SessionRequest:
    """Assemble a SessionRequest from explicit values and file defaults.

    Raises:
        ConfigError: If the resulting configuration is invalid
    """
    defaults = load_file_defaults(config_path)

    if not server:
        server = defaults.get("upterm_server") or DEFAULT_SERVER
    if known_hosts is None:
        known_hosts = defaults.get("ssh_known_hosts")
    if users is None:
        users = defaults.get("limit_access_to_users")
        if isinstance(users, list):
            users = ",".join(str(u) for u in users)
    if allow_actor is None:
        allow_actor = bool(defaults.get("limit_access_to_actor", False))
    if poll_interval is None:
        poll_interval = defaults.get("poll_interval", DEFAULT_POLL_INTERVAL)

    server = server.strip()
    if not host_from_server(server):
        raise ConfigError(f"Invalid upterm server address: {server!r}")

    try:
        poll_interval = int(poll_interval)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"poll_interval must be an integer, got {poll_interval!r}") from e
    if poll_interval <= 0:
        raise ConfigError(f"poll_interval must be positive, got {poll_interval}")

    if allow_actor and not actor:
        logger.warning("Actor access requested but no actor is known; no keys can be added for it")

    return SessionRequest(
        server=server,
        known_hosts=known_hosts or None,
        allowed_users=parse_usernames(users),
        allow_actor=bool(allow_actor),
        actor=actor or None,
        workspace=Path(workspace) if workspace else Path.cwd(),
        poll_interval=poll_interval,
    )


__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_SERVER",
    "ConfigError",
    "EnvironmentOverrides",
    "SessionRequest",
    "build_request",
    "host_from_server",
    "load_file_defaults",
    "parse_usernames",
]
