"""
Known Hosts Module

Trust store handling for the upterm server.

upterm requires a known_hosts entry for its server. Either the caller
supplies the entries, or one throwaway ssh connection records the server's
host key and a @cert-authority line is derived from each recorded key.

Derivation is best-effort: probe and parse failures are logged, never raised.
"""

import logging
from pathlib import Path

from upterm_action.exceptions import UptermActionError
from upterm_action.modules.executor import ShellCommandError, ShellExecutor

logger = logging.getLogger(__name__)

CERT_AUTHORITY_MARKER = "@cert-authority"


class TrustStoreError(UptermActionError):
    """Raised when the trust store cannot be written."""

    pass


def derive_cert_authority_line(line: str) -> str | None:
    """
    Build a @cert-authority line from a known_hosts host key line.

    Args:
        line: A known_hosts line such as "host ssh-ed25519 AAAA..."

    Returns:
        str | None: "@cert-authority * <type> <key>", or None for markers,
        comments and lines with fewer than three fields

    Example:
        >>> derive_cert_authority_line("uptermd.upterm.dev ssh-ed25519 AAAAC3Nz")
        '@cert-authority * ssh-ed25519 AAAAC3Nz'
    """
    stripped = line.strip()
    if not stripped or stripped.startswith(("@", "#")):
        return None
    # The host field may itself be a comma separated list
    fields = stripped.split()
    if len(fields) < 3:
        return None
    return f"{CERT_AUTHORITY_MARKER} * {fields[1]} {fields[2]}"


def derive_cert_authority_lines(lines: list[str]) -> list[str]:
    """Derive one @cert-authority line per parsable host key line."""
    derived = []
    for line in lines:
        result = derive_cert_authority_line(line)
        logger.debug(f"Processed line: {line} => {result}")
        if result is not None:
            derived.append(result)
    return derived


def _line_hosts(line: str) -> list[str]:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return []
    fields = stripped.split()
    if fields[0].startswith("@"):
        fields = fields[1:]
    if not fields:
        return []
    hosts = []
    for pattern in fields[0].split(","):
        # [host]:port form
        if pattern.startswith("[") and "]" in pattern:
            pattern = pattern[1 : pattern.index("]")]
        hosts.append(pattern)
    return hosts


def remove_host_entries(lines: list[str], host: str) -> list[str]:
    """Drop every line whose host field names the given host."""
    return [line for line in lines if host not in _line_hosts(line)]


class KnownHostsStore:
    """A known_hosts file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read_lines(self) -> list[str]:
        if not self.path.exists():
            return []
        text = self.path.read_text(encoding="utf-8", errors="surrogateescape")
        return text.replace("\r\n", "\n").splitlines()

    def _write_lines(self, lines: list[str]) -> None:
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            content = "".join(f"{line}\n" for line in lines)
            self.path.write_text(content, encoding="utf-8", errors="surrogateescape")
        except OSError as e:
            raise TrustStoreError(f"Failed to write {self.path}: {e}") from e

    def append_lines(self, lines: list[str]) -> None:
        """Append lines, keeping existing content."""
        if lines:
            self._write_lines(self.read_lines() + lines)

    def import_entries(self, host: str, material: str) -> list[str]:
        """
        Replace the host's entries with caller-supplied trust material.

        Existing lines for the host and lines identical to the supplied
        ones are removed first, so importing twice leaves one copy.

        Returns:
            list[str]: The imported lines
        """
        supplied = [line.strip() for line in material.splitlines() if line.strip()]
        kept = [
            line
            for line in remove_host_entries(self.read_lines(), host)
            if line.strip() not in supplied
        ]
        logger.info(f"Appending ssh-known-hosts to {self.path}")
        self._write_lines(kept + supplied)
        return supplied

    def backup(self) -> Path | None:
        """Move the current file aside to <name>.bkp so a probe starts clean."""
        if not self.path.exists():
            return None
        backup_path = self.path.with_name(self.path.name + ".bkp")
        try:
            self.path.replace(backup_path)
        except OSError as e:
            logger.warning(f"Error renaming {self.path}: {e}")
            return None
        return backup_path


class TrustProber:
    """Record a server's host key with one throwaway ssh connection."""

    PROBE_TIMEOUT = 60

    def __init__(self, executor: ShellExecutor):
        self.executor = executor

    def probe(self, server: str, ssh_config_path: Path) -> bool:
        """
        Attempt an ssh connection so the client records the host key.

        The connection itself is expected to fail once the key is recorded.

        Returns:
            bool: True if ssh exited successfully
        """
        logger.debug(f"Attempting connection to {server}")
        try:
            output = self.executor.run(
                ["ssh", "-v", "-T", "-F", str(ssh_config_path), server],
                timeout=self.PROBE_TIMEOUT,
            )
        except ShellCommandError as e:
            logger.warning(f"Error connecting to {server}: {e}")
            return False
        logger.debug(output)
        return True


__all__ = [
    "CERT_AUTHORITY_MARKER",
    "KnownHostsStore",
    "TrustProber",
    "TrustStoreError",
    "derive_cert_authority_line",
    "derive_cert_authority_lines",
    "remove_host_entries",
]
