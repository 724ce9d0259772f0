"""
SSH Client Config Module

Maintain the ~/.ssh/config block for the upterm server host.

Writing is replace-not-append: any existing block for the host is removed
before the new block is prepended, so repeated runs leave exactly one.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Keywords that start a new section in ssh_config(5)
_SECTION_KEYWORDS = ("host", "match")


def _keyword(line: str) -> str:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return ""
    return stripped.replace("=", " ", 1).split()[0].lower()


def _host_patterns(line: str) -> list[str]:
    stripped = line.strip().replace("=", " ", 1)
    return stripped.split()[1:]


def remove_host_block(text: str, host: str) -> str:
    """
    Remove every section whose Host patterns are exactly the given host.

    Global options before the first section and all other sections are kept
    verbatim.

    Example:
        >>> remove_host_block("Host a\\n  Port 22\\nHost b\\n", "a")
        'Host b\\n'
    """
    kept: list[str] = []
    skipping = False
    for line in text.splitlines(keepends=True):
        keyword = _keyword(line)
        if keyword in _SECTION_KEYWORDS:
            skipping = keyword == "host" and _host_patterns(line) == [host]
        if not skipping:
            kept.append(line)
    return "".join(kept)


def render_host_block(host: str, options: list[tuple[str, str]]) -> str:
    """Render a Host section with indented options."""
    lines = [f"Host {host}"]
    lines.extend(f"  {key} {value}" for key, value in options)
    return "\n".join(lines) + "\n"


def session_host_options(identity_file: Path, known_hosts_file: Path) -> list[tuple[str, str]]:
    """Client options for talking to an upterm server from a CI runner."""
    return [
        ("IdentityFile", str(identity_file)),
        ("UserKnownHostsFile", str(known_hosts_file)),
        ("StrictHostKeyChecking", "no"),
        ("CheckHostIP", "no"),
        ("TCPKeepAlive", "yes"),
        ("ServerAliveInterval", "30"),
        ("ServerAliveCountMax", "180"),
        ("VerifyHostKeyDNS", "yes"),
        ("UpdateHostKeys", "yes"),
        ("PasswordAuthentication", "no"),
        ("RequestTTY", "no"),
    ]


class SSHClientConfig:
    """The user's ssh client configuration file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> str:
        if not self.path.exists():
            return ""
        text = self.path.read_text(encoding="utf-8", errors="surrogateescape")
        return text.replace("\r\n", "\n")

    def write_host(self, host: str, options: list[tuple[str, str]]) -> str:
        """
        Replace the host's block and write the file.

        Args:
            host: Host pattern for the block
            options: Ordered (keyword, value) pairs

        Returns:
            str: The full new file contents
        """
        logger.debug(f"Configuring ssh client for host {host}")
        remainder = remove_host_block(self.read(), host).lstrip("\n")
        block = render_host_block(host, options)
        content = block + ("\n" + remainder if remainder else "")

        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        self.path.write_text(content, encoding="utf-8", errors="surrogateescape")
        self.path.chmod(0o600)
        logger.debug(f"New ssh config:\n{content}")
        return content


__all__ = ["SSHClientConfig", "remove_host_block", "render_host_block", "session_host_options"]
