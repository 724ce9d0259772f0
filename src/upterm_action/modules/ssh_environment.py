"""
SSH Environment Module

Prepare everything ssh needs before a session can be hosted: key pairs,
trust for the upterm server, and the authorized_keys file that limits who
may join.

Every step is safe to repeat:
- Key pairs are only generated when absent
- The server's ssh client block and known_hosts entries are replaced
- authorized_keys is append-only; duplicate lines are harmless to sshd
"""

import logging
from pathlib import Path

from upterm_action.config import EnvironmentOverrides, host_from_server
from upterm_action.modules.executor import ShellExecutor
from upterm_action.modules.key_provider import AllowedKeySet
from upterm_action.modules.known_hosts import (
    KnownHostsStore,
    TrustProber,
    TrustStoreError,
    derive_cert_authority_lines,
)
from upterm_action.modules.ssh_client_config import SSHClientConfig, session_host_options
from upterm_action.modules.ssh_keys import SSHKeyManager, SSHKeyPair

logger = logging.getLogger(__name__)


class SSHEnvironmentConfigurator:
    """Facade over the SSH setup steps a session depends on."""

    def __init__(self, executor: ShellExecutor, overrides: EnvironmentOverrides):
        self.executor = executor
        self.ssh_dir = overrides.ssh_dir
        self.key_manager = SSHKeyManager(self.ssh_dir, executor)
        self.client_config = SSHClientConfig(self.ssh_dir / "config")
        self.known_hosts = KnownHostsStore(self.ssh_dir / "known_hosts")
        self.prober = TrustProber(executor)

    @property
    def authorized_keys_path(self) -> Path:
        return self.ssh_dir / "authorized_keys"

    def ensure_key_pair(self) -> list[SSHKeyPair]:
        """Generate missing key pairs; failures are logged, not raised."""
        return self.key_manager.ensure_keys()

    def ensure_trust(self, server: str, supplied: str | None = None) -> list[str]:
        """
        Make the upterm server trusted by the ssh client.

        Supplied trust material always wins and disables the probe. Without
        it, the existing known_hosts is backed up, the server is probed once,
        and a @cert-authority line is derived from each recorded key.

        Args:
            server: upterm server address
            supplied: Raw known_hosts text from the caller, if any

        Returns:
            list[str]: Lines added to known_hosts

        Raises:
            TrustStoreError: If supplied entries cannot be written
        """
        host = host_from_server(server)
        self.client_config.write_host(
            host,
            session_host_options(self.ssh_dir / "id_ed25519", self.known_hosts.path),
        )

        if supplied and supplied.strip():
            return self.known_hosts.import_entries(host, supplied)

        logger.debug(f"Auto-generating {self.known_hosts.path} by attempting connection to {server}")
        self.known_hosts.backup()
        self.prober.probe(server, self.client_config.path)

        try:
            derived = derive_cert_authority_lines(self.known_hosts.read_lines())
            self.known_hosts.append_lines(derived)
        except (TrustStoreError, OSError) as e:
            logger.error(f"Error processing {self.known_hosts.path}: {e}")
            return []

        if not derived:
            logger.warning(f"No host keys recorded for {host}; continuing without @cert-authority")
        return derived

    def write_authorized_keys(self, keys: AllowedKeySet) -> Path | None:
        """
        Append allowed keys to authorized_keys.

        Returns:
            Path | None: The file path, or None when there is nothing to restrict
        """
        if keys.is_empty:
            return None

        path = self.authorized_keys_path
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

        prefix = ""
        if path.exists():
            existing = path.read_bytes()
            if existing and not existing.endswith(b"\n"):
                prefix = "\n"

        with path.open("a") as f:
            f.write(prefix + "".join(f"{key}\n" for key in keys))
        path.chmod(0o600)

        logger.debug(f"Wrote {len(keys)} keys to {path}")
        return path


__all__ = ["SSHEnvironmentConfigurator"]
