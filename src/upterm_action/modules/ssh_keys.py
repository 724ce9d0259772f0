"""
SSH Key Manager Module

Generate the runner's SSH key pairs used to reach the upterm server.

Security Requirements:
- Private key permissions: 0600 (read/write owner only)
- Public key permissions: 0644 (readable by all)
- SSH directory permissions: 0700 (owner only)
- Never log private key content
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from upterm_action.exceptions import UptermActionError
from upterm_action.modules.executor import ShellCommandError, ShellExecutor

logger = logging.getLogger(__name__)


@dataclass
class SSHKeyPair:
    """SSH key pair information."""

    algorithm: str
    private_path: Path
    public_path: Path


class SSHKeyError(UptermActionError):
    """Raised when SSH key operations fail."""

    pass


class SSHKeyManager:
    """
    Ensure the runner has an RSA and an Ed25519 key pair.

    Generation is skipped when the private key already exists, so the
    manager can run any number of times against the same directory.
    """

    KEY_TYPES: ClassVar[list[tuple[str, str]]] = [
        ("rsa", "id_rsa"),
        ("ed25519", "id_ed25519"),
    ]

    def __init__(self, ssh_dir: Path, executor: ShellExecutor):
        self.ssh_dir = Path(ssh_dir)
        self.executor = executor

    def ensure_ssh_directory(self) -> None:
        """
        Ensure the SSH directory exists with correct permissions.

        Security: Creates with mode 0700 (drwx------)
        """
        if not self.ssh_dir.exists():
            logger.debug(f"Creating {self.ssh_dir}")
            self.ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        elif self.ssh_dir.stat().st_mode & 0o077:
            logger.warning(f"Fixing SSH directory permissions: {self.ssh_dir}")
            self.ssh_dir.chmod(0o700)

    def ensure_key(self, algorithm: str, file_name: str) -> SSHKeyPair:
        """
        Create a key pair if missing, return the existing one if present.

        Args:
            algorithm: ssh-keygen key type
            file_name: Private key file name inside the SSH directory

        Returns:
            SSHKeyPair: Key pair information

        Raises:
            SSHKeyError: If ssh-keygen fails
        """
        private_path = self.ssh_dir / file_name
        public_path = private_path.with_name(file_name + ".pub")
        pair = SSHKeyPair(algorithm=algorithm, private_path=private_path, public_path=public_path)

        if private_path.exists():
            logger.debug(f"SSH key for {algorithm} already exists")
            return pair

        logger.debug(f"Generating {algorithm} SSH key at {file_name}")
        try:
            self.executor.run(
                ["ssh-keygen", "-q", "-t", algorithm, "-N", "", "-f", str(private_path)]
            )
        except ShellCommandError as e:
            raise SSHKeyError(f"Failed to generate {algorithm} SSH key: {e.stderr.strip()}") from e

        self._fix_permissions(private_path, public_path)
        logger.debug(f"Generated SSH key for {algorithm} successfully")
        return pair

    def ensure_keys(self) -> list[SSHKeyPair]:
        """
        Ensure every key type exists.

        A failed generation is logged and skipped; a missing key only makes
        the session less convenient to reach.

        Returns:
            list[SSHKeyPair]: Key pairs that exist after the call
        """
        self.ensure_ssh_directory()
        pairs = []
        for algorithm, file_name in self.KEY_TYPES:
            try:
                pairs.append(self.ensure_key(algorithm, file_name))
            except SSHKeyError as e:
                logger.warning(str(e))
        return pairs

    @staticmethod
    def _fix_permissions(private_path: Path, public_path: Path) -> None:
        """
        Set correct permissions on SSH keys.

        Security:
        - Private key: 0600 (-rw-------)
        - Public key: 0644 (-rw-r--r--)
        """
        if private_path.exists():
            private_path.chmod(0o600)
        if public_path.exists():
            public_path.chmod(0o644)


__all__ = ["SSHKeyError", "SSHKeyManager", "SSHKeyPair"]
