"""Session tool installation.

Philosophy:
- Single responsibility: Install upterm and tmux when missing
- One installer variant per platform, chosen once at startup
- Zero-BS: No stubs or placeholders

Public API (the "studs"):
    Platform: Host platform enum
    InstallError: Installation failure
    UnsupportedPlatformError: No installer for this platform
    Installer: Base installer
    LinuxInstaller: Release tarball + apt-get
    GenericInstaller: Homebrew
    detect_platform: Detect the host platform
    select_installer: Pick the installer variant for a platform
"""

import logging
import platform
import tempfile
from enum import Enum
from pathlib import Path

from upterm_action.config import EnvironmentOverrides
from upterm_action.exceptions import UptermActionError
from upterm_action.modules.capabilities import probe_all
from upterm_action.modules.executor import ShellCommandError, ShellExecutor

logger = logging.getLogger(__name__)

UPTERM_VERSION = "v0.9.0"


class Platform(Enum):
    """Host platforms."""

    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"
    OTHER = "other"


class InstallError(UptermActionError):
    """Raised when a tool cannot be installed."""

    pass


class UnsupportedPlatformError(UptermActionError):
    """Raised when no installer exists for the platform."""

    pass


def detect_platform() -> Platform:
    """Detect the host platform."""
    system = platform.system()
    if system == "Linux":
        return Platform.LINUX
    if system == "Darwin":
        return Platform.MACOS
    if system == "Windows":
        return Platform.WINDOWS
    return Platform.OTHER


class Installer:
    """Install the tools a session needs if they are missing."""

    name = "base"

    def adjust_overrides(self, overrides: EnvironmentOverrides) -> EnvironmentOverrides:
        """Return the environment overrides this installer needs."""
        return overrides

    def install(self, executor: ShellExecutor, tool: str) -> None:
        raise NotImplementedError

    def ensure_dependencies(self, executor: ShellExecutor) -> list[str]:
        """
        Install every session tool that is not already available.

        Args:
            executor: Executor used for probing and installation

        Returns:
            list[str]: Names of the tools that were installed

        Raises:
            InstallError: If an installation command fails
        """
        logger.debug("Installing dependencies")
        installed = []
        for tool, probe in probe_all(executor).items():
            if probe.installed:
                continue
            logger.debug(f"Installing {tool}")
            try:
                self.install(executor, tool)
            except ShellCommandError as e:
                raise InstallError(f"Failed to install {tool}: {e}") from e
            installed.append(tool)
        logger.debug("Installed dependencies successfully")
        return installed


class LinuxInstaller(Installer):
    """Installs upterm from its release tarball and tmux via apt-get."""

    name = "linux"
    INSTALL_DIR = "/usr/local/bin/"

    def __init__(self, version: str = UPTERM_VERSION):
        self.version = version

    @property
    def release_url(self) -> str:
        return (
            "https://github.com/owenthereal/upterm/releases/download/"
            f"{self.version}/upterm_linux_amd64.tar.gz"
        )

    def install(self, executor: ShellExecutor, tool: str) -> None:
        if tool == "upterm":
            self._install_upterm(executor)
        elif tool == "tmux":
            executor.run(["sudo", "apt-get", "-y", "install", "tmux"], timeout=300)
        else:
            raise InstallError(f"Don't know how to install {tool}")

    def _install_upterm(self, executor: ShellExecutor) -> None:
        with tempfile.TemporaryDirectory(prefix="upterm-") as tmp:
            tarball = Path(tmp) / "upterm.tar.gz"
            executor.run(["curl", "-sSL", "-o", str(tarball), self.release_url], timeout=300)
            executor.run(["tar", "zxf", str(tarball), "-C", tmp, "upterm"])
            executor.run(["sudo", "install", str(Path(tmp) / "upterm"), self.INSTALL_DIR])


class GenericInstaller(Installer):
    """Installs both tools with Homebrew."""

    name = "generic"
    FORMULAE = {
        "upterm": "owenthereal/upterm/upterm",
        "tmux": "tmux",
    }

    def adjust_overrides(self, overrides: EnvironmentOverrides) -> EnvironmentOverrides:
        return overrides.with_extra(HOMEBREW_NO_INSTALL_CLEANUP="true")

    def install(self, executor: ShellExecutor, tool: str) -> None:
        formula = self.FORMULAE.get(tool)
        if formula is None:
            raise InstallError(f"Don't know how to install {tool}")
        executor.run(["brew", "install", formula], timeout=600)


def select_installer(host: Platform) -> Installer:
    """
    Pick the installer variant for a platform.

    Raises:
        UnsupportedPlatformError: On Windows
    """
    if host == Platform.WINDOWS:
        raise UnsupportedPlatformError("Windows is not supported by upterm")
    if host == Platform.LINUX:
        return LinuxInstaller()
    return GenericInstaller()


__all__ = [
    "UPTERM_VERSION",
    "GenericInstaller",
    "InstallError",
    "Installer",
    "LinuxInstaller",
    "Platform",
    "UnsupportedPlatformError",
    "detect_platform",
    "select_installer",
]
