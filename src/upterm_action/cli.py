"""CLI entry point for upterm-action.

Opens an interactive upterm session on a CI runner and blocks until the
session is released.

Usage:
    upterm-action                                # Defaults / GitHub Actions inputs
    upterm-action --users alice,bob              # Only alice and bob may join
    upterm-action --limit-access-to-actor true   # Only the triggering actor may join
    upterm-action --config session.toml          # Defaults from a TOML file

Inside a GitHub Actions step every option can also be supplied as an
action input (INPUT_* environment variables).
"""

import logging
import os
import signal
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from upterm_action import __version__
from upterm_action.config import EnvironmentOverrides, SessionRequest, build_request
from upterm_action.coordinator import SessionCoordinator
from upterm_action.exceptions import UptermActionError
from upterm_action.logging_setup import configure_logging
from upterm_action.modules.executor import ShellExecutor
from upterm_action.modules.installer import (
    UnsupportedPlatformError,
    detect_platform,
    select_installer,
)
from upterm_action.modules.key_provider import GitHubKeyProvider
from upterm_action.modules.ssh_environment import SSHEnvironmentConfigurator
from upterm_action.poll_loop import PollDriver, sentinel_paths
from upterm_action.session import SessionLauncher

logger = logging.getLogger(__name__)
console = Console()

HANDLED_SIGNALS = ("SIGINT", "SIGHUP", "SIGTERM", "SIGUSR1")


def handle_signal(signum, frame) -> None:
    """Exit immediately; the session is not torn down."""
    logger.warning(f"received {signal.Signals(signum).name}, exiting.")
    sys.exit(0)


def install_signal_handlers() -> None:
    for name in HANDLED_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is not None:
            signal.signal(signum, handle_signal)


def _print_error(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")


def run_session(request: SessionRequest, overrides: EnvironmentOverrides, token: str | None) -> int:
    """
    Provision a session and idle until it ends.

    Returns:
        int: Process exit status (0 when the session ended, 1 on failure)
    """
    executor = ShellExecutor(overrides)
    coordinator = SessionCoordinator(
        request=request,
        configurator=SSHEnvironmentConfigurator(executor, overrides),
        key_provider=GitHubKeyProvider(token=token),
        launcher=SessionLauncher(executor, overrides.home),
    )
    coordinator.provision()

    driver = PollDriver(
        coordinator,
        sentinels=sentinel_paths(request.workspace),
        interval=request.poll_interval,
    )
    exit_code = driver.run()
    status = coordinator.status
    if status.reason is not None:
        logger.info(f"Session ended ({status.reason.value}), exit status {exit_code}")
    if exit_code != 0 and coordinator.failure:
        _print_error(coordinator.failure)
    return exit_code


@click.command(name="upterm-action")
@click.option(
    "--server",
    envvar="INPUT_UPTERM-SERVER",
    default=None,
    help="upterm server address (default: ssh://uptermd.upterm.dev:22)",
)
@click.option(
    "--known-hosts",
    envvar="INPUT_SSH-KNOWN-HOSTS",
    default=None,
    help="known_hosts entries for the server; disables host key probing",
)
@click.option(
    "--users",
    envvar="INPUT_LIMIT-ACCESS-TO-USERS",
    default=None,
    help="GitHub users allowed to join (comma, space or newline separated)",
)
@click.option(
    "--limit-access-to-actor",
    "allow_actor",
    envvar="INPUT_LIMIT-ACCESS-TO-ACTOR",
    type=click.BOOL,
    default=None,
    help="Also allow the user who triggered the workflow (true/false)",
)
@click.option("--actor", envvar="GITHUB_ACTOR", default=None, help="Triggering GitHub user")
@click.option(
    "--workspace",
    envvar="GITHUB_WORKSPACE",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Job working directory checked for a 'continue' file",
)
@click.option("--poll-interval", type=int, default=None, help="Seconds between status polls")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="TOML file with a [session] table of defaults",
)
@click.option(
    "--github-token",
    envvar=["INPUT_GITHUB-TOKEN", "GITHUB_TOKEN"],
    default=None,
    help="Token for GitHub API requests",
)
@click.option("--debug", envvar="RUNNER_DEBUG", is_flag=True, help="Enable debug logging")
@click.version_option(version=__version__)
def main(
    server: str | None,
    known_hosts: str | None,
    users: str | None,
    allow_actor: bool | None,
    actor: str | None,
    workspace: Path | None,
    poll_interval: int | None,
    config_path: Path | None,
    github_token: str | None,
    debug: bool,
) -> None:
    """Open an interactive upterm debugging session.

    \b
    The session ends when:
        - a file named 'continue' appears at /continue or in the workspace
        - the remote side closes the session

    \b
    Exit status:
        0  session ended (or platform unsupported)
        1  setup or session creation failed
    """
    configure_logging(debug=debug, github_actions=os.environ.get("GITHUB_ACTIONS") == "true")
    install_signal_handlers()

    try:
        installer = select_installer(detect_platform())
    except UnsupportedPlatformError as e:
        logger.error(f"{e}, skipping...")
        return

    try:
        request = build_request(
            server=server,
            known_hosts=known_hosts,
            users=users,
            allow_actor=allow_actor,
            actor=actor,
            workspace=workspace,
            poll_interval=poll_interval,
            config_path=config_path,
        )
        overrides = installer.adjust_overrides(EnvironmentOverrides.from_environ())
        installer.ensure_dependencies(ShellExecutor(overrides))
        overrides.tmux_tmpdir.mkdir(parents=True, exist_ok=True)
    except (UptermActionError, OSError) as e:
        _print_error(str(e))
        sys.exit(1)

    sys.exit(run_session(request, overrides, github_token))


if __name__ == "__main__":
    main()
