"""CLI commands for first-run setup.

``setup run`` walks the user through the wizard: it probes the environment,
asks for credentials, installs the server package and registers the server
with the host. Install or registration failures show the error and ask for
the credentials again.
"""

from __future__ import annotations

import asyncio

import click
import structlog
from pydantic import SecretStr

from mcp_conductor.cli.common import get_gateway, run_async
from mcp_conductor.models import Credentials, SetupState
from mcp_conductor.setup.orchestrator import SetupOrchestrator

log = structlog.get_logger(__name__)

HOST_INSTALL_HINT = "npm install -g @anthropic-ai/claude-code"


def _flag(value: bool) -> str:
    return click.style("yes", fg="green") if value else click.style("no", fg="red")


def _ask_credentials(state: SetupState) -> Credentials | None:
    """Ask for credentials on the terminal. Returns None to skip setup."""
    if state.last_error:
        click.echo(click.style(f"Error: {state.last_error}", fg="red"), err=True)

    environment = state.environment
    if environment is not None and not environment.host_app_installed:
        click.echo(click.style("The host application is not installed.", fg="yellow"))
        click.echo(f"Install it with: {HOST_INSTALL_HINT}")
        if click.confirm("Skip setup for now?", default=True):
            return None

    previous = state.credentials
    endpoint_url = click.prompt("Instance URL", default=previous.endpoint_url if previous else None)
    username = click.prompt("Username", default=previous.username if previous else None)
    password = click.prompt("Password", hide_input=True)
    return Credentials(endpoint_url=endpoint_url, username=username, password=SecretStr(password))


async def _prompt_credentials(state: SetupState) -> Credentials | None:
    # click prompts block on stdin; keep them off the event loop
    return await asyncio.to_thread(_ask_credentials, state)


@click.group(name="setup")
def setup_group() -> None:
    """First-run setup of the bundled MCP server."""
    pass


@setup_group.command("run")
@click.pass_context
def run_setup(ctx: click.Context) -> None:
    """Run the interactive setup wizard."""

    def announce() -> None:
        if not orchestrator.state.skipped:
            click.echo(click.style("Setup complete.", fg="green"))

    orchestrator = SetupOrchestrator(get_gateway(ctx), on_complete=announce)

    state = run_async(orchestrator.run(_prompt_credentials))

    if state.skipped:
        click.echo("Setup skipped. Run 'mcp-conductor setup run' to start it again.")


@setup_group.command("status")
@click.pass_context
def setup_status(ctx: click.Context) -> None:
    """Show what the setup probe sees."""
    status = run_async(get_gateway(ctx).get_setup_status())

    click.echo(f"First launch:        {_flag(status.is_first_launch)}")
    click.echo(f"Host installed:      {_flag(status.host_app_installed)}")
    click.echo(f"Runtime installed:   {_flag(status.dependency_runtime_installed)}")
    click.echo(f"Package installed:   {_flag(status.server_package_installed)}")
    click.echo(f"Server registered:   {_flag(status.server_registered)}")


@setup_group.command("skip")
@click.pass_context
def skip_setup(ctx: click.Context) -> None:
    """Mark setup as done without installing anything."""
    run_async(get_gateway(ctx).skip_setup())
    log.info("setup_skipped_from_cli")
    click.echo("Setup skipped.")
