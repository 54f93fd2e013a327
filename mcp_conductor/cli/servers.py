"""CLI commands for configured MCP servers.

This module provides the ``mcp-conductor servers`` command group. Every
command builds a ServerRegistry for the invocation, so the snapshot it shows
is always freshly read from the host.

Commands:
    list: Show configured servers grouped by scope
    add: Register a new stdio, sse or http server
    remove: Delete a server
    edit: Change a server's environment variables
    test: Check whether a server is reachable

Example:
    Add a stdio server for this project::

        $ mcp-conductor servers add fetch --scope project -- uvx mcp-server-fetch

    Rotate a token::

        $ mcp-conductor servers edit github -e GITHUB_TOKEN=ghp_new
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TypeVar

import click
import structlog

from mcp_conductor.cli.common import get_gateway, parse_env_pairs, run_async
from mcp_conductor.enums import Scope, Transport
from mcp_conductor.exceptions import ConductorError, NotFoundError, PartialReplaceError
from mcp_conductor.models import ServerConfig
from mcp_conductor.registry import ServerRegistry

log = structlog.get_logger(__name__)

T = TypeVar("T")

SCOPE_CHOICES = [scope.value for scope in Scope]


def _registry(ctx: click.Context) -> ServerRegistry:
    return ServerRegistry(get_gateway(ctx))


async def _settled(registry: ServerRegistry, operation: Awaitable[T], name: str | None = None) -> T:
    """Await ``operation``, then let in-flight registry work finish.

    Runs inside ``asyncio.run`` so an interrupted edit still re-creates the
    server before the loop closes.
    """
    try:
        return await operation
    finally:
        if name is not None and registry.is_busy(name):
            click.echo(f"Waiting for the {registry.pending_operation(name)} of '{name}' to finish...", err=True)
        await registry.drain()


async def _reconcile(registry: ServerRegistry) -> None:
    """Re-read the host after a failed change, keeping the original error."""
    try:
        await registry.refresh()
    except ConductorError as e:
        log.warning("refresh_after_failure_failed", error=e.message)


def _status_marker(server: ServerConfig) -> str:
    if server.status is None or server.status.running is None:
        return click.style("[?]", fg="yellow")
    if server.status.running:
        return click.style("[running]", fg="green")
    return click.style("[stopped]", fg="red")


def _target(server: ServerConfig) -> str:
    if server.transport.uses_url:
        return server.url or ""
    return " ".join([server.command or "", *server.args]).strip()


@click.group(name="servers")
def servers_group() -> None:
    """Manage MCP servers configured for the host.

    Examples:
        mcp-conductor servers list
        mcp-conductor servers add fetch -- uvx mcp-server-fetch
        mcp-conductor servers test fetch
    """
    pass


@servers_group.command("list")
@click.option("--scope", type=click.Choice(SCOPE_CHOICES), help="Only show one scope")
@click.option("--verbose", "-v", is_flag=True, help="Show environment variable names")
@click.pass_context
def list_servers(ctx: click.Context, scope: str | None, verbose: bool) -> None:
    """List configured MCP servers grouped by scope."""
    registry = _registry(ctx)
    run_async(_settled(registry, registry.refresh()))

    grouped = registry.grouped()
    if not grouped:
        click.echo("No MCP servers configured.")
        return

    for group_scope in Scope:
        servers = grouped.get(group_scope)
        if not servers or (scope and group_scope.value != scope):
            continue
        click.echo(click.style(f"{group_scope.display_name} ({len(servers)})", bold=True))
        for server in servers:
            click.echo(f"  {_status_marker(server)} {server.name:20} {server.transport.value:6} {_target(server)}")
            if verbose and server.env:
                click.echo(f"      env: {', '.join(server.env)}")
        click.echo()


@servers_group.command("add", context_settings={"ignore_unknown_options": True})
@click.argument("name")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@click.option(
    "--transport",
    "-t",
    type=click.Choice([Transport.STDIO.value, Transport.SSE.value, Transport.HTTP.value]),
    default=Transport.STDIO.value,
    help="Connection mechanism",
)
@click.option("--scope", "-s", type=click.Choice(SCOPE_CHOICES), default=Scope.LOCAL.value, help="Sharing boundary")
@click.option("--url", help="Endpoint for sse and http servers")
@click.option("--env", "-e", "env_pairs", multiple=True, help="Environment variable as KEY=VALUE")
@click.pass_context
def add_server(
    ctx: click.Context,
    name: str,
    command: tuple[str, ...],
    transport: str,
    scope: str,
    url: str | None,
    env_pairs: tuple[str, ...],
) -> None:
    """Add an MCP server.

    For stdio servers pass the command after ``--``.
    """
    server = ServerConfig(
        name=name,
        transport=transport,
        command=command[0] if command else None,
        args=list(command[1:]),
        url=url,
        env=parse_env_pairs(env_pairs),
        scope=scope,
    )
    registry = _registry(ctx)
    run_async(_settled(registry, registry.add(server), name))
    click.echo(f"Added {server.transport.value} server '{name}' to {server.scope.value} scope.")


@servers_group.command("remove")
@click.argument("name")
@click.pass_context
def remove_server(ctx: click.Context, name: str) -> None:
    """Remove an MCP server."""
    registry = _registry(ctx)
    run_async(_settled(registry, registry.remove(name), name))
    click.echo(f"Removed server '{name}'.")


@servers_group.command("edit")
@click.argument("name")
@click.option("--env", "-e", "env_pairs", multiple=True, help="Set KEY=VALUE")
@click.option("--unset", "unset_keys", multiple=True, help="Remove an environment variable")
@click.pass_context
def edit_server(ctx: click.Context, name: str, env_pairs: tuple[str, ...], unset_keys: tuple[str, ...]) -> None:
    """Change the environment variables of an MCP server.

    The server is removed and added back with the new environment.
    """
    updates = parse_env_pairs(env_pairs)
    registry = _registry(ctx)

    async def _edit() -> ServerConfig:
        await registry.refresh()
        server = registry.get(name)
        if server is None:
            raise NotFoundError(name)

        new_env = {key: value for key, value in server.env.items() if key not in unset_keys}
        new_env.update(updates)
        try:
            return await registry.edit(server, new_env)
        except PartialReplaceError:
            log.warning("edit_left_server_removed", name=name)
            click.echo(f"Server '{name}' is no longer configured. Add it again to restore it.", err=True)
            await _reconcile(registry)
            raise
        except ConductorError:
            await _reconcile(registry)
            raise

    run_async(_settled(registry, _edit(), name))
    click.echo(f"Updated environment of '{name}'.")


@servers_group.command("test")
@click.argument("name")
@click.pass_context
def test_server(ctx: click.Context, name: str) -> None:
    """Test the connection to an MCP server."""
    registry = _registry(ctx)
    result = run_async(_settled(registry, registry.test_connection(name), name))
    click.echo(result.message)

