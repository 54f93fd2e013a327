"""Helpers shared by the CLI command groups."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine
from typing import Any, NoReturn, TypeVar

import click
import structlog

from mcp_conductor.config.settings import ConductorSettings
from mcp_conductor.exceptions import ConductorError
from mcp_conductor.gateway.base import Gateway
from mcp_conductor.gateway.cli_gateway import CliGateway

log = structlog.get_logger(__name__)

T = TypeVar("T")

EXIT_ERROR = 1


def get_settings(ctx: click.Context) -> ConductorSettings:
    obj = ctx.ensure_object(dict)
    settings = obj.get("settings")
    if settings is None:
        settings = ConductorSettings()
        obj["settings"] = settings
    return settings


def get_gateway(ctx: click.Context) -> Gateway:
    """Gateway from the context, or a CliGateway built from the settings."""
    obj = ctx.ensure_object(dict)
    gateway = obj.get("gateway")
    if gateway is None:
        gateway = CliGateway(get_settings(ctx))
        obj["gateway"] = gateway
    return gateway


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run ``coro`` and turn mcp-conductor errors into a red message and exit 1."""
    try:
        return asyncio.run(coro)
    except ConductorError as e:
        fail(e.message)


def fail(message: str) -> NoReturn:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    log.debug("command_failed", error=message)
    sys.exit(EXIT_ERROR)


def parse_env_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    """Parse repeated KEY=VALUE options, keeping their order."""
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint="--env")
        env[key.strip()] = value
    return env
