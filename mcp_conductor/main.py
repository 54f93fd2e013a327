"""CLI entry point for mcp-conductor."""

import sys

import click
import structlog

from mcp_conductor.cli.servers import servers_group
from mcp_conductor.cli.setup import setup_group
from mcp_conductor.config.settings import ConductorSettings
from mcp_conductor.exceptions import ConfigurationError
from mcp_conductor.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


@click.group()
@click.version_option(package_name="mcp-conductor")
@click.option("--config", type=click.Path(dir_okay=False), help="Path to a YAML settings file")
@click.option("--log-level", default=None, help="Logging level (default: from settings, WARNING)")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str | None, json_logs: bool) -> None:
    """mcp-conductor: manage MCP servers for your AI coding assistant."""
    obj = ctx.ensure_object(dict)

    settings = obj.get("settings")
    if settings is None:
        try:
            settings = ConductorSettings.from_yaml(config) if config else ConductorSettings()
        except ConfigurationError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)
        obj["settings"] = settings

    configure_logging(log_level or settings.log_level, json_output=json_logs)
    log.debug("settings_loaded", config=config, state_file=str(settings.state_file))


cli.add_command(servers_group)
cli.add_command(setup_group)


if __name__ == "__main__":
    cli()
