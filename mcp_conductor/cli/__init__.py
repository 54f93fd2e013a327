"""CLI commands for mcp-conductor.

The CLI is built using Click with the entry point ``mcp-conductor``.

Key Commands:
    servers (mcp_conductor.cli.servers):
        List configured MCP servers grouped by scope, and add, remove,
        edit or test them.

    setup (mcp_conductor.cli.setup):
        Interactive first-run wizard, setup status and skip.

Usage Examples:
    List servers::

        $ mcp-conductor servers list

    Run the setup wizard::

        $ mcp-conductor setup run
"""

from mcp_conductor.cli.servers import servers_group
from mcp_conductor.cli.setup import setup_group

__all__ = ["servers_group", "setup_group"]
