"""mcp-conductor: manage the MCP servers of an AI coding assistant host.

Provides a session registry for configured servers (list, add, remove,
edit, test) and a first-run setup wizard that installs and registers the
bundled server.
"""

__version__ = "0.1.0"
