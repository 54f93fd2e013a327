"""First-run setup for the MCP server the host ships with."""

from mcp_conductor.setup.orchestrator import SetupOrchestrator

__all__ = ["SetupOrchestrator"]
