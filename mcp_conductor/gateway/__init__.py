"""Gateways: the side-effect boundary of mcp-conductor.

Modules:
    base: The Gateway protocol consumed by the registry and the orchestrator.
    cli_gateway: Production gateway driving the host and npm CLIs.
    memory: In-memory gateway for tests and dry runs.
"""

from mcp_conductor.gateway.base import Gateway
from mcp_conductor.gateway.cli_gateway import CliGateway
from mcp_conductor.gateway.memory import InMemoryGateway

__all__ = ["Gateway", "CliGateway", "InMemoryGateway"]
