"""Gateway protocol: the side-effect boundary of mcp-conductor.

The registry and the setup orchestrator never touch the filesystem, the
network or a subprocess themselves. Everything with an effect goes through
an object implementing this protocol.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from mcp_conductor.models import Credentials, ServerConfig, SetupStatus, TestResult


@runtime_checkable
class Gateway(Protocol):
    """Protocol defining the capabilities the core consumes.

    Every method may raise TransportError in addition to the errors listed.
    """

    async def list_servers(self) -> list[ServerConfig]:
        """Return every configured server across all scopes."""
        ...

    async def add_server(self, server: ServerConfig) -> None:
        """Create a server record.

        Raises:
            ValidationError: If the record is incomplete for its transport
            ConflictError: If the name already exists in the same scope
        """
        ...

    async def remove_server(self, name: str) -> None:
        """Delete a server record.

        Raises:
            NotFoundError: If no server has this name
        """
        ...

    async def test_server_connection(self, name: str) -> TestResult:
        """Check whether the named server is reachable."""
        ...

    async def get_setup_status(self) -> SetupStatus:
        """Probe the environment and the persisted setup state."""
        ...

    async def install_dependency_package(self) -> None:
        """Install the server package with the dependency runtime."""
        ...

    async def register_server(self, credentials: Credentials) -> None:
        """Register the setup server with the host.

        Succeeds without change when the server is already registered.
        """
        ...

    async def complete_setup(self) -> None:
        """Persist that setup finished."""
        ...

    async def skip_setup(self) -> None:
        """Persist that the user skipped setup."""
        ...
