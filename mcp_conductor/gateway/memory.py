"""In-memory gateway.

Keeps servers and setup status in plain Python objects. Used as the test
double for the registry, the orchestrator and the CLI, and handy for trying
the commands without a host installed.

Besides behaving like a real backend it can:
    - fail the next N calls of an operation (``fail``)
    - hold an operation until released (``hold``), to observe in-flight state
    - report how often each operation was called (``call_count``)
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from mcp_conductor.exceptions import ConflictError, NotFoundError, TransportError
from mcp_conductor.models import Credentials, ServerConfig, SetupStatus, TestResult


class InMemoryGateway:
    """Gateway storing everything in memory.

    Attributes:
        servers: Current server records, in insertion order.
        status: Environment reported by ``get_setup_status``.
        calls: Every call made, as (operation, *args) tuples.
        unreachable: Names whose connection test fails.
        registered_credentials: Credentials passed to the last registration.
        completed: Whether ``complete_setup`` was called.
        skipped: Whether ``skip_setup`` was called.
    """

    def __init__(
        self,
        servers: Iterable[ServerConfig] = (),
        status: SetupStatus | None = None,
    ) -> None:
        self.servers: list[ServerConfig] = list(servers)
        self.status = status or SetupStatus()
        self.calls: list[tuple[Any, ...]] = []
        self.unreachable: set[str] = set()
        self.registered_credentials: Credentials | None = None
        self.completed = False
        self.skipped = False
        self._failures: dict[str, list[Exception]] = {}
        self._gates: dict[str, asyncio.Event] = {}

    # === Test controls ===

    def fail(self, operation: str, error: Exception | None = None, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        error = error or TransportError(f"{operation} failed", operation)
        self._failures.setdefault(operation, []).extend([error] * times)

    def hold(self, operation: str) -> asyncio.Event:
        """Block calls of ``operation`` until the returned event is set."""
        gate = asyncio.Event()
        self._gates[operation] = gate
        return gate

    def call_count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    async def _enter(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        gate = self._gates.get(operation)
        if gate is not None:
            await gate.wait()
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)

    # === Gateway protocol ===

    async def list_servers(self) -> list[ServerConfig]:
        await self._enter("list_servers")
        return list(self.servers)

    async def add_server(self, server: ServerConfig) -> None:
        await self._enter("add_server", server.name)
        server.validate_for_transport()
        if any(s.name == server.name and s.scope == server.scope for s in self.servers):
            raise ConflictError(server.name)
        self.servers.append(server)

    async def remove_server(self, name: str) -> None:
        await self._enter("remove_server", name)
        if not any(s.name == name for s in self.servers):
            raise NotFoundError(name)
        self.servers = [s for s in self.servers if s.name != name]

    async def test_server_connection(self, name: str) -> TestResult:
        await self._enter("test_server_connection", name)
        if not any(s.name == name for s in self.servers):
            raise NotFoundError(name)
        if name in self.unreachable:
            raise TransportError(f"{name}: Failed to connect", "test_server_connection")
        return TestResult(name=name, message=f"{name}: Connected")

    async def get_setup_status(self) -> SetupStatus:
        await self._enter("get_setup_status")
        return self.status.model_copy()

    async def install_dependency_package(self) -> None:
        await self._enter("install_dependency_package")
        self.status.server_package_installed = True

    async def register_server(self, credentials: Credentials) -> None:
        await self._enter("register_server")
        self.registered_credentials = credentials
        self.status.server_registered = True

    async def complete_setup(self) -> None:
        await self._enter("complete_setup")
        self.completed = True
        self.status.is_first_launch = False

    async def skip_setup(self) -> None:
        await self._enter("skip_setup")
        self.skipped = True
        self.status.is_first_launch = False
