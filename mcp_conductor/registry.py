"""Session snapshot of configured MCP servers.

ServerRegistry holds the servers last reported by the gateway and mediates
every change to them. It never persists anything: the gateway is the source
of truth and ``refresh()`` is always a valid way to reconcile.

Concurrency Model:
    Operations on different server names run concurrently. Operations on the
    same name are serialized: while one is in flight a second remove, edit,
    add or test for that name raises BusyError, except that a second test
    joins the test already running instead of issuing another gateway call.
    Each operation runs in its own task and callers await it through
    ``asyncio.shield``, so once edit has removed the old record the re-create
    step still runs even if the caller is cancelled. Before the event loop
    closes, ``drain()`` waits for whatever is still in flight, and a
    re-create that is cancelled anyway is reported as PartialReplaceError.

Example:
    >>> registry = ServerRegistry(CliGateway(settings))
    >>> await registry.refresh()
    >>> for scope, servers in registry.grouped().items():
    ...     print(scope, [s.name for s in servers])
    >>> try:
    ...     await registry.edit(server, {"API_KEY": "new"})
    ... except ConductorError:
    ...     await registry.refresh()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from mcp_conductor.enums import OperationKind, Scope
from mcp_conductor.exceptions import BusyError, PartialReplaceError, ValidationError
from mcp_conductor.models import ServerConfig, TestResult
from mcp_conductor.telemetry import Telemetry

if TYPE_CHECKING:
    from mcp_conductor.gateway.base import Gateway

log = structlog.get_logger(__name__)

T = TypeVar("T")


def group_by_scope(servers: Iterable[ServerConfig]) -> dict[Scope, list[ServerConfig]]:
    """Group servers by scope, keeping their relative order.

    Scopes appear in the order they are first seen. Records without a usable
    scope were already normalized to local by ServerConfig.

    Args:
        servers: Servers to group.

    Returns:
        Mapping from scope to the servers in that scope.
    """
    grouped: dict[Scope, list[ServerConfig]] = {}
    for server in servers:
        grouped.setdefault(server.scope or Scope.LOCAL, []).append(server)
    return grouped


@dataclass
class _InFlight:
    kind: OperationKind
    task: asyncio.Task[Any]


class ServerRegistry:
    """Configured servers for one session plus the operations that change them.

    Attributes:
        needs_refresh: Set when an edit failed and the snapshot may no longer
            match the gateway. Cleared by ``refresh()``.
    """

    def __init__(
        self,
        gateway: Gateway,
        telemetry: Telemetry | None = None,
        servers: Iterable[ServerConfig] = (),
    ) -> None:
        self._gateway = gateway
        self._telemetry = telemetry or Telemetry()
        self._servers: list[ServerConfig] = list(servers)
        self._in_flight: dict[str, _InFlight] = {}
        self.needs_refresh = False

    # === Views ===

    @property
    def servers(self) -> list[ServerConfig]:
        """Copy of the current snapshot."""
        return list(self._servers)

    def get(self, name: str) -> ServerConfig | None:
        for server in self._servers:
            if server.name == name:
                return server
        return None

    def grouped(self) -> dict[Scope, list[ServerConfig]]:
        """Scope grouping of the current snapshot, recomputed on every call."""
        return group_by_scope(self._servers)

    def pending_operation(self, name: str) -> OperationKind | None:
        """Kind of the operation currently holding ``name``, if any."""
        pending = self._in_flight.get(name)
        return pending.kind if pending is not None else None

    def is_busy(self, name: str) -> bool:
        return name in self._in_flight

    # === Operations ===

    async def refresh(self) -> list[ServerConfig]:
        """Replace the snapshot with the gateway's list.

        The snapshot is left untouched if the gateway call fails.
        """
        servers = await self._gateway.list_servers()
        self._servers = list(servers)
        self.needs_refresh = False
        log.debug("registry_refreshed", count=len(self._servers))
        return self.servers

    async def test_connection(self, name: str) -> TestResult:
        """Ask the gateway whether ``name`` is reachable.

        A call made while a test for the same name is running shares that
        test's outcome.

        Raises:
            BusyError: If a non-test operation holds the name.
            TransportError: If the gateway reports the server unreachable.
        """
        pending = self._in_flight.get(name)
        if pending is not None and pending.kind == OperationKind.TEST:
            log.debug("connection_test_joined", name=name)
            return await asyncio.shield(pending.task)
        return await self._run_exclusive(name, OperationKind.TEST, lambda: self._test_connection(name))

    async def add(self, server: ServerConfig) -> None:
        """Create ``server`` through the gateway and add it to the snapshot.

        Raises:
            ValidationError: If fields required by the transport are missing.
            ConflictError: If the name exists in the same scope.
            BusyError: If another operation holds the name.
        """
        server.validate_for_transport()
        await self._run_exclusive(server.name, OperationKind.ADD, lambda: self._add(server))

    async def remove(self, name: str) -> None:
        """Delete ``name`` through the gateway, then drop it from the snapshot.

        Raises:
            NotFoundError: If the gateway has no such server.
            BusyError: If another operation holds the name.
        """
        await self._run_exclusive(name, OperationKind.REMOVE, lambda: self._remove(name))

    async def edit(self, server: ServerConfig, new_env: Mapping[str, str]) -> ServerConfig:
        """Replace ``server`` with a copy carrying ``new_env``.

        The gateway has no update primitive, so this removes the record and
        adds it back. Nothing is removed if the replacement is invalid.

        Args:
            server: The record being edited.
            new_env: Complete environment for the replacement.

        Returns:
            The replacement record.

        Raises:
            ValidationError: If the replacement is invalid.
            NotFoundError: If the remove step finds no such server. Nothing changed.
            PartialReplaceError: If the server was removed but not re-created.
                The snapshot no longer lists it; refresh before trusting it.
            BusyError: If another operation holds the name.
        """
        if any(not key or not key.strip() for key in new_env):
            raise ValidationError(f"Environment variable names for '{server.name}' must not be empty")
        replacement = server.with_env(dict(new_env))
        replacement.validate_for_transport()
        await self._run_exclusive(server.name, OperationKind.EDIT, lambda: self._replace(replacement))
        return replacement

    async def drain(self) -> None:
        """Wait for every in-flight operation to finish.

        Callers that are about to close the event loop await this first, so
        an edit whose remove step already ran still re-creates the server.
        Cancelling ``drain`` does not cancel the operations it waits for.
        """
        while self._in_flight:
            pending = [entry.task for entry in self._in_flight.values()]
            log.debug("registry_draining", names=sorted(self._in_flight))
            await asyncio.wait(pending)

    # === Internals ===

    async def _run_exclusive(
        self,
        name: str,
        kind: OperationKind,
        operation: Callable[[], Coroutine[Any, Any, T]],
    ) -> T:
        pending = self._in_flight.get(name)
        if pending is not None:
            log.warning("server_busy", name=name, requested=kind.value, pending=pending.kind.value)
            raise BusyError(name, pending.kind)

        task = asyncio.create_task(self._release_after(name, operation()))
        task.add_done_callback(self._observe)
        self._in_flight[name] = _InFlight(kind, task)
        return await asyncio.shield(task)

    async def _release_after(self, name: str, operation: Coroutine[Any, Any, T]) -> T:
        try:
            return await operation
        finally:
            self._in_flight.pop(name, None)

    @staticmethod
    def _observe(task: asyncio.Task[Any]) -> None:
        # Marks the exception retrieved when every awaiting caller was cancelled.
        if not task.cancelled() and task.exception() is not None:
            log.debug("registry_operation_failed", error=str(task.exception()))

    async def _test_connection(self, name: str) -> TestResult:
        server = self.get(name)
        transport = server.transport.value if server is not None else "unknown"
        try:
            result = await self._gateway.test_server_connection(name)
        except Exception as e:
            log.warning("connection_test_failed", name=name, error=str(e))
            self._telemetry.connection_error(name, error_type="test_failed", retry_attempt=0)
            raise
        log.info("connection_tested", name=name, message=result.message)
        self._telemetry.server_connection_tested(name, success=True, transport=transport)
        return result

    async def _add(self, server: ServerConfig) -> None:
        await self._gateway.add_server(server)
        self._servers.append(server)
        log.info("server_added", name=server.name, scope=server.scope.value, transport=server.transport.value)
        self._telemetry.server_added(server.transport.value)

    async def _remove(self, name: str) -> None:
        existing = self.get(name)
        await self._gateway.remove_server(name)
        self._servers = [s for s in self._servers if s.name != name]
        log.info("server_removed", name=name)
        self._telemetry.server_removed(name, was_connected=existing.is_running if existing else False)

    async def _replace(self, replacement: ServerConfig) -> None:
        name = replacement.name
        try:
            await self._gateway.remove_server(name)
        except Exception:
            self.needs_refresh = True
            raise
        log.info("edit_original_removed", name=name)

        try:
            await self._gateway.add_server(replacement)
        except (Exception, asyncio.CancelledError) as e:
            # The old record is already gone; report the loss even when cancelled
            self._servers = [s for s in self._servers if s.name != name]
            self.needs_refresh = True
            log.error("edit_recreate_failed", name=name, error=repr(e))
            raise PartialReplaceError(replacement, e) from e

        self._servers = self._with_replaced(name, replacement)
        log.info("server_edited", name=name, env_keys=sorted(replacement.env))
        self._telemetry.server_added(replacement.transport.value, configuration_method="manual")

    def _with_replaced(self, name: str, replacement: ServerConfig) -> list[ServerConfig]:
        updated: list[ServerConfig] = []
        placed = False
        for server in self._servers:
            if server.name != name:
                updated.append(server)
            elif not placed:
                updated.append(replacement)
                placed = True
        if not placed:
            updated.append(replacement)
        return updated
