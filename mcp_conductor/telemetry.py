"""Fire-and-forget analytics signals.

The registry reports what the user did (server added, removed, tested) to
any number of sinks. Sinks are side notifications: a failing sink is logged
and otherwise ignored so it can never change what the engine does.

Example:
    >>> telemetry = Telemetry([LoggingSink()])
    >>> telemetry.server_removed("fetch", was_connected=False)
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol

import structlog

log = structlog.get_logger(__name__)

SERVER_ADDED = "server_added"
SERVER_REMOVED = "server_removed"
SERVER_CONNECTION_TESTED = "server_connection_tested"
CONNECTION_ERROR = "connection_error"


class TelemetrySink(Protocol):
    """Receiver for analytics events."""

    def record(self, event: str, properties: dict[str, Any]) -> None:
        """Record one event. May raise; the caller absorbs it."""
        ...


class LoggingSink:
    """Sink that writes every event to the structured log."""

    def record(self, event: str, properties: dict[str, Any]) -> None:
        log.info("telemetry_event", telemetry_event=event, **properties)


class Telemetry:
    """Dispatches analytics events to the configured sinks."""

    def __init__(self, sinks: Iterable[TelemetrySink] | None = None) -> None:
        self._sinks: list[TelemetrySink] = list(sinks) if sinks is not None else [LoggingSink()]

    def add_sink(self, sink: TelemetrySink) -> None:
        self._sinks.append(sink)

    def emit(self, event: str, **properties: Any) -> None:
        for sink in self._sinks:
            try:
                sink.record(event, dict(properties))
            except Exception as e:
                log.warning("telemetry_sink_failed", telemetry_event=event, sink=type(sink).__name__, error=str(e))

    def server_added(self, server_type: str, configuration_method: str = "manual") -> None:
        self.emit(SERVER_ADDED, server_type=server_type, configuration_method=configuration_method)

    def server_removed(self, server_name: str, was_connected: bool) -> None:
        self.emit(SERVER_REMOVED, server_name=server_name, was_connected=was_connected)

    def server_connection_tested(self, server_name: str, success: bool, transport: str) -> None:
        self.emit(SERVER_CONNECTION_TESTED, server_name=server_name, success=success, transport=transport)

    def connection_error(self, server_name: str, error_type: str, retry_attempt: int = 0) -> None:
        self.emit(CONNECTION_ERROR, server_name=server_name, error_type=error_type, retry_attempt=retry_attempt)
