"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest
from pydantic import SecretStr

from mcp_conductor.config.settings import ConductorSettings
from mcp_conductor.enums import Scope, Transport
from mcp_conductor.gateway.memory import InMemoryGateway
from mcp_conductor.models import Credentials, ServerConfig, ServerStatus, SetupStatus
from mcp_conductor.registry import ServerRegistry
from mcp_conductor.telemetry import Telemetry


class RecordingSink:
    """Telemetry sink that keeps every event for assertions."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def record(self, event: str, properties: dict) -> None:
        self.events.append((event, properties))

    def names(self) -> list[str]:
        return [event for event, _ in self.events]


@pytest.fixture
def stdio_server() -> ServerConfig:
    """Sample stdio server in local scope."""
    return ServerConfig(
        name="fetch",
        transport=Transport.STDIO,
        command="uvx",
        args=["mcp-server-fetch"],
        env={"API_KEY": "old"},
        scope=Scope.LOCAL,
        status=ServerStatus(running=True),
    )


@pytest.fixture
def sse_server() -> ServerConfig:
    """Sample sse server in project scope."""
    return ServerConfig(
        name="docs",
        transport=Transport.SSE,
        url="https://mcp.example.com/sse",
        scope=Scope.PROJECT,
    )


@pytest.fixture
def user_server() -> ServerConfig:
    """Sample stdio server in user scope."""
    return ServerConfig(
        name="github",
        command="npx",
        args=["-y", "@modelcontextprotocol/server-github"],
        env={"GITHUB_TOKEN": "ghp_test"},
        scope=Scope.USER,
    )


@pytest.fixture
def gateway(stdio_server, sse_server, user_server) -> InMemoryGateway:
    """In-memory gateway preloaded with one server per scope."""
    return InMemoryGateway([stdio_server, sse_server, user_server])


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def registry(gateway, sink) -> ServerRegistry:
    """Registry over the preloaded gateway, not yet refreshed."""
    return ServerRegistry(gateway, telemetry=Telemetry([sink]))


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(
        endpoint_url="https://dev12345.service-now.com",
        username="admin",
        password=SecretStr("s3cret"),
    )


@pytest.fixture
def fresh_environment() -> SetupStatus:
    """First launch with the host and npm present but nothing installed."""
    return SetupStatus(
        is_first_launch=True,
        dependency_runtime_installed=True,
        server_package_installed=False,
        server_registered=False,
        host_app_installed=True,
    )


@pytest.fixture
def settings(tmp_path: Path) -> ConductorSettings:
    """Settings with the state file in a temp directory."""
    return ConductorSettings(state_file=tmp_path / "state" / "setup_state.json", command_timeout=5)
