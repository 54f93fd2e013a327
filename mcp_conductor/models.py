"""
Domain models for MCP server configurations and first-run setup.

These models are the normalized internal representation exchanged between
the registry, the setup orchestrator and gateway implementations. Values
coming from the host (scope and transport strings) are coerced here so the
rest of the code only ever sees the enums.

Example:
    Normalizing a record reported without a scope::

        server = ServerConfig(name="fetch", command="uvx", args=["mcp-server-fetch"])
        assert server.scope is Scope.LOCAL
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from mcp_conductor.enums import Scope, SetupPhase, Transport
from mcp_conductor.exceptions import ValidationError


class ServerStatus(BaseModel):
    """Liveness observed by the gateway. Not owned by the registry."""

    running: bool | None = Field(default=None, description="Whether the server answered")


class ServerConfig(BaseModel):
    """A configured MCP server integration.

    Attributes:
        name: Server identifier. Not unique across scopes.
        transport: stdio, sse or other.
        command: Executable for stdio servers.
        args: Ordered arguments for stdio servers.
        url: Endpoint for sse servers.
        env: Environment variables passed to the server.
        scope: Sharing boundary; unknown or missing values become local.
        status: Liveness reported by the gateway, if any.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    transport: Transport = Transport.STDIO
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    url: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    scope: Scope = Scope.LOCAL
    status: ServerStatus | None = None

    @field_validator("scope", mode="before")
    @classmethod
    def _normalize_scope(cls, value: Any) -> Scope:
        if isinstance(value, Scope):
            return value
        if isinstance(value, str):
            try:
                return Scope(value.strip().lower())
            except ValueError:
                return Scope.LOCAL
        return Scope.LOCAL

    @field_validator("transport", mode="before")
    @classmethod
    def _normalize_transport(cls, value: Any) -> Transport:
        if isinstance(value, Transport):
            return value
        if isinstance(value, str):
            try:
                return Transport(value.strip().lower())
            except ValueError:
                return Transport.OTHER
        return Transport.OTHER

    def validate_for_transport(self) -> None:
        """Check the fields the transport variant requires.

        Records with a transport the host cannot create are rejected too,
        so an edit never removes a server it could not add back.

        Raises:
            ValidationError: If the name is empty, the transport is unknown,
                a stdio server has no command, or an sse or http server has
                no url.
        """
        if not self.name or not self.name.strip():
            raise ValidationError("MCP server name must not be empty")
        if self.transport == Transport.OTHER:
            raise ValidationError(f"MCP server '{self.name}' has a transport the host cannot add")
        if self.transport == Transport.STDIO and not self.command:
            raise ValidationError(f"MCP server '{self.name}' uses stdio but has no command")
        if self.transport.uses_url and not self.url:
            raise ValidationError(f"MCP server '{self.name}' uses {self.transport.value} but has no url")

    def with_env(self, env: dict[str, str]) -> ServerConfig:
        """Return a copy with ``env`` replaced and observed status dropped."""
        return self.model_copy(update={"env": dict(env), "status": None})

    def definition(self) -> dict[str, Any]:
        """Fields that define the server, excluding observed status."""
        return self.model_dump(exclude={"status"})

    @property
    def is_running(self) -> bool:
        return bool(self.status and self.status.running)


class TestResult(BaseModel):
    """Outcome of a connection test, as reported by the gateway."""

    __test__ = False

    name: str
    message: str


class SetupStatus(BaseModel):
    """Environment snapshot taken once per probe."""

    is_first_launch: bool = True
    dependency_runtime_installed: bool = False
    server_package_installed: bool = False
    server_registered: bool = False
    host_app_installed: bool = False


class Credentials(BaseModel):
    """Credentials for the server registered during setup.

    Held in memory only. The password is a SecretStr so it stays out of
    reprs and log lines.
    """

    endpoint_url: str = ""
    username: str = ""
    password: SecretStr = SecretStr("")

    def missing_fields(self) -> list[str]:
        """Names of the fields that are empty or whitespace."""
        missing = []
        if not self.endpoint_url.strip():
            missing.append("endpoint_url")
        if not self.username.strip():
            missing.append("username")
        if not self.password.get_secret_value().strip():
            missing.append("password")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()


class SetupState(BaseModel):
    """Working state of one setup session.

    Owned by a single SetupOrchestrator; never shared across sessions.
    """

    phase: SetupPhase = SetupPhase.PROBING
    environment: SetupStatus | None = None
    credentials: Credentials | None = None
    last_error: str | None = None
    fatal_error: str | None = None
    skipped: bool = False

    @property
    def is_complete(self) -> bool:
        return self.phase == SetupPhase.COMPLETE

    @property
    def in_progress(self) -> bool:
        """True while a gateway step of the machine is running."""
        return self.phase in (SetupPhase.INSTALLING, SetupPhase.REGISTERING)
