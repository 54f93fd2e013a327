"""Exception hierarchy for mcp-conductor.

Every error raised by the registry, the setup orchestrator, or a gateway
derives from ConductorError, so callers can report any of them with a single
except clause while still branching on the precise type.

Exception Hierarchy:
    ConductorError (base)
    ├── ConfigurationError - Settings file invalid or unreadable
    ├── ValidationError - Server record or submission is malformed
    │   ├── CredentialsIncompleteError - A credential field is empty
    │   └── HostAppMissingError - Host application not installed
    ├── ConflictError - Duplicate server name within a scope
    ├── NotFoundError - Operating on an absent server name
    ├── PartialReplaceError - Edit removed the server but could not re-create it
    ├── TransportError - Gateway or communication failure
    ├── BusyError - Another operation is in flight for the same name
    ├── SetupStateError - Setup action not allowed in the current phase
    └── EnvironmentFatalError - Environment the orchestrator cannot fix
        └── DependencyRuntimeMissingError - Package runtime (npm) absent

Example Usage:
    >>> from mcp_conductor.exceptions import PartialReplaceError
    >>> try:
    ...     await registry.edit(server, {"TOKEN": "new"})
    ... except PartialReplaceError as e:
    ...     log.error("edit_lost_server", name=e.server.name)
    ...     await registry.refresh()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mcp_conductor.enums import OperationKind
    from mcp_conductor.models import ServerConfig


class ConductorError(Exception):
    """Base exception for all mcp-conductor errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(ConductorError):
    """Configuration-related errors.

    Examples:
        - Settings file not found or unreadable
        - Invalid YAML syntax
        - Unset environment variable referenced from the settings file
    """

    pass


class ValidationError(ConductorError):
    """A server record or setup submission is incomplete for its kind.

    Raised before anything is sent to the gateway, e.g. a stdio server
    without a command or an sse server without a url.
    """

    pass


class CredentialsIncompleteError(ValidationError):
    """One or more credential fields were submitted empty."""

    pass


class HostAppMissingError(ValidationError):
    """Setup submission attempted while the host application is absent."""

    pass


class ConflictError(ConductorError):
    """A server with the same name already exists in the target scope.

    Attributes:
        name: The conflicting server name
    """

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        super().__init__(message or f"MCP server '{name}' already exists")


class NotFoundError(ConductorError):
    """The named server does not exist.

    Attributes:
        name: The missing server name
    """

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        super().__init__(message or f"MCP server '{name}' not found")


class PartialReplaceError(ConductorError):
    """Edit removed the old record but failed to add the replacement.

    The server is gone on the backend. Callers must refresh from the
    gateway instead of trusting the local snapshot.

    Attributes:
        server: The replacement record that could not be created
        cause: The error raised by the re-create step
    """

    def __init__(self, server: ServerConfig, cause: Exception) -> None:
        self.server = server
        self.cause = cause
        super().__init__(
            f"MCP server '{server.name}' was removed but could not be re-created: {cause}"
        )


class TransportError(ConductorError):
    """The gateway could not complete a request.

    Covers missing binaries, non-zero exits, timeouts and unreadable output.

    Attributes:
        operation: Gateway operation that failed (e.g. "remove_server")
    """

    def __init__(self, message: str, operation: str | None = None) -> None:
        self.operation = operation
        super().__init__(message)


class BusyError(ConductorError):
    """An operation is already in flight for the target server.

    Attributes:
        name: The server name
        pending: Kind of the operation holding the name
    """

    def __init__(self, name: str, pending: OperationKind) -> None:
        self.name = name
        self.pending = pending
        super().__init__(f"MCP server '{name}' is busy ({pending.value} in progress)")


class SetupStateError(ConductorError):
    """A setup action was requested in a phase that does not accept it."""

    pass


class EnvironmentFatalError(ConductorError):
    """The environment is missing something the orchestrator cannot install.

    Not retried automatically within a session.
    """

    pass


class DependencyRuntimeMissingError(EnvironmentFatalError):
    """The runtime needed to install the server package is not present."""

    def __init__(self, runtime: str = "npm") -> None:
        self.runtime = runtime
        super().__init__(f"{runtime} is not installed. Please install Node.js first.")
