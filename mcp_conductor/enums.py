"""Enumerations for server scopes, transports and setup phases."""

from enum import Enum


class Scope(str, Enum):
    """Sharing boundary of a server configuration.

    - local: this project instance only
    - project: shared through the project-level file
    - user: applies across all of the user's projects
    """

    LOCAL = "local"
    PROJECT = "project"
    USER = "user"

    def __str__(self) -> str:
        return self.value

    @property
    def display_name(self) -> str:
        """Heading used when listing servers grouped by scope."""
        if self == Scope.LOCAL:
            return "Local (this project)"
        elif self == Scope.PROJECT:
            return "Project (shared)"
        else:
            return "User (all projects)"


class Transport(str, Enum):
    """Connection mechanism a server uses."""

    STDIO = "stdio"
    SSE = "sse"
    HTTP = "http"
    OTHER = "other"

    @property
    def uses_url(self) -> bool:
        """True for transports that connect to a remote endpoint."""
        return self in (Transport.SSE, Transport.HTTP)

    def __str__(self) -> str:
        return self.value


class SetupPhase(str, Enum):
    """Phases of the first-run setup state machine.

    The happy path is:
    PROBING -> COLLECTING_CREDENTIALS -> INSTALLING -> REGISTERING -> COMPLETE
    """

    PROBING = "probing"
    COLLECTING_CREDENTIALS = "collecting_credentials"
    INSTALLING = "installing"
    REGISTERING = "registering"
    COMPLETE = "complete"

    def __str__(self) -> str:
        return self.value


class OperationKind(str, Enum):
    """Registry operations that claim a server name while in flight."""

    ADD = "add"
    REMOVE = "remove"
    EDIT = "edit"
    TEST = "test"

    def __str__(self) -> str:
        return self.value
