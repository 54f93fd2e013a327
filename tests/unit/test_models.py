"""Tests for mcp_conductor.models module."""

import pytest
from pydantic import SecretStr
from pydantic import ValidationError as PydanticValidationError

from mcp_conductor.enums import Scope, SetupPhase, Transport
from mcp_conductor.exceptions import ValidationError
from mcp_conductor.models import (
    Credentials,
    ServerConfig,
    ServerStatus,
    SetupState,
    SetupStatus,
)


class TestServerConfigNormalization:
    """Scope and transport strings from the host are coerced to enums."""

    def test_defaults(self):
        server = ServerConfig(name="fetch", command="uvx")

        assert server.transport is Transport.STDIO
        assert server.scope is Scope.LOCAL
        assert server.args == []
        assert server.env == {}
        assert server.status is None

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("local", Scope.LOCAL),
            ("PROJECT", Scope.PROJECT),
            (" user ", Scope.USER),
            ("enterprise", Scope.LOCAL),
            ("", Scope.LOCAL),
            (None, Scope.LOCAL),
        ],
    )
    def test_scope_normalization(self, raw, expected):
        server = ServerConfig(name="fetch", command="uvx", scope=raw)

        assert server.scope is expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("stdio", Transport.STDIO),
            ("SSE", Transport.SSE),
            ("HTTP", Transport.HTTP),
            ("websocket", Transport.OTHER),
            (None, Transport.OTHER),
        ],
    )
    def test_transport_normalization(self, raw, expected):
        server = ServerConfig(name="fetch", transport=raw)

        assert server.transport is expected

    def test_is_frozen(self):
        server = ServerConfig(name="fetch", command="uvx")

        with pytest.raises(PydanticValidationError):
            server.name = "other"


class TestServerConfigValidation:
    """validate_for_transport checks required fields per transport."""

    def test_valid_stdio(self, stdio_server):
        stdio_server.validate_for_transport()

    def test_valid_sse(self, sse_server):
        sse_server.validate_for_transport()

    def test_stdio_without_command(self):
        with pytest.raises(ValidationError, match="no command"):
            ServerConfig(name="fetch", transport="stdio").validate_for_transport()

    def test_sse_without_url(self):
        with pytest.raises(ValidationError, match="no url"):
            ServerConfig(name="docs", transport="sse").validate_for_transport()

    def test_blank_name(self):
        with pytest.raises(ValidationError, match="must not be empty"):
            ServerConfig(name="  ", command="uvx").validate_for_transport()

    def test_http_without_url(self):
        with pytest.raises(ValidationError, match="uses http but has no url"):
            ServerConfig(name="api", transport="http").validate_for_transport()

    def test_valid_http(self):
        ServerConfig(name="api", transport="http", url="https://mcp.example.com/mcp").validate_for_transport()

    def test_unknown_transport_is_rejected(self):
        with pytest.raises(ValidationError, match="transport the host cannot add"):
            ServerConfig(name="remote", transport="websocket", url="wss://x").validate_for_transport()


class TestServerConfigCopies:
    def test_with_env_replaces_env_and_drops_status(self, stdio_server):
        edited = stdio_server.with_env({"API_KEY": "new"})

        assert edited.env == {"API_KEY": "new"}
        assert edited.status is None
        assert edited.definition() == {**stdio_server.definition(), "env": {"API_KEY": "new"}}
        assert stdio_server.env == {"API_KEY": "old"}

    def test_definition_excludes_status(self, stdio_server):
        assert "status" not in stdio_server.definition()

    def test_is_running(self):
        assert ServerConfig(name="a", status=ServerStatus(running=True)).is_running
        assert not ServerConfig(name="a", status=ServerStatus(running=None)).is_running
        assert not ServerConfig(name="a").is_running


class TestCredentials:
    def test_missing_fields_lists_blank_values(self):
        credentials = Credentials(endpoint_url="https://x", username=" ", password=SecretStr(""))

        assert credentials.missing_fields() == ["username", "password"]
        assert not credentials.is_complete

    def test_complete(self, credentials):
        assert credentials.missing_fields() == []
        assert credentials.is_complete

    def test_password_hidden_in_repr(self, credentials):
        assert "s3cret" not in repr(credentials)


class TestSetupModels:
    def test_setup_status_defaults_to_first_launch(self):
        status = SetupStatus()

        assert status.is_first_launch
        assert not status.host_app_installed
        assert not status.server_registered

    def test_setup_state_defaults(self):
        state = SetupState()

        assert state.phase is SetupPhase.PROBING
        assert state.environment is None
        assert not state.is_complete
        assert not state.in_progress

    @pytest.mark.parametrize("phase", [SetupPhase.INSTALLING, SetupPhase.REGISTERING])
    def test_in_progress_phases(self, phase):
        assert SetupState(phase=phase).in_progress
