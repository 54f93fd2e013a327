"""Tests for the mcp-conductor command line interface."""

import asyncio
import threading
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from mcp_conductor.cli.servers import _settled
from mcp_conductor.cli.setup import _prompt_credentials
from mcp_conductor.exceptions import TransportError
from mcp_conductor.gateway.memory import InMemoryGateway
from mcp_conductor.main import cli
from mcp_conductor.models import SetupState, SetupStatus
from mcp_conductor.registry import ServerRegistry


@pytest.fixture
def cli_runner():
    """Create CLI runner for testing Click commands."""
    return CliRunner()


@pytest.fixture
def invoke(cli_runner, gateway):
    """Invoke the CLI against the in-memory gateway."""

    def _invoke(*args, input=None, target=None):
        return cli_runner.invoke(cli, list(args), obj={"gateway": target or gateway}, input=input)

    return _invoke


class TestRootCommand:
    def test_help_lists_groups(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "servers" in result.output
        assert "setup" in result.output

    def test_missing_config_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(cli, ["--config", str(tmp_path / "absent.yaml"), "servers", "list"])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_config_file_is_loaded(self, cli_runner, tmp_path):
        config_file = tmp_path / "conductor.yaml"
        config_file.write_text("host:\n  binary: claude-beta\n")
        obj = {"gateway": InMemoryGateway()}

        result = cli_runner.invoke(cli, ["--config", str(config_file), "servers", "list"], obj=obj)

        assert result.exit_code == 0
        assert obj["settings"].host.binary == "claude-beta"


class TestServersList:
    def test_grouped_by_scope(self, invoke):
        result = invoke("servers", "list")

        assert result.exit_code == 0
        local = result.output.index("Local (this project) (1)")
        project = result.output.index("Project (shared) (1)")
        user = result.output.index("User (all projects) (1)")
        assert local < project < user
        assert "uvx mcp-server-fetch" in result.output
        assert "https://mcp.example.com/sse" in result.output

    def test_filter_by_scope(self, invoke):
        result = invoke("servers", "list", "--scope", "user")

        assert result.exit_code == 0
        assert "github" in result.output
        assert "fetch" not in result.output

    def test_verbose_shows_env_names_only(self, invoke):
        result = invoke("servers", "list", "-v")

        assert "GITHUB_TOKEN" in result.output
        assert "ghp_test" not in result.output

    def test_no_servers(self, invoke):
        result = invoke("servers", "list", target=InMemoryGateway())

        assert result.exit_code == 0
        assert "No MCP servers configured." in result.output

    def test_gateway_failure(self, invoke, gateway):
        gateway.fail("list_servers", TransportError("claude not responding"))

        result = invoke("servers", "list")

        assert result.exit_code == 1
        assert "Error: claude not responding" in result.output


class TestServersAdd:
    def test_add_stdio(self, invoke, gateway):
        result = invoke("servers", "add", "time", "--scope", "project", "-e", "TZ=UTC", "--", "uvx", "mcp-server-time")

        assert result.exit_code == 0, result.output
        added = gateway.servers[-1]
        assert added.name == "time"
        assert added.scope.value == "project"
        assert added.command == "uvx"
        assert added.args == ["mcp-server-time"]
        assert added.env == {"TZ": "UTC"}

    def test_add_sse(self, invoke, gateway):
        result = invoke("servers", "add", "remote", "-t", "sse", "--url", "https://remote.example.com/sse")

        assert result.exit_code == 0, result.output
        assert gateway.servers[-1].url == "https://remote.example.com/sse"

    def test_sse_without_url(self, invoke, gateway):
        result = invoke("servers", "add", "remote", "-t", "sse")

        assert result.exit_code == 1
        assert "has no url" in result.output
        assert gateway.call_count("add_server") == 0

    def test_bad_env_pair(self, invoke):
        result = invoke("servers", "add", "time", "-e", "NOVALUE", "--", "uvx")

        assert result.exit_code == 2
        assert "KEY=VALUE" in result.output

    def test_conflict(self, invoke):
        result = invoke("servers", "add", "fetch", "--", "uvx", "mcp-server-fetch")

        assert result.exit_code == 1
        assert "already exists" in result.output


class TestServersRemove:
    def test_remove(self, invoke, gateway):
        result = invoke("servers", "remove", "fetch")

        assert result.exit_code == 0
        assert "Removed server 'fetch'." in result.output
        assert all(s.name != "fetch" for s in gateway.servers)

    def test_remove_unknown(self, invoke):
        result = invoke("servers", "remove", "ghost")

        assert result.exit_code == 1
        assert "not found" in result.output


class TestServersEdit:
    def test_set_and_unset(self, invoke, gateway):
        result = invoke("servers", "edit", "github", "-e", "GITHUB_HOST=ghe.example.com", "--unset", "GITHUB_TOKEN")

        assert result.exit_code == 0, result.output
        edited = [s for s in gateway.servers if s.name == "github"]
        assert [s.env for s in edited] == [{"GITHUB_HOST": "ghe.example.com"}]

    def test_overwrite_value(self, invoke, gateway):
        result = invoke("servers", "edit", "fetch", "-e", "API_KEY=new")

        assert result.exit_code == 0
        assert "Updated environment of 'fetch'." in result.output
        assert [s.env for s in gateway.servers if s.name == "fetch"] == [{"API_KEY": "new"}]

    def test_unknown_server(self, invoke, gateway):
        result = invoke("servers", "edit", "ghost", "-e", "A=1")

        assert result.exit_code == 1
        assert gateway.call_count("remove_server") == 0

    def test_recreate_failure_reports_lost_server(self, invoke, gateway):
        gateway.fail("add_server", TransportError("host crashed"))

        result = invoke("servers", "edit", "fetch", "-e", "API_KEY=new")

        assert result.exit_code == 1
        assert "no longer configured" in result.output
        assert "host crashed" in result.output
        assert gateway.call_count("list_servers") == 2


class TestServersTest:
    def test_connected(self, invoke):
        result = invoke("servers", "test", "fetch")

        assert result.exit_code == 0
        assert "fetch: Connected" in result.output

    def test_unreachable(self, invoke, gateway):
        gateway.unreachable.add("docs")

        result = invoke("servers", "test", "docs")

        assert result.exit_code == 1
        assert "Failed to connect" in result.output


class TestSetupCommands:
    def test_status(self, invoke, fresh_environment):
        result = invoke("setup", "status", target=InMemoryGateway(status=fresh_environment))

        assert result.exit_code == 0
        assert "First launch" in result.output
        assert "Server registered" in result.output

    def test_skip(self, invoke):
        target = InMemoryGateway()

        result = invoke("setup", "skip", target=target)

        assert result.exit_code == 0
        assert target.skipped

    def test_run_registers_server(self, invoke, fresh_environment):
        target = InMemoryGateway(status=fresh_environment)

        result = invoke(
            "setup", "run", target=target, input="https://dev12345.service-now.com\nadmin\ns3cret\n"
        )

        assert result.exit_code == 0, result.output
        assert "Setup complete." in result.output
        assert target.registered_credentials.username == "admin"
        assert target.registered_credentials.password.get_secret_value() == "s3cret"
        assert "s3cret" not in result.output

    def test_run_retries_after_install_failure(self, invoke, fresh_environment):
        target = InMemoryGateway(status=fresh_environment)
        target.fail("install_dependency_package", TransportError("npm ERR! network"))

        result = invoke(
            "setup", "run", target=target, input="https://dev12345.service-now.com\nadmin\ns3cret\n\n\ns3cret\n"
        )

        assert result.exit_code == 0, result.output
        assert "npm ERR! network" in result.output
        assert target.call_count("install_dependency_package") == 2
        assert target.completed

    def test_run_offers_skip_without_host(self, invoke, fresh_environment):
        target = InMemoryGateway(status=fresh_environment.model_copy(update={"host_app_installed": False}))

        result = invoke("setup", "run", target=target, input="y\n")

        assert result.exit_code == 0
        assert "npm install -g @anthropic-ai/claude-code" in result.output
        assert "Setup skipped." in result.output
        assert "Setup complete." not in result.output
        assert target.skipped

    def test_run_stops_when_runtime_missing(self, invoke, fresh_environment):
        target = InMemoryGateway(status=fresh_environment.model_copy(update={"dependency_runtime_installed": False}))

        result = invoke("setup", "run", target=target, input="https://x\nadmin\ns3cret\n")

        assert result.exit_code == 1
        assert "npm is not installed" in result.output

    def test_run_when_already_set_up(self, invoke):
        target = InMemoryGateway(status=SetupStatus(is_first_launch=False))

        result = invoke("setup", "run", target=target)

        assert result.exit_code == 0
        assert "Setup complete." in result.output
        assert target.calls == [("get_setup_status",)]


class TestInterruptedCommand:
    """Commands let in-flight registry work finish before the loop closes."""

    @pytest.mark.asyncio
    async def test_interrupted_edit_still_recreates_server(self, gateway, stdio_server, capsys):
        registry = ServerRegistry(gateway)
        await registry.refresh()
        gate = gateway.hold("add_server")

        session = asyncio.create_task(_settled(registry, registry.edit(stdio_server, {"API_KEY": "new"}), "fetch"))
        for _ in range(50):
            if gateway.call_count("add_server") == 1:
                break
            await asyncio.sleep(0)
        session.cancel()
        await asyncio.sleep(0)
        gate.set()

        with pytest.raises(asyncio.CancelledError):
            await session

        assert "Waiting for the edit of 'fetch' to finish..." in capsys.readouterr().err
        assert [s.env for s in gateway.servers if s.name == "fetch"] == [{"API_KEY": "new"}]
        assert not registry.is_busy("fetch")


class TestCredentialPrompt:
    @pytest.mark.asyncio
    async def test_prompts_run_off_the_event_loop(self):
        seen = {}

        def ask(state):
            seen["thread"] = threading.get_ident()
            seen["state"] = state
            return None

        state = SetupState()
        with patch("mcp_conductor.cli.setup._ask_credentials", side_effect=ask):
            result = await _prompt_credentials(state)

        assert result is None
        assert seen["state"] is state
        assert seen["thread"] != threading.get_ident()
