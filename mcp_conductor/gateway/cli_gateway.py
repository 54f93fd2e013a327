"""Gateway backed by the host CLI, the package runtime and a state file.

Server records are managed through ``claude mcp`` subcommands; setup probes
and installation use ``npm``; setup progress is a small JSON file written
atomically. Every failure is converted to the mcp-conductor error types so
the registry and the orchestrator never see subprocess details.

Host commands used::

    claude mcp list
    claude mcp get <name>
    claude mcp add -s <scope> -t <transport> <name> [<url>] [-e K=V ...] [-- <command> <args...>]
    claude mcp remove <name>
"""

from __future__ import annotations

import asyncio
import re
import shlex
import shutil

import aiofiles
import structlog

from mcp_conductor.config.settings import ConductorSettings
from mcp_conductor.enums import Transport
from mcp_conductor.exceptions import (
    ConductorError,
    ConflictError,
    NotFoundError,
    TransportError,
)
from mcp_conductor.models import Credentials, ServerConfig, ServerStatus, SetupStatus, TestResult
from mcp_conductor.utils.async_subprocess import run_command

log = structlog.get_logger(__name__)

# "name: target [(SSE|HTTP)] - status" lines printed by `mcp list`
LIST_LINE = re.compile(r"^(?P<name>[^\s:][^:]*?):\s+(?P<target>.+?)(?:\s+\((?P<kind>[A-Za-z]+)\))?\s+-\s+(?P<status>.+)$")

# "  Key: value" lines printed by `mcp get`
DETAIL_LINE = re.compile(r"^\s+(?P<key>[A-Za-z ]+):\s*(?P<value>.*)$")

ENV_LINE = re.compile(r"^\s+(?P<key>[A-Za-z_][A-Za-z0-9_]*)=(?P<value>.*)$")


def parse_server_list(output: str) -> dict[str, ServerConfig]:
    """Parse ``mcp list`` output into partial records keyed by name.

    The list line only carries the target and liveness, so scope and env
    are left at their defaults; ``mcp get`` fills in the rest.
    """
    servers: dict[str, ServerConfig] = {}
    for line in output.splitlines():
        match = LIST_LINE.match(line.strip())
        if match is None:
            continue
        name = match.group("name").strip()
        target = match.group("target").strip()
        kind = (match.group("kind") or "stdio").lower()
        status = ServerStatus(running=_is_connected(match.group("status")))
        if kind == "stdio":
            parts = _split_args(target)
            servers[name] = ServerConfig(
                name=name, command=parts[0] if parts else None, args=parts[1:], status=status
            )
        else:
            servers[name] = ServerConfig(name=name, transport=kind, url=target, status=status)
    return servers


def parse_server_details(name: str, output: str) -> ServerConfig:
    """Parse ``mcp get <name>`` output into a ServerConfig.

    Unknown keys are ignored; a missing scope becomes local.
    """
    fields: dict[str, str] = {}
    env: dict[str, str] = {}
    in_env = False

    for line in output.splitlines():
        if not line.strip():
            in_env = False
            continue
        if in_env:
            env_match = ENV_LINE.match(line)
            if env_match is not None:
                env[env_match.group("key")] = env_match.group("value")
                continue
            in_env = False
        match = DETAIL_LINE.match(line)
        if match is None:
            continue
        key = match.group("key").strip().lower()
        if key == "environment":
            in_env = True
        else:
            fields[key] = match.group("value").strip()

    transport = fields.get("type", "stdio")
    status = fields.get("status")
    raw_scope = fields.get("scope", "")

    return ServerConfig(
        name=name,
        transport=transport,
        command=fields.get("command") or None,
        args=_split_args(fields.get("args", "")),
        url=fields.get("url") or None,
        env=env,
        scope=raw_scope.split(" ", 1)[0] if raw_scope else None,
        status=ServerStatus(running=_is_connected(status)) if status else None,
    )


def _split_args(raw: str) -> list[str]:
    if not raw:
        return []
    try:
        return shlex.split(raw)
    except ValueError:
        return raw.split()


def _is_connected(status: str) -> bool:
    lowered = status.lower()
    return re.search(r"\bconnected\b", lowered) is not None and "fail" not in lowered


def _classify_failure(operation: str, name: str | None, output: str) -> ConductorError:
    message = output.strip() or f"{operation} failed"
    lowered = message.lower()
    if name is not None and "already exists" in lowered:
        return ConflictError(name, message)
    if name is not None and ("not found" in lowered or "no mcp server" in lowered):
        return NotFoundError(name, message)
    return TransportError(message, operation)


class CliGateway:
    """Gateway implementation driving the ``claude`` and ``npm`` CLIs.

    Attributes:
        settings: Binaries, package names and the state file location.
    """

    def __init__(self, settings: ConductorSettings) -> None:
        self.settings = settings

    # === Server records ===

    async def list_servers(self) -> list[ServerConfig]:
        listed = parse_server_list(await self._host("list_servers", "list"))
        details = await asyncio.gather(*(self._details(name) for name in listed), return_exceptions=True)

        servers: list[ServerConfig] = []
        for (name, summary), server in zip(listed.items(), details):
            if isinstance(server, ConductorError):
                # Removed or unreadable since `mcp list` ran
                log.warning("server_details_unavailable", name=name, error=server.message)
                server = summary
            elif isinstance(server, BaseException):
                raise server
            elif server.status is None:
                server = server.model_copy(update={"status": summary.status})
            servers.append(server)
        return servers

    async def add_server(self, server: ServerConfig) -> None:
        server.validate_for_transport()

        args = ["add", "-s", server.scope.value, "-t", server.transport.value, server.name]
        if server.transport.uses_url:
            args.append(server.url or "")
        for key, value in server.env.items():
            args.extend(["-e", f"{key}={value}"])
        if server.transport == Transport.STDIO:
            args.extend(["--", server.command or "", *server.args])

        await self._host("add_server", *args, name=server.name)
        log.info("host_server_added", name=server.name, scope=server.scope.value)

    async def remove_server(self, name: str) -> None:
        await self._host("remove_server", "remove", name, name=name)
        log.info("host_server_removed", name=name)

    async def test_server_connection(self, name: str) -> TestResult:
        server = await self._details(name)
        if not server.is_running:
            raise TransportError(f"{name}: Failed to connect", "test_server_connection")
        return TestResult(name=name, message=f"{name}: Connected")

    # === Setup ===

    async def get_setup_status(self) -> SetupStatus:
        host_installed = shutil.which(self.settings.host.binary) is not None
        runtime_installed, package_installed = await asyncio.gather(
            self._succeeds(self.settings.dependency.runtime, "--version"),
            self._succeeds(self.settings.dependency.runtime, "list", "-g", self.settings.dependency.package),
        )
        registered = await self._probe_registered() if host_installed else False

        return SetupStatus(
            is_first_launch=not self.settings.state_file.exists(),
            dependency_runtime_installed=runtime_installed,
            server_package_installed=package_installed,
            server_registered=registered,
            host_app_installed=host_installed,
        )

    async def install_dependency_package(self) -> None:
        package = self.settings.dependency.package
        log.info("installing_package", package=package)
        stdout, stderr, code = await self._run(
            "install_dependency_package", self.settings.dependency.runtime, "install", "-g", package
        )
        if code != 0:
            detail = stderr.strip() or stdout.strip()
            raise TransportError(f"Failed to install {package}: {detail}", "install_dependency_package")
        log.info("package_installed", package=package)

    async def register_server(self, credentials: Credentials) -> None:
        server_cfg = self.settings.server
        if await self._is_registered():
            log.info("server_already_registered", name=server_cfg.name)
            return

        await self.add_server(
            ServerConfig(
                name=server_cfg.name,
                transport=Transport.STDIO,
                command=self.settings.dependency.launcher,
                args=[self.settings.dependency.package],
                env={
                    server_cfg.url_env: credentials.endpoint_url,
                    server_cfg.username_env: credentials.username,
                    server_cfg.password_env: credentials.password.get_secret_value(),
                },
                scope=self.settings.host.registration_scope,
            )
        )

    async def complete_setup(self) -> None:
        await self._write_state(
            SetupStatus(
                is_first_launch=False,
                dependency_runtime_installed=True,
                server_package_installed=True,
                server_registered=True,
                host_app_installed=True,
            )
        )
        log.info("setup_completed")

    async def skip_setup(self) -> None:
        await self._write_state(SetupStatus(is_first_launch=False))
        log.info("setup_skip_recorded")

    # === Internals ===

    async def _details(self, name: str) -> ServerConfig:
        return parse_server_details(name, await self._host("get_server", "get", name, name=name))

    async def _is_registered(self) -> bool:
        listed = parse_server_list(await self._host("list_servers", "list"))
        return self.settings.server.name in listed

    async def _probe_registered(self) -> bool:
        try:
            return await self._is_registered()
        except TransportError as e:
            log.warning("registration_probe_failed", error=e.message)
            return False

    async def _host(self, operation: str, *args: str, name: str | None = None) -> str:
        stdout, stderr, code = await self._run(operation, self.settings.host.binary, "mcp", *args)
        if code != 0:
            raise _classify_failure(operation, name, stderr or stdout)
        return stdout

    async def _succeeds(self, *args: str) -> bool:
        try:
            _, _, code = await self._run("probe", *args)
        except TransportError:
            return False
        return code == 0

    async def _run(self, operation: str, *args: str) -> tuple[str, str, int]:
        timeout = self.settings.command_timeout
        try:
            return await run_command(*args, check=False, timeout=timeout)
        except FileNotFoundError as e:
            raise TransportError(f"Command not found: {args[0]}", operation) from e
        except TimeoutError as e:
            raise TransportError(f"{args[0]} timed out after {timeout}s", operation) from e
        except OSError as e:
            raise TransportError(f"Failed to run {args[0]}: {e}", operation) from e

    async def _write_state(self, status: SetupStatus) -> None:
        path = self.settings.state_file
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            async with aiofiles.open(tmp_path, "w") as f:
                await f.write(status.model_dump_json(indent=2))
            # Atomic rename - safe on POSIX when same filesystem
            tmp_path.replace(path)
        except OSError as e:
            raise TransportError(f"Cannot write setup state to {path}: {e}", "write_state") from e
