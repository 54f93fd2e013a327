"""First-run setup state machine.

SetupOrchestrator takes a session from probing the environment to a
registered, persisted MCP server:

    PROBING -> COLLECTING_CREDENTIALS -> INSTALLING -> REGISTERING -> COMPLETE

Install and registration failures return the machine to
COLLECTING_CREDENTIALS with ``last_error`` set, so the user can correct the
credentials and retry without re-probing. Probe failures and a missing
dependency runtime are fatal for the session: they are raised and never
retried automatically.

The machine state lives in a SetupState owned by one orchestrator, so tests
and concurrent sessions never share it.

Example:
    >>> orchestrator = SetupOrchestrator(CliGateway(settings))
    >>> phase = await orchestrator.probe()
    >>> if phase == SetupPhase.COLLECTING_CREDENTIALS:
    ...     phase = await orchestrator.submit(Credentials(
    ...         endpoint_url="https://dev.service-now.com",
    ...         username="admin",
    ...         password=SecretStr("secret"),
    ...     ))
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from mcp_conductor.enums import SetupPhase
from mcp_conductor.exceptions import (
    ConductorError,
    CredentialsIncompleteError,
    DependencyRuntimeMissingError,
    HostAppMissingError,
    SetupStateError,
)
from mcp_conductor.models import Credentials, SetupState, SetupStatus

if TYPE_CHECKING:
    from mcp_conductor.gateway.base import Gateway

log = structlog.get_logger(__name__)

CompletionCallback = Callable[[], Awaitable[None] | None]
CredentialSource = Callable[[SetupState], Awaitable[Credentials | None]]


class SetupOrchestrator:
    """Drives one session through first-run setup.

    Attributes:
        state: The session's SetupState. Mutated only by this class.
    """

    def __init__(
        self,
        gateway: Gateway,
        state: SetupState | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        self._gateway = gateway
        self.state = state or SetupState()
        self._on_complete = on_complete
        self._notified = False

    @property
    def phase(self) -> SetupPhase:
        return self.state.phase

    # === Transitions ===

    async def probe(self) -> SetupPhase:
        """Fetch the environment snapshot and pick the first phase.

        Returns:
            COMPLETE if setup already happened or the server is already
            registered with the host, otherwise COLLECTING_CREDENTIALS.

        Raises:
            SetupStateError: If called outside PROBING.
            ConductorError: If the gateway fails. The phase stays PROBING.
        """
        self._require(SetupPhase.PROBING, "probe")

        try:
            status = await self._gateway.get_setup_status()
            self.state.environment = status
            log.info("setup_status_probed", **status.model_dump())

            if not status.is_first_launch:
                await self._enter_complete()
            elif status.host_app_installed and status.server_registered:
                await self._gateway.complete_setup()
                await self._enter_complete()
            else:
                self._enter(SetupPhase.COLLECTING_CREDENTIALS)
        except ConductorError as e:
            self.state.fatal_error = e.message
            self.state.last_error = e.message
            log.error("setup_probe_failed", error=e.message)
            raise

        return self.state.phase

    async def submit(self, credentials: Credentials) -> SetupPhase:
        """Submit credentials and run install and registration.

        Args:
            credentials: Endpoint URL, username and password; all required.

        Returns:
            COMPLETE on success, or COLLECTING_CREDENTIALS with
            ``state.last_error`` set when install or registration failed.

        Raises:
            SetupStateError: If called outside COLLECTING_CREDENTIALS.
            CredentialsIncompleteError: If a credential field is empty.
            HostAppMissingError: If the host application is not installed.
            DependencyRuntimeMissingError: If the package runtime is absent.
                The machine returns to COLLECTING_CREDENTIALS.
        """
        self._require(SetupPhase.COLLECTING_CREDENTIALS, "submit credentials")

        if not credentials.is_complete:
            missing = ", ".join(credentials.missing_fields())
            raise CredentialsIncompleteError(f"Missing credentials: {missing}")

        environment = self._environment()
        if not environment.host_app_installed:
            raise HostAppMissingError("The host application is not installed; install it before setup")

        self.state.credentials = credentials
        self.state.last_error = None
        self._enter(SetupPhase.INSTALLING)

        try:
            await self._install(environment)
        except DependencyRuntimeMissingError as e:
            self.state.fatal_error = e.message
            self._fail(e.message)
            raise
        except ConductorError as e:
            self._fail(e.message)
            return self.state.phase

        self._enter(SetupPhase.REGISTERING)
        try:
            await self._gateway.register_server(credentials)
            await self._gateway.complete_setup()
        except ConductorError as e:
            self._fail(e.message)
            return self.state.phase

        await self._enter_complete()
        return self.state.phase

    async def skip(self) -> None:
        """End the session without installing or registering anything.

        Repeating a skip is a no-op.

        Raises:
            SetupStateError: If install or registration is running, or setup
                already completed normally.
        """
        if self.state.skipped:
            return
        if self.state.in_progress:
            raise SetupStateError(f"Cannot skip setup while {self.state.phase.value}")
        if self.state.is_complete:
            raise SetupStateError("Setup already completed")

        await self._gateway.skip_setup()
        self.state.skipped = True
        log.info("setup_skipped")
        await self._enter_complete()

    async def run(self, credential_source: CredentialSource) -> SetupState:
        """Drive the machine to completion for an interactive host.

        Probes, then keeps asking ``credential_source`` for credentials until
        setup completes. The source returns None to skip. Fatal errors are
        raised.

        Args:
            credential_source: Coroutine function receiving the current state
                (including ``last_error``) and returning credentials or None.

        Returns:
            The final SetupState.
        """
        if self.state.phase == SetupPhase.PROBING:
            await self.probe()

        while self.state.phase == SetupPhase.COLLECTING_CREDENTIALS:
            credentials = await credential_source(self.state)
            if credentials is None:
                await self.skip()
                break
            try:
                await self.submit(credentials)
            except CredentialsIncompleteError as e:
                self.state.last_error = e.message

        return self.state

    # === Steps ===

    async def _install(self, environment: SetupStatus) -> None:
        if not environment.dependency_runtime_installed:
            raise DependencyRuntimeMissingError()

        if not environment.server_package_installed:
            log.info("installing_server_package")
            await self._gateway.install_dependency_package()
            environment.server_package_installed = True
            log.info("server_package_installed")

    async def _enter_complete(self) -> None:
        self._enter(SetupPhase.COMPLETE)
        if self._notified:
            return
        self._notified = True
        if self._on_complete is not None:
            result = self._on_complete()
            if inspect.isawaitable(result):
                await result

    # === Helpers ===

    def _environment(self) -> SetupStatus:
        if self.state.environment is None:
            raise SetupStateError("Environment has not been probed")
        return self.state.environment

    def _require(self, phase: SetupPhase, action: str) -> None:
        if self.state.phase != phase:
            raise SetupStateError(f"Cannot {action} while {self.state.phase.value}")

    def _enter(self, phase: SetupPhase) -> None:
        log.debug("setup_phase_changed", previous=self.state.phase.value, phase=phase.value)
        self.state.phase = phase

    def _fail(self, message: str) -> None:
        log.warning("setup_step_failed", phase=self.state.phase.value, error=message)
        self.state.last_error = message
        self._enter(SetupPhase.COLLECTING_CREDENTIALS)
