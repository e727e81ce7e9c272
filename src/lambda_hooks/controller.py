"""Lifecycle controller for Lambda extensions.

``LambdaHooks`` registers the extension with the Extensions API, runs INIT
hooks, then long-polls for events and dispatches them to INVOKE and SHUTDOWN
hooks until the extension terminates.

Lifecycle:
- CREATED -> REGISTERING on ``start()``
- REGISTERING -> RUNNING after registration and INIT hooks succeed
- REGISTERING -> TERMINATED if either fails (reported to the host, re-raised)
- RUNNING -> SHUTTING_DOWN -> TERMINATED on a SHUTDOWN event, an external
  termination request, or a fatal polling error

Usage:
    hooks = LambdaHooks("metrics-extension", extension_type="internal")
    hooks.on_init(connect).on_invoke(record, priority=10).on_shutdown(flush)
    await hooks.start()
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING, Any

from lambda_hooks.client import ExtensionClient
from lambda_hooks.errors import ErrorCode, LambdaHookError
from lambda_hooks.logging_utils import bind_request_id
from lambda_hooks.models import (
    ControllerState,
    ExtensionType,
    InitLoad,
    InvokeEvent,
    Phase,
    RegistrationResult,
    ShutdownEvent,
)
from lambda_hooks.registry import HandlerSpec, HookRegistry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from lambda_hooks.models import LifecycleEvent
    from lambda_hooks.settings import Settings

logger = logging.getLogger(__name__)

RUNTIME_API_ENV = "AWS_LAMBDA_RUNTIME_API"


class LambdaHooks:
    """Drive registration, event polling, and hook dispatch for one extension."""

    def __init__(
        self,
        extension_name: str,
        extension_type: ExtensionType | str = ExtensionType.EXTERNAL,
        init_load: InitLoad | str = InitLoad.BEFORE,
        *,
        include_account_id: bool = False,
        runtime_api: str | None = None,
        client: ExtensionClient | None = None,
    ) -> None:
        """Validate configuration and create the protocol client.

        Args:
            extension_name: Name announced to the host.
            extension_type: ``internal`` subscribes to INVOKE only; ``external``
                also subscribes to SHUTDOWN.
            init_load: ``before`` runs INIT hooks before the first poll;
                ``after`` fetches (and discards) the first event first.
            include_account_id: Ask the host to include the account id.
            runtime_api: Host address; defaults to ``AWS_LAMBDA_RUNTIME_API``.
            client: Pre-built protocol client (skips address resolution).

        Raises:
            LambdaHookError: ``INIT_ERROR`` when the configuration is invalid.
        """
        if not extension_name:
            msg = "Extension name is required"
            raise LambdaHookError(ErrorCode.INIT_ERROR, msg)

        try:
            self._extension_type = ExtensionType(extension_type)
        except ValueError:
            msg = (
                f"Invalid extension type: {extension_type}. "
                'Extension type must be "internal" or "external"'
            )
            raise LambdaHookError(ErrorCode.INIT_ERROR, msg) from None

        try:
            self._init_load = InitLoad(init_load)
        except ValueError:
            msg = (
                f"Invalid init event load behavior: {init_load}. "
                'Event init load must be "before" or "after"'
            )
            raise LambdaHookError(ErrorCode.INIT_ERROR, msg) from None

        if client is None:
            runtime_api = runtime_api or os.getenv(RUNTIME_API_ENV)
            if not runtime_api:
                msg = f"Runtime API address is required ({RUNTIME_API_ENV} is not set)"
                raise LambdaHookError(ErrorCode.INIT_ERROR, msg)
            client = ExtensionClient(
                extension_name,
                runtime_api,
                include_account_id=include_account_id,
            )

        self._extension_name = extension_name
        self._client = client
        self._registry = HookRegistry()
        self._state = ControllerState.CREATED
        self._extension_id: str | None = None
        self._registration: RegistrationResult | None = None
        self._poll_task: asyncio.Future[LifecycleEvent] | None = None
        self._deferred_shutdown: ShutdownEvent | None = None
        self._fatal_error: LambdaHookError | None = None
        self._terminated = asyncio.Event()

    @classmethod
    def from_settings(
        cls, settings: Settings, client: ExtensionClient | None = None
    ) -> LambdaHooks:
        """Build a controller from loaded settings."""
        return cls(
            settings.extension_name,
            settings.extension_type,
            settings.init_load,
            include_account_id=settings.include_account_id,
            runtime_api=settings.runtime_api,
            client=client,
        )

    @property
    def state(self) -> ControllerState:
        """Return the current lifecycle state."""
        return self._state

    @property
    def extension_id(self) -> str | None:
        """Return the identifier assigned by the host, once registered."""
        return self._extension_id

    @property
    def registration(self) -> RegistrationResult | None:
        """Return the registration response, once registered."""
        return self._registration

    @property
    def extension_name(self) -> str:
        """Return the name announced to the host."""
        return self._extension_name

    @property
    def fatal_error(self) -> LambdaHookError | None:
        """Return the polling error that terminated the extension, if any."""
        return self._fatal_error

    def on_init(self, handler: HandlerSpec, *, priority: int | None = None) -> LambdaHooks:
        """Register hooks for the initialization phase."""
        self._registry.register(Phase.INIT, handler, priority=priority)
        return self

    def on_invoke(self, handler: HandlerSpec, *, priority: int | None = None) -> LambdaHooks:
        """Register hooks for the invocation phase."""
        self._registry.register(Phase.INVOKE, handler, priority=priority)
        return self

    def on_shutdown(self, handler: HandlerSpec, *, priority: int | None = None) -> LambdaHooks:
        """Register hooks for the shutdown phase."""
        self._registry.register(Phase.SHUTDOWN, handler, priority=priority)
        return self

    async def start(self) -> None:
        """Register with the host and process events until termination.

        Raises:
            LambdaHookError: ``ALREADY_RUNNING`` on a second call, or
                ``EXTENSION_REGISTRATION_FAILED`` when registration or INIT
                hooks fail.
        """
        if self._state is not ControllerState.CREATED:
            msg = "Extension is already running"
            raise LambdaHookError(ErrorCode.ALREADY_RUNNING, msg)

        self._state = ControllerState.REGISTERING
        self._registry.freeze()
        try:
            pending_shutdown = await self._register()
        except Exception as exc:
            wrapped = LambdaHookError(
                ErrorCode.EXTENSION_REGISTRATION_FAILED,
                "Failed to register extension with Lambda",
                exc,
            )
            logger.error("Extension registration failed: %s", exc)
            await self._report_error(self._client.report_init_error, wrapped, "initialization")
            self._set_terminated()
            raise wrapped from exc

        self._state = ControllerState.RUNNING
        logger.info(
            "Extension %s running (id=%s, type=%s)",
            self._extension_name,
            self._extension_id,
            self._extension_type.value,
        )

        pending_shutdown = self._deferred_shutdown or pending_shutdown
        if pending_shutdown is not None:
            await self._shutdown(pending_shutdown)
        else:
            await self._run_event_loop()
        await self._terminated.wait()

    async def request_shutdown(self, signal_name: str | None = None) -> bool:
        """Shut down in response to an external termination request.

        The request is turned into a synthetic SHUTDOWN event carrying the
        signal name and sent through the regular shutdown path. A request made
        during registration is applied as soon as INIT hooks finish; if the
        first event is still being pre-fetched, that poll is cancelled and
        INIT hooks are skipped.

        Returns:
            True if this call triggered the shutdown, False if one was
            already underway or the controller is not running.
        """
        event = ShutdownEvent(signal=signal_name)
        if self._state is ControllerState.REGISTERING:
            if self._deferred_shutdown is not None:
                return False
            logger.info("Shutdown requested during registration (%s)", signal_name)
            self._deferred_shutdown = event
            if self._poll_task is not None:
                self._poll_task.cancel()
            return True
        if self._state is not ControllerState.RUNNING:
            logger.debug("Ignoring shutdown request in state %s", self._state.value)
            return False

        if self._poll_task is not None:
            self._poll_task.cancel()
        return await self._shutdown(event)

    async def aclose(self, *, wait_for_hooks: bool = True) -> None:
        """Release the protocol client, optionally after background hooks finish."""
        if wait_for_hooks:
            await self._registry.drain()
        await self._client.close()

    async def _register(self) -> ShutdownEvent | None:
        registration = await self._client.register(self._subscribed_events())
        self._extension_id = registration.extension_id
        self._registration = registration

        pending_shutdown: ShutdownEvent | None = None
        if self._init_load is InitLoad.AFTER:
            try:
                first_event = await self._poll()
            except asyncio.CancelledError:
                if self._deferred_shutdown is None:
                    raise
                logger.info("Pre-fetch interrupted by shutdown request, skipping INIT hooks")
                return None
            if isinstance(first_event, ShutdownEvent):
                pending_shutdown = first_event
            else:
                logger.debug("Discarding pre-fetched event %s", first_event.request_id)

        await self._registry.execute_hooks(Phase.INIT, registration)
        return pending_shutdown

    def _subscribed_events(self) -> list[str]:
        if self._extension_type is ExtensionType.INTERNAL:
            return [Phase.INVOKE.value]
        return [Phase.INVOKE.value, Phase.SHUTDOWN.value]

    async def _run_event_loop(self) -> None:
        while self._state is ControllerState.RUNNING:
            try:
                event = await self._poll()
            except asyncio.CancelledError:
                if self._state is ControllerState.RUNNING:
                    raise
                break
            except Exception as exc:
                logger.error("Error in event loop: %s", exc)
                if isinstance(exc, LambdaHookError) and exc.is_fatal:
                    self._fatal_error = exc
                    self._state = ControllerState.SHUTTING_DOWN
                    await self._report_error(self._client.report_exit_error, exc, "exit")
                    self._set_terminated()
                    break
                continue

            if self._state is not ControllerState.RUNNING:
                break
            if isinstance(event, ShutdownEvent):
                await self._shutdown(event)
                break
            await self._handle_invoke(event)

    async def _poll(self) -> LifecycleEvent:
        self._poll_task = asyncio.ensure_future(self._client.next_event(self._extension_id))
        try:
            return await self._poll_task
        finally:
            self._poll_task = None

    async def _handle_invoke(self, event: InvokeEvent) -> None:
        with bind_request_id(event.request_id):
            try:
                await self._registry.execute_hooks(Phase.INVOKE, event)
            except LambdaHookError as exc:
                logger.error("Error executing invoke hooks: %s", exc.cause or exc)

    async def _shutdown(self, event: ShutdownEvent) -> bool:
        if self._state in (ControllerState.SHUTTING_DOWN, ControllerState.TERMINATED):
            return False

        self._state = ControllerState.SHUTTING_DOWN
        logger.info(
            "Shutting down extension %s (reason=%s, signal=%s)",
            self._extension_name,
            event.shutdown_reason,
            event.signal,
        )
        try:
            await self._registry.execute_hooks(Phase.SHUTDOWN, event)
        except LambdaHookError as exc:
            logger.error("Error executing shutdown hooks: %s", exc.cause or exc)
        finally:
            self._set_terminated()
        return True

    async def _report_error(
        self,
        report: Callable[[str | None, BaseException], Awaitable[Any]],
        error: LambdaHookError,
        label: str,
    ) -> None:
        try:
            await report(self._extension_id, error)
        except LambdaHookError as exc:
            if exc.code is ErrorCode.INVALID_STATE:
                logger.warning("Cannot report %s error: extension is not registered", label)
            else:
                logger.exception("Failed to report %s error", label)
        except Exception:
            logger.exception("Failed to report %s error", label)

    def _set_terminated(self) -> None:
        self._state = ControllerState.TERMINATED
        self._terminated.set()
        logger.info("Extension %s terminated", self._extension_name)
