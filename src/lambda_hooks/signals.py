"""Host-process wiring: OS termination signals and the extension entry point."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING

from lambda_hooks.errors import LambdaHookError
from lambda_hooks.logging_utils import configure_logging

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from lambda_hooks.controller import LambdaHooks

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_signal_handlers(
    controller: LambdaHooks,
    *,
    loop: asyncio.AbstractEventLoop | None = None,
    signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
    on_repeat: Callable[[], None] | None = None,
) -> Callable[[], None]:
    """Feed OS termination signals into the controller's shutdown path.

    The first signal schedules ``controller.request_shutdown``. Later signals
    never dispatch shutdown hooks again; they only invoke ``on_repeat`` (used
    by ``run_extension`` to force the exit).

    Args:
        controller: Controller receiving the termination request.
        loop: Event loop to attach to. Defaults to the running loop.
        signals: Signals to handle.
        on_repeat: Optional callback for signals received after the first.

    Returns:
        Callable that removes the installed handlers.
    """
    loop = loop or asyncio.get_running_loop()
    handled = tuple(signals)
    pending: set[asyncio.Task[bool]] = set()
    requested = False

    def _handle_signal(sig: signal.Signals) -> None:
        nonlocal requested
        if requested:
            logger.warning("Received %s while shutdown is already underway", sig.name)
            if on_repeat is not None:
                on_repeat()
            return
        requested = True
        logger.info("Received %s, gracefully shutting down...", sig.name)
        task = loop.create_task(controller.request_shutdown(sig.name))
        pending.add(task)
        task.add_done_callback(pending.discard)

    for sig in handled:
        loop.add_signal_handler(sig, _handle_signal, sig)

    def remove() -> None:
        for sig in handled:
            loop.remove_signal_handler(sig)

    return remove


async def serve(controller: LambdaHooks) -> int:
    """Run the controller until it terminates and return the exit code."""
    main_task = asyncio.current_task()
    remove = install_signal_handlers(
        controller, on_repeat=main_task.cancel if main_task is not None else None
    )
    try:
        await controller.start()
        await controller.aclose()
    except LambdaHookError:
        logger.exception("Failed to start extension %s", controller.extension_name)
        await controller.aclose(wait_for_hooks=False)
        return 1
    except asyncio.CancelledError:
        logger.warning("Forced exit of extension %s", controller.extension_name)
        return 1
    finally:
        remove()
    if controller.fatal_error is not None:
        logger.error(
            "Extension %s stopped after a fatal error: %s",
            controller.extension_name,
            controller.fatal_error,
        )
        return 1
    return 0


def run_extension(controller: LambdaHooks, *, log_level: str | int = logging.INFO) -> int:
    """Configure logging and run the extension on a fresh event loop."""
    configure_logging(log_level)
    return asyncio.run(serve(controller))
