"""Hook registry with priority ordering and concurrent execution."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from lambda_hooks.errors import ErrorCode, LambdaHookError
from lambda_hooks.models import HookEntry, HookHandler, Phase

logger = logging.getLogger(__name__)

HandlerItem = HookHandler | HookEntry | Mapping[str, Any]
HandlerSpec = HandlerItem | Sequence[HandlerItem]


def resolve_phase(phase: Phase | str) -> Phase:
    """Return the ``Phase`` for a phase or its name."""
    try:
        return Phase(phase)
    except ValueError:
        msg = f"Invalid event type: {phase}"
        raise LambdaHookError(ErrorCode.INVALID_EVENT_TYPE, msg) from None


def _normalize_item(item: Any, default_priority: int | None) -> HookEntry | None:
    """Convert one accepted handler shape into a ``HookEntry``."""
    if isinstance(item, HookEntry):
        return item
    if isinstance(item, Mapping):
        handler = item.get("handler")
        if not callable(handler):
            return None
        priority = item.get("priority")
        if priority is None:
            priority = default_priority
    elif callable(item):
        handler = item
        priority = default_priority
    else:
        return None
    if priority is None:
        priority = 0
    if isinstance(priority, bool) or not isinstance(priority, int):
        return None
    return HookEntry(handler=handler, priority=priority)


def _handler_name(handler: HookHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class HookRegistry:
    """Register lifecycle hooks and run them per phase as a concurrent batch."""

    def __init__(self) -> None:
        self._hooks: dict[Phase, list[HookEntry]] = {phase: [] for phase in Phase}
        self._pending: set[asyncio.Task[None]] = set()
        self._frozen = False

    @property
    def frozen(self) -> bool:
        """Return True once registration is closed."""
        return self._frozen

    def freeze(self) -> None:
        """Reject further registrations; called when the event loop starts."""
        self._frozen = True

    def register(
        self,
        phase: Phase | str,
        handler: HandlerSpec,
        *,
        priority: int | None = None,
    ) -> None:
        """Register one or more hooks for a phase.

        Args:
            phase: Phase (or its name) the hooks attach to.
            handler: A callable, a ``HookEntry``, a mapping with ``handler`` and
                optional ``priority`` keys, or a list/tuple of those.
            priority: Default priority for items that do not carry their own.
                Higher priorities are launched first.
        """
        resolved = resolve_phase(phase)
        if self._frozen:
            msg = "Hooks cannot be registered after the extension has started"
            raise LambdaHookError(ErrorCode.INVALID_STATE, msg)

        if isinstance(handler, (list, tuple)):
            entries = [_normalize_item(item, priority) for item in handler]
            if any(entry is None for entry in entries):
                msg = (
                    "Each item in the array must be a function "
                    "or an object with a handler function"
                )
                raise LambdaHookError(ErrorCode.INVALID_HANDLER, msg)
        else:
            entry = _normalize_item(handler, priority)
            if entry is None:
                msg = (
                    "Handler must be a function, an array of functions, "
                    "or an object with a handler function"
                )
                raise LambdaHookError(ErrorCode.INVALID_HANDLER, msg)
            entries = [entry]

        hooks = self._hooks[resolved]
        hooks.extend(entries)
        # list.sort is stable, so equal priorities keep registration order.
        hooks.sort(key=lambda hook: hook.priority, reverse=True)
        logger.debug("Registered %d %s hook(s)", len(entries), resolved.value)

    def entries(self, phase: Phase | str) -> tuple[HookEntry, ...]:
        """Return the hooks for a phase in launch order."""
        return tuple(self._hooks[resolve_phase(phase)])

    async def execute_hooks(self, phase: Phase | str, event: Any) -> None:
        """Run every hook of a phase concurrently and wait for the batch.

        Hooks are launched in priority order. The first failure is raised as a
        ``HOOK_EXECUTION_ERROR``; hooks still running at that point are not
        cancelled and keep running in the background.
        """
        resolved = resolve_phase(phase)
        hooks = self._hooks[resolved]
        if not hooks:
            return

        tasks = [
            asyncio.create_task(self._run_hook(resolved, entry.handler, event))
            for entry in hooks
        ]
        for task in tasks:
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        await asyncio.gather(*tasks)

    async def drain(self) -> None:
        """Wait for hooks still running from earlier batches."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @staticmethod
    async def _run_hook(phase: Phase, handler: HookHandler, event: Any) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error(
                "Error executing %s hook %s: %s",
                phase.value,
                _handler_name(handler),
                exc,
            )
            msg = f"Error executing {phase.value} hook"
            raise LambdaHookError(ErrorCode.HOOK_EXECUTION_ERROR, msg, exc) from exc
