#!/usr/bin/env python3
"""Example extension that collects invocation metrics.

Reads its configuration from the environment (see ``lambda_hooks.settings``)
and logs a summary when the execution environment shuts down.

Usage:
    LAMBDA_HOOKS_EXTENSION_NAME=metrics_extension.py \
        uv run python scripts/metrics_extension.py
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Any

from lambda_hooks import (
    InvokeEvent,
    LambdaHooks,
    RegistrationResult,
    ShutdownEvent,
    load_settings,
    run_extension,
)

logger = logging.getLogger("lambda_hooks.examples.metrics")


@dataclass
class InvocationMetrics:
    """Counters collected across invocations."""

    function_name: str = ""
    invocations: int = 0
    cold_start: bool = True
    started_at: float = field(default_factory=time.monotonic)
    durations: list[dict[str, Any]] = field(default_factory=list)

    def average_duration(self) -> float:
        """Return the mean recorded duration in seconds."""
        if not self.durations:
            return 0.0
        return sum(entry["duration"] for entry in self.durations) / len(self.durations)


def build_extension(hooks: LambdaHooks, metrics: InvocationMetrics) -> LambdaHooks:
    """Attach the metric hooks to a controller."""

    async def on_init(registration: RegistrationResult) -> None:
        metrics.function_name = registration.function_name
        logger.info("Metrics extension initialized for %s", registration.function_name)

    async def note_request(event: InvokeEvent) -> None:
        logger.info("Function invoked with request ID: %s", event.request_id)
        metrics.cold_start = False

    async def record_duration(event: InvokeEvent) -> None:
        started = time.monotonic()
        metrics.invocations += 1
        await asyncio.sleep(0.01)
        metrics.durations.append(
            {"request_id": event.request_id, "duration": time.monotonic() - started}
        )

    async def log_tracing(event: InvokeEvent) -> None:
        if event.tracing is not None:
            logger.info("Tracing enabled: %s", event.tracing.value)

    async def on_shutdown(event: ShutdownEvent) -> None:
        logger.info(
            "Metrics extension shutting down (%s): %d invocations, %.3fs average, %.1fs uptime",
            event.shutdown_reason or event.signal,
            metrics.invocations,
            metrics.average_duration(),
            time.monotonic() - metrics.started_at,
        )

    return (
        hooks.on_init(on_init)
        .on_invoke([note_request, {"handler": record_duration, "priority": 20}, log_tracing])
        .on_shutdown(on_shutdown)
    )


def main() -> int:
    """Run the example extension."""
    try:
        settings = load_settings()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    hooks = build_extension(LambdaHooks.from_settings(settings), InvocationMetrics())
    return run_extension(hooks, log_level=settings.log_level)


if __name__ == "__main__":
    sys.exit(main())
