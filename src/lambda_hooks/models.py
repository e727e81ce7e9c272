"""Models for lifecycle phases, host responses, and hook entries."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

HookHandler = Callable[[Any], Awaitable[None] | None]


class Phase(str, Enum):
    """Lifecycle moment a hook can attach to."""

    INIT = "INIT"
    INVOKE = "INVOKE"
    SHUTDOWN = "SHUTDOWN"


class ControllerState(str, Enum):
    """States of the lifecycle controller."""

    CREATED = "CREATED"
    REGISTERING = "REGISTERING"
    RUNNING = "RUNNING"
    SHUTTING_DOWN = "SHUTTING_DOWN"
    TERMINATED = "TERMINATED"


class ExtensionType(str, Enum):
    """How the extension shares the execution environment with the function."""

    INTERNAL = "internal"  # runs inside the function's runtime process
    EXTERNAL = "external"  # runs as its own process


class InitLoad(str, Enum):
    """When INIT hooks run relative to the first event fetch."""

    BEFORE = "before"
    AFTER = "after"


@dataclass(frozen=True)
class HookEntry:
    """Handler registered for a phase with its launch priority."""

    handler: HookHandler
    priority: int = 0


class RegistrationResult(BaseModel, frozen=True):
    """Outcome of registering the extension with the host."""

    extension_id: str
    function_name: str = Field(default="", alias="functionName")
    function_version: str = Field(default="", alias="functionVersion")
    handler: str = ""
    account_id: str | None = Field(default=None, alias="accountId")

    model_config = {"populate_by_name": True}


class Tracing(BaseModel, frozen=True):
    """Tracing header forwarded with an invocation."""

    type: str = ""
    value: str = ""


class InvokeEvent(BaseModel, frozen=True):
    """Function invocation delivered by the host."""

    event_type: Literal["INVOKE"] = Field(default="INVOKE", alias="eventType")
    deadline_ms: int | None = Field(default=None, alias="deadlineMs")
    request_id: str = Field(default="", alias="requestId")
    invoked_function_arn: str = Field(default="", alias="invokedFunctionArn")
    tracing: Tracing | None = None

    model_config = {"populate_by_name": True}


class ShutdownEvent(BaseModel, frozen=True):
    """Shutdown notice, from the host or synthesised from an OS signal."""

    event_type: Literal["SHUTDOWN"] = Field(default="SHUTDOWN", alias="eventType")
    shutdown_reason: str | None = Field(default=None, alias="shutdownReason")
    deadline_ms: int | None = Field(default=None, alias="deadlineMs")
    signal: str | None = None

    model_config = {"populate_by_name": True}


LifecycleEvent = InvokeEvent | ShutdownEvent


def parse_event(payload: Mapping[str, Any]) -> LifecycleEvent:
    """Build the event model matching the payload's ``eventType`` tag.

    Raises:
        ValueError: If the tag is missing or unknown, or the payload is malformed.
    """
    event_type = payload.get("eventType")
    if event_type == Phase.INVOKE.value:
        return InvokeEvent.model_validate(payload)
    if event_type == Phase.SHUTDOWN.value:
        return ShutdownEvent.model_validate(payload)
    msg = f"Unknown event type: {event_type!r}"
    raise ValueError(msg)
