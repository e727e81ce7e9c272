from __future__ import annotations

import asyncio
from typing import Any

import pytest
from lambda_hooks.errors import ErrorCode, LambdaHookError
from lambda_hooks.models import RegistrationResult


@pytest.fixture(autouse=True)
def _set_required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AWS_LAMBDA_RUNTIME_API", "127.0.0.1:9001")
    monkeypatch.setenv("LAMBDA_HOOKS_EXTENSION_NAME", "test-extension")
    for name in (
        "LAMBDA_HOOKS_EXTENSION_TYPE",
        "LAMBDA_HOOKS_INIT_LOAD",
        "LAMBDA_HOOKS_INCLUDE_ACCOUNT_ID",
        "LAMBDA_HOOKS_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


class FakeExtensionClient:
    """Scripted stand-in for ExtensionClient.

    ``next_event`` returns (or raises) the scripted items in order, then
    blocks like an idle long-poll until cancelled.
    """

    def __init__(
        self,
        events: list[Any] | None = None,
        *,
        register_error: Exception | None = None,
        report_error: Exception | None = None,
        extension_id: str = "ext-123",
    ) -> None:
        self.events = list(events or [])
        self.register_error = register_error
        self.report_error = report_error
        self.extension_id = extension_id
        self.calls: list[str] = []
        self.registered_events: list[str] | None = None
        self.init_errors: list[BaseException] = []
        self.exit_errors: list[BaseException] = []
        self.idle = asyncio.Event()
        self.closed = False

    async def register(self, events: list[str]) -> RegistrationResult:
        self.calls.append("register")
        self.registered_events = events
        if self.register_error is not None:
            raise self.register_error
        return RegistrationResult(
            extension_id=self.extension_id,
            function_name="my-function",
            function_version="$LATEST",
            handler="index.handler",
        )

    async def next_event(self, extension_id: str | None) -> Any:
        self.calls.append("next_event")
        if not extension_id:
            raise LambdaHookError(ErrorCode.INVALID_STATE, "no id", is_fatal=True)
        if self.events:
            item = self.events.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        self.idle.set()
        await asyncio.get_running_loop().create_future()
        return None

    async def report_init_error(self, extension_id: str | None, error: BaseException) -> None:
        self.calls.append("report_init_error")
        if not extension_id:
            raise LambdaHookError(ErrorCode.INVALID_STATE, "not registered")
        if self.report_error is not None:
            raise self.report_error
        self.init_errors.append(error)

    async def report_exit_error(self, extension_id: str | None, error: BaseException) -> None:
        self.calls.append("report_exit_error")
        if not extension_id:
            raise LambdaHookError(ErrorCode.INVALID_STATE, "not registered")
        if self.report_error is not None:
            raise self.report_error
        self.exit_errors.append(error)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client_factory():
    return FakeExtensionClient
