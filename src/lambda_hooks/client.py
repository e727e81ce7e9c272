"""HTTP client for the Lambda Extensions API.

Translates the four host operations (register, next event, init error,
exit error) into HTTP exchanges. The client holds no lifecycle state: the
extension identifier returned by ``register`` is passed back explicitly on
every later call.
"""

from __future__ import annotations

import json
import logging
import traceback
from typing import Any

import httpx

from lambda_hooks.errors import ErrorCode, LambdaHookError
from lambda_hooks.models import LifecycleEvent, RegistrationResult, parse_event

logger = logging.getLogger(__name__)

API_VERSION = "2020-01-01"
UNKNOWN_ERROR_TYPE = "Extension.UnknownReason"

NAME_HEADER = "Lambda-Extension-Name"
IDENTIFIER_HEADER = "Lambda-Extension-Identifier"
ACCEPT_FEATURE_HEADER = "Lambda-Extension-Accept-Feature"
ERROR_TYPE_HEADER = "Lambda-Extension-Function-Error-Type"


class ExtensionClient:
    """Minimal async client for the Extensions API."""

    def __init__(
        self,
        extension_name: str,
        runtime_api: str,
        *,
        include_account_id: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            extension_name: Name announced to the host on registration.
            runtime_api: Host address (``host:port``) of the runtime API.
            include_account_id: Ask the host to include the account id.
            client: Optional pre-built ``httpx.AsyncClient`` (used in tests).
        """
        self._extension_name = extension_name
        self._include_account_id = include_account_id
        self._base_url = f"http://{runtime_api}/{API_VERSION}/extension/"
        self._client = client or httpx.AsyncClient(timeout=30.0)

    @property
    def base_url(self) -> str:
        """Return the extension API base URL."""
        return self._base_url

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def register(self, events: list[str]) -> RegistrationResult:
        """Register the extension for the given event names."""
        headers = {NAME_HEADER: self._extension_name}
        if self._include_account_id:
            headers[ACCEPT_FEATURE_HEADER] = "accountId"

        response = await self._request("POST", "register", headers, {"events": events})

        extension_id = response.headers.get(IDENTIFIER_HEADER)
        if not extension_id:
            msg = "Extension ID not received in registration response"
            raise LambdaHookError(ErrorCode.INVALID_RESPONSE, msg)

        body = _json_body(response)
        if not isinstance(body, dict):
            body = {}
        logger.info("Registered extension %s for events %s", self._extension_name, events)
        return RegistrationResult(
            extension_id=extension_id,
            functionName=body.get("functionName") or "",
            functionVersion=body.get("functionVersion") or "",
            handler=body.get("handler") or "",
            accountId=body.get("accountId"),
        )

    async def next_event(self, extension_id: str | None) -> LifecycleEvent:
        """Block until the host delivers the next lifecycle event."""
        if not extension_id:
            msg = "Extension ID is required for next event"
            raise LambdaHookError(ErrorCode.INVALID_STATE, msg, is_fatal=True)

        response = await self._request(
            "GET",
            "event/next",
            {IDENTIFIER_HEADER: extension_id},
            long_poll=True,
        )
        try:
            body = response.json()
            return parse_event(body)
        except (ValueError, AttributeError) as exc:
            msg = "Malformed event received from the Extensions API"
            raise LambdaHookError(ErrorCode.INVALID_RESPONSE, msg, exc) from exc

    async def report_init_error(self, extension_id: str | None, error: BaseException) -> None:
        """Tell the host that initialization failed."""
        await self._report_error("init/error", extension_id, error)

    async def report_exit_error(self, extension_id: str | None, error: BaseException) -> None:
        """Tell the host that the extension is exiting because of an error."""
        await self._report_error("exit/error", extension_id, error)

    async def _report_error(
        self, path: str, extension_id: str | None, error: BaseException
    ) -> None:
        if not extension_id:
            msg = f"Cannot report {path.replace('/', ' ')}: Extension not registered"
            raise LambdaHookError(ErrorCode.INVALID_STATE, msg)

        payload = build_error_payload(error)
        await self._request(
            "POST",
            path,
            {
                IDENTIFIER_HEADER: extension_id,
                ERROR_TYPE_HEADER: payload["errorType"],
            },
            payload,
        )
        logger.info("Reported %s to the Extensions API: %s", path, payload["errorType"])

    async def _request(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        payload: dict[str, Any] | None = None,
        *,
        long_poll: bool = False,
    ) -> httpx.Response:
        url = f"{self._base_url}{path}"
        extra: dict[str, Any] = {"timeout": None} if long_poll else {}
        logger.debug("%s %s", method, url)
        try:
            response = await self._client.request(
                method, url, headers=headers, json=payload, **extra
            )
        except httpx.HTTPError as exc:
            msg = "Network error during API request"
            raise LambdaHookError(ErrorCode.NETWORK_ERROR, msg, exc) from exc

        if not response.is_success:
            msg = f"API request failed with status {response.status_code}"
            raise LambdaHookError(
                ErrorCode.API_ERROR,
                msg,
                {"status_code": response.status_code, "body": response.text},
                # Rejected polls stop the event loop.
                is_fatal=long_poll,
            )
        return response


def build_error_payload(error: BaseException) -> dict[str, Any]:
    """Build the body for an init/exit error report."""
    code = getattr(error, "code", None)
    if isinstance(code, ErrorCode):
        error_type = code.value
    else:
        error_type = str(code) if code else UNKNOWN_ERROR_TYPE
    error_message = str(error) or "Unknown error"
    stack_trace = "".join(traceback.format_exception(error)).splitlines()
    return {
        "errorMessage": error_message,
        "errorType": error_type,
        "stackTrace": stack_trace,
    }


def _json_body(response: httpx.Response) -> Any:
    """Decode a JSON body, falling back to raw text."""
    if not response.content:
        return {}
    try:
        return response.json()
    except json.JSONDecodeError:
        return response.text
