from lambda_hooks.client import ExtensionClient
from lambda_hooks.controller import LambdaHooks
from lambda_hooks.errors import ErrorCode, LambdaHookError
from lambda_hooks.logging_utils import (
    RequestContextFilter,
    bind_request_id,
    configure_logging,
    get_current_request_id,
    install_request_log_filter,
)
from lambda_hooks.models import (
    ControllerState,
    ExtensionType,
    HookEntry,
    InitLoad,
    InvokeEvent,
    LifecycleEvent,
    Phase,
    RegistrationResult,
    ShutdownEvent,
    Tracing,
    parse_event,
)
from lambda_hooks.registry import HookRegistry
from lambda_hooks.settings import Settings, load_settings
from lambda_hooks.signals import install_signal_handlers, run_extension, serve

__all__ = [
    "ControllerState",
    "ErrorCode",
    "ExtensionClient",
    "ExtensionType",
    "HookEntry",
    "HookRegistry",
    "InitLoad",
    "InvokeEvent",
    "LambdaHookError",
    "LambdaHooks",
    "LifecycleEvent",
    "Phase",
    "RegistrationResult",
    "RequestContextFilter",
    "Settings",
    "ShutdownEvent",
    "Tracing",
    "bind_request_id",
    "configure_logging",
    "get_current_request_id",
    "install_request_log_filter",
    "install_signal_handlers",
    "load_settings",
    "parse_event",
    "run_extension",
    "serve",
]
