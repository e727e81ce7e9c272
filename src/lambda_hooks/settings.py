"""Pydantic models for extension settings."""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel

from lambda_hooks.models import ExtensionType, InitLoad


class Settings(BaseModel, frozen=True):
    """Runtime configuration loaded from environment variables."""

    runtime_api: str
    extension_name: str
    extension_type: ExtensionType = ExtensionType.EXTERNAL
    init_load: InitLoad = InitLoad.BEFORE
    include_account_id: bool = False
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Load settings from environment variables with defaults."""
    load_dotenv()

    runtime_api = os.getenv("AWS_LAMBDA_RUNTIME_API")
    if not runtime_api:
        msg = (
            "AWS_LAMBDA_RUNTIME_API environment variable is required. "
            "It is set by the Lambda execution environment."
        )
        raise ValueError(msg)

    extension_name = os.getenv("LAMBDA_HOOKS_EXTENSION_NAME")
    if not extension_name:
        msg = (
            "LAMBDA_HOOKS_EXTENSION_NAME environment variable is required. "
            "For external extensions it must match the executable's file name."
        )
        raise ValueError(msg)

    return Settings(
        runtime_api=runtime_api,
        extension_name=extension_name,
        extension_type=os.getenv("LAMBDA_HOOKS_EXTENSION_TYPE", "external").lower(),
        init_load=os.getenv("LAMBDA_HOOKS_INIT_LOAD", "before").lower(),
        include_account_id=os.getenv("LAMBDA_HOOKS_INCLUDE_ACCOUNT_ID", "false").lower()
        == "true",
        log_level=os.getenv("LAMBDA_HOOKS_LOG_LEVEL", "INFO").upper(),
    )
