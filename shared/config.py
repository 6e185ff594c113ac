"""
Runtime configuration.

Values come from the environment (optionally a local ``.env`` file). The
timeout and rate-limit numbers are defaults, not semantics: tests and hosts
override them freely.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

TRUTHY = ("1", "true", "yes", "on")


class RuntimeSettings(BaseModel):
    """Tunables for one InvokerRuntime instance."""
    model_config = {"frozen": True}

    debug: bool = Field(default=False, description="Surface warning-severity diagnostics")
    command_timeout_seconds: float = Field(default=30.0, gt=0.0)
    rate_limit_max_executions: int = Field(default=100, ge=1)
    rate_limit_window_seconds: float = Field(default=1.0, gt=0.0)
    max_chain_depth: int = Field(default=10, ge=1)
    log_level: str = Field(default="INFO")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY


def _env_number(name: str, default: float, cast: type) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid value for %s: %r", name, raw)
        return default


def load_settings() -> RuntimeSettings:
    """Build settings from environment variables."""
    load_dotenv(override=False)
    return RuntimeSettings(
        debug=_env_bool("INVOKER_DEBUG", False),
        command_timeout_seconds=_env_number("INVOKER_COMMAND_TIMEOUT_SECONDS", 30.0, float),
        rate_limit_max_executions=_env_number("INVOKER_RATE_LIMIT_MAX_EXECUTIONS", 100, int),
        rate_limit_window_seconds=_env_number("INVOKER_RATE_LIMIT_WINDOW_SECONDS", 1.0, float),
        max_chain_depth=_env_number("INVOKER_MAX_CHAIN_DEPTH", 10, int),
        log_level=os.getenv("INVOKER_LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
