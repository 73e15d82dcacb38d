"""
ProtoFlow configuration — all environment variables in one place.

Read from environment at import time. Every setting has a default; nothing
is required to run a mockup locally.
"""

from __future__ import annotations

import os


class Settings:
    """Runtime settings from environment variables."""

    # Navigation
    MAX_STACK_SIZE: int = int(os.environ.get("PROTOFLOW_MAX_STACK_SIZE", "50"))

    # Action timing (milliseconds)
    TOAST_DURATION_MS: int = int(os.environ.get("PROTOFLOW_TOAST_DURATION_MS", "2000"))
    DELAY_DURATION_MS: int = int(os.environ.get("PROTOFLOW_DELAY_DURATION_MS", "1000"))

    # Upper bound on chained / watcher-triggered actions within one causal chain
    MAX_ACTION_DEPTH: int = int(os.environ.get("PROTOFLOW_MAX_ACTION_DEPTH", "32"))

    # Transport
    API_BASE_URL: str = os.environ.get("PROTOFLOW_API_BASE_URL", "")
    REQUEST_TIMEOUT: float = float(os.environ.get("PROTOFLOW_REQUEST_TIMEOUT", "10.0"))

    # Logging
    LOG_LEVEL: str = os.environ.get("PROTOFLOW_LOG_LEVEL", "INFO")


# Singleton instance
settings = Settings()
