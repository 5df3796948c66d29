"""
carscout utilities module.
"""

from carscout.utils.backoff import ZERO_DELAY, BackoffPolicy
from carscout.utils.config import Settings, get_project_root, get_settings, load_settings
from carscout.utils.logging import (
    LogContext,
    bind_context,
    configure_logging,
    get_logger,
    unbind_context,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "load_settings",
    "get_project_root",
    # Logging
    "get_logger",
    "configure_logging",
    "bind_context",
    "unbind_context",
    "LogContext",
    # Backoff
    "BackoffPolicy",
    "ZERO_DELAY",
]
