"""
Logging setup for the checkout service.

Every module logs through ``get_logger(__name__)``. Identifiers and text
that arrive from payers or gateways (merchant order ids, webhook fields,
provider error bodies) go through the sanitizers before they reach a log
line.
"""

import logging
import os
import sys
from functools import cache

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"

# Request-level chatter from the HTTP stack behind Supabase and the gateways
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest")

_CONTROL_CHARS = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t", "\x00": ""})


def configure_logging(level: str | None = None) -> None:
    """Attach a stdout handler to the root logger unless one is already there."""
    root = logging.getLogger()
    if root.handlers:
        return

    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # Hosted log collectors stamp their own time
    production = os.environ.get("ENVIRONMENT", "").lower() == "production"
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE if production else LOG_FORMAT))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


configure_logging()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def sanitize_id_for_logging(id_value: str | None, max_length: int = 24) -> str:
    """
    Make an externally supplied identifier safe to log.

    Control characters are escaped so a forged id cannot start a new log
    line (CWE-117). The default length keeps ``pi_`` ids and the front of
    ``txn_`` merchant order ids whole enough to grep for.
    """
    if not id_value:
        return "N/A"
    return str(id_value).translate(_CONTROL_CHARS)[:max_length]


def sanitize_string_for_logging(value: str | None, max_length: int = 50) -> str:
    """Like ``sanitize_id_for_logging`` for free text; marks truncation with '...'."""
    if not value:
        return "N/A"
    safe_value = str(value).translate(_CONTROL_CHARS)
    if len(safe_value) <= max_length:
        return safe_value
    return safe_value[:max_length] + "..."


__all__ = [
    "LOG_FORMAT",
    "LOG_FORMAT_SIMPLE",
    "configure_logging",
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]
