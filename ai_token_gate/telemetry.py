"""
Logging configuration and operational failure counters.

Failures that must not reach the caller (for example a failed interaction
log write) are emitted as warnings and counted here, so they are visible to
operators without changing the result returned to the user.
"""

import logging
import logging.config
import os
import threading
from collections import Counter
from typing import Dict, Optional

LOG_LEVEL_ENV = "AI_TOKEN_GATE_LOG_LEVEL"

INTERACTION_LOG_WRITE = "interaction_log_write"
LEDGER_UNAVAILABLE = "ledger_unavailable"
PROVIDER_ERROR = "provider_error"


class FailureCounter:
    """Thread-safe counter of operational failures by category."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Counter = Counter()

    def increment(self, category: str) -> None:
        with self._lock:
            self._counts[category] += 1

    def get(self, category: str) -> int:
        with self._lock:
            return self._counts[category]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()


# Process-wide counter used when no explicit counter is injected
failure_counter = FailureCounter()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a rich console handler on the ``ai_token_gate`` logger.

    Args:
        level: Log level name; defaults to $AI_TOKEN_GATE_LOG_LEVEL or INFO
    """
    level = (level or os.getenv(LOG_LEVEL_ENV, "INFO")).upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "rich": {"format": "%(name)s - %(message)s", "datefmt": "[%X]"},
        },
        "handlers": {
            "console": {
                "class": "rich.logging.RichHandler",
                "formatter": "rich",
                "rich_tracebacks": True,
            },
        },
        "loggers": {
            "ai_token_gate": {"level": level, "handlers": ["console"]},
        },
    })
