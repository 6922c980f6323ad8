"""
Interaction log.

Best-effort, append-only audit trail of AI invocation attempts.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ai_token_gate.storage.db import DEFAULT_DB_PATH
from ai_token_gate.storage.models import InteractionLogEntry
from ai_token_gate.storage.repository import insert_interaction_log
from ai_token_gate.telemetry import INTERACTION_LOG_WRITE, FailureCounter, failure_counter

from .errors import LoggingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordResult:
    """Outcome of a log write; failures are reported, never raised."""
    ok: bool
    entry_id: Optional[int] = None
    error: Optional[LoggingError] = None


class InteractionLog:
    """Writes interaction log entries to SQLite."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, counter: Optional[FailureCounter] = None):
        self.db_path = db_path
        self.counter = counter or failure_counter

    def record(
        self,
        user_id: str,
        flow_name: str,
        status: str,
        input: Dict[str, Any],
        output: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None
    ) -> RecordResult:
        """Append one immutable entry.

        A failed write is logged as a warning and counted under
        ``interaction_log_write``; it is returned, not raised.
        """
        metadata = dict(metadata or {})
        metadata.setdefault("timestamp", datetime.now().isoformat())
        entry = InteractionLogEntry(
            user_id=user_id,
            flow_name=flow_name,
            status=status,
            input=input,
            output=output,
            metadata=metadata
        )

        try:
            entry_id = self._write(entry)
        except LoggingError as e:
            return self._failed(entry, e)
        except Exception as e:
            return self._failed(entry, LoggingError(str(e)))

        return RecordResult(ok=True, entry_id=entry_id)

    def _write(self, entry: InteractionLogEntry) -> int:
        return insert_interaction_log(entry, self.db_path)

    def _failed(self, entry: InteractionLogEntry, error: LoggingError) -> RecordResult:
        self.counter.increment(INTERACTION_LOG_WRITE)
        logger.warning(
            "Failed to record %s interaction for user %s (flow=%s): %s",
            entry.status, entry.user_id, entry.flow_name, error
        )
        return RecordResult(ok=False, error=error)
