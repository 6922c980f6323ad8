"""
Data models for storage layer.

Defines the append-only records kept for audit and billing reconciliation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

TRANSACTION_DEDUCT = "deduct"
TRANSACTION_CREDIT = "credit"
TRANSACTION_REFUND = "refund"


@dataclass(frozen=True)
class InteractionLogEntry:
    """Immutable record of one chargeable AI invocation attempt.

    Exactly one entry is written per attempt that reached the ledger.
    Once written, these records must never be modified.
    """
    user_id: str
    flow_name: str
    status: str
    input: Dict[str, Any]
    output: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None


@dataclass(frozen=True)
class TokenTransaction:
    """Immutable record of a single balance change.

    Deductions carry a negative amount, credits and refunds a positive one.
    """
    timestamp: datetime
    user_id: str
    amount: int
    kind: str
    flow_name: Optional[str] = None
    id: Optional[int] = None
