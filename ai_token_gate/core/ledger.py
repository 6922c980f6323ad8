"""
Token ledger.

Holds each user's consumable AI-usage balance. The balance is only ever
changed through the conditional updates below; nothing reads a balance
and writes it back.
"""

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from ai_token_gate.storage.db import DEFAULT_DB_PATH, get_connection
from ai_token_gate.storage.models import (
    TRANSACTION_CREDIT,
    TRANSACTION_DEDUCT,
    TRANSACTION_REFUND,
)

from .errors import LedgerUnavailableError

logger = logging.getLogger(__name__)


def _require_positive(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValueError("amount must be a positive integer")


class TokenLedger:
    """SQLite-backed token balances with atomic conditional deduction."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def deduct(self, user_id: str, amount: int, flow_name: str) -> bool:
        """Deduct ``amount`` tokens if the balance covers it.

        The check and the decrement happen in one ``UPDATE ... WHERE
        token_balance >= ?`` statement, so two concurrent deductions for
        the last token can never both succeed. A ``deduct`` transaction is
        appended in the same database transaction.

        Args:
            user_id: Identity whose balance is charged
            amount: Positive number of tokens
            flow_name: Feature that triggered the charge

        Returns:
            True if the tokens were deducted, False if the balance was too low
            or the user has no balance

        Raises:
            ValueError: If amount is not a positive integer
            LedgerUnavailableError: If the store cannot be reached
        """
        _require_positive(amount)

        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise LedgerUnavailableError(f"token store unreachable: {e}") from e

        try:
            conn.execute("BEGIN IMMEDIATE")
            cursor = conn.execute("""
                UPDATE user_tokens
                SET token_balance = token_balance - ?
                WHERE user_id = ? AND token_balance >= ?
            """, (amount, user_id, amount))

            if cursor.rowcount != 1:
                conn.rollback()
                logger.info(
                    "Insufficient tokens for user %s (flow=%s, amount=%d)",
                    user_id, flow_name, amount
                )
                return False

            self._append_transaction(conn, user_id, -amount, TRANSACTION_DEDUCT, flow_name)
            conn.commit()
            return True
        except sqlite3.Error as e:
            conn.rollback()
            raise LedgerUnavailableError(f"token deduction failed: {e}") from e
        finally:
            conn.close()

    def credit(
        self,
        user_id: str,
        amount: int,
        flow_name: Optional[str] = None,
        kind: str = TRANSACTION_CREDIT
    ) -> int:
        """Add tokens to a balance, creating it when missing.

        Used for purchases and grants and, with ``kind="refund"``, for
        returning tokens spent on a failed generation.

        Returns:
            The balance after the credit

        Raises:
            ValueError: If amount is not positive or kind is unknown
            LedgerUnavailableError: If the store cannot be reached
        """
        _require_positive(amount)
        if kind not in (TRANSACTION_CREDIT, TRANSACTION_REFUND):
            raise ValueError(f"credit kind must be '{TRANSACTION_CREDIT}' or '{TRANSACTION_REFUND}'")

        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise LedgerUnavailableError(f"token store unreachable: {e}") from e

        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("""
                INSERT INTO user_tokens (user_id, token_balance) VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET token_balance = token_balance + excluded.token_balance
            """, (user_id, amount))
            self._append_transaction(conn, user_id, amount, kind, flow_name)
            conn.commit()

            row = conn.execute(
                "SELECT token_balance FROM user_tokens WHERE user_id = ?", (user_id,)
            ).fetchone()
            return row[0]
        except sqlite3.Error as e:
            conn.rollback()
            raise LedgerUnavailableError(f"token credit failed: {e}") from e
        finally:
            conn.close()

    def get_balance(self, user_id: str) -> int:
        """Current balance of a user; 0 when the user has none."""
        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise LedgerUnavailableError(f"token store unreachable: {e}") from e

        try:
            row = conn.execute(
                "SELECT token_balance FROM user_tokens WHERE user_id = ?", (user_id,)
            ).fetchone()
            return row[0] if row else 0
        except sqlite3.Error as e:
            raise LedgerUnavailableError(f"balance lookup failed: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _append_transaction(
        conn: sqlite3.Connection,
        user_id: str,
        amount: int,
        kind: str,
        flow_name: Optional[str]
    ) -> None:
        conn.execute("""
            INSERT INTO token_transactions (timestamp, user_id, amount, kind, flow_name)
            VALUES (?, ?, ?, ?, ?)
        """, (datetime.now().isoformat(), user_id, amount, kind, flow_name))
