"""
Charge policies.

Decide what happens to the deducted tokens when generation fails after
the charge has already been taken.
"""

import logging

from ai_token_gate.storage.models import TRANSACTION_REFUND

from .errors import LedgerUnavailableError
from .ledger import TokenLedger

logger = logging.getLogger(__name__)


class ChargePolicy:
    """Base charge policy."""

    name = ""

    def on_generation_failed(self, ledger: TokenLedger, user_id: str, amount: int, flow_name: str) -> bool:
        """Handle a failed generation after a successful deduction.

        Returns:
            True if the tokens were returned to the user
        """
        raise NotImplementedError


class ChargeBeforeGenerate(ChargePolicy):
    """Tokens are spent once deducted, whether or not the provider delivers.

    Prevents free retries from draining the provider quota at the cost of
    charging for calls that fail downstream.
    """

    name = "charge_before_generate"

    def on_generation_failed(self, ledger: TokenLedger, user_id: str, amount: int, flow_name: str) -> bool:
        return False


class ChargeOnSuccess(ChargePolicy):
    """Tokens are refunded when generation fails."""

    name = "charge_on_success"

    def on_generation_failed(self, ledger: TokenLedger, user_id: str, amount: int, flow_name: str) -> bool:
        try:
            ledger.credit(user_id, amount, flow_name=flow_name, kind=TRANSACTION_REFUND)
        except LedgerUnavailableError as e:
            logger.error("Refund of %d tokens for user %s failed: %s", amount, user_id, e)
            return False
        return True


CHARGE_POLICIES = {
    ChargeBeforeGenerate.name: ChargeBeforeGenerate,
    ChargeOnSuccess.name: ChargeOnSuccess,
}


def get_charge_policy(name: str) -> ChargePolicy:
    """Instantiate a charge policy by its config name.

    Raises:
        ValueError: If the name is unknown
    """
    if name not in CHARGE_POLICIES:
        raise ValueError(f"charge_policy must be one of: {sorted(CHARGE_POLICIES)}")
    return CHARGE_POLICIES[name]()
