"""
Usage-gated invoker.

Orchestrates one invocation attempt: identity check, token deduction,
provider call and interaction log write.

Sequence:
1. Identity check - no identity, no charge, no log
2. Deduction - insufficient balance rejects without a log entry
3. Generation - only after a successful deduction
4. Log - exactly one entry for every attempt that reached the ledger
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ai_token_gate.storage.models import STATUS_ERROR, STATUS_SUCCESS
from ai_token_gate.telemetry import (
    INTERACTION_LOG_WRITE,
    LEDGER_UNAVAILABLE,
    PROVIDER_ERROR,
    FailureCounter,
    failure_counter,
)

from .errors import (
    InvocationErrorKind,
    InvocationFailure,
    LedgerUnavailableError,
    NoCandidateError,
    ProviderError,
)
from .gateway import GenerationParams, ModelGateway
from .identity import Identity, IdentityContext
from .interaction_log import InteractionLog, RecordResult
from .ledger import TokenLedger
from .messages import Message
from .policy import ChargeBeforeGenerate, ChargePolicy
from .pricing import DEFAULT_PRICING, GEMINI_CHAT, FlowPricingTable

logger = logging.getLogger(__name__)

# Shown when the provider answers successfully but without any candidate text
NO_RESPONSE_FALLBACK = "No response generated."


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one invocation attempt.

    ``conversation`` always ends with the submitted user message and, on
    success, the model reply after it.
    """
    conversation: List[Message]
    reply: Optional[Message] = None
    failure: Optional[InvocationFailure] = None
    tokens_charged: int = 0
    log_recorded: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.failure is None


class UsageGatedInvoker:
    """Runs AI requests behind a per-user token balance.

    Every collaborator is injected so the invoker can run against fakes.
    """

    def __init__(
        self,
        identity: IdentityContext,
        ledger: TokenLedger,
        gateway: ModelGateway,
        interaction_log: InteractionLog,
        flow_name: str = GEMINI_CHAT,
        policy: Optional[ChargePolicy] = None,
        params: Optional[GenerationParams] = None,
        pricing: FlowPricingTable = DEFAULT_PRICING,
        counter: Optional[FailureCounter] = None
    ):
        """Initialize the invoker.

        Args:
            identity: Source of the current authenticated user
            ledger: Token balances
            gateway: Provider gateway
            interaction_log: Audit log writer
            flow_name: Feature tag used for pricing and log segmentation
            policy: What to do with spent tokens when generation fails
            params: Default generation settings
            pricing: Token cost per flow
            counter: Operational failure counter

        Raises:
            ValueError: If flow_name has no price
        """
        self.identity = identity
        self.ledger = ledger
        self.gateway = gateway
        self.interaction_log = interaction_log
        self.flow_name = flow_name
        self.policy = policy or ChargeBeforeGenerate()
        self.params = params or GenerationParams()
        self.cost = pricing.cost_for(flow_name)
        self.counter = counter or failure_counter

    def invoke(
        self,
        raw_message: str,
        prior_conversation: Optional[List[Message]] = None,
        params: Optional[GenerationParams] = None
    ) -> InvocationResult:
        """Send a new user message and return the model reply or a typed failure.

        Args:
            raw_message: Text the user submitted
            prior_conversation: Earlier messages, oldest first
            params: Generation settings for this call; defaults to the invoker's

        Returns:
            InvocationResult carrying either the reply or an InvocationFailure

        Raises:
            ValueError: If raw_message is empty or whitespace only
        """
        if not raw_message or not raw_message.strip():
            raise ValueError("message is required and cannot be empty")

        identity = self.identity.current_identity()
        conversation = list(prior_conversation or []) + [Message.user(raw_message)]

        if identity is None:
            return InvocationResult(
                conversation=conversation,
                failure=InvocationFailure.of(InvocationErrorKind.AUTHENTICATION_REQUIRED)
            )

        try:
            deducted = self.ledger.deduct(identity.user_id, self.cost, self.flow_name)
        except LedgerUnavailableError as e:
            self.counter.increment(LEDGER_UNAVAILABLE)
            logger.error("Token ledger unavailable for user %s: %s", identity.user_id, e)
            metadata = self._metadata(tokens_charged=0)
            record = self._record(identity, STATUS_ERROR, raw_message, {"error": str(e)}, metadata)
            return InvocationResult(
                conversation=conversation,
                failure=InvocationFailure.of(InvocationErrorKind.LEDGER_UNAVAILABLE, details=str(e)),
                log_recorded=record.ok,
                metadata=metadata
            )

        if not deducted:
            return InvocationResult(
                conversation=conversation,
                failure=InvocationFailure.of(InvocationErrorKind.INSUFFICIENT_TOKENS)
            )

        params = params or self.params
        finish_reason = None
        try:
            generation = self.gateway.generate(conversation, params)
            text = generation.text
            finish_reason = generation.finish_reason
        except NoCandidateError as e:
            logger.warning("Provider returned no candidates for user %s: %s", identity.user_id, e)
            text = NO_RESPONSE_FALLBACK
        except ProviderError as e:
            return self._generation_failed(identity, raw_message, conversation, str(e))
        except Exception as e:
            # Any other gateway error still counts as a failed generation
            logger.exception("Gateway raised %s for user %s", type(e).__name__, identity.user_id)
            return self._generation_failed(
                identity, raw_message, conversation, f"{type(e).__name__}: {e}"
            )

        metadata = self._metadata(tokens_charged=self.cost, finish_reason=finish_reason)
        record = self._record(identity, STATUS_SUCCESS, raw_message, {"response": text}, metadata)
        reply = Message.model(text)
        return InvocationResult(
            conversation=conversation + [reply],
            reply=reply,
            tokens_charged=self.cost,
            log_recorded=record.ok,
            metadata=metadata
        )

    def _generation_failed(
        self,
        identity: Identity,
        raw_message: str,
        conversation: List[Message],
        details: str
    ) -> InvocationResult:
        """Apply the charge policy, log the error and build the failure result."""
        self.counter.increment(PROVIDER_ERROR)
        logger.error("Generation failed for user %s (flow=%s): %s", identity.user_id, self.flow_name, details)
        refunded = self.policy.on_generation_failed(self.ledger, identity.user_id, self.cost, self.flow_name)
        charged = 0 if refunded else self.cost
        metadata = self._metadata(tokens_charged=charged, refunded=refunded)
        record = self._record(identity, STATUS_ERROR, raw_message, {"error": details}, metadata)
        return InvocationResult(
            conversation=conversation,
            failure=InvocationFailure.of(InvocationErrorKind.GENERATION_FAILED, details=details),
            tokens_charged=charged,
            log_recorded=record.ok,
            metadata=metadata
        )

    def _metadata(self, **extra: Any) -> Dict[str, Any]:
        metadata = {
            "model": getattr(self.gateway, "model", "") or "",
            "timestamp": datetime.now().isoformat(),
            "charge_policy": self.policy.name,
        }
        metadata.update(extra)
        return metadata

    def _record(
        self,
        identity: Identity,
        status: str,
        raw_message: str,
        output: Dict[str, Any],
        metadata: Dict[str, Any]
    ) -> RecordResult:
        try:
            return self.interaction_log.record(
                user_id=identity.user_id,
                flow_name=self.flow_name,
                status=status,
                input={"message": raw_message},
                output=output,
                metadata=metadata
            )
        except Exception as e:
            # Log writers report failures in RecordResult; this covers ones that raise anyway
            self.counter.increment(INTERACTION_LOG_WRITE)
            logger.warning("Interaction log writer raised for user %s: %s", identity.user_id, e)
            return RecordResult(ok=False)
