"""
Error taxonomy for token-gated invocations.

Boundary exceptions are raised by the ledger and the model gateway and
translated by the invoker into one of the closed ``InvocationErrorKind``
values before anything reaches a caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Remediation(Enum):
    """What the user can do about a failed invocation."""
    LOGIN = "login"
    PURCHASE_TOKENS = "purchase_tokens"
    RETRY = "retry"


class InvocationErrorKind(Enum):
    """Every way an invocation can fail, as seen by the caller."""
    AUTHENTICATION_REQUIRED = "authentication_required"
    INSUFFICIENT_TOKENS = "insufficient_tokens"
    LEDGER_UNAVAILABLE = "ledger_unavailable"
    GENERATION_FAILED = "generation_failed"

    @property
    def remediation(self) -> Remediation:
        return _REMEDIATIONS[self]

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES[self]


_REMEDIATIONS = {
    InvocationErrorKind.AUTHENTICATION_REQUIRED: Remediation.LOGIN,
    InvocationErrorKind.INSUFFICIENT_TOKENS: Remediation.PURCHASE_TOKENS,
    InvocationErrorKind.LEDGER_UNAVAILABLE: Remediation.RETRY,
    InvocationErrorKind.GENERATION_FAILED: Remediation.RETRY,
}

_USER_MESSAGES = {
    InvocationErrorKind.AUTHENTICATION_REQUIRED: "Nicht autorisiert. Bitte melde dich an.",
    InvocationErrorKind.INSUFFICIENT_TOKENS: (
        "Nicht genügend Tokens verfügbar. Bitte lade dein Token-Guthaben auf."
    ),
    InvocationErrorKind.LEDGER_UNAVAILABLE: (
        "Der Dienst ist vorübergehend nicht erreichbar. Bitte versuche es später erneut."
    ),
    InvocationErrorKind.GENERATION_FAILED: (
        "Fehler bei der Verarbeitung durch die KI. Bitte versuche es erneut."
    ),
}


@dataclass(frozen=True)
class InvocationFailure:
    """Caller-facing description of a failed invocation.

    ``message`` is safe to show to end users; ``details`` carries the
    technical cause for diagnostics and is never rendered as the main text.
    """
    kind: InvocationErrorKind
    message: str
    details: Optional[str] = None

    @classmethod
    def of(cls, kind: InvocationErrorKind, details: Optional[str] = None) -> "InvocationFailure":
        return cls(kind=kind, message=kind.user_message, details=details)

    @property
    def remediation(self) -> Remediation:
        return self.kind.remediation


class LedgerUnavailableError(Exception):
    """Raised when the token store cannot be reached.

    Distinct from an insufficient balance, which is a normal ``False``
    result of a deduction.
    """


class ProviderError(Exception):
    """Raised when the generative-AI provider does not produce a usable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderTimeoutError(ProviderError):
    """Raised when the provider call exceeds its configured timeout."""


class NoCandidateError(ProviderError):
    """Raised when the provider answered successfully but returned no candidate text."""


class LoggingError(Exception):
    """Raised by interaction log writers; never propagated past the invoker."""
