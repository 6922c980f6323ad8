"""
Shared fixtures for AI Token Gate tests.
"""

import threading

import pytest

from ai_token_gate.core.errors import NoCandidateError
from ai_token_gate.core.gateway import GenerationResult, ModelGateway
from ai_token_gate.core.interaction_log import InteractionLog
from ai_token_gate.core.ledger import TokenLedger
from ai_token_gate.storage.repository import initialize_schema
from ai_token_gate.telemetry import FailureCounter


class FakeGateway(ModelGateway):
    """Gateway double that records every conversation it is asked to continue."""

    model = "fake-model"

    def __init__(self, reply: str = "Hier sind drei Tipps..."):
        self.reply = reply
        self.error = None
        self.calls = []
        self.params = []
        self._lock = threading.Lock()

    def generate(self, conversation, params):
        with self._lock:
            self.calls.append(list(conversation))
            self.params.append(params)
        if self.error is not None:
            raise self.error
        return GenerationResult(text=self.reply, model=self.model, finish_reason="STOP")

    def fail_with(self, error: Exception) -> None:
        self.error = error

    def return_no_candidates(self) -> None:
        self.error = NoCandidateError("provider returned no candidates")


@pytest.fixture
def db_path(tmp_path):
    """Initialized SQLite database in a temporary directory."""
    path = str(tmp_path / "test.db")
    initialize_schema(path)
    return path


@pytest.fixture
def ledger(db_path):
    return TokenLedger(db_path)


@pytest.fixture
def counter():
    return FailureCounter()


@pytest.fixture
def interaction_log(db_path, counter):
    return InteractionLog(db_path, counter=counter)


@pytest.fixture
def gateway():
    return FakeGateway()
