"""
Chat session adapter.

Holds the client-side conversation for one chat window and submits new
messages through an invoker. Works with the local ``UsageGatedInvoker``
and with the HTTP ``RemoteInvoker`` alike.
"""

import threading
from typing import List, Optional

from .errors import InvocationFailure
from .invoker import InvocationResult
from .messages import Message


class ChatSession:
    """Conversation state plus an in-flight guard against double submission."""

    def __init__(self, invoker):
        self.invoker = invoker
        self._messages: List[Message] = []
        self._in_flight = threading.Lock()
        self.last_failure: Optional[InvocationFailure] = None

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def is_loading(self) -> bool:
        return self._in_flight.locked()

    def send(self, content: str) -> Optional[InvocationResult]:
        """Submit ``content`` as the next user message.

        Blank input and submissions made while another one is still in
        flight are ignored and return None. On failure the conversation is
        left as it was before the submission.
        """
        if not content or not content.strip():
            return None
        if not self._in_flight.acquire(blocking=False):
            return None

        try:
            self.last_failure = None
            result = self.invoker.invoke(content, self.messages)
            if result.ok:
                self._messages = list(result.conversation)
            else:
                self.last_failure = result.failure
            return result
        finally:
            self._in_flight.release()

    def clear(self) -> None:
        self._messages = []
        self.last_failure = None
