"""
Remote invoker.

Calls the ``/ai/generate`` endpoint over HTTP and maps its status codes
back onto the invocation error taxonomy, so browser-side code and local
code handle failures the same way.
"""

import logging
from typing import List, Optional

import httpx

from ai_token_gate.core.errors import InvocationErrorKind, InvocationFailure
from ai_token_gate.core.gateway import GenerationParams
from ai_token_gate.core.invoker import NO_RESPONSE_FALLBACK, InvocationResult
from ai_token_gate.core.messages import Message

logger = logging.getLogger(__name__)

_STATUS_KINDS = {
    401: InvocationErrorKind.AUTHENTICATION_REQUIRED,
    403: InvocationErrorKind.INSUFFICIENT_TOKENS,
}


class RemoteInvoker:
    """HTTP client for the token-gated generate endpoint.

    Has the same ``invoke`` contract as ``UsageGatedInvoker``.
    """

    def __init__(
        self,
        base_url: str,
        session_token: Optional[str] = None,
        params: Optional[GenerationParams] = None,
        flow_name: Optional[str] = None,
        client: Optional[httpx.Client] = None
    ):
        """Initialize the remote invoker.

        Args:
            base_url: Root URL of the function endpoint
            session_token: Bearer token of the signed-in user, if any
            params: Generation settings sent with every request
            flow_name: Feature tag; the server default is used when None
            client: Preconfigured httpx client

        Raises:
            ValueError: If base_url is missing/empty
        """
        if not base_url or not base_url.strip():
            raise ValueError("base_url is required and cannot be empty")

        self.base_url = base_url.rstrip("/")
        self.session_token = session_token
        self.params = params or GenerationParams()
        self.flow_name = flow_name
        self.client = client or httpx.Client()

    def invoke(
        self,
        raw_message: str,
        prior_conversation: Optional[List[Message]] = None,
        params: Optional[GenerationParams] = None
    ) -> InvocationResult:
        """Send a new user message to the endpoint.

        Raises:
            ValueError: If raw_message is empty or whitespace only
        """
        if not raw_message or not raw_message.strip():
            raise ValueError("message is required and cannot be empty")

        params = params or self.params
        conversation = list(prior_conversation or []) + [Message.user(raw_message)]

        body = {
            "messages": [message.to_dict() for message in conversation],
            "temperature": params.temperature,
            "maxTokens": params.max_output_tokens,
        }
        if self.flow_name:
            body["flowName"] = self.flow_name

        headers = {}
        if self.session_token:
            headers["Authorization"] = f"Bearer {self.session_token}"

        try:
            resp = self.client.post(
                f"{self.base_url}/ai/generate",
                json=body,
                headers=headers,
                timeout=params.timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error("Request to %s failed: %s", self.base_url, e)
            return InvocationResult(
                conversation=conversation,
                failure=InvocationFailure.of(InvocationErrorKind.GENERATION_FAILED, details=str(e))
            )

        if resp.status_code == 200:
            text = _first_text(resp) or NO_RESPONSE_FALLBACK
            reply = Message.model(text)
            return InvocationResult(conversation=conversation + [reply], reply=reply)

        if resp.status_code == 400:
            raise ValueError(_error_field(resp, "details") or _error_field(resp, "error") or "invalid request")

        kind = _STATUS_KINDS.get(resp.status_code) or _error_kind(resp)
        details = _error_field(resp, "details") or _error_field(resp, "error")
        return InvocationResult(
            conversation=conversation,
            failure=InvocationFailure.of(kind, details=details)
        )


def _first_text(resp: httpx.Response) -> Optional[str]:
    try:
        return resp.json()["candidates"][0]["content"]["parts"][0]["text"]
    except (ValueError, KeyError, IndexError, TypeError):
        return None


def _error_kind(resp: httpx.Response) -> InvocationErrorKind:
    """Kind named in a 5xx body; generation failure when absent or unknown."""
    try:
        return InvocationErrorKind(_error_field(resp, "kind"))
    except ValueError:
        return InvocationErrorKind.GENERATION_FAILED


def _error_field(resp: httpx.Response, name: str) -> Optional[str]:
    try:
        data = resp.json()
    except ValueError:
        return None
    if isinstance(data, dict) and data.get(name):
        return str(data[name])
    return None
