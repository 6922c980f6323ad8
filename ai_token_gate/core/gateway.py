"""
Model gateway.

Sends a conversation to the external generative-AI provider and returns
the first candidate's text. The gateway never retries; retry policy
belongs to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import OpenAI

from .errors import NoCandidateError, ProviderError, ProviderTimeoutError
from .messages import Message, Role, validate_conversation

logger = logging.getLogger(__name__)

# Sampling settings the provider request always carries
GEMINI_TOP_P = 0.8
GEMINI_TOP_K = 40


@dataclass(frozen=True)
class GenerationParams:
    """Generation settings for one provider call."""
    temperature: float = 0.7
    max_output_tokens: int = 2048
    timeout_seconds: float = 30.0

    def __post_init__(self):
        """Validate generation settings."""
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0")
        if self.max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be > 0")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")


@dataclass(frozen=True)
class GenerationResult:
    """Text produced by the provider for one call."""
    text: str
    model: str
    finish_reason: Optional[str] = None


class ModelGateway:
    """Base class for provider gateways."""

    model: str = ""

    def generate(self, conversation: List[Message], params: GenerationParams) -> GenerationResult:
        """Generate the next model message for ``conversation``.

        Raises:
            ValueError: If the conversation is empty or does not end with a user message
            NoCandidateError: If the provider returned no candidate text
            ProviderTimeoutError: If the call exceeded ``params.timeout_seconds``
            ProviderError: On any other provider failure
        """
        raise NotImplementedError


def build_gemini_request(conversation: List[Message], params: GenerationParams) -> Dict[str, Any]:
    """Serialize a conversation into the ``generateContent`` request body."""
    return {
        "contents": [
            {"role": message.role.value, "parts": [{"text": message.content}]}
            for message in conversation
        ],
        "generationConfig": {
            "temperature": params.temperature,
            "maxOutputTokens": params.max_output_tokens,
            "topP": GEMINI_TOP_P,
            "topK": GEMINI_TOP_K,
        },
    }


def extract_candidate(data: Any) -> Dict[str, Optional[str]]:
    """Pull the first candidate's text and finish reason out of a response body.

    Raises:
        ProviderError: If the body is not a JSON object or candidates is not a list
        NoCandidateError: If there is no candidate or it carries no text
    """
    if not isinstance(data, dict):
        raise ProviderError("malformed provider response: expected a JSON object")

    candidates = data.get("candidates")
    if candidates is None:
        candidates = []
    if not isinstance(candidates, list):
        raise ProviderError("malformed provider response: 'candidates' must be a list")
    if not candidates:
        raise NoCandidateError("provider returned no candidates")

    candidate = candidates[0]
    try:
        text = candidate["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None
    if not isinstance(text, str) or not text:
        raise NoCandidateError("provider candidate contained no text")

    finish_reason = candidate.get("finishReason") if isinstance(candidate, dict) else None
    return {"text": text, "finish_reason": finish_reason}


class GeminiGateway(ModelGateway):
    """Google Generative Language REST API (``generateContent``)."""

    def __init__(
        self,
        api_key: str,
        url: str,
        model: str = "gemini-pro",
        client: Optional[httpx.Client] = None
    ):
        if not api_key:
            raise ValueError("api_key is required and cannot be empty")
        if not url:
            raise ValueError("url is required and cannot be empty")
        self.api_key = api_key
        self.url = url
        self.model = model
        self.client = client or httpx.Client()

    def generate(self, conversation: List[Message], params: GenerationParams) -> GenerationResult:
        validate_conversation(conversation)
        payload = build_gemini_request(conversation, params)

        try:
            resp = self.client.post(
                self.url,
                params={"key": self.api_key},
                json=payload,
                timeout=params.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"provider did not answer within {params.timeout_seconds}s"
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProviderError(f"provider request failed: {e}") from e

        if not resp.is_success:
            logger.error("Gemini API error %d: %s", resp.status_code, resp.text)
            raise ProviderError(
                f"provider returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError("malformed provider response: body is not JSON") from e

        candidate = extract_candidate(data)
        return GenerationResult(
            text=candidate["text"],
            model=self.model,
            finish_reason=candidate["finish_reason"]
        )


class OpenAIGateway(ModelGateway):
    """OpenAI-compatible chat completions API."""

    def __init__(self, api_key: str, url: str, model: str, client: Optional[OpenAI] = None):
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        self.model = model
        self.client = client or OpenAI(api_key=api_key, base_url=url)

    def generate(self, conversation: List[Message], params: GenerationParams) -> GenerationResult:
        validate_conversation(conversation)
        messages = [
            {
                "role": "assistant" if message.role is Role.MODEL else "user",
                "content": message.content,
            }
            for message in conversation
        ]

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=params.temperature,
                max_tokens=params.max_output_tokens,
                timeout=params.timeout_seconds,
            )
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(
                f"provider did not answer within {params.timeout_seconds}s"
            ) from e
        except openai.APIStatusError as e:
            raise ProviderError(
                f"provider returned {e.status_code}: {e.message}",
                status_code=e.status_code
            ) from e
        except openai.OpenAIError as e:
            raise ProviderError(f"provider request failed: {e}") from e

        if not response.choices:
            raise NoCandidateError("provider returned no choices")

        choice = response.choices[0]
        text = choice.message.content if choice.message else None
        if not text:
            raise NoCandidateError("provider choice contained no text")

        return GenerationResult(text=text, model=self.model, finish_reason=choice.finish_reason)
