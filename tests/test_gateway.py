"""
Tests for the model gateways.

The Gemini gateway runs against an ``httpx.MockTransport``; the OpenAI
gateway against a mocked SDK client.
"""

import json
from unittest.mock import Mock

import httpx
import openai
import pytest

from ai_token_gate.core.errors import NoCandidateError, ProviderError, ProviderTimeoutError
from ai_token_gate.core.gateway import (
    GeminiGateway,
    GenerationParams,
    OpenAIGateway,
    build_gemini_request,
    extract_candidate,
)
from ai_token_gate.core.messages import Message

API_URL = "https://provider.test/v1/models/gemini-pro:generateContent"

CONVERSATION = [
    Message.user("Hallo"),
    Message.model("Hallo! Wie kann ich helfen?"),
    Message.user("Wie optimiere ich meinen Lebenslauf?"),
]


def _candidates(text="Hier sind drei Tipps...", finish_reason="STOP"):
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": finish_reason}]}


def _gemini(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GeminiGateway(api_key="test-key", url=API_URL, client=client)


class TestGenerationParams:
    """Test generation settings validation."""

    def test_defaults(self):
        params = GenerationParams()
        assert params.temperature == 0.7
        assert params.max_output_tokens == 2048

    @pytest.mark.parametrize("kwargs, message", [
        ({"temperature": -0.1}, "temperature"),
        ({"temperature": 2.5}, "temperature"),
        ({"max_output_tokens": 0}, "max_output_tokens"),
        ({"timeout_seconds": 0}, "timeout_seconds"),
    ])
    def test_invalid_values(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            GenerationParams(**kwargs)


class TestGeminiRequest:
    """Test request serialization and response extraction."""

    def test_request_preserves_order_and_roles(self):
        body = build_gemini_request(CONVERSATION, GenerationParams(temperature=0.2, max_output_tokens=512))

        assert body["contents"] == [
            {"role": "user", "parts": [{"text": "Hallo"}]},
            {"role": "model", "parts": [{"text": "Hallo! Wie kann ich helfen?"}]},
            {"role": "user", "parts": [{"text": "Wie optimiere ich meinen Lebenslauf?"}]},
        ]
        assert body["generationConfig"] == {
            "temperature": 0.2,
            "maxOutputTokens": 512,
            "topP": 0.8,
            "topK": 40,
        }

    def test_extract_first_candidate(self):
        data = _candidates("erste")
        data["candidates"].append({"content": {"parts": [{"text": "zweite"}]}})

        assert extract_candidate(data) == {"text": "erste", "finish_reason": "STOP"}

    @pytest.mark.parametrize("data", [
        {},
        {"candidates": []},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"text": ""}]}}]},
        {"candidates": [{"finishReason": "SAFETY"}]},
    ])
    def test_extract_no_candidate(self, data):
        with pytest.raises(NoCandidateError):
            extract_candidate(data)

    @pytest.mark.parametrize("data", [[], "text", {"candidates": "nope"}])
    def test_extract_malformed(self, data):
        with pytest.raises(ProviderError) as exc_info:
            extract_candidate(data)
        assert not isinstance(exc_info.value, NoCandidateError)


class TestGeminiGateway:
    """Test the Gemini REST gateway."""

    def test_generate_success(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_candidates())

        result = _gemini(handler).generate(CONVERSATION, GenerationParams())

        assert result.text == "Hier sind drei Tipps..."
        assert result.finish_reason == "STOP"
        assert result.model == "gemini-pro"
        assert seen["url"].params["key"] == "test-key"
        assert len(seen["body"]["contents"]) == 3

    def test_non_2xx_is_provider_error(self):
        gateway = _gemini(lambda request: httpx.Response(500, json={"error": {"message": "boom"}}))

        with pytest.raises(ProviderError) as exc_info:
            gateway.generate(CONVERSATION, GenerationParams())
        assert exc_info.value.status_code == 500

    def test_malformed_body(self):
        gateway = _gemini(lambda request: httpx.Response(200, content=b"not json"))

        with pytest.raises(ProviderError, match="malformed"):
            gateway.generate(CONVERSATION, GenerationParams())

    def test_zero_candidates(self):
        gateway = _gemini(lambda request: httpx.Response(200, json={"candidates": []}))

        with pytest.raises(NoCandidateError):
            gateway.generate(CONVERSATION, GenerationParams())

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ProviderTimeoutError):
            _gemini(handler).generate(CONVERSATION, GenerationParams(timeout_seconds=0.5))

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderError, match="request failed"):
            _gemini(handler).generate(CONVERSATION, GenerationParams())

    def test_malformed_url(self):
        calls = []
        client = httpx.Client(transport=httpx.MockTransport(lambda request: calls.append(request)))
        gateway = GeminiGateway(api_key="test-key", url="http://exa mple.com/\x00", client=client)

        with pytest.raises(ProviderError, match="request failed"):
            gateway.generate(CONVERSATION, GenerationParams())
        assert calls == []

    def test_rejects_conversation_not_ending_with_user(self):
        gateway = _gemini(lambda request: httpx.Response(200, json=_candidates()))

        with pytest.raises(ValueError, match="end with a user message"):
            gateway.generate(CONVERSATION[:2], GenerationParams())
        with pytest.raises(ValueError, match="cannot be empty"):
            gateway.generate([], GenerationParams())

    def test_requires_credentials(self):
        with pytest.raises(ValueError, match="api_key"):
            GeminiGateway(api_key="", url=API_URL)
        with pytest.raises(ValueError, match="url"):
            GeminiGateway(api_key="key", url="")


class TestOpenAIGateway:
    """Test the OpenAI-compatible gateway."""

    def _client(self, content="Antwort", finish_reason="stop"):
        choice = Mock()
        choice.message.content = content
        choice.finish_reason = finish_reason
        response = Mock()
        response.choices = [choice]
        client = Mock()
        client.chat.completions.create.return_value = response
        return client

    def test_generate_maps_roles(self):
        client = self._client()
        gateway = OpenAIGateway(api_key="key", url="https://provider.test", model="gpt-4", client=client)

        result = gateway.generate(CONVERSATION, GenerationParams(max_output_tokens=100, timeout_seconds=5))

        assert result.text == "Antwort"
        assert result.finish_reason == "stop"
        client.chat.completions.create.assert_called_once_with(
            model="gpt-4",
            messages=[
                {"role": "user", "content": "Hallo"},
                {"role": "assistant", "content": "Hallo! Wie kann ich helfen?"},
                {"role": "user", "content": "Wie optimiere ich meinen Lebenslauf?"},
            ],
            temperature=0.7,
            max_tokens=100,
            timeout=5,
        )

    def test_no_choices(self):
        client = self._client()
        client.chat.completions.create.return_value.choices = []
        gateway = OpenAIGateway(api_key="key", url="https://provider.test", model="gpt-4", client=client)

        with pytest.raises(NoCandidateError):
            gateway.generate(CONVERSATION, GenerationParams())

    def test_empty_content(self):
        gateway = OpenAIGateway(
            api_key="key", url="https://provider.test", model="gpt-4", client=self._client(content="")
        )

        with pytest.raises(NoCandidateError):
            gateway.generate(CONVERSATION, GenerationParams())

    def test_timeout(self):
        client = self._client()
        request = httpx.Request("POST", "https://provider.test/chat/completions")
        client.chat.completions.create.side_effect = openai.APITimeoutError(request=request)
        gateway = OpenAIGateway(api_key="key", url="https://provider.test", model="gpt-4", client=client)

        with pytest.raises(ProviderTimeoutError):
            gateway.generate(CONVERSATION, GenerationParams())

    def test_status_error(self):
        client = self._client()
        request = httpx.Request("POST", "https://provider.test/chat/completions")
        response = httpx.Response(429, request=request)
        client.chat.completions.create.side_effect = openai.RateLimitError(
            "rate limited", response=response, body=None
        )
        gateway = OpenAIGateway(api_key="key", url="https://provider.test", model="gpt-4", client=client)

        with pytest.raises(ProviderError) as exc_info:
            gateway.generate(CONVERSATION, GenerationParams())
        assert exc_info.value.status_code == 429

    def test_requires_model(self):
        with pytest.raises(ValueError, match="model is required"):
            OpenAIGateway(api_key="key", url="https://provider.test", model="", client=Mock())
