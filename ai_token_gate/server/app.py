"""
HTTP function endpoint.

Fronts the token ledger, model gateway and interaction log for browser
clients. Status codes keep the three remediation paths apart: 401 means
log in, 403 means buy tokens, 500 means try again later.
"""

import logging
from typing import List, Literal, Optional

from fastapi import FastAPI, Header
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ai_token_gate.config.loader import ConfigurationError
from ai_token_gate.core.errors import InvocationErrorKind, LedgerUnavailableError
from ai_token_gate.core.gateway import GenerationParams
from ai_token_gate.core.identity import BearerTokenIdentity, Identity, StaticIdentity
from ai_token_gate.core.invoker import InvocationResult
from ai_token_gate.core.messages import Role, parse_conversation
from ai_token_gate.core.pricing import GEMINI_CHAT, GEMINI_PROMPT
from ai_token_gate.runtime import Runtime

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048
LEGACY_PROMPT_MAX_TOKENS = 1024

AUTH_REQUIRED_BODY = {"error": "Authentication required"}
INSUFFICIENT_TOKENS_ERROR = (
    "Insufficient tokens. Please upgrade your subscription or purchase more tokens."
)


class ChatMessageIn(BaseModel):
    role: Literal["user", "model"]
    content: str


class GenerateRequest(BaseModel):
    messages: List[ChatMessageIn]
    temperature: Optional[float] = None
    maxTokens: Optional[int] = None
    flowName: Optional[str] = None


class PromptRequest(BaseModel):
    prompt: str


def _invalid_request(reason: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {reason}"})


def _result_response(result: InvocationResult) -> JSONResponse:
    """Translate an invocation result into the endpoint's wire format."""
    if result.ok:
        return JSONResponse(status_code=200, content={
            "candidates": [{
                "content": {"role": Role.MODEL.value, "parts": [{"text": result.reply.content}]},
                "finishReason": result.metadata.get("finish_reason") or "STOP",
            }]
        })

    failure = result.failure
    if failure.kind is InvocationErrorKind.AUTHENTICATION_REQUIRED:
        return JSONResponse(status_code=401, content=AUTH_REQUIRED_BODY)
    if failure.kind is InvocationErrorKind.INSUFFICIENT_TOKENS:
        return JSONResponse(status_code=403, content={
            "error": INSUFFICIENT_TOKENS_ERROR,
            "details": failure.message,
        })
    return _server_error(failure.kind, failure.message, failure.details)


def _server_error(kind: InvocationErrorKind, message: str, details: Optional[str]) -> JSONResponse:
    return JSONResponse(status_code=500, content={
        "error": message,
        "details": details,
        "kind": kind.value,
    })


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    """Build the FastAPI application around a runtime.

    Args:
        runtime: Configured collaborators; defaults to built-in settings

    Returns:
        FastAPI application
    """
    runtime = runtime or Runtime()
    app = FastAPI(title="AI Token Gate")
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc):
        return _invalid_request("messages array is required")

    @app.exception_handler(ConfigurationError)
    async def configuration_exception_handler(request, exc):
        logger.error("Endpoint misconfigured: %s", exc)
        kind = InvocationErrorKind.GENERATION_FAILED
        return _server_error(kind, kind.user_message, str(exc))

    def current_identity(authorization: Optional[str]) -> Optional[Identity]:
        # Requests without credentials never touch the verifier or the gateway
        if not authorization:
            return None
        return BearerTokenIdentity(runtime.verifier, authorization).current_identity()

    @app.post("/ai/generate")
    def generate(body: GenerateRequest, authorization: Optional[str] = Header(default=None)):
        if not body.messages:
            return _invalid_request("messages array is required")

        conversation = parse_conversation({"role": m.role, "content": m.content} for m in body.messages)
        latest = conversation[-1]
        if latest.role is not Role.USER or not latest.content.strip():
            return _invalid_request("last message must be a non-empty user message")

        flow_name = body.flowName or GEMINI_CHAT
        if flow_name not in runtime.settings.flows:
            return _invalid_request(f"unknown flow '{flow_name}'")

        try:
            params = GenerationParams(
                temperature=DEFAULT_TEMPERATURE if body.temperature is None else body.temperature,
                max_output_tokens=DEFAULT_MAX_TOKENS if body.maxTokens is None else body.maxTokens,
                timeout_seconds=runtime.settings.generation.timeout_seconds,
            )
        except ValueError as e:
            return _invalid_request(str(e))

        identity = current_identity(authorization)
        if identity is None:
            return JSONResponse(status_code=401, content=AUTH_REQUIRED_BODY)

        invoker = runtime.invoker(StaticIdentity(identity), flow_name=flow_name)
        result = invoker.invoke(latest.content, conversation[:-1], params=params)
        return _result_response(result)

    @app.post("/ai/prompt")
    def prompt(body: PromptRequest, authorization: Optional[str] = Header(default=None)):
        if not body.prompt.strip():
            return _invalid_request("prompt must not be empty")

        params = GenerationParams(
            temperature=DEFAULT_TEMPERATURE,
            max_output_tokens=LEGACY_PROMPT_MAX_TOKENS,
            timeout_seconds=runtime.settings.generation.timeout_seconds,
        )
        identity = current_identity(authorization)
        if identity is None:
            return JSONResponse(status_code=401, content=AUTH_REQUIRED_BODY)

        invoker = runtime.invoker(StaticIdentity(identity), flow_name=GEMINI_PROMPT)
        result = invoker.invoke(body.prompt, [], params=params)
        return _result_response(result)

    @app.get("/ai/balance")
    def balance(authorization: Optional[str] = Header(default=None)):
        identity = current_identity(authorization)
        if identity is None:
            return JSONResponse(status_code=401, content=AUTH_REQUIRED_BODY)

        try:
            token_balance = runtime.ledger.get_balance(identity.user_id)
        except LedgerUnavailableError as e:
            logger.error("Balance lookup failed for user %s: %s", identity.user_id, e)
            kind = InvocationErrorKind.LEDGER_UNAVAILABLE
            return _server_error(kind, kind.user_message, str(e))

        return {"user_id": identity.user_id, "token_balance": token_balance}

    return app
