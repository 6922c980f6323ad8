"""
Wiring of settings into ledger, log, gateway and invoker instances.

Shared by the HTTP endpoint and the CLI.
"""

from typing import Mapping, Optional

from ai_token_gate.config.loader import (
    Settings,
    default_settings,
    resolve_jwt_secret,
    resolve_provider_credentials,
)
from ai_token_gate.core.gateway import GeminiGateway, ModelGateway, OpenAIGateway
from ai_token_gate.core.identity import IdentityContext, SessionTokenVerifier
from ai_token_gate.core.interaction_log import InteractionLog
from ai_token_gate.core.invoker import UsageGatedInvoker
from ai_token_gate.core.ledger import TokenLedger
from ai_token_gate.core.policy import get_charge_policy
from ai_token_gate.core.pricing import GEMINI_CHAT


def build_gateway(settings: Settings, environ: Optional[Mapping[str, str]] = None) -> ModelGateway:
    """Create the configured provider gateway.

    Raises:
        ConfigurationError: If credentials are missing from the environment
    """
    api_key, url = resolve_provider_credentials(settings.provider, environ)
    if settings.provider.name == "openai":
        return OpenAIGateway(api_key=api_key, url=url, model=settings.provider.model)
    return GeminiGateway(api_key=api_key, url=url, model=settings.provider.model)


class Runtime:
    """Long-lived collaborators for one process.

    The gateway and token verifier are built on first use so commands
    that never call the provider do not need its credentials.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        gateway: Optional[ModelGateway] = None,
        verifier: Optional[SessionTokenVerifier] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        self.settings = settings or default_settings()
        self.environ = environ
        self.ledger = TokenLedger(self.settings.database)
        self.interaction_log = InteractionLog(self.settings.database)
        self._gateway = gateway
        self._verifier = verifier

    @property
    def gateway(self) -> ModelGateway:
        if self._gateway is None:
            self._gateway = build_gateway(self.settings, self.environ)
        return self._gateway

    @property
    def verifier(self) -> SessionTokenVerifier:
        if self._verifier is None:
            secret = resolve_jwt_secret(self.settings.auth, self.environ)
            self._verifier = SessionTokenVerifier(secret, self.settings.auth.algorithm)
        return self._verifier

    def invoker(self, identity: IdentityContext, flow_name: str = GEMINI_CHAT) -> UsageGatedInvoker:
        return UsageGatedInvoker(
            identity=identity,
            ledger=self.ledger,
            gateway=self.gateway,
            interaction_log=self.interaction_log,
            flow_name=flow_name,
            policy=get_charge_policy(self.settings.charge_policy),
            params=self.settings.generation.to_params(),
            pricing=self.settings.pricing
        )
