"""
Configuration management and loading.

Handles application settings and environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from ai_token_gate.core.gateway import GenerationParams
from ai_token_gate.core.policy import CHARGE_POLICIES, ChargeBeforeGenerate
from ai_token_gate.core.pricing import DEFAULT_PRICING, FlowPricingTable
from ai_token_gate.storage.db import DEFAULT_DB_PATH

SUPPORTED_PROVIDERS = ("gemini", "openai")


class ConfigurationError(ValueError):
    """Raised when a setting needed at runtime is missing from the environment."""


@dataclass(frozen=True)
class ProviderConfig:
    """Which provider to call and where its credentials live.

    Credentials themselves are never stored in config; only the names of
    the environment variables holding them.
    """
    name: str = "gemini"
    model: str = "gemini-pro"
    api_key_env: str = "GEMINI_API_KEY"
    url_env: str = "GEMINI_API_URL"

    def __post_init__(self):
        """Validate provider settings."""
        if self.name not in SUPPORTED_PROVIDERS:
            raise ValueError(f"provider name must be one of: {list(SUPPORTED_PROVIDERS)}")
        if not self.model:
            raise ValueError("provider model must not be empty")


@dataclass(frozen=True)
class GenerationConfig:
    """Default generation settings."""
    temperature: float = 0.7
    max_output_tokens: int = 2048
    timeout_seconds: float = 30.0

    def to_params(self) -> GenerationParams:
        return GenerationParams(
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            timeout_seconds=self.timeout_seconds
        )


@dataclass(frozen=True)
class AuthConfig:
    """Session token verification settings."""
    jwt_secret_env: str = "SESSION_JWT_SECRET"
    algorithm: str = "HS256"


@dataclass(frozen=True)
class Settings:
    """Complete application configuration."""
    database: str = DEFAULT_DB_PATH
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    flows: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_PRICING.costs))
    charge_policy: str = ChargeBeforeGenerate.name
    auth: AuthConfig = field(default_factory=AuthConfig)

    @property
    def pricing(self) -> FlowPricingTable:
        return FlowPricingTable(dict(self.flows))


def default_settings() -> Settings:
    """Settings used when no configuration file is given."""
    return Settings()


def load_settings(path: str) -> Settings:
    """Load and validate settings from a YAML file.

    Strict validation ensures no silent misconfigurations that could
    charge users the wrong amount or call the wrong provider.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated Settings object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'database', 'provider', 'generation', 'flows', 'charge_policy', 'auth'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    defaults = default_settings()

    database = raw_config.get('database', defaults.database)
    if not isinstance(database, str) or not database:
        raise ValueError("'database' must be a non-empty string")

    provider = ProviderConfig(**_section(raw_config, 'provider', {
        'name', 'model', 'api_key_env', 'url_env'
    }))

    generation_data = _section(raw_config, 'generation', {
        'temperature', 'max_output_tokens', 'timeout_seconds'
    })
    generation = _parse_generation(generation_data)

    flows = _parse_flows(raw_config.get('flows', defaults.flows))

    charge_policy = raw_config.get('charge_policy', defaults.charge_policy)
    if charge_policy not in CHARGE_POLICIES:
        raise ValueError(f"'charge_policy' must be one of: {sorted(CHARGE_POLICIES)}")

    auth = AuthConfig(**_section(raw_config, 'auth', {'jwt_secret_env', 'algorithm'}))

    return Settings(
        database=database,
        provider=provider,
        generation=generation,
        flows=flows,
        charge_policy=charge_policy,
        auth=auth
    )


def _section(raw_config: Dict, name: str, allowed_keys: set) -> Dict[str, Any]:
    """Return a validated optional sub-dictionary of the config.

    Raises:
        ValueError: If the section is not a dictionary or has unknown keys
    """
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown {name} keys: {unknown_keys}")

    for key, value in data.items():
        if key in ('name', 'model', 'api_key_env', 'url_env', 'jwt_secret_env', 'algorithm'):
            if not isinstance(value, str) or not value:
                raise ValueError(f"'{name}.{key}' must be a non-empty string")
    return data


def _parse_generation(data: Dict[str, Any]) -> GenerationConfig:
    defaults = GenerationConfig()

    temperature = data.get('temperature', defaults.temperature)
    if not isinstance(temperature, (int, float)) or isinstance(temperature, bool):
        raise ValueError("'generation.temperature' must be a number")

    max_output_tokens = data.get('max_output_tokens', defaults.max_output_tokens)
    if not isinstance(max_output_tokens, int) or isinstance(max_output_tokens, bool) or max_output_tokens <= 0:
        raise ValueError("'generation.max_output_tokens' must be a positive integer")

    timeout_seconds = data.get('timeout_seconds', defaults.timeout_seconds)
    if not isinstance(timeout_seconds, (int, float)) or isinstance(timeout_seconds, bool) or timeout_seconds <= 0:
        raise ValueError("'generation.timeout_seconds' must be > 0")

    config = GenerationConfig(
        temperature=float(temperature),
        max_output_tokens=max_output_tokens,
        timeout_seconds=float(timeout_seconds)
    )
    # Range checks live on GenerationParams
    config.to_params()
    return config


def _parse_flows(data: Any) -> Dict[str, int]:
    if not isinstance(data, dict) or not data:
        raise ValueError("'flows' must be a non-empty dictionary")

    flows = {}
    for flow_name, cost in data.items():
        if not isinstance(cost, int) or isinstance(cost, bool) or cost <= 0:
            raise ValueError(f"token cost for flow '{flow_name}' must be a positive integer")
        flows[str(flow_name)] = cost
    return flows


def resolve_provider_credentials(
    provider: ProviderConfig,
    environ: Optional[Mapping[str, str]] = None
) -> Tuple[str, str]:
    """Read the provider API key and endpoint URL from the environment.

    Returns:
        Tuple of (api_key, url)

    Raises:
        ConfigurationError: If either variable is unset or empty
    """
    environ = os.environ if environ is None else environ
    api_key = environ.get(provider.api_key_env, "")
    url = environ.get(provider.url_env, "")
    if not api_key:
        raise ConfigurationError(f"{provider.api_key_env} environment variable not set")
    if not url:
        raise ConfigurationError(f"{provider.url_env} environment variable not set")
    return api_key, url


def resolve_jwt_secret(auth: AuthConfig, environ: Optional[Mapping[str, str]] = None) -> str:
    """Read the session token signing secret from the environment.

    Raises:
        ConfigurationError: If the variable is unset or empty
    """
    environ = os.environ if environ is None else environ
    secret = environ.get(auth.jwt_secret_env, "")
    if not secret:
        raise ConfigurationError(f"{auth.jwt_secret_env} environment variable not set")
    return secret
