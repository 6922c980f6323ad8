"""
Tests for the CLI interface.
"""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from ai_token_gate.cli.main import (
    EXIT_CODE_FAIL,
    EXIT_CODE_INSUFFICIENT_TOKENS,
    EXIT_CODE_OK,
    app,
)
from ai_token_gate.core.errors import ProviderError
from ai_token_gate.core.identity import SessionTokenVerifier
from ai_token_gate.core.ledger import TokenLedger
from ai_token_gate.storage.repository import InteractionRepository

runner = CliRunner()


@pytest.fixture
def config_path(tmp_path):
    """Config file pointing at a database in a temporary directory."""
    path = tmp_path / "config.yaml"
    path.write_text(f"database: {tmp_path / 'cli.db'}\n", encoding="utf-8")
    return str(path)


@pytest.fixture
def database(tmp_path):
    return str(tmp_path / "cli.db")


@pytest.fixture
def initialized(config_path):
    result = runner.invoke(app, ["--config", config_path, "init"])
    assert result.exit_code == EXIT_CODE_OK
    return config_path


@pytest.fixture
def mock_gateway(gateway):
    with patch("ai_token_gate.runtime.build_gateway", return_value=gateway):
        yield gateway


class TestCLI:
    """Test CLI commands."""

    def test_init(self, config_path, database):
        result = runner.invoke(app, ["--config", config_path, "init"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Database initialized successfully" in result.output
        assert InteractionRepository(database).get_recent_entries() == []

    def test_missing_config(self, tmp_path):
        result = runner.invoke(app, ["--config", str(tmp_path / "nope.yaml"), "init"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error loading configuration" in result.output

    def test_grant_and_balance(self, initialized, database):
        result = runner.invoke(app, ["--config", initialized, "grant", "u1", "5"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Granted 5 tokens to u1 (balance: 5)" in result.output
        assert TokenLedger(database).get_balance("u1") == 5

        result = runner.invoke(app, ["--config", initialized, "balance", "u1"])

        assert result.exit_code == EXIT_CODE_OK
        assert "u1: 5 Tokens" in result.output

    def test_balance_singular(self, initialized, database):
        TokenLedger(database).credit("u1", 1)

        result = runner.invoke(app, ["--config", initialized, "balance", "u1"])

        assert "u1: 1 Token" in result.output
        assert "Tokens" not in result.output

    def test_grant_rejects_non_positive(self, initialized):
        result = runner.invoke(app, ["--config", initialized, "grant", "u1", "0"])

        assert result.exit_code == EXIT_CODE_FAIL

    def test_balance_without_schema(self, config_path):
        result = runner.invoke(app, ["--config", config_path, "balance", "u1"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Token ledger unavailable" in result.output

    def test_logs_empty(self, initialized):
        result = runner.invoke(app, ["--config", initialized, "logs"])

        assert result.exit_code == EXIT_CODE_OK
        assert "No AI interactions recorded" in result.output

    def test_ask_then_logs(self, initialized, database, mock_gateway):
        TokenLedger(database).credit("u1", 2)

        result = runner.invoke(app, ["--config", initialized, "ask", "u1", "Hallo"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Hier sind drei Tipps..." in result.output
        assert TokenLedger(database).get_balance("u1") == 1

        result = runner.invoke(app, ["--config", initialized, "logs", "--user", "u1"])

        assert result.exit_code == EXIT_CODE_OK
        assert "AI Interactions" in result.output

        result = runner.invoke(app, ["--config", initialized, "logs", "--status", "error"])

        assert "No AI interactions recorded" in result.output

    def test_ask_insufficient_tokens(self, initialized, mock_gateway):
        result = runner.invoke(app, ["--config", initialized, "ask", "u1", "Hallo"])

        assert result.exit_code == EXIT_CODE_INSUFFICIENT_TOKENS
        assert mock_gateway.calls == []

    def test_ask_generation_failure(self, initialized, database, mock_gateway):
        TokenLedger(database).credit("u1", 1)
        mock_gateway.fail_with(ProviderError("provider returned HTTP 503", status_code=503))

        result = runner.invoke(app, ["--config", initialized, "ask", "u1", "Hallo"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "HTTP 503" in result.output

    def test_ask_unknown_flow(self, initialized, mock_gateway):
        result = runner.invoke(app, ["--config", initialized, "ask", "u1", "Hallo", "--flow", "horoscope"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Unsupported flow" in result.output

    def test_ask_without_credentials(self, initialized, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)

        result = runner.invoke(app, ["--config", initialized, "ask", "u1", "Hallo"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "GEMINI_API_KEY" in result.output

    def test_token(self, config_path, monkeypatch):
        monkeypatch.setenv("SESSION_JWT_SECRET", "cli-secret")

        result = runner.invoke(app, ["--config", config_path, "token", "u1"])

        assert result.exit_code == EXIT_CODE_OK
        identity = SessionTokenVerifier("cli-secret").verify(result.output.strip())
        assert identity.user_id == "u1"
