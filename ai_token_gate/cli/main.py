"""
CLI interface for AI Token Gate.

Provides command-line access to balances, interaction logs and the
HTTP endpoint.
"""

import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ai_token_gate.config.loader import default_settings, load_settings
from ai_token_gate.core.errors import LedgerUnavailableError, Remediation
from ai_token_gate.core.identity import StaticIdentity
from ai_token_gate.core.pricing import GEMINI_CHAT
from ai_token_gate.runtime import Runtime
from ai_token_gate.storage.repository import InteractionRepository, initialize_schema
from ai_token_gate.telemetry import configure_logging

app = typer.Typer()
console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_INSUFFICIENT_TOKENS = 2


def _runtime(ctx: typer.Context) -> Runtime:
    return ctx.obj["runtime"]


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file"
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (DEBUG, INFO, WARNING, ERROR)"
    )
):
    """AI Token Gate CLI."""
    configure_logging(log_level)
    try:
        settings = load_settings(config) if config else default_settings()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    ctx.obj = {"runtime": Runtime(settings)}
    if ctx.invoked_subcommand is None:
        console.print("AI Token Gate - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the AI Token Gate database."""
    runtime = _runtime(ctx)
    try:
        initialize_schema(runtime.settings.database)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_OK)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def grant(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User to credit"),
    amount: int = typer.Argument(..., help="Number of tokens to add")
):
    """Add tokens to a user's balance."""
    runtime = _runtime(ctx)
    try:
        balance = runtime.ledger.credit(user_id, amount)
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except LedgerUnavailableError as e:
        console.print(f"[red]Token ledger unavailable:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Granted {amount} tokens to {user_id} (balance: {balance})")
    sys.exit(EXIT_CODE_OK)


@app.command()
def balance(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User to look up")
):
    """Show a user's token balance."""
    runtime = _runtime(ctx)
    try:
        tokens = runtime.ledger.get_balance(user_id)
    except LedgerUnavailableError as e:
        console.print(f"[red]Token ledger unavailable:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"{user_id}: {tokens} {'Token' if tokens == 1 else 'Tokens'}")
    sys.exit(EXIT_CODE_OK)


@app.command()
def logs(
    ctx: typer.Context,
    user_id: Optional[str] = typer.Option(None, "--user", "-u", help="Filter by user"),
    flow_name: Optional[str] = typer.Option(None, "--flow", "-f", help="Filter by flow"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by success or error"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum entries to show")
):
    """Show recent AI interaction log entries."""
    runtime = _runtime(ctx)
    repository = InteractionRepository(runtime.settings.database)
    try:
        entries = repository.get_recent_entries(
            user_id=user_id,
            flow_name=flow_name,
            status=status,
            limit=limit
        )
    except Exception as e:
        console.print(f"[red]Error reading interaction logs:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not entries:
        console.print("\n[bold yellow]No AI interactions recorded[/]\n")
        sys.exit(EXIT_CODE_OK)

    table = Table(title="AI Interactions")
    table.add_column("ID", justify="right")
    table.add_column("Time")
    table.add_column("User")
    table.add_column("Flow")
    table.add_column("Status")
    table.add_column("Tokens", justify="right")

    for entry in entries:
        style = "green" if entry.status == "success" else "red"
        table.add_row(
            str(entry.id),
            str(entry.metadata.get("timestamp", "")),
            entry.user_id,
            entry.flow_name,
            f"[{style}]{entry.status}[/]",
            str(entry.metadata.get("tokens_charged", ""))
        )

    console.print(table)
    sys.exit(EXIT_CODE_OK)


@app.command()
def ask(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User the request is charged to"),
    message: str = typer.Argument(..., help="Message to send"),
    flow_name: str = typer.Option(GEMINI_CHAT, "--flow", "-f", help="Flow to charge")
):
    """Send one message through the token gate and print the reply."""
    runtime = _runtime(ctx)
    try:
        invoker = runtime.invoker(StaticIdentity.for_user(user_id), flow_name=flow_name)
        result = invoker.invoke(message)
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if result.ok:
        console.print(result.reply.content)
        sys.exit(EXIT_CODE_OK)

    console.print(f"[red]{result.failure.message}[/]")
    if result.failure.details:
        console.print(f"[dim]{result.failure.details}[/]")
    if result.failure.remediation is Remediation.PURCHASE_TOKENS:
        sys.exit(EXIT_CODE_INSUFFICIENT_TOKENS)
    sys.exit(EXIT_CODE_FAIL)


@app.command()
def token(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User to issue a session token for")
):
    """Issue a session token for local testing of the HTTP endpoint."""
    runtime = _runtime(ctx)
    try:
        typer.echo(runtime.verifier.issue(user_id))
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_OK)


@app.command()
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on")
):
    """Run the HTTP function endpoint."""
    import uvicorn

    from ai_token_gate.server.app import create_app

    runtime = _runtime(ctx)
    initialize_schema(runtime.settings.database)
    uvicorn.run(create_app(runtime), host=host, port=port)


if __name__ == "__main__":
    app()
