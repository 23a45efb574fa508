"""CLI interface for KeyRouter.

Settings come from ~/.openclaw/keyrouter/config.yaml and the provider
catalog from ~/.openclaw/openclaw.json.

Quick start:
    keyrouter audit                                # What providers/models are visible
    keyrouter route "quick cheap summary"          # Rank candidates for a prompt
    keyrouter route '[{"role": "user", "content": "..."}]'
    keyrouter retry "HTTP 429 Too Many Requests"   # Classify an error, suggest fallback
    keyrouter usage                                # Per-model usage counts
    keyrouter quota                                # Quota / cooldown table
    keyrouter quota-set openai/gpt-4o 500 2026-11-01T00:00:00Z
    keyrouter serve --port 8765                    # HTTP API
"""

import logging

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from keyrouter import __version__
from keyrouter.errors import KeyRouterError, QuotaValidationError

app = typer.Typer(
    name="keyrouter",
    help="KeyRouter BYOK router utilities",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """KeyRouter: pick the best provider/model for each request."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def _print_report(text: str) -> None:
    console.print(text, markup=False, highlight=False, soft_wrap=True)


@app.command()
def version() -> None:
    """Show the KeyRouter version."""
    console.print(f"KeyRouter {__version__}")


@app.command()
def audit(
    plain: bool = typer.Option(False, "--plain", help="Print the plain-text report"),
) -> None:
    """Inspect auth profiles and model providers from ~/.openclaw/openclaw.json."""
    from keyrouter.commands import run_audit
    from keyrouter.config import ingest_snapshot, load_host_config

    try:
        if plain:
            _print_report(run_audit())
            return
        snapshot = ingest_snapshot(load_host_config())
    except KeyRouterError as e:
        _fail(f"KeyRouter audit failed: {e}")

    table = Table(title=f"Providers ({snapshot.auth_profile_count} auth profiles)")
    table.add_column("Provider", style="cyan")
    table.add_column("Models", justify="right")
    table.add_column("API key")
    for p in snapshot.providers:
        table.add_row(
            p.id,
            str(p.model_count),
            "[green]yes[/green]" if p.has_api_key else "[dim]no[/dim]",
        )
    console.print(table)


@app.command()
def route(
    prompt: str = typer.Argument(..., help="Prompt text or JSON message envelope"),
    plain: bool = typer.Option(False, "--plain", help="Print the plain-text report"),
) -> None:
    """Run multi-dimension routing for a prompt or JSON envelope.

    Examples:
        keyrouter route "why does this algorithm work, prove correctness"
        keyrouter route '{"role": "user", "content": "refactor this python"}'
    """
    from keyrouter.commands import route_payload, run_route
    from keyrouter.normalizer import parse_command_input

    try:
        if plain:
            _print_report(run_route(prompt))
            return
        decision = route_payload(parse_command_input(prompt))
    except KeyRouterError as e:
        _fail(f"KeyRouter route failed: {e}")

    console.print(Panel(
        f"[bold]Policy:[/bold] {decision.policy.value}",
        title="KeyRouter Route Decision",
        border_style="cyan",
    ))

    dims = Table(show_header=False, box=None, padding=(0, 2))
    dims.add_column("Dimension", style="bold")
    dims.add_column("Score", justify="right")
    for name, value in decision.dimensions.to_dict().items():
        dims.add_row(name, f"{value:.2f}")
    console.print(dims)

    if not decision.top_candidates:
        console.print("[yellow]No candidate models matched.[/yellow]")
        return

    table = Table(title="Top candidates")
    table.add_column("#", justify="right")
    table.add_column("Model", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Cost in/out", justify="right")
    table.add_column("Rationale", style="dim")
    for i, c in enumerate(decision.top_candidates, 1):
        cost_in = "?" if c.input_cost is None else f"{c.input_cost:g}"
        cost_out = "?" if c.output_cost is None else f"{c.output_cost:g}"
        table.add_row(str(i), c.model_key, f"{c.score:.4f}", f"{cost_in}/{cost_out}", c.rationale)
    console.print(table)


@app.command()
def retry(
    error: str = typer.Argument(..., help="Error text to classify"),
    plain: bool = typer.Option(False, "--plain", help="Print the plain-text report"),
) -> None:
    """Classify an error and print a retry/fallback recommendation."""
    from keyrouter.commands import retry_after_error, run_retry

    if not error.strip():
        _fail("Usage: keyrouter retry <error text>")

    try:
        if plain:
            _print_report(run_retry(error))
            return
        outcome = retry_after_error(error)
    except KeyRouterError as e:
        _fail(f"KeyRouter retry failed: {e}")

    rec = outcome.recommendation
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Error class", f"[yellow]{rec.error_class.value}[/yellow]")
    table.add_row("Retry", "yes" if rec.should_retry else "no")
    table.add_row("Switch model", "yes" if rec.should_switch_model else "no")
    table.add_row("Strategy", rec.strategy.value if rec.strategy else "default")
    table.add_row("Reason", rec.reason)
    table.add_row(
        "Alternate",
        f"[cyan]{outcome.alternate.model_key}[/cyan]" if outcome.alternate else "(none)",
    )
    console.print(Panel("[bold]KeyRouter Retry Recommendation[/bold]", border_style="cyan"))
    console.print(table)


@app.command()
def usage(
    plain: bool = typer.Option(False, "--plain", help="Print the plain-text report"),
) -> None:
    """Show per-model usage counts from KeyRouter state."""
    from keyrouter.commands import run_usage
    from keyrouter.state import UsageStatus, get_state_manager, usage_by_model

    if plain:
        _print_report(run_usage())
        return

    state = get_state_manager().load()
    console.print(f"[bold]Usage events:[/bold] {len(state.usage):,}")
    if not state.usage:
        console.print("[dim]No usage yet.[/dim]")
        return

    table = Table(title="Usage by model")
    table.add_column("Model", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Routed", justify="right")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    for key, counts in usage_by_model(state).items():
        table.add_row(
            key,
            str(sum(counts.values())),
            str(counts[UsageStatus.ROUTED]),
            str(counts[UsageStatus.SUCCESS]),
            str(counts[UsageStatus.FAILED]),
        )
    console.print(table)


@app.command()
def quota(
    plain: bool = typer.Option(False, "--plain", help="Print the plain-text report"),
) -> None:
    """Show the quota/cooldown table from KeyRouter state."""
    from keyrouter.commands import run_quota
    from keyrouter.state import get_state_manager, utcnow

    if plain:
        _print_report(run_quota())
        return

    state = get_state_manager().load()
    if not state.quota:
        console.print("[dim]No quota records yet.[/dim]")
        return

    now = utcnow()
    table = Table(title=f"Quota ({len(state.quota)} entries)")
    table.add_column("Model", style="cyan")
    table.add_column("Remaining", justify="right")
    table.add_column("Resets")
    table.add_column("Cooldown until")
    for key, q in state.quota.items():
        cooling = q.is_cooling_down(now)
        table.add_row(
            key,
            "?" if q.remaining is None else f"{q.remaining:g}",
            q.reset_at or "?",
            f"[red]{q.cooldown_until}[/red]" if cooling else (q.cooldown_until or "-"),
        )
    console.print(table)


@app.command("quota-set")
def quota_set(
    model_key: str = typer.Argument(..., help="Provider/model key"),
    remaining: str = typer.Argument(..., help="Remaining quota count"),
    reset_at: str = typer.Argument(None, help="Optional reset ISO timestamp"),
) -> None:
    """Set quota for a model key (replaces any existing entry).

    Example:
        keyrouter quota-set openai/gpt-4o-mini 1200 2026-11-01T00:00:00Z
    """
    from keyrouter.commands import run_quota_set

    try:
        run_quota_set(model_key, remaining, reset_at)
    except QuotaValidationError as e:
        _fail(str(e))

    console.print(f"[green]Quota updated for {model_key}[/green]")


@app.command()
def serve(
    port: int = typer.Option(8765, "--port", "-p", help="Port to serve the API on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
) -> None:
    """Serve the KeyRouter HTTP API (routes under /api/keyrouter)."""
    import uvicorn

    from keyrouter.web import create_app

    url = f"http://{host}:{port}"
    console.print(Panel(
        f"[bold cyan]KeyRouter API[/bold cyan]\n\n"
        f"URL: [link={url}]{url}[/link]\n"
        f"Routes: {url}/api/keyrouter/\n\n"
        "[dim]Press Ctrl+C to stop[/dim]",
        title="Starting API server",
        border_style="cyan",
    ))
    uvicorn.run(create_app(), host=host, port=port, log_level="warning")


if __name__ == "__main__":
    app()
