"""
CLI interface for AI Model Sync.

Provides command-line access to sync runs, the published dataset and cost
estimates.
"""

import json
import signal
import sys
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ai_model_sync.config.factory import build_publisher, build_registry, build_store
from ai_model_sync.config.loader import AppConfig, load_config, resolve_config_path
from ai_model_sync.core.cancellation import CancellationToken
from ai_model_sync.core.logger import configure_logging
from ai_model_sync.core.pricing import estimate_cost, round_cost
from ai_model_sync.core.sync import OutcomeStatus, RunReport, run_sync
from ai_model_sync.core.validator import ValidationError, validate
from ai_model_sync.storage.base import StoreUnavailableError
from ai_model_sync.storage.export import export_dataset

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_STORE_UNAVAILABLE = 2

_STATUS_STYLES = {
    OutcomeStatus.UPDATED: "green",
    OutcomeStatus.UNCHANGED: "dim",
    OutcomeStatus.REJECTED: "red",
    OutcomeStatus.FETCH_FAILED: "yellow",
    OutcomeStatus.CONFLICT: "red",
    OutcomeStatus.CANCELLED: "magenta",
}


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the sync configuration file"
    ),
):
    """AI Model Sync CLI."""
    ctx.obj = {"config_path": resolve_config_path(config)}
    if ctx.invoked_subcommand is None:
        console.print("AI Model Sync - Use --help to see available commands")


def _load_app_config(ctx: typer.Context) -> AppConfig:
    """Load the configuration and set up logging, exiting on bad config."""
    path = ctx.obj["config_path"]
    try:
        app_config = load_config(path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)
    configure_logging(app_config.logging.level, app_config.logging.file)
    return app_config


@contextmanager
def _cancel_on_signals(token: CancellationToken):
    """Turn SIGINT/SIGTERM into cooperative cancellation while syncing."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        token.cancel(f"received signal {signum}")

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@app.command()
def init(ctx: typer.Context):
    """Initialize the dataset store."""
    app_config = _load_app_config(ctx)
    try:
        build_store(app_config.store).initialize()
        console.print("[green]✓[/] Dataset store initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except StoreUnavailableError as e:
        console.print(f"[red]Error initializing dataset store:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_STORE_UNAVAILABLE)


@app.command()
def sync(
    ctx: typer.Context,
    provider: Optional[List[str]] = typer.Option(
        None,
        "--provider",
        "-p",
        help="Sync only this provider (repeatable)"
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        "-s",
        help="Exit with error code if any provider failed"
    ),
):
    """
    Fetch every configured provider and publish changed records.

    Providers that fail are reported and never abort the run. A dataset
    changed signal is emitted when at least one record was updated.
    """
    app_config = _load_app_config(ctx)
    store = build_store(app_config.store)
    try:
        registry = build_registry(app_config)
        publisher = build_publisher(app_config)
    except ValueError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    token = CancellationToken()
    try:
        with _cancel_on_signals(token):
            report = run_sync(
                provider or None,
                app_config.sync,
                store=store,
                fetcher=registry,
                publisher=publisher,
                cancel_token=token,
            )
    except StoreUnavailableError as e:
        console.print(f"[bold red]Dataset store unavailable:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_STORE_UNAVAILABLE)

    _display_run_report(report)

    if strict and (report.failures or report.cancelled or report.publish_error):
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command("list")
def list_models(ctx: typer.Context):
    """List every published model."""
    app_config = _load_app_config(ctx)
    try:
        records = build_store(app_config.store).list_all()
    except StoreUnavailableError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_STORE_UNAVAILABLE)

    if not records:
        console.print("\n[bold yellow]No published models found[/]")
        console.print("Run `ai-model-sync sync` to fetch provider data.\n")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Published Models")
    table.add_column("Model")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Context", justify="right")
    table.add_column("Price / 1K tokens")
    table.add_column("Verified")
    for record in records:
        table.add_row(
            record.model_id,
            record.display_name,
            record.version,
            f"{record.context_window_tokens:,}",
            ", ".join(f"{c}: ${p}" for c, p in sorted(record.pricing.items())),
            record.last_verified_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@app.command()
def show(ctx: typer.Context, model_id: str = typer.Argument(..., help="Model id to show")):
    """Show one published record as its stored document."""
    app_config = _load_app_config(ctx)
    try:
        record = build_store(app_config.store).get(model_id)
    except StoreUnavailableError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_STORE_UNAVAILABLE)
    if record is None:
        console.print(f"[red]Unknown model:[/] {model_id}")
        sys.exit(EXIT_CODE_FAIL)
    console.print_json(json.dumps(record.to_document()))


@app.command()
def cost(
    ctx: typer.Context,
    model_id: str = typer.Argument(..., help="Model id to price"),
    usage: List[str] = typer.Option(
        ...,
        "--usage",
        "-u",
        help="Token usage as CLASS=TOKENS, e.g. input=2500 (repeatable)"
    ),
):
    """Estimate the cost of a request against a published model."""
    try:
        usage_counts = _parse_usage(usage)
    except ValueError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    app_config = _load_app_config(ctx)
    try:
        record = build_store(app_config.store).get(model_id)
    except StoreUnavailableError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_STORE_UNAVAILABLE)
    if record is None:
        console.print(f"[red]Unknown model:[/] {model_id}")
        sys.exit(EXIT_CODE_FAIL)

    try:
        amount = estimate_cost(record, usage_counts)
    except ValueError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]{record.display_name}[/bold] ({record.model_id})")
    for usage_class, tokens in usage_counts.items():
        console.print(f"{usage_class}: {tokens:,} tokens @ ${record.pricing[usage_class]} / 1K")
    console.print(f"Estimated cost: {_format_currency(round_cost(amount))} (exact {amount})\n")


@app.command()
def export(ctx: typer.Context, path: str = typer.Argument(..., help="Output JSON file")):
    """Export the published dataset as one JSON document for the site build."""
    app_config = _load_app_config(ctx)
    try:
        count = export_dataset(build_store(app_config.store), path)
    except StoreUnavailableError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_STORE_UNAVAILABLE)
    except OSError as e:
        console.print(f"[red]Error writing export:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Exported {count} models to {path}")


@app.command("validate")
def validate_payload(
    path: str = typer.Argument(..., help="Raw provider payload (JSON)"),
    model_id: Optional[str] = typer.Option(
        None,
        "--model-id",
        "-m",
        help="Model id to use when the payload has none"
    ),
):
    """Validate a raw provider payload without touching the dataset."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read payload:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    try:
        record = validate(raw, model_id=model_id)
    except ValidationError as e:
        console.print(f"[red]Invalid payload[/] ({e.reason.value}) {escape(e.field)}: {escape(e.message)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print("[green]✓[/] Payload is valid")
    console.print_json(json.dumps(record.to_document()))


def _parse_usage(items: List[str]) -> Dict[str, int]:
    """Parse CLASS=TOKENS pairs into a usage mapping."""
    usage: Dict[str, int] = {}
    for item in items:
        usage_class, sep, tokens = item.partition("=")
        if not sep or not usage_class.strip():
            raise ValueError(f"Usage must look like CLASS=TOKENS, got {item!r}")
        try:
            usage[usage_class.strip()] = int(tokens.replace(",", "").replace("_", ""))
        except ValueError:
            raise ValueError(f"Token count must be an integer, got {tokens!r}")
    return usage


def _format_currency(amount) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _display_run_report(report: RunReport):
    """Display a run report as a table plus summary counts."""
    console.print("\n[bold]Model Sync Result[/bold]")
    console.print("-" * 40)

    if not report.outcomes:
        console.print("\n[dim]No providers requested.[/]")
        return

    table = Table()
    table.add_column("Provider")
    table.add_column("Status")
    table.add_column("Model")
    table.add_column("Detail")
    for outcome in report.outcomes:
        style = _STATUS_STYLES[outcome.status]
        if outcome.status == OutcomeStatus.UPDATED:
            detail = "changed: " + ", ".join(outcome.changed_fields)
        elif outcome.reason_code:
            detail = escape(f"{outcome.reason_code}: {outcome.message or ''}")
        else:
            detail = ""
        table.add_row(
            outcome.provider_id,
            f"[{style}]{outcome.status.value}[/]",
            outcome.model_id or "-",
            detail,
        )
    console.print(table)

    counts = report.counts
    console.print(", ".join(f"{status.value}: {counts[status]}" for status in OutcomeStatus))

    if report.cancelled:
        console.print("[magenta]Run was cancelled before every provider finished[/]")
    if report.published:
        console.print("[green]✓[/] Dataset changed signal emitted")
    if report.publish_error:
        console.print(f"[red]Publish signal failed:[/] {escape(report.publish_error)}")


if __name__ == "__main__":
    app()
