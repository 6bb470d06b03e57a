from __future__ import annotations

import asyncio
import json
import logging
from datetime import date
from pathlib import Path
from typing import Any

import typer
from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from catalyst_monitor.config import Settings, load_config
from catalyst_monitor.errors import ConfigurationError
from catalyst_monitor.sync import SyncReport, build_services, run_sync

app = typer.Typer(help="Catalyst project funding and milestone monitor")
console = Console()
log = logging.getLogger(__name__)


def _configure_logging(*, verbose: int, json_output: bool) -> None:
    if verbose <= 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    handlers: list[logging.Handler]
    if json_output:
        handlers = [logging.StreamHandler()]
        fmt = "%(levelname)s: %(message)s"
    else:
        handlers = [RichHandler(console=console, show_time=False, show_path=False, markup=False)]
        fmt = "%(message)s"

    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


@app.callback()
def app_callback(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON for scripting."),
    verbose: int = typer.Option(0, "-v", "--verbose", count=True, help="Increase log verbosity."),
) -> None:
    ctx.obj = {"json_output": json_output, "verbose": verbose}
    _configure_logging(verbose=verbose, json_output=json_output)


def _wants_json(ctx: typer.Context) -> bool:
    return bool(ctx.obj and ctx.obj.get("json_output"))


def _report_payload(report: SyncReport) -> dict[str, Any]:
    gf = report.global_financials
    return {
        "processed": [r.project_id for r in report.processed],
        "failed": report.failures,
        "tables_written": report.tables_written,
        "total_budget": gf.total_budget if gf else None,
        "total_received": gf.total_received if gf else None,
        "exit_code": report.exit_code,
    }


def _print_report(report: SyncReport) -> None:
    ok = report.exit_code == 0
    table = Table(show_header=True, header_style="bold green" if ok else "bold red", box=ROUNDED)
    table.add_column("Project", style="bold")
    table.add_column("Status")
    table.add_column("Milestones")
    table.add_column("Received (ADA)")
    for r in report.processed:
        table.add_row(
            r.project_id, "[green]ok[/green]",
            f"{r.completed_milestones}/{len(r.milestones)}", f"{r.total_received:,.2f}",
        )
    for project_id, error in report.failures.items():
        table.add_row(project_id, "[red]failed[/red]", "-", error)
    title = f"sync summary · tables: {', '.join(report.tables_written) or 'none'}"
    console.print(Panel(table, title=title, border_style="green" if ok else "red"))


@app.command("sync")
def sync_command(
    ctx: typer.Context,
    config_path: Path | None = typer.Option(None, "--config", help="Project configuration JSON (default: $PROJECTS_CONFIG)."),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Output directory for the CSV tables."),
    summary_path: Path | None = typer.Option(None, "--summary", help="Path of the Markdown summary document."),
) -> None:
    """Run one full aggregation pass over every configured project."""
    settings = Settings.from_env()
    updates: dict[str, Any] = {}
    if config_path:
        updates["projects_config"] = config_path
    if data_dir:
        updates["data_dir"] = data_dir
    if summary_path:
        updates["summary_path"] = summary_path
    if updates:
        settings = settings.model_copy(update=updates)

    try:
        config = load_config(settings.projects_config)
        services = build_services(settings, config)
    except ConfigurationError as exc:
        log.error("%s", exc)
        raise typer.Exit(code=1) from exc

    try:
        report = asyncio.run(run_sync(config, services, today=date.today()))
    finally:
        services.close()

    if _wants_json(ctx):
        typer.echo(json.dumps(_report_payload(report), indent=2, ensure_ascii=False))
    else:
        _print_report(report)
    if report.exit_code:
        raise typer.Exit(code=report.exit_code)


@app.command("serve")
def serve_command(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8001, help="Bind port."),
    reload: bool = typer.Option(False, help="Auto-reload on code changes."),
) -> None:
    """Serve the read API over the persisted tables."""
    from catalyst_monitor.app import main as serve
    serve(host=host, port=port, reload=reload)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
