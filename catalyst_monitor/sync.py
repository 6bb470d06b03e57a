"""Batch driver: process every configured project, publish tables, summary and notification."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from catalyst_monitor.config import MonitorConfig, Settings
from catalyst_monitor.db import Backend
from catalyst_monitor.errors import PersistenceError
from catalyst_monitor.ledger import KoiosClient, PriceClient
from catalyst_monitor.milestones_api import MilestonesClient
from catalyst_monitor.notifier import Notifier
from catalyst_monitor.pipeline import ProjectPipeline, ProjectResult
from catalyst_monitor.report import ReportTables, build_tables, render_summary
from catalyst_monitor.repository import ProposalRepository
from catalyst_monitor.rollup import GlobalFinancials, compute_global
from catalyst_monitor.store import TabularStore

log = logging.getLogger(__name__)


@dataclass
class SyncServices:
    """Everything one run needs, constructed once at startup."""
    pipeline: ProjectPipeline
    ledger: KoiosClient
    prices: PriceClient
    store: TabularStore
    notifier: Notifier
    summary_path: Path

    def close(self) -> None:
        """Release pooled backend connections."""
        self.pipeline.repository.backend.dispose()


@dataclass
class SyncReport:
    processed: list[ProjectResult] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    global_financials: GlobalFinancials | None = None
    tables_written: list[str] = field(default_factory=list)
    exit_code: int = 0


def build_services(settings: Settings, config: MonitorConfig) -> SyncServices:
    """Wire clients from settings. Raises ConfigurationError without backend credentials."""
    backend = Backend.from_settings(settings)
    ledger = KoiosClient(settings.koios_base_url, settings.koios_api_key, timeout=settings.http_timeout)
    pipeline = ProjectPipeline(
        config=config,
        repository=ProposalRepository(backend),
        milestones=MilestonesClient(settings.milestones_base_url, timeout=settings.http_timeout),
        ledger=ledger,
    )
    return SyncServices(
        pipeline=pipeline,
        ledger=ledger,
        prices=PriceClient(settings.price_api_url, timeout=settings.http_timeout),
        store=TabularStore(settings.data_dir),
        notifier=Notifier(settings.discord_webhook_url, timeout=settings.http_timeout),
        summary_path=settings.summary_path,
    )


def success_message(results: list[ProjectResult]) -> str:
    total = sum(len(r.milestones) for r in results)
    completed = sum(r.completed_milestones for r in results)
    return (
        "✅ Catalyst monitoring update completed!\n"
        f"- {len(results)} projects processed\n"
        f"- {completed}/{total} milestones completed\n"
        "- Data updated in CSV files and README"
    )


def write_tables(store: TabularStore, tables: ReportTables) -> list[str]:
    """Rewrite every non-empty table; the first failure aborts the rest."""
    written: list[str] = []
    for row_type, rows in tables.items():
        if not rows:
            log.info("No rows for table %s; keeping the previous file", row_type.TABLE)
            continue
        store.write_rows(row_type, rows)
        written.append(row_type.TABLE)
    return written


def write_summary(path: Path, content: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Failed to write summary {path}: {exc}", table="summary") from exc
    log.info("Summary written to %s", path)


async def run_sync(config: MonitorConfig, services: SyncServices, today: date | None = None) -> SyncReport:
    report = SyncReport()
    project_ids = config.project_ids
    if not project_ids:
        log.error("No projects found in configuration")
        report.exit_code = 1
        return report

    log.info("Processing %d projects: %s", len(project_ids), ", ".join(project_ids))
    for project_id in project_ids:
        try:
            result = await services.pipeline.process_project(project_id)
        except Exception as exc:
            log.error("Failed to process project %s: %s", project_id, exc)
            report.failures[project_id] = str(exc)
            continue
        report.processed.append(result)

    report.global_financials = await compute_global(
        report.processed, config.organizations, services.ledger, services.prices,
    )
    tables = build_tables(report.processed, report.global_financials)

    try:
        report.tables_written = write_tables(services.store, tables)
    except PersistenceError as exc:
        log.error("Error updating CSV files (table %s): %s", exc.table, exc)
        await services.notifier.send(f"⚠️ Error updating CSV files: {exc}")
        report.exit_code = 1
        return report

    try:
        write_summary(services.summary_path, render_summary(report.processed, report.global_financials, today))
    except PersistenceError as exc:
        log.error("Error updating summary: %s", exc)

    message = success_message(report.processed)
    if report.failures:
        message += f"\n- {len(report.failures)} projects failed: {', '.join(report.failures)}"
    await services.notifier.send(message)
    log.info("All processing completed (%d ok, %d failed)", len(report.processed), len(report.failures))
    return report
