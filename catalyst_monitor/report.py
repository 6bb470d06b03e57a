"""Turns processed projects and global rollups into table rows and a Markdown summary."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date

from catalyst_monitor.pipeline import ProjectResult
from catalyst_monitor.rollup import GlobalFinancials
from catalyst_monitor.schemas import (
    CollaboratorRow,
    FinancialRow,
    GlobalFinancialRow,
    MilestoneRow,
    ProposalRow,
    TableRow,
    TransactionRow,
)
from catalyst_monitor.utils import iso_date, round_half_up

PLACEHOLDER = "-"


@dataclass
class ReportTables:
    proposals: list[ProposalRow] = field(default_factory=list)
    milestones: list[MilestoneRow] = field(default_factory=list)
    transactions: list[TransactionRow] = field(default_factory=list)
    collaborators: list[CollaboratorRow] = field(default_factory=list)
    financials: list[FinancialRow] = field(default_factory=list)
    global_financials: list[GlobalFinancialRow] = field(default_factory=list)

    def items(self) -> list[tuple[type[TableRow], list]]:
        return [
            (ProposalRow, self.proposals),
            (MilestoneRow, self.milestones),
            (TransactionRow, self.transactions),
            (CollaboratorRow, self.collaborators),
            (FinancialRow, self.financials),
            (GlobalFinancialRow, self.global_financials),
        ]


def progress_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(100 * completed / total)


def build_tables(results: Sequence[ProjectResult], global_fin: GlobalFinancials | None) -> ReportTables:
    tables = ReportTables()
    for r in results:
        tables.proposals.append(r.proposal_row)
        tables.milestones.extend(r.milestone_rows)
        tables.transactions.extend(r.transaction_rows)
        tables.collaborators.extend(r.collaborator_rows)
        tables.financials.append(r.financial_row)
    if global_fin is not None:
        tables.global_financials.extend(global_fin.rows())
    return tables


def _amount(value: float | None) -> str:
    if value is None:
        return PLACEHOLDER
    return f"{value:,.2f}"


def _whole(value: float | None) -> str:
    if value is None:
        return PLACEHOLDER
    return f"{round_half_up(value):,}"


def _text(value: object) -> str:
    text = "" if value is None else str(value).strip()
    return text.replace("|", "\\|") if text else PLACEHOLDER


def _project_section(r: ProjectResult) -> list[str]:
    fin = r.financials
    lines = [f"### {_text(r.title)} ({r.project_id})", "", "#### Milestones", ""]
    lines.append("| # | Title | Month | Cost | Completion | SoM signoffs | PoA signoffs | Status |")
    lines.append("|---|-------|-------|------|------------|--------------|--------------|--------|")
    for m in r.milestones:
        status = "✅ Completed" if m.completed else "⏳ Pending"
        month = str(m.month) if m.month is not None else PLACEHOLDER
        lines.append(
            f"| {m.milestone} | {_text(m.title)} | {month} | {_amount(m.cost)} | {m.completion:g} | "
            f"{m.som_signoff_count} | {m.poa_signoff_count} | {status} |"
        )
    lines += [
        "",
        "#### Financial Information",
        "",
        f"- **Total Budget**: {_amount(fin.total_budget)} ADA",
        f"- **Monthly Budget**: {_whole(fin.monthly_budget)} ADA",
        f"- **Project Duration**: {fin.months} months ({iso_date(fin.start_date) or PLACEHOLDER} "
        f"to {iso_date(fin.end_date) or PLACEHOLDER})",
        f"- **Funds Received**: {_amount(r.total_received)} ADA",
        f"- **Remaining Funds**: {_amount(r.remaining_funds)} ADA",
        f"- **Funds Left to Organization**: {_amount(fin.organization_funds)} ADA",
        "",
    ]
    if fin.collaborators:
        lines += [
            "#### Collaborator Allocations",
            "",
            "| Collaborator | Share | Monthly Amount | Total Amount |",
            "|--------------|-------|----------------|--------------|",
        ]
        for c in fin.collaborators:
            lines.append(
                f"| {_text(c.name)} | {c.allocation:.1%} | {_whole(c.monthly_amount)} ADA | "
                f"{_whole(c.total_amount)} ADA |"
            )
        lines.append("")
    return lines


def _global_section(global_fin: GlobalFinancials) -> list[str]:
    lines = [
        "## Global Financials",
        "",
        f"- **Projects**: {global_fin.project_count}",
        f"- **Total Budget All Projects**: {_amount(global_fin.total_budget)} ADA",
        f"- **Total Received**: {_amount(global_fin.total_received)} ADA",
        f"- **Remaining Funds**: {_amount(global_fin.remaining_funds)} ADA",
        f"- **Real Monthly Budget**: {_whole(global_fin.real_monthly_budget)} ADA",
        f"- **Max Monthly Budget**: {_whole(global_fin.max_monthly_budget)} ADA",
        "",
    ]
    if global_fin.organizations:
        lines += [
            "| Organization | Balance (ADA) | Balance (USD) | Months (real) | Months (max) |",
            "|--------------|---------------|---------------|---------------|--------------|",
        ]
        for org in global_fin.organizations:
            lines.append(
                f"| {_text(org.name)} | {_amount(org.balance_native)} | {_amount(org.balance_converted)} | "
                f"{org.months_real} | {org.months_max} |"
            )
        lines.append("")
    return lines


def render_summary(
    results: Sequence[ProjectResult],
    global_fin: GlobalFinancials | None,
    generated_on: date | None = None,
) -> str:
    """Markdown summary document; missing optional values render as ``-``."""
    generated_on = generated_on or date.today()
    lines = [
        "# Cardano Catalyst Monitoring Dashboard",
        "",
        f"Last updated: {generated_on.isoformat()}",
        "",
        "## Project Summary",
        "",
        "| Project ID | Title | Budget | Funds Received | Remaining | Milestones | Progress |",
        "|------------|-------|--------|----------------|-----------|------------|----------|",
    ]
    for r in results:
        total = len(r.milestones)
        done = r.completed_milestones
        lines.append(
            f"| {r.project_id} | {_text(r.title)} | {_amount(r.financials.total_budget)} | "
            f"{_amount(r.total_received)} | {_amount(r.remaining_funds)} | {done}/{total} | "
            f"{progress_percentage(done, total)}% |"
        )
    lines.append("")
    if global_fin is not None:
        lines += _global_section(global_fin)
    lines += ["## Project Details", ""]
    for r in results:
        lines += _project_section(r)
    return "\n".join(lines).rstrip() + "\n"
