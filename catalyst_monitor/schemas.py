"""Pydantic row types for the persisted tables and response schemas for the read API.

Each row type declares its table name and an explicit ``(header, field)``
mapping. On load, a missing column falls back to the field default
(``""`` for text, ``0`` / ``0.0`` for numbers, ``False`` for flags, ``None``
for the optional milestone month); unknown columns are ignored.
"""
from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict

from catalyst_monitor.utils import format_cell


class TableRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    TABLE: ClassVar[str] = ""
    COLUMNS: ClassVar[tuple[tuple[str, str], ...]] = ()

    @classmethod
    def headers(cls) -> list[str]:
        return [header for header, _ in cls.COLUMNS]

    def cells(self) -> list[str]:
        return [format_cell(getattr(self, field)) for _, field in self.COLUMNS]

    @classmethod
    def field_index(cls, header: list[str]) -> dict[str, int]:
        """Map field names to column positions in *header*; missing columns are omitted."""
        positions = {h.strip(): i for i, h in enumerate(header)}
        return {field: positions[h] for h, field in cls.COLUMNS if h in positions}

    @classmethod
    def from_cells(cls, index: dict[str, int], row: list[str]):
        values = {}
        for field, pos in index.items():
            if pos < len(row) and row[pos] != "":
                values[field] = row[pos]
        return cls.model_validate(values)


class ProposalRow(TableRow):
    TABLE: ClassVar[str] = "proposals"
    COLUMNS: ClassVar[tuple[tuple[str, str], ...]] = (
        ("Project ID", "project_id"),
        ("Title", "title"),
        ("Budget", "budget"),
        ("Funds Distributed", "funds_distributed"),
        ("Remaining Funds", "remaining_funds"),
        ("Milestones Quantity", "milestones_qty"),
        ("Milestone URL", "milestone_url"),
    )

    project_id: str = ""
    title: str = ""
    budget: float = 0.0
    funds_distributed: float = 0.0
    remaining_funds: float = 0.0
    milestones_qty: int = 0
    milestone_url: str = ""


class MilestoneRow(TableRow):
    TABLE: ClassVar[str] = "milestones"
    COLUMNS: ClassVar[tuple[tuple[str, str], ...]] = tuple((name, name) for name in (
        "title", "project_id", "milestone", "month", "cost", "completion", "budget",
        "funds_distributed", "milestones_qty", "som_signoff_count", "poa_signoff_count",
        "outputs_approved", "success_criteria_approved", "evidence_approved",
        "poa_content_approved",
    ))

    title: str = ""
    project_id: str = ""
    milestone: int = 0
    month: int | None = None
    cost: float = 0.0
    completion: float = 0.0
    budget: float = 0.0
    funds_distributed: float = 0.0
    milestones_qty: int = 0
    som_signoff_count: int = 0
    poa_signoff_count: int = 0
    outputs_approved: bool = False
    success_criteria_approved: bool = False
    evidence_approved: bool = False
    poa_content_approved: bool = False


class TransactionRow(TableRow):
    TABLE: ClassVar[str] = "transactions"
    COLUMNS: ClassVar[tuple[tuple[str, str], ...]] = (
        ("Project ID", "project_id"),
        ("Project Title", "project_title"),
        ("Transaction Hash", "tx_hash"),
        ("Date", "date"),
        ("Amount", "amount"),
        ("Metadata", "metadata"),
    )

    project_id: str = ""
    project_title: str = ""
    tx_hash: str = ""
    date: str = ""
    amount: float = 0.0
    metadata: str = ""


class CollaboratorRow(TableRow):
    TABLE: ClassVar[str] = "collaborators"
    COLUMNS: ClassVar[tuple[tuple[str, str], ...]] = (
        ("Project ID", "project_id"),
        ("Project Title", "project_title"),
        ("Total Budget", "total_budget"),
        ("Collaborator Name", "collaborator_name"),
        ("Funds Allocated to Collaborator", "funds_allocated"),
        ("Funds Left to Organization", "organization_funds"),
    )

    project_id: str = ""
    project_title: str = ""
    total_budget: float = 0.0
    collaborator_name: str = ""
    funds_allocated: float = 0.0
    organization_funds: float = 0.0


class GlobalFinancialRow(TableRow):
    TABLE: ClassVar[str] = "global_financials"
    COLUMNS: ClassVar[tuple[tuple[str, str], ...]] = (
        ("Projects", "projects"),
        ("Organization", "organization"),
        ("Total Budget All Projects", "total_budget"),
        ("Real Monthly Budget", "real_monthly_budget"),
        ("Months with Real Budget", "months_real"),
        ("Max Monthly Budget", "max_monthly_budget"),
        ("Months with Max Budget", "months_max"),
        ("Total Received", "total_received"),
        ("Remaining Funds", "remaining_funds"),
        ("Wallet Balance (native)", "wallet_balance_native"),
        ("Wallet Balance (converted)", "wallet_balance_converted"),
    )

    projects: str = "ALL"
    organization: str = ""
    total_budget: float = 0.0
    real_monthly_budget: float = 0.0
    months_real: int = 0
    max_monthly_budget: float = 0.0
    months_max: int = 0
    total_received: float = 0.0
    remaining_funds: float = 0.0
    wallet_balance_native: float = 0.0
    wallet_balance_converted: float = 0.0


class FinancialRow(TableRow):
    """Per-project budget schedule; one row per project."""

    TABLE: ClassVar[str] = "financials"
    COLUMNS: ClassVar[tuple[tuple[str, str], ...]] = (
        ("Project ID", "project_id"),
        ("Project Title", "project_title"),
        ("Total Budget", "total_budget"),
        ("Monthly Budget", "monthly_budget"),
        ("Months", "months"),
        ("Start Date", "start_date"),
        ("End Date", "end_date"),
        ("Total Received", "total_received"),
        ("Remaining Funds", "remaining_funds"),
    )

    project_id: str = ""
    project_title: str = ""
    total_budget: float = 0.0
    monthly_budget: float = 0.0
    months: int = 0
    start_date: str = ""
    end_date: str = ""
    total_received: float = 0.0
    remaining_funds: float = 0.0


# ---------------------------------------------------------------------------
# Read API responses
# ---------------------------------------------------------------------------


class ProjectOut(ProposalRow):
    milestones: list[MilestoneRow] = []
    transactions: list[TransactionRow] = []
    collaborators: list[CollaboratorRow] = []
    financials: FinancialRow | None = None
