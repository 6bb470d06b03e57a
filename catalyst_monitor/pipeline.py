"""Per-project reconciliation: proposal + milestone reviews + wallet history.

Architecture
------------
``ProjectPipeline.process_project`` runs one project end to end, awaiting
each upstream call in turn:

1. resolve wallet and date bounds from the static configuration
2. fetch the proposal (``NotFoundError`` when absent)
3. fetch snapshots, statements of milestone and the milestone-API plan
4. fetch wallet transactions for the configured date range
5. compute ``ProjectFinancials`` (monthly budget + collaborator split)
6. resolve one ``MilestoneRecord`` per milestone index
7. total received / remaining funds
8. flatten everything into table rows

Upstream HTTP failures degrade to empty data (logged). Configuration and
missing-proposal errors abort only the project being processed.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any

from catalyst_monitor.config import MonitorConfig, ProjectConfig
from catalyst_monitor.errors import ConfigurationError, NotFoundError, UpstreamFetchError
from catalyst_monitor.ledger import KoiosClient, tx_time
from catalyst_monitor.milestones_api import MilestonesClient, PlannedMilestone
from catalyst_monitor.repository import (
    PoaVariant,
    ProposalRecord,
    ProposalRepository,
    SnapshotRecord,
    SomRecord,
    SomReviewRecord,
)
from catalyst_monitor.schemas import CollaboratorRow, FinancialRow, MilestoneRow, ProposalRow, TransactionRow
from catalyst_monitor.utils import iso_date, lovelace_to_ada, to_float, unix_to_date

log = logging.getLogger(__name__)

CIP20_LABEL = "674"


# ---------------------------------------------------------------------------
# Derived entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CollaboratorAllocation:
    name: str
    total_amount: float
    monthly_amount: float
    allocation: float


@dataclass(frozen=True)
class ProjectFinancials:
    total_budget: float
    monthly_budget: float
    months: int
    start_date: date
    end_date: date
    collaborators: tuple[CollaboratorAllocation, ...]
    organization_funds: float

    @property
    def organization_monthly(self) -> float:
        return self.organization_funds / self.months if self.months > 0 else self.organization_funds


@dataclass(frozen=True)
class WalletTransaction:
    tx_hash: str
    date: str
    amount: float
    metadata: str


@dataclass(frozen=True)
class MilestoneRecord:
    milestone: int
    title: str
    month: int | None
    cost: float
    completion: float
    som_signoff_count: int
    poa_signoff_count: int
    outputs_approved: bool
    success_criteria_approved: bool
    evidence_approved: bool
    poa_content_approved: bool

    @property
    def completed(self) -> bool:
        return self.poa_content_approved


@dataclass(frozen=True)
class ProjectResult:
    project_id: str
    proposal: ProposalRecord
    financials: ProjectFinancials
    milestones: tuple[MilestoneRecord, ...]
    transactions: tuple[WalletTransaction, ...]
    total_received: float
    remaining_funds: float
    milestone_url: str
    proposal_row: ProposalRow
    milestone_rows: tuple[MilestoneRow, ...]
    transaction_rows: tuple[TransactionRow, ...]
    collaborator_rows: tuple[CollaboratorRow, ...]
    financial_row: FinancialRow

    @property
    def title(self) -> str:
        return self.proposal.title

    @property
    def completed_milestones(self) -> int:
        return sum(1 for m in self.milestones if m.completed)


# ---------------------------------------------------------------------------
# Monthly budget
# ---------------------------------------------------------------------------


def add_one_year(d: date) -> date:
    try:
        return d.replace(year=d.year + 1)
    except ValueError:  # 29 February
        return d.replace(year=d.year + 1, day=28)


def month_span(start: date, end: date) -> int:
    """Whole months between two dates, ignoring the day of month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def compute_financials(
    total_budget: float, project: ProjectConfig, today: date | None = None,
) -> ProjectFinancials:
    """Monthly budget and collaborator split for one project.

    Collaborators configured with a fixed ``amount`` get ``amount / months``
    per month; legacy ``allocation`` fractions are applied to the total and
    monthly budgets as-is. Mixing both models can push the collaborator total
    above the budget, leaving a negative organization residual.
    """
    start = project.date_ranges.start or today or date.today()
    end = project.date_ranges.end or add_one_year(start)
    months = month_span(start, end)
    monthly_budget = total_budget / months if months > 0 else total_budget

    allocations: list[CollaboratorAllocation] = []
    for collab in project.collaborators:
        if collab.amount is not None:
            amount = collab.amount
            allocations.append(CollaboratorAllocation(
                name=collab.name,
                total_amount=amount,
                monthly_amount=amount / months if months > 0 else amount,
                allocation=amount / total_budget if total_budget > 0 else 0.0,
            ))
        else:
            fraction = collab.allocation or 0.0
            allocations.append(CollaboratorAllocation(
                name=collab.name,
                total_amount=total_budget * fraction,
                monthly_amount=monthly_budget * fraction,
                allocation=fraction,
            ))

    organization_funds = total_budget - math.fsum(a.total_amount for a in allocations)
    return ProjectFinancials(
        total_budget=total_budget,
        monthly_budget=monthly_budget,
        months=months,
        start_date=start,
        end_date=end,
        collaborators=tuple(allocations),
        organization_funds=organization_funds,
    )


# ---------------------------------------------------------------------------
# Wallet transactions
# ---------------------------------------------------------------------------


def received_amount(tx: dict[str, Any], wallet: str) -> float:
    """ADA received by *wallet* in one transaction (sum of matching outputs).

    Malformed outputs and unparseable values count as zero.
    """
    outputs = tx.get("outputs")
    if not isinstance(outputs, list):
        return 0.0
    total = 0.0
    for output in outputs:
        if not isinstance(output, dict):
            continue
        payment_addr = output.get("payment_addr")
        if isinstance(payment_addr, dict) and payment_addr.get("bech32") == wallet:
            total += to_float(output.get("value"))
    return lovelace_to_ada(total)


def tx_metadata(tx: dict[str, Any]) -> str:
    """CIP-20 message of a transaction, joined with spaces."""
    metadata = tx.get("metadata")
    if not isinstance(metadata, dict):
        return ""
    entry = metadata.get(CIP20_LABEL) or metadata.get(int(CIP20_LABEL))
    if not isinstance(entry, dict):
        return ""
    msg = entry.get("msg")
    if isinstance(msg, list):
        return " ".join(str(part) for part in msg)
    return msg if isinstance(msg, str) else ""


def to_wallet_transaction(tx: dict[str, Any], wallet: str) -> WalletTransaction:
    return WalletTransaction(
        tx_hash=str(tx.get("tx_hash") or ""),
        date=unix_to_date(tx_time(tx)),
        amount=received_amount(tx, wallet),
        metadata=tx_metadata(tx),
    )


# ---------------------------------------------------------------------------
# Milestone resolution
# ---------------------------------------------------------------------------


def select_current_review(reviews: tuple[SomReviewRecord, ...]) -> SomReviewRecord | None:
    """Latest review flagged current (latest of any when none is flagged)."""
    candidates = [r for r in reviews if r.current] or list(reviews)
    if not candidates:
        return None
    return max(candidates, key=lambda r: r.created_at.isoformat() if r.created_at else "")


def _signoff_key(poa: PoaVariant) -> str:
    return poa.latest_signoff.isoformat() if poa.latest_signoff else ""


def select_poa(poas: tuple[PoaVariant, ...]) -> PoaVariant | None:
    """The PoA whose latest signoff is greatest; unsigned variants sort last."""
    if not poas:
        return None
    return max(poas, key=_signoff_key)


def resolve_milestone(
    index: int,
    proposal: ProposalRecord,
    som: SomRecord | None,
    snapshot: SnapshotRecord | None,
    planned: PlannedMilestone | None,
) -> MilestoneRecord:
    """Build the authoritative record for one milestone.

    Defaults for every missing source are applied here and nowhere else:
    title falls back to the milestone-API plan, then to empty; cost to the
    milestone-API plan, then to an even split of the budget; completion to 0;
    approval flags to False; signoff counts to the snapshot, then to the
    selected PoA, then to 0.
    """
    review = select_current_review(som.reviews) if som else None
    poa = select_poa(som.poas) if som else None

    if som is not None and som.cost is not None:
        cost = som.cost
    elif planned is not None and planned.cost is not None:
        cost = planned.cost
    elif proposal.milestones_qty > 0:
        cost = proposal.budget / proposal.milestones_qty
    else:
        cost = 0.0

    if som is not None and som.month is not None:
        month = som.month
    else:
        month = planned.month if planned is not None else None

    title = (som.title if som is not None else "") or (planned.title if planned is not None else "")

    return MilestoneRecord(
        milestone=index,
        title=title,
        month=month,
        cost=cost,
        completion=som.completion if som is not None and som.completion is not None else 0.0,
        som_signoff_count=snapshot.som_signoff_count if snapshot else 0,
        poa_signoff_count=snapshot.poa_signoff_count if snapshot else (poa.signoff_count if poa else 0),
        outputs_approved=review.outputs_approved if review else False,
        success_criteria_approved=review.success_criteria_approved if review else False,
        evidence_approved=review.evidence_approved if review else False,
        poa_content_approved=bool(poa.content_approved) if poa else False,
    )


def milestone_indices(milestones_qty: int, snapshots: list[SnapshotRecord]) -> list[int]:
    return sorted({*range(1, milestones_qty + 1), *(s.milestone for s in snapshots if s.milestone > 0)})


# ---------------------------------------------------------------------------
# Row flattening
# ---------------------------------------------------------------------------


def flatten_rows(
    project_id: str,
    proposal: ProposalRecord,
    financials: ProjectFinancials,
    milestones: tuple[MilestoneRecord, ...],
    transactions: tuple[WalletTransaction, ...],
    total_received: float,
    remaining_funds: float,
    milestone_url: str,
) -> tuple[
    ProposalRow, tuple[MilestoneRow, ...], tuple[TransactionRow, ...], tuple[CollaboratorRow, ...], FinancialRow,
]:
    proposal_row = ProposalRow(
        project_id=proposal.project_id or project_id,
        title=proposal.title,
        budget=proposal.budget,
        funds_distributed=proposal.funds_distributed,
        remaining_funds=remaining_funds,
        milestones_qty=proposal.milestones_qty,
        milestone_url=milestone_url,
    )
    milestone_rows = tuple(
        MilestoneRow(
            title=proposal.title,
            project_id=project_id,
            milestone=m.milestone,
            month=m.month,
            cost=m.cost,
            completion=m.completion,
            budget=proposal.budget,
            funds_distributed=proposal.funds_distributed,
            milestones_qty=proposal.milestones_qty,
            som_signoff_count=m.som_signoff_count,
            poa_signoff_count=m.poa_signoff_count,
            outputs_approved=m.outputs_approved,
            success_criteria_approved=m.success_criteria_approved,
            evidence_approved=m.evidence_approved,
            poa_content_approved=m.poa_content_approved,
        )
        for m in milestones
    )
    transaction_rows = tuple(
        TransactionRow(
            project_id=project_id, project_title=proposal.title, tx_hash=tx.tx_hash,
            date=tx.date, amount=tx.amount, metadata=tx.metadata,
        )
        for tx in transactions
    )
    collaborator_rows = tuple(
        CollaboratorRow(
            project_id=project_id, project_title=proposal.title,
            total_budget=financials.total_budget, collaborator_name=c.name,
            funds_allocated=c.total_amount, organization_funds=financials.organization_funds,
        )
        for c in financials.collaborators
    )
    financial_row = FinancialRow(
        project_id=project_id,
        project_title=proposal.title,
        total_budget=financials.total_budget,
        monthly_budget=financials.monthly_budget,
        months=financials.months,
        start_date=iso_date(financials.start_date),
        end_date=iso_date(financials.end_date),
        total_received=total_received,
        remaining_funds=remaining_funds,
    )
    return proposal_row, milestone_rows, transaction_rows, collaborator_rows, financial_row


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class ProjectPipeline:
    """Processes configured projects against injected upstream clients."""

    def __init__(
        self,
        config: MonitorConfig,
        repository: ProposalRepository,
        milestones: MilestonesClient,
        ledger: KoiosClient,
        today: date | None = None,
    ):
        self.config = config
        self.repository = repository
        self.milestones = milestones
        self.ledger = ledger
        self.today = today

    async def fetch_transactions(self, project: ProjectConfig) -> list[WalletTransaction]:
        bounds = project.date_ranges
        try:
            raw = [tx async for tx in self.ledger.iter_transactions(project.wallet, bounds.start, bounds.end)]
        except UpstreamFetchError as exc:
            log.warning("Transaction fetch failed for project %s: %s", project.project_id, exc)
            return []
        malformed = sum(1 for tx in raw if not isinstance(tx, dict))
        if malformed:
            log.warning("Skipping %d malformed transaction records for project %s", malformed, project.project_id)
        return [to_wallet_transaction(tx, project.wallet) for tx in raw if isinstance(tx, dict)]

    async def fetch_plan(self, project_id: str, proposal_id: int) -> dict[int, PlannedMilestone]:
        try:
            return await self.milestones.fetch_plan(proposal_id)
        except UpstreamFetchError as exc:
            log.warning("Milestone API fetch failed for project %s (proposal %s): %s", project_id, proposal_id, exc)
            return {}

    async def process_project(self, project_id: str) -> ProjectResult:
        project = self.config.project(project_id)
        if not project.wallet:
            raise ConfigurationError(f"No wallet address found for project {project_id}")

        proposal = self.repository.get_proposal(project_id)
        if proposal is None:
            raise NotFoundError(f"No proposal found for project {project_id}")

        snapshots = self.repository.get_snapshots(proposal.id, project_id)
        if not snapshots:
            log.info("Project %s has no snapshotted milestones yet", project_id)
        soms = self.repository.get_soms(proposal.id)
        plan = await self.fetch_plan(project_id, proposal.id)
        transactions = tuple(await self.fetch_transactions(project))

        financials = compute_financials(proposal.budget, project, today=self.today)

        by_snapshot = {s.milestone: s for s in snapshots}
        milestones = tuple(
            resolve_milestone(idx, proposal, soms.get(idx), by_snapshot.get(idx), plan.get(idx))
            for idx in milestone_indices(proposal.milestones_qty, snapshots)
        )

        total_received = math.fsum(tx.amount for tx in transactions)
        remaining_funds = proposal.budget - total_received
        milestone_url = self.milestones.proposal_url(proposal.id)

        proposal_row, milestone_rows, transaction_rows, collaborator_rows, financial_row = flatten_rows(
            project_id, proposal, financials, milestones, transactions,
            total_received, remaining_funds, milestone_url,
        )
        log.info(
            "Processed project %s: %d milestones, %d transactions, %.2f received",
            project_id, len(milestones), len(transactions), total_received,
        )
        return ProjectResult(
            project_id=project_id,
            proposal=proposal,
            financials=financials,
            milestones=milestones,
            transactions=transactions,
            total_received=total_received,
            remaining_funds=remaining_funds,
            milestone_url=milestone_url,
            proposal_row=proposal_row,
            milestone_rows=milestone_rows,
            transaction_rows=transaction_rows,
            collaborator_rows=collaborator_rows,
            financial_row=financial_row,
        )
