"""Shared fixtures: in-memory backend, upstream fakes and a result builder."""
from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from catalyst_monitor.config import Collaborator, DateRange, ProjectConfig
from catalyst_monitor.db import Backend
from catalyst_monitor.errors import UpstreamFetchError
from catalyst_monitor.milestones_api import PlannedMilestone
from catalyst_monitor.pipeline import (
    MilestoneRecord,
    ProjectResult,
    WalletTransaction,
    compute_financials,
    flatten_rows,
)
from catalyst_monitor.repository import ProposalRecord


@pytest.fixture()
def backend():
    """In-memory SQLite backend shared across connections via StaticPool."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    b = Backend(engine)
    b.create_schema()
    yield b
    b.dispose()


def seed(backend: Backend, *objects) -> None:
    with Session(backend.engine) as session:
        session.add_all(objects)
        session.commit()


# ---------------------------------------------------------------------------
# Upstream fakes
# ---------------------------------------------------------------------------


class FakeLedger:
    def __init__(self, transactions=None, balances=None, fail: bool = False):
        self.transactions = transactions or {}
        self.balances = balances or {}
        self.fail = fail
        self.calls: list[tuple] = []

    async def iter_transactions(self, wallet, start=None, end=None):
        self.calls.append((wallet, start, end))
        if self.fail:
            raise UpstreamFetchError("indexer unavailable")
        for tx in self.transactions.get(wallet, []):
            yield tx

    async def get_balance(self, wallet):
        if self.fail:
            raise UpstreamFetchError("indexer unavailable")
        return self.balances.get(wallet, 0.0)


class FakePrices:
    def __init__(self, rate: float = 0.5, fail: bool = False):
        self.rate = rate
        self.fail = fail

    async def get_rate(self, base="cardano", quote="usd"):
        if self.fail:
            raise UpstreamFetchError("ticker unavailable")
        return self.rate


class FakeMilestones:
    def __init__(self, plans: dict[int, dict[int, PlannedMilestone]] | None = None, fail: bool = False):
        self.plans = plans or {}
        self.fail = fail

    def proposal_url(self, proposal_id: int) -> str:
        return f"https://milestones.example/proposals/{proposal_id}"

    async def fetch_plan(self, proposal_id: int):
        if self.fail:
            raise UpstreamFetchError("milestone api unavailable")
        return self.plans.get(proposal_id, {})


class FakeNotifier:
    def __init__(self):
        self.messages: list[str] = []

    async def send(self, message: str) -> bool:
        self.messages.append(message)
        return True


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


# ---------------------------------------------------------------------------
# Result builder
# ---------------------------------------------------------------------------


def make_result(
    project_id: str = "1100271",
    title: str = "Wallet Tools",
    budget: float = 120_000.0,
    completed: tuple[bool, ...] = (True, False, False),
    received: float = 0.0,
    collaborators: tuple[Collaborator, ...] = (),
    start: date = date(2024, 1, 1),
    end: date = date(2025, 1, 1),
) -> ProjectResult:
    project = ProjectConfig(
        project_id=project_id,
        wallet="addr_test1wallet",
        date_ranges=DateRange(start=start, end=end),
        collaborators=collaborators,
    )
    proposal = ProposalRecord(
        id=1, project_id=project_id, title=title, budget=budget,
        funds_distributed=0.0, milestones_qty=len(completed),
    )
    financials = compute_financials(budget, project)
    milestones = tuple(
        MilestoneRecord(
            milestone=i, title=f"Milestone {i}", month=i, cost=budget / len(completed),
            completion=100.0 if done else 0.0,
            som_signoff_count=1, poa_signoff_count=1 if done else 0,
            outputs_approved=done, success_criteria_approved=done,
            evidence_approved=done, poa_content_approved=done,
        )
        for i, done in enumerate(completed, start=1)
    )
    transactions = (WalletTransaction("tx1", "2024-02-01", received, "Milestone 1"),) if received else ()
    remaining = budget - received
    url = f"https://milestones.example/proposals/{proposal.id}"
    proposal_row, milestone_rows, transaction_rows, collaborator_rows, financial_row = flatten_rows(
        project_id, proposal, financials, milestones, transactions, received, remaining, url,
    )
    return ProjectResult(
        project_id=project_id,
        proposal=proposal,
        financials=financials,
        milestones=milestones,
        transactions=transactions,
        total_received=received,
        remaining_funds=remaining,
        milestone_url=url,
        proposal_row=proposal_row,
        milestone_rows=milestone_rows,
        transaction_rows=transaction_rows,
        collaborator_rows=collaborator_rows,
        financial_row=financial_row,
    )
