"""Read-only queries against the relational backend.

Every query returns frozen records detached from the ORM session, so the
pipeline never touches lazy relationships after the session is closed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from catalyst_monitor.db import Backend
from catalyst_monitor.models import Poa, Proposal, Snapshot, Som

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProposalRecord:
    id: int
    project_id: str
    title: str
    budget: float
    funds_distributed: float
    milestones_qty: int


@dataclass(frozen=True)
class SnapshotRecord:
    proposal_id: int
    project_id: str
    milestone: int
    som_signoff_count: int
    poa_signoff_count: int


@dataclass(frozen=True)
class SomReviewRecord:
    outputs_approved: bool
    success_criteria_approved: bool
    evidence_approved: bool
    current: bool
    created_at: datetime | None


@dataclass(frozen=True)
class PoaVariant:
    """One proof-of-achievement submission with its review and signoff state."""
    poa_id: int
    content_approved: bool | None
    signoff_count: int
    latest_signoff: datetime | None


@dataclass(frozen=True)
class SomRecord:
    proposal_id: int
    milestone: int
    title: str
    month: int | None
    cost: float | None
    completion: float | None
    reviews: tuple[SomReviewRecord, ...]
    poas: tuple[PoaVariant, ...]


def _latest(items, key):
    return max(items, key=key, default=None)


def _poa_variant(poa: Poa) -> PoaVariant:
    current_reviews = [r for r in poa.reviews if r.current] or list(poa.reviews)
    review = _latest(current_reviews, key=lambda r: (r.created_at or datetime.min, r.id))
    signed = [s.created_at for s in poa.signoffs if s.created_at is not None]
    return PoaVariant(
        poa_id=poa.id,
        content_approved=review.content_approved if review is not None else None,
        signoff_count=len(poa.signoffs),
        latest_signoff=max(signed, default=None),
    )


def _som_record(som: Som) -> SomRecord:
    return SomRecord(
        proposal_id=som.proposal_id,
        milestone=som.milestone,
        title=som.title or "",
        month=som.month,
        cost=som.cost,
        completion=som.completion,
        reviews=tuple(
            SomReviewRecord(
                outputs_approved=bool(r.outputs_approves),
                success_criteria_approved=bool(r.success_criteria_approves),
                evidence_approved=bool(r.evidence_approves),
                current=bool(r.current),
                created_at=r.created_at,
            )
            for r in som.reviews
        ),
        poas=tuple(_poa_variant(p) for p in som.poas),
    )


class ProposalRepository:
    def __init__(self, backend: Backend):
        self.backend = backend

    def get_proposal(self, project_id: str) -> ProposalRecord | None:
        with self.backend.session_scope() as session:
            row = session.execute(
                select(Proposal).where(Proposal.project_id == project_id).order_by(Proposal.id)
            ).scalars().first()
            if row is None:
                return None
            return ProposalRecord(
                id=row.id,
                project_id=row.project_id,
                title=row.title or "",
                budget=float(row.budget or 0.0),
                funds_distributed=float(row.funds_distributed or 0.0),
                milestones_qty=int(row.milestones_qty or 0),
            )

    def get_snapshots(self, proposal_id: int, project_id: str) -> list[SnapshotRecord]:
        """Latest snapshot per milestone; an empty list means nothing is snapshotted yet."""
        with self.backend.session_scope() as session:
            rows = session.execute(
                select(Snapshot)
                .where(or_(Snapshot.proposal_id == proposal_id, Snapshot.project_id == project_id))
                .order_by(Snapshot.created_at.desc(), Snapshot.id.desc())
            ).scalars().all()
        by_milestone: dict[int, SnapshotRecord] = {}
        for snap in rows:
            if snap.milestone in by_milestone:
                continue
            by_milestone[snap.milestone] = SnapshotRecord(
                proposal_id=snap.proposal_id,
                project_id=snap.project_id or project_id,
                milestone=snap.milestone,
                som_signoff_count=int(snap.som_signoff_count or 0),
                poa_signoff_count=int(snap.poa_signoff_count or 0),
            )
        return [by_milestone[k] for k in sorted(by_milestone)]

    def get_soms(self, proposal_id: int) -> dict[int, SomRecord]:
        """Current statement of milestone per milestone index, with nested reviews and PoAs."""
        with self.backend.session_scope() as session:
            rows = _load_soms(session, proposal_id)
            chosen: dict[int, Som] = {}
            for som in rows:
                prev = chosen.get(som.milestone)
                if prev is None or _som_rank(som) > _som_rank(prev):
                    chosen[som.milestone] = som
            records = {idx: _som_record(som) for idx, som in chosen.items()}
        log.debug("Loaded %d statements of milestone for proposal %s", len(records), proposal_id)
        return records


def _load_soms(session: Session, proposal_id: int) -> list[Som]:
    return list(session.execute(
        select(Som)
        .where(Som.proposal_id == proposal_id)
        .options(
            selectinload(Som.reviews),
            selectinload(Som.poas).selectinload(Poa.reviews),
            selectinload(Som.poas).selectinload(Poa.signoffs),
        )
    ).scalars().all())


def _som_rank(som: Som) -> tuple[bool, datetime, int]:
    return (bool(som.current), som.created_at or datetime.min, som.id)
