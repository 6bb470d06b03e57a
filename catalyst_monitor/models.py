"""ORM mapping of the relational backend tables read by the sync pipeline.

The pipeline never writes to these tables; they are mapped so the repository
can query them and so tests can seed an in-memory SQLite backend.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Proposal(Base):
    __tablename__ = "proposals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), default="")
    budget: Mapped[float] = mapped_column(Float, default=0.0)
    funds_distributed: Mapped[float | None] = mapped_column(Float, nullable=True)
    milestones_qty: Mapped[int] = mapped_column(Integer, default=0)

    soms: Mapped[list[Som]] = relationship("Som", back_populates="proposal", cascade="all, delete-orphan")


class Som(Base):
    """Statement of milestone: the planned scope of one milestone."""

    __tablename__ = "soms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    proposal_id: Mapped[int] = mapped_column(Integer, ForeignKey("proposals.id"), nullable=False)
    milestone: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), default="")
    month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    completion: Mapped[float | None] = mapped_column(Float, nullable=True)
    current: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    proposal: Mapped[Proposal] = relationship("Proposal", back_populates="soms")
    reviews: Mapped[list[SomReview]] = relationship("SomReview", back_populates="som", cascade="all, delete-orphan")
    poas: Mapped[list[Poa]] = relationship("Poa", back_populates="som", cascade="all, delete-orphan")


class SomReview(Base):
    __tablename__ = "som_reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    som_id: Mapped[int] = mapped_column(Integer, ForeignKey("soms.id"), nullable=False)
    outputs_approves: Mapped[bool] = mapped_column(Boolean, default=False)
    success_criteria_approves: Mapped[bool] = mapped_column(Boolean, default=False)
    evidence_approves: Mapped[bool] = mapped_column(Boolean, default=False)
    current: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    som: Mapped[Som] = relationship("Som", back_populates="reviews")


class Poa(Base):
    """Proof of achievement submitted against a statement of milestone."""

    __tablename__ = "poas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    som_id: Mapped[int] = mapped_column(Integer, ForeignKey("soms.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    som: Mapped[Som] = relationship("Som", back_populates="poas")
    reviews: Mapped[list[PoaReview]] = relationship("PoaReview", back_populates="poa", cascade="all, delete-orphan")
    signoffs: Mapped[list[Signoff]] = relationship("Signoff", back_populates="poa", cascade="all, delete-orphan")


class PoaReview(Base):
    __tablename__ = "poas_reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    poa_id: Mapped[int] = mapped_column(Integer, ForeignKey("poas.id"), nullable=False)
    content_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    current: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    poa: Mapped[Poa] = relationship("Poa", back_populates="reviews")


class Signoff(Base):
    __tablename__ = "signoffs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    poa_id: Mapped[int] = mapped_column(Integer, ForeignKey("poas.id"), nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    poa: Mapped[Poa] = relationship("Poa", back_populates="signoffs")


class Snapshot(Base):
    """Marks that a milestone has entered formal review."""

    __tablename__ = "snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    proposal_id: Mapped[int] = mapped_column(Integer, ForeignKey("proposals.id"), nullable=False)
    project_id: Mapped[str] = mapped_column(String(50), default="")
    milestone: Mapped[int] = mapped_column(Integer, nullable=False)
    som_signoff_count: Mapped[int] = mapped_column(Integer, default=0)
    poa_signoff_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
