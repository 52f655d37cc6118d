from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _Timestamps:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, server_default=func.now(), onupdate=_utcnow,
    )


# ---------------------------------------------------------------------------
# Discovery: signals and problems
# ---------------------------------------------------------------------------


class Signal(_Timestamps, Base):
    __tablename__ = "signals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    raw_text: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str | None] = mapped_column(String(50))  # gong | zendesk | email | slack | other
    source_url: Mapped[str | None] = mapped_column(String(500))
    customer: Mapped[str | None] = mapped_column(String(300))
    arr: Mapped[str | None] = mapped_column(String(50))
    severity: Mapped[str | None] = mapped_column(String(20))
    frequency: Mapped[str | None] = mapped_column(String(20))
    renewal_risk: Mapped[str | None] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default="new")  # new | processed | discarded

    problem_links: Mapped[list[SignalProblem]] = relationship(
        "SignalProblem", back_populates="signal", cascade="all, delete-orphan",
    )


class Problem(_Timestamps, Base):
    __tablename__ = "problems"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    statement: Mapped[str] = mapped_column(Text, nullable=False)
    who_affected: Mapped[str | None] = mapped_column(Text)
    workflow_block: Mapped[str | None] = mapped_column(Text)
    business_impact: Mapped[str | None] = mapped_column(Text)
    retention_or_growth: Mapped[str | None] = mapped_column(String(20))
    severity: Mapped[str | None] = mapped_column(String(20))
    frequency: Mapped[str | None] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft | shaped | proposed | accepted | rejected

    signal_links: Mapped[list[SignalProblem]] = relationship(
        "SignalProblem", back_populates="problem", cascade="all, delete-orphan",
    )
    roadmap_links: Mapped[list[RoadmapItemProblem]] = relationship(
        "RoadmapItemProblem", back_populates="problem", cascade="all, delete-orphan",
    )


class SignalProblem(Base):
    __tablename__ = "signal_problems"
    __table_args__ = (UniqueConstraint("signal_id", "problem_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    signal_id: Mapped[int] = mapped_column(Integer, ForeignKey("signals.id", ondelete="CASCADE"), nullable=False)
    problem_id: Mapped[int] = mapped_column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), nullable=False)
    quote: Mapped[str | None] = mapped_column(Text)

    signal: Mapped[Signal] = relationship("Signal", back_populates="problem_links")
    problem: Mapped[Problem] = relationship("Problem", back_populates="signal_links")


# ---------------------------------------------------------------------------
# Strategy: objectives, releases, roadmap
# ---------------------------------------------------------------------------


class Objective(_Timestamps, Base):
    __tablename__ = "objectives"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    timeframe: Mapped[str | None] = mapped_column(String(100))
    metric: Mapped[str | None] = mapped_column(Text)
    weight: Mapped[float] = mapped_column(Float, default=1.0)

    roadmap_links: Mapped[list[RoadmapItemObjective]] = relationship(
        "RoadmapItemObjective", back_populates="objective", cascade="all, delete-orphan",
    )


class Release(_Timestamps, Base):
    __tablename__ = "releases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    target_date: Mapped[str | None] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default="planned")  # planned | active | released

    # No delete cascade: removing a release detaches its items (release_id -> NULL)
    roadmap_items: Mapped[list[RoadmapItem]] = relationship("RoadmapItem", back_populates="release")


class RoadmapItem(_Timestamps, Base):
    __tablename__ = "roadmap_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    rationale: Mapped[str | None] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String(20), default="feature")  # initiative | epic | feature
    status: Mapped[str] = mapped_column(String(20), default="proposed")  # proposed | committed | in-progress | done
    target_month: Mapped[str | None] = mapped_column(String(20))
    effort_size: Mapped[str | None] = mapped_column(String(5))
    reach: Mapped[int | None] = mapped_column(Integer)
    impact: Mapped[int | None] = mapped_column(Integer)
    confidence: Mapped[int | None] = mapped_column(Integer)
    effort: Mapped[int | None] = mapped_column(Integer)
    score: Mapped[float | None] = mapped_column(Float)
    # Plain column, not a foreign key: deleting a parent leaves children dangling
    parent_id: Mapped[int | None] = mapped_column(Integer, index=True)
    release_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("releases.id", ondelete="SET NULL"))

    problem_links: Mapped[list[RoadmapItemProblem]] = relationship(
        "RoadmapItemProblem", back_populates="roadmap_item", cascade="all, delete-orphan",
    )
    objective_links: Mapped[list[RoadmapItemObjective]] = relationship(
        "RoadmapItemObjective", back_populates="roadmap_item", cascade="all, delete-orphan",
    )
    release: Mapped[Release | None] = relationship("Release", back_populates="roadmap_items")
    prds: Mapped[list[Prd]] = relationship("Prd", back_populates="roadmap_item")


class RoadmapItemProblem(Base):
    __tablename__ = "roadmap_item_problems"
    __table_args__ = (UniqueConstraint("roadmap_item_id", "problem_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    roadmap_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("roadmap_items.id", ondelete="CASCADE"), nullable=False,
    )
    problem_id: Mapped[int] = mapped_column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), nullable=False)

    roadmap_item: Mapped[RoadmapItem] = relationship("RoadmapItem", back_populates="problem_links")
    problem: Mapped[Problem] = relationship("Problem", back_populates="roadmap_links")


class RoadmapItemObjective(Base):
    __tablename__ = "roadmap_item_objectives"
    __table_args__ = (UniqueConstraint("roadmap_item_id", "objective_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    roadmap_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("roadmap_items.id", ondelete="CASCADE"), nullable=False,
    )
    objective_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("objectives.id", ondelete="CASCADE"), nullable=False,
    )
    impact_to_objective: Mapped[int | None] = mapped_column(Integer)

    roadmap_item: Mapped[RoadmapItem] = relationship("RoadmapItem", back_populates="objective_links")
    objective: Mapped[Objective] = relationship("Objective", back_populates="roadmap_links")


# ---------------------------------------------------------------------------
# Delivery: PRDs
# ---------------------------------------------------------------------------


class Prd(_Timestamps, Base):
    __tablename__ = "prds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    roadmap_item_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("roadmap_items.id", ondelete="SET NULL"))
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft | review | ready
    summary: Mapped[str | None] = mapped_column(Text)
    problem_statement: Mapped[str | None] = mapped_column(Text)
    objectives: Mapped[str | None] = mapped_column(Text)
    user_stories: Mapped[str | None] = mapped_column(Text)
    design_asset_link: Mapped[str | None] = mapped_column(String(500))
    open_questions: Mapped[str | None] = mapped_column(Text)  # JSON list of {question, answer, accepted_as_risk}
    acceptance_criteria: Mapped[str | None] = mapped_column(Text)
    evidence: Mapped[str | None] = mapped_column(Text)

    roadmap_item: Mapped[RoadmapItem | None] = relationship("RoadmapItem", back_populates="prds")
    messages: Mapped[list[PrdMessage]] = relationship(
        "PrdMessage", back_populates="prd", cascade="all, delete-orphan", order_by="PrdMessage.id",
    )


class PrdMessage(Base):
    __tablename__ = "prd_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prd_id: Mapped[int] = mapped_column(Integer, ForeignKey("prds.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # user | assistant
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, server_default=func.now())

    prd: Mapped[Prd] = relationship("Prd", back_populates="messages")
