"""Pydantic request/response schemas for the Foundry API."""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

SignalSource = Literal["gong", "zendesk", "email", "slack", "other"]
Severity = Literal["critical", "high", "medium", "low"]
Frequency = Literal["daily", "weekly", "monthly", "rare"]
RenewalRisk = Literal["high", "medium", "low"]
SignalStatus = Literal["new", "processed", "discarded"]
ProblemStatus = Literal["draft", "shaped", "proposed", "accepted", "rejected"]
RetentionOrGrowth = Literal["retention", "growth", "both"]
ItemType = Literal["initiative", "epic", "feature"]
ItemStatus = Literal["proposed", "committed", "in-progress", "done"]
EffortSize = Literal["XS", "S", "M", "L", "XL"]
ReleaseStatus = Literal["planned", "active", "released"]
PrdStatus = Literal["draft", "review", "ready"]

RiceValue = Annotated[int, Field(ge=1, le=10)]


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


class _SignalMeta(BaseModel):
    source: SignalSource | None = None
    source_url: str | None = None
    customer: str | None = None
    arr: str | None = None
    severity: Severity | None = None
    frequency: Frequency | None = None
    renewal_risk: RenewalRisk | None = None


class SignalCreate(_SignalMeta):
    raw_text: str = Field(min_length=1)


class SignalUpdate(BaseModel):
    raw_text: str | None = Field(default=None, min_length=1)
    source: SignalSource | None = None
    source_url: str | None = None
    customer: str | None = None
    arr: str | None = None
    severity: Severity | None = None
    frequency: Frequency | None = None
    renewal_risk: RenewalRisk | None = None
    status: SignalStatus | None = None


class SignalLinkOut(BaseModel):
    link_id: int
    problem_id: int
    problem_title: str
    problem_status: str
    quote: str | None = None


class SignalOut(_SignalMeta):
    id: int
    raw_text: str
    status: str
    created_at: str | None = None
    updated_at: str | None = None
    problems: list[SignalLinkOut] = []


# ---------------------------------------------------------------------------
# Structured signal capture
# ---------------------------------------------------------------------------


class SpeakerQuote(BaseModel):
    speaker: str = ""
    quote: str = ""


class ConversationFields(BaseModel):
    context: str = ""
    quotes: list[SpeakerQuote] = []
    summary: str = ""


class DataFields(BaseModel):
    metric: str = ""
    current_value: str = ""
    expected: str = ""
    context: str = ""


class FeedbackFields(BaseModel):
    verbatim: str = ""
    feedback_type: str = ""
    score: str = ""
    context: str = ""


class CompetitiveFields(BaseModel):
    competitor: str = ""
    event: str = ""
    details: str = ""
    source_info: str = ""


class InternalFields(BaseModel):
    observation: str = ""
    origin: str = ""
    who_reported: str = ""


class ConversationCapture(BaseModel):
    type: Literal["conversation"] = "conversation"
    fields: ConversationFields = Field(default_factory=ConversationFields)


class DataCapture(BaseModel):
    type: Literal["data"] = "data"
    fields: DataFields = Field(default_factory=DataFields)


class FeedbackCapture(BaseModel):
    type: Literal["feedback"] = "feedback"
    fields: FeedbackFields = Field(default_factory=FeedbackFields)


class CompetitiveCapture(BaseModel):
    type: Literal["competitive"] = "competitive"
    fields: CompetitiveFields = Field(default_factory=CompetitiveFields)


class InternalCapture(BaseModel):
    type: Literal["internal"] = "internal"
    fields: InternalFields = Field(default_factory=InternalFields)


Capture = Annotated[
    Union[ConversationCapture, DataCapture, FeedbackCapture, CompetitiveCapture, InternalCapture],
    Field(discriminator="type"),
]


class SignalCaptureCreate(_SignalMeta):
    capture: Capture


# ---------------------------------------------------------------------------
# Problems
# ---------------------------------------------------------------------------


class ProblemCreate(BaseModel):
    title: str = Field(min_length=1)
    statement: str = Field(min_length=1)
    who_affected: str | None = None
    workflow_block: str | None = None
    business_impact: str | None = None
    retention_or_growth: RetentionOrGrowth | None = None
    severity: Severity | None = None
    frequency: Frequency | None = None


class ProblemUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    statement: str | None = Field(default=None, min_length=1)
    who_affected: str | None = None
    workflow_block: str | None = None
    business_impact: str | None = None
    retention_or_growth: RetentionOrGrowth | None = None
    severity: Severity | None = None
    frequency: Frequency | None = None
    status: ProblemStatus | None = None


class ProblemSignalOut(BaseModel):
    link_id: int
    signal_id: int
    customer: str | None = None
    source: str | None = None
    quote: str | None = None


class ProblemRoadmapOut(BaseModel):
    link_id: int
    roadmap_item_id: int
    title: str
    type: str
    status: str


class ProblemOut(BaseModel):
    id: int
    title: str
    statement: str
    who_affected: str | None = None
    workflow_block: str | None = None
    business_impact: str | None = None
    retention_or_growth: str | None = None
    severity: str | None = None
    frequency: str | None = None
    status: str
    created_at: str | None = None
    updated_at: str | None = None
    signals: list[ProblemSignalOut] = []
    roadmap_items: list[ProblemRoadmapOut] = []


# ---------------------------------------------------------------------------
# Objectives & releases
# ---------------------------------------------------------------------------


class ObjectiveCreate(BaseModel):
    name: str = Field(min_length=1)
    timeframe: str | None = None
    metric: str | None = None
    weight: float = Field(default=1.0, ge=0.1, le=10)


class ObjectiveUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    timeframe: str | None = None
    metric: str | None = None
    weight: float | None = Field(default=None, ge=0.1, le=10)


class ObjectiveOut(BaseModel):
    id: int
    name: str
    timeframe: str | None = None
    metric: str | None = None
    weight: float
    roadmap_item_ids: list[int] = []


class ReleaseCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    target_date: str | None = None
    status: ReleaseStatus = "planned"


class ReleaseUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    target_date: str | None = None
    status: ReleaseStatus | None = None


class ReleaseOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    target_date: str | None = None
    status: str
    roadmap_item_ids: list[int] = []


# ---------------------------------------------------------------------------
# Roadmap items
# ---------------------------------------------------------------------------


class RoadmapItemCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    rationale: str | None = None
    type: ItemType = "feature"
    status: ItemStatus = "proposed"
    target_month: str | None = None
    effort_size: EffortSize | None = None
    reach: RiceValue | None = None
    impact: RiceValue | None = None
    confidence: RiceValue | None = None
    effort: RiceValue | None = None
    parent_id: int | None = None
    release_id: int | None = None


class RoadmapItemUpdate(BaseModel):
    """Partial update: only fields present in the request body are applied (an explicit null clears)."""
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    rationale: str | None = None
    type: ItemType | None = None
    status: ItemStatus | None = None
    target_month: str | None = None
    effort_size: EffortSize | None = None
    reach: RiceValue | None = None
    impact: RiceValue | None = None
    confidence: RiceValue | None = None
    effort: RiceValue | None = None
    parent_id: int | None = None
    release_id: int | None = None


class ItemProblemOut(BaseModel):
    link_id: int
    problem_id: int
    title: str
    status: str


class ItemObjectiveOut(BaseModel):
    link_id: int
    objective_id: int
    name: str
    impact_to_objective: int | None = None


class RoadmapItemOut(BaseModel):
    id: int
    title: str
    description: str | None = None
    rationale: str | None = None
    type: str
    status: str
    target_month: str | None = None
    effort_size: str | None = None
    reach: int | None = None
    impact: int | None = None
    confidence: int | None = None
    effort: int | None = None
    score: float | None = None
    parent_id: int | None = None
    release_id: int | None = None
    problems: list[ItemProblemOut] = []
    objectives: list[ItemObjectiveOut] = []


class ReleaseAssign(BaseModel):
    release_id: int | None = None


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------


class SignalProblemLink(BaseModel):
    signal_id: int
    quote: str | None = None


class ItemProblemLink(BaseModel):
    problem_id: int


class ItemObjectiveLink(BaseModel):
    objective_id: int
    impact_to_objective: RiceValue | None = None


class LinkOut(BaseModel):
    id: int


# ---------------------------------------------------------------------------
# PRDs
# ---------------------------------------------------------------------------


class OpenQuestion(BaseModel):
    question: str
    answer: str | None = None
    accepted_as_risk: bool | None = None


class PrdCreate(BaseModel):
    title: str = Field(min_length=1)
    roadmap_item_id: int | None = None
    summary: str | None = None
    problem_statement: str | None = None
    objectives: str | None = None
    user_stories: str | None = None
    design_asset_link: str | None = None
    open_questions: list[OpenQuestion] | None = None
    acceptance_criteria: str | None = None
    evidence: str | None = None


class PrdUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    roadmap_item_id: int | None = None
    summary: str | None = None
    problem_statement: str | None = None
    objectives: str | None = None
    user_stories: str | None = None
    design_asset_link: str | None = None
    open_questions: list[OpenQuestion] | None = None
    acceptance_criteria: str | None = None
    evidence: str | None = None
    status: PrdStatus | None = None


class PrdMessageOut(BaseModel):
    id: int
    role: str
    content: str
    created_at: str | None = None


class PrdOut(BaseModel):
    id: int
    title: str
    status: str
    roadmap_item_id: int | None = None
    summary: str | None = None
    problem_statement: str | None = None
    objectives: str | None = None
    user_stories: str | None = None
    design_asset_link: str | None = None
    open_questions: list[OpenQuestion] = []
    acceptance_criteria: str | None = None
    evidence: str | None = None
    gaps: list[str] = []
    messages: list[PrdMessageOut] = []


class PrdChatIn(BaseModel):
    message: str = Field(min_length=1)


class PrdChatOut(BaseModel):
    reply: str
    messages: list[PrdMessageOut]


# ---------------------------------------------------------------------------
# AI flows
# ---------------------------------------------------------------------------


class SuggestedProblem(BaseModel):
    title: str = Field(min_length=1)
    statement: str = Field(min_length=1)
    who_affected: str | None = None
    severity: Severity | None = None


class AcceptProblemsIn(BaseModel):
    problems: list[SuggestedProblem] = Field(min_length=1)
    quotes: list[str] = []


class AcceptProblemsOut(BaseModel):
    problem_ids: list[int]


class ApplyScoreIn(BaseModel):
    reach: RiceValue
    impact: RiceValue
    confidence: RiceValue
    effort: RiceValue


# ---------------------------------------------------------------------------
# Graph, gating, stats, import
# ---------------------------------------------------------------------------


class GatingFailureOut(BaseModel):
    error: Literal["gating"] = "gating"
    missing: list[str]
    message: str


class GraphNodeOut(BaseModel):
    id: str
    type: str
    entity_id: int
    label: str
    status: str | None = None
    is_orphan: bool = False
    meta: dict[str, Any] = {}


class GraphEdgeOut(BaseModel):
    id: str
    source: str
    target: str
    type: str


class GraphOut(BaseModel):
    nodes: list[GraphNodeOut]
    edges: list[GraphEdgeOut]


class OrphanCountsOut(BaseModel):
    problems: int
    initiatives: int
    epics: int
    features: int


class StatsOut(BaseModel):
    totals: dict[str, int]
    signals_by_status: dict[str, int]
    problems_by_status: dict[str, int]
    roadmap_by_type: dict[str, int]
    roadmap_by_status: dict[str, int]
    orphans: OrphanCountsOut


class ImportResult(BaseModel):
    imported: int
    skipped: int
    duplicates: int
