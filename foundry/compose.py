"""Structured signal capture: turn a typed capture form into a signal's raw text.

Each capture type has its own field set.  ``validate_capture`` reports the
first required field that is missing; ``compose_raw_text`` renders the fields
as the plain text stored on the signal and later sent to the extractor.
"""
from __future__ import annotations

from foundry.schemas import (
    CompetitiveCapture,
    ConversationCapture,
    DataCapture,
    FeedbackCapture,
    InternalCapture,
)

CaptureType = ConversationCapture | DataCapture | FeedbackCapture | CompetitiveCapture | InternalCapture

# Source tag stored on the signal when the capture form has no source picker
DEFAULT_SOURCES: dict[str, str | None] = {
    "conversation": None,
    "data": "other",
    "feedback": "other",
    "competitive": "other",
    "internal": "other",
}


def _compose_conversation(c: ConversationCapture) -> str:
    f = c.fields
    parts: list[str] = []
    if f.context.strip():
        parts.append(f"[Context: {f.context.strip()}]")
    for q in f.quotes:
        if q.quote.strip():
            parts.append(f'"{q.quote.strip()}" - {q.speaker.strip() or "Unknown"}')
    if f.summary.strip():
        parts.append(f"[Takeaway: {f.summary.strip()}]")
    return "\n\n".join(parts)


def _compose_data(c: DataCapture) -> str:
    f = c.fields
    parts: list[str] = []
    if f.metric.strip():
        line = f"Metric: {f.metric.strip()}"
        if f.current_value.strip():
            line += f"\nCurrent: {f.current_value.strip()}"
            if f.expected.strip():
                line += f" (expected: {f.expected.strip()})"
        parts.append(line)
    if f.context.strip():
        parts.append(f.context.strip())
    return "\n\n".join(parts)


def _compose_feedback(c: FeedbackCapture) -> str:
    f = c.fields
    parts: list[str] = []
    header = [h for h in (f.feedback_type, f"Score: {f.score.strip()}" if f.score.strip() else "") if h]
    if header:
        parts.append(f"[Feedback: {', '.join(header)}]")
    if f.verbatim.strip():
        parts.append(f'"{f.verbatim.strip()}"')
    if f.context.strip():
        parts.append(f"[Context: {f.context.strip()}]")
    return "\n\n".join(parts)


def _compose_competitive(c: CompetitiveCapture) -> str:
    f = c.fields
    parts: list[str] = []
    if f.competitor.strip():
        line = f"Competitor: {f.competitor.strip()}"
        if f.event:
            line += f"\nSignal type: {f.event}"
        parts.append(line)
    if f.details.strip():
        parts.append(f.details.strip())
    if f.source_info.strip():
        parts.append(f"[Source: {f.source_info.strip()}]")
    return "\n\n".join(parts)


def _compose_internal(c: InternalCapture) -> str:
    f = c.fields
    parts: list[str] = []
    meta = []
    if f.origin.strip():
        meta.append(f"[Origin: {f.origin.strip()}]")
    if f.who_reported.strip():
        meta.append(f"[Reported by: {f.who_reported.strip()}]")
    if meta:
        parts.append("\n".join(meta))
    if f.observation.strip():
        parts.append(f.observation.strip())
    return "\n\n".join(parts)


_COMPOSERS = {
    "conversation": _compose_conversation,
    "data": _compose_data,
    "feedback": _compose_feedback,
    "competitive": _compose_competitive,
    "internal": _compose_internal,
}


def compose_raw_text(capture: CaptureType) -> str:
    return _COMPOSERS[capture.type](capture)


def validate_capture(capture: CaptureType) -> str | None:
    """First missing-field message for *capture*, or None when it is complete."""
    f = capture.fields
    if isinstance(capture, ConversationCapture):
        if not any(q.quote.strip() for q in f.quotes):
            return "Add at least one quote"
    elif isinstance(capture, DataCapture):
        if not f.metric.strip():
            return "Metric name is required"
    elif isinstance(capture, FeedbackCapture):
        if not f.verbatim.strip():
            return "Paste the feedback text"
    elif isinstance(capture, CompetitiveCapture):
        if not f.competitor.strip():
            return "Competitor name is required"
        if not f.details.strip():
            return "Details are required"
    elif isinstance(capture, InternalCapture):
        if not f.observation.strip():
            return "Observation is required"
    return None
