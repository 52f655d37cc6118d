"""Signal analysis: ask the LLM for quotes, draft problems and follow-up questions.

The output is a suggestion only.  Nothing is written until the PM accepts one
or more suggested problems (see ``services.accept_suggested_problems``).
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from foundry.scorer import LLMClient
from foundry.utils import pick

log = logging.getLogger(__name__)

SEVERITIES = ("critical", "high", "medium", "low")
SENTIMENTS = ("frustrated", "neutral", "positive")

EXTRACTION_PROMPT = """\
You are a product management assistant analyzing voice-of-customer (VoC) feedback.

Analyze the signal and extract:
1. **Quotes**: Key verbatim snippets that express pain, need, or impact. Only extract direct quotes from the text.
2. **Suggested Problems**: Draft problem statements that this signal provides evidence for. Use the format \
"When [user] tries to [action], they [pain] because [cause]". Each problem should be specific and actionable.
3. **Missing Metadata**: Identify important context that's missing and suggest questions to ask the PM. \
Only ask about things that would meaningfully impact prioritization (e.g., customer size, frequency, business impact).
4. **Customer Sentiment**: Overall tone of the feedback.

IMPORTANT RULES:
- Every quote must be verbatim text from the signal. Do not paraphrase.
- Every suggested problem must be traceable to evidence in the signal.
- If something is inferred rather than stated, note it in the problem statement.
- Be concise. Quality over quantity.

Respond with ONLY valid JSON:
{
  "quotes": [{"text": "<verbatim quote>", "theme": "<short theme label>"}],
  "suggested_problems": [
    {"title": "<short title>", "statement": "<problem statement>",
     "who_affected": "<who>", "severity": "critical|high|medium|low"}
  ],
  "missing_metadata": [{"field": "<field name>", "question": "<question for the PM>"}],
  "customer_sentiment": "frustrated|neutral|positive"
}
"""

_METADATA_FIELDS: list[tuple[str, str]] = [
    ("Source", "source"),
    ("Customer", "customer"),
    ("ARR", "arr"),
    ("Severity", "severity"),
    ("Frequency", "frequency"),
]


@dataclass
class Quote:
    text: str
    theme: str = ""


@dataclass
class ProblemSuggestion:
    title: str
    statement: str
    who_affected: str | None = None
    severity: str | None = None


@dataclass
class MetadataQuestion:
    field: str
    question: str


@dataclass
class SignalInsights:
    quotes: list[Quote] = field(default_factory=list)
    suggested_problems: list[ProblemSuggestion] = field(default_factory=list)
    missing_metadata: list[MetadataQuestion] = field(default_factory=list)
    customer_sentiment: str = "neutral"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_signal_prompt(signal) -> str:
    lines = ["Known metadata:"]
    for label, attr in _METADATA_FIELDS:
        lines.append(f"- {label}: {getattr(signal, attr, None) or 'unknown'}")
    lines.append(f'\nSignal text:\n"""\n{signal.raw_text}\n"""')
    return "\n".join(lines)


def _items(raw: dict[str, Any], *keys: str) -> list[dict[str, Any]]:
    # Accept snake_case or camelCase keys
    for key in keys:
        value = raw.get(key)
        if isinstance(value, list):
            return [v for v in value if isinstance(v, dict)]
    return []


def _text_or_none(value: Any) -> str | None:
    text = str(value).strip() if value else ""
    return text or None


def validate_extraction(raw: dict[str, Any]) -> SignalInsights:
    """Normalize an LLM extraction. Entries without their required text are dropped."""
    quotes = [
        Quote(text=str(q["text"]).strip(), theme=str(q.get("theme") or ""))
        for q in _items(raw, "quotes")
        if str(q.get("text") or "").strip()
    ]
    problems = [
        ProblemSuggestion(
            title=str(p["title"]).strip(),
            statement=str(p["statement"]).strip(),
            who_affected=_text_or_none(p.get("who_affected") or p.get("whoAffected")),
            severity=pick(p.get("severity"), SEVERITIES),
        )
        for p in _items(raw, "suggested_problems", "suggestedProblems")
        if str(p.get("title") or "").strip() and str(p.get("statement") or "").strip()
    ]
    questions = [
        MetadataQuestion(field=str(m["field"]), question=str(m.get("question") or ""))
        for m in _items(raw, "missing_metadata", "missingMetadata")
        if m.get("field")
    ]
    sentiment = raw.get("customer_sentiment", raw.get("customerSentiment"))
    return SignalInsights(
        quotes=quotes,
        suggested_problems=problems,
        missing_metadata=questions,
        customer_sentiment=pick(sentiment, SENTIMENTS, "neutral"),
    )


async def extract_signal_insights(signal, client: LLMClient) -> SignalInsights:
    raw = await client.call(EXTRACTION_PROMPT, build_signal_prompt(signal))
    insights = validate_extraction(raw)
    log.info(
        "Analyzed signal %s: %d quotes, %d suggested problems",
        signal.id, len(insights.quotes), len(insights.suggested_problems),
    )
    return insights
