"""PRD assistant: system prompt, readiness gaps and one persisted chat turn."""
from __future__ import annotations

import logging
from typing import Any

from foundry.models import Prd, PrdMessage
from foundry.scorer import LLMClient
from foundry.utils import json_parse

log = logging.getLogger(__name__)

# Rendered in this order; empty sections are left out
PRD_SECTIONS: list[tuple[str, str]] = [
    ("Summary", "summary"),
    ("Problem Statement", "problem_statement"),
    ("Objectives", "objectives"),
    ("User Stories", "user_stories"),
    ("Acceptance Criteria", "acceptance_criteria"),
    ("Open Questions", "open_questions"),
    ("Evidence", "evidence"),
    ("Design Asset", "design_asset_link"),
]

# Keeps the prompt bounded for long conversations
HISTORY_LIMIT = 40


def build_prd_system_prompt(prd: Prd) -> str:
    sections = "\n\n".join(
        f"**{label}:** {getattr(prd, attr)}" for label, attr in PRD_SECTIONS if getattr(prd, attr)
    )
    roadmap_context = ""
    item = prd.roadmap_item
    if item is not None:
        score = item.score if item.score is not None else "unscored"
        roadmap_context = (
            f'\nLinked Roadmap Item: "{item.title}" ({item.type}, score: {score})\n'
            f"Description: {item.description or 'none'}"
        )

    return f"""\
You are a product management assistant helping write and refine a PRD (Product Requirements Document).

CURRENT PRD: "{prd.title}" (Status: {prd.status})
{roadmap_context}

CURRENT SECTIONS:
{sections or "(All sections are empty)"}

YOUR ROLE:
- Help the PM write, refine, and complete this PRD
- When suggesting changes to sections, format them clearly with the section name
- When drafting user stories, use the format: "As a [role], I want to [action], so that [benefit]"
- When drafting acceptance criteria, use Given/When/Then format
- Flag assumptions explicitly with [Assumption] tags
- If evidence is referenced, cite it. If not, label claims as [Needs Evidence]

PRD READINESS RULES:
- A PRD is "ready" when all open questions are either answered or accepted as risks, AND acceptance criteria exist
- Help the PM get to "ready" status by identifying gaps

RESPONSE GUIDELINES:
- Be concise and actionable
- When proposing section edits, clearly indicate which section and what the new content should be
- Use markdown formatting for clarity
- Prefix suggested section content with "**[Section: Name]**" so the PM knows where to apply it"""


def open_questions(prd: Prd) -> list[dict[str, Any]]:
    parsed = json_parse(prd.open_questions, [])
    if not isinstance(parsed, list):
        return []
    return [q for q in parsed if isinstance(q, dict) and q.get("question")]


def prd_gaps(prd: Prd) -> list[str]:
    """What still keeps *prd* from being ready. Advisory; status changes are not blocked."""
    gaps: list[str] = []
    if not (prd.acceptance_criteria or "").strip():
        gaps.append("Add acceptance criteria")
    for q in open_questions(prd):
        if not (q.get("answer") or "").strip() and not q.get("accepted_as_risk"):
            gaps.append(f"Resolve open question: {q['question']}")
    return gaps


async def send_prd_message(session, prd: Prd, content: str, client: LLMClient) -> PrdMessage:
    """Append the user's message, ask the assistant, persist its reply (caller must commit).

    *prd* must have ``messages`` and ``roadmap_item`` loaded.  If the LLM call
    fails nothing is added to the session.
    """
    history = [{"role": m.role, "content": m.content} for m in prd.messages][-HISTORY_LIMIT:]
    history.append({"role": "user", "content": content})
    reply = await client.chat(build_prd_system_prompt(prd), history)

    session.add(PrdMessage(prd=prd, role="user", content=content))
    assistant = PrdMessage(prd=prd, role="assistant", content=reply)
    session.add(assistant)
    session.flush()
    log.debug("PRD %s chat turn stored (%d chars reply)", prd.id, len(reply))
    return assistant
