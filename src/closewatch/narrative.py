"""Narrative text around the deterministic close figures.

Prompts hand the model only numbers the engines already computed, and every
call degrades to fixed fallback text when the model is unavailable or its
reply cannot be parsed. Nothing here feeds back into a score.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import openai
import structlog

from closewatch.accruals import AccrualCandidate
from closewatch.clients.openai_client import LLMConfigurationError, OpenAIClient, OpenAIResponse
from closewatch.config import get_settings
from closewatch.journal import ScopeSummary
from closewatch.models import FlaggedEntry
from closewatch.overview import CloseOverview, PeriodStats

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a finance controller assistant. You summarize deterministic outputs "
    "without inventing numbers or percentages."
)

JE_FALLBACK = "AI unavailable. Deterministic flags remain accurate."
ACCRUAL_FALLBACK = "AI unavailable. Deterministic accrual guidance shown."
CLOSE_FALLBACK = "AI unavailable. Use deterministic readiness score shown on the dashboard."
DEFAULT_NEXT_STEPS = ("Review supporting docs", "Confirm approval and reversal timing")

_FENCE_PATTERN = re.compile(r"```(?:json)?")


class ChatClient(Protocol):
    async def generate(self, system_prompt: str, prompt: str) -> OpenAIResponse: ...


@dataclass(frozen=True)
class EntryExplanation:
    je_id: str
    summary: str
    text: str


@dataclass(frozen=True)
class JournalNarrative:
    daily_narrative: str
    explanations: list[EntryExplanation] = field(default_factory=list)
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "dailyNarrative": self.daily_narrative,
            "explanations": [
                {"jeId": e.je_id, "summary": e.summary, "text": e.text}
                for e in self.explanations
            ],
        }


@dataclass(frozen=True)
class AccrualMemo:
    vendor_id: str
    explanation: str
    memo: str = ""
    used_fallback: bool = False


@dataclass(frozen=True)
class CloseSummary:
    summary: str
    used_fallback: bool = False


def parse_json_reply(text: str) -> dict[str, Any]:
    """Parse a model reply, tolerating markdown code fences."""
    parsed = json.loads(_FENCE_PATTERN.sub("", text.strip()))
    if not isinstance(parsed, dict):
        raise ValueError("model reply is not a JSON object")
    return parsed


def _format_amount(value: Any) -> str:
    if value is None:
        return "n/a"
    return f"{float(value):.2f}".rstrip("0").rstrip(".")


# =============================================================================
# PROMPTS
# =============================================================================


def build_journal_prompt(
    scope_label: str, flagged: Sequence[FlaggedEntry], summary: ScopeSummary | None
) -> str:
    payload = [
        {
            "jeId": f.entry.je_id,
            "account": f.entry.account,
            "costCenter": f.entry.cost_center,
            "amount": float(f.entry.net_amount),
            "flags": [flag.value for flag in f.flags],
            "description": f.entry.description,
            "context": f.context.to_dict(),
        }
        for f in flagged
    ]
    counts = summary.to_dict()["flaggedCounts"] if summary else {}
    return f"""
You are assisting a controller reviewing journal entry flags for {scope_label}.
Only use the provided data; do not invent new amounts.
Provide remediation-focused guidance.

Daily context:
- Total entries: {summary.total_entries if summary else 'n/a'}
- Flagged counts: {json.dumps(counts)}
- High risk: {summary.high_risk_count if summary else 0}

Flagged entries JSON:
{json.dumps(payload, indent=2)}

Respond in JSON with the shape:
{{
  "narrative": "overall 2-3 sentence narrative summarizing the risks and themes",
  "items": [
    {{ "jeId": "...", "summary": "1 sentence theme", "details": "1-2 sentences describing why flagged", "nextSteps": ["short remediation step 1", "step 2"] }}
  ]
}}
""".strip()


def build_accrual_prompt(candidate: AccrualCandidate, credit_account: str) -> str:
    invoices = "\n".join(
        f"{inv.invoice_date.isoformat()} {_format_amount(inv.amount)} "
        f"{inv.status.value} ({inv.period})"
        for inv in candidate.recent_invoices
    )
    return f"""
You create a concise AI explanation for an accrual recommendation. Use only the data provided.
Respond in JSON: {{ "explanation": "2 sentences", "memo": "short JE memo" }}.

Vendor: {candidate.vendor_name}
Cadence: {candidate.cadence.value}
Expected missing invoice: {str(candidate.expected_missing).lower()}
Suggested accrual: {_format_amount(candidate.suggested_accrual)} {candidate.currency}
Average amount: {_format_amount(candidate.average_amount)}
Confidence score: {candidate.confidence}%
Debit account: {candidate.gl_account}
Credit account: {credit_account}
Recent invoices:
{invoices}
""".strip()


def build_close_summary_prompt(
    period: str, overview: CloseOverview, trend: Sequence[PeriodStats] = ()
) -> str:
    trend_text = ", ".join(f"{row.period}:{row.readiness}%" for row in trend) or "n/a"
    return f"""
Generate a concise controller-friendly month-end close summary. Use only provided numbers; no new figures.
Respond in JSON: {{ "summary": "3-4 sentence narrative with key observations and next steps, mentioning month-to-month trends" }}.

Period: {period}
Readiness score: {overview.readiness_score}%
Remediation score: {overview.remediation_score}%
JE: {overview.je.reviewed_days}/{overview.je.total_days} days reviewed, {overview.je.ai_explained_days} days have AI narratives.
Accruals: {overview.accruals.with_ai_memo}/{overview.accruals.expected_missing} expected missing invoices have memos, total vendors {overview.accruals.total_vendors}.
Open JE days: {', '.join(d.isoformat() for d in overview.open_days) or 'none'}
Open vendors: {', '.join(overview.open_vendors) or 'none'}
Monthly trend readiness: {trend_text}
""".strip()


def deterministic_explanations(flagged: Sequence[FlaggedEntry]) -> list[EntryExplanation]:
    """Per-entry explanations built from the flags alone."""
    explanations = []
    for f in flagged:
        if not f.is_flagged:
            continue
        names = [flag.value for flag in f.flags]
        details = (
            f"Flagged deterministically due to {' & '.join(names)}. "
            f"Amount: {_format_amount(f.entry.magnitude)}."
        )
        explanations.append(
            EntryExplanation(
                je_id=f.entry.je_id,
                summary=f"{', '.join(names)} on {f.entry.account}",
                text=f"{details}\nNext steps: {'; '.join(DEFAULT_NEXT_STEPS)}",
            )
        )
    return explanations


# =============================================================================
# SERVICE
# =============================================================================


class NarrativeService:
    """Asks the model for narrative text and falls back when it cannot."""

    def __init__(self, client: ChatClient | None = None, credit_account: str | None = None):
        settings = get_settings()
        self._client = client
        self._credit_account = credit_account or settings.accrual_credit_account

    def _get_client(self) -> ChatClient:
        if self._client is None:
            self._client = OpenAIClient()
        return self._client

    async def _ask(self, prompt: str) -> dict[str, Any]:
        response = await self._get_client().generate(SYSTEM_PROMPT, prompt)
        return parse_json_reply(response.content)

    async def explain_journal(
        self,
        scope_label: str,
        flagged: Sequence[FlaggedEntry],
        summary: ScopeSummary | None = None,
    ) -> JournalNarrative:
        """Narrative and per-entry explanations for a review scope."""
        narrative = ""
        items: list[dict[str, Any]] = []
        used_fallback = False
        try:
            parsed = await self._ask(build_journal_prompt(scope_label, flagged, summary))
            narrative = str(parsed.get("narrative", ""))
            items = [item for item in parsed.get("items") or [] if isinstance(item, dict)]
        except (openai.APIError, LLMConfigurationError, ValueError) as exc:
            logger.warning("journal_narrative_failed", scope=scope_label, error=str(exc))
            narrative = JE_FALLBACK
            used_fallback = True

        if not items:
            return JournalNarrative(
                daily_narrative=narrative,
                explanations=deterministic_explanations(flagged),
                used_fallback=used_fallback,
            )

        explanations = []
        for item in items:
            steps = item.get("nextSteps") or []
            text = str(item.get("details", ""))
            if steps:
                text += "\nNext steps: " + "; ".join(str(s) for s in steps)
            explanations.append(
                EntryExplanation(
                    je_id=str(item.get("jeId", "")),
                    summary=str(item.get("summary", "")),
                    text=text,
                )
            )
        return JournalNarrative(daily_narrative=narrative, explanations=explanations)

    async def explain_accrual(self, candidate: AccrualCandidate) -> AccrualMemo:
        """Explanation and journal memo for one accrual suggestion."""
        try:
            parsed = await self._ask(build_accrual_prompt(candidate, self._credit_account))
        except (openai.APIError, LLMConfigurationError, ValueError) as exc:
            logger.warning(
                "accrual_narrative_failed", vendor_id=candidate.vendor_id, error=str(exc)
            )
            return AccrualMemo(
                vendor_id=candidate.vendor_id,
                explanation=ACCRUAL_FALLBACK,
                used_fallback=True,
            )
        return AccrualMemo(
            vendor_id=candidate.vendor_id,
            explanation=str(parsed.get("explanation", "")),
            memo=str(parsed.get("memo", "")),
        )

    async def summarize_close(
        self, period: str, overview: CloseOverview, trend: Sequence[PeriodStats] = ()
    ) -> CloseSummary:
        try:
            parsed = await self._ask(build_close_summary_prompt(period, overview, trend))
        except (openai.APIError, LLMConfigurationError, ValueError) as exc:
            logger.warning("close_summary_failed", period=period, error=str(exc))
            return CloseSummary(summary=CLOSE_FALLBACK, used_fallback=True)
        return CloseSummary(summary=str(parsed.get("summary", "")))
