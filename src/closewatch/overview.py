"""Close readiness aggregation.

Folds a period's flagged entries, accrual candidates and the caller's review
progress into one readiness view. Pure reduction, cheap enough to recompute
on every progress change.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import structlog

from closewatch.accruals import AccrualCandidate
from closewatch.indexes import JournalIndexCache
from closewatch.journal import JournalRules, entries_for_period, flag_entries
from closewatch.models import (
    DecisionStatus,
    FlaggedEntry,
    InputValidationError,
    JEFlag,
    JournalEntry,
    RiskLevel,
    parse_date,
)
from closewatch.progress import CloseProgress, ProgressSnapshot
from closewatch.stats import round_half_up

logger = structlog.get_logger(__name__)

# Dispositions that count toward the remediation score. IGNORED is left out
# by default; callers that treat an ignore as a resolution pass their own set.
REMEDIATION_RESOLVED: frozenset[DecisionStatus] = frozenset(
    {DecisionStatus.ESCALATED, DecisionStatus.REMEDIATED}
)
# Dispositions that close out a day.
DAY_RESOLVED: frozenset[DecisionStatus] = frozenset(
    {DecisionStatus.ESCALATED, DecisionStatus.IGNORED, DecisionStatus.REMEDIATED}
)


@dataclass(frozen=True)
class JournalProgress:
    total_days: int
    reviewed_days: int
    ai_explained_days: int


@dataclass(frozen=True)
class AccrualProgress:
    total_vendors: int
    expected_missing: int
    with_ai_memo: int


@dataclass(frozen=True)
class CloseOverview:
    """Period-level readiness view."""

    je: JournalProgress
    accruals: AccrualProgress
    total_entries: int
    flagged_count: int
    resolved_count: int
    readiness_score: int
    remediation_score: int
    open_days: list[date] = field(default_factory=list)
    open_vendors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "je": {
                "totalDays": self.je.total_days,
                "reviewedDays": self.je.reviewed_days,
                "aiExplainedDays": self.je.ai_explained_days,
            },
            "accruals": {
                "totalVendors": self.accruals.total_vendors,
                "expectedMissing": self.accruals.expected_missing,
                "withAiMemo": self.accruals.with_ai_memo,
            },
            "totalEntries": self.total_entries,
            "flaggedCount": self.flagged_count,
            "resolvedCount": self.resolved_count,
            "readinessScore": self.readiness_score,
            "remediationScore": self.remediation_score,
            "openDays": [d.isoformat() for d in self.open_days],
            "openVendors": list(self.open_vendors),
        }


@dataclass(frozen=True)
class PeriodStats:
    """One row of the month-over-month trend."""

    period: str
    total_entries: int
    flagged: int
    high_risk: int
    remediation: int
    readiness: int
    per_flag: dict[JEFlag, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "totalEntries": self.total_entries,
            "flagged": self.flagged,
            "highRisk": self.high_risk,
            "remediation": self.remediation,
            "readiness": self.readiness,
            "perFlag": {flag.value: count for flag, count in self.per_flag.items()},
        }


def readiness_score(total_entries: int, flagged_count: int) -> int:
    """Share of entries that needed no attention, 0 for an empty period."""
    if not total_entries:
        return 0
    return round_half_up(100 * (total_entries - flagged_count) / total_entries)


def remediation_score(flagged_count: int, resolved_count: int) -> int:
    """Share of flagged entries with a disposition, 100 when nothing is flagged."""
    if not flagged_count:
        return 100
    return round_half_up(100 * resolved_count / flagged_count)


def _decision(decisions: Mapping[str, DecisionStatus], je_id: str) -> DecisionStatus:
    return decisions.get(je_id, DecisionStatus.PENDING)


def compute_close_overview(
    period_dates: Iterable[date | str],
    candidates: Sequence[AccrualCandidate],
    progress: ProgressSnapshot | CloseProgress,
    flagged_entries: Sequence[FlaggedEntry],
    decisions: Mapping[str, DecisionStatus] | None = None,
    resolved_statuses: Collection[DecisionStatus] = REMEDIATION_RESOLVED,
    strict: bool = False,
) -> CloseOverview:
    """Compute the readiness view for one period.

    Args:
        period_dates: Posting dates belonging to the period.
        candidates: Accrual candidates for the period.
        progress: Review progress, read once as a snapshot.
        flagged_entries: Flagging results for the whole period.
        decisions: Entry id to disposition. Defaults to the snapshot's decisions.
        resolved_statuses: Dispositions that count toward the remediation score.
        strict: Reject decisions for entries that are not in ``flagged_entries``.

    Returns:
        CloseOverview with scores, progress counts and open items.
    """
    snapshot = progress.snapshot() if isinstance(progress, CloseProgress) else progress
    if decisions is None:
        decisions = snapshot.decisions

    if strict:
        known = {f.entry.je_id for f in flagged_entries}
        unknown = sorted(je_id for je_id in decisions if je_id not in known)
        if unknown:
            raise InputValidationError(
                f"decisions reference unknown entries: {', '.join(unknown)}",
                "decisions",
                unknown,
            )

    dates = sorted({parse_date(d, "date") for d in period_dates})
    total_days = len(dates)
    reviewed_days = sum(1 for d in dates if d in snapshot.reviewed_dates)
    ai_explained_days = sum(1 for d in dates if d in snapshot.je_explained_dates)

    missing = [c.vendor_id for c in candidates if c.expected_missing]
    with_memo = sum(1 for vendor_id in missing if vendor_id in snapshot.memo_vendors)
    open_vendors = [vendor_id for vendor_id in missing if vendor_id not in snapshot.memo_vendors]

    flagged = [f for f in flagged_entries if f.is_flagged]
    resolved = [f for f in flagged if _decision(decisions, f.entry.je_id) in resolved_statuses]

    unresolved_dates = {
        f.entry.posting_date
        for f in flagged
        if _decision(decisions, f.entry.je_id) not in DAY_RESOLVED
    }
    open_days = [d for d in dates if d in unresolved_dates]

    overview = CloseOverview(
        je=JournalProgress(
            total_days=total_days,
            reviewed_days=reviewed_days,
            ai_explained_days=ai_explained_days,
        ),
        accruals=AccrualProgress(
            total_vendors=len(candidates),
            expected_missing=len(missing),
            with_ai_memo=with_memo,
        ),
        total_entries=len(flagged_entries),
        flagged_count=len(flagged),
        resolved_count=len(resolved),
        readiness_score=readiness_score(len(flagged_entries), len(flagged)),
        remediation_score=remediation_score(len(flagged), len(resolved)),
        open_days=open_days,
        open_vendors=open_vendors,
    )

    logger.info(
        "close_overview_computed",
        days=total_days,
        entries=overview.total_entries,
        flagged=overview.flagged_count,
        readiness=overview.readiness_score,
        remediation=overview.remediation_score,
        open_days=len(open_days),
        open_vendors=len(open_vendors),
    )
    return overview


def build_period_stats(
    period_list: Iterable[str],
    history: Sequence[JournalEntry],
    decisions: Mapping[str, DecisionStatus] | None = None,
    rules: JournalRules | None = None,
    resolved_statuses: Collection[DecisionStatus] = REMEDIATION_RESOLVED,
    index_cache: JournalIndexCache | None = None,
) -> list[PeriodStats]:
    """Readiness and remediation per period for the month-over-month trend.

    Pass the caller's ``index_cache`` to reuse the index already built for
    ``history``; a private cache is used otherwise.
    """
    decisions = decisions or {}
    rules = rules or JournalRules.from_settings()
    index = (index_cache or JournalIndexCache()).get(history)

    rows = []
    for period in period_list:
        result = flag_entries(entries_for_period(history, period), history, rules, index)
        flagged = [f for f in result.flagged_entries if f.is_flagged]
        resolved = sum(
            1 for f in flagged if _decision(decisions, f.entry.je_id) in resolved_statuses
        )
        total = result.summary.total_entries
        rows.append(
            PeriodStats(
                period=period,
                total_entries=total,
                flagged=len(flagged),
                high_risk=sum(1 for f in flagged if f.risk == RiskLevel.HIGH),
                remediation=remediation_score(len(flagged), resolved),
                readiness=readiness_score(total, len(flagged)),
                per_flag=dict(result.summary.flagged_counts),
            )
        )
    return rows
