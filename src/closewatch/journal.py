"""Journal entry flagging engine.

Classifies each entry in a review scope (a day, a week, an inclusive date
range or a whole period) as duplicate, unusual amount and/or reversal issue,
and summarizes the scope. Duplicate groups and account baselines always come
from the full history so a narrow scope never under-counts.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

from closewatch.config import get_settings
from closewatch.indexes import JournalIndex
from closewatch.models import (
    FlagContext,
    FlaggedEntry,
    InputValidationError,
    JEFlag,
    JournalEntry,
    RiskLevel,
    parse_date,
    parse_period,
)

logger = structlog.get_logger(__name__)

REVERSAL_PATTERN = re.compile(r"reversal|reverse|true[- ]?up|reclass", re.IGNORECASE)


@dataclass(frozen=True)
class JournalRules:
    """Thresholds for journal entry flagging."""

    duplicate_tolerance: Decimal = Decimal("1")
    unusual_std_dev_threshold: float = 3.0
    minimum_history_count: int = 6
    late_reversal_days: int = 10

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "duplicate_tolerance", Decimal(str(self.duplicate_tolerance))
        )
        if self.duplicate_tolerance < 0:
            raise InputValidationError(
                "duplicate_tolerance must be >= 0", "duplicate_tolerance", self.duplicate_tolerance
            )
        if self.unusual_std_dev_threshold <= 0:
            raise InputValidationError(
                "unusual_std_dev_threshold must be > 0",
                "unusual_std_dev_threshold",
                self.unusual_std_dev_threshold,
            )
        if self.minimum_history_count < 1:
            raise InputValidationError(
                "minimum_history_count must be >= 1",
                "minimum_history_count",
                self.minimum_history_count,
            )
        if self.late_reversal_days < 0:
            raise InputValidationError(
                "late_reversal_days must be >= 0", "late_reversal_days", self.late_reversal_days
            )

    @classmethod
    def from_settings(cls) -> JournalRules:
        settings = get_settings()
        return cls(
            duplicate_tolerance=Decimal(str(settings.je_duplicate_tolerance)),
            unusual_std_dev_threshold=settings.je_unusual_stddev_threshold,
            minimum_history_count=settings.je_minimum_history_count,
            late_reversal_days=settings.je_late_reversal_days,
        )


@dataclass(frozen=True)
class ScopeSummary:
    """Counts for one review scope."""

    total_entries: int
    flagged_counts: dict[JEFlag, int]
    flagged_percentage: float
    high_risk_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalEntries": self.total_entries,
            "flaggedCounts": {flag.value: count for flag, count in self.flagged_counts.items()},
            "flaggedPercentage": self.flagged_percentage,
            "highRiskCount": self.high_risk_count,
        }


@dataclass(frozen=True)
class FlagResult:
    """Flagged entries of a scope plus its summary."""

    flagged_entries: list[FlaggedEntry] = field(default_factory=list)
    summary: ScopeSummary = field(default_factory=lambda: summarize([]))

    def to_dict(self) -> dict[str, Any]:
        return {
            "flaggedEntries": [f.to_dict() for f in self.flagged_entries],
            "summary": self.summary.to_dict(),
        }


class ReviewFilter(str, Enum):
    """Which entries a reviewer wants to see."""

    ALL = "ALL"
    FLAGGED = "FLAGGED"
    HIGH = "HIGH"


# =============================================================================
# CLASSIFICATION
# =============================================================================


def determine_risk(flags: Sequence[JEFlag]) -> RiskLevel:
    """Map a flag set to a risk level."""
    if not flags:
        return RiskLevel.LOW
    if JEFlag.UNUSUAL_AMOUNT in flags or JEFlag.REVERSAL_ISSUE in flags:
        return RiskLevel.HIGH
    if len(set(flags)) > 1:
        return RiskLevel.HIGH
    return RiskLevel.MEDIUM


def looks_like_reversal(entry: JournalEntry) -> bool:
    """True for an explicit back-reference or reversal vocabulary."""
    return bool(entry.reversal_of) or bool(REVERSAL_PATTERN.search(entry.description))


def find_potential_original(
    entry: JournalEntry, index: JournalIndex, rules: JournalRules
) -> JournalEntry | None:
    """First earlier entry on the same account with a matching, opposite amount."""
    target = entry.magnitude
    for candidate in index.entries:
        if candidate.posting_date >= entry.posting_date:
            continue
        if candidate.account != entry.account:
            continue
        if abs(candidate.magnitude - target) > rules.duplicate_tolerance:
            continue
        if candidate.net_amount * entry.net_amount < 0:
            return candidate
    return None


def resolve_original(
    entry: JournalEntry, index: JournalIndex, rules: JournalRules
) -> JournalEntry | None:
    """Find the entry being reversed.

    An explicit ``reversal_of`` is authoritative: a dangling reference is
    unmatched rather than guessed at.
    """
    if entry.reversal_of:
        return index.get(entry.reversal_of)
    return find_potential_original(entry, index, rules)


def flag_entry(entry: JournalEntry, index: JournalIndex, rules: JournalRules) -> FlaggedEntry:
    """Classify a single entry against the indexed history."""
    flags: list[JEFlag] = []
    context: dict[str, Any] = {}

    duplicates = index.duplicates_for(entry)
    if len(duplicates) > 1:
        flags.append(JEFlag.DUPLICATE)
        context["duplicate_count"] = len(duplicates)

    stats = index.stats_for(entry.account)
    if stats and stats.count >= rules.minimum_history_count and stats.std > 0:
        context["account_average"] = stats.mean
        context["account_std_dev"] = stats.std
        deviation = abs(float(entry.magnitude) - stats.mean)
        if deviation > rules.unusual_std_dev_threshold * stats.std:
            flags.append(JEFlag.UNUSUAL_AMOUNT)

    if looks_like_reversal(entry):
        original = resolve_original(entry, index, rules)
        context["has_matching_reversal"] = original is not None
        if original is None:
            flags.append(JEFlag.REVERSAL_ISSUE)
        else:
            days = abs((entry.posting_date - original.posting_date).days)
            context["days_since_original"] = days
            if days > rules.late_reversal_days:
                flags.append(JEFlag.REVERSAL_ISSUE)

    return FlaggedEntry(
        entry=entry,
        flags=tuple(flags),
        risk=determine_risk(flags),
        context=FlagContext(**context),
    )


def summarize(flagged: Sequence[FlaggedEntry]) -> ScopeSummary:
    total = len(flagged)
    counts = {flag: sum(1 for f in flagged if flag in f.flags) for flag in JEFlag}
    with_flags = sum(1 for f in flagged if f.is_flagged)
    return ScopeSummary(
        total_entries=total,
        flagged_counts=counts,
        flagged_percentage=(with_flags / total * 100) if total else 0.0,
        high_risk_count=sum(1 for f in flagged if f.risk == RiskLevel.HIGH),
    )


def flag_entries(
    scope_entries: Iterable[JournalEntry],
    history: Iterable[JournalEntry],
    rules: JournalRules | None = None,
    index: JournalIndex | None = None,
) -> FlagResult:
    """Flag every entry in a scope against the full history.

    Args:
        scope_entries: Entries to classify, in display order.
        history: All known entries; baselines and duplicate groups come from here.
        rules: Thresholds. Defaults to settings.
        index: Prebuilt index of ``history``; built on the fly when omitted.

    Returns:
        FlagResult with one FlaggedEntry per scope entry and the scope summary.
    """
    rules = rules or JournalRules.from_settings()
    if index is None:
        index = JournalIndex.from_entries(history)

    flagged = [flag_entry(entry, index, rules) for entry in scope_entries]
    summary = summarize(flagged)

    logger.info(
        "entries_flagged",
        total=summary.total_entries,
        flagged=sum(1 for f in flagged if f.is_flagged),
        high_risk=summary.high_risk_count,
    )
    return FlagResult(flagged_entries=flagged, summary=summary)


def filter_flagged(
    flagged: Iterable[FlaggedEntry], mode: ReviewFilter = ReviewFilter.FLAGGED
) -> list[FlaggedEntry]:
    if mode == ReviewFilter.ALL:
        return list(flagged)
    if mode == ReviewFilter.FLAGGED:
        return [f for f in flagged if f.is_flagged]
    return [f for f in flagged if f.risk == RiskLevel.HIGH]


# =============================================================================
# SCOPES
# =============================================================================


def entries_for_date(entries: Iterable[JournalEntry], day: date | str) -> list[JournalEntry]:
    target = parse_date(day, "date")
    return [e for e in entries if e.posting_date == target]


def entries_for_range(
    entries: Iterable[JournalEntry], start: date | str, end: date | str
) -> list[JournalEntry]:
    """Entries posted between ``start`` and ``end`` inclusive."""
    start_date = parse_date(start, "start")
    end_date = parse_date(end, "end")
    if start_date > end_date:
        raise InputValidationError(
            f"range start {start_date} is after end {end_date}", "start", start
        )
    return [e for e in entries if start_date <= e.posting_date <= end_date]


def entries_for_period(entries: Iterable[JournalEntry], period: str) -> list[JournalEntry]:
    target = parse_period(period)
    return [e for e in entries if e.period == target]


def week_start(day: date | str) -> date:
    """Monday of the week containing ``day``."""
    value = parse_date(day, "date")
    return value - timedelta(days=value.weekday())


def entries_for_week(entries: Iterable[JournalEntry], start: date | str) -> list[JournalEntry]:
    start_date = parse_date(start, "start")
    return entries_for_range(entries, start_date, start_date + timedelta(days=6))


def unique_posting_dates(entries: Iterable[JournalEntry]) -> list[date]:
    return sorted({e.posting_date for e in entries})


def week_starts(entries: Iterable[JournalEntry]) -> list[date]:
    return sorted({week_start(e.posting_date) for e in entries})


def periods(entries: Iterable[JournalEntry]) -> list[str]:
    return sorted({e.period for e in entries})


def dates_in_period(dates: Iterable[date], period: str) -> list[date]:
    prefix = parse_period(period)
    return sorted(d for d in dates if d.isoformat().startswith(prefix))


def flag_entries_for_date(
    history: Sequence[JournalEntry],
    day: date | str,
    rules: JournalRules | None = None,
    index: JournalIndex | None = None,
) -> FlagResult:
    return flag_entries(entries_for_date(history, day), history, rules, index)


def flag_entries_for_range(
    history: Sequence[JournalEntry],
    start: date | str,
    end: date | str,
    rules: JournalRules | None = None,
    index: JournalIndex | None = None,
) -> FlagResult:
    return flag_entries(entries_for_range(history, start, end), history, rules, index)


def flag_entries_for_week(
    history: Sequence[JournalEntry],
    start: date | str,
    rules: JournalRules | None = None,
    index: JournalIndex | None = None,
) -> FlagResult:
    return flag_entries(entries_for_week(history, start), history, rules, index)


def flag_entries_for_period(
    history: Sequence[JournalEntry],
    period: str,
    rules: JournalRules | None = None,
    index: JournalIndex | None = None,
) -> FlagResult:
    return flag_entries(entries_for_period(history, period), history, rules, index)
