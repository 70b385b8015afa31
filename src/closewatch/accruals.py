"""Accrual cadence inference and suggestion engine.

For every known vendor, infer how often it invoices, decide whether an
invoice is expected but missing for the target period, and suggest an
accrual amount with a confidence score. Vendors without a predictable
cadence are never reported missing.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import structlog

from closewatch.config import get_settings
from closewatch.models import (
    Cadence,
    InputValidationError,
    VendorInvoice,
    VendorProfile,
    parse_period,
)
from closewatch.stats import average, clamp, round_half_up, std_dev

logger = structlog.get_logger(__name__)

MONTHLY_GAP_DAYS = 30
QUARTERLY_GAP_DAYS = 90
QUARTERLY_MISSING_MONTHS = 3

# Confidence model
CONFIDENCE_FULL_HISTORY = 10
CONFIDENCE_RECENT_WINDOW = 3
CONFIDENCE_FLOOR = 15
CONFIDENCE_CEILING = 95
VARIABILITY_WEIGHT = 60
HISTORY_WEIGHT = 40

RECENT_INVOICE_LIMIT = 12


@dataclass(frozen=True)
class AccrualPolicy:
    """Thresholds for cadence inference and accrual suggestion."""

    current_period: str = "2025-07"
    minimum_invoices_for_cadence: int = 4
    average_last_n_invoices: int = 3
    monthly_gap_tolerance_days: int = 7
    quarterly_gap_tolerance_days: int = 15

    def __post_init__(self) -> None:
        parse_period(self.current_period, "current_period")
        for name in ("minimum_invoices_for_cadence", "average_last_n_invoices"):
            if getattr(self, name) < 1:
                raise InputValidationError(f"{name} must be >= 1", name, getattr(self, name))
        for name in ("monthly_gap_tolerance_days", "quarterly_gap_tolerance_days"):
            if getattr(self, name) < 0:
                raise InputValidationError(f"{name} must be >= 0", name, getattr(self, name))

    @classmethod
    def from_settings(cls) -> AccrualPolicy:
        settings = get_settings()
        return cls(
            current_period=settings.accrual_current_period,
            minimum_invoices_for_cadence=settings.accrual_minimum_invoices,
            average_last_n_invoices=settings.accrual_average_last_n,
            monthly_gap_tolerance_days=settings.accrual_monthly_tolerance_days,
            quarterly_gap_tolerance_days=settings.accrual_quarterly_tolerance_days,
        )


@dataclass(frozen=True)
class AccrualCandidate:
    """Accrual view of one vendor for one period."""

    vendor_id: str
    vendor_name: str
    cadence: Cadence
    history_count: int
    expected_missing: bool
    confidence: int
    last_invoice_date: date | None = None
    average_amount: int | None = None
    suggested_accrual: int | None = None
    currency: str = "USD"
    gl_account: str = ""
    cost_center: str = ""
    recent_invoices: tuple[VendorInvoice, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendorId": self.vendor_id,
            "vendorName": self.vendor_name,
            "cadence": self.cadence.value,
            "historyCount": self.history_count,
            "lastInvoiceDate": (
                self.last_invoice_date.isoformat() if self.last_invoice_date else None
            ),
            "averageAmount": self.average_amount,
            "expectedMissing": self.expected_missing,
            "suggestedAccrual": self.suggested_accrual,
            "currency": self.currency,
            "glAccount": self.gl_account,
            "costCenter": self.cost_center,
            "confidence": self.confidence,
            "recentInvoices": [inv.to_dict() for inv in self.recent_invoices],
        }


# =============================================================================
# PERIOD ARITHMETIC
# =============================================================================


def _period_index(period: str) -> int:
    year, month = parse_period(period).split("-")
    return int(year) * 12 + int(month)


def months_between(earlier: str, later: str) -> int:
    """Calendar months from ``earlier`` to ``later`` (negative if reversed)."""
    return _period_index(later) - _period_index(earlier)


def period_compare(a: str, b: str) -> int:
    """Negative, zero or positive as ``a`` is before, equal to or after ``b``."""
    return _period_index(a) - _period_index(b)


# =============================================================================
# CADENCE & SCORING
# =============================================================================


def gaps_in_days(dates: Iterable[date]) -> list[int]:
    ordered = sorted(dates)
    return [(later - earlier).days for earlier, later in zip(ordered, ordered[1:])]


def infer_cadence(invoices: Sequence[VendorInvoice], policy: AccrualPolicy) -> Cadence:
    """Classify invoicing rhythm from the average gap between invoices."""
    if len(invoices) < policy.minimum_invoices_for_cadence:
        return Cadence.UNKNOWN
    avg_gap = average(gaps_in_days(inv.invoice_date for inv in invoices))
    if avg_gap == 0:
        return Cadence.UNKNOWN
    if abs(avg_gap - MONTHLY_GAP_DAYS) <= policy.monthly_gap_tolerance_days:
        return Cadence.MONTHLY
    if abs(avg_gap - QUARTERLY_GAP_DAYS) <= policy.quarterly_gap_tolerance_days:
        return Cadence.QUARTERLY
    return Cadence.IRREGULAR


def is_expected_missing(cadence: Cadence, last_period: str | None, period: str) -> bool:
    if last_period is None:
        return False
    if cadence == Cadence.MONTHLY:
        return period_compare(last_period, period) < 0
    if cadence == Cadence.QUARTERLY:
        return months_between(last_period, period) >= QUARTERLY_MISSING_MONTHS
    return False


def suggested_accrual(invoices: Sequence[VendorInvoice], last_n: int) -> int | None:
    """Rounded mean of the most recent ``last_n`` invoice amounts."""
    if not invoices:
        return None
    recent = invoices[-last_n:]
    return round_half_up(average([float(inv.amount) for inv in recent]))


def confidence_score(invoices: Sequence[VendorInvoice]) -> int:
    """Score 15-95 from amount stability and history depth, 0 without history.

    Stability is one minus the coefficient of variation of the amounts
    (weighted 60); depth is the history length capped at ten invoices
    (weighted 40).
    """
    if not invoices:
        return 0
    amounts = [float(inv.amount) for inv in invoices]
    mean = average(amounts)
    variability = std_dev(amounts) / mean if mean else 1.0
    history_weight = min(len(invoices), CONFIDENCE_FULL_HISTORY) / CONFIDENCE_FULL_HISTORY
    score = (1 - variability) * VARIABILITY_WEIGHT + history_weight * HISTORY_WEIGHT
    return round_half_up(clamp(score, CONFIDENCE_FLOOR, CONFIDENCE_CEILING))


# =============================================================================
# CANDIDATES
# =============================================================================


def build_candidate(
    vendor: VendorProfile,
    history: Sequence[VendorInvoice],
    period: str,
    policy: AccrualPolicy,
) -> AccrualCandidate:
    """Build the candidate for one vendor from its chronologically sorted history."""
    cadence = infer_cadence(history, policy)
    last_invoice = history[-1] if history else None
    expected_missing = is_expected_missing(
        cadence, last_invoice.period if last_invoice else None, period
    )
    scored = history if expected_missing else history[-CONFIDENCE_RECENT_WINDOW:]

    return AccrualCandidate(
        vendor_id=vendor.vendor_id,
        vendor_name=vendor.vendor_name,
        cadence=cadence,
        history_count=len(history),
        expected_missing=expected_missing,
        confidence=confidence_score(scored),
        last_invoice_date=last_invoice.invoice_date if last_invoice else None,
        average_amount=(
            round_half_up(average([float(inv.amount) for inv in history])) if history else None
        ),
        suggested_accrual=(
            suggested_accrual(history, policy.average_last_n_invoices)
            if expected_missing
            else None
        ),
        currency=last_invoice.currency if last_invoice else "USD",
        gl_account=vendor.default_gl_account,
        cost_center=vendor.cost_center,
        recent_invoices=tuple(history[-RECENT_INVOICE_LIMIT:]),
    )


def build_accrual_candidates(
    vendors: Iterable[VendorProfile],
    invoices: Iterable[VendorInvoice],
    period: str | None = None,
    policy: AccrualPolicy | None = None,
) -> list[AccrualCandidate]:
    """Produce a candidate for every known vendor, sorted by vendor name.

    Args:
        vendors: Vendor reference data; one candidate per profile.
        invoices: Full invoice history across vendors.
        period: Target period (YYYY-MM). Defaults to the policy's current period.
        policy: Thresholds. Defaults to settings.
    """
    policy = policy or AccrualPolicy.from_settings()
    target = parse_period(period or policy.current_period)

    by_vendor: dict[str, list[VendorInvoice]] = {}
    for invoice in invoices:
        by_vendor.setdefault(invoice.vendor_id, []).append(invoice)

    candidates = []
    for vendor in vendors:
        history = sorted(by_vendor.get(vendor.vendor_id, []), key=lambda inv: inv.invoice_date)
        candidates.append(build_candidate(vendor, history, target, policy))

    candidates.sort(key=lambda c: c.vendor_name)

    logger.info(
        "accrual_candidates_built",
        period=target,
        vendors=len(candidates),
        expected_missing=sum(1 for c in candidates if c.expected_missing),
    )
    return candidates
