"""closewatch - deterministic journal flagging and accrual forecasting for month-end close."""

__version__ = "0.1.0"

from closewatch.accruals import AccrualCandidate, AccrualPolicy, build_accrual_candidates
from closewatch.config import configure_logging, get_settings
from closewatch.indexes import JournalIndex, JournalIndexCache
from closewatch.journal import (
    FlagResult,
    JournalRules,
    ReviewFilter,
    ScopeSummary,
    flag_entries,
    flag_entries_for_date,
    flag_entries_for_period,
    flag_entries_for_range,
    flag_entries_for_week,
)
from closewatch.models import (
    Cadence,
    DecisionStatus,
    FlaggedEntry,
    InputValidationError,
    JEFlag,
    JournalEntry,
    RiskLevel,
    VendorInvoice,
    VendorProfile,
)
from closewatch.overview import CloseOverview, build_period_stats, compute_close_overview
from closewatch.progress import CloseProgress, ConcurrentUpdateError, ProgressSnapshot
from closewatch.stats import average, clamp, std_dev

__all__ = [
    # Version
    "__version__",
    # Records
    "JournalEntry",
    "VendorProfile",
    "VendorInvoice",
    "FlaggedEntry",
    "JEFlag",
    "RiskLevel",
    "Cadence",
    "DecisionStatus",
    "InputValidationError",
    # Journal flagging
    "JournalRules",
    "JournalIndex",
    "JournalIndexCache",
    "FlagResult",
    "ScopeSummary",
    "ReviewFilter",
    "flag_entries",
    "flag_entries_for_date",
    "flag_entries_for_week",
    "flag_entries_for_range",
    "flag_entries_for_period",
    # Accruals
    "AccrualPolicy",
    "AccrualCandidate",
    "build_accrual_candidates",
    # Close readiness
    "CloseProgress",
    "ProgressSnapshot",
    "ConcurrentUpdateError",
    "CloseOverview",
    "compute_close_overview",
    "build_period_stats",
    # Statistics
    "average",
    "std_dev",
    "clamp",
    # Config
    "get_settings",
    "configure_logging",
]
