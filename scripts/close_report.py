#!/usr/bin/env python3
"""Print the month-end close readiness report for a period.

Reads journal entries, vendor invoices and vendor profiles from YAML or JSON
files, flags the period's entries, builds accrual candidates and prints the
readiness overview with the month-over-month trend.

Usage:
    python scripts/close_report.py \
        --entries data/journal_entries.yaml \
        --invoices data/ap_invoices.yaml \
        --vendors data/vendors.yaml \
        --period 2025-07
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from closewatch.accruals import AccrualPolicy, build_accrual_candidates
from closewatch.config import bind_close_context, configure_logging, get_settings
from closewatch.indexes import JournalIndexCache
from closewatch.journal import (
    JournalRules,
    dates_in_period,
    entries_for_period,
    flag_entries,
    periods,
    unique_posting_dates,
)
from closewatch.loaders import load_journal_entries, load_vendor_invoices, load_vendor_profiles
from closewatch.models import InputValidationError
from closewatch.narrative import NarrativeService
from closewatch.overview import build_period_stats, compute_close_overview
from closewatch.progress import CloseProgress


def main():
    parser = argparse.ArgumentParser(
        description="Month-end close readiness report from journal and AP data files"
    )
    parser.add_argument("--entries", type=Path, required=True, help="Journal entries file")
    parser.add_argument("--invoices", type=Path, required=True, help="Vendor invoices file")
    parser.add_argument("--vendors", type=Path, required=True, help="Vendor profiles file")
    parser.add_argument(
        "--period",
        type=str,
        default=None,
        help="Target period YYYY-MM (default: ACCRUAL_CURRENT_PERIOD)",
    )
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    parser.add_argument(
        "--narrative",
        action="store_true",
        help="Ask the configured model for a close summary",
    )
    args = parser.parse_args()

    configure_logging()
    settings = get_settings()
    period = args.period or settings.accrual_current_period
    bind_close_context(period)

    try:
        entries = load_journal_entries(args.entries)
        invoices = load_vendor_invoices(args.invoices)
        vendors = load_vendor_profiles(args.vendors)
    except (OSError, InputValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    rules = JournalRules.from_settings()
    index_cache = JournalIndexCache()
    index = index_cache.get(entries)
    period_flags = flag_entries(entries_for_period(entries, period), entries, rules, index)
    candidates = build_accrual_candidates(
        vendors, invoices, period, AccrualPolicy.from_settings()
    )
    progress = CloseProgress()
    overview = compute_close_overview(
        dates_in_period(unique_posting_dates(entries), period),
        candidates,
        progress,
        period_flags.flagged_entries,
    )
    trend = build_period_stats(periods(entries), entries, rules=rules, index_cache=index_cache)

    if args.json:
        print(
            json.dumps(
                {
                    "period": period,
                    "overview": overview.to_dict(),
                    "summary": period_flags.summary.to_dict(),
                    "accruals": [c.to_dict() for c in candidates],
                    "trend": [row.to_dict() for row in trend],
                },
                indent=2,
            )
        )
        return

    print("=" * 60)
    print(f"Close readiness for {period}")
    print("=" * 60)
    print(f"  Readiness:   {overview.readiness_score}%")
    print(f"  Remediation: {overview.remediation_score}%")
    print(f"  Entries:     {overview.total_entries} ({overview.flagged_count} flagged)")
    for flag, count in period_flags.summary.flagged_counts.items():
        print(f"    {flag.value:<15} {count}")
    print(f"  Open days:   {', '.join(d.isoformat() for d in overview.open_days) or 'none'}")
    print(f"  Open vendors: {', '.join(overview.open_vendors) or 'none'}")

    print("\nAccruals")
    print("-" * 60)
    for candidate in candidates:
        marker = "!" if candidate.expected_missing else " "
        accrual = candidate.suggested_accrual if candidate.suggested_accrual is not None else "-"
        print(
            f"  {marker} {candidate.vendor_name:<28} {candidate.cadence.value:<10} "
            f"accrue {accrual} (confidence {candidate.confidence}%)"
        )

    print("\nTrend")
    print("-" * 60)
    for row in trend:
        print(f"  {row.period}: readiness {row.readiness}%, remediation {row.remediation}%")

    if args.narrative:
        summary = asyncio.run(NarrativeService().summarize_close(period, overview, trend))
        print("\nSummary")
        print("-" * 60)
        print(summary.summary)


if __name__ == "__main__":
    main()
