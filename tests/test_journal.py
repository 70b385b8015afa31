"""Tests for the journal entry flagging engine."""

from datetime import date
from decimal import Decimal

import pytest

from closewatch.indexes import JournalIndex
from closewatch.journal import (
    JournalRules,
    ReviewFilter,
    determine_risk,
    entries_for_date,
    entries_for_period,
    entries_for_range,
    entries_for_week,
    filter_flagged,
    flag_entries,
    flag_entries_for_date,
    flag_entries_for_period,
    looks_like_reversal,
    periods,
    unique_posting_dates,
    week_start,
    week_starts,
)
from closewatch.models import InputValidationError, JEFlag, RiskLevel

RULES = JournalRules()


def _by_id(result):
    return {f.entry.je_id: f for f in result.flagged_entries}


@pytest.fixture
def utilities_history(make_entry):
    """Twelve ordinary utility bills and one spike on account 6200."""
    entries = []
    for i in range(12):
        month = 1 + i // 2
        day = 5 if i % 2 == 0 else 20
        entries.append(
            make_entry(
                f"UT-{i:02d}",
                f"2025-{month:02d}-{day:02d}",
                account="6200",
                debit=950 + 10 * i,
                description="Utilities",
            )
        )
    entries.append(
        make_entry("UT-SPIKE", "2025-07-15", account="6200", debit=50000, description="Utilities")
    )
    return entries


class TestDuplicates:
    def test_same_account_cost_center_and_amount_in_period(self, july_entries):
        """Test that matching entries in one period are duplicates."""
        result = flag_entries(july_entries, july_entries, RULES)
        flagged = _by_id(result)

        for je_id in ("JE-109", "JE-110"):
            assert flagged[je_id].flags == (JEFlag.DUPLICATE,)
            assert flagged[je_id].context.duplicate_count == 2
            assert flagged[je_id].risk == RiskLevel.MEDIUM

        assert not flagged["JE-101"].flags

    def test_amounts_rounding_to_same_unit_are_grouped(self, make_entry):
        """Test that amounts rounding to the same unit are grouped."""
        entries = [
            make_entry("A", "2025-07-01", account="6400", debit="8200.40"),
            make_entry("B", "2025-07-02", account="6400", debit="8199.60"),
        ]
        result = flag_entries(entries, entries, RULES)
        assert all(JEFlag.DUPLICATE in f.flags for f in result.flagged_entries)

    def test_different_cost_center_is_not_duplicate(self, make_entry):
        """Test that a different cost center is not a duplicate."""
        entries = [
            make_entry("A", "2025-07-01", account="6400", cost_center="OPS", debit=8200),
            make_entry("B", "2025-07-01", account="6400", cost_center="SALES", debit=8200),
        ]
        result = flag_entries(entries, entries, RULES)
        assert not any(f.flags for f in result.flagged_entries)

    def test_same_key_in_other_period_is_not_duplicate(self, make_entry):
        """Test that the same key in another period is not a duplicate."""
        entries = [
            make_entry("A", "2025-06-30", account="6400", debit=8200),
            make_entry("B", "2025-07-01", account="6400", debit=8200),
        ]
        result = flag_entries(entries, entries, RULES)
        assert not any(f.flags for f in result.flagged_entries)

    def test_day_scope_still_sees_whole_period(self, make_entry):
        """A duplicate posted on another day of the period still counts."""
        history = [
            make_entry("A", "2025-07-03", account="6400", debit=8200),
            make_entry("B", "2025-07-21", account="6400", debit=8200),
        ]
        result = flag_entries_for_date(history, "2025-07-03", RULES)

        assert len(result.flagged_entries) == 1
        only = result.flagged_entries[0]
        assert only.entry.je_id == "A"
        assert only.context.duplicate_count == 2


class TestUnusualAmount:
    def test_spike_is_flagged(self, utilities_history):
        """Test that an amount spike is flagged as unusual."""
        result = flag_entries(utilities_history, utilities_history, RULES)
        spike = _by_id(result)["UT-SPIKE"]

        assert JEFlag.UNUSUAL_AMOUNT in spike.flags
        assert spike.risk == RiskLevel.HIGH
        assert spike.context.account_average == pytest.approx(62060 / 13)
        assert spike.context.account_std_dev > 0

    def test_ordinary_amounts_are_not_flagged_but_carry_context(self, utilities_history):
        """Test that ordinary amounts carry account stats without a flag."""
        result = flag_entries(utilities_history, utilities_history, RULES)
        for je_id, flagged in _by_id(result).items():
            if je_id == "UT-SPIKE":
                continue
            assert JEFlag.UNUSUAL_AMOUNT not in flagged.flags
            assert flagged.context.account_average is not None

    def test_within_half_sigma_never_fires(self, make_entry):
        """Test that amounts near the mean are never unusual."""
        history = [
            make_entry(f"R-{i}", f"2025-0{1 + i % 6}-1{i // 6}", account="6900", debit=amount)
            for i, amount in enumerate([900, 1000, 1100, 900, 1000, 1100, 950, 1050])
        ]
        index = JournalIndex.from_entries(history)
        stats = index.stats_for("6900")
        result = flag_entries(history, history, RULES, index)

        for flagged in result.flagged_entries:
            deviation = abs(float(flagged.entry.magnitude) - stats.mean)
            if deviation <= 0.5 * stats.std:
                assert JEFlag.UNUSUAL_AMOUNT not in flagged.flags

    def test_requires_minimum_history(self, make_entry):
        """Test that a short account history never flags unusual amounts."""
        history = [
            make_entry("S-1", "2025-03-01", account="6700", debit=100),
            make_entry("S-2", "2025-04-01", account="6700", debit=110),
            make_entry("S-3", "2025-05-01", account="6700", debit=120),
            make_entry("S-4", "2025-06-01", account="6700", debit=130),
            make_entry("S-5", "2025-07-01", account="6700", debit=90000),
        ]
        result = flag_entries(history, history, RULES)
        for flagged in result.flagged_entries:
            assert JEFlag.UNUSUAL_AMOUNT not in flagged.flags
            assert flagged.context.account_average is None

    def test_zero_spread_never_fires(self, make_entry):
        """Test that an account with no spread never flags unusual amounts."""
        history = [
            make_entry(f"F-{m}", f"2025-0{m}-01", account="6800", debit=500) for m in range(1, 8)
        ]
        result = flag_entries(history, history, RULES)
        assert not any(JEFlag.UNUSUAL_AMOUNT in f.flags for f in result.flagged_entries)


class TestReversals:
    @pytest.mark.parametrize(
        "description",
        ["Reversal of June accrual", "REVERSE prepaid", "Rent true-up", "Rent true up", "trueup Q2", "Reclass to COGS"],
    )
    def test_reversal_vocabulary(self, make_entry, description):
        """Test that reversal wording marks an entry as a reversal."""
        assert looks_like_reversal(make_entry("X", "2025-07-01", description=description))

    def test_plain_description_is_not_reversal(self, make_entry):
        """Test that a plain description is not a reversal."""
        assert not looks_like_reversal(make_entry("X", "2025-07-01", description="Office rent"))

    def test_explicit_reference_is_reversal(self, make_entry):
        """Test that a back-reference marks an entry as a reversal."""
        assert looks_like_reversal(
            make_entry("X", "2025-07-01", description="Rent", reversal_of="JE-1")
        )

    def test_dangling_reference_always_fires(self, make_entry):
        """Test that a reference to an unknown entry is flagged."""
        history = [
            make_entry("ORIG", "2025-07-01", account="2000", debit=500),
            make_entry(
                "REV", "2025-07-03", account="2000", cost_center="ADMIN",
                credit=500, reversal_of="JE-MISSING",
            ),
        ]
        rev = _by_id(flag_entries(history, history, RULES))["REV"]

        assert rev.flags == (JEFlag.REVERSAL_ISSUE,)
        assert rev.context.has_matching_reversal is False
        assert rev.context.days_since_original is None
        assert rev.risk == RiskLevel.HIGH

    def test_late_reversal_fires(self, make_entry):
        """Test that a late reversal is flagged."""
        history = [
            make_entry("ORIG", "2025-07-01", account="2000", debit=500),
            make_entry(
                "REV", "2025-07-12", account="2000", cost_center="ADMIN",
                credit=500, reversal_of="ORIG",
            ),
        ]
        rev = _by_id(flag_entries(history, history, RULES))["REV"]

        assert rev.flags == (JEFlag.REVERSAL_ISSUE,)
        assert rev.context.has_matching_reversal is True
        assert rev.context.days_since_original == 11

    def test_timely_reversal_is_clean(self, make_entry):
        """Test that a timely reversal is not flagged."""
        history = [
            make_entry("ORIG", "2025-07-01", account="2000", debit=500),
            make_entry(
                "REV", "2025-07-06", account="2000", cost_center="ADMIN",
                credit=500, reversal_of="ORIG",
            ),
        ]
        rev = _by_id(flag_entries(history, history, RULES))["REV"]

        assert rev.flags == ()
        assert rev.risk == RiskLevel.LOW
        assert rev.context.has_matching_reversal is True
        assert rev.context.days_since_original == 5

    def test_original_found_by_amount_and_opposite_side(self, make_entry):
        """Test that the original is matched by amount and opposite side."""
        history = [
            make_entry("ORIG", "2025-07-01", account="2100", debit="1200.00"),
            make_entry(
                "REV", "2025-07-04", account="2100", cost_center="ADMIN",
                credit="1200.75", description="Reversal of accrual",
            ),
        ]
        rev = _by_id(flag_entries(history, history, RULES))["REV"]

        assert rev.context.has_matching_reversal is True
        assert rev.context.days_since_original == 3
        assert JEFlag.REVERSAL_ISSUE not in rev.flags

    def test_same_side_candidate_does_not_match(self, make_entry):
        """Test that a same-side entry is not taken as the original."""
        history = [
            make_entry("ORIG", "2025-07-01", account="2100", debit=1200),
            make_entry(
                "REV", "2025-07-04", account="2100", cost_center="ADMIN",
                debit=1200, description="Reversal of accrual",
            ),
        ]
        rev = _by_id(flag_entries(history, history, RULES))["REV"]

        assert rev.context.has_matching_reversal is False
        assert JEFlag.REVERSAL_ISSUE in rev.flags

    def test_later_candidate_does_not_match(self, make_entry):
        """Test that a later entry is not taken as the original."""
        history = [
            make_entry(
                "REV", "2025-07-04", account="2100", cost_center="ADMIN",
                credit=1200, description="Reclass",
            ),
            make_entry("LATER", "2025-07-09", account="2100", debit=1200),
        ]
        rev = _by_id(flag_entries(history, history, RULES))["REV"]
        assert rev.context.has_matching_reversal is False


class TestRiskPolicy:
    @pytest.mark.parametrize(
        "flags,expected",
        [
            ((), RiskLevel.LOW),
            ((JEFlag.DUPLICATE,), RiskLevel.MEDIUM),
            ((JEFlag.UNUSUAL_AMOUNT,), RiskLevel.HIGH),
            ((JEFlag.REVERSAL_ISSUE,), RiskLevel.HIGH),
            ((JEFlag.DUPLICATE, JEFlag.REVERSAL_ISSUE), RiskLevel.HIGH),
            ((JEFlag.DUPLICATE, JEFlag.UNUSUAL_AMOUNT), RiskLevel.HIGH),
            ((JEFlag.DUPLICATE, JEFlag.UNUSUAL_AMOUNT, JEFlag.REVERSAL_ISSUE), RiskLevel.HIGH),
        ],
    )
    def test_flag_set_to_risk(self, flags, expected):
        """Test the risk level for each flag set."""
        assert determine_risk(flags) == expected


class TestSummary:
    def test_counts_and_percentage(self, july_entries):
        """Test scope counts and flagged percentage."""
        summary = flag_entries(july_entries, july_entries, RULES).summary

        assert summary.total_entries == 10
        assert summary.flagged_counts[JEFlag.DUPLICATE] == 2
        assert summary.flagged_counts[JEFlag.UNUSUAL_AMOUNT] == 0
        assert summary.flagged_counts[JEFlag.REVERSAL_ISSUE] == 0
        assert summary.flagged_percentage == pytest.approx(20.0)
        assert summary.high_risk_count == 0

    def test_empty_scope(self):
        """Test the summary of an empty scope."""
        result = flag_entries([], [], RULES)

        assert result.flagged_entries == []
        assert result.summary.total_entries == 0
        assert result.summary.flagged_percentage == 0
        assert result.summary.high_risk_count == 0

    def test_to_dict_uses_wire_names(self, july_entries):
        """Test that results serialize with camelCase names."""
        data = flag_entries(july_entries, july_entries, RULES).summary.to_dict()
        assert data["flaggedCounts"] == {"DUPLICATE": 2, "UNUSUAL_AMOUNT": 0, "REVERSAL_ISSUE": 0}
        assert data["totalEntries"] == 10

    def test_deterministic(self, july_entries, utilities_history):
        """Test that flagging the same history twice gives equal results."""
        history = july_entries + utilities_history
        first = flag_entries(history, history, RULES)
        second = flag_entries(list(history), list(history), RULES)
        assert first == second


class TestScopes:
    def test_week_starts_on_monday(self):
        """Test that weeks start on Monday."""
        assert week_start("2025-07-09") == date(2025, 7, 7)
        assert week_start(date(2025, 7, 7)) == date(2025, 7, 7)
        assert week_start("2025-07-13") == date(2025, 7, 7)

    def test_week_covers_seven_days(self, make_entry):
        """Test that a week scope covers seven days."""
        entries = [
            make_entry("A", "2025-07-06"),
            make_entry("B", "2025-07-07"),
            make_entry("C", "2025-07-13"),
            make_entry("D", "2025-07-14"),
        ]
        assert [e.je_id for e in entries_for_week(entries, "2025-07-07")] == ["B", "C"]
        assert week_starts(entries) == [date(2025, 6, 30), date(2025, 7, 7), date(2025, 7, 14)]

    def test_range_is_inclusive(self, july_entries):
        """Test that a date range includes both ends."""
        selected = entries_for_range(july_entries, "2025-07-02", "2025-07-07")
        assert [e.je_id for e in selected] == ["JE-103", "JE-104", "JE-105"]

    def test_range_rejects_reversed_bounds(self, july_entries):
        """Test that a reversed date range is rejected."""
        with pytest.raises(InputValidationError):
            entries_for_range(july_entries, "2025-07-10", "2025-07-01")

    def test_date_and_period(self, july_entries, make_entry):
        """Test date and period selectors and discovery."""
        history = july_entries + [make_entry("JUN", "2025-06-30")]

        assert [e.je_id for e in entries_for_date(history, "2025-07-09")] == ["JE-107", "JE-108"]
        assert len(entries_for_period(history, "2025-07")) == 10
        assert periods(history) == ["2025-06", "2025-07"]
        assert unique_posting_dates(history)[0] == date(2025, 6, 30)

    def test_malformed_period_rejected(self, july_entries):
        """Test that a malformed period is rejected."""
        with pytest.raises(InputValidationError):
            entries_for_period(july_entries, "2025-7")

    def test_period_result_matches_manual_scope(self, july_entries):
        """Test that the period wrapper matches a manual scope."""
        by_period = flag_entries_for_period(july_entries, "2025-07", RULES)
        manual = flag_entries(july_entries, july_entries, RULES)
        assert by_period == manual


class TestFilters:
    def test_filter_modes(self, july_entries, make_entry):
        """Test each review filter mode."""
        history = july_entries + [
            make_entry(
                "REV", "2025-07-11", account="2000", credit=75, reversal_of="NOPE",
            )
        ]
        flagged = flag_entries(history, history, RULES).flagged_entries

        assert len(filter_flagged(flagged, ReviewFilter.ALL)) == 11
        assert {f.entry.je_id for f in filter_flagged(flagged, ReviewFilter.FLAGGED)} == {
            "JE-109",
            "JE-110",
            "REV",
        }
        assert [f.entry.je_id for f in filter_flagged(flagged, ReviewFilter.HIGH)] == ["REV"]


class TestRules:
    def test_defaults_follow_settings(self):
        """Test that rule defaults come from settings."""
        rules = JournalRules.from_settings()
        assert rules.duplicate_tolerance == Decimal("1")
        assert rules.unusual_std_dev_threshold == 3
        assert rules.minimum_history_count == 6
        assert rules.late_reversal_days == 10

    def test_rejects_non_positive_threshold(self):
        """Test that a non-positive threshold is rejected."""
        with pytest.raises(InputValidationError):
            JournalRules(unusual_std_dev_threshold=0)

    def test_custom_late_reversal_window(self, make_entry):
        """Test a custom late reversal window."""
        history = [
            make_entry("ORIG", "2025-07-01", account="2000", debit=500),
            make_entry(
                "REV", "2025-07-06", account="2000", cost_center="ADMIN",
                credit=500, reversal_of="ORIG",
            ),
        ]
        strict = JournalRules(late_reversal_days=3)
        rev = _by_id(flag_entries(history, history, strict))["REV"]
        assert rev.flags == (JEFlag.REVERSAL_ISSUE,)
