"""Derived indexes over the full journal history.

Per-account statistics and per-period duplicate groups are computed once per
history snapshot and handed to the flagging engine explicitly. The cache
rebuilds whenever the snapshot it was built from no longer matches the
history it is asked about, and can be invalidated by hand.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import structlog

from closewatch.models import JournalEntry
from closewatch.stats import average, round_half_up, std_dev

logger = structlog.get_logger(__name__)

DuplicateKey = tuple[str, str, int]


@dataclass(frozen=True)
class AccountStats:
    """Magnitude distribution of one account across all periods."""

    mean: float
    std: float
    count: int


def duplicate_key(entry: JournalEntry) -> DuplicateKey:
    """Grouping key: account, cost center and magnitude rounded to whole units."""
    return (entry.account, entry.cost_center, round_half_up(entry.magnitude))


@dataclass(frozen=True)
class JournalIndex:
    """Lookup tables derived from one snapshot of the journal history."""

    entries: tuple[JournalEntry, ...]
    by_id: Mapping[str, JournalEntry]
    account_stats: Mapping[str, AccountStats]
    duplicate_groups: Mapping[str, Mapping[DuplicateKey, tuple[JournalEntry, ...]]]

    @classmethod
    def from_entries(cls, entries: Iterable[JournalEntry]) -> JournalIndex:
        snapshot = tuple(entries)

        by_id: dict[str, JournalEntry] = {}
        magnitudes: dict[str, list[float]] = {}
        groups: dict[str, dict[DuplicateKey, list[JournalEntry]]] = {}

        for entry in snapshot:
            # First entry wins when ids collide, matching a linear search.
            by_id.setdefault(entry.je_id, entry)
            magnitudes.setdefault(entry.account, []).append(float(entry.magnitude))
            period_groups = groups.setdefault(entry.period, {})
            period_groups.setdefault(duplicate_key(entry), []).append(entry)

        account_stats = {
            account: AccountStats(mean=average(values), std=std_dev(values), count=len(values))
            for account, values in magnitudes.items()
        }
        duplicate_groups = {
            period: {key: tuple(members) for key, members in period_groups.items()}
            for period, period_groups in groups.items()
        }

        logger.debug(
            "journal_index_built",
            entries=len(snapshot),
            accounts=len(account_stats),
            periods=len(duplicate_groups),
        )
        return cls(
            entries=snapshot,
            by_id=by_id,
            account_stats=account_stats,
            duplicate_groups=duplicate_groups,
        )

    def duplicates_for(self, entry: JournalEntry) -> tuple[JournalEntry, ...]:
        """Entries in the same period sharing the entry's duplicate key."""
        return self.duplicate_groups.get(entry.period, {}).get(duplicate_key(entry), ())

    def stats_for(self, account: str) -> AccountStats | None:
        return self.account_stats.get(account)

    def get(self, je_id: str) -> JournalEntry | None:
        return self.by_id.get(je_id)


class JournalIndexCache:
    """Holds the index for the most recent history snapshot."""

    def __init__(self) -> None:
        self._snapshot: tuple[JournalEntry, ...] | None = None
        self._index: JournalIndex | None = None
        self.builds = 0

    def get(self, history: Iterable[JournalEntry]) -> JournalIndex:
        """Return the index for ``history``, rebuilding if it changed."""
        snapshot = tuple(history)
        if self._index is None or self._snapshot != snapshot:
            self._index = JournalIndex.from_entries(snapshot)
            self._snapshot = snapshot
            self.builds += 1
        return self._index

    def invalidate(self) -> None:
        self._snapshot = None
        self._index = None

    @property
    def is_warm(self) -> bool:
        return self._index is not None
