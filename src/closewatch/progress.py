"""Caller-owned review progress for a close session.

The engines only ever read a ``ProgressSnapshot``. ``CloseProgress`` is the
single writer: every mutation swaps in a new frozen snapshot with a bumped
version, and callers that raced may pass the version they read to have a
stale write rejected.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from types import MappingProxyType
from typing import Any

import structlog

from closewatch.models import DecisionStatus, InputValidationError, parse_date

logger = structlog.get_logger(__name__)


class ConcurrentUpdateError(RuntimeError):
    """Raised when a write is based on an outdated snapshot version."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"progress changed: expected version {expected}, found {actual}")
        self.expected = expected
        self.actual = actual


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable view of review progress at one point in time."""

    reviewed_dates: frozenset[date] = frozenset()
    je_explained_dates: frozenset[date] = frozenset()
    memo_vendors: frozenset[str] = frozenset()
    decisions: Mapping[str, DecisionStatus] = field(
        default_factory=lambda: MappingProxyType({})
    )
    version: int = 0

    def decision_for(self, je_id: str) -> DecisionStatus:
        return self.decisions.get(je_id, DecisionStatus.PENDING)


def parse_decision(value: DecisionStatus | str) -> DecisionStatus:
    try:
        return DecisionStatus(value.upper() if isinstance(value, str) else value)
    except ValueError as exc:
        raise InputValidationError(f"unknown decision status {value!r}", "decision", value) from exc


class CloseProgress:
    """Mutable progress store owned by the surrounding session."""

    def __init__(self, snapshot: ProgressSnapshot | None = None):
        self._snapshot = snapshot or ProgressSnapshot()
        self._lock = threading.Lock()

    @property
    def version(self) -> int:
        return self._snapshot.version

    def snapshot(self) -> ProgressSnapshot:
        return self._snapshot

    def _commit(
        self,
        expected_version: int | None,
        change: Callable[[ProgressSnapshot], dict[str, Any]],
    ) -> ProgressSnapshot:
        with self._lock:
            current = self._snapshot
            if expected_version is not None and expected_version != current.version:
                raise ConcurrentUpdateError(expected_version, current.version)
            self._snapshot = replace(current, version=current.version + 1, **change(current))
            return self._snapshot

    def mark_day_reviewed(
        self, day: date | str, expected_version: int | None = None
    ) -> ProgressSnapshot:
        value = parse_date(day, "date")
        return self._commit(
            expected_version, lambda s: {"reviewed_dates": s.reviewed_dates | {value}}
        )

    def mark_day_explained(
        self, day: date | str, expected_version: int | None = None
    ) -> ProgressSnapshot:
        value = parse_date(day, "date")
        return self._commit(
            expected_version, lambda s: {"je_explained_dates": s.je_explained_dates | {value}}
        )

    def mark_vendor_explained(
        self, vendor_id: str, expected_version: int | None = None
    ) -> ProgressSnapshot:
        if not vendor_id:
            raise InputValidationError("vendor id is required", "vendorId", vendor_id)
        return self._commit(
            expected_version, lambda s: {"memo_vendors": s.memo_vendors | {vendor_id}}
        )

    def set_decision(
        self,
        je_id: str,
        status: DecisionStatus | str,
        expected_version: int | None = None,
    ) -> ProgressSnapshot:
        if not je_id:
            raise InputValidationError("entry id is required", "jeId", je_id)
        decision = parse_decision(status)
        snapshot = self._commit(
            expected_version,
            lambda s: {"decisions": MappingProxyType({**s.decisions, je_id: decision})},
        )
        logger.debug("decision_recorded", je_id=je_id, decision=decision.value)
        return snapshot
