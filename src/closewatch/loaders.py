"""Load journal entries, vendor invoices and vendor profiles from files.

Files are YAML (``.yaml``/``.yml``) or JSON and hold either a list of
camelCase records or a mapping with the list under ``entries``,
``invoices`` or ``vendors``.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import structlog
import yaml  # type: ignore[import-untyped]

from closewatch.models import InputValidationError, JournalEntry, VendorInvoice, VendorProfile

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _read_document(path: Path) -> Any:
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InputValidationError(f"{path.name}: invalid JSON: {exc}") from exc
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise InputValidationError(f"{path.name}: invalid YAML: {exc}") from exc


def load_records(path: str | Path, key: str) -> list[dict[str, Any]]:
    """Read the raw record list from ``path``."""
    path = Path(path)
    data = _read_document(path)
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise InputValidationError(f"{path.name}: {key} must be a list")
    for idx, item in enumerate(data):
        if not isinstance(item, dict):
            raise InputValidationError(f"{path.name}: {key}[{idx}] must be a mapping")
    return data


def _load(path: str | Path, key: str, factory: Callable[[dict[str, Any]], T]) -> list[T]:
    path = Path(path)
    records = []
    for idx, item in enumerate(load_records(path, key)):
        try:
            records.append(factory(item))
        except InputValidationError as exc:
            raise InputValidationError(
                f"{path.name}: {key}[{idx}]: {exc}", exc.field_name, exc.value
            ) from exc
    logger.debug("records_loaded", path=str(path), kind=key, count=len(records))
    return records


def load_journal_entries(path: str | Path) -> list[JournalEntry]:
    return _load(path, "entries", JournalEntry.from_dict)


def load_vendor_invoices(path: str | Path) -> list[VendorInvoice]:
    return _load(path, "invoices", VendorInvoice.from_dict)


def load_vendor_profiles(path: str | Path) -> list[VendorProfile]:
    return _load(path, "vendors", VendorProfile.from_dict)
