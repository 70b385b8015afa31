"""Records consumed and produced by the close review engines.

Journal entries, vendor profiles and vendor invoices are immutable inputs
supplied by the caller. ``FlaggedEntry`` is derived on every query and never
stored. Parsing from and serialization to plain dicts uses the camelCase
field names the dashboard exchanges over JSON.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


class InputValidationError(ValueError):
    """Raised when a record or argument violates the input contract."""

    def __init__(self, message: str, field_name: str | None = None, value: Any = None):
        super().__init__(message)
        self.field_name = field_name
        self.value = value


class JEFlag(str, Enum):
    """Reasons a journal entry needs analyst attention."""

    DUPLICATE = "DUPLICATE"
    UNUSUAL_AMOUNT = "UNUSUAL_AMOUNT"
    REVERSAL_ISSUE = "REVERSAL_ISSUE"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Cadence(str, Enum):
    """Invoicing rhythm inferred from a vendor's history."""

    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    IRREGULAR = "Irregular"
    UNKNOWN = "Unknown"


class InvoiceStatus(str, Enum):
    PAID = "PAID"
    UNPAID = "UNPAID"


class DecisionStatus(str, Enum):
    """Analyst disposition of a flagged entry."""

    PENDING = "PENDING"
    IGNORED = "IGNORED"
    ESCALATED = "ESCALATED"
    REMEDIATED = "REMEDIATED"


# =============================================================================
# PARSING HELPERS
# =============================================================================


def parse_date(value: Any, field_name: str) -> date:
    """Accept a ``date``, a ``datetime`` (time dropped) or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise InputValidationError(
                f"{field_name}: invalid ISO date {value!r}", field_name, value
            ) from exc
    raise InputValidationError(f"{field_name}: expected a date, got {value!r}", field_name, value)


def parse_period(value: Any, field_name: str = "period") -> str:
    """Validate a ``YYYY-MM`` period identifier."""
    if not isinstance(value, str) or not PERIOD_PATTERN.match(value):
        raise InputValidationError(
            f"{field_name}: expected YYYY-MM period, got {value!r}", field_name, value
        )
    return value


def parse_amount(value: Any, field_name: str) -> Decimal:
    """Parse a non-negative monetary amount."""
    if value is None or isinstance(value, bool):
        raise InputValidationError(f"{field_name}: amount is required", field_name, value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise InputValidationError(
            f"{field_name}: invalid amount {value!r}", field_name, value
        ) from exc
    if not amount.is_finite():
        raise InputValidationError(f"{field_name}: amount must be finite", field_name, value)
    if amount < 0:
        raise InputValidationError(
            f"{field_name}: negative amount {amount}", field_name, value
        )
    return amount


def _require(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    raise InputValidationError(f"missing required field {keys[0]!r}", keys[0])


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InputValidationError(f"{field_name}: must be a non-empty string", field_name, value)
    return value


# =============================================================================
# INPUT RECORDS
# =============================================================================


@dataclass(frozen=True)
class JournalEntry:
    """A single posting against an account and cost center."""

    je_id: str
    posting_date: date
    period: str
    account: str
    cost_center: str
    debit: Decimal
    credit: Decimal
    description: str = ""
    preparer: str = ""
    approver: str = ""
    source_system: str = ""
    reversal_of: str | None = None

    def __post_init__(self) -> None:
        _require_text(self.je_id, "jeId")
        _require_text(self.account, "account")
        parse_period(self.period)
        object.__setattr__(self, "posting_date", parse_date(self.posting_date, "postingDate"))
        object.__setattr__(self, "debit", parse_amount(self.debit, "debit"))
        object.__setattr__(self, "credit", parse_amount(self.credit, "credit"))

    @property
    def net_amount(self) -> Decimal:
        return self.debit - self.credit

    @property
    def magnitude(self) -> Decimal:
        return abs(self.net_amount)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JournalEntry:
        """Build an entry from a camelCase mapping."""
        reversal_of = data.get("reversalOf")
        return cls(
            je_id=str(_require(data, "jeId", "id")),
            posting_date=parse_date(_require(data, "postingDate"), "postingDate"),
            period=parse_period(_require(data, "period")),
            account=str(_require(data, "account")),
            cost_center=str(data.get("costCenter", "")),
            debit=parse_amount(data.get("debit", 0), "debit"),
            credit=parse_amount(data.get("credit", 0), "credit"),
            description=str(data.get("description", "")),
            preparer=str(data.get("preparer", "")),
            approver=str(data.get("approver", "")),
            source_system=str(data.get("sourceSystem", "")),
            reversal_of=str(reversal_of) if reversal_of else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "jeId": self.je_id,
            "postingDate": self.posting_date.isoformat(),
            "period": self.period,
            "account": self.account,
            "costCenter": self.cost_center,
            "debit": float(self.debit),
            "credit": float(self.credit),
            "description": self.description,
            "preparer": self.preparer,
            "approver": self.approver,
            "sourceSystem": self.source_system,
        }
        if self.reversal_of:
            result["reversalOf"] = self.reversal_of
        return result


@dataclass(frozen=True)
class VendorProfile:
    """Static reference data for a vendor."""

    vendor_id: str
    vendor_name: str
    default_gl_account: str
    cost_center: str

    def __post_init__(self) -> None:
        _require_text(self.vendor_id, "vendorId")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VendorProfile:
        return cls(
            vendor_id=str(_require(data, "vendorId")),
            vendor_name=str(data.get("vendorName", "")),
            default_gl_account=str(data.get("defaultGLAccount", "")),
            cost_center=str(data.get("costCenter", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendorId": self.vendor_id,
            "vendorName": self.vendor_name,
            "defaultGLAccount": self.default_gl_account,
            "costCenter": self.cost_center,
        }


@dataclass(frozen=True)
class VendorInvoice:
    """A vendor invoice as received by accounts payable."""

    vendor_id: str
    invoice_id: str
    invoice_date: date
    due_date: date
    amount: Decimal
    period: str
    currency: str = "USD"
    gl_account: str = ""
    cost_center: str = ""
    status: InvoiceStatus = InvoiceStatus.UNPAID
    vendor_name: str = ""

    def __post_init__(self) -> None:
        _require_text(self.vendor_id, "vendorId")
        _require_text(self.invoice_id, "invoiceId")
        parse_period(self.period)
        object.__setattr__(self, "amount", parse_amount(self.amount, "amount"))
        object.__setattr__(self, "invoice_date", parse_date(self.invoice_date, "invoiceDate"))
        object.__setattr__(self, "due_date", parse_date(self.due_date, "dueDate"))
        try:
            object.__setattr__(self, "status", InvoiceStatus(self.status))
        except ValueError as exc:
            raise InputValidationError(
                f"status: unknown invoice status {self.status!r}", "status", self.status
            ) from exc

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VendorInvoice:
        invoice_date = parse_date(_require(data, "invoiceDate"), "invoiceDate")
        return cls(
            vendor_id=str(_require(data, "vendorId")),
            invoice_id=str(_require(data, "invoiceId")),
            invoice_date=invoice_date,
            due_date=parse_date(data.get("dueDate", invoice_date), "dueDate"),
            amount=parse_amount(_require(data, "amount"), "amount"),
            period=parse_period(data.get("period", invoice_date.isoformat()[:7])),
            currency=str(data.get("currency", "USD")),
            gl_account=str(data.get("glAccount", "")),
            cost_center=str(data.get("costCenter", "")),
            status=str(data.get("status", InvoiceStatus.UNPAID.value)).upper(),
            vendor_name=str(data.get("vendorName", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendorId": self.vendor_id,
            "vendorName": self.vendor_name,
            "invoiceId": self.invoice_id,
            "invoiceDate": self.invoice_date.isoformat(),
            "dueDate": self.due_date.isoformat(),
            "amount": float(self.amount),
            "currency": self.currency,
            "glAccount": self.gl_account,
            "costCenter": self.cost_center,
            "status": self.status.value,
            "period": self.period,
        }


# =============================================================================
# DERIVED RECORDS
# =============================================================================


@dataclass(frozen=True)
class FlagContext:
    """Evidence recorded while classifying an entry."""

    account_average: float | None = None
    account_std_dev: float | None = None
    duplicate_count: int | None = None
    has_matching_reversal: bool | None = None
    days_since_original: int | None = None

    def to_dict(self) -> dict[str, Any]:
        pairs = {
            "accountAverage": self.account_average,
            "accountStdDev": self.account_std_dev,
            "duplicateCount": self.duplicate_count,
            "hasMatchingReversal": self.has_matching_reversal,
            "daysSinceOriginal": self.days_since_original,
        }
        return {key: value for key, value in pairs.items() if value is not None}


@dataclass(frozen=True)
class FlaggedEntry:
    """An entry with its flags, risk level and supporting context."""

    entry: JournalEntry
    flags: tuple[JEFlag, ...] = ()
    risk: RiskLevel = RiskLevel.LOW
    context: FlagContext = field(default_factory=FlagContext)

    @property
    def is_flagged(self) -> bool:
        return bool(self.flags)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry": self.entry.to_dict(),
            "flags": [flag.value for flag in self.flags],
            "risk": self.risk.value,
            "context": self.context.to_dict(),
        }
