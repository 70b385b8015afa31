"""Pytest configuration and fixtures."""

import os
from datetime import date
from decimal import Decimal

import pytest

# Keep narrative tests offline regardless of the developer's shell
os.environ.pop("OPENAI_API_KEY", None)
os.environ.setdefault("LOG_LEVEL", "WARNING")

from closewatch.config import get_settings  # noqa: E402
from closewatch.models import JournalEntry, VendorInvoice, VendorProfile  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings so env changes in a test take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_entry():
    """Factory for journal entries; period follows the posting date."""

    def _make(
        je_id: str,
        posting_date: str,
        account: str = "6100",
        cost_center: str = "OPS",
        debit: str | int = 0,
        credit: str | int = 0,
        description: str = "Operating expense",
        reversal_of: str | None = None,
    ) -> JournalEntry:
        return JournalEntry(
            je_id=je_id,
            posting_date=date.fromisoformat(posting_date),
            period=posting_date[:7],
            account=account,
            cost_center=cost_center,
            debit=Decimal(str(debit)),
            credit=Decimal(str(credit)),
            description=description,
            preparer="alex",
            approver="sam",
            source_system="ERP",
            reversal_of=reversal_of,
        )

    return _make


@pytest.fixture
def make_invoice():
    """Factory for vendor invoices; period follows the invoice date."""

    def _make(
        vendor_id: str,
        invoice_id: str,
        invoice_date: str,
        amount: str | int,
        status: str = "PAID",
    ) -> VendorInvoice:
        return VendorInvoice(
            vendor_id=vendor_id,
            invoice_id=invoice_id,
            invoice_date=date.fromisoformat(invoice_date),
            due_date=date.fromisoformat(invoice_date),
            amount=Decimal(str(amount)),
            period=invoice_date[:7],
            currency="USD",
            gl_account="6200",
            cost_center="OPS",
            status=status,
        )

    return _make


@pytest.fixture
def vendors():
    """Vendor profiles, deliberately not in name order."""
    return [
        VendorProfile("V-CLOUD", "Stratus Cloud Hosting", "6300 - Software & Hosting", "IT"),
        VendorProfile("V-AUDIT", "Beacon Audit Partners", "6500 - Professional Fees", "FIN"),
        VendorProfile("V-FREIGHT", "Anchor Freight", "6400 - Freight", "OPS"),
        VendorProfile("V-MISC", "Misc Supplies Co", "6100 - Supplies", "OPS"),
        VendorProfile("V-NEW", "Northwind Legal", "6500 - Professional Fees", "LEGAL"),
    ]


@pytest.fixture
def invoices(make_invoice):
    """Invoice history: monthly, quarterly, irregular and sparse vendors."""
    monthly = [
        make_invoice("V-CLOUD", "CL-1", "2025-01-15", 1000),
        make_invoice("V-CLOUD", "CL-2", "2025-02-14", 1100),
        make_invoice("V-CLOUD", "CL-3", "2025-03-16", 1200),
        make_invoice("V-CLOUD", "CL-4", "2025-04-15", 1300),
        make_invoice("V-CLOUD", "CL-5", "2025-05-15", 1400),
        make_invoice("V-CLOUD", "CL-6", "2025-06-14", 1500, status="UNPAID"),
    ]
    quarterly = [
        make_invoice("V-AUDIT", "AU-1", "2024-07-01", 9000),
        make_invoice("V-AUDIT", "AU-2", "2024-10-01", 9000),
        make_invoice("V-AUDIT", "AU-3", "2025-01-01", 9500),
        make_invoice("V-AUDIT", "AU-4", "2025-04-01", 9500),
    ]
    irregular = [
        make_invoice("V-MISC", "MS-1", "2025-01-01", 300),
        make_invoice("V-MISC", "MS-2", "2025-02-25", 450),
        make_invoice("V-MISC", "MS-3", "2025-04-21", 200),
        make_invoice("V-MISC", "MS-4", "2025-06-15", 380),
    ]
    sparse = [
        make_invoice("V-FREIGHT", "FR-1", "2025-04-10", 800),
        make_invoice("V-FREIGHT", "FR-2", "2025-05-10", 820),
        make_invoice("V-FREIGHT", "FR-3", "2025-06-09", 810),
    ]
    # Out of order on purpose; the engine sorts by invoice date.
    return list(reversed(monthly)) + quarterly + irregular + sparse


@pytest.fixture
def july_entries(make_entry):
    """Ten July entries where only the two freight postings collide."""
    return [
        make_entry("JE-101", "2025-07-01", account="6010", debit=1200),
        make_entry("JE-102", "2025-07-01", account="6020", debit=450),
        make_entry("JE-103", "2025-07-02", account="6030", debit=3100),
        make_entry("JE-104", "2025-07-03", account="6040", debit=780),
        make_entry("JE-105", "2025-07-07", account="6050", debit=2300),
        make_entry("JE-106", "2025-07-08", account="6060", debit=615),
        make_entry("JE-107", "2025-07-09", account="6070", debit=990),
        make_entry("JE-108", "2025-07-09", account="6080", debit=4400),
        make_entry(
            "JE-109", "2025-07-10", account="6400", debit=8200, description="Freight - July lanes"
        ),
        make_entry(
            "JE-110", "2025-07-10", account="6400", debit=8200, description="Freight - July lanes"
        ),
    ]
