"""
Module: ledger_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines: invoice totals, payment state, debt/advance
    ledger, settlement distribution and financial summaries.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel, ledger_config.schema and sibling
    engine modules.

Invariants enforced:
    - Purity: engines never read the clock; ``now``/``created_at``/
      ``settled_at`` are always parameters.
    - Decimal-only arithmetic through ``Money``; floats are rejected.
    - Validation failures are returned in a ``Result``, never raised.

Usage:
    from ledger_engines import build_invoice, derive_debt, apply_payment
    from ledger_engines import distribute, summarize_customer
"""

from ledger_kernel.logging_config import get_logger

logger = get_logger("engines")

from ledger_engines.distribution import (
    Distribution,
    DistributionResult,
    DistributionType,
    EmployeeCredit,
    Fund,
    HoursRecord,
    ProductionRecord,
    Workshop,
    WorkshopSettlement,
    WorkType,
    default_distribution_type,
    distribute,
)
from ledger_engines.invoice_totals import (
    EmployeeOperation,
    Invoice,
    InvoiceCategory,
    InvoiceDirection,
    InvoiceInput,
    InvoiceTotals,
    LineItem,
    PaymentState,
    build_invoice,
    compute_totals,
    convert_to_breakage,
    edit_invoice,
    parse_invoice_input,
    validate_invoice,
)
from ledger_engines.ledger import (
    Counterpart,
    CounterpartKind,
    LedgerEntry,
    LedgerKind,
    LedgerPayment,
    LedgerStatus,
    apply_payment,
    apply_payments,
    check_integrity,
    display_progress,
    open_advance,
    open_debt,
    paid_after,
    payment_progress,
    pending_since,
)
from ledger_engines.payment_state import (
    LedgerEffect,
    LedgerEffectKind,
    collected_at_posting,
    derive_debt,
    plan_ledger_effect,
)
from ledger_engines.summary import (
    ActiveDebtView,
    CustomerFinancialSummary,
    DailySummary,
    EmployeeFinancialSummary,
    PaidDebtView,
    WorkshopFinancialSummary,
    summarize_customer,
    summarize_employee,
    summarize_workshop,
)
from ledger_engines.tracer import traced_engine

__all__ = [
    # Invoice totals
    "EmployeeOperation",
    "Invoice",
    "InvoiceCategory",
    "InvoiceDirection",
    "InvoiceInput",
    "InvoiceTotals",
    "LineItem",
    "PaymentState",
    "build_invoice",
    "compute_totals",
    "convert_to_breakage",
    "edit_invoice",
    "parse_invoice_input",
    "validate_invoice",
    # Payment state
    "LedgerEffect",
    "LedgerEffectKind",
    "collected_at_posting",
    "derive_debt",
    "plan_ledger_effect",
    # Ledger
    "Counterpart",
    "CounterpartKind",
    "LedgerEntry",
    "LedgerKind",
    "LedgerPayment",
    "LedgerStatus",
    "apply_payment",
    "apply_payments",
    "check_integrity",
    "display_progress",
    "open_advance",
    "open_debt",
    "paid_after",
    "payment_progress",
    "pending_since",
    # Distribution
    "Distribution",
    "DistributionResult",
    "DistributionType",
    "EmployeeCredit",
    "Fund",
    "HoursRecord",
    "ProductionRecord",
    "Workshop",
    "WorkshopSettlement",
    "WorkType",
    "default_distribution_type",
    "distribute",
    # Summary
    "ActiveDebtView",
    "CustomerFinancialSummary",
    "DailySummary",
    "EmployeeFinancialSummary",
    "PaidDebtView",
    "WorkshopFinancialSummary",
    "summarize_customer",
    "summarize_employee",
    "summarize_workshop",
    # Tracer
    "traced_engine",
]
