"""
ledger_engines.payment_state -- What posting an invoice does to the ledgers.

Responsibility:
    Decide, once and at creation time, how much of an invoice is collected
    immediately and whether a debt or advance has to be opened, paid down
    or repaid because of it.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Reads invoices from ledger_engines.invoice_totals and produces entries
    through ledger_engines.ledger.

Invariants enforced:
    - PAID opens nothing; UNPAID opens a debt for the gross total;
      BREAKAGE opens a debt for gross_total - first_payment.
    - The payment state is only read here, never changed; later payments
      go through ``ledger.apply_payment``.

Failure modes:
    - None returned: invoices reaching this module were built by
      ``build_invoice`` and are already valid.

Usage:
    from ledger_engines.payment_state import derive_debt, plan_ledger_effect

    debt = derive_debt(invoice)          # LedgerEntry or None
    effect = plan_ledger_effect(invoice)  # e.g. OPEN_ADVANCE for 120 SYP
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ledger_engines.invoice_totals import (
    EmployeeOperation,
    Invoice,
    InvoiceCategory,
    InvoiceDirection,
    PaymentState,
)
from ledger_engines.ledger import Counterpart, LedgerEntry, open_debt
from ledger_kernel.domain.values import Money
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.payment_state")


class LedgerEffectKind(str, Enum):
    """Ledger movement implied by posting an invoice."""

    NONE = "none"
    OPEN_DEBT = "open_debt"
    DEBT_PAYMENT = "debt_payment"
    OPEN_ADVANCE = "open_advance"  # Receive advance
    REPAY_ADVANCE = "repay_advance"


@dataclass(frozen=True)
class LedgerEffect:
    kind: LedgerEffectKind
    amount: Money
    owner: Counterpart | None = None

    @property
    def is_none(self) -> bool:
        return self.kind is LedgerEffectKind.NONE


def unpaid_amount(invoice: Invoice) -> Money:
    """What remains owed on a products invoice right after posting."""
    match invoice.payment_state:
        case PaymentState.PAID:
            return Money.zero(invoice.currency)
        case PaymentState.UNPAID:
            return invoice.gross_total
        case PaymentState.BREAKAGE:
            return invoice.totals.remaining_after_first_payment
    raise ValueError(f"Unknown payment state: {invoice.payment_state}")


def collected_at_posting(invoice: Invoice) -> Money:
    """Cash received when the invoice is posted."""
    return invoice.gross_total - unpaid_amount(invoice)


def derive_debt(invoice: Invoice, entry_id: str | None = None) -> LedgerEntry | None:
    """
    The debt an invoice opens through its payment state, if any.

    Returns None for PAID invoices. For UNPAID and BREAKAGE the debt is
    owned by the invoice's customer, its principal is the unpaid amount
    and it is dated at the invoice's creation time.
    """
    owed = unpaid_amount(invoice)
    if owed.is_zero:
        return None

    debt = open_debt(
        Counterpart.customer(invoice.customer_id),
        owed,
        invoice.created_at,
        entry_id=entry_id,
        source_invoice_id=invoice.invoice_id,
    ).unwrap()
    logger.info("debt_derived", extra={
        "invoice_id": invoice.invoice_id,
        "entry_id": debt.entry_id,
        "payment_state": invoice.payment_state.value,
        "principal": str(owed.amount),
    })
    return debt


def plan_ledger_effect(invoice: Invoice) -> LedgerEffect:
    """
    Map an invoice's category and direction to the ledger movement it implies.

    The caller carries the movement out: opening the entry, or applying the
    amount as a payment to the owner's active debt or advance.
    """
    amount = invoice.gross_total
    customer = Counterpart.customer(invoice.customer_id) if invoice.customer_id else None
    income = invoice.direction is InvoiceDirection.INCOME

    match invoice.category:
        case InvoiceCategory.PRODUCTS:
            owed = unpaid_amount(invoice)
            if owed.is_zero:
                effect = LedgerEffect(LedgerEffectKind.NONE, owed)
            else:
                effect = LedgerEffect(LedgerEffectKind.OPEN_DEBT, owed, customer)
        case InvoiceCategory.DEBT:
            if income:
                effect = LedgerEffect(LedgerEffectKind.DEBT_PAYMENT, amount, customer)
            elif customer is not None:
                effect = LedgerEffect(LedgerEffectKind.OPEN_DEBT, amount, customer)
            else:
                effect = LedgerEffect(LedgerEffectKind.NONE, Money.zero(invoice.currency))
        case InvoiceCategory.ADVANCE:
            kind = LedgerEffectKind.OPEN_ADVANCE if income else LedgerEffectKind.REPAY_ADVANCE
            effect = LedgerEffect(kind, amount, customer)
        case InvoiceCategory.EMPLOYEE:
            employee = Counterpart.employee(invoice.employee_id)
            match invoice.details.employee_operation:
                case EmployeeOperation.DEBT:
                    effect = LedgerEffect(LedgerEffectKind.OPEN_DEBT, amount, employee)
                case EmployeeOperation.DEBT_PAYMENT:
                    effect = LedgerEffect(LedgerEffectKind.DEBT_PAYMENT, amount, employee)
                case _:
                    effect = LedgerEffect(LedgerEffectKind.NONE, Money.zero(invoice.currency))
        case _:
            effect = LedgerEffect(LedgerEffectKind.NONE, Money.zero(invoice.currency))

    logger.debug("ledger_effect_planned", extra={
        "invoice_id": invoice.invoice_id,
        "effect": effect.kind.value,
        "amount": str(effect.amount.amount),
    })
    return effect
