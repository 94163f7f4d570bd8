"""
ledger_engines.ledger -- Debt and advance ledger entries and their payment rules.

Responsibility:
    Define the immutable ledger entry (a debt owed by or an advance held
    for a customer or employee) and the only operation that changes one:
    applying a payment. Also derives the read-side aging figures shown
    next to each entry.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel.

Invariants enforced:
    - 0 <= remaining <= principal, principal > 0.
    - remaining never increases; it reaches exactly zero only through a
      payment equal to the remaining amount, which closes the entry.
    - A closed entry (PAID / REPAID) is terminal.
    - Overpayments are rejected, never clamped.

Failure modes:
    - Returned: InvalidAmount, InvalidField, AlreadySettled, OverpaymentError.
    - Raised: LedgerIntegrityError when an entry read from storage already
      violates the invariants above.

Usage:
    from ledger_engines.ledger import Counterpart, open_debt, apply_payment

    debt = open_debt(Counterpart.customer("C-1"), Money.of("230", "SYP"), now).unwrap()
    paid = apply_payment(debt, Money.of("230", "SYP"), now).unwrap()
    assert paid.status is LedgerStatus.PAID
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import uuid4

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.calendar import calendar_days_between
from ledger_kernel.domain.values import Money
from ledger_kernel.errors import (
    AlreadySettled,
    InvalidAmount,
    InvalidField,
    LedgerError,
    OverpaymentError,
    Result,
)
from ledger_kernel.exceptions import LedgerIntegrityError
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")

_HUNDRED = Decimal("100")


class LedgerKind(str, Enum):
    DEBT = "debt"
    ADVANCE = "advance"


class LedgerStatus(str, Enum):
    ACTIVE = "active"
    PAID = "paid"  # Closed debt
    REPAID = "repaid"  # Closed advance


class CounterpartKind(str, Enum):
    CUSTOMER = "customer"
    EMPLOYEE = "employee"


@dataclass(frozen=True)
class Counterpart:
    """Who owes (debt) or is owed (advance) the entry's amount."""

    kind: CounterpartKind
    id: str

    @classmethod
    def customer(cls, customer_id: str) -> Counterpart:
        return cls(kind=CounterpartKind.CUSTOMER, id=customer_id)

    @classmethod
    def employee(cls, employee_id: str) -> Counterpart:
        return cls(kind=CounterpartKind.EMPLOYEE, id=employee_id)


@dataclass(frozen=True)
class LedgerPayment:
    """One payment applied against an entry."""

    amount: Money
    paid_at: datetime
    reference: str | None = None


@dataclass(frozen=True)
class LedgerEntry:
    """
    A debt or advance being paid down over time.

    Contract:
        Frozen; ``apply_payment`` returns a new entry. ``payments`` holds
        the full history in the order applied.
    Guarantees:
        - ``closed_status`` is the status the entry takes when remaining
          reaches zero (PAID for debts, REPAID for advances).
    Non-goals:
        - Does not validate itself on construction; records coming back
          from storage are checked with ``check_integrity`` on read.
    """

    kind: LedgerKind
    owner: Counterpart
    principal: Money
    remaining: Money
    created_at: datetime
    status: LedgerStatus = LedgerStatus.ACTIVE
    entry_id: str = field(default_factory=lambda: str(uuid4()))
    last_payment_at: datetime | None = None
    payments: tuple[LedgerPayment, ...] = ()
    source_invoice_id: str | None = None

    @property
    def closed_status(self) -> LedgerStatus:
        return LedgerStatus.PAID if self.kind is LedgerKind.DEBT else LedgerStatus.REPAID

    @property
    def is_active(self) -> bool:
        return self.status is LedgerStatus.ACTIVE

    @property
    def paid_amount(self) -> Money:
        return self.principal - self.remaining


def check_integrity(entry: LedgerEntry) -> None:
    """
    Raise if a stored entry violates the ledger invariants.

    Raises:
        LedgerIntegrityError: On a non-positive principal, a negative
            remaining, remaining above principal, a currency mismatch, or a
            status that disagrees with the remaining amount.
    """
    reason: str | None = None
    if entry.principal.currency != entry.remaining.currency:
        reason = "principal and remaining are in different currencies"
    elif not entry.principal.is_positive:
        reason = f"principal {entry.principal.amount} is not positive"
    elif entry.remaining.is_negative:
        reason = f"remaining {entry.remaining.amount} is negative"
    elif entry.remaining > entry.principal:
        reason = f"remaining {entry.remaining.amount} exceeds principal {entry.principal.amount}"
    elif entry.is_active and entry.remaining.is_zero:
        reason = "entry is active with nothing remaining"
    elif not entry.is_active and entry.status is not entry.closed_status:
        reason = f"status {entry.status.value} is not valid for a {entry.kind.value}"
    elif not entry.is_active and not entry.remaining.is_zero:
        reason = f"entry is {entry.status.value} with {entry.remaining.amount} remaining"

    if reason is not None:
        logger.error("ledger_integrity_violation", extra={
            "entry_id": entry.entry_id,
            "kind": entry.kind.value,
            "reason": reason,
        })
        raise LedgerIntegrityError(entry.entry_id, reason)


def _amount_errors(amount: Money, field_name: str) -> list[LedgerError]:
    if not amount.is_positive:
        return [InvalidAmount("must be greater than zero", field=field_name)]
    if not amount.is_exact:
        return [InvalidAmount("amount is finer than the minor unit", field=field_name)]
    return []


def _open(
    kind: LedgerKind,
    owner: Counterpart,
    principal: Money,
    created_at: datetime,
    entry_id: str | None,
    source_invoice_id: str | None,
) -> Result[LedgerEntry]:
    errors = _amount_errors(principal, "principal")
    if not owner.id:
        errors.append(InvalidField(f"a {kind.value} needs an owner", field="owner"))
    if errors:
        logger.warning("ledger_open_rejected", extra={
            "kind": kind.value,
            "codes": sorted({e.code for e in errors}),
        })
        return Result.failed(*errors)

    entry = LedgerEntry(
        kind=kind,
        owner=owner,
        principal=principal,
        remaining=principal,
        created_at=created_at,
        source_invoice_id=source_invoice_id,
        **({"entry_id": entry_id} if entry_id else {}),
    )
    logger.info("ledger_entry_opened", extra={
        "entry_id": entry.entry_id,
        "kind": kind.value,
        "owner_kind": owner.kind.value,
        "owner_id": owner.id,
        "principal": str(principal.amount),
    })
    return Result.ok(entry)


def open_debt(
    owner: Counterpart,
    principal: Money,
    created_at: datetime,
    entry_id: str | None = None,
    source_invoice_id: str | None = None,
) -> Result[LedgerEntry]:
    """Open an active debt for the unpaid ``principal``."""
    return _open(LedgerKind.DEBT, owner, principal, created_at, entry_id, source_invoice_id)


def open_advance(
    owner: Counterpart,
    principal: Money,
    created_at: datetime,
    entry_id: str | None = None,
    source_invoice_id: str | None = None,
) -> Result[LedgerEntry]:
    """Open an active advance received from ``owner``."""
    return _open(LedgerKind.ADVANCE, owner, principal, created_at, entry_id, source_invoice_id)


@traced_engine("ledger.apply_payment", "1.0", fingerprint_fields=("amount",))
def apply_payment(
    entry: LedgerEntry,
    amount: Money,
    paid_at: datetime,
    reference: str | None = None,
) -> Result[LedgerEntry]:
    """
    Apply one payment to an active entry.

    Preconditions:
        ``entry`` passes ``check_integrity`` (checked here, raised if not).

    Postconditions:
        On success a new entry with remaining reduced by ``amount``, the
        payment appended to its history and ``last_payment_at`` set; the
        entry closes when remaining reaches exactly zero.
        On failure the caller's entry is the only version that exists.
    """
    check_integrity(entry)

    errors: list[LedgerError] = []
    if amount.currency != entry.remaining.currency:
        errors.append(InvalidField(
            f"payment currency {amount.currency} does not match {entry.remaining.currency}",
            field="amount",
        ))
    else:
        errors.extend(_amount_errors(amount, "amount"))
    if not errors and not entry.is_active:
        errors.append(AlreadySettled(
            f"{entry.kind.value} is already {entry.status.value}",
            field="amount",
            entry_id=entry.entry_id,
        ))
    if not errors and amount > entry.remaining:
        errors.append(OverpaymentError(
            f"payment exceeds the remaining {entry.remaining.amount} by "
            f"{(amount - entry.remaining).amount}",
            field="amount",
            amount=amount,
            remaining=entry.remaining,
        ))

    if errors:
        logger.warning("ledger_payment_rejected", extra={
            "entry_id": entry.entry_id,
            "amount": str(amount.amount),
            "codes": sorted({e.code for e in errors}),
        })
        return Result.failed(*errors)

    remaining = entry.remaining - amount
    updated = replace(
        entry,
        remaining=remaining,
        status=entry.closed_status if remaining.is_zero else LedgerStatus.ACTIVE,
        last_payment_at=paid_at,
        payments=entry.payments + (LedgerPayment(amount=amount, paid_at=paid_at, reference=reference),),
    )
    logger.info("ledger_payment_applied", extra={
        "entry_id": entry.entry_id,
        "amount": str(amount.amount),
        "remaining": str(remaining.amount),
        "status": updated.status.value,
    })
    return Result.ok(updated)


def apply_payments(
    entry: LedgerEntry,
    amounts: Iterable[Money],
    paid_at: datetime,
    reference: str | None = None,
) -> Result[LedgerEntry]:
    """Apply several payments in order; the first rejection wins and nothing is applied."""
    current = entry
    for amount in amounts:
        result = apply_payment(current, amount, paid_at, reference)
        if not result.success:
            return Result.failed(*result.errors)
        current = result.value
    return Result.ok(current)


def payment_progress(entry: LedgerEntry) -> Decimal:
    """Percentage of the principal paid so far, unrounded."""
    check_integrity(entry)
    return entry.paid_amount.amount / entry.principal.amount * _HUNDRED


def display_progress(entry: LedgerEntry) -> Decimal:
    """Whole-percent progress in [0, 100], for display only."""
    progress = min(max(payment_progress(entry), Decimal("0")), _HUNDRED)
    return progress.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def pending_since(entry: LedgerEntry, now: datetime, tz: tzinfo | None = None) -> int | None:
    """Calendar days an active entry has been open; None once it is closed."""
    check_integrity(entry)
    if not entry.is_active:
        return None
    return calendar_days_between(entry.created_at, now, tz)


def paid_after(entry: LedgerEntry, tz: tzinfo | None = None) -> int | None:
    """Calendar days it took to close the entry; None while it is active."""
    check_integrity(entry)
    if entry.is_active or entry.last_payment_at is None:
        return None
    return calendar_days_between(entry.created_at, entry.last_payment_at, tz)
