"""
ledger_engines.summary -- Read-side financial summaries.

Responsibility:
    Roll invoices, ledger entries, work records and settlements up into the
    figures shown on the customer, employee and workshop summary screens.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes ledger entries by reference and checks their integrity on
    read; never changes them.

Invariants enforced:
    - Sums are exact Money; percentages are computed from exact sums and
      rounded only for display.
    - Every ledger entry read passes ``check_integrity`` (raised otherwise).

Usage:
    from ledger_engines.summary import summarize_customer

    summary = summarize_customer("C-1", invoices, debts, now, settings)
    summary.reliability_score  # whole percent
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from ledger_config.schema import LedgerSettings
from ledger_engines.distribution import (
    EmployeeCredit,
    HoursRecord,
    WorkRecord,
    Workshop,
    WorkshopSettlement,
)
from ledger_engines.invoice_totals import (
    Invoice,
    InvoiceCategory,
    InvoiceDirection,
    PaymentState,
)
from ledger_engines.ledger import (
    CounterpartKind,
    LedgerEntry,
    LedgerKind,
    check_integrity,
    display_progress,
    paid_after,
    pending_since,
)
from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.calendar import local_date
from ledger_kernel.domain.values import Money, sum_money
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.summary")

_HUNDRED = Decimal("100")


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    return part / whole * _HUNDRED


def _whole(value: Decimal) -> Decimal:
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Customer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActiveDebtView:
    entry_id: str
    principal: Money
    remaining: Money
    paid_amount: Money
    progress: Decimal
    pending_since: int
    created_at: datetime
    last_payment_at: datetime | None


@dataclass(frozen=True)
class PaidDebtView:
    entry_id: str
    principal: Money
    paid_amount: Money
    paid_after: int
    created_at: datetime
    last_payment_at: datetime


@dataclass(frozen=True)
class CustomerFinancialSummary:
    """
    Everything the customer summary screen shows about money.

    ``current_debts`` and ``paid_debts`` are counts; the per-debt detail is
    in ``active_debts`` and ``paid_debts_detail``.
    """

    customer_id: str
    total_sales: Money
    total_paid: Money
    pending_amount: Money
    current_debts: int
    paid_debts: int
    payment_ratio: Decimal
    on_time_ratio: Decimal
    reliability_score: Decimal
    prefers_paying: bool
    prefers_debt: bool
    active_debts: tuple[ActiveDebtView, ...] = ()
    paid_debts_detail: tuple[PaidDebtView, ...] = ()


def _customer_debts(customer_id: str, debts: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    owned = []
    for entry in debts:
        if (
            entry.kind is LedgerKind.DEBT
            and entry.owner.kind is CounterpartKind.CUSTOMER
            and entry.owner.id == customer_id
        ):
            check_integrity(entry)
            owned.append(entry)
    return owned


def _on_time(entry: LedgerEntry, now: datetime, settings: LedgerSettings) -> bool:
    if entry.is_active:
        return pending_since(entry, now, settings.tz) <= settings.on_time_days
    return paid_after(entry, settings.tz) <= settings.on_time_days


@traced_engine("summary.customer", "1.0", fingerprint_fields=("customer_id",))
def summarize_customer(
    customer_id: str,
    invoices: Iterable[Invoice],
    debts: Iterable[LedgerEntry],
    now: datetime,
    settings: LedgerSettings | None = None,
) -> CustomerFinancialSummary:
    """
    Build a customer's financial summary.

    Args:
        customer_id: The customer being summarized.
        invoices: Invoices to consider; other customers' are skipped.
        debts: Ledger entries to consider; only this customer's debts count.
        now: Reference time for "pending since" day counts.
        settings: Currency, timezone, on-time window and score weights.

    Raises:
        LedgerIntegrityError: If one of the customer's debts is corrupt.
    """
    settings = settings or LedgerSettings()
    currency = settings.currency_obj

    sales = [
        inv for inv in invoices
        if inv.customer_id == customer_id
        and inv.category is InvoiceCategory.PRODUCTS
        and inv.direction is InvoiceDirection.INCOME
    ]
    owned = _customer_debts(customer_id, debts)
    active = [d for d in owned if d.is_active]
    settled = [d for d in owned if not d.is_active]

    total_sales = sum_money((inv.gross_total for inv in sales), currency)
    pending_amount = sum_money((d.remaining for d in active), currency)

    sale_ids = {inv.invoice_id for inv in sales}
    pending_on_sales = sum_money(
        (d.remaining for d in active if d.source_invoice_id in sale_ids), currency,
    )
    total_paid = max(total_sales - pending_on_sales, Money.zero(currency))

    if total_sales.is_zero:
        payment_ratio = _HUNDRED
    else:
        payment_ratio = _percent(total_paid.amount, total_sales.amount)

    if owned:
        on_time_count = sum(1 for d in owned if _on_time(d, now, settings))
        on_time_ratio = _percent(Decimal(on_time_count), Decimal(len(owned)))
    else:
        on_time_ratio = _HUNDRED

    weights = settings.reliability_weights
    reliability = _whole(weights.payment_ratio * payment_ratio + weights.on_time * on_time_ratio)

    paid_count = sum(1 for inv in sales if inv.payment_state is PaymentState.PAID)
    debt_count = len(sales) - paid_count

    summary = CustomerFinancialSummary(
        customer_id=customer_id,
        total_sales=total_sales,
        total_paid=total_paid,
        pending_amount=pending_amount,
        current_debts=len(active),
        paid_debts=len(settled),
        payment_ratio=payment_ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        on_time_ratio=on_time_ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        reliability_score=reliability,
        prefers_paying=paid_count >= debt_count,
        prefers_debt=debt_count > paid_count,
        active_debts=tuple(
            ActiveDebtView(
                entry_id=d.entry_id,
                principal=d.principal,
                remaining=d.remaining,
                paid_amount=d.paid_amount,
                progress=display_progress(d),
                pending_since=pending_since(d, now, settings.tz),
                created_at=d.created_at,
                last_payment_at=d.last_payment_at,
            )
            for d in active
        ),
        paid_debts_detail=tuple(
            PaidDebtView(
                entry_id=d.entry_id,
                principal=d.principal,
                paid_amount=d.paid_amount,
                paid_after=paid_after(d, settings.tz),
                created_at=d.created_at,
                last_payment_at=d.last_payment_at,
            )
            for d in settled
        ),
    )
    logger.info("customer_summarized", extra={
        "customer_id": customer_id,
        "invoice_count": len(sales),
        "debt_count": len(owned),
        "reliability_score": summary.reliability_score,
    })
    return summary


# ---------------------------------------------------------------------------
# Employee
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmployeeFinancialSummary:
    employee_id: str
    total_earnings: Money
    total_settled: Money
    total_withdrawals: Money
    debt_amount: Money
    net_amount: Money


def summarize_employee(
    employee_id: str,
    records: Iterable[WorkRecord] = (),
    credits: Iterable[EmployeeCredit] = (),
    withdrawals: Iterable[Money] = (),
    debts: Iterable[LedgerEntry] = (),
    settings: LedgerSettings | None = None,
) -> EmployeeFinancialSummary:
    """
    Net position of one employee: earnings - payouts - open debt.

    Earnings are the employee's hours and production records valued at
    their rates, rounded to the minor unit once after summing. Settlement
    credits pay those earnings out, so they count with cash withdrawals
    against them, the same way ``summarize_workshop`` books settlements.

    Raises:
        LedgerIntegrityError: If one of the employee's debts is corrupt.
    """
    settings = settings or LedgerSettings()
    currency = settings.currency_obj

    total_earnings = sum_money(
        (r.earned(currency) for r in records if r.employee_id == employee_id), currency,
    ).round()
    total_settled = sum_money(
        (c.amount for c in credits if c.employee_id == employee_id), currency,
    )
    total_withdrawals = sum_money(withdrawals, currency) + total_settled

    debt_amount = Money.zero(currency)
    for entry in debts:
        if (
            entry.kind is LedgerKind.DEBT
            and entry.owner.kind is CounterpartKind.EMPLOYEE
            and entry.owner.id == employee_id
        ):
            check_integrity(entry)
            if entry.is_active:
                debt_amount = debt_amount + entry.remaining

    return EmployeeFinancialSummary(
        employee_id=employee_id,
        total_earnings=total_earnings,
        total_settled=total_settled,
        total_withdrawals=total_withdrawals,
        debt_amount=debt_amount,
        net_amount=total_earnings - total_withdrawals - debt_amount,
    )


# ---------------------------------------------------------------------------
# Workshop
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DailySummary:
    day: date
    hours: Decimal
    earnings: Money
    withdrawals: Money


@dataclass(frozen=True)
class WorkshopFinancialSummary:
    workshop_id: str
    start: date
    end: date
    total_earnings: Money
    total_withdrawals: Money
    net_amount: Money
    daily: tuple[DailySummary, ...] = ()


def summarize_workshop(
    workshop: Workshop,
    records: Sequence[WorkRecord],
    settlements: Sequence[WorkshopSettlement],
    start: date,
    end: date,
    settings: LedgerSettings | None = None,
) -> WorkshopFinancialSummary:
    """Earnings recorded and settlements paid out per day, for ``start``..``end`` inclusive."""
    settings = settings or LedgerSettings()
    currency = settings.currency_obj
    tz = settings.tz
    zero = Money.zero(currency)

    hours: dict[date, Decimal] = {}
    earnings: dict[date, Money] = {}
    withdrawals: dict[date, Money] = {}

    for record in records:
        day = local_date(record.recorded_on, tz)
        if not start <= day <= end:
            continue
        if isinstance(record, HoursRecord):
            hours[day] = hours.get(day, Decimal("0")) + record.hours
        earnings[day] = earnings.get(day, zero) + record.earned(currency)

    for settlement in settlements:
        if settlement.workshop_id != workshop.workshop_id:
            continue
        day = local_date(settlement.settled_at, tz)
        if start <= day <= end:
            withdrawals[day] = withdrawals.get(day, zero) + settlement.amount

    daily = tuple(
        DailySummary(
            day=day,
            hours=hours.get(day, Decimal("0")),
            earnings=earnings.get(day, zero).round(),
            withdrawals=withdrawals.get(day, zero),
        )
        for day in sorted(set(earnings) | set(withdrawals))
    )
    total_earnings = sum_money((d.earnings for d in daily), currency)
    total_withdrawals = sum_money((d.withdrawals for d in daily), currency)

    return WorkshopFinancialSummary(
        workshop_id=workshop.workshop_id,
        start=start,
        end=end,
        total_earnings=total_earnings,
        total_withdrawals=total_withdrawals,
        net_amount=total_earnings - total_withdrawals,
        daily=daily,
    )
