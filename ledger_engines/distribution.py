"""
ledger_engines.distribution -- Workshop settlement distribution.

Responsibility:
    Pay out part or all of a workshop's accrued balance to its employees,
    either as explicit manual splits or proportionally to the work each
    employee recorded since the previous settlement.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Returns every record the settlement changes; the caller commits them
    together or not at all.

Invariants enforced:
    - Shares always sum to exactly the settlement amount, compared in
      integer minor units.
    - Manual: every split is positive, names a current member at most
      once, and the splits add up to the amount.
    - Automatic: shares are proportional to hours (HOURLY) or production
      value (PRODUCTION) recorded after ``last_settled_at``; each share
      is rounded on its own and the last employee absorbs the remainder.
    - Nothing is returned on failure except the errors.

Failure modes:
    - InvalidAmount / InvalidField: malformed amount, splits or records.
    - InsufficientBalance: amount above the workshop or fund balance.
    - DistributionMismatch: manual splits short of or above the amount.
    - NoWorkRecorded: automatic mode with no work in the period.

Usage:
    from ledger_engines.distribution import DistributionType, distribute

    result = distribute(
        workshop, Money.of("300", "SYP"), DistributionType.AUTOMATIC,
        records=hours, settled_at=now,
    )
    for credit in result.unwrap().credits:
        ...
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import uuid4

from ledger_config.schema import LedgerSettings
from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.calendar import as_local, business_day_start
from ledger_kernel.domain.values import Currency, Money
from ledger_kernel.errors import (
    DistributionMismatch,
    InsufficientBalance,
    InvalidAmount,
    InvalidField,
    LedgerError,
    NoWorkRecorded,
    Result,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.distribution")


class WorkType(str, Enum):
    HOURLY = "hourly"
    PRODUCTION = "production"


class DistributionType(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


def default_distribution_type(work_type: WorkType) -> DistributionType:
    """Hourly workshops default to automatic splits, production ones to manual."""
    if work_type is WorkType.HOURLY:
        return DistributionType.AUTOMATIC
    return DistributionType.MANUAL


@dataclass(frozen=True)
class Workshop:
    workshop_id: str
    work_type: WorkType
    current_balance: Money
    members: tuple[str, ...] = ()
    last_settled_at: datetime | None = None


@dataclass(frozen=True)
class HoursRecord:
    """Hours one employee worked on one day. Earned = hours * hourly_rate."""

    employee_id: str
    worked_on: date | datetime
    hours: Decimal
    hourly_rate: Decimal = Decimal("0")

    @property
    def recorded_on(self) -> date | datetime:
        return self.worked_on

    @property
    def weight(self) -> Decimal:
        return self.hours

    def earned(self, currency: Currency | str) -> Money:
        return Money(amount=self.hours * self.hourly_rate, currency=currency)


@dataclass(frozen=True)
class ProductionRecord:
    """Units one employee produced on one day. Value = quantity * production_rate."""

    employee_id: str
    produced_on: date | datetime
    item_id: str
    quantity: Decimal
    production_rate: Decimal = Decimal("0")

    @property
    def recorded_on(self) -> date | datetime:
        return self.produced_on

    @property
    def weight(self) -> Decimal:
        return self.quantity * self.production_rate

    def earned(self, currency: Currency | str) -> Money:
        return Money(amount=self.weight, currency=currency)


WorkRecord = HoursRecord | ProductionRecord


@dataclass(frozen=True)
class Fund:
    """Cash box a settlement is paid from."""

    fund_id: str
    current_balance: Money


@dataclass(frozen=True)
class Distribution:
    """One employee's share of a settlement."""

    employee_id: str
    amount: Money


@dataclass(frozen=True)
class WorkshopSettlement:
    settlement_id: str
    workshop_id: str
    amount: Money
    distribution_type: DistributionType
    distributions: tuple[Distribution, ...]
    settled_at: datetime
    fund_id: str | None = None
    notes: str = ""


@dataclass(frozen=True)
class EmployeeCredit:
    """Earnings credited to an employee by a settlement."""

    employee_id: str
    amount: Money
    settlement_id: str
    credited_at: datetime


@dataclass(frozen=True)
class DistributionResult:
    """Every record a successful settlement creates or changes."""

    settlement: WorkshopSettlement
    workshop: Workshop
    credits: tuple[EmployeeCredit, ...]
    fund: Fund | None = None


# ---------------------------------------------------------------------------
# Work in the current period
# ---------------------------------------------------------------------------


def _record_moment(record: WorkRecord, settings: LedgerSettings) -> datetime:
    moment = record.recorded_on
    if isinstance(moment, datetime):
        return as_local(moment, settings.tz)
    return business_day_start(moment, settings.business_day_start_hour, settings.tz)


def _record_errors(records: Sequence[WorkRecord], work_type: WorkType) -> list[LedgerError]:
    expected = HoursRecord if work_type is WorkType.HOURLY else ProductionRecord
    errors: list[LedgerError] = []
    for index, record in enumerate(records):
        prefix = f"records[{index}]"
        if not isinstance(record, expected):
            errors.append(InvalidField(
                f"{work_type.value} workshops take {expected.__name__} entries", field=prefix,
            ))
            continue
        if isinstance(record, HoursRecord):
            if record.hours <= 0:
                errors.append(InvalidField("hours must be greater than zero", field=f"{prefix}.hours"))
            if record.hourly_rate < 0:
                errors.append(InvalidField("hourly rate cannot be negative", field=f"{prefix}.hourly_rate"))
        else:
            if record.quantity <= 0:
                errors.append(InvalidField("quantity must be greater than zero", field=f"{prefix}.quantity"))
            if record.production_rate < 0:
                errors.append(InvalidField(
                    "production rate cannot be negative", field=f"{prefix}.production_rate",
                ))
    return errors


def period_records(
    workshop: Workshop,
    records: Sequence[WorkRecord],
    settings: LedgerSettings | None = None,
) -> list[WorkRecord]:
    """
    Records of current members dated after the workshop's last settlement.

    Bare dates are anchored at the business day start, so work entered for
    the day of a settlement belongs to that settlement when it was settled
    after the anchor. Naive datetimes on either side are read as local
    time in the configured timezone. The result is sorted by date, ties in
    input order.
    """
    settings = settings or LedgerSettings()
    members = set(workshop.members)
    settled_at = workshop.last_settled_at
    if settled_at is not None:
        settled_at = as_local(settled_at, settings.tz)
    current: list[tuple[datetime, int, WorkRecord]] = []
    for index, record in enumerate(records):
        if record.employee_id not in members:
            continue
        moment = _record_moment(record, settings)
        if settled_at is not None and moment <= settled_at:
            continue
        current.append((moment, index, record))
    current.sort(key=lambda item: (item[0], item[1]))
    return [record for _, _, record in current]


def work_weights(records: Sequence[WorkRecord]) -> dict[str, Decimal]:
    """Total weight per employee, in order of first appearance."""
    weights: dict[str, Decimal] = {}
    for record in records:
        weights[record.employee_id] = weights.get(record.employee_id, Decimal("0")) + record.weight
    return weights


def _round_units(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_proportionally(amount: Money, weights: dict[str, Decimal]) -> tuple[Distribution, ...]:
    """
    Split ``amount`` in proportion to ``weights``.

    Works in minor units. Every employee but the last gets
    ``round(units * weight / total)``; the last employee takes what is left,
    so the shares always add up to ``amount`` exactly.

    When half-up rounding hands out more than ``amount`` before the last
    employee is reached, the overshoot is taken back one minor unit at a
    time from the shares that were rounded up the most, and the last
    employee gets nothing.
    """
    units = amount.minor_units
    employees = [employee for employee, weight in weights.items() if weight > 0]
    if not employees:
        return ()
    total = sum((weights[e] for e in employees), Decimal("0"))

    shares: dict[str, int] = {}
    rounded_up: list[tuple[Decimal, int, str]] = []
    for position, employee_id in enumerate(employees[:-1]):
        exact = Decimal(units) * weights[employee_id] / total
        share = _round_units(exact)
        shares[employee_id] = share
        if share > exact:
            rounded_up.append((share - exact, position, employee_id))

    remainder = units - sum(shares.values())
    if remainder < 0:
        # largest upward rounding first, later employees first on ties
        rounded_up.sort(key=lambda item: (item[0], item[1]), reverse=True)
        for _, _, employee_id in rounded_up[:-remainder]:
            shares[employee_id] -= 1
        remainder = 0
    shares[employees[-1]] = remainder

    return tuple(
        Distribution(
            employee_id=employee_id,
            amount=Money.from_minor_units(shares[employee_id], amount.currency),
        )
        for employee_id in employees
        if shares[employee_id] > 0
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _balance_errors(workshop: Workshop, amount: Money, fund: Fund | None) -> list[LedgerError]:
    if amount.currency != workshop.current_balance.currency:
        return [InvalidField(
            f"amount currency {amount.currency} does not match the workshop balance",
            field="amount",
        )]
    if not amount.is_positive:
        return [InvalidAmount("must be greater than zero", field="amount")]
    if not amount.is_exact:
        return [InvalidAmount("amount is finer than the minor unit", field="amount")]

    errors: list[LedgerError] = []
    if amount > workshop.current_balance:
        errors.append(InsufficientBalance(
            f"workshop balance is {workshop.current_balance.amount}",
            field="amount",
            requested=amount,
            available=workshop.current_balance,
        ))
    if fund is not None and amount > fund.current_balance:
        errors.append(InsufficientBalance(
            f"fund balance is {fund.current_balance.amount}",
            field="fund",
            requested=amount,
            available=fund.current_balance,
        ))
    return errors


def _manual_errors(
    workshop: Workshop, amount: Money, splits: Sequence[Distribution] | None
) -> list[LedgerError]:
    if not splits:
        return [InvalidField("a manual settlement needs at least one split", field="distributions")]

    errors: list[LedgerError] = []
    members = set(workshop.members)
    seen: set[str] = set()
    for index, split in enumerate(splits):
        prefix = f"distributions[{index}]"
        if split.employee_id in seen:
            errors.append(InvalidField(
                f"employee {split.employee_id} appears more than once", field=f"{prefix}.employee_id",
            ))
        elif split.employee_id not in members:
            errors.append(InvalidField(
                f"employee {split.employee_id} is not a member of this workshop",
                field=f"{prefix}.employee_id",
            ))
        seen.add(split.employee_id)

        if split.amount.currency != amount.currency:
            errors.append(InvalidField("currency does not match the settlement", field=f"{prefix}.amount"))
        elif not split.amount.is_positive:
            errors.append(InvalidAmount("must be greater than zero", field=f"{prefix}.amount"))
        elif not split.amount.is_exact:
            errors.append(InvalidAmount("amount is finer than the minor unit", field=f"{prefix}.amount"))
    if errors:
        return errors

    distributed_units = sum(split.amount.minor_units for split in splits)
    if distributed_units != amount.minor_units:
        distributed = Money.from_minor_units(distributed_units, amount.currency)
        errors.append(DistributionMismatch(
            f"splits add up to {distributed.amount}, settlement amount is {amount.amount}",
            field="distributions",
            expected=amount,
            distributed=distributed,
        ))
    return errors


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


@traced_engine("distribution", "1.0", fingerprint_fields=("amount", "mode"))
def distribute(
    workshop: Workshop,
    amount: Money,
    mode: DistributionType,
    manual_splits: Sequence[Distribution] | None = None,
    records: Sequence[WorkRecord] = (),
    *,
    settled_at: datetime,
    fund: Fund | None = None,
    settlement_id: str | None = None,
    notes: str = "",
    settings: LedgerSettings | None = None,
) -> Result[DistributionResult]:
    """
    Settle ``amount`` of a workshop's balance across its employees.

    Args:
        workshop: The workshop being settled, as currently stored.
        amount: Amount to pay out; at most the workshop (and fund) balance.
        mode: MANUAL uses ``manual_splits``; AUTOMATIC uses ``records``.
        manual_splits: Explicit per-employee amounts (MANUAL only).
        records: Hours or production records (AUTOMATIC only); records
            before the last settlement are ignored.
        settled_at: Settlement time; becomes the workshop's last_settled_at.
        fund: Cash box the payout is drawn from, if any.
        settlement_id: Identity for the new settlement (generated if None).
        notes: Free text stored on the settlement.
        settings: Business day anchor and timezone for dated records.

    Returns:
        Result carrying a DistributionResult, or every error found.
    """
    errors = _balance_errors(workshop, amount, fund)
    if not any(isinstance(e, (InvalidAmount, InvalidField)) for e in errors):
        if mode is DistributionType.MANUAL:
            errors.extend(_manual_errors(workshop, amount, manual_splits))
        else:
            errors.extend(_record_errors(records, workshop.work_type))

    distributions: tuple[Distribution, ...] = ()
    if not errors:
        if mode is DistributionType.MANUAL:
            distributions = tuple(manual_splits)
        else:
            weights = work_weights(period_records(workshop, records, settings))
            if sum(weights.values(), Decimal("0")) <= 0:
                errors.append(NoWorkRecorded(
                    f"no {workshop.work_type.value} work recorded since the last settlement",
                    field="records",
                    workshop_id=workshop.workshop_id,
                ))
            else:
                distributions = split_proportionally(amount, weights)

    if errors:
        logger.warning("settlement_rejected", extra={
            "workshop_id": workshop.workshop_id,
            "mode": mode.value,
            "amount": str(amount.amount),
            "codes": sorted({e.code for e in errors}),
        })
        return Result.failed(*errors)

    settlement = WorkshopSettlement(
        settlement_id=settlement_id or str(uuid4()),
        workshop_id=workshop.workshop_id,
        amount=amount,
        distribution_type=mode,
        distributions=distributions,
        settled_at=settled_at,
        fund_id=fund.fund_id if fund is not None else None,
        notes=notes,
    )
    credits = tuple(
        EmployeeCredit(
            employee_id=d.employee_id,
            amount=d.amount,
            settlement_id=settlement.settlement_id,
            credited_at=settled_at,
        )
        for d in distributions
    )
    result = DistributionResult(
        settlement=settlement,
        workshop=replace(
            workshop,
            current_balance=workshop.current_balance - amount,
            last_settled_at=settled_at,
        ),
        credits=credits,
        fund=replace(fund, current_balance=fund.current_balance - amount) if fund is not None else None,
    )
    logger.info("settlement_distributed", extra={
        "workshop_id": workshop.workshop_id,
        "settlement_id": settlement.settlement_id,
        "mode": mode.value,
        "amount": str(amount.amount),
        "employee_count": len(distributions),
        "balance_after": str(result.workshop.current_balance.amount),
    })
    return Result.ok(result)
