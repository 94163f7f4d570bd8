"""
Tests for the settlement distributor.

Covers:
- Manual splits (exact sum, mismatch, membership, duplicates)
- Automatic hourly and production splits with remainder handling
- Current-period filtering and employee ordering
- Balance checks against the workshop and the fund
- Returned effects (settlement, workshop, fund, credits)
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from ledger_config import LedgerSettings
from ledger_engines.distribution import (
    Distribution,
    DistributionType,
    Fund,
    HoursRecord,
    ProductionRecord,
    Workshop,
    WorkType,
    default_distribution_type,
    distribute,
    period_records,
    split_proportionally,
)
from ledger_kernel.domain.values import Money
from ledger_kernel.errors import (
    DistributionMismatch,
    InsufficientBalance,
    InvalidAmount,
    InvalidField,
    NoWorkRecorded,
)

SETTLED_AT = datetime(2024, 3, 10, 18, 0, tzinfo=timezone.utc)


def syp(amount) -> Money:
    return Money.of(amount, "SYP")


def hours(employee_id, day, worked, rate="0"):
    return HoursRecord(
        employee_id=employee_id,
        worked_on=day,
        hours=Decimal(worked),
        hourly_rate=Decimal(rate),
    )


class TestManualDistribution:
    """Manual splits must add up exactly."""

    def setup_method(self):
        self.workshop = Workshop(
            workshop_id="W-1",
            work_type=WorkType.PRODUCTION,
            current_balance=syp("900"),
            members=("emp1", "emp2"),
        )

    def test_scenario_d_exact_split(self):
        """900 split 500/400 succeeds and empties the balance."""
        result = distribute(
            self.workshop,
            syp("900"),
            DistributionType.MANUAL,
            manual_splits=[Distribution("emp1", syp("500")), Distribution("emp2", syp("400"))],
            settled_at=SETTLED_AT,
            settlement_id="S-1",
        )

        assert result.success
        outcome = result.value
        assert outcome.workshop.current_balance == syp("0")
        assert outcome.workshop.last_settled_at == SETTLED_AT
        assert outcome.settlement.settlement_id == "S-1"
        assert outcome.settlement.distribution_type is DistributionType.MANUAL
        assert [c.employee_id for c in outcome.credits] == ["emp1", "emp2"]
        assert all(c.settlement_id == "S-1" for c in outcome.credits)
        # caller's workshop untouched
        assert self.workshop.current_balance == syp("900")

    def test_scenario_d_shortfall(self):
        """900 split 500/300 is short by 100 and changes nothing."""
        result = distribute(
            self.workshop,
            syp("900"),
            DistributionType.MANUAL,
            manual_splits=[Distribution("emp1", syp("500")), Distribution("emp2", syp("300"))],
            settled_at=SETTLED_AT,
        )

        assert not result.success
        assert isinstance(result.error, DistributionMismatch)
        assert result.error.shortfall == syp("100")
        assert result.error.excess is None
        assert result.value is None

    def test_excess(self):
        result = distribute(
            self.workshop,
            syp("900"),
            DistributionType.MANUAL,
            manual_splits=[Distribution("emp1", syp("500")), Distribution("emp2", syp("500"))],
            settled_at=SETTLED_AT,
        )

        assert result.error.excess == syp("100")
        assert result.error.to_dict()["excess"] == "100.00"

    def test_partial_settlement_leaves_balance(self):
        result = distribute(
            self.workshop,
            syp("300.50"),
            DistributionType.MANUAL,
            manual_splits=[Distribution("emp1", syp("300.50"))],
            settled_at=SETTLED_AT,
        )

        assert result.value.workshop.current_balance == syp("599.50")

    def test_splits_required(self):
        result = distribute(self.workshop, syp("900"), DistributionType.MANUAL, settled_at=SETTLED_AT)

        assert isinstance(result.error, InvalidField)
        assert result.error.field == "distributions"

    def test_non_member_rejected(self):
        result = distribute(
            self.workshop,
            syp("900"),
            DistributionType.MANUAL,
            manual_splits=[Distribution("emp1", syp("500")), Distribution("stranger", syp("400"))],
            settled_at=SETTLED_AT,
        )

        assert result.error.field == "distributions[1].employee_id"

    def test_duplicate_employee_rejected(self):
        result = distribute(
            self.workshop,
            syp("900"),
            DistributionType.MANUAL,
            manual_splits=[Distribution("emp1", syp("500")), Distribution("emp1", syp("400"))],
            settled_at=SETTLED_AT,
        )

        assert isinstance(result.error, InvalidField)
        assert "more than once" in result.error.message

    def test_zero_split_rejected(self):
        result = distribute(
            self.workshop,
            syp("900"),
            DistributionType.MANUAL,
            manual_splits=[Distribution("emp1", syp("900")), Distribution("emp2", syp("0"))],
            settled_at=SETTLED_AT,
        )

        assert isinstance(result.error, InvalidAmount)
        assert result.error.field == "distributions[1].amount"


class TestBalanceChecks:
    """Amount must be positive and covered by the workshop and fund."""

    def setup_method(self):
        self.workshop = Workshop(
            workshop_id="W-1",
            work_type=WorkType.HOURLY,
            current_balance=syp("900"),
            members=("emp1",),
        )
        self.records = [hours("emp1", date(2024, 3, 5), "8")]

    def test_amount_above_workshop_balance(self):
        result = distribute(
            self.workshop, syp("1000"), DistributionType.AUTOMATIC,
            records=self.records, settled_at=SETTLED_AT,
        )

        assert isinstance(result.error, InsufficientBalance)
        assert result.error.available == syp("900")

    def test_amount_above_fund_balance(self):
        result = distribute(
            self.workshop, syp("600"), DistributionType.AUTOMATIC,
            records=self.records, settled_at=SETTLED_AT,
            fund=Fund("F-1", syp("500")),
        )

        assert isinstance(result.error, InsufficientBalance)
        assert result.error.field == "fund"

    def test_fund_is_debited(self):
        result = distribute(
            self.workshop, syp("400"), DistributionType.AUTOMATIC,
            records=self.records, settled_at=SETTLED_AT,
            fund=Fund("F-1", syp("500")),
        )

        assert result.value.fund.current_balance == syp("100")
        assert result.value.settlement.fund_id == "F-1"

    @pytest.mark.parametrize("amount", ["0", "-10", "0.001"])
    def test_invalid_amount(self, amount):
        result = distribute(
            self.workshop, syp(amount), DistributionType.AUTOMATIC,
            records=self.records, settled_at=SETTLED_AT,
        )

        assert isinstance(result.error, InvalidAmount)
        assert len(result.errors) == 1


class TestAutomaticHourly:
    """Shares proportional to hours in the current period."""

    def setup_method(self):
        self.workshop = Workshop(
            workshop_id="W-1",
            work_type=WorkType.HOURLY,
            current_balance=syp("1000"),
            members=("emp1", "emp2", "emp3"),
        )

    def test_scenario_e(self):
        """300 over 6h and 4h gives 180 and 120."""
        result = distribute(
            self.workshop,
            syp("300"),
            DistributionType.AUTOMATIC,
            records=[hours("emp1", date(2024, 3, 5), "6"), hours("emp2", date(2024, 3, 5), "4")],
            settled_at=SETTLED_AT,
        )

        shares = {d.employee_id: d.amount for d in result.value.settlement.distributions}
        assert shares == {"emp1": syp("180"), "emp2": syp("120")}
        assert result.value.settlement.distribution_type is DistributionType.AUTOMATIC

    def test_hours_summed_per_employee(self):
        result = distribute(
            self.workshop,
            syp("300"),
            DistributionType.AUTOMATIC,
            records=[
                hours("emp1", date(2024, 3, 5), "3"),
                hours("emp2", date(2024, 3, 5), "4"),
                hours("emp1", date(2024, 3, 6), "3"),
            ],
            settled_at=SETTLED_AT,
        )

        shares = {d.employee_id: d.amount for d in result.value.settlement.distributions}
        assert shares == {"emp1": syp("180"), "emp2": syp("120")}

    def test_remainder_goes_to_final_employee(self):
        """Three equal shares of 100: each share is rounded, the last takes the rest."""
        result = distribute(
            self.workshop,
            syp("100"),
            DistributionType.AUTOMATIC,
            records=[
                hours("emp1", date(2024, 3, 5), "1"),
                hours("emp2", date(2024, 3, 6), "1"),
                hours("emp3", date(2024, 3, 7), "1"),
            ],
            settled_at=SETTLED_AT,
        )

        amounts = [d.amount for d in result.value.settlement.distributions]
        assert amounts == [syp("33.33"), syp("33.33"), syp("33.34")]
        assert sum(a.minor_units for a in amounts) == 10000

    def test_employees_ordered_by_first_record_date(self):
        result = distribute(
            self.workshop,
            syp("100"),
            DistributionType.AUTOMATIC,
            records=[hours("emp2", date(2024, 3, 7), "1"), hours("emp1", date(2024, 3, 5), "1")],
            settled_at=SETTLED_AT,
        )

        assert [d.employee_id for d in result.value.settlement.distributions] == ["emp1", "emp2"]

    def test_employee_without_work_gets_nothing(self):
        result = distribute(
            self.workshop,
            syp("100"),
            DistributionType.AUTOMATIC,
            records=[hours("emp1", date(2024, 3, 5), "2")],
            settled_at=SETTLED_AT,
        )

        assert [d.employee_id for d in result.value.settlement.distributions] == ["emp1"]
        assert result.value.settlement.distributions[0].amount == syp("100")

    def test_no_work_recorded(self):
        result = distribute(
            self.workshop, syp("100"), DistributionType.AUTOMATIC, records=[], settled_at=SETTLED_AT,
        )

        assert isinstance(result.error, NoWorkRecorded)
        assert result.error.workshop_id == "W-1"

    def test_only_records_after_last_settlement_count(self):
        """Work dated on or before the previous settlement was already paid."""
        workshop = Workshop(
            workshop_id="W-1",
            work_type=WorkType.HOURLY,
            current_balance=syp("1000"),
            members=("emp1", "emp2"),
            last_settled_at=datetime(2024, 3, 5, 17, 0, tzinfo=timezone.utc),
        )
        result = distribute(
            workshop,
            syp("100"),
            DistributionType.AUTOMATIC,
            records=[hours("emp1", date(2024, 3, 5), "10"), hours("emp2", date(2024, 3, 6), "2")],
            settled_at=SETTLED_AT,
        )

        shares = {d.employee_id: d.amount for d in result.value.settlement.distributions}
        assert shares == {"emp2": syp("100")}

    def test_naive_last_settlement_read_as_local_time(self):
        """A stored settlement time without tzinfo compares against anchored dates."""
        workshop = Workshop(
            workshop_id="W-1",
            work_type=WorkType.HOURLY,
            current_balance=syp("1000"),
            members=("emp1", "emp2"),
            last_settled_at=datetime(2024, 3, 5, 7, 0),
        )
        result = distribute(
            workshop,
            syp("100"),
            DistributionType.AUTOMATIC,
            records=[hours("emp1", date(2024, 3, 4), "10"), hours("emp2", date(2024, 3, 5), "2")],
            settled_at=SETTLED_AT,
        )

        shares = {d.employee_id: d.amount for d in result.value.settlement.distributions}
        assert shares == {"emp2": syp("100")}

    def test_naive_record_time_against_aware_settlement(self):
        workshop = Workshop(
            workshop_id="W-1",
            work_type=WorkType.HOURLY,
            current_balance=syp("1000"),
            members=("emp1", "emp2"),
            last_settled_at=datetime(2024, 3, 5, 17, 0, tzinfo=timezone.utc),
        )
        result = distribute(
            workshop,
            syp("100"),
            DistributionType.AUTOMATIC,
            records=[
                hours("emp1", datetime(2024, 3, 5, 12, 0), "10"),
                hours("emp2", datetime(2024, 3, 5, 18, 0), "2"),
            ],
            settled_at=SETTLED_AT,
        )

        shares = {d.employee_id: d.amount for d in result.value.settlement.distributions}
        assert shares == {"emp2": syp("100")}

    def test_wrong_record_type_rejected(self):
        record = ProductionRecord("emp1", date(2024, 3, 5), "bread", Decimal("5"), Decimal("1"))

        result = distribute(
            self.workshop, syp("100"), DistributionType.AUTOMATIC, records=[record], settled_at=SETTLED_AT,
        )

        assert result.error.field == "records[0]"

    def test_non_positive_hours_rejected(self):
        result = distribute(
            self.workshop,
            syp("100"),
            DistributionType.AUTOMATIC,
            records=[hours("emp1", date(2024, 3, 5), "0")],
            settled_at=SETTLED_AT,
        )

        assert result.error.field == "records[0].hours"

    def test_logs_settlement(self, captured_logs):
        distribute(
            self.workshop,
            syp("300"),
            DistributionType.AUTOMATIC,
            records=[hours("emp1", date(2024, 3, 5), "6"), hours("emp2", date(2024, 3, 5), "4")],
            settled_at=SETTLED_AT,
        )

        logs = captured_logs()
        done = [r for r in logs if r["message"] == "settlement_distributed"]
        assert done[0]["workshop_id"] == "W-1"
        assert done[0]["employee_count"] == 2
        traces = [r for r in logs if r["message"] == "LEDGER_ENGINE_TRACE"]
        assert any(t["engine_name"] == "distribution" and t["outcome"] == "ok" for t in traces)


class TestAutomaticProduction:
    """Shares proportional to production value."""

    def test_production_value_weights(self):
        workshop = Workshop(
            workshop_id="W-2",
            work_type=WorkType.PRODUCTION,
            current_balance=syp("500"),
            members=("emp1", "emp2"),
        )
        records = [
            ProductionRecord("emp1", date(2024, 3, 5), "bread", Decimal("10"), Decimal("3")),
            ProductionRecord("emp2", date(2024, 3, 5), "cake", Decimal("5"), Decimal("2")),
        ]

        result = distribute(workshop, syp("400"), DistributionType.AUTOMATIC, records=records, settled_at=SETTLED_AT)

        shares = {d.employee_id: d.amount for d in result.value.settlement.distributions}
        assert shares == {"emp1": syp("300"), "emp2": syp("100")}


class TestHelpers:
    """Tests for defaults and the proportional splitter."""

    def test_default_distribution_type(self):
        assert default_distribution_type(WorkType.HOURLY) is DistributionType.AUTOMATIC
        assert default_distribution_type(WorkType.PRODUCTION) is DistributionType.MANUAL

    def test_split_skips_zero_weights(self):
        shares = split_proportionally(syp("10"), {"a": Decimal("0"), "b": Decimal("1")})

        assert shares == (Distribution("b", syp("10")),)

    def test_period_records_respects_business_day_start(self):
        """A settlement at 07:00 comes before that day's 08:00 anchor."""
        workshop = Workshop(
            workshop_id="W-1",
            work_type=WorkType.HOURLY,
            current_balance=syp("100"),
            members=("emp1",),
            last_settled_at=datetime(2024, 3, 5, 7, 0, tzinfo=timezone.utc),
        )
        records = [hours("emp1", date(2024, 3, 5), "1")]

        assert period_records(workshop, records) == records
        later = LedgerSettings(business_day_start_hour=6)
        assert period_records(workshop, records, later) == []

    def test_split_rounds_each_share_and_last_takes_the_rest(self):
        weights = {"a": Decimal("1"), "b": Decimal("1"), "c": Decimal("1")}

        shares = split_proportionally(syp("100"), weights)

        assert [d.amount for d in shares] == [syp("33.33"), syp("33.33"), syp("33.34")]

    def test_split_takes_back_half_up_overshoot(self):
        """0.02 over four equal weights: three half-up roundings would hand out 0.03."""
        weights = {name: Decimal("1") for name in ("a", "b", "c", "d")}

        shares = split_proportionally(syp("0.02"), weights)

        assert shares == (Distribution("a", syp("0.01")), Distribution("b", syp("0.01")))
