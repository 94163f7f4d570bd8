"""
LedgerSettings schema.

The human-authored YAML file is parsed by ``ledger_config.loader`` into the
frozen dataclasses below. Engines receive settings as explicit arguments;
they never read files or environment variables themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import tzinfo
from decimal import Decimal

from ledger_kernel.domain.calendar import resolve_timezone
from ledger_kernel.domain.values import Currency, Money


@dataclass(frozen=True)
class ReliabilityWeights:
    """Blend used for a customer's payment reliability score (sums to 1)."""

    payment_ratio: Decimal = Decimal("0.7")
    on_time: Decimal = Decimal("0.3")


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the ledger engines."""

    currency: str = "SYP"
    timezone: str = "UTC"
    business_day_start_hour: int = 8
    on_time_days: int = 30
    reliability_weights: ReliabilityWeights = field(default_factory=ReliabilityWeights)
    checksum: str | None = None

    @property
    def currency_obj(self) -> Currency:
        return Currency(self.currency)

    @property
    def tz(self) -> tzinfo:
        return resolve_timezone(self.timezone)

    def money(self, amount: Decimal | str | int) -> Money:
        """Money in the operating currency."""
        return Money.of(amount, self.currency)

    def zero(self) -> Money:
        return Money.zero(self.currency)
