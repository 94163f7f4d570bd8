"""Pure domain primitives: currency, money, clock and calendar helpers."""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from ledger_kernel.domain.values import Currency, Money, parse_decimal, sum_money

__all__ = [
    "Clock",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "Money",
    "SystemClock",
    "parse_decimal",
    "sum_money",
]
