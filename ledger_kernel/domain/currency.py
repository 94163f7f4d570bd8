"""Currency -- ISO 4217 registry and minor-unit precision."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def minor_unit(self) -> Decimal:
        """Smallest representable amount, e.g. Decimal("0.01") for two places."""
        return Decimal(1).scaleb(-self.decimal_places)

    @property
    def quantize_string(self) -> str:
        """String for Decimal.quantize() to round to this currency's precision."""
        if self.decimal_places == 0:
            return "1"
        return "0." + "0" * self.decimal_places


class CurrencyRegistry:
    """Registry of the ISO 4217 currencies the ledger can operate in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        # Operating currencies of the region
        "SYP": CurrencyInfo("SYP", 2, "Syrian Pound"),
        "LBP": CurrencyInfo("LBP", 2, "Lebanese Pound"),
        "TRY": CurrencyInfo("TRY", 2, "Turkish Lira"),
        "EGP": CurrencyInfo("EGP", 2, "Egyptian Pound"),
        "SAR": CurrencyInfo("SAR", 2, "Saudi Riyal"),
        "AED": CurrencyInfo("AED", 2, "UAE Dirham"),
        "JOD": CurrencyInfo("JOD", 3, "Jordanian Dinar"),
        "IQD": CurrencyInfo("IQD", 3, "Iraqi Dinar"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
        # Major currencies
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "CHF": CurrencyInfo("CHF", 2, "Swiss Franc"),
        # Zero decimal currencies
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "KRW": CurrencyInfo("KRW", 0, "South Korean Won"),
    }

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is registered."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        """Get currency information by code."""
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Get decimal places (minor-unit exponent) for a currency."""
        info = cls.get_info(code)
        if info is None:
            raise ValueError(f"Unknown currency code: {code!r}")
        return info.decimal_places

    @classmethod
    def get_minor_unit(cls, code: str) -> Decimal:
        """Get the smallest representable amount for a currency."""
        return Decimal(1).scaleb(-cls.get_decimal_places(code))

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code."""
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid currency code: {code!r}")

        normalized = code.upper().strip()

        if len(normalized) != 3:
            raise ValueError(f"Currency code must be 3 characters: {code!r}")

        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Unsupported ISO 4217 currency code: {code!r}")

        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        """Get all registered currency codes."""
        return frozenset(cls._CURRENCIES.keys())
