"""
Typed, returned errors for the ledger core.

Validation and balance failures are not exceptions here: engines return a
``Result`` carrying frozen error values, so the presentation layer can show
every field-level message at once and nothing needs a try/except around a
form submission. Faults that are not user-correctable (a corrupt record,
unwrapping a failed result) are raised instead; see
``ledger_kernel.exceptions``.

Each error class carries a class-level ``code`` (machine-readable, API-safe)
and structured attributes; callers dispatch on type or code, never on the
message text.

    Category          | Code                   | Returned when
    ------------------|------------------------|--------------------------------------
    Validation        | INVALID_AMOUNT         | amount non-positive, negative or too precise
                      | INVALID_FIELD          | value present where forbidden / missing
    Ledger            | OVERPAYMENT            | payment larger than remaining amount
                      | ALREADY_SETTLED        | payment against a paid/repaid entry
    Settlement        | INSUFFICIENT_BALANCE   | amount above workshop or fund balance
                      | DISTRIBUTION_MISMATCH  | manual splits do not sum to amount
                      | NO_WORK_RECORDED       | automatic split with zero hours/value
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from typing import Any, ClassVar, Generic, TypeVar

from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import ResultUnwrapError

T = TypeVar("T")


@dataclass(frozen=True)
class LedgerError:
    """Base for every returned error."""

    message: str
    field: str | None = None

    code: ClassVar[str] = "LEDGER_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for the presentation layer."""
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field is not None:
            data["field"] = self.field
        return data

    def __str__(self) -> str:
        if self.field:
            return f"[{self.code}] {self.field}: {self.message}"
        return f"[{self.code}] {self.message}"


@dataclass(frozen=True)
class InvalidAmount(LedgerError):
    """An amount is non-positive, negative, or finer than the minor unit."""

    code: ClassVar[str] = "INVALID_AMOUNT"


@dataclass(frozen=True)
class InvalidField(LedgerError):
    """A value is present where forbidden, missing where required, or malformed."""

    code: ClassVar[str] = "INVALID_FIELD"


@dataclass(frozen=True)
class OverpaymentError(LedgerError):
    """Payment exceeds the entry's remaining amount. Never clamped."""

    amount: Money | None = None
    remaining: Money | None = None

    code: ClassVar[str] = "OVERPAYMENT"

    @property
    def excess(self) -> Money | None:
        if self.amount is None or self.remaining is None:
            return None
        return self.amount - self.remaining

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.excess is not None:
            data["excess"] = str(self.excess.amount)
        return data


@dataclass(frozen=True)
class AlreadySettled(LedgerError):
    """Payment attempted against a debt or advance that is already closed."""

    entry_id: str | None = None

    code: ClassVar[str] = "ALREADY_SETTLED"


@dataclass(frozen=True)
class InsufficientBalance(LedgerError):
    """Requested amount is above the available balance."""

    requested: Money | None = None
    available: Money | None = None

    code: ClassVar[str] = "INSUFFICIENT_BALANCE"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.available is not None:
            data["available"] = str(self.available.amount)
        return data


@dataclass(frozen=True)
class DistributionMismatch(LedgerError):
    """Manual distribution does not add up to the settlement amount."""

    expected: Money | None = None
    distributed: Money | None = None

    code: ClassVar[str] = "DISTRIBUTION_MISMATCH"

    @property
    def shortfall(self) -> Money | None:
        """How much is left undistributed, if the splits fall short."""
        if self.expected is None or self.distributed is None:
            return None
        if self.distributed < self.expected:
            return self.expected - self.distributed
        return None

    @property
    def excess(self) -> Money | None:
        """How much the splits overshoot the amount, if they do."""
        if self.expected is None or self.distributed is None:
            return None
        if self.distributed > self.expected:
            return self.distributed - self.expected
        return None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.shortfall is not None:
            data["shortfall"] = str(self.shortfall.amount)
        if self.excess is not None:
            data["excess"] = str(self.excess.amount)
        return data


@dataclass(frozen=True)
class NoWorkRecorded(LedgerError):
    """Automatic distribution found no hours or production in the period."""

    workshop_id: str | None = None

    code: ClassVar[str] = "NO_WORK_RECORDED"


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of an engine call: either a value or a non-empty error tuple.

    Attributes:
        success: True if the operation produced a value.
        value: The produced value (None on failure).
        errors: The errors (empty on success).
    """

    success: bool
    value: T | None = None
    errors: tuple[LedgerError, ...] = dataclass_field(default=())

    @classmethod
    def ok(cls, value: T) -> Result[T]:
        return cls(success=True, value=value)

    @classmethod
    def failed(cls, *errors: LedgerError) -> Result[T]:
        if not errors:
            raise ValueError("A failed Result needs at least one error")
        return cls(success=False, errors=tuple(errors))

    @property
    def error(self) -> LedgerError | None:
        """The first error, if any."""
        return self.errors[0] if self.errors else None

    def errors_for(self, field: str) -> tuple[LedgerError, ...]:
        """Errors attached to one form field."""
        return tuple(e for e in self.errors if e.field == field)

    def has_error(self, error_type: type[LedgerError]) -> bool:
        return any(isinstance(e, error_type) for e in self.errors)

    def unwrap(self) -> T:
        """
        Return the value of a successful result.

        Raises:
            ResultUnwrapError: If the result failed.
        """
        if not self.success:
            raise ResultUnwrapError(tuple(e.code for e in self.errors), str(self.errors[0]))
        return self.value  # type: ignore[return-value]
