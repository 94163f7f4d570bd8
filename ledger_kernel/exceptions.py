"""
Raised exceptions for the ledger kernel.

===============================================================================
RETURNED ERRORS vs RAISED FAULTS
===============================================================================

Anything a user can fix by editing a form (a bad amount, a missing customer,
an overpayment, a split that does not add up) is a *returned* error value
from ``ledger_kernel.errors``. The classes here are for the other kind:
conditions the caller cannot correct by re-submitting.

    LedgerKernelError (base)
    |
    +-- LedgerIntegrityError   corrupt ledger record found on read
    +-- ResultUnwrapError      unwrap() called on a failed Result
    +-- ConfigurationError     settings file present but invalid

Every class carries a class-level ``code`` and stores its context as
attributes, so the structured log formatter can emit them as fields.

===============================================================================
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel faults.

    All subclasses must have a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


class LedgerIntegrityError(LedgerKernelError):
    """
    A stored debt or advance violates its own invariants.

    Raised when an engine reads a record with, for example, a negative
    remaining amount. This is a data-integrity fault in the persistence
    layer, not a validation failure, and must be investigated rather than
    shown to the user as a field error.
    """

    code: str = "LEDGER_INTEGRITY_VIOLATION"

    def __init__(self, entry_id: str, reason: str):
        self.entry_id = entry_id
        self.reason = reason
        super().__init__(f"Ledger entry {entry_id} is corrupt: {reason}")


class ResultUnwrapError(LedgerKernelError):
    """unwrap() was called on a failed Result."""

    code: str = "RESULT_UNWRAP"

    def __init__(self, error_codes: tuple[str, ...], first_message: str):
        self.error_codes = error_codes
        self.first_message = first_message
        super().__init__(
            f"Cannot unwrap failed result ({', '.join(error_codes)}): {first_message}"
        )


class ConfigurationError(LedgerKernelError):
    """Ledger settings could not be parsed or are out of range."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid ledger configuration in {source}: {reason}")
