"""
Module: ledger_engines.invoice_totals
Responsibility:
    Turn raw invoice form values into a validated, immutable invoice and
    derive its monetary fields (gross total, remainder after a first
    payment) for every invoice category.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel.

Invariants enforced:
    - PRODUCTS: gross_total = sum(quantity * unit_price) - discount +
      additional_amount, rounded once to the currency minor unit, never
      negative.
    - Other categories: gross_total is the entered total_amount (> 0);
      discount and additional_amount must be absent or zero.
    - BREAKAGE: 0 < first_payment < gross_total.
    - Line items are present iff the category is PRODUCTS.
    - Purity: identical input always yields an identical result.

Failure modes:
    - Returned, never raised: every rule violation becomes an
      InvalidAmount or InvalidField carrying the offending field name.

Usage:
    from ledger_engines.invoice_totals import parse_invoice_input, build_invoice

    parsed = parse_invoice_input(form_values, currency="SYP")
    if parsed.success:
        result = build_invoice(parsed.value, invoice_id="INV-1", created_at=now)
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.values import Currency, Money, parse_decimal
from ledger_kernel.errors import InvalidAmount, InvalidField, LedgerError, Result
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.invoice_totals")


class InvoiceCategory(str, Enum):
    """What the invoice records."""

    PRODUCTS = "products"  # Sale or purchase of items
    DIRECT = "direct"  # Free-form income/expense
    DEBT = "debt"  # Lending to / collecting from a customer
    ADVANCE = "advance"  # Receiving / repaying a customer advance
    EMPLOYEE = "employee"  # Employee withdrawals, debts and repayments


class InvoiceDirection(str, Enum):
    """Whether money comes in or goes out."""

    INCOME = "income"
    EXPENSE = "expense"


class PaymentState(str, Enum):
    """How much of the invoice is collected at posting time."""

    PAID = "paid"
    UNPAID = "unpaid"
    BREAKAGE = "breakage"  # Partial first payment, remainder becomes a debt


class EmployeeOperation(str, Enum):
    """What an EMPLOYEE invoice does to the employee's account."""

    DEBT = "debt"  # expense
    WITHDRAWAL = "withdrawal"  # expense, salary advance against earnings
    SALARY = "salary"  # expense, daily salary payout
    DEBT_PAYMENT = "debt_payment"  # income
    WITHDRAWAL_RETURN = "withdrawal_return"  # income

    @property
    def direction(self) -> InvoiceDirection:
        if self in (EmployeeOperation.DEBT_PAYMENT, EmployeeOperation.WITHDRAWAL_RETURN):
            return InvoiceDirection.INCOME
        return InvoiceDirection.EXPENSE


# dashboard spellings of employee operations
_EMPLOYEE_OPERATION_NAMES: dict[str, EmployeeOperation] = {
    "debtpayment": EmployeeOperation.DEBT_PAYMENT,
    "returnwithdrawal": EmployeeOperation.WITHDRAWAL_RETURN,
    "salary_advance": EmployeeOperation.WITHDRAWAL,
    "daily_salary": EmployeeOperation.SALARY,
}


@dataclass(frozen=True)
class LineItem:
    """
    One product line on a PRODUCTS invoice.

    ``quantity`` is expressed in ``unit``; ``conversion_factor`` converts it
    to the item's base unit (e.g. a box of 12). ``production_rate`` is what
    a production employee earns per base unit of the item.
    """

    item_id: str
    quantity: Decimal
    unit_price: Money
    unit: str = ""
    conversion_factor: Decimal = Decimal("1")
    production_rate: Decimal = Decimal("0")

    @property
    def subtotal(self) -> Money:
        """quantity * unit_price, unrounded."""
        return self.unit_price * self.quantity

    @property
    def base_quantity(self) -> Decimal:
        return self.quantity * self.conversion_factor

    @property
    def production_value(self) -> Money:
        """Production pay embodied in this line, unrounded."""
        return Money(amount=self.base_quantity * self.production_rate, currency=self.unit_price.currency)


@dataclass(frozen=True)
class InvoiceInput:
    """
    Parsed, typed invoice entry. Values are typed but not yet validated.

    Build one with ``parse_invoice_input`` from raw form values, or directly
    from Python callers; either way run it through ``build_invoice``.
    """

    category: InvoiceCategory
    direction: InvoiceDirection
    currency: Currency
    line_items: tuple[LineItem, ...] = ()
    total_amount: Money | None = None
    discount: Money | None = None
    additional_amount: Money | None = None
    tray_count: int | None = None
    payment_state: PaymentState = PaymentState.PAID
    first_payment: Money | None = None
    customer_id: str | None = None
    employee_id: str | None = None
    employee_operation: EmployeeOperation | None = None
    notes: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        if not isinstance(self.line_items, tuple):
            object.__setattr__(self, "line_items", tuple(self.line_items))


@dataclass(frozen=True)
class InvoiceTotals:
    """Derived monetary fields of an invoice."""

    gross_total: Money
    remaining_after_first_payment: Money | None = None


@dataclass(frozen=True)
class Invoice:
    """
    A posted invoice. Immutable; change it only through ``edit_invoice``.

    Contract:
        ``details`` passed every validation and ``totals`` is what
        ``compute_totals(details)`` returned for it.
    """

    invoice_id: str
    created_at: datetime
    details: InvoiceInput
    totals: InvoiceTotals
    updated_at: datetime | None = None

    @property
    def category(self) -> InvoiceCategory:
        return self.details.category

    @property
    def direction(self) -> InvoiceDirection:
        return self.details.direction

    @property
    def payment_state(self) -> PaymentState:
        return self.details.payment_state

    @property
    def currency(self) -> Currency:
        return self.details.currency

    @property
    def gross_total(self) -> Money:
        return self.totals.gross_total

    @property
    def first_payment(self) -> Money | None:
        return self.details.first_payment

    @property
    def customer_id(self) -> str | None:
        return self.details.customer_id

    @property
    def employee_id(self) -> str | None:
        return self.details.employee_id


# ---------------------------------------------------------------------------
# Parse boundary
# ---------------------------------------------------------------------------

# form key -> canonical field; the dashboard posts camelCase
_ALIASES: dict[str, tuple[str, ...]] = {
    "category": ("category", "invoiceCategory", "invoice_category"),
    "direction": ("direction", "invoiceType", "invoice_type", "mode"),
    "line_items": ("line_items", "lineItems", "items"),
    "total_amount": ("total_amount", "totalAmount", "amount"),
    "discount": ("discount",),
    "additional_amount": ("additional_amount", "additionalAmount"),
    "tray_count": ("tray_count", "trayCount"),
    "payment_state": ("payment_state", "paymentState"),
    "first_payment": ("first_payment", "firstPayment"),
    "customer_id": ("customer_id", "customerId"),
    "employee_id": ("employee_id", "employeeId", "relatedEmployeeId"),
    "employee_operation": (
        "employee_operation", "employeeOperation", "employeeInvoiceType", "withdrawalType",
    ),
    "notes": ("notes",),
}

_LINE_ALIASES: dict[str, tuple[str, ...]] = {
    "item_id": ("item_id", "itemId"),
    "quantity": ("quantity",),
    "unit_price": ("unit_price", "unitPrice", "price"),
    "unit": ("unit",),
    "conversion_factor": ("conversion_factor", "conversionFactor", "factor"),
    "production_rate": ("production_rate", "productionRate"),
}


def _lookup(raw: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for key in aliases:
        if key in raw:
            return raw[key]
    return None


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_enum(
    enum_type: type[Enum], value: Any, field: str, errors: list[LedgerError]
) -> Any:
    if _blank(value):
        errors.append(InvalidField(f"{field} is required", field=field))
        return None
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)
        errors.append(InvalidField(f"{value!r} is not one of: {allowed}", field=field))
        return None


def _parse_number(value: Any, field: str, errors: list[LedgerError]) -> Decimal | None:
    try:
        return parse_decimal(value)
    except ValueError:
        errors.append(InvalidField(f"{value!r} is not a number", field=field))
        return None


def _parse_money(
    value: Any, currency: Currency, field: str, errors: list[LedgerError]
) -> Money | None:
    number = _parse_number(value, field, errors)
    if number is None:
        return None
    money = Money(amount=number, currency=currency)
    if money.is_negative:
        errors.append(InvalidAmount("amount cannot be negative", field=field))
        return None
    if not money.is_exact:
        errors.append(InvalidAmount(
            f"amount is finer than one {currency.minor_unit} {currency.code}", field=field,
        ))
        return None
    return money


def _parse_count(value: Any, field: str, errors: list[LedgerError]) -> int | None:
    number = _parse_number(value, field, errors)
    if number is None:
        return None
    if number != number.to_integral_value():
        errors.append(InvalidField("must be a whole number", field=field))
        return None
    return int(number)


def _parse_id(value: Any) -> str | None:
    if _blank(value):
        return None
    return str(value).strip()


def _parse_payment_state(raw: Mapping[str, Any], errors: list[LedgerError]) -> PaymentState | None:
    value = _lookup(raw, _ALIASES["payment_state"])
    if not _blank(value):
        return _parse_enum(PaymentState, value, "payment_state", errors)
    # Legacy form flags: isBreak / paidStatus
    if raw.get("isBreak") is True:
        return PaymentState.BREAKAGE
    if raw.get("paidStatus") is False:
        return PaymentState.UNPAID
    return PaymentState.PAID


def _parse_employee_operation(
    raw: Mapping[str, Any], errors: list[LedgerError]
) -> EmployeeOperation | None:
    value = _lookup(raw, _ALIASES["employee_operation"])
    if _blank(value):
        return None
    if isinstance(value, EmployeeOperation):
        return value
    text = str(value).strip()
    alias = _EMPLOYEE_OPERATION_NAMES.get(text.lower())
    if alias is not None:
        return alias
    return _parse_enum(EmployeeOperation, text, "employee_operation", errors)


def _parse_line_items(
    raw_items: Any, currency: Currency, errors: list[LedgerError]
) -> tuple[LineItem, ...]:
    if raw_items is None:
        return ()
    if isinstance(raw_items, (str, bytes)) or not isinstance(raw_items, Sequence):
        errors.append(InvalidField("must be a list of line items", field="line_items"))
        return ()

    items: list[LineItem] = []
    for index, raw_line in enumerate(raw_items):
        prefix = f"line_items[{index}]"
        if not isinstance(raw_line, Mapping):
            errors.append(InvalidField("must be a mapping", field=prefix))
            continue
        before = len(errors)
        item_id = _parse_id(_lookup(raw_line, _LINE_ALIASES["item_id"]))
        quantity = _parse_number(_lookup(raw_line, _LINE_ALIASES["quantity"]), f"{prefix}.quantity", errors)
        unit_price = _parse_money(
            _lookup(raw_line, _LINE_ALIASES["unit_price"]), currency, f"{prefix}.unit_price", errors,
        )
        factor = _parse_number(
            _lookup(raw_line, _LINE_ALIASES["conversion_factor"]), f"{prefix}.conversion_factor", errors,
        )
        rate = _parse_number(
            _lookup(raw_line, _LINE_ALIASES["production_rate"]), f"{prefix}.production_rate", errors,
        )
        if item_id is None:
            errors.append(InvalidField("item is required", field=f"{prefix}.item_id"))
        if quantity is None and len(errors) == before:
            errors.append(InvalidField("quantity is required", field=f"{prefix}.quantity"))
        if unit_price is None and len(errors) == before:
            errors.append(InvalidField("unit price is required", field=f"{prefix}.unit_price"))
        if len(errors) > before:
            continue

        items.append(LineItem(
            item_id=item_id,
            quantity=quantity,
            unit_price=unit_price,
            unit=str(_lookup(raw_line, _LINE_ALIASES["unit"]) or ""),
            conversion_factor=factor if factor is not None else Decimal("1"),
            production_rate=rate if rate is not None else Decimal("0"),
        ))
    return tuple(items)


def parse_invoice_input(raw: Mapping[str, Any], currency: str | Currency) -> Result[InvoiceInput]:
    """
    The single parse boundary between form values and invoice arithmetic.

    Preconditions:
        ``raw`` holds the invoice form's values as strings, numbers or
        None, keyed in camelCase (as posted by the dashboard) or snake_case.

    Postconditions:
        On success, an ``InvoiceInput`` whose numeric fields are Decimal /
        Money and whose money fields are non-negative and exact in minor
        units. Cross-field rules are left to ``build_invoice``.
        On failure, every field error found (not just the first).
    """
    if isinstance(currency, str):
        currency = Currency(currency)
    errors: list[LedgerError] = []

    category = _parse_enum(InvoiceCategory, _lookup(raw, _ALIASES["category"]), "category", errors)
    direction = _parse_enum(InvoiceDirection, _lookup(raw, _ALIASES["direction"]), "direction", errors)
    payment_state = _parse_payment_state(raw, errors)
    employee_operation = _parse_employee_operation(raw, errors)

    money_fields = {
        name: _parse_money(_lookup(raw, _ALIASES[name]), currency, name, errors)
        for name in ("total_amount", "discount", "additional_amount", "first_payment")
    }
    tray_count = _parse_count(_lookup(raw, _ALIASES["tray_count"]), "tray_count", errors)
    line_items = _parse_line_items(_lookup(raw, _ALIASES["line_items"]), currency, errors)

    if errors:
        logger.info("invoice_input_rejected", extra={
            "error_count": len(errors),
            "fields": sorted({e.field for e in errors if e.field}),
        })
        return Result.failed(*errors)

    return Result.ok(InvoiceInput(
        category=category,
        direction=direction,
        currency=currency,
        line_items=line_items,
        tray_count=tray_count,
        payment_state=payment_state,
        customer_id=_parse_id(_lookup(raw, _ALIASES["customer_id"])),
        employee_id=_parse_id(_lookup(raw, _ALIASES["employee_id"])),
        employee_operation=employee_operation,
        notes=str(_lookup(raw, _ALIASES["notes"]) or ""),
        **money_fields,
    ))


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


def _is_set(money: Money | None) -> bool:
    return money is not None and not money.is_zero


def _currency_errors(invoice: InvoiceInput) -> list[LedgerError]:
    errors: list[LedgerError] = []
    for name in ("total_amount", "discount", "additional_amount", "first_payment"):
        value = getattr(invoice, name)
        if value is not None and value.currency != invoice.currency:
            errors.append(InvalidField(
                f"currency {value.currency} does not match invoice currency {invoice.currency}",
                field=name,
            ))
    for index, line in enumerate(invoice.line_items):
        if line.unit_price.currency != invoice.currency:
            errors.append(InvalidField(
                f"currency {line.unit_price.currency} does not match invoice currency {invoice.currency}",
                field=f"line_items[{index}].unit_price",
            ))
    return errors


@traced_engine("invoice_totals", "1.0", fingerprint_fields=("invoice",))
def compute_totals(invoice: InvoiceInput) -> Result[InvoiceTotals]:
    """
    Derive gross total and, for breakage, the amount left after the first payment.

    Pure: no clock, no I/O; calling it twice with the same input returns
    equal results.
    """
    errors = _currency_errors(invoice)
    if errors:
        return Result.failed(*errors)

    currency = invoice.currency
    zero = Money.zero(currency)

    if invoice.category is InvoiceCategory.PRODUCTS:
        for name in ("discount", "additional_amount"):
            value = getattr(invoice, name)
            if value is not None and value.is_negative:
                errors.append(InvalidAmount("cannot be negative", field=name))
        if errors:
            return Result.failed(*errors)

        subtotal = zero
        for line in invoice.line_items:
            subtotal = subtotal + line.subtotal
        gross = (subtotal - (invoice.discount or zero) + (invoice.additional_amount or zero)).round()
        if gross.is_negative:
            errors.append(InvalidAmount(
                f"discount leaves a negative total ({gross.amount})", field="discount",
            ))
            return Result.failed(*errors)
    else:
        for name in ("discount", "additional_amount"):
            if _is_set(getattr(invoice, name)):
                errors.append(InvalidField(
                    f"not allowed on {invoice.category.value} invoices", field=name,
                ))
        if invoice.total_amount is None:
            errors.append(InvalidField("total amount is required", field="total_amount"))
        elif not invoice.total_amount.is_positive:
            errors.append(InvalidAmount("must be greater than zero", field="total_amount"))
        if errors:
            return Result.failed(*errors)
        gross = invoice.total_amount

    remaining: Money | None = None
    if invoice.payment_state is PaymentState.BREAKAGE:
        first = invoice.first_payment
        if first is None or not first.is_positive:
            errors.append(InvalidAmount("first payment must be greater than zero", field="first_payment"))
        elif first >= gross:
            errors.append(InvalidAmount(
                f"first payment must be less than the total ({gross.amount})", field="first_payment",
            ))
        else:
            remaining = gross - first
    else:
        if _is_set(invoice.first_payment):
            errors.append(InvalidField(
                "first payment only applies to breakage invoices", field="first_payment",
            ))
        if invoice.payment_state is PaymentState.UNPAID and gross.is_zero:
            errors.append(InvalidAmount("an unpaid invoice must have a positive total", field="payment_state"))

    if errors:
        return Result.failed(*errors)
    return Result.ok(InvoiceTotals(gross_total=gross, remaining_after_first_payment=remaining))


# ---------------------------------------------------------------------------
# Structural validation
# ---------------------------------------------------------------------------


def _line_item_errors(index: int, line: LineItem) -> list[LedgerError]:
    prefix = f"line_items[{index}]"
    errors: list[LedgerError] = []
    if not line.item_id:
        errors.append(InvalidField("item is required", field=f"{prefix}.item_id"))
    if line.quantity <= 0:
        errors.append(InvalidField("quantity must be greater than zero", field=f"{prefix}.quantity"))
    if line.unit_price.is_negative:
        errors.append(InvalidAmount("unit price cannot be negative", field=f"{prefix}.unit_price"))
    elif not line.unit_price.is_exact:
        errors.append(InvalidAmount("unit price is finer than the minor unit", field=f"{prefix}.unit_price"))
    if line.conversion_factor <= 0:
        errors.append(InvalidField(
            "conversion factor must be greater than zero", field=f"{prefix}.conversion_factor",
        ))
    if line.production_rate < 0:
        errors.append(InvalidField("production rate cannot be negative", field=f"{prefix}.production_rate"))
    return errors


def validate_invoice(invoice: InvoiceInput) -> tuple[LedgerError, ...]:
    """
    Structural rules that do not depend on the computed totals.

    Returns:
        Every violation found; empty when the input is structurally valid.
    """
    errors: list[LedgerError] = []
    is_products = invoice.category is InvoiceCategory.PRODUCTS

    if is_products and not invoice.line_items:
        errors.append(InvalidField("a products invoice needs at least one line item", field="line_items"))
    if not is_products and invoice.line_items:
        errors.append(InvalidField(
            f"{invoice.category.value} invoices do not take line items", field="line_items",
        ))
    for index, line in enumerate(invoice.line_items):
        errors.extend(_line_item_errors(index, line))

    for name in ("total_amount", "discount", "additional_amount", "first_payment"):
        value = getattr(invoice, name)
        if value is not None and not value.is_exact:
            errors.append(InvalidAmount("amount is finer than the minor unit", field=name))

    if invoice.tray_count is not None:
        if invoice.tray_count < 0:
            errors.append(InvalidField("tray count cannot be negative", field="tray_count"))
        elif invoice.tray_count > 0 and not (
            is_products and invoice.direction is InvoiceDirection.INCOME
        ):
            errors.append(InvalidField("trays only apply to products income invoices", field="tray_count"))

    if not is_products and invoice.payment_state is not PaymentState.PAID:
        errors.append(InvalidField(
            f"{invoice.category.value} invoices are always posted as paid", field="payment_state",
        ))

    needs_customer = invoice.category is InvoiceCategory.ADVANCE or (
        invoice.category is InvoiceCategory.DEBT and invoice.direction is InvoiceDirection.INCOME
    )
    if needs_customer and not invoice.customer_id:
        errors.append(InvalidField("a customer is required", field="customer_id"))
    elif invoice.payment_state is not PaymentState.PAID and not invoice.customer_id:
        errors.append(InvalidField("the remaining debt needs a customer", field="customer_id"))

    if invoice.category is InvoiceCategory.EMPLOYEE:
        if not invoice.employee_id:
            errors.append(InvalidField("an employee is required", field="employee_id"))
        operation = invoice.employee_operation
        if operation is None:
            errors.append(InvalidField("an employee operation is required", field="employee_operation"))
        elif operation.direction is not invoice.direction:
            errors.append(InvalidField(
                f"{operation.value} is not a {invoice.direction.value} operation",
                field="employee_operation",
            ))
    elif invoice.employee_operation is not None:
        errors.append(InvalidField(
            "employee operations only apply to employee invoices", field="employee_operation",
        ))

    return tuple(errors)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def _check(invoice: InvoiceInput) -> Result[InvoiceTotals]:
    structural = validate_invoice(invoice)
    totals = compute_totals(invoice)
    errors = list(structural)
    for error in totals.errors:
        if error not in errors:
            errors.append(error)
    if errors:
        return Result.failed(*errors)
    return totals


@traced_engine("invoice_totals.build", "1.0", fingerprint_fields=("invoice_id",))
def build_invoice(invoice: InvoiceInput, invoice_id: str, created_at: datetime) -> Result[Invoice]:
    """Validate an entry and create the immutable invoice."""
    checked = _check(invoice)
    if not checked.success:
        logger.warning("invoice_rejected", extra={
            "invoice_id": invoice_id,
            "category": invoice.category.value,
            "codes": sorted({e.code for e in checked.errors}),
            "fields": sorted({e.field for e in checked.errors if e.field}),
        })
        return Result.failed(*checked.errors)

    built = Invoice(
        invoice_id=invoice_id,
        created_at=created_at,
        details=invoice,
        totals=checked.value,
    )
    logger.info("invoice_built", extra={
        "invoice_id": invoice_id,
        "category": invoice.category.value,
        "direction": invoice.direction.value,
        "payment_state": invoice.payment_state.value,
        "gross_total": str(built.gross_total.amount),
    })
    return Result.ok(built)


def edit_invoice(invoice: Invoice, edited_at: datetime | None = None, **changes: Any) -> Result[Invoice]:
    """
    Apply field changes to a posted invoice, re-running every validation.

    Identity and creation time are kept; the original invoice is untouched.

    Raises:
        TypeError: If ``changes`` names a field InvoiceInput does not have.
    """
    details = dataclasses.replace(invoice.details, **changes)
    checked = _check(details)
    if not checked.success:
        logger.warning("invoice_edit_rejected", extra={
            "invoice_id": invoice.invoice_id,
            "changed": sorted(changes),
            "codes": sorted({e.code for e in checked.errors}),
        })
        return Result.failed(*checked.errors)

    logger.info("invoice_edited", extra={
        "invoice_id": invoice.invoice_id,
        "changed": sorted(changes),
    })
    return Result.ok(dataclasses.replace(
        invoice, details=details, totals=checked.value, updated_at=edited_at,
    ))


def convert_to_breakage(
    invoice: Invoice, first_payment: Money, converted_at: datetime | None = None
) -> Result[Invoice]:
    """
    Turn a paid or unpaid products invoice into a breakage invoice.

    The caller replaces any debt derived from the old invoice with the one
    ``derive_debt`` gives for the converted invoice.
    """
    if invoice.category is not InvoiceCategory.PRODUCTS:
        return Result.failed(InvalidField(
            "only products invoices can be converted to breakage", field="category",
        ))
    if invoice.payment_state is PaymentState.BREAKAGE:
        return Result.failed(InvalidField("invoice is already a breakage invoice", field="payment_state"))
    return edit_invoice(
        invoice,
        edited_at=converted_at,
        payment_state=PaymentState.BREAKAGE,
        first_payment=first_payment,
    )
