"""Billing math, late fees and invoice status derivation."""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable

from backend.app.core.exceptions import ValidationError
from backend.app.core.time import utc_today
from backend.app.models.invoice import LATE_FEE_TYPES, Invoice

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal | float | int | str | None) -> Decimal:
    """Coerce a numeric input to a Decimal quantized to cents."""
    if value is None:
        return ZERO
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_line_amount(quantity: Decimal | float | None, rate: Decimal | float | None) -> Decimal:
    """Compute quantity * rate using Decimal math."""
    qty = Decimal(str(quantity if quantity is not None else 1))
    unit = Decimal(str(rate if rate is not None else 0))
    return (qty * unit).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_totals(
    amounts: Iterable[Decimal],
    tax_rate: Decimal | float | int = 0,
    discount_amount: Decimal | float | int = 0,
    late_fee_amount: Decimal | float | int = 0,
) -> dict:
    """Return subtotal, tax, late fee and total for a set of line amounts."""
    rate = Decimal(str(tax_rate or 0))
    if rate < 0 or rate > 100:
        raise ValidationError("Tax rate must be between 0 and 100")
    discount = to_money(discount_amount)
    if discount < 0:
        raise ValidationError("Discount cannot be negative")

    subtotal = sum((to_money(a) for a in amounts), ZERO)
    if discount > subtotal:
        raise ValidationError("Discount cannot exceed the subtotal")
    tax_amount = (subtotal * rate / Decimal("100")).quantize(CENTS, rounding=ROUND_HALF_UP)
    late_fee = to_money(late_fee_amount)
    return {
        "subtotal": subtotal,
        "tax_rate": rate,
        "tax_amount": tax_amount,
        "discount_amount": discount,
        "late_fee_amount": late_fee,
        "total_amount": subtotal + tax_amount - discount + late_fee,
    }


def validate_late_fee_terms(late_fee_rate: Decimal | float | int | None, late_fee_type: str | None) -> None:
    if late_fee_type is not None and late_fee_type not in LATE_FEE_TYPES:
        raise ValidationError("Invalid late fee type", {"allowed": list(LATE_FEE_TYPES)})
    if late_fee_rate is not None and Decimal(str(late_fee_rate)) < 0:
        raise ValidationError("Late fee rate cannot be negative")


def calculate_late_fee(
    base_amount: Decimal,
    late_fee_rate: Decimal | float | int | None,
    late_fee_type: str | None,
    due_date: date | None,
    today: date,
) -> Decimal:
    """Late fee accrued for each full day past the due date.

    ``percentage`` charges ``late_fee_rate`` percent of the pre-fee total per
    day; ``fixed`` charges ``late_fee_rate`` per day.
    """
    rate = Decimal(str(late_fee_rate or 0))
    if due_date is None or rate <= 0:
        return ZERO
    days_overdue = (today - due_date).days
    if days_overdue <= 0:
        return ZERO
    if late_fee_type == "fixed":
        fee = rate * days_overdue
    else:
        fee = to_money(base_amount) * rate / Decimal("100") * days_overdue
    return fee.quantize(CENTS, rounding=ROUND_HALF_UP)


def base_amount(invoice: Invoice) -> Decimal:
    return to_money(invoice.subtotal) + to_money(invoice.tax_amount) - to_money(invoice.discount_amount)


def apply_late_fee(invoice: Invoice, today: date | None = None) -> bool:
    """Accrue the late fee into ``total_amount`` while the invoice is unsettled.

    Fees only grow; returns True when the invoice changed.
    """
    if effective_status(invoice, today) == "paid":
        return False
    fee = calculate_late_fee(
        base_amount(invoice),
        invoice.late_fee_rate,
        invoice.late_fee_type,
        invoice.due_date,
        today or utc_today(),
    )
    if fee <= to_money(invoice.late_fee_amount):
        return False
    invoice.late_fee_amount = fee
    invoice.total_amount = base_amount(invoice) + fee
    return True


def derive_invoice_status(
    amount_paid: Decimal | float,
    total_amount: Decimal | float,
    due_date: date | None,
    today: date,
) -> str:
    """Status as a pure function of paid/total amounts, due date and today."""
    paid = to_money(amount_paid)
    total = to_money(total_amount)
    if paid >= total:
        return "paid"
    if paid > ZERO:
        return "partial"
    if due_date is not None and due_date < today:
        return "overdue"
    return "unpaid"


def effective_status(invoice: Invoice, today: date | None = None) -> str:
    """Derived status honoring the mark-paid override."""
    if invoice.marked_paid_at is not None:
        return "paid"
    return derive_invoice_status(invoice.amount_paid, invoice.total_amount, invoice.due_date, today or utc_today())


def refresh_invoice_status(invoice: Invoice, today: date | None = None) -> bool:
    """Write the derived status into the cached column; return True when it changed."""
    status = effective_status(invoice, today)
    if invoice.status == status:
        return False
    invoice.status = status
    return True


def today_for(now: datetime | None) -> date:
    return now.date() if now is not None else utc_today()
