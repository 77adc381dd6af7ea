from datetime import date
from decimal import Decimal

import pytest

from backend.app.core.exceptions import ValidationError
from backend.app.services.billing import (
    calculate_late_fee,
    calculate_line_amount,
    calculate_totals,
    derive_invoice_status,
    to_money,
    validate_late_fee_terms,
)

TODAY = date(2030, 6, 15)


def test_calculate_line_amount_basic():
    assert calculate_line_amount(2, Decimal("80.00")) == Decimal("160.00")
    assert calculate_line_amount(Decimal("1.5"), Decimal("80.00")) == Decimal("120.00")
    assert calculate_line_amount(None, Decimal("80.00")) == Decimal("80.00")
    assert calculate_line_amount(3, None) == Decimal("0.00")


def test_to_money_rounds_half_up():
    assert to_money("10.005") == Decimal("10.01")
    assert to_money(None) == Decimal("0.00")
    with pytest.raises(ValidationError):
        to_money("ten")


def test_totals_without_tax_equal_sum_of_items():
    totals = calculate_totals([Decimal("100.00"), Decimal("250.50")])
    assert totals["subtotal"] == Decimal("350.50")
    assert totals["total_amount"] == Decimal("350.50")
    assert totals["tax_amount"] == Decimal("0.00")


def test_totals_with_tax_and_discount():
    totals = calculate_totals([Decimal("1000.00")], tax_rate=18, discount_amount="100")
    assert totals["tax_amount"] == Decimal("180.00")
    assert totals["total_amount"] == Decimal("1080.00")


@pytest.mark.parametrize(
    "tax_rate,discount",
    [(-1, 0), (101, 0), (0, -5), (0, 5000)],
)
def test_totals_reject_invalid_tax_or_discount(tax_rate, discount):
    with pytest.raises(ValidationError):
        calculate_totals([Decimal("100.00")], tax_rate=tax_rate, discount_amount=discount)


@pytest.mark.parametrize(
    "paid,total,due,expected",
    [
        ("0", "500", date(2030, 7, 1), "unpaid"),
        ("0", "500", TODAY, "unpaid"),
        ("0", "500", date(2030, 6, 14), "overdue"),
        ("300", "500", date(2030, 7, 1), "partial"),
        ("300", "500", date(2030, 6, 1), "partial"),
        ("500", "500", date(2030, 6, 1), "paid"),
        ("500.00", "500", None, "paid"),
    ],
)
def test_derive_invoice_status(paid, total, due, expected):
    assert derive_invoice_status(Decimal(paid), Decimal(total), due, TODAY) == expected


def test_derive_invoice_status_is_deterministic():
    args = (Decimal("10"), Decimal("20"), date(2030, 1, 1), TODAY)
    assert {derive_invoice_status(*args) for _ in range(10)} == {"partial"}


@pytest.mark.parametrize("due", [date(2030, 7, 1), date(2030, 1, 1)])
def test_zero_total_invoice_is_paid(due):
    assert derive_invoice_status(Decimal("0"), Decimal("0.00"), due, TODAY) == "paid"


def test_totals_include_late_fee():
    totals = calculate_totals([Decimal("200.00")], tax_rate=10, late_fee_amount="15.50")
    assert totals["late_fee_amount"] == Decimal("15.50")
    assert totals["total_amount"] == Decimal("235.50")


@pytest.mark.parametrize(
    "rate,fee_type,due,expected",
    [
        ("1.5", "percentage", date(2030, 6, 5), "150.00"),
        ("20", "fixed", date(2030, 6, 5), "200.00"),
        ("1.5", "percentage", TODAY, "0.00"),
        ("1.5", "percentage", date(2030, 7, 1), "0.00"),
        ("0", "fixed", date(2030, 6, 5), "0.00"),
        ("5", "fixed", None, "0.00"),
    ],
)
def test_calculate_late_fee(rate, fee_type, due, expected):
    fee = calculate_late_fee(Decimal("1000.00"), Decimal(rate), fee_type, due, TODAY)
    assert fee == Decimal(expected)


def test_late_fee_terms_are_validated():
    validate_late_fee_terms(Decimal("2"), "fixed")
    with pytest.raises(ValidationError):
        validate_late_fee_terms(Decimal("2"), "weekly")
    with pytest.raises(ValidationError):
        validate_late_fee_terms(Decimal("-1"), "percentage")
