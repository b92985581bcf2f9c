from decimal import Decimal

import pytest

from partsledger.services.money import (
    compute_invoice_totals,
    derive_payment_state,
    money_str,
    quantize_money,
    resolve_discount,
)
from partsledger.validation import ValidationError


D = Decimal


def test_tax_on_taxable_value_rounded_to_rupee():
    totals = compute_invoice_totals(
        [(2, D("450.00"))],
        cgst_percent=D("9"),
        sgst_percent=D("9"),
    )
    assert totals.subtotal == D("900.00")
    assert totals.taxable_value == D("900.00")
    assert quantize_money(totals.cgst_amount) == D("81.00")
    assert quantize_money(totals.sgst_amount) == D("81.00")
    assert totals.total == D("1062")
    assert totals.round_off == D("0")


def test_discount_percent_applied_before_tax():
    totals = compute_invoice_totals(
        [(1, D("1000")), (3, D("100"))],
        discount_percent=D("10"),
        cgst_percent=D("9"),
        sgst_percent=D("9"),
    )
    cols = totals.as_columns()
    assert cols["subtotal"] == D("1300.00")
    assert cols["discount_amount"] == D("130.00")
    assert cols["taxable_value"] == D("1170.00")
    assert cols["cgst_amount"] == D("105.30")
    assert cols["sgst_amount"] == D("105.30")
    # 1380.60 rounds half-up to 1381
    assert cols["total"] == D("1381.00")
    assert cols["round_off"] == D("0.40")


def test_round_off_is_negative_when_rounding_down():
    totals = compute_invoice_totals([(1, D("100.20"))])
    assert totals.total == D("100")
    assert quantize_money(totals.round_off) == D("-0.20")


def test_half_rupee_rounds_up():
    totals = compute_invoice_totals([(1, D("10.50"))])
    assert totals.total == D("11")


def test_fixed_discount_wins_over_percent():
    percent, amount = resolve_discount(D("500"), discount_percent=D("50"), discount_amount=D("20"))
    assert percent == D("0")
    assert amount == D("20")


def test_fixed_discount_larger_than_subtotal_rejected():
    with pytest.raises(ValidationError):
        compute_invoice_totals([(1, D("10"))], discount_amount=D("10.01"))


def test_percent_out_of_range_rejected():
    with pytest.raises(ValidationError):
        compute_invoice_totals([(1, D("10"))], cgst_percent=D("101"))


def test_no_float_drift_in_subtotal():
    # 0.1 + 0.2 style inputs stay exact
    totals = compute_invoice_totals([(1, D("0.10")), (1, D("0.20"))])
    assert totals.subtotal == D("0.30")


def test_totals_are_deterministic():
    lines = [(7, D("13.37")), (2, D("99.99"))]
    first = compute_invoice_totals(lines, discount_percent=D("3"), cgst_percent=D("14"), sgst_percent=D("14"))
    second = compute_invoice_totals(lines, discount_percent=D("3"), cgst_percent=D("14"), sgst_percent=D("14"))
    assert first == second


@pytest.mark.parametrize("paid, on_credit, expected", [
    (D("0"), False, ("UNPAID", D("1000.00"))),
    (D("400"), False, ("PARTIAL", D("600.00"))),
    (D("1000"), False, ("PAID", D("0.00"))),
    (D("0"), True, ("ON_CREDIT", D("1000.00"))),
])
def test_payment_state(paid, on_credit, expected):
    assert derive_payment_state(D("1000.00"), paid, on_credit=on_credit) == expected


def test_overpayment_rejected():
    with pytest.raises(ValidationError):
        derive_payment_state(D("100"), D("100.01"))


def test_money_str():
    assert money_str(D("1062")) == "1062.00"
    assert money_str(None) is None


def test_reference_invoice_breakdown():
    totals = compute_invoice_totals(
        [(10, D("50")), (5, D("100"))],
        discount_percent=D("10"),
        cgst_percent=D("9"),
        sgst_percent=D("9"),
    )
    assert totals.subtotal == D("1000")
    assert totals.discount_amount == D("100")
    assert totals.taxable_value == D("900")
    assert totals.cgst_amount == D("81")
    assert totals.sgst_amount == D("81")
    assert totals.gross == D("1062")
    assert totals.total == D("1062")
    assert totals.round_off == D("0")


def test_percent_discount_rounded_before_taxable_value():
    cols = compute_invoice_totals([(1, D("1.00"))], discount_percent=D("0.5")).as_columns()
    assert cols["discount_amount"] == D("0.01")
    assert cols["taxable_value"] == D("0.99")
    assert cols["taxable_value"] == cols["subtotal"] - cols["discount_amount"]


def test_stored_columns_add_up_to_total():
    cols = compute_invoice_totals(
        [(7, D("13.37")), (2, D("99.99"))],
        discount_percent=D("3"),
        cgst_percent=D("14"),
        sgst_percent=D("14"),
    ).as_columns()
    assert cols["taxable_value"] == cols["subtotal"] - cols["discount_amount"]
    assert cols["total"] == cols["taxable_value"] + cols["cgst_amount"] + cols["sgst_amount"] + cols["round_off"]
    assert cols["total"] == cols["total"].quantize(D("1"))


@pytest.mark.parametrize("kwargs", [
    {"lines": [(3, D("10.005"))]},
    {"lines": [(1, D("10"))], "discount_percent": D("2.125")},
    {"lines": [(1, D("10"))], "discount_amount": D("0.001")},
    {"lines": [(1, D("10"))], "cgst_percent": D("9.001")},
])
def test_sub_paise_inputs_rejected(kwargs):
    lines = kwargs.pop("lines")
    with pytest.raises(ValidationError):
        compute_invoice_totals(lines, **kwargs)


def test_trailing_zeros_are_not_extra_places():
    assert compute_invoice_totals([(3, D("10.500"))]).subtotal == D("31.50")
