# Overview: Exact decimal arithmetic for invoice totals (subtotal, discount, GST, round-off).

"""
Invoice money rules (authoritative)

- All money is decimal.Decimal; binary floats never enter the computation.
- Rates, fixed discounts and percents carry at most two decimal places, so
  every line amount quantity * rate is already exact in paise and the
  subtotal is the exact sum of the stored line amounts.
- Discount is applied BEFORE tax on both create and update:
    * an explicit positive fixed amount wins and must not exceed the subtotal
    * otherwise subtotal * discount_percent / 100, rounded to paise
- taxable_value = subtotal - discount (never negative)
- cgst/sgst = taxable_value * percent / 100, each rounded to paise
- gross = taxable_value + cgst + sgst; total = gross rounded to the whole
  rupee (half-up); round_off is the signed difference total - gross.

Every amount is rounded (half-up) at the step that produces it, and later
steps only combine rounded amounts, so the stored columns satisfy
taxable_value == subtotal - discount_amount and
total == taxable_value + cgst_amount + sgst_amount + round_off exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from ..validation import ValidationError, require_paise


ZERO = Decimal("0")
HUNDRED = Decimal("100")
PAISE = Decimal("0.01")
RUPEE = Decimal("1")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(PAISE, rounding=ROUND_HALF_UP)


def money_str(value) -> str | None:
    """Serialize a money/percent column for JSON ("1062.00")."""
    if value is None:
        return None
    return str(quantize_money(Decimal(value)))


def line_amount(quantity: int, rate: Decimal) -> Decimal:
    return Decimal(quantity) * require_paise(rate, "rate")


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    taxable_value: Decimal
    cgst_percent: Decimal
    cgst_amount: Decimal
    sgst_percent: Decimal
    sgst_amount: Decimal
    gross: Decimal
    round_off: Decimal
    total: Decimal

    def as_columns(self) -> dict:
        """Values for the Invoice money columns, quantized to paise."""
        return {
            "subtotal": quantize_money(self.subtotal),
            "discount_percent": self.discount_percent,
            "discount_amount": quantize_money(self.discount_amount),
            "taxable_value": quantize_money(self.taxable_value),
            "cgst_percent": self.cgst_percent,
            "cgst_amount": quantize_money(self.cgst_amount),
            "sgst_percent": self.sgst_percent,
            "sgst_amount": quantize_money(self.sgst_amount),
            "round_off": quantize_money(self.round_off),
            "total": quantize_money(self.total),
        }


def resolve_discount(
    subtotal: Decimal,
    *,
    discount_percent: Decimal | None,
    discount_amount: Decimal | None,
) -> tuple[Decimal, Decimal]:
    """
    Return (effective_percent, discount_amount).

    Only one policy is ever active: a fixed amount takes precedence and
    records a percent of zero.
    """
    if discount_amount is not None and discount_amount > 0:
        require_paise(discount_amount, "discount_amount")
        if discount_amount > subtotal:
            raise ValidationError(
                "discount_amount cannot exceed subtotal",
                {"discount_amount": str(discount_amount), "subtotal": str(subtotal)},
            )
        return ZERO, discount_amount

    percent = discount_percent or ZERO
    if percent < 0 or percent > HUNDRED:
        raise ValidationError("discount_percent must be between 0 and 100")
    require_paise(percent, "discount_percent")
    if percent > 0:
        return percent, quantize_money(subtotal * percent / HUNDRED)
    return ZERO, ZERO


def compute_invoice_totals(
    lines: Iterable[tuple[int, Decimal]],
    *,
    discount_percent: Decimal | None = None,
    discount_amount: Decimal | None = None,
    cgst_percent: Decimal | None = None,
    sgst_percent: Decimal | None = None,
) -> InvoiceTotals:
    """
    Compute invoice totals from (quantity, rate) pairs.

    Pure function: no database access, deterministic for equal inputs.
    """
    subtotal = ZERO
    for quantity, rate in lines:
        subtotal += line_amount(quantity, rate)

    percent, discount = resolve_discount(
        subtotal,
        discount_percent=discount_percent,
        discount_amount=discount_amount,
    )

    taxable_value = subtotal - discount
    if taxable_value < 0:
        raise ValidationError("taxable value cannot be negative")

    cgst_percent = cgst_percent or ZERO
    sgst_percent = sgst_percent or ZERO
    for label, tax_percent in (("cgst_percent", cgst_percent), ("sgst_percent", sgst_percent)):
        if tax_percent < 0 or tax_percent > HUNDRED:
            raise ValidationError(f"{label} must be between 0 and 100")
        require_paise(tax_percent, label)

    cgst_amount = quantize_money(taxable_value * cgst_percent / HUNDRED)
    sgst_amount = quantize_money(taxable_value * sgst_percent / HUNDRED)

    gross = taxable_value + cgst_amount + sgst_amount
    rounded_total = gross.quantize(RUPEE, rounding=ROUND_HALF_UP)
    round_off = rounded_total - gross

    return InvoiceTotals(
        subtotal=subtotal,
        discount_percent=percent,
        discount_amount=discount,
        taxable_value=taxable_value,
        cgst_percent=cgst_percent,
        cgst_amount=cgst_amount,
        sgst_percent=sgst_percent,
        sgst_amount=sgst_amount,
        gross=gross,
        round_off=round_off,
        total=rounded_total,
    )


def derive_payment_state(
    total: Decimal,
    paid_amount: Decimal,
    *,
    on_credit: bool = False,
) -> tuple[str, Decimal]:
    """Return (payment_status, due_amount) for a paid amount against a total."""
    if paid_amount < 0:
        raise ValidationError("paid_amount must be >= 0")
    if paid_amount > total:
        raise ValidationError(
            "paid_amount cannot exceed invoice total",
            {"paid_amount": str(paid_amount), "total": str(total)},
        )
    due = quantize_money(total - paid_amount)
    if due == 0:
        return "PAID", due
    if on_credit:
        return "ON_CREDIT", due
    if paid_amount > 0:
        return "PARTIAL", due
    return "UNPAID", due
