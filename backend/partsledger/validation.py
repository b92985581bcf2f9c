from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from partsledger.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Largest amount a Numeric(14, 2) column can hold
MAX_MONEY = Decimal("999999999999.99")
PAISE = Decimal("0.01")

INVOICE_TYPES = ("PURCHASE", "SALE")
INVOICE_STATUSES = ("DRAFT", "SUBMITTED", "PAID", "CANCELLED")
PAYMENT_STATUSES = ("UNPAID", "PARTIAL", "PAID", "ON_CREDIT")

DELIVERY_FIELDS = (
    "delivery_note",
    "buyer_order_no",
    "dispatch_doc_no",
    "delivery_note_date",
    "dispatched_through",
    "terms_of_delivery",
    "notes",
)


class LedgerError(ValueError):
    """Base for every error the engine reports to its callers."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(LedgerError):
    """400-level input problem."""


class NotFoundError(LedgerError):
    """404-level missing or soft-deleted entity."""


class ConflictError(LedgerError):
    """409-level business rule conflict (e.g., duplicate invoice number)."""


class InvalidStateError(ConflictError):
    """409-level: the invoice's status forbids the requested change."""


class TransientStorageError(LedgerError):
    """503-level: database unavailable or serialization failure; safe to retry."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Convert JSON input to Decimal without passing through binary floats."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field_name} must be a number")
    else:
        raise ValidationError(f"{field_name} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


def require_paise(value: Decimal, field_name: str) -> Decimal:
    """Reject amounts and percents with more than two decimal places."""
    if value.copy_abs() > MAX_MONEY:
        raise ValidationError(f"{field_name} exceeds {MAX_MONEY}", {field_name: str(value)})
    if value != value.quantize(PAISE):
        raise ValidationError(
            f"{field_name} must have at most 2 decimal places",
            {field_name: str(value)},
        )
    return value


def to_int(value: Any, field_name: str) -> int:
    # Reject bools (int subclass), floats and scientific notation
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped and "e" not in stripped.lower() and "." not in stripped:
            try:
                return int(stripped)
            except ValueError:
                pass
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValidationError(f"{field_name} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return to_int(value, col.key)

    if isinstance(coltype, Numeric):
        return to_decimal(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        try:
            d = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 date")
        if d is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 date")
        return d

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_part(patch: dict) -> None:
    """Business rules for parts that SQLAlchemy metadata does not capture."""
    from partsledger.models.catalog import PART_NUMBER_PATTERN

    part_number = patch.get("part_number")
    if part_number is not None and not PART_NUMBER_PATTERN.match(part_number):
        raise ValidationError(
            "Invalid part number format. Use Number/Alphanumeric (e.g. 550/42835C) "
            "or numeric (e.g. 027800028)"
        )

    gst = patch.get("gst_percent")
    if gst is not None:
        _check_percent(gst, "gst_percent")

    for price_field in ("mrp", "rtl"):
        price = patch.get(price_field)
        if price is not None and (price < 0 or price > MAX_MONEY):
            raise ValidationError(f"{price_field} must be between 0 and {MAX_MONEY}")

    # Empty scan codes would collide on the unique index
    for code_field in ("barcode", "qr_code"):
        if patch.get(code_field) == "":
            patch[code_field] = None


def _check_percent(value: Decimal, field_name: str) -> None:
    if value < 0 or value > 100:
        raise ValidationError(f"{field_name} must be between 0 and 100")
    require_paise(value, field_name)


# =============================================================================
# Invoice requests
# =============================================================================

@dataclass(frozen=True)
class InvoiceLineRequest:
    part_id: int
    quantity: int
    rate: Decimal
    unit: str | None = None


@dataclass(frozen=True)
class InvoiceRequest:
    """
    Normalized create/update input for the invoice lifecycle manager.

    invoice_number is optional: allocated on create when absent, kept
    unchanged on update when absent.
    """
    type: str
    date: date
    items: tuple[InvoiceLineRequest, ...]
    invoice_number: str | None = None
    status: str | None = None
    supplier_id: int | None = None
    customer_id: int | None = None
    discount_percent: Decimal = Decimal("0")
    discount_amount: Decimal | None = None
    cgst_percent: Decimal = Decimal("0")
    sgst_percent: Decimal = Decimal("0")
    extra: dict = field(default_factory=dict)

    @property
    def counterparty_id(self) -> int | None:
        return self.supplier_id if self.type == "PURCHASE" else self.customer_id


def _parse_line(raw: Any, index: int) -> InvoiceLineRequest:
    label = f"items[{index}]"
    if not isinstance(raw, dict):
        raise ValidationError(f"{label} must be an object")
    for key in ("part_id", "quantity", "rate"):
        if raw.get(key) is None:
            raise ValidationError(f"{label}.{key} is required")

    part_id = to_int(raw["part_id"], f"{label}.part_id")
    quantity = to_int(raw["quantity"], f"{label}.quantity")
    rate = to_decimal(raw["rate"], f"{label}.rate")

    if quantity <= 0:
        raise ValidationError(f"{label}.quantity must be > 0", {"index": index})
    if rate < 0:
        raise ValidationError(f"{label}.rate must be >= 0", {"index": index})
    if rate > MAX_MONEY:
        raise ValidationError(f"{label}.rate exceeds {MAX_MONEY}", {"index": index})
    if rate != rate.quantize(PAISE):
        raise ValidationError(f"{label}.rate must have at most 2 decimal places", {"index": index})

    unit = raw.get("unit")
    unit = str(unit).strip() or None if unit is not None else None
    return InvoiceLineRequest(part_id=part_id, quantity=quantity, rate=rate, unit=unit)


def parse_invoice_request(payload: Any, *, require_number: bool = False) -> InvoiceRequest:
    """
    Validate and normalize an invoice create/update payload.

    Checks shape and ranges only; existence of parts and counterparties is
    checked by the lifecycle manager inside its transaction.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = [k for k in ("date", "type", "items") if not payload.get(k)]
    if require_number and not payload.get("invoice_number"):
        missing.insert(0, "invoice_number")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    invoice_type = str(payload["type"]).strip().upper()
    if invoice_type not in INVOICE_TYPES:
        raise ValidationError("type must be PURCHASE or SALE")

    try:
        invoice_date = parse_iso_date(payload["date"])
    except ValueError:
        invoice_date = None
    if invoice_date is None:
        raise ValidationError("date must be an ISO-8601 date")

    raw_items = payload["items"]
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    items = tuple(_parse_line(raw, i) for i, raw in enumerate(raw_items))

    status = payload.get("status")
    if status is not None:
        status = str(status).strip().upper()
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")

    supplier_id = payload.get("supplier_id")
    customer_id = payload.get("customer_id")
    if invoice_type == "PURCHASE":
        if supplier_id is None:
            raise ValidationError("supplier_id is required for PURCHASE invoices")
        supplier_id = to_int(supplier_id, "supplier_id")
        customer_id = None
    else:
        if customer_id is None:
            raise ValidationError("customer_id is required for SALE invoices")
        customer_id = to_int(customer_id, "customer_id")
        supplier_id = None

    discount_percent = to_decimal(payload.get("discount_percent") or 0, "discount_percent")
    _check_percent(discount_percent, "discount_percent")

    discount_amount = payload.get("discount_amount")
    if discount_amount is not None:
        discount_amount = to_decimal(discount_amount, "discount_amount")
        if discount_amount < 0:
            raise ValidationError("discount_amount must be >= 0")
        require_paise(discount_amount, "discount_amount")

    cgst_percent = to_decimal(payload.get("cgst_percent") or 0, "cgst_percent")
    sgst_percent = to_decimal(payload.get("sgst_percent") or 0, "sgst_percent")
    _check_percent(cgst_percent, "cgst_percent")
    _check_percent(sgst_percent, "sgst_percent")

    invoice_number = payload.get("invoice_number")
    if invoice_number is not None:
        invoice_number = str(invoice_number).strip() or None
        if invoice_number and len(invoice_number) > 64:
            raise ValidationError("invoice_number exceeds max length 64")

    extra: dict = {}
    for key in DELIVERY_FIELDS:
        value = payload.get(key)
        if value is None:
            continue
        if key == "delivery_note_date":
            try:
                value = parse_iso_date(value)
            except ValueError:
                raise ValidationError("delivery_note_date must be an ISO-8601 date")
        else:
            value = str(value).strip() or None
        extra[key] = value

    return InvoiceRequest(
        type=invoice_type,
        date=invoice_date,
        items=items,
        invoice_number=invoice_number,
        status=status,
        supplier_id=supplier_id,
        customer_id=customer_id,
        discount_percent=discount_percent,
        discount_amount=discount_amount,
        cgst_percent=cgst_percent,
        sgst_percent=sgst_percent,
        extra=extra,
    )


def parse_id_list(payload: Any) -> list[int]:
    """Bulk endpoints take {"ids": [...]} with at least one integer id."""
    ids = payload.get("ids") if isinstance(payload, dict) else None
    if not isinstance(ids, list) or not ids:
        raise ValidationError("ids array is required")
    return list(dict.fromkeys(to_int(i, "ids[]") for i in ids))
