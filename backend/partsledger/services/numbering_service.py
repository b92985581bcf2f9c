# Overview: Service-layer operations for invoice numbering; encapsulates business logic and database work.

"""
Invoice Numbering (authoritative)

Format: PREFIX/SEQ/MON/YY-YY, e.g. JCB/02/NOV/25-26
- SEQ is zero-padded to two digits (wider once it passes 99)
- MON is the three-letter month of the invoice date
- YY-YY is the April-March financial year containing the invoice date

Sequences are scoped to an (invoice type, MON/YY-YY) bucket and are
gap-filling: the smallest unused SEQ is handed out first, so a number freed
by deleting an invoice is reused by the next one.

Race handling, all inside the caller's transaction:
1. claim the bucket row with an atomic UPDATE (row lock on PostgreSQL,
   database write lock on SQLite), creating it on first use;
2. scan the numbers already used in the bucket and pick the gap;
3. the caller inserts the invoice before committing. The
   (invoice_number, type) unique constraint is the last line of defence and
   invoice_service re-runs the whole transaction when it fires.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Iterable

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Invoice, InvoiceNumberBucket
from ..validation import INVOICE_TYPES, ValidationError
from partsledger.time_utils import financial_year_label, month_abbreviation

DEFAULT_PREFIX = "JCB"


def default_prefix() -> str:
    return current_app.config.get("INVOICE_NUMBER_PREFIX") or DEFAULT_PREFIX


def bucket_period(invoice_date: date) -> str:
    """'NOV/25-26' for 2025-11-14."""
    return f"{month_abbreviation(invoice_date)}/{financial_year_label(invoice_date)}"


def format_invoice_number(seq: int, invoice_date: date, prefix: str) -> str:
    return f"{prefix}/{seq:02d}/{bucket_period(invoice_date)}"


def _number_pattern(invoice_date: date, prefix: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(prefix)}/(\d+)/{re.escape(bucket_period(invoice_date))}$")


def parse_sequence(invoice_number: str, invoice_date: date, prefix: str) -> int | None:
    """SEQ of a number in the given bucket, or None when it belongs elsewhere."""
    match = _number_pattern(invoice_date, prefix).match(invoice_number or "")
    if not match:
        return None
    return int(match.group(1))


def pick_sequence(existing: Iterable[int]) -> int:
    """
    Smallest positive integer not in existing.

    1 for an empty bucket; max + 1 when there are no gaps.
    """
    used = {seq for seq in existing if seq > 0}
    seq = 1
    while seq in used:
        seq += 1
    return seq


def _validate(invoice_type: str, invoice_date: date) -> None:
    if invoice_type not in INVOICE_TYPES:
        raise ValidationError("type must be PURCHASE or SALE")
    if not isinstance(invoice_date, date):
        raise ValidationError("date is required")


def _used_sequences(invoice_type: str, invoice_date: date, prefix: str) -> list[int]:
    like = f"{prefix}/%/{bucket_period(invoice_date)}"
    numbers = (
        db.session.query(Invoice.invoice_number)
        .filter(Invoice.type == invoice_type, Invoice.invoice_number.like(like))
        .order_by(Invoice.invoice_number.asc())
        .all()
    )
    sequences = []
    for (number,) in numbers:
        seq = parse_sequence(number, invoice_date, prefix)
        if seq is not None:
            sequences.append(seq)
    return sequences


def _claim_bucket(invoice_type: str, period: str) -> None:
    stmt = (
        update(InvoiceNumberBucket)
        .where(
            InvoiceNumberBucket.invoice_type == invoice_type,
            InvoiceNumberBucket.period == period,
        )
        .values(claims=InvoiceNumberBucket.claims + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        return

    # First invoice in this bucket: create the row under a savepoint so a
    # concurrent creator winning the insert does not poison our transaction.
    try:
        with db.session.begin_nested():
            db.session.add(InvoiceNumberBucket(invoice_type=invoice_type, period=period, claims=1))
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise


def get_next_invoice_number(invoice_type: str, invoice_date: date, *, prefix: str | None = None) -> str:
    """
    Preview the number the next invoice in this bucket would receive.

    Read-only: nothing is reserved, a concurrent create may take it first.
    """
    _validate(invoice_type, invoice_date)
    prefix = prefix or default_prefix()
    seq = pick_sequence(_used_sequences(invoice_type, invoice_date, prefix))
    return format_invoice_number(seq, invoice_date, prefix)


def allocate_invoice_number(invoice_type: str, invoice_date: date, *, prefix: str | None = None) -> str:
    """
    Allocate a number inside the caller's open transaction.

    The caller must insert the invoice in the same transaction before it
    commits; the bucket claim holds other allocators off until then.
    """
    _validate(invoice_type, invoice_date)
    prefix = prefix or default_prefix()
    _claim_bucket(invoice_type, bucket_period(invoice_date))
    seq = pick_sequence(_used_sequences(invoice_type, invoice_date, prefix))
    return format_invoice_number(seq, invoice_date, prefix)
