# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

"""
Reporting rules

- Every figure is recomputed from invoices and the stock ledger; nothing
  here writes. Results are memoized in cache_service.REPORTS (or INVOICES
  for invoice statistics) and dropped on every committed write.
- CANCELLED invoices never contribute to a money aggregate.
- Money leaves this module as 2-dp strings.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import case, extract, func

from ..extensions import db
from ..models import Customer, InventoryTransaction, Invoice, InvoiceItem, Part, Supplier
from ..validation import INVOICE_TYPES, ValidationError
from partsledger.time_utils import parse_iso_date, to_iso_date, today
from . import cache_service
from .money import ZERO, HUNDRED, money_str, quantize_money
from .stock_ledger import IN, StockLevel, bulk_stock

MONTH_KEYS = tuple(f"{m:02d}" for m in range(1, 13))


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _parse_range(start, end) -> tuple[date | None, date | None]:
    try:
        start_d = parse_iso_date(start)
        end_d = parse_iso_date(end)
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 dates")
    if start_d and end_d and start_d > end_d:
        raise ValidationError("start must be on or before end")
    return start_d, end_d


def _counted(query, start: date | None = None, end: date | None = None):
    query = query.filter(Invoice.status != "CANCELLED")
    if start:
        query = query.filter(Invoice.date >= start)
    if end:
        query = query.filter(Invoice.date <= end)
    return query


def _check_type(invoice_type: str | None) -> None:
    if invoice_type is not None and invoice_type not in INVOICE_TYPES:
        raise ValidationError("type must be PURCHASE or SALE")


def _check_year(year) -> int:
    if isinstance(year, bool) or not isinstance(year, int) or year < 1900 or year > 9999:
        raise ValidationError("year must be a four-digit integer")
    return year


# =============================================================================
# Dashboard / statistics
# =============================================================================

def dashboard() -> dict:
    """Catalog counts, invoice totals per type and the low-stock list."""
    threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 5))

    def _compute() -> dict:
        per_type = {t: {"count": 0, "total": ZERO} for t in INVOICE_TYPES}
        rows = _counted(
            db.session.query(
                Invoice.type,
                func.count(Invoice.id).label("count"),
                func.coalesce(func.sum(Invoice.total), 0).label("total"),
            )
        ).group_by(Invoice.type).all()
        for row in rows:
            per_type[row.type] = {"count": int(row.count), "total": _dec(row.total)}

        parts = Part.live().order_by(Part.part_number.asc()).all()
        levels = bulk_stock()
        low_stock = []
        for part in parts:
            level = levels.get(part.id, StockLevel())
            if level.stock < threshold:
                low_stock.append({
                    "id": part.id,
                    "part_number": part.part_number,
                    "item_name": part.item_name,
                    "stock": level.stock,
                })
        low_stock.sort(key=lambda r: (r["stock"], r["part_number"]))

        return {
            "total_parts": len(parts),
            "total_suppliers": Supplier.live().count(),
            "total_customers": Customer.live().count(),
            "purchases": {
                "count": per_type["PURCHASE"]["count"],
                "total": money_str(per_type["PURCHASE"]["total"]),
            },
            "sales": {
                "count": per_type["SALE"]["count"],
                "total": money_str(per_type["SALE"]["total"]),
            },
            "low_stock_threshold": threshold,
            "low_stock_items": low_stock[:10],
        }

    return cache_service.cached(cache_service.REPORTS, ("dashboard", threshold), _compute)


def invoice_statistics(start=None, end=None) -> dict:
    """
    Counts per (type, status) plus money sums per type.

    Status counts include CANCELLED invoices; money sums do not.
    """
    start_d, end_d = _parse_range(start, end)

    def _compute() -> dict:
        by_status = {t: {s: 0 for s in ("DRAFT", "SUBMITTED", "PAID", "CANCELLED")} for t in INVOICE_TYPES}
        status_query = db.session.query(Invoice.type, Invoice.status, func.count(Invoice.id).label("count"))
        if start_d:
            status_query = status_query.filter(Invoice.date >= start_d)
        if end_d:
            status_query = status_query.filter(Invoice.date <= end_d)
        for row in status_query.group_by(Invoice.type, Invoice.status).all():
            by_status[row.type][row.status] = int(row.count)

        sums = {t: (ZERO, ZERO, ZERO) for t in INVOICE_TYPES}
        money_rows = _counted(
            db.session.query(
                Invoice.type,
                func.coalesce(func.sum(Invoice.total), 0).label("total"),
                func.coalesce(func.sum(Invoice.paid_amount), 0).label("paid"),
                func.coalesce(func.sum(Invoice.due_amount), 0).label("due"),
            ),
            start_d,
            end_d,
        ).group_by(Invoice.type).all()
        for row in money_rows:
            sums[row.type] = (_dec(row.total), _dec(row.paid), _dec(row.due))

        result = {"start": to_iso_date(start_d), "end": to_iso_date(end_d)}
        for invoice_type, key in (("PURCHASE", "purchases"), ("SALE", "sales")):
            total, paid, due = sums[invoice_type]
            result[key] = {
                "count": sum(by_status[invoice_type].values()),
                "by_status": by_status[invoice_type],
                "total": money_str(total),
                "paid": money_str(paid),
                "due": money_str(due),
            }
        return result

    return cache_service.cached(cache_service.INVOICES, ("statistics", start_d, end_d), _compute)


# =============================================================================
# Period rollups
# =============================================================================

def monthly_report(year: int, invoice_type: str | None = None) -> dict:
    """Twelve buckets "01".."12" of purchase and sale totals for a calendar year."""
    _check_year(year)
    _check_type(invoice_type)

    def _compute() -> dict:
        month = extract("month", Invoice.date)
        query = _counted(
            db.session.query(
                month.label("month"),
                Invoice.type,
                func.coalesce(func.sum(Invoice.total), 0).label("total"),
                func.count(Invoice.id).label("count"),
            )
        ).filter(extract("year", Invoice.date) == year)
        if invoice_type:
            query = query.filter(Invoice.type == invoice_type)

        buckets = {
            key: {"purchases": ZERO, "sales": ZERO, "purchase_count": 0, "sale_count": 0}
            for key in MONTH_KEYS
        }
        for row in query.group_by(month, Invoice.type).all():
            bucket = buckets[f"{int(row.month):02d}"]
            if row.type == "PURCHASE":
                bucket["purchases"] += _dec(row.total)
                bucket["purchase_count"] += int(row.count)
            else:
                bucket["sales"] += _dec(row.total)
                bucket["sale_count"] += int(row.count)

        return {
            "year": year,
            "type": invoice_type,
            "months": {
                key: {
                    "purchases": money_str(b["purchases"]),
                    "sales": money_str(b["sales"]),
                    "purchase_count": b["purchase_count"],
                    "sale_count": b["sale_count"],
                }
                for key, b in buckets.items()
            },
        }

    return cache_service.cached(cache_service.REPORTS, ("monthly", year, invoice_type), _compute)


def weekly_report(start=None, end=None) -> dict:
    """
    ISO-week rollup ("2025-W46") of purchase and sale totals.

    Defaults to the last 8 weeks ending today.
    """
    start_d, end_d = _parse_range(start, end)
    end_d = end_d or today()
    start_d = start_d or end_d - timedelta(weeks=8)

    def _compute() -> dict:
        rows = _counted(
            db.session.query(
                Invoice.date,
                Invoice.type,
                func.coalesce(func.sum(Invoice.total), 0).label("total"),
            ),
            start_d,
            end_d,
        ).group_by(Invoice.date, Invoice.type).all()

        weeks: dict[str, dict[str, Decimal]] = defaultdict(lambda: {"purchases": ZERO, "sales": ZERO})
        for row in rows:
            iso_year, iso_week, _ = row.date.isocalendar()
            key = "purchases" if row.type == "PURCHASE" else "sales"
            weeks[f"{iso_year}-W{iso_week:02d}"][key] += _dec(row.total)

        return {
            "start": to_iso_date(start_d),
            "end": to_iso_date(end_d),
            "weeks": [
                {
                    "week": week,
                    "purchases": money_str(values["purchases"]),
                    "sales": money_str(values["sales"]),
                }
                for week, values in sorted(weeks.items())
            ],
        }

    return cache_service.cached(cache_service.REPORTS, ("weekly", start_d, end_d), _compute)


def cashflow(year: int) -> dict:
    """Per month: money in (paid on sales), money out (paid on purchases), net."""
    _check_year(year)

    def _compute() -> dict:
        month = extract("month", Invoice.date)
        rows = _counted(
            db.session.query(
                month.label("month"),
                Invoice.type,
                func.coalesce(func.sum(Invoice.paid_amount), 0).label("paid"),
            )
        ).filter(extract("year", Invoice.date) == year).group_by(month, Invoice.type).all()

        flows = {key: {"in": ZERO, "out": ZERO} for key in MONTH_KEYS}
        for row in rows:
            direction = "in" if row.type == "SALE" else "out"
            flows[f"{int(row.month):02d}"][direction] += _dec(row.paid)

        months = {}
        total_in = total_out = ZERO
        for key, flow in flows.items():
            total_in += flow["in"]
            total_out += flow["out"]
            months[key] = {
                "money_in": money_str(flow["in"]),
                "money_out": money_str(flow["out"]),
                "net": money_str(flow["in"] - flow["out"]),
            }

        return {
            "year": year,
            "months": months,
            "total_in": money_str(total_in),
            "total_out": money_str(total_out),
            "net": money_str(total_in - total_out),
        }

    return cache_service.cached(cache_service.REPORTS, ("cashflow", year), _compute)


# =============================================================================
# Parts / profitability
# =============================================================================

def top_parts(limit: int = 10, invoice_type: str = "SALE") -> list[dict]:
    _check_type(invoice_type)
    limit = min(100, max(1, limit or 10))

    def _compute() -> list[dict]:
        quantity = func.sum(InvoiceItem.quantity).label("quantity")
        rows = _counted(
            db.session.query(
                Part.id,
                Part.part_number,
                Part.item_name,
                quantity,
                func.coalesce(func.sum(InvoiceItem.amount), 0).label("amount"),
            )
            .join(InvoiceItem, InvoiceItem.part_id == Part.id)
            .join(Invoice, Invoice.id == InvoiceItem.invoice_id)
            .filter(Invoice.type == invoice_type)
        ).group_by(Part.id, Part.part_number, Part.item_name).order_by(
            quantity.desc(), Part.part_number.asc()
        ).limit(limit).all()

        return [
            {
                "part_id": row.id,
                "part_number": row.part_number,
                "item_name": row.item_name,
                "quantity": int(row.quantity or 0),
                "amount": money_str(_dec(row.amount)),
            }
            for row in rows
        ]

    return cache_service.cached(cache_service.REPORTS, ("top_parts", limit, invoice_type), _compute)


def profit_loss(start=None, end=None) -> dict:
    """
    Sales revenue against purchase cost over a date range.

    margin is profit as a percentage of revenue, "0.00" when there is no
    revenue.
    """
    start_d, end_d = _parse_range(start, end)

    def _compute() -> dict:
        row = _counted(
            db.session.query(
                func.coalesce(func.sum(case((Invoice.type == "SALE", Invoice.total), else_=0)), 0).label("revenue"),
                func.coalesce(func.sum(case((Invoice.type == "PURCHASE", Invoice.total), else_=0)), 0).label("cost"),
            ),
            start_d,
            end_d,
        ).one()
        revenue = _dec(row.revenue)
        cost = _dec(row.cost)
        profit = revenue - cost
        margin = quantize_money(profit / revenue * HUNDRED) if revenue else ZERO

        return {
            "start": to_iso_date(start_d),
            "end": to_iso_date(end_d),
            "revenue": money_str(revenue),
            "cost": money_str(cost),
            "profit": money_str(profit),
            "margin": money_str(margin),
        }

    return cache_service.cached(cache_service.REPORTS, ("profit_loss", start_d, end_d), _compute)


def balance_sheet(as_of=None) -> dict:
    """
    Simplified balance sheet.

    assets      = cash + receivables + inventory value
    liabilities = payables
    equity      = assets - liabilities

    cash is paid-on-sales minus paid-on-purchases; inventory is valued at
    MRP times the net ledger quantity recorded up to as_of.
    """
    try:
        as_of_d = parse_iso_date(as_of) or today()
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 date")

    def _compute() -> dict:
        sums = _counted(
            db.session.query(
                func.coalesce(func.sum(case((Invoice.type == "SALE", Invoice.paid_amount), else_=0)), 0).label("sale_paid"),
                func.coalesce(func.sum(case((Invoice.type == "PURCHASE", Invoice.paid_amount), else_=0)), 0).label("purchase_paid"),
                func.coalesce(func.sum(case((Invoice.type == "SALE", Invoice.due_amount), else_=0)), 0).label("receivables"),
                func.coalesce(func.sum(case((Invoice.type == "PURCHASE", Invoice.due_amount), else_=0)), 0).label("payables"),
            ),
            end=as_of_d,
        ).one()

        cutoff = datetime.combine(as_of_d + timedelta(days=1), time.min)
        net_qty = func.sum(
            case((InventoryTransaction.direction == IN, InventoryTransaction.quantity), else_=-InventoryTransaction.quantity)
        )
        stock_rows = (
            db.session.query(Part.mrp, net_qty.label("qty"))
            .join(InventoryTransaction, InventoryTransaction.part_id == Part.id)
            .filter(InventoryTransaction.created_at < cutoff)
            .group_by(Part.id, Part.mrp)
            .all()
        )
        inventory_value = sum((_dec(r.mrp) * int(r.qty or 0) for r in stock_rows), ZERO)

        cash = _dec(sums.sale_paid) - _dec(sums.purchase_paid)
        receivables = _dec(sums.receivables)
        payables = _dec(sums.payables)
        assets = cash + receivables + inventory_value
        liabilities = payables

        return {
            "as_of": to_iso_date(as_of_d),
            "assets": {
                "cash": money_str(cash),
                "receivables": money_str(receivables),
                "inventory": money_str(inventory_value),
                "total": money_str(assets),
            },
            "liabilities": {
                "payables": money_str(payables),
                "total": money_str(liabilities),
            },
            "equity": money_str(assets - liabilities),
        }

    return cache_service.cached(cache_service.REPORTS, ("balance_sheet", as_of_d), _compute)
