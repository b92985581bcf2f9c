from datetime import date
from decimal import Decimal

import pytest

from partsledger.services import invoice_service, reporting_service, stock_ledger
from partsledger.validation import ValidationError

from conftest import invoice_request


@pytest.fixture
def trading_month(db_session, supplier, customer, part_a, part_b):
    """Two purchases, two sales and one cancelled sale across Nov/Dec 2025."""
    invoice_service.create_invoice(
        invoice_request("PURCHASE", supplier.id, [(part_a.id, 10, "50"), (part_b.id, 5, "100")])
    )
    invoice_service.create_invoice(
        invoice_request("PURCHASE", supplier.id, [(part_b.id, 2, "100")], invoice_date=date(2025, 12, 3))
    )
    sale = invoice_service.create_invoice(
        invoice_request("SALE", customer.id, [(part_a.id, 4, "150")], invoice_date=date(2025, 11, 20))
    )
    invoice_service.record_payment(sale.id, paid_amount=Decimal("600"))
    invoice_service.create_invoice(
        invoice_request("SALE", customer.id, [(part_b.id, 1, "300")], invoice_date=date(2025, 12, 10))
    )
    cancelled = invoice_service.create_invoice(
        invoice_request("SALE", customer.id, [(part_a.id, 1, "9999")], invoice_date=date(2025, 12, 11))
    )
    invoice_service.change_status(cancelled.id, "CANCELLED")
    return sale


def test_dashboard(app, db_session, part_a, part_b, trading_month):
    report = reporting_service.dashboard()
    assert report["total_parts"] == 2
    assert report["total_suppliers"] == 1
    assert report["total_customers"] == 1
    assert report["purchases"] == {"count": 2, "total": "1200.00"}
    assert report["sales"] == {"count": 2, "total": "900.00"}
    # part_a: 10 - 4 - 1 (cancelled sale still moved stock) = 5, part_b: 7 - 1 = 6
    assert report["low_stock_items"] == []

    stock_ledger.adjust_stock(part_id=part_a.id, target_quantity=2)
    low = reporting_service.dashboard()["low_stock_items"]
    assert [(row["part_number"], row["stock"]) for row in low] == [(part_a.part_number, 2)]


def test_invoice_statistics(db_session, trading_month):
    stats = reporting_service.invoice_statistics("2025-11-01", "2025-12-31")
    assert stats["sales"]["count"] == 3
    assert stats["sales"]["by_status"]["CANCELLED"] == 1
    assert stats["sales"]["total"] == "900.00"
    assert stats["sales"]["paid"] == "600.00"
    assert stats["sales"]["due"] == "300.00"
    assert stats["purchases"]["total"] == "1200.00"


def test_invoice_statistics_rejects_inverted_range(db_session):
    with pytest.raises(ValidationError):
        reporting_service.invoice_statistics("2025-12-01", "2025-11-01")


def test_monthly_report_buckets(db_session, trading_month):
    report = reporting_service.monthly_report(2025)
    assert list(report["months"]) == [f"{m:02d}" for m in range(1, 13)]
    assert report["months"]["11"]["purchases"] == "1000.00"
    assert report["months"]["11"]["sales"] == "600.00"
    assert report["months"]["12"]["purchases"] == "200.00"
    assert report["months"]["12"]["sales"] == "300.00"
    assert report["months"]["12"]["sale_count"] == 1
    assert report["months"]["01"]["sales"] == "0.00"

    sales_only = reporting_service.monthly_report(2025, "SALE")
    assert sales_only["months"]["11"]["purchases"] == "0.00"


def test_weekly_report(db_session, trading_month):
    report = reporting_service.weekly_report("2025-11-10", "2025-11-30")
    weeks = {row["week"]: row for row in report["weeks"]}
    assert weeks["2025-W46"]["purchases"] == "1000.00"
    assert weeks["2025-W47"]["sales"] == "600.00"


def test_cashflow(db_session, trading_month):
    report = reporting_service.cashflow(2025)
    assert report["months"]["11"] == {"money_in": "600.00", "money_out": "0.00", "net": "600.00"}
    assert report["net"] == "600.00"


def test_top_parts(db_session, part_a, part_b, trading_month):
    rows = reporting_service.top_parts(limit=5, invoice_type="SALE")
    assert [(r["part_id"], r["quantity"], r["amount"]) for r in rows] == [
        (part_a.id, 4, "600.00"),
        (part_b.id, 1, "300.00"),
    ]


def test_profit_loss(db_session, trading_month):
    report = reporting_service.profit_loss("2025-11-01", "2025-12-31")
    assert report["revenue"] == "900.00"
    assert report["cost"] == "1200.00"
    assert report["profit"] == "-300.00"
    assert report["margin"] == "-33.33"


def test_profit_loss_without_revenue(db_session):
    assert reporting_service.profit_loss()["margin"] == "0.00"


def test_balance_sheet(db_session, trading_month):
    sheet = reporting_service.balance_sheet()
    # part_a 5 x 1200 + part_b 6 x 450
    assert sheet["assets"]["inventory"] == "8700.00"
    assert sheet["assets"]["cash"] == "600.00"
    assert sheet["assets"]["receivables"] == "300.00"
    assert sheet["liabilities"]["payables"] == "1200.00"
    assert sheet["equity"] == "8400.00"


def test_reports_refresh_after_write(db_session, supplier, part_a):
    assert reporting_service.dashboard()["purchases"]["count"] == 0
    invoice_service.create_invoice(invoice_request("PURCHASE", supplier.id, [(part_a.id, 1, "10")]))
    assert reporting_service.dashboard()["purchases"]["count"] == 1


def test_reporting_rules_are_module_docstring():
    assert "Reporting rules" in reporting_service.__doc__
