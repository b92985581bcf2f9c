from flask import Blueprint, request

from ..decorators import require_auth
from ..services import reporting_service
from ..time_utils import today


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _year() -> int:
    return request.args.get("year", today().year, type=int)


@reports_bp.get("/dashboard")
@require_auth
def dashboard():
    return reporting_service.dashboard()


@reports_bp.get("/monthly")
@require_auth
def monthly():
    invoice_type = request.args.get("type")
    return reporting_service.monthly_report(_year(), invoice_type.upper() if invoice_type else None)


@reports_bp.get("/weekly")
@require_auth
def weekly():
    return reporting_service.weekly_report(request.args.get("start"), request.args.get("end"))


@reports_bp.get("/cashflow")
@require_auth
def cashflow():
    return reporting_service.cashflow(_year())


@reports_bp.get("/top-parts")
@require_auth
def top_parts():
    invoice_type = (request.args.get("type") or "SALE").upper()
    rows = reporting_service.top_parts(request.args.get("limit", 10, type=int), invoice_type)
    return {"data": rows}


@reports_bp.get("/profit-loss")
@require_auth
def profit_loss():
    return reporting_service.profit_loss(request.args.get("start"), request.args.get("end"))


@reports_bp.get("/balance-sheet")
@require_auth
def balance_sheet():
    return reporting_service.balance_sheet(request.args.get("as_of"))
