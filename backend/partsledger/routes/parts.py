# Overview: Flask API routes for parts; parses input and returns JSON responses.

# backend/partsledger/routes/parts.py
"""
Part catalog routes.

Parts are upserted by part number and soft-deleted only; stock is never
part of a part payload (see /api/stock).
"""
from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..models import Part
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_part

PART_POLICY = ModelValidationPolicy(
    writable_fields={
        "part_number", "item_name", "description", "hsn_code", "gst_percent",
        "unit", "mrp", "rtl", "barcode", "qr_code",
    },
    required_on_create={"part_number", "item_name", "hsn_code"},
)

parts_bp = Blueprint("parts", __name__, url_prefix="/api/parts")


@parts_bp.get("")
@require_auth
def list_parts():
    """
    Query params:
    - page / limit: pagination (default 1 / 50, max limit 100)
    - include_deleted: "true" to include soft-deleted parts (admin only)
    """
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    if include_deleted and g.user_role != "admin":
        return {"error": "Permission denied"}, 403
    return catalog_service.list_parts(
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("limit", 50, type=int),
        include_deleted=include_deleted,
    )


@parts_bp.get("/search")
@require_auth
def search_parts():
    parts = catalog_service.search_parts(request.args.get("q"), limit=request.args.get("limit", 50, type=int))
    return {"data": [p.to_dict() for p in parts]}


@parts_bp.get("/lookup")
@require_auth
def lookup_part():
    """Scanner lookup by ?barcode= or ?qr_code=."""
    barcode = request.args.get("barcode")
    qr_code = request.args.get("qr_code")
    if not barcode and not qr_code:
        return {"error": "barcode or qr_code is required"}, 400
    part = catalog_service.find_part_by_code(barcode=barcode, qr_code=qr_code)
    return part.to_dict()


@parts_bp.get("/<int:part_id>")
@require_auth
def get_part(part_id: int):
    include_deleted = request.args.get("include_deleted", "false").lower() == "true" and g.user_role == "admin"
    return catalog_service.get_part(part_id, include_deleted=include_deleted).to_dict()


@parts_bp.post("")
@require_auth
def upsert_part():
    """Create a part, or update the existing one with the same part_number."""
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Part, payload=payload, policy=PART_POLICY, partial=False)
    enforce_rules_part(patch)

    part, created = catalog_service.upsert_part(patch)
    return part.to_dict(), 201 if created else 200


@parts_bp.put("/<int:part_id>")
@require_auth
def update_part(part_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Part, payload=payload, policy=PART_POLICY, partial=True)
    enforce_rules_part(patch)
    return catalog_service.update_part(part_id, patch).to_dict()


@parts_bp.delete("/<int:part_id>")
@require_auth
@require_role("admin", "manager")
def delete_part(part_id: int):
    catalog_service.soft_delete_part(part_id)
    return {"message": "Part deleted successfully"}
