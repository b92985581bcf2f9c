# Overview: Flask API routes for suppliers and customers; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..models import Customer, Supplier
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload

PARTY_FIELDS = {"name", "email", "phone", "address", "gstin", "state"}

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields=PARTY_FIELDS | {"contact_person"},
    required_on_create={"name"},
)
CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=PARTY_FIELDS,
    required_on_create={"name"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")
customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _register(bp: Blueprint, model, policy: ModelValidationPolicy) -> None:
    """Same CRUD surface for both counterparty kinds."""

    @bp.get("")
    @require_auth
    def list_parties():
        include_deleted = request.args.get("include_deleted", "false").lower() == "true"
        if include_deleted and g.user_role != "admin":
            return {"error": "Permission denied"}, 403
        parties = catalog_service.list_parties(model, q=request.args.get("q"), include_deleted=include_deleted)
        return {"data": [p.to_dict() for p in parties]}

    @bp.get("/<int:party_id>")
    @require_auth
    def get_party(party_id: int):
        return catalog_service.get_party(model, party_id).to_dict()

    @bp.post("")
    @require_auth
    def create_party():
        payload = request.get_json(silent=True) or {}
        patch = validate_payload(model=model, payload=payload, policy=policy, partial=False)
        return catalog_service.create_party(model, patch).to_dict(), 201

    @bp.put("/<int:party_id>")
    @require_auth
    def update_party(party_id: int):
        payload = request.get_json(silent=True) or {}
        patch = validate_payload(model=model, payload=payload, policy=policy, partial=True)
        return catalog_service.update_party(model, party_id, patch).to_dict()

    @bp.delete("/<int:party_id>")
    @require_auth
    @require_role("admin", "manager")
    def delete_party(party_id: int):
        catalog_service.soft_delete_party(model, party_id)
        return {"message": f"{model.__name__} deleted successfully"}


_register(suppliers_bp, Supplier, SUPPLIER_POLICY)
_register(customers_bp, Customer, CUSTOMER_POLICY)
