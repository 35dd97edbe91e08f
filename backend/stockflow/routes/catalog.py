# Overview: Flask API routes for products, suppliers and customers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StockflowError
from ..decorators import require_scope
from ..services import catalog_service
from ..validation import get_int, get_str


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.get("/products")
@require_scope(branch=False)
def list_products_route():
    include_inactive = request.args.get("include_inactive", "").lower() == "true"
    try:
        products = catalog_service.list_products(g.scope.org_id, include_inactive=include_inactive)
        return jsonify({"products": [p.to_dict() for p in products]})
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/products")
@require_scope(branch=False)
def create_product_route():
    """
    Create a product in the organization.

    Request body:
    {
        "sku": "SKU-001",        // required, unique per organization
        "name": "Widget",        // required
        "price_cents": 1000,     // optional (default 0)
        "cost_cents": 400,       // optional (default 0)
        "category": "...",       // optional
        "image_url": "..."       // optional
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        product = catalog_service.create_product(
            org_id=g.scope.org_id,
            sku=get_str(payload, "sku", required=True, max_length=64),
            name=get_str(payload, "name", required=True),
            price_cents=get_int(payload, "price_cents", required=False, default=0),
            cost_cents=get_int(payload, "cost_cents", required=False, default=0),
            category=get_str(payload, "category", max_length=128),
            image_url=get_str(payload, "image_url", max_length=512),
        )
        return jsonify({"product": product.to_dict()}), 201
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/suppliers")
@require_scope(branch=False)
def list_suppliers_route():
    try:
        suppliers = catalog_service.list_suppliers(g.scope.org_id)
        return jsonify({"suppliers": [s.to_dict() for s in suppliers]})
    except Exception:
        current_app.logger.exception("Failed to list suppliers")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/suppliers")
@require_scope(branch=False)
def create_supplier_route():
    payload = request.get_json(silent=True) or {}

    try:
        supplier = catalog_service.create_supplier(
            org_id=g.scope.org_id,
            name=get_str(payload, "name", required=True),
            contact_name=get_str(payload, "contact_name"),
            phone=get_str(payload, "phone", max_length=64),
            email=get_str(payload, "email"),
        )
        return jsonify({"supplier": supplier.to_dict()}), 201
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/customers")
@require_scope(branch=False)
def list_customers_route():
    try:
        customers = catalog_service.list_customers(g.scope.org_id)
        return jsonify({"customers": [c.to_dict() for c in customers]})
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/customers")
@require_scope(branch=False)
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        customer = catalog_service.create_customer(
            org_id=g.scope.org_id,
            name=get_str(payload, "name", required=True),
            phone=get_str(payload, "phone", max_length=64),
            email=get_str(payload, "email"),
        )
        return jsonify({"customer": customer.to_dict()}), 201
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500
