# Overview: Flask API routes for purchase order operations; parses input and returns JSON responses.

"""
Purchase Order Routes

SCOPE: X-Org-Id is always required. X-Branch-Id is required to create a
purchase order (it is received into that branch). When given on any other
route it restricts access to that branch's purchase orders; without it the
routes work across the whole organization.

Lifecycle: OPEN -> RECEIVED (stock credited exactly once) or OPEN -> CANCELLED.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StockflowError
from ..decorators import require_scope
from ..services import purchasing_service
from ..validation import get_int, get_str, get_datetime, get_items


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_scope(branch=False)
def list_purchase_orders_route():
    """
    List purchase orders, newest first.

    Query parameters:
    - status: OPEN | RECEIVING | RECEIVED | CANCELLED (optional)
    - limit: maximum results (default 100, max 500)
    """
    try:
        limit = request.args.get("limit", 100, type=int)
        pos = purchasing_service.list_purchase_orders(
            g.scope,
            status=request.args.get("status"),
            limit=max(1, min(limit, 500)),
        )
        return jsonify({"items": [po.to_dict() for po in pos], "count": len(pos)})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list purchase orders")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("")
@require_scope
def create_purchase_order_route():
    """
    Create an OPEN purchase order for the branch.

    Request body:
    {
        "supplier_id": 1,                                              // required
        "items": [{"product_id": 1, "quantity": 20, "unit_cost_cents": 450}],
        "reference_number": "PO-2024-001",                             // optional
        "expected_date": "2024-06-01T00:00:00Z",                       // optional
        "note": "..."                                                  // optional
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        po = purchasing_service.create_purchase_order(
            g.scope,
            supplier_id=get_int(payload, "supplier_id"),
            items=get_items(payload, "items", ("product_id", "quantity", "unit_cost_cents")),
            reference_number=get_str(payload, "reference_number", max_length=64),
            note=get_str(payload, "note", max_length=255),
            expected_date=get_datetime(payload, "expected_date"),
        )
        return jsonify({"purchase_order": po.to_dict()}), 201
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("/<int:purchase_order_id>")
@require_scope(branch=False)
def get_purchase_order_route(purchase_order_id: int):
    try:
        po = purchasing_service.get_purchase_order(g.scope, purchase_order_id)
        return jsonify({"purchase_order": po.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:purchase_order_id>/receive")
@require_scope(branch=False)
def receive_purchase_order_route(purchase_order_id: int):
    """
    Receive every line into the purchase order's branch.

    Returns 409 when the purchase order is not OPEN (already received or cancelled).
    """
    try:
        po = purchasing_service.receive_purchase_order(g.scope, purchase_order_id)
        return jsonify({"purchase_order": po.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:purchase_order_id>/cancel")
@require_scope(branch=False)
def cancel_purchase_order_route(purchase_order_id: int):
    """Cancel an OPEN purchase order. Request body: {"reason": "..."} (optional)."""
    payload = request.get_json(silent=True) or {}

    try:
        po = purchasing_service.cancel_purchase_order(
            g.scope, purchase_order_id, reason=get_str(payload, "reason", max_length=255)
        )
        return jsonify({"purchase_order": po.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel purchase order")
        return jsonify({"error": "Internal server error"}), 500
