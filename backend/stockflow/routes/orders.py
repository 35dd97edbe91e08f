# Overview: Flask API routes for checkout and sales order fulfillment; parses input and returns JSON responses.

"""
Order Routes

SCOPE: every route requires X-Org-Id and X-Branch-Id headers. Orders of
another branch or organization are reported as not found.

Fulfillment changes go through fulfillment_service; this module only parses
input and maps domain errors to status codes:
- ValidationError -> 400
- NotFound -> 404
- InvalidStateTransition -> 409
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StockflowError
from ..decorators import require_scope
from ..services import checkout_service, fulfillment_service
from ..validation import get_int, get_bool, get_str, get_items


orders_bp = Blueprint("orders", __name__, url_prefix="/api")


@orders_bp.get("/orders")
@require_scope
def list_orders_route():
    """
    List SALE orders of the branch, newest first.

    Query parameters:
    - fulfillment_status: filter (optional)
    - limit: maximum results (default 100, max 500)
    """
    try:
        limit = request.args.get("limit", 100, type=int)
        orders = fulfillment_service.list_orders(
            g.scope,
            fulfillment_status=request.args.get("fulfillment_status"),
            limit=max(1, min(limit, 500)),
        )
        return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/orders/<int:order_id>")
@require_scope
def get_order_route(order_id: int):
    try:
        order = fulfillment_service.get_order(g.scope, order_id)
        return jsonify({"order": order.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/orders/<int:order_id>/timeline")
@require_scope
def order_timeline_route(order_id: int):
    try:
        return jsonify({"events": fulfillment_service.order_timeline(g.scope, order_id)})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order timeline")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/checkout")
@require_scope
def checkout_route():
    """
    Check out a cart into a SALE order.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2}],   // required, non-empty
        "payment_method": "CASH",                      // optional (default CASH)
        "auto_deliver": false,                         // optional
        "customer_id": 3,                              // optional
        "reference_id": "WEB-1001",                    // optional
        "note": "..."                                  // optional
    }

    Returns 201 with the order and any oversold positions it produced.
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = checkout_service.checkout(
            g.scope,
            items=get_items(payload, "items", ("product_id", "quantity")),
            payment_method=get_str(payload, "payment_method", max_length=32),
            auto_deliver=get_bool(payload, "auto_deliver"),
            customer_id=get_int(payload, "customer_id", required=False),
            reference_id=get_str(payload, "reference_id", max_length=64),
            note=get_str(payload, "note", max_length=255),
        )
        return jsonify(result.to_dict()), 201
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check out order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/orders/<int:order_id>/fulfillment")
@require_scope
def transition_fulfillment_route(order_id: int):
    """
    Move an order one step forward.

    Request body:
    {
        "status": "SHIPPED",          // required
        "carrier": "DHL",             // required when shipping
        "tracking_number": "TRK-1"    // required when shipping
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        order = fulfillment_service.transition_fulfillment(
            g.scope,
            order_id,
            get_str(payload, "status", required=True, max_length=32),
            carrier=get_str(payload, "carrier", max_length=64),
            tracking_number=get_str(payload, "tracking_number", max_length=128),
        )
        return jsonify({"order": order.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order fulfillment")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/orders/bulk-status")
@require_scope
def bulk_status_route():
    """
    Apply one transition to many orders; each succeeds or fails on its own.

    Request body: {"ids": [1, 2, 3], "status": "PICKED"}
    """
    payload = request.get_json(silent=True) or {}
    ids = payload.get("ids")
    if not isinstance(ids, list):
        return jsonify({"error": "ids must be a list"}), 400

    try:
        result = fulfillment_service.bulk_transition(
            g.scope, ids, get_str(payload, "status", required=True, max_length=32)
        )
        return jsonify(result.to_dict())
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk update orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/orders/<int:order_id>/cancel")
@require_scope
def cancel_order_route(order_id: int):
    """
    Cancel or return an order.

    Request body: {"reason": "customer request", "restock": true}
    """
    payload = request.get_json(silent=True) or {}

    try:
        order = fulfillment_service.cancel_order(
            g.scope,
            order_id,
            reason=get_str(payload, "reason", required=True, max_length=255),
            restock=get_bool(payload, "restock"),
        )
        return jsonify({"order": order.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/orders/scan")
@require_scope
def scan_route():
    """
    Scan-to-complete: tracking number, order id or external reference.

    Request body: {"code": "TRK-1"}
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = fulfillment_service.scan_to_complete(
            g.scope, get_str(payload, "code", required=True, max_length=128)
        )
        return jsonify(result.to_dict())
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete scanned order")
        return jsonify({"error": "Internal server error"}), 500
