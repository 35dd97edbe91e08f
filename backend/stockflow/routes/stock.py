# Overview: Flask API routes for stock levels and manual adjustments; parses input and returns JSON responses.

"""
Stock routes.

SCOPE: every route requires X-Org-Id and X-Branch-Id headers.

Quantities in responses:
- physical: on-hand units (StockLevel.quantity)
- allocated: units committed to open SALE orders
- available: physical - allocated (negative means oversold)
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StockflowError, ValidationError
from ..decorators import require_scope
from ..services import adjustment_service, allocation_service, catalog_service
from ..validation import get_int, get_str, get_datetime, coerce_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api")


@stock_bp.get("/stock-levels")
@require_scope
def list_stock_levels_route():
    """
    Stock positions for every active product at the branch.

    Query parameters:
    - product_id: restrict to one product (optional)
    """
    try:
        product_id = request.args.get("product_id")
        product_ids = [coerce_int("product_id", product_id)] if product_id else None
        positions = allocation_service.branch_positions(g.scope, product_ids)
        return jsonify({"stock_levels": positions})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock levels")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.patch("/stock-levels/<int:product_id>")
@require_scope
def patch_stock_level_route(product_id: int):
    """
    Update stock metadata (no quantity change, no movement record).

    Request body: {"bin_location": "A-01", "min_stock": 10}  (either or both)
    """
    payload = request.get_json(silent=True) or {}

    if "bin_location" not in payload and "min_stock" not in payload:
        return jsonify({"error": "no changes"}), 400

    try:
        changes = {}
        if "bin_location" in payload:
            changes["bin_location"] = get_str(payload, "bin_location", max_length=64)
        if "min_stock" in payload:
            changes["min_stock"] = get_int(payload, "min_stock")
        level = adjustment_service.update_stock_metadata(g.scope, product_id=product_id, **changes)
        return jsonify({"stock_level": level.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update stock level")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/stock/adjust")
@require_scope
def adjust_stock_route():
    """
    Manual stock movement.

    Request body:
    {
        "product_id": 1,          // required
        "quantity": 10,           // required, non-zero (SET: the counted quantity, >= 0)
        "type": "STOCK_IN",       // STOCK_IN | STOCK_OUT | ADJUSTMENT (default) | SET
        "note": "..."             // optional
    }

    Returns 201 with the stock level, the movement record and the position,
    or 200 with a null transaction when a SET count matches the stock.
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = adjustment_service.adjust_stock(
            g.scope,
            product_id=get_int(payload, "product_id"),
            quantity=get_int(payload, "quantity"),
            adjustment_type=get_str(payload, "type") or "ADJUSTMENT",
            note=get_str(payload, "note"),
        )
        return jsonify(result.to_dict()), 201 if result.changed else 200
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/stock/adjust/bulk")
@require_scope
def bulk_adjust_stock_route():
    """
    Apply many stock movements at once; each line succeeds or fails alone.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 4, "type": "SET"}, ...],
        "note": "Cycle count aisle 3"     // optional, applied to every line
    }

    Returns 200 with applied, unchanged and failed lines.
    """
    payload = request.get_json(silent=True) or {}

    try:
        raw = payload.get("items")
        if not isinstance(raw, list) or not raw:
            raise ValidationError("items must be a non-empty list")
        items = []
        for i, entry in enumerate(raw):
            if not isinstance(entry, dict):
                raise ValidationError(f"items[{i}] must be an object")
            items.append({
                "product_id": get_int(entry, "product_id"),
                "quantity": get_int(entry, "quantity"),
                "type": get_str(entry, "type", max_length=16),
            })
        result = adjustment_service.bulk_adjust_stock(g.scope, items, note=get_str(payload, "note"))
        return jsonify(result.to_dict())
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/stock/<int:product_id>/availability")
@require_scope
def availability_route(product_id: int):
    """
    Physical/allocated/available for one product.

    Query parameters:
    - all_branches: "true" to list every branch of the organization
    """
    try:
        catalog_service.get_product_in_org(g.scope.org_id, product_id)
        if request.args.get("all_branches", "").lower() == "true":
            return jsonify({
                "positions": allocation_service.product_positions_across_branches(g.scope, product_id)
            })
        return jsonify(allocation_service.stock_position(product_id, g.scope.branch_id))
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load stock availability")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/stock/low-stock")
@require_scope
def low_stock_route():
    try:
        return jsonify({"items": allocation_service.low_stock_positions(g.scope)})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/stock/out-of-stock")
@require_scope
def out_of_stock_route():
    try:
        return jsonify({"items": allocation_service.out_of_stock_positions(g.scope)})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list out-of-stock items")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/transactions")
@require_scope
def list_transactions_route():
    """
    Movement log for the branch, newest first.

    Query parameters:
    - type: SALE | STOCK_IN | STOCK_OUT | ADJUSTMENT | TRANSFER_OUT | TRANSFER_IN (optional)
    - product_id: only records touching this product (optional)
    - since: ISO-8601 lower bound on created_at (optional)
    - limit: maximum results (default 200, max 500)
    """
    try:
        product_id = request.args.get("product_id")
        limit = request.args.get("limit", 200, type=int)
        rows = adjustment_service.list_transactions(
            g.scope,
            transaction_type=request.args.get("type"),
            product_id=coerce_int("product_id", product_id) if product_id else None,
            since=get_datetime(request.args, "since"),
            limit=max(1, min(limit, 500)),
        )
        return jsonify({"transactions": [r.to_dict() for r in rows]})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500
