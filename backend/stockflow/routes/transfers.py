# Overview: Flask API routes for inter-branch stock transfers; parses input and returns JSON responses.

"""
Stock Transfer Routes

SCOPE: X-Org-Id is always required. X-Branch-Id is required to create a
transfer (it is sent from that branch). On other routes it restricts access
to transfers touching that branch; send must come from the source branch and
receive from the destination branch.

Lifecycle: DRAFT -> IN_TRANSIT (source debited) -> RECEIVED (destination
credited); DRAFT or IN_TRANSIT -> CANCELLED.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StockflowError
from ..decorators import require_scope
from ..services import transfer_service
from ..validation import get_int, get_str, get_items


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.get("")
@require_scope(branch=False)
def list_transfers_route():
    """
    List transfers, newest first.

    Query parameters:
    - status: DRAFT | IN_TRANSIT | RECEIVED | CANCELLED (optional)
    - limit: maximum results (default 100, max 500)
    """
    try:
        limit = request.args.get("limit", 100, type=int)
        transfers = transfer_service.list_transfers(
            g.scope,
            status=request.args.get("status"),
            limit=max(1, min(limit, 500)),
        )
        return jsonify({"items": [t.to_dict() for t in transfers], "count": len(transfers)})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.post("")
@require_scope
def create_transfer_route():
    """
    Create a DRAFT transfer out of the branch.

    Request body:
    {
        "to_branch_id": 2,                                   // required
        "items": [{"product_id": 1, "quantity": 5}],         // required
        "note": "..."                                        // optional
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.create_transfer(
            g.scope,
            to_branch_id=get_int(payload, "to_branch_id"),
            items=get_items(payload, "items", ("product_id", "quantity")),
            note=get_str(payload, "note", max_length=255),
        )
        return jsonify({"transfer": transfer.to_dict()}), 201
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.get("/<int:transfer_id>")
@require_scope(branch=False)
def get_transfer_route(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(g.scope, transfer_id)
        return jsonify({"transfer": transfer.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.patch("/<int:transfer_id>")
@require_scope(branch=False)
def update_transfer_route(transfer_id: int):
    """Replace the items and/or note of a DRAFT transfer."""
    payload = request.get_json(silent=True) or {}

    if "items" not in payload and "note" not in payload:
        return jsonify({"error": "no changes"}), 400

    try:
        transfer = transfer_service.update_transfer(
            g.scope,
            transfer_id,
            items=get_items(payload, "items", ("product_id", "quantity")) if "items" in payload else None,
            note=(get_str(payload, "note", max_length=255) or "") if "note" in payload else None,
        )
        return jsonify({"transfer": transfer.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.post("/<int:transfer_id>/send")
@require_scope(branch=False)
def send_transfer_route(transfer_id: int):
    """
    Debit the source branch and mark the transfer IN_TRANSIT.

    Returns 400 when the source lacks stock, 409 when the transfer is not DRAFT.
    """
    try:
        transfer = transfer_service.send_transfer(g.scope, transfer_id)
        return jsonify({"transfer": transfer.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.post("/<int:transfer_id>/receive")
@require_scope(branch=False)
def receive_transfer_route(transfer_id: int):
    """
    Credit the destination branch and mark the transfer RECEIVED.

    Request body (optional, for lines that arrived short):
    {"items": [{"product_id": 1, "received_quantity": 3}]}
    """
    payload = request.get_json(silent=True) or {}

    try:
        received = None
        if "items" in payload:
            received = get_items(payload, "items", ("product_id", "received_quantity"))
        transfer = transfer_service.receive_transfer(g.scope, transfer_id, received)
        return jsonify({"transfer": transfer.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.post("/<int:transfer_id>/cancel")
@require_scope(branch=False)
def cancel_transfer_route(transfer_id: int):
    """Cancel a DRAFT or IN_TRANSIT transfer. Request body: {"reason": "..."} (optional)."""
    payload = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.cancel_transfer(
            g.scope,
            transfer_id,
            reason=get_str(payload, "reason", max_length=255),
        )
        return jsonify({"transfer": transfer.to_dict()})
    except StockflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel transfer")
        return jsonify({"error": "Internal server error"}), 500
