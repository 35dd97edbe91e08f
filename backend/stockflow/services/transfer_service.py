# Overview: Inter-branch stock transfers: draft, send, receive and cancel.

"""
Stock Transfer Service

Moves stock between two branches of the same organization.

LIFECYCLE:
1. DRAFT: Created with its lines; editable; no stock effect
2. IN_TRANSIT: Sent; every line debited from the source branch
3. RECEIVED: Every line credited to the destination branch
4. CANCELLED: From DRAFT (nothing to undo) or IN_TRANSIT (source re-credited)

STOCK EFFECTS (each applied exactly once, under the transfer row lock):
- send:    StockLevel(product, from_branch).quantity -= line.quantity
           (rejected as a whole if any line would go negative)
- receive: StockLevel(product, to_branch).quantity += line.received_quantity
           (defaults to the sent quantity; a shortfall stays lost in transit)
- cancel while IN_TRANSIT: StockLevel(product, from_branch) += line.quantity

Each stock change also writes a TRANSFER_OUT / TRANSFER_IN movement record
at the branch it touched, so the movement log reconciles per branch.

SCOPE: A transfer belongs to the organization. A scope carrying a branch
only sees transfers touching that branch, may only send from the source
and may only receive at the destination.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..extensions import db
from ..models import StockTransfer, StockTransferLine
from ..errors import InvalidStateTransition, NotFound, ScopeError, ValidationError
from .adjustment_service import record_movement
from .audit_service import append_audit_event
from .catalog_service import get_product_in_org
from .concurrency import lock_for_update, run_with_retry
from .stock_service import apply_stock_delta
from .tenant_service import Scope, require_branch_in_org
from stockflow.time_utils import utcnow

logger = logging.getLogger(__name__)

TRANSFER_STATUS_DRAFT = "DRAFT"
TRANSFER_STATUS_IN_TRANSIT = "IN_TRANSIT"
TRANSFER_STATUS_RECEIVED = "RECEIVED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"

TRANSFER_STATUSES = (
    TRANSFER_STATUS_DRAFT,
    TRANSFER_STATUS_IN_TRANSIT,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_CANCELLED,
)


def _validate_lines(org_id: int, items) -> list[tuple[int, int]]:
    if not items:
        raise ValidationError("items are required")

    parsed = []
    seen = set()
    for item in items:
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        for name, value in (("product_id", product_id), ("quantity", quantity)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{name} must be an integer")
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")
        if product_id in seen:
            raise ValidationError(f"product {product_id} appears more than once")
        seen.add(product_id)
        parsed.append((get_product_in_org(org_id, product_id).id, quantity))
    return parsed


def create_transfer(
    scope: Scope,
    *,
    to_branch_id: int,
    items: list[dict],
    note: str | None = None,
) -> StockTransfer:
    """
    Create a DRAFT transfer from the scope's branch to to_branch_id.

    items: [{"product_id": int, "quantity": int > 0}], one line per product
    """
    from_branch_id = scope.require_branch()
    if isinstance(to_branch_id, bool) or not isinstance(to_branch_id, int):
        raise ValidationError("to_branch_id must be an integer")
    if to_branch_id == from_branch_id:
        raise ValidationError("Cannot transfer to the same branch")

    def _op():
        require_branch_in_org(to_branch_id, scope.org_id)
        lines = _validate_lines(scope.org_id, items)

        transfer = StockTransfer(
            org_id=scope.org_id,
            from_branch_id=from_branch_id,
            to_branch_id=to_branch_id,
            status=TRANSFER_STATUS_DRAFT,
            note=(note or "").strip() or None,
        )
        for product_id, quantity in lines:
            transfer.lines.append(StockTransferLine(product_id=product_id, quantity=quantity))

        db.session.add(transfer)
        db.session.flush()

        append_audit_event(
            org_id=scope.org_id,
            branch_id=from_branch_id,
            event_type="transfer.created",
            entity_type="stock_transfer",
            entity_id=transfer.id,
            payload={"to_branch_id": to_branch_id, "lines": len(lines)},
        )

        db.session.commit()
        return transfer

    return run_with_retry(_op)


def get_transfer(scope: Scope, transfer_id: int, *, lock: bool = False) -> StockTransfer:
    query = db.session.query(StockTransfer).filter_by(id=transfer_id, org_id=scope.org_id)
    if scope.branch_id is not None:
        query = query.filter(or_(
            StockTransfer.from_branch_id == scope.branch_id,
            StockTransfer.to_branch_id == scope.branch_id,
        ))
    if lock:
        query = lock_for_update(query)
    transfer = query.first()
    if transfer is None:
        raise NotFound(f"transfer {transfer_id} not found")
    return transfer


def list_transfers(scope: Scope, *, status: str | None = None, limit: int = 100) -> list[StockTransfer]:
    q = db.session.query(StockTransfer).filter(StockTransfer.org_id == scope.org_id)
    if scope.branch_id is not None:
        q = q.filter(or_(
            StockTransfer.from_branch_id == scope.branch_id,
            StockTransfer.to_branch_id == scope.branch_id,
        ))
    if status:
        status = status.strip().upper()
        if status not in TRANSFER_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(TRANSFER_STATUSES)}")
        q = q.filter(StockTransfer.status == status)
    return q.order_by(StockTransfer.created_at.desc(), StockTransfer.id.desc()).limit(limit).all()


def update_transfer(
    scope: Scope,
    transfer_id: int,
    *,
    items: list[dict] | None = None,
    note: str | None = None,
) -> StockTransfer:
    """Replace the lines and/or note of a DRAFT transfer."""
    def _op():
        transfer = get_transfer(scope, transfer_id, lock=True)
        if transfer.status != TRANSFER_STATUS_DRAFT:
            raise InvalidStateTransition(
                f"Cannot edit {transfer.status} transfer. Only DRAFT transfers can be edited.",
                details={"transfer_id": transfer.id, "status": transfer.status},
            )

        if items is not None:
            lines = _validate_lines(transfer.org_id, items)
            transfer.lines.clear()
            for product_id, quantity in lines:
                transfer.lines.append(StockTransferLine(product_id=product_id, quantity=quantity))
        if note is not None:
            transfer.note = note.strip() or None

        db.session.commit()
        return transfer

    return run_with_retry(_op)


def _transfer_note(transfer: StockTransfer, action: str) -> str:
    return (
        f"Transfer {transfer.transfer_number} {action} "
        f"(branch {transfer.from_branch_id} -> {transfer.to_branch_id})"
    )


def send_transfer(scope: Scope, transfer_id: int) -> StockTransfer:
    """
    Send a DRAFT transfer: debit the source branch and mark it IN_TRANSIT.

    Raises:
        NotFound: unknown id within the org / branch
        ScopeError: caller's branch is not the source, or a branch is inactive
        InvalidStateTransition: transfer is not DRAFT
        ValidationError: the source does not hold enough physical stock
    """
    def _op():
        transfer = get_transfer(scope, transfer_id, lock=True)
        if scope.branch_id is not None and scope.branch_id != transfer.from_branch_id:
            raise ScopeError("a transfer can only be sent from its source branch")
        if transfer.status != TRANSFER_STATUS_DRAFT:
            raise InvalidStateTransition(
                f"Cannot send {transfer.status} transfer. Only DRAFT transfers can be sent.",
                details={"transfer_id": transfer.id, "status": transfer.status},
            )
        require_branch_in_org(transfer.from_branch_id, transfer.org_id)
        require_branch_in_org(transfer.to_branch_id, transfer.org_id)

        now = utcnow()
        note = _transfer_note(transfer, "sent")
        for line in transfer.lines:
            apply_stock_delta(
                org_id=transfer.org_id,
                branch_id=transfer.from_branch_id,
                product_id=line.product_id,
                delta=-line.quantity,
            )
            record_movement(
                org_id=transfer.org_id,
                branch_id=transfer.from_branch_id,
                product=get_product_in_org(transfer.org_id, line.product_id),
                movement_type="TRANSFER_OUT",
                delta=-line.quantity,
                note=note,
                occurred_at=now,
            )

        transfer.status = TRANSFER_STATUS_IN_TRANSIT
        transfer.sent_at = now
        db.session.flush()

        append_audit_event(
            org_id=transfer.org_id,
            branch_id=transfer.from_branch_id,
            event_type="transfer.sent",
            entity_type="stock_transfer",
            entity_id=transfer.id,
            occurred_at=now,
            payload={"lines": [{"product_id": line.product_id, "quantity": line.quantity} for line in transfer.lines]},
        )

        db.session.commit()
        return transfer

    return run_with_retry(_op)


def _received_quantities(transfer: StockTransfer, received_items) -> dict[int, int]:
    """Map product_id -> received quantity; unlisted lines arrive in full."""
    received = {line.product_id: line.quantity for line in transfer.lines}
    for item in received_items or []:
        product_id = item.get("product_id")
        quantity = item.get("received_quantity")
        if product_id not in received:
            raise ValidationError(f"product {product_id} is not on this transfer")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("received_quantity must be an integer")
        if quantity < 0 or quantity > received[product_id]:
            raise ValidationError(
                f"received_quantity for product {product_id} must be between 0 and {received[product_id]}"
            )
        received[product_id] = quantity
    return received


def receive_transfer(scope: Scope, transfer_id: int, received_items=None) -> StockTransfer:
    """
    Receive an IN_TRANSIT transfer into the destination branch.

    received_items: optional [{"product_id": int, "received_quantity": int}]
    for lines that arrived short.
    """
    def _op():
        transfer = get_transfer(scope, transfer_id, lock=True)
        if scope.branch_id is not None and scope.branch_id != transfer.to_branch_id:
            raise ScopeError("a transfer can only be received at its destination branch")
        if transfer.status != TRANSFER_STATUS_IN_TRANSIT:
            raise InvalidStateTransition(
                f"Cannot receive {transfer.status} transfer. Only IN_TRANSIT transfers can be received.",
                details={"transfer_id": transfer.id, "status": transfer.status},
            )
        require_branch_in_org(transfer.to_branch_id, transfer.org_id)
        received = _received_quantities(transfer, received_items)

        now = utcnow()
        note = _transfer_note(transfer, "received")
        shortfall = []
        for line in transfer.lines:
            quantity = received[line.product_id]
            line.received_quantity = quantity
            if quantity < line.quantity:
                shortfall.append({"product_id": line.product_id, "missing": line.quantity - quantity})
            if quantity == 0:
                continue
            apply_stock_delta(
                org_id=transfer.org_id,
                branch_id=transfer.to_branch_id,
                product_id=line.product_id,
                delta=quantity,
            )
            record_movement(
                org_id=transfer.org_id,
                branch_id=transfer.to_branch_id,
                product=get_product_in_org(transfer.org_id, line.product_id),
                movement_type="TRANSFER_IN",
                delta=quantity,
                note=note,
                occurred_at=now,
            )

        transfer.status = TRANSFER_STATUS_RECEIVED
        transfer.received_at = now
        db.session.flush()

        if shortfall:
            logger.warning("Transfer %s received short: %s", transfer.id, shortfall)
        append_audit_event(
            org_id=transfer.org_id,
            branch_id=transfer.to_branch_id,
            event_type="transfer.received",
            entity_type="stock_transfer",
            entity_id=transfer.id,
            occurred_at=now,
            payload={
                "received": [{"product_id": pid, "quantity": qty} for pid, qty in received.items()],
                "shortfall": shortfall,
            },
        )

        db.session.commit()
        return transfer

    return run_with_retry(_op)


def cancel_transfer(scope: Scope, transfer_id: int, reason: str | None = None) -> StockTransfer:
    """Cancel a DRAFT or IN_TRANSIT transfer; goods in transit return to the source."""
    def _op():
        transfer = get_transfer(scope, transfer_id, lock=True)
        if transfer.status not in (TRANSFER_STATUS_DRAFT, TRANSFER_STATUS_IN_TRANSIT):
            raise InvalidStateTransition(
                f"Cannot cancel {transfer.status} transfer",
                details={"transfer_id": transfer.id, "status": transfer.status},
            )

        now = utcnow()
        was_in_transit = transfer.status == TRANSFER_STATUS_IN_TRANSIT
        if was_in_transit:
            require_branch_in_org(transfer.from_branch_id, transfer.org_id)
            note = _transfer_note(transfer, "cancelled in transit")
            for line in transfer.lines:
                apply_stock_delta(
                    org_id=transfer.org_id,
                    branch_id=transfer.from_branch_id,
                    product_id=line.product_id,
                    delta=line.quantity,
                )
                record_movement(
                    org_id=transfer.org_id,
                    branch_id=transfer.from_branch_id,
                    product=get_product_in_org(transfer.org_id, line.product_id),
                    movement_type="TRANSFER_IN",
                    delta=line.quantity,
                    note=note,
                    occurred_at=now,
                )

        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_at = now
        transfer.cancellation_reason = (reason or "").strip() or None
        db.session.flush()

        append_audit_event(
            org_id=transfer.org_id,
            branch_id=transfer.from_branch_id,
            event_type="transfer.cancelled",
            entity_type="stock_transfer",
            entity_id=transfer.id,
            occurred_at=now,
            note=transfer.cancellation_reason,
            payload={"restocked_source": was_in_transit},
        )

        db.session.commit()
        return transfer

    return run_with_retry(_op)
