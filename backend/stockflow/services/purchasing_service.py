# Overview: Purchase order creation, receiving and cancellation.

"""
Purchase Order Service

LIFECYCLE:
1. OPEN: Created with its lines; no stock effect
2. RECEIVED: Every line credited to the branch's physical stock (exactly once)
3. CANCELLED: Abandoned before receiving

RECEIVING (one atomic unit):
- PO row is locked and must still be OPEN; a second receive is rejected
  without touching stock again
- per line: StockLevel(product, po.branch).quantity += line.quantity
- per line: Product.cost_cents = line.unit_cost_cents (last receipt wins,
  not a moving average)
- status = RECEIVED, received_date = now

IMMUTABLE: Once RECEIVED or CANCELLED the document cannot change.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderLine
from ..errors import InvalidStateTransition, NotFound, ValidationError
from .audit_service import append_audit_event
from .catalog_service import get_product_in_org, get_supplier_in_org
from .concurrency import lock_for_update, run_with_retry
from .stock_service import apply_stock_delta
from .tenant_service import Scope, require_branch_in_org
from stockflow.time_utils import utcnow

logger = logging.getLogger(__name__)

STATUS_OPEN = "OPEN"
STATUS_RECEIVING = "RECEIVING"
STATUS_RECEIVED = "RECEIVED"
STATUS_CANCELLED = "CANCELLED"

PO_STATUSES = {STATUS_OPEN, STATUS_RECEIVING, STATUS_RECEIVED, STATUS_CANCELLED}


def _validate_lines(items) -> list[tuple[int, int, int]]:
    if not items:
        raise ValidationError("items are required")

    parsed = []
    for item in items:
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        unit_cost_cents = item.get("unit_cost_cents")
        for field, value in (("product_id", product_id), ("quantity", quantity), ("unit_cost_cents", unit_cost_cents)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{field} must be an integer")
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")
        if unit_cost_cents < 0:
            raise ValidationError("Unit cost cannot be negative")
        parsed.append((product_id, quantity, unit_cost_cents))
    return parsed


def create_purchase_order(
    scope: Scope,
    *,
    supplier_id: int,
    items: list[dict],
    reference_number: str | None = None,
    note: str | None = None,
    expected_date: datetime | None = None,
) -> PurchaseOrder:
    """
    Create an OPEN purchase order for the scope's branch.

    items: [{"product_id": int, "quantity": int > 0, "unit_cost_cents": int >= 0}]
    """
    branch_id = scope.require_branch()
    lines = _validate_lines(items)

    def _op():
        supplier = get_supplier_in_org(scope.org_id, supplier_id)

        po = PurchaseOrder(
            org_id=scope.org_id,
            branch_id=branch_id,
            supplier_id=supplier.id,
            status=STATUS_OPEN,
            reference_number=(reference_number or "").strip() or None,
            note=(note or "").strip() or None,
            expected_date=expected_date,
        )
        total = 0
        for product_id, quantity, unit_cost_cents in lines:
            product = get_product_in_org(scope.org_id, product_id)
            line_cost = quantity * unit_cost_cents
            po.lines.append(PurchaseOrderLine(
                product_id=product.id,
                quantity=quantity,
                unit_cost_cents=unit_cost_cents,
                line_cost_cents=line_cost,
            ))
            total += line_cost
        po.total_cost_cents = total

        db.session.add(po)
        db.session.flush()

        append_audit_event(
            org_id=scope.org_id,
            branch_id=branch_id,
            event_type="purchase_order.created",
            entity_type="purchase_order",
            entity_id=po.id,
            payload={"supplier_id": supplier.id, "total_cost_cents": total, "lines": len(lines)},
        )

        db.session.commit()
        return po

    return run_with_retry(_op)


def get_purchase_order(scope: Scope, purchase_order_id: int, *, lock: bool = False) -> PurchaseOrder:
    """
    Org-scoped lookup; a PO of another org is reported as not found.

    A scope carrying a branch only sees that branch's purchase orders.
    """
    query = db.session.query(PurchaseOrder).filter_by(id=purchase_order_id, org_id=scope.org_id)
    if scope.branch_id is not None:
        query = query.filter_by(branch_id=scope.branch_id)
    if lock:
        query = lock_for_update(query)
    po = query.first()
    if po is None:
        raise NotFound(f"purchase order {purchase_order_id} not found")
    return po


def list_purchase_orders(scope: Scope, *, status: str | None = None, limit: int = 100) -> list[PurchaseOrder]:
    q = db.session.query(PurchaseOrder).filter(PurchaseOrder.org_id == scope.org_id)
    if scope.branch_id is not None:
        q = q.filter(PurchaseOrder.branch_id == scope.branch_id)
    if status:
        status = status.strip().upper()
        if status not in PO_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(sorted(PO_STATUSES))}")
        q = q.filter(PurchaseOrder.status == status)
    return q.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).limit(limit).all()


def receive_purchase_order(scope: Scope, purchase_order_id: int) -> PurchaseOrder:
    """
    Receive the whole purchase order into its branch.

    Raises:
        NotFound: unknown id within the org (or the scope's branch)
        InvalidStateTransition: PO is not OPEN (already RECEIVED, CANCELLED, ...)
        ScopeError: the PO's branch has been deactivated
    """
    def _op():
        po = get_purchase_order(scope, purchase_order_id, lock=True)

        if po.status != STATUS_OPEN:
            if po.status == STATUS_RECEIVED:
                logger.info("Rejected duplicate receive of purchase order %s", po.id)
            raise InvalidStateTransition(
                f"Cannot receive {po.status} purchase order. Only OPEN purchase orders can be received.",
                details={"purchase_order_id": po.id, "status": po.status},
            )
        # Stock lands at the PO's branch, which must still be open
        require_branch_in_org(po.branch_id, po.org_id)

        now = utcnow()
        for line in po.lines:
            level = apply_stock_delta(
                org_id=po.org_id,
                branch_id=po.branch_id,
                product_id=line.product_id,
                delta=line.quantity,
            )

            product = get_product_in_org(po.org_id, line.product_id, lock=True)
            previous_cost = product.cost_cents
            product.cost_cents = line.unit_cost_cents

            if previous_cost != line.unit_cost_cents:
                append_audit_event(
                    org_id=po.org_id,
                    branch_id=po.branch_id,
                    event_type="product.cost_updated",
                    entity_type="product",
                    entity_id=product.id,
                    occurred_at=now,
                    payload={
                        "purchase_order_id": po.id,
                        "previous_cost_cents": previous_cost,
                        "cost_cents": line.unit_cost_cents,
                    },
                )
            append_audit_event(
                org_id=po.org_id,
                branch_id=po.branch_id,
                event_type="stock.received",
                entity_type="stock_level",
                entity_id=level.id,
                occurred_at=now,
                payload={
                    "purchase_order_id": po.id,
                    "product_id": line.product_id,
                    "delta": line.quantity,
                    "quantity_after": level.quantity,
                },
            )

        po.status = STATUS_RECEIVED
        po.received_date = now
        db.session.flush()

        append_audit_event(
            org_id=po.org_id,
            branch_id=po.branch_id,
            event_type="purchase_order.received",
            entity_type="purchase_order",
            entity_id=po.id,
            occurred_at=now,
            note=f"Purchase order {po.id} received with {len(po.lines)} lines",
        )

        db.session.commit()
        return po

    return run_with_retry(_op)


def cancel_purchase_order(scope: Scope, purchase_order_id: int, reason: str | None = None) -> PurchaseOrder:
    def _op():
        po = get_purchase_order(scope, purchase_order_id, lock=True)

        if po.status == STATUS_RECEIVED:
            raise InvalidStateTransition("Cannot cancel RECEIVED purchase order. Adjust stock instead.")
        if po.status == STATUS_CANCELLED:
            raise InvalidStateTransition("Purchase order is already cancelled")

        po.status = STATUS_CANCELLED
        po.cancelled_at = utcnow()
        po.cancellation_reason = (reason or "").strip() or None
        db.session.flush()

        append_audit_event(
            org_id=po.org_id,
            branch_id=po.branch_id,
            event_type="purchase_order.cancelled",
            entity_type="purchase_order",
            entity_id=po.id,
            note=po.cancellation_reason,
        )

        db.session.commit()
        return po

    return run_with_retry(_op)
