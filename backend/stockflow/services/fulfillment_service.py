# Overview: Sales order fulfillment lifecycle: transitions, bulk updates, cancel/return, scan-to-complete.

"""
Fulfillment State Machine

    PENDING -> PICKED -> PACKED -> SHIPPED -> DELIVERED
       |                              |           |
       +--> CANCELLED                 +-----------+--> CANCELLED / RETURNED

- Forward moves are one step at a time; nothing ever moves back.
- PACKED -> SHIPPED needs a non-empty carrier and tracking number.
- CANCELLED / RETURNED are reached only through cancel_order (reason
  required) and are terminal.
- The exit label reflects whether goods left the branch: RETURNED when the
  order had reached SHIPPED or DELIVERED, CANCELLED otherwise.

STOCK EFFECTS:
- No transition writes stock except a restocking return. Allocation is a
  pure function of fulfillment_status (see allocation_service), so moving an
  order out of PENDING/PICKED/PACKED/SHIPPED releases it implicitly.
- Delivering does NOT decrement physical stock. Physical stock for goods
  that left is reconciled through STOCK_OUT adjustments.
- restock=True credits physical stock only for RETURNED orders (goods came
  back). A never-shipped order was never deducted, so crediting it would
  double count; its restock request is recorded but has no stock effect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Order
from ..errors import InvalidStateTransition, NotFound, StockflowError, ValidationError
from .audit_service import append_audit_event, list_entity_events
from .concurrency import lock_for_update, run_with_retry
from .stock_service import apply_stock_delta
from .tenant_service import Scope
from stockflow.time_utils import utcnow

logger = logging.getLogger(__name__)

PENDING = "PENDING"
PICKED = "PICKED"
PACKED = "PACKED"
SHIPPED = "SHIPPED"
DELIVERED = "DELIVERED"
CANCELLED = "CANCELLED"
RETURNED = "RETURNED"

FULFILLMENT_STATUSES = (PENDING, PICKED, PACKED, SHIPPED, DELIVERED, CANCELLED, RETURNED)
EXIT_STATUSES = frozenset({CANCELLED, RETURNED})

ALLOWED_TRANSITIONS = {
    PENDING: frozenset({PICKED, CANCELLED}),
    PICKED: frozenset({PACKED}),
    PACKED: frozenset({SHIPPED}),
    SHIPPED: frozenset({DELIVERED, CANCELLED, RETURNED}),
    DELIVERED: frozenset({CANCELLED, RETURNED}),
    CANCELLED: frozenset(),
    RETURNED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def _normalize_status(status) -> str:
    status = (status or "").strip().upper() if isinstance(status, str) else ""
    if not status:
        raise ValidationError("status is required")
    if status not in FULFILLMENT_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(FULFILLMENT_STATUSES)}"
        )
    return status


def get_order(scope: Scope, order_id: int, *, lock: bool = False) -> Order:
    """Order lookup within the scope's org and branch."""
    branch_id = scope.require_branch()
    query = db.session.query(Order).filter_by(id=order_id, org_id=scope.org_id, branch_id=branch_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFound(f"order {order_id} not found")
    return order


def _require_sale(order: Order) -> None:
    if order.type != "SALE":
        raise InvalidStateTransition(
            f"{order.type} records have no fulfillment lifecycle",
            details={"order_id": order.id, "type": order.type},
        )


def _check_forward_transition(order: Order, target: str) -> None:
    _require_sale(order)
    current = order.fulfillment_status
    if current in EXIT_STATUSES:
        raise InvalidStateTransition(
            f"Order is {current}; no further transitions are permitted",
            details={"order_id": order.id, "from": current, "to": target},
        )
    if target in EXIT_STATUSES:
        raise InvalidStateTransition(
            f"{target} is reached only through cancellation with a reason",
            details={"order_id": order.id, "from": current, "to": target},
        )
    if not can_transition(current, target):
        raise InvalidStateTransition(
            f"Cannot move order from {current} to {target}",
            details={"order_id": order.id, "from": current, "to": target},
        )


def _apply_forward_transition(
    order: Order,
    target: str,
    *,
    carrier: str | None = None,
    tracking_number: str | None = None,
    source: str = "manual",
) -> Order:
    _check_forward_transition(order, target)

    carrier = (carrier or "").strip()
    tracking_number = (tracking_number or "").strip()
    if target == SHIPPED and (not carrier or not tracking_number):
        raise ValidationError("carrier and tracking_number are required to ship an order")

    now = utcnow()
    previous = order.fulfillment_status
    if carrier:
        order.carrier = carrier
    if tracking_number:
        order.tracking_number = tracking_number
    if target == SHIPPED:
        order.shipped_at = now
    if target == DELIVERED:
        order.delivered_at = now
    order.fulfillment_status = target
    db.session.flush()

    append_audit_event(
        org_id=order.org_id,
        branch_id=order.branch_id,
        event_type="order.fulfillment_changed",
        entity_type="order",
        entity_id=order.id,
        occurred_at=now,
        payload={"from": previous, "to": target, "source": source},
    )
    return order


def transition_fulfillment(
    scope: Scope,
    order_id: int,
    status: str,
    *,
    carrier: str | None = None,
    tracking_number: str | None = None,
) -> Order:
    """Move one SALE order one step forward along the fulfillment graph."""
    target = _normalize_status(status)

    def _op():
        order = get_order(scope, order_id, lock=True)
        _apply_forward_transition(
            order, target, carrier=carrier, tracking_number=tracking_number
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


@dataclass
class BulkTransitionResult:
    status: str
    updated: list[int] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "updated": self.updated,
            "updated_count": len(self.updated),
            "failed": self.failed,
            "failed_count": len(self.failed),
        }


def bulk_transition(scope: Scope, order_ids, status: str) -> BulkTransitionResult:
    """
    Apply the single-order transition rule to each id independently.

    Each order commits (or rolls back) on its own; one failure never blocks
    the others. Duplicate ids are processed once.
    """
    target = _normalize_status(status)
    if not order_ids:
        raise ValidationError("ids are required")
    scope.require_branch()

    result = BulkTransitionResult(status=target)
    seen = set()
    for raw_id in order_ids:
        if raw_id in seen:
            continue
        seen.add(raw_id)

        if isinstance(raw_id, bool) or not isinstance(raw_id, int):
            result.failed.append({"id": raw_id, "error": "id must be an integer"})
            continue
        try:
            transition_fulfillment(scope, raw_id, target)
        except StockflowError as e:
            result.failed.append({"id": raw_id, "error": e.message})
        except (OperationalError, StaleDataError):
            # Retries exhausted; the order is left as it was
            logger.warning("Bulk transition of order %s to %s hit a concurrent update", raw_id, target)
            result.failed.append({"id": raw_id, "error": "order was modified concurrently; retry"})
        else:
            result.updated.append(raw_id)

    if result.failed:
        logger.info(
            "Bulk transition to %s: %s updated, %s failed",
            target, len(result.updated), len(result.failed),
        )
    return result


def cancel_order(scope: Scope, order_id: int, *, reason: str, restock: bool = False) -> Order:
    """
    Cancel (never shipped) or return (shipped/delivered) a SALE order.

    - fulfillment_status -> CANCELLED or RETURNED
    - status -> REFUNDED when it was COMPLETED (already paid), else CANCELLED
    - cancellation_reason recorded
    - restock credits physical stock for returned goods only
    """
    reason = (reason or "").strip() if isinstance(reason, str) else ""
    if not reason:
        raise ValidationError("reason is required")
    if not isinstance(restock, bool):
        raise ValidationError("restock must be a boolean")

    def _op():
        order = get_order(scope, order_id, lock=True)
        _require_sale(order)

        current = order.fulfillment_status
        if current in EXIT_STATUSES:
            raise InvalidStateTransition(
                f"Order is already {current}",
                details={"order_id": order.id, "from": current},
            )

        goods_left_branch = current in (SHIPPED, DELIVERED)
        target = RETURNED if goods_left_branch else CANCELLED
        if not can_transition(current, target):
            raise InvalidStateTransition(
                f"Cannot cancel order in {current} status",
                details={"order_id": order.id, "from": current, "to": target},
            )

        now = utcnow()
        order.fulfillment_status = target
        order.status = "REFUNDED" if order.status == "COMPLETED" else "CANCELLED"
        order.cancellation_reason = reason
        order.cancelled_at = now

        restocked_lines = []
        if restock and goods_left_branch:
            for line in order.lines:
                level = apply_stock_delta(
                    org_id=order.org_id,
                    branch_id=order.branch_id,
                    product_id=line.product_id,
                    delta=line.quantity,
                )
                restocked_lines.append({
                    "product_id": line.product_id,
                    "delta": line.quantity,
                    "quantity_after": level.quantity,
                })
            order.restocked = True
        elif restock:
            logger.info(
                "Order %s cancelled before shipping; restock has no physical effect", order.id
            )
        db.session.flush()

        append_audit_event(
            org_id=order.org_id,
            branch_id=order.branch_id,
            event_type="order.cancelled",
            entity_type="order",
            entity_id=order.id,
            occurred_at=now,
            note=reason,
            payload={
                "from": current,
                "to": target,
                "status": order.status,
                "restock_requested": restock,
            },
        )
        if restocked_lines:
            append_audit_event(
                org_id=order.org_id,
                branch_id=order.branch_id,
                event_type="order.restocked",
                entity_type="order",
                entity_id=order.id,
                occurred_at=now,
                payload={"lines": restocked_lines},
            )

        db.session.commit()
        return order

    return run_with_retry(_op)


@dataclass
class ScanResult:
    result: str  # "completed" | "already_completed"
    order: Order
    matched_on: str

    def to_dict(self) -> dict:
        return {"result": self.result, "matched_on": self.matched_on, "order": self.order.to_dict()}


# Largest value a 64-bit integer column can bind
MAX_ORDER_ID = 2**63 - 1


def _looks_like_order_id(scanned: str) -> bool:
    """ASCII digits that fit an integer primary key; anything else is matched as a reference."""
    return scanned.isascii() and scanned.isdigit() and int(scanned) <= MAX_ORDER_ID


def find_order_by_scan(scope: Scope, scanned: str) -> tuple[Order, str] | None:
    """Match tracking number, then order id, then external reference id."""
    branch_id = scope.require_branch()
    base = db.session.query(Order).filter(
        Order.org_id == scope.org_id,
        Order.branch_id == branch_id,
        Order.type == "SALE",
    )

    order = base.filter(Order.tracking_number == scanned).order_by(Order.id.desc()).first()
    if order is not None:
        return order, "tracking_number"

    if _looks_like_order_id(scanned):
        order = base.filter(Order.id == int(scanned)).first()
        if order is not None:
            return order, "order_id"

    order = base.filter(Order.reference_id == scanned).order_by(Order.id.desc()).first()
    if order is not None:
        return order, "reference_id"
    return None


def scan_to_complete(scope: Scope, scanned: str) -> ScanResult:
    """
    Complete (DELIVERED) the order matching a scanned code.

    - no match -> NotFound, no mutation
    - already DELIVERED -> result "already_completed", no mutation
    - otherwise the normal transition rule to DELIVERED applies
    """
    scanned = (scanned or "").strip() if isinstance(scanned, str) else ""
    if not scanned:
        raise ValidationError("scanned code is required")

    def _op():
        match = find_order_by_scan(scope, scanned)
        if match is None:
            raise NotFound(f"no order matches {scanned!r}")
        order, matched_on = match

        if order.fulfillment_status == DELIVERED:
            return ScanResult(result="already_completed", order=order, matched_on=matched_on)

        order = get_order(scope, order.id, lock=True)
        _apply_forward_transition(order, DELIVERED, source="scan")
        db.session.commit()
        return ScanResult(result="completed", order=order, matched_on=matched_on)

    return run_with_retry(_op)


def list_orders(scope: Scope, *, fulfillment_status: str | None = None, limit: int = 100) -> list[Order]:
    branch_id = scope.require_branch()
    q = db.session.query(Order).filter(
        Order.org_id == scope.org_id,
        Order.branch_id == branch_id,
        Order.type == "SALE",
    )
    if fulfillment_status:
        q = q.filter(Order.fulfillment_status == _normalize_status(fulfillment_status))
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def order_timeline(scope: Scope, order_id: int) -> list[dict]:
    order = get_order(scope, order_id)
    return [ev.to_dict() for ev in list_entity_events(
        org_id=order.org_id, entity_type="order", entity_id=order.id
    )]
