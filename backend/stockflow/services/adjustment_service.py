# Overview: Manual stock movements (stock-in, stock-out, correction, count) and stock metadata.

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Order, OrderLine, Product, StockLevel
from ..errors import StockflowError, ValidationError
from .allocation_service import stock_position
from .audit_service import append_audit_event
from .catalog_service import get_product_in_org
from .concurrency import run_with_retry
from .stock_service import apply_stock_delta, ensure_stock_level
from .tenant_service import Scope
from stockflow.time_utils import utcnow

logger = logging.getLogger(__name__)

# SET replaces the physical quantity with a counted value; it is recorded
# as an ADJUSTMENT movement of the difference.
ADJUSTMENT_TYPES = ("STOCK_IN", "STOCK_OUT", "ADJUSTMENT", "SET")


@dataclass
class StockAdjustment:
    stock_level: StockLevel
    transaction: Order | None
    position: dict

    @property
    def changed(self) -> bool:
        return self.transaction is not None

    def to_dict(self) -> dict:
        return {
            "stock_level": self.stock_level.to_dict(),
            "transaction": self.transaction.to_dict() if self.transaction else None,
            "position": self.position,
        }


def _signed_delta(adjustment_type: str, quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")

    if adjustment_type == "STOCK_IN":
        if quantity <= 0:
            raise ValidationError("STOCK_IN quantity must be greater than zero")
        return quantity

    if adjustment_type == "SET":
        if quantity < 0:
            raise ValidationError("counted quantity cannot be negative")
        # Resolved against the locked row inside the unit of work
        return quantity

    if quantity == 0:
        raise ValidationError("quantity cannot be zero")

    if adjustment_type == "STOCK_OUT":
        # Accept either sign; a stock-out always removes units
        return -abs(quantity)

    return quantity


def record_movement(
    *,
    org_id: int,
    branch_id: int,
    product: Product,
    movement_type: str,
    delta: int,
    note: str | None = None,
    total_cents: int = 0,
    occurred_at=None,
) -> Order:
    """
    Append a movement record (an Order of movement_type, COMPLETED + DELIVERED).

    Movement records never carry a fulfillment lifecycle and are not part of
    allocation; they are the reconciliation trail read by list_transactions.
    """
    occurred_at = occurred_at or utcnow()
    movement = Order(
        org_id=org_id,
        branch_id=branch_id,
        type=movement_type,
        status="COMPLETED",
        fulfillment_status="DELIVERED",
        total_cents=total_cents,
        note=note,
        delivered_at=occurred_at,
    )
    movement.lines.append(OrderLine(
        product_id=product.id,
        sku=product.sku,
        name=product.name,
        quantity=delta,
        unit_price_cents=product.price_cents,
        unit_cost_cents=product.cost_cents,
        line_total_cents=0,
    ))
    db.session.add(movement)
    db.session.flush()
    return movement


def adjust_stock(
    scope: Scope,
    *,
    product_id: int,
    quantity: int,
    adjustment_type: str = "ADJUSTMENT",
    note: str | None = None,
) -> StockAdjustment:
    """
    Apply a manual physical-stock movement at the scope's branch.

    - STOCK_IN adds a positive quantity.
    - STOCK_OUT removes units (sign of quantity is ignored).
    - ADJUSTMENT applies quantity as a signed delta.
    - SET makes quantity the new physical count; the difference is recorded
      as an ADJUSTMENT. A count equal to the current quantity writes nothing.

    A movement that would take physical quantity below zero is rejected.
    Dropping available stock below zero (because of open orders) is allowed
    and reported through position["oversold"].

    Every applied movement appends a movement record and an audit event in
    the same transaction.
    """
    branch_id = scope.require_branch()
    adjustment_type = (adjustment_type or "ADJUSTMENT").strip().upper()
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError(
            f"Invalid type. Must be one of: {', '.join(ADJUSTMENT_TYPES)}"
        )
    delta = _signed_delta(adjustment_type, quantity)
    note = (note or "").strip() or None

    def _op():
        product = get_product_in_org(scope.org_id, product_id)

        movement_type = adjustment_type
        change = delta
        if adjustment_type == "SET":
            movement_type = "ADJUSTMENT"
            level = ensure_stock_level(org_id=scope.org_id, branch_id=branch_id, product_id=product.id)
            change = quantity - level.quantity
            if change == 0:
                db.session.commit()
                return StockAdjustment(
                    stock_level=level,
                    transaction=None,
                    position=stock_position(product.id, branch_id),
                )

        level = apply_stock_delta(
            org_id=scope.org_id,
            branch_id=branch_id,
            product_id=product.id,
            delta=change,
        )

        now = utcnow()
        movement = record_movement(
            org_id=scope.org_id,
            branch_id=branch_id,
            product=product,
            movement_type=movement_type,
            delta=change,
            note=note,
            total_cents=-(product.cost_cents * change) if movement_type == "STOCK_IN" else 0,
            occurred_at=now,
        )

        append_audit_event(
            org_id=scope.org_id,
            branch_id=branch_id,
            event_type="stock.adjusted",
            entity_type="stock_level",
            entity_id=level.id,
            occurred_at=now,
            note=note,
            payload={
                "type": adjustment_type,
                "product_id": product.id,
                "delta": change,
                "quantity_after": level.quantity,
                "transaction_id": movement.id,
            },
        )

        db.session.commit()

        position = stock_position(product.id, branch_id)
        if position["oversold"]:
            logger.warning(
                "Product %s oversold at branch %s after %s (available=%s)",
                product.id, branch_id, adjustment_type, position["available"],
            )
        return StockAdjustment(stock_level=level, transaction=movement, position=position)

    return run_with_retry(_op)


@dataclass
class BulkAdjustmentResult:
    applied: list[dict] = field(default_factory=list)
    unchanged: list[int] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "applied": self.applied,
            "applied_count": len(self.applied),
            "unchanged": self.unchanged,
            "failed": self.failed,
            "failed_count": len(self.failed),
        }


def bulk_adjust_stock(scope: Scope, items, *, note: str | None = None) -> BulkAdjustmentResult:
    """
    Apply many adjustments at the scope's branch, each as its own unit.

    items: [{"product_id": int, "quantity": int, "type": STOCK_IN | STOCK_OUT | ADJUSTMENT | SET}]

    A rejected line (unknown product, negative result, bad input) is reported
    in failed and never blocks the remaining lines.
    """
    scope.require_branch()
    if not items:
        raise ValidationError("items are required")

    result = BulkAdjustmentResult()
    for index, item in enumerate(items):
        product_id = item.get("product_id")
        try:
            adjustment = adjust_stock(
                scope,
                product_id=product_id,
                quantity=item.get("quantity"),
                adjustment_type=item.get("type") or "ADJUSTMENT",
                note=note,
            )
        except StockflowError as e:
            result.failed.append({"index": index, "product_id": product_id, "error": e.message})
        except (OperationalError, StaleDataError):
            logger.warning("Bulk adjustment of product %s hit a concurrent update", product_id)
            result.failed.append({
                "index": index,
                "product_id": product_id,
                "error": "stock was modified concurrently; retry",
            })
        else:
            if adjustment.changed:
                result.applied.append({
                    "product_id": product_id,
                    "delta": adjustment.transaction.lines[0].quantity,
                    "quantity_after": adjustment.stock_level.quantity,
                    "transaction_id": adjustment.transaction.id,
                })
            else:
                result.unchanged.append(product_id)

    if result.failed:
        logger.info(
            "Bulk adjustment: %s applied, %s unchanged, %s failed",
            len(result.applied), len(result.unchanged), len(result.failed),
        )
    return result


_UNSET = object()


def update_stock_metadata(
    scope: Scope,
    *,
    product_id: int,
    bin_location=_UNSET,
    min_stock=_UNSET,
) -> StockLevel:
    """
    Metadata only: no quantity change, no movement record, no audit entry.

    The StockLevel row is created lazily (quantity 0) if the pair has none.
    """
    branch_id = scope.require_branch()
    if min_stock is not _UNSET:
        if isinstance(min_stock, bool) or not isinstance(min_stock, int) or min_stock < 0:
            raise ValidationError("min_stock must be a non-negative integer")

    def _op():
        product = get_product_in_org(scope.org_id, product_id)
        level = ensure_stock_level(org_id=scope.org_id, branch_id=branch_id, product_id=product.id)
        if bin_location is not _UNSET:
            level.bin_location = (bin_location or "").strip() or None
        if min_stock is not _UNSET:
            level.min_stock = min_stock
        db.session.commit()
        return level

    return run_with_retry(_op)


def update_bin_location(scope: Scope, *, product_id: int, bin_location: str | None) -> StockLevel:
    return update_stock_metadata(scope, product_id=product_id, bin_location=bin_location)


def update_min_stock(scope: Scope, *, product_id: int, min_stock: int) -> StockLevel:
    return update_stock_metadata(scope, product_id=product_id, min_stock=min_stock)


def list_transactions(
    scope: Scope,
    *,
    transaction_type: str | None = None,
    product_id: int | None = None,
    since=None,
    limit: int = 200,
) -> list[Order]:
    """Movement log of the branch (sales and manual movements), newest first."""
    branch_id = scope.require_branch()
    q = db.session.query(Order).filter(
        Order.org_id == scope.org_id,
        Order.branch_id == branch_id,
    )
    if transaction_type:
        q = q.filter(Order.type == transaction_type.strip().upper())
    if product_id is not None:
        q = q.filter(Order.lines.any(OrderLine.product_id == product_id))
    if since is not None:
        q = q.filter(Order.created_at >= since)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
