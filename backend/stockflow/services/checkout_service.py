# Overview: Checkout of a cart into a SALE order, plus the in-memory register session.

"""
Checkout Service

checkout() turns a cart into a SALE order:
- status = COMPLETED (paid at the counter)
- fulfillment_status = DELIVERED when auto_deliver, else PENDING
- total = SUM(current product price * quantity)
- every line snapshots the product's current cost for profit reporting

Checkout never writes stock. A PENDING order is counted as allocated by
allocation_service until it leaves the active fulfillment states. Overselling
is detected (reported in the result and logged), not prevented.

CheckoutSession is the unpersisted register state: the cart being built, the
selected customer, and the queue of held (parked) carts keyed by the time they
were parked. Holding or resuming never touches stock or creates an order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..extensions import db
from ..models import Order, OrderLine
from ..errors import NotFound, ValidationError
from .allocation_service import oversold_positions
from .audit_service import append_audit_event
from .catalog_service import get_customer_in_org, get_product_in_org
from .concurrency import run_with_retry
from .tenant_service import Scope
from stockflow.time_utils import utcnow, to_utc_z

logger = logging.getLogger(__name__)

WALK_IN_CUSTOMER = "Walk-in Customer"
DEFAULT_PAYMENT_METHOD = "CASH"


@dataclass
class CheckoutResult:
    order: Order
    oversold: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"order": self.order.to_dict(), "oversold": self.oversold}


def _validate_cart(items) -> list[tuple[int, int]]:
    if not items:
        raise ValidationError("cart is empty")

    parsed = []
    for item in items:
        product_id = item.get("product_id") if isinstance(item, dict) else None
        quantity = item.get("quantity") if isinstance(item, dict) else None
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError("product_id must be an integer")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("quantity must be an integer")
        if quantity <= 0:
            raise ValidationError("quantity must be greater than zero", details={"product_id": product_id})
        parsed.append((product_id, quantity))
    return parsed


def checkout(
    scope: Scope,
    *,
    items: list[dict],
    payment_method: str | None = None,
    auto_deliver: bool = False,
    customer_id: int | None = None,
    reference_id: str | None = None,
    note: str | None = None,
) -> CheckoutResult:
    branch_id = scope.require_branch()
    cart = _validate_cart(items)
    if not isinstance(auto_deliver, bool):
        raise ValidationError("auto_deliver must be a boolean")
    payment_method = (payment_method or "").strip().upper() or DEFAULT_PAYMENT_METHOD

    def _op():
        recipient_name = WALK_IN_CUSTOMER
        if customer_id is not None:
            recipient_name = get_customer_in_org(scope.org_id, customer_id).name

        now = utcnow()
        order = Order(
            org_id=scope.org_id,
            branch_id=branch_id,
            type="SALE",
            status="COMPLETED",
            fulfillment_status="DELIVERED" if auto_deliver else "PENDING",
            payment_method=payment_method,
            customer_id=customer_id,
            recipient_name=recipient_name,
            reference_id=(reference_id or "").strip() or None,
            note=(note or "").strip() or None,
            delivered_at=now if auto_deliver else None,
        )

        total = 0
        for product_id, quantity in cart:
            product = get_product_in_org(scope.org_id, product_id, require_active=True)
            line_total = product.price_cents * quantity
            order.lines.append(OrderLine(
                product_id=product.id,
                sku=product.sku,
                name=product.name,
                quantity=quantity,
                unit_price_cents=product.price_cents,
                unit_cost_cents=product.cost_cents,
                line_total_cents=line_total,
            ))
            total += line_total
        order.total_cents = total

        db.session.add(order)
        db.session.flush()

        append_audit_event(
            org_id=scope.org_id,
            branch_id=branch_id,
            event_type="order.created",
            entity_type="order",
            entity_id=order.id,
            occurred_at=now,
            payload={
                "fulfillment_status": order.fulfillment_status,
                "total_cents": total,
                "payment_method": payment_method,
                "auto_deliver": auto_deliver,
            },
        )

        db.session.commit()
        return order

    order = run_with_retry(_op)

    oversold = oversold_positions(scope, {product_id for product_id, _ in cart})
    for position in oversold:
        logger.warning(
            "Checkout of order %s oversold product %s at branch %s (available=%s)",
            order.id, position["product_id"], branch_id, position["available"],
        )
    return CheckoutResult(order=order, oversold=oversold)


@dataclass
class HeldOrder:
    held_at: datetime
    items: list[dict]
    customer_id: int | None = None
    note: str | None = None

    def to_dict(self) -> dict:
        return {
            "held_at": to_utc_z(self.held_at),
            "items": [dict(item) for item in self.items],
            "customer_id": self.customer_id,
            "note": self.note,
        }


class CheckoutSession:
    """
    Register state for one cashier at one branch. Lives in memory only.

    The cart keeps product insertion order; adding a product twice adds to
    its quantity.
    """

    def __init__(self, scope: Scope):
        scope.require_branch()
        self.scope = scope
        self._cart: dict[int, int] = {}
        self.customer_id: int | None = None
        self._held: dict[datetime, HeldOrder] = {}

    @property
    def items(self) -> list[dict]:
        return [{"product_id": pid, "quantity": qty} for pid, qty in self._cart.items()]

    @property
    def is_empty(self) -> bool:
        return not self._cart

    def add_item(self, product_id: int, quantity: int = 1) -> None:
        if quantity <= 0:
            raise ValidationError("quantity must be greater than zero")
        self._cart[product_id] = self._cart.get(product_id, 0) + quantity

    def set_quantity(self, product_id: int, quantity: int) -> None:
        if quantity < 0:
            raise ValidationError("quantity cannot be negative")
        if quantity == 0:
            self._cart.pop(product_id, None)
        else:
            self._cart[product_id] = quantity

    def remove_item(self, product_id: int) -> None:
        self._cart.pop(product_id, None)

    def set_customer(self, customer_id: int | None) -> None:
        self.customer_id = customer_id

    def clear(self) -> None:
        self._cart = {}
        self.customer_id = None

    def hold(self, note: str | None = None) -> HeldOrder:
        """Park the current cart and start an empty one."""
        if self.is_empty:
            raise ValidationError("cart is empty")
        held_at = utcnow()
        # Keys must stay unique when two carts are parked within one clock tick
        while held_at in self._held:
            held_at += timedelta(microseconds=1)
        held = HeldOrder(held_at=held_at, items=self.items, customer_id=self.customer_id, note=note)
        self._held[held_at] = held
        self.clear()
        return held

    def held_orders(self) -> list[HeldOrder]:
        return [self._held[key] for key in sorted(self._held)]

    def resume(self, held_at: datetime) -> HeldOrder:
        """Restore a held cart (replacing the current one) and drop it from the queue."""
        held = self._held.pop(held_at, None)
        if held is None:
            raise NotFound("held order not found")
        self._cart = {item["product_id"]: item["quantity"] for item in held.items}
        self.customer_id = held.customer_id
        return held

    def discard(self, held_at: datetime) -> None:
        if self._held.pop(held_at, None) is None:
            raise NotFound("held order not found")

    def checkout(
        self,
        *,
        payment_method: str | None = None,
        auto_deliver: bool = False,
        reference_id: str | None = None,
        note: str | None = None,
    ) -> CheckoutResult:
        """Check out the current cart; the cart and customer are cleared only on success."""
        result = checkout(
            self.scope,
            items=self.items,
            payment_method=payment_method,
            auto_deliver=auto_deliver,
            customer_id=self.customer_id,
            reference_id=reference_id,
            note=note,
        )
        self.clear()
        return result
