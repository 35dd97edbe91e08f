# Overview: Read-side allocation math; derives allocated and available stock.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderLine, Product, StockLevel
from .stock_service import default_min_stock, get_stock_level
from .tenant_service import Scope, get_org_branches
"""
Allocation semantics (authoritative)

- physical  = StockLevel.quantity (0 when no row exists)
- allocated = SUM(line.quantity) over SALE orders of the branch whose
              fulfillment_status is PENDING, PICKED, PACKED or SHIPPED
- available = physical - allocated; negative means oversold and is reported,
              never rejected
- low stock = available <= min_stock (configured default when no row exists)

Nothing here writes. Allocation is recomputed from current rows on every call;
there is no stored reservation counter that could drift from order status.
Moving an order to DELIVERED, CANCELLED or RETURNED drops it out of the sum
without any stock write.
"""

ACTIVE_FULFILLMENT_STATUSES = ("PENDING", "PICKED", "PACKED", "SHIPPED")


def physical_stock(product_id: int, branch_id: int) -> int:
    level = get_stock_level(product_id, branch_id)
    return level.quantity if level is not None else 0


def _allocated_query(branch_id: int):
    return (
        db.session.query(
            OrderLine.product_id,
            func.coalesce(func.sum(OrderLine.quantity), 0),
        )
        .join(Order, Order.id == OrderLine.order_id)
        .filter(
            Order.branch_id == branch_id,
            Order.type == "SALE",
            Order.fulfillment_status.in_(ACTIVE_FULFILLMENT_STATUSES),
        )
    )


def allocated_stock(product_id: int, branch_id: int) -> int:
    row = (
        _allocated_query(branch_id)
        .filter(OrderLine.product_id == product_id)
        .group_by(OrderLine.product_id)
        .first()
    )
    return int(row[1]) if row else 0


def allocated_by_product(branch_id: int, product_ids=None) -> dict[int, int]:
    """Allocated quantity for many products of one branch in a single query."""
    q = _allocated_query(branch_id)
    if product_ids is not None:
        q = q.filter(OrderLine.product_id.in_(list(product_ids)))
    return {product_id: int(qty) for product_id, qty in q.group_by(OrderLine.product_id).all()}


def available_stock(product_id: int, branch_id: int) -> int:
    return physical_stock(product_id, branch_id) - allocated_stock(product_id, branch_id)


def min_stock_threshold(product_id: int, branch_id: int) -> int:
    level = get_stock_level(product_id, branch_id)
    return level.min_stock if level is not None else default_min_stock()


def is_low_stock(product_id: int, branch_id: int) -> bool:
    return available_stock(product_id, branch_id) <= min_stock_threshold(product_id, branch_id)


def _position(product_id: int, branch_id: int, level: StockLevel | None, allocated: int) -> dict:
    physical = level.quantity if level is not None else 0
    min_stock = level.min_stock if level is not None else default_min_stock()
    available = physical - allocated
    return {
        "product_id": product_id,
        "branch_id": branch_id,
        "physical": physical,
        "allocated": allocated,
        "available": available,
        "min_stock": min_stock,
        "bin_location": level.bin_location if level is not None else None,
        "low_stock": available <= min_stock,
        "oversold": available < 0,
    }


def stock_position(product_id: int, branch_id: int) -> dict:
    level = get_stock_level(product_id, branch_id)
    return _position(product_id, branch_id, level, allocated_stock(product_id, branch_id))


def branch_positions(scope: Scope, product_ids=None) -> list[dict]:
    """
    Positions for every active catalog product at the scope's branch,
    including products that have no StockLevel row yet.
    """
    branch_id = scope.require_branch()

    products_q = db.session.query(Product.id).filter(
        Product.org_id == scope.org_id,
        Product.is_active.is_(True),
    )
    if product_ids is not None:
        products_q = products_q.filter(Product.id.in_(list(product_ids)))
    ids = [pid for (pid,) in products_q.order_by(Product.id).all()]

    levels = {
        level.product_id: level
        for level in db.session.query(StockLevel).filter(
            StockLevel.branch_id == branch_id,
            StockLevel.product_id.in_(ids),
        )
    }
    allocated = allocated_by_product(branch_id, ids)

    return [_position(pid, branch_id, levels.get(pid), allocated.get(pid, 0)) for pid in ids]


def low_stock_positions(scope: Scope) -> list[dict]:
    return [p for p in branch_positions(scope) if p["low_stock"]]


def out_of_stock_positions(scope: Scope) -> list[dict]:
    return [p for p in branch_positions(scope) if p["available"] <= 0]


def oversold_positions(scope: Scope, product_ids=None) -> list[dict]:
    return [p for p in branch_positions(scope, product_ids) if p["oversold"]]


def product_positions_across_branches(scope: Scope, product_id: int) -> list[dict]:
    """Branch override: one position per active branch of the organization."""
    return [stock_position(product_id, branch.id) for branch in get_org_branches(scope.org_id)]
