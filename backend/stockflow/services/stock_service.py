# Overview: Stock ledger; authoritative physical quantity per (product, branch).

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import StockLevel
from ..errors import ValidationError
from .concurrency import lock_for_update
"""
Stock ledger invariants

- One StockLevel row per (product, branch), created lazily on the first
  stock-affecting event and never deleted.
- quantity >= 0 at all times: a delta that would take it below zero is
  rejected, nothing is clamped.
- Every read-modify-write goes through apply_stock_delta, which locks the row
  (FOR UPDATE) and relies on StockLevel.version_id to surface lost updates.
- Callers own the transaction (flush here, commit in the calling operation).
"""


def default_min_stock() -> int:
    return int(current_app.config.get("STOCKFLOW_DEFAULT_MIN_STOCK", 5))


def get_stock_level(product_id: int, branch_id: int, *, lock: bool = False) -> StockLevel | None:
    query = db.session.query(StockLevel).filter_by(product_id=product_id, branch_id=branch_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def ensure_stock_level(*, org_id: int, branch_id: int, product_id: int, lock: bool = True) -> StockLevel:
    """Return the row for the pair, creating a zero-quantity row if needed."""
    level = get_stock_level(product_id, branch_id, lock=lock)
    if level is not None:
        return level

    level = StockLevel(
        org_id=org_id,
        branch_id=branch_id,
        product_id=product_id,
        quantity=0,
        min_stock=default_min_stock(),
    )
    try:
        with db.session.begin_nested():
            db.session.add(level)
    except IntegrityError:
        # Another writer created the row first
        level = get_stock_level(product_id, branch_id, lock=lock)
    return level


def apply_stock_delta(*, org_id: int, branch_id: int, product_id: int, delta: int) -> StockLevel:
    level = ensure_stock_level(org_id=org_id, branch_id=branch_id, product_id=product_id)
    new_quantity = level.quantity + delta
    if new_quantity < 0:
        raise ValidationError(
            "stock change would make physical quantity negative",
            details={
                "product_id": product_id,
                "branch_id": branch_id,
                "quantity": level.quantity,
                "delta": delta,
            },
        )
    level.quantity = new_quantity
    db.session.flush()
    return level


def list_branch_stock_levels(branch_id: int) -> list[StockLevel]:
    return (
        db.session.query(StockLevel)
        .filter_by(branch_id=branch_id)
        .order_by(StockLevel.product_id.asc())
        .all()
    )
