from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class Order(db.Model):
    """
    Sales transaction and stock movement record.

    type:
    - SALE: created by checkout; carries a fulfillment lifecycle
    - STOCK_IN / STOCK_OUT / ADJUSTMENT: audit records written by manual
      stock adjustments (created COMPLETED + DELIVERED, never transitioned)
    - TRANSFER_OUT / TRANSFER_IN: movement records written when a stock
      transfer leaves its source branch or arrives at its destination

    status is the financial state (COMPLETED, PENDING, CANCELLED, REFUNDED);
    fulfillment_status is the logistic state (PENDING, PICKED, PACKED,
    SHIPPED, DELIVERED, CANCELLED, RETURNED). The two are independent.

    Open SALE orders are what "allocated" stock is derived from; nothing about
    allocation is stored on the order itself.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_branch_type_fulfillment", "branch_id", "type", "fulfillment_status"),
        db.Index("ix_orders_branch_created", "branch_id", "created_at"),
        db.Index("ix_orders_tracking_number", "tracking_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    fulfillment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    recipient_name = db.Column(db.String(255), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    # External marketplace / channel reference, matched by scan-to-complete
    reference_id = db.Column(db.String(64), nullable=True, index=True)

    # Shipping
    carrier = db.Column(db.String(64), nullable=True)
    tracking_number = db.Column(db.String(128), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cancellation / return
    cancellation_reason = db.Column(db.String(255), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    restocked = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer")
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Order id={self.id} type={self.type} status={self.status} "
            f"fulfillment_status={self.fulfillment_status}>"
        )

    def to_dict(self) -> dict:
        shipping = None
        if self.carrier or self.tracking_number:
            shipping = {
                "carrier": self.carrier,
                "tracking_number": self.tracking_number,
                "shipped_at": to_utc_z(self.shipped_at),
                "delivered_at": to_utc_z(self.delivered_at),
            }
        return {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "type": self.type,
            "status": self.status,
            "fulfillment_status": self.fulfillment_status,
            "items": [line.to_dict() for line in self.lines],
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "customer_id": self.customer_id,
            "recipient_name": self.recipient_name,
            "note": self.note,
            "reference_id": self.reference_id,
            "shipping": shipping,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "restocked": self.restocked,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderLine(db.Model):
    """Line item with price and cost snapshots taken when the order was created."""
    __tablename__ = "order_lines"
    __table_args__ = (
        db.Index("ix_order_lines_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
        }
