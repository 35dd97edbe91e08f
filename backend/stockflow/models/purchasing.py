from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class PurchaseOrder(db.Model):
    """
    Supplier purchase order for one branch.

    LIFECYCLE: OPEN -> RECEIVED (exactly once, whole order) or OPEN -> CANCELLED.
    Stock is credited only at the RECEIVED transition; the document is
    immutable afterwards.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)
    reference_number = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    expected_date = db.Column(db.DateTime(timezone=True), nullable=True)
    received_date = db.Column(db.DateTime(timezone=True), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier")
    lines = db.relationship(
        "PurchaseOrderLine",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "supplier_id": self.supplier_id,
            "status": self.status,
            "reference_number": self.reference_number,
            "note": self.note,
            "items": [line.to_dict() for line in self.lines],
            "total_cost_cents": self.total_cost_cents,
            "expected_date": to_utc_z(self.expected_date),
            "received_date": to_utc_z(self.received_date),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    line_cost_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "line_cost_cents": self.line_cost_cents,
        }
