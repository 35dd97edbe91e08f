from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class StockTransfer(db.Model):
    """
    Movement of stock between two branches of one organization.

    LIFECYCLE:
    - DRAFT: lines editable, no stock effect
    - IN_TRANSIT: source branch debited (exactly once, at send)
    - RECEIVED: destination branch credited (exactly once, at receive)
    - CANCELLED: from DRAFT (no effect) or IN_TRANSIT (source re-credited)
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.CheckConstraint("from_branch_id <> to_branch_id", name="ck_stock_transfers_distinct_branches"),
        db.Index("ix_stock_transfers_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    from_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    to_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    note = db.Column(db.String(255), nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "StockTransferLine",
        backref="transfer",
        lazy=True,
        order_by="StockTransferLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def transfer_number(self) -> str | None:
        return f"TRF-{self.id:06d}" if self.id is not None else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_number": self.transfer_number,
            "org_id": self.org_id,
            "from_branch_id": self.from_branch_id,
            "to_branch_id": self.to_branch_id,
            "status": self.status,
            "note": self.note,
            "items": [line.to_dict() for line in self.lines],
            "sent_at": to_utc_z(self.sent_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class StockTransferLine(db.Model):
    __tablename__ = "stock_transfer_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    # Set at receive; may be lower than quantity when goods went missing in transit
    received_quantity = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "received_quantity": self.received_quantity,
        }
