from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class StockLevel(db.Model):
    """
    Physical on-hand quantity of one product at one branch.

    - Created lazily on the first stock-affecting event for the pair.
    - Never deleted, only zeroed.
    - quantity >= 0 always (enforced by the services and a CHECK constraint).
    - Allocated/available quantities are derived from open orders and are
      never stored here.
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_stock_levels_product_branch"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_levels_quantity_non_negative"),
        db.Index("ix_stock_levels_org_branch", "org_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=5)
    bin_location = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockLevel product_id={self.product_id} branch_id={self.branch_id} "
            f"quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "bin_location": self.bin_location,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
