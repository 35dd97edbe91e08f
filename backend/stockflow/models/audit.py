from __future__ import annotations

import json

from ..extensions import db
from stockflow.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit log.

    Rows are written in the same DB transaction as the change they describe
    and are never updated or deleted.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        db.Index("ix_audit_events_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. stock.adjusted, order.cancelled
    entity_type = db.Column(db.String(64), nullable=False)  # order, purchase_order, stock_level, product
    entity_id = db.Column(db.Integer, nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": json.loads(self.payload) if self.payload else None,
        }
