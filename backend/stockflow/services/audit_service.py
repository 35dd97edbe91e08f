# Overview: Append-only audit sink for stock and order events.

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent
from stockflow.time_utils import utcnow
"""
Audit invariants

- Append-only: no updates/deletes of existing events.
- No domain logic here; callers decide what to record.
- Events are flushed inside the caller's DB transaction, so they commit or
  roll back together with the change they describe.
"""


def append_audit_event(
    *,
    org_id: int,
    branch_id: int | None,
    event_type: str,
    entity_type: str,
    entity_id: int,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
) -> AuditEvent:
    ev = AuditEvent(
        org_id=org_id,
        branch_id=branch_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_entity_events(*, org_id: int, entity_type: str, entity_id: int) -> list[AuditEvent]:
    """Events for one entity, oldest first."""
    return (
        db.session.query(AuditEvent)
        .filter(
            AuditEvent.org_id == org_id,
            AuditEvent.entity_type == entity_type,
            AuditEvent.entity_id == entity_id,
        )
        .order_by(AuditEvent.occurred_at.asc(), AuditEvent.id.asc())
        .all()
    )
