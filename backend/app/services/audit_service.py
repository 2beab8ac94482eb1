# Overview: Append-only audit trail for hold-bill, transfer and exchange events.

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import AuditEvent
"""
Audit trail invariants

- Append-only: no updates or deletes of existing events.
- No domain logic here.
- append() joins the caller's unit; record() is its own unit and is best
  effort (used after the primary change has already committed).
"""


class AuditTrail:
    def __init__(self, session, logger: logging.Logger | None = None):
        self.session = session
        self.logger = logger or logging.getLogger(__name__)

    def append(
        self,
        *,
        event_type: str,
        entity_type: str,
        entity_ref,
        actor=None,
        location_id: int | None = None,
        occurred_at: Optional[datetime] = None,
        note: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> AuditEvent:
        """Add an event to the current unit. The caller commits."""
        ev = AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_ref=str(entity_ref),
            actor_user_id=getattr(actor, "user_id", None),
            actor_name=getattr(actor, "name", None) or "Unknown",
            location_id=location_id,
            occurred_at=occurred_at,  # if None, model default applies
            note=note[:255] if note else None,
            payload=json.dumps(payload, sort_keys=True, default=str) if payload else None,
        )
        self.session.add(ev)
        return ev

    def record(self, **kwargs) -> bool:
        """Append and commit in a separate unit. Failures are logged, not raised."""
        try:
            self.append(**kwargs)
            self.session.commit()
            return True
        except SQLAlchemyError:
            self.session.rollback()
            self.logger.warning(
                "Audit event %s for %s %s not recorded",
                kwargs.get("event_type"),
                kwargs.get("entity_type"),
                kwargs.get("entity_ref"),
                exc_info=True,
            )
            return False

    def events_for(self, entity_type: str, entity_ref) -> list[AuditEvent]:
        return (
            self.session.query(AuditEvent)
            .filter_by(entity_type=entity_type, entity_ref=str(entity_ref))
            .order_by(AuditEvent.id.asc())
            .all()
        )
