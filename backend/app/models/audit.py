from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


class AuditEvent(db.Model):
    """
    Append-only audit trail.

    Hold-bill actions write their event in the same unit as the change;
    transfer and exchange lifecycle events are appended after commit.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_ref"),
        db.Index("ix_audit_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g., hold.created, transfer.Confirmed, exchange.created
    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    # id, code or hold token
    entity_ref = db.Column(db.String(64), nullable=False)

    actor_user_id = db.Column(db.Integer, nullable=True)
    actor_name = db.Column(db.String(128), nullable=False, default="Unknown")
    location_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    # Optional structured metadata (keep small; do not denormalize domain state)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_ref": self.entity_ref,
            "actor_user_id": self.actor_user_id,
            "actor_name": self.actor_name,
            "location_id": self.location_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }
