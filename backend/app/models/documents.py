from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


TRANSFER_STATUSES = ("Pending", "Shipped", "Received", "Confirmed", "Rejected")
TRANSFER_PRIORITIES = ("Normal", "High", "Urgent")


class TransferTransaction(db.Model):
    """
    Inter-location stock transfer request.

    LIFECYCLE:
    1. Pending: created, lines still editable
    2. Shipped: dispatched by the sender
    3. Received: goods arrived at destination (optional step)
    4. Confirmed: receiver accepted, destination ledger incremented
    5. Rejected: terminal, from any non-terminal state

    from_location_id is nullable: NULL means an external supplier or head
    office that does not keep a ledger here. created_by_user_id is not a
    foreign key; attribution must survive user deletion and must never fail
    a create.
    """
    __tablename__ = "transfer_transactions"
    __table_args__ = (
        db.CheckConstraint(
            "from_location_id IS NULL OR from_location_id <> to_location_id",
            name="ck_transfer_transactions_distinct_locations",
        ),
        db.Index("ix_transfer_transactions_status_created", "status", "created_at"),
        db.Index("ix_transfer_transactions_to_status", "to_location_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # TXN-YYYYMMDD-HHMMSS-XXXXXXXX
    code = db.Column(db.String(40), nullable=False, unique=True, index=True)

    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    priority = db.Column(db.String(16), nullable=False, default="Normal")
    note = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="Pending", index=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_by_name = db.Column(db.String(128), nullable=False, default="Unknown")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    discrepancy_note = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    from_location = db.relationship("Location", foreign_keys=[from_location_id])
    to_location = db.relationship("Location", foreign_keys=[to_location_id])
    lines = db.relationship(
        "TransferLine",
        backref="transfer",
        lazy=True,
        order_by="TransferLine.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<TransferTransaction id={self.id} code={self.code!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "priority": self.priority,
            "note": self.note,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_by_name": self.created_by_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "dispatched_at": to_utc_z(self.dispatched_at) if self.dispatched_at else None,
            "accepted_at": to_utc_z(self.accepted_at) if self.accepted_at else None,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "discrepancy_note": self.discrepancy_note,
            "rejection_reason": self.rejection_reason,
        }


class TransferLine(db.Model):
    __tablename__ = "transfer_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transfer_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfer_transactions.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
        }


class LegacyTransferRow(db.Model):
    """
    Flat one-row-per-line copy of transfers for older reporting tools.

    Written only by the legacy mirror, after the primary unit commits.
    Deliberately free of foreign keys so a stale or partial mirror can
    never block a primary write.
    """
    __tablename__ = "transfer_master"
    __table_args__ = (
        db.Index("ix_transfer_master_transfer", "transfer_id"),
        db.Index("ix_transfer_master_code", "transaction_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, nullable=False)
    transaction_code = db.Column(db.String(40), nullable=False)
    from_location_id = db.Column(db.Integer, nullable=True)
    to_location_id = db.Column(db.Integer, nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    transfer_date = db.Column(db.Date, nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    stock_no = db.Column(db.String(64), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    dealer_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    discrepancy_note = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "transaction_code": self.transaction_code,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "item_id": self.item_id,
            "transfer_date": self.transfer_date.isoformat() if self.transfer_date else None,
            "quantity": self.quantity,
            "stock_no": self.stock_no,
            "size": self.size,
            "dealer_price_cents": self.dealer_price_cents,
            "total_price_cents": self.total_price_cents,
            "status": self.status,
            "accepted_at": to_utc_z(self.accepted_at) if self.accepted_at else None,
            "discrepancy_note": self.discrepancy_note,
        }
