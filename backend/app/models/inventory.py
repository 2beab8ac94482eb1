from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


class StockLedgerEntry(db.Model):
    """
    Sellable on-hand quantity per (location, item).

    Rows are only ever written through the single-statement upserts in
    services/stock_ledger_service.py; never select-then-update.
    """
    __tablename__ = "stock_ledger"
    __table_args__ = (
        db.UniqueConstraint("location_id", "item_id", name="uq_stock_ledger_location_item"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_ledger_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class QuarantineLedgerEntry(db.Model):
    """
    Returned goods awaiting inspection. Same shape as the stock ledger,
    never counted as sellable.
    """
    __tablename__ = "quarantine_ledger"
    __table_args__ = (
        db.UniqueConstraint("location_id", "item_id", name="uq_quarantine_ledger_location_item"),
        db.CheckConstraint("quantity >= 0", name="ck_quarantine_ledger_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }
