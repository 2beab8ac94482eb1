from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


EXCHANGE_DIRECTIONS = ("return", "issue")
PAYMENT_METHODS = ("cash", "card", "upi")


class Exchange(db.Model):
    """
    Exchange/return record against an earlier sale.

    Immutable after creation. Return lines feed the quarantine ledger,
    issue lines leave the sellable ledger. original_sale_ref is the
    caller's sale/bill number and is not validated against any table.
    """
    __tablename__ = "exchanges"
    __table_args__ = (
        db.Index("ix_exchanges_sale_ref", "original_sale_ref"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    original_sale_ref = db.Column(db.String(64), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    customer_name = db.Column(db.String(128), nullable=True)
    customer_mobile = db.Column(db.String(32), nullable=True)
    reason = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_by_name = db.Column(db.String(128), nullable=False, default="Unknown")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    lines = db.relationship(
        "ExchangeLine",
        backref="exchange",
        lazy=True,
        order_by="ExchangeLine.id",
        cascade="all, delete-orphan",
    )
    settlement = db.relationship("ExchangeSettlement", backref="exchange", uselist=False, lazy=True)

    def totals(self) -> dict:
        returned = sum(l.quantity * l.unit_price_cents for l in self.lines if l.direction == "return")
        issued = sum(l.quantity * l.unit_price_cents for l in self.lines if l.direction == "issue")
        return {
            "returned_total_cents": returned,
            "issued_total_cents": issued,
            "difference_cents": issued - returned,
        }

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "original_sale_ref": self.original_sale_ref,
            "location_id": self.location_id,
            "customer_name": self.customer_name,
            "customer_mobile": self.customer_mobile,
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_by_name": self.created_by_name,
            "created_at": to_utc_z(self.created_at),
            "returns": [l.to_dict() for l in self.lines if l.direction == "return"],
            "issues": [l.to_dict() for l in self.lines if l.direction == "issue"],
            "settlement": self.settlement.to_dict() if self.settlement else None,
        }
        data.update(self.totals())
        return data


class ExchangeLine(db.Model):
    __tablename__ = "exchange_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_exchange_lines_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_exchange_lines_price_non_negative"),
        db.CheckConstraint("direction IN ('return', 'issue')", name="ck_exchange_lines_direction"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    exchange_id = db.Column(db.Integer, db.ForeignKey("exchanges.id"), nullable=False, index=True)
    direction = db.Column(db.String(8), nullable=False)

    # NULL when the line could not be resolved to an item; the line is kept
    # for the paper trail but the ledgers are left alone.
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True)
    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "direction": self.direction,
            "item_id": self.item_id,
            "sku": self.sku,
            "name": self.name,
            "size": self.size,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.quantity * self.unit_price_cents,
        }


class ExchangeSettlement(db.Model):
    """One price-difference settlement per exchange."""
    __tablename__ = "exchange_settlements"
    __table_args__ = (
        db.UniqueConstraint("exchange_id", name="uq_exchange_settlements_exchange"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    exchange_id = db.Column(db.Integer, db.ForeignKey("exchanges.id"), nullable=False)
    original_total_cents = db.Column(db.Integer, nullable=False)
    new_total_cents = db.Column(db.Integer, nullable=False)
    due_cents = db.Column(db.Integer, nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False)
    accepted_partial = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    payments = db.relationship(
        "ExchangePayment",
        backref="settlement",
        lazy=True,
        order_by="ExchangePayment.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "exchange_id": self.exchange_id,
            "original_total_cents": self.original_total_cents,
            "new_total_cents": self.new_total_cents,
            "due_cents": self.due_cents,
            "paid_cents": self.paid_cents,
            "accepted_partial": self.accepted_partial,
            "created_at": to_utc_z(self.created_at),
            "payments": [p.to_dict() for p in self.payments],
        }


class ExchangePayment(db.Model):
    __tablename__ = "exchange_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_exchange_payments_amount_positive"),
        db.CheckConstraint("method IN ('cash', 'card', 'upi')", name="ck_exchange_payments_method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("exchange_settlements.id"), nullable=False, index=True)
    method = db.Column(db.String(8), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    ref = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "amount_cents": self.amount_cents,
            "ref": self.ref,
        }


class ExchangeSaleLink(db.Model):
    """
    Advisory link from an original sale to its exchange / replacement sale.

    Written best effort; losing one never affects stock or money.
    """
    __tablename__ = "exchange_sale_links"
    __table_args__ = (
        db.Index("ix_exchange_sale_links_sale_ref", "original_sale_ref"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    original_sale_ref = db.Column(db.String(64), nullable=False)
    exchange_id = db.Column(db.Integer, nullable=True)
    new_sale_ref = db.Column(db.String(64), nullable=True)
    note = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_sale_ref": self.original_sale_ref,
            "exchange_id": self.exchange_id,
            "new_sale_ref": self.new_sale_ref,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class HeldBill(db.Model):
    """
    A suspended in-progress sale. Never touches stock.

    Resuming deletes the row, so a bill can be resumed exactly once.
    """
    __tablename__ = "held_bills"
    __table_args__ = (
        db.Index("ix_held_bills_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), nullable=False, unique=True, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    customer_name = db.Column(db.String(128), nullable=True)
    customer_mobile = db.Column(db.String(32), nullable=True)

    # Basis points: 1000 = 10.00%
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    held_by_user_id = db.Column(db.Integer, nullable=True)
    held_by_name = db.Column(db.String(128), nullable=False, default="Unknown")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    lines = db.relationship(
        "HeldBillLine",
        backref="held_bill",
        lazy=True,
        order_by="HeldBillLine.id",
        cascade="all, delete-orphan",
    )

    def to_cart(self) -> dict:
        return {
            "token": self.token,
            "location_id": self.location_id,
            "customer": {"name": self.customer_name, "mobile": self.customer_mobile},
            "settings": {"discount_bps": self.discount_bps, "tax_rate_bps": self.tax_rate_bps},
            "lines": [l.to_dict() for l in self.lines],
        }

    def to_dict(self) -> dict:
        data = self.to_cart()
        data.update({
            "id": self.id,
            "held_by_user_id": self.held_by_user_id,
            "held_by_name": self.held_by_name,
            "created_at": to_utc_z(self.created_at),
            "item_count": len(self.lines),
            "total_qty": sum(l.quantity for l in self.lines),
        })
        return data


class HeldBillLine(db.Model):
    __tablename__ = "held_bill_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_held_bill_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    held_bill_id = db.Column(db.Integer, db.ForeignKey("held_bills.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = db.Column(db.Integer, nullable=True)
    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "sku": self.sku,
            "name": self.name,
            "size": self.size,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }
