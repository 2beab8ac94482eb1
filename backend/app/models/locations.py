from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


LOCATION_KINDS = ("HQ", "DISTRIBUTOR", "OUTLET")


class Location(db.Model):
    """
    A place that holds stock: head office, distributor or retail outlet.

    Transfers move goods between locations; the stock and quarantine ledgers
    are keyed by (location_id, item_id).
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.CheckConstraint("kind IN ('HQ', 'DISTRIBUTOR', 'OUTLET')", name="ck_locations_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    kind = db.Column(db.String(16), nullable=False, default="OUTLET")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Location id={self.id} code={self.code!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "kind": self.kind,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Item(db.Model):
    """
    Item master data.

    item_code is the canonical code. stock_no is the older warehouse
    number still printed on tags; lookups by code accept either.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_stock_no", "stock_no"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    stock_no = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    size = db.Column(db.String(32), nullable=True)
    brand = db.Column(db.String(128), nullable=True)
    colour = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    retail_price_cents = db.Column(db.Integer, nullable=False, default=0)
    dealer_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Item id={self.id} item_code={self.item_code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_code": self.item_code,
            "stock_no": self.stock_no,
            "name": self.name,
            "size": self.size,
            "brand": self.brand,
            "colour": self.colour,
            "retail_price_cents": self.retail_price_cents,
            "dealer_price_cents": self.dealer_price_cents,
            "is_active": self.is_active,
        }
