# Overview: Per-(location, item) quantity ledgers; atomic upserts for sellable and quarantine stock.

"""
Stock ledger writes.

Every write is a single INSERT ... ON CONFLICT / ON DUPLICATE KEY UPDATE
statement so two concurrent writers to the same (location, item) can never
lose an update.

Decrements clamp at zero instead of failing. A sale or an exchange issue is
never blocked because the ledger lags reality (goods physically on the shelf
but not yet confirmed in). The price is that the ledger can under-count
after a clamp; reconcile with a physical count.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import case, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import OperationalError, ProgrammingError

from ..models import Item, Location, QuarantineLedgerEntry, StockLedgerEntry
from ..time_utils import to_utc_z, utcnow
from ..validation import StorageError, ValidationError, coerce_int
from .concurrency import is_missing_table


_INSERT_BY_DIALECT = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
    "mysql": mysql.insert,
    "mariadb": mysql.insert,
}


class StockLedger:
    """Sellable on-hand quantities. Callers own the transaction."""

    model = StockLedgerEntry

    def __init__(self, session, logger: logging.Logger | None = None):
        self.session = session
        self.logger = logger or logging.getLogger(__name__)

    # Writes

    def increment(self, location_id: int, item_id: int, qty) -> None:
        qty = self._check_qty(qty)
        table = self.model.__table__
        self.session.execute(
            self._upsert(
                location_id,
                item_id,
                insert_quantity=qty,
                new_quantity=table.c.quantity + qty,
            )
        )

    def decrement(self, location_id: int, item_id: int, qty) -> None:
        """Subtract qty, clamping at zero. A missing row is created at 0."""
        qty = self._check_qty(qty)
        table = self.model.__table__
        remaining = table.c.quantity - qty
        self.session.execute(
            self._upsert(
                location_id,
                item_id,
                insert_quantity=0,
                new_quantity=case((remaining < 0, 0), else_=remaining),
            )
        )

    # Reads

    def quantity(self, location_id: int, item_id: int) -> int:
        """On-hand count; 0 when no row exists."""
        table = self.model.__table__
        qty = self.session.execute(
            select(table.c.quantity).where(
                table.c.location_id == location_id,
                table.c.item_id == item_id,
            )
        ).scalar()
        return int(qty or 0)

    def read(self, location_id: int, item_id: int) -> Optional[dict]:
        """
        One (location, item) row with display attributes.

        None when the location or item is unknown; quantity 0 when known
        but never stocked.
        """
        location = self.session.get(Location, location_id)
        item = self.session.get(Item, item_id)
        if location is None or item is None:
            return None
        entry = self.session.execute(
            select(self.model).where(
                self.model.location_id == location_id,
                self.model.item_id == item_id,
            )
        ).scalar()
        return self._row(location, item, entry)

    def read_all_for_location(self, location_id: int) -> list[dict]:
        """Ledger rows for one location with item display attributes."""
        entry = self.model
        stmt = (
            select(entry, Item, Location)
            .join(Item, Item.id == entry.item_id)
            .join(Location, Location.id == entry.location_id)
            .where(entry.location_id == location_id)
            .order_by(Item.item_code)
        )
        try:
            rows = self.session.execute(stmt).all()
        except (OperationalError, ProgrammingError) as exc:
            if not is_missing_table(exc):
                raise
            self.session.rollback()
            self.logger.warning("%s table missing; returning empty stock list", entry.__tablename__)
            return []

        return [self._row(location, item, row) for row, item, location in rows]

    # Internals

    @staticmethod
    def _row(location: Location, item: Item, entry) -> dict:
        return {
            "location_id": location.id,
            "location_code": location.code,
            "location_name": location.name,
            "item_id": item.id,
            "item_code": item.item_code,
            "stock_no": item.stock_no,
            "name": item.name,
            "size": item.size,
            "brand": item.brand,
            "colour": item.colour,
            "quantity": entry.quantity if entry is not None else 0,
            "updated_at": to_utc_z(entry.updated_at) if entry is not None else None,
        }

    @staticmethod
    def _check_qty(qty) -> int:
        qty = coerce_int(qty, "quantity")
        if qty <= 0:
            raise ValidationError("quantity must be a positive integer")
        return qty

    def _upsert(self, location_id: int, item_id: int, *, insert_quantity: int, new_quantity):
        dialect = self.session.get_bind(mapper=self.model).dialect.name
        insert = _INSERT_BY_DIALECT.get(dialect)
        if insert is None:
            raise StorageError(f"Unsupported database dialect for ledger writes: {dialect}")

        table = self.model.__table__
        now = utcnow()
        stmt = insert(table).values(
            location_id=location_id,
            item_id=item_id,
            quantity=insert_quantity,
            updated_at=now,
        )
        if insert is mysql.insert:
            return stmt.on_duplicate_key_update(quantity=new_quantity, updated_at=now)
        return stmt.on_conflict_do_update(
            index_elements=[table.c.location_id, table.c.item_id],
            set_={"quantity": new_quantity, "updated_at": now},
        )


class QuarantineLedger(StockLedger):
    """Returned goods awaiting inspection; never sellable."""

    model = QuarantineLedgerEntry
