"""
Stock and quarantine ledger tests.

Verifies:
- Increments accumulate on one (location, item) row
- Decrements clamp at zero and create missing rows at zero
- Quarantine is a separate ledger
- Only positive integer quantities are accepted
"""

import pytest

from app.models import QuarantineLedgerEntry, StockLedgerEntry
from app.validation import ValidationError


class TestStockLedger:
    def test_read_missing_row_is_zero(self, engine, outlet_a, item_tee):
        assert engine.stock_ledger.quantity(outlet_a.id, item_tee.id) == 0

    def test_read_joins_display_attributes(self, engine, db_session, outlet_a, item_tee):
        engine.stock_ledger.increment(outlet_a.id, item_tee.id, 2)
        db_session.commit()

        row = engine.stock_ledger.read(outlet_a.id, item_tee.id)

        assert row["quantity"] == 2
        assert (row["location_code"], row["location_name"]) == ("OUT-A", "Outlet A")
        assert (row["item_code"], row["stock_no"], row["size"]) == ("TEE-BLK-M", "ST1001", "M")
        assert row == engine.stock_ledger.read_all_for_location(outlet_a.id)[0]

    def test_read_never_stocked(self, engine, outlet_a, item_tee):
        row = engine.stock_ledger.read(outlet_a.id, item_tee.id)

        assert row["quantity"] == 0
        assert row["updated_at"] is None
        assert engine.stock_ledger.read(outlet_a.id, 9999) is None
        assert engine.stock_ledger.read(9999, item_tee.id) is None

    def test_increments_accumulate_on_one_row(self, engine, db_session, outlet_a, item_tee):
        engine.stock_ledger.increment(outlet_a.id, item_tee.id, 3)
        engine.stock_ledger.increment(outlet_a.id, item_tee.id, 4)
        db_session.commit()

        assert engine.stock_ledger.quantity(outlet_a.id, item_tee.id) == 7
        assert db_session.query(StockLedgerEntry).count() == 1

    def test_decrement_clamps_at_zero(self, engine, db_session, outlet_a, item_tee):
        engine.stock_ledger.increment(outlet_a.id, item_tee.id, 2)
        engine.stock_ledger.decrement(outlet_a.id, item_tee.id, 5)
        db_session.commit()

        assert engine.stock_ledger.quantity(outlet_a.id, item_tee.id) == 0

    def test_decrement_creates_missing_row_at_zero(self, engine, db_session, outlet_a, item_tee):
        engine.stock_ledger.decrement(outlet_a.id, item_tee.id, 1)
        db_session.commit()

        row = db_session.query(StockLedgerEntry).filter_by(location_id=outlet_a.id, item_id=item_tee.id).one()
        assert row.quantity == 0

    def test_partial_decrement(self, engine, db_session, outlet_a, item_tee):
        engine.stock_ledger.increment(outlet_a.id, item_tee.id, 10)
        engine.stock_ledger.decrement(outlet_a.id, item_tee.id, 4)
        db_session.commit()

        assert engine.stock_ledger.quantity(outlet_a.id, item_tee.id) == 6

    def test_conservation_over_a_sequence(self, engine, db_session, outlet_a, item_tee):
        increments = [5, 1, 7, 2]
        for qty in increments:
            engine.stock_ledger.increment(outlet_a.id, item_tee.id, qty)
        db_session.commit()

        assert engine.stock_ledger.quantity(outlet_a.id, item_tee.id) == sum(increments)

    @pytest.mark.parametrize("qty", [0, -1, 1.5, "2.0", True, None])
    def test_rejects_non_positive_or_non_integer_quantity(self, engine, outlet_a, item_tee, qty):
        with pytest.raises(ValidationError):
            engine.stock_ledger.increment(outlet_a.id, item_tee.id, qty)

    def test_read_all_for_location_joins_item_master(self, engine, db_session, outlet_a, outlet_b, item_tee, item_hoodie):
        engine.stock_ledger.increment(outlet_a.id, item_tee.id, 2)
        engine.stock_ledger.increment(outlet_a.id, item_hoodie.id, 1)
        engine.stock_ledger.increment(outlet_b.id, item_tee.id, 9)
        db_session.commit()

        rows = engine.stock_ledger.read_all_for_location(outlet_a.id)

        assert [r["item_code"] for r in rows] == ["HOOD-GRY-L", "TEE-BLK-M"]
        tee = next(r for r in rows if r["item_id"] == item_tee.id)
        assert tee["quantity"] == 2
        assert tee["stock_no"] == "ST1001"
        assert tee["size"] == "M"


class TestQuarantineLedger:
    def test_quarantine_is_separate_from_sellable(self, engine, db_session, outlet_a, item_tee):
        engine.quarantine_ledger.increment(outlet_a.id, item_tee.id, 3)
        db_session.commit()

        assert engine.quarantine_ledger.quantity(outlet_a.id, item_tee.id) == 3
        assert engine.stock_ledger.quantity(outlet_a.id, item_tee.id) == 0
        assert db_session.query(QuarantineLedgerEntry).count() == 1
        assert db_session.query(StockLedgerEntry).count() == 0

    def test_quarantine_decrement_clamps(self, engine, db_session, outlet_a, item_tee):
        engine.quarantine_ledger.increment(outlet_a.id, item_tee.id, 1)
        engine.quarantine_ledger.decrement(outlet_a.id, item_tee.id, 3)
        db_session.commit()

        assert engine.quarantine_ledger.quantity(outlet_a.id, item_tee.id) == 0
