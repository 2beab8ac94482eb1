"""
Hold bill tests.

Verifies:
- A held cart comes back unchanged and only once
- Client tokens are unique
- Delete by token or id
- List filters by age and location
- Every change writes an audit event
"""

from datetime import timedelta

import pytest

from app.models import AuditEvent, HeldBill, HeldBillLine, StockLedgerEntry
from app.services.actor_service import ANONYMOUS, Actor
from app.services.hold_service import generate_hold_token
from app.time_utils import utcnow
from app.validation import ConflictError, NotFoundError, ValidationError


CART = [
    {"item_id": 11, "sku": "TEE-BLK-M", "name": "Oversized Tee", "size": "M", "quantity": 2, "unit_price_cents": 100000},
    {"sku": "CAP-01", "name": "Cap", "price_cents": 45000},
]


def _hold(engine, location=None, **kwargs):
    return engine.holds.hold(
        cart=kwargs.pop("cart", CART),
        actor=kwargs.pop("actor", Actor(user_id=2, name="Kiran")),
        customer={"name": "Nisha", "mobile": "9800000001"},
        settings={"discount_bps": 1000, "tax_rate_bps": 1200},
        location_id=location.id if location else None,
        **kwargs,
    )


class TestHold:
    def test_token_format(self):
        token = generate_hold_token()

        assert token.startswith("H")
        assert len(token) > 7
        assert token != generate_hold_token()

    def test_hold_stores_cart(self, engine, db_session, outlet_a):
        held = _hold(engine, outlet_a)

        assert held["token"].startswith("H")
        assert held["held_by_name"] == "Kiran"
        assert held["item_count"] == 2
        assert held["total_qty"] == 3
        assert held["lines"][1]["quantity"] == 1
        assert held["lines"][1]["unit_price_cents"] == 45000
        assert held["settings"] == {"discount_bps": 1000, "tax_rate_bps": 1200}
        # Holding never touches stock
        assert db_session.query(StockLedgerEntry).count() == 0

    def test_client_token_is_kept(self, engine, outlet_a):
        held = _hold(engine, outlet_a, token="COUNTER-7")

        assert held["token"] == "COUNTER-7"

    def test_duplicate_token_conflicts(self, engine, db_session, outlet_a):
        _hold(engine, outlet_a, token="COUNTER-7")

        with pytest.raises(ConflictError) as exc:
            _hold(engine, outlet_a, token="COUNTER-7")

        assert exc.value.status_code == 409
        assert db_session.query(HeldBill).count() == 1

    def test_empty_cart_rejected(self, engine):
        with pytest.raises(ValidationError):
            _hold(engine, cart=[])

    def test_unknown_location_rejected(self, engine, db_session):
        with pytest.raises(ValidationError) as exc:
            engine.holds.hold(cart=CART, actor=ANONYMOUS, location_id=999)

        assert exc.value.status_code == 400
        assert "location_id" in exc.value.message
        assert db_session.query(HeldBill).count() == 0

    @pytest.mark.parametrize("settings", [{"discount_bps": -1}, {"tax_rate_bps": 10001}])
    def test_rejects_bad_rates(self, engine, settings):
        with pytest.raises(ValidationError):
            engine.holds.hold(cart=CART, actor=ANONYMOUS, settings=settings)


class TestResume:
    def test_resume_returns_cart_once(self, engine, db_session, outlet_a):
        held = _hold(engine, outlet_a)

        cart = engine.holds.resume(held["token"])

        assert cart["token"] == held["token"]
        assert cart["location_id"] == outlet_a.id
        assert cart["customer"] == {"name": "Nisha", "mobile": "9800000001"}
        assert cart["lines"] == held["lines"]
        assert db_session.query(HeldBill).count() == 0
        assert db_session.query(HeldBillLine).count() == 0

        with pytest.raises(NotFoundError):
            engine.holds.resume(held["token"])

    def test_resume_unknown(self, engine):
        with pytest.raises(NotFoundError):
            engine.holds.resume("H-NOPE")


class TestDelete:
    def test_delete_by_token(self, engine, db_session, outlet_a):
        held = _hold(engine, outlet_a)

        result = engine.holds.delete(held["token"])

        assert result == {"id": held["id"], "token": held["token"], "deleted": True}
        assert engine.holds.get(held["token"]) is None

    def test_delete_by_id(self, engine, db_session, outlet_a):
        held = _hold(engine, outlet_a)

        engine.holds.delete(str(held["id"]))

        assert db_session.query(HeldBill).count() == 0

    def test_delete_unknown(self, engine):
        with pytest.raises(NotFoundError):
            engine.holds.delete("12345")


class TestList:
    def test_list_newest_first(self, engine, outlet_a):
        first = _hold(engine, outlet_a)
        second = _hold(engine, outlet_a)

        assert [h["id"] for h in engine.holds.list()] == [second["id"], first["id"]]

    def test_max_age_hours(self, engine, db_session, outlet_a):
        old = _hold(engine, outlet_a)
        fresh = _hold(engine, outlet_a)
        bill = db_session.get(HeldBill, old["id"])
        bill.created_at = utcnow() - timedelta(hours=30)
        db_session.commit()

        assert [h["id"] for h in engine.holds.list(max_age_hours=24)] == [fresh["id"]]
        assert len(engine.holds.list()) == 2

    def test_location_filter(self, engine, outlet_a, outlet_b):
        _hold(engine, outlet_a)
        at_b = _hold(engine, outlet_b)

        assert [h["id"] for h in engine.holds.list(location_id=outlet_b.id)] == [at_b["id"]]

    @pytest.mark.parametrize("hours", ["soon", 0, -2, "inf", "-inf", "nan", "1e400", 24 * 367])
    def test_rejects_bad_age(self, engine, hours):
        with pytest.raises(ValidationError):
            engine.holds.list(max_age_hours=hours)


class TestAudit:
    def test_hold_lifecycle_is_audited(self, engine, db_session, outlet_a):
        resumed = _hold(engine, outlet_a)
        deleted = _hold(engine, outlet_a)
        engine.holds.resume(resumed["token"], actor=Actor(user_id=5, name="Dev"))
        engine.holds.delete(deleted["token"])

        events = db_session.query(AuditEvent).filter_by(entity_type="hold").order_by(AuditEvent.id).all()

        assert [(e.event_type, e.entity_ref) for e in events] == [
            ("hold.created", resumed["token"]),
            ("hold.created", deleted["token"]),
            ("hold.resumed", resumed["token"]),
            ("hold.deleted", deleted["token"]),
        ]
        assert events[2].actor_name == "Dev"
        assert events[3].actor_name == "Unknown"

    def test_failed_hold_writes_no_audit(self, engine, db_session, outlet_a):
        _hold(engine, outlet_a, token="DUP")

        with pytest.raises(ConflictError):
            _hold(engine, outlet_a, token="DUP")

        assert db_session.query(AuditEvent).filter_by(event_type="hold.created").count() == 1
