"""
Exchange reconciler tests.

Verifies:
- Returned goods land in quarantine; issued goods leave sellable stock
- Lines with no quantity are dropped; an empty exchange is rejected
- Unknown items are kept on the exchange without touching the ledgers
- Price difference settlement must balance and happens once
- Sale links are best effort
"""

import pytest

from app.models import Exchange, ExchangeSaleLink, ExchangeSettlement
from app.services.actor_service import ANONYMOUS, Actor
from app.services.exchange_service import exchange_due_cents
from app.validation import NotFoundError, SettlementError, StateConflictError, ValidationError


def _exchange(engine, outlet, item_back, item_out, **kwargs):
    return engine.exchanges.process_exchange(
        original_sale_ref="BILL-1001",
        actor=kwargs.pop("actor", ANONYMOUS),
        location_id=outlet.id,
        returns=[{"item_id": item_back.id, "quantity": 1, "unit_price_cents": 100000}],
        issues=[{"item_id": item_out.id, "quantity": 1, "unit_price_cents": 120000}],
        **kwargs,
    )


class TestProcessExchange:
    def test_return_and_issue(self, engine, db_session, outlet_a, item_tee, item_hoodie):
        engine.stock_ledger.increment(outlet_a.id, item_hoodie.id, 3)
        db_session.commit()

        result = _exchange(
            engine, outlet_a, item_tee, item_hoodie,
            actor=Actor(user_id=4, name="Meera"),
            customer_name="R. Kapoor",
            reason="Size swap",
        )

        assert result["returned_total_cents"] == 100000
        assert result["issued_total_cents"] == 120000
        assert result["difference_cents"] == 20000
        assert result["created_by_name"] == "Meera"
        assert result["returns"][0]["sku"] == "TEE-BLK-M"
        assert result["issues"][0]["name"] == "Zip Hoodie"
        assert engine.quarantine_ledger.quantity(outlet_a.id, item_tee.id) == 1
        assert engine.stock_ledger.quantity(outlet_a.id, item_tee.id) == 0
        assert engine.stock_ledger.quantity(outlet_a.id, item_hoodie.id) == 2

    def test_issue_clamps_at_zero(self, engine, outlet_a, item_tee, item_hoodie):
        _exchange(engine, outlet_a, item_tee, item_hoodie)

        assert engine.stock_ledger.quantity(outlet_a.id, item_hoodie.id) == 0

    def test_zero_quantity_lines_are_dropped(self, engine, outlet_a, item_tee, item_hoodie):
        result = engine.exchanges.process_exchange(
            original_sale_ref="BILL-2",
            actor=ANONYMOUS,
            location_id=outlet_a.id,
            returns=[
                {"item_id": item_tee.id, "qty": 2, "price_cents": 50000},
                {"item_id": item_hoodie.id, "qty": 0, "price_cents": 80000},
            ],
            issues=[{"item_id": item_hoodie.id, "quantity": -1}],
        )

        assert len(result["returns"]) == 1
        assert result["returns"][0]["quantity"] == 2
        assert result["issues"] == []
        assert result["difference_cents"] == -100000

    def test_empty_exchange_rejected(self, engine, db_session, outlet_a, item_tee):
        with pytest.raises(ValidationError):
            engine.exchanges.process_exchange(
                original_sale_ref="BILL-3",
                actor=ANONYMOUS,
                location_id=outlet_a.id,
                returns=[{"item_id": item_tee.id, "quantity": 0}],
                issues=[],
            )

        assert db_session.query(Exchange).count() == 0

    def test_requires_sale_ref(self, engine, outlet_a, item_tee):
        with pytest.raises(ValidationError):
            engine.exchanges.process_exchange(
                original_sale_ref="  ",
                actor=ANONYMOUS,
                location_id=outlet_a.id,
                returns=[{"item_id": item_tee.id, "quantity": 1}],
            )

    def test_non_integer_quantity_rejected(self, engine, outlet_a, item_tee):
        with pytest.raises(ValidationError):
            engine.exchanges.process_exchange(
                original_sale_ref="BILL-4",
                actor=ANONYMOUS,
                location_id=outlet_a.id,
                returns=[{"item_id": item_tee.id, "quantity": "1.5"}],
            )

    def test_unknown_item_kept_without_ledger(self, engine, db_session, outlet_a):
        result = engine.exchanges.process_exchange(
            original_sale_ref="BILL-5",
            actor=ANONYMOUS,
            location_id=outlet_a.id,
            returns=[{"sku": "OLD-SKU-9", "name": "Discontinued cap", "quantity": 1, "unit_price_cents": 30000}],
        )

        line = result["returns"][0]
        assert line["item_id"] is None
        assert line["sku"] == "OLD-SKU-9"
        assert line["name"] == "Discontinued cap"
        assert engine.quarantine_ledger.read_all_for_location(outlet_a.id) == []

    def test_sku_resolves_item(self, engine, outlet_a, item_tee):
        result = engine.exchanges.process_exchange(
            original_sale_ref="BILL-6",
            actor=ANONYMOUS,
            location_id=outlet_a.id,
            returns=[{"sku": "ST1001", "quantity": 1}],
        )

        assert result["returns"][0]["item_id"] == item_tee.id
        assert engine.quarantine_ledger.quantity(outlet_a.id, item_tee.id) == 1

    def test_without_location_ledgers_untouched(self, engine, db_session, item_tee):
        result = engine.exchanges.process_exchange(
            original_sale_ref="BILL-7",
            actor=ANONYMOUS,
            returns=[{"item_id": item_tee.id, "quantity": 1}],
        )

        assert result["location_id"] is None
        assert result["created_by_name"] == "Unknown"

    def test_get(self, engine, outlet_a, item_tee, item_hoodie):
        created = _exchange(engine, outlet_a, item_tee, item_hoodie)

        assert engine.exchanges.get(created["id"])["original_sale_ref"] == "BILL-1001"
        assert engine.exchanges.get(999) is None


class TestSettlement:
    def test_due_amount(self):
        assert exchange_due_cents(100000, 120000) == 20000
        assert exchange_due_cents(120000, 100000) == 0

    def test_exact_payment_accepted(self, engine, outlet_a, item_tee, item_hoodie):
        created = _exchange(engine, outlet_a, item_tee, item_hoodie)

        result = engine.exchanges.settle_difference(
            created["id"],
            original_total_cents=100000,
            new_total_cents=120000,
            payments=[{"method": "cash", "amount_cents": 5000}, {"method": "UPI", "amount_cents": 15000, "ref": "UTR9"}],
        )

        assert result["due_cents"] == 20000
        assert result["paid_cents"] == 20000
        assert result["accepted_partial"] is False
        assert [p["method"] for p in result["payments"]] == ["cash", "upi"]
        assert engine.exchanges.get(created["id"])["settlement"]["id"] == result["id"]

    def test_short_payment_rejected(self, engine, outlet_a, item_tee, item_hoodie):
        created = _exchange(engine, outlet_a, item_tee, item_hoodie)

        with pytest.raises(SettlementError) as exc:
            engine.exchanges.settle_difference(
                created["id"],
                original_total_cents=100000,
                new_total_cents=120000,
                payments=[{"method": "card", "amount_cents": 15000}],
            )

        assert exc.value.status_code == 400
        assert exc.value.details == {"due_cents": 20000, "paid_cents": 15000}
        assert engine.exchanges.get(created["id"])["settlement"] is None

    def test_short_payment_accepted_when_partial_allowed(self, engine, outlet_a, item_tee, item_hoodie):
        created = _exchange(engine, outlet_a, item_tee, item_hoodie)

        result = engine.exchanges.settle_difference(
            created["id"],
            original_total_cents=100000,
            new_total_cents=120000,
            payments=[{"method": "card", "amount_cents": 15000}],
            accept_partial=True,
        )

        assert result["accepted_partial"] is True
        assert result["paid_cents"] == 15000

    def test_overpayment_rejected_even_when_partial_allowed(self, engine, outlet_a, item_tee, item_hoodie):
        created = _exchange(engine, outlet_a, item_tee, item_hoodie)

        with pytest.raises(SettlementError):
            engine.exchanges.settle_difference(
                created["id"],
                original_total_cents=100000,
                new_total_cents=120000,
                payments=[{"method": "cash", "amount_cents": 25000}],
                accept_partial=True,
            )

    def test_nothing_due_needs_no_payments(self, engine, outlet_a, item_tee, item_hoodie):
        created = _exchange(engine, outlet_a, item_tee, item_hoodie)

        result = engine.exchanges.settle_difference(
            created["id"], original_total_cents=120000, new_total_cents=100000, payments=[]
        )

        assert result["due_cents"] == 0
        assert result["payments"] == []

    def test_settles_once(self, engine, outlet_a, item_tee, item_hoodie):
        created = _exchange(engine, outlet_a, item_tee, item_hoodie)
        engine.exchanges.settle_difference(
            created["id"],
            original_total_cents=100000,
            new_total_cents=120000,
            payments=[{"method": "cash", "amount_cents": 20000}],
        )

        with pytest.raises(StateConflictError):
            engine.exchanges.settle_difference(
                created["id"],
                original_total_cents=100000,
                new_total_cents=120000,
                payments=[{"method": "cash", "amount_cents": 20000}],
            )

    def test_concurrent_settle_conflicts(self, engine, db_session, monkeypatch, outlet_a, item_tee, item_hoodie):
        created = _exchange(engine, outlet_a, item_tee, item_hoodie)
        settle = dict(original_total_cents=100000, new_total_cents=120000, payments=[{"method": "cash", "amount_cents": 20000}])
        engine.exchanges.settle_difference(created["id"], **settle)

        # Second writer passed the existence check before the first committed
        monkeypatch.setattr(engine.exchanges, "_settlement_exists", lambda exchange_id: False)

        with pytest.raises(StateConflictError) as exc:
            engine.exchanges.settle_difference(created["id"], **settle)

        assert exc.value.status_code == 409
        assert db_session.query(ExchangeSettlement).filter_by(exchange_id=created["id"]).count() == 1

    @pytest.mark.parametrize("payment", [
        {"method": "cheque", "amount_cents": 20000},
        {"method": "cash", "amount_cents": 0},
        {"method": "cash", "amount_cents": "200.00"},
    ])
    def test_bad_payment_rejected(self, engine, outlet_a, item_tee, item_hoodie, payment):
        created = _exchange(engine, outlet_a, item_tee, item_hoodie)

        with pytest.raises(ValidationError):
            engine.exchanges.settle_difference(
                created["id"], original_total_cents=100000, new_total_cents=120000, payments=[payment]
            )

    def test_missing_exchange(self, engine):
        with pytest.raises(NotFoundError):
            engine.exchanges.settle_difference(
                999, original_total_cents=0, new_total_cents=0, payments=[]
            )


class TestMarkExchanged:
    def test_records_link(self, engine, db_session):
        assert engine.exchanges.mark_exchanged("BILL-1001", exchange_id=7, new_sale_ref="BILL-1050") is True

        links = engine.exchanges.links_for_sale("BILL-1001")
        assert [(l["exchange_id"], l["new_sale_ref"]) for l in links] == [(7, "BILL-1050")]

    def test_bad_optional_fields_are_swallowed(self, engine, db_session):
        assert engine.exchanges.mark_exchanged("BILL-1001", exchange_id="not-a-number") is False
        assert db_session.query(ExchangeSaleLink).count() == 0

    def test_missing_sale_ref_is_an_error(self, engine):
        with pytest.raises(ValidationError):
            engine.exchanges.mark_exchanged(None)
