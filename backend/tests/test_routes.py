"""
HTTP surface tests.

Verifies status codes and error bodies for each endpoint.
"""

import pytest

from app.services import metrics
from conftest import actor_headers


def _create_transfer(client, hq, outlet, item, qty=2):
    response = client.post(
        "/api/transfers/requests",
        json={
            "from_location_id": hq.id,
            "to_location_id": outlet.id,
            "lines": [{"item_id": item.id, "quantity": qty}],
        },
    )
    assert response.status_code == 201
    return response.get_json()


class TestRequestBodies:
    @pytest.mark.parametrize("method, path", [
        ("post", "/api/transfers/requests"),
        ("put", "/api/transfers/requests/1/lines"),
        ("put", "/api/transfers/requests/1"),
        ("post", "/api/sales/exchange"),
        ("post", "/api/sales/exchange/1/settle"),
        ("post", "/api/sales/mark-exchanged"),
        ("post", "/api/sales/hold"),
    ])
    def test_non_object_body_is_rejected(self, client, db_session, method, path):
        response = getattr(client, method)(path, json=[{"original_sale_ref": "BILL-1"}])

        assert response.status_code == 400
        assert response.get_json()["error"] == "request body must be an object"


class TestTransferRoutes:
    def test_create_validation_error(self, client, db_session, outlet_a):
        response = client.post(
            "/api/transfers/requests",
            json={"to_location_id": outlet_a.id, "lines": [{"item_code": "NOPE", "quantity": 1}]},
        )

        assert response.status_code == 400
        assert response.get_json()["row"] == 0

    def test_create_without_body(self, client, db_session):
        response = client.post("/api/transfers/requests")

        assert response.status_code == 400

    def test_accepts_items_alias(self, client, db_session, outlet_a, item_tee):
        response = client.post(
            "/api/transfers/requests",
            json={"to_location_id": outlet_a.id, "items": [{"item_id": item_tee.id, "qty": 3}]},
        )

        assert response.status_code == 201
        assert response.get_json()["item_count"] == 1

    def test_replace_lines(self, client, db_session, hq, outlet_a, item_tee, item_hoodie):
        created = _create_transfer(client, hq, outlet_a, item_tee)

        response = client.put(
            f"/api/transfers/requests/{created['id']}/lines",
            json={"lines": [{"item_id": item_hoodie.id, "quantity": 7}]},
        )

        assert response.status_code == 200
        assert response.get_json()["total_qty"] == 7

    def test_replace_lines_after_ship(self, client, db_session, hq, outlet_a, item_tee):
        created = _create_transfer(client, hq, outlet_a, item_tee)
        client.put(
            f"/api/transfers/requests/{created['id']}",
            json={"status": "Shipped", "actor_location_id": hq.id},
        )

        response = client.put(
            f"/api/transfers/requests/{created['id']}/lines",
            json={"lines": [{"item_id": item_tee.id, "quantity": 1}]},
        )

        assert response.status_code == 400
        assert response.get_json()["current_status"] == "Shipped"

    def test_replace_lines_unknown_transfer(self, client, db_session, item_tee):
        response = client.put(
            "/api/transfers/requests/999/lines",
            json={"lines": [{"item_id": item_tee.id, "quantity": 1}]},
        )

        assert response.status_code == 404

    def test_status_update_flow(self, client, db_session, hq, outlet_a, item_tee):
        created = _create_transfer(client, hq, outlet_a, item_tee, qty=5)
        url = f"/api/transfers/requests/{created['id']}"

        shipped = client.put(url, json={"status": "Shipped"}, headers=actor_headers(name="Dispatch", location_id=hq.id))
        confirmed = client.put(
            url,
            json={"status": "Confirmed", "discrepancy_note": "all good"},
            headers=actor_headers(name="Store", location_id=outlet_a.id),
        )
        stock = client.get(f"/api/stock/{outlet_a.id}/{item_tee.id}")

        assert shipped.status_code == 200
        assert confirmed.status_code == 200
        assert confirmed.get_json()["discrepancy_note"] == "all good"
        row = stock.get_json()
        assert (row["location_id"], row["item_id"], row["quantity"], row["quarantine_quantity"]) == (
            outlet_a.id, item_tee.id, 5, 0
        )
        assert (row["location_name"], row["item_code"], row["name"]) == ("Outlet A", "TEE-BLK-M", "Oversized Tee")

    def test_status_update_errors(self, client, db_session, hq, outlet_a, outlet_b, item_tee):
        created = _create_transfer(client, hq, outlet_a, item_tee)
        url = f"/api/transfers/requests/{created['id']}"

        unknown = client.put(url, json={"status": "Lost", "actor_location_id": hq.id})
        illegal = client.put(url, json={"status": "Confirmed", "actor_location_id": outlet_a.id})
        forbidden = client.put(url, json={"status": "Shipped", "actor_location_id": outlet_b.id})
        missing = client.put("/api/transfers/requests/999", json={"status": "Shipped"})

        assert unknown.status_code == 400
        assert illegal.status_code == 403
        assert illegal.get_json()["current_status"] == "Pending"
        assert forbidden.status_code == 403
        assert missing.status_code == 404

    def test_list_get_and_stats(self, client, db_session, hq, outlet_a, item_tee):
        created = _create_transfer(client, hq, outlet_a, item_tee)

        listed = client.get(f"/api/transfers/requests?status=Pending&to_location_id={outlet_a.id}")
        by_code = client.get(f"/api/transfers/requests/{created['code']}")
        by_id = client.get(f"/api/transfers/requests/{created['id']}")
        missing = client.get("/api/transfers/requests/TXN-NOPE")
        stats = client.get("/api/transfers/requests/stats")
        bad_status = client.get("/api/transfers/requests?status=Lost")

        assert [r["id"] for r in listed.get_json()] == [created["id"]]
        assert by_code.get_json()["id"] == created["id"]
        assert by_id.get_json()["code"] == created["code"]
        assert missing.status_code == 404
        assert stats.get_json()["pending"] == 1
        assert bad_status.status_code == 400

    def test_inward(self, client, db_session, hq, outlet_a, item_tee):
        created = _create_transfer(client, hq, outlet_a, item_tee)

        pending = client.get(f"/api/transfers/inward?location_id={outlet_a.id}&status=pending")
        accepted = client.get(f"/api/transfers/inward?location_id={outlet_a.id}&status=accepted")
        no_location = client.get("/api/transfers/inward")
        bad_status = client.get(f"/api/transfers/inward?location_id={outlet_a.id}&status=lost")

        assert [r["id"] for r in pending.get_json()] == [created["id"]]
        assert accepted.get_json() == []
        assert no_location.status_code == 400
        assert bad_status.status_code == 400


class TestStockRoutes:
    def test_location_stock_requires_location(self, client, db_session):
        assert client.get("/api/stock").status_code == 400
        assert client.get("/api/stock/quarantine").status_code == 400

    def test_item_stock_unknown(self, client, db_session, outlet_a):
        assert client.get(f"/api/stock/{outlet_a.id}/9999").status_code == 404

    def test_location_stock(self, client, engine, db_session, outlet_a, item_tee):
        engine.stock_ledger.increment(outlet_a.id, item_tee.id, 4)
        engine.quarantine_ledger.increment(outlet_a.id, item_tee.id, 1)
        db_session.commit()

        stock = client.get(f"/api/stock?location_id={outlet_a.id}").get_json()
        quarantine = client.get(f"/api/stock/quarantine?location_id={outlet_a.id}").get_json()

        assert [(r["item_code"], r["quantity"]) for r in stock] == [("TEE-BLK-M", 4)]
        assert [(r["item_code"], r["quantity"]) for r in quarantine] == [("TEE-BLK-M", 1)]


class TestSalesRoutes:
    def test_exchange_and_settle(self, client, db_session, outlet_a, item_tee, item_hoodie):
        created = client.post(
            "/api/sales/exchange",
            json={
                "original_sale_ref": "BILL-1001",
                "location_id": outlet_a.id,
                "returns": [{"item_id": item_tee.id, "quantity": 1, "unit_price_cents": 100000}],
                "issues": [{"item_id": item_hoodie.id, "quantity": 1, "unit_price_cents": 120000}],
            },
            headers=actor_headers(name="Counter 2"),
        )
        exchange_id = created.get_json()["id"]
        settle_url = f"/api/sales/exchange/{exchange_id}/settle"
        body = {
            "original_total_cents": 100000,
            "new_total_cents": 120000,
            "payments": [{"method": "card", "amount_cents": 20000}],
        }

        short = client.post(settle_url, json={**body, "payments": [{"method": "card", "amount_cents": 15000}]})
        settled = client.post(settle_url, json=body)
        again = client.post(settle_url, json=body)
        fetched = client.get(f"/api/sales/exchange/{exchange_id}")

        assert created.status_code == 201
        assert created.get_json()["created_by_name"] == "Counter 2"
        assert short.status_code == 400
        assert short.get_json()["due_cents"] == 20000
        assert settled.status_code == 201
        assert again.status_code == 409
        assert fetched.get_json()["settlement"]["paid_cents"] == 20000

    def test_exchange_errors(self, client, db_session, outlet_a):
        empty = client.post("/api/sales/exchange", json={"original_sale_ref": "BILL-1", "returns": [], "issues": []})
        missing = client.get("/api/sales/exchange/999")
        settle_missing = client.post(
            "/api/sales/exchange/999/settle",
            json={"original_total_cents": 0, "new_total_cents": 0, "payments": []},
        )

        assert empty.status_code == 400
        assert missing.status_code == 404
        assert settle_missing.status_code == 404

    def test_mark_exchanged(self, client, db_session):
        ok = client.post("/api/sales/mark-exchanged", json={"original_sale_ref": "BILL-1", "new_sale_ref": "BILL-2"})
        swallowed = client.post("/api/sales/mark-exchanged", json={"original_sale_ref": "BILL-1", "exchange_id": "x"})
        missing = client.post("/api/sales/mark-exchanged", json={})

        assert ok.status_code == 200
        assert ok.get_json() == {"ok": True, "recorded": True}
        assert swallowed.status_code == 200
        assert swallowed.get_json() == {"ok": True, "recorded": False}
        assert missing.status_code == 400

    def test_hold_lifecycle(self, client, db_session, outlet_a):
        held = client.post(
            "/api/sales/hold",
            json={"cart": [{"sku": "CAP-01", "quantity": 2, "unit_price_cents": 45000}], "location_id": outlet_a.id, "token": "T-1"},
        )
        duplicate = client.post("/api/sales/hold", json={"cart": [{"sku": "CAP-01"}], "token": "T-1"})
        listed = client.get(f"/api/sales/hold?location_id={outlet_a.id}&max_age_hours=24")
        resumed = client.post("/api/sales/hold/T-1/resume")
        resumed_again = client.post("/api/sales/hold/T-1/resume")

        assert held.status_code == 201
        assert duplicate.status_code == 409
        assert [h["token"] for h in listed.get_json()] == ["T-1"]
        assert resumed.status_code == 200
        assert resumed.get_json()["lines"][0]["quantity"] == 2
        assert resumed_again.status_code == 404

    def test_hold_errors(self, client, db_session):
        empty = client.post("/api/sales/hold", json={"cart": []})
        bad_age = client.get("/api/sales/hold?max_age_hours=soon")
        endless_age = client.get("/api/sales/hold?max_age_hours=inf")
        unknown_location = client.post("/api/sales/hold", json={"cart": [{"sku": "CAP-01"}], "location_id": 999})
        delete_missing = client.delete("/api/sales/hold/NOPE")

        assert empty.status_code == 400
        assert bad_age.status_code == 400
        assert endless_age.status_code == 400
        assert unknown_location.status_code == 400
        assert delete_missing.status_code == 404

    def test_delete_hold(self, client, db_session):
        held = client.post("/api/sales/hold", json={"cart": [{"sku": "CAP-01"}]}).get_json()

        response = client.delete(f"/api/sales/hold/{held['id']}")

        assert response.status_code == 200
        assert response.get_json()["token"] == held["token"]


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["legacy_mirror"]["status"] == "healthy"

    def test_health_degraded_after_mirror_failure(self, client, db_session):
        metrics.incr("mirror_failures")

        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.get_json()["status"] == "degraded"

    def test_metrics(self, client, db_session, hq, outlet_a, item_tee):
        _create_transfer(client, hq, outlet_a, item_tee)

        counters = client.get("/api/metrics").get_json()

        assert counters["transfers_created"] == 1
        assert counters["mirror_writes"] == 1
        assert counters["mirror_failures"] == 0

    def test_cors_for_allowed_origin(self, app, client, db_session):
        origin = app.config["CORS_ORIGINS"][0]

        response = client.get("/api/health", headers={"Origin": origin})

        assert response.headers["Access-Control-Allow-Origin"] == origin
        assert "X-Location-Id" in response.headers["Access-Control-Allow-Headers"]
