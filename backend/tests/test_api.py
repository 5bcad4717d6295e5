# Overview: Pytest coverage for the HTTP API surface.

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import actor_headers
from mfgledger.routes.transactions import format_cursor
from mfgledger.services import ledger_service
from mfgledger.time_utils import parse_iso_datetime


@pytest.fixture
def alice(org_a):
    return actor_headers("alice", org_a.id)


@pytest.fixture
def oscar(org_a, operator_a):
    return actor_headers("oscar", org_a.id)


def _create_item(client, headers, **overrides):
    payload = {"sku": "PIPE-10", "name": "Pipe", "item_type": "raw_material", "unit": "m"}
    payload.update(overrides)
    resp = client.post("/api/items", json=payload, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["item"]


class TestIdentity:
    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        assert resp.get_json()["status"] == "ok"

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/items"),
        ("post", "/api/transactions"),
        ("get", "/api/organizations/mine"),
        ("get", "/api/members"),
    ])
    def test_requires_identity(self, client, db_session, method, path):
        resp = getattr(client, method)(path)

        assert resp.status_code == 401
        assert resp.get_json()["kind"] == "authentication_required"

    def test_tenant_routes_require_org_header(self, client, db_session):
        resp = client.get("/api/items", headers=actor_headers("alice"))

        assert resp.status_code == 400

    def test_non_member_forbidden(self, client, db_session, org_a):
        resp = client.get("/api/items", headers=actor_headers("mallory", org_a.id))

        assert resp.status_code == 403
        assert resp.get_json()["kind"] == "authorization_error"


class TestErrorHandling:
    def test_unexpected_write_failure_is_logged(self, client, db_session, alice, monkeypatch, caplog):
        item = _create_item(client, alice)

        def explode(**kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(ledger_service, "append_transaction", explode)

        with caplog.at_level(logging.ERROR):
            resp = client.post("/api/transactions", json={
                "item_id": item["id"], "transaction_type": "receive", "quantity": 1,
            }, headers=alice)

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error", "kind": "internal_error"}
        records = [r for r in caplog.records if "POST /api/transactions" in r.getMessage()]
        assert len(records) == 1
        assert records[0].exc_info[0] is RuntimeError

    def test_unknown_route_keeps_404(self, client, db_session):
        resp = client.get("/api/nowhere")

        assert resp.status_code == 404


class TestOrganizationsApi:
    def test_create_and_list_mine(self, client, db_session):
        resp = client.post("/api/organizations", json={"name": "Gamma Foundry"}, headers=actor_headers("gina"))
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["organization"]["slug"] == "gamma-foundry"
        assert body["membership"]["role"] == "admin"

        mine = client.get("/api/organizations/mine", headers=actor_headers("gina")).get_json()
        assert [o["slug"] for o in mine["items"]] == ["gamma-foundry"]
        assert mine["items"][0]["role"] == "admin"

    def test_slug_available(self, client, db_session, org_a):
        resp = client.get("/api/organizations/slug-available?slug=acme", headers=actor_headers("x"))

        assert resp.get_json()["available"] is False

    def test_update_current_requires_admin(self, client, db_session, org_a, manager_a):
        resp = client.patch(
            "/api/organizations/current", json={"name": "Nope"},
            headers=actor_headers("mona", org_a.id),
        )
        assert resp.status_code == 403

        resp = client.patch(
            "/api/organizations/current", json={"name": "Acme Two"},
            headers=actor_headers("alice", org_a.id),
        )
        assert resp.status_code == 200
        assert resp.get_json()["organization"]["name"] == "Acme Two"

    def test_invite_accept_and_remove(self, client, db_session, org_a, alice):
        resp = client.post("/api/members", json={"user_id": "pat", "role": "manager"}, headers=alice)
        assert resp.status_code == 201
        membership_id = resp.get_json()["membership"]["id"]

        resp = client.post("/api/members/accept", headers=actor_headers("pat", org_a.id))
        assert resp.status_code == 200
        assert resp.get_json()["membership"]["joined_at"] is not None

        listing = client.get("/api/members", headers=actor_headers("pat", org_a.id)).get_json()
        assert {m["user_id"] for m in listing["items"]} == {"alice", "pat"}

        resp = client.delete(f"/api/members/{membership_id}", headers=alice)
        assert resp.status_code == 200
        assert resp.get_json()["membership"]["is_active"] is False

    def test_audit_events_visible_to_admin_only(self, client, db_session, org_a, alice, oscar, item_b):
        client.get(f"/api/items/{item_b.id}", headers=oscar)

        assert client.get("/api/organizations/current/audit-events", headers=oscar).status_code == 403

        resp = client.get(
            "/api/organizations/current/audit-events",
            query_string={"event_type": "CROSS_TENANT_ACCESS_DENIED"},
            headers=alice,
        )
        assert resp.status_code == 200
        events = resp.get_json()["items"]
        assert len(events) == 1
        assert events[0]["user_id"] == "oscar"

    def test_last_admin_conflict(self, client, db_session, org_a, alice):
        admin_id = client.get("/api/members", headers=alice).get_json()["items"][0]["id"]

        resp = client.patch(f"/api/members/{admin_id}", json={"role": "operator"}, headers=alice)

        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "conflict"


class TestItemsApi:
    def test_create_get_update(self, client, db_session, org_a, alice):
        item = _create_item(client, alice, initial_stock="7.5", reorder_point=10, metadata={"dia": "10mm"})

        assert Decimal(item["current_stock"]) == Decimal("7.5")
        assert item["is_low_stock"] is True
        assert item["metadata"] == {"dia": "10mm"}

        resp = client.patch(f"/api/items/{item['id']}", json={"name": "Steel Pipe"}, headers=alice)
        assert resp.status_code == 200
        assert resp.get_json()["item"]["name"] == "Steel Pipe"

        fetched = client.get(f"/api/items/{item['id']}", headers=alice).get_json()["item"]
        assert Decimal(fetched["current_stock"]) == Decimal("7.5")

    def test_create_validation(self, client, db_session, alice):
        resp = client.post("/api/items", json={"sku": "X-1"}, headers=alice)
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "validation_error"

        resp = client.post("/api/items", json={"sku": "X-1", "name": "X", "item_type": "raw_material",
                                               "unit": "pcs", "current_stock": 5}, headers=alice)
        assert resp.status_code == 400

    def test_duplicate_sku(self, client, db_session, alice):
        _create_item(client, alice)
        resp = client.post("/api/items", json={"sku": "pipe-10", "name": "Dup", "item_type": "raw_material",
                                               "unit": "m"}, headers=alice)

        assert resp.status_code == 409

    def test_operator_cannot_patch(self, client, db_session, alice, oscar):
        item = _create_item(client, alice)

        resp = client.patch(f"/api/items/{item['id']}", json={"name": "x"}, headers=oscar)

        assert resp.status_code == 403

    def test_foreign_item_is_tenant_mismatch(self, client, db_session, alice, item_b):
        resp = client.get(f"/api/items/{item_b.id}", headers=alice)

        assert resp.status_code == 403
        assert resp.get_json()["kind"] == "tenant_mismatch"

    def test_reports(self, client, db_session, alice):
        _create_item(client, alice, sku="LOW-1", name="Low", reorder_point=5, category="Pipes")
        _create_item(client, alice, sku="OK-1", name="Ok", reorder_point=5, initial_stock=50)

        low = client.get("/api/items/low-stock", headers=alice).get_json()
        assert [i["sku"] for i in low["items"]] == ["LOW-1"]

        summary = client.get("/api/items/summary", headers=alice).get_json()
        assert summary["total_items"] == 2
        assert summary["low_stock_items"] == 1

        categories = client.get("/api/items/categories", headers=alice).get_json()
        assert categories["categories"] == ["Pipes"]

        listing = client.get("/api/items?low_stock=true", headers=alice).get_json()
        assert listing["count"] == 1

    def test_retire_then_delete_conflict(self, client, db_session, alice):
        item = _create_item(client, alice, initial_stock=1)

        resp = client.delete(f"/api/items/{item['id']}", headers=alice)
        assert resp.status_code == 409

        resp = client.post(f"/api/items/{item['id']}/retire", headers=alice)
        assert resp.status_code == 200
        assert resp.get_json()["item"]["status"] == "discontinued"

    def test_delete_unused_item(self, client, db_session, alice):
        item = _create_item(client, alice)

        assert client.delete(f"/api/items/{item['id']}", headers=alice).status_code == 204
        assert client.get(f"/api/items/{item['id']}", headers=alice).status_code == 404

    def test_recompute(self, client, db_session, alice, oscar):
        item = _create_item(client, alice, initial_stock=3)

        assert client.post(f"/api/items/{item['id']}/recompute", headers=oscar).status_code == 403
        resp = client.post(f"/api/items/{item['id']}/recompute", headers=alice)
        assert resp.status_code == 200
        assert Decimal(resp.get_json()["item"]["current_stock"]) == Decimal("3")


class TestTransactionsApi:
    def test_append_void_and_list(self, client, db_session, alice, oscar):
        item = _create_item(client, alice)

        resp = client.post("/api/transactions", json={
            "item_id": item["id"], "transaction_type": "receive", "quantity": "100",
            "unit_cost": "1.25", "reference_type": "purchase_order", "reference_id": "PO-1",
        }, headers=oscar)
        assert resp.status_code == 201
        receipt = resp.get_json()["transaction"]
        assert Decimal(receipt["total_cost"]) == Decimal("125")

        resp = client.post("/api/transactions", json={
            "item_id": item["id"], "transaction_type": "consume", "quantity": -95,
        }, headers=oscar)
        assert Decimal(resp.get_json()["item"]["current_stock"]) == Decimal("5")

        resp = client.post("/api/transactions", json={
            "item_id": item["id"], "transaction_type": "consume", "quantity": -10,
        }, headers=oscar)
        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "insufficient_stock"

        consume_id = client.get("/api/transactions?transaction_type=consume", headers=alice).get_json()["items"][0]["id"]

        resp = client.post(f"/api/transactions/{consume_id}/void", json={"reason": "wrong job"}, headers=oscar)
        assert resp.status_code == 403

        resp = client.post(f"/api/transactions/{consume_id}/void", json={"reason": "wrong job"}, headers=alice)
        assert resp.status_code == 201
        void = resp.get_json()["transaction"]
        assert void["voids_transaction_id"] == consume_id
        assert Decimal(resp.get_json()["item"]["current_stock"]) == Decimal("100")

        original = client.get(f"/api/transactions/{consume_id}", headers=alice).get_json()["transaction"]
        assert original["voided_by_transaction_id"] == void["id"]

    def test_pagination_cursor(self, client, db_session, alice):
        item = _create_item(client, alice)
        for _ in range(5):
            client.post("/api/transactions", json={
                "item_id": item["id"], "transaction_type": "receive", "quantity": 1,
            }, headers=alice)

        first = client.get("/api/transactions?limit=2", headers=alice).get_json()
        assert len(first["items"]) == 2
        assert first["next_cursor"]

        seen = [tx["id"] for tx in first["items"]]
        cursor = first["next_cursor"]
        while cursor:
            page = client.get("/api/transactions", query_string={"limit": 2, "cursor": cursor}, headers=alice).get_json()
            seen.extend(tx["id"] for tx in page["items"])
            cursor = page["next_cursor"]

        assert seen == sorted(seen, reverse=True)
        assert len(seen) == len(set(seen)) == 5

    def test_cursor_from_aware_timestamp(self, client, db_session, alice):
        # Drivers such as psycopg return timezone-aware values for DateTime(timezone=True)
        aware = datetime(2026, 3, 1, 14, 30, 5, 123456, tzinfo=timezone(timedelta(hours=2)))

        cursor = format_cursor(aware, 42)

        assert cursor == "2026-03-01T12:30:05.123456Z|42"
        assert format_cursor(aware.astimezone(timezone.utc).replace(tzinfo=None), 42) == cursor
        assert parse_iso_datetime(cursor.split("|")[0]) == datetime(2026, 3, 1, 12, 30, 5, 123456)

        resp = client.get("/api/transactions", query_string={"cursor": cursor}, headers=alice)
        assert resp.status_code == 200

    def test_bad_cursor(self, client, db_session, alice):
        resp = client.get("/api/transactions?cursor=garbage", headers=alice)

        assert resp.status_code == 400

    def test_unknown_field_rejected(self, client, db_session, alice):
        item = _create_item(client, alice)

        resp = client.post("/api/transactions", json={
            "item_id": item["id"], "transaction_type": "receive", "quantity": 1, "org_id": 99,
        }, headers=alice)

        assert resp.status_code == 400
