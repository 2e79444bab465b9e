"""
HTTP surface: provider endpoints and operator API.

Requests go through httpx.ASGITransport so the app shares the test's
event loop and database.
"""
import httpx
import pytest

from hookline.main import app
from hookline.models.inbound import InboundStatus
from hookline.routes.inbound import get_inbound_receiver
from hookline.services.collaborators import collaborators
from hookline.services.inbound_processor import InboundProcessor
from hookline.services.inbound_receiver import InboundReceiver
from hookline.services.jwt_service import JWTService
from hookline.services.webhook_call import WebhookCall


BIT_PARAMS = {"orderid": "1001", "orderkey": "key-1001", "documentid": "D-9", "customerid": "C-7"}


@pytest.fixture
async def client(db, orders, handler, monkeypatch):
    # Operator reprocessing builds its own processor from the registered collaborators
    monkeypatch.setattr(collaborators, "payment_handler", handler)
    app.dependency_overrides[get_inbound_receiver] = lambda: InboundReceiver(
        db, order_directory=orders, handler=handler, process_async=False, signing_secret=""
    )
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://hookline.test") as http:
        yield http
    app.dependency_overrides.clear()


def auth(role="admin"):
    return {"Authorization": f"Bearer {JWTService().create_token('ops@example.test', role=role)}"}


async def test_bit_ipn_by_query_twice(client, handler):
    first = await client.get("/webhooks/bit", params=BIT_PARAMS)
    second = await client.get("/webhooks/bit", params=BIT_PARAMS)

    assert first.status_code == 200 and first.json()["success"] is True
    assert second.status_code == 200 and second.json()["duplicate"] is True
    assert len(handler.calls) == 1


async def test_bit_ipn_by_form_post(client, handler):
    response = await client.post("/webhooks/bit", data=BIT_PARAMS)
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert handler.calls == [("transaction_completed", "1001", "D-9", "C-7")]


async def test_bit_ipn_missing_field_still_200(client, handler):
    response = await client.get("/webhooks/bit", params={"orderid": "1001", "orderkey": "key-1001"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert "Missing documentid in webhook request" in body["errors"]
    assert handler.calls == []


async def test_bit_ipn_internal_error_still_200(db, orders):
    class Exploding(InboundReceiver):
        async def receive(self, *args, **kwargs):
            raise RuntimeError("database went away")

    app.dependency_overrides[get_inbound_receiver] = lambda: Exploding(db, order_directory=orders)
    try:
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://hookline.test") as http:
            response = await http.get("/webhooks/bit", params=BIT_PARAMS)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json() == {"success": False, "message": "Webhook processing failed"}


async def test_card_callback_wrong_key_is_forbidden(client, handler):
    response = await client.get("/callback/card", params={"OG-OrderID": "1001", "OG-OrderKey": "wrong"})
    assert response.status_code == 403
    assert handler.calls == []


async def test_card_callback_missing_key_is_bad_request(client):
    response = await client.get("/callback/card", params={"OG-OrderID": "1001"})
    assert response.status_code == 400


async def test_card_callback_success(client, handler):
    response = await client.get(
        "/callback/card",
        params={"OG-OrderID": "2002", "OG-OrderKey": "key-2002", "OG-PaymentID": "P-3"},
    )
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert handler.calls == [("card_payment_returned", "2002")]


async def test_sumit_trigger_json_and_path_type(client, handler):
    response = await client.post("/webhooks/sumit/card-created", json={"WebhookID": "w-1", "CardID": 5})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert handler.calls == [("provider_trigger", "card_created")]


async def test_sumit_trigger_wrapped_form(client, handler):
    response = await client.post("/webhooks/sumit", data={"json": '{"Folder": "Leads", "Type": "Create", "EventID": "e-9"}'})

    assert response.json()["success"] is True
    assert handler.calls == [("provider_trigger", "crm")]


async def test_sumit_unknown_trigger_type(client, handler):
    response = await client.post("/webhooks/sumit/card-exploded", json={"CardID": 5})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert handler.calls == []

    listing = await client.get("/api/inbound", params={"status": "invalid"}, headers=auth())
    records = listing.json()["records"]
    assert [r["id"] for r in records] == [body["webhook_id"]]
    assert records[0]["event_type"] == "card_exploded"


async def test_operator_routes_require_admin(client):
    assert (await client.get("/api/deliveries")).status_code in (401, 403)
    assert (await client.get("/api/deliveries", headers=auth(role="viewer"))).status_code == 403


async def test_operator_lists_deliveries(client, db, pool):
    delivery_id = await WebhookCall.create().event("ping").url("https://example.test/").dispatch(db, pool=pool)

    listing = await client.get("/api/deliveries", params={"status": "pending"}, headers=auth())
    assert listing.status_code == 200
    body = listing.json()
    assert [d["id"] for d in body["deliveries"]] == [delivery_id]
    assert body["counts"]["pending"] == 1

    one = await client.get(f"/api/deliveries/{delivery_id}", headers=auth())
    assert one.json()["status"] == "pending"

    assert (await client.get("/api/deliveries/nope", headers=auth())).status_code == 404
    assert (await client.get("/api/deliveries", params={"status": "lost"}, headers=auth())).status_code == 400


async def test_operator_reprocesses_inbound(client, handler):
    received = (await client.get("/webhooks/bit", params=BIT_PARAMS)).json()

    listing = await client.get("/api/inbound", params={"status": "processed"}, headers=auth())
    assert [r["id"] for r in listing.json()["records"]] == [received["webhook_id"]]

    response = await client.post(f"/api/inbound/{received['webhook_id']}/reprocess", headers=auth())
    assert response.status_code == 200
    assert response.json()["status"] == InboundStatus.PROCESSED.value
    assert len(handler.calls) == 2


async def test_invalid_inbound_cannot_be_reprocessed(client):
    received = (await client.get("/webhooks/bit", params={"orderid": "1001"})).json()

    response = await client.post(f"/api/inbound/{received['webhook_id']}/reprocess", headers=auth())
    assert response.status_code == 409


async def test_health_and_metrics(client):
    health = await client.get("/health")
    assert health.json() == {"status": "healthy", "database": "connected"}

    await client.get("/webhooks/bit", params=BIT_PARAMS)
    metrics = await client.get("/metrics")
    assert "inbound_webhooks_total" in metrics.text


async def test_long_forwarded_for_is_truncated(client, db):
    response = await client.get("/webhooks/bit", params=BIT_PARAMS, headers={"X-Forwarded-For": "a" * 300 + ", 10.0.0.1"})
    body = response.json()
    assert body["success"] is True

    record = await InboundProcessor(db).get_record(body["webhook_id"])
    assert record.source_ip == "a" * 64
