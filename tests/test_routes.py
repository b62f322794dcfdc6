"""HTTP surface: envelopes, auth, bookings, admin, chat and the Paystack webhook."""
import hashlib
import hmac
import json

import httpx
import pytest

from app import app
from conftest import auth_headers, stay
from core.get_db import get_db_async, get_session_factory
from fintechs.paystack import get_payment_gateway


@pytest.fixture
async def client(session_factory, gateway, holds, monkeypatch):
    async def override_db():
        async with session_factory() as session:
            yield session

    monkeypatch.setattr("services.booking_service.booking_holds", holds)
    app.dependency_overrides[get_db_async] = override_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _signed(payload: dict):
    body = json.dumps(payload).encode()
    signature = hmac.new(b"sk_test_secret", body, hashlib.sha512).hexdigest()
    return body, {"x-paystack-signature": signature, "Content-Type": "application/json"}


async def _create_booking(client, user, listing, days=5, nights=3):
    check_in, check_out = stay(days, nights)
    return await client.post(
        "/v1/bookings/create",
        json={
            "property_id": str(listing.id),
            "check_in_date": check_in.isoformat(),
            "check_out_date": check_out.isoformat(),
            "number_of_guests": 2,
        },
        headers=auth_headers(user),
    )


class TestRouteTable:
    def test_booking_lists_are_served_at_the_collection_path(self):
        paths = {route.path for route in app.routes}
        assert {
            "/v1/bookings",
            "/v1/bookings/create",
            "/v1/bookings/{booking_id}",
            "/v1/admin/bookings",
            "/v1/admin/bookings/stats",
            "/v1/chat/conversations",
            "/v1/webhooks/paystack",
            "/v1/ws/chat",
        } <= paths


class TestEnvelope:
    async def test_health(self, client):
        res = await client.get("/health")
        assert res.status_code == 200
        assert res.json() == {"status": "ok"}

    async def test_missing_token_is_401(self, client):
        res = await client.get("/v1/bookings")
        assert res.status_code == 401
        assert res.json() == {"status": False, "message": "Not authenticated", "data": None}

    async def test_garbage_token_is_401(self, client):
        res = await client.get("/v1/bookings", headers={"Authorization": "Bearer nope"})
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid token"

    async def test_validation_errors_use_the_envelope(self, client, renter):
        res = await client.post(
            "/v1/bookings/create", json={"number_of_guests": 1}, headers=auth_headers(renter)
        )
        body = res.json()
        assert res.status_code == 400
        assert body["status"] is False
        assert "property_id" in body["message"]


class TestBookingRoutes:
    async def test_create_and_fetch(self, client, gateway, renter, listing):
        res = await _create_booking(client, renter, listing)

        assert res.status_code == 201
        data = res.json()["data"]
        assert data["booking"]["booking_status"] == "pending"
        assert float(data["booking"]["total_amount"]) == 75000
        assert data["payment_url"].endswith(data["reference"])
        assert gateway.initialized[0]["amount_minor"] == 7500000

        booking_id = data["booking"]["id"]
        fetched = await client.get(f"/v1/bookings/{booking_id}", headers=auth_headers(renter))
        assert fetched.json()["data"]["id"] == booking_id

        listed = await client.get("/v1/bookings", headers=auth_headers(renter))
        assert listed.json()["data"]["pagination"]["total"] == 1

    async def test_other_users_bookings_are_hidden(self, client, renter, other_renter, listing):
        booking_id = (await _create_booking(client, renter, listing)).json()["data"]["booking"]["id"]
        res = await client.get(f"/v1/bookings/{booking_id}", headers=auth_headers(other_renter))
        assert res.status_code == 404

    async def test_gateway_outage_is_502(self, client, gateway, renter, listing):
        gateway.initialize_error = RuntimeError("connection reset")
        res = await _create_booking(client, renter, listing)
        assert res.status_code == 502
        assert res.json()["status"] is False

    async def test_verify_payment(self, client, gateway, renter, listing):
        data = (await _create_booking(client, renter, listing)).json()["data"]
        reference = data["reference"]

        failed = await client.get(
            "/v1/bookings/verify-payment",
            params={"reference": reference},
            headers=auth_headers(renter),
        )
        assert failed.status_code == 400
        assert failed.json()["message"] == "Payment verification failed"

        gateway.succeed(reference, 75000)
        ok = await client.get(
            "/v1/bookings/verify-payment",
            params={"reference": reference},
            headers=auth_headers(renter),
        )
        body = ok.json()
        assert ok.status_code == 200
        assert body["message"] == "Payment verified and booking confirmed"
        assert body["data"]["outcome"] == "confirmed"
        assert body["data"]["booking"]["payment_status"] == "paid"

    async def test_cancel(self, client, renter, listing):
        booking_id = (await _create_booking(client, renter, listing)).json()["data"]["booking"]["id"]
        first = await client.post(f"/v1/bookings/{booking_id}/cancel", headers=auth_headers(renter))
        again = await client.post(f"/v1/bookings/{booking_id}/cancel", headers=auth_headers(renter))

        assert first.json()["data"]["booking_status"] == "cancelled"
        assert again.status_code == 409


class TestAdminRoutes:
    async def test_renter_is_forbidden(self, client, renter):
        res = await client.get("/v1/admin/bookings", headers=auth_headers(renter))
        assert res.status_code == 403
        assert res.json()["message"] == "Access Denied"

    async def test_admin_lists_filters_and_moves(self, client, gateway, renter, admin, listing):
        data = (await _create_booking(client, renter, listing)).json()["data"]
        booking_id = data["booking"]["id"]

        pending = await client.get(
            "/v1/admin/bookings", params={"status": "pending"}, headers=auth_headers(admin)
        )
        assert [b["id"] for b in pending.json()["data"]["items"]] == [booking_id]

        blocked = await client.patch(
            f"/v1/admin/bookings/{booking_id}",
            json={"booking_status": "confirmed"},
            headers=auth_headers(admin),
        )
        assert blocked.status_code == 409

        stats = await client.get("/v1/admin/bookings/stats", headers=auth_headers(admin))
        assert stats.json()["data"]["by_status"]["pending"] == 1
        assert stats.json()["data"]["total"] == 1

        cancelled = await client.post(
            f"/v1/admin/bookings/{booking_id}/cancel", headers=auth_headers(admin)
        )
        assert cancelled.json()["data"]["booking_status"] == "cancelled"

    async def test_bad_status_value_is_rejected(self, client, admin, renter, listing):
        booking_id = (await _create_booking(client, renter, listing)).json()["data"]["booking"]["id"]
        res = await client.patch(
            f"/v1/admin/bookings/{booking_id}",
            json={"booking_status": "teleported"},
            headers=auth_headers(admin),
        )
        assert res.status_code == 400


class TestChatRoutes:
    async def test_conversation_and_messages_flow(self, client, renter, landlord, listing):
        started = await client.post(
            "/v1/chat/conversations",
            json={
                "participant_id": str(landlord.id),
                "property_id": str(listing.id),
                "type": "property_inquiry",
            },
            headers=auth_headers(renter),
        )
        assert started.status_code == 201
        convo = started.json()["data"]
        assert convo["meta"]["property_title"] == "Lekki Studio Apartment"

        sent = await client.post(
            f"/v1/chat/conversations/{convo['id']}/messages",
            json={"content": "Is parking included?"},
            headers=auth_headers(renter),
        )
        assert sent.status_code == 201
        message_id = sent.json()["data"]["id"]

        inbox = (await client.get("/v1/chat/conversations", headers=auth_headers(landlord))).json()
        [item] = inbox["data"]["items"]
        assert item["unread_count"] == 1
        assert item["other_participant"]["email"] == "renter@example.com"

        read = await client.put(
            f"/v1/chat/conversations/{convo['id']}/read", headers=auth_headers(landlord)
        )
        assert read.json()["data"] == {"updated": 1}

        history = await client.get(
            f"/v1/chat/conversations/{convo['id']}/messages", headers=auth_headers(landlord)
        )
        assert [m["id"] for m in history.json()["data"]["items"]] == [message_id]

        edited = await client.put(
            f"/v1/chat/messages/{message_id}",
            json={"content": "Is parking included in the rent?"},
            headers=auth_headers(renter),
        )
        assert edited.json()["data"]["is_edited"] is True

        found = await client.get(
            "/v1/chat/conversations/search", params={"query": "lekki"}, headers=auth_headers(renter)
        )
        assert found.json()["data"]["pagination"]["query"] == "lekki"
        assert len(found.json()["data"]["items"]) == 1

        stats = await client.get("/v1/chat/stats", headers=auth_headers(renter))
        assert stats.json()["data"]["property_inquiries"] == 1

    async def test_chat_errors(self, client, renter, landlord, other_renter):
        convo = (
            await client.post(
                "/v1/chat/conversations",
                json={"participant_id": str(landlord.id)},
                headers=auth_headers(renter),
            )
        ).json()["data"]

        self_chat = await client.post(
            "/v1/chat/conversations",
            json={"participant_id": str(renter.id)},
            headers=auth_headers(renter),
        )
        assert self_chat.status_code == 400

        outsider = await client.post(
            f"/v1/chat/conversations/{convo['id']}/messages",
            json={"content": "hi"},
            headers=auth_headers(other_renter),
        )
        assert outsider.status_code == 403

        empty = await client.get("/v1/chat/conversations/search", headers=auth_headers(renter))
        assert empty.status_code == 400
        assert empty.json()["message"] == "Search query is required"

        removed = await client.delete(
            f"/v1/chat/conversations/{convo['id']}", headers=auth_headers(renter)
        )
        assert removed.json()["status"] is True
        inbox = await client.get("/v1/chat/conversations", headers=auth_headers(renter))
        assert inbox.json()["data"]["items"] == []


class TestPaystackWebhook:
    async def test_rejects_bad_signature(self, client):
        res = await client.post(
            "/v1/webhooks/paystack",
            content=b'{"event":"charge.success","data":{}}',
            headers={"x-paystack-signature": "forged"},
        )
        assert res.status_code == 401

    async def test_ignores_other_events(self, client):
        body, headers = _signed({"event": "transfer.success", "data": {}})
        res = await client.post("/v1/webhooks/paystack", content=body, headers=headers)
        assert res.json()["data"] == {"status": "ignored"}

    async def test_unknown_reference_is_acknowledged(self, client):
        body, headers = _signed({"event": "charge.success", "data": {"reference": "BKG-x"}})
        res = await client.post("/v1/webhooks/paystack", content=body, headers=headers)
        assert res.status_code == 200
        assert res.json()["data"] == {"status": "unknown payment"}

    async def test_charge_success_confirms_once(self, client, gateway, renter, listing):
        reference = (await _create_booking(client, renter, listing)).json()["data"]["reference"]
        gateway.succeed(reference, 75000)
        body, headers = _signed({"event": "charge.success", "data": {"reference": reference}})

        first = await client.post("/v1/webhooks/paystack", content=body, headers=headers)
        second = await client.post("/v1/webhooks/paystack", content=body, headers=headers)

        assert first.json()["data"] == {"status": "confirmed"}
        assert second.json()["data"] == {"status": "already_processed"}
        assert gateway.verify_calls == [reference]
