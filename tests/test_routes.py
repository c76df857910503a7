"""
HTTP-level tests: routing, auth guards and the JSON error shapes clients
depend on.
"""

import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

BOT_AUTH = {"Authorization": "Bearer bot-secret"}


@pytest.fixture
def initiated(client, auth_headers, buyer, book):
    response = client.post("/purchases", json={"item_type": "book", "item_id": book.id}, headers=auth_headers(buyer))
    assert response.status_code == 201, response.text
    return response.json()


class TestPurchaseFlow:

    def test_initiate_requires_login(self, client, book):
        response = client.post("/purchases", json={"item_type": "book", "item_id": book.id})

        assert response.status_code == 401

    def test_initiate_returns_bot_link(self, initiated):
        assert initiated["purchase"]["status"] == "pending_initiation"
        assert initiated["bot_link"].startswith("https://t.me/")
        assert initiated["bot_link"].endswith(initiated["initiation_token"])

    def test_duplicate_is_a_conflict(self, client, auth_headers, initiated, buyer, book):
        response = client.post("/purchases", json={"item_type": "book", "item_id": book.id}, headers=auth_headers(buyer))

        assert response.status_code == 409

    def test_full_flow_through_admin_approval(self, client, auth_headers, initiated, buyer, admin, sent_emails):
        purchase_id = initiated["purchase"]["id"]

        linked = client.post("/telegram/link", headers=BOT_AUTH, json={
            "token": initiated["initiation_token"], "chat_id": 4242,
        })
        assert linked.json()["status"] == "awaiting_payment"

        proof = client.post(
            f"/purchases/{purchase_id}/payment-proof",
            headers=auth_headers(buyer),
            files={"file": ("receipt.png", b"\x89PNG", "image/png")},
        )
        assert proof.status_code == 200, proof.text
        assert proof.json()["status"] == "pending_verification"

        stale = client.post(f"/admin/purchases/{purchase_id}/approve", headers=auth_headers(admin), json={
            "expected_updated_at": initiated["purchase"]["updated_at"],
        })
        assert stale.status_code == 409

        approved = client.post(f"/admin/purchases/{purchase_id}/approve", headers=auth_headers(admin), json={
            "expected_updated_at": proof.json()["updated_at"], "admin_notes": "paid",
        })
        assert approved.status_code == 200, approved.text
        assert approved.json()["status"] == "completed"
        assert any(email["subject"] == "Your purchase is confirmed" for email in sent_emails)

    def test_approval_accepts_a_utc_suffixed_version(self, client, auth_headers, initiated, buyer, admin):
        purchase_id = initiated["purchase"]["id"]
        client.post("/telegram/link", headers=BOT_AUTH, json={"token": initiated["initiation_token"], "chat_id": 1})
        proof = client.post(
            f"/purchases/{purchase_id}/payment-proof",
            headers=auth_headers(buyer),
            files={"file": ("receipt.png", b"\x89PNG", "image/png")},
        )

        approved = client.post(f"/admin/purchases/{purchase_id}/approve", headers=auth_headers(admin), json={
            "expected_updated_at": proof.json()["updated_at"] + "Z",
        })
        regrant = client.post(f"/admin/purchases/{purchase_id}/grant", headers=auth_headers(admin))

        assert approved.status_code == 200, approved.text
        assert approved.json()["status"] == "completed"
        assert regrant.json() == {"granted_book_ids": []}

    def test_admin_routes_refuse_buyers(self, client, auth_headers, buyer):
        assert client.get("/admin/purchases/stats", headers=auth_headers(buyer)).status_code == 403


class TestBotGateway:

    def test_missing_or_wrong_secret(self, client):
        missing = client.post("/telegram/purchase-info", json={"token": "x"})
        wrong = client.post("/telegram/purchase-info", json={"token": "x"}, headers={"Authorization": "Bearer no"})

        assert missing.status_code == 401
        assert missing.json() == {"error": "Unauthorized", "code": "UNAUTHORIZED"}
        assert wrong.status_code == 401

    def test_missing_token(self, client):
        without_body = client.post("/telegram/purchase-info", headers=BOT_AUTH)
        empty = client.post("/telegram/purchase-info", json={}, headers=BOT_AUTH)

        assert without_body.status_code == 400
        assert empty.json()["code"] == "INVALID_TOKEN"

    def test_non_string_token_is_an_invalid_token(self, client):
        response = client.post("/telegram/purchase-info", json={"token": 123}, headers=BOT_AUTH)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_unknown_token(self, client):
        response = client.post("/telegram/purchase-info", json={"token": "nope"}, headers=BOT_AUTH)

        assert response.status_code == 404
        assert response.json() == {"error": "Purchase not found or token expired", "code": "TOKEN_NOT_FOUND"}

    def test_resolves_token(self, client, initiated):
        response = client.post(
            "/telegram/purchase-info", json={"token": initiated["initiation_token"]}, headers=BOT_AUTH
        )

        body = response.json()
        assert response.status_code == 200
        assert body["purchase"]["item_title"] == "Test Book"
        assert body["purchase"]["amount_in_birr"] == 2398.8
        assert body["payment_options"] == []

    def test_admin_sets_currency_rate(self, client, auth_headers, admin):
        bad = client.put("/admin/currency-rate", json={"rate": 0}, headers=auth_headers(admin))
        good = client.put("/admin/currency-rate", json={"rate": 125}, headers=auth_headers(admin))

        assert bad.status_code == 400
        assert good.status_code == 200
        assert float(good.json()["rate"]) == 125


class TestPurchaseRequests:

    @pytest.fixture
    def created(self, client, auth_headers, buyer, book):
        response = client.post("/purchase-requests", headers=auth_headers(buyer), json={
            "item_type": "book", "item_id": book.id, "amount": "19.99", "user_message": "rush please",
        })
        assert response.status_code == 201, response.text
        return response.json()

    def test_buyer_sees_own_requests(self, client, auth_headers, created, buyer):
        mine = client.get("/purchase-requests/mine", headers=auth_headers(buyer)).json()

        assert [r["id"] for r in mine] == [created["id"]]
        assert mine[0]["item"]["title"] == "Test Book"

    def test_other_buyers_are_refused(self, client, auth_headers, created, other_buyer, admin):
        assert client.get(f"/purchase-requests/{created['id']}", headers=auth_headers(other_buyer)).status_code == 403
        assert client.get(f"/purchase-requests/{created['id']}", headers=auth_headers(admin)).status_code == 200

    def test_duplicate_request_conflicts(self, client, auth_headers, created, buyer, book):
        response = client.post("/purchase-requests", headers=auth_headers(buyer), json={
            "item_type": "book", "item_id": book.id, "amount": "19.99",
        })

        assert response.status_code == 409

    def test_admin_moves_status_and_reads_stats(self, client, auth_headers, created, admin, buyer):
        contacted = client.patch(
            f"/admin/purchase-requests/{created['id']}/status",
            headers=auth_headers(admin),
            json={"status": "contacted", "admin_notes": "called buyer"},
        )
        stats = client.get("/admin/purchase-requests/stats", headers=auth_headers(admin)).json()

        assert contacted.json()["status"] == "contacted"
        assert stats["contacted"] == 1
        assert client.get("/admin/purchase-requests/stats", headers=auth_headers(buyer)).status_code == 403

    def test_new_request_lands_in_the_admin_inbox(self, client, auth_headers, created, admin, buyer):
        inbox = client.get("/admin/notifications?unread=true", headers=auth_headers(admin)).json()

        assert len(inbox) == 1
        assert inbox[0]["related_id"] == created["id"]
        assert inbox[0]["trigger_source"] == "purchase_request_created"

        read = client.post(f"/admin/notifications/{inbox[0]['notification_id']}/read", headers=auth_headers(admin))

        assert read.json()["is_read"] is True
        assert client.get("/admin/notifications?unread=true", headers=auth_headers(admin)).json() == []
        assert client.post("/admin/notifications/999/read", headers=auth_headers(admin)).status_code == 404
        assert client.get("/admin/notifications", headers=auth_headers(buyer)).status_code == 403


class TestEmails:

    def test_anonymous_welcome(self, client, sent_emails):
        response = client.post("/emails/send", json={
            "type": "welcome", "data": {"user": {"email": "new@example.com", "name": "New Reader"}},
        })

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert len(sent_emails) == 1

    def test_receipt_needs_login(self, client):
        response = client.post("/emails/send", json={"type": "purchase_receipt", "data": {"purchase": {"id": 1}}})

        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}

    def test_bad_payload(self, client):
        assert client.post("/emails/send", json={"type": "nope", "data": {"a": 1}}).status_code == 400
        assert client.post("/emails/send", json={}).status_code == 400


class TestPublicEndpoints:

    def test_health(self, client):
        body = client.get("/health/check").json()

        assert body["status"] == "ok"
        assert body["database"] == "ok"
        assert "size" in body["cache"]

    def test_directory_endpoints_start_empty(self, client):
        assert client.get("/contacts").json() == []
        assert client.get("/contacts/best").json() is None
        assert client.get("/payment-config/active").json() == []


class TestRealtimeSocket:

    def test_ready_message_lists_subscriptions(self, client, buyer):
        from fulfillment.utils.token import create_access_token

        token = create_access_token({"user_id": buyer.id})
        with client.websocket_connect(f"/realtime/ws?token={token}") as socket:
            ready = socket.receive_json()

        assert ready == {
            "type": "ready",
            "subscriptions": [f"purchase_updates:{buyer.id}", f"progress_sync:{buyer.id}"],
        }

    def test_bad_token_is_refused(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/realtime/ws?token=garbage") as socket:
                socket.receive_json()

    def test_sender_failure_is_logged_on_close(self, caplog):
        from fulfillment.routes.realtime import stop_sender

        async def scenario():
            async def broken():
                raise RuntimeError("socket gone")

            task = asyncio.create_task(broken())
            await asyncio.sleep(0)
            await stop_sender(task)
            return task

        task = asyncio.run(scenario())

        assert task.done()
        assert "Realtime sender failed" in caplog.text
        assert "socket gone" in caplog.text

    def test_idle_sender_is_cancelled_quietly(self, caplog):
        from fulfillment.routes.realtime import stop_sender

        async def scenario():
            task = asyncio.create_task(asyncio.Event().wait())
            await asyncio.sleep(0)
            await stop_sender(task)
            return task

        assert asyncio.run(scenario()).cancelled()
        assert "Realtime sender failed" not in caplog.text
