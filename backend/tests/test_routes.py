# Overview: Pytest coverage for the HTTP API (tenant header, WhatsApp, queue, orders, health).

from conftest import tenant_headers
from liveorders.extensions import db
from liveorders.models import Order
from liveorders.services.session_validator import REASON_MISSING


def post_message(client, tenant, **payload):
    body = {"customer_phone": "5531988887777", "message": "quero C101"}
    body.update(payload)
    return client.post("/api/whatsapp/messages", json=body, headers=tenant_headers(tenant))


def test_health(client, db_session, queue):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json["status"] == "healthy"
    assert set(response.json["checks"]) == {"database", "delivery_queue"}


class TestTenantHeader:
    def test_missing_header_is_rejected(self, client, db_session):
        response = client.get("/api/whatsapp/queue")
        assert response.status_code == 401

    def test_unknown_tenant(self, client, db_session):
        response = client.get("/api/whatsapp/queue", headers={"X-Tenant-Id": "9999"})
        assert response.status_code == 404

    def test_slug_is_accepted(self, client, db_session, tenant_a, queue):
        response = client.get("/api/whatsapp/queue", headers={"X-Tenant-Id": "loja-a"})
        assert response.status_code == 200


class TestInboundMessages:
    def test_codes_become_orders_and_confirmation_is_sent(self, client, db_session, tenant_a, bazar_product, queue, transport):
        response = post_message(client, tenant_a)

        assert response.status_code == 200
        data = response.json
        assert data["success"] is True
        assert data["results"][0]["code"] == "C101"
        assert data["results"][0]["success"] is True
        assert data["queue"]["sent"] == 1
        assert data["queue"]["pending"] == 0
        assert transport.sent[0]["phone"] == "553188887777"
        assert "Blusa Floral" in transport.sent[0]["message"]

    def test_drain_can_be_deferred(self, client, db_session, tenant_a, bazar_product, queue, transport):
        response = post_message(client, tenant_a, drain=False)

        assert response.json["queue"]["pending"] == 1
        assert transport.sent == []

    def test_unusable_session_leaves_confirmation_queued(self, client, db_session, tenant_a, bazar_product, queue, transport):
        transport.status_payload = None

        response = post_message(client, tenant_a)

        assert response.json["success"] is True
        assert response.json["queue"]["pending"] == 1
        assert transport.sent == []

    def test_partial_failure_is_reported(self, client, db_session, tenant_a, bazar_product, queue, transport):
        response = post_message(client, tenant_a, message="C101 C999")

        results = response.json["results"]
        assert [r["success"] for r in results] == [True, False]
        assert results[1]["error"] == "Produto não encontrado"
        assert response.json["message"] == "1 of 2 product code(s) added"

    def test_text_without_codes(self, client, db_session, tenant_a, queue):
        response = post_message(client, tenant_a, message="bom dia")

        assert response.status_code == 200
        assert response.json["success"] is False
        assert response.json["results"] == []

    def test_group_metadata_is_accepted(self, client, db_session, tenant_a, bazar_product, queue, transport):
        response = post_message(client, tenant_a, group_id="120363@g.us", group_name="Live de Sexta")
        assert response.json["success"] is True

    def test_missing_message_is_a_bad_request(self, client, db_session, tenant_a, queue):
        response = client.post(
            "/api/whatsapp/messages",
            json={"customer_phone": "31988887777"},
            headers=tenant_headers(tenant_a),
        )
        assert response.status_code == 400
        assert "message" in response.json["error"]

    def test_history(self, client, db_session, tenant_a, bazar_product, queue, transport):
        post_message(client, tenant_a)

        response = client.get("/api/whatsapp/messages", headers=tenant_headers(tenant_a))

        types = sorted(m["type"] for m in response.json["messages"])
        assert types == ["incoming", "item_added"]

    def test_history_is_per_tenant(self, client, db_session, tenant_a, tenant_b, bazar_product, queue, transport):
        post_message(client, tenant_a)

        response = client.get("/api/whatsapp/messages", headers=tenant_headers(tenant_b))

        assert response.json["messages"] == []


class TestQueueApi:
    def test_enqueue_inspect_drain_clear(self, client, db_session, tenant_a, queue, transport):
        headers = tenant_headers(tenant_a)
        response = client.post("/api/whatsapp/queue", headers=headers, json={"messages": [
            {"recipient": "553188887777", "message": "Promoção!"},
            {"recipient": "5511988887777", "message": "Promoção!", "delay_after_ms": 0},
        ]})
        assert response.status_code == 202
        assert response.json["queued"] == 2

        status = client.get("/api/whatsapp/queue", headers=headers).json
        assert status["queue"]["size"] == 2
        assert status["next"]["recipient"] == "553188887777"

        drained = client.post("/api/whatsapp/queue/drain", headers=headers).json
        assert drained["stats"]["sent"] == 2
        assert [m["phone"] for m in transport.sent] == ["553188887777", "5511988887777"]

        client.post("/api/whatsapp/queue", headers=headers, json={"messages": [{"recipient": "1", "message": "x"}]})
        cleared = client.delete("/api/whatsapp/queue", headers=headers).json
        assert cleared["queue"] == {"sent": 0, "failed": 0, "pending": 0, "size": 0, "draining": False}

    def test_queues_are_per_tenant(self, client, db_session, tenant_a, tenant_b, queue):
        client.post("/api/whatsapp/queue", headers=tenant_headers(tenant_a), json={"messages": [
            {"recipient": "553188887777", "message": "oi"},
        ]})

        status = client.get("/api/whatsapp/queue", headers=tenant_headers(tenant_b)).json
        assert status["queue"]["size"] == 0

    def test_invalid_batch(self, client, db_session, tenant_a, queue):
        response = client.post("/api/whatsapp/queue", headers=tenant_headers(tenant_a), json={"messages": []})
        assert response.status_code == 400

        response = client.post("/api/whatsapp/queue", headers=tenant_headers(tenant_a), json={"messages": [
            {"recipient": "553188887777", "message": "oi", "delay_after_ms": "soon"},
        ]})
        assert response.status_code == 400


class TestSessionApi:
    def test_valid_session(self, client, db_session, tenant_a, transport):
        response = client.get("/api/whatsapp/session", headers=tenant_headers(tenant_a))

        assert response.status_code == 200
        assert response.json["valid"] is True
        assert response.json["identity"] == "553177776666@s.whatsapp.net"

    def test_missing_session(self, client, db_session, tenant_a, transport):
        transport.status_payload = None

        response = client.get("/api/whatsapp/session", headers=tenant_headers(tenant_a))

        assert response.json == {"valid": False, "reason": REASON_MISSING, "identity": None}


class TestOrdersApi:
    def _order_id(self, client, tenant):
        return post_message(client, tenant, drain=False).json["results"][0]["order_id"]

    def test_get_order(self, client, db_session, tenant_a, bazar_product, queue):
        order_id = self._order_id(client, tenant_a)

        response = client.get(f"/api/orders/{order_id}", headers=tenant_headers(tenant_a))

        assert response.status_code == 200
        assert response.json["order"]["total_amount_cents"] == 1000
        assert response.json["items"][0]["product_code"] == "C101"

    def test_other_tenant_gets_not_found(self, client, db_session, tenant_a, tenant_b, bazar_product, queue):
        order_id = self._order_id(client, tenant_a)

        response = client.get(f"/api/orders/{order_id}", headers=tenant_headers(tenant_b))
        assert response.status_code == 404

        response = client.post(f"/api/orders/{order_id}/paid", headers=tenant_headers(tenant_b))
        assert response.status_code == 404

    def test_mark_paid_sends_confirmation_once(self, client, db_session, tenant_a, bazar_product, queue, transport):
        order_id = self._order_id(client, tenant_a)
        queue.clear(tenant_a.id)

        first = client.post(f"/api/orders/{order_id}/paid", headers=tenant_headers(tenant_a), json={"customer_name": "Ana"})
        assert first.status_code == 200
        assert first.json["order"]["is_paid"] is True
        assert first.json["confirmation_queued"] is True
        assert len(transport.sent) == 1
        assert "Pagamento Confirmado" in transport.sent[0]["message"]

        db.session.expire_all()
        assert db.session.get(Order, order_id).payment_confirmation_sent is True

        second = client.post(f"/api/orders/{order_id}/paid", headers=tenant_headers(tenant_a))
        assert second.json["confirmation_queued"] is False
        assert len(transport.sent) == 1

    def test_repeated_paid_events_queue_one_confirmation(self, client, db_session, tenant_a, bazar_product, queue, transport):
        order_id = self._order_id(client, tenant_a)
        queue.clear(tenant_a.id)
        transport.status_payload = None

        first = client.post(f"/api/orders/{order_id}/paid", headers=tenant_headers(tenant_a))
        second = client.post(f"/api/orders/{order_id}/paid", headers=tenant_headers(tenant_a))

        assert first.json["confirmation_queued"] is True
        assert second.json["confirmation_queued"] is False
        assert queue.size(tenant_a.id) == 1
        assert transport.sent == []

        transport.status_payload = {
            "connected": True,
            "me": {"id": "553177776666@s.whatsapp.net"},
            "has_keys": True,
            "keys_readable": True,
        }
        client.post("/api/whatsapp/queue/drain", headers=tenant_headers(tenant_a))

        assert len(transport.sent) == 1
        assert "Pagamento Confirmado" in transport.sent[0]["message"]

    def test_recalculate(self, client, db_session, tenant_a, bazar_product, queue):
        order_id = self._order_id(client, tenant_a)
        order = db.session.get(Order, order_id)
        order.total_amount_cents = 0
        db.session.commit()

        response = client.post(f"/api/orders/{order_id}/recalculate", headers=tenant_headers(tenant_a))

        assert response.status_code == 200
        assert response.json["order"]["total_amount_cents"] == 1000

    def test_unknown_order(self, client, db_session, tenant_a, queue):
        response = client.get("/api/orders/424242", headers=tenant_headers(tenant_a))
        assert response.status_code == 404
