# Overview: Pytest coverage for the WhatsApp transport HTTP client.

import json

import httpx
import pytest

from conftest import FakeTransport, RecordingSleep
from liveorders.extensions import db
from liveorders.models import Order, WhatsAppMessage
from liveorders.models.messaging import MESSAGE_ITEM_ADDED, MESSAGE_ORDER_PAID
from liveorders.services.delivery_queue import DeliveryQueue, OutboundJob
from liveorders.services.order_service import mark_order_paid
from liveorders.services import whatsapp_client as whatsapp_client_module
from liveorders.services.reconciliation_service import process_inbound_message
from liveorders.services.whatsapp_client import (
    WhatsAppClient,
    WhatsAppSendError,
    build_send_fn,
    build_usable_fn,
)


def client_for(handler) -> WhatsAppClient:
    return WhatsAppClient("http://transport.test", timeout=5.0, transport=httpx.MockTransport(handler))


class TestSendText:
    @pytest.mark.asyncio
    async def test_posts_phone_and_message_with_tenant_header(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["tenant"] = request.headers.get("x-tenant-id")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "id": "ABC"})

        result = await client_for(handler).send_text(7, "553188887777", "Olá")

        assert result == {"success": True, "id": "ABC"}
        assert seen == {
            "method": "POST",
            "url": "http://transport.test/send",
            "tenant": "7",
            "body": {"phone": "553188887777", "message": "Olá"},
        }

    @pytest.mark.asyncio
    async def test_error_response_text_is_preserved(self):
        def handler(request):
            return httpx.Response(500, text="Error: Connection Closed")

        with pytest.raises(WhatsAppSendError) as exc_info:
            await client_for(handler).send_text(1, "553188887777", "x")

        assert "Connection Closed" in str(exc_info.value)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_unreachable_transport(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(WhatsAppSendError, match="unreachable"):
            await client_for(handler).send_text(1, "553188887777", "x")


class TestFetchSession:
    @pytest.mark.asyncio
    async def test_status_payload_becomes_session_handle(self):
        fake = FakeTransport()
        session = await client_for(fake.handler).fetch_session(1)

        assert session.has_credentials
        assert session.has_key_store
        assert session.is_connected is True
        assert session.identity == "553177776666@s.whatsapp.net"

    @pytest.mark.asyncio
    async def test_no_session(self):
        fake = FakeTransport()
        fake.status_payload = None
        assert await client_for(fake.handler).fetch_session(1) is None

    @pytest.mark.asyncio
    async def test_usable_fn_is_false_when_status_fails(self):
        def handler(request):
            return httpx.Response(503, text="down")

        usable = build_usable_fn(client_for(handler))
        assert await usable(1) is False


class TestQueueIntegration:
    @pytest.mark.asyncio
    async def test_sent_messages_are_logged(self, db_session, tenant_a):
        fake = FakeTransport()
        client = client_for(fake.handler)
        queue = DeliveryQueue(default_delay_ms=0, sleep=RecordingSleep())
        queue.enqueue(tenant_a.id, OutboundJob(recipient="553188887777", body="Item adicionado", kind=MESSAGE_ITEM_ADDED))

        stats = await queue.drain(tenant_a.id, build_send_fn(client), build_usable_fn(client))

        assert stats.sent == 1
        assert fake.sent == [{"tenant": str(tenant_a.id), "phone": "553188887777", "message": "Item adicionado"}]
        row = db.session.query(WhatsAppMessage).one()
        assert row.type == MESSAGE_ITEM_ADDED
        assert row.sent_at is not None

    @pytest.mark.asyncio
    async def test_bookkeeping_failure_does_not_resend(self, db_session, tenant_a, monkeypatch):
        def broken(order_id):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(whatsapp_client_module, "mark_confirmation_sent", broken)
        fake = FakeTransport()
        client = client_for(fake.handler)
        queue = DeliveryQueue(default_delay_ms=0, sleep=RecordingSleep())
        queue.enqueue(tenant_a.id, OutboundJob(recipient="553188887777", body="Pago", kind=MESSAGE_ORDER_PAID, order_id=1))

        stats = await queue.drain(tenant_a.id, build_send_fn(client), build_usable_fn(client))

        assert len(fake.sent) == 1
        assert stats.to_dict() == {"sent": 1, "failed": 0, "pending": 0}

    @pytest.mark.asyncio
    async def test_paid_confirmation_flag_set_only_after_send(self, db_session, tenant_a, bazar_product):
        order_id = process_inbound_message(tenant_a.id, "31988887777", "C101")[0].order_id
        _, job = mark_order_paid(tenant_a.id, order_id)

        fake = FakeTransport()
        fake.send_error = "Error: Connection Closed"
        client = client_for(fake.handler)
        queue = DeliveryQueue(default_delay_ms=0, sleep=RecordingSleep())
        queue.enqueue(tenant_a.id, job)

        await queue.drain(tenant_a.id, build_send_fn(client), build_usable_fn(client))
        assert db.session.get(Order, order_id).payment_confirmation_sent is False

        fake.send_error = None
        await queue.drain(tenant_a.id, build_send_fn(client), build_usable_fn(client))

        db.session.expire_all()
        assert db.session.get(Order, order_id).payment_confirmation_sent is True
        assert db.session.query(WhatsAppMessage).filter_by(type=MESSAGE_ORDER_PAID).count() == 1
