# Overview: HTTP client for the WhatsApp transport server.
"""
HTTP adapter for the WhatsApp transport server.

The transport keeps one WhatsApp Web session per tenant and exposes:

    POST {base}/send    headers: x-tenant-id   body: {"phone", "message"}
    GET  {base}/status  headers: x-tenant-id   -> session status JSON

Error text from the transport is passed through verbatim in WhatsAppSendError,
so the delivery queue can spot session-fatal failures by message.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from flask import current_app

from ..models.messaging import MESSAGE_ORDER_PAID
from .delivery_queue import OutboundJob
from .message_log_service import log_sent
from .order_service import mark_confirmation_sent
from .session_validator import SessionHandle, is_usable


logger = logging.getLogger(__name__)

EXTENSION_KEY = "whatsapp_client"


class WhatsAppSendError(Exception):
    """The transport refused or failed a send."""
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class WhatsAppClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_config(cls, config) -> "WhatsAppClient":
        return cls(
            base_url=config.get("WHATSAPP_API_URL", "http://localhost:3333"),
            timeout=float(config.get("WHATSAPP_SEND_TIMEOUT", 30.0)),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def send_text(self, tenant_id, phone: str, message: str) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(
                    "/send",
                    json={"phone": phone, "message": message},
                    headers={"x-tenant-id": str(tenant_id)},
                )
        except httpx.RequestError as e:
            raise WhatsAppSendError(f"Transport unreachable: {e}") from e

        if response.status_code >= 400:
            raise WhatsAppSendError(
                f"HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return {}

    async def fetch_session(self, tenant_id) -> SessionHandle | None:
        """None when the transport has no session for the tenant."""
        async with self._client() as client:
            response = await client.get("/status", headers={"x-tenant-id": str(tenant_id)})

        if response.status_code == 404:
            return None
        response.raise_for_status()
        return SessionHandle.from_status_payload(response.json())


def get_whatsapp_client() -> WhatsAppClient:
    client = current_app.extensions.get(EXTENSION_KEY)
    if client is None:
        client = WhatsAppClient.from_config(current_app.config)
        current_app.extensions[EXTENSION_KEY] = client
    return client


def build_send_fn(client: WhatsAppClient):
    """Queue send function: deliver, then record history and confirmation state."""
    async def send(job: OutboundJob):
        result = await client.send_text(job.tenant_id, job.recipient, job.body)
        # Delivered; bookkeeping failures must not make the queue resend
        try:
            log_sent(job.tenant_id, job.recipient, job.body, job.kind, order_id=job.order_id)
            if job.kind == MESSAGE_ORDER_PAID and job.order_id:
                mark_confirmation_sent(job.order_id)
        except Exception:
            logger.exception("Post-send bookkeeping failed for message %s (tenant %s)", job.id, job.tenant_id)
        return result

    return send


def build_usable_fn(client: WhatsAppClient):
    async def usable(tenant_id) -> bool:
        try:
            session = await client.fetch_session(tenant_id)
        except httpx.HTTPError as e:
            logger.warning("Could not read session status for tenant %s: %s", tenant_id, e)
            return False
        return is_usable(session)

    return usable
