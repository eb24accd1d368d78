# Overview: Service-layer WhatsApp message history.
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import WhatsAppMessage
from ..models.messaging import MESSAGE_INCOMING
from .tenant_service import scoped_query
from liveorders.time_utils import utcnow


logger = logging.getLogger(__name__)


def _save(row: WhatsAppMessage) -> WhatsAppMessage | None:
    # The log is history for the admin UI; a failed insert never fails the caller.
    try:
        db.session.add(row)
        db.session.commit()
        return row
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to save %s message log for tenant %s", row.type, row.tenant_id)
        return None


def log_incoming(tenant_id: int, phone: str, text: str) -> WhatsAppMessage | None:
    return _save(WhatsAppMessage(
        tenant_id=tenant_id,
        phone=phone,
        message=text,
        type=MESSAGE_INCOMING,
        received_at=utcnow(),
    ))


def log_sent(tenant_id: int, phone: str, text: str, message_type: str, order_id: int | None = None) -> WhatsAppMessage | None:
    return _save(WhatsAppMessage(
        tenant_id=tenant_id,
        phone=phone,
        message=text,
        type=message_type,
        order_id=order_id,
        sent_at=utcnow(),
    ))


def list_messages(tenant_id: int, limit: int = 50) -> list[dict]:
    rows = (
        scoped_query(WhatsAppMessage, tenant_id)
        .order_by(WhatsAppMessage.created_at.desc(), WhatsAppMessage.id.desc())
        .limit(limit)
        .all()
    )
    return [r.to_dict() for r in rows]
