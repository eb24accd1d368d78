# Overview: WhatsApp group, template and message-log models.
from __future__ import annotations

from ..extensions import db
from liveorders.time_utils import to_utc_z


TEMPLATE_ITEM_ADDED = "ITEM_ADDED"
TEMPLATE_PAID_ORDER = "PAID_ORDER"
VALID_TEMPLATE_TYPES = {TEMPLATE_ITEM_ADDED, TEMPLATE_PAID_ORDER}

MESSAGE_INCOMING = "incoming"
MESSAGE_ITEM_ADDED = "item_added"
MESSAGE_ORDER_PAID = "order_paid"
MESSAGE_OUTGOING = "outgoing"


class CustomerWhatsAppGroup(db.Model):
    """
    Which WhatsApp group a customer ordered from.

    Used for admin-facing attribution ("who bought in which group").
    Upserted by the reconciliation engine whenever a message carries group metadata.
    """
    __tablename__ = "customer_whatsapp_groups"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "group_id", "customer_phone", name="uq_customer_groups_tenant_group_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    group_id = db.Column(db.String(128), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False)
    group_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "group_id": self.group_id,
            "customer_phone": self.customer_phone,
            "group_name": self.group_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WhatsAppTemplate(db.Model):
    """Per-tenant message template with {{placeholder}} variables."""
    __tablename__ = "whatsapp_templates"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "type", name="uq_whatsapp_templates_tenant_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=False)  # ITEM_ADDED, PAID_ORDER
    content = db.Column(db.Text, nullable=False)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "type": self.type,
            "content": self.content,
            "updated_at": to_utc_z(self.updated_at),
        }


class WhatsAppMessage(db.Model):
    """
    Message history shown in the admin UI.

    Inbound texts are logged when received; outbound texts only after the
    transport accepted them.
    """
    __tablename__ = "whatsapp_messages"
    __table_args__ = (
        db.Index("ix_whatsapp_messages_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)  # incoming, item_added, order_paid, outgoing
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "phone": self.phone,
            "message": self.message,
            "type": self.type,
            "order_id": self.order_id,
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
            "created_at": to_utc_z(self.created_at),
        }
