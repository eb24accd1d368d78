# Overview: Tenant model.
from __future__ import annotations

from ..extensions import db
from liveorders.time_utils import to_utc_z


class Tenant(db.Model):
    """
    Multi-tenant root: every seller account is a Tenant.

    WHY: Shared-database multi-tenancy with strict isolation.
    Products, carts, orders, templates and message logs all carry tenant_id.
    No data may cross tenant boundaries.

    DESIGN:
    - whatsapp_bot_phone is the number the tenant's WhatsApp session is logged in
      with; inbound messages from it are the bot's own echoes and are discarded.
    - timezone decides the calendar day used by the reconciliation key.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Storage form (see phone_service.to_storage_form)
    whatsapp_bot_phone = db.Column(db.String(32), nullable=True)
    timezone = db.Column(db.String(64), nullable=False, default="America/Sao_Paulo")

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "whatsapp_bot_phone": self.whatsapp_bot_phone,
            "timezone": self.timezone,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
