# Overview: Cart, cart item and order models keyed by the reconciliation key.
from __future__ import annotations

from ..extensions import db
from liveorders.time_utils import to_utc_z, to_iso_date


CART_STATUS_OPEN = "OPEN"
CART_STATUS_CLOSED = "CLOSED"
CART_STATUS_CANCELLED = "CANCELLED"


class Cart(db.Model):
    """
    Working basket for one (tenant, customer, day, event_type) while OPEN.

    Created lazily by the reconciliation engine on the first matched product
    code of the day and linked to the unpaid Order for the same key.
    """
    __tablename__ = "carts"
    __table_args__ = (
        db.Index("ix_carts_tenant_key", "tenant_id", "customer_phone", "event_date", "event_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    # Storage form (no country code)
    customer_phone = db.Column(db.String(32), nullable=False)
    event_type = db.Column(db.String(16), nullable=False)
    event_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=CART_STATUS_OPEN, index=True)
    whatsapp_group_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_phone": self.customer_phone,
            "event_type": self.event_type,
            "event_date": to_iso_date(self.event_date),
            "status": self.status,
            "whatsapp_group_name": self.whatsapp_group_name,
            "created_at": to_utc_z(self.created_at),
        }


class CartItem(db.Model):
    """
    Line in a cart. One row per (cart, product): re-adding a product bumps qty.

    unit_price_cents is a snapshot of the product price at the last add.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        db.CheckConstraint("qty >= 1", name="ck_cart_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cart = db.relationship("Cart", backref=db.backref("items", lazy=True))
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def line_total_cents(self) -> int:
        return self.qty * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "product_id": self.product_id,
            "product_code": self.product.code if self.product else None,
            "product_name": self.product.name if self.product else None,
            "qty": self.qty,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class Order(db.Model):
    """
    Customer order for one (tenant, customer_phone, event_date, event_type).

    INVARIANT: at most one UNPAID order per reconciliation key. Enforced by a
    partial unique index so two concurrent inbound messages cannot both create
    one; the loser re-reads the winner's row.

    total_amount_cents is always recomputed from the linked cart items.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index(
            "uq_orders_unpaid_reconciliation_key",
            "tenant_id", "customer_phone", "event_date", "event_type",
            unique=True,
            sqlite_where=db.text("is_paid = 0"),
            postgresql_where=db.text("is_paid = false"),
        ),
        db.CheckConstraint("total_amount_cents >= 0", name="ck_orders_total_non_negative"),
        db.Index("ix_orders_tenant_paid", "tenant_id", "is_paid"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=True, index=True)

    customer_phone = db.Column(db.String(32), nullable=False)
    event_type = db.Column(db.String(16), nullable=False)
    event_date = db.Column(db.Date, nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_confirmation_sent = db.Column(db.Boolean, nullable=False, default=False)

    observation = db.Column(db.Text, nullable=True)
    whatsapp_group_name = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    cart = db.relationship("Cart", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Order id={self.id} tenant_id={self.tenant_id} phone={self.customer_phone!r} "
            f"event={self.event_type}/{self.event_date} paid={self.is_paid}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "cart_id": self.cart_id,
            "customer_phone": self.customer_phone,
            "event_type": self.event_type,
            "event_date": to_iso_date(self.event_date),
            "total_amount_cents": self.total_amount_cents,
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "payment_confirmation_sent": self.payment_confirmation_sent,
            "observation": self.observation,
            "whatsapp_group_name": self.whatsapp_group_name,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
