# Overview: Product catalog model with LIVE/BAZAR sale types.
from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from liveorders.time_utils import to_utc_z


SALE_TYPE_LIVE = "LIVE"
SALE_TYPE_BAZAR = "BAZAR"
VALID_SALE_TYPES = {SALE_TYPE_LIVE, SALE_TYPE_BAZAR}


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to tenants via tenant_id.

    CODE DESIGN DECISION:
    Customers type codes like "c101" or "C101" in the chat. Codes are stored
    uppercased so the tenant-scoped unique constraint is case-insensitive and
    lookups are a plain equality on the uppercased input.

    sale_type decides which order (LIVE or BAZAR) a matched code lands in.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_products_tenant_code"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents (formatting happens at message boundaries)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sale_type = db.Column(db.String(16), nullable=False, default=SALE_TYPE_BAZAR)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @validates("code")
    def _uppercase_code(self, key, value):
        return value.strip().upper() if value else value

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "code": self.code,
            "name": self.name,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "is_active": self.is_active,
            "sale_type": self.sale_type,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
