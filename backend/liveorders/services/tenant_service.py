# Overview: Service-layer tenant resolution and scoping helpers.
"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Every inbound message, order and queue operation is scoped to one tenant,
and cross-tenant access must be explicitly denied.

SECURITY INVARIANTS:
1. Every tenant-scoped request has g.tenant_id set (see decorators.require_tenant)
2. Rows looked up by id are re-checked against g.tenant_id
3. Cross-tenant lookups fail as "not found" without revealing the row exists

USAGE:
    from liveorders.services.tenant_service import require_active_tenant, scoped_query

    tenant = require_active_tenant(tenant_id)
    products = scoped_query(Product, tenant.id).filter_by(is_active=True).all()
"""

import logging
from datetime import date, datetime

from flask import current_app

from ..extensions import db
from ..models import Tenant
from liveorders.time_utils import business_today


logger = logging.getLogger(__name__)


class TenantAccessError(Exception):
    """Raised when a tenant is missing, inactive, or a cross-tenant access is attempted."""
    pass


def resolve_tenant(identifier) -> Tenant | None:
    """Look a tenant up by numeric id or by slug."""
    if identifier is None:
        return None
    value = str(identifier).strip()
    if not value:
        return None
    if value.isdigit():
        return db.session.get(Tenant, int(value))
    return db.session.query(Tenant).filter_by(slug=value).first()


def require_active_tenant(identifier) -> Tenant:
    """
    Validate that a tenant exists and is active.

    Raises TenantAccessError if the tenant doesn't exist or is inactive.
    """
    tenant = resolve_tenant(identifier)

    if not tenant:
        raise TenantAccessError("Tenant not found")

    if not tenant.is_active:
        raise TenantAccessError("Tenant is not active")

    return tenant


def require_row_in_tenant(model, row_id: int, tenant_id: int):
    """
    Load a tenant-owned row by id, refusing rows of other tenants.

    Raises TenantAccessError("... not found") for both missing and foreign rows.
    """
    row = db.session.get(model, row_id)
    if not row or row.tenant_id != tenant_id:
        if row:
            logger.warning(
                "Cross-tenant access denied: %s %s belongs to tenant %s, not %s",
                model.__name__, row_id, row.tenant_id, tenant_id,
            )
        raise TenantAccessError(f"{model.__name__} not found")
    return row


def scoped_query(model, tenant_id: int):
    """Base query filtered to one tenant."""
    return db.session.query(model).filter(model.tenant_id == tenant_id)


def tenant_today(tenant: Tenant | None, now: datetime | None = None) -> date:
    """Business day used for the reconciliation key of this tenant."""
    tz_name = (tenant.timezone if tenant else None) or current_app.config.get("BUSINESS_TIMEZONE")
    return business_today(tz_name, now=now)
