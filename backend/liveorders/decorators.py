# Overview: Request decorators for tenant-scoped API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.tenant_service import TenantAccessError, require_active_tenant


TENANT_HEADER = "X-Tenant-Id"


def require_tenant(f):
    """
    Establish tenant context from the X-Tenant-Id header (numeric id or slug).

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.tenant: The active Tenant row
    - g.tenant_id: Its id - every service call in the route is scoped by it

    Returns 401 if the header is missing, 404 if the tenant is unknown or inactive.
    Works for both sync and async views.
    """
    def _establish():
        identifier = request.headers.get(TENANT_HEADER)
        if not identifier:
            return jsonify({"error": f"{TENANT_HEADER} header required"}), 401

        try:
            tenant = require_active_tenant(identifier)
        except TenantAccessError as e:
            current_app.logger.info("Rejected tenant %r: %s", identifier, e)
            return jsonify({"error": str(e)}), 404

        g.tenant = tenant
        g.tenant_id = tenant.id
        return None

    @wraps(f)
    def decorated_function(*args, **kwargs):
        rejected = _establish()
        if rejected:
            return rejected
        return current_app.ensure_sync(f)(*args, **kwargs)

    return decorated_function
