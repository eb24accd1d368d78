# Overview: Flask API routes for order lookup, payment confirmation and total repair.

from flask import Blueprint, request, g, current_app

from ..decorators import require_tenant
from ..services.delivery_queue import get_delivery_queue
from ..services.order_service import (
    OrderError,
    get_order_detail,
    mark_order_paid,
    recalculate_order,
)
from ..services.tenant_service import TenantAccessError
from ..services.whatsapp_client import build_send_fn, build_usable_fn, get_whatsapp_client

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("/<int:order_id>")
@require_tenant
def get_order(order_id: int):
    try:
        return get_order_detail(g.tenant_id, order_id)
    except TenantAccessError as e:
        return {"error": str(e)}, 404


@orders_bp.post("/<int:order_id>/paid")
@require_tenant
async def confirm_payment(order_id: int):
    """
    Payment-confirmed event.

    Marks the order paid and sends the PAID_ORDER confirmation once.
    Body (optional): {customer_name, drain}
    """
    payload = request.get_json(silent=True) or {}
    customer_name = str(payload.get("customer_name") or "").strip()

    try:
        order, job = mark_order_paid(g.tenant_id, order_id, customer_name=customer_name)
    except OrderError as e:
        status = 404 if str(e) == "Order not found" else 400
        return {"error": str(e), "details": e.details}, status
    except Exception:
        current_app.logger.exception("Failed to mark order %s paid", order_id)
        return {"error": "Internal server error"}, 500

    queue = get_delivery_queue()
    queued = False
    # Repeated payment events while the confirmation is still queued
    if job is not None and queue.has_pending(g.tenant_id, job.kind, job.order_id):
        current_app.logger.info("Confirmation for order %s already queued", order_id)
        job = None

    if job is not None:
        queue.enqueue(g.tenant_id, job)
        queued = True
        if payload.get("drain", True):
            client = get_whatsapp_client()
            try:
                await queue.drain(g.tenant_id, build_send_fn(client), build_usable_fn(client))
            except Exception:
                current_app.logger.exception("Queue drain failed for tenant %s", g.tenant_id)

    return {
        "order": order.to_dict(),
        "confirmation_queued": queued,
        "queue": queue.stats(g.tenant_id).to_dict(),
    }


@orders_bp.post("/<int:order_id>/recalculate")
@require_tenant
def recalculate(order_id: int):
    try:
        order = recalculate_order(g.tenant_id, order_id)
    except TenantAccessError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to recalculate order %s", order_id)
        return {"error": "Internal server error"}, 500

    return {"order": order.to_dict()}
