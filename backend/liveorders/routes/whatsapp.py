# Overview: Flask API routes for WhatsApp inbound messages, the outbound queue and session status.

"""
WhatsApp routes.

MULTI-TENANT: Every route requires the X-Tenant-Id header (see
decorators.require_tenant); queues, orders and sessions are per tenant.

Draining sends through the transport and waits between messages, so the
drain-capable views are async and awaited inside the request.
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_tenant
from ..services.delivery_queue import OutboundJob, get_delivery_queue
from ..services.message_log_service import list_messages
from ..services.reconciliation_service import GroupMeta, process_inbound_message
from ..services.session_validator import diagnose
from ..services.tenant_service import TenantAccessError
from ..services.whatsapp_client import build_send_fn, build_usable_fn, get_whatsapp_client
from ..validation import ValidationError, parse_inbound_message, parse_queue_batch

whatsapp_bp = Blueprint("whatsapp", __name__, url_prefix="/api/whatsapp")


async def _drain_current_tenant():
    client = get_whatsapp_client()
    return await get_delivery_queue().drain(
        g.tenant_id,
        build_send_fn(client),
        build_usable_fn(client),
    )


def _queue_snapshot(tenant_id) -> dict:
    queue = get_delivery_queue()
    return {
        **queue.stats(tenant_id).to_dict(),
        "size": queue.size(tenant_id),
        "draining": queue.is_draining(tenant_id),
    }


@whatsapp_bp.post("/messages")
@require_tenant
async def inbound_message():
    """
    Reconcile one inbound chat message into orders.

    Body: {customer_phone, message, group_id?, group_name?, drain?}
    Responds {success, message, results[], queue}. success is true when at
    least one code was added.
    """
    try:
        inbound = parse_inbound_message(request.get_json(silent=True))
    except ValidationError as e:
        return {"error": str(e)}, 400

    group = GroupMeta(inbound.group_id, inbound.group_name) if inbound.group_id else None

    try:
        results = process_inbound_message(
            g.tenant_id,
            inbound.customer_phone,
            inbound.message,
            group,
            queue=get_delivery_queue(),
        )
    except TenantAccessError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to process inbound message")
        return {"error": "Internal server error"}, 500

    added = sum(1 for r in results if r.success)
    if not results:
        summary = "No product codes found"
    else:
        summary = f"{added} of {len(results)} product code(s) added"

    if added and inbound.drain:
        try:
            await _drain_current_tenant()
        except Exception:
            # Jobs stay queued; the sale already stands.
            current_app.logger.exception("Queue drain failed for tenant %s", g.tenant_id)

    return {
        "success": added > 0,
        "message": summary,
        "results": [r.to_dict() for r in results],
        "queue": _queue_snapshot(g.tenant_id),
    }


@whatsapp_bp.get("/messages")
@require_tenant
def message_history():
    """Recent message log for the tenant. Query: limit (default 50, max 200)."""
    limit = min(max(request.args.get("limit", 50, type=int), 1), 200)
    return {"messages": list_messages(g.tenant_id, limit=limit)}


@whatsapp_bp.post("/queue")
@require_tenant
def enqueue_batch():
    """
    Enqueue admin-composed messages for delivery, in order.

    Body: {messages: [{recipient, message, delay_after_ms?}]}
    """
    try:
        batch = parse_queue_batch(request.get_json(silent=True))
    except ValidationError as e:
        return {"error": str(e)}, 400

    queue = get_delivery_queue()
    jobs = [
        queue.enqueue(g.tenant_id, OutboundJob(
            recipient=item["recipient"],
            body=item["body"],
            delay_after_ms=item["delay_after_ms"],
        ))
        for item in batch
    ]

    return {
        "queued": len(jobs),
        "jobs": [job.to_dict() for job in jobs],
        "queue": _queue_snapshot(g.tenant_id),
    }, 202


@whatsapp_bp.post("/queue/drain")
@require_tenant
async def drain_queue():
    try:
        stats = await _drain_current_tenant()
    except Exception:
        current_app.logger.exception("Queue drain failed for tenant %s", g.tenant_id)
        return {"error": "Internal server error"}, 500

    return {"stats": stats.to_dict(), "queue": _queue_snapshot(g.tenant_id)}


@whatsapp_bp.get("/queue")
@require_tenant
def queue_status():
    queue = get_delivery_queue()
    head = queue.peek(g.tenant_id)
    return {
        "queue": _queue_snapshot(g.tenant_id),
        "next": head.to_dict() if head else None,
    }


@whatsapp_bp.delete("/queue")
@require_tenant
def clear_queue():
    get_delivery_queue().clear(g.tenant_id)
    return {"cleared": True, "queue": _queue_snapshot(g.tenant_id)}


@whatsapp_bp.get("/session")
@require_tenant
async def session_status():
    """Operator-facing session diagnosis (includes the connected signal)."""
    try:
        session = await get_whatsapp_client().fetch_session(g.tenant_id)
    except Exception:
        current_app.logger.exception("Could not read session status for tenant %s", g.tenant_id)
        return {"valid": False, "reason": "Servidor WhatsApp indisponível", "identity": None}, 502

    return diagnose(session, tenant_label=g.tenant.slug).to_dict()
