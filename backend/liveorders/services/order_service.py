# Overview: Service-layer order totals and payment confirmation.
"""
Order Service - totals, lookups and the payment-confirmed transition.

TOTALS: total_amount_cents is derived data. It is recomputed from the linked
cart items (sum of qty * unit_price_cents) every time an item changes, so a
price refresh on re-add or an admin quantity edit can never leave the order
total out of step with its items.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CartItem, Order
from ..models.messaging import MESSAGE_ORDER_PAID
from liveorders.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .delivery_queue import OutboundJob
from .phone_service import regional_rule_from_config, to_send_form
from .template_service import build_paid_order_message
from .tenant_service import require_row_in_tenant


logger = logging.getLogger(__name__)


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def cart_total_cents(cart_id: int | None) -> int:
    if not cart_id:
        return 0
    total = (
        db.session.query(func.coalesce(func.sum(CartItem.qty * CartItem.unit_price_cents), 0))
        .filter(CartItem.cart_id == cart_id)
        .scalar()
    )
    return int(total or 0)


def recompute_order_total(order: Order) -> int:
    """Set order.total_amount_cents from its cart items. Caller commits."""
    db.session.flush()
    order.total_amount_cents = cart_total_cents(order.cart_id)
    return order.total_amount_cents


def recalculate_order(tenant_id: int, order_id: int) -> Order:
    def _op():
        order = require_row_in_tenant(Order, order_id, tenant_id)
        before = order.total_amount_cents
        recompute_order_total(order)
        db.session.commit()
        if before != order.total_amount_cents:
            logger.info("Order %s total corrected %s -> %s", order.id, before, order.total_amount_cents)
        return order

    return run_with_retry(_op)


def get_order_items(order: Order) -> list[CartItem]:
    if not order.cart_id:
        return []
    return (
        db.session.query(CartItem)
        .filter_by(cart_id=order.cart_id)
        .order_by(CartItem.id)
        .all()
    )


def get_order_detail(tenant_id: int, order_id: int) -> dict:
    order = require_row_in_tenant(Order, order_id, tenant_id)
    return {
        "order": order.to_dict(),
        "items": [item.to_dict() for item in get_order_items(order)],
    }


def mark_order_paid(tenant_id: int, order_id: int, customer_name: str = "") -> tuple[Order, OutboundJob | None]:
    """
    Payment-confirmed transition.

    Returns the order and the PAID_ORDER notification job to enqueue, or None
    when the confirmation was already sent. Paying an order again does not
    change it; callers skip the job when one is still queued for the order
    (DeliveryQueue.has_pending), so a dropped confirmation can be retried.
    """
    def _op():
        order = lock_for_update(
            db.session.query(Order).filter_by(id=order_id, tenant_id=tenant_id)
        ).first()
        if not order:
            raise OrderError("Order not found")

        if not order.is_paid:
            order.is_paid = True
            order.paid_at = utcnow()
            db.session.commit()
            logger.info("Order %s marked paid (tenant %s)", order.id, tenant_id)

        if order.payment_confirmation_sent:
            return order, None

        if not order.customer_phone:
            raise OrderError("Order has no customer phone", details={"order_id": order.id})

        body = build_paid_order_message(order, get_order_items(order), customer_name=customer_name)
        job = OutboundJob(
            recipient=to_send_form(order.customer_phone, *regional_rule_from_config(current_app.config)),
            body=body,
            kind=MESSAGE_ORDER_PAID,
            order_id=order.id,
        )
        return order, job

    return run_with_retry(_op)


def mark_confirmation_sent(order_id: int) -> None:
    def _op():
        order = db.session.get(Order, order_id)
        if order and not order.payment_confirmation_sent:
            order.payment_confirmation_sent = True
            db.session.commit()

    run_with_retry(_op)
