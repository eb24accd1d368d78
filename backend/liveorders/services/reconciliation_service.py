# Overview: Service-layer reconciliation of inbound message codes into orders.
"""
Message-to-order reconciliation.

Turns an inbound WhatsApp text such as "quero C101 e c205" into cart/order
rows for the sender:

1. Messages from the tenant's own bot number are discarded.
2. Product codes ("C" + digits, any case) are extracted in order.
3. Each code is processed on its own, in its own transaction:
   product lookup -> stock check -> unpaid order for
   (tenant, phone, business day, product.sale_type) -> cart -> cart item
   (+1, price refreshed) -> order total recomputed -> stock decrement ->
   ITEM_ADDED notification queued.
   A failing code is reported and never undoes the codes before it.
4. Group metadata, when present, is remembered for attribution.

Stock decrement and notification failures are logged and do not undo the sale.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from datetime import date
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Cart, CartItem, CustomerWhatsAppGroup, Order, Product, Tenant
from ..models.messaging import MESSAGE_ITEM_ADDED
from ..models.orders import CART_STATUS_OPEN
from .concurrency import lock_for_update, run_with_retry
from .delivery_queue import DeliveryQueue, OutboundJob
from .message_log_service import log_incoming
from .order_service import recompute_order_total
from .phone_service import phones_match, regional_rule_from_config, to_send_form, to_storage_form
from .template_service import build_item_added_message
from .tenant_service import require_active_tenant, scoped_query, tenant_today


logger = logging.getLogger(__name__)

PRODUCT_CODE_PATTERN = re.compile(r"C\d+", re.IGNORECASE)

# Every code occurrence adds exactly one unit; repeat the code to add more.
QTY_PER_MATCH = 1

ERROR_PRODUCT_NOT_FOUND = "Produto não encontrado"
ERROR_OUT_OF_STOCK = "Produto sem estoque"
ERROR_PERSISTENCE = "Erro ao processar pedido"


@dataclass(frozen=True)
class GroupMeta:
    group_id: str
    group_name: Optional[str] = None


@dataclass
class CodeResult:
    code: str
    success: bool
    product: Optional[str] = None
    order_id: Optional[int] = None
    quantity: Optional[int] = None
    total_cents: Optional[int] = None
    order_total_cents: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class _Added:
    order_id: int
    order_total_cents: int
    product_id: int
    product_name: str
    unit_price_cents: int


def extract_product_codes(text: str | None) -> list[str]:
    if not text:
        return []
    return [match.upper() for match in PRODUCT_CODE_PATTERN.findall(text)]


def process_inbound_message(
    tenant_id,
    customer_phone_raw: str,
    text: str,
    group: GroupMeta | None = None,
    *,
    queue: DeliveryQueue | None = None,
    today: date | None = None,
) -> list[CodeResult]:
    """
    Reconcile one inbound message into the sender's same-day orders.

    Raises TenantAccessError for unknown/inactive tenants before any write.
    Returns one CodeResult per extracted code, in message order.
    """
    tenant = require_active_tenant(tenant_id)
    phone = to_storage_form(customer_phone_raw)

    if tenant.whatsapp_bot_phone and phones_match(phone, tenant.whatsapp_bot_phone):
        logger.debug("Ignoring message from tenant %s bot number", tenant.id)
        return []

    codes = extract_product_codes(text)
    if not codes:
        logger.debug("No product codes in message from %s", phone)
        return []

    logger.info("Tenant %s: %d code(s) from %s: %s", tenant.id, len(codes), phone, codes)
    log_incoming(tenant.id, phone, text)

    day = today or tenant_today(tenant)
    group_name = group.group_name if group else None

    results = []
    for code in codes:
        result, added = _process_code(tenant, phone, code, day, group_name)
        results.append(result)
        if added and queue is not None:
            _enqueue_item_added(queue, tenant, phone, added)

    if group and group.group_id:
        _remember_group(tenant.id, group, phone)

    return results


def _find_active_product(tenant_id: int, code: str) -> Product | None:
    return (
        scoped_query(Product, tenant_id)
        .filter(
            Product.code == code.upper(),
            Product.is_active.is_(True),
        )
        .first()
    )


def _process_code(
    tenant: Tenant,
    phone: str,
    code: str,
    day: date,
    group_name: str | None,
) -> tuple[CodeResult, _Added | None]:
    product = _find_active_product(tenant.id, code)
    if not product:
        logger.info("Product %s not found for tenant %s", code, tenant.id)
        return CodeResult(code=code, success=False, error=ERROR_PRODUCT_NOT_FOUND), None

    if product.stock <= 0:
        logger.info("Product %s out of stock for tenant %s", code, tenant.id)
        return CodeResult(code=code, success=False, error=ERROR_OUT_OF_STOCK), None

    product_id = product.id
    try:
        added = _add_with_conflict_retry(tenant.id, phone, product_id, day, group_name)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to add %s to order of %s (tenant %s)", code, phone, tenant.id)
        return CodeResult(code=code, success=False, error=ERROR_PERSISTENCE), None

    _decrement_stock(product_id, QTY_PER_MATCH)

    return CodeResult(
        code=code,
        success=True,
        product=added.product_name,
        order_id=added.order_id,
        quantity=QTY_PER_MATCH,
        total_cents=QTY_PER_MATCH * added.unit_price_cents,
        order_total_cents=added.order_total_cents,
    ), added


def _add_with_conflict_retry(tenant_id: int, phone: str, product_id: int, day: date, group_name: str | None) -> _Added:
    """
    Run the add as one transaction.

    An IntegrityError here means a concurrent message created the same unpaid
    order or cart item first; rerunning merges into the winner's rows.
    """
    def _op():
        return _add_to_order(tenant_id, phone, product_id, day, group_name)

    for attempt in range(2):
        try:
            return run_with_retry(_op)
        except IntegrityError:
            db.session.rollback()
            if attempt:
                raise
            logger.info("Concurrent order write for %s (tenant %s); merging", phone, tenant_id)


def _unpaid_order_query(tenant_id: int, phone: str, day: date, event_type: str):
    return scoped_query(Order, tenant_id).filter(
        Order.customer_phone == phone,
        Order.event_date == day,
        Order.event_type == event_type,
        Order.is_paid.is_(False),
    )


def _find_or_create_order(tenant_id: int, phone: str, day: date, event_type: str, group_name: str | None) -> Order:
    order = (
        lock_for_update(_unpaid_order_query(tenant_id, phone, day, event_type))
        .order_by(Order.created_at.desc())
        .first()
    )
    if order:
        return order

    order = Order(
        tenant_id=tenant_id,
        customer_phone=phone,
        event_type=event_type,
        event_date=day,
        total_amount_cents=0,
        is_paid=False,
        whatsapp_group_name=group_name,
    )
    db.session.add(order)
    db.session.flush()
    logger.info("Created %s order %s for %s on %s (tenant %s)", event_type, order.id, phone, day, tenant_id)
    return order


def _ensure_cart(order: Order, group_name: str | None) -> Cart:
    if order.cart_id:
        cart = db.session.get(Cart, order.cart_id)
        if cart:
            return cart

    cart = Cart(
        tenant_id=order.tenant_id,
        customer_phone=order.customer_phone,
        event_type=order.event_type,
        event_date=order.event_date,
        status=CART_STATUS_OPEN,
        whatsapp_group_name=group_name,
    )
    db.session.add(cart)
    db.session.flush()
    order.cart_id = cart.id
    return cart


def _add_to_order(tenant_id: int, phone: str, product_id: int, day: date, group_name: str | None) -> _Added:
    product = db.session.get(Product, product_id)

    order = _find_or_create_order(tenant_id, phone, day, product.sale_type, group_name)
    cart = _ensure_cart(order, group_name)

    item = lock_for_update(
        db.session.query(CartItem).filter_by(cart_id=cart.id, product_id=product.id)
    ).first()
    if item:
        item.qty += QTY_PER_MATCH
        # Earlier units are not repriced; the snapshot follows the latest add.
        item.unit_price_cents = product.price_cents
    else:
        item = CartItem(
            tenant_id=tenant_id,
            cart_id=cart.id,
            product_id=product.id,
            qty=QTY_PER_MATCH,
            unit_price_cents=product.price_cents,
        )
        db.session.add(item)

    recompute_order_total(order)
    db.session.commit()

    return _Added(
        order_id=order.id,
        order_total_cents=order.total_amount_cents,
        product_id=product.id,
        product_name=product.name,
        unit_price_cents=product.price_cents,
    )


def _decrement_stock(product_id: int, qty: int) -> None:
    try:
        updated = (
            db.session.query(Product)
            .filter(Product.id == product_id, Product.stock >= qty)
            .update(
                {
                    Product.stock: Product.stock - qty,
                    Product.version_id: Product.version_id + 1,
                },
                synchronize_session=False,
            )
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to decrement stock of product %s (sale kept)", product_id)
        return

    if not updated:
        logger.warning("Stock of product %s already exhausted; sale kept without decrement", product_id)


def _enqueue_item_added(queue: DeliveryQueue, tenant: Tenant, phone: str, added: _Added) -> None:
    try:
        product = db.session.get(Product, added.product_id)
        body = build_item_added_message(tenant.id, product, QTY_PER_MATCH, added.unit_price_cents)
        recipient = to_send_form(phone, *regional_rule_from_config(current_app.config))
        queue.enqueue(tenant.id, OutboundJob(
            recipient=recipient,
            body=body,
            kind=MESSAGE_ITEM_ADDED,
            order_id=added.order_id,
        ))
    except Exception:
        logger.exception("Failed to queue item-added message for order %s", added.order_id)


def _remember_group(tenant_id: int, group: GroupMeta, phone: str) -> None:
    try:
        row = (
            db.session.query(CustomerWhatsAppGroup)
            .filter_by(tenant_id=tenant_id, group_id=group.group_id, customer_phone=phone)
            .first()
        )
        if row:
            if group.group_name and row.group_name != group.group_name:
                row.group_name = group.group_name
        else:
            db.session.add(CustomerWhatsAppGroup(
                tenant_id=tenant_id,
                group_id=group.group_id,
                customer_phone=phone,
                group_name=group.group_name,
            ))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to record group %s for %s (tenant %s)", group.group_id, phone, tenant_id)
