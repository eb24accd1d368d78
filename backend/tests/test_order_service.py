# Overview: Pytest coverage for order totals and the payment-confirmed transition.

from datetime import date

import pytest

from liveorders.extensions import db
from liveorders.models import CartItem, Order, WhatsAppTemplate
from liveorders.models.messaging import MESSAGE_ORDER_PAID, TEMPLATE_PAID_ORDER
from liveorders.services.order_service import (
    OrderError,
    get_order_detail,
    mark_confirmation_sent,
    mark_order_paid,
    recalculate_order,
)
from liveorders.services.reconciliation_service import process_inbound_message
from liveorders.services.template_service import format_cents
from liveorders.services.tenant_service import TenantAccessError


TODAY = date(2026, 3, 14)


@pytest.fixture
def order(db_session, tenant_a, bazar_product, live_product):
    results = process_inbound_message(tenant_a.id, "31988887777", "C101 C101", today=TODAY)
    return db.session.get(Order, results[0].order_id)


class TestRecalculate:
    def test_repairs_a_drifted_total(self, db_session, tenant_a, order):
        order.total_amount_cents = 1
        db.session.commit()

        repaired = recalculate_order(tenant_a.id, order.id)

        assert repaired.total_amount_cents == 2000

    def test_admin_quantity_edit_is_reflected(self, db_session, tenant_a, order):
        item = db.session.query(CartItem).filter_by(cart_id=order.cart_id).one()
        item.qty = 5
        db.session.commit()

        assert recalculate_order(tenant_a.id, order.id).total_amount_cents == 5000

    def test_other_tenant_cannot_touch_the_order(self, db_session, tenant_b, order):
        with pytest.raises(TenantAccessError):
            recalculate_order(tenant_b.id, order.id)


class TestMarkPaid:
    def test_marks_paid_and_builds_confirmation(self, db_session, tenant_a, order):
        paid, job = mark_order_paid(tenant_a.id, order.id, customer_name="Ana")

        assert paid.is_paid is True
        assert paid.paid_at is not None
        assert job.kind == MESSAGE_ORDER_PAID
        assert job.order_id == order.id
        assert job.recipient == "553188887777"
        assert f"#{order.id}" in job.body
        assert "R$ 20.00" in job.body

    def test_custom_template_placeholders(self, db_session, tenant_a, order):
        db.session.add(WhatsAppTemplate(
            tenant_id=tenant_a.id,
            type=TEMPLATE_PAID_ORDER,
            content="Oi {{customer_name}}! Pedido {{order_id}} ({{event_date}}):\n{{order_details}}\nTotal {{total}}",
        ))
        db.session.commit()

        _, job = mark_order_paid(tenant_a.id, order.id, customer_name="Ana")

        assert job.body == (
            f"Oi Ana! Pedido {order.id} (14/03/2026):\n"
            "• 2x Blusa Floral - R$ 20.00\n"
            "Total R$ 20.00"
        )

    def test_confirmation_is_built_once(self, db_session, tenant_a, order):
        mark_order_paid(tenant_a.id, order.id)
        mark_confirmation_sent(order.id)

        again, job = mark_order_paid(tenant_a.id, order.id)

        assert again.is_paid is True
        assert job is None

    def test_unknown_order(self, db_session, tenant_a):
        with pytest.raises(OrderError):
            mark_order_paid(tenant_a.id, 424242)

    def test_other_tenants_order_is_not_found(self, db_session, tenant_b, order):
        with pytest.raises(OrderError):
            mark_order_paid(tenant_b.id, order.id)
        assert db.session.get(Order, order.id).is_paid is False


def test_order_detail_lists_items(db_session, tenant_a, order):
    detail = get_order_detail(tenant_a.id, order.id)

    assert detail["order"]["id"] == order.id
    assert detail["order"]["total_amount_cents"] == 2000
    assert len(detail["items"]) == 1
    assert detail["items"][0]["qty"] == 2


@pytest.mark.parametrize("cents, text", [
    (1000, "R$ 10.00"),
    (2550, "R$ 25.50"),
    (5, "R$ 0.05"),
    (0, "R$ 0.00"),
    (None, "R$ 0.00"),
])
def test_format_cents(cents, text):
    assert format_cents(cents) == text
