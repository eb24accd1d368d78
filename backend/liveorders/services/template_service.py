# Overview: Service-layer message templates and money formatting.
"""Customer-facing WhatsApp texts built from per-tenant templates."""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import CartItem, Order, Product, WhatsAppTemplate
from ..models.messaging import TEMPLATE_ITEM_ADDED, TEMPLATE_PAID_ORDER


DEFAULT_TEMPLATES = {
    TEMPLATE_ITEM_ADDED: (
        "🛒 *Item adicionado ao pedido*\n\n"
        "✅ {{produto}} ({{codigo}})\n"
        "Qtd: *{{quantidade}}*\n"
        "Preço: *{{preco}}*\n"
        "Subtotal: *{{total}}*"
    ),
    TEMPLATE_PAID_ORDER: (
        "🎉 *Pagamento Confirmado - Pedido #{{order_id}}*\n\n"
        "Recebemos o seu pagamento!\n"
        "Valor: *{{total_amount}}*\n\n"
        "Obrigado por comprar com a gente!"
    ),
}


def format_cents(cents: int | None) -> str:
    """1050 -> 'R$ 10.50'"""
    value = int(cents or 0)
    sign = "-" if value < 0 else ""
    value = abs(value)
    return f"{sign}R$ {value // 100}.{value % 100:02d}"


def get_template(tenant_id: int, template_type: str) -> str:
    row = (
        db.session.query(WhatsAppTemplate)
        .filter_by(tenant_id=tenant_id, type=template_type)
        .first()
    )
    if row and row.content:
        return row.content
    return DEFAULT_TEMPLATES[template_type]


def render(content: str, variables: dict[str, str]) -> str:
    for key, value in variables.items():
        content = content.replace("{{" + key + "}}", value)
    return content


def build_item_added_message(tenant_id: int, product: Product, quantity: int, unit_price_cents: int) -> str:
    return render(
        get_template(tenant_id, TEMPLATE_ITEM_ADDED),
        {
            "produto": product.name,
            "codigo": product.code,
            "quantidade": str(quantity),
            "preco": format_cents(unit_price_cents),
            "total": format_cents(quantity * unit_price_cents),
        },
    )


def _order_details(items: list[CartItem]) -> str:
    if not items:
        return "Itens confirmados."
    return "\n".join(
        f"• {item.qty}x {item.product.name if item.product else 'Produto'} - {format_cents(item.line_total_cents)}"
        for item in items
    )


def _format_event_date(value: date | None) -> str:
    return value.strftime("%d/%m/%Y") if value else ""


def build_paid_order_message(order: Order, items: list[CartItem], customer_name: str = "") -> str:
    total = format_cents(order.total_amount_cents)
    return render(
        get_template(order.tenant_id, TEMPLATE_PAID_ORDER),
        {
            "order_id": str(order.id),
            "total": total,
            "total_amount": total,
            "customer_name": customer_name,
            "customer_phone": order.customer_phone or "",
            "order_details": _order_details(items),
            "event_type": order.event_type or "",
            "event_date": _format_event_date(order.event_date),
        },
    )
