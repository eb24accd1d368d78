# Overview: Flask CLI command groups for tenant bootstrap, catalog setup, message simulation and delivery.

# backend/liveorders/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management (MULTI-TENANT):
# - python -m flask tenants list
#   List all tenants.
# - python -m flask tenants create --name "Loja da Ana" --slug ana --bot-phone 31999990000
#   Create a new tenant (seller account).
# - python -m flask tenants set-template --tenant ana --type ITEM_ADDED --content "..."
#   Override a customer-facing message template.
#
# Catalog:
# - python -m flask products list --tenant ana
#   List products with price and stock.
# - python -m flask products create --tenant ana --code C101 --name "Blusa" --price-cents 4990 --stock 10 --sale-type LIVE
#   Create a product (code is stored uppercased).
# - python -m flask products set-stock --tenant ana --code C101 --stock 5
#   Overwrite the stock of a product.
#
# Message simulation:
# - python -m flask messages process --tenant ana --phone 31988887777 --text "quero C101" [--send]
#   Run the reconciliation engine on a text, as if received from WhatsApp.
# - python -m flask messages history --tenant ana --limit 20
#   Show the message log.
#
# Delivery:
# - python -m flask queue send --tenant ana --to 31988887777 --text "Olá!"
#   Queue one message and drain it through the transport server.
# - python -m flask queue session --tenant ana
#   Diagnose the tenant's WhatsApp session.

import asyncio

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Order, Product, Tenant, WhatsAppTemplate
from .models.catalog import SALE_TYPE_BAZAR, VALID_SALE_TYPES
from .models.messaging import TEMPLATE_ITEM_ADDED, TEMPLATE_PAID_ORDER
from .services.delivery_queue import OutboundJob, get_delivery_queue
from .services.message_log_service import list_messages
from .services.phone_service import regional_rule_from_config, to_display_form, to_send_form, to_storage_form
from .services.reconciliation_service import process_inbound_message
from .services.session_validator import diagnose
from .services.template_service import format_cents
from .services.tenant_service import TenantAccessError, require_active_tenant, resolve_tenant
from .services.whatsapp_client import build_send_fn, build_usable_fn, get_whatsapp_client
from .validation import ValidationError, enforce_rules_product


def _tenant_or_fail(identifier):
    try:
        return require_active_tenant(identifier)
    except TenantAccessError as e:
        raise click.ClickException(f"{e}: {identifier}")


def _drain(tenant_id):
    client = get_whatsapp_client()
    return asyncio.run(
        get_delivery_queue().drain(tenant_id, build_send_fn(client), build_usable_fn(client))
    )


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask tenants create' to add a tenant.")


# =============================================================================
# TENANT MANAGEMENT COMMANDS
# =============================================================================

@click.group('tenants')
def tenants_group():
    """Tenant (seller account) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<25} {'Slug':<15} {'Active':<8} {'Bot phone':<18} {'Open orders'}")
    click.echo("="*80)

    for tenant in tenants:
        open_orders = db.session.query(Order).filter_by(tenant_id=tenant.id, is_paid=False).count()
        active_str = "Yes" if tenant.is_active else "No"
        bot = to_display_form(tenant.whatsapp_bot_phone) or '-'

        click.echo(f"{tenant.id:<5} {tenant.name:<25} {tenant.slug:<15} {active_str:<8} {bot:<18} {open_orders}")

    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--slug', required=True, help='Short slug (unique), usable as X-Tenant-Id')
@click.option('--bot-phone', help="Phone number of the tenant's WhatsApp session")
@click.option('--timezone', 'tz_name', default='America/Sao_Paulo', show_default=True, help='Business timezone')
@with_appcontext
def create_tenant_cli(name, slug, bot_phone, tz_name):
    """Create a new tenant."""
    slug = slug.strip().lower()
    if slug.isdigit():
        click.echo("FAIL Slug cannot be purely numeric (it would be read as a tenant id)")
        return

    existing = db.session.query(Tenant).filter_by(slug=slug).first()
    if existing:
        click.echo(f"FAIL Tenant with slug '{slug}' already exists")
        return

    tenant = Tenant(
        name=name,
        slug=slug,
        is_active=True,
        whatsapp_bot_phone=to_storage_form(bot_phone) if bot_phone else None,
        timezone=tz_name,
    )
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Slug: {tenant.slug})")


@tenants_group.command('set-template')
@click.option('--tenant', 'tenant_ref', required=True, help='Tenant id or slug')
@click.option('--type', 'template_type', type=click.Choice([TEMPLATE_ITEM_ADDED, TEMPLATE_PAID_ORDER]), required=True)
@click.option('--content', required=True, help='Template text with {{placeholders}}')
@with_appcontext
def set_template_cli(tenant_ref, template_type, content):
    """Create or replace a message template."""
    tenant = _tenant_or_fail(tenant_ref)

    row = db.session.query(WhatsAppTemplate).filter_by(tenant_id=tenant.id, type=template_type).first()
    if row:
        row.content = content
    else:
        db.session.add(WhatsAppTemplate(tenant_id=tenant.id, type=template_type, content=content))
    db.session.commit()

    click.echo(f"PASS Template {template_type} saved for tenant '{tenant.slug}'")


# =============================================================================
# CATALOG COMMANDS
# =============================================================================

@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('list')
@click.option('--tenant', 'tenant_ref', required=True, help='Tenant id or slug')
@click.option('--all', 'show_all', is_flag=True, help='Show inactive products too')
@with_appcontext
def list_products_cli(tenant_ref, show_all):
    """List products of a tenant."""
    tenant = _tenant_or_fail(tenant_ref)

    query = db.session.query(Product).filter_by(tenant_id=tenant.id)
    if not show_all:
        query = query.filter_by(is_active=True)
    products = query.order_by(Product.code).all()

    if not products:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Code':<10} {'Name':<30} {'Price':<14} {'Stock':<8} {'Type':<8} {'Active'}")
    click.echo("="*80)

    for p in products:
        active_str = "Yes" if p.is_active else "No"
        click.echo(f"{p.code:<10} {p.name[:30]:<30} {format_cents(p.price_cents):<14} {p.stock:<8} {p.sale_type:<8} {active_str}")

    click.echo("="*80 + "\n")


@products_group.command('create')
@click.option('--tenant', 'tenant_ref', required=True, help='Tenant id or slug')
@click.option('--code', required=True, help='Product code, e.g. C101')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, required=True, help='Unit price in cents')
@click.option('--stock', type=int, default=0, show_default=True)
@click.option('--sale-type', type=click.Choice(sorted(VALID_SALE_TYPES)), default=SALE_TYPE_BAZAR, show_default=True)
@with_appcontext
def create_product_cli(tenant_ref, code, name, price_cents, stock, sale_type):
    """Create a product."""
    tenant = _tenant_or_fail(tenant_ref)

    try:
        enforce_rules_product(code=code, price_cents=price_cents, stock=stock, sale_type=sale_type)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        return

    code = code.strip().upper()
    existing = db.session.query(Product).filter_by(tenant_id=tenant.id, code=code).first()
    if existing:
        click.echo(f"FAIL Product '{code}' already exists for tenant '{tenant.slug}'")
        return

    product = Product(
        tenant_id=tenant.id,
        code=code,
        name=name,
        price_cents=price_cents,
        stock=stock,
        sale_type=sale_type,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()

    click.echo(f"PASS Created product {product.code} '{product.name}' ({format_cents(product.price_cents)}, stock {product.stock})")


@products_group.command('set-stock')
@click.option('--tenant', 'tenant_ref', required=True, help='Tenant id or slug')
@click.option('--code', required=True)
@click.option('--stock', type=int, required=True)
@with_appcontext
def set_stock_cli(tenant_ref, code, stock):
    """Overwrite a product's stock."""
    tenant = _tenant_or_fail(tenant_ref)
    if stock < 0:
        click.echo("FAIL stock must be >= 0")
        return

    product = db.session.query(Product).filter_by(tenant_id=tenant.id, code=code.strip().upper()).first()
    if not product:
        click.echo(f"FAIL Product '{code}' not found")
        return

    before = product.stock
    product.stock = stock
    db.session.commit()

    click.echo(f"PASS {product.code} stock {before} -> {product.stock}")


# =============================================================================
# MESSAGE COMMANDS
# =============================================================================

@click.group('messages')
def messages_group():
    """Inbound message simulation and history."""


@messages_group.command('process')
@click.option('--tenant', 'tenant_ref', required=True, help='Tenant id or slug')
@click.option('--phone', required=True, help='Customer phone (any format)')
@click.option('--text', required=True, help='Message text, e.g. "quero C101 e C205"')
@click.option('--send', is_flag=True, help='Send the confirmations through the transport server')
@with_appcontext
def process_message_cli(tenant_ref, phone, text, send):
    """Run the reconciliation engine on a text."""
    tenant = _tenant_or_fail(tenant_ref)

    results = process_inbound_message(tenant.id, phone, text, queue=get_delivery_queue())

    if not results:
        click.echo("No product codes found (or message came from the bot number).")
        return

    for r in results:
        if r.success:
            click.echo(
                f"PASS {r.code}: {r.product} x{r.quantity} -> order #{r.order_id} "
                f"(order total {format_cents(r.order_total_cents)})"
            )
        else:
            click.echo(f"FAIL {r.code}: {r.error}")

    queue = get_delivery_queue()
    if send:
        stats = _drain(tenant.id)
        click.echo(f"Queue: sent={stats.sent} failed={stats.failed} pending={stats.pending}")
    else:
        click.echo(f"{queue.size(tenant.id)} confirmation(s) built; use --send to deliver them.")


@messages_group.command('history')
@click.option('--tenant', 'tenant_ref', required=True, help='Tenant id or slug')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def message_history_cli(tenant_ref, limit):
    """Show the most recent message log entries."""
    tenant = _tenant_or_fail(tenant_ref)

    rows = list_messages(tenant.id, limit=limit)
    if not rows:
        click.echo("No messages found.")
        return

    for row in rows:
        when = row.get("sent_at") or row.get("received_at") or row.get("created_at")
        preview = (row.get("message") or "").replace("\n", " ")[:50]
        click.echo(f"{when or '-':<22} {row['type']:<12} {to_display_form(row['phone']) or '-':<18} {preview}")


# =============================================================================
# DELIVERY COMMANDS
# =============================================================================

@click.group('queue')
def queue_group():
    """Outbound delivery commands."""


@queue_group.command('send')
@click.option('--tenant', 'tenant_ref', required=True, help='Tenant id or slug')
@click.option('--to', 'recipient', required=True, help='Recipient phone')
@click.option('--text', required=True)
@with_appcontext
def send_cli(tenant_ref, recipient, text):
    """Queue one message and drain it."""
    tenant = _tenant_or_fail(tenant_ref)

    send_form = to_send_form(recipient, *regional_rule_from_config(current_app.config))
    job = get_delivery_queue().enqueue(tenant.id, OutboundJob(recipient=send_form, body=text, delay_after_ms=0))
    stats = _drain(tenant.id)

    if stats.sent:
        click.echo(f"PASS Sent message {job.id} to {send_form}")
    else:
        click.echo(f"FAIL Message {job.id} not sent: {job.last_error or 'session not usable'}")


@queue_group.command('session')
@click.option('--tenant', 'tenant_ref', required=True, help='Tenant id or slug')
@with_appcontext
def session_cli(tenant_ref):
    """Diagnose the tenant's WhatsApp session."""
    tenant = resolve_tenant(tenant_ref)
    if not tenant:
        raise click.ClickException(f"Tenant not found: {tenant_ref}")

    session = asyncio.run(get_whatsapp_client().fetch_session(tenant.id))
    diagnosis = diagnose(session, tenant_label=tenant.slug)

    if diagnosis.valid:
        click.echo(f"PASS Session valid ({diagnosis.identity})")
    else:
        click.echo(f"FAIL {diagnosis.reason}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)  # Multi-tenant seller management
    app.cli.add_command(products_group)
    app.cli.add_command(messages_group)
    app.cli.add_command(queue_group)
