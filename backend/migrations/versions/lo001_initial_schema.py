"""Initial schema: tenants, catalog, carts/orders, WhatsApp groups/templates/log

1. Creates 'tenants' as the tenant root
2. Creates tenant-scoped products (code unique per tenant, stock >= 0)
3. Creates carts, cart_items and orders
4. Adds the partial unique index on unpaid orders
   (tenant_id, customer_phone, event_date, event_type) WHERE is_paid = false
   so concurrent first messages of the day converge on one order
5. Creates customer_whatsapp_groups, whatsapp_templates, whatsapp_messages

Revision ID: lo001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'lo001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    # ==========================================================================
    # STEP 1: Tenants
    # ==========================================================================
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=64), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('whatsapp_bot_phone', sa.String(length=32), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='America/Sao_Paulo'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_tenants_slug', 'tenants', ['slug'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    # ==========================================================================
    # STEP 2: Catalog
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('sale_type', sa.String(length=16), nullable=False, server_default='BAZAR'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_products_tenant_code'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_tenant_id', 'products', ['tenant_id'])
    op.create_index('ix_products_tenant_active', 'products', ['tenant_id', 'is_active'])

    # ==========================================================================
    # STEP 3: Carts and orders
    # ==========================================================================
    op.create_table('carts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('customer_phone', sa.String(length=32), nullable=False),
        sa.Column('event_type', sa.String(length=16), nullable=False),
        sa.Column('event_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('whatsapp_group_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_carts_tenant_id', 'carts', ['tenant_id'])
    op.create_index('ix_carts_status', 'carts', ['status'])
    op.create_index('ix_carts_tenant_key', 'carts', ['tenant_id', 'customer_phone', 'event_date', 'event_type'])

    op.create_table('cart_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('cart_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['cart_id'], ['carts.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cart_id', 'product_id', name='uq_cart_items_cart_product'),
        sa.CheckConstraint('qty >= 1', name='ck_cart_items_qty_positive'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_cart_items_tenant_id', 'cart_items', ['tenant_id'])
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'])
    op.create_index('ix_cart_items_product_id', 'cart_items', ['product_id'])

    op.create_table('orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('cart_id', sa.Integer(), nullable=True),
        sa.Column('customer_phone', sa.String(length=32), nullable=False),
        sa.Column('event_type', sa.String(length=16), nullable=False),
        sa.Column('event_date', sa.Date(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_confirmation_sent', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('observation', sa.Text(), nullable=True),
        sa.Column('whatsapp_group_name', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['cart_id'], ['carts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('total_amount_cents >= 0', name='ck_orders_total_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_orders_tenant_id', 'orders', ['tenant_id'])
    op.create_index('ix_orders_cart_id', 'orders', ['cart_id'])
    op.create_index('ix_orders_tenant_paid', 'orders', ['tenant_id', 'is_paid'])

    # ==========================================================================
    # STEP 4: Reconciliation key (one unpaid order per tenant/phone/day/type)
    # ==========================================================================
    op.create_index(
        'uq_orders_unpaid_reconciliation_key',
        'orders',
        ['tenant_id', 'customer_phone', 'event_date', 'event_type'],
        unique=True,
        sqlite_where=sa.text('is_paid = 0'),
        postgresql_where=sa.text('is_paid = false'),
    )

    # ==========================================================================
    # STEP 5: WhatsApp bookkeeping
    # ==========================================================================
    op.create_table('customer_whatsapp_groups',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.String(length=128), nullable=False),
        sa.Column('customer_phone', sa.String(length=32), nullable=False),
        sa.Column('group_name', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'group_id', 'customer_phone', name='uq_customer_groups_tenant_group_phone'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_customer_whatsapp_groups_tenant_id', 'customer_whatsapp_groups', ['tenant_id'])

    op.create_table('whatsapp_templates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'type', name='uq_whatsapp_templates_tenant_type'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_whatsapp_templates_tenant_id', 'whatsapp_templates', ['tenant_id'])

    op.create_table('whatsapp_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_whatsapp_messages_tenant_id', 'whatsapp_messages', ['tenant_id'])
    op.create_index('ix_whatsapp_messages_type', 'whatsapp_messages', ['type'])
    op.create_index('ix_whatsapp_messages_order_id', 'whatsapp_messages', ['order_id'])
    op.create_index('ix_whatsapp_messages_tenant_created', 'whatsapp_messages', ['tenant_id', 'created_at'])


def downgrade():
    op.drop_table('whatsapp_messages')
    op.drop_table('whatsapp_templates')
    op.drop_table('customer_whatsapp_groups')
    op.drop_index('uq_orders_unpaid_reconciliation_key', table_name='orders')
    op.drop_table('orders')
    op.drop_table('cart_items')
    op.drop_table('carts')
    op.drop_table('products')
    op.drop_table('tenants')
