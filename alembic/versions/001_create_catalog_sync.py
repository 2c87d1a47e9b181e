"""Create store connection, sync status, catalog and task log tables

Revision ID: 001
Revises: 
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'store_connections',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('platform', sa.String(32), nullable=False, comment='shopify or woocommerce'),
        sa.Column('store_name', sa.String(255), nullable=True),
        sa.Column('store_url', sa.String(255), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('consumer_key', sa.String(255), nullable=True),
        sa.Column('consumer_secret', sa.String(255), nullable=True),
        sa.Column('weight_unit', sa.String(16), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('auto_sync_products', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'platform', name='uq_store_connection_user_platform'),
    )
    op.create_index(op.f('ix_store_connections_user_id'), 'store_connections', ['user_id'], unique=False)

    # One row per (user, platform), overwritten by every run
    op.create_table(
        'sync_status',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('platform', sa.String(32), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='idle'),
        sa.Column('method', sa.String(32), nullable=True, comment='paginated_batch or bulk_export'),
        sa.Column('products_synced', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_products_found', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active_products_synced', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('inactive_products_skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'platform', name='uq_sync_status_user_platform'),
        sa.Index('idx_sync_status_status', 'status'),
    )

    op.create_table(
        'catalog_products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('platform', sa.String(32), nullable=False),
        sa.Column('handle', sa.String(255), nullable=False),
        sa.Column('source_product_id', sa.String(64), nullable=True),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(512), nullable=False, server_default=''),
        sa.Column('vendor', sa.String(255), nullable=True),
        sa.Column('product_type', sa.String(255), nullable=True),
        sa.Column('tags', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('seo_title', sa.String(512), nullable=True),
        sa.Column('seo_description', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('variant_sku', sa.String(255), nullable=True),
        sa.Column('variant_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('variant_compare_at_price', sa.Float(), nullable=True),
        sa.Column('variant_inventory_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('variant_grams', sa.Float(), nullable=True),
        sa.Column('variant_barcode', sa.String(255), nullable=True),
        sa.Column('variant_requires_shipping', sa.Boolean(), nullable=True),
        sa.Column('variant_taxable', sa.Boolean(), nullable=True),
        sa.Column('image_src', sa.Text(), nullable=True),
        sa.Column('image_position', sa.Integer(), nullable=True),
        sa.Column('sync_status', sa.String(20), nullable=False, server_default='synced'),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        sa.Column('source_created_at', sa.DateTime(), nullable=True),
        sa.Column('source_updated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'handle', 'platform',
                            name='uq_catalog_product_user_handle_platform'),
        sa.Index('idx_catalog_product_user_platform', 'user_id', 'platform'),
    )

    op.create_table(
        'price_change_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('platform', sa.String(32), nullable=False),
        sa.Column('handle', sa.String(255), nullable=False),
        sa.Column('old_price', sa.Float(), nullable=False),
        sa.Column('new_price', sa.Float(), nullable=False),
        sa.Column('change_percentage', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f('ix_price_change_events_user_id'), 'price_change_events', ['user_id'], unique=False)

    op.create_table(
        'sync_task_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('task_id', sa.String(255), nullable=False),
        sa.Column('task_name', sa.String(255), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('platform', sa.String(32), nullable=True),
        sa.Column('task_args', sa.JSON(), nullable=True),
        sa.Column('task_kwargs', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='pending'),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index(op.f('ix_sync_task_logs_task_id'), 'sync_task_logs', ['task_id'], unique=True)
    op.create_index(op.f('ix_sync_task_logs_task_name'), 'sync_task_logs', ['task_name'], unique=False)
    op.create_index(op.f('ix_sync_task_logs_user_id'), 'sync_task_logs', ['user_id'], unique=False)
    op.create_index(op.f('ix_sync_task_logs_created_at'), 'sync_task_logs', ['created_at'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_sync_task_logs_created_at'), table_name='sync_task_logs')
    op.drop_index(op.f('ix_sync_task_logs_user_id'), table_name='sync_task_logs')
    op.drop_index(op.f('ix_sync_task_logs_task_name'), table_name='sync_task_logs')
    op.drop_index(op.f('ix_sync_task_logs_task_id'), table_name='sync_task_logs')
    op.drop_table('sync_task_logs')
    op.drop_index(op.f('ix_price_change_events_user_id'), table_name='price_change_events')
    op.drop_table('price_change_events')
    op.drop_table('catalog_products')
    op.drop_table('sync_status')
    op.drop_index(op.f('ix_store_connections_user_id'), table_name='store_connections')
    op.drop_table('store_connections')
