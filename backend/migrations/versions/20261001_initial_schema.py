"""Initial schema: theaters, identity, page access, OTP, settings, monthly stock

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

This migration creates:
1. Theaters and products (tenant root and catalog items)
2. Users, auth tokens and theater roles (identity and authorization matrix)
3. Page access (one catalog document per theater)
4. OTPs (expires_at indexed for the reaper)
5. Settings
6. Monthly stock ledger
7. Security events

No index is created on page names: they are display labels and repeat
across theaters.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. THEATERS AND PRODUCTS
    # ==========================================================================
    op.create_table('theaters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('theaters', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_theaters_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_theaters_is_active'), ['is_active'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('theater_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False, server_default='pcs'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('theater_id', 'name', name='uq_products_theater_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_theater_id'), ['theater_id'], unique=False)

    # ==========================================================================
    # 2. USERS, TOKENS, ROLES
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='customer'),
        sa.Column('theater_id', sa.Integer(), nullable=True),
        sa.Column('role_id', sa.String(length=64), nullable=True),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lock_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('login_attempts >= 0', name='ck_users_login_attempts_nonneg'),
        sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=True)
        batch_op.create_index('ix_users_theater_id', ['theater_id'], unique=False)

    op.create_table('auth_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('device_info', sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('auth_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_auth_tokens_token'), ['token'], unique=True)
        batch_op.create_index('ix_auth_tokens_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_auth_tokens_expires_at', ['expires_at'], unique=False)

    op.create_table('roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('theater_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('normalized_name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('can_delete', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('theater_id', 'normalized_name', name='uq_roles_theater_name'),
        sa.UniqueConstraint('theater_id', 'role_id', name='uq_roles_theater_role_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('roles', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_roles_theater_id'), ['theater_id'], unique=False)

    # ==========================================================================
    # 3. PAGE ACCESS
    # ==========================================================================
    op.create_table('page_access',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('theater_id', sa.Integer(), nullable=False),
        sa.Column('page_access_list', sa.JSON(), nullable=False),
        sa.Column('total_pages', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active_pages', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('inactive_pages', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_modified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_modified_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], ),
        sa.ForeignKeyConstraint(['last_modified_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('page_access', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_page_access_theater_id'), ['theater_id'], unique=True)

    # ==========================================================================
    # 4. OTPS
    # ==========================================================================
    op.create_table('otps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('public_id', sa.String(length=32), nullable=False),
        sa.Column('phone_number', sa.String(length=32), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('purpose', sa.String(length=32), nullable=False, server_default='verification'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('attempts >= 0', name='ck_otps_attempts_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('otps', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_otps_public_id'), ['public_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_otps_expires_at'), ['expires_at'], unique=False)
        batch_op.create_index('ix_otps_phone_purpose', ['phone_number', 'purpose'], unique=False)

    # ==========================================================================
    # 5. SETTINGS
    # ==========================================================================
    op.create_table('settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('theater_id', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value_type', sa.String(length=16), nullable=False, server_default='string'),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], ),
        sa.ForeignKeyConstraint(['updated_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('theater_id', 'category', 'key', name='uq_settings_theater_category_key'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('settings', schema=None) as batch_op:
        batch_op.create_index('ix_settings_theater_category', ['theater_id', 'category'], unique=False)

    # ==========================================================================
    # 6. MONTHLY STOCK
    # ==========================================================================
    op.create_table('monthly_stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('theater_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('opening_old_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('used_old_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expired_old_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_receipts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_expired', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('closing_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('opening_lots', sa.JSON(), nullable=False),
        sa.Column('stock_details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('month >= 1 AND month <= 12', name='ck_monthly_stock_month_range'),
        sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'year', 'month', name='uq_monthly_stock_product_period'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('monthly_stock', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_monthly_stock_product_id'), ['product_id'], unique=False)
        batch_op.create_index('ix_monthly_stock_theater_period', ['theater_id', 'year', 'month'], unique=False)

    # ==========================================================================
    # 7. SECURITY EVENTS
    # ==========================================================================
    op.create_table('security_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('theater_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=128), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('security_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_security_events_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_security_events_event_type'), ['event_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_security_events_success'), ['success'], unique=False)
        batch_op.create_index(batch_op.f('ix_security_events_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_security_events_user_type', ['user_id', 'event_type'], unique=False)
        batch_op.create_index('ix_security_events_type_action', ['event_type', 'action'], unique=False)
        batch_op.create_index('ix_security_events_theater_occurred', ['theater_id', 'occurred_at'], unique=False)


def downgrade():
    op.drop_table('security_events')
    op.drop_table('monthly_stock')
    op.drop_table('settings')
    op.drop_table('otps')
    op.drop_table('page_access')
    op.drop_table('roles')
    op.drop_table('auth_tokens')
    op.drop_table('users')
    op.drop_table('products')
    op.drop_table('theaters')
