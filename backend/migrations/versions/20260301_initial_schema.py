"""Initial schema: users, sessions, merchants, cards, vouchers, gift cards, shares, audit

Revision ID: 20260301_initial
Revises:
Create Date: 2026-03-01

This migration creates:
1. users and session_tokens (original_user_id marks impersonation sessions)
2. merchants (name unique among active rows)
3. cards, vouchers, gift_cards (number/code unique per owner among active rows)
4. gift_card_transactions (positive amounts)
5. card_shares, voucher_shares, gift_card_shares (one active share per pair)
6. audit_logs (append-only)

Every soft-deletable table carries a nullable deleted_at. Uniqueness
rules are partial indexes over active rows so soft-deleted rows never
block re-creation. gift_cards.current_balance_cents is guarded by a
check constraint.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20260301_initial'
down_revision = None
branch_labels = None
depends_on = None


ACTIVE = sa.text('deleted_at IS NULL')
ACTIVE_OWNED = sa.text('user_id IS NOT NULL AND deleted_at IS NULL')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def _partial_unique(name, table, columns, where):
    op.create_index(
        name, table, columns, unique=True,
        sqlite_where=where, postgresql_where=where,
    )


def upgrade():
    # ==========================================================================
    # 1. USERS / SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='user'),
        sa.Column('auth_provider', sa.String(length=16), nullable=False, server_default='local'),
        *_timestamps(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('original_user_id', sa.Integer(), nullable=True),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['original_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_session_tokens_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_original_user_id'), ['original_user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_token_hash'), ['token_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_session_tokens_expires_at'), ['expires_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_is_revoked'), ['is_revoked'], unique=False)
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 2. MERCHANTS
    # ==========================================================================
    op.create_table('merchants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('color', sa.String(length=16), nullable=True),
        sa.Column('website', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_merchants_deleted_at', 'merchants', ['deleted_at'], unique=False)
    _partial_unique('uq_merchants_active_name', 'merchants', ['name'], ACTIVE)

    # ==========================================================================
    # 3. CARDS / VOUCHERS / GIFT CARDS
    # ==========================================================================
    op.create_table('cards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('merchant_id', sa.Integer(), nullable=True),
        sa.Column('merchant_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('program', sa.String(length=120), nullable=False),
        sa.Column('card_number', sa.String(length=64), nullable=False),
        sa.Column('barcode_type', sa.String(length=32), nullable=False, server_default='CODE128'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cards', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cards_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cards_merchant_id'), ['merchant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cards_deleted_at'), ['deleted_at'], unique=False)
    _partial_unique('uq_cards_user_card_number', 'cards', ['user_id', 'card_number'], ACTIVE_OWNED)

    op.create_table('vouchers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('merchant_id', sa.Integer(), nullable=True),
        sa.Column('merchant_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('voucher_type', sa.String(length=32), nullable=False),
        sa.Column('value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('min_purchase_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=False),
        sa.Column('usage_limit_type', sa.String(length=32), nullable=False, server_default='single_use'),
        sa.Column('barcode_type', sa.String(length=32), nullable=False, server_default='CODE128'),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('valid_until >= valid_from', name='ck_vouchers_validity_window'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('vouchers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_vouchers_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_vouchers_merchant_id'), ['merchant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_vouchers_deleted_at'), ['deleted_at'], unique=False)
    _partial_unique('uq_vouchers_user_code', 'vouchers', ['user_id', 'code'], ACTIVE_OWNED)

    op.create_table('gift_cards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('merchant_id', sa.Integer(), nullable=True),
        sa.Column('merchant_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('card_number', sa.String(length=64), nullable=False),
        sa.Column('initial_balance_cents', sa.Integer(), nullable=False),
        sa.Column('current_balance_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='CHF'),
        sa.Column('pin', sa.String(length=32), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('barcode_type', sa.String(length=32), nullable=False, server_default='CODE128'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('initial_balance_cents >= 0', name='ck_gift_cards_initial_balance_non_negative'),
        sa.CheckConstraint('current_balance_cents >= 0', name='ck_gift_cards_current_balance_non_negative'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('gift_cards', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_gift_cards_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_gift_cards_merchant_id'), ['merchant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_gift_cards_deleted_at'), ['deleted_at'], unique=False)
    _partial_unique('uq_gift_cards_user_card_number', 'gift_cards', ['user_id', 'card_number'], ACTIVE_OWNED)

    # ==========================================================================
    # 4. GIFT CARD TRANSACTIONS
    # ==========================================================================
    op.create_table('gift_card_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('gift_card_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('transaction_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount_cents > 0', name='ck_gift_card_transactions_amount_positive'),
        sa.ForeignKeyConstraint(['gift_card_id'], ['gift_cards.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('gift_card_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_gift_card_transactions_gift_card_id'), ['gift_card_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_gift_card_transactions_created_by_user_id'), ['created_by_user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_gift_card_transactions_deleted_at'), ['deleted_at'], unique=False)
        batch_op.create_index('ix_gift_card_transactions_card_active', ['gift_card_id', 'deleted_at'], unique=False)

    # ==========================================================================
    # 5. SHARES
    # ==========================================================================
    for table, fk, target, extra in (
        ('card_shares', 'card_id', 'cards', []),
        ('voucher_shares', 'voucher_id', 'vouchers', []),
        ('gift_card_shares', 'gift_card_id', 'gift_cards',
         [sa.Column('can_edit_transactions', sa.Boolean(), nullable=False, server_default='0')]),
    ):
        op.create_table(table,
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column(fk, sa.Integer(), nullable=False),
            sa.Column('shared_with_id', sa.Integer(), nullable=False),
            sa.Column('can_edit', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('can_delete', sa.Boolean(), nullable=False, server_default='0'),
            *extra,
            *_timestamps(),
            sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint([fk], [f'{target}.id'], ),
            sa.ForeignKeyConstraint(['shared_with_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sqlite_autoincrement=True
        )
        op.create_index(f'ix_{table}_{fk}', table, [fk], unique=False)
        op.create_index(f'ix_{table}_shared_with_id', table, ['shared_with_id'], unique=False)
        op.create_index(f'ix_{table}_deleted_at', table, ['deleted_at'], unique=False)
        _partial_unique(f'uq_{table}_active_pair', table, [fk, 'shared_with_id'], ACTIVE)

    # ==========================================================================
    # 6. AUDIT LOGS
    # ==========================================================================
    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('resource_type', sa.String(length=64), nullable=False),
        sa.Column('resource_id', sa.Integer(), nullable=False),
        sa.Column('resource_data', sa.JSON(), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audit_logs_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_action'), ['action'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_resource_type'), ['resource_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_created_at'), ['created_at'], unique=False)
        batch_op.create_index('ix_audit_logs_resource', ['resource_type', 'resource_id'], unique=False)
        batch_op.create_index('ix_audit_logs_user_created', ['user_id', 'created_at'], unique=False)


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('gift_card_shares')
    op.drop_table('voucher_shares')
    op.drop_table('card_shares')
    op.drop_table('gift_card_transactions')
    op.drop_table('gift_cards')
    op.drop_table('vouchers')
    op.drop_table('cards')
    op.drop_table('merchants')
    op.drop_table('session_tokens')
    op.drop_table('users')
