"""initial_ledger_schema

Revision ID: 3f1c9a2b7d40
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = False, **kwargs) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, **kwargs)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('telegram_id', sa.BigInteger(), nullable=True, comment='Telegram user ID'),
        sa.Column('username', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=255), nullable=True),
        sa.Column('last_name', sa.String(length=255), nullable=True),
        sa.Column('photo_url', sa.String(length=512), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, comment='User role: regular/performer/admin'),
        sa.Column('coins', sa.Integer(), nullable=False, comment='Coin balance (>= 0)'),
        sa.Column('message_price', sa.Integer(), nullable=True),
        sa.Column('referral_code', sa.String(length=20), nullable=True),
        sa.Column('referred_by_id', sa.Integer(), nullable=True),
        sa.Column('total_purchased', sa.Integer(), nullable=False),
        sa.Column('purchase_count', sa.Integer(), nullable=False),
        _ts('last_purchase_at', nullable=True),
        _ts('created_at'),
        _ts('last_active'),
        sa.CheckConstraint('coins >= 0', name='ck_users_coins_non_negative'),
        sa.ForeignKeyConstraint(['referred_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    op.create_index('ix_users_telegram_id', 'users', ['telegram_id'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'], unique=False)
    op.create_index('ix_users_referral_code', 'users', ['referral_code'], unique=True)
    op.create_index('ix_users_referred_by_id', 'users', ['referred_by_id'], unique=False)

    op.create_table(
        'conversations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('regular_user_id', sa.Integer(), nullable=False),
        sa.Column('performer_id', sa.Integer(), nullable=False),
        _ts('last_message_at'),
        _ts('created_at'),
        sa.ForeignKeyConstraint(['regular_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['performer_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('regular_user_id', 'performer_id', name='uq_conversation_pair'),
    )
    op.create_index('ix_conversations_regular_user_id', 'conversations', ['regular_user_id'])
    op.create_index('ix_conversations_performer_id', 'conversations', ['performer_id'])
    op.create_index('ix_conversations_last_message_at', 'conversations', ['last_message_at'])

    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('conversation_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('recipient_id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('cost', sa.Integer(), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        _ts('created_at'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id']),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id']),
        sa.ForeignKeyConstraint(['recipient_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'])
    op.create_index('ix_messages_created_at', 'messages', ['created_at'])
    op.create_index('ix_messages_recipient_unread', 'messages', ['recipient_id', 'read'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, comment='purchase/spend/earn/referral'),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('related_user_id', sa.Integer(), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=255), nullable=True),
        _ts('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_type', 'transactions', ['type'])
    op.create_index('ix_transactions_related_user_id', 'transactions', ['related_user_id'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])
    op.create_index('ix_transactions_user_created', 'transactions', ['user_id', 'created_at'])

    op.create_table(
        'coin_packages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False, comment='Price in cents'),
        sa.Column('bonus_percentage', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'gifts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'gift_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('gift_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('recipient_id', sa.Integer(), nullable=False),
        sa.Column('message_id', sa.Integer(), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('recipient_earnings', sa.Integer(), nullable=False),
        sa.Column('spend_transaction_id', sa.Integer(), nullable=True),
        sa.Column('earn_transaction_id', sa.Integer(), nullable=True),
        _ts('created_at'),
        sa.ForeignKeyConstraint(['gift_id'], ['gifts.id']),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id']),
        sa.ForeignKeyConstraint(['recipient_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_gift_transactions_sender_id', 'gift_transactions', ['sender_id'])
    op.create_index('ix_gift_transactions_recipient_id', 'gift_transactions', ['recipient_id'])
    op.create_index('ix_gift_transactions_created_at', 'gift_transactions', ['created_at'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('performer_id', sa.Integer(), nullable=False),
        sa.Column('subscriber_id', sa.Integer(), nullable=False),
        _ts('start_date'),
        _ts('end_date'),
        sa.Column('price', sa.Integer(), nullable=False, comment='Cumulative price paid'),
        sa.Column('status', sa.String(length=20), nullable=False),
        _ts('created_at'),
        sa.ForeignKeyConstraint(['performer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['subscriber_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subscriptions_performer_id', 'subscriptions', ['performer_id'])
    op.create_index('ix_subscriptions_subscriber_id', 'subscriptions', ['subscriber_id'])
    op.create_index('ix_subscriptions_end_date', 'subscriptions', ['end_date'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])

    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('user_type', sa.String(length=20), nullable=False),
        sa.Column('reward_type', sa.String(length=20), nullable=False),
        sa.Column('reward_amount', sa.Integer(), nullable=False),
        sa.Column('target_count', sa.Integer(), nullable=False),
        sa.Column('action_type', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tasks_action_type', 'tasks', ['action_type'])

    op.create_table(
        'user_tasks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('task_id', sa.Integer(), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False),
        _ts('completed_at', nullable=True),
        sa.Column('reward_claimed', sa.Boolean(), nullable=False),
        _ts('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['task_id'], ['tasks.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'task_id', name='uq_user_task'),
    )

    op.create_table(
        'lootboxes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False, comment='0 = free daily box'),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'lootbox_rewards',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lootbox_id', sa.Integer(), nullable=False),
        sa.Column('reward_type', sa.String(length=30), nullable=False),
        sa.Column('reward_amount', sa.Integer(), nullable=False),
        sa.Column('reward_id', sa.Integer(), nullable=True),
        sa.Column('probability', sa.Integer(), nullable=False, comment='Relative weight'),
        sa.ForeignKeyConstraint(['lootbox_id'], ['lootboxes.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_lootbox_rewards_lootbox_id', 'lootbox_rewards', ['lootbox_id'])

    op.create_table(
        'lootbox_openings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('lootbox_id', sa.Integer(), nullable=False),
        sa.Column('reward_id', sa.Integer(), nullable=False),
        sa.Column('price_paid', sa.Integer(), nullable=False),
        sa.Column('free_claim_date', sa.Date(), nullable=True),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        _ts('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['lootbox_id'], ['lootboxes.id']),
        sa.ForeignKeyConstraint(['reward_id'], ['lootbox_rewards.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'lootbox_id', 'free_claim_date', name='uq_free_lootbox_per_day'),
    )
    op.create_index('ix_lootbox_openings_user_id', 'lootbox_openings', ['user_id'])

    op.create_table(
        'boosts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('multiplier', sa.Float(), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=True),
        _ts('expires_at'),
        _ts('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_boosts_user_id', 'boosts', ['user_id'])
    op.create_index('ix_boosts_expires_at', 'boosts', ['expires_at'])

    op.create_table(
        'promotions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('discount_percentage', sa.Integer(), nullable=False),
        _ts('start_time'),
        _ts('end_time'),
        sa.Column('target_user_ids', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_promotions_end_time', 'promotions', ['end_time'])


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        'promotions',
        'boosts',
        'lootbox_openings',
        'lootbox_rewards',
        'lootboxes',
        'user_tasks',
        'tasks',
        'subscriptions',
        'gift_transactions',
        'gifts',
        'coin_packages',
        'transactions',
        'messages',
        'conversations',
        'users',
    ):
        op.drop_table(table)
