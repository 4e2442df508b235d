"""add_active_subscription_unique_index

Revision ID: 8d2e4f61c0a9
Revises: 3f1c9a2b7d40
Create Date: 2026-10-19 16:03:27.104518

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8d2e4f61c0a9'
down_revision: Union[str, Sequence[str], None] = '3f1c9a2b7d40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Лишние активные строки одной пары закрываются до создания индекса
    op.execute(
        """
        UPDATE subscriptions SET status = 'expired'
        WHERE status = 'active' AND id NOT IN (
            SELECT max(id) FROM subscriptions
            WHERE status = 'active'
            GROUP BY subscriber_id, performer_id
        )
        """
    )
    op.create_index(
        'uq_active_subscription',
        'subscriptions',
        ['subscriber_id', 'performer_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('uq_active_subscription', table_name='subscriptions')
