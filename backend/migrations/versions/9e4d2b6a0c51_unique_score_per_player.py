"""collapse duplicate scores and make player_key unique

Revision ID: 9e4d2b6a0c51
Revises: 3c9a1f2b7d10
Create Date: 2025-09-14 10:40:00.000000

"""
from alembic import op
import sqlalchemy as sa

from beatdeck.services.leaderboard.reconcile import PLAYER_KEY_INDEX, reconcile


# revision identifiers, used by Alembic.
revision = '9e4d2b6a0c51'
down_revision = '3c9a1f2b7d10'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    cols = {c['name'] for c in insp.get_columns('score')}
    if 'version' not in cols:
        with op.batch_alter_table('score') as batch_op:
            batch_op.add_column(sa.Column('version', sa.Integer(), nullable=False, server_default='1'))
    # No-op when the unique index already exists
    reconcile(bind)


def downgrade():
    op.drop_index(PLAYER_KEY_INDEX, table_name='score')
