"""add version to game_session for compare-and-swap moves

Revision ID: b7e2c4d9a113
Revises: 9e4d2b6a0c51
Create Date: 2025-09-21 16:05:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7e2c4d9a113'
down_revision = '9e4d2b6a0c51'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    cols = {c['name'] for c in insp.get_columns('game_session')}
    if 'version' not in cols:
        with op.batch_alter_table('game_session') as batch_op:
            batch_op.add_column(sa.Column('version', sa.Integer(), nullable=False, server_default='1'))


def downgrade():
    with op.batch_alter_table('game_session') as batch_op:
        batch_op.drop_column('version')
