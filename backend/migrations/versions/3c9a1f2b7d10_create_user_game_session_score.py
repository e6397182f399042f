"""create user, game_session and score tables

Revision ID: 3c9a1f2b7d10
Revises:
Create Date: 2025-09-14 10:12:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c9a1f2b7d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'game_session' not in existing_tables:
        op.create_table(
            'game_session',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('game_code', sa.String(length=8), nullable=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('state_json', sa.Text(), nullable=False),
            sa.Column('submitted', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.BigInteger(), nullable=True),
        )
        op.create_index('ix_game_session_game_code', 'game_session', ['game_code'], unique=True)

    # Legacy deployments already have a score table without the unique
    # player index; the next revision reconciles those.
    if 'score' not in existing_tables:
        op.create_table(
            'score',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('player_key', sa.String(length=80), nullable=False),
            sa.Column('player_name', sa.String(length=64), nullable=False),
            sa.Column('stacks_remaining', sa.Integer(), nullable=False),
            sa.Column('longest_streak', sa.Integer(), nullable=False),
            sa.Column('remaining_cards', sa.Integer(), nullable=False),
            sa.Column('result', sa.String(length=8), nullable=False),
            sa.Column('timestamp', sa.BigInteger(), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        )
        op.create_index('ix_score_result', 'score', ['result'])
        op.create_index('ix_score_timestamp', 'score', ['timestamp'])


def downgrade():
    op.drop_index('ix_score_timestamp', table_name='score')
    op.drop_index('ix_score_result', table_name='score')
    op.drop_table('score')
    op.drop_index('ix_game_session_game_code', table_name='game_session')
    op.drop_table('game_session')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
