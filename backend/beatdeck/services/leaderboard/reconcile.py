"""One-time collapse of duplicate score rows before the unique index exists.

Databases created before scores were unique per player can hold several
rows for the same ``player_key``. Each group is reduced to its best row and
the unique index is created afterwards. Once the index is present the
reconciliation is skipped, so it never touches a healthy table again.
"""
import sqlalchemy as sa

from beatdeck.services.games.engine import Result
from .ranking import best_of
from .records import ScoreRecord


SCORE_TABLE = 'score'
PLAYER_KEY_INDEX = 'uq_score_player_key'

score_table = sa.table(
    SCORE_TABLE,
    sa.column('id', sa.Integer),
    sa.column('player_key', sa.String),
    sa.column('player_name', sa.String),
    sa.column('stacks_remaining', sa.Integer),
    sa.column('longest_streak', sa.Integer),
    sa.column('remaining_cards', sa.Integer),
    sa.column('result', sa.String),
    sa.column('timestamp', sa.BigInteger),
)


def _row_to_record(row) -> ScoreRecord:
    return ScoreRecord(
        player_id=row['player_key'],
        player_name=row['player_name'],
        stacks_remaining=int(row['stacks_remaining']),
        longest_streak=int(row['longest_streak']),
        remaining_cards=int(row['remaining_cards']),
        result=Result(row['result']),
        timestamp=int(row['timestamp']),
    )


def has_unique_player_index(bind) -> bool:
    insp = sa.inspect(bind)
    if SCORE_TABLE not in insp.get_table_names():
        return False
    for idx in insp.get_indexes(SCORE_TABLE):
        if idx.get('unique') and list(idx.get('column_names') or []) == ['player_key']:
            return True
    for uc in insp.get_unique_constraints(SCORE_TABLE):
        if list(uc.get('column_names') or []) == ['player_key']:
            return True
    return False


def collapse_duplicate_scores(bind) -> int:
    """Keep only the best row per player_key. Returns the number of groups collapsed."""
    duplicate_keys = bind.execute(
        sa.select(score_table.c.player_key)
        .group_by(score_table.c.player_key)
        .having(sa.func.count() > 1)
    ).scalars().all()

    for key in duplicate_keys:
        rows = bind.execute(
            sa.select(score_table)
            .where(score_table.c.player_key == key)
            .order_by(score_table.c.id)
        ).mappings().all()
        best_id, _ = best_of(
            ((row['id'], _row_to_record(row)) for row in rows),
            key=lambda pair: pair[1],
        )
        bind.execute(
            sa.delete(score_table)
            .where(score_table.c.player_key == key)
            .where(score_table.c.id != best_id)
        )
    return len(duplicate_keys)


def reconcile(bind) -> int:
    """Collapse duplicates and add the unique index, unless it already exists."""
    if has_unique_player_index(bind):
        return 0
    collapsed = collapse_duplicate_scores(bind)
    bind.execute(sa.text(f'CREATE UNIQUE INDEX {PLAYER_KEY_INDEX} ON {SCORE_TABLE} (player_key)'))
    return collapsed
