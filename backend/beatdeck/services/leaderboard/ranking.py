"""Ordering of score records.

Wins always rank above losses. Among wins, more surviving stacks is better,
then a longer streak. Among losses, fewer cards left in the deck is better,
then a longer streak. Anything still tied goes to the newer record.
"""
from typing import Callable, Iterable, List, Optional, Tuple

from beatdeck.services.games.engine import Result
from .records import ScoreRecord


def _cmp(x: int, y: int) -> int:
    return (x > y) - (x < y)


def _outcome_key(record: ScoreRecord) -> Tuple[int, ...]:
    """Larger tuples rank higher. Only comparable within one result."""
    if record.result is Result.WIN:
        return (record.stacks_remaining, record.longest_streak)
    return (-record.remaining_cards, record.longest_streak)


def compare(a: ScoreRecord, b: ScoreRecord) -> int:
    """Positive when ``a`` ranks above ``b``, negative when below, 0 on a full tie."""
    if a.result is not b.result:
        return 1 if a.result is Result.WIN else -1
    key_a, key_b = _outcome_key(a), _outcome_key(b)
    if key_a != key_b:
        return 1 if key_a > key_b else -1
    return _cmp(a.timestamp, b.timestamp)


def better(a: ScoreRecord, b: ScoreRecord) -> bool:
    return compare(a, b) > 0


def should_replace(new: ScoreRecord, old: ScoreRecord) -> bool:
    """Upsert rule: a new record wins over the stored one unless strictly worse."""
    return compare(new, old) >= 0


def best_of(items: Iterable, key: Optional[Callable] = None):
    """The best of a group; later items win full ties.

    ``key`` maps an item to its ScoreRecord when the items carry more than
    the record, such as a row id.
    """
    best, best_record = None, None
    for item in items:
        record = key(item) if key else item
        if best_record is None or should_replace(record, best_record):
            best, best_record = item, record
    return best


def win_sort_key(record: ScoreRecord):
    return (-record.stacks_remaining, -record.longest_streak, -record.timestamp)


def lose_sort_key(record: ScoreRecord):
    return (record.remaining_cards, -record.longest_streak, -record.timestamp)


def sort_leaderboard(records: Iterable[ScoreRecord], limit: Optional[int] = None,
                     win_limit: Optional[int] = None,
                     lose_limit: Optional[int] = None) -> List[ScoreRecord]:
    """Wins first, each partition sorted by its own rule, then truncated."""
    wins, losses = [], []
    for record in records:
        (wins if record.result is Result.WIN else losses).append(record)
    wins.sort(key=win_sort_key)
    losses.sort(key=lose_sort_key)
    if win_limit is not None:
        wins = wins[:win_limit]
    if lose_limit is not None:
        losses = losses[:lose_limit]
    ranked = wins + losses
    return ranked[:limit] if limit is not None else ranked
