import re
import time
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from beatdeck.errors import InvalidInput, InvalidMove
from beatdeck.services.games.cards import DECK_SIZE
from beatdeck.services.games.engine import GameState, Result, STACK_COUNT


PLAYER_NAME_MAX_LENGTH = 20
DEFAULT_NAME_DENYLIST = frozenset({
    'ass', 'asshole', 'bastard', 'bitch', 'bollocks', 'crap', 'cunt',
    'damn', 'dick', 'fuck', 'piss', 'prick', 'shit', 'slut', 'twat', 'wanker',
})

# Submission keys and the aliases older clients send for them.
_FIELD_ALIASES = {
    'player_name': ('player_name', 'playerName', 'username'),
    'stacks_remaining': ('stacks_remaining', 'stacksRemaining'),
    'longest_streak': ('longest_streak', 'longestStreak'),
    'remaining_cards': ('remaining_cards', 'remainingCards'),
    'result': ('result',),
}


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ScoreRecord:
    """The outcome of one finished game."""
    player_id: str
    player_name: str
    stacks_remaining: int
    longest_streak: int
    remaining_cards: int
    result: Result
    timestamp: int

    def with_timestamp(self, timestamp: int) -> 'ScoreRecord':
        return replace(self, timestamp=timestamp)

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'player_name': self.player_name,
            'stacks_remaining': self.stacks_remaining,
            'longest_streak': self.longest_streak,
            'remaining_cards': self.remaining_cards,
            'result': self.result.value,
            'timestamp': self.timestamp,
        }


def player_key_for_name(name: str) -> str:
    """Anonymous players are identified by their case-folded name."""
    return f"name:{name.strip().casefold()}"


def player_key_for_user(user_id: int) -> str:
    return f"user:{user_id}"


def name_is_denied(name: str, denylist: Iterable[str] = DEFAULT_NAME_DENYLIST) -> bool:
    lowered = name.casefold()
    for word in denylist:
        word = word.strip().casefold()
        if not word:
            continue
        if lowered == word or re.search(rf"\b{re.escape(word)}\b", lowered):
            return True
    return False


def clean_player_name(raw, max_length: int = PLAYER_NAME_MAX_LENGTH,
                      denylist: Iterable[str] = DEFAULT_NAME_DENYLIST) -> str:
    if not isinstance(raw, str):
        raise InvalidInput('Player name is required')
    name = raw.strip()
    if not name:
        raise InvalidInput('Player name is required')
    if len(name) > max_length:
        raise InvalidInput(f'Player name must be at most {max_length} characters')
    if name_is_denied(name, denylist):
        raise InvalidInput('Please choose a different player name')
    return name


def _pick(data, field_name):
    for key in _FIELD_ALIASES[field_name]:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _as_int(value, field_name: str) -> int:
    if isinstance(value, bool):
        raise InvalidInput(f'{field_name} must be an integer')
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidInput(f'{field_name} must be an integer')


def validate_submission(data, player_id: Optional[str] = None, player_name: Optional[str] = None,
                        timestamp: Optional[int] = None,
                        max_name_length: int = PLAYER_NAME_MAX_LENGTH,
                        denylist: Iterable[str] = DEFAULT_NAME_DENYLIST) -> ScoreRecord:
    """Turn a raw score submission into a ScoreRecord or raise InvalidInput.

    ``player_id``/``player_name`` override what the payload carries; the
    service passes them for logged-in players. Without an explicit id the
    player is keyed by name.
    """
    if not isinstance(data, dict):
        raise InvalidInput('Missing required fields')

    name_raw = player_name if player_name is not None else _pick(data, 'player_name')
    values = {f: _pick(data, f) for f in ('stacks_remaining', 'longest_streak', 'remaining_cards', 'result')}
    if name_raw is None or any(v is None for v in values.values()):
        raise InvalidInput('Missing required fields')

    result_raw = values['result']
    if result_raw not in (Result.WIN.value, Result.LOSE.value):
        raise InvalidInput("result must be 'win' or 'lose'")

    stacks_remaining = _as_int(values['stacks_remaining'], 'stacks_remaining')
    longest_streak = _as_int(values['longest_streak'], 'longest_streak')
    remaining_cards = _as_int(values['remaining_cards'], 'remaining_cards')
    if not 0 <= stacks_remaining <= STACK_COUNT:
        raise InvalidInput(f'stacks_remaining must be between 0 and {STACK_COUNT}')
    if not 0 <= remaining_cards <= DECK_SIZE:
        raise InvalidInput(f'remaining_cards must be between 0 and {DECK_SIZE}')
    if longest_streak < 0:
        raise InvalidInput('longest_streak must not be negative')

    name = clean_player_name(name_raw, max_name_length, denylist)
    if player_id is None:
        player_id = player_key_for_name(name)

    return ScoreRecord(
        player_id=str(player_id),
        player_name=name,
        stacks_remaining=stacks_remaining,
        longest_streak=longest_streak,
        remaining_cards=remaining_cards,
        result=Result(result_raw),
        timestamp=timestamp if timestamp is not None else now_ms(),
    )


def record_from_game(state: GameState, player_id: str, player_name: str,
                     timestamp: Optional[int] = None) -> ScoreRecord:
    """Build the ScoreRecord for a finished game."""
    if not state.is_over or state.result is None:
        raise InvalidMove('Only finished games can be scored')
    return ScoreRecord(
        player_id=player_id,
        player_name=player_name,
        stacks_remaining=state.active_stack_count,
        longest_streak=state.longest_streak,
        remaining_cards=state.cards_remaining,
        result=state.result,
        timestamp=timestamp if timestamp is not None else now_ms(),
    )
