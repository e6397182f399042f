"""Higher/lower state machine over a 9-stack tableau.

Every operation takes a ``GameState`` and returns a new one; the input is
never mutated. Timing (how long a drawn card stays on screen before a stack
burns) belongs to the caller: ``make_guess`` moves the game into
``resolving`` and ``settle`` applies the consequence, while
``resolve_guess`` does both in one call.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple, Union

from beatdeck.errors import EmptyDeckError, InvalidMove
from .cards import Card, Deck, DECK_SIZE, JOKERS_PER_DECK, new_deck


STACK_COUNT = 9


class Phase(str, Enum):
    SELECTING = 'selecting'
    GUESSING = 'guessing'
    RESOLVING = 'resolving'
    GAME_OVER = 'game_over'


class Direction(str, Enum):
    HIGHER = 'higher'
    LOWER = 'lower'


class Result(str, Enum):
    WIN = 'win'
    LOSE = 'lose'


@dataclass(frozen=True)
class ActiveStack:
    cards: Tuple[Card, ...]

    @property
    def top(self) -> Card:
        return self.cards[-1]


@dataclass(frozen=True)
class BurnedStack:
    # Cards stay with the slot for display; none of them is playable.
    cards: Tuple[Card, ...]


Stack = Union[ActiveStack, BurnedStack]


@dataclass(frozen=True)
class PendingResolution:
    stack_index: int
    correct: bool
    drawn_card: Card


@dataclass(frozen=True)
class GuessOutcome:
    correct: bool
    drawn_card: Card
    stack_index: int
    burned_stack_index: Optional[int]
    new_phase: Phase
    game_over: bool
    result: Optional[Result]

    def to_dict(self):
        return {
            'correct': self.correct,
            'drawn_card': self.drawn_card.to_dict(),
            'stack_index': self.stack_index,
            'burned_stack_index': self.burned_stack_index,
            'new_phase': self.new_phase.value,
            'game_over': self.game_over,
            'result': self.result.value if self.result else None,
        }


@dataclass(frozen=True)
class GameState:
    deck: Deck = field(compare=False)
    stacks: Tuple[Stack, ...]
    phase: Phase = Phase.SELECTING
    selected_stack_index: Optional[int] = None
    pending_stack_index: Optional[int] = None
    current_streak: int = 0
    longest_streak: int = 0
    jokers_drawn: int = 0
    result: Optional[Result] = None
    resolution: Optional[PendingResolution] = None
    first_card_placed: bool = False
    peek_used: bool = False

    @property
    def active_stack_count(self) -> int:
        return sum(1 for s in self.stacks if _is_active(s))

    @property
    def burned_stack_count(self) -> int:
        return len(self.stacks) - self.active_stack_count

    @property
    def jokers_remaining(self) -> int:
        return JOKERS_PER_DECK - self.jokers_drawn

    @property
    def cards_remaining(self) -> int:
        return self.deck.remaining()

    @property
    def cards_on_table(self) -> int:
        return sum(len(s.cards) for s in self.stacks)

    @property
    def is_over(self) -> bool:
        return self.phase is Phase.GAME_OVER

    def to_dict(self, include_deck: bool = False):
        """Serialize the state. The deck order is only included for storage."""
        payload = {
            'phase': self.phase.value,
            'stacks': [_stack_to_dict(s) for s in self.stacks],
            'selected_stack_index': self.selected_stack_index,
            'pending_stack_index': self.pending_stack_index,
            'current_streak': self.current_streak,
            'longest_streak': self.longest_streak,
            'jokers_drawn': self.jokers_drawn,
            'jokers_remaining': self.jokers_remaining,
            'cards_remaining': self.cards_remaining,
            'active_stacks': self.active_stack_count,
            'result': self.result.value if self.result else None,
            'first_card_placed': self.first_card_placed,
            'peek_used': self.peek_used,
            'resolution': None,
        }
        if self.resolution:
            payload['resolution'] = {
                'stack_index': self.resolution.stack_index,
                'correct': self.resolution.correct,
                'drawn_card': self.resolution.drawn_card.to_dict(),
            }
        if include_deck:
            payload['deck'] = self.deck.to_list()
        return payload

    @classmethod
    def from_dict(cls, data) -> 'GameState':
        resolution = None
        if data.get('resolution'):
            r = data['resolution']
            resolution = PendingResolution(
                stack_index=r['stack_index'],
                correct=r['correct'],
                drawn_card=Card.from_dict(r['drawn_card']),
            )
        return cls(
            deck=Deck.from_list(data['deck']),
            stacks=tuple(_stack_from_dict(s) for s in data['stacks']),
            phase=Phase(data['phase']),
            selected_stack_index=data.get('selected_stack_index'),
            pending_stack_index=data.get('pending_stack_index'),
            current_streak=data.get('current_streak', 0),
            longest_streak=data.get('longest_streak', 0),
            jokers_drawn=data.get('jokers_drawn', 0),
            result=Result(data['result']) if data.get('result') else None,
            resolution=resolution,
            first_card_placed=data.get('first_card_placed', False),
            peek_used=data.get('peek_used', False),
        )


def _is_active(stack: Stack) -> bool:
    if isinstance(stack, ActiveStack):
        return True
    if isinstance(stack, BurnedStack):
        return False
    raise TypeError(f"Unknown stack type: {type(stack).__name__}")


def _stack_to_dict(stack: Stack):
    return {
        'burned': not _is_active(stack),
        'cards': [c.to_dict() for c in stack.cards],
    }


def _stack_from_dict(data) -> Stack:
    cards = tuple(Card.from_dict(c) for c in data['cards'])
    return BurnedStack(cards) if data.get('burned') else ActiveStack(cards)


def new_game(rng=None) -> GameState:
    """Shuffle a fresh deck and deal one card onto each of the nine stacks."""
    deck = new_deck(rng)
    stacks = []
    jokers = 0
    for _ in range(STACK_COUNT):
        card = deck.draw()
        if card.is_joker:
            jokers += 1
        stacks.append(ActiveStack((card,)))
    return GameState(deck=deck, stacks=tuple(stacks), jokers_drawn=jokers)


def evaluate(top: Card, drawn: Card, direction: Direction) -> bool:
    """Decide whether ``drawn`` placed on ``top`` satisfies the guess.

    Jokers are wild in both positions and short-circuit before the tie
    check, so only two ranked cards of equal value can tie. A tie always
    burns, whichever direction was guessed.
    """
    if drawn.is_joker:
        return True
    if top.is_joker:
        return True
    if drawn.value == top.value:
        return False
    return (direction == Direction.HIGHER) == (drawn.value > top.value)


def _playable_stack(state: GameState, index) -> ActiveStack:
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(state.stacks):
        raise InvalidMove(f"No stack at position {index!r}")
    stack = state.stacks[index]
    if not _is_active(stack):
        raise InvalidMove(f"Stack {index} is burned")
    if not stack.cards:
        raise InvalidMove(f"Stack {index} is empty")
    return stack


def select_stack(state: GameState, index: int) -> GameState:
    if state.phase is Phase.GAME_OVER:
        raise InvalidMove('The game is over')
    _playable_stack(state, index)
    if state.phase is Phase.RESOLVING:
        return replace(state, pending_stack_index=index)
    if state.phase is Phase.GUESSING and state.selected_stack_index == index:
        return state
    return replace(state, phase=Phase.GUESSING, selected_stack_index=index)


def deselect_stack(state: GameState) -> GameState:
    if state.phase is Phase.GUESSING:
        return replace(state, phase=Phase.SELECTING, selected_stack_index=None)
    if state.phase is Phase.RESOLVING:
        return replace(state, pending_stack_index=None)
    return state


def make_guess(state: GameState, direction) -> Tuple[GameState, GuessOutcome]:
    """Draw a card onto the selected stack and enter ``resolving``.

    The returned outcome describes what ``settle`` will do, assuming no
    further selection arrives in the meantime.
    """
    try:
        direction = Direction(direction)
    except ValueError:
        raise InvalidMove(f"Guess must be 'higher' or 'lower', got {direction!r}")
    if state.phase is not Phase.GUESSING:
        raise InvalidMove(f"Cannot guess while {state.phase.value}")
    index = state.selected_stack_index
    stack = _playable_stack(state, index)
    if state.deck.remaining() == 0:
        raise EmptyDeckError(
            f"Guess requested with an empty deck ({state.cards_on_table} of {DECK_SIZE} cards on the table)"
        )

    deck = state.deck.copy()
    drawn = deck.draw()
    correct = evaluate(stack.top, drawn, direction)

    stacks = list(state.stacks)
    stacks[index] = ActiveStack(stack.cards + (drawn,))
    streak = state.current_streak + 1 if correct else 0

    resolving = replace(
        state,
        deck=deck,
        stacks=tuple(stacks),
        phase=Phase.RESOLVING,
        selected_stack_index=None,
        pending_stack_index=None,
        current_streak=streak,
        longest_streak=max(state.longest_streak, streak),
        jokers_drawn=state.jokers_drawn + (1 if drawn.is_joker else 0),
        first_card_placed=state.first_card_placed or correct,
        resolution=PendingResolution(stack_index=index, correct=correct, drawn_card=drawn),
    )
    return resolving, _outcome(resolving.resolution, settle(resolving))


def settle(state: GameState) -> GameState:
    """Apply the pending burn (if any) and move to the next phase."""
    if state.phase is not Phase.RESOLVING or state.resolution is None:
        raise InvalidMove('No guess is waiting to be resolved')
    resolution = state.resolution
    stacks = list(state.stacks)
    if not resolution.correct:
        stacks[resolution.stack_index] = BurnedStack(stacks[resolution.stack_index].cards)

    phase = Phase.SELECTING
    result = None
    selected = None
    if not any(_is_active(s) for s in stacks):
        phase, result = Phase.GAME_OVER, Result.LOSE
    elif state.deck.remaining() == 0:
        # Deck exhausted: a win even when the final guess burned a stack.
        phase, result = Phase.GAME_OVER, Result.WIN
    elif state.pending_stack_index is not None and _is_active(stacks[state.pending_stack_index]):
        phase, selected = Phase.GUESSING, state.pending_stack_index

    return replace(
        state,
        stacks=tuple(stacks),
        phase=phase,
        result=result,
        selected_stack_index=selected,
        pending_stack_index=None,
        resolution=None,
    )


def resolve_guess(state: GameState, direction) -> Tuple[GameState, GuessOutcome]:
    resolving, _ = make_guess(state, direction)
    settled = settle(resolving)
    return settled, _outcome(resolving.resolution, settled)


def _outcome(resolution: PendingResolution, settled: GameState) -> GuessOutcome:
    return GuessOutcome(
        correct=resolution.correct,
        drawn_card=resolution.drawn_card,
        stack_index=resolution.stack_index,
        burned_stack_index=None if resolution.correct else resolution.stack_index,
        new_phase=settled.phase,
        game_over=settled.is_over,
        result=settled.result,
    )


def peek_next(state: GameState) -> Tuple[GameState, Card]:
    """Sneak peek: reveal the next card once per game, after the first correct placement."""
    if state.is_over:
        raise InvalidMove('The game is over')
    if state.peek_used:
        raise InvalidMove('Sneak peek has already been used this game')
    if not state.first_card_placed:
        raise InvalidMove('Sneak peek unlocks after the first correct guess')
    if state.deck.remaining() == 0:
        raise InvalidMove('No cards left to peek at')
    return replace(state, peek_used=True), state.deck.peek()


def game_over_message(state: GameState) -> str:
    if not state.is_over:
        raise InvalidMove('The game is still in progress')
    if state.result is Result.WIN:
        return (
            'You beat the deck! All cards have been used.\n'
            f'Your longest streak was {state.longest_streak}'
        )
    remaining = state.cards_remaining
    if remaining == 0:
        opener = 'You used your final card but were unable to Beat The Deck! Better luck next time!'
    else:
        opener = f'{remaining} cards were still remaining. Better luck next time!'
    return f'{opener}\nYour longest streak was {state.longest_streak}'
