import random
from dataclasses import replace

import pytest

from beatdeck.errors import EmptyDeckError, InvalidMove
from beatdeck.services.games import engine
from beatdeck.services.games.cards import DECK_SIZE, build_cards
from beatdeck.services.games.engine import (
    ActiveStack,
    BurnedStack,
    Direction,
    GameState,
    Phase,
    Result,
)
from helpers import c, make_state


NINE = ['7h', '2c', '3c', '4c', '5c', '6c', '8c', '9c', '10c']


def burned_except(state, keep):
    """Burn every stack except the indices in ``keep``."""
    stacks = tuple(
        s if i in keep else BurnedStack(s.cards)
        for i, s in enumerate(state.stacks)
    )
    return replace(state, stacks=stacks)


def test_new_game_deals_nine_single_card_stacks(rng):
    state = engine.new_game(rng)
    assert len(state.stacks) == 9
    assert all(isinstance(s, ActiveStack) and len(s.cards) == 1 for s in state.stacks)
    assert state.cards_remaining == DECK_SIZE - 9
    assert state.phase is Phase.SELECTING
    dealt_jokers = sum(1 for s in state.stacks if s.top.is_joker)
    assert state.jokers_drawn == dealt_jokers
    assert state.jokers_remaining == 2 - dealt_jokers


# ---- evaluate ----

def test_evaluate_is_total_over_all_card_pairs():
    cards = set(build_cards())
    for top in cards:
        for drawn in cards:
            for direction in Direction:
                result = engine.evaluate(top, drawn, direction)
                assert isinstance(result, bool)
                if top.is_joker or drawn.is_joker:
                    assert result is True
                elif top.value == drawn.value:
                    assert result is False


def test_evaluate_higher_and_lower():
    assert engine.evaluate(c('7h'), c('9s'), Direction.HIGHER)
    assert not engine.evaluate(c('7h'), c('9s'), Direction.LOWER)
    assert engine.evaluate(c('Ah'), c('2s'), Direction.LOWER)
    assert not engine.evaluate(c('2h'), c('Ks'), Direction.LOWER)


def test_evaluate_joker_on_joker_is_correct():
    assert engine.evaluate(c('JOKER'), c('JOKER'), Direction.HIGHER)
    assert engine.evaluate(c('JOKER'), c('JOKER'), Direction.LOWER)


# ---- selection ----

def test_select_moves_to_guessing_and_retargets():
    state = make_state(NINE, ['2d', '3d'])
    state = engine.select_stack(state, 0)
    assert state.phase is Phase.GUESSING
    assert state.selected_stack_index == 0
    state = engine.select_stack(state, 4)
    assert state.phase is Phase.GUESSING
    assert state.selected_stack_index == 4
    assert engine.select_stack(state, 4) is state


def test_select_rejects_burned_or_missing_stack():
    state = burned_except(make_state(NINE, ['2d']), keep={0})
    with pytest.raises(InvalidMove):
        engine.select_stack(state, 3)
    with pytest.raises(InvalidMove):
        engine.select_stack(state, 9)
    with pytest.raises(InvalidMove):
        engine.select_stack(state, None)


def test_deselect_returns_to_selecting():
    state = engine.select_stack(make_state(NINE, ['2d']), 2)
    state = engine.deselect_stack(state)
    assert state.phase is Phase.SELECTING
    assert state.selected_stack_index is None


# ---- guessing ----

def test_scenario_a_joker_drawn_on_seven():
    state = engine.select_stack(make_state(NINE, ['2d', 'JOKER']), 0)
    state, outcome = engine.resolve_guess(state, 'higher')
    assert outcome.correct is True
    assert outcome.burned_stack_index is None
    assert state.current_streak == 1
    assert state.longest_streak == 1
    assert state.stacks[0].cards == (c('7h'), c('JOKER'))
    assert state.jokers_drawn == 1
    assert state.phase is Phase.SELECTING


def test_scenario_b_tie_burns_the_stack():
    tops = ['Kd'] + NINE[1:]
    for direction in ('higher', 'lower'):
        start = make_state(tops, ['2d', 'Ks'], current_streak=3, longest_streak=3)
        state = engine.select_stack(start, 0)
        state, outcome = engine.resolve_guess(state, direction)
        assert outcome.correct is False
        assert outcome.burned_stack_index == 0
        assert state.current_streak == 0
        assert state.longest_streak == 3
        assert isinstance(state.stacks[0], BurnedStack)
        assert state.stacks[0].cards == (c('Kd'), c('Ks'))
        assert state.phase is Phase.SELECTING


def test_guess_does_not_mutate_input_state():
    before = engine.select_stack(make_state(NINE, ['2d', '9s']), 0)
    engine.resolve_guess(before, 'higher')
    assert before.cards_remaining == 2
    assert before.stacks[0].cards == (c('7h'),)
    assert before.phase is Phase.GUESSING


def test_make_guess_then_settle():
    state = engine.select_stack(make_state(NINE, ['2d', '3s']), 0)
    resolving, outcome = engine.make_guess(state, 'higher')
    assert resolving.phase is Phase.RESOLVING
    # the drawn card is already on the stack, the burn is not applied yet
    assert resolving.stacks[0].cards == (c('7h'), c('3s'))
    assert isinstance(resolving.stacks[0], ActiveStack)
    assert outcome.new_phase is Phase.SELECTING
    settled = engine.settle(resolving)
    assert isinstance(settled.stacks[0], BurnedStack)
    assert settled.phase is Phase.SELECTING


def test_selection_during_resolving_becomes_next_target():
    state = engine.select_stack(make_state(NINE, ['2d', '9s']), 0)
    resolving, _ = engine.make_guess(state, 'higher')
    resolving = engine.select_stack(resolving, 5)
    assert resolving.phase is Phase.RESOLVING
    assert resolving.pending_stack_index == 5
    settled = engine.settle(resolving)
    assert settled.phase is Phase.GUESSING
    assert settled.selected_stack_index == 5


def test_pending_selection_of_burning_stack_is_dropped():
    state = engine.select_stack(make_state(NINE, ['2d', '3s']), 0)
    resolving, _ = engine.make_guess(state, 'higher')
    resolving = engine.select_stack(resolving, 0)
    settled = engine.settle(resolving)
    assert isinstance(settled.stacks[0], BurnedStack)
    assert settled.phase is Phase.SELECTING
    assert settled.selected_stack_index is None


def test_deselect_while_resolving_clears_pending():
    state = engine.select_stack(make_state(NINE, ['2d', '9s']), 0)
    resolving, _ = engine.make_guess(state, 'higher')
    resolving = engine.deselect_stack(engine.select_stack(resolving, 2))
    assert resolving.pending_stack_index is None
    assert engine.settle(resolving).phase is Phase.SELECTING


def test_guess_outside_guessing_phase_is_rejected():
    state = make_state(NINE, ['2d'])
    with pytest.raises(InvalidMove):
        engine.make_guess(state, 'higher')
    with pytest.raises(InvalidMove):
        engine.settle(state)


def test_guess_direction_must_be_known():
    state = engine.select_stack(make_state(NINE, ['2d']), 0)
    with pytest.raises(InvalidMove):
        engine.make_guess(state, 'sideways')


def test_guess_with_empty_deck_is_a_fault():
    state = engine.select_stack(make_state(NINE, []), 0)
    with pytest.raises(EmptyDeckError):
        engine.make_guess(state, 'higher')


def test_streak_tracks_longest_run():
    state = make_state(NINE, ['2d', '2s', 'Ah', 'Kd', 'Qd'])
    for guess in ('higher', 'higher', 'higher'):
        state = engine.select_stack(state, 0)
        state, outcome = engine.resolve_guess(state, guess)
        assert outcome.correct
    assert state.current_streak == 3
    state = engine.select_stack(state, 1)
    state, outcome = engine.resolve_guess(state, 'lower')
    assert not outcome.correct
    assert state.current_streak == 0
    assert state.longest_streak == 3


# ---- game over ----

def test_emptying_the_deck_with_a_correct_guess_wins():
    state = engine.select_stack(make_state(NINE, ['9s']), 0)
    state, outcome = engine.resolve_guess(state, 'higher')
    assert outcome.game_over
    assert outcome.result is Result.WIN
    assert state.phase is Phase.GAME_OVER
    assert state.result is Result.WIN


def test_burning_on_the_final_card_still_wins():
    state = engine.select_stack(make_state(NINE, ['3s']), 0)
    state, outcome = engine.resolve_guess(state, 'higher')
    assert outcome.correct is False
    assert outcome.result is Result.WIN
    assert state.result is Result.WIN
    assert state.active_stack_count == 8


def test_burning_the_last_stack_loses():
    state = burned_except(make_state(NINE, ['2d', '3s']), keep={0})
    state = engine.select_stack(state, 0)
    state, outcome = engine.resolve_guess(state, 'higher')
    assert outcome.game_over
    assert outcome.result is Result.LOSE
    assert state.cards_remaining == 1
    assert state.active_stack_count == 0


def test_all_burned_beats_deck_exhaustion():
    state = burned_except(make_state(NINE, ['3s']), keep={0})
    state = engine.select_stack(state, 0)
    state, outcome = engine.resolve_guess(state, 'higher')
    assert state.cards_remaining == 0
    assert outcome.result is Result.LOSE


def test_game_over_is_terminal():
    state, _ = engine.resolve_guess(engine.select_stack(make_state(NINE, ['9s']), 0), 'higher')
    with pytest.raises(InvalidMove):
        engine.select_stack(state, 1)
    with pytest.raises(InvalidMove):
        engine.make_guess(state, 'higher')


def test_cards_are_conserved_over_random_games():
    for seed in range(25):
        rng = random.Random(seed)
        state = engine.new_game(rng)
        previous = state
        while not state.is_over:
            active = [i for i, s in enumerate(state.stacks) if isinstance(s, ActiveStack)]
            state = engine.select_stack(state, rng.choice(active))
            state, _ = engine.resolve_guess(state, rng.choice(['higher', 'lower']))
            assert state.cards_on_table + state.cards_remaining == DECK_SIZE
            for old, new in zip(previous.stacks, state.stacks):
                assert len(new.cards) >= len(old.cards)
                assert new.cards[:len(old.cards)] == old.cards
                if isinstance(old, BurnedStack):
                    assert isinstance(new, BurnedStack)
            previous = state
        assert state.result in (Result.WIN, Result.LOSE)
        if state.result is Result.WIN:
            assert state.cards_remaining == 0
        else:
            assert state.active_stack_count == 0


# ---- sneak peek ----

def test_peek_requires_a_correct_guess_first():
    state = make_state(NINE, ['2d', '9s'])
    with pytest.raises(InvalidMove):
        engine.peek_next(state)


def test_peek_reveals_next_card_once():
    state = engine.select_stack(make_state(NINE, ['2d', '5s', '9s']), 0)
    state, _ = engine.resolve_guess(state, 'higher')
    state, card = engine.peek_next(state)
    assert card == c('5s')
    assert state.peek_used
    assert state.cards_remaining == 2
    with pytest.raises(InvalidMove):
        engine.peek_next(state)


# ---- messages and serialization ----

def test_game_over_messages():
    won, _ = engine.resolve_guess(engine.select_stack(make_state(NINE, ['9s']), 0), 'higher')
    assert won.longest_streak == 1
    assert engine.game_over_message(won).startswith('You beat the deck!')

    lost, _ = engine.resolve_guess(
        engine.select_stack(burned_except(make_state(NINE, ['2d', '3s']), keep={0}), 0), 'higher'
    )
    assert engine.game_over_message(lost).startswith('1 cards were still remaining')

    with pytest.raises(InvalidMove):
        engine.game_over_message(make_state(NINE, ['2d']))


def test_state_survives_serialization(rng):
    state = engine.select_stack(engine.new_game(rng), 3)
    resolving, _ = engine.make_guess(state, 'lower')
    restored = GameState.from_dict(resolving.to_dict(include_deck=True))
    assert restored == resolving
    assert restored.deck.cards == resolving.deck.cards
    assert 'deck' not in resolving.to_dict()
