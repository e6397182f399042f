"""Persistence glue between ``GameSession`` rows and the pure engine.

Each move reads the row's state and version, runs the engine, and saves the
result only if the version is still the one it read. A move that lost to a
concurrent writer raises ``GameConflict`` and leaves the newer state alone.
"""
import time
from typing import Optional, Tuple

from beatdeck import db
from beatdeck.errors import GameConflict
from beatdeck.models import GameSession
from . import engine
from .engine import GameState, GuessOutcome


def create_session(user_id: Optional[int] = None, rng=None) -> GameSession:
    session = GameSession(user_id=user_id, created_at=int(time.time() * 1000), version=1)
    session.state = engine.new_game(rng)
    db.session.add(session)
    db.session.commit()
    return session


def find_session(game_code: str) -> GameSession:
    return GameSession.query.filter_by(game_code=game_code.upper()).first_or_404()


def _snapshot(session: GameSession) -> Tuple[int, GameState]:
    return session.version, session.state


def _save(session: GameSession, version: int, state: GameState) -> GameState:
    swapped = (
        GameSession.query
        .filter(GameSession.id == session.id, GameSession.version == version)
        .update(
            {'state_json': GameSession.encode_state(state), 'version': version + 1},
            synchronize_session=False,
        )
    )
    db.session.commit()
    if not swapped:
        raise GameConflict('The game changed while this move was being made, please reload')
    return state


def select(session: GameSession, index) -> GameState:
    version, state = _snapshot(session)
    return _save(session, version, engine.select_stack(state, index))


def deselect(session: GameSession) -> GameState:
    version, state = _snapshot(session)
    return _save(session, version, engine.deselect_stack(state))


def guess(session: GameSession, direction) -> Tuple[GameState, GuessOutcome]:
    version, state = _snapshot(session)
    state, outcome = engine.make_guess(state, direction)
    return _save(session, version, state), outcome


def peek(session: GameSession):
    version, state = _snapshot(session)
    state, card = engine.peek_next(state)
    _save(session, version, state)
    return state, card


def settle(session: GameSession, expected_remaining: Optional[int] = None) -> Optional[GameState]:
    """Settle a pending guess. Returns None when there was nothing to settle.

    ``expected_remaining`` identifies the guess a timer was scheduled for;
    a later guess has fewer cards remaining and is left alone.
    """
    version, state = _snapshot(session)
    if state.phase is not engine.Phase.RESOLVING:
        return None
    if expected_remaining is not None and state.cards_remaining != expected_remaining:
        return None
    return _save(session, version, engine.settle(state))


def claim_submission(session: GameSession) -> bool:
    """Mark a finished game as submitted. False if it already was."""
    claimed = (
        GameSession.query
        .filter(GameSession.id == session.id, GameSession.submitted.is_(False))
        .update({'submitted': True}, synchronize_session=False)
    )
    db.session.commit()
    return bool(claimed)


def release_submission(session: GameSession) -> None:
    GameSession.query.filter(GameSession.id == session.id).update(
        {'submitted': False}, synchronize_session=False
    )
    db.session.commit()
