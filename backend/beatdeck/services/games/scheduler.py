import time
from typing import Set, Tuple

from beatdeck import socketio
from beatdeck.errors import GameConflict
from beatdeck.models import GameSession
from beatdeck.socketio_events import notify_game
from . import sessions


SETTLE_MAX_ATTEMPTS = 5

_scheduled_settle_keys: Set[Tuple[int, int]] = set()


def schedule_settle(app, session_id: int, correct: bool) -> None:
    """Settle the pending guess of a session once the reveal delay passes.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set, in
      which case it runs inline
    - Ensures a single timer per (session, cards remaining)
    - Leaves the game alone if the client already settled it
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    with app.app_context():
        session = GameSession.query.filter_by(id=session_id).first()
        if not session:
            return
        remaining = session.state.cards_remaining
    key = (session_id, remaining)
    if key in _scheduled_settle_keys:
        app.logger.info(f"[settle-skip] session={session_id} remaining={remaining} already scheduled")
        return
    _scheduled_settle_keys.add(key)

    if correct:
        delay = float(app.config.get('CORRECT_REVEAL_SEC', 1))
    else:
        delay = float(app.config.get('BURN_REVEAL_SEC', 2))
    app.logger.info(f"[settle-set] session={session_id} remaining={remaining} delay={delay}s")

    def _worker(sid: int, expected_remaining: int, wait: float):
        if wait > 0:
            time.sleep(wait)
        with app.app_context():
            _scheduled_settle_keys.discard((sid, expected_remaining))
            for attempt in range(1, SETTLE_MAX_ATTEMPTS + 1):
                s = GameSession.query.filter_by(id=sid).first()
                if not s:
                    return
                try:
                    state = sessions.settle(s, expected_remaining=expected_remaining)
                except GameConflict:
                    # A request moved the game first; settle the newer state instead.
                    app.logger.info(f"[settle-retry] session={sid} attempt={attempt} game changed")
                    continue
                if state is None:
                    app.logger.info(f"[settle-abort] session={sid} already settled")
                    return
                app.logger.info(f"[settle-fire] session={sid} phase={state.phase.value}")
                notify_game(s.game_code, {'phase': state.phase.value})
                return
            app.logger.warning(f"[settle-give-up] session={sid} still contended after {SETTLE_MAX_ATTEMPTS} attempts")

    if app.config.get('TESTING'):
        _worker(session_id, remaining, delay)
    else:
        socketio.start_background_task(_worker, session_id, remaining, delay)
