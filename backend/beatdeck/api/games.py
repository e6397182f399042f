from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user

from beatdeck import db
from beatdeck.errors import InvalidInput, InvalidMove
from beatdeck.services.games import engine, sessions
from beatdeck.services.games.scheduler import schedule_settle
from beatdeck.services.leaderboard.records import (
    clean_player_name,
    player_key_for_name,
    record_from_game,
)
from beatdeck.socketio_events import notify_game
from beatdeck.api.leaderboard import current_identity, name_rules, store_score


games = Blueprint('games', __name__)


def _state_payload(session, state=None):
    state = state or session.state
    payload = state.to_dict()
    payload['game_code'] = session.game_code
    payload['submitted'] = session.submitted
    if state.is_over:
        payload['message'] = engine.game_over_message(state)
    return payload


@games.route('/create', methods=['POST'])
def create_game():
    user_id = current_user.id if current_user.is_authenticated else None
    session = sessions.create_session(user_id=user_id)
    current_app.logger.info(f"[game-create] game={session.game_code}")
    return jsonify(_state_payload(session)), 201


@games.route('/<string:game_code>/state', methods=['GET'])
def get_state(game_code):
    session = sessions.find_session(game_code)
    payload = _state_payload(session)
    payload['durations'] = {
        'correct_reveal': float(current_app.config.get('CORRECT_REVEAL_SEC', 1)),
        'burn_reveal': float(current_app.config.get('BURN_REVEAL_SEC', 2)),
    }
    return jsonify(payload)


@games.route('/<string:game_code>/select', methods=['POST'])
def select_stack(game_code):
    data = request.get_json(silent=True) or {}
    session = sessions.find_session(game_code)
    state = sessions.select(session, data.get('stack_index'))
    notify_game(session.game_code)
    return jsonify(_state_payload(session, state))


@games.route('/<string:game_code>/deselect', methods=['POST'])
def deselect_stack(game_code):
    session = sessions.find_session(game_code)
    state = sessions.deselect(session)
    notify_game(session.game_code)
    return jsonify(_state_payload(session, state))


@games.route('/<string:game_code>/guess', methods=['POST'])
def make_guess(game_code):
    data = request.get_json(silent=True) or {}
    session = sessions.find_session(game_code)
    if 'stack_index' in data and session.state.phase is engine.Phase.SELECTING:
        sessions.select(session, data['stack_index'])
    state, outcome = sessions.guess(session, data.get('direction'))
    current_app.logger.info(
        f"[guess] game={session.game_code} stack={outcome.stack_index} correct={outcome.correct} remaining={state.cards_remaining}"
    )
    notify_game(session.game_code)
    schedule_settle(current_app._get_current_object(), session.id, outcome.correct)
    # The scheduler may already have settled the guess inline
    db.session.refresh(session)
    payload = _state_payload(session)
    payload['outcome'] = outcome.to_dict()
    return jsonify(payload)


@games.route('/<string:game_code>/settle', methods=['POST'])
def settle_guess(game_code):
    """Apply a pending guess now instead of waiting for the reveal timer."""
    session = sessions.find_session(game_code)
    state = sessions.settle(session)
    if state is not None:
        notify_game(session.game_code)
    return jsonify(_state_payload(session, state))


@games.route('/<string:game_code>/peek', methods=['POST'])
def sneak_peek(game_code):
    session = sessions.find_session(game_code)
    state, card = sessions.peek(session)
    payload = _state_payload(session, state)
    payload['next_card'] = card.to_dict()
    return jsonify(payload)


@games.route('/<string:game_code>/submit', methods=['POST'])
def submit_game(game_code):
    """Record a finished game on the leaderboard."""
    data = request.get_json(silent=True) or {}
    session = sessions.find_session(game_code)
    if session.submitted:
        raise InvalidMove('This game has already been submitted')
    state = session.state
    if not state.is_over:
        raise InvalidMove('Only finished games can be submitted')

    player_id, player_name = current_identity()
    if player_id is None:
        max_length, denylist = name_rules()
        name_raw = data.get('player_name') or data.get('playerName')
        if name_raw is None:
            raise InvalidInput('Player name is required')
        player_name = clean_player_name(name_raw, max_length, denylist)
        player_id = player_key_for_name(player_name)

    record = record_from_game(state, player_id, player_name)
    if not sessions.claim_submission(session):
        raise InvalidMove('This game has already been submitted')
    try:
        outcome = store_score(record)
    except Exception:
        sessions.release_submission(session)
        raise
    status = 201 if outcome.action == 'inserted' else 200
    return jsonify(outcome.to_dict()), status
