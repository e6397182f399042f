from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user

from beatdeck import leaderboard_store
from beatdeck.errors import InvalidInput
from beatdeck.services.leaderboard.records import (
    DEFAULT_NAME_DENYLIST,
    ScoreRecord,
    clean_player_name,
    player_key_for_name,
    player_key_for_user,
    validate_submission,
)
from beatdeck.services.leaderboard.store import UpsertResult
from beatdeck.socketio_events import notify_leaderboard

leaderboard = Blueprint('leaderboard', __name__)


def name_rules():
    cfg = current_app.config
    denylist = DEFAULT_NAME_DENYLIST | set(cfg.get('NAME_DENYLIST') or [])
    return int(cfg.get('PLAYER_NAME_MAX_LENGTH', 20)), denylist


def current_identity():
    """(player_id, player_name) for a logged-in user, else (None, None)."""
    if current_user.is_authenticated:
        return player_key_for_user(current_user.id), current_user.username
    return None, None


def store_score(record: ScoreRecord) -> UpsertResult:
    outcome = leaderboard_store.upsert(record)
    if outcome.changed:
        notify_leaderboard(outcome.to_dict())
    return outcome


def _int_arg(name, minimum=None):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return None
    try:
        value = int(raw)
    except ValueError:
        raise InvalidInput(f'{name} must be an integer')
    if minimum is not None and value < minimum:
        raise InvalidInput(f'{name} must be at least {minimum}')
    return value


@leaderboard.route('/scores', methods=['POST'])
def submit_score():
    data = request.get_json(silent=True)
    player_id, player_name = current_identity()
    max_length, denylist = name_rules()
    record = validate_submission(
        data,
        player_id=player_id,
        player_name=player_name,
        max_name_length=max_length,
        denylist=denylist,
    )
    outcome = store_score(record)
    status = 201 if outcome.action == 'inserted' else 200
    return jsonify(outcome.to_dict()), status


@leaderboard.route('', methods=['GET'])
def get_leaderboard():
    records = leaderboard_store.query(
        year=_int_arg('year', minimum=1970),
        month=_int_arg('month', minimum=1),
        limit=_int_arg('limit', minimum=0),
        win_limit=_int_arg('win_limit', minimum=0),
        lose_limit=_int_arg('lose_limit', minimum=0),
    )
    response = jsonify([r.to_dict() for r in records])
    response.headers['Cache-Control'] = 'no-store'
    return response


@leaderboard.route('/player', methods=['GET'])
def get_player_best():
    player_id, _ = current_identity()
    if player_id is None:
        max_length, denylist = name_rules()
        name = clean_player_name(request.args.get('name'), max_length, denylist)
        player_id = player_key_for_name(name)
    record = leaderboard_store.get(player_id)
    if record is None:
        return jsonify({'error': 'No score recorded for this player'}), 404
    response = jsonify(record.to_dict())
    response.headers['Cache-Control'] = 'no-store'
    return response
