from flask_socketio import join_room, leave_room, emit
from beatdeck import socketio

LEADERBOARD_ROOM = 'leaderboard'


def game_room(game_code: str) -> str:
    return f"game:{game_code.upper()}"


def notify_game(game_code: str, payload=None) -> None:
    """Tell everyone watching a game that its state changed."""
    data = {'game_code': game_code}
    if payload:
        data.update(payload)
    socketio.emit('state_update', data, to=game_room(game_code), namespace='/ws')


def notify_leaderboard(upsert_payload) -> None:
    socketio.emit('leaderboard_update', upsert_payload, to=LEADERBOARD_ROOM, namespace='/ws')


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_game(data):
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    room = game_room(game_code)
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_game(data):
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    room = game_room(game_code)
    leave_room(room)
    emit('left', {'room': room})


def handle_join_leaderboard(data=None):
    join_room(LEADERBOARD_ROOM)
    emit('joined', {'room': LEADERBOARD_ROOM})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_game', handle_join_game, namespace=namespace)
        socketio.on_event('leave_game', handle_leave_game, namespace=namespace)
        socketio.on_event('join_leaderboard', handle_join_leaderboard, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
