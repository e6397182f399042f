import time

from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user

from beatdeck import db, leaderboard_store
from beatdeck.errors import InvalidInput
from beatdeck.models import User
from beatdeck.services.leaderboard.records import clean_player_name

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Beat the Deck server!'})


@main.route('/health')
def health():
    status = leaderboard_store.status()
    payload = {
        'status': 'ok' if status['available'] else 'degraded',
        'store': status['available'],
        'timestamp': int(time.time() * 1000),
    }
    if not status['available']:
        payload['error'] = status['error']
        return jsonify(payload), 503
    return jsonify(payload)


@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=(data.get('username') or '').strip()).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({"success": True, "user": user.to_dict()})
    return jsonify({"success": False, "message": "Invalid credentials"}), 401


@main.route('/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    if not data.get('username') or not data.get('password'):
        return jsonify({"success": False, "message": "Missing username or password"}), 400
    from beatdeck.api.leaderboard import name_rules
    max_length, denylist = name_rules()
    try:
        username = clean_player_name(data['username'], max_length, denylist)
    except InvalidInput as exc:
        return jsonify({"success": False, "message": str(exc)}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({"success": False, "message": "Username already exists"}), 400

    new_user = User(username=username)
    new_user.set_password(data['password'])
    db.session.add(new_user)
    db.session.commit()
    login_user(new_user)
    return jsonify({"success": True, "user": new_user.to_dict()}), 201


@main.route('/check_login', methods=['GET', 'OPTIONS'])
def check_login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    if not current_user.is_authenticated:
        return jsonify({"success": False}), 401
    return jsonify({"success": True, "user": current_user.to_dict()})


@main.route('/logout', methods=['POST', 'OPTIONS'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})
