from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

from beatdeck.services.leaderboard.store import LeaderboardStore  # noqa: E402

leaderboard_store = LeaderboardStore()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Import and register blueprints here
    from beatdeck.main import main
    flask_app.register_blueprint(main)

    from beatdeck.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from beatdeck.api.leaderboard import leaderboard
    flask_app.register_blueprint(leaderboard, url_prefix='/api/leaderboard')

    _register_error_handlers(flask_app)

    from beatdeck.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login user loader
    from beatdeck.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    # A database that is down at startup must not stop the server;
    # the store keeps retrying in the background.
    leaderboard_store.init_app(flask_app)
    leaderboard_store.start()

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database, then reconciles the leaderboard."""
        with flask_app.app_context():
            db.drop_all()
        if leaderboard_store.initialize():
            print('Database has been reset!')
        else:
            print(f'Database reset failed: {leaderboard_store.last_error}')

    flask_app.cli.add_command(db_reset_command)

    return flask_app


def _register_error_handlers(flask_app):
    from beatdeck.errors import EmptyDeckError, GameConflict, InvalidInput, InvalidMove, StoreUnavailable

    @flask_app.errorhandler(InvalidInput)
    def handle_invalid_input(exc):
        return jsonify({'error': str(exc)}), 400

    @flask_app.errorhandler(InvalidMove)
    def handle_invalid_move(exc):
        return jsonify({'error': str(exc)}), 400

    @flask_app.errorhandler(GameConflict)
    def handle_game_conflict(exc):
        return jsonify({'error': str(exc)}), 409

    @flask_app.errorhandler(StoreUnavailable)
    def handle_store_unavailable(exc):
        return jsonify({'error': str(exc), 'retry': True}), 503

    @flask_app.errorhandler(EmptyDeckError)
    def handle_empty_deck(exc):
        flask_app.logger.exception(f"[engine-fault] {exc}")
        return jsonify({'error': 'Internal server error'}), 500
