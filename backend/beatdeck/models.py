from beatdeck import db, bcrypt
from flask_login import UserMixin
import json
import string
import random

from beatdeck.services.games.engine import GameState, Result
from beatdeck.services.leaderboard.records import ScoreRecord
from beatdeck.services.leaderboard.reconcile import PLAYER_KEY_INDEX


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


def generate_game_code(length=6):
    """Generate a unique, short game code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not GameSession.query.filter_by(game_code=code).first():
            return code


class GameSession(db.Model):
    """A server-hosted game. The engine state is stored as JSON."""
    __tablename__ = 'game_session'
    id = db.Column(db.Integer, primary_key=True)
    game_code = db.Column(db.String(8), unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    state_json = db.Column(db.Text, nullable=False)
    submitted = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.BigInteger, nullable=True)
    # Bumped on every move; a move is only saved over the version it was computed from.
    version = db.Column(db.Integer, nullable=False, default=1)
    user = db.relationship('User')

    def __init__(self, **kwargs):
        super(GameSession, self).__init__(**kwargs)
        if not self.game_code:
            self.game_code = generate_game_code()

    @property
    def state(self) -> GameState:
        return GameState.from_dict(json.loads(self.state_json))

    @state.setter
    def state(self, value: GameState) -> None:
        self.state_json = self.encode_state(value)

    @staticmethod
    def encode_state(state: GameState) -> str:
        return json.dumps(state.to_dict(include_deck=True))

    def to_dict(self):
        return {
            'id': self.id,
            'game_code': self.game_code,
            'submitted': self.submitted,
            'state': self.state.to_dict(),
        }


class Score(db.Model):
    """Best score per player. ``player_key`` is unique once reconciled."""
    __tablename__ = 'score'
    __table_args__ = (db.Index(PLAYER_KEY_INDEX, 'player_key', unique=True),)
    id = db.Column(db.Integer, primary_key=True)
    player_key = db.Column(db.String(80), nullable=False)
    player_name = db.Column(db.String(64), nullable=False)
    stacks_remaining = db.Column(db.Integer, nullable=False)
    longest_streak = db.Column(db.Integer, nullable=False)
    remaining_cards = db.Column(db.Integer, nullable=False)
    result = db.Column(db.String(8), nullable=False, index=True)
    timestamp = db.Column(db.BigInteger, nullable=False, index=True)
    # Bumped on every replacement; writers compare-and-swap on it.
    version = db.Column(db.Integer, nullable=False, default=1)

    def to_record(self) -> ScoreRecord:
        return ScoreRecord(
            player_id=self.player_key,
            player_name=self.player_name,
            stacks_remaining=self.stacks_remaining,
            longest_streak=self.longest_streak,
            remaining_cards=self.remaining_cards,
            result=Result(self.result),
            timestamp=self.timestamp,
        )

    @staticmethod
    def columns_for(record: ScoreRecord):
        return {
            'player_name': record.player_name,
            'stacks_remaining': record.stacks_remaining,
            'longest_streak': record.longest_streak,
            'remaining_cards': record.remaining_cards,
            'result': record.result.value,
            'timestamp': record.timestamp,
        }

    def to_dict(self):
        payload = self.to_record().to_dict()
        payload['id'] = self.id
        return payload
