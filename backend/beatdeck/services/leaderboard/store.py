import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from beatdeck import db, socketio
from beatdeck.errors import DuplicateKeyViolation, InvalidInput, StoreUnavailable
from beatdeck.services.games.engine import Result
from .ranking import should_replace, sort_leaderboard
from .reconcile import reconcile
from .records import ScoreRecord


INSERTED = 'inserted'
UPDATED = 'updated'
KEPT_EXISTING = 'kept_existing'

_UNREACHABLE_ERRORS = (OperationalError, InterfaceError)


@dataclass(frozen=True)
class UpsertResult:
    action: str
    record: ScoreRecord

    @property
    def changed(self) -> bool:
        return self.action != KEPT_EXISTING

    def to_dict(self):
        return {'action': self.action, 'score': self.record.to_dict()}


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def month_window(year: int, month: Optional[int] = None) -> Tuple[int, int]:
    """Inclusive [start, end] epoch-ms bounds of a UTC calendar month (or year)."""
    if month is not None and not 1 <= month <= 12:
        raise InvalidInput('month must be between 1 and 12')
    try:
        if month is None:
            start = datetime(year, 1, 1, tzinfo=timezone.utc)
            end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            start = datetime(year, month, 1, tzinfo=timezone.utc)
            if month == 12:
                end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
            else:
                end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    except (ValueError, OverflowError):
        raise InvalidInput('year out of range')
    return _to_ms(start), _to_ms(end) - 1


class LeaderboardStore:
    """Best score per player, backed by the ``score`` table.

    The store starts unavailable. ``start`` creates tables and reconciles
    legacy duplicates; when the database cannot be reached it keeps retrying
    in the background and every operation raises ``StoreUnavailable`` until
    it succeeds.
    """

    def __init__(self, app=None):
        self.app = None
        self.available = False
        self.last_error: Optional[str] = None
        self._retrying = False
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        self.available = False
        self.last_error = None
        app.extensions['leaderboard_store'] = self

    # ---- lifecycle ----

    def start(self) -> bool:
        if self.initialize():
            return True
        self.schedule_retry()
        return False

    def initialize(self) -> bool:
        app = self.app
        try:
            with app.app_context():
                # Table models must be registered before create_all
                import beatdeck.models  # noqa: F401
                db.create_all()
                with db.engine.begin() as conn:
                    collapsed = reconcile(conn)
        except _UNREACHABLE_ERRORS as exc:
            self._mark_unavailable(exc)
            return False
        self.available = True
        self.last_error = None
        if collapsed:
            app.logger.warning(f"[store-reconcile] collapsed duplicate scores for {collapsed} player(s)")
        app.logger.info("[store-ready] leaderboard store initialized")
        return True

    def schedule_retry(self) -> None:
        app = self.app
        if app.config.get('TESTING') and not app.config.get('ENABLE_STORE_RETRY_IN_TESTS'):
            return
        with self._lock:
            if self._retrying:
                return
            self._retrying = True
        socketio.start_background_task(self._retry_loop)

    def _retry_loop(self):
        interval = int(self.app.config.get('STORE_RETRY_INTERVAL_SEC', 10))
        try:
            while not self.available:
                socketio.sleep(interval)
                self.app.logger.info("[store-retry] retrying leaderboard store initialization")
                self.initialize()
        finally:
            with self._lock:
                self._retrying = False

    def _mark_unavailable(self, exc) -> None:
        self.available = False
        self.last_error = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
        if self.app is not None:
            self.app.logger.warning(f"[store-unavailable] {self.last_error}")

    def status(self):
        return {'available': self.available, 'error': self.last_error}

    @contextmanager
    def _guarded(self):
        if not self.available:
            raise StoreUnavailable('Leaderboard temporarily unavailable')
        try:
            yield
        except _UNREACHABLE_ERRORS as exc:
            db.session.rollback()
            self._mark_unavailable(exc)
            self.schedule_retry()
            raise StoreUnavailable('Leaderboard temporarily unavailable') from exc

    # ---- writes ----

    def upsert(self, record: ScoreRecord) -> UpsertResult:
        """Store ``record`` unless the player's stored best is strictly better."""
        from beatdeck.models import Score

        attempts = int(self.app.config.get('UPSERT_MAX_ATTEMPTS', 5))
        with self._guarded():
            for attempt in range(1, attempts + 1):
                try:
                    outcome = self._try_upsert(Score, record)
                except DuplicateKeyViolation:
                    self.app.logger.info(f"[upsert-race] player={record.player_id} attempt={attempt} lost insert race")
                    continue
                if outcome is None:
                    self.app.logger.info(f"[upsert-race] player={record.player_id} attempt={attempt} lost update race")
                    continue
                self.app.logger.info(f"[upsert] player={record.player_id} action={outcome.action}")
                return outcome
        raise StoreUnavailable('Leaderboard is busy, please try again')

    def _try_upsert(self, Score, record: ScoreRecord) -> Optional[UpsertResult]:
        existing = Score.query.filter_by(player_key=record.player_id).first()
        if existing is None:
            db.session.add(Score(player_key=record.player_id, version=1, **Score.columns_for(record)))
            try:
                db.session.commit()
            except IntegrityError as exc:
                db.session.rollback()
                raise DuplicateKeyViolation(record.player_id) from exc
            return UpsertResult(INSERTED, record)

        stored = existing.to_record()
        version = existing.version
        if record.timestamp < stored.timestamp:
            # Writes never move a player's timestamp backwards.
            record = record.with_timestamp(stored.timestamp)
        if not should_replace(record, stored):
            db.session.rollback()
            return UpsertResult(KEPT_EXISTING, stored)

        values = Score.columns_for(record)
        values['version'] = version + 1
        swapped = (
            Score.query
            .filter(Score.player_key == record.player_id, Score.version == version)
            .update(values, synchronize_session=False)
        )
        db.session.commit()
        if not swapped:
            return None
        return UpsertResult(UPDATED, record)

    # ---- reads ----

    def get(self, player_key: str) -> Optional[ScoreRecord]:
        from beatdeck.models import Score

        with self._guarded():
            row = Score.query.filter_by(player_key=player_key).first()
            return row.to_record() if row else None

    def query(self, year: Optional[int] = None, month: Optional[int] = None,
              limit: Optional[int] = None, win_limit: Optional[int] = None,
              lose_limit: Optional[int] = None) -> List[ScoreRecord]:
        """Ranked leaderboard, optionally scoped to a calendar month or year."""
        from beatdeck.models import Score

        cfg = self.app.config
        max_limit = int(cfg.get('LEADERBOARD_MAX_LIMIT', 100))
        if limit is None:
            limit = int(cfg.get('LEADERBOARD_DEFAULT_LIMIT', 50))
        limit = max(0, min(limit, max_limit))
        if month is not None and year is None:
            raise InvalidInput('month requires year')

        with self._guarded():
            base = Score.query
            if year is not None:
                start, end = month_window(year, month)
                base = base.filter(Score.timestamp >= start, Score.timestamp <= end)
            wins = (
                base.filter(Score.result == Result.WIN.value)
                .order_by(Score.stacks_remaining.desc(), Score.longest_streak.desc(), Score.timestamp.desc())
                .limit(limit if win_limit is None else min(win_limit, limit))
                .all()
            )
            losses = (
                base.filter(Score.result == Result.LOSE.value)
                .order_by(Score.remaining_cards.asc(), Score.longest_streak.desc(), Score.timestamp.desc())
                .limit(limit if lose_limit is None else min(lose_limit, limit))
                .all()
            )
            records = [row.to_record() for row in wins + losses]
        return sort_leaderboard(records, limit=limit)
