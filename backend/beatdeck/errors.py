class BeatDeckError(Exception):
    """Base class for errors raised by the game engine and leaderboard."""


class InvalidInput(BeatDeckError):
    """A submitted score failed validation. The message is user-facing."""


class InvalidMove(BeatDeckError):
    """An engine action is not legal in the current game phase."""


class EmptyDeckError(BeatDeckError):
    """Drawing from an empty deck. A legal game never gets here."""


class StoreUnavailable(BeatDeckError):
    """The leaderboard database cannot be reached right now."""


class DuplicateKeyViolation(BeatDeckError):
    """A concurrent writer inserted the same player first.

    Internal to the store: the losing writer re-reads and re-evaluates.
    """


class GameConflict(BeatDeckError):
    """The game changed between reading it and saving a move."""
