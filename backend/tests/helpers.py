from beatdeck.services.games.cards import Card, Deck, joker
from beatdeck.services.games.engine import ActiveStack, GameState, Result
from beatdeck.services.leaderboard.records import ScoreRecord


def c(label: str) -> Card:
    """Card from a short label: '7h', '10s', 'Kd', 'Ac', 'JOKER'."""
    if label == 'JOKER':
        return joker()
    suits = {'h': 'hearts', 'd': 'diamonds', 'c': 'clubs', 's': 'spades'}
    return Card(suits[label[-1]], label[:-1])


def make_state(tops, deck, **kwargs) -> GameState:
    """A game with one card per stack and ``deck`` listed bottom to top."""
    stacks = tuple(ActiveStack((c(t),)) for t in tops)
    return GameState(deck=Deck([c(x) for x in deck]), stacks=stacks, **kwargs)


def make_record(player='p1', result=Result.WIN, stacks=9, streak=0, remaining=0, ts=1000, name=None):
    return ScoreRecord(
        player_id=player,
        player_name=name or player,
        stacks_remaining=stacks,
        longest_streak=streak,
        remaining_cards=remaining,
        result=result,
        timestamp=ts,
    )
