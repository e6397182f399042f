import random
from dataclasses import dataclass
from typing import List, Optional

from beatdeck.errors import EmptyDeckError


SUITS = ('hearts', 'diamonds', 'clubs', 'spades')
RANKS = ('2', '3', '4', '5', '6', '7', '8', '9', '10', 'J', 'Q', 'K', 'A')
JOKER_SUIT = 'joker'
JOKER_RANK = 'JOKER'
JOKERS_PER_DECK = 2
DECK_SIZE = len(SUITS) * len(RANKS) + JOKERS_PER_DECK

_FACE_VALUES = {'J': 11, 'Q': 12, 'K': 13, 'A': 14}


@dataclass(frozen=True)
class Card:
    suit: str
    rank: str

    def __post_init__(self):
        if self.suit == JOKER_SUIT:
            if self.rank != JOKER_RANK:
                raise ValueError(f"Joker must have rank {JOKER_RANK}, got {self.rank!r}")
        elif self.suit not in SUITS or self.rank not in RANKS:
            raise ValueError(f"Unknown card {self.rank!r} of {self.suit!r}")

    @property
    def is_joker(self) -> bool:
        return self.suit == JOKER_SUIT

    @property
    def value(self) -> int:
        """Numeric rank: 2-10 literal, J=11 .. A=14. Jokers are 0 and never compared."""
        if self.is_joker:
            return 0
        return _FACE_VALUES.get(self.rank) or int(self.rank)

    def to_dict(self):
        return {'suit': self.suit, 'rank': self.rank, 'value': self.value}

    @classmethod
    def from_dict(cls, data) -> 'Card':
        return cls(suit=data['suit'], rank=data['rank'])


def joker() -> Card:
    return Card(JOKER_SUIT, JOKER_RANK)


class Deck:
    """Ordered cards; the top of the deck is the last element."""

    def __init__(self, cards: Optional[List[Card]] = None):
        self.cards: List[Card] = list(cards) if cards is not None else []

    def draw(self) -> Card:
        if not self.cards:
            raise EmptyDeckError('Cannot draw from an empty deck')
        return self.cards.pop()

    def peek(self) -> Card:
        if not self.cards:
            raise EmptyDeckError('Cannot peek at an empty deck')
        return self.cards[-1]

    def remaining(self) -> int:
        return len(self.cards)

    def copy(self) -> 'Deck':
        return Deck(self.cards)

    def __len__(self):
        return len(self.cards)

    def to_list(self):
        return [c.to_dict() for c in self.cards]

    @classmethod
    def from_list(cls, items) -> 'Deck':
        return cls([Card.from_dict(item) for item in items])


def build_cards() -> List[Card]:
    """The unshuffled 54-card multiset: 52 ranked cards plus two jokers."""
    cards = [Card(suit, rank) for suit in SUITS for rank in RANKS]
    cards.extend(joker() for _ in range(JOKERS_PER_DECK))
    return cards


def shuffle(cards: List[Card], rng=None) -> None:
    """In-place Fisher-Yates shuffle."""
    rng = rng or random
    for i in range(len(cards) - 1, 0, -1):
        j = rng.randint(0, i)
        cards[i], cards[j] = cards[j], cards[i]


def new_deck(rng=None) -> Deck:
    cards = build_cards()
    shuffle(cards, rng)
    return Deck(cards)
