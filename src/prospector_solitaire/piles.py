"""Draw and discard piles.

The draw pile hands out cards from the front; the discard pile only grows,
its last card being the most recent arrival.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, Iterator, List, Optional

from prospector_solitaire import common as C
from prospector_solitaire.errors import EmptyPileError


class DrawPile:
    def __init__(self, cards: Iterable[C.Card] = ()):
        self.cards: Deque[C.Card] = deque(cards)

    def __len__(self) -> int:
        return len(self.cards)

    def __iter__(self) -> Iterator[C.Card]:
        return iter(self.cards)

    def __contains__(self, card) -> bool:
        return any(c is card for c in self.cards)

    def draw(self) -> C.Card:
        if not self.cards:
            raise EmptyPileError("The draw pile is empty")
        return self.cards.popleft()

    def peek(self) -> Optional[C.Card]:
        return self.cards[0] if self.cards else None

    def clear(self):
        self.cards.clear()


class DiscardPile:
    def __init__(self):
        self.cards: List[C.Card] = []

    def __len__(self) -> int:
        return len(self.cards)

    def __iter__(self) -> Iterator[C.Card]:
        return iter(self.cards)

    def push(self, card: C.Card):
        self.cards.append(card)

    def peek(self) -> Optional[C.Card]:
        return self.cards[-1] if self.cards else None

    def clear(self):
        self.cards.clear()
