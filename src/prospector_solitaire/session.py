"""Prospector game session: deal, draw and the card-selection state machine.

A card moves ``drawpile -> mine -> target -> discard`` or, for cards turned
from the stock, ``drawpile -> target -> discard``.  The session owns every card
it deals and is the only thing that moves them.

Presentation code subscribes through a :class:`SessionListener`.  Placements
and flips produced while a call is running are held back and delivered once
the call (including the top-card and face-up recomputation) has finished, so
a listener never observes a half-applied move.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from random import Random
from typing import Dict, List, Optional, Sequence, Tuple

from prospector_solitaire import common as C
from prospector_solitaire import mechanics as M
from prospector_solitaire.errors import DeckExhaustedError, InvalidTransitionError
from prospector_solitaire.layout import Layout, SlotDef, layout_summary
from prospector_solitaire.piles import DiscardPile, DrawPile

logger = logging.getLogger(__name__)

TARGET_SORTING_LAYER = "Target"


@dataclass(frozen=True)
class Placement:
    """Where a card should be drawn, in layout space, and how it sorts."""

    x: float
    y: float
    z: float
    sorting_layer: str
    sorting_order: int


class SessionListener:
    """Receives presentation updates from a :class:`ProspectorSession`."""

    def card_placed(self, card: C.Card, placement: Placement) -> None:
        pass

    def card_flipped(self, card: C.Card, face_up: bool) -> None:
        pass


class ProspectorSession:
    def __init__(
        self,
        layout: Layout,
        *,
        wrap_ak: bool = False,
        use_occlusion: bool = True,
        listener: Optional[SessionListener] = None,
    ):
        self.layout = layout
        self.wrap_ak = wrap_ak
        self.use_occlusion = use_occlusion
        self.listener = listener

        self.draw_pile = DrawPile()
        self.discard_pile = DiscardPile()
        self.mine: Dict[int, C.Card] = {}
        self.target: Optional[C.Card] = None
        self.top_card: Dict[str, C.Card] = {}

        self._deck_snapshot: List[Tuple[int, int]] = []
        self._pending: List[Tuple[str, C.Card, object]] = []
        self._in_transaction = False

    # ---------- Notifications ----------
    @contextmanager
    def _transaction(self):
        outer = not self._in_transaction
        self._in_transaction = True
        try:
            yield
        except Exception:
            if outer:
                self._pending.clear()
            raise
        finally:
            if outer:
                self._in_transaction = False
        if outer:
            self._flush()

    def _flush(self):
        pending, self._pending = self._pending, []
        if self.listener is None:
            return
        for kind, card, value in pending:
            if kind == "place":
                self.listener.card_placed(card, value)
            else:
                self.listener.card_flipped(card, value)

    def _place(self, card: C.Card, placement: Placement):
        if self.listener is not None:
            self._pending.append(("place", card, placement))

    def _set_face_up(self, card: C.Card, face_up: bool):
        if card.face_up == face_up:
            return
        card.face_up = face_up
        if self.listener is not None:
            self._pending.append(("flip", card, face_up))

    # ---------- Placements ----------
    def _scaled(self, sd: SlotDef) -> Tuple[float, float]:
        mx, my = self.layout.multiplier
        return mx * sd.x, my * sd.y

    def _mine_placement(self, sd: SlotDef) -> Placement:
        x, y = self._scaled(sd)
        return Placement(x, y, -float(sd.layer_id), sd.layer_name, sd.id)

    def _discard_placement(self) -> Placement:
        x, y = self._scaled(self.layout.discard_pile)
        order = -200 + len(self.discard_pile) * 3
        return Placement(x, y, 0.0, self.layout.discard_pile.layer_name, order)

    def _target_placement(self) -> Placement:
        x, y = self._scaled(self.layout.discard_pile)
        return Placement(x, y, 0.0, TARGET_SORTING_LAYER, 0)

    def _draw_placement(self, index: int) -> Placement:
        dp = self.layout.draw_pile
        x, y = self._scaled(dp)
        return Placement(x + dp.x_stagger * index, y, 0.1 * index, dp.layer_name, -10 * index)

    # ---------- Deal ----------
    def _reset(self):
        self.draw_pile.clear()
        self.discard_pile.clear()
        self.mine = {}
        self.target = None
        self.top_card = {}

    def deal(self, deck: Sequence[C.Card]):
        """Deal ``deck`` onto the layout: one card per slot, then the first target."""

        deck = list(deck)
        needed = len(self.layout.slot_defs) + 1
        if len(deck) < needed:
            raise DeckExhaustedError(needed, len(deck))
        if len({id(c) for c in deck}) != len(deck):
            raise InvalidTransitionError("The deck holds the same card more than once")

        with self._transaction():
            self._reset()
            for card in deck:
                card.state = C.CardState.DRAWPILE
                card.face_up = False
                card.layout_id = None
                card.layout_slot = None
            self._deck_snapshot = [(c.suit, c.rank) for c in deck]
            self.draw_pile = DrawPile(deck)

            self._layout_mine()
            if self.use_occlusion:
                self._apply_face_ups()
            self.move_to_target(self.draw())
            self._update_draw_pile()
            self._update_top_cards()
        logger.debug(
            "Dealt %d mine cards %s, target %r, %d left to draw",
            len(self.mine), layout_summary(self.layout), self.target, len(self.draw_pile),
        )

    def _layout_mine(self):
        for sd in self.layout.slot_defs:
            cp = self.draw()
            cp.state = C.CardState.MINE
            cp.layout_id = sd.id
            cp.layout_slot = sd
            self._set_face_up(cp, sd.face_up)
            self.mine[sd.id] = cp
            self._place(cp, self._mine_placement(sd))

    def new_game(self, rng: Optional[Random] = None):
        self.deal(C.make_deck(shuffle=True, rng=rng))

    def restart(self):
        """Deal the previous deck order again with fresh cards."""

        if not self._deck_snapshot:
            return
        self.deal([C.Card(s, r, False) for (s, r) in self._deck_snapshot])

    # ---------- Pile moves ----------
    def draw(self) -> C.Card:
        """Remove and return the front card of the draw pile."""

        card = self.draw_pile.draw()
        logger.debug("Drew %r, %d left", card, len(self.draw_pile))
        return card

    def move_to_discard(self, card: C.Card):
        if card.state is not C.CardState.TARGET:
            raise InvalidTransitionError(
                f"{card!r} is in state {card.state.value}; only the target can be discarded"
            )
        with self._transaction():
            if card is self.target:
                self.target = None
            card.state = C.CardState.DISCARD
            self.discard_pile.push(card)
            self._set_face_up(card, True)
            self._place(card, self._discard_placement())

    def move_to_target(self, card: C.Card):
        if card.state in (C.CardState.TARGET, C.CardState.DISCARD):
            raise InvalidTransitionError(f"{card!r} is already {card.state.value}")
        if card.state is C.CardState.MINE and self.mine.get(card.layout_id) is card:
            raise InvalidTransitionError(f"{card!r} must leave the mine before it becomes the target")
        if card.state is C.CardState.DRAWPILE and card in self.draw_pile:
            raise InvalidTransitionError(f"{card!r} must be drawn before it becomes the target")
        with self._transaction():
            if self.target is not None:
                self.move_to_discard(self.target)
            card.layout_id = None
            card.layout_slot = None
            card.state = C.CardState.TARGET
            self.target = card
            self._set_face_up(card, True)
            self._place(card, self._target_placement())

    def _update_draw_pile(self):
        for i, cp in enumerate(self.draw_pile):
            cp.state = C.CardState.DRAWPILE
            self._set_face_up(cp, False)
            self._place(cp, self._draw_placement(i))

    def _update_top_cards(self):
        self.top_card = M.top_cards(self.mine.values())

    def _apply_face_ups(self):
        for slot_id, face_up in M.compute_face_ups(self.mine).items():
            self._set_face_up(self.mine[slot_id], face_up)

    def refresh_face_ups(self):
        """Recompute mine face-up state from the occlusion lists."""

        with self._transaction():
            self._apply_face_ups()

    # ---------- Selection ----------
    def is_valid_match(self, card: C.Card) -> bool:
        if card.state is not C.CardState.MINE or card.layout_slot is None:
            return False
        if self.top_card.get(card.layout_slot.layer_name) is not card:
            return False
        if not card.face_up or self.target is None:
            return False
        return M.cards_adjacent(card, self.target, self.wrap_ak)

    def on_card_selected(self, card: C.Card) -> bool:
        """Apply a player's click on ``card``; return True if anything moved.

        Raises :class:`EmptyPileError` when a draw-pile card is selected with
        nothing left to draw, leaving the session untouched.
        """

        with self._transaction():
            if card.state is C.CardState.DRAWPILE:
                self.move_to_target(self.draw())
                self._update_draw_pile()
                return True
            if card.state is C.CardState.MINE:
                if not self.is_valid_match(card):
                    logger.debug("Rejected %r against target %r", card, self.target)
                    return False
                del self.mine[card.layout_id]
                self.move_to_target(card)
                self._update_top_cards()
                if self.use_occlusion:
                    self._apply_face_ups()
                logger.debug("Mined %r, %d cards left in the mine", card, len(self.mine))
                return True
            # Target and discard cards do nothing when clicked
            return False

    # ---------- Queries ----------
    def can_draw(self) -> bool:
        return len(self.draw_pile) > 0

    def playable_cards(self) -> List[C.Card]:
        return [c for c in self.top_card.values() if self.is_valid_match(c)]

    def any_moves_available(self) -> bool:
        return self.can_draw() or bool(self.playable_cards())

    def is_cleared(self) -> bool:
        return not self.mine

    def is_stuck(self) -> bool:
        return bool(self.mine) and not self.any_moves_available()

    def all_cards(self) -> List[C.Card]:
        cards: List[C.Card] = list(self.draw_pile)
        cards.extend(self.mine.values())
        if self.target is not None:
            cards.append(self.target)
        cards.extend(self.discard_pile)
        return cards
