"""
prospector.py - Prospector game scene

Rules (implemented by prospector_solitaire.session):
- 28 cards are dealt onto the layout; covered cards start face-down and turn
  face-up once every card covering them has been mined.
- Only the top (highest slot id) card of each row can be taken.
- Take a face-up top card whose rank is one above or below the target; it
  becomes the new target and the old target goes to the discard pile.
- Click the draw pile to turn a new target when stuck. No redeals.
- The game ends when the mine is cleared or no moves remain.
"""

import logging
from typing import Dict, List, Optional, Tuple

import pygame

from prospector_solitaire import common as C
from prospector_solitaire.layout import Layout, load_layout
from prospector_solitaire.session import Placement, ProspectorSession, SessionListener

logger = logging.getLogger(__name__)

# Back-to-front order of the sorting layers the session emits.
SORTING_LAYER_ORDER = ("Draw", "Discard", "Row0", "Row1", "Row2", "Row3", "Target")

# Pixels per layout unit, relative to the card width.
UNIT_PER_CARD_W = 0.45


class ProspectorGameScene(C.Scene, SessionListener):
    def __init__(
        self,
        app,
        layout: Optional[Layout] = None,
        wrap_ak: Optional[bool] = None,
        use_occlusion: Optional[bool] = None,
        rng=None,
    ):
        super().__init__(app)
        settings = C.get_current_settings()
        if layout is None:
            layout = load_layout(settings.get("layout_path"))
        if wrap_ak is None:
            wrap_ak = bool(settings.get("wrap_ak", False))
        if use_occlusion is None:
            use_occlusion = bool(settings.get("use_occlusion", True))
        self.rng = rng

        # id(card) -> (card, placement); refreshed by session notifications
        self._placements: Dict[int, Tuple[C.Card, Placement]] = {}
        self.session = ProspectorSession(
            layout, wrap_ak=wrap_ak, use_occlusion=use_occlusion, listener=self
        )

        self.message: str = ""
        self.hint_card: Optional[C.Card] = None
        self.hint_expires_at: int = 0

        self.b_new = C.Button("New", 0, 0)
        self.b_restart = C.Button("Restart", 0, 0)
        self.b_hint = C.Button("Hint", 0, 0)

        self.compute_layout()
        self.new_game()

    # ---------- Layout ----------
    def compute_layout(self):
        self.unit = C.CARD_W * UNIT_PER_CARD_W
        self.center_x = C.SCREEN_W // 2
        layout = self.session.layout
        _, my = layout.multiplier
        defs = list(layout.slot_defs) + [layout.draw_pile, layout.discard_pile]
        top = max(my * sd.y for sd in defs)
        self.origin_y = C.TOP_BAR_H + 24 + C.CARD_H // 2 + int(top * self.unit)

        x = C.SCREEN_W - 10
        for b in (self.b_hint, self.b_restart, self.b_new):
            x -= b.rect.width
            b.rect.topleft = (x, 10)
            x -= 8

    def rect_for(self, placement: Placement) -> pygame.Rect:
        cx = self.center_x + placement.x * self.unit
        cy = self.origin_y - placement.y * self.unit
        return pygame.Rect(int(cx - C.CARD_W / 2), int(cy - C.CARD_H / 2), C.CARD_W, C.CARD_H)

    def draw_pile_rect(self) -> pygame.Rect:
        dp = self.session.layout.draw_pile
        mx, my = self.session.layout.multiplier
        return self.rect_for(Placement(mx * dp.x, my * dp.y, 0.0, dp.layer_name, 0))

    # ---------- Session listener ----------
    def card_placed(self, card: C.Card, placement: Placement) -> None:
        self._placements[id(card)] = (card, placement)

    def _draw_order(self) -> List[Tuple[C.Card, Placement]]:
        def key(item):
            _, p = item
            layer = SORTING_LAYER_ORDER.index(p.sorting_layer) if p.sorting_layer in SORTING_LAYER_ORDER else 0
            return (layer, p.sorting_order)
        return sorted(self._placements.values(), key=key)

    # ---------- Deal / Restart ----------
    def new_game(self):
        self._placements.clear()
        self.session.new_game(rng=self.rng)
        self.message = ""
        self.hint_card = None

    def restart_deal(self):
        self._placements.clear()
        self.session.restart()
        self.message = ""
        self.hint_card = None

    def show_hint(self):
        playable = self.session.playable_cards()
        self.hint_card = playable[0] if playable else None
        if self.hint_card is None:
            self.message = "Draw a card" if self.session.can_draw() else "No moves left"
        self.hint_expires_at = pygame.time.get_ticks() + 2000

    def _after_move_checks(self):
        if self.session.is_cleared():
            self.message = "Mine cleared!"
        elif self.session.is_stuck():
            self.message = "No moves left"
        else:
            self.message = ""

    # ---------- Input ----------
    def card_at(self, pos) -> Optional[C.Card]:
        for card, placement in reversed(self._draw_order()):
            if self.rect_for(placement).collidepoint(pos):
                return card
        return None

    def select(self, card: C.Card) -> bool:
        if card.state is C.CardState.DRAWPILE and not self.session.can_draw():
            return False
        moved = self.session.on_card_selected(card)
        if moved:
            self.hint_card = None
            self._after_move_checks()
        return moved

    def handle_event(self, e):
        if e.type == pygame.KEYDOWN:
            if e.key == pygame.K_ESCAPE:
                pygame.event.post(pygame.event.Event(pygame.QUIT))
            elif e.key == pygame.K_n:
                self.new_game()
            elif e.key == pygame.K_r:
                self.restart_deal()
            elif e.key == pygame.K_h:
                self.show_hint()
        elif e.type == pygame.MOUSEBUTTONDOWN and e.button == 1:
            if self.b_new.hovered(e.pos):
                self.new_game()
                return
            if self.b_restart.hovered(e.pos):
                self.restart_deal()
                return
            if self.b_hint.hovered(e.pos):
                self.show_hint()
                return
            card = self.card_at(e.pos)
            if card is not None:
                self.select(card)
            elif self.draw_pile_rect().collidepoint(e.pos) and not self.session.can_draw():
                self.message = "The draw pile is empty"

    # ---------- Drawing ----------
    def draw(self, screen):
        screen.fill(C.TABLE_BG)
        if self.hint_card is not None and pygame.time.get_ticks() > self.hint_expires_at:
            self.hint_card = None

        if not self.session.can_draw():
            pygame.draw.rect(screen, (255, 255, 255), self.draw_pile_rect(),
                             width=2, border_radius=C.CARD_RADIUS)

        for card, placement in self._draw_order():
            r = self.rect_for(placement)
            screen.blit(C.get_card_surface(card), r.topleft)
            if card is self.hint_card:
                pygame.draw.rect(screen, C.GOLD, r, width=4, border_radius=C.CARD_RADIUS)

        if self.message:
            msg = C.FONT_UI.render(self.message, True, (255, 255, 180))
            screen.blit(msg, (C.SCREEN_W // 2 - msg.get_width() // 2, C.SCREEN_H - 40))

        extra = f"Mine {len(self.session.mine)}  Draw {len(self.session.draw_pile)}"
        self.draw_top_bar(screen, "Prospector", extra)
        mp = pygame.mouse.get_pos()
        self.b_new.draw(screen, hover=self.b_new.hovered(mp))
        self.b_restart.draw(screen, hover=self.b_restart.hovered(mp))
        self.b_hint.draw(screen, hover=self.b_hint.hovered(mp))
