# common.py - shared cards, settings and drawing helpers for Prospector
import os
import json
import random
import logging
from enum import Enum
from typing import Optional

import pygame

logger = logging.getLogger(__name__)

# --- Settings ---
CARD_SIZES = ("Small", "Medium", "Large")
BACK_COLORS = {
    "Blue": (34, 96, 200),
    "Grey": (110, 110, 120),
    "Red": (170, 30, 40),
}

# Defaults (may be overridden by persisted settings)
_DEFAULT_SETTINGS = {
    "card_size": "Medium",   # Small | Medium | Large
    "back_color": "Blue",    # Blue | Grey | Red
    "wrap_ak": False,         # King and Ace count as adjacent
    "use_occlusion": True,    # reveal mine cards once their covers are gone
    "layout_path": None,      # None -> bundled assets/layout.xml
}

_CURRENT_SETTINGS = dict(_DEFAULT_SETTINGS)


def _settings_dir() -> str:
    # Prefer %APPDATA% on Windows, else ~/.prospector
    base = os.environ.get("APPDATA")
    if base:
        return os.path.join(base, "Prospector")
    return os.path.join(os.path.expanduser("~"), ".prospector")


def _settings_path() -> str:
    return os.path.join(_settings_dir(), "settings.json")


def _as_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off"):
            return False
    raise ValueError(f"expected a boolean, got {value!r}")


def _as_choice(choices):
    def convert(value):
        if isinstance(value, str) and value.strip().capitalize() in choices:
            return value.strip().capitalize()
        raise ValueError(f"expected one of {', '.join(choices)}, got {value!r}")
    return convert


def _as_optional_path(value):
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    raise ValueError(f"expected a file path, got {value!r}")


# Each converter returns the cleaned value or raises ValueError
_SETTING_CONVERTERS = {
    "card_size": _as_choice(CARD_SIZES),
    "back_color": _as_choice(tuple(BACK_COLORS)),
    "wrap_ak": _as_bool,
    "use_occlusion": _as_bool,
    "layout_path": _as_optional_path,
}


def get_current_settings():
    return dict(_CURRENT_SETTINGS)


def load_settings():
    path = _settings_path()
    if not os.path.isfile(path):
        return
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: expected an object", path)
        return
    for key, convert in _SETTING_CONVERTERS.items():
        if key not in data:
            continue
        try:
            _CURRENT_SETTINGS[key] = convert(data[key])
        except ValueError as exc:
            logger.warning("Ignoring setting %r in %s: %s", key, path, exc)


def save_settings(new_values: dict):
    # Merge and write to disk
    _CURRENT_SETTINGS.update({k: new_values[k] for k in _DEFAULT_SETTINGS if k in new_values})
    try:
        os.makedirs(_settings_dir(), exist_ok=True)
        with open(_settings_path(), "w", encoding="utf-8") as f:
            json.dump(_CURRENT_SETTINGS, f, indent=2)
    except OSError as exc:
        logger.warning("Could not write settings to %s: %s", _settings_path(), exc)


def _size_to_dims(size_name: str):
    size_name = (size_name or "Medium").capitalize()
    if size_name == "Small":
        return 75, 105
    if size_name == "Large":
        return 150, 210
    return 100, 140


def invalidate_card_caches():
    global _card_face_cache, _card_back_cache
    _card_face_cache = {}
    _card_back_cache = None


def apply_card_settings(size_name: str = None, back_color: str = None):
    global BACK_COLOR, CARD_W, CARD_H
    if size_name is not None:
        CARD_W, CARD_H = _size_to_dims(size_name)
    if back_color is not None:
        BACK_COLOR = back_color
    invalidate_card_caches()


# Load any persisted settings and apply now
load_settings()
BACK_COLOR = _CURRENT_SETTINGS["back_color"]


# ---------- Configuration ----------
SCREEN_W, SCREEN_H = 1280, 800
GREEN_TABLE = (2, 100, 40)
TABLE_BG = GREEN_TABLE

CARD_W, CARD_H = _size_to_dims(_CURRENT_SETTINGS.get("card_size", "Medium"))
CARD_RADIUS = 10

# Fonts are initialized via setup_fonts() AFTER pygame.init() in __main__.py
FONT_NAME = None
FONT_UI = None
FONT_TITLE = None
FONT_CORNER_RANK = None
FONT_CORNER_SUIT = None


def setup_fonts():
    global FONT_NAME, FONT_UI, FONT_TITLE, FONT_CORNER_RANK, FONT_CORNER_SUIT
    FONT_NAME = pygame.font.get_default_font()
    FONT_UI = pygame.font.SysFont(FONT_NAME, 26, bold=True)
    FONT_TITLE = pygame.font.SysFont(FONT_NAME, 44, bold=True)
    FONT_CORNER_RANK = pygame.font.SysFont(FONT_NAME, 28, bold=True)
    # Suit glyphs need a Unicode-capable font; fall back to the default one
    try:
        FONT_CORNER_SUIT = pygame.font.SysFont("Segoe UI Symbol", 26, bold=True)
    except (pygame.error, OSError):
        FONT_CORNER_SUIT = pygame.font.SysFont(FONT_NAME, 26, bold=True)


TOP_BAR_H = 60

# Colors
BLACK = (20, 20, 20)
WHITE = (245, 245, 245)
RED = (200, 20, 20)
GOLD = (230, 190, 80)
LIGHT = (220, 220, 220)

SUITS = ["♠", "♥", "♦", "♣"]  # 0..3
RANK_TO_TEXT = {1: "A", 11: "J", 12: "Q", 13: "K"}
for _r in range(2, 11):
    RANK_TO_TEXT[_r] = str(_r)


def is_red(suit):
    return suit in (1, 2)  # hearts, diamonds


# ---------- Cards ----------
class CardState(Enum):
    DRAWPILE = "drawpile"
    MINE = "mine"
    TARGET = "target"
    DISCARD = "discard"


class Card:
    """A playing card plus the pile bookkeeping the session keeps on it.

    ``layout_id`` and ``layout_slot`` are only set while the card sits in the
    mine; they name the tableau slot it was dealt into.
    """

    __slots__ = ("suit", "rank", "face_up", "state", "layout_id", "layout_slot")

    def __init__(self, suit, rank, face_up=False):
        self.suit = suit   # 0..3
        self.rank = rank   # 1..13
        self.face_up = face_up
        self.state = CardState.DRAWPILE
        self.layout_id: Optional[int] = None
        self.layout_slot = None

    def __repr__(self):
        return f"{RANK_TO_TEXT[self.rank]}{SUITS[self.suit]}{'↑' if self.face_up else '↓'}"


def make_deck(shuffle=True, rng: Optional[random.Random] = None):
    d = [Card(suit, rank, False) for suit in range(4) for rank in range(1, 14)]
    if shuffle:
        (rng or random).shuffle(d)
    return d


# ---------- Card surfaces ----------
_card_face_cache = {}
_card_back_cache = None


def back_fill_color():
    return BACK_COLORS.get(BACK_COLOR, BACK_COLORS["Blue"])


def get_card_surface(card):
    if not card.face_up:
        return get_back_surface()
    key = (card.suit, card.rank)
    if key in _card_face_cache:
        return _card_face_cache[key]
    surf = pygame.Surface((CARD_W, CARD_H), pygame.SRCALPHA)
    pygame.draw.rect(surf, WHITE, (0, 0, CARD_W, CARD_H), border_radius=CARD_RADIUS)
    pygame.draw.rect(surf, BLACK, (0, 0, CARD_W, CARD_H), width=3, border_radius=CARD_RADIUS)
    color = RED if is_red(card.suit) else BLACK
    margin = 10
    rtxt = FONT_CORNER_RANK.render(RANK_TO_TEXT[card.rank], True, color)
    stxt = FONT_CORNER_SUIT.render(SUITS[card.suit], True, color)
    surf.blit(rtxt, (margin, margin))
    surf.blit(stxt, (margin, margin + rtxt.get_height() - 2))
    r180 = pygame.transform.rotate(rtxt, 180)
    surf.blit(r180, (CARD_W - margin - r180.get_width(), CARD_H - margin - r180.get_height()))
    _card_face_cache[key] = surf
    return surf


def get_back_surface():
    global _card_back_cache
    if _card_back_cache is not None:
        return _card_back_cache
    surf = pygame.Surface((CARD_W, CARD_H), pygame.SRCALPHA)
    pygame.draw.rect(surf, WHITE, (0, 0, CARD_W, CARD_H), border_radius=CARD_RADIUS)
    pygame.draw.rect(surf, BLACK, (0, 0, CARD_W, CARD_H), width=3, border_radius=CARD_RADIUS)
    inset = 8
    inner_rect = pygame.Rect(inset, inset, CARD_W - 2 * inset, CARD_H - 2 * inset)
    pygame.draw.rect(surf, back_fill_color(), inner_rect, border_radius=8)
    for i in range(-CARD_H, CARD_W, 12):
        pygame.draw.line(surf, LIGHT, (i, 8), (i + CARD_H, CARD_H - 8), 1)
    _card_back_cache = surf
    return surf


# ---------- UI ----------
class Button:
    def __init__(self, text, x, y, w=140, h=40, center=False):
        self.text = text
        self.rect = pygame.Rect(0, 0, w, h)
        if center:
            self.rect.center = (x, y)
        else:
            self.rect.topleft = (x, y)

    def draw(self, screen, hover=False, enabled=True):
        col = GOLD if hover and enabled else ((200, 200, 200) if enabled else (140, 140, 140))
        pygame.draw.rect(screen, col, self.rect, border_radius=12)
        pygame.draw.rect(screen, BLACK, self.rect, 2, border_radius=12)
        t = FONT_UI.render(self.text, True, BLACK)
        screen.blit(t, (self.rect.centerx - t.get_width() // 2,
                        self.rect.centery - t.get_height() // 2))

    def hovered(self, mouse_pos):
        return self.rect.collidepoint(mouse_pos)


# ---------- Base Scene ----------
class Scene:
    def __init__(self, app):
        self.app = app
    def handle_event(self, e): pass
    def draw(self, screen): pass
    def draw_top_bar(self, screen, title, extra=""):
        pygame.draw.rect(screen, (0, 0, 0, 70), (0, 0, SCREEN_W, TOP_BAR_H))
        t = FONT_TITLE.render(title, True, WHITE)
        screen.blit(t, (20, 10))
        if extra:
            s = FONT_UI.render(extra, True, WHITE)
            screen.blit(s, (20, TOP_BAR_H - s.get_height() - 6))
