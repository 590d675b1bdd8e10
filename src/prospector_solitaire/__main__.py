# __main__.py - entry point
import os
import random
import logging

import pygame

from prospector_solitaire import common as C
from prospector_solitaire.errors import ProspectorError
from prospector_solitaire.layout import load_layout
from prospector_solitaire.modes.prospector import ProspectorGameScene

logger = logging.getLogger(__name__)


def _initial_window_size():
    info = pygame.display.Info()
    # Keep a safety margin so the window never hides under taskbar
    margin_w, margin_h = 120, 140
    w = min(C.SCREEN_W, max(640, info.current_w - margin_w))
    h = min(C.SCREEN_H, max(480, info.current_h - margin_h))
    return w, h


def _setup_logging():
    level = os.environ.get("PROSPECTOR_LOG_LEVEL", "WARNING").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main():
    _setup_logging()
    settings = C.get_current_settings()

    # Developer overrides via environment
    layout_path = os.environ.get("PROSPECTOR_LAYOUT", "").strip() or settings.get("layout_path")
    seed = os.environ.get("PROSPECTOR_SEED", "").strip()
    card_size = os.environ.get("PROSPECTOR_CARD_SIZE", "").strip().capitalize()

    try:
        layout = load_layout(layout_path)
    except ProspectorError as exc:
        logger.error("Cannot start Prospector: %s", exc)
        return 1
    rng = random.Random(int(seed)) if seed.lstrip("-").isdigit() else None

    os.environ.setdefault("SDL_VIDEO_CENTERED", "1")
    pygame.init()
    w, h = _initial_window_size()
    C.SCREEN_W, C.SCREEN_H = w, h
    screen = pygame.display.set_mode((w, h), pygame.RESIZABLE)
    pygame.display.set_caption("Prospector")
    C.setup_fonts()
    if card_size in C.CARD_SIZES:
        C.apply_card_settings(size_name=card_size)
    clock = pygame.time.Clock()

    try:
        scene = ProspectorGameScene(app=None, layout=layout, rng=rng)
    except ProspectorError as exc:
        logger.error("Cannot deal: %s", exc)
        pygame.quit()
        return 1

    running = True
    while running:
        clock.tick(60)
        for e in pygame.event.get():
            if e.type == pygame.QUIT:
                running = False
            elif e.type == pygame.VIDEORESIZE:
                C.SCREEN_W, C.SCREEN_H = e.size
                screen = pygame.display.set_mode((C.SCREEN_W, C.SCREEN_H), pygame.RESIZABLE)
                scene.compute_layout()
            else:
                scene.handle_event(e)
        scene.draw(screen)
        pygame.display.flip()
    pygame.quit()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
