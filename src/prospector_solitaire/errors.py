"""Exceptions raised by the Prospector rules engine."""

from __future__ import annotations


class ProspectorError(Exception):
    """Base class for every error raised by the rules engine."""


class SchemaError(ProspectorError, ValueError):
    """The layout document is malformed or internally inconsistent."""


class DeckExhaustedError(ProspectorError):
    """The deck holds fewer cards than the layout needs for a deal."""

    def __init__(self, needed: int, available: int) -> None:
        super().__init__(f"Deal needs {needed} cards but the deck only has {available}")
        self.needed = needed
        self.available = available


class EmptyPileError(ProspectorError, IndexError):
    """A draw was attempted while the draw pile is empty."""


class InvalidTransitionError(ProspectorError):
    """A card was asked to move into a pile its current state does not allow."""
