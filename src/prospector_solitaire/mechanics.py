"""Pure rules helpers: the match rule, the top-card index and occlusion.

Nothing here mutates a card; the session applies the results.
"""

from __future__ import annotations

from typing import Dict, Iterable, Mapping

from prospector_solitaire import common as C


def rank_adjacent(a: int, b: int, wrap: bool = False) -> bool:
    # ranks 1..13 (A..K); adjacent if +/- 1, or A<->K when wrapping
    if a == b:
        return False
    if abs(a - b) == 1:
        return True
    return wrap and {a, b} == {1, 13}


def cards_adjacent(a: C.Card, b: C.Card, wrap: bool = False) -> bool:
    return rank_adjacent(a.rank, b.rank, wrap)


def top_cards(mine_cards: Iterable[C.Card]) -> Dict[str, C.Card]:
    """Map each column (layer name) to its reachable card.

    The reachable card in a column is the one dealt into the highest slot id,
    which is the one physically on top.
    """

    top: Dict[str, C.Card] = {}
    for card in mine_cards:
        col = card.layout_slot.layer_name
        cur = top.get(col)
        if cur is None or card.layout_id > cur.layout_id:
            top[col] = card
    return top


def compute_face_ups(mine: Mapping[int, C.Card]) -> Dict[int, bool]:
    """Return slot id -> face-up for every card still in the mine.

    A card is face-up once none of the slots listed in its ``hidden_by``
    still hold a mine card.
    """

    return {
        slot_id: not any(cover in mine for cover in card.layout_slot.hidden_by)
        for slot_id, card in mine.items()
    }
