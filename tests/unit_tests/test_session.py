import random
from typing import List

import pytest

from prospector_solitaire import common as C
from prospector_solitaire.errors import DeckExhaustedError, EmptyPileError, InvalidTransitionError
from prospector_solitaire.layout import load_layout, parse_layout
from prospector_solitaire.session import Placement, ProspectorSession, SessionListener

# Row0 holds slots 3 and 7; Row1 holds slot 1.
COLUMN_LAYOUT = """
<xml>
  <multiplier x="2" y="1" />
  <slot id="3" x="0" y="0" faceup="1" layer="0" />
  <slot id="7" x="0" y="1" faceup="1" layer="0" />
  <slot id="1" x="3" y="0" faceup="1" layer="1" />
  <slot type="drawpile" x="5" y="-3" xstagger="0.5" layer="5" />
  <slot type="discardpile" x="-1" y="-3" layer="4" />
</xml>
"""

# Slot 0 sits under slots 1 and 2.
COVER_LAYOUT = """
<xml>
  <multiplier x="1" y="1" />
  <slot id="0" x="0" y="1" faceup="0" layer="0" hiddenby="1,2" />
  <slot id="1" x="-1" y="0" faceup="1" layer="1" />
  <slot id="2" x="1" y="0" faceup="1" layer="2" />
  <slot type="drawpile" x="4" y="-3" xstagger="0.1" layer="5" />
  <slot type="discardpile" x="0" y="-3" layer="4" />
</xml>
"""


def _deck(*ranks: int) -> List[C.Card]:
    return [C.Card(i % 4, r) for i, r in enumerate(ranks)]


def _snapshot(session: ProspectorSession):
    return (
        [id(c) for c in session.draw_pile],
        {k: id(c) for k, c in session.mine.items()},
        id(session.target),
        [id(c) for c in session.discard_pile],
        [(c.state, c.face_up) for c in session.all_cards()],
    )


def _assert_partition(session: ProspectorSession, total: int):
    cards = session.all_cards()
    assert len(cards) == total
    assert len({id(c) for c in cards}) == total
    assert all(c.state is C.CardState.DRAWPILE for c in session.draw_pile)
    assert all(c.state is C.CardState.MINE for c in session.mine.values())
    assert all(c.state is C.CardState.DISCARD for c in session.discard_pile)
    assert session.target is not None and session.target.state is C.CardState.TARGET
    for slot_id, card in session.mine.items():
        assert card.layout_id == slot_id


class RecordingListener(SessionListener):
    def __init__(self):
        self.session = None
        self.events = []

    def card_placed(self, card, placement):
        self.events.append(("place", card, placement, len(self.session.mine)))

    def card_flipped(self, card, face_up):
        self.events.append(("flip", card, face_up, len(self.session.mine)))


# ---------- Deal ----------
def test_deal_fills_every_slot_and_one_target():
    layout = load_layout()
    session = ProspectorSession(layout)
    deck = C.make_deck(rng=random.Random(7))
    session.deal(deck)

    assert len(session.mine) == 28
    assert len(session.draw_pile) == 52 - 28 - 1
    assert len(session.discard_pile) == 0
    assert session.target is deck[28]
    assert [session.mine[sd.id] for sd in layout.slot_defs] == deck[:28]
    _assert_partition(session, 52)


def test_deal_reveals_only_uncovered_cards():
    session = ProspectorSession(load_layout())
    session.deal(C.make_deck(rng=random.Random(3)))
    face_up = sorted(i for i, c in session.mine.items() if c.face_up)
    assert face_up == list(range(18, 28))
    assert all(not c.face_up for c in session.draw_pile)
    assert session.target.face_up


def test_top_cards_after_deal():
    session = ProspectorSession(load_layout())
    session.deal(C.make_deck(rng=random.Random(11)))
    assert {col: c.layout_id for col, c in session.top_card.items()} == {
        "Row0": 2, "Row1": 8, "Row2": 17, "Row3": 27,
    }


def test_deal_requires_enough_cards():
    session = ProspectorSession(load_layout())
    with pytest.raises(DeckExhaustedError) as info:
        session.deal(C.make_deck()[:28])
    assert info.value.needed == 29
    assert session.mine == {} and session.target is None


def test_deal_rejects_a_card_listed_twice():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT))
    deck = _deck(6, 9, 2, 5, 11)
    deck.append(deck[0])
    with pytest.raises(InvalidTransitionError):
        session.deal(deck)
    assert session.mine == {} and session.target is None
    assert len(session.draw_pile) == 0
    assert all(c.state is C.CardState.DRAWPILE for c in deck)


def test_deal_with_exactly_enough_cards_leaves_empty_draw_pile():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT))
    session.deal(_deck(6, 9, 2, 5))
    assert not session.can_draw()
    assert session.target.rank == 5


def test_restart_replays_the_same_deal():
    session = ProspectorSession(load_layout())
    session.new_game(rng=random.Random(21))
    before = {k: (c.suit, c.rank) for k, c in session.mine.items()}
    target = (session.target.suit, session.target.rank)
    session.on_card_selected(session.draw_pile.peek())
    session.restart()
    assert {k: (c.suit, c.rank) for k, c in session.mine.items()} == before
    assert (session.target.suit, session.target.rank) == target
    assert len(session.discard_pile) == 0


# ---------- Selection ----------
def test_only_top_of_column_can_be_taken():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT), use_occlusion=False)
    deck = _deck(6, 9, 2, 5, 11, 12)
    session.deal(deck)
    low = session.mine[3]
    assert session.top_card["Row0"] is session.mine[7]
    assert low.face_up and low.rank == 6 and session.target.rank == 5

    before = _snapshot(session)
    assert session.on_card_selected(low) is False
    assert _snapshot(session) == before


def test_matching_top_card_becomes_target():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT), use_occlusion=False)
    session.deal(_deck(1, 9, 6, 5, 11))
    old_target = session.target
    card = session.mine[1]

    assert session.on_card_selected(card) is True
    assert 1 not in session.mine
    assert session.target is card
    assert card.state is C.CardState.TARGET and card.face_up
    assert card.layout_id is None and card.layout_slot is None
    assert session.discard_pile.peek() is old_target
    assert old_target.state is C.CardState.DISCARD
    assert "Row1" not in session.top_card
    _assert_partition(session, 5)


def test_face_down_card_is_rejected():
    layout = parse_layout(COLUMN_LAYOUT.replace('id="1" x="3" y="0" faceup="1"', 'id="1" x="3" y="0" faceup="0"'))
    session = ProspectorSession(layout, use_occlusion=False)
    session.deal(_deck(1, 9, 6, 5, 11))
    card = session.mine[1]
    assert not card.face_up

    before = _snapshot(session)
    assert session.on_card_selected(card) is False
    assert _snapshot(session) == before


def test_non_adjacent_card_is_rejected():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT))
    session.deal(_deck(1, 9, 8, 5, 11))
    before = _snapshot(session)
    assert session.on_card_selected(session.mine[1]) is False
    assert _snapshot(session) == before


def test_wraparound_is_optional():
    plain = ProspectorSession(parse_layout(COLUMN_LAYOUT))
    plain.deal(_deck(1, 9, 13, 1, 11))
    assert plain.on_card_selected(plain.mine[1]) is False

    wrapping = ProspectorSession(parse_layout(COLUMN_LAYOUT), wrap_ak=True)
    wrapping.deal(_deck(1, 9, 13, 1, 11))
    assert wrapping.on_card_selected(wrapping.mine[1]) is True


def test_draw_pile_click_turns_next_target():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT))
    deck = _deck(1, 9, 6, 5, 11, 12)
    session.deal(deck)
    old_target = session.target

    # Any draw-pile card turns the front card
    assert session.on_card_selected(deck[5]) is True
    assert session.target is deck[4]
    assert session.discard_pile.cards == [old_target]
    assert list(session.draw_pile) == [deck[5]]
    _assert_partition(session, 6)


def test_empty_draw_pile_raises_without_mutation():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT))
    session.deal(_deck(6, 9, 2, 5))
    stray = C.Card(3, 4)
    before = _snapshot(session)
    with pytest.raises(EmptyPileError):
        session.on_card_selected(stray)
    assert _snapshot(session) == before
    with pytest.raises(IndexError):
        session.draw()


def test_target_and_discard_clicks_do_nothing():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT))
    session.deal(_deck(1, 9, 6, 5, 11))
    first_target = session.target
    session.on_card_selected(session.mine[1])
    before = _snapshot(session)
    assert session.on_card_selected(session.target) is False
    assert session.on_card_selected(first_target) is False
    assert _snapshot(session) == before


def test_mining_a_cover_reveals_the_card_beneath():
    session = ProspectorSession(parse_layout(COVER_LAYOUT))
    session.deal(_deck(10, 6, 7, 5, 2))
    hidden = session.mine[0]
    assert not hidden.face_up

    assert session.on_card_selected(session.mine[1])
    assert not hidden.face_up
    assert session.on_card_selected(session.mine[2])
    assert hidden.face_up

    session.refresh_face_ups()
    assert hidden.face_up


def test_occlusion_can_be_switched_off():
    session = ProspectorSession(parse_layout(COVER_LAYOUT), use_occlusion=False)
    session.deal(_deck(10, 6, 7, 5, 2))
    session.on_card_selected(session.mine[1])
    session.on_card_selected(session.mine[2])
    assert not session.mine[0].face_up
    assert session.is_stuck() is False  # the draw pile still has a card


def test_refresh_face_ups_is_idempotent():
    session = ProspectorSession(load_layout())
    session.deal(C.make_deck(rng=random.Random(5)))
    session.refresh_face_ups()
    first = {k: c.face_up for k, c in session.mine.items()}
    session.refresh_face_ups()
    assert {k: c.face_up for k, c in session.mine.items()} == first


# ---------- Transitions ----------
def test_discarding_twice_is_an_error():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT))
    session.deal(_deck(1, 9, 6, 5, 11))
    old_target = session.target
    session.on_card_selected(session.mine[1])
    with pytest.raises(InvalidTransitionError):
        session.move_to_discard(old_target)


def test_mine_card_cannot_skip_to_discard_or_target():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT))
    session.deal(_deck(1, 9, 6, 5, 11))
    with pytest.raises(InvalidTransitionError):
        session.move_to_discard(session.mine[1])
    with pytest.raises(InvalidTransitionError):
        session.move_to_target(session.mine[1])
    with pytest.raises(InvalidTransitionError):
        session.move_to_target(session.target)


def test_drawn_card_can_be_moved_to_target():
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT))
    session.deal(_deck(1, 9, 6, 5, 11))
    with pytest.raises(InvalidTransitionError):
        session.move_to_target(session.draw_pile.peek())
    card = session.draw()
    session.move_to_target(card)
    assert session.target is card
    assert len(session.discard_pile) == 1


# ---------- Listener ----------
def test_listener_sees_only_completed_moves():
    listener = RecordingListener()
    session = ProspectorSession(parse_layout(COVER_LAYOUT), listener=listener)
    listener.session = session
    session.deal(_deck(10, 6, 7, 5, 2))
    assert all(ev[3] == 3 for ev in listener.events)

    listener.events.clear()
    session.on_card_selected(session.mine[1])
    session.on_card_selected(session.mine[2])
    kinds = [(ev[0], ev[3]) for ev in listener.events]
    assert ("flip", 1) in kinds
    placed = [ev for ev in listener.events if ev[0] == "place"]
    assert placed[-1][2].sorting_layer == "Target"
    # Events from the first selection arrive when one card has left the mine
    assert all(ev[3] in (2, 1) for ev in listener.events)


def test_placements_follow_the_layout():
    listener = RecordingListener()
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT), listener=listener)
    listener.session = session
    deck = _deck(1, 9, 6, 5, 11, 12)
    session.deal(deck)
    final = {}
    for kind, card, value, _ in listener.events:
        if kind == "place":
            final[id(card)] = value

    assert final[id(deck[1])] == Placement(0.0, 1.0, -0.0, "Row0", 7)
    assert final[id(deck[2])] == Placement(6.0, 0.0, -1.0, "Row1", 1)
    assert final[id(deck[3])] == Placement(-2.0, -3.0, 0.0, "Target", 0)
    assert final[id(deck[4])] == Placement(10.0, -3.0, 0.0, "Draw", 0)
    assert final[id(deck[5])] == Placement(10.5, -3.0, pytest.approx(0.1), "Draw", -10)

    listener.events.clear()
    session.on_card_selected(deck[4])
    discard = [ev[2] for ev in listener.events if ev[0] == "place" and ev[1] is deck[3]]
    assert discard == [Placement(-2.0, -3.0, 0.0, "Discard", -197)]


def test_failed_selection_emits_nothing():
    listener = RecordingListener()
    session = ProspectorSession(parse_layout(COLUMN_LAYOUT), listener=listener)
    listener.session = session
    session.deal(_deck(6, 9, 2, 5))
    listener.events.clear()
    with pytest.raises(EmptyPileError):
        session.on_card_selected(C.Card(0, 3))
    assert listener.events == []


# ---------- Full games ----------
@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
def test_random_play_keeps_cards_partitioned(seed):
    rng = random.Random(seed)
    session = ProspectorSession(load_layout(), wrap_ak=bool(seed % 2))
    session.new_game(rng=rng)
    _assert_partition(session, 52)

    for _ in range(500):
        if not session.any_moves_available():
            break
        playable = session.playable_cards()
        if playable and rng.random() < 0.8:
            card = rng.choice(playable)
        elif session.can_draw():
            card = session.draw_pile.peek()
        else:
            card = rng.choice(session.all_cards())
        was_mine = card.state is C.CardState.MINE
        mine_before = len(session.mine)
        moved = session.on_card_selected(card)
        if moved and was_mine:
            assert len(session.mine) == mine_before - 1
            assert session.target is card
        _assert_partition(session, 52)
        assert len(session.discard_pile) + len(session.mine) + len(session.draw_pile) == 51

    assert session.is_cleared() or session.is_stuck()
