"""Tableau layout documents.

A layout describes where the mine cards go, which slots cover which, and
where the draw and discard piles sit.  Two textual forms are accepted and
produce the same :class:`Layout`:

XML::

    <xml>
      <multiplier x="1.25" y="1.5" />
      <slot id="0" x="-6" y="2.5" faceup="0" layer="0" hiddenby="3,4" />
      <slot type="drawpile" x="6" y="-4" xstagger="0.15" layer="5" />
      <slot type="discardpile" x="0" y="-4" layer="4" />
    </xml>

JSON::

    {"multiplier": {"x": 1.25, "y": 1.5},
     "slots": [{"id": 0, "x": -6, "y": 2.5, "layer": 0, "hiddenby": [3, 4]}, ...]}
"""

from __future__ import annotations

import json
import logging
import math
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Tuple

from prospector_solitaire.errors import SchemaError

logger = logging.getLogger(__name__)

# Layer ids in a layout document index into this list.
SORTING_LAYER_NAMES: Tuple[str, ...] = ("Row0", "Row1", "Row2", "Row3", "Discard", "Draw")

SLOT_TYPES = ("slot", "drawpile", "discardpile")

DEFAULT_LAYOUT_PATH = os.path.join(os.path.dirname(__file__), "assets", "layout.xml")


@dataclass(frozen=True)
class SlotDef:
    """One declared position from a layout document."""

    x: float
    y: float
    layer_id: int
    layer_name: str
    type: str = "slot"
    face_up: bool = False
    id: Optional[int] = None
    hidden_by: Tuple[int, ...] = ()
    x_stagger: float = 0.0


@dataclass(frozen=True)
class Layout:
    """Parsed, immutable layout: the tableau slots plus both pile anchors."""

    multiplier: Tuple[float, float]
    slot_defs: Tuple[SlotDef, ...]
    draw_pile: SlotDef
    discard_pile: SlotDef

    def slot_by_id(self, slot_id: int) -> SlotDef:
        for sd in self.slot_defs:
            if sd.id == slot_id:
                return sd
        raise KeyError(slot_id)

    def columns(self) -> Tuple[str, ...]:
        """Layer names used by tableau slots, in first-seen order."""

        seen: List[str] = []
        for sd in self.slot_defs:
            if sd.layer_name not in seen:
                seen.append(sd.layer_name)
        return tuple(seen)


# ---------- attribute helpers ----------
def _describe(attrs: Mapping[str, Any], index: int) -> str:
    if "id" in attrs:
        return f"record {index} (id={attrs['id']})"
    return f"record {index}"


def _required(attrs: Mapping[str, Any], key: str, where: str) -> Any:
    value = attrs.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise SchemaError(f"{where}: missing required attribute '{key}'")
    return value


def _as_float(value: Any, key: str, where: str) -> float:
    if isinstance(value, bool):
        raise SchemaError(f"{where}: attribute '{key}' must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"{where}: attribute '{key}' must be a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise SchemaError(f"{where}: attribute '{key}' must be a finite number, got {value!r}")
    return number


def _as_int(value: Any, key: str, where: str) -> int:
    if isinstance(value, bool):
        raise SchemaError(f"{where}: attribute '{key}' must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise SchemaError(f"{where}: attribute '{key}' must be an integer, got {value!r}") from exc


def _as_flag(value: Any, key: str, where: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip()
    if text in ("0", "1"):
        return text == "1"
    raise SchemaError(f"{where}: attribute '{key}' must be 0 or 1, got {value!r}")


def _as_id_list(value: Any, key: str, where: str) -> Tuple[int, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        parts = list(value)
    else:
        text = str(value).strip()
        if not text:
            return ()
        parts = text.split(",")
    return tuple(_as_int(p, key, where) for p in parts)


def _layer(attrs: Mapping[str, Any], where: str) -> Tuple[int, str]:
    layer_id = _as_int(_required(attrs, "layer", where), "layer", where)
    if not 0 <= layer_id < len(SORTING_LAYER_NAMES):
        raise SchemaError(
            f"{where}: layer {layer_id} is out of range 0..{len(SORTING_LAYER_NAMES) - 1}"
        )
    return layer_id, SORTING_LAYER_NAMES[layer_id]


def _build_slot(attrs: Mapping[str, Any], index: int) -> SlotDef:
    where = _describe(attrs, index)
    slot_type = attrs.get("type") or "slot"
    if slot_type not in SLOT_TYPES:
        raise SchemaError(f"{where}: unknown slot type {slot_type!r}")
    x = _as_float(_required(attrs, "x", where), "x", where)
    y = _as_float(_required(attrs, "y", where), "y", where)
    layer_id, layer_name = _layer(attrs, where)

    if slot_type == "slot":
        return SlotDef(
            x=x,
            y=y,
            layer_id=layer_id,
            layer_name=layer_name,
            type="slot",
            face_up=_as_flag(attrs.get("faceup"), "faceup", where),
            id=_as_int(_required(attrs, "id", where), "id", where),
            hidden_by=_as_id_list(attrs.get("hiddenby"), "hiddenby", where),
        )
    if slot_type == "drawpile":
        stagger = _as_float(_required(attrs, "xstagger", where), "xstagger", where)
        return SlotDef(x=x, y=y, layer_id=layer_id, layer_name=layer_name,
                       type="drawpile", x_stagger=stagger)
    return SlotDef(x=x, y=y, layer_id=layer_id, layer_name=layer_name, type="discardpile")


def _check_references(slot_defs: List[SlotDef]) -> None:
    ids = set()
    for sd in slot_defs:
        if sd.id in ids:
            raise SchemaError(f"duplicate slot id {sd.id}")
        ids.add(sd.id)
    for sd in slot_defs:
        for cover in sd.hidden_by:
            if cover == sd.id:
                raise SchemaError(f"slot {sd.id} lists itself in hiddenby")
            if cover not in ids:
                raise SchemaError(f"slot {sd.id} is hidden by unknown slot {cover}")


def _assemble(multiplier: Optional[Mapping[str, Any]], records: List[Mapping[str, Any]]) -> Layout:
    if multiplier is None:
        raise SchemaError("layout has no multiplier record")
    mult = (
        _as_float(_required(multiplier, "x", "multiplier"), "x", "multiplier"),
        _as_float(_required(multiplier, "y", "multiplier"), "y", "multiplier"),
    )

    slot_defs: List[SlotDef] = []
    draw_pile: Optional[SlotDef] = None
    discard_pile: Optional[SlotDef] = None
    for index, attrs in enumerate(records):
        sd = _build_slot(attrs, index)
        if sd.type == "slot":
            slot_defs.append(sd)
        elif sd.type == "drawpile":
            if draw_pile is not None:
                raise SchemaError("layout declares more than one drawpile")
            draw_pile = sd
        else:
            if discard_pile is not None:
                raise SchemaError("layout declares more than one discardpile")
            discard_pile = sd

    if draw_pile is None:
        raise SchemaError("layout has no drawpile record")
    if discard_pile is None:
        raise SchemaError("layout has no discardpile record")
    _check_references(slot_defs)

    return Layout(
        multiplier=mult,
        slot_defs=tuple(slot_defs),
        draw_pile=draw_pile,
        discard_pile=discard_pile,
    )


# ---------- document readers ----------
def _parse_xml(text: str) -> Layout:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise SchemaError(f"layout is not well-formed XML: {exc}") from exc
    mult_el = root.find("multiplier")
    multiplier = dict(mult_el.attrib) if mult_el is not None else None
    records = [dict(el.attrib) for el in root.iter("slot")]
    return _assemble(multiplier, records)


def _parse_json(text: str) -> Layout:
    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise SchemaError(f"layout is not valid JSON: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise SchemaError("JSON layout must be an object with 'multiplier' and 'slots'")
    multiplier = raw.get("multiplier")
    if multiplier is not None and not isinstance(multiplier, Mapping):
        raise SchemaError("JSON layout 'multiplier' must be an object")
    slots = raw.get("slots", [])
    if not isinstance(slots, list) or not all(isinstance(s, Mapping) for s in slots):
        raise SchemaError("JSON layout 'slots' must be a list of objects")
    return _assemble(multiplier, slots)


def parse_layout(document: str) -> Layout:
    """Parse an XML or JSON layout document into a :class:`Layout`.

    Raises :class:`SchemaError` for any malformed or inconsistent input.
    """

    text = document.lstrip()
    if not text:
        raise SchemaError("layout document is empty")
    layout = _parse_json(text) if text[0] in "{[" else _parse_xml(text)
    logger.debug(
        "Parsed layout: %d slots across %s", len(layout.slot_defs), ", ".join(layout.columns())
    )
    return layout


@lru_cache()
def load_layout(path: Optional[str] = None) -> Layout:
    """Read and parse a layout file; the bundled layout when ``path`` is None."""

    path = path or DEFAULT_LAYOUT_PATH
    try:
        with open(path, "r", encoding="utf-8") as fh:
            text = fh.read()
    except OSError as exc:
        raise SchemaError(f"cannot read layout file {path}: {exc}") from exc
    return parse_layout(text)


def layout_summary(layout: Layout) -> Dict[str, int]:
    """Slot count per column, handy for status lines and logs."""

    counts: Dict[str, int] = {}
    for sd in layout.slot_defs:
        counts[sd.layer_name] = counts.get(sd.layer_name, 0) + 1
    return counts
