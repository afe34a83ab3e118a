"""
PNML import: reads back the PTNet files written by pnml_writer.
Place and transition kinds are not stored in PNML; read nets use the defaults.
"""

import xml.etree.ElementTree as ET
from typing import Optional

from pn_errors import InternalError
from pn_model import PetriNet


class PnmlFormatError(ValueError):
    """The document is not a PTNet PNML file."""


def _local(tag: str) -> str:
    """`{namespace}place` -> `place`."""
    return tag.rsplit("}", 1)[-1]


def _children(elem: ET.Element, tag: str) -> list[ET.Element]:
    return [child for child in elem if _local(child.tag) == tag]


def _text(elem: ET.Element, tag: str) -> Optional[str]:
    for child in _children(elem, tag):
        for text in _children(child, "text"):
            return (text.text or "").strip()
    return None


def _int_text(elem: ET.Element, tag: str, default: int) -> int:
    value = _text(elem, tag)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise PnmlFormatError(f"<{tag}> of `{elem.get('id')}` is not an integer: {value!r}") from None


def pnml_to_net(text: str) -> PetriNet:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise PnmlFormatError(f"invalid XML: {e}") from e
    if _local(root.tag) != "pnml":
        raise PnmlFormatError(f"root element is <{_local(root.tag)}>, expected <pnml>")
    nets = _children(root, "net")
    if not nets:
        raise PnmlFormatError("no <net> element")
    # Nodes may sit directly in the net or in its pages.
    containers = [nets[0]] + _children(nets[0], "page")

    net = PetriNet()
    arcs: list[ET.Element] = []
    try:
        for container in containers:
            for p in _children(container, "place"):
                net.add_place(p.get("id"), init_tokens=_int_text(p, "initialMarking", 0))
            for t in _children(container, "transition"):
                net.add_transition(t.get("id"))
            arcs.extend(_children(container, "arc"))
        for a in arcs:
            source, target = a.get("source"), a.get("target")
            weight = _int_text(a, "inscription", 1)
            if net.place_by_id(source) is not None:
                net.add_arc_place_transition(source, target, weight)
            else:
                net.add_arc_transition_place(source, target, weight)
    except InternalError as e:
        raise PnmlFormatError(str(e)) from e
    return net


def read_pnml(path: str) -> PetriNet:
    """Read a Petri net from a PNML file."""
    with open(path, encoding="utf-8") as f:
        return pnml_to_net(f.read())
