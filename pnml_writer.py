"""
PNML export for mir2petri.
PTNet format, pnml.org 2009 grammar.
Uses xml.etree.ElementTree (standard library).
"""

import xml.etree.ElementTree as ET

from pn_model import PetriNet

PNML_NS = "http://www.pnml.org/version-2009/grammar/pnml"
PTNET_TYPE = "http://www.pnml.org/version-2009/grammar/ptnet"
XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'


def _add_text(parent: ET.Element, tag: str, text: str) -> None:
    """<tag><text>...</text></tag>"""
    elem = ET.SubElement(parent, tag)
    ET.SubElement(elem, "text").text = text


def net_to_pnml(net: PetriNet) -> str:
    root = ET.Element("pnml", {"xmlns": PNML_NS})
    net_elem = ET.SubElement(root, "net", {"id": "net0", "type": PTNET_TYPE})
    page = ET.SubElement(net_elem, "page", {"id": "page0"})

    for p in net.sorted_places():
        place_elem = ET.SubElement(page, "place", {"id": p.id})
        _add_text(place_elem, "name", p.name)
        if p.init_tokens > 0:
            _add_text(place_elem, "initialMarking", str(p.init_tokens))

    for t in net.sorted_transitions():
        trans_elem = ET.SubElement(page, "transition", {"id": t.id})
        _add_text(trans_elem, "name", t.name)

    for a in net.sorted_arcs():
        arc_elem = ET.SubElement(page, "arc", {"source": a.source, "target": a.target, "id": a.id})
        _add_text(arc_elem, "name", a.id)
        _add_text(arc_elem, "inscription", str(a.weight))

    _indent(root)
    root.tail = None
    return XML_DECLARATION + ET.tostring(root, encoding="unicode")


def write_pnml(net: PetriNet, path: str) -> None:
    """Write Petri net to PNML file (PTNet 2009)."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(net_to_pnml(net))


def _indent(elem: ET.Element, level: int = 0) -> None:
    """Pretty-print indentation."""
    i = "\n" + level * "  "
    if len(elem):
        if not elem.text or not elem.text.strip():
            elem.text = i + "  "
        if not elem.tail or not elem.tail.strip():
            elem.tail = i
        for child in elem:
            _indent(child, level + 1)
        if not child.tail or not child.tail.strip():
            child.tail = i
    else:
        if level and (not elem.tail or not elem.tail.strip()):
            elem.tail = i
