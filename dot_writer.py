"""
DOT export (Graphviz).
Places are circles labelled with their marking, transitions are boxes.
"""

from pn_model import PetriNet


def _marking_label(tokens: int) -> str:
    if tokens == 0:
        return ""
    if tokens == 1:
        return "•"
    return str(tokens)


def net_to_dot(net: PetriNet) -> str:
    lines = ["digraph petrinet {"]
    for p in net.sorted_places():
        lines.append(
            f'    {p.id} [shape="circle" xlabel="{p.name}" label="{_marking_label(p.init_tokens)}"];'
        )
    for t in net.sorted_transitions():
        lines.append(f'    {t.id} [shape="box" xlabel="" label="{t.name}"];')
    for a in net.sorted_arcs():
        if a.weight == 1:
            lines.append(f"    {a.source} -> {a.target};")
        else:
            lines.append(f'    {a.source} -> {a.target} [label="{a.weight}"];')
    lines.append("}")
    return "\n".join(lines) + "\n"


def write_dot(net: PetriNet, path: str) -> None:
    """Write Petri net to a DOT file."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(net_to_dot(net))
