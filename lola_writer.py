"""
LoLA export: the low level net format of the LoLA model checker.

    PLACE
        A,
        B;

    MARKING
        A : 1;

    TRANSITION T
      CONSUME
        A : 1;
      PRODUCE
        B : 1;
"""

from pn_model import PetriNet


def _weighted_list(weights: dict[str, int], indent: str) -> str:
    """`A : 1,\\nB : 2;` with every entry on its own line, or just `;` when empty."""
    if not weights:
        return ";"
    entries = [f"{indent}{node} : {weight}" for node, weight in sorted(weights.items())]
    return "\n" + ",\n".join(entries) + ";"


def net_to_lola(net: PetriNet) -> str:
    places = [p.id for p in net.sorted_places()]
    parts = []
    if places:
        parts.append("PLACE\n" + ",\n".join(f"    {p}" for p in places) + ";\n")
    else:
        parts.append("PLACE;\n")
    marking = {p.id: p.init_tokens for p in net.sorted_places() if p.init_tokens > 0}
    parts.append("MARKING" + _weighted_list(marking, "    ") + "\n")
    for t in net.sorted_transitions():
        consume = _weighted_list(net.preset(t.id), "    ")
        produce = _weighted_list(net.postset(t.id), "    ")
        parts.append(f"TRANSITION {t.id}\n  CONSUME{consume}\n  PRODUCE{produce}\n")
    return "\n".join(parts)


def write_lola(net: PetriNet, path: str) -> None:
    """Write Petri net to a LoLA file."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(net_to_lola(net))
