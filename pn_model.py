"""
Petri net data structures for mir2petri.
Bipartite graph: Place <-> Transition only.
The net is append-only: places, transitions and arcs are never removed.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from pn_errors import InternalError


@dataclass
class Place:
    """Place in the Petri net."""
    id: str
    name: str
    kind: str = "cfg"  # cfg, mutex, condvar, thread, program
    init_tokens: int = 0


@dataclass
class Transition:
    """Transition in the Petri net."""
    id: str
    name: str
    kind: str = "cfg"  # cfg, call, lock, unlock, wait, notify, spawn, join, condvar
    op: Optional[str] = None


@dataclass
class Arc:
    """Arc between place and transition (bipartite: place->transition or transition->place)."""
    id: str
    source: str
    target: str
    weight: int = 1


@dataclass
class PetriNet:
    """Petri net with places, transitions, arcs, and optional warnings."""
    places: list[Place] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    arcs: list[Arc] = field(default_factory=list)
    initial_marking: dict[str, int] = field(default_factory=dict)
    warnings: list[dict[str, Any]] = field(default_factory=list)
    _place_index: dict[str, Place] = field(default_factory=dict, repr=False, compare=False)
    _transition_index: dict[str, Transition] = field(default_factory=dict, repr=False, compare=False)
    _arc_index: dict[tuple[str, str], Arc] = field(default_factory=dict, repr=False, compare=False)
    _incoming: dict[str, list[Arc]] = field(default_factory=dict, repr=False, compare=False)
    _outgoing: dict[str, list[Arc]] = field(default_factory=dict, repr=False, compare=False)

    def add_place(self, label: str, kind: str = "cfg", init_tokens: int = 0) -> str:
        """Add a place and return its label, which is also its reference."""
        if label in self._place_index or label in self._transition_index:
            raise InternalError(f"BUG: label `{label}` is already used in the net")
        place = Place(id=label, name=label, kind=kind)
        self.places.append(place)
        self._place_index[label] = place
        if init_tokens:
            self.add_token(label, init_tokens)
        return label

    def add_transition(self, label: str, kind: str = "cfg", op: Optional[str] = None) -> str:
        """Add a transition and return its label, which is also its reference."""
        if label in self._place_index or label in self._transition_index:
            raise InternalError(f"BUG: label `{label}` is already used in the net")
        transition = Transition(id=label, name=label, kind=kind, op=op)
        self.transitions.append(transition)
        self._transition_index[label] = transition
        return label

    def add_token(self, place: str, tokens: int = 1) -> None:
        """Add initial tokens to a place."""
        if place not in self._place_index:
            raise InternalError(f"BUG: cannot mark unknown place `{place}`")
        if tokens < 0:
            raise InternalError(f"BUG: negative token count {tokens} for `{place}`")
        p = self._place_index[place]
        p.init_tokens += tokens
        if p.init_tokens > 0:
            self.initial_marking[place] = p.init_tokens

    def add_arc_place_transition(self, place: str, transition: str, weight: int = 1) -> None:
        """Add an arc from a place to a transition. An existing arc gains `weight`."""
        if place not in self._place_index or transition not in self._transition_index:
            raise InternalError(
                f"BUG: Adding an arc from `{place}` to `{transition}` should not fail"
            )
        self._add_arc(place, transition, weight)

    def add_arc_transition_place(self, transition: str, place: str, weight: int = 1) -> None:
        """Add an arc from a transition to a place. An existing arc gains `weight`."""
        if place not in self._place_index or transition not in self._transition_index:
            raise InternalError(
                f"BUG: Adding an arc from `{transition}` to `{place}` should not fail"
            )
        self._add_arc(transition, place, weight)

    def _add_arc(self, source: str, target: str, weight: int) -> None:
        if weight <= 0:
            raise InternalError(
                f"BUG: arc `{source}` -> `{target}` needs a positive weight, got {weight}"
            )
        existing = self._arc_index.get((source, target))
        if existing is not None:
            existing.weight += weight
            return
        arc = Arc(id=f"({source}, {target})", source=source, target=target, weight=weight)
        self.arcs.append(arc)
        self._arc_index[(source, target)] = arc
        self._outgoing.setdefault(source, []).append(arc)
        self._incoming.setdefault(target, []).append(arc)

    def place_by_id(self, pid: str) -> Optional[Place]:
        return self._place_index.get(pid)

    def transition_by_id(self, tid: str) -> Optional[Transition]:
        return self._transition_index.get(tid)

    def arc(self, source: str, target: str) -> Optional[Arc]:
        return self._arc_index.get((source, target))

    def preset(self, node: str) -> dict[str, int]:
        """Nodes with an arc into `node`, mapped to the arc weight."""
        return {a.source: a.weight for a in self._incoming.get(node, ())}

    def postset(self, node: str) -> dict[str, int]:
        """Nodes with an arc out of `node`, mapped to the arc weight."""
        return {a.target: a.weight for a in self._outgoing.get(node, ())}

    def check_well_formed(self) -> None:
        """
        Every transition must consume from and produce into at least one place.
        Raises InternalError listing the offending transitions.
        """
        has_input = {a.target for a in self.arcs if a.target in self._transition_index}
        has_output = {a.source for a in self.arcs if a.source in self._transition_index}
        dangling = [
            t.id for t in self.transitions
            if t.id not in has_input or t.id not in has_output
        ]
        if dangling:
            raise InternalError(
                "BUG: transitions without input or output arcs: " + ", ".join(sorted(dangling))
            )

    def sorted_places(self) -> list[Place]:
        return sorted(self.places, key=lambda p: p.id)

    def sorted_transitions(self) -> list[Transition]:
        return sorted(self.transitions, key=lambda t: t.id)

    def sorted_arcs(self) -> list[Arc]:
        """Place -> transition arcs first, then transition -> place arcs, each in label order."""
        consuming = sorted(
            (a for a in self.arcs if a.source in self._place_index),
            key=lambda a: (a.source, a.target),
        )
        producing = sorted(
            (a for a in self.arcs if a.source in self._transition_index),
            key=lambda a: (a.source, a.target),
        )
        return consuming + producing
