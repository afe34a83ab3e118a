"""
Data passed between the CFG walker and the primitive managers for one call terminator.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from mir_model import MirFunction, Operand, Place
from pn_errors import InternalError
from pn_memory import Memory
from pn_model import PetriNet

# Deferred wiring, run by the walker once the call is connected to its places.
PostprocessingTask = Callable[[PetriNet], None]


@dataclass
class CallPlaces:
    """Places around a call: the caller's block, the return block and the cleanup block."""
    start: str
    end: Optional[str]
    cleanup: Optional[str]


@dataclass
class CallFragment:
    """
    Transitions representing a call. The walker connects `start_transition` to the
    call's start place and `end_transition` to its return place; both are the same
    transition for single-step calls. `unwind_label` names the transition created
    when the call has a cleanup block.
    """
    start_transition: str
    end_transition: str
    unwind_label: Optional[str] = None
    task: Optional[PostprocessingTask] = None


@dataclass
class CallSite:
    """Caller-side view of a call: its arguments, destination and memory."""
    function: MirFunction
    memory: Memory
    args: list[Operand]
    destination: Optional[Place]

    def argument(self, n: int) -> Place:
        """The n-th argument as a place. Constants have no handle, so they are a bug here."""
        if n >= len(self.args) or self.args[n].place is None:
            raise InternalError(
                f"BUG: argument {n} of the call should be a local variable",
                function=self.memory.function_name,
            )
        return self.args[n].place

    def first_argument(self) -> Optional[Place]:
        """The first argument, or None if there is none or it is a constant."""
        if not self.args:
            return None
        return self.args[0].place

    def link_destination_to_first_argument(self) -> None:
        """The return value denotes whatever the first argument denotes."""
        first = self.first_argument()
        if self.destination is None or first is None:
            return
        self.memory.assign(self.destination, self.memory.resolve(first))


def single_transition_fragment(
    net: PetriNet,
    labels: tuple[str, str],
    kind: str = "call",
    op: Optional[str] = None,
    task: Optional[PostprocessingTask] = None,
) -> CallFragment:
    """A call modelled by one transition, plus the label for its unwind variant."""
    transition = net.add_transition(labels[0], kind=kind, op=op)
    return CallFragment(transition, transition, labels[1], task)
