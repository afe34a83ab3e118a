"""
Condition variable modelling.

Every condition variable adds four places and two transitions to the net:

    lost_signal_possible (init=1) --> LOST_SIGNAL --> lost_signal_possible
    signal_input                  --> LOST_SIGNAL
    signal_input, wait_input      --> SIGNAL      --> signal_output, lost_signal_possible

The two transitions conflict on `signal_input`. A notify with nobody waiting
can only fire LOST_SIGNAL and the signal is gone. A waiter first takes the
token from `lost_signal_possible`, which disables LOST_SIGNAL, and puts a token
in `wait_input`, so the next notify fires SIGNAL and the waiter resumes from
`signal_output`.

The gadget is a simplified version of the one in "Modelling Multithreaded
Applications Using Petri Nets" by Kavi, Moshtaghi and Chen.
"""

import logging
from dataclasses import dataclass

from pn_call import CallFragment, CallSite, single_transition_fragment
from pn_memory import Handle, HandleKind
from pn_model import PetriNet
from pn_mutex import MutexManager
from pn_naming import (
    CONDVAR_NEW_PREFIX,
    CONDVAR_NOTIFY_ONE_PREFIX,
    condvar_place_labels,
    condvar_transition_labels,
    indexed_call_labels,
    wait_transition_labels,
)

logger = logging.getLogger(__name__)


@dataclass
class Condvar:
    index: int
    lost_signal_possible: str
    signal_input: str
    wait_input: str
    signal_output: str
    lost_signal_transition: str
    signal_transition: str

    @classmethod
    def create(cls, index: int, net: PetriNet) -> "Condvar":
        """Adds the Petri net model of condition variable `index` to the net."""
        p1, p2, p3, p4 = condvar_place_labels(index)
        lost_signal_possible = net.add_place(p1, kind="condvar", init_tokens=1)
        signal_input = net.add_place(p2, kind="condvar")
        wait_input = net.add_place(p3, kind="condvar")
        signal_output = net.add_place(p4, kind="condvar")

        t1, t2 = condvar_transition_labels(index)
        lost_signal_transition = net.add_transition(t1, kind="condvar")
        signal_transition = net.add_transition(t2, kind="condvar")

        net.add_arc_place_transition(lost_signal_possible, lost_signal_transition)
        net.add_arc_place_transition(signal_input, lost_signal_transition)
        net.add_arc_place_transition(wait_input, signal_transition)
        net.add_arc_place_transition(signal_input, signal_transition)

        net.add_arc_transition_place(lost_signal_transition, lost_signal_possible)
        net.add_arc_transition_place(signal_transition, lost_signal_possible)
        net.add_arc_transition_place(signal_transition, signal_output)

        return cls(
            index,
            lost_signal_possible,
            signal_input,
            wait_input,
            signal_output,
            lost_signal_transition,
            signal_transition,
        )

    def link_to_wait_call(self, wait_start: str, wait_end: str, net: PetriNet) -> None:
        """lost_signal_possible -> wait_start -> wait_input; signal_output -> wait_end."""
        net.add_arc_place_transition(self.lost_signal_possible, wait_start)
        net.add_arc_transition_place(wait_start, self.wait_input)
        net.add_arc_place_transition(self.signal_output, wait_end)

    def link_to_notify_one_call(self, notify_transition: str, net: PetriNet) -> None:
        """notify -> signal_input."""
        net.add_arc_transition_place(notify_transition, self.signal_input)


class CondvarManager:
    """Registry of the condition variables discovered so far and translation of their operations."""

    def __init__(self) -> None:
        self.condvars: list[Condvar] = []
        self.wait_counter = 0
        self.notify_one_counter = 0

    def get(self, handle: Handle) -> Condvar:
        return self.condvars[handle.index]

    def call_new(self, site: CallSite, net: PetriNet) -> CallFragment:
        """`std::sync::Condvar::new`: a new condition variable, denoted by the return value."""
        index = len(self.condvars)
        fragment = single_transition_fragment(net, indexed_call_labels(CONDVAR_NEW_PREFIX, index))
        self.condvars.append(Condvar.create(index, net))
        logger.debug("new condition variable %d", index)
        if site.destination is not None:
            site.memory.bind_new_handle(site.destination, Handle(HandleKind.CONDVAR, index))
        return fragment

    def call_wait(self, site: CallSite, net: PetriNet, mutex_manager: MutexManager) -> CallFragment:
        """
        `std::sync::Condvar::wait` and `wait_while`: two transitions. The start
        releases the guard's mutex and waits for a signal, the end takes the
        signal and locks the mutex again. The returned value is the same guard.
        """
        condvar = site.memory.get_condvar(site.argument(0))
        guard = site.memory.get_guard(site.argument(1))
        index = self.wait_counter
        self.wait_counter += 1
        start_label, end_label, unwind_label = wait_transition_labels(index)
        wait_start = net.add_transition(start_label, kind="wait")
        wait_end = net.add_transition(end_label, kind="wait")

        def link(n: PetriNet) -> None:
            self.get(condvar).link_to_wait_call(wait_start, wait_end, n)
            mutex_manager.add_unlock(guard, wait_start, n)
            mutex_manager.add_lock(guard, wait_end, n)

        if site.destination is not None:
            site.memory.assign(site.destination, guard)
        return CallFragment(wait_start, wait_end, unwind_label, link)

    def call_notify_one(self, site: CallSite, net: PetriNet) -> CallFragment:
        """`std::sync::Condvar::notify_one`: the call transition feeds `signal_input`."""
        condvar = site.memory.get_condvar(site.argument(0))
        index = self.notify_one_counter
        self.notify_one_counter += 1
        fragment = single_transition_fragment(
            net, indexed_call_labels(CONDVAR_NOTIFY_ONE_PREFIX, index), kind="notify"
        )
        fragment.task = lambda n: self.get(condvar).link_to_notify_one_call(
            fragment.start_transition, n
        )
        return fragment
