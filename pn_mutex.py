"""
Mutex modelling.
Each mutex is a pair of places: MUTEX_<i>_UNLOCKED (init=1) and MUTEX_<i>_LOCKED (init=0).
Locking moves the token from unlocked to locked on the call transition;
dropping the guard moves it back.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from mir_model import MirFunction, Place
from pn_call import CallFragment, CallSite, single_transition_fragment
from pn_memory import Handle, HandleKind, Memory, is_guard_type
from pn_model import PetriNet
from pn_naming import (
    MEM_DROP_PREFIX,
    MUTEX_LOCK_PREFIX,
    MUTEX_NEW_PREFIX,
    indexed_call_labels,
    mutex_place_labels,
)

logger = logging.getLogger(__name__)


@dataclass
class Mutex:
    index: int
    unlocked: str
    locked: str


class MutexManager:
    """Registry of the mutexes discovered so far and translation of their operations."""

    def __init__(self) -> None:
        self.mutexes: list[Mutex] = []
        self.lock_counter = 0
        self.drop_counter = 0

    def _add_mutex(self, net: PetriNet) -> Handle:
        index = len(self.mutexes)
        unlocked_label, locked_label = mutex_place_labels(index)
        unlocked = net.add_place(unlocked_label, kind="mutex", init_tokens=1)
        locked = net.add_place(locked_label, kind="mutex")
        self.mutexes.append(Mutex(index, unlocked, locked))
        logger.debug("new mutex %d", index)
        return Handle(HandleKind.MUTEX, index)

    def get(self, handle: Handle) -> Mutex:
        return self.mutexes[handle.index]

    def call_new(self, site: CallSite, net: PetriNet) -> CallFragment:
        """`std::sync::Mutex::<T>::new`: a new mutex, denoted by the return value."""
        index = len(self.mutexes)
        fragment = single_transition_fragment(net, indexed_call_labels(MUTEX_NEW_PREFIX, index))
        handle = self._add_mutex(net)
        if site.destination is not None:
            site.memory.bind_new_handle(site.destination, handle)
        return fragment

    def call_lock(self, site: CallSite, net: PetriNet) -> CallFragment:
        """
        `std::sync::Mutex::<T>::lock`: the call transition takes the mutex.
        The returned `LockResult` denotes a guard of the same mutex.
        """
        handle = site.memory.get_mutex(site.argument(0))
        index = self.lock_counter
        self.lock_counter += 1
        mutex = self.get(handle)
        fragment = single_transition_fragment(
            net,
            indexed_call_labels(MUTEX_LOCK_PREFIX, index),
            kind="lock",
            op=mutex.unlocked,
        )
        fragment.task = lambda n: self.add_lock(handle, fragment.start_transition, n)
        if site.destination is not None:
            site.memory.bind_new_handle(site.destination, Handle(HandleKind.MUTEX_GUARD, handle.index))
        return fragment

    def call_mem_drop(self, site: CallSite, net: PetriNet) -> CallFragment:
        """`std::mem::drop`: releases the mutex if the argument is a guard."""
        index = self.drop_counter
        self.drop_counter += 1
        fragment = single_transition_fragment(net, indexed_call_labels(MEM_DROP_PREFIX, index))
        argument = site.first_argument()
        if argument is not None and is_guard_type(site.function.place_type(argument)):
            guard = site.memory.get_guard(argument)
            fragment.task = lambda n: self.add_unlock(guard, fragment.start_transition, n)
        return fragment

    def add_lock(self, handle: Handle, transition: str, net: PetriNet) -> None:
        mutex = self.get(handle)
        net.add_arc_place_transition(mutex.unlocked, transition)
        net.add_arc_transition_place(transition, mutex.locked)

    def add_unlock(self, handle: Handle, transition: str, net: PetriNet) -> None:
        mutex = self.get(handle)
        net.add_arc_place_transition(mutex.locked, transition)
        net.add_arc_transition_place(transition, mutex.unlocked)

    def handle_lock_guard_drop(
        self,
        place: Place,
        function: MirFunction,
        memory: Memory,
        transitions: list[Optional[str]],
        net: PetriNet,
    ) -> None:
        """If the dropped place is a lock guard, every drop transition unlocks its mutex."""
        if not is_guard_type(function.place_type(place)):
            return
        guard = memory.get_guard(place)
        for transition in transitions:
            if transition is not None:
                self.add_unlock(guard, transition, net)
