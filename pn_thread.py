"""
Thread modelling.
A spawned thread gets THREAD_<i>_START and THREAD_<i>_END places. The spawn
transition puts a token in the start place; the thread body, translated once
the spawning call stack is done, runs from the start place to the end place;
every join transition consumes from the end place.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Optional

from mir_model import MirFunction, MirProgram
from pn_call import CallFragment, CallSite, single_transition_fragment
from pn_errors import InternalError, UnsupportedConstructError
from pn_memory import Handle, HandleKind, Value
from pn_model import PetriNet
from pn_naming import (
    JOIN_PREFIX,
    SPAWN_PREFIX,
    indexed_call_labels,
    thread_end_place_label,
    thread_start_place_label,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_THREADS = 256


@dataclass
class Thread:
    index: int
    start_place: str
    end_place: str
    function: Optional[MirFunction] = None
    environment: Optional[Value] = None  # denotation of the closure passed to spawn


class ThreadManager:
    """Registry of spawned threads, in spawn order, and translation of spawn and join."""

    def __init__(self, program: MirProgram, max_threads: int = DEFAULT_MAX_THREADS) -> None:
        self.program = program
        self.max_threads = max_threads
        self.threads: list[Thread] = []
        self.join_counter = 0
        self._untranslated: deque[Thread] = deque()

    def get(self, handle: Handle) -> Thread:
        return self.threads[handle.index]

    def pop_untranslated(self) -> Optional[Thread]:
        """Next spawned thread whose body has not been translated yet."""
        return self._untranslated.popleft() if self._untranslated else None

    def call_spawn(self, site: CallSite, net: PetriNet) -> CallFragment:
        """
        `std::thread::spawn`: the call transition also starts the thread.
        The returned `JoinHandle` denotes the new thread.
        """
        index = len(self.threads)
        if index >= self.max_threads:
            raise UnsupportedConstructError(
                f"more than {self.max_threads} threads spawned, is a thread spawning itself?"
            )
        if not site.args:
            raise InternalError("BUG: `std::thread::spawn` should receive a closure",
                                function=site.memory.function_name)
        closure = site.args[0]
        if closure.place is not None:
            closure_type = site.function.place_type(closure.place)
            environment = site.memory.resolve(closure.place)
        else:
            # `const ZeroSized: {closure@...}` or a function item
            closure_type = closure.text
            environment = None
        function = self.program.closure_function(closure_type) or self.program.function(
            closure_type.strip()
        )
        if function is None:
            logger.warning("body of thread %d not found, modelled as an opaque call", index)
        thread = Thread(
            index=index,
            start_place=net.add_place(thread_start_place_label(index), kind="thread"),
            end_place=net.add_place(thread_end_place_label(index), kind="thread"),
            function=function,
            environment=environment,
        )
        self.threads.append(thread)
        self._untranslated.append(thread)
        logger.debug("spawn thread %d running %s", index, function.name if function else "?")

        fragment = single_transition_fragment(
            net, indexed_call_labels(SPAWN_PREFIX, index), kind="spawn"
        )
        fragment.task = lambda n: n.add_arc_transition_place(
            fragment.start_transition, thread.start_place
        )
        if site.destination is not None:
            site.memory.bind_new_handle(site.destination, Handle(HandleKind.THREAD, index))
        return fragment

    def call_join(self, site: CallSite, net: PetriNet) -> CallFragment:
        """`std::thread::JoinHandle::<T>::join`: blocks until the thread's end place is marked."""
        handle = site.memory.get_thread(site.argument(0))
        index = self.join_counter
        self.join_counter += 1
        thread = self.get(handle)
        fragment = single_transition_fragment(
            net, indexed_call_labels(JOIN_PREFIX, index), kind="join", op=thread.end_place
        )
        fragment.task = lambda n: n.add_arc_place_transition(
            thread.end_place, fragment.start_transition
        )
        return fragment
