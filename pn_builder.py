"""
Build Petri net from parsed MIR.
Control flow: PROGRAM_START -> entry function blocks -> PROGRAM_END, with
unwinding collected in PROGRAM_PANIC. Every call site gets its own copy of the
callee's blocks, translated depth first with an explicit call stack.
Synchronization primitives are spliced in by the managers in pn_sync.
"""

import logging
from typing import Optional

from mir_model import (
    AggregateValue,
    Assign,
    BasicBlock,
    MirFunction,
    MirProgram,
    Place,
    Ref,
    Statement,
    TerminatorAbort,
    TerminatorAssert,
    TerminatorCall,
    TerminatorDrop,
    TerminatorGoto,
    TerminatorResume,
    TerminatorReturn,
    TerminatorSwitch,
    TerminatorUnreachable,
    TerminatorUnsupported,
    Use,
)
from mir_parser import is_dynamic_dispatch, qualified_self_type
from pn_call import CallFragment, CallPlaces, CallSite, PostprocessingTask
from pn_condvar import CondvarManager
from pn_errors import InternalError, TranslationError, UnsupportedConstructError
from pn_memory import Aggregate, Memory, is_sync_type
from pn_model import PetriNet
from pn_mutex import MutexManager
from pn_naming import (
    PROGRAM_END,
    PROGRAM_PANIC,
    PROGRAM_START,
    NameRegistry,
    abort_transition_label,
    assert_transition_labels,
    basic_block_place_label,
    diverging_call_transition_label,
    drop_transition_labels,
    foreign_call_transition_labels,
    goto_transition_label,
    panic_transition_label,
    return_transition_label,
    switch_int_transition_label,
    thread_function_name,
    unreachable_transition_label,
    unwind_transition_label,
)
from pn_sync import SyncTranslator, is_panic_function, sync_operation
from pn_thread import DEFAULT_MAX_THREADS, Thread, ThreadManager

logger = logging.getLogger(__name__)

DEFAULT_MAX_CALL_DEPTH = 256

_CLOSURE_CALLS = frozenset({
    "std::ops::Fn::call",
    "std::ops::FnMut::call_mut",
    "std::ops::FnOnce::call_once",
    "core::ops::Fn::call",
    "core::ops::FnMut::call_mut",
    "core::ops::FnOnce::call_once",
})


class ActivationRecord:
    """One in-flight call: its blocks' places, its memory and its label counters."""

    def __init__(
        self,
        function: MirFunction,
        name: str,
        start_place: str,
        return_place: str,
        unwind_place: str,
        destination: Optional[Place] = None,
    ):
        self.function = function
        self.name = name
        self.start_place = start_place
        self.return_place = return_place
        self.unwind_place = unwind_place
        self.destination = destination
        self.memory = Memory(name)
        self.block_places: dict[int, str] = {}
        self.active_block: Optional[int] = None
        self.next_block = 0
        self._counters: dict[str, int] = {}

    @property
    def finished(self) -> bool:
        return self.next_block >= len(self.function.basic_blocks)

    def counter(self, kind: str) -> int:
        value = self._counters.get(kind, 0)
        self._counters[kind] = value + 1
        return value

    def block_place(self, bb_id: int, net: PetriNet) -> str:
        """Place of a basic block, created on first use. The entry block uses the start place."""
        place = self.block_places.get(bb_id)
        if place is None:
            if self.function.block(bb_id) is None:
                raise InternalError(f"BUG: jump to missing basic block bb{bb_id}")
            if bb_id == self.function.basic_blocks[0].bb_id:
                place = self.start_place
            else:
                place = net.add_place(basic_block_place_label(self.name, bb_id))
            self.block_places[bb_id] = place
        return place

    def activate_block(self, bb_id: int, net: PetriNet) -> str:
        self.active_block = bb_id
        return self.block_place(bb_id, net)


class Translator:
    """Walks the call graph from the entry function and builds the net."""

    def __init__(
        self,
        program: MirProgram,
        entry_fn: str = "main",
        max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
        max_threads: int = DEFAULT_MAX_THREADS,
    ):
        self.program = program
        self.entry_fn = entry_fn
        self.max_call_depth = max_call_depth
        self.net = PetriNet()
        self.program_start = self.net.add_place(PROGRAM_START, kind="program", init_tokens=1)
        self.program_end = self.net.add_place(PROGRAM_END, kind="program")
        self.program_panic = self.net.add_place(PROGRAM_PANIC, kind="program")
        self.names = NameRegistry()
        self.call_stack: list[ActivationRecord] = []
        self.mutex_manager = MutexManager()
        self.condvar_manager = CondvarManager()
        self.thread_manager = ThreadManager(program, max_threads)
        self.sync = SyncTranslator(self.mutex_manager, self.condvar_manager, self.thread_manager)
        self._postprocessing: list[PostprocessingTask] = []

    def run(self) -> PetriNet:
        entry = self.program.function(self.entry_fn)
        if entry is None:
            raise TranslationError(f"entry function `{self.entry_fn}` not found")
        self._push(
            ActivationRecord(
                entry,
                self.names.unique(entry.name),
                self.program_start,
                self.program_end,
                self.program_panic,
            )
        )
        self._translate_call_stack()

        while True:
            thread = self.thread_manager.pop_untranslated()
            if thread is None:
                break
            self._translate_thread(thread)

        self._run_postprocessing()
        self.net.check_well_formed()
        logger.info(
            "net has %d places, %d transitions, %d arcs",
            len(self.net.places), len(self.net.transitions), len(self.net.arcs),
        )
        return self.net

    # Call stack

    def _push(self, record: ActivationRecord) -> None:
        if not record.function.basic_blocks:
            raise InternalError(f"BUG: function `{record.function.name}` has no basic blocks")
        if len(self.call_stack) >= self.max_call_depth:
            raise UnsupportedConstructError(
                f"call depth exceeds {self.max_call_depth} when calling `{record.function.name}`"
            )
        logger.debug("enter %s as %s (depth %d)", record.function.name, record.name, len(self.call_stack))
        self.call_stack.append(record)

    def _pop(self) -> None:
        record = self.call_stack.pop()
        logger.debug("leave %s", record.name)
        if self.call_stack and record.destination is not None:
            caller = self.call_stack[-1]
            caller.memory.assign(record.destination, record.memory.get("_0"))

    def _translate_call_stack(self) -> None:
        while self.call_stack:
            record = self.call_stack[-1]
            if record.finished:
                self._pop()
                continue
            bb = record.function.basic_blocks[record.next_block]
            record.next_block += 1
            try:
                self._translate_block(record, bb)
            except TranslationError as e:
                e.add_context(record.function.name, f"bb{bb.bb_id}")
                raise

    def _translate_thread(self, thread: Thread) -> None:
        if thread.function is None:
            label, _ = foreign_call_transition_labels(self.names.unique(thread_function_name(thread.index)))
            transition = self.net.add_transition(label, kind="call")
            self.net.add_arc_place_transition(thread.start_place, transition)
            self.net.add_arc_transition_place(transition, thread.end_place)
            self.net.warnings.append({
                "function": thread_function_name(thread.index),
                "basic_block": None,
                "line": None,
                "reason": "thread body not found, treated as an opaque call",
                "callee": None,
            })
            return
        record = ActivationRecord(
            thread.function,
            self.names.unique(thread.function.name),
            thread.start_place,
            thread.end_place,
            self.program_panic,
        )
        if thread.environment is not None:
            record.memory.assign(Place("_1"), thread.environment)
        self._push(record)
        self._translate_call_stack()

    def _run_postprocessing(self) -> None:
        while self._postprocessing:
            task = self._postprocessing.pop(0)
            task(self.net)

    # Basic blocks

    def _translate_block(self, record: ActivationRecord, bb: BasicBlock) -> None:
        net = self.net
        place = record.activate_block(bb.bb_id, net)
        for statement in bb.statements:
            self._translate_statement(record.memory, statement)

        term = bb.terminator
        name = record.name
        if isinstance(term, TerminatorGoto):
            self._edge(place, goto_transition_label(name, record.counter("goto")),
                       record.block_place(term.target_bb, net))
        elif isinstance(term, TerminatorSwitch):
            for target_bb in term.targets:
                self._edge(place, switch_int_transition_label(name, record.counter("switch_int")),
                           record.block_place(target_bb, net))
        elif isinstance(term, TerminatorReturn):
            self._edge(place, return_transition_label(name), record.return_place)
        elif isinstance(term, TerminatorResume):
            self._edge(place, unwind_transition_label(name, record.counter("unwind")), record.unwind_place)
        elif isinstance(term, TerminatorAbort):
            self._edge(place, abort_transition_label(name, record.counter("abort")), self.program_panic)
        elif isinstance(term, TerminatorUnreachable):
            self._edge(place, unreachable_transition_label(name, record.counter("unreachable")),
                       self.program_end)
        elif isinstance(term, TerminatorDrop):
            drop_label, unwind_label = drop_transition_labels(name, record.counter("drop"))
            transition_drop = self._edge(place, drop_label, record.block_place(term.return_target, net))
            transition_unwind = None
            if term.unwind_target is not None:
                transition_unwind = self._edge(place, unwind_label,
                                               record.block_place(term.unwind_target, net))
            self.mutex_manager.handle_lock_guard_drop(
                term.place, record.function, record.memory, [transition_drop, transition_unwind], net
            )
        elif isinstance(term, TerminatorAssert):
            success_label, cleanup_label = assert_transition_labels(name, record.counter("assert"))
            self._edge(place, success_label, record.block_place(term.return_target, net))
            cleanup = (
                record.block_place(term.unwind_target, net)
                if term.unwind_target is not None else record.unwind_place
            )
            self._edge(place, cleanup_label, cleanup)
        elif isinstance(term, TerminatorCall):
            self._translate_call(record, place, term)
        elif isinstance(term, TerminatorUnsupported):
            raise UnsupportedConstructError(f"TerminatorKind::{term.kind} is not supported")
        else:
            raise InternalError(f"BUG: no translation for terminator {term!r}")

    def _edge(self, source: str, label: str, target: str) -> str:
        """A transition from one place to another."""
        transition = self.net.add_transition(label)
        self.net.add_arc_place_transition(source, transition)
        self.net.add_arc_transition_place(transition, target)
        return transition

    @staticmethod
    def _translate_statement(memory: Memory, statement: Statement) -> None:
        """Keep the memory up to date with assignments that move handles around."""
        if not isinstance(statement, Assign):
            return
        rvalue = statement.rvalue
        if isinstance(rvalue, Use) and rvalue.operand.place is not None:
            memory.link_place(statement.place, rvalue.operand.place)
        elif isinstance(rvalue, Ref):
            memory.link_place(statement.place, rvalue.place)
        elif isinstance(rvalue, AggregateValue):
            members = [memory.resolve(op.place) if op.place is not None else None for op in rvalue.operands]
            if statement.place.is_local:
                memory.create_aggregate(statement.place.local, members)
            elif any(m is not None for m in members):
                memory.assign(statement.place, Aggregate(tuple(members)))
            else:
                memory.assign(statement.place, None)
        else:
            memory.assign(statement.place, None)

    # Calls

    def _translate_call(self, record: ActivationRecord, place: str, term: TerminatorCall) -> None:
        net = self.net
        callee = term.callee
        if callee.place is not None:
            raise UnsupportedConstructError(f"call through function pointer `{callee.raw}` is not supported")

        places = CallPlaces(
            start=place,
            end=record.block_place(term.return_target, net) if term.return_target is not None else None,
            cleanup=record.block_place(term.unwind_target, net) if term.unwind_target is not None else None,
        )
        site = CallSite(record.function, record.memory, term.args, term.destination)

        operation = sync_operation(callee.name)
        if operation is not None:
            self._wire_call(self.sync.call_function(operation, site, net), places)
            return

        if is_panic_function(callee.name):
            label = panic_transition_label(self.names.unique(callee.name))
            self._edge(place, label, places.cleanup or record.unwind_place)
            return

        if is_dynamic_dispatch(callee.raw):
            raise UnsupportedConstructError(f"dynamic dispatch `{callee.raw}` is not supported")

        body, spread_arguments = self._resolve_body(callee.name, callee.raw)
        if body is not None:
            self._call_function(record, body, term, places, spread_arguments)
        else:
            self._call_foreign_function(record, site, callee.name, places)

    def _resolve_body(self, function_name: str, raw: str) -> tuple[Optional[MirFunction], bool]:
        """The MIR body to descend into, and whether the arguments come as a tuple (closure calls)."""
        body = self.program.function(function_name)
        if body is not None:
            return body, False
        if function_name in _CLOSURE_CALLS:
            self_type = qualified_self_type(raw)
            if self_type:
                closure = self.program.closure_function(self_type)
                if closure is not None:
                    return closure, True
        return None, False

    def _call_function(
        self,
        record: ActivationRecord,
        function: MirFunction,
        term: TerminatorCall,
        places: CallPlaces,
        spread_arguments: bool,
    ) -> None:
        """Descend into a function with a MIR body, starting at the caller's block place."""
        if any(active.function is function for active in self.call_stack):
            raise UnsupportedConstructError(f"recursive call to `{function.name}` is not supported")
        callee = ActivationRecord(
            function,
            self.names.unique(function.name),
            places.start,
            places.end or self.program_end,
            places.cleanup or record.unwind_place,
            term.destination,
        )
        values = [record.memory.resolve(op.place) if op.place is not None else None for op in term.args]
        if spread_arguments and len(values) == 2 and isinstance(values[1], Aggregate):
            values = [values[0], *values[1].members]
        for position, value in enumerate(values, start=1):
            callee.memory.assign(Place(f"_{position}"), value)
        self._push(callee)

    def _call_foreign_function(
        self, record: ActivationRecord, site: CallSite, function_name: str, places: CallPlaces
    ) -> None:
        """A function without a MIR body is a single opaque transition."""
        instance = self.names.unique(function_name)
        self.net.warnings.append({
            "function": record.function.name,
            "basic_block": f"bb{record.active_block}",
            "line": record.function.block(record.active_block).line_start,
            "reason": "no MIR body, treated as an opaque call",
            "callee": function_name,
        })
        if places.end is None:
            self._edge(places.start, diverging_call_transition_label(instance), self.program_end)
            return
        call_label, unwind_label = foreign_call_transition_labels(instance)
        transition = self.net.add_transition(call_label, kind="call")
        self._wire_call(CallFragment(transition, transition, unwind_label), places)
        if site.destination is not None and is_sync_type(record.function.place_type(site.destination)):
            site.link_destination_to_first_argument()

    def _wire_call(self, fragment: CallFragment, places: CallPlaces) -> None:
        """Connect a call's transitions to its places, then run its deferred wiring."""
        net = self.net
        net.add_arc_place_transition(places.start, fragment.start_transition)
        net.add_arc_transition_place(fragment.end_transition, places.end or self.program_end)
        if places.cleanup is not None and fragment.unwind_label is not None:
            unwind = net.add_transition(fragment.unwind_label, kind="unwind")
            net.add_arc_place_transition(places.start, unwind)
            net.add_arc_transition_place(unwind, places.cleanup)
        if fragment.task is not None:
            self._postprocessing.append(fragment.task)
        self._run_postprocessing()


def build_petri_net(
    program: MirProgram,
    entry_fn: str = "main",
    max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
    max_threads: int = DEFAULT_MAX_THREADS,
) -> PetriNet:
    """Build Petri net from a parsed MIR program, starting at `entry_fn`."""
    return Translator(program, entry_fn, max_call_depth, max_threads).run()
