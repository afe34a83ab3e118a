"""
Recognition and dispatch of the supported synchronization and multithreading functions.
"""

import enum
import logging
import re
from typing import Callable, Optional

from pn_call import CallFragment, CallSite, single_transition_fragment
from pn_condvar import CondvarManager
from pn_errors import InternalError
from pn_model import PetriNet
from pn_mutex import MutexManager
from pn_naming import (
    ARC_NEW_PREFIX,
    CLONE_PREFIX,
    DEREF_MUT_PREFIX,
    DEREF_PREFIX,
    EXPECT_PREFIX,
    UNWRAP_PREFIX,
    indexed_call_labels,
)
from pn_thread import ThreadManager

logger = logging.getLogger(__name__)


class SyncOperation(enum.Enum):
    """Every function the translator models specifically, by normalized path."""
    MUTEX_NEW = "std::sync::Mutex::new"
    MUTEX_LOCK = "std::sync::Mutex::lock"
    MEM_DROP = "std::mem::drop"
    CONDVAR_NEW = "std::sync::Condvar::new"
    CONDVAR_WAIT = "std::sync::Condvar::wait"
    CONDVAR_WAIT_WHILE = "std::sync::Condvar::wait_while"
    CONDVAR_NOTIFY_ONE = "std::sync::Condvar::notify_one"
    THREAD_SPAWN = "std::thread::spawn"
    THREAD_JOIN = "std::thread::JoinHandle::join"
    # The return value of these aliases their first argument.
    RESULT_UNWRAP = "std::result::Result::unwrap"
    RESULT_EXPECT = "std::result::Result::expect"
    ARC_NEW = "std::sync::Arc::new"
    CLONE = "std::clone::Clone::clone"
    DEREF = "std::ops::Deref::deref"
    DEREF_MUT = "std::ops::DerefMut::deref_mut"


_ALIAS_PREFIXES = {
    SyncOperation.RESULT_UNWRAP: UNWRAP_PREFIX,
    SyncOperation.RESULT_EXPECT: EXPECT_PREFIX,
    SyncOperation.ARC_NEW: ARC_NEW_PREFIX,
    SyncOperation.CLONE: CLONE_PREFIX,
    SyncOperation.DEREF: DEREF_PREFIX,
    SyncOperation.DEREF_MUT: DEREF_MUT_PREFIX,
}

_BY_PATH = {op.value: op for op in SyncOperation}
_CRATE_PREFIX = re.compile(r"^(?:core|alloc)::")

PANIC_FUNCTIONS = frozenset({
    "std::rt::begin_panic",
    "std::panicking::begin_panic",
    "std::panicking::panic",
    "std::panicking::panic_fmt",
    "std::panicking::panic_nounwind",
    "std::panicking::panic_explicit",
    "std::panicking::assert_failed",
    "std::panicking::unreachable_display",
    "std::result::unwrap_failed",
    "std::option::unwrap_failed",
    "std::option::expect_failed",
})


def canonical_path(function_name: str) -> str:
    """`core::result::Result::unwrap` and `std::result::Result::unwrap` are the same function."""
    return _CRATE_PREFIX.sub("std::", function_name)


def sync_operation(function_name: str) -> Optional[SyncOperation]:
    return _BY_PATH.get(canonical_path(function_name))


def is_panic_function(function_name: str) -> bool:
    return canonical_path(function_name) in PANIC_FUNCTIONS


class SyncTranslator:
    """Owns the primitive managers and calls the handler of each supported function."""

    def __init__(self, mutex_manager: MutexManager, condvar_manager: CondvarManager,
                 thread_manager: ThreadManager) -> None:
        self.mutex_manager = mutex_manager
        self.condvar_manager = condvar_manager
        self.thread_manager = thread_manager
        self._alias_counters = {op: 0 for op in _ALIAS_PREFIXES}
        self._handlers: dict[SyncOperation, Callable[[CallSite, PetriNet], CallFragment]] = {
            SyncOperation.MUTEX_NEW: mutex_manager.call_new,
            SyncOperation.MUTEX_LOCK: mutex_manager.call_lock,
            SyncOperation.MEM_DROP: mutex_manager.call_mem_drop,
            SyncOperation.CONDVAR_NEW: condvar_manager.call_new,
            SyncOperation.CONDVAR_WAIT: self._call_wait,
            SyncOperation.CONDVAR_WAIT_WHILE: self._call_wait,
            SyncOperation.CONDVAR_NOTIFY_ONE: condvar_manager.call_notify_one,
            SyncOperation.THREAD_SPAWN: thread_manager.call_spawn,
            SyncOperation.THREAD_JOIN: thread_manager.call_join,
        }
        for op in _ALIAS_PREFIXES:
            self._handlers[op] = self._alias_handler(op)
        missing = set(SyncOperation) - set(self._handlers)
        if missing:
            raise InternalError(f"BUG: no handler for {sorted(op.value for op in missing)}")

    def call_function(self, operation: SyncOperation, site: CallSite, net: PetriNet) -> CallFragment:
        """Calls the corresponding handler for the supported function."""
        logger.debug("%s: %s", site.memory.function_name, operation.value)
        return self._handlers[operation](site, net)

    def _call_wait(self, site: CallSite, net: PetriNet) -> CallFragment:
        return self.condvar_manager.call_wait(site, net, self.mutex_manager)

    def _alias_handler(self, operation: SyncOperation) -> Callable[[CallSite, PetriNet], CallFragment]:
        prefix = _ALIAS_PREFIXES[operation]

        def handler(site: CallSite, net: PetriNet) -> CallFragment:
            index = self._alias_counters[operation]
            self._alias_counters[operation] += 1
            fragment = single_transition_fragment(net, indexed_call_labels(prefix, index))
            site.link_destination_to_first_argument()
            return fragment

        return handler
