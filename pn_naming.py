"""
Labels for the places and transitions of the Petri net.

Every label in the net is produced here, so identical programs always get
identical labels. Primitive operations are numbered with a zero-based counter
per operation kind; the `_UNWIND` variant labels the transition taken when the
call unwinds.
"""

import re

PROGRAM_START = "PROGRAM_START"
PROGRAM_END = "PROGRAM_END"
PROGRAM_PANIC = "PROGRAM_PANIC"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")


def sanitize(function_name: str) -> str:
    """Map a function path to a plain identifier: `std::io::_print` -> `std_io__print`."""
    return _UNSAFE_CHARS.sub("_", function_name.replace("::", "_"))


class NameRegistry:
    """Hands out instance names for functions, adding a numeric suffix on repeats."""

    def __init__(self) -> None:
        self._used: set[str] = set()

    def unique(self, function_name: str) -> str:
        base = sanitize(function_name)
        name = base
        counter = 0
        while name in self._used:
            counter += 1
            name = f"{base}_{counter}"
        self._used.add(name)
        return name


# Functions and control flow. `name` is an already sanitized instance name.

def return_transition_label(name: str) -> str:
    return f"{name}_RETURN"


def foreign_call_transition_labels(name: str) -> tuple[str, str]:
    return f"{name}_CALL", f"{name}_CALL_UNWIND"


def diverging_call_transition_label(name: str) -> str:
    return f"{name}_DIVERGING_CALL"


def panic_transition_label(name: str) -> str:
    return f"{name}_PANIC"


def basic_block_place_label(name: str, bb_id: int) -> str:
    return f"{name}_BB{bb_id}"


def goto_transition_label(name: str, index: int) -> str:
    return f"{name}_GOTO_{index}"


def switch_int_transition_label(name: str, index: int) -> str:
    return f"{name}_SWITCH_INT_{index}"


def unwind_transition_label(name: str, index: int) -> str:
    return f"{name}_UNWIND_{index}"


def abort_transition_label(name: str, index: int) -> str:
    return f"{name}_ABORT_{index}"


def unreachable_transition_label(name: str, index: int) -> str:
    return f"{name}_UNREACHABLE_{index}"


def drop_transition_labels(name: str, index: int) -> tuple[str, str]:
    return f"{name}_DROP_{index}", f"{name}_DROP_UNWIND_{index}"


def assert_transition_labels(name: str, index: int) -> tuple[str, str]:
    return f"{name}_ASSERT_{index}", f"{name}_ASSERT_CLEANUP_{index}"


# Indexed call labels.

def indexed_call_labels(prefix: str, index: int) -> tuple[str, str]:
    """`prefix_{index}` and `prefix_{index}_UNWIND`."""
    return f"{prefix}_{index}", f"{prefix}_{index}_UNWIND"


UNWRAP_PREFIX = "std_result_Result_unwrap"
EXPECT_PREFIX = "std_result_Result_expect"
ARC_NEW_PREFIX = "std_sync_Arc_T_new"
CLONE_PREFIX = "std_clone_Clone_clone"
DEREF_PREFIX = "std_ops_Deref_deref"
DEREF_MUT_PREFIX = "std_ops_DerefMut_deref_mut"
MEM_DROP_PREFIX = "std_mem_drop"


# Mutex

MUTEX_NEW_PREFIX = "std_sync_Mutex_T_new"
MUTEX_LOCK_PREFIX = "std_sync_Mutex_T_lock"


def mutex_place_labels(index: int) -> tuple[str, str]:
    """Unlocked and locked places of mutex `index`."""
    return f"MUTEX_{index}_UNLOCKED", f"MUTEX_{index}_LOCKED"


# Condition variables

CONDVAR_NEW_PREFIX = "std_sync_Condvar_new"
CONDVAR_NOTIFY_ONE_PREFIX = "std_sync_Condvar_notify_one"


def condvar_place_labels(index: int) -> tuple[str, str, str, str]:
    return (
        f"CONDVAR_{index}_LOST_SIGNAL_POSSIBLE",
        f"CONDVAR_{index}_SIGNAL_INPUT",
        f"CONDVAR_{index}_WAIT_INPUT",
        f"CONDVAR_{index}_SIGNAL_OUTPUT",
    )


def condvar_transition_labels(index: int) -> tuple[str, str]:
    return f"CONDVAR_{index}_LOST_SIGNAL", f"CONDVAR_{index}_SIGNAL"


def wait_transition_labels(index: int) -> tuple[str, str, str]:
    """Wait start, wait end and unwind transitions of the `index`-th wait call."""
    return (
        f"std_sync_Condvar_wait_{index}_START",
        f"std_sync_Condvar_wait_{index}_END",
        f"std_sync_Condvar_wait_{index}_UNWIND",
    )


# Threads

SPAWN_PREFIX = "std_thread_spawn"
JOIN_PREFIX = "std_thread_JoinHandle_T_join"


def thread_start_place_label(index: int) -> str:
    return f"THREAD_{index}_START"


def thread_end_place_label(index: int) -> str:
    return f"THREAD_{index}_END"


def thread_function_name(index: int) -> str:
    """Instance name used when the body of a spawned thread is not available."""
    return f"THREAD_{index}"
