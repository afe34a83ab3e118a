"""
Per-call memory model: which synchronization handle each local slot denotes.

Handles live in the managers' arenas and are referenced here by
`Handle(kind, index)`. Slots never own a handle; any number of slots in any
number of activation records may denote the same one.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Union

from mir_model import Place
from pn_errors import InternalError

logger = logging.getLogger(__name__)


class HandleKind(enum.Enum):
    MUTEX = "mutex"
    MUTEX_GUARD = "mutex guard"
    CONDVAR = "condition variable"
    THREAD = "join handle"


@dataclass(frozen=True)
class Handle:
    """Reference to the `index`-th primitive of its kind. A guard shares the index of its mutex."""
    kind: HandleKind
    index: int


@dataclass(frozen=True)
class Aggregate:
    """Tuple, closure environment or struct holding handles at some of its positions."""
    members: tuple[Optional["Value"], ...]


Value = Union[Handle, Aggregate]

SYNC_TYPE_MARKERS = (
    "std::sync::MutexGuard<",
    "std::sync::Mutex<",
    "std::thread::JoinHandle<",
    "std::sync::Condvar",
)


def is_sync_type(ty_str: str) -> bool:
    """Whether a declared type mentions one of the supported synchronization types."""
    return any(marker in ty_str for marker in SYNC_TYPE_MARKERS)


def is_guard_type(ty_str: str) -> bool:
    return "std::sync::MutexGuard<" in ty_str


class Memory:
    """Slot -> value map of one activation record."""

    def __init__(self, function_name: str):
        self.function_name = function_name
        self._slots: dict[str, Value] = {}

    def get(self, slot: str) -> Optional[Value]:
        return self._slots.get(slot)

    def _set(self, slot: str, value: Optional[Value]) -> None:
        if value is None:
            self._slots.pop(slot, None)
        else:
            self._slots[slot] = value

    def bind_new_handle(self, place: Place, handle: Handle) -> None:
        """The place receives a freshly created primitive or guard."""
        logger.debug("%s: %s <- new %s %d", self.function_name, place.local, handle.kind.value, handle.index)
        self.assign(place, handle)

    def link(self, dst_slot: str, src_slot: str) -> None:
        """`dst` now denotes whatever `src` denotes, or nothing."""
        self._set(dst_slot, self._slots.get(src_slot))

    def link_field(self, dst_slot: str, aggregate_slot: str, field_index: int) -> None:
        """`dst` now denotes field `field_index` of the aggregate in `aggregate_slot`."""
        value = self._select_field(self._slots.get(aggregate_slot), field_index)
        logger.debug(
            "%s: %s <- field %d of %s (%s)",
            self.function_name, dst_slot, field_index, aggregate_slot, value,
        )
        self._set(dst_slot, value)

    def create_aggregate(self, slot: str, members: list[Optional[Value]]) -> None:
        """The slot becomes an aggregate if at least one member denotes something."""
        if any(member is not None for member in members):
            self._set(slot, Aggregate(tuple(members)))
        else:
            self._set(slot, None)

    @staticmethod
    def _select_field(value: Optional[Value], field_index: int) -> Optional[Value]:
        if isinstance(value, Aggregate):
            if field_index < len(value.members):
                return value.members[field_index]
            return None
        # A field of a handle is the handle itself, e.g. the `Ok` payload of a `LockResult`.
        return value

    def resolve(self, place: Place) -> Optional[Value]:
        """Value denoted by a place, following dereferences, downcasts and fields."""
        value = self._slots.get(place.local)
        for elem in place.projection:
            if value is None:
                return None
            if isinstance(elem, int):
                value = self._select_field(value, elem)
        return value

    def assign(self, place: Place, value: Optional[Value]) -> None:
        """Write a value into a plain slot or into one member of an aggregate slot."""
        if place.is_local:
            self._set(place.local, value)
            return
        field_index = place.field_index
        current = self._slots.get(place.local)
        if field_index is None:
            # `(*_1) = ...` writes through a reference: the slot keeps its referent.
            return
        if not isinstance(current, Aggregate):
            if value is None:
                return
            current = Aggregate(())
        members = list(current.members)
        members.extend([None] * (field_index + 1 - len(members)))
        members[field_index] = value
        self.create_aggregate(place.local, members)

    def link_place(self, dst: Place, src: Place) -> None:
        """Copy, move, reference or dereference of `src` into `dst`."""
        fields = [elem for elem in src.projection if isinstance(elem, int)]
        if dst.is_local and not fields:
            # `_X = _Y`, `_X = (*_Y)`
            self.link(dst.local, src.local)
        elif dst.is_local and len(fields) == 1 and isinstance(src.projection[-1], int):
            # `_X = (_Y.N: T)`, `_X = ((*_Y).N: T)`
            self.link_field(dst.local, src.local, fields[0])
        else:
            self.assign(dst, self.resolve(src))

    def _expect(self, place: Place, kind: HandleKind) -> Handle:
        value = self.resolve(place)
        if not isinstance(value, Handle) or value.kind != kind:
            raise InternalError(
                f"BUG: `{place.local}` should denote a {kind.value}, found {value}",
                function=self.function_name,
            )
        return value

    def get_mutex(self, place: Place) -> Handle:
        return self._expect(place, HandleKind.MUTEX)

    def get_guard(self, place: Place) -> Handle:
        return self._expect(place, HandleKind.MUTEX_GUARD)

    def get_condvar(self, place: Place) -> Handle:
        return self._expect(place, HandleKind.CONDVAR)

    def get_thread(self, place: Place) -> Handle:
        return self._expect(place, HandleKind.THREAD)
