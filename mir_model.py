"""
MIR data structures for mir2petri.
Uses dataclasses for representation of parsed MIR text.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Union

DEREF = "*"

# Projection element: DEREF, a field index, or ("as", variant) for downcasts
ProjectionElem = Union[str, int, tuple[str, str]]


@dataclass(frozen=True)
class Place:
    """Memory location: a local `_N` plus projections, e.g. `((*_1).0: T)`."""
    local: str
    projection: tuple[ProjectionElem, ...] = ()
    ty: Optional[str] = None  # annotated type of the outermost field projection

    @property
    def is_local(self) -> bool:
        return not self.projection

    @property
    def field_index(self) -> Optional[int]:
        """Index of the last field projection, if any."""
        for elem in reversed(self.projection):
            if isinstance(elem, int):
                return elem
        return None

    def project(self, elem: ProjectionElem, ty: Optional[str] = None) -> "Place":
        return Place(self.local, self.projection + (elem,), ty if ty is not None else self.ty)


@dataclass(frozen=True)
class Operand:
    """copy/move of a place, or a constant."""
    kind: str  # copy, move, const
    place: Optional[Place] = None
    text: str = ""


@dataclass
class Use:
    """_X = [copy|move] place / const"""
    operand: Operand


@dataclass
class Ref:
    """_X = &place, &mut place, &raw const place"""
    place: Place


@dataclass
class AggregateValue:
    """_X = (a, b), Struct { a: x }, {closure@...} { x: y }, [a, b]"""
    kind: str
    operands: list[Operand] = field(default_factory=list)


@dataclass
class OtherRvalue:
    """Any right-hand side the translator does not track (arithmetic, casts, ...)."""
    text: str


Rvalue = Union[Use, Ref, AggregateValue, OtherRvalue]


@dataclass
class Assign:
    place: Place
    rvalue: Rvalue


@dataclass
class Nop:
    """StorageLive, StorageDead, FakeRead, ... kept only for completeness."""
    text: str


Statement = Union[Assign, Nop]


@dataclass
class LocalDecl:
    """Local variable declaration: let [mut] _N: Type; or parameter _N: Type."""
    name: str
    ty_str: str
    is_mut: bool = False


@dataclass
class Callee:
    """The function operand of a call terminator."""
    name: str  # normalized path for function items, local name otherwise
    raw: str = ""
    place: Optional[Place] = None  # set when calling through a local (function pointer)


@dataclass
class TerminatorGoto:
    """goto -> bbN;"""
    target_bb: int


@dataclass
class TerminatorReturn:
    """return;"""
    pass


@dataclass
class TerminatorResume:
    """resume; / UnwindResume;"""
    pass


@dataclass
class TerminatorAbort:
    """abort; / UnwindTerminate(...);"""
    pass


@dataclass
class TerminatorUnreachable:
    """unreachable;"""
    pass


@dataclass
class TerminatorSwitch:
    """switchInt(...) -> [targets...];"""
    targets: list[int]


@dataclass
class TerminatorDrop:
    """drop(place) -> [return: bbN, unwind: ...];"""
    place: Place
    return_target: int
    unwind_target: Optional[int] = None


@dataclass
class TerminatorCall:
    """lhs = callee(args) -> [return: bbN, unwind: ...]; or callee(args) -> ..."""
    destination: Optional[Place]
    callee: Callee
    args: list[Operand]
    return_target: Optional[int]
    unwind_target: Optional[int] = None


@dataclass
class TerminatorAssert:
    """assert(...) -> [success: bbN, unwind: ...];"""
    return_target: int
    unwind_target: Optional[int] = None


@dataclass
class TerminatorUnsupported:
    """yield, coroutine_drop, falseEdge, falseUnwind, asm!, replace."""
    kind: str
    text: str = ""


# Union type for terminator
Terminator = Union[
    TerminatorGoto,
    TerminatorReturn,
    TerminatorResume,
    TerminatorAbort,
    TerminatorUnreachable,
    TerminatorSwitch,
    TerminatorDrop,
    TerminatorCall,
    TerminatorAssert,
    TerminatorUnsupported,
]


@dataclass
class BasicBlock:
    """Basic block with optional statements and terminator."""
    bb_id: int
    statements: list[Statement] = field(default_factory=list)
    terminator: Optional[Terminator] = None
    is_cleanup: bool = False
    line_start: int = 0  # approximate line for error reporting


@dataclass
class MirFunction:
    """Parsed MIR function with parameters, locals and basic blocks."""
    name: str
    params: list[LocalDecl] = field(default_factory=list)
    locals: list[LocalDecl] = field(default_factory=list)
    basic_blocks: list[BasicBlock] = field(default_factory=list)
    line_start: int = 0
    _block_index: dict[int, BasicBlock] = field(default_factory=dict, repr=False, compare=False)

    def local_type(self, name: str) -> str:
        for decl in self.params:
            if decl.name == name:
                return decl.ty_str
        for decl in self.locals:
            if decl.name == name:
                return decl.ty_str
        return ""

    def place_type(self, place: Place) -> str:
        """Annotated field type if the place projects a field, else the local's declared type."""
        if place.ty is not None:
            return place.ty
        return self.local_type(place.local)

    def block(self, bb_id: int) -> Optional[BasicBlock]:
        # rebuilt whenever the parser has appended blocks since the last lookup
        if len(self._block_index) != len(self.basic_blocks):
            self._block_index = {bb.bb_id: bb for bb in self.basic_blocks}
        return self._block_index.get(bb_id)


_CLOSURE_TYPE = re.compile(r"[{\[]closure@[^}\]]*[}\]]")
_FN_ITEM_TYPE = re.compile(r"^fn\(.*\)(?:\s*->\s*.*?)?\s*\{(.+)\}$")


def closure_signature(ty_str: str) -> Optional[str]:
    """`&{closure@src/main.rs:5:5: 5:7}` -> `closure@src/main.rs:5:5: 5:7`."""
    m = _CLOSURE_TYPE.search(ty_str)
    return m.group(0)[1:-1] if m else None


def fn_item_name(ty_str: str) -> Optional[str]:
    """`fn() {worker}` -> `worker`."""
    m = _FN_ITEM_TYPE.match(ty_str.strip())
    return m.group(1).strip() if m else None


@dataclass
class MirProgram:
    """All functions of a MIR dump, addressable by name and by closure type."""
    functions: list[MirFunction] = field(default_factory=list)

    def function(self, name: str) -> Optional[MirFunction]:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None

    def closure_function(self, ty_str: str) -> Optional[MirFunction]:
        """Body of the closure whose type appears in `ty_str`, or of the named function item."""
        signature = closure_signature(ty_str)
        if signature is None:
            name = fn_item_name(ty_str)
            return self.function(name) if name else None
        for fn in self.functions:
            if fn.params and closure_signature(fn.params[0].ty_str) == signature:
                return fn
        return None
