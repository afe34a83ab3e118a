"""
MIR text parser for mir2petri.
Regex and line driven parser for the rustc MIR dump format
(e.g. rustc --emit=mir or -Z unpretty=mir).
"""

import re
from typing import Optional

from mir_model import (
    DEREF,
    AggregateValue,
    Assign,
    BasicBlock,
    Callee,
    LocalDecl,
    MirFunction,
    MirProgram,
    Nop,
    Operand,
    OtherRvalue,
    Place,
    Ref,
    Rvalue,
    Statement,
    Terminator,
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


class ParseError(Exception):
    """Raised when MIR parsing fails."""

    def __init__(self, message: str, function: str = "", basic_block: str = "", line: int = 0):
        self.function = function
        self.basic_block = basic_block
        self.line = line
        parts = []
        if function:
            parts.append(f"function {function}")
        if basic_block:
            parts.append(f"basic block {basic_block}")
        if line:
            parts.append(f"near line {line}")
        if parts:
            full_msg = f"{message} (in {' / '.join(parts)})"
        else:
            full_msg = message
        super().__init__(full_msg)


_LOCAL = re.compile(r"_\d+")
_FN_HEADER = re.compile(r"^fn\s+([^(]+)\(")
_LET = re.compile(r"let\s+(mut\s+)?(_\d+)\s*:\s*(.+);$")
_BB = re.compile(r"^bb(\d+)\s*(\(cleanup\))?\s*:\s*\{$")
_PARAM = re.compile(r"^(?:mut\s+)?(_\d+)\s*:\s*(.+)$", re.S)
_FIELD = re.compile(r"^\.(\d+)\s*:\s*(.+)$", re.S)
_DOWNCAST = re.compile(r"^as\s+(.+)$", re.S)
_GOTO = re.compile(r"^goto\s*->\s*bb(\d+)$")
_BB_REF = re.compile(r"bb(\d+)")
_REF_PREFIX = re.compile(r"^&(?:raw\s+(?:const|mut)\s+|mut\s+|fake\s+\w+\s+|fake\s+|shallow\s+)?")

_OPENERS = {"(": ")", "[": "]", "{": "}", "<": ">"}
_CLOSERS = {")", "]", "}", ">"}

_UNSUPPORTED_PREFIXES = (
    ("falseEdge", "FalseEdge"),
    ("falseUnwind", "FalseUnwind"),
    ("yield", "Yield"),
    ("generator_drop", "GeneratorDrop"),
    ("coroutine_drop", "GeneratorDrop"),
    ("asm!", "InlineAsm"),
    ("InlineAsm", "InlineAsm"),
    ("replace", "DropAndReplace"),
    ("tailcall", "TailCall"),
)


def _scan(text: str):
    """
    Yield (index, char, depth) for every character outside string literals.
    `depth` is the bracket nesting before the character; `->` does not close `<`.
    """
    depth = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            continue
        if ch == ">" and i > 0 and text[i - 1] == "-":
            yield i, ch, depth
            continue
        if ch == "<" and i + 1 < len(text) and text[i + 1] == "=":
            yield i, ch, depth
            continue
        yield i, ch, depth
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth = max(depth - 1, 0)


def _matching_close(text: str, open_idx: int) -> int:
    """Index of the bracket closing the one at `open_idx`, or -1."""
    target_depth = None
    for i, ch, depth in _scan(text):
        if i == open_idx:
            target_depth = depth
            continue
        if target_depth is not None and ch in _CLOSERS and depth == target_depth + 1:
            if ch == ">" and i > 0 and text[i - 1] == "-":
                continue
            return i
    return -1


def _split_top_level(text: str, sep: str = ",") -> list[str]:
    """Split on `sep` outside brackets and string literals."""
    parts: list[str] = []
    start = 0
    for i, ch, depth in _scan(text):
        if ch == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return [p.strip() for p in parts if p.strip()]


def _find_top_level(text: str, needle: str) -> int:
    for i, _ch, depth in _scan(text):
        if depth == 0 and text.startswith(needle, i):
            return i
    return -1


def _strip_comment(line: str) -> str:
    for i, ch, _depth in _scan(line):
        if ch == "/" and line.startswith("//", i):
            return line[:i].rstrip()
    return line.rstrip()


def parse_place(text: str) -> Optional[Place]:
    """Parse `_1`, `(*_1)`, `(_1.0: T)`, `((*_1).0: T)`, `(_1 as Some)`."""
    text = text.strip()
    if _LOCAL.fullmatch(text):
        return Place(text)
    if not text.startswith("(") or _matching_close(text, 0) != len(text) - 1:
        return None
    inner = text[1:-1].strip()
    if inner.startswith("*"):
        base = parse_place(inner[1:])
        return base.project(DEREF) if base else None
    if inner.startswith("("):
        close = _matching_close(inner, 0)
        if close < 0:
            return None
        base_text, rest = inner[: close + 1], inner[close + 1 :]
    else:
        m = _LOCAL.match(inner)
        if not m:
            return None
        base_text, rest = m.group(0), inner[m.end() :]
    base = parse_place(base_text)
    if base is None:
        return None
    rest = rest.strip()
    field_m = _FIELD.match(rest)
    if field_m:
        return base.project(int(field_m.group(1)), field_m.group(2).strip())
    downcast_m = _DOWNCAST.match(rest)
    if downcast_m:
        return base.project(("as", downcast_m.group(1).strip()))
    return None


def parse_operand(text: str) -> Operand:
    """Parse `move P`, `copy P`, `const C` or a bare place (older MIR dumps)."""
    text = text.strip()
    for kind in ("move", "copy"):
        if text.startswith(kind + " "):
            place = parse_place(text[len(kind) + 1 :])
            if place is not None:
                return Operand(kind, place, text)
            return Operand("const", None, text)
    if text.startswith("const "):
        return Operand("const", None, text[len("const ") :])
    place = parse_place(text)
    if place is not None:
        return Operand("copy", place, text)
    return Operand("const", None, text)


def _parse_field_operands(body: str) -> list[Operand]:
    """`a: move _1, b: const 2` -> operands in declaration order."""
    operands = []
    for item in _split_top_level(body):
        colon = _find_top_level(item, ": ")
        operands.append(parse_operand(item[colon + 2 :] if colon >= 0 else item))
    return operands


def parse_rvalue(text: str) -> Rvalue:
    """Parse the right-hand side of an assignment."""
    text = text.strip()
    ref_m = _REF_PREFIX.match(text)
    if ref_m and text.startswith("&"):
        place = parse_place(text[ref_m.end() :])
        return Ref(place) if place is not None else OtherRvalue(text)

    operand = parse_operand(text)
    if operand.place is not None or text.startswith("const "):
        return Use(operand)

    # Casts keep the value: `move _5 as Arc<dyn Any> (PointerCoercion(Unsize))`
    as_idx = _find_top_level(text, " as ")
    if as_idx > 0:
        cast_operand = parse_operand(text[:as_idx])
        if cast_operand.place is not None:
            return Use(cast_operand)

    if text.startswith("(") and _matching_close(text, 0) == len(text) - 1:
        return AggregateValue("tuple", [parse_operand(p) for p in _split_top_level(text[1:-1])])
    if text.startswith("[") and _matching_close(text, 0) == len(text) - 1:
        if _find_top_level(text[1:-1], ";") >= 0:
            return OtherRvalue(text)
        return AggregateValue("array", [parse_operand(p) for p in _split_top_level(text[1:-1])])

    # Closures and structs: `{closure@..} { a: move _1 }`, `Foo::<T> { a: move _1 }`
    if text.endswith("}"):
        for i, ch, depth in _scan(text):
            if ch == "{" and depth == 0 and i > 0 and _matching_close(text, i) == len(text) - 1:
                kind = "closure" if "closure@" in text[:i] else "struct"
                return AggregateValue(kind, _parse_field_operands(text[i + 1 : -1]))
    # Tuple structs and enum variants: `Option::<T>::Some(move _5)`
    if text.endswith(")"):
        for i, ch, depth in _scan(text):
            if ch == "(" and depth == 0 and i > 0:
                if _matching_close(text, i) == len(text) - 1:
                    return AggregateValue(
                        text[:i].strip(), [parse_operand(p) for p in _split_top_level(text[i + 1 : -1])]
                    )
                break
    return OtherRvalue(text)


def parse_statement(text: str) -> Statement:
    eq = _find_top_level(text, " = ")
    if eq > 0:
        place = parse_place(text[:eq])
        if place is not None:
            return Assign(place, parse_rvalue(text[eq + 3 :]))
    return Nop(text)


def normalize_path(raw: str) -> str:
    """
    Reduce a callee path to the form used to recognize functions:
    `std::sync::Mutex::<i32>::lock` -> `std::sync::Mutex::lock`,
    `<std::sync::Arc<T> as std::clone::Clone>::clone` -> `std::clone::Clone::clone`.
    """
    path = raw.strip()
    if path.startswith("const "):
        path = path[len("const ") :]
    if path.startswith("<"):
        close = _matching_close(path, 0)
        if close > 0:
            inner = path[1:close]
            as_idx = _find_top_level(inner, " as ")
            head = inner[as_idx + 4 :] if as_idx >= 0 else inner
            path = head + path[close + 1 :]
    out = []
    skip_until = -1
    for i, ch, depth in _scan(path):
        if i <= skip_until:
            continue
        if ch == "<" and depth == 0:
            skip_until = _matching_close(path, i)
            if skip_until < 0:
                break
            continue
        out.append(ch)
    return re.sub(r"::(?=::|$)", "", "".join(out))


def qualified_self_type(raw: str) -> Optional[str]:
    """`<{closure@a.rs:1:1: 1:2} as std::ops::FnOnce<()>>::call_once` -> `{closure@a.rs:1:1: 1:2}`."""
    raw = raw.strip()
    if not raw.startswith("<"):
        return None
    close = _matching_close(raw, 0)
    if close < 0:
        return None
    inner = raw[1:close]
    as_idx = _find_top_level(inner, " as ")
    return inner[:as_idx].strip() if as_idx >= 0 else inner.strip()


_TRAIT_OBJECT = re.compile(r"(?<![\w/.:-])dyn\s")


def is_dynamic_dispatch(raw: str) -> bool:
    """
    True when the self type of a qualified callee is or wraps a trait object:
    `<dyn T as T>::m`, `<&mut dyn T as T>::m`, `<(dyn T + Send) as T>::m`,
    `<Box<dyn Fn()> as Fn<()>>::call`.
    """
    self_type = qualified_self_type(raw)
    if not self_type:
        return False
    visible = {i for i, _ch, _depth in _scan(self_type)}
    text = "".join(ch if i in visible else " " for i, ch in enumerate(self_type))
    return _TRAIT_OBJECT.search(text) is not None


def _parse_targets(text: str) -> tuple[Optional[int], Optional[int]]:
    """
    Parse the part after `->`: `bb1`, `[return: bb1, unwind: bb2]`,
    `[success: bb1, unwind continue]`, `unwind continue`, `[return: bb1, cleanup: bb2]`.
    Returns (return target, unwind target).
    """
    text = text.strip()
    target: Optional[int] = None
    unwind: Optional[int] = None
    items = _split_top_level(text[1:-1]) if text.startswith("[") and text.endswith("]") else [text]
    for item in items:
        bb_m = _BB_REF.search(item)
        if item.startswith(("return", "success", "real")) or re.fullmatch(r"bb\d+", item):
            target = int(bb_m.group(1)) if bb_m else None
        elif item.startswith(("unwind", "cleanup")) and bb_m:
            unwind = int(bb_m.group(1))
    return target, unwind


def _split_arrow(text: str) -> tuple[str, str]:
    idx = _find_top_level(text, "->")
    if idx < 0:
        return text.strip(), ""
    return text[:idx].strip(), text[idx + 2 :].strip()


def _parse_call(text: str) -> Optional[TerminatorCall]:
    destination: Optional[Place] = None
    eq = _find_top_level(text, " = ")
    call_text = text
    if eq > 0:
        destination = parse_place(text[:eq])
        if destination is None:
            return None
        call_text = text[eq + 3 :]
    open_idx = -1
    for i, ch, depth in _scan(call_text):
        if ch == "(" and depth == 0:
            open_idx = i
            break
    if open_idx <= 0:
        return None
    close = _matching_close(call_text, open_idx)
    if close < 0:
        return None
    raw_callee = call_text[:open_idx].strip()
    rest = call_text[close + 1 :].strip()
    if not rest.startswith("->"):
        return None
    target, unwind = _parse_targets(rest[2:])

    callee_operand = parse_operand(raw_callee)
    if callee_operand.place is not None:
        callee = Callee(name=callee_operand.place.local, raw=raw_callee, place=callee_operand.place)
    else:
        callee = Callee(name=normalize_path(raw_callee), raw=raw_callee)
    args = [parse_operand(a) for a in _split_top_level(call_text[open_idx + 1 : close])]
    return TerminatorCall(
        destination=destination,
        callee=callee,
        args=args,
        return_target=target,
        unwind_target=unwind,
    )


def parse_terminator(text: str) -> Optional[Terminator]:
    """Parse the last line of a basic block (without the trailing `;`)."""
    text = text.strip()
    if text.endswith(";"):
        text = text[:-1].rstrip()

    goto_m = _GOTO.match(text)
    if goto_m:
        return TerminatorGoto(target_bb=int(goto_m.group(1)))
    if text == "return":
        return TerminatorReturn()
    if text in ("resume", "UnwindResume"):
        return TerminatorResume()
    if text in ("abort", "terminate") or text.startswith("UnwindTerminate"):
        return TerminatorAbort()
    if text == "unreachable":
        return TerminatorUnreachable()
    for prefix, kind in _UNSUPPORTED_PREFIXES:
        if text.startswith(prefix):
            return TerminatorUnsupported(kind=kind, text=text)
    if text.startswith("switchInt("):
        _, targets = _split_arrow(text[_matching_close(text, len("switchInt")) + 1 :])
        return TerminatorSwitch(targets=[int(x) for x in _BB_REF.findall(targets)])
    if text.startswith("drop(") or text.startswith("assert("):
        open_idx = text.index("(")
        close = _matching_close(text, open_idx)
        if close < 0:
            return None
        _, targets = _split_arrow(text[close + 1 :])
        target, unwind = _parse_targets(targets)
        if target is None:
            return None
        if text.startswith("assert("):
            return TerminatorAssert(return_target=target, unwind_target=unwind)
        place = parse_place(text[open_idx + 1 : close])
        if place is None:
            return None
        return TerminatorDrop(place=place, return_target=target, unwind_target=unwind)
    return _parse_call(text)


def _parse_header(line: str, line_no: int) -> tuple[str, list[LocalDecl]]:
    m = _FN_HEADER.match(line)
    fn_name = m.group(1).strip()
    open_idx = m.end() - 1
    close = _matching_close(line, open_idx)
    if close < 0:
        raise ParseError("unbalanced parameter list", function=fn_name, line=line_no)
    params = []
    for item in _split_top_level(line[open_idx + 1 : close]):
        pm = _PARAM.match(item)
        if pm:
            params.append(LocalDecl(name=pm.group(1), ty_str=pm.group(2).strip()))
    return fn_name, params


def parse_mir(text: str) -> MirProgram:
    """
    Parse MIR text and return the program with every function body found.
    Items that are not functions (consts, statics, promoteds) are skipped.
    """
    functions: list[MirFunction] = []
    lines = text.split("\n")
    i = 0
    while i < len(lines):
        line = lines[i].rstrip()
        if not (_FN_HEADER.match(line) and line.endswith("{")):
            i += 1
            continue
        fn_start = i + 1
        fn_name = _FN_HEADER.match(line).group(1).strip()
        j = i + 1
        while j < len(lines) and lines[j].rstrip() != "}":
            j += 1
        try:
            name, params = _parse_header(line, fn_start)
            functions.append(_parse_function_body(name, params, lines[i + 1 : j], fn_start))
        except ParseError:
            raise
        except Exception as e:
            raise ParseError(str(e), function=fn_name, line=fn_start) from e
        i = j + 1
    return MirProgram(functions=functions)


def _parse_function_body(
    fn_name: str, params: list[LocalDecl], lines: list[str], fn_start_line: int
) -> MirFunction:
    """Parse function body: locals and basic blocks."""
    locals_list: list[LocalDecl] = []
    basic_blocks: list[BasicBlock] = []
    seen_bb = False
    i = 0

    while i < len(lines):
        stripped = _strip_comment(lines[i]).strip()

        # Locals only before first bb
        let_m = _LET.search(stripped)
        if let_m and not seen_bb:
            locals_list.append(
                LocalDecl(
                    name=let_m.group(2),
                    ty_str=let_m.group(3).strip(),
                    is_mut=let_m.group(1) is not None,
                )
            )
            i += 1
            continue

        bb_m = _BB.match(stripped)
        if not bb_m:
            i += 1
            continue

        seen_bb = True
        bb_id = int(bb_m.group(1))
        line_start = fn_start_line + i + 1
        block_lines: list[str] = []
        j = i + 1
        while j < len(lines):
            bl = _strip_comment(lines[j]).strip()
            j += 1
            if bl == "}":
                break
            if bl:
                block_lines.append(bl)

        if not block_lines:
            raise ParseError("no terminator found", fn_name, f"bb{bb_id}", line_start)
        terminator = parse_terminator(block_lines[-1])
        if terminator is None:
            raise ParseError(
                f"unrecognized terminator `{block_lines[-1]}`",
                fn_name,
                f"bb{bb_id}",
                line_start + len(block_lines),
            )
        basic_blocks.append(
            BasicBlock(
                bb_id=bb_id,
                statements=[parse_statement(s.rstrip(";").rstrip()) for s in block_lines[:-1]],
                terminator=terminator,
                is_cleanup=bb_m.group(2) is not None,
                line_start=line_start,
            )
        )
        i = j

    return MirFunction(
        name=fn_name,
        params=params,
        locals=locals_list,
        basic_blocks=basic_blocks,
        line_start=fn_start_line,
    )
