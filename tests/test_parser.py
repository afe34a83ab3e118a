"""
Unit tests for MIR parser.
Uses unittest (standard library only).
"""

import sys
import unittest
from pathlib import Path

# Add parent of tests dir for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mir_model import (
    DEREF,
    AggregateValue,
    Assign,
    BasicBlock,
    MirFunction,
    Nop,
    OtherRvalue,
    Place,
    Ref,
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
from mir_parser import (
    ParseError,
    is_dynamic_dispatch,
    normalize_path,
    parse_mir,
    parse_place,
    parse_rvalue,
    parse_statement,
    parse_terminator,
    qualified_self_type,
)


# Minimal MIR with lock and drop
MINIMAL_MIR = """
// WARNING: This output format is intended for human consumers only
fn main() -> () {
    let mut _0: ();
    let _1: std::sync::Mutex<i32>;
    let _2: std::sync::MutexGuard<'_, i32>;
    let mut _3: &std::sync::Mutex<i32>;
    scope 1 {
        debug m => _1;
    }

    bb0: {
        _1 = std::sync::Mutex::<i32>::new(const 0_i32) -> [return: bb1, unwind continue];
    }

    bb1: {
        StorageLive(_3);
        _3 = &_1;
        _2 = std::sync::Mutex::<i32>::lock(move _3) -> [return: bb2, unwind: bb3];
    }

    bb2: {
        drop(_2) -> [return: bb4, unwind: bb3];
    }

    bb3 (cleanup): {
        resume;
    }

    bb4: {
        return;
    }
}
"""


class TestParser(unittest.TestCase):
    def test_parse_function_name(self) -> None:
        program = parse_mir(MINIMAL_MIR)
        self.assertEqual(len(program.functions), 1)
        self.assertEqual(program.functions[0].name, "main")

    def test_parse_locals(self) -> None:
        fn = parse_mir(MINIMAL_MIR).functions[0]
        self.assertEqual(fn.local_type("_1"), "std::sync::Mutex<i32>")
        self.assertEqual(fn.local_type("_2"), "std::sync::MutexGuard<'_, i32>")
        self.assertEqual(fn.local_type("_9"), "")
        self.assertTrue(fn.locals[0].is_mut)

    def test_parse_basic_blocks(self) -> None:
        fn = parse_mir(MINIMAL_MIR).functions[0]
        self.assertEqual([bb.bb_id for bb in fn.basic_blocks], [0, 1, 2, 3, 4])
        self.assertTrue(fn.block(3).is_cleanup)
        self.assertFalse(fn.block(2).is_cleanup)

    def test_parse_cfg_edges(self) -> None:
        fn = parse_mir(MINIMAL_MIR).functions[0]
        self.assertEqual(fn.block(1).terminator.return_target, 2)
        self.assertEqual(fn.block(1).terminator.unwind_target, 3)
        self.assertEqual(fn.block(2).terminator.return_target, 4)
        self.assertIsInstance(fn.block(3).terminator, TerminatorResume)
        self.assertIsInstance(fn.block(4).terminator, TerminatorReturn)

    def test_parse_call_terminator(self) -> None:
        fn = parse_mir(MINIMAL_MIR).functions[0]
        call = fn.block(1).terminator
        self.assertIsInstance(call, TerminatorCall)
        self.assertEqual(call.destination, Place("_2"))
        self.assertEqual(call.callee.name, "std::sync::Mutex::lock")
        self.assertEqual(len(call.args), 1)
        self.assertEqual(call.args[0].kind, "move")
        self.assertEqual(call.args[0].place, Place("_3"))

    def test_parse_call_without_unwind_block(self) -> None:
        call = parse_mir(MINIMAL_MIR).functions[0].block(0).terminator
        self.assertEqual(call.return_target, 1)
        self.assertIsNone(call.unwind_target)
        self.assertEqual(call.args[0].kind, "const")

    def test_parse_drop_terminator(self) -> None:
        drop = parse_mir(MINIMAL_MIR).functions[0].block(2).terminator
        self.assertIsInstance(drop, TerminatorDrop)
        self.assertEqual(drop.place, Place("_2"))

    def test_statements(self) -> None:
        bb1 = parse_mir(MINIMAL_MIR).functions[0].block(1)
        self.assertIsInstance(bb1.statements[0], Nop)
        self.assertEqual(bb1.statements[1], Assign(Place("_3"), Ref(Place("_1"))))

    def test_parameters_from_header(self) -> None:
        program = parse_mir(
            "fn worker(_1: &std::sync::Mutex<i32>, _2: usize) -> () {\n"
            "    bb0: {\n"
            "        return;\n"
            "    }\n"
            "}\n"
        )
        fn = program.function("worker")
        self.assertEqual([p.name for p in fn.params], ["_1", "_2"])
        self.assertEqual(fn.local_type("_1"), "&std::sync::Mutex<i32>")

    def test_closure_lookup(self) -> None:
        program = parse_mir(
            "fn main::{closure#0}(_1: {closure@src/main.rs:4:26: 4:28}) -> () {\n"
            "    bb0: {\n"
            "        return;\n"
            "    }\n"
            "}\n"
        )
        fn = program.closure_function("&{closure@src/main.rs:4:26: 4:28}")
        self.assertIsNotNone(fn)
        self.assertEqual(fn.name, "main::{closure#0}")
        self.assertIsNone(program.closure_function("{closure@src/main.rs:9:1: 9:3}"))

    def test_unrecognized_terminator(self) -> None:
        with self.assertRaises(ParseError) as cm:
            parse_mir("fn main() -> () {\n    bb0: {\n        frobnicate;\n    }\n}\n")
        self.assertEqual(cm.exception.function, "main")
        self.assertEqual(cm.exception.basic_block, "bb0")
        self.assertIn("frobnicate", str(cm.exception))

    def test_empty_block(self) -> None:
        with self.assertRaises(ParseError):
            parse_mir("fn main() -> () {\n    bb0: {\n    }\n}\n")

    def test_block_lookup(self) -> None:
        fn = MirFunction("f", basic_blocks=[BasicBlock(0), BasicBlock(2)])
        self.assertEqual(fn.block(2).bb_id, 2)
        self.assertIsNone(fn.block(1))
        fn.basic_blocks.append(BasicBlock(1))
        self.assertEqual(fn.block(1).bb_id, 1)


class TestPlacesAndRvalues(unittest.TestCase):
    def test_places(self) -> None:
        self.assertEqual(parse_place("_4"), Place("_4"))
        self.assertEqual(parse_place("(*_4)"), Place("_4", (DEREF,)))
        field = parse_place("((*_1).0: std::sync::Arc<std::sync::Mutex<i32>>)")
        self.assertEqual(field.local, "_1")
        self.assertEqual(field.projection, (DEREF, 0))
        self.assertEqual(field.ty, "std::sync::Arc<std::sync::Mutex<i32>>")
        self.assertEqual(field.field_index, 0)
        downcast = parse_place("(_3 as Ok)")
        self.assertEqual(downcast.projection, (("as", "Ok"),))
        self.assertIsNone(parse_place("const 5_i32"))

    def test_rvalues(self) -> None:
        self.assertIsInstance(parse_rvalue("move _2"), Use)
        self.assertIsInstance(parse_rvalue("&mut _2"), Ref)
        self.assertIsInstance(parse_rvalue("&raw const _2"), Ref)
        cast = parse_rvalue("move _5 as std::sync::Arc<dyn std::any::Any> (PointerCoercion(Unsize))")
        self.assertIsInstance(cast, Use)
        self.assertEqual(cast.operand.place, Place("_5"))
        variant = parse_rvalue("Option::<std::sync::MutexGuard<'_, i32>>::Some(move _5)")
        self.assertIsInstance(variant, AggregateValue)
        self.assertEqual(variant.operands[0].place, Place("_5"))
        self.assertIsInstance(parse_rvalue("[const 0_u8; 4]"), OtherRvalue)

    def test_closure_aggregate(self) -> None:
        rvalue = parse_rvalue("{closure@src/main.rs:9:32: 9:39} { m: move _4, cv: move _5 }")
        self.assertIsInstance(rvalue, AggregateValue)
        self.assertEqual(rvalue.kind, "closure")
        self.assertEqual([op.place for op in rvalue.operands], [Place("_4"), Place("_5")])

    def test_tuple_aggregate(self) -> None:
        rvalue = parse_rvalue("(move _2, const 5_i32)")
        self.assertEqual(rvalue.kind, "tuple")
        self.assertEqual(rvalue.operands[0].place, Place("_2"))
        self.assertIsNone(rvalue.operands[1].place)

    def test_statement_with_field_destination(self) -> None:
        statement = parse_statement("(_3.1: std::sync::Condvar) = move _4")
        self.assertIsInstance(statement, Assign)
        self.assertEqual(statement.place.field_index, 1)


class TestTerminators(unittest.TestCase):
    def test_simple_terminators(self) -> None:
        self.assertEqual(parse_terminator("goto -> bb7;"), TerminatorGoto(7))
        self.assertIsInstance(parse_terminator("UnwindResume;"), TerminatorResume)
        self.assertIsInstance(parse_terminator("unreachable;"), TerminatorUnreachable)
        self.assertIsInstance(parse_terminator("UnwindTerminate(ReasonInCleanup);"), TerminatorAbort)

    def test_switch_int(self) -> None:
        switch = parse_terminator("switchInt(move _2) -> [0: bb2, otherwise: bb1];")
        self.assertIsInstance(switch, TerminatorSwitch)
        self.assertEqual(switch.targets, [2, 1])

    def test_assert(self) -> None:
        term = parse_terminator(
            'assert(!move (_5.1: bool), "attempt to compute `{} + {}`, which would overflow", '
            "copy _1, const 1_i32) -> [success: bb2, unwind continue];"
        )
        self.assertIsInstance(term, TerminatorAssert)
        self.assertEqual(term.return_target, 2)
        self.assertIsNone(term.unwind_target)

    def test_unsupported(self) -> None:
        term = parse_terminator("falseEdge -> [real: bb4, imaginary: bb3];")
        self.assertIsInstance(term, TerminatorUnsupported)
        self.assertEqual(term.kind, "FalseEdge")
        self.assertEqual(parse_terminator("yield(move _3) -> [resume: bb1, drop: bb2];").kind, "Yield")

    def test_diverging_call(self) -> None:
        term = parse_terminator('core::panicking::panic(const "explicit panic") -> unwind continue;')
        self.assertIsInstance(term, TerminatorCall)
        self.assertIsNone(term.destination)
        self.assertIsNone(term.return_target)
        self.assertEqual(term.callee.name, "core::panicking::panic")

    def test_function_pointer_call(self) -> None:
        term = parse_terminator("_2 = move _1() -> [return: bb1, unwind continue];")
        self.assertIsNotNone(term.callee.place)
        self.assertEqual(term.args, [])


class TestPaths(unittest.TestCase):
    def test_normalize_path(self) -> None:
        self.assertEqual(normalize_path("std::sync::Mutex::<i32>::lock"), "std::sync::Mutex::lock")
        self.assertEqual(
            normalize_path("<std::sync::Arc<std::sync::Mutex<i32>> as std::clone::Clone>::clone"),
            "std::clone::Clone::clone",
        )
        self.assertEqual(
            normalize_path("std::thread::spawn::<{closure@src/main.rs:9:32: 9:39}, ()>"),
            "std::thread::spawn",
        )
        self.assertEqual(normalize_path("std::thread::JoinHandle::<()>::join"), "std::thread::JoinHandle::join")

    def test_qualified_self_type(self) -> None:
        self.assertEqual(
            qualified_self_type("<{closure@src/main.rs:3:13: 3:15} as std::ops::FnOnce<()>>::call_once"),
            "{closure@src/main.rs:3:13: 3:15}",
        )
        self.assertIsNone(qualified_self_type("std::ops::FnOnce::call_once"))

    def test_dynamic_dispatch(self) -> None:
        self.assertTrue(is_dynamic_dispatch("<dyn Shape as Shape>::area"))
        self.assertTrue(is_dynamic_dispatch("<&mut dyn Shape as Shape>::area"))
        self.assertTrue(is_dynamic_dispatch("<(dyn Shape + std::marker::Send) as Shape>::area"))
        self.assertTrue(is_dynamic_dispatch("<std::boxed::Box<dyn std::ops::Fn()> as std::ops::Fn<()>>::call"))
        self.assertFalse(is_dynamic_dispatch("<{closure@src/dyn.rs:3:13: 3:15} as std::ops::Fn<()>>::call"))
        self.assertFalse(is_dynamic_dispatch("<std::sync::Arc<T> as std::clone::Clone>::clone"))
        self.assertFalse(is_dynamic_dispatch("dyn_helper"))


if __name__ == "__main__":
    unittest.main()
