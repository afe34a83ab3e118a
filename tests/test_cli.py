"""
Tests for the mir2petri command line.
Uses unittest (standard library only).
"""

import contextlib
import io
import json
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import mir2petri

MINIMAL_MIR = """
fn main() -> () {
    let mut _0: ();
    bb0: {
        return;
    }
}
"""

RECURSIVE_MIR = """
fn main() -> () {
    let mut _0: ();
    let _1: ();
    bb0: {
        _1 = main() -> [return: bb1, unwind continue];
    }
    bb1: {
        return;
    }
}
"""


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _run(self, *argv: str) -> tuple[int, str]:
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            code = mir2petri.main(list(argv))
        return code, stderr.getvalue()

    def _mir(self, text: str) -> str:
        path = self.tmp / "input.mir"
        path.write_text(text, encoding="utf-8")
        return str(path)

    def test_writes_all_formats_by_default(self) -> None:
        code, _ = self._run("--mir", self._mir(MINIMAL_MIR), "--output-folder", str(self.tmp))
        self.assertEqual(code, 0)
        for ext in ("dot", "lola", "pnml"):
            self.assertTrue((self.tmp / f"net.{ext}").exists(), ext)

    def test_selected_format_and_filename(self) -> None:
        out = self.tmp / "out"
        code, _ = self._run(
            "--mir", self._mir(MINIMAL_MIR),
            "--output-folder", str(out),
            "--filename", "test",
            "--format", "lola",
        )
        self.assertEqual(code, 0)
        self.assertTrue((out / "test.lola").exists())
        self.assertFalse((out / "test.dot").exists())
        self.assertTrue((out / "test.lola").read_text(encoding="utf-8").startswith("PLACE\n"))

    def test_dump_json(self) -> None:
        dump = self.tmp / "net.json"
        code, _ = self._run(
            "--mir", self._mir(MINIMAL_MIR),
            "--output-folder", str(self.tmp),
            "--format", "dot",
            "--dump-json", str(dump),
        )
        self.assertEqual(code, 0)
        data = json.loads(dump.read_text(encoding="utf-8"))
        self.assertEqual([t["id"] for t in data["transitions"]], ["main_RETURN"])
        self.assertEqual(data["initial_marking"], {"PROGRAM_START": 1})
        self.assertEqual(data["warnings"], [])

    def test_missing_input(self) -> None:
        code, err = self._run("--mir", str(self.tmp / "missing.mir"))
        self.assertEqual(code, 1)
        self.assertIn("not found", err)

    def test_parse_error(self) -> None:
        code, err = self._run(
            "--mir", self._mir("fn main() -> () {\n    bb0: {\n        nonsense;\n    }\n}\n"),
            "--output-folder", str(self.tmp),
        )
        self.assertEqual(code, 1)
        self.assertIn("Parse error", err)

    def test_no_functions(self) -> None:
        code, err = self._run("--mir", self._mir("// empty\n"), "--output-folder", str(self.tmp))
        self.assertEqual(code, 1)
        self.assertIn("no functions", err)

    def test_translation_error(self) -> None:
        code, err = self._run("--mir", self._mir(RECURSIVE_MIR), "--output-folder", str(self.tmp))
        self.assertEqual(code, 2)
        self.assertIn("recursive", err)
        self.assertFalse((self.tmp / "net.dot").exists())

    def test_unknown_entry_function(self) -> None:
        code, err = self._run(
            "--mir", self._mir(MINIMAL_MIR),
            "--output-folder", str(self.tmp),
            "--entry-fn", "start",
        )
        self.assertEqual(code, 2)
        self.assertIn("start", err)


if __name__ == "__main__":
    unittest.main()
