"""
Tests for the DOT, LoLA and PNML writers and the PNML reader.
Uses unittest (standard library only).
"""

import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dot_writer import net_to_dot, write_dot
from lola_writer import net_to_lola
from mir_parser import parse_mir
from pn_builder import build_petri_net
from pn_model import PetriNet
from pnml_reader import PnmlFormatError, pnml_to_net, read_pnml
from pnml_writer import net_to_pnml, write_pnml

MINIMAL_MIR = """
fn main() -> () {
    let mut _0: ();

    bb0: {
        return;
    }
}
"""

MINIMAL_PROGRAM_DOT_OUTPUT = """digraph petrinet {
    PROGRAM_END [shape="circle" xlabel="PROGRAM_END" label=""];
    PROGRAM_PANIC [shape="circle" xlabel="PROGRAM_PANIC" label=""];
    PROGRAM_START [shape="circle" xlabel="PROGRAM_START" label="•"];
    main_RETURN [shape="box" xlabel="" label="main_RETURN"];
    PROGRAM_START -> main_RETURN;
    main_RETURN -> PROGRAM_END;
}
"""

MINIMAL_PROGRAM_LOLA_OUTPUT = """PLACE
    PROGRAM_END,
    PROGRAM_PANIC,
    PROGRAM_START;

MARKING
    PROGRAM_START : 1;

TRANSITION main_RETURN
  CONSUME
    PROGRAM_START : 1;
  PRODUCE
    PROGRAM_END : 1;
"""

MINIMAL_PROGRAM_PNML_OUTPUT = """<?xml version="1.0" encoding="utf-8"?>
<pnml xmlns="http://www.pnml.org/version-2009/grammar/pnml">
  <net id="net0" type="http://www.pnml.org/version-2009/grammar/ptnet">
    <page id="page0">
      <place id="PROGRAM_END">
        <name>
          <text>PROGRAM_END</text>
        </name>
      </place>
      <place id="PROGRAM_PANIC">
        <name>
          <text>PROGRAM_PANIC</text>
        </name>
      </place>
      <place id="PROGRAM_START">
        <name>
          <text>PROGRAM_START</text>
        </name>
        <initialMarking>
          <text>1</text>
        </initialMarking>
      </place>
      <transition id="main_RETURN">
        <name>
          <text>main_RETURN</text>
        </name>
      </transition>
      <arc source="PROGRAM_START" target="main_RETURN" id="(PROGRAM_START, main_RETURN)">
        <name>
          <text>(PROGRAM_START, main_RETURN)</text>
        </name>
        <inscription>
          <text>1</text>
        </inscription>
      </arc>
      <arc source="main_RETURN" target="PROGRAM_END" id="(main_RETURN, PROGRAM_END)">
        <name>
          <text>(main_RETURN, PROGRAM_END)</text>
        </name>
        <inscription>
          <text>1</text>
        </inscription>
      </arc>
    </page>
  </net>
</pnml>"""


def _weighted_net() -> PetriNet:
    net = PetriNet()
    net.add_place("P0", init_tokens=2)
    net.add_place("P1")
    net.add_transition("T0")
    net.add_transition("T1")
    net.add_arc_place_transition("P0", "T0", 2)
    net.add_arc_transition_place("T0", "P1")
    net.add_arc_place_transition("P1", "T1")
    net.add_arc_transition_place("T1", "P0")
    net.add_arc_transition_place("T1", "P1")
    return net


class TestMinimalProgramOutputs(unittest.TestCase):
    def setUp(self) -> None:
        self.net = build_petri_net(parse_mir(MINIMAL_MIR))

    def test_dot(self) -> None:
        self.assertEqual(net_to_dot(self.net), MINIMAL_PROGRAM_DOT_OUTPUT)

    def test_lola(self) -> None:
        self.assertEqual(net_to_lola(self.net), MINIMAL_PROGRAM_LOLA_OUTPUT)

    def test_pnml(self) -> None:
        self.assertEqual(net_to_pnml(self.net), MINIMAL_PROGRAM_PNML_OUTPUT)

    def test_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            dot_path = Path(tmp) / "net.dot"
            pnml_path = Path(tmp) / "net.pnml"
            write_dot(self.net, str(dot_path))
            write_pnml(self.net, str(pnml_path))
            self.assertEqual(dot_path.read_text(encoding="utf-8"), MINIMAL_PROGRAM_DOT_OUTPUT)
            self.assertEqual(pnml_path.read_text(encoding="utf-8"), MINIMAL_PROGRAM_PNML_OUTPUT)


class TestWeightedNet(unittest.TestCase):
    def test_dot_weights_and_marking(self) -> None:
        dot = net_to_dot(_weighted_net())
        self.assertIn('    P0 [shape="circle" xlabel="P0" label="2"];', dot)
        self.assertIn('    P0 -> T0 [label="2"];', dot)
        self.assertIn("    T1 -> P0;", dot)

    def test_lola_lists(self) -> None:
        lola = net_to_lola(_weighted_net())
        self.assertIn("MARKING\n    P0 : 2;\n", lola)
        self.assertIn(
            "TRANSITION T1\n  CONSUME\n    P1 : 1;\n  PRODUCE\n    P0 : 1,\n    P1 : 1;\n", lola
        )

    def test_lola_empty_marking(self) -> None:
        net = PetriNet()
        net.add_place("P")
        self.assertEqual(net_to_lola(net), "PLACE\n    P;\n\nMARKING;\n")

    def test_pnml_inscription(self) -> None:
        pnml = net_to_pnml(_weighted_net())
        self.assertIn('<arc source="P0" target="T0" id="(P0, T0)">', pnml)
        self.assertIn("<text>2</text>", pnml)


class TestPnmlReader(unittest.TestCase):
    def test_round_trip(self) -> None:
        for net in (build_petri_net(parse_mir(MINIMAL_MIR)), _weighted_net()):
            text = net_to_pnml(net)
            read_back = pnml_to_net(text)
            self.assertEqual(net_to_pnml(read_back), text)
            self.assertEqual(net_to_lola(read_back), net_to_lola(net))
            self.assertEqual(read_back.initial_marking, net.initial_marking)

    def test_read_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = str(Path(tmp) / "net.pnml")
            write_pnml(_weighted_net(), path)
            net = read_pnml(path)
        self.assertEqual(net.arc("P0", "T0").weight, 2)
        self.assertEqual(net.place_by_id("P0").init_tokens, 2)

    def test_invalid_documents(self) -> None:
        with self.assertRaises(PnmlFormatError):
            pnml_to_net("<pnml><net")
        with self.assertRaises(PnmlFormatError):
            pnml_to_net("<petrinet/>")
        with self.assertRaises(PnmlFormatError):
            pnml_to_net("<pnml/>")
        with self.assertRaises(PnmlFormatError):
            pnml_to_net(
                '<pnml><net id="n"><place id="A"/><place id="A"/></net></pnml>'
            )


if __name__ == "__main__":
    unittest.main()
