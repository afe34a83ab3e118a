#!/usr/bin/env python3
"""
mir2petri: MIR text -> Petri net (DOT, LoLA, PNML).
CLI entry point. Uses only Python standard library.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

# Add parent of script dir for imports when run as script
_SCRIPT_DIR = Path(__file__).resolve().parent
if str(_SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(_SCRIPT_DIR))

from dot_writer import write_dot
from lola_writer import write_lola
from mir_parser import ParseError, parse_mir
from pn_builder import DEFAULT_MAX_CALL_DEPTH, build_petri_net
from pn_errors import TranslationError
from pn_model import PetriNet
from pnml_writer import write_pnml

logger = logging.getLogger(__name__)

WRITERS = {
    "dot": write_dot,
    "lola": write_lola,
    "pnml": write_pnml,
}


def _net_to_json_serializable(net: PetriNet) -> dict:
    """Convert PetriNet to JSON-serializable dict."""
    return {
        "places": [
            {
                "id": p.id,
                "name": p.name,
                "kind": p.kind,
                "init_tokens": p.init_tokens,
            }
            for p in net.sorted_places()
        ],
        "transitions": [
            {"id": t.id, "name": t.name, "kind": t.kind, "op": t.op}
            for t in net.sorted_transitions()
        ],
        "arcs": [
            {"id": a.id, "source": a.source, "target": a.target, "weight": a.weight}
            for a in net.sorted_arcs()
        ],
        "initial_marking": net.initial_marking,
        "warnings": net.warnings,
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mir2petri",
        description="Convert rustc MIR text to a Petri net modelling its concurrency.",
    )
    parser.add_argument("--mir", required=True, help="Input MIR text file")
    parser.add_argument(
        "--output-folder",
        default=".",
        metavar="DIR",
        help="Folder for the output files (default: current folder)",
    )
    parser.add_argument(
        "--filename",
        default="net",
        help="Output file name without extension (default: net)",
    )
    parser.add_argument(
        "--format",
        dest="formats",
        action="append",
        choices=sorted(WRITERS),
        help="Output format, may be repeated (default: dot, lola and pnml)",
    )
    parser.add_argument(
        "--entry-fn",
        default="main",
        help="Entry function name (default: main)",
    )
    parser.add_argument(
        "--max-call-depth",
        type=int,
        default=DEFAULT_MAX_CALL_DEPTH,
        metavar="N",
        help=f"Maximum depth of nested calls (default: {DEFAULT_MAX_CALL_DEPTH})",
    )
    parser.add_argument(
        "--dump-json",
        metavar="FILE",
        help="Optional: dump internal Petri net as JSON for debugging",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress to stderr; repeat for debug output",
    )
    return parser


def _configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    formats = args.formats or sorted(WRITERS)

    mir_path = Path(args.mir)
    if not mir_path.exists():
        print(f"Error: MIR file not found: {mir_path}", file=sys.stderr)
        return 1

    try:
        text = mir_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        print(f"Error: cannot read MIR file: {e}", file=sys.stderr)
        return 1

    try:
        program = parse_mir(text)
    except ParseError as e:
        print(f"Parse error: {e}", file=sys.stderr)
        return 1

    if not program.functions:
        print("Error: no functions parsed from MIR", file=sys.stderr)
        return 1
    logger.info("parsed %d functions from %s", len(program.functions), mir_path)

    try:
        net = build_petri_net(
            program,
            entry_fn=args.entry_fn,
            max_call_depth=args.max_call_depth,
        )
    except TranslationError as e:
        print(f"Translation error: {e}", file=sys.stderr)
        return 2

    output_folder = Path(args.output_folder)
    try:
        output_folder.mkdir(parents=True, exist_ok=True)
        for fmt in formats:
            out = output_folder / f"{args.filename}.{fmt}"
            WRITERS[fmt](net, str(out))
            logger.info("wrote %s", out)
    except OSError as e:
        print(f"Error: cannot write output: {e}", file=sys.stderr)
        return 1

    if args.dump_json:
        dump_data = _net_to_json_serializable(net)
        try:
            Path(args.dump_json).write_text(
                json.dumps(dump_data, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            print(f"Warning: cannot write dump-json: {e}", file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
