from __future__ import annotations

import argparse
import ast
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from .core.exceptions import EvaluationError
from .core.interpreter import ExecutionConfig
from .core.program import Program
from .logger import get_logger


def _load_program(path: Path) -> Program:
    try:
        source = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:  # pragma: no cover
        raise SystemExit(f"Program file not found: {path}") from exc
    return Program(source)


def _load_value(text: str) -> Any:
    lowered = text.lower()
    if lowered.endswith(".npy"):
        return np.load(text)
    if lowered.endswith(".json"):
        return json.loads(Path(text).read_text(encoding="utf-8"))
    try:
        return ast.literal_eval(text)
    except (ValueError, SyntaxError) as exc:
        raise SystemExit(f"Cannot read argument value '{text}'") from exc


def _parse_args(pairs: List[str]) -> Dict[str, Any]:
    named: Dict[str, Any] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise SystemExit(f"Expected NAME=VALUE, got '{pair}'")
        named[name.lstrip("%")] = _load_value(value)
    return named


def _write_output(path: Path, results: List[Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    arrays = [np.asarray(value) for value in results]
    suffix = str(path).lower()
    if suffix.endswith(".npz"):
        np.savez(path, *arrays)
    elif suffix.endswith(".json"):
        payload = [arr.tolist() for arr in arrays]
        path.write_text(
            json.dumps(payload[0] if len(payload) == 1 else payload, indent=2),
            encoding="utf-8",
        )
    else:
        if len(arrays) != 1:
            raise SystemExit("Multiple results need an .npz or .json output path")
        np.save(path, arrays[0])


def _run(
    program_path: Path,
    arg_pairs: List[str],
    out: Optional[Path],
    on_failure: str,
) -> int:
    program = _load_program(program_path)
    runner = program.compile(config=ExecutionConfig(on_failure=on_failure))
    try:
        results = runner(**_parse_args(arg_pairs))
    except EvaluationError as exc:
        for failure in exc.failures:
            print(f"[failure] {failure}", file=sys.stderr)
        return 1
    for failure in runner.failures:
        print(f"[failure] {failure}", file=sys.stderr)
    if out is not None:
        _write_output(out, results)
        return 0
    np.set_printoptions(suppress=True)
    for position, value in enumerate(results):
        print(f"# result {position}")
        print(np.asarray(value) if value is not None else "<no value>")
    return 0


def _explain(program_path: Path, as_json: bool) -> int:
    program = _load_program(program_path)
    report = program.explain(json=as_json)
    if as_json:
        print(json.dumps(report, indent=2))
    else:
        print(report)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tensoreval command line utilities")
    subparsers = parser.add_subparsers(dest="cmd")

    run_parser = subparsers.add_parser("run", help="Evaluate a tensor program")
    run_parser.add_argument("program", type=Path, help="Path to the program file")
    run_parser.add_argument(
        "--arg",
        dest="args",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Function argument as a literal or a .npy/.json path (repeatable)",
    )
    run_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Optional output path (.npy/.npz/.json). If omitted, prints every result",
    )
    run_parser.add_argument(
        "--on-failure",
        default="raise",
        choices=["raise", "return"],
        help="Exit non-zero on evaluation failures, or print best-effort results",
    )
    run_parser.add_argument("-v", "--verbose", action="store_true", help="Log every operation")

    explain_parser = subparsers.add_parser("explain", help="Summarize a program without running it")
    explain_parser.add_argument("program", type=Path, help="Path to the program file")
    explain_parser.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "run":
        get_logger(level=logging.DEBUG if args.verbose else logging.WARNING)
        return _run(args.program, args.args, out=args.out, on_failure=args.on_failure)
    if args.cmd == "explain":
        return _explain(args.program, args.json)

    parser.print_help()
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main(sys.argv[1:]))
