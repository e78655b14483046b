"""Command line interface for drawmark workflows."""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Iterable

from .assignment import auto_assign
from .config import load_config
from .pdf_parser import FALLBACK_MEASUREMENTS, ParseResult, parse_pages
from .pdf_source import StaticSource, parse_pdf
from .persistence import read_record, write_record
from .render import build_render_plan, plan_to_json
from .state import AppState

logger = logging.getLogger(__name__)


def _emit(data: Any, output: str | None) -> None:
    text = json.dumps(data, ensure_ascii=False, indent=2)
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {path}")
    else:
        print(text)


def _parse(args: argparse.Namespace) -> ParseResult:
    config = load_config(args.config)
    if args.fragments:
        return parse_pages(StaticSource.from_json(args.fragments).extract(), config.row_epsilon)
    if not args.pdf:
        raise ValueError("Provide a PDF path or --fragments JSON.")
    return parse_pdf(args.pdf, config.row_epsilon)


def _cmd_parse_pdf(args: argparse.Namespace) -> None:
    result = _parse(args)
    if result.warning:
        logger.warning(result.warning)
    _emit(result.asdict(), args.output)


def _cmd_assign(args: argparse.Namespace) -> None:
    state = AppState.from_record(read_record(args.state))
    result = _parse(args)
    state.measurements = list(result.measurements)
    state.boxes = auto_assign(state.boxes, state.measurements)
    out_path = Path(args.output or args.state)
    write_record(out_path, state.to_record())
    bound = sum(1 for box in state.boxes if box.value is not None)
    print(f"Wrote {out_path} | boxes={len(state.boxes)} filled={bound} measurements={len(state.measurements)}")


def _cmd_render_plan(args: argparse.Namespace) -> None:
    config = load_config(args.config)
    state = AppState.from_record(read_record(args.state))
    plan = build_render_plan(state, scale=args.scale, company_default=config.company_name)
    _emit(plan_to_json(plan), args.output)


def _cmd_fallback(args: argparse.Namespace) -> None:
    print("Reference measurements:")
    for index, row in enumerate(FALLBACK_MEASUREMENTS, start=1):
        print(f"  {index:>2}. {row.name} = {row.value} {row.unit}")


def _add_source_args(parser: argparse.ArgumentParser, positional: bool) -> None:
    if positional:
        parser.add_argument("pdf", nargs="?", help="Inspection report PDF")
    else:
        parser.add_argument("--pdf", help="Inspection report PDF")
    parser.add_argument("--fragments", help="JSON file of pre-extracted {text, x, y} pages")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drawmark",
        description="Measurement annotation tools for inspection drawings",
    )
    parser.add_argument("--config", help="Path to a drawmark.json config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    parse_parser = sub.add_parser("parse-pdf", help="Extract the measurement table from a report")
    _add_source_args(parse_parser, positional=True)
    parse_parser.add_argument("--output", help="Write JSON here instead of stdout")
    parse_parser.set_defaults(func=_cmd_parse_pdf)

    assign_parser = sub.add_parser("assign", help="Auto-assign measurements into a saved work state")
    assign_parser.add_argument("state", help="Work state JSON file")
    _add_source_args(assign_parser, positional=False)
    assign_parser.add_argument("--output", help="Output work state path (defaults to in place)")
    assign_parser.set_defaults(func=_cmd_assign)

    plan_parser = sub.add_parser("render-plan", help="Print the draw plan for a saved work state")
    plan_parser.add_argument("state", help="Work state JSON file")
    plan_parser.add_argument("--scale", type=float, default=1.0, help="View scale used for border widths")
    plan_parser.add_argument("--output", help="Write JSON here instead of stdout")
    plan_parser.set_defaults(func=_cmd_render_plan)

    fallback_parser = sub.add_parser("fallback", help="Show the built-in reference dataset")
    fallback_parser.set_defaults(func=_cmd_fallback)

    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    try:
        args.func(args)
    except Exception as exc:  # pragma: no cover - CLI guard
        parser.error(str(exc))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
