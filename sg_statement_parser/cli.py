"""CLI for converting bank statements (PDF or extracted text) into JSON or CSV."""

from __future__ import annotations

import argparse
import csv
import io
import json
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

from .engine import StatementResult, parse_statement
from .errors import ParseError
from .logging_setup import configure_logging, get_logger
from .profiles import PROFILES

logger = get_logger(__name__)

STATEMENT_SUFFIXES = (".pdf", ".txt")


def collect_inputs(paths: Iterable[Path]) -> List[Path]:
    found: List[Path] = []
    for path in paths:
        if path.is_dir():
            found.extend(
                sorted(p for p in path.rglob("*") if p.is_file() and p.suffix.lower() in STATEMENT_SUFFIXES)
            )
        else:
            found.append(path)
    return found


def render_json(result: StatementResult, pretty: bool) -> str:
    indent = 2 if pretty else None
    return json.dumps(result.to_json(), ensure_ascii=False, indent=indent)


def render_csv(result: StatementResult) -> str:
    rows = result.to_rows()
    if result.note is not None and not result.transactions:
        fieldnames = ["Note"]
    else:
        labels = result.labels
        fieldnames = ["Date", "Description", labels.debit, labels.credit, "Balance", "Account", "Category"]
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=fieldnames, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


def output_paths(sources: List[Path], output: Optional[Path], fmt: str) -> List[Optional[Path]]:
    """One target per source; same-stem inputs get ``-2``, ``-3`` suffixes."""
    if output is None:
        return [None] * len(sources)
    if len(sources) == 1 and not output.is_dir():
        return [output]
    taken: Set[str] = set()
    targets: List[Optional[Path]] = []
    for source in sources:
        name = f"{source.stem}.{fmt}"
        counter = 1
        while name.lower() in taken:
            counter += 1
            name = f"{source.stem}-{counter}.{fmt}"
        taken.add(name.lower())
        targets.append(output / name)
    return targets


def convert_one(source: Path, bank: str) -> Tuple[Path, StatementResult]:
    logger.info("Parsing %s", source)
    return source, parse_statement(source, bank=bank)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Extract transactions from DBS/POSB and Citibank statements into JSON or CSV."
    )
    parser.add_argument("paths", nargs="+", type=Path, help="Statement PDF/.txt files or directories")
    parser.add_argument("--bank", choices=["auto", *sorted(PROFILES)], default="auto", help="Statement layout")
    parser.add_argument("--format", choices=["json", "csv"], default="json", dest="fmt", help="Output format")
    parser.add_argument("-o", "--output", type=Path, help="Output file (one input) or directory (many inputs)")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
    parser.add_argument("--jobs", type=int, default=1, help="Parse this many documents in parallel")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    sources = collect_inputs(args.paths)
    if not sources:
        print("ERROR: no .pdf or .txt statements found", file=sys.stderr)
        return 1
    many = len(sources) > 1
    if many and args.output is not None:
        args.output.mkdir(parents=True, exist_ok=True)

    try:
        if args.jobs > 1 and many:
            with ThreadPoolExecutor(max_workers=args.jobs) as pool:
                results = list(pool.map(lambda src: convert_one(src, args.bank), sources))
        else:
            results = [convert_one(src, args.bank) for src in sources]
    except ParseError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    targets = output_paths(sources, args.output, args.fmt)
    for (_, result), target in zip(results, targets):
        pretty = args.pretty or args.output is not None
        rendered = render_json(result, pretty) if args.fmt == "json" else render_csv(result)
        if target is not None:
            newline = "\n" if args.fmt == "json" and pretty else ""
            target.write_text(rendered + newline, encoding="utf-8")
            logger.info("Wrote %s", target)
        else:
            print(rendered)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
