"""Orchestration: raw text in, transactions plus trailer rows out."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from .accumulator import TransactionAccumulator
from .categorize import apply_categorization
from .classifier import LineClassifier, split_lines
from .errors import MalformedInput, ParseError
from .fallback import FallbackExtractor, default_fallbacks, merge_transactions
from .logging_setup import get_logger
from .models import ColumnLabels, FinishedTransaction, NoteRow, ParseContext, Record, SummaryRow
from .profiles import InstitutionProfile, get_profile
from .summary import summarize

logger = get_logger(__name__)

PLACEHOLDER_NOTE = (
    "No transactions could be automatically extracted from this statement. "
    "Please check the extracted text and the selected bank layout."
)


@dataclass
class EngineRun:
    transactions: List[FinishedTransaction]
    context: ParseContext
    cancelled: bool = False


class StatementEngine:
    """Primary extractor for one institution layout.

    Every call gets its own ``ParseContext``; an engine instance can be reused
    across documents but never shares running state between them.
    """

    def __init__(self, profile: InstitutionProfile, default_year: Optional[int] = None) -> None:
        self.profile = profile
        self.default_year = default_year

    def run(self, text: str, cancel_event: Optional[threading.Event] = None) -> EngineRun:
        lines = split_lines(self.profile.preprocess(text or ""))
        if not lines:
            raise MalformedInput("Statement text has no non-blank lines")

        ctx = ParseContext(statement_year=self.default_year)
        classifier = LineClassifier(self.profile, ctx)
        accumulator = TransactionAccumulator(self.profile, ctx)

        cancelled = False
        for classified in classifier.classify_all(lines):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            accumulator.feed(classified)

        raw = accumulator.abort() if cancelled else accumulator.finish()
        transactions = [apply_categorization(txn) for txn in raw]
        logger.info(
            "%s: %d transactions from %d lines%s",
            self.profile.display_name,
            len(transactions),
            len(lines),
            " (cancelled)" if cancelled else "",
        )
        return EngineRun(transactions=transactions, context=ctx, cancelled=cancelled)

    def extract(self, text: str) -> List[FinishedTransaction]:
        return self.run(text).transactions


@dataclass
class StatementResult:
    institution: str
    labels: ColumnLabels
    account: str = ""
    statement_date: str = ""
    card_type: str = ""
    transactions: List[FinishedTransaction] = field(default_factory=list)
    summary: List[SummaryRow] = field(default_factory=list)
    note: Optional[NoteRow] = None
    strategy: str = "primary"
    cancelled: bool = False

    def records(self) -> List[Record]:
        rows: List[Record] = [*self.transactions, *self.summary]
        if self.note is not None:
            rows.append(self.note)
        return rows

    def to_rows(self) -> List[Dict[str, str]]:
        return [record.to_record(self.labels) for record in self.records()]

    def to_json(self) -> Dict[str, Any]:
        return {
            "institution": self.institution,
            "account": self.account,
            "statement_date": self.statement_date,
            "card_type": self.card_type,
            "strategy": self.strategy,
            "cancelled": self.cancelled,
            "transactions": [txn.to_record(self.labels) for txn in self.transactions],
            "summary": [row.to_record(self.labels) for row in self.summary],
            "note": self.note.note if self.note is not None else None,
        }


def run_fallbacks(text: str, extractors: Sequence[FallbackExtractor]) -> List[FinishedTransaction]:
    found: List[FinishedTransaction] = []
    for extractor in extractors:
        candidates = extractor.extract(text)
        logger.info("Fallback %s found %d transactions", extractor.name, len(candidates))
        found = merge_transactions(found, candidates)
        if found:
            break
    return [apply_categorization(txn) for txn in found]


def parse_text(
    text: str,
    bank: str = "auto",
    cancel_event: Optional[threading.Event] = None,
    fallbacks: Optional[Sequence[FallbackExtractor]] = None,
    default_year: Optional[int] = None,
) -> StatementResult:
    profile = get_profile(bank, text or "")
    result = StatementResult(institution=profile.display_name, labels=profile.labels)
    engine = StatementEngine(profile, default_year=default_year)

    try:
        run = engine.run(text, cancel_event)
    except MalformedInput as exc:
        logger.info("%s", exc)
        result.strategy = "none"
        result.note = NoteRow(PLACEHOLDER_NOTE)
        return result

    result.account = run.context.current_account
    result.statement_date = run.context.statement_date
    result.card_type = run.context.card_type
    result.cancelled = run.cancelled
    transactions = run.transactions

    if not transactions and not run.cancelled:
        logger.info("No transactions found with standard parsing, trying alternative approaches")
        extractors = default_fallbacks(profile) if fallbacks is None else fallbacks
        transactions = merge_transactions(transactions, run_fallbacks(text, extractors))
        result.strategy = "fallback"

    if not transactions:
        if not run.cancelled:
            result.strategy = "none"
            result.note = NoteRow(PLACEHOLDER_NOTE)
        return result

    if not result.account:
        result.account = next((txn.account for txn in transactions if txn.account), "")
    result.transactions = transactions
    result.summary = summarize(transactions)
    return result


def extract_pdf_text(pdf_path: Union[str, Path]) -> str:
    try:
        reader = PdfReader(str(pdf_path))
        if not reader.pages:
            raise ParseError("PDF has no pages")
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    except (PdfReadError, OSError) as exc:
        raise ParseError(f"Cannot read PDF {pdf_path}: {exc}") from exc


def read_statement_text(path: Union[str, Path]) -> str:
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".pdf":
        return extract_pdf_text(path)
    if suffix == ".txt":
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ParseError(f"Cannot read text file {path}: {exc}") from exc
    raise ParseError(f"Unsupported statement file type {path.suffix!r}; expected .pdf or .txt")


def parse_statement(
    path: Union[str, Path],
    bank: str = "auto",
    cancel_event: Optional[threading.Event] = None,
    default_year: Optional[int] = None,
) -> StatementResult:
    return parse_text(read_statement_text(path), bank=bank, cancel_event=cancel_event, default_year=default_year)
