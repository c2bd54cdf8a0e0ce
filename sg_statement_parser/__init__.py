"""Transaction extraction and reconciliation for DBS/POSB and Citibank statements."""

from .categorize import Categorization, apply_categorization, categorize
from .engine import (
    StatementEngine,
    StatementResult,
    extract_pdf_text,
    parse_statement,
    parse_text,
    read_statement_text,
)
from .errors import MalformedInput, ParseError, StatementError, UnparseableAmount
from .models import FinishedTransaction, NoteRow, SummaryRow
from .summary import summarize

__all__ = [
    "Categorization",
    "FinishedTransaction",
    "MalformedInput",
    "NoteRow",
    "ParseError",
    "StatementEngine",
    "StatementError",
    "StatementResult",
    "SummaryRow",
    "UnparseableAmount",
    "apply_categorization",
    "categorize",
    "extract_pdf_text",
    "parse_statement",
    "parse_text",
    "read_statement_text",
    "summarize",
]
