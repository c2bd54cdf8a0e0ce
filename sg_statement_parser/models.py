"""Record shapes flowing through the extraction pipeline.

raw text -> ``RawLine`` -> ``ClassifiedLine`` -> ``TransactionDraft`` ->
``FinishedTransaction`` -> (``SummaryRow`` | ``NoteRow`` trailers).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

from .money import AmountToken, money_to_text


class LineKind(enum.Enum):
    SECTION_START = "section_start"
    SECTION_END = "section_end"
    METADATA = "metadata"
    DATE_ANCHOR = "date_anchor"
    CONTINUATION = "continuation"


class Direction(enum.Enum):
    DEBIT = "debit"
    CREDIT = "credit"


@dataclass(frozen=True)
class RawLine:
    index: int
    text: str


@dataclass(frozen=True)
class DateMatch:
    token: str
    remainder: str


@dataclass(frozen=True)
class ClassifiedLine:
    line: RawLine
    kind: LineKind
    date: Optional[DateMatch] = None
    tokens: Tuple[AmountToken, ...] = ()
    annotation: bool = False

    @property
    def text(self) -> str:
        return self.line.text


@dataclass(frozen=True)
class ColumnLabels:
    debit: str = "Debit"
    credit: str = "Credit"


@dataclass
class ParseContext:
    """Running state of one parse pass. Never shared between documents."""

    last_known_balance: Optional[Decimal] = None
    current_account: str = ""
    inside_section: bool = False
    statement_date: str = ""
    statement_year: Optional[int] = None
    statement_month: Optional[int] = None
    card_type: str = ""


@dataclass
class TransactionDraft:
    line_index: int
    date: str
    account: str
    description: List[str] = field(default_factory=list)
    recipient_lines: List[str] = field(default_factory=list)
    annotations: List[str] = field(default_factory=list)
    debit: Optional[Decimal] = None
    credit: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    collecting_recipient: bool = False
    ambiguous: bool = False
    split_legs: bool = False
    reconciled: bool = False
    finalized: bool = False

    @property
    def joined_description(self) -> str:
        return " ".join(part for part in self.description if part)


@dataclass(frozen=True)
class FinishedTransaction:
    date: str
    description: str
    debit: Optional[Decimal] = None
    credit: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    account: str = ""
    category: str = ""
    raw_description: str = ""
    recipient_lines: Tuple[str, ...] = ()
    annotations: Tuple[str, ...] = ()
    ambiguous: bool = False
    split_legs: bool = False
    reconciled: bool = False
    source: str = "primary"

    @classmethod
    def from_draft(cls, draft: TransactionDraft, date: str, description: str) -> "FinishedTransaction":
        return cls(
            date=date,
            description=description,
            debit=draft.debit,
            credit=draft.credit,
            balance=draft.balance,
            account=draft.account,
            raw_description=description,
            recipient_lines=tuple(draft.recipient_lines),
            annotations=tuple(draft.annotations),
            ambiguous=draft.ambiguous,
            split_legs=draft.split_legs,
            reconciled=draft.reconciled,
        )

    @property
    def amount(self) -> Optional[Decimal]:
        return self.debit if self.debit is not None else self.credit

    def to_record(self, labels: ColumnLabels) -> Dict[str, str]:
        return {
            "Date": self.date,
            "Description": self.description,
            labels.debit: money_to_text(self.debit),
            labels.credit: money_to_text(self.credit),
            "Balance": money_to_text(self.balance),
            "Account": self.account,
            "Category": self.category,
        }


@dataclass(frozen=True)
class SummaryRow:
    description: str
    debit: Optional[Decimal] = None
    credit: Optional[Decimal] = None

    def to_record(self, labels: ColumnLabels) -> Dict[str, str]:
        return {
            "Date": "",
            "Description": self.description,
            labels.debit: money_to_text(self.debit),
            labels.credit: money_to_text(self.credit),
            "Balance": "",
            "Account": "",
            "Category": "",
        }


@dataclass(frozen=True)
class NoteRow:
    note: str

    def to_record(self, labels: Optional[ColumnLabels] = None) -> Dict[str, str]:
        return {"Note": self.note}


Record = Union[FinishedTransaction, SummaryRow, NoteRow]
