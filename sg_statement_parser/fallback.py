"""Best-effort extractors used when the primary engine finds nothing.

Each takes the same raw text as the engine and returns the same
``FinishedTransaction`` shape, tagged ``source="fallback"``.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .classifier import split_lines
from .direction import balance_delta_direction, score_text
from .errors import UnparseableAmount
from .logging_setup import get_logger
from .models import Direction, FinishedTransaction, ParseContext
from .money import AmountToken, parse_money, strip_amounts, tokenize_amounts
from .profiles import MONTH_ALT, MONTHS, InstitutionProfile, squeeze_ws

logger = get_logger(__name__)

MIN_LINE_LENGTH = 10
DEDUPE_PREFIX = 10

RAW_TRANSACTION_RE = re.compile(
    rf"(?<!\d)(\d{{2}})\s?({MONTH_ALT})([A-Za-z0-9\s*.,\-+&/$%#@!?:;'\"]+?)(\()?(\d[\d,]*\.\d{{2}})(?!\d)(\))?",
    re.IGNORECASE,
)
RAW_SKIP_WORDS = ("PAGE", "TOTAL", "BALANCE", "Payment", "DueDate", "Statement", "sfrom", "CoReg")
RAW_FOREIGN_SPLIT = "FOREIGN AMOUNT"


class FallbackExtractor:
    name = ""

    def __init__(self, profile: InstitutionProfile) -> None:
        self.profile = profile

    def extract(self, text: str) -> List[FinishedTransaction]:
        raise NotImplementedError

    def _metadata_context(self, text: str) -> ParseContext:
        ctx = ParseContext()
        for line in split_lines(text):
            self.profile.capture_metadata(line.text, ctx)
        return ctx


class LineScanExtractor(FallbackExtractor):
    """Every dated line that carries amounts becomes one transaction."""

    name = "line_scan"

    def extract(self, text: str) -> List[FinishedTransaction]:
        text = self.profile.preprocess(text)
        ctx = self._metadata_context(text)
        last_balance: Optional[Decimal] = None
        found: List[FinishedTransaction] = []

        for line in split_lines(text):
            if len(line.text) < MIN_LINE_LENGTH:
                continue
            date = self.profile.match_date(line.text, ctx)
            if date is None:
                continue
            tokens = tokenize_amounts(date.remainder)
            if not tokens:
                continue

            description = squeeze_ws(strip_amounts(date.remainder))
            amount = tokens[0]
            balance = tokens[-1].value if self.profile.has_balance_column and len(tokens) >= 2 else None

            ambiguous = split_legs = False
            if balance is not None and len(tokens) >= 3:
                debit, credit, split_legs = self._columns(description, tokens, balance, last_balance)
            else:
                debit, credit, ambiguous = self._single_amount(description, amount, balance, last_balance)

            found.append(
                FinishedTransaction(
                    date=self.profile.resolve_date(date.token, ctx),
                    description=description,
                    debit=debit,
                    credit=credit,
                    balance=balance,
                    account=ctx.current_account,
                    raw_description=description,
                    ambiguous=ambiguous,
                    split_legs=split_legs,
                    source="fallback",
                )
            )
            if balance is not None:
                last_balance = balance
            logger.debug("Line scan found %s %r", found[-1].date, description[:30])
        return found

    @staticmethod
    def _columns(
        description: str,
        tokens: Sequence[AmountToken],
        balance: Decimal,
        last_balance: Optional[Decimal],
    ) -> Tuple[Optional[Decimal], Optional[Decimal], bool]:
        """Withdrawal, Deposit, Balance printed as three columns; keep one leg."""
        debit = tokens[0].value or None
        credit = tokens[1].value or None
        if debit is None or credit is None:
            return debit, credit, False
        direction = score_text(description).winner or balance_delta_direction(balance, last_balance)
        if direction is Direction.DEBIT:
            return debit, None, False
        if direction is Direction.CREDIT:
            return None, credit, False
        logger.warning("Keeping both legs of line-scan row %r: debit=%s credit=%s", description[:40], debit, credit)
        return debit, credit, True

    @staticmethod
    def _single_amount(
        description: str,
        amount: AmountToken,
        balance: Optional[Decimal],
        last_balance: Optional[Decimal],
    ) -> Tuple[Optional[Decimal], Optional[Decimal], bool]:
        direction = score_text(description).winner
        ambiguous = False
        if direction is None and amount.negative:
            direction = Direction.CREDIT
        if direction is None:
            direction = balance_delta_direction(balance, last_balance)
        if direction is None:
            direction = Direction.DEBIT
            ambiguous = True
        if direction is Direction.DEBIT:
            return amount.value, None, ambiguous
        return None, amount.value, ambiguous


class RawTextExtractor(FallbackExtractor):
    """Regex over the whole text for ``DDMMM <description> <amount>`` card rows."""

    name = "raw_text"

    def extract(self, text: str) -> List[FinishedTransaction]:
        ctx = self._metadata_context(self.profile.preprocess(text))
        found: List[FinishedTransaction] = []

        for m in RAW_TRANSACTION_RE.finditer(text):
            day, month, body = m.group(1), m.group(2).upper(), m.group(3).strip()
            if len(body) < 3 or any(word in body for word in RAW_SKIP_WORDS):
                continue
            if not 1 <= int(day) <= 31 or month not in MONTHS:
                continue
            try:
                value = parse_money(m.group(5))
            except UnparseableAmount as exc:
                logger.debug("Raw text match skipped: %s", exc)
                continue

            description = self.profile.clean_fragment(body)
            if RAW_FOREIGN_SPLIT in description:
                head, _, tail = description.partition(RAW_FOREIGN_SPLIT)
                description = f"{head.strip()} | {RAW_FOREIGN_SPLIT}: {tail.strip()}"
            is_credit = m.group(4) is not None and m.group(6) is not None

            found.append(
                FinishedTransaction(
                    date=self.profile.resolve_date(f"{day} {month}", ctx),
                    description=description,
                    debit=None if is_credit else value,
                    credit=value if is_credit else None,
                    account=ctx.current_account,
                    raw_description=description,
                    source="fallback",
                )
            )
        return found


def dedupe_key(txn: FinishedTransaction, prefix: int = DEDUPE_PREFIX) -> Tuple[str, Optional[Decimal], str]:
    return txn.date, txn.amount, txn.description[:prefix]


def merge_transactions(
    existing: Sequence[FinishedTransaction],
    candidates: Iterable[FinishedTransaction],
    prefix: int = DEDUPE_PREFIX,
) -> List[FinishedTransaction]:
    merged = list(existing)
    seen: Set[Tuple[str, Optional[Decimal], str]] = {dedupe_key(txn, prefix) for txn in merged}
    for txn in candidates:
        key = dedupe_key(txn, prefix)
        if key in seen:
            continue
        seen.add(key)
        merged.append(txn)
    return merged


def default_fallbacks(profile: InstitutionProfile) -> List[FallbackExtractor]:
    extractors: List[FallbackExtractor] = [LineScanExtractor(profile)]
    if not profile.has_balance_column:
        extractors.append(RawTextExtractor(profile))
    return extractors
