"""Monetary token extraction and Decimal helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional, Union

from .errors import UnparseableAmount
from .logging_setup import get_logger

logger = get_logger(__name__)

MONEY_Q = Decimal("0.01")
TOLERANCE = Decimal("0.01")
ZERO = Decimal("0.00")

AMOUNT_RE = re.compile(
    r"(?<![\d.,])(?P<open>\()?\s?(?P<number>\d[\d,]*\.\d{2})(?!\.?\d)\s?(?P<close>\))?(?P<cr>\s?CR\b)?"
)
GROUPED_RE = re.compile(r"^\d{1,3}(?:,\d{3})+$")
PLAIN_RE = re.compile(r"^\d+$")
AMOUNT_SUBSTRING_RE = re.compile(r"\(?(?<![\d.,])\d[\d,]*\.\d{2}(?!\.?\d)\)?(?:\s?CR\b)?")


@dataclass(frozen=True)
class AmountToken:
    text: str
    value: Decimal
    negative: bool
    start: int
    end: int


def quantize(value: Decimal) -> Decimal:
    return value.quantize(MONEY_Q, rounding=ROUND_HALF_UP)


def parse_money(raw: str) -> Decimal:
    token = raw.strip()
    if token.upper().endswith("CR"):
        token = token[:-2].strip()
    if token.startswith("(") and token.endswith(")"):
        token = token[1:-1].strip()
    if "." not in token:
        raise UnparseableAmount(raw, "missing fraction digits")
    whole, _, fraction = token.partition(".")
    if len(fraction) != 2 or not fraction.isdigit():
        raise UnparseableAmount(raw, "expected exactly two fraction digits")
    if "," in whole:
        if not GROUPED_RE.match(whole):
            raise UnparseableAmount(raw, "bad thousands grouping")
        whole = whole.replace(",", "")
    elif not PLAIN_RE.match(whole):
        raise UnparseableAmount(raw, "not a number")
    try:
        return quantize(Decimal(f"{whole}.{fraction}"))
    except InvalidOperation as exc:
        raise UnparseableAmount(raw, str(exc)) from exc


def tokenize_amounts(line: str) -> List[AmountToken]:
    """Return the monetary tokens of ``line`` in left-to-right order.

    Parenthesised and ``CR``-suffixed tokens are flagged negative. Tokens that
    look monetary but fail conversion are skipped, the rest of the line is kept.
    """

    tokens: List[AmountToken] = []
    for m in AMOUNT_RE.finditer(line):
        try:
            value = parse_money(m.group("number"))
        except UnparseableAmount as exc:
            logger.debug("Skipping token at %d: %s", m.start(), exc)
            continue
        parenthesised = m.group("open") is not None and m.group("close") is not None
        negative = parenthesised or m.group("cr") is not None
        tokens.append(
            AmountToken(
                text=m.group(0).strip(),
                value=value,
                negative=negative,
                start=m.start(),
                end=m.end(),
            )
        )
    return tokens


def strip_amounts(text: str) -> str:
    return AMOUNT_SUBSTRING_RE.sub("", text)


def money_to_text(amount: Optional[Decimal], grouped: bool = False) -> str:
    if amount is None:
        return ""
    value = quantize(amount)
    return format(value, ",f") if grouped else format(value, "f")


def coerce_money(value: Union[Decimal, str, None]) -> Optional[Decimal]:
    """Best-effort conversion used by aggregation; unparseable text yields None."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return quantize(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return parse_money(text)
    except UnparseableAmount:
        return None
