"""Keyword evidence for money-out versus money-in."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Pattern, Sequence

from .models import Direction


@dataclass(frozen=True)
class DirectionRule:
    direction: Direction
    pattern: Pattern[str]
    unless: Optional[Pattern[str]] = None
    weight: int = 1

    def matches(self, text: str) -> bool:
        if not self.pattern.search(text):
            return False
        return self.unless is None or not self.unless.search(text)


def _rule(direction: Direction, pattern: str, unless: Optional[str] = None) -> DirectionRule:
    return DirectionRule(
        direction=direction,
        pattern=re.compile(pattern, re.IGNORECASE),
        unless=re.compile(unless, re.IGNORECASE) if unless else None,
    )


DIRECTION_RULES: Sequence[DirectionRule] = (
    _rule(Direction.DEBIT, r"\bTO:"),
    _rule(Direction.DEBIT, r"\bTRANSFER\b", unless=r"\bFROM:|\bINCOMING\b"),
    _rule(Direction.DEBIT, r"\bPAYMENT\b", unless=r"\bINCOMING\b"),
    _rule(Direction.DEBIT, r"\bDEBIT\b"),
    _rule(Direction.DEBIT, r"\bPURCHASE\b"),
    _rule(Direction.DEBIT, r"\bATM\b"),
    _rule(Direction.DEBIT, r"\bWITHDRAWAL\b"),
    _rule(Direction.DEBIT, r"\(-\)"),
    _rule(Direction.CREDIT, r"\bFROM:"),
    _rule(Direction.CREDIT, r"\bINCOMING\b"),
    _rule(Direction.CREDIT, r"\bRECEIPT\b"),
    _rule(Direction.CREDIT, r"\bSALARY\b"),
    _rule(Direction.CREDIT, r"\bINTEREST\b"),
    _rule(Direction.CREDIT, r"\bCREDIT\b"),
    _rule(Direction.CREDIT, r"\bREFUND\b"),
    _rule(Direction.CREDIT, r"\(\+\)"),
)


@dataclass(frozen=True)
class DirectionScore:
    debit: int = 0
    credit: int = 0

    def __add__(self, other: "DirectionScore") -> "DirectionScore":
        return DirectionScore(debit=self.debit + other.debit, credit=self.credit + other.credit)

    @property
    def winner(self) -> Optional[Direction]:
        if self.debit > self.credit:
            return Direction.DEBIT
        if self.credit > self.debit:
            return Direction.CREDIT
        return None

    @property
    def has_signal(self) -> bool:
        return self.debit > 0 or self.credit > 0


def score_text(text: str, rules: Sequence[DirectionRule] = DIRECTION_RULES) -> DirectionScore:
    debit = credit = 0
    for rule in rules:
        if not rule.matches(text):
            continue
        if rule.direction is Direction.DEBIT:
            debit += rule.weight
        else:
            credit += rule.weight
    return DirectionScore(debit=debit, credit=credit)


def balance_delta_direction(balance: Optional[Decimal], last_known_balance: Optional[Decimal]) -> Optional[Direction]:
    """Direction implied by the running balance; None when it says nothing."""
    if balance is None or last_known_balance is None or last_known_balance <= 0:
        return None
    delta = balance - last_known_balance
    if delta < 0:
        return Direction.DEBIT
    if delta > 0:
        return Direction.CREDIT
    return None
