"""Routing of a line's amount tokens into a draft's debit/credit/balance slots."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence, Tuple

from .direction import DirectionScore, balance_delta_direction, score_text
from .logging_setup import get_logger
from .models import Direction, TransactionDraft
from .money import AmountToken

logger = get_logger(__name__)


def slot_value(draft: TransactionDraft, direction: Direction) -> Optional[Decimal]:
    return draft.debit if direction is Direction.DEBIT else draft.credit


def set_slot(draft: TransactionDraft, direction: Direction, value: Decimal) -> None:
    if direction is Direction.DEBIT:
        draft.debit = value
    else:
        draft.credit = value


def keyword_direction(
    draft: TransactionDraft, line_text: str, tokens: Sequence[AmountToken]
) -> Tuple[Optional[Direction], bool]:
    """Score the line first, the accumulated description only on a tie.

    Returns ``(direction or None, any_keyword_signal)``.
    """
    line_score = score_text(line_text)
    if tokens and tokens[0].negative:
        line_score = line_score + DirectionScore(credit=1)
    if line_score.winner is not None:
        return line_score.winner, True
    description_score = score_text(draft.joined_description)
    return description_score.winner, line_score.has_signal or description_score.has_signal


def enforce_single_side(draft: TransactionDraft, line_text: str) -> None:
    if draft.debit is None or draft.credit is None:
        return
    winner = (score_text(line_text) + score_text(draft.joined_description)).winner
    if winner is Direction.DEBIT:
        draft.credit = None
    elif winner is Direction.CREDIT:
        draft.debit = None
    else:
        draft.split_legs = True
        logger.warning(
            "Keeping both legs of %s %r: debit=%s credit=%s have equal keyword support",
            draft.date,
            draft.joined_description[:40],
            draft.debit,
            draft.credit,
        )


def assign_ledger_amounts(
    draft: TransactionDraft,
    line_text: str,
    tokens: Sequence[AmountToken],
    dated: bool,
    last_known_balance: Optional[Decimal],
) -> None:
    """Assign tokens for statements that print a running balance column."""
    if not tokens:
        return
    direction, signal = keyword_direction(draft, line_text, tokens)

    if len(tokens) == 1:
        value = tokens[0].value
        if dated or direction is None or slot_value(draft, direction) is not None:
            draft.balance = value
        else:
            set_slot(draft, direction, value)
        enforce_single_side(draft, line_text)
        return

    amount, balance = tokens[0], tokens[-1]
    if len(tokens) >= 3 and (draft.debit is not None or draft.credit is not None):
        draft.balance = balance.value
        return

    if direction is None:
        direction = balance_delta_direction(balance.value, last_known_balance)
    if direction is None:
        if signal:
            direction = Direction.DEBIT
            draft.ambiguous = True
            logger.warning("Ambiguous direction for %s %r, recording as debit", draft.date, line_text[:40])
        else:
            direction = Direction.CREDIT

    set_slot(draft, direction, amount.value)
    draft.balance = balance.value
    logger.debug("Assigned %s=%s balance=%s on %s", direction.value, amount.value, balance.value, draft.date)
    enforce_single_side(draft, line_text)


def assign_card_amounts(draft: TransactionDraft, tokens: Sequence[AmountToken]) -> None:
    """Card statements: first token is the amount, brackets or CR mark a credit."""
    if not tokens or draft.debit is not None or draft.credit is not None:
        return
    token = tokens[0]
    if token.negative:
        draft.credit = token.value
    else:
        draft.debit = token.value
