from __future__ import annotations

from decimal import Decimal
from typing import Optional

from .logging_setup import get_logger
from .models import TransactionDraft
from .money import TOLERANCE, ZERO, quantize

logger = get_logger(__name__)


def reconcile(draft: TransactionDraft, last_known_balance: Optional[Decimal]) -> bool:
    """Make the draft's debit/credit agree with the running balance.

    Balance arithmetic wins over keyword assignment whenever both the draft's
    balance and an initialised running balance exist. Returns True when the
    draft was changed.
    """

    assert draft is not None, "reconcile() needs an open draft"
    assert not draft.finalized, "draft was already finalized"

    if draft.balance is None or last_known_balance is None or last_known_balance <= 0:
        return False

    delta = quantize(draft.balance - last_known_balance)
    if delta == ZERO:
        return False

    expected = abs(delta)
    side = draft.debit if delta < 0 else draft.credit
    if side is not None and abs(side - expected) <= TOLERANCE:
        return False

    if delta < 0:
        logger.debug("Balance says debit %s for %s (had debit=%s credit=%s)", expected, draft.date, draft.debit, draft.credit)
        draft.debit = expected
        draft.credit = None
    else:
        logger.debug("Balance says credit %s for %s (had debit=%s credit=%s)", delta, draft.date, draft.debit, draft.credit)
        draft.credit = delta
        draft.debit = None
    draft.split_legs = False
    draft.reconciled = True
    return True
