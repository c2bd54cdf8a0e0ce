from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from .models import SummaryRow
from .money import ZERO, coerce_money

UNCATEGORIZED = "Uncategorized"
SUBTOTAL_PREFIX = "SUBTOTAL: "
TOTAL_LABEL = "TOTAL"


def _nonzero(value: Decimal) -> Optional[Decimal]:
    return value if value != ZERO else None


def summarize(transactions: Iterable[object]) -> List[SummaryRow]:
    """Per-category subtotal rows in first-seen order, then one grand total.

    Works on anything with ``debit``/``credit``/``category`` attributes; the
    amounts may be ``Decimal`` or text, unparseable text counts as nothing.
    The input sequence is only read.
    """

    totals: Dict[str, Tuple[Decimal, Decimal]] = {}
    debit_total = credit_total = ZERO
    for txn in transactions:
        category = getattr(txn, "category", "") or UNCATEGORIZED
        debit = coerce_money(getattr(txn, "debit", None)) or ZERO
        credit = coerce_money(getattr(txn, "credit", None)) or ZERO
        cat_debit, cat_credit = totals.get(category, (ZERO, ZERO))
        totals[category] = (cat_debit + debit, cat_credit + credit)
        debit_total += debit
        credit_total += credit

    rows = [
        SummaryRow(description=f"{SUBTOTAL_PREFIX}{category}", debit=_nonzero(debit), credit=_nonzero(credit))
        for category, (debit, credit) in totals.items()
        if debit != ZERO or credit != ZERO
    ]
    rows.append(SummaryRow(description=TOTAL_LABEL, debit=debit_total, credit=credit_total))
    return rows
