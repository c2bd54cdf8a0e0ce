"""The per-document transaction state machine.

Walks classified lines in document order, opening a draft on every date
anchor inside the transaction table and closing it on the next anchor, the
end of the table, or the end of the document.
"""

from __future__ import annotations

import enum
from typing import List, Optional, Sequence

from .assignment import assign_card_amounts, assign_ledger_amounts
from .logging_setup import get_logger
from .models import ClassifiedLine, FinishedTransaction, LineKind, ParseContext, TransactionDraft
from .money import AmountToken
from .profiles import InstitutionProfile, squeeze_ws
from .reconcile import reconcile

logger = get_logger(__name__)


class AccumulatorState(enum.Enum):
    IDLE = "idle"
    AWAITING = "awaiting_transaction"
    OPEN = "open_draft"


class TransactionAccumulator:
    def __init__(self, profile: InstitutionProfile, context: ParseContext) -> None:
        self.profile = profile
        self.context = context
        self.transactions: List[FinishedTransaction] = []
        self._draft: Optional[TransactionDraft] = None
        self._gate_open = False

    @property
    def state(self) -> AccumulatorState:
        if self._draft is not None:
            return AccumulatorState.OPEN
        return AccumulatorState.AWAITING if self._gate_open else AccumulatorState.IDLE

    @property
    def draft(self) -> Optional[TransactionDraft]:
        return self._draft

    def feed(self, classified: ClassifiedLine) -> None:
        kind = classified.kind
        if kind is LineKind.SECTION_START:
            # A repeated table header (page break) keeps the open draft.
            self._gate_open = True
        elif kind is LineKind.SECTION_END:
            self._finalize_draft("section end")
            self._gate_open = False
        elif kind is LineKind.DATE_ANCHOR:
            if not self._gate_open:
                return
            self._finalize_draft("new date anchor")
            self._open_draft(classified)
        elif kind is LineKind.CONTINUATION:
            if self._draft is not None:
                self._continue_draft(classified)

    def finish(self) -> List[FinishedTransaction]:
        """End of input: close whatever is still open and hand back the results."""
        self._finalize_draft("end of input")
        self._gate_open = False
        return self.transactions

    def abort(self) -> List[FinishedTransaction]:
        """Cancellation: keep finalized transactions, drop the open draft."""
        if self._draft is not None:
            logger.warning(
                "Parse cancelled, discarding open draft for %s (%d transactions kept)",
                self._draft.date,
                len(self.transactions),
            )
        self._draft = None
        self._gate_open = False
        return self.transactions

    def _open_draft(self, classified: ClassifiedLine) -> None:
        assert classified.date is not None
        remainder = classified.date.remainder
        draft = TransactionDraft(
            line_index=classified.line.index,
            date=classified.date.token,
            account=self.context.current_account,
        )
        seed = self.profile.clean_fragment(remainder)
        if seed:
            draft.description.append(seed)
        draft.collecting_recipient = self.profile.collects_recipient(remainder)
        if draft.collecting_recipient:
            draft.recipient_lines.append(remainder)
        self._draft = draft
        if classified.tokens:
            self._assign(remainder, classified.tokens, dated=True)

    def _continue_draft(self, classified: ClassifiedLine) -> None:
        draft = self._draft
        assert draft is not None
        if classified.annotation:
            draft.annotations.append(squeeze_ws(classified.text))
            return
        if classified.tokens:
            self._assign(classified.text, classified.tokens, dated=False)
            return
        fragment = self.profile.clean_fragment(classified.text)
        if fragment:
            draft.description.append(fragment)
        if draft.collecting_recipient:
            draft.recipient_lines.append(classified.text)

    def _assign(self, line_text: str, tokens: Sequence[AmountToken], dated: bool) -> None:
        draft = self._draft
        assert draft is not None
        if self.profile.has_balance_column:
            assign_ledger_amounts(draft, line_text, tokens, dated, self.context.last_known_balance)
        else:
            assign_card_amounts(draft, tokens)
        draft.collecting_recipient = False

    def _finalize_draft(self, reason: str) -> Optional[FinishedTransaction]:
        draft = self._draft
        if draft is None:
            return None
        assert not draft.finalized, "draft finalized twice"
        if self.profile.has_balance_column:
            reconcile(draft, self.context.last_known_balance)
        draft.finalized = True
        self._draft = None

        txn = FinishedTransaction.from_draft(
            draft,
            date=self.profile.resolve_date(draft.date, self.context),
            description=squeeze_ws(draft.joined_description),
        )
        self.transactions.append(txn)
        if draft.balance is not None:
            self.context.last_known_balance = draft.balance
        logger.debug(
            "Finalized %s on %s: debit=%s credit=%s balance=%s",
            txn.date,
            reason,
            txn.debit,
            txn.credit,
            txn.balance,
        )
        return txn
