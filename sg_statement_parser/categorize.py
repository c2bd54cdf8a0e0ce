"""Description cleanup and category assignment.

Both happen in one pass per transaction: the category rules look at the
cleaned description plus the structured details pulled out of the recipient
lines, and the same details are what get appended to the description.
Cleanup always starts again from the raw description, so applying it to an
already categorised transaction changes nothing.
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from .models import FinishedTransaction
from .money import strip_amounts
from .profiles import squeeze_ws

SIGN_MARKER_RE = re.compile(r"\(\-\)|\(\+\)")
MERCHANT_RE = re.compile(r"Debit Card Transaction\s+(.+?)(?:\s+\d{2}[A-Z]{3}\b|\s+\d{4}-\d{4}|$)")
MERCHANT_LOCATION_RE = re.compile(r"^(.*\S)\s+([A-Z]{3})$")
CARD_SUFFIX_RE = re.compile(r"(\d{4}-\d{4}-\d{4}-\d{4})")
CARD_DATE_RE = re.compile(r"\s(\d{2}[A-Z]{3})\s*$")
TO_PARTY_RE = re.compile(r"\bTO:\s*(.+)")
FROM_PARTY_RE = re.compile(r"\bFROM:\s*(.+)")
TRANSFER_NO_RE = re.compile(r"\bTRANSFER\s+(\d+)")
REFERENCE_RE = re.compile(r"\bREF\s+(\S+)")
ADVICE_RE = re.compile(r"\b(GIRO|Salary)\b")
FOREIGN_AMOUNT_RE = re.compile(r"FOREIGN AMOUNT\s*:?\s*(.*)", re.IGNORECASE)


@dataclass(frozen=True)
class RecipientDetails:
    merchant: str = ""
    location: str = ""
    card: str = ""
    card_date: str = ""
    to_party: str = ""
    from_party: str = ""
    transfer: str = ""
    reference: str = ""
    advice: str = ""
    company: str = ""
    payment_details: str = ""

    def annotations(self) -> List[Tuple[str, str]]:
        pairs = [
            ("MERCHANT", self.merchant),
            ("LOCATION", self.location),
            ("CARD", self.card),
            ("TRANSACTION DATE", self.card_date),
            ("TO", self.to_party),
            ("FROM", self.from_party or self.company),
            ("DETAILS", self.payment_details),
            ("TRANSFER", self.transfer),
            ("REF", self.reference),
        ]
        return [(label, value) for label, value in pairs if value]


def _first_group(pattern: Pattern[str], lines: Sequence[str]) -> str:
    for line in lines:
        m = pattern.search(line)
        if m:
            return squeeze_ws(m.group(1))
    return ""


def extract_recipient_details(recipient_lines: Sequence[str]) -> RecipientDetails:
    lines = [squeeze_ws(strip_amounts(SIGN_MARKER_RE.sub("", ln))) for ln in recipient_lines]
    lines = [ln for ln in lines if ln]
    if not lines:
        return RecipientDetails()
    joined = " ".join(lines)

    fields: Dict[str, str] = {}
    if "Debit Card Transaction" in joined:
        m = MERCHANT_RE.search(joined)
        if m:
            merchant = m.group(1).strip()
            m_loc = MERCHANT_LOCATION_RE.match(merchant)
            if m_loc:
                fields["merchant"], fields["location"] = m_loc.group(1), m_loc.group(2)
            else:
                fields["merchant"] = merchant
        m = CARD_SUFFIX_RE.search(joined)
        if m:
            fields["card"] = m.group(1)
        m = CARD_DATE_RE.search(joined)
        if m:
            fields["card_date"] = m.group(1)
        return RecipientDetails(**fields)

    fields["to_party"] = _first_group(TO_PARTY_RE, lines)
    if not fields["to_party"]:
        fields["from_party"] = _first_group(FROM_PARTY_RE, lines)
    fields["transfer"] = _first_group(TRANSFER_NO_RE, lines)
    fields["reference"] = _first_group(REFERENCE_RE, lines)

    # Advice layout: "GIRO Salary" / company / payment details.
    m = ADVICE_RE.search(lines[0])
    if m and len(lines) >= 2:
        fields["advice"] = "GIRO" if "GIRO" in lines[0] else "Salary"
        fields["company"] = lines[1]
        if len(lines) >= 3:
            fields["payment_details"] = lines[2]
    return RecipientDetails(**fields)


def clean_description(raw: str) -> str:
    description = SIGN_MARKER_RE.sub("", strip_amounts(raw))
    if "Advice" in description:
        parts = description.split()
        if len(parts) > 2:
            # "Advice FAST ..." -> "..."
            description = " ".join(parts[2:])
    return squeeze_ws(description)


def with_annotations(description: str, annotations: Sequence[Tuple[str, str]]) -> str:
    for label, value in annotations:
        piece = f"{label}: {value}"
        if piece in description:
            continue
        description = f"{description} | {piece}" if description else piece
    return description


def _parse_annotation_line(text: str) -> Tuple[str, str]:
    m = FOREIGN_AMOUNT_RE.search(text)
    if m:
        return "FOREIGN AMOUNT", squeeze_ws(m.group(1))
    return "NOTE", squeeze_ws(text)


@dataclass(frozen=True)
class CategoryRule:
    """``pattern`` is searched in each named field; ``direction`` narrows it.

    direction: None (any), "debit", "credit", or "not_debit".
    """

    label: str
    pattern: Pattern[str]
    fields: Tuple[str, ...] = ("description", "recipient")
    direction: Optional[str] = None

    def applies(self, haystacks: Dict[str, str], has_debit: bool, has_credit: bool) -> bool:
        if self.direction == "debit" and not has_debit:
            return False
        if self.direction == "credit" and not has_credit:
            return False
        if self.direction == "not_debit" and has_debit and not has_credit:
            return False
        return any(self.pattern.search(haystacks.get(name, "")) for name in self.fields)


def _cat(label: str, pattern: str, *fields: str, direction: Optional[str] = None) -> CategoryRule:
    return CategoryRule(
        label=label,
        pattern=re.compile(pattern, re.IGNORECASE),
        fields=fields or ("description", "recipient"),
        direction=direction,
    )


MERCHANT_FIELDS = ("description", "merchant")

CATEGORY_RULES: Sequence[CategoryRule] = (
    _cat(
        "Salary",
        r"\b(?:SALARY|PAYROLL|WAGES?|COMPENSATION)\b",
        "description",
        "recipient",
        "from_party",
        "payment_details",
        direction="not_debit",
    ),
    _cat("Investment Income", r"DIVIDEND|INTEREST|INVESTMENT", "from_party", direction="credit"),
    _cat("Refund", r"\b(?:REFUND|REBATE)", *MERCHANT_FIELDS),
    _cat("Dining", r"RESTAURANT|CAFE|FOOD|BAKERY|COFFEE|MCDONALD|STARBUCKS|DINING|FP\*FOOD", *MERCHANT_FIELDS),
    _cat("Groceries", r"\bMARKET\b|SUPERMARKET|GROCERY|NTUC|FAIRPRICE|COLD STORAGE", *MERCHANT_FIELDS),
    _cat("Transport", r"TRANSPORT|\bGRAB|TAXI|\bMRT\b|\bBUS\b|GOJEK|\bUBER", *MERCHANT_FIELDS),
    _cat("Shopping", r"AMAZON|LAZADA|SHOPEE|QOOLMART|SHOPPING|RETAIL|SHOPBACK", *MERCHANT_FIELDS),
    _cat("Travel", r"TRAVEL|AIRLINE|HOTEL|KLOOK", *MERCHANT_FIELDS),
    _cat("Subscriptions", r"SUBSCRIPTION|NETFLIX|SPOTIFY|\bPRIME\b|GOOGLE|APPLE|\bVPN\b", *MERCHANT_FIELDS),
    _cat("Housing", r"\bRENT(?:AL)?\b|PROPERTY|CONDO|APARTMENT", "description", "to_party"),
    _cat("Insurance", r"INSURANCE|PREMIUM", "description", "to_party", "company", "payment_details"),
    _cat("Telecommunications", r"TELECOM|MOBILE|PHONE|SINGTEL|STARHUB|\bM1\b|INTERNET", "description", "company"),
    _cat("Utilities", r"UTILIT|\bPOWER\b|SP GROUP|\bWATER\b|ELECTRICITY|\bGAS\b", "description", "to_party", "company"),
    _cat("Bills", r"\bBILLS?\b", "description", "to_party"),
    _cat("Loan Payment", r"\bLOAN\b|MORTGAGE", "description", "payment_details"),
    _cat("Investment", r"INVESTMENT|SECURITIES|TRADING", "description", "to_party", direction="debit"),
    _cat("Cash Withdrawal", r"\bATM\b|WITHDRAWAL", "description"),
    _cat("Fees", r"\bFEES?\b|\bCHARGES?\b", "description"),
    _cat("Interest", r"INTEREST", "description"),
    _cat("Dividend", r"DIVIDEND", "description"),
    _cat("Tax", r"\bTAX\b", "description"),
    _cat("Debit Card", r"Debit Card Transaction", "recipient"),
    _cat("Income", r".", "from_party", direction="credit"),
    _cat("Income", r"^GIRO$", "advice", direction="credit"),
    _cat("Bills", r"^GIRO$", "advice", direction="debit"),
    _cat("Transfer", r"\b(?:FAST|PAYNOW|TRANSFER)\b", "description", "recipient"),
    _cat("Transfer", r".", "to_party"),
    _cat("Bill Payment", r"\bPAYMENT\b", "description"),
)


def pick_category(
    haystacks: Dict[str, str],
    has_debit: bool,
    has_credit: bool,
    rules: Sequence[CategoryRule] = CATEGORY_RULES,
) -> str:
    for rule in rules:
        if rule.applies(haystacks, has_debit, has_credit):
            return rule.label
    if has_credit:
        return "Income"
    if has_debit:
        return "Expense"
    return ""


@dataclass(frozen=True)
class Categorization:
    description: str
    category: str
    details: RecipientDetails


def categorize(
    description: str,
    recipient_lines: Sequence[str],
    has_debit: bool,
    has_credit: bool,
    annotations: Sequence[str] = (),
) -> Categorization:
    details = extract_recipient_details(recipient_lines)
    cleaned = clean_description(description)
    if details.advice:
        cleaned = details.advice

    haystacks = {
        "description": cleaned,
        "recipient": " ".join(recipient_lines),
        "merchant": details.merchant,
        "to_party": details.to_party,
        "from_party": details.from_party,
        "company": details.company,
        "payment_details": details.payment_details,
        "advice": details.advice,
    }
    category = pick_category(haystacks, has_debit, has_credit)

    pieces = details.annotations() + [_parse_annotation_line(text) for text in annotations]
    return Categorization(
        description=with_annotations(cleaned, pieces),
        category=category,
        details=details,
    )


def apply_categorization(txn: FinishedTransaction) -> FinishedTransaction:
    raw = txn.raw_description or txn.description
    result = categorize(
        raw,
        txn.recipient_lines,
        has_debit=txn.debit is not None,
        has_credit=txn.credit is not None,
        annotations=txn.annotations,
    )
    return dataclasses.replace(txn, description=result.description, category=result.category, raw_description=raw)
