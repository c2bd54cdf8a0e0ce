"""Institution-specific layout rules.

Each profile answers the classifier's questions for one statement layout:
where the transaction table starts and ends, which lines carry statement
metadata, and how a transaction date anchors a line.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple

from .errors import ParseError
from .logging_setup import get_logger
from .models import ColumnLabels, DateMatch, ParseContext
from .money import coerce_money, tokenize_amounts

logger = get_logger(__name__)

MONTHS = {
    "JAN": 1,
    "FEB": 2,
    "MAR": 3,
    "APR": 4,
    "MAY": 5,
    "JUN": 6,
    "JUL": 7,
    "AUG": 8,
    "SEP": 9,
    "OCT": 10,
    "NOV": 11,
    "DEC": 12,
}
MONTH_NAMES = {number: name for name, number in MONTHS.items()}
MONTH_ALT = "|".join(MONTHS)

DBS_ACCOUNT_RE = re.compile(r"Account No\.\s+(\d+-\d+-\d+)")
DBS_DATE_RE = re.compile(r"(?<!\d)(\d{2})/(\d{2})/(\d{4})(?!\d)")
DBS_BROUGHT_FORWARD_RE = re.compile(r"SGD\s+([\d,]+\.\d{2})")
DBS_RECIPIENT_RE = re.compile(r"\b(?:Advice|FAST|TRANSFER|Debit Card|GIRO|Salary)\b", re.IGNORECASE)
DBS_SECTION_END_RE = re.compile(r"\bTotal\b|End of Statement")

CITI_GLUED_DATE_RE = re.compile(rf"(?<!\d)(\d{{2}})({MONTH_ALT})")
CITI_CARD_NUMBER_RE = re.compile(r"(?<!\d)\d{4}(?:\s?\d{4}){3}(?!\d)")
CITI_STATEMENT_DATE_RE = re.compile(r"Statement Date:?\s*([A-Za-z]+)\s*(\d{1,2}),\s*(\d{4})", re.IGNORECASE)
CITI_DAY_MONTH_RE = re.compile(rf"^(\d{{2}})\s*({MONTH_ALT})", re.IGNORECASE)
CITI_DAY_SLASH_RE = re.compile(r"^(\d{2})/(\d{2})")
CITI_DAY_GLUED_RE = re.compile(r"^(\d{2})(?=[A-Za-z])")
CITI_DAY_SPACE_RE = re.compile(r"^(\d{2})\s")
CITI_TOTAL_RE = re.compile(r"^\s*TOTAL\s*:")
CITI_FRAGMENT_NOISE_RE = re.compile(r"[^\w\s.,\-+&*()/$%#@!?:;'\"]")
CITI_RESOLVABLE_DATE_RE = re.compile(rf"^(\d{{2}}) ({MONTH_ALT})$")


def squeeze_ws(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def valid_day_month(day: int, month: int) -> bool:
    return 1 <= day <= 31 and 1 <= month <= 12


class InstitutionProfile:
    name = ""
    display_name = ""
    labels = ColumnLabels()
    has_balance_column = True
    detection_markers: Tuple[str, ...] = ()

    def preprocess(self, text: str) -> str:
        return text

    def capture_metadata(self, line: str, ctx: ParseContext) -> None:
        pass

    def is_section_start(self, line: str, next_line: Optional[str] = None) -> bool:
        raise NotImplementedError

    def is_section_end(self, line: str) -> bool:
        raise NotImplementedError

    def capture_section_metadata(self, line: str, ctx: ParseContext) -> bool:
        """Handle non-transaction lines inside the table; True when consumed."""
        return False

    def match_date(self, line: str, ctx: ParseContext) -> Optional[DateMatch]:
        raise NotImplementedError

    def resolve_date(self, token: str, ctx: ParseContext) -> str:
        return token

    def is_annotation(self, line: str) -> bool:
        return False

    def collects_recipient(self, seed: str) -> bool:
        return False

    def clean_fragment(self, text: str) -> str:
        return squeeze_ws(text)


class DBSProfile(InstitutionProfile):
    name = "dbs"
    display_name = "DBS"
    labels = ColumnLabels(debit="Withdrawal", credit="Deposit")
    has_balance_column = True
    detection_markers = ("DBS", "POSB", "Balance Brought Forward")

    def capture_metadata(self, line: str, ctx: ParseContext) -> None:
        if "Account No." not in line:
            return
        m = DBS_ACCOUNT_RE.search(line)
        if m and m.group(1) != ctx.current_account:
            ctx.current_account = m.group(1)
            logger.debug("Found account number: %s", ctx.current_account)

    def is_section_start(self, line: str, next_line: Optional[str] = None) -> bool:
        if "Transaction Details" in line:
            return True
        return all(word in line for word in ("Date", "Description", "Withdrawal", "Deposit", "Balance"))

    def is_section_end(self, line: str) -> bool:
        # Whole word only: merchant names such as TotalEnergies stay inside the table.
        return bool(DBS_SECTION_END_RE.search(line))

    def capture_section_metadata(self, line: str, ctx: ParseContext) -> bool:
        if "Balance Brought Forward" in line:
            m = DBS_BROUGHT_FORWARD_RE.search(line)
            amount = coerce_money(m.group(1)) if m else None
            if amount is None:
                tokens = tokenize_amounts(line)
                amount = tokens[-1].value if tokens else None
            if amount is not None:
                ctx.last_known_balance = amount
                logger.debug("Initial balance: %s", amount)
            return True
        return "CURRENCY:" in line or "Account Summary" in line

    def match_date(self, line: str, ctx: ParseContext) -> Optional[DateMatch]:
        m = DBS_DATE_RE.search(line)
        if not m or not valid_day_month(int(m.group(1)), int(m.group(2))):
            return None
        return DateMatch(token=m.group(0), remainder=line[m.end():].strip())

    def collects_recipient(self, seed: str) -> bool:
        return bool(DBS_RECIPIENT_RE.search(seed))


class CitiProfile(InstitutionProfile):
    name = "citi"
    display_name = "Citibank"
    labels = ColumnLabels(debit="Debit", credit="Credit")
    has_balance_column = False
    detection_markers = ("CITIBANK", "CITI ", "YOUR CITI THANK YOU POINTS", "CITI THANK YOU")

    def preprocess(self, text: str) -> str:
        return CITI_GLUED_DATE_RE.sub(r"\1 \2", text)

    def capture_metadata(self, line: str, ctx: ParseContext) -> None:
        m_card = CITI_CARD_NUMBER_RE.search(line)
        if m_card:
            card_number = re.sub(r"\D", "", m_card.group(0))
            if card_number != ctx.current_account:
                ctx.current_account = card_number
                logger.debug("Found account/card number: %s", card_number)

        if "STATEMENT DATE" in line.upper():
            m_date = CITI_STATEMENT_DATE_RE.search(line)
            if m_date:
                month = MONTHS.get(m_date.group(1)[:3].upper())
                if month is not None:
                    ctx.statement_date = f"{m_date.group(1)} {m_date.group(2)}, {m_date.group(3)}"
                    ctx.statement_year = int(m_date.group(3))
                    ctx.statement_month = month
                    logger.debug("Found statement date: %s", ctx.statement_date)

        if "CITI" in line and ("VISA" in line or "MASTERCARD" in line):
            ctx.card_type = squeeze_ws(line)

    def is_section_start(self, line: str, next_line: Optional[str] = None) -> bool:
        upper = line.upper()
        if "DATE" in upper and "DESCRIPTION" in upper and "AMOUNT" in upper:
            return True
        return "TRANSACTIONS FOR" in line and next_line is not None and "ALL TRANSACTIONS" in next_line

    def is_section_end(self, line: str) -> bool:
        return (
            "SUB-TOTAL:" in line
            or "GRAND TOTAL" in line
            or "TOTAL FOR" in line
            or "YOUR CITI THANK YOU POINTS" in line
            or bool(CITI_TOTAL_RE.match(line))
        )

    def capture_section_metadata(self, line: str, ctx: ParseContext) -> bool:
        return "BALANCE PREVIOUS STATEMENT" in line

    def match_date(self, line: str, ctx: ParseContext) -> Optional[DateMatch]:
        m = CITI_DAY_MONTH_RE.match(line)
        if m:
            day = int(m.group(1))
            if not valid_day_month(day, MONTHS[m.group(2).upper()]):
                return None
            return DateMatch(token=f"{m.group(1)} {m.group(2).upper()}", remainder=line[m.end():].strip())

        m = CITI_DAY_SLASH_RE.match(line)
        if m:
            day, month = int(m.group(1)), int(m.group(2))
            if not valid_day_month(day, month):
                return None
            return DateMatch(token=f"{m.group(1)} {MONTH_NAMES[month]}", remainder=line[m.end():].strip())

        if ctx.statement_month is None:
            return None
        m = CITI_DAY_GLUED_RE.match(line) or CITI_DAY_SPACE_RE.match(line)
        if m and valid_day_month(int(m.group(1)), ctx.statement_month):
            return DateMatch(
                token=f"{m.group(1)} {MONTH_NAMES[ctx.statement_month]}",
                remainder=line[m.end():].strip(),
            )
        return None

    def resolve_date(self, token: str, ctx: ParseContext) -> str:
        m = CITI_RESOLVABLE_DATE_RE.match(token)
        if not m or ctx.statement_year is None:
            return token
        year = ctx.statement_year
        if ctx.statement_month is not None and MONTHS[m.group(2)] > ctx.statement_month:
            year -= 1
        return f"{token} {year}"

    def is_annotation(self, line: str) -> bool:
        return "FOREIGN AMOUNT" in line

    def clean_fragment(self, text: str) -> str:
        return squeeze_ws(CITI_FRAGMENT_NOISE_RE.sub(" ", text))


PROFILES: Dict[str, InstitutionProfile] = {
    DBSProfile.name: DBSProfile(),
    CitiProfile.name: CitiProfile(),
}


def detect_profile(text: str) -> InstitutionProfile:
    """Pick the profile whose markers dominate the statement header region."""
    top = [squeeze_ws(ln) for ln in text.splitlines() if squeeze_ws(ln)][:80]
    header = "\n".join(top)
    scores: List[Tuple[int, str]] = []
    for name, profile in PROFILES.items():
        score = sum(header.upper().count(marker.upper()) for marker in profile.detection_markers)
        scores.append((score, name))
    best_score, best_name = max(scores, key=lambda item: item[0])
    if best_score == 0:
        logger.info("No institution markers found, defaulting to %s", DBSProfile.display_name)
        return PROFILES[DBSProfile.name]
    return PROFILES[best_name]


def get_profile(name: str, text: str = "") -> InstitutionProfile:
    key = (name or "auto").strip().lower()
    if key == "auto":
        return detect_profile(text)
    profile = PROFILES.get(key)
    if profile is None:
        raise ParseError(f"Unsupported bank {name!r}; expected one of: auto, {', '.join(sorted(PROFILES))}")
    return profile
