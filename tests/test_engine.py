import threading
from decimal import Decimal

import pytest

from sg_statement_parser.engine import PLACEHOLDER_NOTE, StatementEngine, parse_statement, parse_text
from sg_statement_parser.errors import ParseError
from sg_statement_parser.fallback import FallbackExtractor
from sg_statement_parser.models import FinishedTransaction
from sg_statement_parser.money import TOLERANCE
from sg_statement_parser.profiles import DBSProfile

DBS_HEADER = "Transaction Details\nBalance Brought Forward SGD {balance}\n"


class CancelAfter(threading.Event):
    """Reports cancelled once ``checks`` lines have been let through."""

    def __init__(self, checks):
        super().__init__()
        self.remaining = checks

    def is_set(self):
        self.remaining -= 1
        return self.remaining < 0


class RecordingExtractor(FallbackExtractor):
    name = "recording"

    def __init__(self, found=()):
        super().__init__(DBSProfile())
        self.found = list(found)
        self.calls = 0

    def extract(self, text):
        self.calls += 1
        return list(self.found)


def test_outgoing_transfer_scenario():
    text = DBS_HEADER.format(balance="1,000.00") + "01/02/2024 FAST PAYMENT TO: JOHN DOE 100.00 900.00\n"
    [txn] = parse_text(text, bank="dbs").transactions

    assert txn.debit == Decimal("100.00")
    assert txn.credit is None
    assert txn.balance == Decimal("900.00")
    assert txn.category == "Transfer"


def test_salary_scenario():
    text = DBS_HEADER.format(balance="900.00") + "02/02/2024 SALARY FROM: ACME CORP 5000.00 5900.00\n"
    [txn] = parse_text(text, bank="dbs").transactions

    assert txn.credit == Decimal("5000.00")
    assert txn.debit is None
    assert txn.balance == Decimal("5900.00")
    assert txn.category == "Salary"


def test_full_dbs_statement(dbs_text):
    result = parse_text(dbs_text)

    assert result.institution == "DBS"
    assert result.strategy == "primary"
    assert result.account == "123-45678-9"
    assert [t.category for t in result.transactions] == ["Transfer", "Salary", "Groceries"]
    assert [r.description for r in result.summary] == [
        "SUBTOTAL: Transfer",
        "SUBTOTAL: Salary",
        "SUBTOTAL: Groceries",
        "TOTAL",
    ]
    total = result.summary[-1]
    assert (total.debit, total.credit) == (Decimal("158.20"), Decimal("5000.00"))
    assert result.note is None


def test_balances_chain_through_reconciled_transactions():
    text = (
        DBS_HEADER.format(balance="1,000.00")
        + "01/02/2024 FAST PAYMENT TO: JOHN DOE 100.00 1,100.00\n"
        + "02/02/2024 INTEREST EARNED 0.50 1,100.50\n"
        + "03/02/2024 SALARY FROM: ACME CORP 20.00 900.50\n"
    )
    txns = parse_text(text, bank="dbs").transactions

    assert txns[0].reconciled and txns[0].credit == Decimal("100.00")
    assert txns[2].reconciled and txns[2].debit == Decimal("200.00")
    previous = Decimal("1000.00")
    for txn in txns:
        expected = previous + (txn.credit or 0) - (txn.debit or 0)
        assert abs(txn.balance - expected) <= TOLERANCE
        assert txn.debit is None or txn.credit is None
        previous = txn.balance


SPLIT_LEGS = (
    DBS_HEADER.format(balance="1,000.00")
    + "01/02/2024 PAYMENT ADJUSTMENT\n"
    + "(-) 10.00\n"
    + "(+) 30.00 {balance}\n"
)


def test_split_legs_survive_when_the_balance_confirms_a_leg():
    [txn] = parse_text(SPLIT_LEGS.format(balance="1,030.00"), bank="dbs").transactions

    assert txn.split_legs
    assert (txn.debit, txn.credit) == (Decimal("10.00"), Decimal("30.00"))
    assert not txn.reconciled


def test_split_legs_collapse_when_the_balance_disagrees():
    [txn] = parse_text(SPLIT_LEGS.format(balance="1,020.00"), bank="dbs").transactions

    assert not txn.split_legs
    assert (txn.debit, txn.credit) == (None, Decimal("20.00"))
    assert txn.reconciled


def test_citi_statement(citi_text):
    result = parse_text(citi_text)

    assert result.institution == "Citibank"
    assert result.statement_date == "January 15, 2024"
    assert result.card_type == "CITI REWARDS WORLD MASTERCARD"
    assert result.to_json()["card_type"] == "CITI REWARDS WORLD MASTERCARD"
    assert [t.category for t in result.transactions] == ["Dining", "Transport", "Shopping", "Bill Payment"]
    assert result.transactions[2].description == "AMAZON MARKETPLACE LUXEMBOURG | FOREIGN AMOUNT: USD 30.00"
    records = result.to_rows()
    assert records[0] == {
        "Date": "20 DEC 2023",
        "Description": "STARBUCKS SINGAPORE SG",
        "Debit": "12.50",
        "Credit": "",
        "Balance": "",
        "Account": "4111111111111111",
        "Category": "Dining",
    }
    assert records[-1]["Description"] == "TOTAL"
    assert records[-1]["Credit"] == "1234.56"


def test_section_without_anchors_invokes_fallback_then_notes():
    text = "Transaction Details\nnothing dated here 12.00\nTotal\n"
    recorder = RecordingExtractor()
    result = parse_text(text, bank="dbs", fallbacks=[recorder])

    assert recorder.calls == 1
    assert result.transactions == []
    assert result.summary == []
    assert result.note.note == PLACEHOLDER_NOTE
    assert result.strategy == "none"
    assert result.to_rows() == [{"Note": PLACEHOLDER_NOTE}]


def test_fallback_results_are_categorised_and_summarised():
    found = FinishedTransaction(
        date="01/02/2024",
        description="GIRO PAYMENT INSURANCE",
        debit=Decimal("50.00"),
        raw_description="GIRO PAYMENT INSURANCE",
        source="fallback",
    )
    result = parse_text("DBS\nno table here\n", bank="dbs", fallbacks=[RecordingExtractor([found, found])])

    assert result.strategy == "fallback"
    assert len(result.transactions) == 1
    assert result.transactions[0].category == "Insurance"
    assert result.summary[-1].debit == Decimal("50.00")


def test_fallback_not_used_when_primary_finds_rows(dbs_text):
    recorder = RecordingExtractor()
    parse_text(dbs_text, fallbacks=[recorder])

    assert recorder.calls == 0


def test_blank_input_yields_placeholder_only():
    result = parse_text("   \n\n  ")

    assert result.transactions == []
    assert result.summary == []
    assert result.note is not None


def test_cancellation_keeps_finalized_rows(dbs_text):
    recorder = RecordingExtractor()
    result = parse_text(dbs_text, cancel_event=CancelAfter(9), fallbacks=[recorder])

    assert result.cancelled
    assert [t.date for t in result.transactions] == ["01/02/2024", "02/02/2024"]
    assert recorder.calls == 0


def test_cancelled_before_start_returns_nothing(dbs_text):
    event = threading.Event()
    event.set()
    result = parse_text(dbs_text, cancel_event=event)

    assert result.cancelled
    assert result.transactions == []
    assert result.note is None


def test_engine_instances_do_not_share_state(dbs_text):
    engine = StatementEngine(DBSProfile())
    first = engine.extract(dbs_text)
    second = engine.extract(dbs_text)

    assert first == second


def test_parse_statement_reads_text_files(tmp_path, dbs_text):
    path = tmp_path / "dbs.txt"
    path.write_text(dbs_text, encoding="utf-8")

    assert len(parse_statement(path).transactions) == 3


def test_unreadable_sources_raise_parse_error(tmp_path):
    with pytest.raises(ParseError):
        parse_statement(tmp_path / "missing.pdf")
    with pytest.raises(ParseError):
        parse_statement(tmp_path / "missing.txt")
    with pytest.raises(ParseError):
        parse_statement(tmp_path / "statement.docx")


def test_fallback_rows_without_raw_text_keep_their_description():
    found = FinishedTransaction(date="01/02/2024", description="NTUC FAIRPRICE", debit=Decimal("12.30"))
    result = parse_text("DBS\nno table\n", bank="dbs", fallbacks=[RecordingExtractor([found])])

    [txn] = result.transactions
    assert txn.description == "NTUC FAIRPRICE"
    assert txn.category == "Groceries"
