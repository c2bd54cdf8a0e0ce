from decimal import Decimal

import pytest

from sg_statement_parser.errors import UnparseableAmount
from sg_statement_parser.money import coerce_money, money_to_text, parse_money, strip_amounts, tokenize_amounts


def test_tokens_keep_left_to_right_order():
    tokens = tokenize_amounts("FAST PAYMENT TO: JOHN DOE 100.00 900.00")

    assert [t.value for t in tokens] == [Decimal("100.00"), Decimal("900.00")]
    assert tokens[0].start < tokens[1].start
    assert not any(t.negative for t in tokens)


def test_thousands_separators_are_normalised():
    tokens = tokenize_amounts("58.20 5,841.80")

    assert tokens[1].value == Decimal("5841.80")
    assert tokens[1].text == "5,841.80"


def test_parenthesised_and_cr_tokens_are_negative():
    paren = tokenize_amounts("PAYMENT-THANK YOU (1,234.56)")
    cr = tokenize_amounts("REVERSAL 12.50 CR")

    assert paren[0].negative and paren[0].value == Decimal("1234.56")
    assert cr[0].negative and cr[0].value == Decimal("12.50")


def test_bad_grouping_is_skipped_without_dropping_the_line():
    tokens = tokenize_amounts("ODD 1,23.45 THEN 7.00")

    assert [t.value for t in tokens] == [Decimal("7.00")]


def test_no_tokens_inside_longer_numbers():
    assert tokenize_amounts("RATE 3.14159 REF 20240102") == []


def test_parse_money_rejects_missing_fraction():
    with pytest.raises(UnparseableAmount):
        parse_money("1234")
    with pytest.raises(UnparseableAmount):
        parse_money("12.5")


def test_strip_amounts_removes_signed_tokens():
    assert strip_amounts("PAYMENT-THANK YOU (1,234.56)").strip() == "PAYMENT-THANK YOU"


def test_money_text_helpers():
    assert money_to_text(None) == ""
    assert money_to_text(Decimal("0")) == "0.00"
    assert money_to_text(Decimal("1234.5"), grouped=True) == "1,234.50"
    assert coerce_money("1,000.00") == Decimal("1000.00")
    assert coerce_money("n/a") is None
    assert coerce_money("") is None
