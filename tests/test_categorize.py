from decimal import Decimal

from sg_statement_parser.categorize import (
    apply_categorization,
    categorize,
    clean_description,
    extract_recipient_details,
    pick_category,
)
from sg_statement_parser.models import FinishedTransaction


def test_outgoing_fast_payment_is_a_transfer():
    line = "FAST PAYMENT TO: JOHN DOE 100.00 900.00"
    result = categorize(line, [line], has_debit=True, has_credit=False)

    assert result.category == "Transfer"
    assert result.description == "FAST PAYMENT TO: JOHN DOE"
    assert result.details.to_party == "JOHN DOE"


def test_salary_keyword_beats_generic_income():
    line = "SALARY FROM: ACME CORP 5000.00 5900.00"
    result = categorize(line, [line], has_debit=False, has_credit=True)

    assert result.category == "Salary"
    assert result.description == "SALARY FROM: ACME CORP"


def test_incoming_party_without_payroll_keyword_is_income():
    line = "INCOMING PAYNOW FROM: JANE TAN 80.00 1080.00"
    assert categorize(line, [line], has_debit=False, has_credit=True).category == "Income"


def test_dividend_sender_is_investment_income():
    line = "INCOMING TRANSFER FROM: ABC DIVIDEND TRUST 12.00 112.00"
    assert categorize(line, [line], has_debit=False, has_credit=True).category == "Investment Income"


def test_debit_card_details_are_extracted_and_appended():
    lines = ["Debit Card Transaction", "NTUC FAIRPRICE SINGAPORE SGP 4111-2222-3333-4444 02FEB"]
    result = categorize(" ".join(lines), lines, has_debit=True, has_credit=False)

    assert result.category == "Groceries"
    assert result.details.merchant == "NTUC FAIRPRICE SINGAPORE"
    assert result.details.location == "SGP"
    assert result.details.card == "4111-2222-3333-4444"
    assert result.details.card_date == "02FEB"
    assert result.description.endswith(
        " | MERCHANT: NTUC FAIRPRICE SINGAPORE | LOCATION: SGP"
        " | CARD: 4111-2222-3333-4444 | TRANSACTION DATE: 02FEB"
    )


def test_giro_advice_replaces_description():
    lines = ["GIRO Salary", "ACME PTE LTD", "JAN 2024 PAYROLL"]
    result = categorize(" ".join(lines), lines, has_debit=False, has_credit=True)

    assert result.description == "GIRO | FROM: ACME PTE LTD | DETAILS: JAN 2024 PAYROLL"
    assert result.category == "Salary"


def test_giro_bill_uses_company_for_category():
    lines = ["GIRO PAYMENT", "SINGTEL MOBILE", "BILL 88001234"]
    result = categorize(" ".join(lines), lines, has_debit=True, has_credit=False)

    assert result.category == "Telecommunications"
    assert result.details.company == "SINGTEL MOBILE"


def test_advice_prefix_and_sign_markers_are_removed():
    assert clean_description("Advice FAST INCOMING TRANSFER 300.00") == "INCOMING TRANSFER"
    assert clean_description("CASH DEPOSIT (+) 50.00") == "CASH DEPOSIT"


def test_reference_and_transfer_numbers():
    details = extract_recipient_details(["FAST TRANSFER 778899 TO: LANDLORD", "REF RENT-JAN"])

    assert details.transfer == "778899"
    assert details.reference == "RENT-JAN"
    assert details.to_party == "LANDLORD"


def test_foreign_amount_annotation_is_appended_once():
    result = categorize(
        "AMAZON MARKETPLACE LUXEMBOURG",
        [],
        has_debit=True,
        has_credit=False,
        annotations=["FOREIGN AMOUNT USD 30.00"],
    )

    assert result.category == "Shopping"
    assert result.description == "AMAZON MARKETPLACE LUXEMBOURG | FOREIGN AMOUNT: USD 30.00"


def test_card_payment_is_kept_as_bill_payment():
    result = categorize("PAYMENT-THANK YOU (1,234.56)", [], has_debit=False, has_credit=True)

    assert result.category == "Bill Payment"
    assert result.description == "PAYMENT-THANK YOU"


def test_fallback_labels():
    assert pick_category({"description": "MISC"}, has_debit=True, has_credit=False) == "Expense"
    assert pick_category({"description": "MISC"}, has_debit=False, has_credit=True) == "Income"
    assert pick_category({"description": "MISC"}, has_debit=False, has_credit=False) == ""


def test_categorization_is_idempotent():
    lines = ("Debit Card Transaction", "STARBUCKS RAFFLES SGP 4111-2222-3333-4444 03FEB")
    txn = FinishedTransaction(
        date="03/02/2024",
        description=" ".join(lines),
        debit=Decimal("6.50"),
        raw_description=" ".join(lines),
        recipient_lines=lines,
    )

    once = apply_categorization(txn)
    twice = apply_categorization(once)

    assert once.category == "Dining"
    assert (twice.description, twice.category) == (once.description, once.category)
    assert once.description.count("MERCHANT:") == 1


def test_description_is_used_when_no_raw_text_was_kept():
    txn = FinishedTransaction(date="03/02/2024", description="NTUC FAIRPRICE 12.30", debit=Decimal("12.30"))

    result = apply_categorization(txn)

    assert result.description == "NTUC FAIRPRICE"
    assert result.category == "Groceries"
    assert result.raw_description == "NTUC FAIRPRICE 12.30"
