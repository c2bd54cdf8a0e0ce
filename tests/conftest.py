import pytest

DBS_STATEMENT = """\
DBS Bank Ltd
Consolidated Statement
Account No. 123-45678-9
Transaction Details
Date Description Withdrawal (-) Deposit (+) Balance
Balance Brought Forward SGD 1,000.00
01/02/2024 FAST PAYMENT TO: JOHN DOE 100.00 900.00
02/02/2024 SALARY FROM: ACME CORP 5000.00 5900.00
03/02/2024 Debit Card Transaction
NTUC FAIRPRICE SINGAPORE SGP 4111-2222-3333-4444 02FEB
58.20 5,841.80
Total 158.20 5000.00
05/02/2024 THIS LINE IS AFTER THE TABLE 1.00 2.00
"""

CITI_STATEMENT = """\
CITIBANK SINGAPORE
CITI REWARDS WORLD MASTERCARD
Statement Date: January 15, 2024
CARD NUMBER 4111 1111 1111 1111
DATE DESCRIPTION AMOUNT (SGD)
BALANCE PREVIOUS STATEMENT 1,234.56
20DEC STARBUCKS SINGAPORE SG 12.50
05JAN GRAB *RIDE SINGAPORE SG 23.40
07JAN AMAZON MARKETPLACE LUXEMBOURG
FOREIGN AMOUNT USD 30.00
40.12
10JAN PAYMENT-THANK YOU (1,234.56)
SUB-TOTAL: 1,310.58
"""


@pytest.fixture
def dbs_text():
    return DBS_STATEMENT


@pytest.fixture
def citi_text():
    return CITI_STATEMENT
