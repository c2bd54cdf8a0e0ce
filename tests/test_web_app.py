import pytest
from fastapi.testclient import TestClient

from sg_statement_parser.web.app import create_app, load_config

ADMIN = {"Authorization": "Bearer admin-token"}
BANK_VIEWER = {"Authorization": "Bearer dbs-token"}
CARD_VIEWER = {"Authorization": "Bearer card-token"}


@pytest.fixture
def client(tmp_path):
    config = {
        "database": {"sqlite_path": str(tmp_path / "app.db")},
        "storage": {"upload_dir": str(tmp_path / "uploads")},
        "users": [
            {"username": "admin", "token": "admin-token", "role": "admin"},
            {
                "username": "bank-viewer",
                "token": "dbs-token",
                "role": "user",
                "permissions": {"read": [{"type": "institution", "value": "DBS"}]},
            },
            {
                "username": "card-viewer",
                "token": "card-token",
                "role": "user",
                "permissions": {"read": [{"type": "account", "value": "4111111111111111"}]},
            },
        ],
    }
    return TestClient(create_app(config))


def upload(client, name, text, headers=ADMIN, **params):
    return client.post(
        "/api/statements/upload",
        files={"file": (name, text.encode("utf-8"), "text/plain")},
        params=params,
        headers=headers,
    )


def test_health(client):
    assert client.get("/api/health").json() == {"ok": True}


def test_login_and_me(client):
    assert client.post("/api/login", json={"token": "nope"}).status_code == 401
    assert client.post("/api/login", json={"token": "dbs-token"}).json()["username"] == "bank-viewer"
    assert client.get("/api/me").status_code == 401
    assert client.get("/api/me", headers=ADMIN).json() == {"username": "admin", "role": "admin"}


def test_upload_stores_transactions(client, dbs_text):
    res = upload(client, "dbs.txt", dbs_text)

    assert res.status_code == 200
    body = res.json()
    assert body["institution"] == "DBS"
    assert body["strategy"] == "primary"
    assert body["transactions_count"] == 3
    assert body["note"] is None

    items = client.get("/api/transactions", headers=ADMIN).json()["items"]
    assert [tx["debit"] for tx in items] == ["100.00", None, "58.20"]
    assert items[1]["credit"] == "5000.00"
    assert items[0]["account"] == "123-45678-9"


def test_duplicate_upload_is_rejected(client, dbs_text):
    first = upload(client, "dbs.txt", dbs_text).json()
    res = upload(client, "dbs-again.txt", dbs_text)

    assert res.status_code == 409
    assert res.json()["detail"]["existing_statement_id"] == first["statement_id"]


def test_upload_rejects_bad_input(client, dbs_text):
    assert upload(client, "dbs.csv", dbs_text).status_code == 400
    assert upload(client, "dbs.txt", dbs_text, bank="hsbc").status_code == 400
    assert upload(client, "dbs.txt", dbs_text, headers=BANK_VIEWER).status_code == 403


def test_statement_without_transactions_keeps_note(client):
    body = upload(client, "empty.txt", "DBS\nnothing here\n").json()

    assert body["transactions_count"] == 0
    assert body["strategy"] == "none"
    assert body["note"]


def test_transaction_read_scope(client, dbs_text, citi_text):
    upload(client, "dbs.txt", dbs_text)
    upload(client, "citi.txt", citi_text)

    bank_items = client.get("/api/transactions", headers=BANK_VIEWER).json()["items"]
    card_items = client.get("/api/transactions", headers=CARD_VIEWER).json()["items"]
    assert {tx["institution"] for tx in bank_items} == {"DBS"}
    assert len(bank_items) == 3
    assert {tx["account"] for tx in card_items} == {"4111111111111111"}
    assert len(card_items) == 4

    filtered = client.get("/api/transactions", params={"category": "Dining"}, headers=ADMIN).json()["items"]
    assert [tx["description"] for tx in filtered] == ["STARBUCKS SINGAPORE SG"]
    searched = client.get("/api/transactions", params={"q": "ntuc"}, headers=ADMIN).json()["items"]
    assert [tx["category"] for tx in searched] == ["Groceries"]


def test_statement_visibility(client, dbs_text, citi_text):
    dbs_id = upload(client, "dbs.txt", dbs_text).json()["statement_id"]
    citi_id = upload(client, "citi.txt", citi_text).json()["statement_id"]

    listed = client.get("/api/statements", headers=CARD_VIEWER).json()
    assert [item["id"] for item in listed["items"]] == [citi_id]
    assert listed["items"][0]["can_view_raw"] is False

    assert client.get(f"/api/statements/{citi_id}", headers=CARD_VIEWER).status_code == 403
    detail = client.get(f"/api/statements/{dbs_id}", headers=BANK_VIEWER).json()
    assert detail["parsed"]["account"] == "123-45678-9"
    assert client.get("/api/statements/999", headers=ADMIN).status_code == 404


def test_statement_summary(client, dbs_text):
    statement_id = upload(client, "dbs.txt", dbs_text).json()["statement_id"]

    body = client.get("/api/statement_summary", params={"statement_id": statement_id}, headers=ADMIN).json()
    assert body["transactions_count"] == 3
    assert body["categories"] == [
        {"category": "Transfer", "debit": "100.00", "credit": None},
        {"category": "Salary", "debit": None, "credit": "5000.00"},
        {"category": "Groceries", "debit": "58.20", "credit": None},
    ]
    assert body["total"] == {"debit": "158.20", "credit": "5000.00"}

    hidden = client.get("/api/statement_summary", params={"statement_id": statement_id}, headers=CARD_VIEWER).json()
    assert hidden["transactions_count"] == 0
    assert hidden["institution"] is None
    assert hidden["total"] == {"debit": "0.00", "credit": "0.00"}


def test_missing_config_file_is_a_configuration_error(tmp_path):
    with pytest.raises(RuntimeError, match="Missing config file") as excinfo:
        load_config(tmp_path / "config.json")

    assert excinfo.type is RuntimeError
