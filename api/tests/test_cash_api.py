import pytest
from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError

from pos_api.db.schema import cash_sessions


def open_cash(client, headers, amount=1000, **extra):
    return client.post("/cash/open", json={"opening_amount": amount, **extra}, headers=headers)


def test_status_when_closed(client, employee_headers):
    response = client.get("/cash/status", headers=employee_headers)
    assert response.json() == {"success": True, "data": {"is_open": False, "session": None}}


def test_open_twice_is_rejected(client, employee_headers):
    assert open_cash(client, employee_headers).status_code == 201

    again = open_cash(client, employee_headers)
    assert again.status_code == 400
    assert again.json()["code"] == "CASH_ALREADY_OPEN"


def test_minimum_opening_amount(client, admin_headers, employee_headers):
    assert client.put("/cash/settings", json={"min_opening_amount": 500}, headers=employee_headers).status_code == 403
    client.put("/cash/settings", json={"min_opening_amount": 500}, headers=admin_headers)

    response = open_cash(client, employee_headers, amount=200)
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_OPENING_AMOUNT"

    settings = client.get("/cash/settings", headers=employee_headers).json()["data"]
    assert settings["min_opening_amount"] == 500


def test_movements_and_close_compute_difference(client, employee_headers, make_product):
    open_cash(client, employee_headers, amount=1000)
    product = make_product(price=250, stock=10)
    client.post(
        "/sales",
        json={"items": [{"product_id": product["id"], "quantity": 2, "unit_price": 250}], "total": 500},
        headers=employee_headers,
    )
    income = client.post(
        "/cash/movements", json={"type": "ingreso", "amount": 300, "description": "Cambio"}, headers=employee_headers
    )
    assert income.status_code == 201
    expense = client.post(
        "/cash/movements", json={"type": "egreso", "amount": 200, "description": "Proveedor"}, headers=employee_headers
    )
    assert expense.status_code == 201

    too_much = client.post(
        "/cash/movements", json={"type": "egreso", "amount": 5000, "description": "Retiro"}, headers=employee_headers
    )
    assert too_much.json()["code"] == "INSUFFICIENT_CASH"

    movements = client.get("/cash/movements", headers=employee_headers).json()["data"]
    assert [m["type"] for m in movements["movements"]] == ["egreso", "ingreso", "venta"]

    closed = client.post("/cash/close", json={"closing_amount": 1550, "notes": "Faltan 50"}, headers=employee_headers)
    assert closed.status_code == 200
    session = closed.json()["data"]
    assert session["status"] == "closed"
    assert session["expected_amount"] == 1600
    assert session["difference"] == -50

    details = client.get(f"/cash/sessions/{session['id']}", headers=employee_headers).json()["data"]
    assert len(details["movements"]) == 3
    assert details["sales_total"] == 500

    history = client.get("/cash/history", headers=employee_headers).json()["data"]
    assert history["pagination"]["total"] == 1


def test_close_and_movements_need_open_session(client, employee_headers):
    closed = client.post("/cash/close", json={"closing_amount": 0}, headers=employee_headers)
    assert closed.json()["code"] == "NO_OPEN_CASH"

    movement = client.post(
        "/cash/movements", json={"type": "ingreso", "amount": 10, "description": "x"}, headers=employee_headers
    )
    assert movement.json()["code"] == "NO_OPEN_CASH"


def test_unknown_session(client, employee_headers):
    response = client.get("/cash/sessions/42", headers=employee_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "CASH_SESSION_NOT_FOUND"


def test_only_one_open_session_row(db):
    db.execute(insert(cash_sessions).values(status="closed", opening_amount=0))
    db.execute(insert(cash_sessions).values(status="closed", opening_amount=0))
    db.execute(insert(cash_sessions).values(status="open", opening_amount=100))
    db.commit()

    with pytest.raises(IntegrityError):
        db.execute(insert(cash_sessions).values(status="open", opening_amount=200))
    db.rollback()
