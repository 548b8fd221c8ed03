from sqlalchemy import text


def sale_payload(*lines, total=None, **extra):
    items = [{"product_id": pid, "quantity": qty, "unit_price": price} for pid, qty, price in lines]
    if total is None:
        total = sum(qty * price for _, qty, price in lines)
    return {"items": items, "total": total, **extra}


def test_sale_writes_header_lines_and_stock_exits(client, db, employee_headers, make_product):
    yerba = make_product(name="Yerba", price=2500, stock=10)
    azucar = make_product(name="Azúcar", price=1200, stock=4)

    response = client.post(
        "/sales",
        json=sale_payload((yerba["id"], 2, 2500), (azucar["id"], 1, 1200), total=6000),
        headers=employee_headers,
    )

    assert response.status_code == 201, response.text
    sale = response.json()["data"]
    assert sale["total"] == 6000
    assert sale["status"] == "completed"
    assert sale["payment_method"] == "efectivo"
    assert sale["payment_method_display"] == "Efectivo"
    assert [(i["product_name"], i["subtotal"]) for i in sale["items"]] == [("Yerba", 5000), ("Azúcar", 1200)]
    assert db.execute(text("SELECT COUNT(*) FROM sale_items WHERE sale_id = :id"), {"id": sale["id"]}).scalar_one() == 2

    assert client.get(f"/products/{yerba['id']}", headers=employee_headers).json()["data"]["stock"] == 8
    assert client.get(f"/products/{azucar['id']}", headers=employee_headers).json()["data"]["stock"] == 3
    exits = db.execute(
        text("SELECT COUNT(*) FROM stock_movements WHERE reference_type = 'sale' AND reference_id = :id"),
        {"id": sale["id"]},
    ).scalar_one()
    assert exits == 2


def test_sale_is_all_or_nothing(client, db, employee_headers, make_product):
    yerba = make_product(name="Yerba", stock=10)
    aceite = make_product(name="Aceite", stock=1)

    response = client.post(
        "/sales",
        json=sale_payload((yerba["id"], 3, 2500), (aceite["id"], 2, 1800)),
        headers=employee_headers,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INSUFFICIENT_STOCK"
    assert db.execute(text("SELECT COUNT(*) FROM sales")).scalar_one() == 0
    assert client.get(f"/products/{yerba['id']}", headers=employee_headers).json()["data"]["stock"] == 10


def test_split_tender_display(client, employee_headers, make_product):
    product = make_product(price=1000, stock=5)

    response = client.post(
        "/sales",
        json=sale_payload(
            (product["id"], 2, 1000),
            payment_methods=[{"method": "efectivo", "amount": 1500}, {"method": "tarjeta_credito", "amount": 500}],
        ),
        headers=employee_headers,
    )

    sale = response.json()["data"]
    assert sale["payment_method"] == "multiple"
    assert sale["payment_method_display"] == "Efectivo: $ 1.500,00, T. Crédito: $ 500,00"
    assert sale["payment_methods_formatted"] == [
        {"method": "efectivo", "amount": 1500.0},
        {"method": "tarjeta_credito", "amount": 500.0},
    ]


def test_tenders_must_match_total(client, employee_headers, make_product):
    product = make_product(price=1000, stock=5)

    response = client.post(
        "/sales",
        json=sale_payload((product["id"], 1, 1000), payment_methods=[{"method": "efectivo", "amount": 900}]),
        headers=employee_headers,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "PAYMENT_TOTAL_MISMATCH"


def test_payload_validation_codes(client, employee_headers, make_product):
    product = make_product(stock=5)
    cases = [
        ({"items": [], "total": 10}, "NO_ITEMS"),
        (sale_payload((product["id"], 0, 10)), "INVALID_QUANTITY"),
        (sale_payload((product["id"], 1, 0), total=10), "INVALID_UNIT_PRICE"),
        (sale_payload((product["id"], 1, 10), total=0), "INVALID_TOTAL"),
        (sale_payload((product["id"], 1, 10), customer_id=999), "CUSTOMER_NOT_FOUND"),
        (sale_payload((product["id"], 1, 10), payment_method="cuenta_corriente"), "CUSTOMER_REQUIRED_FOR_ACCOUNT"),
    ]
    for payload, code in cases:
        response = client.post("/sales", json=payload, headers=employee_headers)
        assert response.status_code == 400, payload
        assert response.json()["code"] == code, payload


def test_account_sale_debits_customer_and_cancel_reverses(
    client, admin_headers, employee_headers, make_product, make_customer
):
    product = make_product(price=700, stock=6)
    customer = make_customer(credit_limit=5000)

    sale = client.post(
        "/sales",
        json=sale_payload((product["id"], 3, 700), customer_id=customer["id"], payment_method="cuenta_corriente"),
        headers=employee_headers,
    ).json()["data"]
    balance = client.get(f"/customers/{customer['id']}/balance", headers=employee_headers).json()["data"]
    assert balance["current_balance"] == 2100

    assert client.patch(f"/sales/{sale['id']}/cancel", json={}, headers=employee_headers).status_code == 403

    cancelled = client.patch(
        f"/sales/{sale['id']}/cancel", json={"reason": "Cliente devolvió"}, headers=admin_headers
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["status"] == "cancelled"
    assert cancelled.json()["data"]["cancel_reason"] == "Cliente devolvió"

    balance = client.get(f"/customers/{customer['id']}/balance", headers=employee_headers).json()["data"]
    assert balance["current_balance"] == 0
    assert client.get(f"/products/{product['id']}", headers=employee_headers).json()["data"]["stock"] == 6

    again = client.patch(f"/sales/{sale['id']}/cancel", json={}, headers=admin_headers)
    assert again.json()["code"] == "SALE_ALREADY_CANCELLED"


def test_cash_session_required_when_configured(client, admin_headers, employee_headers, make_product):
    product = make_product(stock=5)
    client.put("/cash/settings", json={"require_open_session": True}, headers=admin_headers)

    refused = client.post("/sales", json=sale_payload((product["id"], 1, 100)), headers=employee_headers)
    assert refused.json()["code"] == "CASH_SESSION_REQUIRED"

    client.post("/cash/open", json={"opening_amount": 1000}, headers=employee_headers)
    accepted = client.post("/sales", json=sale_payload((product["id"], 1, 100)), headers=employee_headers)
    assert accepted.status_code == 201

    status = client.get("/cash/status", headers=employee_headers).json()["data"]
    assert status["session"]["sales_total"] == 100
    assert status["session"]["current_amount"] == 1100


def test_list_stats_and_daily_report(client, employee_headers, make_product):
    product = make_product(price=500, stock=20)
    for quantity in (1, 2, 3):
        client.post("/sales", json=sale_payload((product["id"], quantity, 500)), headers=employee_headers)
    client.post(
        "/sales",
        json=sale_payload((product["id"], 1, 500), payment_method="transferencia"),
        headers=employee_headers,
    )

    listed = client.get("/sales", params={"limit": 2}, headers=employee_headers).json()["data"]
    assert listed["pagination"] == {"page": 1, "limit": 2, "total": 4, "pages": 2}

    transfers = client.get("/sales", params={"payment_method": "transferencia"}, headers=employee_headers).json()
    assert transfers["data"]["pagination"]["total"] == 1

    stats = client.get("/sales/stats", params={"period": "today"}, headers=employee_headers).json()["data"]
    assert stats["general"]["completed_sales"] == 4
    assert stats["general"]["total_revenue"] == 3500

    assert client.get("/sales/stats", params={"period": "siglo"}, headers=employee_headers).json()["code"] == (
        "INVALID_PERIOD"
    )

    report = client.get("/sales/report/daily", headers=employee_headers).json()["data"]
    assert report["summary"]["total_sales"] == 4
    assert report["top_products"][0]["quantity"] == 7


def test_unknown_sale(client, employee_headers):
    response = client.get("/sales/77", headers=employee_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "SALE_NOT_FOUND"


def test_cancel_refunds_cash_only_from_the_drawer_that_took_it(client, admin_headers, employee_headers, make_product):
    product = make_product(price=500, stock=5)
    outside = client.post("/sales", json=sale_payload((product["id"], 1, 500)), headers=employee_headers).json()["data"]

    client.post("/cash/open", json={"opening_amount": 1000}, headers=employee_headers)
    inside = client.post("/sales", json=sale_payload((product["id"], 1, 500)), headers=employee_headers).json()["data"]

    client.patch(f"/sales/{outside['id']}/cancel", json={}, headers=admin_headers)
    session = client.get("/cash/status", headers=employee_headers).json()["data"]["session"]
    assert session["expense_total"] == 0
    assert session["current_amount"] == 1500

    client.patch(f"/sales/{inside['id']}/cancel", json={}, headers=admin_headers)
    session = client.get("/cash/status", headers=employee_headers).json()["data"]["session"]
    assert session["expense_total"] == 500
    assert session["current_amount"] == 1000


def test_repeated_cancel_restocks_once(client, db, admin_headers, employee_headers, make_product):
    product = make_product(price=100, stock=4)
    sale = client.post("/sales", json=sale_payload((product["id"], 3, 100)), headers=employee_headers).json()["data"]

    assert client.patch(f"/sales/{sale['id']}/cancel", json={}, headers=admin_headers).status_code == 200
    assert client.patch(f"/sales/{sale['id']}/cancel", json={}, headers=admin_headers).status_code == 400
    assert client.patch("/sales/9999/cancel", json={}, headers=admin_headers).json()["code"] == "SALE_NOT_FOUND"

    entries = db.execute(
        text("SELECT COUNT(*) FROM stock_movements WHERE type = 'entrada' AND reference_id = :id"),
        {"id": sale["id"]},
    ).scalar_one()
    assert entries == 1
    assert client.get(f"/products/{product['id']}", headers=employee_headers).json()["data"]["stock"] == 4
