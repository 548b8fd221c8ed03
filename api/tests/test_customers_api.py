def post_transaction(client, headers, customer_id, kind, amount, description=None):
    return client.post(
        "/customers/transactions",
        json={"customer_id": customer_id, "type": kind, "amount": amount, "description": description},
        headers=headers,
    )


def test_debits_and_credits_move_balance(client, employee_headers, make_customer):
    customer = make_customer(credit_limit=10000)

    debit = post_transaction(client, employee_headers, customer["id"], "debito", 4000)
    assert debit.status_code == 201
    assert debit.json()["data"]["previous_balance"] == 0
    assert debit.json()["data"]["new_balance"] == 4000
    assert debit.json()["data"]["description"] == "Cargo manual"

    credit = post_transaction(client, employee_headers, customer["id"], "credito", 1500, "Pago parcial")
    assert credit.status_code == 201
    assert credit.json()["data"]["new_balance"] == 2500

    balance = client.get(f"/customers/{customer['id']}/balance", headers=employee_headers).json()["data"]
    assert balance["current_balance"] == 2500
    assert balance["available_credit"] == 7500

    history = client.get(f"/customers/{customer['id']}/transactions", headers=employee_headers).json()["data"]
    assert [t["type"] for t in history["transactions"]] == ["credito", "debito"]


def test_credit_limit_enforced(client, employee_headers, make_customer):
    customer = make_customer(credit_limit=1000)

    response = post_transaction(client, employee_headers, customer["id"], "debito", 1500)

    assert response.status_code == 400
    assert response.json()["code"] == "CREDIT_LIMIT_EXCEEDED"
    balance = client.get(f"/customers/{customer['id']}/balance", headers=employee_headers).json()["data"]
    assert balance["current_balance"] == 0


def test_invalid_transaction_type(client, employee_headers, make_customer):
    customer = make_customer()
    response = post_transaction(client, employee_headers, customer["id"], "regalo", 10)
    assert response.status_code == 400


def test_delete_refused_with_balance(client, admin_headers, employee_headers, make_customer):
    customer = make_customer()
    post_transaction(client, employee_headers, customer["id"], "debito", 300)

    refused = client.delete(f"/customers/{customer['id']}", headers=admin_headers)
    assert refused.status_code == 400
    assert refused.json()["code"] == "CUSTOMER_HAS_BALANCE"

    post_transaction(client, employee_headers, customer["id"], "credito", 300)
    assert client.delete(f"/customers/{customer['id']}", headers=employee_headers).status_code == 403
    assert client.delete(f"/customers/{customer['id']}", headers=admin_headers).status_code == 200


def test_list_search_and_balance_filter(client, employee_headers, make_customer):
    ana = make_customer(name="Ana Pérez", phone="351-555-0101")
    make_customer(name="Bruno Díaz", document_number="30111222")
    post_transaction(client, employee_headers, ana["id"], "debito", 50)

    found = client.get("/customers", params={"search": "30111"}, headers=employee_headers).json()["data"]
    assert [c["name"] for c in found["customers"]] == ["Bruno Díaz"]

    owing = client.get("/customers", params={"with_balance": "true"}, headers=employee_headers).json()["data"]
    assert [c["id"] for c in owing["customers"]] == [ana["id"]]

    stats = client.get("/customers/stats", headers=employee_headers).json()["data"]
    assert stats["general"]["with_balance"] == 1
    assert stats["top_debtors"][0]["name"] == "Ana Pérez"


def test_update_requires_admin(client, admin_headers, employee_headers, make_customer):
    customer = make_customer()
    payload = {"name": "María G. Gómez", "credit_limit": 5000}

    assert client.put(f"/customers/{customer['id']}", json=payload, headers=employee_headers).status_code == 403
    updated = client.put(f"/customers/{customer['id']}", json=payload, headers=admin_headers)
    assert updated.status_code == 200
    assert updated.json()["data"]["credit_limit"] == 5000


def test_name_required(client, employee_headers):
    response = client.post("/customers", json={"name": ""}, headers=employee_headers)
    assert response.json()["code"] == "NAME_REQUIRED"
