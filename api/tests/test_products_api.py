def test_create_with_initial_stock_records_entry(client, admin_headers, make_product):
    product = make_product(stock=12)

    assert product["stock"] == 12
    assert product["min_stock"] == 10

    movements = client.get(
        "/products/movements/list", params={"product_id": product["id"]}, headers=admin_headers
    ).json()["data"]
    assert movements["pagination"]["total"] == 1
    movement = movements["movements"][0]
    assert movement["type"] == "entrada"
    assert movement["reason"] == "Stock inicial"
    assert movement["new_stock"] == 12


def test_kilogram_defaults(make_product):
    product = make_product(name="Queso cremoso", stock=2.5, unit_type="kg")

    assert product["unit_type"] == "kg"
    assert product["stock"] == 2.5
    assert product["min_stock"] == 1.0


def test_creation_validation(client, admin_headers, make_product):
    make_product(barcode="7790001000012")

    cases = [
        ({"name": "", "price": 10}, "NAME_REQUIRED"),
        ({"name": "Arroz", "price": 0}, "INVALID_PRICE"),
        ({"name": "Arroz", "price": 10, "stock": -1}, "INVALID_STOCK"),
        ({"name": "Arroz", "price": 10, "stock": 1.5}, "INVALID_UNIT_STOCK"),
        ({"name": "Arroz", "price": 10, "min_stock": 2.5}, "INVALID_UNIT_MIN_STOCK"),
        ({"name": "Arroz", "price": 10, "barcode": "7790001000012"}, "BARCODE_EXISTS"),
        ({"name": "Arroz", "price": 10, "category_id": 404}, "CATEGORY_NOT_FOUND"),
    ]
    for payload, code in cases:
        response = client.post("/products", json=payload, headers=admin_headers)
        assert response.status_code == 400, payload
        assert response.json()["success"] is False
        assert response.json()["code"] == code, payload


def test_stock_movement_endpoint(client, employee_headers, make_product):
    product = make_product(stock=10)

    entry = client.post(
        "/products/movements",
        json={"product_id": product["id"], "type": "entrada", "quantity": 5, "reason": "Compra"},
        headers=employee_headers,
    )
    assert entry.status_code == 201
    assert entry.json()["data"]["new_stock"] == 15
    assert entry.json()["data"]["user_name"] == "Empleado"

    too_much = client.post(
        "/products/movements",
        json={"product_id": product["id"], "type": "salida", "quantity": 20, "reason": "Venta"},
        headers=employee_headers,
    )
    assert too_much.status_code == 400
    assert too_much.json()["code"] == "INSUFFICIENT_STOCK"

    current = client.get(f"/products/{product['id']}", headers=employee_headers).json()["data"]
    assert current["stock"] == 15


def test_list_filters_and_pagination(client, employee_headers, make_product):
    for number in range(30):
        make_product(name=f"Galletitas {number:02d}", price=100 + number, stock=number)

    page = client.get("/products", params={"page": 2, "limit": 25}, headers=employee_headers).json()["data"]
    assert len(page["products"]) == 5
    assert page["pagination"] == {"page": 2, "limit": 25, "total": 30, "pages": 2}

    critical = client.get("/products", params={"stockLevel": "critical"}, headers=employee_headers).json()["data"]
    assert [p["name"] for p in critical["products"]] == ["Galletitas 00"]

    priced = client.get(
        "/products", params={"minPrice": 125, "search": "galletitas"}, headers=employee_headers
    ).json()["data"]
    assert priced["pagination"]["total"] == 5


def test_update_does_not_touch_stock(client, admin_headers, make_product):
    product = make_product(stock=7)

    response = client.put(
        f"/products/{product['id']}",
        json={"name": "Yerba Mate 500g", "price": 1400, "stock": 99},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Yerba Mate 500g"
    assert response.json()["data"]["stock"] == 7


def test_soft_delete_is_admin_only(client, admin_headers, employee_headers, make_product):
    product = make_product()

    assert client.delete(f"/products/{product['id']}", headers=employee_headers).status_code == 403

    deleted = client.delete(f"/products/{product['id']}", headers=admin_headers)
    assert deleted.status_code == 200
    assert deleted.json()["message"] == "Producto eliminado correctamente"

    listed = client.get("/products", headers=admin_headers).json()["data"]
    assert listed["pagination"]["total"] == 0
    inactive = client.get("/products", params={"active": "false"}, headers=admin_headers).json()["data"]
    assert inactive["pagination"]["total"] == 1


def test_alerts_and_stats(client, employee_headers, make_product):
    make_product(name="Aceite", stock=0)
    make_product(name="Fideos", stock=50)

    alerts = client.get("/products/alerts", headers=employee_headers).json()["data"]
    assert [(a["name"], a["level"]) for a in alerts] == [("Aceite", "critical")]

    stats = client.get("/products/stats", headers=employee_headers).json()["data"]
    assert stats["general"]["active_products"] == 2
    assert stats["general"]["out_of_stock"] == 1


def test_unknown_product(client, employee_headers):
    response = client.get("/products/12345", headers=employee_headers)
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Producto no encontrado", "code": "PRODUCT_NOT_FOUND"}
