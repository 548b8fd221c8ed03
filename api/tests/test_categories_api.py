def create_category(client, headers, **payload):
    response = client.post("/categories", json={"name": "Almacén", **payload}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_create_uses_defaults(client, employee_headers):
    category = create_category(client, employee_headers)

    assert category["color"] == "#3B82F6"
    assert category["icon"] == "📦"


def test_duplicate_name_rejected(client, employee_headers):
    create_category(client, employee_headers)

    response = client.post("/categories", json={"name": "Almacén"}, headers=employee_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "CATEGORY_EXISTS"


def test_missing_name(client, employee_headers):
    response = client.post("/categories", json={"name": "  "}, headers=employee_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "NAME_REQUIRED"


def test_delete_refused_while_products_use_it(client, admin_headers, make_product):
    category = create_category(client, admin_headers)
    make_product(category_id=category["id"])

    response = client.delete(f"/categories/{category['id']}", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "CATEGORY_HAS_PRODUCTS"


def test_delete_restore_and_filters(client, admin_headers, employee_headers):
    kept = create_category(client, admin_headers, name="Bebidas")
    removed = create_category(client, admin_headers, name="Limpieza")

    assert client.delete(f"/categories/{removed['id']}", headers=employee_headers).status_code == 403
    assert client.delete(f"/categories/{removed['id']}", headers=admin_headers).status_code == 200

    active = client.get("/categories", headers=employee_headers).json()["data"]
    assert [c["id"] for c in active] == [kept["id"]]
    everything = client.get("/categories", params={"active": "all"}, headers=employee_headers).json()["data"]
    assert len(everything) == 2

    restored = client.patch(f"/categories/{removed['id']}/restore", headers=employee_headers)
    assert restored.status_code == 200
    assert restored.json()["data"]["active"] in (True, 1)

    stats = client.get("/categories/stats", headers=employee_headers).json()["data"]
    assert stats["general"]["total_categories"] == 2


def test_unknown_category(client, employee_headers):
    response = client.get("/categories/999", headers=employee_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "CATEGORY_NOT_FOUND"
