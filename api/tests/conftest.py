import os

# Settings are read on import, so the test environment has to be in place first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import insert

from pos_api.core.security import ROLE_ADMIN, ROLE_EMPLOYEE, create_access_token, get_password_hash
from pos_api.db.schema import users
from pos_api.db.session import Database
from pos_api.main import create_app

PASSWORD = "secreto123"


@pytest.fixture(scope="session")
def password_hash():
    return get_password_hash(PASSWORD)


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.create_schema()
    yield database
    database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def seeded_users(database, password_hash):
    with database.engine.begin() as conn:
        admin_id = conn.execute(
            insert(users).values(name="Admin", email="admin@almacen.com.ar", password_hash=password_hash, role=ROLE_ADMIN)
        ).inserted_primary_key[0]
        employee_id = conn.execute(
            insert(users).values(
                name="Empleado", email="empleado@almacen.com.ar", password_hash=password_hash, role=ROLE_EMPLOYEE
            )
        ).inserted_primary_key[0]
    return {"admin": admin_id, "employee": employee_id}


@pytest.fixture
def client(database, seeded_users):
    app = create_app(database)
    return TestClient(app)


@pytest.fixture
def admin_headers(seeded_users):
    token = create_access_token(str(seeded_users["admin"]), ROLE_ADMIN)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def employee_headers(seeded_users):
    token = create_access_token(str(seeded_users["employee"]), ROLE_EMPLOYEE)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_product(client, admin_headers):
    def _make(name="Yerba Mate 1kg", price=2500, stock=10, unit_type="unidades", **extra):
        payload = {"name": name, "price": price, "stock": stock, "unit_type": unit_type, **extra}
        response = client.post("/products", json=payload, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _make


@pytest.fixture
def make_customer(client, admin_headers):
    def _make(name="María Gómez", **extra):
        response = client.post("/customers", json={"name": name, **extra}, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _make
