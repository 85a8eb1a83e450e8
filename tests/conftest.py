import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

PASSWORD = "Secret123"


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        jwt_secret="test-access-secret-0123456789abcdef",
        jwt_refresh_secret="test-refresh-secret-0123456789abcdef",
        bcrypt_rounds=4,
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["catalog_test"]


@pytest.fixture
def app(settings, db):
    return create_app(settings, db=db)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def register(client, email, password=PASSWORD, name="Test User", **extra):
    response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password, **extra})
    assert response.status_code == 201, response.json()
    return response.json()["data"]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(client):
    data = register(client, "admin@shop.com", name="Admin", role="admin")
    assert data["user"]["role"] == "admin"
    return data


@pytest.fixture
def admin_headers(admin):
    return bearer(admin["access_token"])


@pytest.fixture
def customer(client):
    return register(client, "jane@shop.com", name="Jane")


@pytest.fixture
def customer_headers(customer):
    return bearer(customer["access_token"])
