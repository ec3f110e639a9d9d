import asyncio
import os
import tempfile
import uuid
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

_TMP = tempfile.mkdtemp(prefix="qrtruck-tests-")

os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["MOCK_FAILURE_RATE"] = "0"
os.environ["MOCK_MIN_LATENCY"] = "0"
os.environ["MOCK_MAX_LATENCY"] = "0"
os.environ["DATA_DIRECTORY"] = os.path.join(_TMP, "data")
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"


DEMO_MENU: List[Dict[str, Any]] = [
    {"name": "Fish Taco", "price": 6.50, "category": "Tacos"},
    {"name": "Carne Asada Taco", "price": 5.25, "category": "Tacos"},
    {"name": "Horchata", "price": 3.75, "category": "Drinks"},
]


@pytest.fixture(scope="session")
def app():
    """
    Import the FastAPI app once per test session.
    """
    from qrtruck.main import app as qrtruck_app

    return qrtruck_app


@pytest.fixture(scope="session")
def client(app):
    """
    Synchronous TestClient; entering it runs startup (creates tables).
    """
    with TestClient(app) as test_client:
        yield test_client


def _signup(client: TestClient) -> Dict[str, Any]:
    email = f"owner-{uuid.uuid4().hex[:10]}@example.com"
    resp = client.post(
        "/api/auth/signup",
        json={"email": email, "password": "secret-pass", "name": "Test Owner"},
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    return {
        "email": email,
        "user": data["user"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }


def _promote_to_admin(email: str) -> None:
    from sqlalchemy import select

    from qrtruck.database import async_session_maker
    from qrtruck.models import User, UserRole

    async def _run() -> None:
        async with async_session_maker() as db:
            result = await db.execute(select(User).where(User.email == email))
            user = result.scalar_one()
            user.role = UserRole.ADMIN
            await db.commit()

    asyncio.run(_run())


@pytest.fixture()
def owner(client) -> Dict[str, Any]:
    return _signup(client)


@pytest.fixture()
def other_owner(client) -> Dict[str, Any]:
    return _signup(client)


@pytest.fixture()
def admin(client) -> Dict[str, Any]:
    account = _signup(client)
    _promote_to_admin(account["email"])
    # Role is read from the database on every request, the token stays valid
    return account


@pytest.fixture()
def truck(client, owner) -> Dict[str, Any]:
    """An open Ontario truck with a three-item menu."""
    resp = client.post(
        "/api/trucks",
        json={"name": "Taco Loco", "address": "100 Queen St W", "province": "ON"},
        headers=owner["headers"],
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()

    resp = client.post(
        "/api/menu",
        json={"truck_id": data["id"], "items": DEMO_MENU},
        headers=owner["headers"],
    )
    assert resp.status_code == 200, resp.text

    data["menu"] = resp.json()["items"]
    data["owner"] = owner
    return data


def create_intent(client: TestClient, truck: Dict[str, Any], quantities=None) -> Dict[str, Any]:
    quantities = quantities or [1] * len(truck["menu"])
    items = [
        {"menu_item_id": item["id"], "quantity": qty}
        for item, qty in zip(truck["menu"], quantities)
    ]
    resp = client.post(
        "/api/payment/create-intent",
        json={
            "truck_id": truck["id"],
            "items": items,
            "customer": {"name": "Pat", "email": "pat@example.com", "phone": "416-555-0100"},
        },
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def pay(client: TestClient, intent: Dict[str, Any], deliver_webhook: bool = True) -> Dict[str, Any]:
    resp = client.post(
        "/webhook/simulation/payment-succeeded",
        json={"payment_intent_id": intent["payment_intent_id"], "deliver_webhook": deliver_webhook},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.fixture()
def paid_order(client, truck) -> Dict[str, Any]:
    """A PENDING order created through the webhook."""
    intent = create_intent(client, truck)
    body = pay(client, intent)
    assert body["order"] is not None
    order = body["order"]
    order["truck"] = truck
    return order


@pytest.fixture()
def checkout(client):
    """Callable that opens a payment intent for a truck's menu."""
    return lambda truck, quantities=None: create_intent(client, truck, quantities)


@pytest.fixture()
def simulate_payment(client):
    """Callable that pays a mock intent, optionally losing the webhook."""
    return lambda intent, deliver_webhook=True: pay(client, intent, deliver_webhook)
