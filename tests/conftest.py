import os
import tempfile

# Configuration is read at import time, so the environment must be set first.
_DB_DIR = tempfile.mkdtemp(prefix="nova-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_DB_DIR, 'nova.db')}")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("GOOGLE_CLIENT_ID", "nova-test.apps.googleusercontent.com")

import itertools  # noqa: E402
from typing import Any, Dict, List, Tuple  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from nova_api.db import SessionLocal, engine, init_db  # noqa: E402
from nova_api.main import app  # noqa: E402
from nova_api.models.base import Base  # noqa: E402
from nova_api.realtime import broker  # noqa: E402
from nova_api.scripts import create_admin  # noqa: E402

_counter = itertools.count(1)

PICKUP = {"address": "Kigali Convention Centre", "lat": -1.9536, "lng": 30.0927}
DROPOFF = {"address": "Kigali International Airport", "lat": -1.9686, "lng": 30.1395}


class RecordingNotifier:
    """Notifier fake that remembers every publish call."""

    def __init__(self):
        self.calls: List[Tuple[List[Any], str, Any]] = []

    def publish(self, user_ids, event, payload) -> int:
        targets = list(user_ids)
        self.calls.append((targets, event, payload))
        return len(targets)

    def events(self, name: str) -> List[Tuple[List[Any], str, Any]]:
        return [c for c in self.calls if c[1] == name]


@pytest.fixture(autouse=True)
def _fresh_database():
    Base.metadata.drop_all(bind=engine)
    init_db()
    broker.clear()
    yield
    app.dependency_overrides.clear()
    broker.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def notifier():
    return RecordingNotifier()


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register(client: TestClient, role: str = "passenger", **overrides) -> Dict[str, Any]:
    n = next(_counter)
    body = {
        "name": f"{role.title()} {n}",
        "email": f"{role}{n}@nova.rw",
        "phone": f"+2507880{n:05d}",
        "password": "secret123",
        "role": role,
    }
    body.update(overrides)
    resp = client.post("/api/auth/register", json=body)
    assert resp.status_code == 201, resp.text
    data = resp.json()
    return {"token": data["token"], "user": data["user"], "headers": auth_headers(data["token"])}


def make_driver_ready(client: TestClient, account: Dict[str, Any], lat: float = -1.9500, lng: float = 30.0900):
    headers = account["headers"]
    resp = client.put(
        "/api/drivers/profile",
        json={"vehicle_type": "economy", "vehicle_model": "Toyota Corolla", "vehicle_plate": "RAC 123A"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    assert client.put("/api/drivers/location", json={"lat": lat, "lng": lng}, headers=headers).status_code == 200
    assert client.put("/api/drivers/availability", json={"is_available": True}, headers=headers).status_code == 200
    return account


def login(client: TestClient, email: str, password: str) -> Dict[str, Any]:
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    return {"token": data["token"], "user": data["user"], "headers": auth_headers(data["token"])}


def ride_request(**overrides) -> Dict[str, Any]:
    body = {
        "pickup_location": PICKUP,
        "dropoff_location": DROPOFF,
        "vehicle_type": "economy",
        "distance_km": 5,
        "duration_min": 15,
        "payment_method": "cash",
    }
    body.update(overrides)
    return body


@pytest.fixture
def passenger(client):
    return register(client, "passenger")


@pytest.fixture
def driver(client):
    return make_driver_ready(client, register(client, "driver"))


@pytest.fixture
def admin(client):
    n = next(_counter)
    email = f"admin{n}@nova.rw"
    create_admin(f"Admin {n}", email, f"+2507220{n:05d}", "admin-pass")
    return login(client, email, "admin-pass")
