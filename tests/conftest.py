import hashlib
import hmac
import json
import os
import time
from decimal import Decimal

# must be set before the storefront package reads its settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["PAYMENT_GATEWAY"] = "fake"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.api import deps
from storefront.data.database import Base, get_db
from storefront.data.models import CartModel, CartItemModel
from storefront.main import create_app
from storefront.services.fake_gateway import FakeGateway

WEBHOOK_SECRET = "whsec_test"


class FakeCatalog:
    def __init__(self, products=None):
        self.products = dict(products or {})
        self.lookups = []

    def price_and_name(self, product_id):
        self.lookups.append(product_id)
        product = self.products.get(product_id)
        if product is None:
            return None
        price, name = product
        return Decimal(price), name


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_order_notification(self, user_id, order_id, status):
        self.sent.append((user_id, order_id, status))


class InMemoryClaims:
    def __init__(self):
        self.claims = {}

    def claim_event(self, event_id, claimant):
        if event_id in self.claims:
            return False
        self.claims[event_id] = claimant
        return True

    def release_event(self, event_id, claimant):
        if self.claims.get(event_id) == claimant:
            del self.claims[event_id]
            return True
        return False


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def make_event(event_type: str, intent_id: str, event_id: str = "evt_1", status: str = "succeeded", **extra) -> bytes:
    obj = {"id": intent_id, "object": "payment_intent", "status": status}
    obj.update(extra)
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode("utf-8")


def fill_cart(db, user_id: int, lines: dict) -> CartModel:
    cart = CartModel(user_id=user_id, version=1)
    cart.items = [CartItemModel(product_id=pid, quantity=qty) for pid, qty in lines.items()]
    db.add(cart)
    db.commit()
    db.refresh(cart)
    return cart


def auth_header(user_id: int) -> dict:
    token = jwt.encode({"sub": str(user_id)}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog():
    return FakeCatalog({1: ("10.00", "Keyboard"), 2: ("5.00", "Mouse"), 3: ("899.00", "Monitor")})


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    return FakeGateway(webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def claims():
    return InMemoryClaims()


@pytest.fixture
def client(session_factory, catalog, notifier, gateway, claims):
    app = create_app(with_lifespan=False)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_catalog] = lambda: catalog
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_event_claims] = lambda: claims
    return TestClient(app)
