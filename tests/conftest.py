import asyncio
import os
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import PayPalOptions
from database import get_db, init_db
from models import JewelryItem, Role, User
from paypal_client import PayPalClient
from security import create_token

PAYPAL_BASE = "https://api-m.sandbox.paypal.com"
PAYPAL_ORDER_ID = "5O190127TN364715T"


def capture_body(amount="19.98", currency="USD", status="COMPLETED", capture_id="3C679366HH908993F",
                 breakdown=True, fee_currency=None, payer_email="buyer@example.com"):
    capture = {
        "id": capture_id,
        "status": status,
        "amount": {"currency_code": currency, "value": amount},
    }
    if breakdown:
        gross = Decimal(amount)
        fee = Decimal("0.88")
        capture["seller_receivable_breakdown"] = {
            "gross_amount": {"currency_code": currency, "value": f"{gross:.2f}"},
            "paypal_fee": {"currency_code": fee_currency or currency, "value": f"{fee:.2f}"},
            "net_amount": {"currency_code": currency, "value": f"{gross - fee:.2f}"},
        }
    return {
        "id": PAYPAL_ORDER_ID,
        "status": "COMPLETED",
        "payer": {"email_address": payer_email},
        "purchase_units": [{"payments": {"captures": [capture]}}],
    }


class FakePayPal:
    """In-process stand-in for the PayPal REST API, served through httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.token_calls = 0
        self.expires_in = 32400
        self.token_status = 200
        self.create_status = 201
        self.create_links = [
            {"href": f"{PAYPAL_BASE}/v2/checkout/orders/{PAYPAL_ORDER_ID}", "rel": "self", "method": "GET"},
            {"href": f"https://www.sandbox.paypal.com/checkoutnow?token={PAYPAL_ORDER_ID}",
             "rel": "approve", "method": "GET"},
        ]
        self.capture_status = 201
        self.capture_json = capture_body()
        self.capture_text = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/v1/oauth2/token":
            self.token_calls += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={
                "scope": "https://uri.paypal.com/services/payments/payment",
                "access_token": f"A21AA-token-{self.token_calls}",
                "token_type": "Bearer",
                "expires_in": self.expires_in,
            })
        if path == "/v2/checkout/orders" and request.method == "POST":
            return httpx.Response(self.create_status, json={
                "id": PAYPAL_ORDER_ID,
                "status": "CREATED",
                "links": self.create_links,
            })
        if path.endswith("/capture"):
            if self.capture_text is not None:
                return httpx.Response(self.capture_status, text=self.capture_text)
            return httpx.Response(self.capture_status, json=self.capture_json)
        return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})

    def last(self, path_suffix: str) -> httpx.Request:
        return [r for r in self.requests if r.url.path.endswith(path_suffix)][-1]


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_paypal():
    return FakePayPal()


@pytest.fixture
def paypal(fake_paypal):
    options = PayPalOptions(client_id="client-id", secret="client-secret", base_url=PAYPAL_BASE, currency="USD")
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_paypal.handler), base_url=PAYPAL_BASE)
    client = PayPalClient(options, http=http)
    yield client
    asyncio.run(http.aclose())


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def factory(role=Role.CUSTOMER.value, password_hash="not-a-real-hash"):
        counter["n"] += 1
        n = counter["n"]
        user = User(username=f"user{n}", email=f"user{n}@example.com", password_hash=password_hash, role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def make_item(db):
    def factory(name="Pearl Drop Earrings", price="9.99", shipping="5.00", available=True, category="Earrings",
                collection=None):
        item = JewelryItem(
            name=name,
            description=f"{name} description",
            category=category,
            collection=collection,
            price=Decimal(price),
            shipping_price=Decimal(shipping),
            stock_quantity=10,
            is_available=available,
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    return factory


@pytest.fixture
def client(session_factory, paypal):
    from main import app, get_paypal_client

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_paypal_client] = lambda: paypal
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user: User, **extra) -> dict:
    headers = {"Authorization": f"Bearer {create_token(user)}"}
    headers.update(extra)
    return headers
