from __future__ import annotations

import hashlib
import hmac
import itertools
import os
import time
from types import SimpleNamespace
from typing import Any

os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402
import stripe  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.config import settings  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db import session as db_session_module  # noqa: E402
from app.db.base_class import Base  # noqa: E402
from app.db.session import SessionLocal  # noqa: E402
from app.models.models import Business, ProcessorConfig, ProcessorType, User  # noqa: E402
from app.services.payments import paysafe_client, stripe_client  # noqa: E402

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")


test_engine = create_engine(
    TEST_DATABASE_URL,
    future=True,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Ensure application code uses the test engine
settings.DATABASE_URL = TEST_DATABASE_URL  # type: ignore[attr-defined]
settings.ENV = "test"  # type: ignore[attr-defined]
db_session_module.engine = test_engine  # type: ignore[assignment]
SessionLocal.configure(bind=test_engine)


# --------------------------------------------------------------------------
# In-memory Stripe
# --------------------------------------------------------------------------
def stripe_missing(kind: str, object_id: str) -> stripe.InvalidRequestError:
    return stripe.InvalidRequestError(
        f"No such {kind}: '{object_id}'", "id", code="resource_missing", http_status=404
    )


class _FakeResource:
    def __init__(self, fake: FakeStripe):
        self._fake = fake


class _FakeAccounts(_FakeResource):
    def create(self, **params):
        self._fake.record("Account.create", params)
        account = SimpleNamespace(
            id=self._fake.next_id("acct"),
            object="account",
            type=params.get("type"),
            country=params.get("country"),
            email=params.get("email"),
            charges_enabled=False,
            details_submitted=False,
            payouts_enabled=False,
            metadata=params.get("metadata") or {},
        )
        self._fake.accounts[account.id] = account
        return account

    def retrieve(self, account_id):
        self._fake.record("Account.retrieve", {"id": account_id})
        if account_id not in self._fake.accounts:
            raise stripe_missing("account", account_id)
        return self._fake.accounts[account_id]

    def delete(self, account_id):
        self._fake.record("Account.delete", {"id": account_id})
        if self._fake.accounts.pop(account_id, None) is None:
            raise stripe_missing("account", account_id)
        return SimpleNamespace(id=account_id, deleted=True)


class _FakeAccountLinks(_FakeResource):
    def create(self, **params):
        self._fake.record("AccountLink.create", params)
        return SimpleNamespace(object="account_link", url=f"https://connect.stripe.test/setup/{params['account']}")


class _FakeCustomers(_FakeResource):
    def create(self, **params):
        self._fake.record("Customer.create", params)
        customer = SimpleNamespace(
            id=self._fake.next_id("cus"),
            object="customer",
            email=params.get("email"),
            name=params.get("name"),
            metadata=dict(params.get("metadata") or {}),
            address=None,
            created=1_700_000_000,
            deleted=False,
            invoice_settings=SimpleNamespace(default_payment_method=None),
        )
        self._fake.customers[customer.id] = customer
        return customer

    def retrieve(self, customer_id):
        self._fake.record("Customer.retrieve", {"id": customer_id})
        customer = self._fake.customers.get(customer_id)
        if customer is None:
            raise stripe_missing("customer", customer_id)
        if customer.deleted:
            return SimpleNamespace(id=customer_id, object="customer", deleted=True)
        return customer

    def modify(self, customer_id, **params):
        self._fake.record("Customer.modify", {"id": customer_id, **params})
        customer = self.retrieve(customer_id)
        default = (params.get("invoice_settings") or {}).get("default_payment_method")
        if default is not None:
            customer.invoice_settings.default_payment_method = default
        return customer

    def delete(self, customer_id):
        self._fake.record("Customer.delete", {"id": customer_id})
        customer = self._fake.customers.get(customer_id)
        if customer is None:
            raise stripe_missing("customer", customer_id)
        customer.deleted = True
        return SimpleNamespace(id=customer_id, deleted=True)


class _FakePaymentMethods(_FakeResource):
    def retrieve(self, payment_method_id):
        self._fake.record("PaymentMethod.retrieve", {"id": payment_method_id})
        payment_method = self._fake.payment_methods.get(payment_method_id)
        if payment_method is None:
            raise stripe_missing("payment_method", payment_method_id)
        return payment_method

    def attach(self, payment_method_id, customer=None):
        self._fake.record("PaymentMethod.attach", {"id": payment_method_id, "customer": customer})
        payment_method = self.retrieve(payment_method_id)
        payment_method.customer = customer
        return payment_method

    def detach(self, payment_method_id):
        self._fake.record("PaymentMethod.detach", {"id": payment_method_id})
        payment_method = self.retrieve(payment_method_id)
        payment_method.customer = None
        return payment_method

    def list(self, customer=None, type=None):
        self._fake.record("PaymentMethod.list", {"customer": customer, "type": type})
        data = [pm for pm in self._fake.payment_methods.values() if pm.customer == customer]
        return SimpleNamespace(object="list", data=data)


class _FakePaymentIntents(_FakeResource):
    def create(self, **params):
        self._fake.record("PaymentIntent.create", params)
        intent = SimpleNamespace(
            id=self._fake.next_id("pi"),
            object="payment_intent",
            status=self._fake.intent_status,
            amount=params.get("amount"),
        )
        self._fake.intents.append(params)
        return intent


class FakeStripe:
    """Stand-in for the ``stripe`` module exposing the resources the core uses."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}
        self.accounts: dict[str, Any] = {}
        self.customers: dict[str, Any] = {}
        self.payment_methods: dict[str, Any] = {}
        self.intents: list[dict[str, Any]] = []
        self.intent_status = "succeeded"
        self.api_key: str | None = None

        self.Account = _FakeAccounts(self)
        self.AccountLink = _FakeAccountLinks(self)
        self.Customer = _FakeCustomers(self)
        self.PaymentMethod = _FakePaymentMethods(self)
        self.PaymentIntent = _FakePaymentIntents(self)

    def next_id(self, prefix: str) -> str:
        return f"{prefix}_test_{next(self._ids)}"

    def record(self, operation: str, params: dict[str, Any]) -> None:
        self.calls.append((operation, params))
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def add_card(
        self,
        payment_method_id: str,
        customer: str | None = None,
        brand: str = "visa",
        last4: str = "4242",
    ) -> Any:
        payment_method = SimpleNamespace(
            id=payment_method_id,
            object="payment_method",
            customer=customer,
            card=SimpleNamespace(brand=brand, last4=last4, exp_month=12, exp_year=2030, funding="credit"),
            billing_details=SimpleNamespace(name="Member", email="member@example.com"),
            created=1_700_000_100,
        )
        self.payment_methods[payment_method_id] = payment_method
        return payment_method


class FakePaysafeResponse:
    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self._body = body

    @property
    def content(self) -> bytes:
        return b"" if self._body is None else b"{...}"

    def json(self) -> Any:
        return self._body


def paysafe_error(status_code: int, code: str, message: str) -> FakePaysafeResponse:
    return FakePaysafeResponse(status_code, {"error": {"code": code, "message": message}})


class FakePaysafeSession:
    """Replaces requests.Session for the Paysafe client.

    Serves payments and the customer/payment handle endpoints from memory;
    ``respond`` forces the answer to every following request.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self.auth = None
        self.headers: dict[str, str] = {}
        self.requests: list[dict[str, Any]] = []
        self.posts: list[dict[str, Any]] = []
        self.forced: FakePaysafeResponse | None = None
        self.customers: dict[str, dict[str, Any]] = {}
        self.handles: dict[str, list[dict[str, Any]]] = {}
        self.single_use_tokens: dict[str, dict[str, Any]] = {}

    def respond(self, status_code: int, body: Any) -> None:
        self.forced = FakePaysafeResponse(status_code, body)

    def add_token(self, token: str, card_type: str = "VI", last_digits: str = "1111", month: int = 11, year: int = 2031):
        """Register a single-use token as Paysafe.js would after tokenizing a card."""
        self.single_use_tokens[token] = {
            "cardType": card_type,
            "lastDigits": last_digits,
            "cardExpiry": {"month": month, "year": year},
        }

    def count(self, method: str, suffix: str = "") -> int:
        return sum(1 for r in self.requests if r["method"] == method and r["url"].endswith(suffix))

    def request(self, method, url, json=None, timeout=None):
        self.requests.append({"method": method, "url": url, "json": json, "timeout": timeout})
        if method == "POST":
            self.posts.append({"url": url, "json": json, "timeout": timeout})
        if self.forced is not None:
            return self.forced
        parts = url.split("/paymenthub/v1/", 1)[1].split("/")
        if parts == ["payments"] and method == "POST":
            return FakePaysafeResponse(201, {"id": "pay_test_1", "status": "COMPLETED"})
        if parts == ["customers"] and method == "POST":
            return self._create_customer(json)
        if len(parts) >= 3 and parts[0] == "customers" and parts[2] == "paymenthandles":
            customer_id = parts[1]
            if customer_id not in self.customers:
                return paysafe_error(404, "5269", "The customer could not be found")
            if method == "GET":
                return FakePaysafeResponse(200, {"paymentHandles": list(self.handles[customer_id])})
            if method == "POST":
                return self._create_handle(customer_id, json)
            if method == "DELETE" and len(parts) == 4:
                return self._delete_handle(customer_id, parts[3])
        return paysafe_error(404, "5000", f"Unexpected {method} {url}")

    def _create_customer(self, payload):
        customer = {"id": f"cust_test_{next(self._ids)}", "status": "ACTIVE", **payload}
        self.customers[customer["id"]] = customer
        self.handles[customer["id"]] = []
        return FakePaysafeResponse(201, customer)

    def _create_handle(self, customer_id, payload):
        card = self.single_use_tokens.pop(payload.get("paymentHandleTokenFrom"), None)
        if card is None:
            return paysafe_error(400, "5068", "The single-use payment handle is invalid or expired")
        handle = {
            "id": f"handle_{next(self._ids)}",
            "paymentHandleToken": f"MU_test_{next(self._ids)}",
            "status": "PAYABLE",
            "usage": "MULTI_USE",
            "card": card,
        }
        self.handles[customer_id].append(handle)
        return FakePaysafeResponse(201, handle)

    def _delete_handle(self, customer_id, token):
        handles = self.handles[customer_id]
        remaining = [h for h in handles if h["paymentHandleToken"] != token]
        if len(remaining) == len(handles):
            return paysafe_error(404, "5269", "The payment handle could not be found")
        self.handles[customer_id] = remaining
        return FakePaysafeResponse(200, None)


def stripe_signature(payload: str, secret: str, timestamp: int | None = None) -> str:
    ts = timestamp or int(time.time())
    digest = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


# --------------------------------------------------------------------------
# Fixtures
# --------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _reset_database_state():
    """Ensure each test sees a fresh database schema."""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield


@pytest.fixture(autouse=True)
def fake_stripe():
    """Every test talks to the in-memory Stripe; nothing reaches the network."""
    fake = FakeStripe()

    def factory(api_key: str) -> FakeStripe:
        fake.api_key = api_key
        return fake

    stripe_client.factory = factory
    stripe_client.reset()
    yield fake
    stripe_client.factory = None
    stripe_client.reset()


@pytest.fixture
def paysafe_session():
    session = FakePaysafeSession()
    original = paysafe_client.session_factory
    paysafe_client.session_factory = lambda: session
    paysafe_client.reset()
    yield session
    paysafe_client.session_factory = original
    paysafe_client.reset()


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


@pytest.fixture
def make_user(db_session):
    def _make(email: str = "member@example.com", first_name: str = "Jamie", last_name: str = "Rivera", ref_user_id=None):
        user = User(email=email, first_name=first_name, last_name=last_name, ref_user_id=ref_user_id)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def make_business(db_session):
    def _make(
        owner: User | None = None,
        tenant_id: str = "tenant-a",
        processor_type: ProcessorType | None = ProcessorType.STRIPE,
        enabled: bool = True,
        name: str = "Iron Temple Gym",
    ):
        processor = None
        if processor_type is not None:
            processor = ProcessorConfig(type=processor_type, enabled=enabled)
            db_session.add(processor)
            db_session.flush()
        business = Business(
            tenant_id=tenant_id,
            name=name,
            owner_user_id=owner.id if owner else None,
            payment_processor_id=processor.id if processor else None,
        )
        db_session.add(business)
        db_session.commit()
        return business

    return _make


@pytest.fixture
def sign_webhook():
    return stripe_signature


@pytest.fixture
def auth_headers():
    def _headers(user: User, tenant_id: str | None = "tenant-a") -> dict[str, str]:
        headers = {"Authorization": f"Bearer {create_access_token(str(user.id))}"}
        if tenant_id:
            headers["X-Tenant-ID"] = tenant_id
        return headers

    return _headers


# FastAPI TestClient fixture
from fastapi.testclient import TestClient  # noqa: E402
from app.api.main import app  # noqa: E402


@pytest.fixture
def client():
    """Provide a FastAPI TestClient bound to the application."""
    return TestClient(app)
