import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_BACKEND", "cache+memory://")
os.environ.setdefault("PUBLIC_BASE_URL", "http://test")

import asyncio
import itertools
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient, ASGITransport

from app.main import app
from app.api import deps
from app.db.session import get_db, make_engine, make_session_factory
from app.models.base import Base
from app.models.order import Order
from app.models.user import User
from app.models.inventory import InventoryItem, WarehouseOffer
from app.models.outbox import OrderSideEffect  # noqa: F401
from app.models.audit import Audit  # noqa: F401
from app.core.redis import set_redis
from app.core.security import create_access_token, hash_password
from app.core.enums import UserRole, ItemCategory, DocumentKind, OrderStatus, ChangeActor
from app.core.exceptions import ExternalCollaboratorFailure, InvalidPostalCode
from app.services.distance import Coordinate
from app.services.geocoding import Geocoder, is_valid_pincode
from app.services.accounting import AccountingClient
from app.services.notifications import Notifier
from app.services.document_sync import DocumentSyncOrchestrator
from app.services.inventory import DatabaseInventory
from app.services import orders as order_service
from app.services.status_machine import apply_transition


BANGALORE = Coordinate(12.9716, 77.5946)
CHENNAI = Coordinate(13.0827, 80.2707)
KORAMANGALA = Coordinate(12.9352, 77.6245)


class FakeRedis:
    """Just enough of redis.asyncio.Redis for rate limits, idempotency and caching."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value if isinstance(value, bytes) else str(value).encode()
        return True

    async def incr(self, key):
        value = int(self.store.get(key, b"0")) + 1
        self.store[key] = str(value).encode()
        return value

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return key in self.store

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def ping(self):
        return True

    async def close(self):
        return None


class FakeGeocoder(Geocoder):
    def __init__(self, locations=None, unavailable=()):
        self.locations = locations if locations is not None else {"560001": BANGALORE, "600001": CHENNAI}
        self.unavailable = set(unavailable)
        self.calls = []

    async def resolve(self, postal_code: str) -> Coordinate:
        self.calls.append(postal_code)
        if not is_valid_pincode(postal_code):
            raise InvalidPostalCode(postal_code)
        if postal_code in self.unavailable:
            raise ExternalCollaboratorFailure("geocoding", "resolve", "service down")
        if postal_code not in self.locations:
            raise InvalidPostalCode(postal_code)
        return self.locations[postal_code]


class FakeAccounting(AccountingClient):
    """In-memory accounting system that records every call."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.customers = []
        self.documents = {kind: [] for kind in DocumentKind}
        self.emails = []
        self.fail_kinds = set()
        self.fail_customer = False
        self.hang_kinds = set()
        self._ids = itertools.count(1)

    async def _pause(self):
        if self.delay:
            await asyncio.sleep(self.delay)

    async def ensure_customer(self, profile) -> str:
        if self.fail_customer:
            raise ExternalCollaboratorFailure("accounting", "ensure_customer", "contacts unavailable")
        if profile.external_customer_id:
            return profile.external_customer_id
        self.customers.append(profile.id)
        return f"CUST-{profile.id}"

    async def _create(self, kind, order):
        if kind in self.hang_kinds:
            await asyncio.sleep(3600)
        if kind in self.fail_kinds:
            raise ExternalCollaboratorFailure("accounting", f"create {kind}", "status 500")
        await self._pause()
        document_id = f"{kind}-{next(self._ids)}"
        self.documents[kind].append((order.lead_id, document_id))
        return document_id

    async def create_quote(self, order, customer_id: str) -> str:
        return await self._create(DocumentKind.QUOTE, order)

    async def create_sales_order(self, order, vendor, customer_id: str) -> str:
        return await self._create(DocumentKind.SALES_ORDER, order)

    async def create_invoice(self, order, payment, vendor, customer_id: str) -> str:
        return await self._create(DocumentKind.INVOICE, order)

    async def email_document(self, kind, document_id, to_email=None) -> bool:
        self.emails.append((kind, document_id, to_email))
        return True

    async def fetch_pdf(self, kind, document_id) -> bytes:
        return f"%PDF-1.4 {kind} {document_id}".encode()


class FakeNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send(self, kind, recipient_email, recipient_name, order_ref, link) -> bool:
        if self.fail:
            raise ExternalCollaboratorFailure("notification", "send", "relay down")
        self.sent.append((kind, recipient_email, order_ref, link))
        return True


class DispatchRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, effect_ids):
        self.calls.append(list(effect_ids))

    @property
    def effect_ids(self):
        return [effect_id for call in self.calls for effect_id in call]


@pytest.fixture(autouse=True)
def fake_redis():
    client = FakeRedis()
    set_redis(client)
    yield client
    set_redis(None)


@pytest.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", pooled=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def accounting():
    return FakeAccounting()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def dispatcher():
    return DispatchRecorder()


@pytest.fixture
def orchestrator(session_factory, accounting, notifier):
    return DocumentSyncOrchestrator(session_factory, accounting=accounting, notifier=notifier, timeout=1.0)


@pytest.fixture
async def client(session_factory, geocoder, accounting, orchestrator, dispatcher):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_geocoder] = lambda: geocoder
    app.dependency_overrides[deps.get_accounting] = lambda: accounting
    app.dependency_overrides[deps.get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[deps.get_dispatcher] = lambda: dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


async def _create_user(db, username, role, **kwargs) -> User:
    user = User(username=username, password_hash=hash_password("secret123"), role=role, **kwargs)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def customer(db):
    return await _create_user(db, "buyer", UserRole.CUSTOMER, name="Ravi Kumar", email="ravi@example.com")


@pytest.fixture
async def other_customer(db):
    return await _create_user(db, "other", UserRole.CUSTOMER, name="Anita", email="anita@example.com")


@pytest.fixture
async def admin(db):
    return await _create_user(db, "admin", UserRole.ADMIN, name="Ops Admin")


@pytest.fixture
async def vendor(db):
    return await _create_user(db, "vendor", UserRole.VENDOR, name="Shree Cements", company_name="Shree Cements Ltd")


def token_for(user: User) -> str:
    return create_access_token(str(user.id), user.role)


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
async def cement(db, vendor):
    """Cement bags stocked in Chennai and Koramangala; Koramangala is near Bangalore."""
    item = InventoryItem(
        name="OPC 53 Cement",
        description="OPC 53 grade cement, 50kg bag",
        category=ItemCategory.CEMENT,
        unit="bag",
        unit_price=100.0,
        vendor_id=vendor.id,
        warehouse_offers=[
            WarehouseOffer(
                warehouse_name="Chennai Central",
                latitude=CHENNAI.lat,
                longitude=CHENNAI.lon,
                base_delivery_charge=50.0,
                per_km_charge=10.0,
                max_delivery_radius=500.0,
                stock_available=1000,
            ),
            WarehouseOffer(
                warehouse_name="Koramangala Yard",
                latitude=KORAMANGALA.lat,
                longitude=KORAMANGALA.lon,
                base_delivery_charge=50.0,
                per_km_charge=10.0,
                max_delivery_radius=100.0,
                stock_available=500,
            ),
        ],
    )
    db.add(item)
    await db.commit()
    return item


@pytest.fixture
async def steel(db, vendor):
    item = InventoryItem(
        name="TMT Bar 12mm",
        description="Fe 500D TMT bar",
        category=ItemCategory.IRON,
        unit="piece",
        unit_price=250.0,
        vendor_id=vendor.id,
        warehouse_offers=[
            WarehouseOffer(
                warehouse_name="Chennai Steel",
                latitude=CHENNAI.lat,
                longitude=CHENNAI.lon,
                base_delivery_charge=100.0,
                per_km_charge=2.0,
                stock_available=100,
            ),
        ],
    )
    db.add(item)
    await db.commit()
    return item


@pytest.fixture
def make_order(db, customer, cement):
    """Build and persist an order, optionally walked through a list of statuses."""

    async def _make_order(quantity=2, statuses=(), item=None):
        inventory = DatabaseInventory(db)
        order, _ = await order_service.open_cart(
            db, customer, (item or cement).id, quantity, "560001", FakeGeocoder(), inventory
        )
        await db.commit()
        order = await order_service.load_order(db, order.lead_id)
        for status in statuses:
            if status == OrderStatus.ORDER_PLACED:
                order_service.place_order(order, "12 MG Road, Bangalore", now=datetime.now(timezone.utc))
            else:
                apply_transition(order, status, ChangeActor.ADMIN)
            await db.commit()
        return await order_service.load_order(db, order.lead_id)

    return _make_order


async def reload(session_factory, lead_id) -> Order:
    async with session_factory() as session:
        return await order_service.load_order(session, lead_id)


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
