"""
Shared fixtures.

Settings are read at import time, so the environment is prepared here
before any campusgrub module is imported.
"""

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone

_DB_PATH = os.path.join(tempfile.gettempdir(), f"campusgrub-test-{uuid.uuid4().hex}.db")

os.environ["SUPABASE_URL"] = "https://example.supabase.co"
os.environ["SUPABASE_KEY"] = "test-anon-key"
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["REALTIME_BRIDGE_ENABLED"] = "false"
os.environ["DELIVERY_FEE"] = "30.0"

import pytest
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from campusgrub.core.auth import Identity
from campusgrub.core.realtime import RealtimeHub
from campusgrub.models.notification import Notification
from campusgrub.models.order import Order
from campusgrub.repositories.notification_repo import NotificationRepository
from campusgrub.repositories.order_repo import OrderRepository
from campusgrub.schemas.order import OrderCreate, OrderItemIn
from campusgrub.services.feed_service import FeedService
from campusgrub.services.order_service import OrderService
from campusgrub.services.reaper_service import StaleOrderReaper


# Fixtures: storage

@pytest.fixture
def engine():
    """In-memory SQLite shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def session_factory(engine):
    return lambda: Session(engine)


# Fixtures: services

@pytest.fixture
def hub():
    return RealtimeHub()


@pytest.fixture
def order_service(hub):
    return OrderService(
        OrderRepository(),
        NotificationRepository(),
        hub=hub,
        delivery_fee=30.0,
    )


@pytest.fixture
def feed_service(order_service, session_factory, hub):
    return FeedService(order_service, session_factory, hub=hub)


@pytest.fixture
def reaper(hub):
    return StaleOrderReaper(OrderRepository(), hub=hub)


# Fixtures: identities

def _identity(role: str, name: str) -> Identity:
    return Identity(
        id=uuid.uuid4(),
        email=f"{name}@campus.edu",
        role=role,
        name=name,
    )


@pytest.fixture
def student():
    return _identity("student", "asha")


@pytest.fixture
def other_student():
    return _identity("student", "ravi")


@pytest.fixture
def vendor():
    return _identity("vendor", "burgerhut")


@pytest.fixture
def other_vendor():
    return _identity("vendor", "dosacorner")


@pytest.fixture
def admin():
    return _identity("admin", "ops")


@pytest.fixture
def shop_id():
    return uuid.uuid4()


@pytest.fixture
def burger_order_payload(vendor, shop_id):
    return OrderCreate(
        vendor_id=vendor.id,
        shop_id=shop_id,
        items=[OrderItemIn(menu_item_id="i1", name="Burger", unit_price=8.99, quantity=2)],
        delivery_location="Hostel A",
    )


@pytest.fixture
def place_order(order_service, session, student, burger_order_payload):
    """Place the burger order for `student`; returns the OrderRead."""

    def _place(who=None, payload=None):
        return order_service.place_order(
            session, who or student, payload or burger_order_payload
        )

    return _place


@pytest.fixture
def insert_order(session, student, vendor, shop_id):
    """Insert an Order row directly, bypassing the service (no events)."""

    def _insert(status="pending", age=timedelta(0), **overrides):
        created = datetime.now(timezone.utc) - age
        fields = dict(
            student_id=student.id,
            vendor_id=vendor.id,
            shop_id=shop_id,
            student_name="asha",
            items=[{"menu_item_id": "i1", "name": "Burger", "unit_price": 8.99, "quantity": 1}],
            total_amount=38.99,
            status=status,
            delivery_location="Hostel B",
            created_at=created,
            updated_at=created,
        )
        fields.update(overrides)
        order = Order(**fields)
        session.add(order)
        session.commit()
        session.refresh(order)
        return order

    return _insert


@pytest.fixture
def notifications(session):
    """All notifications currently stored."""

    def _all():
        return list(session.exec(select(Notification)).all())

    return _all


# Fixtures: HTTP

def make_token(identity: Identity, secret: str = "test-jwt-secret") -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "sub": str(identity.id),
            "email": identity.email,
            "user_metadata": {"role": identity.role, "name": identity.name},
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(hours=1)).timestamp()),
        },
        secret,
        algorithm="HS256",
    )


@pytest.fixture
def auth_headers():
    def _headers(identity: Identity) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(identity)}"}

    return _headers


@pytest.fixture
def client():
    """TestClient against the real app and its (temp-file SQLite) engine."""
    from fastapi.testclient import TestClient

    from campusgrub.core.realtime import get_hub
    from campusgrub.database import engine as app_engine
    from campusgrub.main import app

    with TestClient(app) as test_client:
        yield test_client

    for subscription in get_hub().subscriptions():
        subscription.unsubscribe()
    with Session(app_engine) as session:
        for model in (Notification, Order):
            for row in session.exec(select(model)).all():
                session.delete(row)
        session.commit()
