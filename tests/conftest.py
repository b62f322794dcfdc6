"""Shared fixtures: a throwaway SQLite database per test, fake gateway and sockets."""
import asyncio
import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["ALGORITHM"] = "HS256"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_secret"
os.environ["REDIS_URL"] = ""
os.environ["RABBITMQ_URL"] = ""
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_rental.db")

import pytest
from jose import jwt

import models.event_listener  # noqa: F401
from core.date_helper import utcnow
from core.get_db import Base, build_engine, build_sessionmaker
from core.kv_store import InMemoryKVStore
from fintechs.gateway import (
    PaymentGateway,
    PaymentSession,
    PaymentVerification,
    to_minor_units,
)
from models.enums import UserRole
from models.models import Property, User
from realtime.connection_manager import ConnectionRegistry
from realtime.event_bus import LocalEventBus
from repos.conversation_repo import ConversationRepo
from services.booking_holds import BookingHoldRegistry


class FakeGateway(PaymentGateway):
    """Records calls and answers verification from a preset table."""

    name = "fake"

    def __init__(self):
        self.initialized: List[dict] = []
        self.verifications: Dict[str, PaymentVerification] = {}
        self.verify_calls: List[str] = []
        self.initialize_error: Optional[Exception] = None
        self.verify_error: Optional[Exception] = None
        self.initialize_delay = 0.0

    async def initialize(self, *, email, amount, callback_url, reference=None):
        if self.initialize_delay:
            await asyncio.sleep(self.initialize_delay)
        self.initialized.append(
            {
                "email": email,
                "amount": amount,
                "amount_minor": to_minor_units(amount),
                "callback_url": callback_url,
                "reference": reference,
            }
        )
        if self.initialize_error:
            raise self.initialize_error
        return PaymentSession(
            redirect_url=f"https://checkout.paystack.test/{reference}",
            reference=reference,
            access_code="access-code",
        )

    async def verify(self, reference):
        self.verify_calls.append(reference)
        if self.verify_error:
            raise self.verify_error
        return self.verifications.get(
            reference, PaymentVerification(status="failed", amount_minor=0, reference=reference)
        )

    def succeed(self, reference: str, amount: Decimal, channel: str = "card"):
        self.verifications[reference] = PaymentVerification(
            status="success",
            amount_minor=to_minor_units(amount),
            reference=reference,
            channel=channel,
            paid_at=utcnow(),
        )


class RecordingConnection:
    """Stands in for a websocket connection and keeps every event it was sent."""

    def __init__(self, user_id):
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self.websocket = None
        self.events: List[tuple] = []

    async def send(self, event, payload):
        self.events.append((event, payload))

    def named(self, event):
        return [payload for name, payload in self.events if name == event]


class FakeNotifier:
    def __init__(self):
        self.sent: List[dict] = []

    async def notify(self, user_id, title, body, data=None):
        self.sent.append({"user_id": user_id, "title": title, "body": body, "data": data})


def make_token(user_id, expires_in: timedelta = timedelta(minutes=30)) -> str:
    return jwt.encode(
        {"sub": str(user_id), "exp": datetime.now(timezone.utc) + expires_in},
        os.environ["JWT_SECRET_KEY"],
        algorithm="HS256",
    )


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {make_token(user.id)}"}


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rental.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _add_user(db, email, first_name, role=UserRole.USER) -> User:
    user = User(email=email, first_name=first_name, last_name="Tester", role=role)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def renter(db):
    return await _add_user(db, "renter@example.com", "Rita")


@pytest.fixture
async def other_renter(db):
    return await _add_user(db, "other@example.com", "Otto")


@pytest.fixture
async def landlord(db):
    return await _add_user(db, "landlord@example.com", "Lola", UserRole.LANDLORD)


@pytest.fixture
async def admin(db):
    return await _add_user(db, "admin@example.com", "Ada", UserRole.ADMIN)


@pytest.fixture
async def listing(db, landlord):
    prop = Property(
        owner_id=landlord.id,
        title="Lekki Studio Apartment",
        address="12 Admiralty Way, Lekki",
        rent=Decimal("25000.00"),
    )
    db.add(prop)
    await db.commit()
    return prop


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def kv():
    return InMemoryKVStore()


@pytest.fixture
def holds(kv):
    return BookingHoldRegistry(kv, hold_ttl=120, lock_ttl=5, lock_wait=1.0)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def connections(session_factory):
    async def checker(conversation_id, user_id):
        async with session_factory() as session:
            return await ConversationRepo(session).is_participant(conversation_id, user_id)

    return ConnectionRegistry(bus=LocalEventBus(), participant_checker=checker)


def stay(days_from_now: int, nights: int):
    start = (utcnow() + timedelta(days=days_from_now)).replace(
        hour=14, minute=0, second=0, microsecond=0
    )
    return start, start + timedelta(days=nights)
