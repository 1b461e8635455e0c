import json
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_dummy"
os.environ["AUTO_CREATE_TABLES"] = "false"

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from monmentale.core.security import create_access_token, get_password_hash
from monmentale.db.models import Practitioner, User
from monmentale.db.session import get_session
from monmentale.main import app
from monmentale.services.stripe_service import PaymentResult, StripeService

PASSWORD = "password123"

class InMemoryRedisClient:
    """Token store and rate-limit counters kept in a dict."""

    def __init__(self):
        self.tokens = {}
        self.counters = {}

    async def set_token(self, token, value, expire):
        self.tokens[token] = value

    async def get_token(self, token):
        return self.tokens.get(token)

    async def delete_token(self, token):
        self.tokens.pop(token, None)

    async def hit(self, key, window_seconds):
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def ping(self):
        return True

    async def close(self):
        pass

def verify_webhook(payload, signature):
    if signature != "valid":
        return PaymentResult(success=False, error="Invalid signature")
    return PaymentResult(success=True, data={"event": json.loads(payload)})

def next_weekday(weekday: int) -> date:
    """Next date strictly in the future falling on the given weekday (monday=0)."""
    today = date.today()
    return today + timedelta(days=(weekday - today.weekday() - 1) % 7 + 1)

@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()

@pytest.fixture
def redis_client():
    return InMemoryRedisClient()

@pytest.fixture
def gateway():
    gateway = MagicMock(spec=StripeService)
    gateway.create_payment_intent.return_value = PaymentResult(
        success=True,
        data={"payment_intent_id": "pi_test_123", "client_secret": "pi_test_123_secret_abc"},
    )
    gateway.confirm_payment.return_value = PaymentResult(
        success=True, data={"status": "succeeded", "charge_id": "ch_confirmed_123"}
    )
    gateway.create_transfer.return_value = PaymentResult(success=True, data={"transfer_id": "tr_test_123"})
    gateway.create_refund.return_value = PaymentResult(
        success=True, data={"refund_id": "re_test_123", "amount": Decimal("60.00")}
    )
    gateway.create_connected_account.return_value = PaymentResult(
        success=True,
        data={"account_id": "acct_new_123", "onboarding_url": "https://connect.stripe.test/onboarding"},
    )
    gateway.get_account_status.return_value = PaymentResult(
        success=True,
        data={
            "account_id": "acct_test_123",
            "charges_enabled": True,
            "payouts_enabled": True,
            "details_submitted": True,
            "requirements": {"currently_due": []},
        },
    )
    gateway.verify_webhook.side_effect = verify_webhook
    return gateway

@pytest_asyncio.fixture
async def client(session_factory, redis_client, gateway):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.state.redis_client = redis_client
    app.state.stripe_service = gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

@pytest.fixture
def create_user(session_factory):
    async def _create_user(email, role="patient", **profile):
        async with session_factory() as session:
            user = User(
                email=email,
                password_hash=get_password_hash(PASSWORD),
                role=role,
                profile=profile,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user
    return _create_user

@pytest.fixture
def auth_headers(redis_client):
    async def _auth_headers(user):
        token = create_access_token({"sub": str(user.id), "role": user.role})
        await redis_client.set_token(token, json.dumps({"user_id": str(user.id), "role": user.role}), 3600)
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers

@pytest_asyncio.fixture
async def patient(create_user):
    return await create_user("alice@example.com", firstName="Alice", lastName="Martin")

@pytest_asyncio.fixture
async def other_patient(create_user):
    return await create_user("bob@example.com", firstName="Bob", lastName="Durand")

@pytest_asyncio.fixture
async def practitioner_user(create_user):
    return await create_user("dr.leroy@example.com", role="psychologue", firstName="Claire", lastName="Leroy")

@pytest_asyncio.fixture
async def admin(create_user):
    return await create_user("admin@example.com", role="admin")

@pytest.fixture
def create_practitioner(session_factory):
    async def _create_practitioner(user, **fields):
        values = dict(
            user_id=user.id,
            specializations=["psychologie clinique"],
            license_number=f"LIC-{user.id.hex[:8]}",
            university="Université Paris Cité",
            graduation_year=2010,
            experience=12,
            languages=["français", "anglais"],
            city="Paris",
            latitude=48.8566,
            longitude=2.3522,
            consultation_types=["presentiel", "teleconsultation"],
            price_consultation=Decimal("60.00"),
            price_teleconsultation=Decimal("50.00"),
            is_verified=True,
            stripe_account_id="acct_test_123",
        )
        values.update(fields)
        async with session_factory() as session:
            practitioner = Practitioner(**values)
            session.add(practitioner)
            await session.commit()
            await session.refresh(practitioner)
            return practitioner
    return _create_practitioner

@pytest_asyncio.fixture
async def practitioner(practitioner_user, create_practitioner):
    return await create_practitioner(practitioner_user)

@pytest.fixture
def booking_date():
    return next_weekday(0)

@pytest.fixture
def book(client, auth_headers, booking_date):
    """Book an appointment through the API and return the response."""
    async def _book(user, practitioner, start="14:00", end="14:45", day=None, **extra):
        payload = {
            "practitioner": str(practitioner.id),
            "appointmentType": "presentiel",
            "date": (day or booking_date).isoformat(),
            "timeSlot": {"start": start, "end": end},
        }
        payload.update(extra)
        return await client.post("/api/appointments/", json=payload, headers=await auth_headers(user))
    return _book
