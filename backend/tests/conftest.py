import os
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock

os.environ["PYTEST_RUN"] = "1"
os.environ["ENABLE_SCHEDULERS"] = "0"

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import pytest

# Load environment variables for tests
load_dotenv(Path(__file__).resolve().parents[1] / ".env.test")

from amplygigs import database, models
from amplygigs.core.config import settings
from amplygigs.database import Base
from amplygigs.main import app
from amplygigs.api.dependencies import get_db
from amplygigs.models import BookingStatus, PaymentStatus, UserRole, utcnow
from amplygigs.services import tracking
from amplygigs.services.payment_gateway import PaymentInit, PaymentVerification, get_payment_gateway


# Patch notifications broadcast for all tests
@pytest.fixture(autouse=True)
def patch_notifications_broadcast(monkeypatch):
    """Replace NotificationsManager.broadcast with an AsyncMock."""
    mock = AsyncMock()
    monkeypatch.setattr(
        "amplygigs.utils.notifications.notifications_manager.broadcast",
        mock,
    )
    return mock


@pytest.fixture(autouse=True)
def reset_tracking_state():
    tracking.proximity.clear()
    tracking.sessions.clear()
    yield
    tracking.proximity.clear()
    tracking.sessions.clear()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    # WebSockets and background jobs open sessions through SessionLocal directly
    database.SessionLocal.configure(bind=engine)
    yield engine
    database.SessionLocal.configure(bind=database.engine)
    engine.dispose()


@pytest.fixture
def Session(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(Session):
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(Session):
    def override_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    yield TestClient(app)
    app.dependency_overrides.clear()


class FakeGateway:
    """Records calls instead of talking to the payment provider."""

    name = "paystack"

    def __init__(self):
        self.initialized = []
        self.verified = []
        self.status = "success"
        self.amounts = {}

    def initialize(self, *, email, amount, currency, reference, callback_url=None, metadata=None):
        self.initialized.append(
            {
                "email": email,
                "amount": amount,
                "currency": currency,
                "reference": reference,
                "callback_url": callback_url,
                "metadata": metadata or {},
            }
        )
        return PaymentInit(authorization_url=f"https://checkout.test/{reference}", reference=reference)

    def verify(self, reference):
        self.verified.append(reference)
        return PaymentVerification(
            reference=reference,
            status=self.status,
            amount=self.amounts.get(reference, Decimal("0")),
            currency="NGN",
        )


@pytest.fixture
def gateway(client):
    fake = FakeGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: fake
    return fake


_user_seq = {"n": 0}


def make_user(db, role=UserRole.CLIENT, **kwargs):
    _user_seq["n"] += 1
    n = _user_seq["n"]
    defaults = {
        "id": f"user-{n}",
        "email": f"user{n}@test.com",
        "first_name": role.value.capitalize(),
        "last_name": str(n),
        "role": role,
        "kyc_verified": True,
    }
    defaults.update(kwargs)
    user = models.UserProfile(**defaults)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_booking(db, client_user, musician, **kwargs):
    defaults = {
        "client_id": client_user.id,
        "musician_id": musician.id,
        "amount": Decimal("5000"),
        "currency": "NGN",
        "event_type": "Wedding",
        "event_date": utcnow() + timedelta(days=7),
        "status": BookingStatus.PENDING,
        "payment_status": PaymentStatus.UNPAID,
    }
    defaults.update(kwargs)
    booking = models.Booking(**defaults)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def make_wallet(db, client_user, balance):
    wallet = models.ClientWallet(
        client_id=client_user.id,
        balance=Decimal(str(balance)),
        total_funded=Decimal(str(balance)),
        total_spent=Decimal("0"),
        pending_payments=Decimal("0"),
        currency="NGN",
    )
    db.add(wallet)
    db.commit()
    db.refresh(wallet)
    return wallet


def token_for(user):
    return jwt.encode(
        {"sub": user.id, "aud": settings.AUTH_JWT_AUDIENCE},
        settings.AUTH_JWT_SECRET,
        algorithm=settings.AUTH_JWT_ALGORITHM,
    )


def auth(user):
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def client_user(db):
    return make_user(db, UserRole.CLIENT, first_name="Ada", last_name="Client")


@pytest.fixture
def musician(db):
    return make_user(db, UserRole.MUSICIAN, first_name="Tunde", last_name="Keys")


@pytest.fixture
def admin(db):
    return make_user(db, UserRole.CLIENT, first_name="Admin", is_admin=True)
