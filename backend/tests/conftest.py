"""Shared pytest fixtures for test suite"""
import hashlib
import hmac
import itertools
import json
import os
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator
from unittest.mock import patch

# Settings are read at import time; point them at test values first
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_primary"
os.environ["STRIPE_WEBHOOK_SECRET_OVERRIDE"] = ""
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["RESEND_API_KEY"] = ""
os.environ["INTERNAL_API_TOKEN"] = "test-internal-token"
os.environ["ENABLE_BACKGROUND_TASKS"] = "false"

import fakeredis
import pytest
import stripe
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from revshare.db import redis as redis_module
from revshare.db.session import get_db
from revshare.main import app
from revshare.models import Base
from revshare.models.contract import Contract
from revshare.models.coupon import Coupon, CouponTemplate
from revshare.models.enums import CommissionStatus, ContractStatus, CouponStatus, PurchaseStatus, UserRole
from revshare.models.project import Project
from revshare.models.purchase import Purchase
from revshare.models.user import User

TEST_WEBHOOK_SECRET = "whsec_test_primary"
INTERNAL_HEADERS = {"X-Internal-Token": "test-internal-token"}

# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def mock_redis():
    """Mock Redis client using fakeredis"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, "_client", fake_redis):
        yield fake_redis


@pytest.fixture(scope="function", autouse=True)
def mock_stripe_api():
    """Patch every outbound Stripe API call; webhook signature checks stay real"""
    with patch.object(stripe.checkout.Session, "retrieve") as session_retrieve, \
            patch.object(stripe.Invoice, "retrieve") as invoice_retrieve, \
            patch.object(stripe.PromotionCode, "create") as promotion_code_create:
        session_retrieve.return_value = {"id": "cs_refetched", "discounts": []}
        invoice_retrieve.return_value = {"id": "in_refetched", "discounts": []}
        promotion_code_create.return_value = {"id": "promo_created123", "code": "GENERATED"}
        yield {
            "session_retrieve": session_retrieve,
            "invoice_retrieve": invoice_retrieve,
            "promotion_code_create": promotion_code_create,
        }


@pytest.fixture(scope="function", autouse=True)
def mock_resend():
    with patch("revshare.services.email_service.resend.Emails.send") as send:
        send.return_value = {"id": "email_test123"}
        yield send


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database and mocked Redis"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        # Disable OpenTelemetry and schema creation on the app engine in tests
        with patch("revshare.core.otel.initialize_otel", return_value=False):
            with patch("revshare.core.otel.instrument_sqlalchemy"):
                with patch("revshare.main.init_db"):
                    with TestClient(app, raise_server_exceptions=False) as test_client:
                        yield test_client
    finally:
        app.dependency_overrides.clear()


# ============================================================================
# DOMAIN FIXTURES
# ============================================================================

@pytest.fixture
def creator(db_session: Session) -> User:
    user = User(email="founder@example.com", name="Founder", role=UserRole.CREATOR.value)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def marketer(db_session: Session) -> User:
    user = User(email="marketer@example.com", name="Marketer", role=UserRole.MARKETER.value)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def project(db_session: Session, creator: User) -> Project:
    project = Project(
        user_id=creator.id,
        name="Acme Analytics",
        creator_stripe_account_id="acct_test123",
    )
    db_session.add(project)
    db_session.commit()
    db_session.refresh(project)
    return project


@pytest.fixture
def contract(db_session: Session, project: Project, marketer: User) -> Contract:
    """Approved 20% contract with a 30 day refund window"""
    contract = Contract(
        project_id=project.id,
        user_id=marketer.id,
        status=ContractStatus.APPROVED,
        commission_percent=Decimal("0.20"),
        refund_window_days=30,
    )
    db_session.add(contract)
    db_session.commit()
    db_session.refresh(contract)
    return contract


@pytest.fixture
def coupon_template(db_session: Session, project: Project) -> CouponTemplate:
    template = CouponTemplate(
        project_id=project.id,
        name="Launch Week",
        percent_off=15,
        stripe_coupon_id="coupon_launch",
        status=CouponStatus.ACTIVE,
        allowed_marketer_ids=[],
    )
    db_session.add(template)
    db_session.commit()
    db_session.refresh(template)
    return template


@pytest.fixture
def coupon(db_session: Session, project: Project, marketer: User, coupon_template: CouponTemplate, contract: Contract) -> Coupon:
    coupon = Coupon(
        project_id=project.id,
        template_id=coupon_template.id,
        marketer_id=marketer.id,
        code="LAUNCH-ABC123",
        stripe_coupon_id=coupon_template.stripe_coupon_id,
        stripe_promotion_code_id="promo_test123",
        percent_off=coupon_template.percent_off,
        commission_percent=contract.commission_percent,
        status=CouponStatus.ACTIVE,
    )
    db_session.add(coupon)
    db_session.commit()
    db_session.refresh(coupon)
    return coupon


@pytest.fixture
def purchase_factory(db_session: Session, project: Project, marketer: User, coupon: Coupon):
    """Insert purchases directly, defaulting to a $100 sale with $20 commission awaiting its window"""
    counter = itertools.count(1)

    def _create(**overrides) -> Purchase:
        n = next(counter)
        now = datetime.now(timezone.utc)
        values = dict(
            stripe_event_id=f"evt_seed_{n}",
            stripe_charge_id=f"ch_seed_{n}",
            stripe_payment_intent_id=f"pi_seed_{n}",
            project_id=project.id,
            coupon_id=coupon.id,
            marketer_id=marketer.id,
            amount=10000,
            currency="usd",
            commission_amount=2000,
            commission_amount_original=2000,
            refunded_amount=0,
            stripe_refund_ids=[],
            refund_window_days=30,
            refund_eligible_at=now + timedelta(days=30),
            status=PurchaseStatus.PENDING,
            commission_status=CommissionStatus.AWAITING_REFUND_WINDOW,
            created_at=now,
        )
        values.update(overrides)
        purchase = Purchase(**values)
        db_session.add(purchase)
        db_session.commit()
        db_session.refresh(purchase)
        return purchase

    return _create


# ============================================================================
# WEBHOOK HELPERS
# ============================================================================

def sign_payload(payload: str, secret: str = TEST_WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header the way Stripe does"""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def make_event():
    """Build a Stripe event envelope; returns (payload_str, event_dict)"""
    counter = itertools.count(1)

    def _make(event_type: str, obj: dict, event_id: str = None, account: str = None):
        event = {
            "id": event_id or f"evt_test_{next(counter)}",
            "object": "event",
            "type": event_type,
            "created": int(time.time()),
            "data": {"object": obj},
        }
        if account:
            event["account"] = account
        return json.dumps(event), event

    return _make


@pytest.fixture
def signed():
    """Sign a payload string, optionally with a specific secret"""
    return sign_payload


@pytest.fixture
def post_webhook(client: TestClient):
    def _post(payload: str, secret: str = TEST_WEBHOOK_SECRET, headers: dict = None):
        request_headers = {"stripe-signature": sign_payload(payload, secret), "content-type": "application/json"}
        if headers is not None:
            request_headers = headers
        return client.post("/api/stripe/webhook", content=payload, headers=request_headers)

    return _post


@pytest.fixture
def internal_headers():
    return dict(INTERNAL_HEADERS)
