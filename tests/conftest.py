import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")
os.environ.setdefault("WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("API_KEY_SECRET", "test-api-key-secret")

from decimal import Decimal

import httpx
import pytest
from sqlalchemy.pool import NullPool

from gateway.api.merchants.models import Merchant
from gateway.api.payments.schemas import CreatePaymentRequest
from gateway.api.payments.services.payment_service import create_payment_service
from gateway.api.payments.services.webhook_service import WebhookDeliveryEngine
from gateway.db.main import build_engine, build_session_maker, init_db

WEBHOOK_SECRET = "test-webhook-secret"
MERCHANT_ID = "mer_test"
MERCHANT_WEBHOOK_URL = "https://merchant.example/hooks/payments"


def make_payment_request(**overrides) -> CreatePaymentRequest:
    data = {
        "amount": Decimal("100"),
        "currency": "USDT",
        "network": "TRC20",
        "paymentMethod": "usdt_trc20",
        "customerReference": "order_1",
    }
    data.update(overrides)
    return CreatePaymentRequest.model_validate(data)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}"


@pytest.fixture
async def engine(database_url):
    # one connection per session so concurrent sessions really race
    engine = build_engine(database_url, poolclass=NullPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def merchant(session_maker):
    merchant = Merchant(
        id=MERCHANT_ID,
        name="Test Merchant",
        email="merchant@example.com",
        webhook_url=MERCHANT_WEBHOOK_URL,
    )
    async with session_maker() as session:
        session.add(merchant)
        await session.commit()
    return merchant


@pytest.fixture
async def pending_payment(session, merchant):
    return await create_payment_service(merchant.id, make_payment_request(), session)


@pytest.fixture
def make_webhook_engine(session_maker):
    def _make(handler, **overrides) -> WebhookDeliveryEngine:
        options = {"secret": WEBHOOK_SECRET, "max_attempts": 3, "base_delay_ms": 1, "timeout": 2.0}
        options.update(overrides)
        return WebhookDeliveryEngine(
            session_maker, transport=httpx.MockTransport(handler), **options
        )

    return _make
