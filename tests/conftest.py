"""Pytest fixtures for testing"""

import pytest
from datetime import date
from typing import Any, Dict, Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from cuotas_gateway.api.dependencies import get_disbursement_client, get_payment_gateway_client, get_today
from cuotas_gateway.api.main import create_app
from cuotas_gateway.domain.exceptions import PaymentGatewayError
from cuotas_gateway.domain.models import (
    Audience,
    DividedAmount,
    FixedInstallment,
    MigrationPolicy,
    PlanDefinition,
    RefundPolicy,
)
from cuotas_gateway.domain.money import MoneyAmount
from cuotas_gateway.domain.months import MonthRange
from cuotas_gateway.infrastructure.clients.payment_gateway import CheckoutPreference
from cuotas_gateway.infrastructure.database.models import Base
from cuotas_gateway.infrastructure.database.session import get_db


# Test database: one in-memory SQLite connection shared by every session
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakePaymentGateway:
    """Stands in for the checkout API; set `fail` to simulate an outage"""

    def __init__(self):
        self.fail = False
        self.calls: List[Dict[str, Any]] = []

    async def create_preference(self, intent_id: str, items, currency: str) -> CheckoutPreference:
        if self.fail:
            raise PaymentGatewayError("Payment gateway timeout after 5.0s")
        self.calls.append({"intent_id": intent_id, "items": items, "currency": currency})
        return CheckoutPreference(
            preference_id=f"pref-{intent_id[:8]}",
            redirect_url=f"https://checkout.example.test/pay/{intent_id}",
        )


class FakeDisbursementClient:
    """Records refund events instead of posting them"""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    async def send_refund_event(self, payload: Dict[str, Any]) -> None:
        self.events.append(payload)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Extra sessions on the test database, e.g. to play a second concurrent writer"""
    return TestingSessionLocal


@pytest.fixture
def clock() -> Dict[str, date]:
    """Business date seen by the API; tests move it forward to simulate the season"""
    return {"today": date(2026, 3, 5)}


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def disbursements() -> FakeDisbursementClient:
    return FakeDisbursementClient()


@pytest.fixture
def client(
    db: Session,
    clock: Dict[str, date],
    payment_gateway: FakePaymentGateway,
    disbursements: FakeDisbursementClient,
) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_today] = lambda: clock["today"]
    app.dependency_overrides[get_payment_gateway_client] = lambda: payment_gateway
    app.dependency_overrides[get_disbursement_client] = lambda: disbursements
    return TestClient(app)


@pytest.fixture
def plan_request() -> Dict[str, Any]:
    """Plan A (March-December 2026) with an inline Plan B"""
    return {
        "code": "CAMP-2026-A",
        "name": "Campamento 2026",
        "fiscal_year": 2026,
        "audience": "CAMPER",
        "total_amount": 100000,
        "currency": "ARS",
        "strategy": {"kind": "DIVIDED_AMOUNT", "min_installments": 1, "max_installments": 10},
        "due_day": 10,
        "start_month": "MARCH",
        "end_month": 12,
        "migration_policy": {
            "control_start_month": "JULY",
            "minimum_paid_before_control": 4,
            "tolerated_arrears_months": 2,
        },
        "refund_policy": {"full_refund_cutoff_month": 8, "half_refund_cutoff_month": 10},
        "contingency_plan": {
            "code": "CAMP-2026-B",
            "name": "Campamento 2026 - Plan B",
            "total_amount": {"source": "ARS 120000.00", "parsedValue": 120000.0},
        },
    }


@pytest.fixture
def plan_b() -> PlanDefinition:
    """Contingency plan: same calendar, higher total"""
    return PlanDefinition(
        code="CAMP-2026-B",
        name="Campamento 2026 - Plan B",
        fiscal_year=2026,
        audience=Audience.CAMPER,
        total=MoneyAmount(12000000, "ARS"),
        strategy=DividedAmount(1, 10),
        due_day=10,
        enabled_range=MonthRange(3, 12),
        refund_policy=RefundPolicy(8, 10),
    )


@pytest.fixture
def plan_a(plan_b: PlanDefinition) -> PlanDefinition:
    """ARS 100,000 over March-December, control from July"""
    return PlanDefinition(
        code="CAMP-2026-A",
        name="Campamento 2026",
        fiscal_year=2026,
        audience=Audience.CAMPER,
        total=MoneyAmount(10000000, "ARS"),
        strategy=DividedAmount(1, 10),
        due_day=10,
        enabled_range=MonthRange(3, 12),
        migration_policy=MigrationPolicy(
            destination_plan_code=plan_b.code,
            control_start_month=7,
            minimum_paid_before_control=4,
            tolerated_arrears_months=2,
        ),
        refund_policy=RefundPolicy(8, 10),
    )


@pytest.fixture
def wrapping_plan() -> PlanDefinition:
    """April through January: the last installment falls in the next calendar year"""
    return PlanDefinition(
        code="STAFF-2026",
        name="Staff 2026",
        fiscal_year=2026,
        audience=Audience.SUPPORT_STAFF,
        total=MoneyAmount(5000000, "ARS"),
        strategy=FixedInstallment(MoneyAmount(500000, "ARS")),
        due_day=31,
        enabled_range=MonthRange(4, 1),
    )
