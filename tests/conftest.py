"""Pytest fixtures for testing"""

from typing import Any, Callable, Dict, Generator, List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from clover_checkout.api.dependencies import get_callback_registry, get_clover_client, get_recaptcha_client
from clover_checkout.api.main import create_app
from clover_checkout.config import Settings
from clover_checkout.domain.callbacks import CustomTenderCallback, TenderCallbackRegistry, build_default_registry
from clover_checkout.domain.models import ChargeResult, CustomTender, RefundResult
from clover_checkout.domain.order import Address, Order, OrderLine
from clover_checkout.infrastructure.database.models import Base
from clover_checkout.infrastructure.database.session import get_db

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class InMemoryOrderStore:
    """OrderStore that only counts saves"""

    def __init__(self):
        self.saved: List[int] = []

    def save(self, order: Order) -> None:
        self.saved.append(order.id)


class FakeGateway:
    """
    PaymentGateway double recording every call.

    Responses are configured per test; an Exception instance configured as a
    response is raised instead of returned.
    """

    def __init__(self):
        self.calls: List[Tuple[str, tuple]] = []
        self.customer_id: Any = "CUSTOMER1"
        self.order_uuid = "CLOVERORDER1"
        self.card_result: Any = ChargeResult(
            status="paid", payment_id="CHARGE1", currency="usd", order_uuid="CLOVERORDER1", order_amount_due=0
        )
        self.tender_results: List[Any] = []
        self.refund_result: Any = RefundResult(
            id="REFUND1", amount=1000, charge="TENDERCHARGE1", status="succeeded", object="refund"
        )
        self.refund_order_response: Any = {"id": "REFUND1", "amount": 1000, "charge": "CHARGE1", "status": "succeeded"}

    @staticmethod
    def _respond(response: Any) -> Any:
        if isinstance(response, Exception):
            raise response
        return response

    def create_customer(self, profile: Dict[str, Any]) -> str:
        self.calls.append(("create_customer", (profile,)))
        return self._respond(self.customer_id)

    def prepare_order(self, order_draft: Dict[str, Any], customer_id: str) -> str:
        self.calls.append(("prepare_order", (order_draft, customer_id)))
        return self.order_uuid

    def charge_card(self, remote_order_id: str, token: str, client_ip: str, amount: int) -> ChargeResult:
        self.calls.append(("charge_card", (remote_order_id, token, client_ip, amount)))
        return self._respond(self.card_result)

    def charge_custom_tender(self, remote_order_id: str, label: str, amount: int, client_ip: str) -> ChargeResult:
        self.calls.append(("charge_custom_tender", (remote_order_id, label, amount, client_ip)))
        if self.tender_results:
            return self._respond(self.tender_results.pop(0))
        return ChargeResult(status="paid", payment_id=f"TENDERCHARGE{len(self.calls)}", order_amount_due=0)

    def refund_charge(self, charge_id: str, reason: str, external_ref: str, amount: int) -> RefundResult:
        self.calls.append(("refund_charge", (charge_id, reason, external_ref, amount)))
        return self._respond(self.refund_result)

    def refund_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("refund_order", (payload,)))
        return self._respond(self.refund_order_response)

    def called(self, name: str) -> List[tuple]:
        return [args for call, args in self.calls if call == name]


class RecordingCallback(CustomTenderCallback):
    def __init__(self):
        self.created: List[str] = []
        self.refunded: List[str] = []

    def on_charge_created(self, tender: CustomTender) -> None:
        self.created.append(tender.id)

    def on_charge_refunded(self, tender: CustomTender) -> None:
        self.refunded.append(tender.id)


class FakeRecaptcha:
    def __init__(self, response: Any = None):
        self.response = response if response is not None else {"success": True, "score": 0.9}
        self.calls: List[Tuple[str, str]] = []

    def verify_token(self, token: str, remote_ip: str = "") -> Dict[str, Any]:
        self.calls.append((token, remote_ip))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def make_recaptcha() -> Callable[..., FakeRecaptcha]:
    return FakeRecaptcha


@pytest.fixture
def recorder() -> RecordingCallback:
    return RecordingCallback()


@pytest.fixture
def registry(recorder: RecordingCallback) -> TenderCallbackRegistry:
    registry = build_default_registry()
    registry.register("recorder", recorder)
    return registry


@pytest.fixture
def config() -> Settings:
    """Settings with bot protection off and a fixed store URL"""
    return Settings(
        honeypot_enabled=False,
        recaptcha_enabled=False,
        post_tokenization_verification=True,
        store_base_url="http://localhost:8000",
    )


@pytest.fixture
def make_order() -> Callable[..., Order]:
    """Factory for a pending order with one product line billed to a Canadian address"""

    def _make(**overrides: Any) -> Order:
        fields: Dict[str, Any] = {
            "id": 1001,
            "order_key": "wc_order_abc123",
            "total": "50.00",
            "currency": "CAD",
            "customer_ip": "203.0.113.7",
            "billing": Address(
                first_name="Ada",
                last_name="Lovelace",
                address_1="1 Main St",
                city="Montreal",
                state="QC",
                postcode="H2X 1Y4",
                country="CA",
                email="ada@example.com",
                phone="5145550100",
            ),
            "items": [OrderLine(id=1, name="Mug", quantity=2, total="40.00", total_tax="10.00")],
        }
        fields.update(overrides)
        return Order(**fields)

    return _make


@pytest.fixture
def card_form() -> Dict[str, str]:
    return {
        "token": "clv_tok_123",
        "card-brand": "VISA",
        "card-last4": "4242",
        "card-exp-month": "12",
        "card-exp-year": "2030",
        "tokenized-zip": "h2x-1y4",
    }


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
def client(db: Session, gateway: FakeGateway, registry: TenderCallbackRegistry) -> TestClient:
    """Create FastAPI test client with test database and a fake Clover gateway"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clover_client] = lambda: gateway
    app.dependency_overrides[get_recaptcha_client] = lambda: FakeRecaptcha()
    app.dependency_overrides[get_callback_registry] = lambda: registry
    return TestClient(app)
