"""Integration tests for API endpoints"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from clover_checkout.api.dependencies import get_log_store
from clover_checkout.domain.exceptions import RemoteRequestError
from clover_checkout.domain.models import ChargeResult, RefundResult
from clover_checkout.infrastructure.observability.log_store import LogStore
from clover_checkout.services.refunds import CUSTOM_TENDER_REFUND_BLOCKED, RefundOrchestrator

ORDER_ID = 2001


@pytest.fixture
def order_payload():
    return {
        "id": ORDER_ID,
        "order_key": "wc_order_xyz",
        "total": "50.00",
        "currency": "CAD",
        "customer_ip": "198.51.100.4",
        "billing": {
            "first_name": "Grace",
            "last_name": "Hopper",
            "address_1": "2 Queen St",
            "city": "Toronto",
            "state": "ON",
            "postcode": "M5H 2N2",
            "country": "CA",
            "email": "grace@example.com",
        },
        "items": [{"id": 11, "name": "Notebook", "quantity": 2, "total": "40.00", "total_tax": "10.00"}],
    }


@pytest.fixture
def card_payment():
    return {
        "token": "clv_tok_456",
        "card-brand": "MC",
        "card-last4": "5454",
        "card-exp-month": "01",
        "card-exp-year": "2031",
        "tokenized-zip": "M5H2N2",
    }


@pytest.fixture
def created_order(client: TestClient, order_payload):
    response = client.post("/v1/orders", json=order_payload)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def paid_order(client: TestClient, created_order, card_payment):
    response = client.post(f"/v1/orders/{ORDER_ID}/payment", json=card_payment)
    assert response.status_code == 200
    assert response.json()["result"] == "success"
    return created_order


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "clover_checkout_payment_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "store-req-1"})
    assert response.headers["X-Request-ID"] == "store-req-1"


def test_create_and_get_order(client: TestClient, created_order, order_payload):
    assert created_order["status"] == "pending"
    assert created_order["clover_order_uuid"] is None

    response = client.get(f"/v1/orders/{ORDER_ID}")
    assert response.status_code == 200
    assert response.json()["order_key"] == "wc_order_xyz"

    duplicate = client.post("/v1/orders", json=order_payload)
    assert duplicate.status_code == 409


def test_get_missing_order(client: TestClient):
    assert client.get("/v1/orders/999").status_code == 404


def test_card_payment(client: TestClient, gateway, paid_order):
    (charge,) = gateway.called("charge_card")
    assert charge == ("CLOVERORDER1", "clv_tok_456", "198.51.100.4", 5000)

    order = client.get(f"/v1/orders/{ORDER_ID}").json()
    assert order["status"] == "processing"
    assert order["clover_order_uuid"] == "CLOVERORDER1"
    assert any("CHARGE1" in note["content"] for note in order["notes"])


def test_payment_for_missing_order(client: TestClient, card_payment):
    assert client.post("/v1/orders/999/payment", json=card_payment).status_code == 404


def test_payment_failure_keeps_shopper_on_checkout(client: TestClient, gateway, created_order, card_payment):
    response = client.post(f"/v1/orders/{ORDER_ID}/payment", json={**card_payment, "token": ""})

    assert response.status_code == 200
    assert response.json()["result"] == "fail"
    assert gateway.calls == []


def test_charge_list_and_refund(client: TestClient, gateway, paid_order):
    listing = client.get(f"/v1/orders/{ORDER_ID}/charges")
    assert listing.status_code == 200
    (charge,) = listing.json()["charges"]
    assert charge["kind"] == "card"
    assert charge["label"] == "MC 5454"
    assert charge["receipt_url"].endswith("/tx/p/CHARGE1")
    action = charge["refund_action"]
    assert action["amount"] == 5000

    gateway.refund_result = RefundResult(id="REFUND7", amount=5000, charge="CHARGE1", status="succeeded", object="refund")
    response = client.post(
        f"/v1/orders/{ORDER_ID}/charges/CHARGE1/refund", json={"amount": 5000, "nonce": action["nonce"]}
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "refund_id": "REFUND7", "amount": 5000, "status": "succeeded"}

    replay = client.post(f"/v1/orders/{ORDER_ID}/charges/CHARGE1/refund", json={"amount": 5000, "nonce": action["nonce"]})
    assert replay.status_code == 403

    (refunded,) = client.get(f"/v1/orders/{ORDER_ID}/charges").json()["charges"]
    assert refunded["status"] == "refunded"
    assert refunded["refund_action"] is None


def test_charge_refund_with_foreign_nonce(client: TestClient, paid_order):
    response = client.post(f"/v1/orders/{ORDER_ID}/charges/CHARGE1/refund", json={"amount": 5000, "nonce": "forged"})
    assert response.status_code == 403


def test_tender_lifecycle(client: TestClient, created_order):
    response = client.post(
        f"/v1/orders/{ORDER_ID}/tenders", json={"label": "Gift Card", "amount": 1000, "callback": "recorder", "id": "gc-1"}
    )
    assert response.status_code == 201
    assert response.json()["status"] == "pending"

    duplicate = client.post(
        f"/v1/orders/{ORDER_ID}/tenders", json={"label": "Gift Card", "amount": 1000, "callback": "recorder", "id": "gc-1"}
    )
    assert duplicate.status_code == 409

    unknown_callback = client.post(
        f"/v1/orders/{ORDER_ID}/tenders", json={"label": "Gift Card", "amount": 1000, "callback": "missing"}
    )
    assert unknown_callback.status_code == 422

    assert client.delete(f"/v1/orders/{ORDER_ID}/tenders/gc-1").status_code == 204
    assert client.delete(f"/v1/orders/{ORDER_ID}/tenders/gc-1").status_code == 404


def test_tender_paid_at_checkout(client: TestClient, gateway, created_order, card_payment):
    client.post(f"/v1/orders/{ORDER_ID}/tenders", json={"label": "Gift Card", "amount": 2000, "callback": "recorder"})
    gateway.tender_results = [ChargeResult(status="paid", payment_id="TENDERCHARGE1", order_amount_due=3000)]

    response = client.post(f"/v1/orders/{ORDER_ID}/payment", json=card_payment)

    assert response.json()["result"] == "success"
    assert [args[3] for args in gateway.called("charge_card")] == [3000]
    kinds = sorted(charge["kind"] for charge in client.get(f"/v1/orders/{ORDER_ID}/charges").json()["charges"])
    assert kinds == ["card", "tender"]


def test_full_order_refund(client: TestClient, gateway, paid_order):
    gateway.refund_order_response = {"id": "REFUND1", "amount": 5000, "charge": "CHARGE1", "status": "succeeded"}

    response = client.post(
        f"/v1/orders/{ORDER_ID}/refunds",
        json={
            "amount": "50.00",
            "reason": "Changed mind",
            "items": [{"refunded_item_id": 11, "quantity": -2, "total": "-40.00", "total_tax": "-10.00"}],
        },
    )

    assert response.status_code == 200
    assert response.json()["refund"]["id"] == "REFUND1"
    notes = client.get(f"/v1/orders/{ORDER_ID}").json()["notes"]
    assert any("Charge refunded: " in note["content"] for note in notes)


def test_partial_order_refund_is_rejected(client: TestClient, gateway, paid_order):
    response = client.post(
        f"/v1/orders/{ORDER_ID}/refunds",
        json={
            "amount": "25.00",
            "items": [{"refunded_item_id": 11, "quantity": -1, "total": "-20.00", "total_tax": "-5.00"}],
        },
    )

    assert response.status_code == 422
    assert "To refund this line item (Notebook)" in response.json()["detail"]
    assert gateway.called("refund_order") == []


def test_order_refund_blocked_by_tenders(client: TestClient, gateway, created_order):
    client.post(f"/v1/orders/{ORDER_ID}/tenders", json={"label": "Gift Card", "amount": 1000, "callback": "recorder"})

    response = client.post(f"/v1/orders/{ORDER_ID}/refunds", json={"amount": "10.00"})

    assert response.status_code == 422
    assert response.json()["detail"] == CUSTOM_TENDER_REFUND_BLOCKED


def test_logs_endpoints(client: TestClient, tmp_path):
    log_file = tmp_path / "api.log"
    log_file.write_text('{"timestamp": "2026-02-01T00:00:00+00:00", "level": "INFO", "message": "hello"}\n')
    client.app.dependency_overrides[get_log_store] = lambda: LogStore(str(log_file))

    page = client.get("/v1/logs", params={"level": "INFO"})
    assert page.status_code == 200
    assert page.json()["pagination"]["total_logs"] == 1

    assert client.get("/v1/logs", params={"level": "LOUD"}).status_code == 422

    download = client.get("/v1/logs/download")
    assert "hello" in download.text
    assert "attachment" in download.headers["content-disposition"]

    cleared = client.post("/v1/logs/clear")
    assert cleared.json()["success"] is True
    assert cleared.json()["backup"]


def test_order_refund_remote_failure_is_502(client: TestClient, paid_order):
    with patch.object(RefundOrchestrator, "refund", side_effect=RemoteRequestError("connection reset")):
        response = client.post(f"/v1/orders/{ORDER_ID}/refunds", json={"amount": "50.00"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Payment service unavailable"
