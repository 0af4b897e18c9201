"""Unit tests for the custom tender ledger"""

import pytest

from clover_checkout.domain.callbacks import CustomTenderCallback, TenderCallbackRegistry
from clover_checkout.domain.exceptions import (
    DuplicateTenderError,
    InvalidTenderTransitionError,
    RemoteRequestError,
    SettledTenderError,
    TenderNotFoundError,
    TenderRefundError,
    TenderValidationError,
)
from clover_checkout.domain.models import RefundResult
from clover_checkout.domain.order import META_CUSTOM_TENDERS
from clover_checkout.domain.tenders import PHASE_CREATION, CustomTenderLedger


@pytest.fixture
def order(make_order):
    return make_order()


@pytest.fixture
def ledger(order, store, registry, gateway):
    return CustomTenderLedger(order, store, registry, gateway=gateway)


def test_add_tender_persists_pending_entry(ledger, order, store):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")

    assert tender.status == "pending"
    assert tender.id
    assert tender.charge_id == ""
    assert order.get_meta(META_CUSTOM_TENDERS) == [tender.to_dict()]
    assert store.saved == [order.id]


@pytest.mark.parametrize(
    "label,amount,callback",
    [
        ("", 1000, "recorder"),
        ("Gift Card", 0, "recorder"),
        ("Gift Card", -5, "recorder"),
        ("Gift Card", 10.5, "recorder"),
        ("Gift Card", 1000, "not-registered"),
    ],
)
def test_add_tender_rejects_invalid_input(ledger, label, amount, callback):
    with pytest.raises(TenderValidationError):
        ledger.add_tender(label, amount, callback)
    assert ledger.list_tenders() == []


def test_add_tender_with_duplicate_id_is_rejected(ledger):
    ledger.add_tender("Gift Card", 1000, "recorder", tender_id="gc-1")

    with pytest.raises(DuplicateTenderError):
        ledger.add_tender("Loyalty", 500, "recorder", tender_id="gc-1")

    assert len(ledger.list_tenders()) == 1


def test_pending_total_filters_by_label_and_status(ledger):
    first = ledger.add_tender("Gift Card", 1000, "recorder")
    ledger.add_tender("Gift Card", 250, "recorder")
    ledger.add_tender("Loyalty", 700, "recorder")
    failed = ledger.add_tender("Gift Card", 4000, "recorder")
    ledger.mark_failed(failed.id)
    ledger.mark_paid(first.id, "CHARGE-GC-1")

    assert ledger.pending_total("Gift Card") == 250
    assert ledger.pending_total("Loyalty") == 700
    assert ledger.pending_total() == 950


def test_mark_paid_requires_charge_id(ledger):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")

    with pytest.raises(TenderValidationError):
        ledger.mark_paid(tender.id, "  ")
    assert ledger.get_tender(tender.id).status == "pending"


def test_update_tender_rejects_disallowed_transition(ledger):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")
    ledger.mark_failed(tender.id)

    with pytest.raises(InvalidTenderTransitionError):
        ledger.update_tender(tender.id, {"status": "success"})


def test_update_tender_rejects_unknown_field(ledger):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")

    with pytest.raises(TenderValidationError):
        ledger.update_tender(tender.id, {"colour": "blue"})


@pytest.mark.parametrize(
    "fields",
    [{"amount": -500}, {"amount": 0}, {"amount": "500"}, {"provider": "  "}, {"callback": "missing"}],
)
def test_update_tender_keeps_tender_valid(ledger, fields):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")

    with pytest.raises(TenderValidationError):
        ledger.update_tender(tender.id, fields)

    assert ledger.get_tender(tender.id).amount == 1000
    assert ledger.pending_total() == 1000


def test_update_tender_amount(ledger):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")

    ledger.update_tender(tender.id, {"amount": 750})

    assert ledger.pending_total() == 750


def test_update_missing_tender(ledger):
    with pytest.raises(TenderNotFoundError):
        ledger.update_tender("missing", {"status": "failed"})


def test_delete_pending_tender_removes_only_that_entry(ledger):
    keep = ledger.add_tender("Gift Card", 1000, "recorder")
    drop = ledger.add_tender("Gift Card", 500, "recorder")

    ledger.delete_tender(drop.id)

    assert [tender.id for tender in ledger.list_tenders()] == [keep.id]


def test_delete_settled_tenders_is_rejected(ledger):
    paid = ledger.add_tender("Gift Card", 1000, "recorder")
    ledger.mark_paid(paid.id, "CHARGE-1")
    refunded = ledger.add_tender("Gift Card", 500, "recorder")
    ledger.mark_paid(refunded.id, "CHARGE-2")
    ledger.update_tender(refunded.id, {"status": "refunded"})

    for tender_id in (paid.id, refunded.id):
        with pytest.raises(SettledTenderError):
            ledger.delete_tender(tender_id)
    assert len(ledger.list_tenders()) == 2


def test_delete_missing_tender(ledger):
    with pytest.raises(TenderNotFoundError):
        ledger.delete_tender("missing")


def test_execute_callback_runs_registered_hook(ledger, recorder):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")

    ledger.execute_callback(tender.id, PHASE_CREATION)

    assert recorder.created == [tender.id]


def test_execute_callback_never_raises(order, store, gateway):
    class ExplodingCallback(CustomTenderCallback):
        def on_charge_created(self, tender):
            raise RuntimeError("integration is down")

        def on_charge_refunded(self, tender):
            raise RuntimeError("integration is down")

    registry = TenderCallbackRegistry()
    registry.register("exploding", ExplodingCallback())
    ledger = CustomTenderLedger(order, store, registry, gateway=gateway)
    tender = ledger.add_tender("Gift Card", 1000, "exploding")

    ledger.execute_callback(tender.id, PHASE_CREATION)
    ledger.execute_callback(tender.id, "bogus-phase")
    ledger.execute_callback("missing", PHASE_CREATION)


def test_registry_rejects_handlers_without_the_callback_interface():
    registry = TenderCallbackRegistry()

    with pytest.raises(TenderValidationError):
        registry.register("plain", object())
    with pytest.raises(TenderValidationError):
        registry.resolve("plain")


def test_refund_tender_success(ledger, order, gateway, recorder):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")
    ledger.mark_paid(tender.id, "TENDERCHARGE1")

    refund = ledger.refund_tender(tender.id)

    assert refund.id == "REFUND1"
    assert gateway.called("refund_charge") == [("TENDERCHARGE1", "requested_by_customer", "", 1000)]
    assert ledger.get_tender(tender.id).status == "refunded"
    assert recorder.refunded == [tender.id]
    assert "Gift Card" in order.notes[-1].content
    assert "REFUND1" in order.notes[-1].content


def test_refund_tender_amount_mismatch_keeps_tender_settled(ledger, gateway, recorder):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")
    ledger.mark_paid(tender.id, "TENDERCHARGE1")
    gateway.refund_result = RefundResult(
        id="REFUND1", amount=900, charge="TENDERCHARGE1", status="succeeded", object="refund"
    )

    with pytest.raises(TenderRefundError, match="Refunding custom tender failed"):
        ledger.refund_tender(tender.id)

    assert ledger.get_tender(tender.id).status == "success"
    assert recorder.refunded == []


def test_refund_tender_remote_failure(ledger, gateway):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")
    ledger.mark_paid(tender.id, "TENDERCHARGE1")
    gateway.refund_result = RemoteRequestError("Charge already refunded")

    with pytest.raises(TenderRefundError, match="Charge already refunded"):
        ledger.refund_tender(tender.id)


def test_refund_pending_tender_is_rejected(ledger, gateway):
    tender = ledger.add_tender("Gift Card", 1000, "recorder")

    with pytest.raises(TenderRefundError):
        ledger.refund_tender(tender.id)
    assert gateway.calls == []
