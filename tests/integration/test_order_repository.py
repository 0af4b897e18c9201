"""Integration tests for the SQLAlchemy order store"""

from datetime import datetime, timedelta, timezone

import pytest

from clover_checkout.domain.exceptions import ConcurrentOrderUpdateError, OrderNotFoundError
from clover_checkout.domain.order import META_CUSTOM_TENDERS, OrderLine, OrderRefund, RefundLine
from clover_checkout.domain.tenders import CustomTenderLedger
from clover_checkout.infrastructure.database.models import RefundNonce
from clover_checkout.infrastructure.database.repositories import NonceRepository, OrderRepository


@pytest.fixture
def repo(db):
    return OrderRepository(db)


@pytest.fixture
def stored_order(repo, db, make_order):
    order = make_order(fees=[OrderLine(id=5, name="Gift wrap", total="3.00")])
    repo.create(order)
    db.commit()
    return order


def test_round_trip(repo, stored_order):
    loaded = repo.get(stored_order.id)

    assert loaded.order_key == stored_order.order_key
    assert loaded.billing.postcode == "H2X 1Y4"
    assert [item.name for item in loaded.items] == ["Mug"]
    assert [fee.name for fee in loaded.fees] == ["Gift wrap"]
    assert loaded.version == stored_order.version


def test_save_persists_meta_notes_and_refunds(repo, db, stored_order, registry):
    CustomTenderLedger(stored_order, repo, registry).add_tender("Gift Card", 1000, "recorder", tender_id="gc-1")
    stored_order.add_note("Clover order created")
    stored_order.refunds.append(
        OrderRefund(amount="50.00", items=[RefundLine(refunded_item_id=1, quantity=-2, total="-40.00", total_tax="-10.00")])
    )
    repo.save(stored_order)
    db.commit()

    loaded = repo.get(stored_order.id)
    assert loaded.get_meta(META_CUSTOM_TENDERS)[0]["id"] == "gc-1"
    assert [note.content for note in loaded.notes] == ["Clover order created"]
    assert loaded.latest_refund.items[0].quantity == -2
    assert stored_order.latest_refund.id is not None

    loaded.latest_refund.status = "refunded"
    repo.save(loaded)
    db.commit()
    assert repo.get(stored_order.id).latest_refund.status == "refunded"
    assert len(repo.get(stored_order.id).refunds) == 1


def test_notes_are_not_duplicated_on_resave(repo, db, stored_order):
    stored_order.add_note("first")
    repo.save(stored_order)
    repo.save(stored_order)
    db.commit()

    assert [note.content for note in repo.get(stored_order.id).notes] == ["first"]


def test_stale_write_is_rejected(repo, db, stored_order):
    first = repo.get(stored_order.id)
    second = repo.get(stored_order.id)

    first.update_status("processing")
    repo.save(first)
    db.commit()

    second.update_status("cancelled")
    with pytest.raises(ConcurrentOrderUpdateError):
        repo.save(second)
    assert repo.get(stored_order.id).status == "processing"


def test_save_unknown_order(repo, make_order):
    with pytest.raises(OrderNotFoundError):
        repo.save(make_order(id=4242))


def test_nonce_is_single_use(db, stored_order):
    nonces = NonceRepository(db)
    nonce = nonces.issue(stored_order.id, "CHARGE1")

    assert not nonces.consume(nonce, stored_order.id, "OTHER")
    assert nonces.consume(nonce, stored_order.id, "CHARGE1")
    assert not nonces.consume(nonce, stored_order.id, "CHARGE1")
    assert not nonces.consume("unknown", stored_order.id, "CHARGE1")


def _age(db, nonce, seconds):
    db.get(RefundNonce, nonce).created_at = datetime.now(timezone.utc) - timedelta(seconds=seconds)
    db.flush()


def test_expired_nonce_is_rejected(db, stored_order):
    nonces = NonceRepository(db, ttl_seconds=3600)
    fresh = nonces.issue(stored_order.id, "CHARGE1")
    stale = nonces.issue(stored_order.id, "CHARGE2")
    _age(db, stale, 7200)

    assert not nonces.consume(stale, stored_order.id, "CHARGE2")
    assert nonces.consume(fresh, stored_order.id, "CHARGE1")


def test_issue_prunes_used_and_expired_nonces(db, stored_order):
    nonces = NonceRepository(db, ttl_seconds=3600)
    used = nonces.issue(stored_order.id, "CHARGE1")
    nonces.consume(used, stored_order.id, "CHARGE1")
    stale = nonces.issue(stored_order.id, "CHARGE2")
    _age(db, stale, 7200)
    kept = nonces.issue(stored_order.id, "CHARGE3")

    latest = nonces.issue(stored_order.id, "CHARGE4")

    remaining = {row.nonce for row in db.query(RefundNonce).all()}
    assert remaining == {kept, latest}
