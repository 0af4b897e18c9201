"""Data access layer for store orders and refund nonces"""

import copy
import logging
import secrets
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from clover_checkout.config import settings
from clover_checkout.domain.exceptions import ConcurrentOrderUpdateError, OrderNotFoundError
from clover_checkout.domain.order import Address, Order, OrderLine, OrderNote, OrderRefund, RefundLine
from clover_checkout.infrastructure.database.models import (
    OrderLineRecord,
    OrderNoteRecord,
    OrderRecord,
    OrderRefundRecord,
    RefundNonce,
)


def _refund_lines(raw: List[Dict[str, Any]]) -> List[RefundLine]:
    return [RefundLine(**line) for line in raw or []]


def _to_domain(row: OrderRecord) -> Order:
    return Order(
        id=row.id,
        order_key=row.order_key,
        total=row.total,
        currency=row.currency,
        status=row.status,
        customer_ip=row.customer_ip,
        billing=Address(**(row.billing or {})),
        shipping=Address(**(row.shipping or {})),
        shipping_method=row.shipping_method,
        shipping_total=row.shipping_total,
        shipping_tax=row.shipping_tax,
        items=[
            OrderLine(id=line.id, name=line.name, quantity=line.quantity, total=line.total, total_tax=line.total_tax)
            for line in row.lines
            if line.kind == "item"
        ],
        fees=[
            OrderLine(id=line.id, name=line.name, quantity=line.quantity, total=line.total, total_tax=line.total_tax)
            for line in row.lines
            if line.kind == "fee"
        ],
        refunds=[
            OrderRefund(
                id=refund.id,
                amount=refund.amount,
                reason=refund.reason,
                status=refund.status,
                items=_refund_lines(refund.items),
                fees=_refund_lines(refund.fees),
                shipping_total=refund.shipping_total,
                shipping_tax=refund.shipping_tax,
            )
            for refund in row.refunds
        ],
        meta=copy.deepcopy(row.meta or {}),
        notes=[OrderNote(id=note.id, content=note.content, created_at=note.created_at) for note in row.notes],
        version=row.version_id,
    )


def _refund_record(refund: OrderRefund) -> OrderRefundRecord:
    return OrderRefundRecord(
        amount=refund.amount,
        reason=refund.reason,
        status=refund.status,
        items=[asdict(line) for line in refund.items],
        fees=[asdict(line) for line in refund.fees],
        shipping_total=refund.shipping_total,
        shipping_tax=refund.shipping_tax,
    )


class OrderRepository:
    """SQLAlchemy-backed OrderStore"""

    def __init__(self, db: Session, logger: logging.Logger | None = None):
        self.db = db
        self.logger = logger or logging.getLogger(__name__)

    def get(self, order_id: int) -> Optional[Order]:
        row = self.db.get(OrderRecord, order_id)
        return _to_domain(row) if row is not None else None

    def create(self, order: Order) -> Order:
        """Persist a new order handed over by the host store"""
        row = OrderRecord(
            id=order.id,
            order_key=order.order_key,
            total=order.total,
            currency=order.currency,
            status=order.status,
            customer_ip=order.customer_ip,
            billing=asdict(order.billing),
            shipping=asdict(order.shipping),
            shipping_method=order.shipping_method,
            shipping_total=order.shipping_total,
            shipping_tax=order.shipping_tax,
            meta=copy.deepcopy(order.meta),
        )
        for kind, lines in (("item", order.items), ("fee", order.fees)):
            for line in lines:
                row.lines.append(
                    OrderLineRecord(
                        id=line.id,
                        kind=kind,
                        name=line.name,
                        quantity=line.quantity,
                        total=line.total,
                        total_tax=line.total_tax,
                    )
                )
        self.db.add(row)
        self.db.flush()  # Get version without committing
        order.version = row.version_id
        return order

    def save(self, order: Order) -> None:
        """
        Write back status, metadata, new notes and refunds.

        Raises:
            OrderNotFoundError: Order was never created
            ConcurrentOrderUpdateError: Order changed since it was loaded
        """
        row = self.db.get(OrderRecord, order.id)
        if row is None:
            raise OrderNotFoundError(f"Order {order.id} not found")
        if row.version_id != order.version:
            self.logger.warning(
                "Stale order write rejected",
                extra={"order_id": order.id, "loaded_version": order.version, "current_version": row.version_id},
            )
            raise ConcurrentOrderUpdateError(f"Order {order.id} was modified concurrently")

        row.status = order.status
        row.meta = copy.deepcopy(order.meta)
        row.updated_at = datetime.now(timezone.utc)

        new_notes = []
        for note in order.notes:
            if note.id is None:
                record = OrderNoteRecord(content=note.content, created_at=note.created_at)
                row.notes.append(record)
                new_notes.append((note, record))

        existing = {refund.id: refund for refund in row.refunds}
        new_refunds = []
        for refund in order.refunds:
            if refund.id in existing:
                existing[refund.id].status = refund.status
            else:
                record = _refund_record(refund)
                row.refunds.append(record)
                new_refunds.append((refund, record))

        try:
            self.db.flush()
        except StaleDataError as e:
            raise ConcurrentOrderUpdateError(f"Order {order.id} was modified concurrently") from e

        for note, record in new_notes:
            note.id = record.id
        for refund, record in new_refunds:
            refund.id = record.id
        order.version = row.version_id

    def add_refund(self, order: Order, refund: OrderRefund) -> OrderRefund:
        """Record a refund request from the host store"""
        order.refunds.append(refund)
        self.save(order)
        return refund


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class NonceRepository:
    """Single-use refund nonces that expire after ttl_seconds"""

    def __init__(self, db: Session, ttl_seconds: int | None = None, logger: logging.Logger | None = None):
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else settings.refund_nonce_ttl_seconds)
        self.logger = logger or logging.getLogger(__name__)

    def _cutoff(self) -> datetime:
        return datetime.now(timezone.utc) - self.ttl

    def prune(self) -> int:
        """Delete used and expired nonces"""
        deleted = (
            self.db.query(RefundNonce)
            .filter(or_(RefundNonce.used_at.isnot(None), RefundNonce.created_at < self._cutoff()))
            .delete(synchronize_session="fetch")
        )
        if deleted:
            self.logger.debug("Pruned refund nonces", extra={"deleted": deleted})
        return deleted

    def issue(self, order_id: int, charge_id: str) -> str:
        self.prune()
        nonce = secrets.token_urlsafe(24)
        self.db.add(
            RefundNonce(nonce=nonce, order_id=order_id, charge_id=charge_id, created_at=datetime.now(timezone.utc))
        )
        self.db.flush()
        return nonce

    def consume(self, nonce: str, order_id: int, charge_id: str) -> bool:
        """Mark the nonce used; False when unknown, expired, already used or issued for another charge"""
        row = self.db.get(RefundNonce, nonce)
        if row is None or row.used_at is not None:
            return False
        if row.order_id != order_id or row.charge_id != charge_id:
            return False
        if _as_utc(row.created_at) < self._cutoff():
            self.logger.warning("Refund nonce expired", extra={"order_id": order_id, "charge_id": charge_id})
            return False
        row.used_at = datetime.now(timezone.utc)
        self.db.flush()
        return True
