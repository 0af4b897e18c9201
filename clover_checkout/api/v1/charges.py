"""Admin charge list and per-charge refunds"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from clover_checkout.api.dependencies import (
    get_callback_registry,
    get_clover_client,
    get_nonce_repository,
    get_order_repository,
    get_request_id,
)
from clover_checkout.api.errors import to_http_exception
from clover_checkout.api.v1.schemas import (
    ChargeListItem,
    ChargeListResponse,
    ChargeRefundRequest,
    ChargeRefundResponse,
    RefundAction,
)
from clover_checkout.domain.callbacks import TenderCallbackRegistry
from clover_checkout.domain.charges import CreditCardChargeLedger
from clover_checkout.domain.exceptions import DomainException
from clover_checkout.domain.models import CHARGE_SUCCESS, TENDER_SUCCESS
from clover_checkout.domain.tenders import CustomTenderLedger
from clover_checkout.infrastructure.clients.clover import CloverClient
from clover_checkout.infrastructure.database.repositories import NonceRepository, OrderRepository
from clover_checkout.infrastructure.database.session import get_db
from clover_checkout.services.refunds import RefundOrchestrator
from clover_checkout.utils.urls import RECEIPT_CHARGE, receipt_url

router = APIRouter()


@router.get("/orders/{order_id}/charges", response_model=ChargeListResponse)
def list_charges(
    order_id: int,
    db: Session = Depends(get_db),
    orders: OrderRepository = Depends(get_order_repository),
    nonces: NonceRepository = Depends(get_nonce_repository),
    registry: TenderCallbackRegistry = Depends(get_callback_registry),
):
    """
    List the order's card charges and settled custom tenders.

    Every refundable entry carries a refund action with a fresh single-use nonce.
    """
    order = orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")

    items = []
    for charge in CreditCardChargeLedger(order, orders).all_charges():
        action = None
        if charge.status == CHARGE_SUCCESS:
            action = RefundAction(
                order_id=order.id,
                charge_id=charge.charge_id,
                amount=charge.amount,
                nonce=nonces.issue(order.id, charge.charge_id),
            )
        items.append(
            ChargeListItem(
                charge_id=charge.charge_id,
                kind="card",
                amount=charge.amount,
                currency=charge.currency,
                label=f"{charge.card_type} {charge.card_last4}".strip(),
                status=charge.status,
                receipt_url=receipt_url(charge.charge_id, RECEIPT_CHARGE),
                refund_action=action,
            )
        )

    for tender in CustomTenderLedger(order, orders, registry).list_tenders():
        if not tender.charge_id:
            continue
        action = None
        if tender.status == TENDER_SUCCESS:
            action = RefundAction(
                order_id=order.id,
                charge_id=tender.charge_id,
                amount=tender.amount,
                nonce=nonces.issue(order.id, tender.charge_id),
            )
        items.append(
            ChargeListItem(
                charge_id=tender.charge_id,
                kind="tender",
                amount=tender.amount,
                currency=order.currency,
                label=tender.provider,
                status=tender.status,
                receipt_url=receipt_url(tender.charge_id, RECEIPT_CHARGE),
                refund_action=action,
            )
        )

    db.commit()
    return ChargeListResponse(order_id=order.id, charges=items)


@router.post("/orders/{order_id}/charges/{charge_id}/refund", response_model=ChargeRefundResponse)
def refund_charge(
    order_id: int,
    charge_id: str,
    request_body: ChargeRefundRequest,
    request: Request,
    db: Session = Depends(get_db),
    orders: OrderRepository = Depends(get_order_repository),
    nonces: NonceRepository = Depends(get_nonce_repository),
    clover_client: CloverClient = Depends(get_clover_client),
    registry: TenderCallbackRegistry = Depends(get_callback_registry),
):
    """Refund one card charge or custom tender charge in full"""
    request_id = get_request_id(request)
    order = orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")

    if not nonces.consume(request_body.nonce, order_id, charge_id):
        logging.warning(
            "Charge refund rejected - invalid nonce",
            extra={"request_id": request_id, "order_id": order_id, "charge_id": charge_id},
        )
        raise HTTPException(status_code=403, detail="Security check failed.")
    # A used nonce stays used even if the refund below fails
    db.commit()

    orchestrator = RefundOrchestrator(clover_client, orders, registry)
    try:
        refund = orchestrator.refund_charge(order, charge_id, request_body.amount)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, request_id)

    logging.info(
        "Charge refunded",
        extra={"request_id": request_id, "order_id": order_id, "charge_id": charge_id, "refund_id": refund.id},
    )
    return ChargeRefundResponse(success=True, refund_id=refund.id, amount=refund.amount, status=refund.status)
