"""POST /v1/orders/{order_id}/refunds - itemized order refund"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from clover_checkout.api.dependencies import (
    get_callback_registry,
    get_clover_client,
    get_order_repository,
    get_request_id,
)
from clover_checkout.api.errors import to_http_exception
from clover_checkout.api.v1.schemas import RefundLineSchema, RefundRequest, RefundResponse
from clover_checkout.domain.callbacks import TenderCallbackRegistry
from clover_checkout.domain.exceptions import DomainException
from clover_checkout.domain.order import OrderRefund, RefundLine
from clover_checkout.infrastructure.clients.clover import CloverClient
from clover_checkout.infrastructure.database.repositories import OrderRepository
from clover_checkout.infrastructure.database.session import get_db
from clover_checkout.services.refunds import RefundOrchestrator

router = APIRouter()


def _refund_line(line: RefundLineSchema) -> RefundLine:
    return RefundLine(
        refunded_item_id=line.refunded_item_id,
        quantity=line.quantity,
        total=str(line.total),
        total_tax=str(line.total_tax),
        id=line.id,
    )


@router.post("/orders/{order_id}/refunds", response_model=RefundResponse)
def refund_order(
    order_id: int,
    request_body: RefundRequest,
    request: Request,
    db: Session = Depends(get_db),
    orders: OrderRepository = Depends(get_order_repository),
    clover_client: CloverClient = Depends(get_clover_client),
    registry: TenderCallbackRegistry = Depends(get_callback_registry),
):
    """
    Record the store's refund request and refund it through Clover.

    Nothing is kept when Clover does not honour the refund: the request and its
    notes are rolled back and the merchant-facing reason is returned with a 422.
    """
    request_id = get_request_id(request)
    order = orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")

    refund_request = OrderRefund(
        amount=str(request_body.amount),
        reason=request_body.reason,
        items=[_refund_line(line) for line in request_body.items],
        fees=[_refund_line(line) for line in request_body.fees],
        shipping_total=str(request_body.shipping_total),
        shipping_tax=str(request_body.shipping_tax),
    )

    orchestrator = RefundOrchestrator(clover_client, orders, registry)
    try:
        orders.add_refund(order, refund_request)
        refund = orchestrator.refund(order, request_body.amount, request_body.reason)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, request_id)

    logging.info("Order refunded", extra={"request_id": request_id, "order_id": order_id})
    return RefundResponse(success=True, refund=refund)
