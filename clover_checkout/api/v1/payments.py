"""POST /v1/orders/{order_id}/payment - checkout payment submission"""

import logging
import time
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from clover_checkout.api.dependencies import (
    get_callback_registry,
    get_clover_client,
    get_order_repository,
    get_recaptcha_client,
    get_request_id,
)
from clover_checkout.api.errors import to_http_exception
from clover_checkout.api.v1.schemas import PaymentResponse
from clover_checkout.domain.callbacks import TenderCallbackRegistry
from clover_checkout.domain.exceptions import ConcurrentOrderUpdateError
from clover_checkout.infrastructure.clients.clover import CloverClient
from clover_checkout.infrastructure.clients.recaptcha import RecaptchaClient
from clover_checkout.infrastructure.database.repositories import OrderRepository
from clover_checkout.infrastructure.database.session import get_db
from clover_checkout.services.payment_processor import OrderPaymentProcessor

router = APIRouter()


@router.post("/orders/{order_id}/payment", response_model=PaymentResponse)
def submit_payment(
    order_id: int,
    request: Request,
    form_input: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    orders: OrderRepository = Depends(get_order_repository),
    clover_client: CloverClient = Depends(get_clover_client),
    recaptcha_client: RecaptchaClient = Depends(get_recaptcha_client),
    registry: TenderCallbackRegistry = Depends(get_callback_registry),
):
    """
    Pay an order with the checkout form fields.

    The body carries the checkout form fields under their storefront names
    (token, card-brand, card-last4, hp-feedback-required, recaptcha-token, ...).
    A declined card still answers 200 with result "success" and a redirect to the
    order page; "fail" keeps the shopper on the checkout form.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    order = orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")

    processor = OrderPaymentProcessor(clover_client, orders, registry, recaptcha=recaptcha_client)
    try:
        result = processor.process_order_payment(order, form_input)
        db.commit()
    except ConcurrentOrderUpdateError as e:
        db.rollback()
        raise to_http_exception(e, request_id)

    logging.info(
        "Payment attempt completed",
        extra={
            "request_id": request_id,
            "order_id": order_id,
            "result": result.result,
            "order_status": order.status,
            "duration_ms": (time.time() - start_time) * 1000,
        },
    )
    return PaymentResponse(result=result.result, redirect=result.redirect, notices=result.notices)
