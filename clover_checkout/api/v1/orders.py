"""POST /v1/orders and GET /v1/orders/{order_id} - orders handed over by the host store"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from clover_checkout.api.dependencies import get_order_repository, get_request_id
from clover_checkout.api.v1.schemas import NoteSchema, OrderCreateRequest, OrderResponse
from clover_checkout.domain.order import META_ORDER_UUID, Address, Order, OrderLine
from clover_checkout.infrastructure.database.repositories import OrderRepository
from clover_checkout.infrastructure.database.session import get_db

router = APIRouter()


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_key=order.order_key,
        status=order.status,
        total=order.total,
        currency=order.currency,
        clover_order_uuid=order.get_meta(META_ORDER_UUID),
        notes=[NoteSchema(content=note.content, created_at=note.created_at) for note in order.notes],
    )


@router.post("/orders", response_model=OrderResponse, status_code=201)
def create_order(
    request_body: OrderCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    orders: OrderRepository = Depends(get_order_repository),
):
    """Register a pending store order so it can be paid through Clover"""
    request_id = get_request_id(request)
    if orders.get(request_body.id) is not None:
        raise HTTPException(status_code=409, detail=f"Order {request_body.id} already exists")

    order = Order(
        id=request_body.id,
        order_key=request_body.order_key,
        total=str(request_body.total),
        currency=request_body.currency.upper(),
        customer_ip=request_body.customer_ip or (request.client.host if request.client else ""),
        billing=Address(**request_body.billing.model_dump()),
        shipping=Address(**request_body.shipping.model_dump()),
        shipping_method=request_body.shipping_method,
        shipping_total=str(request_body.shipping_total),
        shipping_tax=str(request_body.shipping_tax),
        items=[
            OrderLine(id=line.id, name=line.name, quantity=line.quantity, total=str(line.total), total_tax=str(line.total_tax))
            for line in request_body.items
        ],
        fees=[
            OrderLine(id=line.id, name=line.name, quantity=line.quantity, total=str(line.total), total_tax=str(line.total_tax))
            for line in request_body.fees
        ],
    )
    orders.create(order)
    db.commit()
    logging.info("Order registered", extra={"request_id": request_id, "order_id": order.id})
    return _order_response(order)


@router.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, orders: OrderRepository = Depends(get_order_repository)):
    order = orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return _order_response(order)
