"""Custom tenders attached to an order by merchant integrations (gift cards, loyalty cards)"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from clover_checkout.api.dependencies import get_callback_registry, get_order_repository, get_request_id
from clover_checkout.api.errors import to_http_exception
from clover_checkout.api.v1.schemas import TenderCreateRequest, TenderResponse
from clover_checkout.domain.callbacks import TenderCallbackRegistry
from clover_checkout.domain.exceptions import DomainException
from clover_checkout.domain.tenders import CustomTenderLedger
from clover_checkout.infrastructure.database.repositories import OrderRepository
from clover_checkout.infrastructure.database.session import get_db

router = APIRouter()


@router.post("/orders/{order_id}/tenders", response_model=TenderResponse, status_code=201)
def add_tender(
    order_id: int,
    request_body: TenderCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    orders: OrderRepository = Depends(get_order_repository),
    registry: TenderCallbackRegistry = Depends(get_callback_registry),
):
    """Attach a pending tender; it is charged on Clover at the next payment submission"""
    order = orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")

    try:
        tender = CustomTenderLedger(order, orders, registry).add_tender(
            request_body.label, request_body.amount, request_body.callback, tender_id=request_body.id
        )
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, get_request_id(request))

    return TenderResponse(**tender.to_dict())


@router.delete("/orders/{order_id}/tenders/{tender_id}", status_code=204)
def delete_tender(
    order_id: int,
    tender_id: str,
    request: Request,
    db: Session = Depends(get_db),
    orders: OrderRepository = Depends(get_order_repository),
    registry: TenderCallbackRegistry = Depends(get_callback_registry),
):
    """Remove a tender that has not been settled"""
    order = orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")

    try:
        CustomTenderLedger(order, orders, registry).delete_tender(tender_id)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, get_request_id(request))

    return Response(status_code=204)
