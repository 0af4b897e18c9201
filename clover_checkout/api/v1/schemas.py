"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AddressSchema(BaseModel):
    first_name: str = ""
    last_name: str = ""
    company: str = ""
    address_1: str = ""
    address_2: str = ""
    city: str = ""
    state: str = ""
    postcode: str = ""
    country: str = ""
    email: str = ""
    phone: str = ""


class OrderLineSchema(BaseModel):
    """Product or fee line; totals are decimal strings in major units"""

    id: int
    name: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    total: Decimal
    total_tax: Decimal = Decimal("0.00")


class OrderCreateRequest(BaseModel):
    """Request body for POST /v1/orders"""

    id: int = Field(..., gt=0, description="Store order id")
    order_key: str = Field(..., min_length=1)
    total: Decimal = Field(..., ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    customer_ip: str = ""
    billing: AddressSchema = Field(default_factory=AddressSchema)
    shipping: AddressSchema = Field(default_factory=AddressSchema)
    shipping_method: str = ""
    shipping_total: Decimal = Decimal("0.00")
    shipping_tax: Decimal = Decimal("0.00")
    items: List[OrderLineSchema] = Field(default_factory=list)
    fees: List[OrderLineSchema] = Field(default_factory=list)


class NoteSchema(BaseModel):
    content: str
    created_at: datetime


class OrderResponse(BaseModel):
    """Response for GET /v1/orders/{order_id}"""

    id: int
    order_key: str
    status: str
    total: str
    currency: str
    clover_order_uuid: Optional[str] = None
    notes: List[NoteSchema]


class PaymentResponse(BaseModel):
    """Response for POST /v1/orders/{order_id}/payment"""

    result: str
    redirect: str = ""
    notices: List[str] = Field(default_factory=list)


class RefundLineSchema(BaseModel):
    """Refunded line as recorded by the store: quantity and totals are negative"""

    refunded_item_id: int
    quantity: int
    total: Decimal
    total_tax: Decimal = Decimal("0.00")
    id: Optional[int] = None


class RefundRequest(BaseModel):
    """Request body for POST /v1/orders/{order_id}/refunds"""

    amount: Decimal
    reason: str = ""
    items: List[RefundLineSchema] = Field(default_factory=list)
    fees: List[RefundLineSchema] = Field(default_factory=list)
    shipping_total: Decimal = Decimal("0.00")
    shipping_tax: Decimal = Decimal("0.00")


class RefundResponse(BaseModel):
    success: bool
    refund: Dict[str, Any]


class RefundAction(BaseModel):
    """Parameters the admin UI posts back to refund one charge"""

    order_id: int
    charge_id: str
    amount: int
    nonce: str


class ChargeListItem(BaseModel):
    """Card charge or custom tender shown in the admin charge list"""

    charge_id: str
    kind: str  # card | tender
    amount: int
    currency: str
    label: str
    status: str
    receipt_url: str = ""
    refund_action: Optional[RefundAction] = None


class ChargeListResponse(BaseModel):
    """Response for GET /v1/orders/{order_id}/charges"""

    order_id: int
    charges: List[ChargeListItem]


class ChargeRefundRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Amount in cents")
    nonce: str = Field(..., min_length=1)


class ChargeRefundResponse(BaseModel):
    success: bool
    refund_id: str
    amount: int
    status: str


class TenderCreateRequest(BaseModel):
    """Request body for POST /v1/orders/{order_id}/tenders"""

    label: str = Field(..., min_length=1, description="Tender label in the Clover merchant account")
    amount: int = Field(..., gt=0, description="Amount in cents")
    callback: str = Field(..., min_length=1, description="Registered callback key")
    id: Optional[str] = None


class TenderResponse(BaseModel):
    id: str
    amount: int
    provider: str
    status: str
    charge_id: str
    callback: str


class LogsResponse(BaseModel):
    logs: List[Dict[str, Any]]
    pagination: Dict[str, int]
