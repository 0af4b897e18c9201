"""Order aggregate owned by the host store"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

ORDER_STATUSES = ("pending", "processing", "completed", "cancelled", "failed", "refunded")

# Metadata keys written by the payment core
META_CUSTOM_TENDERS = "clover_custom_tenders"
META_CHARGES = "clover_charges"
META_ORDER_UUID = "clover_order_uuid"
META_PAYMENT_UUID = "clover_payment_uuid"
META_CARD_BRAND = "card_brand"
META_TAX_INCLUDED = "tax_included"
META_MERGED_QTY = "merged_qty"
META_SHIPPING_AS_LINE_ITEM = "shipping_as_line_item"
META_SHIPPING_LINE_ITEM_NAME = "shipping_line_item_name"


@dataclass
class Address:
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


@dataclass
class OrderLine:
    """Product line or fee line; totals are decimal strings as the store records them"""

    id: int
    name: str
    quantity: int = 1
    total: str = "0.00"  # before tax
    total_tax: str = "0.00"


@dataclass
class RefundLine:
    """Refunded line; quantity and totals are negative, as the store records them"""

    refunded_item_id: int
    quantity: int
    total: str
    total_tax: str = "0.00"
    id: Optional[int] = None


@dataclass
class OrderRefund:
    """Refund request recorded by the store before the payment gateway is asked to honour it"""

    amount: str
    reason: str = ""
    status: str = "pending"
    items: List[RefundLine] = field(default_factory=list)
    fees: List[RefundLine] = field(default_factory=list)
    shipping_total: str = "0.00"
    shipping_tax: str = "0.00"
    id: Optional[int] = None


@dataclass
class OrderNote:
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None


@dataclass
class Order:
    """
    Store order as seen by the payment core.

    Metadata is a whole-document key-value store: readers receive copies, and every
    write replaces the value under its key. Nothing is persisted until the order is
    handed to an OrderStore.
    """

    id: int
    order_key: str
    total: str
    currency: str = "USD"
    status: str = "pending"
    customer_ip: str = ""
    billing: Address = field(default_factory=Address)
    shipping: Address = field(default_factory=Address)
    shipping_method: str = ""
    shipping_total: str = "0.00"
    shipping_tax: str = "0.00"
    items: List[OrderLine] = field(default_factory=list)
    fees: List[OrderLine] = field(default_factory=list)
    refunds: List[OrderRefund] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)
    notes: List[OrderNote] = field(default_factory=list)
    version: int = 0

    def get_meta(self, key: str, default: Any = None) -> Any:
        if key not in self.meta:
            return default
        return copy.deepcopy(self.meta[key])

    def has_meta(self, key: str) -> bool:
        return key in self.meta and self.meta[key] not in (None, "")

    def update_meta(self, key: str, value: Any) -> None:
        self.meta[key] = copy.deepcopy(value)

    def add_note(self, content: str) -> OrderNote:
        note = OrderNote(content=content)
        self.notes.append(note)
        return note

    def update_status(self, status: str) -> None:
        if status not in ORDER_STATUSES:
            raise ValueError(f"Unknown order status: {status}")
        self.status = status

    def payment_complete(self) -> None:
        """Mark the order as paid; paid orders move on to fulfilment"""
        if self.status in ("pending", "failed", "cancelled"):
            self.status = "processing"

    def get_item(self, line_id: int) -> Optional[OrderLine]:
        return next((item for item in self.items if item.id == line_id), None)

    def get_fee(self, line_id: int) -> Optional[OrderLine]:
        return next((fee for fee in self.fees if fee.id == line_id), None)

    @property
    def latest_refund(self) -> Optional[OrderRefund]:
        return self.refunds[-1] if self.refunds else None
