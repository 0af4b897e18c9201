"""Storefront redirect URLs and Clover receipt deep links"""

from clover_checkout.config import settings
from clover_checkout.domain.order import Order

RECEIPT_ORDER = "order"
RECEIPT_CHARGE = "charge"

_RECEIPT_PATHS = {
    RECEIPT_ORDER: "r",
    RECEIPT_CHARGE: "tx/p",
}


def receipt_url(clover_id: str, receipt_type: str = RECEIPT_CHARGE) -> str:
    path = _RECEIPT_PATHS[receipt_type]
    return f"{settings.clover_receipt_base.rstrip('/')}/{path}/{clover_id}"


def order_received_url(order: Order) -> str:
    return f"{settings.store_base_url.rstrip('/')}/checkout/order-received/{order.id}/?key={order.order_key}"


def view_order_url(order: Order) -> str:
    return f"{settings.store_base_url.rstrip('/')}/my-account/view-order/{order.id}/"
