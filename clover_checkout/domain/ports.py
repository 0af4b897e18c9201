"""
Ports the payment core depends on.

Services and ledgers depend on these protocols; infrastructure provides the
SQLAlchemy order store and the WeeConnectPay HTTP client.
"""

from typing import Any, Dict, Protocol, runtime_checkable

from clover_checkout.domain.models import ChargeResult, RefundResult
from clover_checkout.domain.order import Order


@runtime_checkable
class OrderStore(Protocol):
    """Durable storage for the order aggregate"""

    def save(self, order: Order) -> None: ...


@runtime_checkable
class PaymentGateway(Protocol):
    """Remote payment operations against the Clover merchant account"""

    def create_customer(self, profile: Dict[str, Any]) -> str: ...

    def prepare_order(self, order_draft: Dict[str, Any], customer_id: str) -> str: ...

    def charge_card(self, remote_order_id: str, token: str, client_ip: str, amount: int) -> ChargeResult: ...

    def charge_custom_tender(self, remote_order_id: str, label: str, amount: int, client_ip: str) -> ChargeResult: ...

    def refund_charge(self, charge_id: str, reason: str, external_ref: str, amount: int) -> RefundResult: ...

    def refund_order(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...
