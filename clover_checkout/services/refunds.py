"""
Refund orchestration.

Order refunds are itemized: every refunded line, fee and shipping line must be
refunded in full, because Clover cannot refund part of a line or part of its tax.
Orders paid in part with custom tenders are refunded charge by charge instead.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from clover_checkout.config import Settings, settings as default_settings
from clover_checkout.domain import notes
from clover_checkout.domain.callbacks import TenderCallbackRegistry
from clover_checkout.domain.charges import CreditCardChargeLedger
from clover_checkout.domain.exceptions import ChargeNotFoundError, DomainException, RefundRejectedError
from clover_checkout.domain.models import CHARGE_REFUNDED, RefundResult
from clover_checkout.domain.money import format_minor_units, to_minor_units
from clover_checkout.domain.order import (
    META_MERGED_QTY,
    META_ORDER_UUID,
    META_SHIPPING_AS_LINE_ITEM,
    META_SHIPPING_LINE_ITEM_NAME,
    META_TAX_INCLUDED,
    Order,
    OrderLine,
    OrderRefund,
    RefundLine,
)
from clover_checkout.domain.ports import OrderStore, PaymentGateway
from clover_checkout.domain.tenders import CustomTenderLedger
from clover_checkout.infrastructure.observability.metrics import record_refund
from clover_checkout.utils.formatting import line_description

CUSTOM_TENDER_REFUND_BLOCKED = (
    "This order contains gift card or loyalty card payments. For security reasons, partial refunds are not "
    'available when multiple payment methods are used. Please use the "Refund" button in the WeeConnectPay '
    "Charges section above to process a full refund for each transaction."
)
PARTIAL_REFUNDS_DISABLED = (
    "Due to an undocumented breaking change in the Clover API, we have temporarily disabled partial refunds.\n"
)
REFUND_NOT_PROCESSED = (
    "This request to refund will not be processed. Should you want to do a partial refund, you can do so "
    "through your Clover web dashboard."
)
ALREADY_REFUNDED = "Order has been already refunded"
ADMIN_REFUND_REASON = "requested_by_customer"


def _cents(value: str) -> int:
    return abs(to_minor_units(value))


def _partial_refund_error(reason: str) -> RefundRejectedError:
    return RefundRejectedError(PARTIAL_REFUNDS_DISABLED + reason + "\n\n" + REFUND_NOT_PROCESSED)


def _line_mismatch(kind: str, refund_line: RefundLine, original: OrderLine) -> Optional[str]:
    """
    Describe the first field where a refunded line differs from the original line.

    Quantity is checked first, then the pre-tax total, then the tax.
    """
    if abs(refund_line.quantity) != original.quantity:
        return (
            f"To refund this {kind} ({original.name}), the quantity to refund (currently {abs(refund_line.quantity)}) "
            f"must be the total {kind} quantity ({original.quantity})"
        )
    if _cents(refund_line.total) != _cents(original.total):
        return (
            f"To refund this {kind} ({original.name}), the amount before tax to refund "
            f"(currently ${format_minor_units(_cents(refund_line.total))}) must be the {kind} total amount before tax "
            f"(${format_minor_units(_cents(original.total))})"
        )
    if _cents(refund_line.total_tax) != _cents(original.total_tax):
        return (
            f"To refund this {kind} ({original.name}), the tax to refund "
            f"(currently ${format_minor_units(_cents(refund_line.total_tax))}) must be the {kind} total tax "
            f"(${format_minor_units(_cents(original.total_tax))})"
        )
    return None


def _refund_line_payload(refund_line: RefundLine, original: OrderLine) -> Dict[str, Any]:
    return {
        "refunded_quantity": refund_line.quantity,
        "refunded_line_total": to_minor_units(refund_line.total),
        "refunded_total_tax": to_minor_units(refund_line.total_tax),
        "order_refund_item_id": refund_line.id,
        "refunded_item": {
            "line_item_id": original.id,
            "line_total": to_minor_units(original.total),
            "line_total_tax": to_minor_units(original.total_tax),
            "line_quantity": original.quantity,
            "line_description": line_description(original.name, original.quantity),
        },
    }


class RefundOrchestrator:
    """Validates refund requests and drives them through Clover, the ledgers and the order notes"""

    def __init__(
        self,
        gateway: PaymentGateway,
        store: OrderStore,
        registry: TenderCallbackRegistry,
        config: Settings | None = None,
        logger: logging.Logger | None = None,
    ):
        self.gateway = gateway
        self.store = store
        self.registry = registry
        self.config = config or default_settings
        self.logger = logger or logging.getLogger(__name__)

    def _tenders(self, order: Order) -> CustomTenderLedger:
        return CustomTenderLedger(order, self.store, self.registry, gateway=self.gateway, logger=self.logger)

    def refund(self, order: Order, amount: str | Decimal, reason: str = "") -> Dict[str, Any]:
        """
        Refund the order's latest refund request through Clover.

        Returns the Clover refund (or item return) payload.

        Raises:
            RefundRejectedError: The request cannot be honoured; the message is merchant-facing
            RemoteRequestError: Clover rejected the refund call
        """
        context = {"order_id": order.id}
        self.logger.info("Initiating refund", extra={**context, "amount": str(amount), "reason": reason or "not provided"})

        if self._tenders(order).list_tenders():
            self.logger.info(
                "Refund blocked - order contains custom tenders, directing user to individual charge refunds",
                extra=context,
            )
            record_refund("order", False)
            raise RefundRejectedError(CUSTOM_TENDER_REFUND_BLOCKED)

        try:
            payload = self._build_refund_payload(order, amount, reason)
        except RefundRejectedError:
            record_refund("order", False)
            raise

        self.logger.debug("Prepared refund payload", extra={**context, "refund_payload": payload})
        response = self.gateway.refund_order(payload)
        self.logger.debug("Refund API response", extra={**context, "refund_response": response})

        if self._is_charge_refund(response):
            refund = RefundResult.from_payload(response)
            self.logger.info(
                "Refund successful",
                extra={**context, "refund_id": refund.id, "charge_id": refund.charge, "amount": refund.amount},
            )
            order.add_note(notes.charge_refund_note(refund, order.currency, reason, charge_label="Charge refunded: "))
        elif self._is_item_return(response):
            self.logger.info(
                "Return successful", extra={**context, "refund_id": response["id"], "amount": response["amount_returned"]}
            )
            order.add_note(
                notes.item_return_note(
                    str(response["id"]), int(response["amount_returned"]), order.currency, response["items"], reason
                )
            )
        else:
            self.logger.error("Refund failed - invalid or unexpected API response", extra=context)
            record_refund("order", False)
            raise RefundRejectedError(ALREADY_REFUNDED)

        order.latest_refund.status = "refunded"
        self.store.save(order)
        record_refund("order", True)
        return response

    @staticmethod
    def _is_charge_refund(response: Dict[str, Any]) -> bool:
        return all(key in response for key in ("id", "amount", "charge", "status")) and response["status"] == "succeeded"

    @staticmethod
    def _is_item_return(response: Dict[str, Any]) -> bool:
        return (
            all(key in response for key in ("id", "amount_returned", "items", "status"))
            and response["status"] == "returned"
        )

    def _build_refund_payload(self, order: Order, amount: str | Decimal, reason: str) -> Dict[str, Any]:
        context = {"order_id": order.id}
        latest_refund = order.latest_refund
        if latest_refund is None:
            self.logger.error("Refund failed - no refund request found", extra=context)
            raise RefundRejectedError("No order refund request found")

        amount_cents = to_minor_units(amount) if amount not in (None, "") else 0
        if amount_cents <= 0:
            self.logger.error("Refund failed - invalid amount", extra={**context, "amount": str(amount)})
            raise RefundRejectedError("Refund amount must be higher than 0.")

        if latest_refund.status == "refunded":
            self.logger.error("Refund failed - order has already been refunded", extra=context)
            raise RefundRejectedError(ALREADY_REFUNDED)

        line_items: List[Dict[str, Any]] = []

        for refund_line in latest_refund.items:
            original = order.get_item(refund_line.refunded_item_id)
            if original is None:
                self.logger.error(
                    "Refund error - could not find the line item to refund within the original order",
                    extra={**context, "item_id": refund_line.refunded_item_id},
                )
                raise _partial_refund_error(
                    f"Could not find the line item to refund ({refund_line.refunded_item_id}) within the original order."
                )
            mismatch = _line_mismatch("line item", refund_line, original)
            if mismatch:
                self.logger.error(
                    "Refund error - partial refunds not allowed due to mismatched line item",
                    extra={**context, "item_id": original.id},
                )
                raise _partial_refund_error(mismatch)
            line_items.append(_refund_line_payload(refund_line, original))

        for refund_fee in latest_refund.fees:
            original = order.get_fee(refund_fee.refunded_item_id)
            if original is None:
                self.logger.error(
                    "Refund error - could not find the fee to refund within the original order",
                    extra={**context, "fee_id": refund_fee.refunded_item_id},
                )
                raise _partial_refund_error(
                    f"Could not find the fee to refund ({refund_fee.refunded_item_id}) within the original order. "
                    "Please contact support@weeconnectpay.com if you are seeing this message."
                )
            mismatch = _line_mismatch("fee", refund_fee, original)
            if mismatch:
                self.logger.error(
                    "Refund error - partial refunds not allowed due to mismatched fee",
                    extra={**context, "fee_id": original.id},
                )
                raise _partial_refund_error(mismatch)
            line_items.append(_refund_line_payload(refund_fee, original))

        shipping_as_line_item = False
        shipping_item: Dict[str, Any] = {}
        if _cents(latest_refund.shipping_total) + _cents(latest_refund.shipping_tax):
            shipping_name = order.get_meta(META_SHIPPING_LINE_ITEM_NAME) or ""
            shipping_as_line_item = bool(order.get_meta(META_SHIPPING_AS_LINE_ITEM))

            if _cents(latest_refund.shipping_total) != _cents(order.shipping_total):
                raise _partial_refund_error(
                    f"To refund this shipping item ({shipping_name}), the amount before tax to refund "
                    f"(currently ${format_minor_units(_cents(latest_refund.shipping_total))}) must be the shipping item "
                    f"total amount before tax (${format_minor_units(_cents(order.shipping_total))})"
                )
            if _cents(latest_refund.shipping_tax) != _cents(order.shipping_tax):
                raise _partial_refund_error(
                    f"To refund this shipping item ({shipping_name}), the shipping tax to refund "
                    f"(currently ${format_minor_units(_cents(latest_refund.shipping_tax))}) must be the shipping item "
                    f"total tax (${format_minor_units(_cents(order.shipping_tax))})"
                )
            if not (shipping_as_line_item and shipping_name):
                self.logger.error("Refund error - shipping was not sent to Clover as a line item", extra=context)
                raise RefundRejectedError(
                    "Shipping was not sent to Clover as a line item for this order and cannot be refunded. "
                    + REFUND_NOT_PROCESSED
                )
            shipping_item = {
                "refunded_shipping_amount": to_minor_units(latest_refund.shipping_total)
                + to_minor_units(latest_refund.shipping_tax),
                "refunded_shipping_name": shipping_name,
            }

        payload: Dict[str, Any] = {
            "clover_order_uuid": order.get_meta(META_ORDER_UUID),
            "shipping_as_line_item": shipping_as_line_item,
            "tax_included": bool(order.get_meta(META_TAX_INCLUDED)),
            "merged_qty": bool(order.get_meta(META_MERGED_QTY)),
            "woocommerce_order_id": order.id,
            "wpdb_prefix": self.config.db_table_prefix,
            "amount": amount_cents,
            "reason": reason,
            "line_items": line_items,
        }
        if shipping_item:
            payload["shipping_item"] = shipping_item
        return payload

    def refund_charge(self, order: Order, charge_id: str, amount: int) -> RefundResult:
        """
        Refund one charge of an order in full, as requested from the admin charge list.

        Charges belonging to a custom tender go through the tender ledger so the
        tender's refund hook runs; card charges are refunded directly.

        Raises:
            RefundRejectedError: Missing input, unknown or already refunded charge, wrong amount
            TenderRefundError: Custom tender refund failed
            RemoteRequestError: Clover rejected the card refund
        """
        context = {"order_id": order.id, "charge_id": charge_id}
        if not charge_id or isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise RefundRejectedError("Missing order ID, charge ID, or refund amount.")

        reason = f"Refund for charge {charge_id}"
        tenders = self._tenders(order)
        tender = next((entry for entry in tenders.list_tenders() if entry.charge_id == charge_id), None)

        if tender is not None:
            if amount != tender.amount:
                raise RefundRejectedError("Custom tenders can only be refunded in full.")
            try:
                refund = tenders.refund_tender(tender.id)
            except DomainException:
                record_refund("tender", False)
                raise
            self._record_refund(order, amount, reason)
            self.store.save(order)
            record_refund("tender", True)
            return refund

        charges = CreditCardChargeLedger(order, self.store, logger=self.logger)
        charge = charges.get_charge(charge_id)
        if charge is None:
            raise RefundRejectedError("Credit card charge with the provided Clover Charge ID not found.")
        if charge.status == CHARGE_REFUNDED:
            raise RefundRejectedError("This charge has already been refunded.")
        if amount > charge.amount:
            raise RefundRejectedError("Refund amount cannot exceed the charged amount.")

        self.logger.info("Initiating card charge refund", extra={**context, "amount": format_minor_units(amount)})
        try:
            refund = self.gateway.refund_charge(charge_id, ADMIN_REFUND_REASON, "", amount)
        except DomainException:
            record_refund("card", False)
            raise

        try:
            charges.mark_refunded(charge_id)
        except ChargeNotFoundError as e:
            self.logger.error(f"Could not mark charge as refunded: {e}", extra=context)
            raise

        self._record_refund(order, amount, reason)
        order.add_note(notes.charge_refund_note(refund, order.currency, reason))
        self.store.save(order)
        record_refund("card", True)
        self.logger.info("Card charge refunded", extra={**context, "refund_id": refund.id})
        return refund

    @staticmethod
    def _record_refund(order: Order, amount: int, reason: str) -> None:
        order.refunds.append(OrderRefund(amount=format_minor_units(amount), reason=reason, status="refunded"))
