"""
Checkout payment processing.

One call handles one checkout attempt: bot checks, Clover customer and order,
custom tender settlement, then a card charge for whatever is still due. Every
remote call is issued sequentially and never retried; resubmitting the same order
is safe because the Clover order id and the charge ids are cached on the order.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from clover_checkout.config import Settings, settings as default_settings
from clover_checkout.domain import notes
from clover_checkout.domain.callbacks import TenderCallbackRegistry
from clover_checkout.domain.charges import CreditCardChargeLedger
from clover_checkout.domain.exceptions import (
    BusinessRuleError,
    ConcurrentOrderUpdateError,
    CustomerCreationError,
    DomainException,
    InvalidResponseError,
    RecaptchaVerificationError,
    RemoteRequestError,
)
from clover_checkout.domain.models import (
    PAYMENT_CREATED,
    PAYMENT_FAILED,
    PAYMENT_PAID,
    TENDER_PENDING,
    TENDER_SUCCESS,
    CardDetails,
    ChargeResult,
    CustomTender,
    PaymentResult,
)
from clover_checkout.domain.money import format_minor_units, to_minor_units
from clover_checkout.domain.order import (
    META_CARD_BRAND,
    META_MERGED_QTY,
    META_ORDER_UUID,
    META_PAYMENT_UUID,
    META_SHIPPING_AS_LINE_ITEM,
    META_SHIPPING_LINE_ITEM_NAME,
    META_TAX_INCLUDED,
    Order,
)
from clover_checkout.domain.ports import OrderStore, PaymentGateway
from clover_checkout.domain.tenders import PHASE_CREATION, CustomTenderLedger
from clover_checkout.infrastructure.clients.recaptcha import RecaptchaClient, token_error_message
from clover_checkout.infrastructure.observability.metrics import record_payment, record_tender_settlement
from clover_checkout.utils.formatting import format_postal_code, line_description
from clover_checkout.utils.urls import order_received_url, view_order_url

HONEYPOT_FIELD = "hp-feedback-required"
RECAPTCHA_FIELD = "recaptcha-token"

PAYMENT_FAILED_NOTICE = "Payment failed. Please try again."
PROCESSING_FAILED_NOTICE = "Payment processing failed. Please try again."
UNEXPECTED_STATUS_NOTICE = "Payment processing failed due to an unexpected error."
UNEXPECTED_ERROR_NOTICE = "An unexpected error occurred during payment processing. Please try again."

CUSTOMER_NOTE = (
    "Customer created by WeeConnectPay WooCommerce integration using the information provided by the "
    "customer during checkout."
)

# Errors whose message is safe to show the shopper as-is
USER_FACING_ERRORS = (CustomerCreationError, InvalidResponseError, RemoteRequestError, BusinessRuleError)


def _field(form_input: Mapping[str, Any], name: str) -> str:
    value = form_input.get(name)
    return str(value).strip() if value else ""


def extract_card_details(form_input: Mapping[str, Any]) -> CardDetails:
    return CardDetails(
        token=_field(form_input, "token"),
        card_brand=_field(form_input, "card-brand"),
        card_last4=_field(form_input, "card-last4"),
        card_exp_month=_field(form_input, "card-exp-month"),
        card_exp_year=_field(form_input, "card-exp-year"),
        tokenized_zip=format_postal_code(_field(form_input, "tokenized-zip")),
    )


def build_customer_payload(order: Order) -> Dict[str, Any]:
    """Clover customer profile built only from what the shopper entered at checkout"""
    billing = order.billing
    customer: Dict[str, Any] = {}

    if billing.first_name:
        customer["firstName"] = billing.first_name
    if billing.last_name:
        customer["lastName"] = billing.last_name

    # Shoppers opt in to merchant marketing on their own
    customer["marketingAllowed"] = False

    if billing.address_1 and billing.state and billing.country and billing.city and billing.postcode:
        customer["addresses"] = [
            {
                "address1": billing.address_1,
                "address2": billing.address_2,
                "city": billing.city,
                "country": billing.country,
                "phoneNumber": billing.phone,
                "state": billing.state,
                "zip": billing.postcode,
            }
        ]

    customer["emailAddresses"] = [{"emailAddress": billing.email, "primaryEmail": True}]

    if billing.phone:
        customer["phoneNumbers"] = [{"phoneNumber": billing.phone}]

    customer["metadata"] = {"note": CUSTOMER_NOTE}
    if billing.company:
        customer["metadata"]["businessName"] = billing.company

    return customer


def build_order_draft(order: Order) -> Dict[str, Any]:
    """
    Clover order mirroring the store order.

    Each line is sent tax-included with its quantity merged into the description
    ("Mug x 2"); shipping is sent as its own line. Refunds rely on the same layout.
    """
    line_items = []
    for line in [*order.items, *order.fees]:
        line_items.append(
            {
                "line_item_id": line.id,
                "description": line_description(line.name, line.quantity),
                "amount": to_minor_units(line.total) + to_minor_units(line.total_tax),
                "tax": to_minor_units(line.total_tax),
            }
        )

    draft: Dict[str, Any] = {
        "woocommerce_order_id": order.id,
        "currency": order.currency,
        "total": to_minor_units(order.total),
        "line_items": line_items,
    }

    shipping_amount = to_minor_units(order.shipping_total) + to_minor_units(order.shipping_tax)
    if shipping_amount > 0:
        draft["shipping_item"] = {
            "name": order.shipping_method or "Shipping",
            "amount": shipping_amount,
        }
    return draft


@dataclass
class _TenderSettlement:
    """Outcome of settling the pending tenders; result is set when processing ends there"""

    result: Optional[PaymentResult] = None
    amount_due: Optional[int] = None
    notices: List[str] = field(default_factory=list)


class OrderPaymentProcessor:
    """Runs one checkout attempt for an order against Clover"""

    def __init__(
        self,
        gateway: PaymentGateway,
        store: OrderStore,
        registry: TenderCallbackRegistry,
        recaptcha: Optional[RecaptchaClient] = None,
        config: Settings | None = None,
        logger: logging.Logger | None = None,
    ):
        self.gateway = gateway
        self.store = store
        self.registry = registry
        self.config = config or default_settings
        self.recaptcha = recaptcha or RecaptchaClient(
            secret_key=self.config.recaptcha_secret_key, verify_url=self.config.recaptcha_verify_url
        )
        self.logger = logger or logging.getLogger(__name__)

    def _tenders(self, order: Order) -> CustomTenderLedger:
        return CustomTenderLedger(order, self.store, self.registry, gateway=self.gateway, logger=self.logger)

    def _charges(self, order: Order) -> CreditCardChargeLedger:
        return CreditCardChargeLedger(order, self.store, logger=self.logger)

    def _success(self, order: Order, notices: list | None = None) -> PaymentResult:
        return PaymentResult(result="success", redirect=order_received_url(order), notices=notices or [])

    def _view_order(self, order: Order, notices: list | None = None) -> PaymentResult:
        return PaymentResult(result="success", redirect=view_order_url(order), notices=notices or [])

    def _failure(self, notices: list | None = None) -> PaymentResult:
        self.logger.debug("Payment processing halted before a payment was made")
        return PaymentResult(result="fail", redirect="", notices=notices or [])

    def process_order_payment(self, order: Order, form_input: Mapping[str, Any]) -> PaymentResult:
        """
        Process a checkout submission for an order.

        A "success" result does not always mean the order was paid: a declined card
        or an order cancelled as a bot redirects the shopper to the order page so the
        payment form is not shown again. "fail" keeps the shopper on the checkout form.

        Raises:
            ConcurrentOrderUpdateError: The order was changed by another request meanwhile
        """
        context = {"order_id": order.id}
        self.logger.debug("Starting payment processing", extra=context)
        try:
            result = self._process(order, form_input)
        except ConcurrentOrderUpdateError:
            raise
        except USER_FACING_ERRORS as e:
            self.logger.error(f"Payment processing error shown to customer: {e}", extra=context)
            result = self._failure([str(e)])
        except DomainException as e:
            self.logger.error(f"An unhandled exception happened with the payment processor: {e}", extra=context)
            result = self._failure([PROCESSING_FAILED_NOTICE])
        except Exception as e:
            self.logger.exception(f"Unexpected exception during payment processing: {e}", extra=context)
            result = self._failure([UNEXPECTED_ERROR_NOTICE])

        self.store.save(order)
        record_payment(self._outcome(order, result))
        return result

    @staticmethod
    def _outcome(order: Order, result: PaymentResult) -> str:
        if not result.succeeded:
            return "failed"
        if order.status == "cancelled":
            return "cancelled"
        if order.status == "failed":
            return "declined"
        return "paid"

    def _process(self, order: Order, form_input: Mapping[str, Any]) -> PaymentResult:
        context = {"order_id": order.id, "currency": order.currency}
        tenders = self._tenders(order)

        pending_tender_total = tenders.pending_total()
        is_zero_total = to_minor_units(order.total) <= 0
        has_custom_tenders = pending_tender_total > 0
        self.logger.debug(
            "Initial payment state",
            extra={
                **context,
                "is_zero_total": is_zero_total,
                "has_custom_tenders": has_custom_tenders,
                "pending_custom_tenders_total": format_minor_units(pending_tender_total),
            },
        )

        # Hook re-entry for free orders: nothing to charge
        if is_zero_total and not has_custom_tenders:
            self.logger.info("Skipping payment processing for zero-total order with no custom tenders", extra=context)
            return self._success(order)

        if is_zero_total:
            self.logger.info(
                "Processing zero-total order with pending custom tenders",
                extra={**context, "pending_custom_tenders_total": format_minor_units(pending_tender_total)},
            )

        # 1. Honeypot, checked even for zero-total orders
        if self.config.honeypot_enabled:
            if _field(form_input, HONEYPOT_FIELD):
                self.logger.warning("Honeypot triggered. Order cancelled.", extra=context)
                order.add_note(notes.honeypot_note(_field(form_input, HONEYPOT_FIELD)))
                order.update_status("cancelled")
                return self._failure()
            self.logger.debug("Honeypot check passed", extra=context)

        # 2. reCAPTCHA, only when there is an actual card payment
        if not is_zero_total and self._recaptcha_ready():
            self.logger.info("Verifying reCAPTCHA", extra=context)
            recaptcha_result = self._check_recaptcha(order, form_input)
            if recaptcha_result is not None:
                return recaptcha_result

        # 3. Card details, only needed when there is a balance to charge
        card: Optional[CardDetails] = None
        if not is_zero_total:
            card = extract_card_details(form_input)
            if not card.token:
                self.logger.error("Missing card token", extra=context)
                return self._failure()

        # 4. Clover customer, also required for tenders
        self.logger.info("Creating/retrieving Clover customer", extra=context)
        customer_id = self._create_customer(order)
        if not customer_id:
            return self._failure()

        # 5. Clover order, reused across resubmissions
        self.logger.info("Creating/retrieving Clover order", extra=context)
        clover_order_uuid = self._prepare_clover_order(order, customer_id)

        # 6. Custom tenders
        tender_notices: List[str] = []
        if has_custom_tenders:
            self.logger.info(
                "Processing custom tenders",
                extra={**context, "pending_custom_tenders_total": format_minor_units(pending_tender_total)},
            )
            settlement = self._settle_custom_tenders(order, clover_order_uuid)
            if settlement.result is not None:
                return settlement.result
            tender_notices = settlement.notices
            amount_due = (
                settlement.amount_due if settlement.amount_due is not None else to_minor_units(order.total)
            )
            self.logger.info(
                "Remaining amount due after custom tenders",
                extra={**context, "amount_due": format_minor_units(amount_due)},
            )
        else:
            amount_due = to_minor_units(order.total)

        # 7. Card charge for the remaining balance
        if amount_due > 0:
            if card is None:
                self.logger.error(
                    "Missing card details for remaining balance",
                    extra={**context, "amount_due": format_minor_units(amount_due)},
                )
                return self._failure(tender_notices)
            result = self._charge_card(order, clover_order_uuid, card, amount_due)
            result.notices = tender_notices + result.notices
            return result

        self.logger.info("Successfully completed payment processing", extra=context)
        return self._success(order, tender_notices)

    def _recaptcha_ready(self) -> bool:
        config = self.config
        return bool(
            config.recaptcha_enabled
            and config.recaptcha_site_key
            and config.recaptcha_secret_key
            and config.recaptcha_min_human_score is not None
        )

    def _check_recaptcha(self, order: Order, form_input: Mapping[str, Any]) -> Optional[PaymentResult]:
        """Return None to keep processing, or the result that ends this attempt"""
        context = {"order_id": order.id}
        token = _field(form_input, RECAPTCHA_FIELD)
        if not token:
            self.logger.error("Missing reCAPTCHA token", extra=context)
            return self._failure()

        front_end_error = token_error_message(token)
        if front_end_error is not None:
            # Fail open: the shopper's browser could not reach Google
            order.add_note(notes.recaptcha_token_error_note(front_end_error))
            return None

        try:
            response = self.recaptcha.verify_token(token, order.customer_ip)
        except RecaptchaVerificationError as e:
            response = {"exception": str(e)}

        if response.get("success") is True:
            if "score" in response:
                score = float(response["score"])
                minimum_score = self.config.recaptcha_min_human_score
                is_bot = score < minimum_score
                order.add_note(notes.recaptcha_score_note(score, minimum_score, is_bot))
                if is_bot:
                    self.logger.warning("Potential bot detected by reCAPTCHA", extra={**context, "score": score})
                    order.update_status("cancelled")
                    return self._view_order(order)
            else:
                order.add_note(notes.recaptcha_missing_score_note(response))
            return None

        self.logger.error("reCAPTCHA verification failed", extra={**context, "recaptcha_response": response})
        order.add_note(notes.recaptcha_error_note(response))
        return self._failure()

    def _create_customer(self, order: Order) -> Optional[str]:
        try:
            customer_id = self.gateway.create_customer(build_customer_payload(order))
        except (CustomerCreationError, RemoteRequestError) as e:
            self.logger.error(f"Failed to create customer: {e}", extra={"order_id": order.id})
            order.add_note("Customer creation failed.")
            return None

        self.logger.info(
            "Successfully created/retrieved Clover customer", extra={"order_id": order.id, "customer_id": customer_id}
        )
        return customer_id

    def _prepare_clover_order(self, order: Order, customer_id: str) -> str:
        if order.has_meta(META_ORDER_UUID):
            existing_uuid = order.get_meta(META_ORDER_UUID)
            self.logger.info(
                "Retrieved existing Clover order", extra={"order_id": order.id, "clover_order_uuid": existing_uuid}
            )
            return existing_uuid

        draft = build_order_draft(order)
        clover_order_uuid = self.gateway.prepare_order(draft, customer_id)
        self.logger.info(
            "Successfully created Clover order", extra={"order_id": order.id, "clover_order_uuid": clover_order_uuid}
        )

        order.update_meta(META_ORDER_UUID, clover_order_uuid)
        order.update_meta(META_TAX_INCLUDED, True)
        order.update_meta(META_MERGED_QTY, True)
        shipping_item = draft.get("shipping_item")
        order.update_meta(META_SHIPPING_AS_LINE_ITEM, shipping_item is not None)
        if shipping_item is not None:
            order.update_meta(META_SHIPPING_LINE_ITEM_NAME, shipping_item["name"])
        order.add_note(notes.clover_order_created_note(clover_order_uuid))
        self.store.save(order)
        return clover_order_uuid

    def _settle_custom_tenders(self, order: Order, clover_order_uuid: str) -> _TenderSettlement:
        """Charge pending tenders in list order; one declined tender does not stop the others"""
        tenders = self._tenders(order)
        any_tender_succeeded = False
        amount_due: Optional[int] = None
        shopper_notices: List[str] = []

        for tender in tenders.list_tenders(status=TENDER_PENDING):
            context = {"order_id": order.id, "tender_id": tender.id, "provider": tender.provider}
            try:
                self.logger.info(
                    "Processing custom tender charge",
                    extra={**context, "amount": format_minor_units(tender.amount), "clover_order_uuid": clover_order_uuid},
                )
                result = self.gateway.charge_custom_tender(
                    clover_order_uuid, tender.provider, tender.amount, order.customer_ip
                )
                amount_due = result.order_amount_due

                if result.status in (PAYMENT_PAID, PAYMENT_CREATED):
                    tenders.mark_paid(tender.id, result.payment_id)
                    order.add_note(notes.tender_success_note(result.payment_id, tender))
                    record_tender_settlement("success")
                    tenders.execute_callback(tender.id, PHASE_CREATION)
                    any_tender_succeeded = True
                elif result.status == PAYMENT_FAILED:
                    tenders.mark_failed(tender.id)
                    record_tender_settlement("failed")
                    if self._handle_tender_failure(order, tenders, tender, result):
                        shopper_notices.append(PAYMENT_FAILED_NOTICE)
                else:
                    self.logger.error(
                        f"Invalid clover_payment_status ({result.status}) for custom tender charge", extra=context
                    )
                    tenders.mark_failed(tender.id)
                    record_tender_settlement("error")
                    return _TenderSettlement(result=self._failure([UNEXPECTED_STATUS_NOTICE]), amount_due=amount_due)
            except ConcurrentOrderUpdateError:
                raise
            except Exception as e:
                self.logger.error(f"Exception during custom tender processing: {e}", extra=context)
                if tenders.get_tender(tender.id).status == TENDER_PENDING:
                    tenders.mark_failed(tender.id)
                record_tender_settlement("error")
                return _TenderSettlement(result=self._failure([PROCESSING_FAILED_NOTICE]))

        if any_tender_succeeded and (self._tenders_cover_total(order, tenders) or to_minor_units(order.total) <= 0):
            self._add_post_tokenization_notes(order)
            order.payment_complete()
            self.store.save(order)
            return _TenderSettlement(result=self._success(order, shopper_notices))

        return _TenderSettlement(amount_due=amount_due, notices=shopper_notices)

    def _handle_tender_failure(
        self, order: Order, tenders: CustomTenderLedger, tender: CustomTender, result: ChargeResult
    ) -> bool:
        """Record a declined tender; returns whether the shopper should be told"""
        if result.error is not None and result.error.code == "order_already_paid":
            order.add_note(notes.tender_already_paid_note(result.error.message))
            order.payment_complete()
            return False

        self.logger.error(
            "Custom tender charge failed",
            extra={"order_id": order.id, "tender_id": tender.id, "charge_response": result.raw},
        )
        order.add_note(notes.tender_failed_note(result, tender))
        order.update_status("failed")
        tenders.execute_callback(tender.id, PHASE_CREATION)
        return True

    def _tenders_cover_total(self, order: Order, tenders: CustomTenderLedger) -> bool:
        """
        Whether settled tenders cover the original order total.

        The store deducts tenders from the order total as they are attached, so the
        original total is the current total plus every tender amount.
        """
        all_tenders = tenders.list_tenders()
        current_total = to_minor_units(order.total)
        reconstructed_total = current_total + sum(tender.amount for tender in all_tenders)
        successful_total = sum(tender.amount for tender in all_tenders if tender.status == TENDER_SUCCESS)
        covered = successful_total >= reconstructed_total
        self.logger.debug(
            "Checked custom tender coverage",
            extra={
                "order_id": order.id,
                "current_total": current_total,
                "reconstructed_total": reconstructed_total,
                "successful_tender_total": successful_total,
                "covered": covered,
            },
        )
        return covered

    def _charge_card(self, order: Order, clover_order_uuid: str, card: CardDetails, amount_due: int) -> PaymentResult:
        context = {"order_id": order.id, "clover_order_uuid": clover_order_uuid}
        self.logger.info(
            "Initiating card charge", extra={**context, "amount": format_minor_units(amount_due), "currency": order.currency}
        )
        try:
            result = self.gateway.charge_card(clover_order_uuid, card.token, order.customer_ip, amount_due)
        except RemoteRequestError as e:
            self.logger.error(f"Card charge creation failed: {e}", extra=context)
            return self._failure()

        if result.status:
            order.update_meta(META_CARD_BRAND, card.card_brand)

        if result.status == PAYMENT_PAID:
            return self._handle_card_paid(order, result, card, amount_due)
        if result.status == PAYMENT_FAILED:
            error = result.error
            self.logger.error(
                "Payment declined",
                extra={
                    **context,
                    "error_code": error.code if error else "",
                    "error_message": error.message if error else "",
                    "decline_code": error.decline_code if error else "",
                },
            )
            order.add_note(notes.card_payment_failed_note(result, card))
            order.update_status("failed")
            return self._view_order(order)

        self.logger.error("Malformed charge response", extra={**context, "charge_response": result.raw})
        return self._failure()

    def _handle_card_paid(self, order: Order, result: ChargeResult, card: CardDetails, amount_due: int) -> PaymentResult:
        self.logger.info(
            "Successfully created card charge",
            extra={
                "order_id": order.id,
                "charge_id": result.payment_id,
                "amount": format_minor_units(amount_due),
                "clover_order_uuid": result.order_uuid or "N/A",
            },
        )
        order.update_meta(META_PAYMENT_UUID, result.payment_id)
        order.add_note(notes.card_payment_success_note(result.payment_id))

        try:
            self._charges(order).save_charge(
                amount_due,
                result.currency or order.currency,
                card.card_brand,
                card.card_last4,
                card.card_exp_month,
                card.card_exp_year,
                card.tokenized_zip,
                result.payment_id,
            )
        except ConcurrentOrderUpdateError:
            raise
        except DomainException as e:
            self.logger.error(
                f"Error saving charge metadata: {e}", extra={"order_id": order.id, "charge_id": result.payment_id}
            )

        order.payment_complete()
        self._add_post_tokenization_notes(order)
        return self._success(order)

    def _add_post_tokenization_notes(self, order: Order) -> None:
        """Cross-check the card postal code against the billing and shipping addresses"""
        if not self.config.post_tokenization_verification:
            return

        charges = self._charges(order).all_charges()
        charge_postal_code = charges[0].card_postal_code if charges else ""
        if not charge_postal_code:
            order.add_note(notes.missing_charge_postal_code_note())
            return

        shipping_postal_code = format_postal_code(order.shipping.postcode)
        billing_postal_code = format_postal_code(order.billing.postcode)
        card_postal_code = format_postal_code(charge_postal_code)

        if shipping_postal_code and shipping_postal_code != billing_postal_code:
            order.add_note(notes.shipping_billing_postal_mismatch_note(shipping_postal_code, billing_postal_code))
        if billing_postal_code != card_postal_code:
            order.add_note(notes.billing_card_postal_mismatch_note(billing_postal_code, card_postal_code))
