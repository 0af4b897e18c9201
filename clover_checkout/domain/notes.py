"""Order note rendering for the merchant-facing audit trail (simple HTML)"""

import json
from typing import Any, Dict, Iterable, Optional

from clover_checkout.domain.models import CardDetails, ChargeResult, CustomTender, RefundResult
from clover_checkout.domain.money import format_minor_units
from clover_checkout.utils.formatting import escape
from clover_checkout.utils.urls import RECEIPT_CHARGE, RECEIPT_ORDER, receipt_url


def _link(url: str, text: str) -> str:
    return f'<a href="{escape(url)}">{escape(text)}</a>'


# Bot protection


def honeypot_note(field_value: str) -> str:
    return (
        "The hidden honeypot field was filled out. Likely a bot. Cancelling order. Field Value: "
        + escape(field_value)
    )


def recaptcha_token_error_note(message: str) -> str:
    return (
        "<b>Google reCAPTCHA API.js (front-end/customer-facing) has encountered an error.</b> "
        "Google reCAPTCHA checks will be disabled for this transaction. Here is the error message: "
        + escape(message)
    )


def recaptcha_score_note(score: float, minimum_score: float, is_bot: bool) -> str:
    if is_bot:
        verdict = (
            "According to your plugin settings for Google reCAPTCHA, the customer who paid for the order is "
            "<b>NOT</b> likely a human being. The order will be cancelled. If you are sure that this order was "
            "legitimate, please decrease the minimum human score threshold in the gateway settings."
        )
    else:
        verdict = (
            "According to your plugin settings for Google reCAPTCHA, the customer who paid for the order is "
            "likely a human being."
        )
    return (
        f"<b>Google reCAPTCHA: </b>{verdict}<br>"
        f"<b>Google reCAPTCHA score: </b>{escape(score)}<br>"
        f"<b>Minimum human score setting: </b>{escape(minimum_score)}"
    )


def recaptcha_missing_score_note(response: Dict[str, Any]) -> str:
    return "The request to Google was successful but is missing the score. Full response: " + json.dumps(response)


def recaptcha_error_note(response: Dict[str, Any]) -> str:
    if "exception" in response:
        return (
            "The request to Google reCAPTCHA triggered an exception. See exception message: "
            + escape(response["exception"])
        )
    if "error-codes" in response:
        return "The response from Google reCAPTCHA contains errors. See error codes: " + json.dumps(
            response["error-codes"]
        )
    return "The response from Google reCAPTCHA contains unexpected errors. Full response: " + json.dumps(response)


# Clover order and card charges


def clover_order_created_note(order_uuid: str) -> str:
    return (
        "<b>Clover order created.</b><br><b>Order ID: </b> "
        + _link(receipt_url(order_uuid, RECEIPT_ORDER), order_uuid)
    )


def card_payment_success_note(payment_id: str) -> str:
    return (
        "<b>Clover payment successful!</b><br><b>Payment ID: </b> "
        + _link(receipt_url(payment_id, RECEIPT_CHARGE), payment_id)
    )


def card_payment_failed_note(result: ChargeResult, card: Optional[CardDetails]) -> str:
    note = "<b>Clover payment failed.</b><br>"
    if result.payment_id:
        note += f"<b>Payment ID: </b>{escape(result.payment_id)}<br>"

    error = result.error
    if error is not None:
        if error.charge:
            note += "<b>Charge ID: </b>" + _link(receipt_url(error.charge, RECEIPT_CHARGE), error.charge) + "<br>"
        if error.code:
            note += f"<b>Error code: </b>{escape(error.code)}<br>"
        if error.decline_code:
            note += f"<b>Decline code: </b>{escape(error.decline_code)}<br>"
        if error.message:
            note += f"<b>Clover error message: </b>{escape(error.message)}<br>"

    if card is not None:
        if card.card_brand:
            note += f"<b>Card Type: </b>{escape(card.card_brand)}<br>"
        if card.card_last4:
            note += f"<b>Last 4: </b>{escape(card.card_last4)}<br>"
    return note


# Custom tenders


def tender_success_note(charge_id: str, tender: CustomTender) -> str:
    note = "<b>Clover custom tender payment successful!</b><br>"
    note += "<b>Payment ID: </b>" + _link(receipt_url(charge_id, RECEIPT_CHARGE), charge_id) + "<br>"
    if tender.provider:
        note += f"<b>Custom Tender: </b>{escape(tender.provider)} (ID: {escape(tender.id)})"
    return note


def tender_already_paid_note(message: str) -> str:
    return (
        "<b>Clover error message: </b><br>"
        f"{escape(message)}<br>"
        "Please check the order in the Clover dashboard for the full payment information."
    )


def tender_failed_note(result: ChargeResult, tender: CustomTender) -> str:
    error = result.error
    if error is not None and error.charge:
        note = "<b>Clover custom tender payment failed.</b><br>"
        note += f"<b>Payment ID: </b>{escape(error.charge)}<br>"
        if tender.provider:
            note += f"<b>Custom Tender: </b>{escape(tender.provider)}<br>"
        if error.message:
            note += f"<b>Clover error message: </b>{escape(error.message)}<br>"
        return note

    if result.message or (error is not None and error.message):
        note = "<b>Clover custom tender payment failed.</b><br>"
        if result.message:
            note += f"<b>Clover response message: </b>{escape(result.message)}<br>"
        if error is not None and error.code:
            note += f"<b>Clover error code: </b>{escape(error.code)}<br>"
        if error is not None and error.message:
            note += f"<b>Clover error message: </b>{escape(error.message)}<br>"
        return note

    return (
        "<b>Clover custom tender payment failed - Unhandled context, see response payload: </b>"
        + json.dumps(result.raw)
    )


# Post-tokenization verification


def missing_charge_postal_code_note() -> str:
    return "Warning: An error has occurred: We could not detect the postal code used for the transaction."


def shipping_billing_postal_mismatch_note(shipping_postal_code: str, billing_postal_code: str) -> str:
    return (
        f'Info: Please note that the shipping ZIP/Postal code "{escape(shipping_postal_code)}" and the billing '
        f'ZIP/Postal code "{escape(billing_postal_code)}" are different.'
    )


def billing_card_postal_mismatch_note(billing_postal_code: str, card_postal_code: str) -> str:
    return (
        f'Warning: Please note that the billing ZIP/Postal code "{escape(billing_postal_code)}" and the payment '
        f'card ZIP/Postal code "{escape(card_postal_code)}" are different. These should be the same.'
    )


# Refunds


def charge_refund_note(
    refund: RefundResult,
    currency: str,
    reason: Optional[str] = None,
    tender: Optional[CustomTender] = None,
    charge_label: str = "Refunded charge ID: ",
) -> str:
    note = f"<b>Refunded: </b>{format_minor_units(refund.amount)} {escape(currency)}<br>"
    note += f"<b>Refund ID: </b>{escape(refund.id)}<br>"
    if tender is not None:
        note += f"<b>Custom Tender: </b>{escape(tender.provider)} (ID: {escape(tender.id)})<br>"
    note += f"<b>{charge_label}</b>{escape(refund.charge)}<br>"
    if reason:
        note += f"<b>Reason: </b>{escape(reason)}"
    return note


def item_return_note(
    return_id: str,
    amount_returned: int,
    currency: str,
    returned_items: Iterable[Dict[str, Any]],
    reason: Optional[str] = None,
) -> str:
    note = f"<b>Refunded: </b>{format_minor_units(amount_returned)} {escape(currency)}<br>"
    note += f"<b>Refund ID: </b>{escape(return_id)}<br>"
    if reason:
        note += f"<b>Reason: </b>{escape(reason)}<br>"
    for item in returned_items:
        if not all(key in item for key in ("parent", "description", "amount")):
            continue
        note += (
            f"<b>Returned clover item ID: </b>{escape(item['parent'])}"
            f"({format_minor_units(int(item['amount']))} {escape(currency)}) - {escape(item['description'])}<br>"
        )
    return note
