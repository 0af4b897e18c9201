"""WeeConnectPay API client for Clover customers, orders, charges and refunds"""

import logging
from typing import Any, Dict, Optional

import httpx

from clover_checkout.config import settings
from clover_checkout.domain.exceptions import (
    CustomerCreationError,
    InvalidResponseError,
    RefundRejectedError,
    RemoteRequestError,
)
from clover_checkout.domain.models import REFUND_REASONS, ChargeError, ChargeResult, RefundResult
from clover_checkout.infrastructure.observability.metrics import (
    clover_request_failures_counter,
    clover_request_latency_histogram,
)

MAX_EXTERNAL_REFERENCE_LENGTH = 12

# Shown to the shopper; transport detail stays in the logs
SERVICE_UNREACHABLE_MESSAGE = "The payment service could not be reached. Please try again."


class CloverClient:
    """
    Client for the WeeConnectPay HTTP JSON API.

    Every response is an envelope {"result": "success" | ..., "data" | "error": {...}}.
    Amounts are integers in minor units. Requests are never retried: a failure is
    terminal for the current checkout or refund attempt.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self.base_url = base_url or settings.weeconnectpay_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.integration_version = settings.integration_version
        self.logger = logger or logging.getLogger(__name__)

        headers = {"Accept": "application/json"}
        token = api_token if api_token is not None else settings.weeconnectpay_api_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(base_url=self.base_url, timeout=self.timeout, headers=headers, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CloverClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _post(
        self,
        operation: str,
        path: str,
        form: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        POST to the API and return the decoded envelope.

        Flat bodies are form-encoded, nested ones are sent as JSON. Both carry the
        integration version.

        Raises:
            RemoteRequestError: On timeout or transport failure
            InvalidResponseError: Body is not JSON or has no envelope
        """
        try:
            with clover_request_latency_histogram.labels(operation=operation).time():
                if json_body is not None:
                    response = self._client.post(
                        path, json={**json_body, "integration_version": self.integration_version}
                    )
                else:
                    response = self._client.post(
                        path, data={**(form or {}), "integration_version": self.integration_version}
                    )
        except httpx.TimeoutException as e:
            clover_request_failures_counter.labels(operation=operation).inc()
            self.logger.error(
                f"WeeConnectPay API timeout after {self.timeout}s on {operation}: {e}", extra={"operation": operation}
            )
            raise RemoteRequestError(SERVICE_UNREACHABLE_MESSAGE) from e
        except httpx.RequestError as e:
            clover_request_failures_counter.labels(operation=operation).inc()
            self.logger.error(f"WeeConnectPay API request failed on {operation}: {e}", extra={"operation": operation})
            raise RemoteRequestError(SERVICE_UNREACHABLE_MESSAGE) from e

        try:
            envelope = response.json()
        except ValueError as e:
            clover_request_failures_counter.labels(operation=operation).inc()
            self.logger.error(
                f"Invalid JSON from WeeConnectPay API on {operation}",
                extra={"operation": operation, "status_code": response.status_code, "body": response.text},
            )
            raise InvalidResponseError("The payment service returned an invalid response. Please try again.") from e

        if not isinstance(envelope, dict) or "result" not in envelope:
            clover_request_failures_counter.labels(operation=operation).inc()
            self.logger.error(
                f"WeeConnectPay API response on {operation} has no envelope",
                extra={"operation": operation, "status_code": response.status_code, "body": response.text},
            )
            raise InvalidResponseError("The payment service returned an invalid response. Please try again.")

        self.logger.debug(
            f"WeeConnectPay API {operation} responded",
            extra={"operation": operation, "status_code": response.status_code, "result": envelope.get("result")},
        )
        return envelope

    def _data_or_raise(self, operation: str, envelope: Dict[str, Any]) -> Dict[str, Any]:
        if envelope.get("result") != "success":
            clover_request_failures_counter.labels(operation=operation).inc()
            error = envelope.get("error") if isinstance(envelope.get("error"), dict) else {}
            message = error.get("message") or f"WeeConnectPay API {operation} request was not successful."
            raise RemoteRequestError(message, code=error.get("code"), payload=envelope)
        data = envelope.get("data")
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _charge_result(envelope: Dict[str, Any]) -> Optional[ChargeResult]:
        data = envelope.get("data") if isinstance(envelope.get("data"), dict) else {}
        status = data.get("clover_payment_status")
        if not status:
            return None

        raw_error = data.get("error") if isinstance(data.get("error"), dict) else envelope.get("error")
        error = None
        if isinstance(raw_error, dict):
            error = ChargeError(
                code=str(raw_error.get("code") or ""),
                message=str(raw_error.get("message") or ""),
                decline_code=str(raw_error.get("declineCode") or ""),
                charge=str(raw_error.get("charge") or ""),
            )

        amount_due = data.get("clover_order_amount_due")
        return ChargeResult(
            status=str(status),
            payment_id=str(data.get("clover_payment_id") or ""),
            currency=str(data.get("clover_charge_currency") or ""),
            order_uuid=str(data.get("clover_order_uuid") or ""),
            order_amount_due=int(amount_due) if amount_due is not None else None,
            error=error,
            message=str(envelope.get("message") or ""),
            raw=envelope,
        )

    def create_customer(self, profile: Dict[str, Any]) -> str:
        """
        Create (or retrieve) the Clover customer for a checkout.

        Raises:
            CustomerCreationError: Envelope is not a success or carries no customer id
        """
        envelope = self._post("create_customer", "/v1/clover/customers", json_body=profile)
        data = envelope.get("data") if isinstance(envelope.get("data"), dict) else {}
        if envelope.get("result") != "success" or not data.get("id"):
            clover_request_failures_counter.labels(operation="create_customer").inc()
            raise CustomerCreationError("Customer creation failed.", payload=envelope)
        return str(data["id"])

    def prepare_order(self, order_draft: Dict[str, Any], customer_id: str) -> str:
        """Create the Clover order mirroring the store order and return its uuid"""
        envelope = self._post(
            "prepare_order", "/v1/clover/orders", json_body={"customer_id": customer_id, "order": order_draft}
        )
        data = self._data_or_raise("prepare_order", envelope)
        if not data.get("uuid"):
            raise RemoteRequestError("Clover order creation did not return an order id.", payload=envelope)
        return str(data["uuid"])

    def charge_card(self, remote_order_id: str, token: str, client_ip: str, amount: int) -> ChargeResult:
        """
        Charge a tokenized card against a Clover order.

        The amount is always sent: without it Clover charges the whole remote order
        total, which is wrong once custom tenders have paid part of it.
        """
        envelope = self._post(
            "charge_card",
            f"/v1/clover/orders/{remote_order_id}/charge",
            form={"tokenized_card": token, "ip_address": client_ip, "amount": amount},
        )
        result = self._charge_result(envelope)
        if result is not None:
            return result
        self._data_or_raise("charge_card", envelope)
        return ChargeResult(status="", raw=envelope)

    def charge_custom_tender(self, remote_order_id: str, label: str, amount: int, client_ip: str) -> ChargeResult:
        envelope = self._post(
            "charge_custom_tender",
            f"/v1/clover/orders/{remote_order_id}/custom-tender/charge",
            form={"tender_label": label, "amount": amount, "ip_address": client_ip},
        )
        result = self._charge_result(envelope)
        if result is not None:
            return result
        self._data_or_raise("charge_custom_tender", envelope)
        return ChargeResult(status="", raw=envelope)

    def refund_charge(self, charge_id: str, reason: str, external_ref: str, amount: int) -> RefundResult:
        """
        Refund a single Clover charge.

        Raises:
            RefundRejectedError: Reason not allowed or external reference too long
            RemoteRequestError: Envelope is not a success
        """
        if reason not in REFUND_REASONS:
            raise RefundRejectedError("Invalid reason provided. Allowed values: " + ", ".join(REFUND_REASONS))
        if external_ref and len(external_ref) > MAX_EXTERNAL_REFERENCE_LENGTH:
            raise RefundRejectedError(
                f"External Reference ID must not exceed {MAX_EXTERNAL_REFERENCE_LENGTH} characters."
            )

        envelope = self._post(
            "refund_charge",
            f"/v1/clover/charges/{charge_id}/refund",
            form={"reason": reason, "external_reference": external_ref or "", "amount": amount},
        )
        return RefundResult.from_payload(self._data_or_raise("refund_charge", envelope))

    def refund_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Submit an itemized refund of a Clover order; returns the refund or return payload"""
        envelope = self._post(
            "refund_order", f"/v1/clover/orders/{payload['clover_order_uuid']}/refund", json_body=payload
        )
        return self._data_or_raise("refund_order", envelope)
