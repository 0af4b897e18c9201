"""Google reCAPTCHA v3 verification client"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from clover_checkout.config import settings
from clover_checkout.domain.exceptions import RecaptchaVerificationError
from clover_checkout.infrastructure.observability.metrics import recaptcha_failures_counter


def token_error_message(token: str) -> Optional[str]:
    """
    Return the front-end error carried in place of a token, if any.

    When api.js fails in the browser the checkout form submits {"exception": "..."}
    instead of a token.
    """
    try:
        decoded = json.loads(token)
    except (TypeError, ValueError):
        return None
    if isinstance(decoded, dict) and "exception" in decoded:
        return str(decoded["exception"])
    return None


class RecaptchaClient:
    """Client for the siteverify endpoint"""

    def __init__(
        self,
        secret_key: str | None = None,
        verify_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self.secret_key = secret_key or settings.recaptcha_secret_key
        self.verify_url = verify_url or settings.recaptcha_verify_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport
        self.logger = logger or logging.getLogger(__name__)

    def verify_token(self, token: str, remote_ip: str = "") -> Dict[str, Any]:
        """
        Verify a token and return Google's decoded response.

        Raises:
            RecaptchaVerificationError: On timeout, transport failure or a non-JSON body
        """
        form = {"secret": self.secret_key, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = client.post(self.verify_url, data=form)
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as e:
                recaptcha_failures_counter.inc()
                raise RecaptchaVerificationError(f"reCAPTCHA verification timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                recaptcha_failures_counter.inc()
                raise RecaptchaVerificationError(f"reCAPTCHA verification error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                recaptcha_failures_counter.inc()
                raise RecaptchaVerificationError(f"reCAPTCHA verification request failed: {e}") from e
            except ValueError as e:
                recaptcha_failures_counter.inc()
                raise RecaptchaVerificationError("Invalid JSON from reCAPTCHA verification") from e

        if not isinstance(data, dict):
            recaptcha_failures_counter.inc()
            raise RecaptchaVerificationError("Unexpected reCAPTCHA verification response")
        self.logger.debug("reCAPTCHA verification response", extra={"recaptcha_response": data})
        return data
