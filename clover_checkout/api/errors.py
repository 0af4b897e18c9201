"""Translate domain exceptions into HTTP errors"""

import logging

from fastapi import HTTPException

from clover_checkout.domain.exceptions import (
    BusinessRuleError,
    ChargeNotFoundError,
    ChargeValidationError,
    ConcurrentOrderUpdateError,
    DomainException,
    DuplicateChargeError,
    DuplicateTenderError,
    InvalidResponseError,
    OrderNotFoundError,
    RecaptchaVerificationError,
    RemoteRequestError,
    SettledTenderError,
    TenderNotFoundError,
    TenderValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first
_STATUS_CODES = (
    (OrderNotFoundError, 404),
    (TenderNotFoundError, 404),
    (ChargeNotFoundError, 404),
    (DuplicateTenderError, 409),
    (DuplicateChargeError, 409),
    (SettledTenderError, 409),
    (ConcurrentOrderUpdateError, 409),
    (TenderValidationError, 422),
    (ChargeValidationError, 422),
    (BusinessRuleError, 422),
)


def to_http_exception(exc: DomainException, request_id: str = "unknown") -> HTTPException:
    """
    Map a domain exception to an HTTPException.

    Validation and business-rule messages are returned as-is; remote failures get a
    generic message and the detail stays in the logs.
    """
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            logger.warning(f"{exc_type.__name__}: {exc}", extra={"request_id": request_id})
            return HTTPException(status_code=status_code, detail=str(exc))

    if isinstance(exc, (RemoteRequestError, InvalidResponseError, RecaptchaVerificationError)):
        logger.error(f"Remote service error: {exc}", extra={"request_id": request_id})
        return HTTPException(status_code=502, detail="Payment service unavailable")

    logger.error(f"Unexpected domain error: {exc}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")
