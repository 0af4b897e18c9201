"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


# Validation errors: bad input to a ledger operation


class TenderValidationError(DomainException):
    """Custom tender input is malformed (empty label, non-positive amount, unknown callback)"""

    pass


class DuplicateTenderError(TenderValidationError):
    """A custom tender with the same id already exists on the order"""

    pass


class TenderNotFoundError(TenderValidationError):
    """No custom tender with the given id exists on the order"""

    pass


class InvalidTenderTransitionError(TenderValidationError):
    """Requested tender status change is not an allowed transition"""

    pass


class ChargeValidationError(DomainException):
    """Credit card charge input is malformed"""

    pass


class DuplicateChargeError(ChargeValidationError):
    """A charge with the same Clover charge id is already recorded"""

    pass


class ChargeNotFoundError(ChargeValidationError):
    """No recorded charge matches the given Clover charge id"""

    pass


# Business-rule violations: shown to the merchant or shopper as-is


class BusinessRuleError(DomainException):
    """Base class for rule violations whose message is safe to show to users"""

    pass


class SettledTenderError(BusinessRuleError):
    """Tender already processed a transaction and must go through the refund path"""

    pass


class RefundRejectedError(BusinessRuleError):
    """Refund request cannot be sent to Clover as submitted"""

    pass


class TenderRefundError(BusinessRuleError):
    """Refunding a custom tender failed validation or the remote call"""

    pass


# Remote communication errors


class RemoteRequestError(DomainException):
    """WeeConnectPay API returned a non-success envelope or could not be reached"""

    def __init__(self, message: str, code: str | None = None, payload: dict | None = None):
        super().__init__(message)
        self.code = code
        self.payload = payload or {}


class InvalidResponseError(DomainException):
    """WeeConnectPay API response is not valid JSON or is missing its envelope"""

    pass


class CustomerCreationError(RemoteRequestError):
    """Clover customer could not be created for the order"""

    pass


class RecaptchaVerificationError(DomainException):
    """Google reCAPTCHA verification request failed"""

    pass


# Persistence


class OrderNotFoundError(DomainException):
    """Order does not exist in the store"""

    pass


class ConcurrentOrderUpdateError(DomainException):
    """Order was modified by another request since it was loaded"""

    pass
