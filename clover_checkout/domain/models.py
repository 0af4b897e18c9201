"""Domain models - pure Python dataclasses representing payment records"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

# Custom tender statuses
TENDER_PENDING = "pending"
TENDER_SUCCESS = "success"
TENDER_FAILED = "failed"
TENDER_REFUNDED = "refunded"

TENDER_TRANSITIONS = {
    (TENDER_PENDING, TENDER_SUCCESS),
    (TENDER_PENDING, TENDER_FAILED),
    (TENDER_SUCCESS, TENDER_REFUNDED),
}

# Credit card charge statuses
CHARGE_SUCCESS = "success"
CHARGE_REFUNDED = "refunded"

# Remote payment statuses reported by Clover
PAYMENT_PAID = "paid"
PAYMENT_CREATED = "created"
PAYMENT_FAILED = "failed"

REFUND_REASONS = ("requested_by_customer", "duplicate", "fraudulent")


@dataclass
class CustomTender:
    """Partial payment instrument (gift card, loyalty card) applied to an order"""

    id: str
    amount: int  # minor units
    provider: str  # tender label in the Clover merchant account
    status: str = TENDER_PENDING
    charge_id: str = ""
    callback: str = ""  # key in the TenderCallbackRegistry

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomTender":
        return cls(
            id=str(data["id"]),
            amount=int(data.get("amount", 0)),
            provider=data.get("provider", ""),
            status=data.get("status", TENDER_PENDING),
            charge_id=data.get("charge_id", "") or "",
            callback=data.get("callback", "") or "",
        )


@dataclass
class CreditCardCharge:
    """Successful card charge recorded against an order, keyed by Clover charge id"""

    charge_id: str
    amount: int
    currency: str
    card_type: str
    card_last4: str
    card_exp_month: str
    card_exp_year: str
    card_postal_code: str
    status: str = CHARGE_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def public_view(self) -> Dict[str, Any]:
        """Projection exposed to the admin charge listing"""
        return {
            "charge_id": self.charge_id,
            "amount": self.amount,
            "currency": self.currency,
            "card_type": self.card_type,
            "card_postal_code": self.card_postal_code,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CreditCardCharge":
        return cls(
            charge_id=data.get("charge_id", ""),
            amount=int(data.get("amount", 0)),
            currency=data.get("currency", ""),
            card_type=data.get("card_type", ""),
            card_last4=data.get("card_last4", ""),
            card_exp_month=data.get("card_exp_month", "") or "",
            card_exp_year=data.get("card_exp_year", "") or "",
            card_postal_code=data.get("card_postal_code", ""),
            status=data.get("status", CHARGE_SUCCESS),
        )


@dataclass
class ChargeError:
    """Decline or processing error attached to a Clover charge response"""

    code: str = ""
    message: str = ""
    decline_code: str = ""
    charge: str = ""


@dataclass
class ChargeResult:
    """Outcome of a card or custom tender charge on a Clover order"""

    status: str
    payment_id: str = ""
    currency: str = ""
    order_uuid: str = ""
    order_amount_due: Optional[int] = None
    error: Optional[ChargeError] = None
    message: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    """Outcome of a Clover refund; drives notes and ledger transitions, never persisted"""

    id: str
    amount: int
    charge: str
    status: str
    object: str = ""
    items: List[Dict[str, Any]] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "RefundResult":
        return cls(
            id=str(data.get("id") or ""),
            amount=int(data.get("amount") or 0),
            charge=str(data.get("charge") or ""),
            status=str(data.get("status") or ""),
            object=str(data.get("object") or ""),
            items=list(data.get("items") or []),
            raw=dict(data),
        )


@dataclass
class CardDetails:
    """Tokenized card details submitted with the checkout form"""

    token: str = ""
    card_brand: str = ""
    card_last4: str = ""
    card_exp_month: str = ""
    card_exp_year: str = ""
    tokenized_zip: str = ""


@dataclass
class PaymentResult:
    """Response handed back to the storefront after a payment attempt"""

    result: str  # "success" | "fail"
    redirect: str = ""
    notices: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.result == "success"
