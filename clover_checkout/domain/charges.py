"""Credit card charge ledger: successful card charges keyed by Clover charge id"""

import logging
from typing import Dict, List, Optional

from clover_checkout.domain.exceptions import ChargeNotFoundError, ChargeValidationError, DuplicateChargeError
from clover_checkout.domain.models import CHARGE_REFUNDED, CHARGE_SUCCESS, CreditCardCharge
from clover_checkout.domain.order import META_CHARGES, Order
from clover_checkout.domain.ports import OrderStore


class CreditCardChargeLedger:
    """Append-only record of card charges; entries only ever move from success to refunded"""

    def __init__(self, order: Order, store: OrderStore, logger: logging.Logger | None = None):
        self.order = order
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    def _load(self) -> Dict[str, CreditCardCharge]:
        raw = self.order.get_meta(META_CHARGES)
        if not isinstance(raw, dict):
            return {}
        return {charge_id: CreditCardCharge.from_dict(entry) for charge_id, entry in raw.items()}

    def _persist(self, charges: Dict[str, CreditCardCharge]) -> None:
        self.order.update_meta(META_CHARGES, {charge_id: charge.to_dict() for charge_id, charge in charges.items()})
        self.store.save(self.order)

    def save_charge(
        self,
        amount: int,
        currency: str,
        card_type: str,
        card_last4: str,
        card_exp_month: Optional[str],
        card_exp_year: Optional[str],
        card_postal_code: str,
        charge_id: str,
    ) -> CreditCardCharge:
        """
        Record a successful card charge.

        Expiry month and year are optional: wallet payments do not always report them.

        Raises:
            ChargeValidationError: A required field is blank or the amount is not positive
            DuplicateChargeError: The charge id is already recorded on this order
        """
        required = {
            "Card type": card_type,
            "Currency": currency,
            "Last 4 digits": card_last4,
            "Postal code": card_postal_code,
            "Clover Charge ID": charge_id,
        }
        for label, value in required.items():
            if not value or not str(value).strip():
                raise ChargeValidationError(f"{label} must be a non-empty string.")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ChargeValidationError("Amount must be a positive integer in cents.")

        charges = self._load()
        if charge_id in charges:
            raise DuplicateChargeError(f"A charge with ID {charge_id} already exists.")

        charge = CreditCardCharge(
            charge_id=charge_id.strip(),
            amount=amount,
            currency=currency.strip(),
            card_type=card_type.strip(),
            card_last4=card_last4.strip(),
            card_exp_month=(card_exp_month or "").strip(),
            card_exp_year=(card_exp_year or "").strip(),
            card_postal_code=card_postal_code.strip(),
            status=CHARGE_SUCCESS,
        )
        charges[charge_id] = charge
        self._persist(charges)
        self.logger.info(
            "Saved credit card charge",
            extra={"order_id": self.order.id, "charge_id": charge_id, "amount": amount, "currency": charge.currency},
        )
        return charge

    def get_charge(self, charge_id: str) -> Optional[CreditCardCharge]:
        if not charge_id or not charge_id.strip():
            raise ChargeValidationError("Clover Charge ID must be a non-empty string.")
        return self._load().get(charge_id)

    def mark_refunded(self, charge_id: str) -> CreditCardCharge:
        charges = self._load()
        if not charges:
            raise ChargeNotFoundError("No credit card charges found for this order.")
        if charge_id not in charges:
            raise ChargeNotFoundError("Credit card charge with the provided Clover Charge ID not found.")

        charges[charge_id].status = CHARGE_REFUNDED
        self._persist(charges)
        self.logger.info("Marked credit card charge as refunded", extra={"order_id": self.order.id, "charge_id": charge_id})
        return charges[charge_id]

    def list_charges(self) -> List[dict]:
        return [charge.public_view() for charge in self._load().values()]

    def all_charges(self) -> List[CreditCardCharge]:
        return list(self._load().values())
