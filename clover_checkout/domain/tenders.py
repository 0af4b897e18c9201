"""Custom tender ledger: per-order partial payments and their status machine"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from clover_checkout.domain.callbacks import TenderCallbackRegistry
from clover_checkout.domain.exceptions import (
    DomainException,
    DuplicateTenderError,
    InvalidTenderTransitionError,
    SettledTenderError,
    TenderNotFoundError,
    TenderRefundError,
    TenderValidationError,
)
from clover_checkout.domain.models import (
    TENDER_FAILED,
    TENDER_PENDING,
    TENDER_REFUNDED,
    TENDER_SUCCESS,
    TENDER_TRANSITIONS,
    CustomTender,
    RefundResult,
)
from clover_checkout.domain.money import format_minor_units
from clover_checkout.domain.notes import charge_refund_note
from clover_checkout.domain.order import META_CUSTOM_TENDERS, Order
from clover_checkout.domain.ports import OrderStore, PaymentGateway

PHASE_CREATION = "creation"
PHASE_REFUND = "refund"

TENDER_REFUND_REASON = "requested_by_customer"


def _check_label(label: Any) -> None:
    if not isinstance(label, str) or not label.strip():
        raise TenderValidationError("Custom tender label must be a non-empty string.")


def _check_amount(amount: Any) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise TenderValidationError("Amount must be a positive integer in cents.")


class CustomTenderLedger:
    """
    Read/modify/persist operations over the tenders attached to one order.

    The collection lives under a single metadata key and is rewritten as a whole
    on every change, then saved through the order store.
    """

    def __init__(
        self,
        order: Order,
        store: OrderStore,
        registry: TenderCallbackRegistry,
        gateway: Optional[PaymentGateway] = None,
        logger: logging.Logger | None = None,
    ):
        self.order = order
        self.store = store
        self.registry = registry
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)

    def _load(self) -> List[CustomTender]:
        raw = self.order.get_meta(META_CUSTOM_TENDERS, [])
        if not isinstance(raw, list):
            return []
        return [CustomTender.from_dict(entry) for entry in raw if isinstance(entry, dict) and "id" in entry]

    def _persist(self, tenders: List[CustomTender]) -> None:
        self.order.update_meta(META_CUSTOM_TENDERS, [tender.to_dict() for tender in tenders])
        self.store.save(self.order)

    def _context(self, tender_id: str, **extra: Any) -> Dict[str, Any]:
        return {"order_id": self.order.id, "tender_id": tender_id, **extra}

    def add_tender(
        self,
        label: str,
        amount: int,
        callback: str,
        tender_id: Optional[str] = None,
    ) -> CustomTender:
        """
        Attach a pending tender to the order.

        Raises:
            TenderValidationError: Empty label, non-positive amount or unknown callback key
            DuplicateTenderError: An explicit id is already used on this order
        """
        _check_label(label)
        _check_amount(amount)
        if callback not in self.registry:
            raise TenderValidationError(f"The callback {callback} is not registered.")

        tenders = self._load()
        if tender_id:
            if any(tender.id == tender_id for tender in tenders):
                self.logger.warning(
                    "Custom tender with this ID already exists", extra=self._context(tender_id)
                )
                raise DuplicateTenderError(f"Custom tender with this ID ({tender_id}) already exists.")
            new_id = tender_id
        else:
            new_id = str(uuid.uuid4())

        tender = CustomTender(
            id=new_id,
            amount=amount,
            provider=label.strip(),
            status=TENDER_PENDING,
            charge_id="",
            callback=callback,
        )
        tenders.append(tender)
        self._persist(tenders)

        self.logger.debug(
            "Added new pending custom tender",
            extra=self._context(new_id, provider=tender.provider, amount=format_minor_units(amount), callback=callback),
        )
        return tender

    def get_tender(self, tender_id: str) -> Optional[CustomTender]:
        if not tender_id:
            raise TenderValidationError("Tender ID must be a non-empty string.")
        return next((tender for tender in self._load() if tender.id == tender_id), None)

    def list_tenders(self, status: Optional[str] = None, label: Optional[str] = None) -> List[CustomTender]:
        tenders = self._load()
        if label is not None:
            tenders = [tender for tender in tenders if tender.provider == label]
        if status is not None:
            tenders = [tender for tender in tenders if tender.status == status]
        return tenders

    def pending_total(self, label: Optional[str] = None) -> int:
        return sum(tender.amount for tender in self.list_tenders(TENDER_PENDING, label))

    def update_tender(self, tender_id: str, fields: Dict[str, Any]) -> CustomTender:
        """
        Merge fields into a tender and persist.

        Raises:
            TenderNotFoundError: No tender has this id
            InvalidTenderTransitionError: The status change is not allowed
            TenderValidationError: Unknown field, non-positive amount, empty label or unknown callback key
        """
        if not tender_id:
            raise TenderValidationError("Tender ID must be a non-empty string.")
        if not fields:
            raise TenderValidationError("Data for updating tender cannot be empty.")

        tenders = self._load()
        tender = next((entry for entry in tenders if entry.id == tender_id), None)
        if tender is None:
            raise TenderNotFoundError("Custom tender with the provided ID not found.")

        old_status = tender.status
        new_status = fields.get("status", old_status)
        if new_status != old_status and (old_status, new_status) not in TENDER_TRANSITIONS:
            raise InvalidTenderTransitionError(
                f"Custom tender {tender_id} cannot move from {old_status} to {new_status}."
            )
        if "amount" in fields:
            _check_amount(fields["amount"])
        if "provider" in fields:
            _check_label(fields["provider"])
        if "callback" in fields and fields["callback"] not in self.registry:
            raise TenderValidationError(f"The callback {fields['callback']} is not registered.")

        for key, value in fields.items():
            if key == "id" or not hasattr(tender, key):
                raise TenderValidationError(f"Unknown custom tender field: {key}")
            setattr(tender, key, value)
        self._persist(tenders)

        if new_status != old_status:
            self.logger.debug(
                "Updated custom tender status",
                extra=self._context(tender_id, old_status=old_status, new_status=new_status),
            )
        other_changes = {key: value for key, value in fields.items() if key != "status"}
        if other_changes:
            self.logger.debug(
                "Updated custom tender data", extra=self._context(tender_id, updated_fields=other_changes)
            )
        return tender

    def mark_paid(self, tender_id: str, charge_id: str) -> CustomTender:
        if not charge_id or not charge_id.strip():
            raise TenderValidationError("Clover Charge ID must be a non-empty string.")
        tender = self.update_tender(tender_id, {"status": TENDER_SUCCESS, "charge_id": charge_id.strip()})
        self.logger.info(
            "Custom tender payment successful",
            extra=self._context(
                tender_id, provider=tender.provider, amount=format_minor_units(tender.amount), charge_id=charge_id
            ),
        )
        return tender

    def mark_failed(self, tender_id: str) -> CustomTender:
        tender = self.update_tender(tender_id, {"status": TENDER_FAILED})
        self.logger.error(
            "Custom tender payment failed",
            extra=self._context(tender_id, provider=tender.provider, amount=format_minor_units(tender.amount)),
        )
        return tender

    def delete_tender(self, tender_id: str) -> None:
        """
        Remove a tender that never settled.

        Raises:
            TenderNotFoundError: No tender has this id
            SettledTenderError: The tender was charged or refunded
        """
        tenders = self._load()
        tender = next((entry for entry in tenders if entry.id == tender_id), None)
        if tender is None:
            raise TenderNotFoundError("Custom tender with the provided ID not found.")
        if tender.status == TENDER_REFUNDED:
            raise SettledTenderError("Can't delete a tender that has already been refunded.")
        if tender.status == TENDER_SUCCESS:
            raise SettledTenderError(
                "Can't delete a tender that has already processed a transaction, use the refund tender function."
            )

        self._persist([entry for entry in tenders if entry.id != tender_id])
        self.logger.debug(
            "Deleted pending custom tender",
            extra=self._context(tender_id, provider=tender.provider, amount=format_minor_units(tender.amount)),
        )

    def execute_callback(self, tender_id: str, phase: str) -> None:
        """Run the tender's hook for a phase; hook failures are logged and never raised"""
        tender = None
        try:
            tender = self.get_tender(tender_id)
            if tender is None:
                self.logger.error(
                    "Failed to execute callback - custom tender not found", extra=self._context(tender_id, phase=phase)
                )
                return

            handler = self.registry.resolve(tender.callback)
            context = self._context(tender_id, phase=phase, provider=tender.provider, callback=tender.callback)
            self.logger.info("Initiating custom tender callback", extra=context)
            if phase == PHASE_CREATION:
                handler.on_charge_created(tender)
            elif phase == PHASE_REFUND:
                handler.on_charge_refunded(tender)
            else:
                raise TenderValidationError(f"Invalid callback type: {phase}")
            self.logger.info("Successfully executed custom tender callback", extra=context)
        except Exception as e:
            self.logger.error(
                f"Error executing custom tender callback: {e}",
                extra=self._context(
                    tender_id, phase=phase, provider=tender.provider if tender is not None else "unknown"
                ),
            )

    def refund_tender(self, tender_id: str) -> RefundResult:
        """
        Refund a settled tender in full through Clover.

        Raises:
            TenderNotFoundError: No tender has this id
            TenderRefundError: Tender not refundable, remote call failed or the refund was not confirmed
        """
        tender = self.get_tender(tender_id)
        if tender is None:
            raise TenderNotFoundError(f"Custom tender with ID {tender_id} not found.")
        if tender.status != TENDER_SUCCESS:
            raise TenderRefundError(f"Custom tender is not in a refundable state (current status: {tender.status}).")
        if not tender.charge_id:
            raise TenderRefundError("Custom tender does not have an associated charge ID.")
        if self.gateway is None:
            raise TenderRefundError("No payment gateway configured for custom tender refunds.")

        self.logger.info(
            "Initiating refund for custom tender",
            extra=self._context(
                tender_id, provider=tender.provider, amount=format_minor_units(tender.amount), charge_id=tender.charge_id
            ),
        )

        try:
            refund = self.gateway.refund_charge(tender.charge_id, TENDER_REFUND_REASON, "", tender.amount)
            self._validate_refund(refund, tender)
        except DomainException as e:
            self.logger.error(
                f"Failed to refund custom tender: {e}", extra=self._context(tender_id, provider=tender.provider)
            )
            raise TenderRefundError(f"Refunding custom tender failed: {e}") from e

        self.logger.info(
            "Successfully refunded custom tender",
            extra=self._context(tender_id, provider=tender.provider, refund_id=refund.id),
        )
        self.order.add_note(charge_refund_note(refund, self.order.currency, tender=tender))
        self.update_tender(tender_id, {"status": TENDER_REFUNDED})
        self.execute_callback(tender_id, PHASE_REFUND)
        return refund

    @staticmethod
    def _validate_refund(refund: RefundResult, tender: CustomTender) -> None:
        if refund.object != "refund":
            raise TenderRefundError(f"Refund validation failed: 'object' must be 'refund'. Response: {refund.raw}")
        if refund.amount != tender.amount:
            raise TenderRefundError(
                f"Refund validation failed: Refund amount does not match tender amount. Response: {refund.raw}"
            )
        if refund.status != "succeeded":
            raise TenderRefundError(f"Refund validation failed: 'status' must be 'succeeded'. Response: {refund.raw}")
        if not refund.id:
            raise TenderRefundError(f"Refund validation failed: 'id' is missing in the response. Response: {refund.raw}")
