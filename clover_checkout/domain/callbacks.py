"""Custom tender hooks resolved from a registry by a stable string key"""

import logging
from abc import ABC, abstractmethod
from typing import Dict

from clover_checkout.domain.exceptions import TenderValidationError
from clover_checkout.domain.models import CustomTender


class CustomTenderCallback(ABC):
    """Hooks a merchant integration runs after its tender is charged or refunded"""

    @abstractmethod
    def on_charge_created(self, tender: CustomTender) -> None:
        ...

    @abstractmethod
    def on_charge_refunded(self, tender: CustomTender) -> None:
        ...


class TenderCallbackRegistry:
    """
    Maps the callback key stored on each tender to its handler.

    Handlers are validated once, when they are registered. Tenders only persist the
    key, so a handler can be replaced between requests without migrating order data.
    """

    def __init__(self):
        self._handlers: Dict[str, CustomTenderCallback] = {}

    def register(self, key: str, handler: CustomTenderCallback) -> None:
        if not key or not key.strip():
            raise TenderValidationError("Callback key must be a non-empty string.")
        if not isinstance(handler, CustomTenderCallback):
            raise TenderValidationError(
                f"The callback handler registered under {key} must implement CustomTenderCallback."
            )
        self._handlers[key] = handler

    def resolve(self, key: str) -> CustomTenderCallback:
        try:
            return self._handlers[key]
        except KeyError:
            raise TenderValidationError(f"No callback handler is registered under {key!r}.") from None

    def __contains__(self, key: object) -> bool:
        return key in self._handlers


class LoggingTenderCallback(CustomTenderCallback):
    """Default hook: records the tender payload in the log"""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def on_charge_created(self, tender: CustomTender) -> None:
        self.logger.info("Charge creation callback called", extra={"tender": tender.to_dict()})

    def on_charge_refunded(self, tender: CustomTender) -> None:
        self.logger.info("Charge refund callback called", extra={"tender": tender.to_dict()})


def build_default_registry() -> TenderCallbackRegistry:
    registry = TenderCallbackRegistry()
    registry.register("logger", LoggingTenderCallback())
    return registry
