"""Dependency injection for FastAPI endpoints"""

from functools import lru_cache
from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from clover_checkout.config import settings
from clover_checkout.domain.callbacks import TenderCallbackRegistry, build_default_registry
from clover_checkout.infrastructure.clients.clover import CloverClient
from clover_checkout.infrastructure.clients.recaptcha import RecaptchaClient
from clover_checkout.infrastructure.database.repositories import NonceRepository, OrderRepository
from clover_checkout.infrastructure.database.session import get_db
from clover_checkout.infrastructure.observability.log_store import LogStore


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_clover_client() -> Generator[CloverClient, None, None]:
    """Provide a WeeConnectPay API client, closed after the request"""
    with CloverClient() as client:
        yield client


def get_recaptcha_client() -> RecaptchaClient:
    return RecaptchaClient()


@lru_cache
def get_callback_registry() -> TenderCallbackRegistry:
    """Process-wide tender callback registry; merchant integrations register their hooks on it at startup"""
    return build_default_registry()


def get_order_repository(db: Session = Depends(get_db)) -> OrderRepository:
    return OrderRepository(db)


def get_nonce_repository(db: Session = Depends(get_db)) -> NonceRepository:
    return NonceRepository(db)


def get_log_store() -> LogStore:
    return LogStore(settings.log_file)
