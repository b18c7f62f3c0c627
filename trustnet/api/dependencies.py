"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

import logging
import secrets

from fastapi import Depends, Header, HTTPException, Request, status

from trustnet.adapters.notify.console import ConsoleNotifier
from trustnet.config.settings import Settings, get_settings
from trustnet.domain.ports import CurrencyCatalog, TransactionRepository, UserDirectory
from trustnet.domain.service import ExchangeService

logger = logging.getLogger(__name__)

# Module-level singleton - ConsoleNotifier is stateless
_notifier = ConsoleNotifier()


def get_repository(request: Request) -> TransactionRepository:
    """
    Get transaction repository from app state.

    The repository is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.transactions


def get_user_directory(request: Request) -> UserDirectory:
    return request.app.state.users


def get_currency_catalog(request: Request) -> CurrencyCatalog:
    return request.app.state.currencies


def get_notifier() -> ConsoleNotifier:
    """Get console notifier (singleton)."""
    return _notifier


def get_exchange_service(request: Request) -> ExchangeService:
    """
    Create exchange service with injected dependencies.

    Wires together the stores, notifier and currency snapshot.
    """
    settings = get_settings()
    return ExchangeService(
        repository=get_repository(request),
        users=get_user_directory(request),
        notifier=get_notifier(),
        currencies=get_currency_catalog(request),
        trust_score_increment=settings.trust_score_increment,
        max_conflict_retries=settings.max_conflict_retries,
    )


def get_acting_user(x_user_id: str = Header(..., description="Acting user id")) -> str:
    """
    Extract the acting user id set by the calling chat layer.

    Returns:
        Stripped user id; 401 if blank
    """
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing acting user",
        )
    return user_id


def require_operator(
    x_operator_token: str | None = Header(None, description="Operator access token"),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Guard operator-only routes with the configured operator token.

    Raises:
        HTTPException: 401 when the header is missing, 403 when it does not
            match or no operator token is configured
    """
    if not x_operator_token or not x_operator_token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing operator token",
        )
    expected = settings.operator_token
    if not expected or not secrets.compare_digest(
        x_operator_token.encode(), expected.encode()
    ):
        logger.warning("Rejected operator call with an invalid token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid operator token",
        )
