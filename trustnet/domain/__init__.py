"""
Domain layer - Pure business logic with zero framework imports.

This package contains the matching and two-phase confirmation state machine
of the peer-to-peer exchange. It defines its own port interfaces for
infrastructure abstraction, ensuring true hexagonal architecture decoupling.
"""

from .exceptions import ExchangeError, OperationFailed
from .models import (
    Message,
    Party,
    Proof,
    Relationship,
    Report,
    ReportReason,
    ReportStatus,
    Timestamps,
    Transaction,
    TransactionStatus,
    User,
)
from .ports import (
    CurrencyCatalog,
    InsertResult,
    NotificationEvent,
    Notifier,
    TransactionRepository,
    UserDirectory,
)
from .results import Outcome, Result
from .service import ExchangeService

__all__ = [
    "CurrencyCatalog",
    "ExchangeError",
    "ExchangeService",
    "InsertResult",
    "Message",
    "NotificationEvent",
    "Notifier",
    "OperationFailed",
    "Outcome",
    "Party",
    "Proof",
    "Relationship",
    "Report",
    "ReportReason",
    "ReportStatus",
    "Result",
    "Timestamps",
    "Transaction",
    "TransactionRepository",
    "TransactionStatus",
    "User",
    "UserDirectory",
]
