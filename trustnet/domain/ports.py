"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from collections.abc import Collection, Sequence
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

from .models import Transaction, User


class InsertResult(Enum):
    """
    Result of inserting a new open transaction.

    Used by insert_open() to distinguish the two unique constraints.
    """

    CREATED = "created"
    ACTIVE_EXISTS = "active_exists"
    DUPLICATE_ID = "duplicate_id"


class NotificationEvent(str, Enum):
    """Events pushed to users after a committed state change."""

    POTENTIAL_MATCH = "potential_match"
    MATCH_REQUEST_RECEIVED = "match_request_received"
    MATCH_CONFIRMED = "match_confirmed"
    MATCH_REJECTED = "match_rejected"
    PROOF_UPLOADED = "proof_uploaded"
    MESSAGE_SENT = "message_sent"
    TRANSACTION_COMPLETED = "transaction_completed"
    TRANSACTION_CANCELLED = "transaction_cancelled"


class TransactionRepository(Protocol):
    """Port interface for transaction persistence."""

    def insert_open(self, transaction: Transaction) -> InsertResult:
        """
        Atomically store a new open transaction.

        The store must refuse the insert when the initiator already has an
        active (open, pending_match, matched, proof_uploaded) transaction,
        even when two inserts for the same user race.

        Args:
            transaction: New record with status open and version 0

        Returns:
            CREATED, ACTIVE_EXISTS or DUPLICATE_ID (transaction id collision)
        """
        ...

    def get(self, transaction_id: str) -> Transaction | None:
        """Fetch the current committed record, or None."""
        ...

    def find_active_for_user(self, user_id: str) -> list[Transaction]:
        """Active transactions where the user is initiator or recipient, oldest first."""
        ...

    def find_open_offers(
        self, initiator_ids: Collection[str], currency: str, target_currency: str
    ) -> list[Transaction]:
        """
        Open transactions owned by any of initiator_ids for one currency pair.

        Args:
            initiator_ids: Candidate owners
            currency: Required initiator currency of the offer
            target_currency: Required recipient currency of the offer

        Returns:
            Matching offers ordered by creation time, then id
        """
        ...

    def find_pending_requests(self, partner_transaction_id: str) -> list[Transaction]:
        """pending_match transactions whose request targets partner_transaction_id, oldest first."""
        ...

    def commit(self, changes: Sequence[Transaction]) -> bool:
        """
        Write changed records all-or-nothing under optimistic concurrency.

        Every record carries the version it was read at. The write happens
        only if each stored version still equals that version; records are
        then stored with version + 1. Otherwise nothing is written. Passing
        an unmodified record bumps its version, which makes concurrent
        writers that read it conflict.

        Args:
            changes: New record states to store

        Returns:
            True if written, False on any version mismatch (conflict)
        """
        ...


class UserDirectory(Protocol):
    """Port interface for the identity subsystem and referral graph."""

    def get_user(self, user_id: str) -> User | None:
        ...

    def list_referrals(self, user_id: str) -> list[User]:
        """Users whose referred_by is user_id, excluding user_id itself."""
        ...

    def increment_trust(self, user_id: str, delta: int) -> bool:
        """
        Atomically add delta to trust_score and 1 to completed_transactions.

        Returns:
            True if the user existed and was updated
        """
        ...


class Notifier(Protocol):
    """Port interface for fire-and-forget user notifications."""

    def notify(self, user_id: str, event: NotificationEvent, payload: dict[str, Any]) -> None:
        ...


class CurrencyCatalog(Protocol):
    """Port interface for the supported currency set and rate table."""

    def supported_currencies(self) -> frozenset[str]:
        ...

    def rate(self, source: str, target: str) -> Decimal:
        """Configured rate source -> target, or the catalog's default rate."""
        ...
