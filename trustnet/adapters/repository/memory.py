"""
In-memory repository adapters - Implement TransactionRepository and UserDirectory.

Used for local development (STORAGE_BACKEND=memory) and unit tests. A
single lock guards each store, so insert_open() and commit() are atomic
compare-and-swap operations exactly like their PostgreSQL counterparts.
State lives only as long as the process.
"""

import dataclasses
import logging
import threading
from collections.abc import Collection, Sequence

from trustnet.domain.models import ACTIVE_STATUSES, Transaction, TransactionStatus, User
from trustnet.domain.ports import InsertResult

logger = logging.getLogger(__name__)


def _order(transaction: Transaction) -> tuple:
    return (transaction.timestamps.created, transaction.transaction_id)


class InMemoryTransactionRepository:
    """
    Implements TransactionRepository protocol with a lock-guarded dict.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Records are frozen dataclasses, so readers never see partial writes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, Transaction] = {}

    def insert_open(self, transaction: Transaction) -> InsertResult:
        user_id = transaction.initiator.user_id
        with self._lock:
            if transaction.transaction_id in self._records:
                return InsertResult.DUPLICATE_ID
            for record in self._records.values():
                if record.initiator.user_id == user_id and record.status in ACTIVE_STATUSES:
                    return InsertResult.ACTIVE_EXISTS
            self._records[transaction.transaction_id] = dataclasses.replace(transaction, version=0)
            return InsertResult.CREATED

    def get(self, transaction_id: str) -> Transaction | None:
        with self._lock:
            return self._records.get(transaction_id)

    def find_active_for_user(self, user_id: str) -> list[Transaction]:
        with self._lock:
            records = [
                record
                for record in self._records.values()
                if record.status in ACTIVE_STATUSES
                and user_id in (record.initiator.user_id, record.recipient.user_id)
            ]
        return sorted(records, key=_order)

    def find_open_offers(
        self, initiator_ids: Collection[str], currency: str, target_currency: str
    ) -> list[Transaction]:
        owners = set(initiator_ids)
        with self._lock:
            records = [
                record
                for record in self._records.values()
                if record.status is TransactionStatus.OPEN
                and record.initiator.user_id in owners
                and record.initiator.currency == currency
                and record.recipient.currency == target_currency
            ]
        return sorted(records, key=_order)

    def find_pending_requests(self, partner_transaction_id: str) -> list[Transaction]:
        with self._lock:
            records = [
                record
                for record in self._records.values()
                if record.status is TransactionStatus.PENDING_MATCH
                and record.pending_partner_transaction_id == partner_transaction_id
            ]
        return sorted(
            records, key=lambda r: (r.timestamps.match_requested, r.transaction_id)
        )

    def commit(self, changes: Sequence[Transaction]) -> bool:
        with self._lock:
            for expected in changes:
                current = self._records.get(expected.transaction_id)
                if current is None or current.version != expected.version:
                    logger.debug(
                        "Version mismatch on %s: read %d, stored %s",
                        expected.transaction_id,
                        expected.version,
                        None if current is None else current.version,
                    )
                    return False
            for change in changes:
                self._records[change.transaction_id] = dataclasses.replace(
                    change, version=change.version + 1
                )
            return True


class InMemoryUserDirectory:
    """
    Implements UserDirectory protocol with a lock-guarded dict.

    register() stands in for the identity subsystem when seeding users.
    """

    def __init__(self, initial_trust_score: int = 20) -> None:
        self._lock = threading.Lock()
        self._users: dict[str, User] = {}
        self._initial_trust_score = initial_trust_score

    def register(
        self,
        user_id: str,
        name: str,
        referred_by: str | None = None,
        referral_code: str | None = None,
    ) -> User:
        """Add a user; without referred_by the user becomes a network root."""
        user = User(
            user_id=user_id,
            name=name,
            referred_by=referred_by or user_id,
            referral_code=referral_code or f"REF{user_id.upper()}",
            trust_score=self._initial_trust_score,
        )
        with self._lock:
            self._users[user_id] = user
        return user

    def get_user(self, user_id: str) -> User | None:
        with self._lock:
            return self._users.get(user_id)

    def list_referrals(self, user_id: str) -> list[User]:
        with self._lock:
            return [
                user
                for user in self._users.values()
                if user.referred_by == user_id and user.user_id != user_id
            ]

    def increment_trust(self, user_id: str, delta: int) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            self._users[user_id] = dataclasses.replace(
                user,
                trust_score=user.trust_score + delta,
                completed_transactions=user.completed_transactions + 1,
            )
            return True
