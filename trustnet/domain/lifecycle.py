"""
Lifecycle helpers shared by the transaction operations.

Every check here runs against a record freshly read from the repository;
nothing is cached between operations.
"""

import dataclasses
from collections.abc import Collection

from .exceptions import OperationFailed
from .models import Transaction, TransactionStatus
from .ports import TransactionRepository
from .results import Outcome


def load(repository: TransactionRepository, transaction_id: str) -> Transaction:
    transaction = repository.get(transaction_id)
    if transaction is None:
        raise OperationFailed(Outcome.NOT_FOUND, f"Transaction {transaction_id} not found")
    return transaction


def load_partner(repository: TransactionRepository, transaction: Transaction) -> Transaction | None:
    """The mirrored record of a matched pair, if linked."""
    if transaction.partner_transaction_id is None:
        return None
    return repository.get(transaction.partner_transaction_id)


def require_initiator(transaction: Transaction, user_id: str) -> None:
    if transaction.initiator.user_id != user_id:
        raise OperationFailed(
            Outcome.NOT_AUTHORIZED,
            f"User {user_id} is not the initiator of {transaction.transaction_id}",
        )


def require_participant(transaction: Transaction, user_id: str) -> None:
    if not transaction.is_participant(user_id):
        raise OperationFailed(
            Outcome.NOT_AUTHORIZED,
            f"User {user_id} is not a participant of {transaction.transaction_id}",
        )


def require_status(transaction: Transaction, allowed: Collection[TransactionStatus]) -> None:
    if transaction.status not in allowed:
        expected = ", ".join(sorted(status.value for status in allowed))
        raise OperationFailed(
            Outcome.WRONG_STATE,
            f"Transaction {transaction.transaction_id} is {transaction.status.value}, "
            f"expected {expected}",
            transaction.status,
        )


def conflict(transaction_id: str) -> OperationFailed:
    return OperationFailed(
        Outcome.CONFLICT,
        f"Transaction {transaction_id} is no longer available, refresh and retry",
    )


def revert_to_open(request: Transaction) -> Transaction:
    """
    A pending_match request reverted to an unmatched open request.

    timestamps.match_requested keeps the first request time.
    """
    return dataclasses.replace(
        request,
        status=TransactionStatus.OPEN,
        recipient=dataclasses.replace(request.recipient, user_id=None),
        relationship=None,
        pending_partner_transaction_id=None,
    )


def release_requests(
    repository: TransactionRepository, transaction_id: str, keep: str | None = None
) -> list[Transaction]:
    """
    Revert every pending request that targets transaction_id.

    Used when the targeted transaction leaves open; the reverted records
    must be committed together with that change.
    """
    return [
        revert_to_open(request)
        for request in repository.find_pending_requests(transaction_id)
        if request.transaction_id != keep
    ]


def stored(transaction: Transaction) -> Transaction:
    """The record as the repository holds it after a successful commit."""
    return dataclasses.replace(transaction, version=transaction.version + 1)
