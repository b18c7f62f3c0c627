"""
Transfer request store - Create, update and read transfer requests.

A user may own at most one active transaction. Creation relies on the
repository's atomic insert_open() for that guarantee; the pre-check here
only produces a friendlier early failure.
"""

import dataclasses
import logging
import secrets
import string
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from .exceptions import OperationFailed, returns_result
from .lifecycle import conflict, load, require_initiator, require_status, stored
from .models import (
    Party,
    Relationship,
    Timestamps,
    Transaction,
    TransactionStatus,
    convert,
    utc_now,
)
from .ports import CurrencyCatalog, InsertResult, TransactionRepository, UserDirectory
from .results import Outcome, Result

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_uppercase + string.digits
_MAX_ID_ATTEMPTS = 5


def generate_transaction_id() -> str:
    """Generate an id of the form TRXXXXXX using the secrets module."""
    return "TR" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))


def parse_positive(value: Any) -> Decimal | None:
    """Positive finite Decimal from user input, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number <= 0:
        return None
    return number


@dataclass(frozen=True)
class PartnerInfo:
    user_id: str
    name: str
    trust_score: int
    completed_transactions: int
    relationship: Relationship | None = None


@dataclass(frozen=True)
class ActiveTransactionView:
    """The caller's active transaction annotated for the caller."""

    exists: bool
    transaction: Transaction | None = None
    role: str | None = None
    partner: PartnerInfo | None = None
    pending_confirmation: bool = False
    incoming_request: Transaction | None = None


@dataclass(frozen=True)
class TransactionDetails:
    transaction: Transaction
    initiator_name: str | None
    recipient_name: str | None


@dataclass
class TransferRequestService:
    """Domain service for the lifecycle of open transfer requests."""

    repository: TransactionRepository
    users: UserDirectory
    currencies: CurrencyCatalog

    @returns_result
    def create_transfer_request(
        self,
        user_id: str,
        amount: Any,
        currency: str,
        target_currency: str,
        rate: Any = None,
        notes: str | None = None,
    ) -> Result[Transaction]:
        """
        Create an open transfer request for user_id.

        Args:
            user_id: Acting user
            amount: Amount the user sends, must be > 0
            currency: Currency the user sends
            target_currency: Currency the user wants to receive
            rate: currency -> target_currency rate; looked up when omitted
            notes: Optional free text

        Returns:
            Result with the stored Transaction, or INVALID_AMOUNT,
            INVALID_CURRENCY, INVALID_RATE, USER_NOT_FOUND,
            ACTIVE_TRANSACTION_EXISTS
        """
        parsed_amount = parse_positive(amount)
        if parsed_amount is None:
            raise OperationFailed(Outcome.INVALID_AMOUNT, f"Invalid amount: {amount!r}")

        source, target = self._validate_pair(currency, target_currency)

        if rate is None:
            configured = self.currencies.rate(source, target)
            parsed_rate = parse_positive(configured)
            if parsed_rate is None:
                raise OperationFailed(
                    Outcome.INVALID_RATE,
                    f"Invalid configured rate for {source}->{target}: {configured!r}",
                )
        else:
            parsed_rate = parse_positive(rate)
            if parsed_rate is None:
                raise OperationFailed(Outcome.INVALID_RATE, f"Invalid rate: {rate!r}")

        if self.users.get_user(user_id) is None:
            raise OperationFailed(Outcome.USER_NOT_FOUND, f"User {user_id} not found")

        existing = self.repository.find_active_for_user(user_id)
        if existing:
            raise OperationFailed(
                Outcome.ACTIVE_TRANSACTION_EXISTS,
                f"User {user_id} already has active transaction {existing[0].transaction_id}",
            )

        for _ in range(_MAX_ID_ATTEMPTS):
            transaction = Transaction(
                transaction_id=generate_transaction_id(),
                initiator=Party(user_id=user_id, amount=parsed_amount, currency=source),
                recipient=Party(
                    user_id=None, amount=convert(parsed_amount, parsed_rate), currency=target
                ),
                rate=parsed_rate,
                status=TransactionStatus.OPEN,
                timestamps=Timestamps(created=utc_now()),
                notes=notes,
            )
            inserted = self.repository.insert_open(transaction)
            if inserted is InsertResult.CREATED:
                logger.info(
                    "Transaction %s created by %s: %s %s -> %s",
                    transaction.transaction_id,
                    user_id,
                    parsed_amount,
                    source,
                    target,
                )
                return Result.success(transaction)
            if inserted is InsertResult.ACTIVE_EXISTS:
                raise OperationFailed(
                    Outcome.ACTIVE_TRANSACTION_EXISTS,
                    f"User {user_id} already has an active transaction",
                )
            logger.warning(
                "Transaction id collision on %s, regenerating", transaction.transaction_id
            )

        raise RuntimeError("Could not allocate a unique transaction id")

    @returns_result
    def update_transfer_request(
        self,
        user_id: str,
        transaction_id: str,
        amount: Any = None,
        rate: Any = None,
        notes: str | None = None,
    ) -> Result[Transaction]:
        """
        Update amount, rate or notes of an open request owned by user_id.

        recipient.amount is recomputed from the resulting amount and rate.
        """
        transaction = load(self.repository, transaction_id)
        require_initiator(transaction, user_id)
        require_status(transaction, {TransactionStatus.OPEN})

        new_amount = transaction.initiator.amount
        new_rate = transaction.rate
        new_notes = transaction.notes
        changed = False

        if amount is not None:
            new_amount = parse_positive(amount)
            if new_amount is None:
                raise OperationFailed(Outcome.INVALID_AMOUNT, f"Invalid amount: {amount!r}")
            changed = True
        if rate is not None:
            new_rate = parse_positive(rate)
            if new_rate is None:
                raise OperationFailed(Outcome.INVALID_RATE, f"Invalid rate: {rate!r}")
            changed = True
        if notes is not None:
            new_notes = notes
            changed = True

        if not changed:
            raise OperationFailed(Outcome.NO_VALID_FIELDS, "No valid fields to update")

        updated = dataclasses.replace(
            transaction,
            initiator=dataclasses.replace(transaction.initiator, amount=new_amount),
            recipient=dataclasses.replace(
                transaction.recipient, amount=convert(new_amount, new_rate)
            ),
            rate=new_rate,
            notes=new_notes,
        )
        if not self.repository.commit([updated]):
            raise conflict(transaction_id)

        logger.info("Transaction %s updated by %s", transaction_id, user_id)
        return Result.success(stored(updated))

    @returns_result
    def get_active_transaction(self, user_id: str) -> Result[ActiveTransactionView]:
        """
        The single active transaction of user_id, annotated for the caller.

        The user's own request is preferred over records where the user is
        only the recipient. pending_confirmation is True exactly when a
        pending_match request targets the user.
        """
        active = self.repository.find_active_for_user(user_id)
        own = [tx for tx in active if tx.initiator.user_id == user_id]
        incoming = [
            tx
            for tx in active
            if tx.recipient.user_id == user_id and tx.status is TransactionStatus.PENDING_MATCH
        ]
        others = [tx for tx in active if tx not in own and tx not in incoming]

        candidates = own or incoming or others
        if not candidates:
            return Result.success(ActiveTransactionView(exists=False))

        selected = candidates[0]
        partner = None
        partner_id = selected.counterparty(user_id)
        if partner_id is not None:
            partner_user = self.users.get_user(partner_id)
            if partner_user is not None:
                relationship = selected.relationship
                if relationship is not None and selected.role_of(user_id) == "recipient":
                    relationship = relationship.inverse()
                partner = PartnerInfo(
                    user_id=partner_user.user_id,
                    name=partner_user.name,
                    trust_score=partner_user.trust_score,
                    completed_transactions=partner_user.completed_transactions,
                    relationship=relationship,
                )

        return Result.success(
            ActiveTransactionView(
                exists=True,
                transaction=selected,
                role=selected.role_of(user_id),
                partner=partner,
                pending_confirmation=bool(incoming),
                incoming_request=incoming[0] if incoming else None,
            )
        )

    def get_transaction_by_id(self, transaction_id: str) -> TransactionDetails | None:
        transaction = self.repository.get(transaction_id)
        if transaction is None:
            return None
        return TransactionDetails(
            transaction=transaction,
            initiator_name=self._name_of(transaction.initiator.user_id),
            recipient_name=self._name_of(transaction.recipient.user_id),
        )

    def _name_of(self, user_id: str | None) -> str | None:
        if user_id is None:
            return None
        user = self.users.get_user(user_id)
        return user.name if user is not None else None

    def _validate_pair(self, currency: str, target_currency: str) -> tuple[str, str]:
        supported = self.currencies.supported_currencies()
        source = (currency or "").strip().upper()
        target = (target_currency or "").strip().upper()
        if source not in supported:
            raise OperationFailed(Outcome.INVALID_CURRENCY, f"Unsupported currency: {currency!r}")
        if target not in supported:
            raise OperationFailed(
                Outcome.INVALID_CURRENCY, f"Unsupported currency: {target_currency!r}"
            )
        if source == target:
            raise OperationFailed(
                Outcome.INVALID_CURRENCY, "Source and target currency must differ"
            )
        return source, target
