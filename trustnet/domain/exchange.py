"""
Match/confirmation state machine - Drives a trade to completion.

Two-phase matching
==================

1. The requester calls initiate_match_request() on its own open transaction,
   naming an open counter-offer. The requester's record becomes
   pending_match with the counter-offer's owner as speculative recipient;
   the counter-offer itself stays open, but its version is bumped so a
   concurrent write to it conflicts.
2. The counter-offer's owner calls confirm_match_request() on its own open
   transaction. Rejecting reverts the request to open. Accepting moves both
   records to matched in one conditional write; if either record changed
   since it was read, nothing is written and the caller gets CONFLICT.

After matching, proofs are appended to both mirrored records together. The
write that produces the second proof also produces completed, and only that
writer applies the trust score update.

All writes go through TransactionRepository.commit(), which compares the
version each record was read at. No decision is taken from a record held
across a write.
"""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from .exceptions import OperationFailed, returns_result
from .lifecycle import (
    conflict,
    load,
    load_partner,
    release_requests,
    require_initiator,
    require_participant,
    require_status,
    revert_to_open,
    stored,
)
from .models import (
    CANCELLABLE_STATUSES,
    PAYMENT_STATUSES,
    Proof,
    Relationship,
    Transaction,
    TransactionStatus,
    utc_now,
)
from .network import NetworkResolver
from .notifications import dispatch
from .ports import NotificationEvent, Notifier, TransactionRepository, UserDirectory
from .results import Outcome, Result
from .trust import TrustScoreUpdater

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchPreview:
    """What the requester proposed, for relaying to the partner."""

    transaction_id: str
    partner_transaction_id: str
    partner_user_id: str
    partner_name: str | None
    relationship: Relationship
    send_amount: Decimal
    send_currency: str
    receive_amount: Decimal
    receive_currency: str
    partner_trust_score: int | None = None
    partner_completed_transactions: int | None = None


@dataclass(frozen=True)
class MatchConfirmation:
    accepted: bool
    transaction: Transaction
    requester_transaction: Transaction


@dataclass(frozen=True)
class ProofReceipt:
    transaction: Transaction
    proofs_count: int
    completed: bool


@dataclass(frozen=True)
class CompletionResult:
    transaction: Transaction
    already_completed: bool


def _with_proof(transaction: Transaction, proof: Proof) -> Transaction:
    proofs = transaction.proofs + (proof,)
    if len(proofs) >= 2:
        return dataclasses.replace(
            transaction,
            proofs=proofs,
            status=TransactionStatus.COMPLETED,
            timestamps=dataclasses.replace(transaction.timestamps, completed=proof.uploaded_at),
        )
    return dataclasses.replace(transaction, proofs=proofs, status=TransactionStatus.PROOF_UPLOADED)


def _completed(transaction: Transaction, now: datetime) -> Transaction:
    return dataclasses.replace(
        transaction,
        status=TransactionStatus.COMPLETED,
        timestamps=dataclasses.replace(transaction.timestamps, completed=now),
    )


@dataclass
class MatchStateMachine:
    """Domain service for matching, proof of payment, completion and cancellation."""

    repository: TransactionRepository
    users: UserDirectory
    resolver: NetworkResolver
    trust: TrustScoreUpdater
    notifier: Notifier
    max_conflict_retries: int = 3

    @returns_result
    def initiate_match_request(
        self, user_id: str, transaction_id: str, partner_transaction_id: str
    ) -> Result[MatchPreview]:
        """
        Propose a match between the caller's open request and a counter-offer.

        Args:
            user_id: Initiator of transaction_id
            transaction_id: Caller's open transaction
            partner_transaction_id: Open counter-offer to match with

        Returns:
            Result with a MatchPreview, or NOT_FOUND, NOT_AUTHORIZED,
            WRONG_STATE, PARTNER_NOT_FOUND, INVALID_ARGUMENT,
            CURRENCY_MISMATCH, NOT_IN_NETWORK, CONFLICT
        """
        transaction = load(self.repository, transaction_id)
        require_initiator(transaction, user_id)
        require_status(transaction, {TransactionStatus.OPEN})

        partner = self.repository.get(partner_transaction_id)
        if partner is None:
            raise OperationFailed(
                Outcome.PARTNER_NOT_FOUND, f"Transaction {partner_transaction_id} not found"
            )
        if partner.initiator.user_id == user_id:
            raise OperationFailed(
                Outcome.INVALID_ARGUMENT, "Cannot match a transaction with your own request"
            )
        if partner.status is not TransactionStatus.OPEN:
            raise OperationFailed(
                Outcome.WRONG_STATE,
                f"Transaction {partner_transaction_id} is {partner.status.value}, expected open",
                partner.status,
            )
        if (
            partner.initiator.currency != transaction.recipient.currency
            or partner.recipient.currency != transaction.initiator.currency
        ):
            raise OperationFailed(
                Outcome.CURRENCY_MISMATCH,
                f"{partner.initiator.currency}->{partner.recipient.currency} does not offset "
                f"{transaction.initiator.currency}->{transaction.recipient.currency}",
            )

        check = self.resolver.relationship(user_id, partner.initiator.user_id)
        if not check.valid:
            raise OperationFailed(Outcome.NOT_IN_NETWORK, check.reason or "Not in network")

        requested = dataclasses.replace(
            transaction,
            status=TransactionStatus.PENDING_MATCH,
            recipient=dataclasses.replace(transaction.recipient, user_id=partner.initiator.user_id),
            relationship=check.kind,
            pending_partner_transaction_id=partner.transaction_id,
            timestamps=dataclasses.replace(
                transaction.timestamps,
                match_requested=transaction.timestamps.match_requested or utc_now(),
            ),
        )
        released = release_requests(self.repository, transaction.transaction_id)

        # partner is written back unchanged so its own accept or cancel conflicts
        if not self.repository.commit([requested, partner, *released]):
            raise conflict(transaction_id)

        logger.info(
            "Match requested: %s (%s) -> %s (%s)",
            transaction_id,
            user_id,
            partner.transaction_id,
            partner.initiator.user_id,
        )

        partner_user = self.users.get_user(partner.initiator.user_id)
        preview = MatchPreview(
            transaction_id=transaction_id,
            partner_transaction_id=partner.transaction_id,
            partner_user_id=partner.initiator.user_id,
            partner_name=partner_user.name if partner_user else None,
            relationship=check.kind,
            send_amount=transaction.initiator.amount,
            send_currency=transaction.initiator.currency,
            receive_amount=transaction.recipient.amount,
            receive_currency=transaction.recipient.currency,
            partner_trust_score=partner_user.trust_score if partner_user else None,
            partner_completed_transactions=(
                partner_user.completed_transactions if partner_user else None
            ),
        )
        dispatch(
            self.notifier,
            partner.initiator.user_id,
            NotificationEvent.MATCH_REQUEST_RECEIVED,
            {
                "transaction_id": partner.transaction_id,
                "requester_transaction_id": transaction_id,
                "requester_user_id": user_id,
                "relationship": check.kind.inverse().value,
                "amount": str(transaction.initiator.amount),
                "currency": transaction.initiator.currency,
                "target_amount": str(transaction.recipient.amount),
                "target_currency": transaction.recipient.currency,
            },
        )
        self._notify_released(released, transaction_id)
        return Result.success(preview)

    @returns_result
    def confirm_match_request(
        self,
        user_id: str,
        transaction_id: str,
        accept: bool,
        requester_transaction_id: str | None = None,
    ) -> Result[MatchConfirmation]:
        """
        Accept or reject an inbound match request targeting transaction_id.

        Args:
            user_id: Initiator of transaction_id
            transaction_id: Caller's open transaction the request targets
            accept: True to match, False to reject
            requester_transaction_id: Which request to answer when several
                target the caller; defaults to the oldest

        Returns:
            Result with a MatchConfirmation, or NOT_FOUND, NOT_AUTHORIZED,
            WRONG_STATE, NO_PENDING_REQUEST, CONFLICT
        """
        own = load(self.repository, transaction_id)
        require_initiator(own, user_id)
        require_status(own, {TransactionStatus.OPEN})

        requests = [
            request
            for request in self.repository.find_pending_requests(own.transaction_id)
            if request.recipient.user_id == user_id
        ]
        if requester_transaction_id is not None:
            requests = [r for r in requests if r.transaction_id == requester_transaction_id]
        if not requests:
            raise OperationFailed(
                Outcome.NO_PENDING_REQUEST, f"No pending match request targets {transaction_id}"
            )

        request = requests[0]
        if accept:
            return Result.success(self._accept(own, request))
        return Result.success(self._reject(own, request))

    def _reject(self, own: Transaction, request: Transaction) -> MatchConfirmation:
        reverted = revert_to_open(request)
        if not self.repository.commit([reverted]):
            raise conflict(request.transaction_id)

        logger.info(
            "Match request %s rejected by %s", request.transaction_id, own.initiator.user_id
        )
        dispatch(
            self.notifier,
            request.initiator.user_id,
            NotificationEvent.MATCH_REJECTED,
            {
                "transaction_id": request.transaction_id,
                "partner_transaction_id": own.transaction_id,
                "partner_user_id": own.initiator.user_id,
            },
        )
        return MatchConfirmation(
            accepted=False, transaction=own, requester_transaction=stored(reverted)
        )

    def _accept(self, own: Transaction, request: Transaction) -> MatchConfirmation:
        relationship = request.relationship.inverse() if request.relationship else None
        if relationship is None:
            check = self.resolver.relationship(own.initiator.user_id, request.initiator.user_id)
            if not check.valid:
                raise OperationFailed(Outcome.NOT_IN_NETWORK, check.reason or "Not in network")
            relationship = check.kind

        now = utc_now()
        matched_request = dataclasses.replace(
            request,
            status=TransactionStatus.MATCHED,
            pending_partner_transaction_id=None,
            partner_transaction_id=own.transaction_id,
            timestamps=dataclasses.replace(request.timestamps, matched=now),
        )
        matched_own = dataclasses.replace(
            own,
            status=TransactionStatus.MATCHED,
            recipient=dataclasses.replace(own.recipient, user_id=request.initiator.user_id),
            relationship=relationship,
            partner_transaction_id=request.transaction_id,
            timestamps=dataclasses.replace(own.timestamps, matched=now),
        )
        released = release_requests(
            self.repository, own.transaction_id, keep=request.transaction_id
        )

        if not self.repository.commit([matched_request, matched_own, *released]):
            raise conflict(own.transaction_id)

        logger.info("Matched %s <-> %s", request.transaction_id, own.transaction_id)
        dispatch(
            self.notifier,
            request.initiator.user_id,
            NotificationEvent.MATCH_CONFIRMED,
            {
                "transaction_id": request.transaction_id,
                "partner_transaction_id": own.transaction_id,
                "partner_user_id": own.initiator.user_id,
            },
        )
        self._notify_released(released, own.transaction_id)
        return MatchConfirmation(
            accepted=True,
            transaction=stored(matched_own),
            requester_transaction=stored(matched_request),
        )

    @returns_result
    def upload_proof_of_payment(
        self, user_id: str, transaction_id: str, proof_ref: str
    ) -> Result[ProofReceipt]:
        """
        Record the caller's proof of payment on a matched trade.

        The proof is appended and the count re-derived inside one
        conditional write; on conflict the record is re-read and the append
        retried, so concurrent uploads from both parties produce exactly one
        proof_uploaded and one completed transition.

        Returns:
            Result with a ProofReceipt, or INVALID_ARGUMENT, NOT_FOUND,
            NOT_AUTHORIZED, WRONG_STATE, ALREADY_UPLOADED, CONFLICT
        """
        if not proof_ref or not str(proof_ref).strip():
            raise OperationFailed(Outcome.INVALID_ARGUMENT, "Proof reference is required")

        attempts = max(1, self.max_conflict_retries)
        for attempt in range(1, attempts + 1):
            transaction = load(self.repository, transaction_id)
            require_participant(transaction, user_id)
            require_status(transaction, PAYMENT_STATUSES)
            if transaction.has_proof_from(user_id):
                raise OperationFailed(
                    Outcome.ALREADY_UPLOADED,
                    f"User {user_id} already uploaded proof for {transaction_id}",
                )

            proof = Proof(user_id=user_id, image_id=str(proof_ref), uploaded_at=utc_now())
            changes = [_with_proof(transaction, proof)]
            mirror = load_partner(self.repository, transaction)
            if mirror is not None:
                if mirror.status not in PAYMENT_STATUSES or mirror.has_proof_from(user_id):
                    raise conflict(transaction_id)
                changes.append(_with_proof(mirror, proof))

            if self.repository.commit(changes):
                break
            logger.warning(
                "Proof upload on %s conflicted (attempt %d/%d)", transaction_id, attempt, attempts
            )
        else:
            raise conflict(transaction_id)

        updated = stored(changes[0])
        logger.info(
            "Proof %d/2 on %s from %s, status %s",
            len(updated.proofs),
            transaction_id,
            user_id,
            updated.status.value,
        )

        if updated.status is TransactionStatus.COMPLETED:
            self._finish(updated)
        else:
            dispatch(
                self.notifier,
                updated.counterparty(user_id),
                NotificationEvent.PROOF_UPLOADED,
                {"transaction_id": transaction_id, "from_user_id": user_id},
            )

        return Result.success(
            ProofReceipt(
                transaction=updated,
                proofs_count=len(updated.proofs),
                completed=updated.status is TransactionStatus.COMPLETED,
            )
        )

    @returns_result
    def complete_transaction(
        self, user_id: str, transaction_id: str, confirmed: bool
    ) -> Result[CompletionResult]:
        """
        Explicitly complete a trade in proof_uploaded.

        Only the party still waiting on a proof may confirm receipt; the
        uploader cannot complete its own payment.

        Idempotent: an already completed transaction returns success
        without touching timestamps or trust scores.
        """
        transaction = load(self.repository, transaction_id)
        require_participant(transaction, user_id)
        if transaction.status is TransactionStatus.COMPLETED:
            return Result.success(CompletionResult(transaction=transaction, already_completed=True))
        if not confirmed:
            raise OperationFailed(Outcome.NOT_CONFIRMED, "Completion must be confirmed")
        require_status(transaction, {TransactionStatus.PROOF_UPLOADED})
        if transaction.has_proof_from(user_id) and len(transaction.proofs) < 2:
            raise OperationFailed(
                Outcome.NOT_AUTHORIZED,
                f"User {user_id} cannot confirm receipt of their own payment on {transaction_id}",
            )

        now = utc_now()
        changes = [_completed(transaction, now)]
        mirror = load_partner(self.repository, transaction)
        if mirror is not None and mirror.status is not TransactionStatus.COMPLETED:
            if mirror.status is not TransactionStatus.PROOF_UPLOADED:
                raise conflict(transaction_id)
            changes.append(_completed(mirror, now))

        if not self.repository.commit(changes):
            current = self.repository.get(transaction_id)
            if current is not None and current.status is TransactionStatus.COMPLETED:
                return Result.success(CompletionResult(transaction=current, already_completed=True))
            raise conflict(transaction_id)

        updated = stored(changes[0])
        logger.info("Transaction %s completed by %s", transaction_id, user_id)
        self._finish(updated)
        return Result.success(CompletionResult(transaction=updated, already_completed=False))

    @returns_result
    def cancel_transaction(self, actor_id: str, transaction_id: str) -> Result[Transaction]:
        """
        Cancel a transaction in open, pending_match or matched.

        A pending_match request can only be withdrawn by its initiator; the
        targeted user rejects it instead. Cancelling a matched record also
        cancels its mirror.
        """
        transaction = load(self.repository, transaction_id)
        require_participant(transaction, actor_id)
        require_status(transaction, CANCELLABLE_STATUSES)
        if (
            transaction.status is TransactionStatus.PENDING_MATCH
            and actor_id != transaction.initiator.user_id
        ):
            raise OperationFailed(
                Outcome.NOT_AUTHORIZED,
                f"Only the initiator can withdraw {transaction_id}; reject the request instead",
            )

        changes = [
            dataclasses.replace(
                transaction,
                status=TransactionStatus.CANCELLED,
                pending_partner_transaction_id=None,
            )
        ]
        released: list[Transaction] = []
        if transaction.status is TransactionStatus.MATCHED:
            mirror = load_partner(self.repository, transaction)
            if mirror is not None:
                if mirror.status is not TransactionStatus.MATCHED:
                    raise conflict(transaction_id)
                changes.append(dataclasses.replace(mirror, status=TransactionStatus.CANCELLED))
        elif transaction.status is TransactionStatus.OPEN:
            released = release_requests(self.repository, transaction_id)

        if not self.repository.commit([*changes, *released]):
            raise conflict(transaction_id)

        logger.info(
            "Transaction %s cancelled by %s (was %s)",
            transaction_id,
            actor_id,
            transaction.status.value,
        )
        dispatch(
            self.notifier,
            transaction.counterparty(actor_id),
            NotificationEvent.TRANSACTION_CANCELLED,
            {"transaction_id": transaction_id, "cancelled_by": actor_id},
        )
        self._notify_released(released, transaction_id)
        return Result.success(stored(changes[0]))

    def _finish(self, transaction: Transaction) -> None:
        self.trust.apply_completion(transaction)
        for user_id in transaction.participants():
            dispatch(
                self.notifier,
                user_id,
                NotificationEvent.TRANSACTION_COMPLETED,
                {"transaction_id": transaction.transaction_id},
            )

    def _notify_released(self, released: list[Transaction], transaction_id: str) -> None:
        for request in released:
            logger.info("Released stale match request %s", request.transaction_id)
            dispatch(
                self.notifier,
                request.initiator.user_id,
                NotificationEvent.MATCH_REJECTED,
                {
                    "transaction_id": request.transaction_id,
                    "partner_transaction_id": transaction_id,
                },
            )
