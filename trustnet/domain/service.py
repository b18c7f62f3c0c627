"""
Exchange service - The operation surface offered to external actors.

Wires the transfer store, match finder, state machine and ledger over the
same ports. Every call is self-contained given its ids; the service keeps
no per-user state between calls.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from .exceptions import OperationFailed
from .exchange import (
    CompletionResult,
    MatchConfirmation,
    MatchPreview,
    MatchStateMachine,
    ProofReceipt,
)
from .ledger import TransactionLedger
from .matching import MatchCandidate, MatchFinder
from .models import Message, Report, Transaction
from .network import NetworkResolver
from .notifications import dispatch
from .ports import (
    CurrencyCatalog,
    NotificationEvent,
    Notifier,
    TransactionRepository,
    UserDirectory,
)
from .results import Result
from .transfers import ActiveTransactionView, TransactionDetails, TransferRequestService
from .trust import TrustScoreUpdater

logger = logging.getLogger(__name__)


@dataclass
class ExchangeService:
    """
    Facade over the exchange core.

    Orchestrates the transfer request lifecycle: creation, matching inside
    the trust network, two-phase confirmation, proof of payment and
    completion with trust score rewards.
    """

    repository: TransactionRepository
    users: UserDirectory
    notifier: Notifier
    currencies: CurrencyCatalog
    trust_score_increment: int = 5
    max_conflict_retries: int = 3

    resolver: NetworkResolver = field(init=False)
    transfers: TransferRequestService = field(init=False)
    matches: MatchFinder = field(init=False)
    machine: MatchStateMachine = field(init=False)
    ledger: TransactionLedger = field(init=False)

    def __post_init__(self) -> None:
        self.resolver = NetworkResolver(self.users)
        self.transfers = TransferRequestService(self.repository, self.users, self.currencies)
        self.matches = MatchFinder(self.repository, self.users, self.resolver)
        self.machine = MatchStateMachine(
            repository=self.repository,
            users=self.users,
            resolver=self.resolver,
            trust=TrustScoreUpdater(self.users, self.trust_score_increment),
            notifier=self.notifier,
            max_conflict_retries=self.max_conflict_retries,
        )
        self.ledger = TransactionLedger(
            repository=self.repository,
            users=self.users,
            notifier=self.notifier,
            max_conflict_retries=self.max_conflict_retries,
        )

    def create_transfer_request(
        self,
        user_id: str,
        amount: Any,
        currency: str,
        target_currency: str,
        rate: Any = None,
        notes: str | None = None,
    ) -> Result[Transaction]:
        """Create an open request and tell owners of compatible offers about it."""
        result = self.transfers.create_transfer_request(
            user_id, amount, currency, target_currency, rate=rate, notes=notes
        )
        if result.ok:
            self._announce(result.value)
        return result

    def update_transfer_request(
        self,
        user_id: str,
        transaction_id: str,
        amount: Any = None,
        rate: Any = None,
        notes: str | None = None,
    ) -> Result[Transaction]:
        return self.transfers.update_transfer_request(
            user_id, transaction_id, amount=amount, rate=rate, notes=notes
        )

    def get_active_transaction(self, user_id: str) -> Result[ActiveTransactionView]:
        return self.transfers.get_active_transaction(user_id)

    def get_transaction_by_id(self, transaction_id: str) -> TransactionDetails | None:
        return self.transfers.get_transaction_by_id(transaction_id)

    def find_matching_transfers(
        self, user_id: str, transaction_id: str
    ) -> Result[list[MatchCandidate]]:
        return self.matches.find_matching_transfers(user_id, transaction_id)

    def initiate_match_request(
        self, user_id: str, transaction_id: str, partner_transaction_id: str
    ) -> Result[MatchPreview]:
        return self.machine.initiate_match_request(user_id, transaction_id, partner_transaction_id)

    def confirm_match_request(
        self,
        user_id: str,
        transaction_id: str,
        accept: bool,
        requester_transaction_id: str | None = None,
    ) -> Result[MatchConfirmation]:
        return self.machine.confirm_match_request(
            user_id, transaction_id, accept, requester_transaction_id=requester_transaction_id
        )

    def upload_proof_of_payment(
        self, user_id: str, transaction_id: str, proof_ref: str
    ) -> Result[ProofReceipt]:
        return self.machine.upload_proof_of_payment(user_id, transaction_id, proof_ref)

    def complete_transaction(
        self, user_id: str, transaction_id: str, confirmed: bool
    ) -> Result[CompletionResult]:
        return self.machine.complete_transaction(user_id, transaction_id, confirmed)

    def cancel_transaction(self, actor_id: str, transaction_id: str) -> Result[Transaction]:
        return self.machine.cancel_transaction(actor_id, transaction_id)

    def report_issue(
        self, user_id: str, transaction_id: str, reason: str, details: str = ""
    ) -> Result[Report]:
        return self.ledger.report_issue(user_id, transaction_id, reason, details)

    def resolve_report(self, transaction_id: str, report_index: int) -> Result[Report]:
        return self.ledger.resolve_report(transaction_id, report_index)

    def send_message(self, user_id: str, transaction_id: str, text: str) -> Result[Message]:
        return self.ledger.send_message(user_id, transaction_id, text)

    def get_messages(self, user_id: str, transaction_id: str) -> Result[list[Message]]:
        return self.ledger.get_messages(user_id, transaction_id)

    def mark_message_as_read(
        self, user_id: str, transaction_id: str, message_index: int | None = None
    ) -> Result[int]:
        return self.ledger.mark_message_as_read(user_id, transaction_id, message_index)

    def _announce(self, transaction: Transaction) -> None:
        try:
            candidates = self.matches.candidates_for(transaction)
        except OperationFailed as exc:
            logger.warning("No match announcement for %s: %s", transaction.transaction_id, exc)
            return
        for candidate in candidates:
            dispatch(
                self.notifier,
                candidate.partner_user_id,
                NotificationEvent.POTENTIAL_MATCH,
                {
                    "transaction_id": candidate.transaction_id,
                    "partner_transaction_id": transaction.transaction_id,
                    "partner_user_id": transaction.initiator.user_id,
                    "relationship": candidate.relationship.inverse().value,
                    "amount": str(transaction.initiator.amount),
                    "currency": transaction.initiator.currency,
                },
            )
