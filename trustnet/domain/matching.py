"""
Match finder - Scans a user's trust network for counter-offers.

A counter-offer is an open transaction owned by a network member whose
currency pair is the exact inverse of the caller's.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from .exceptions import OperationFailed, returns_result
from .lifecycle import load, require_initiator, require_status
from .models import Relationship, Transaction, TransactionStatus
from .network import NetworkResolver
from .ports import TransactionRepository, UserDirectory
from .results import Outcome, Result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchCandidate:
    """An open counter-offer with its owner's trust data."""

    transaction_id: str
    partner_user_id: str
    partner_name: str
    relationship: Relationship
    amount: Decimal
    currency: str
    target_amount: Decimal
    target_currency: str
    rate: Decimal
    trust_score: int
    completed_transactions: int
    notes: str | None = None


@dataclass
class MatchFinder:
    """Finds currency-complementary open offers inside a trust network."""

    repository: TransactionRepository
    users: UserDirectory
    resolver: NetworkResolver

    @returns_result
    def find_matching_transfers(
        self, user_id: str, transaction_id: str
    ) -> Result[list[MatchCandidate]]:
        """
        Candidate counter-offers for an open transaction owned by user_id.

        Returns:
            Result with a (possibly empty) list ordered by creation time,
            or NOT_FOUND, NOT_AUTHORIZED, WRONG_STATE, USER_NOT_FOUND
        """
        transaction = load(self.repository, transaction_id)
        require_initiator(transaction, user_id)
        require_status(transaction, {TransactionStatus.OPEN})
        return Result.success(self.candidates_for(transaction))

    def candidates_for(self, transaction: Transaction) -> list[MatchCandidate]:
        owner = self.users.get_user(transaction.initiator.user_id)
        if owner is None:
            raise OperationFailed(
                Outcome.USER_NOT_FOUND, f"User {transaction.initiator.user_id} not found"
            )

        network = self.resolver.network_of(owner)
        if not network:
            return []

        offers = self.repository.find_open_offers(
            network.keys(),
            currency=transaction.recipient.currency,
            target_currency=transaction.initiator.currency,
        )

        candidates = []
        for offer in offers:
            partner = self.users.get_user(offer.initiator.user_id)
            if partner is None:
                logger.warning(
                    "Skipping offer %s: owner %s not found",
                    offer.transaction_id,
                    offer.initiator.user_id,
                )
                continue
            candidates.append(
                MatchCandidate(
                    transaction_id=offer.transaction_id,
                    partner_user_id=partner.user_id,
                    partner_name=partner.name,
                    relationship=network[partner.user_id],
                    amount=offer.initiator.amount,
                    currency=offer.initiator.currency,
                    target_amount=offer.recipient.amount,
                    target_currency=offer.recipient.currency,
                    rate=offer.rate,
                    trust_score=partner.trust_score,
                    completed_transactions=partner.completed_transactions,
                    notes=offer.notes,
                )
            )
        return candidates
