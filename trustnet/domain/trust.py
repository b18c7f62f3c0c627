"""
Trust score updater - Rewards both parties of a completed trade.

Increments are independent atomic counters in the user store. They run
after the completed status is committed and never undo it.
"""

import logging
from dataclasses import dataclass

from .models import Transaction
from .ports import UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class TrustScoreUpdater:
    users: UserDirectory
    increment: int = 5

    def apply_completion(self, transaction: Transaction) -> list[str]:
        """
        Increment trust_score and completed_transactions of both parties.

        Args:
            transaction: The record whose commit produced status completed

        Returns:
            Ids of the users that were updated
        """
        updated = []
        for user_id in (transaction.initiator.user_id, transaction.recipient.user_id):
            if user_id is None:
                continue
            try:
                if self.users.increment_trust(user_id, self.increment):
                    updated.append(user_id)
                else:
                    logger.warning(
                        "Trust update skipped for %s on %s: user not found",
                        user_id,
                        transaction.transaction_id,
                    )
            except Exception:
                logger.exception(
                    "Trust update failed for %s on %s", user_id, transaction.transaction_id
                )
        return updated
