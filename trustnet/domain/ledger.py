"""
Messaging and reporting sub-ledger - Append-only logs on a transaction.

Messages are mirrored on both records of a matched pair so each side reads
the same conversation. Reports stay on the record they were filed against
and may be filed after the trade has ended.
"""

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from .exceptions import OperationFailed, returns_result
from .lifecycle import conflict, load, load_partner, require_participant, require_status
from .models import (
    PAYMENT_STATUSES,
    Message,
    Report,
    ReportReason,
    ReportStatus,
    Transaction,
    utc_now,
)
from .notifications import dispatch
from .ports import NotificationEvent, Notifier, TransactionRepository, UserDirectory
from .results import Outcome, Result

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class TransactionLedger:
    """Domain service for chat messages and issue reports."""

    repository: TransactionRepository
    users: UserDirectory
    notifier: Notifier
    max_conflict_retries: int = 3

    @returns_result
    def send_message(self, user_id: str, transaction_id: str, text: str) -> Result[Message]:
        """
        Append a message from user_id to the other participant.

        Only allowed while the trade is matched or proof_uploaded.
        """
        body = (text or "").strip()
        if not body:
            raise OperationFailed(Outcome.INVALID_ARGUMENT, "Message text is required")

        sender = self.users.get_user(user_id)
        sender_name = sender.name if sender is not None else user_id

        def append(transaction: Transaction) -> tuple[list[Transaction], Message]:
            require_participant(transaction, user_id)
            require_status(transaction, PAYMENT_STATUSES)
            message = Message(
                from_user_id=user_id,
                from_user_name=sender_name,
                to_user_id=transaction.counterparty(user_id),
                message=body,
                timestamp=utc_now(),
            )
            changes = [
                dataclasses.replace(record, messages=record.messages + (message,))
                for record in self._with_mirror(transaction)
            ]
            return changes, message

        message = self._update(transaction_id, append)
        dispatch(
            self.notifier,
            message.to_user_id,
            NotificationEvent.MESSAGE_SENT,
            {
                "transaction_id": transaction_id,
                "from_user_id": user_id,
                "from_user_name": sender_name,
                "message": body,
            },
        )
        return Result.success(message)

    @returns_result
    def get_messages(self, user_id: str, transaction_id: str) -> Result[list[Message]]:
        transaction = load(self.repository, transaction_id)
        require_participant(transaction, user_id)
        return Result.success(list(transaction.messages))

    @returns_result
    def mark_message_as_read(
        self, user_id: str, transaction_id: str, message_index: int | None = None
    ) -> Result[int]:
        """
        Mark messages addressed to user_id as read.

        Args:
            message_index: Position in the log; None marks every unread
                message addressed to the caller

        Returns:
            Result with the number of messages marked
        """

        def mark(transaction: Transaction) -> tuple[list[Transaction], int]:
            require_participant(transaction, user_id)
            if message_index is None:
                indexes = [
                    i
                    for i, message in enumerate(transaction.messages)
                    if message.to_user_id == user_id and not message.read
                ]
            else:
                if not 0 <= message_index < len(transaction.messages):
                    raise OperationFailed(
                        Outcome.NOT_FOUND, f"Message {message_index} not found on {transaction_id}"
                    )
                if transaction.messages[message_index].to_user_id != user_id:
                    raise OperationFailed(
                        Outcome.NOT_AUTHORIZED, "Only the addressee can mark a message as read"
                    )
                indexes = [message_index]
            if not indexes:
                return [], 0
            changes = [_mark_read(record, indexes) for record in self._with_mirror(transaction)]
            return changes, len(indexes)

        return Result.success(self._update(transaction_id, mark))

    @returns_result
    def report_issue(
        self, user_id: str, transaction_id: str, reason: str, details: str = ""
    ) -> Result[Report]:
        """
        File an issue report against a transaction.

        Allowed in every state, terminal ones included; the report log is
        the only part of a finished record that still grows.
        """
        try:
            parsed_reason = ReportReason(reason)
        except ValueError:
            raise OperationFailed(
                Outcome.INVALID_REASON,
                f"Invalid reason {reason!r}, expected one of "
                + ", ".join(r.value for r in ReportReason),
            ) from None

        report = Report(
            user_id=user_id,
            reason=parsed_reason,
            details=details or "",
            timestamp=utc_now(),
        )

        def append(transaction: Transaction) -> tuple[list[Transaction], Report]:
            require_participant(transaction, user_id)
            changes = [dataclasses.replace(transaction, reports=transaction.reports + (report,))]
            return changes, report

        self._update(transaction_id, append)
        logger.warning(
            "Issue reported on %s by %s: %s", transaction_id, user_id, parsed_reason.value
        )
        return Result.success(report)

    @returns_result
    def resolve_report(self, transaction_id: str, report_index: int) -> Result[Report]:
        """Mark a filed report as resolved (operations console action)."""

        def resolve(transaction: Transaction) -> tuple[list[Transaction], Report]:
            if not 0 <= report_index < len(transaction.reports):
                raise OperationFailed(
                    Outcome.NOT_FOUND, f"Report {report_index} not found on {transaction_id}"
                )
            report = dataclasses.replace(
                transaction.reports[report_index], status=ReportStatus.RESOLVED
            )
            reports = list(transaction.reports)
            reports[report_index] = report
            return [dataclasses.replace(transaction, reports=tuple(reports))], report

        report = self._update(transaction_id, resolve)
        logger.info("Report %d on %s resolved", report_index, transaction_id)
        return Result.success(report)

    def _with_mirror(self, transaction: Transaction) -> list[Transaction]:
        mirror = load_partner(self.repository, transaction)
        if mirror is None:
            return [transaction]
        return [transaction, mirror]

    def _update(
        self, transaction_id: str, build: Callable[[Transaction], tuple[list[Transaction], T]]
    ) -> T:
        """Re-read, rebuild and commit until the write lands or retries run out."""
        attempts = max(1, self.max_conflict_retries)
        for attempt in range(1, attempts + 1):
            changes, value = build(load(self.repository, transaction_id))
            if not changes or self.repository.commit(changes):
                return value
            logger.warning(
                "Ledger update on %s conflicted (attempt %d/%d)", transaction_id, attempt, attempts
            )
        raise conflict(transaction_id)


def _mark_read(transaction: Transaction, indexes: list[int]) -> Transaction:
    messages = list(transaction.messages)
    for index in indexes:
        if index < len(messages):
            messages[index] = dataclasses.replace(messages[index], read=True)
    return dataclasses.replace(transaction, messages=tuple(messages))
