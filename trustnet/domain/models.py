"""
Domain models - Users, transactions and their append-only logs.

Transaction records are immutable dataclasses. Every state change produces a
new record via dataclasses.replace(); the repository decides whether the new
record may be stored by comparing the version it was read at.

Transaction State Machine
=========================

    open -> pending_match      (initiate_match_request, by this side)
    open -> matched            (confirm_match_request accept, as responder)
    open -> cancelled
    pending_match -> matched   (confirm_match_request accept, requester side)
    pending_match -> open      (confirm_match_request reject)
    pending_match -> cancelled
    matched -> proof_uploaded  (first proof)
    matched -> cancelled
    proof_uploaded -> completed (second proof or complete_transaction)

Terminal States: completed, cancelled
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class TransactionStatus(str, Enum):
    """Lifecycle states of a transfer request."""

    OPEN = "open"
    PENDING_MATCH = "pending_match"
    MATCHED = "matched"
    PROOF_UPLOADED = "proof_uploaded"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset(
    {
        TransactionStatus.OPEN,
        TransactionStatus.PENDING_MATCH,
        TransactionStatus.MATCHED,
        TransactionStatus.PROOF_UPLOADED,
    }
)
TERMINAL_STATUSES = frozenset({TransactionStatus.COMPLETED, TransactionStatus.CANCELLED})
CANCELLABLE_STATUSES = frozenset(
    {TransactionStatus.OPEN, TransactionStatus.PENDING_MATCH, TransactionStatus.MATCHED}
)
PAYMENT_STATUSES = frozenset({TransactionStatus.MATCHED, TransactionStatus.PROOF_UPLOADED})


class Relationship(str, Enum):
    """How the counter-party is connected to a user in the referral tree."""

    REFERRER = "referrer"
    REFEREE = "referee"
    SIBLING = "sibling"

    def inverse(self) -> "Relationship":
        """The same connection seen from the other user's side."""
        if self is Relationship.REFERRER:
            return Relationship.REFEREE
        if self is Relationship.REFEREE:
            return Relationship.REFERRER
        return Relationship.SIBLING


class ReportReason(str, Enum):
    NO_RESPONSE = "no_response"
    PAYMENT_ISSUE = "payment_issue"
    WRONG_AMOUNT = "wrong_amount"
    OTHER = "other"


class ReportStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class User:
    """User record as exposed by the identity subsystem."""

    user_id: str
    name: str
    referred_by: str
    referral_code: str
    trust_score: int = 20
    completed_transactions: int = 0

    @property
    def is_root(self) -> bool:
        return self.referred_by == self.user_id


@dataclass(frozen=True)
class Party:
    user_id: str | None
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class Message:
    from_user_id: str
    from_user_name: str
    to_user_id: str
    message: str
    timestamp: datetime
    read: bool = False


@dataclass(frozen=True)
class Proof:
    user_id: str
    image_id: str
    uploaded_at: datetime


@dataclass(frozen=True)
class Report:
    user_id: str
    reason: ReportReason
    details: str
    timestamp: datetime
    status: ReportStatus = ReportStatus.PENDING


@dataclass(frozen=True)
class Timestamps:
    created: datetime
    match_requested: datetime | None = None
    matched: datetime | None = None
    completed: datetime | None = None


@dataclass(frozen=True)
class Transaction:
    """
    A transfer request and, once matched, one side of a trade.

    A matched trade is stored as two mirrored records (one per initiator)
    linked through partner_transaction_id.
    """

    transaction_id: str
    initiator: Party
    recipient: Party
    rate: Decimal
    status: TransactionStatus
    timestamps: Timestamps
    notes: str | None = None
    relationship: Relationship | None = None
    pending_partner_transaction_id: str | None = None
    partner_transaction_id: str | None = None
    messages: tuple[Message, ...] = field(default_factory=tuple)
    proofs: tuple[Proof, ...] = field(default_factory=tuple)
    reports: tuple[Report, ...] = field(default_factory=tuple)
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def participants(self) -> tuple[str, ...]:
        if self.recipient.user_id is None:
            return (self.initiator.user_id,)
        return (self.initiator.user_id, self.recipient.user_id)

    def is_participant(self, user_id: str) -> bool:
        return user_id in self.participants()

    def role_of(self, user_id: str) -> str | None:
        if user_id == self.initiator.user_id:
            return "initiator"
        if user_id == self.recipient.user_id:
            return "recipient"
        return None

    def counterparty(self, user_id: str) -> str | None:
        if user_id == self.initiator.user_id:
            return self.recipient.user_id
        if user_id == self.recipient.user_id:
            return self.initiator.user_id
        return None

    def has_proof_from(self, user_id: str) -> bool:
        return any(proof.user_id == user_id for proof in self.proofs)


def convert(amount: Decimal, rate: Decimal) -> Decimal:
    """Recipient amount for an initiator amount at the given rate."""
    return amount * rate
