"""
Operation results - Stable reason codes returned to the calling layer.

Every user-facing operation returns a Result. The calling layer translates
the Outcome into human language; the core only guarantees the code.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from .models import TransactionStatus

T = TypeVar("T")


class Outcome(str, Enum):
    """
    Result of an exchange operation.

    Validation: INVALID_AMOUNT, INVALID_CURRENCY, INVALID_RATE,
        INVALID_REASON, INVALID_ARGUMENT, CURRENCY_MISMATCH
    Authorization: NOT_AUTHORIZED
    State: WRONG_STATE, NO_PENDING_REQUEST, ALREADY_UPLOADED,
        NOT_CONFIRMED, NOT_IN_NETWORK, ACTIVE_TRANSACTION_EXISTS
    Conflict: CONFLICT
    Not found: NOT_FOUND, USER_NOT_FOUND, PARTNER_NOT_FOUND
    """

    SUCCESS = "success"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_CURRENCY = "invalid_currency"
    INVALID_RATE = "invalid_rate"
    INVALID_REASON = "invalid_reason"
    INVALID_ARGUMENT = "invalid_argument"
    CURRENCY_MISMATCH = "currency_mismatch"
    NO_VALID_FIELDS = "no_valid_fields"
    NOT_AUTHORIZED = "not_authorized"
    WRONG_STATE = "wrong_state"
    NO_PENDING_REQUEST = "no_pending_request"
    ALREADY_UPLOADED = "already_uploaded"
    NOT_CONFIRMED = "not_confirmed"
    NOT_IN_NETWORK = "not_in_network"
    ACTIVE_TRANSACTION_EXISTS = "active_transaction_exists"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    USER_NOT_FOUND = "user_not_found"
    PARTNER_NOT_FOUND = "partner_not_found"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success value or typed failure of an operation."""

    outcome: Outcome
    value: T | None = None
    message: str = ""
    current_status: TransactionStatus | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(Outcome.SUCCESS, value)

    @classmethod
    def failure(
        cls,
        outcome: Outcome,
        message: str,
        current_status: TransactionStatus | None = None,
    ) -> "Result[T]":
        return cls(outcome, None, message, current_status)

