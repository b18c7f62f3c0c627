"""
Domain exceptions - Semantic error types for the exchange core.

Operations never leak these to callers: the returns_result decorator
converts OperationFailed into a failed Result at the operation boundary.
"""

import functools
import logging
from collections.abc import Callable
from typing import Any

from .models import TransactionStatus
from .results import Outcome, Result

logger = logging.getLogger(__name__)


class ExchangeError(Exception):
    """Base class for exchange domain errors."""

    pass


class OperationFailed(ExchangeError):
    """An expected business condition stopped the operation."""

    def __init__(
        self,
        outcome: Outcome,
        message: str,
        current_status: TransactionStatus | None = None,
    ) -> None:
        super().__init__(message)
        self.outcome = outcome
        self.message = message
        self.current_status = current_status

    def to_result(self) -> Result:
        return Result.failure(self.outcome, self.message, self.current_status)


def returns_result(func: Callable[..., Result[Any]]) -> Callable[..., Result[Any]]:
    """Convert OperationFailed raised inside an operation into a failed Result."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Result[Any]:
        try:
            return func(*args, **kwargs)
        except OperationFailed as exc:
            logger.info("%s rejected: %s (%s)", func.__name__, exc.outcome.value, exc.message)
            return exc.to_result()

    return wrapper
