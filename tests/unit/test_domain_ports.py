"""
Unit tests for domain ports, results and exceptions.

Tests verify:
- Port interfaces are properly defined
- Outcome codes and Result helpers are stable
- Exceptions are converted to failed Results
- Domain purity (zero framework imports)
"""

import json
import subprocess
from enum import Enum
from pathlib import Path

import pytest

from trustnet.domain.exceptions import ExchangeError, OperationFailed, returns_result
from trustnet.domain.models import TransactionStatus
from trustnet.domain.ports import (
    CurrencyCatalog,
    InsertResult,
    NotificationEvent,
    Notifier,
    TransactionRepository,
    UserDirectory,
)
from trustnet.domain.results import Outcome, Result

DOMAIN_DIR = Path(__file__).resolve().parents[2] / "trustnet" / "domain"


class TestOutcomeEnum:
    def test_outcome_is_str_enum(self) -> None:
        """Outcome uses str mixin for JSON serialization."""
        assert issubclass(Outcome, Enum)
        assert issubclass(Outcome, str)
        assert json.dumps({"reason": Outcome.CONFLICT}) == '{"reason": "conflict"}'

    @pytest.mark.parametrize(
        "name",
        [
            "SUCCESS",
            "INVALID_AMOUNT",
            "INVALID_CURRENCY",
            "INVALID_RATE",
            "NOT_AUTHORIZED",
            "WRONG_STATE",
            "NO_PENDING_REQUEST",
            "ALREADY_UPLOADED",
            "NOT_CONFIRMED",
            "NOT_IN_NETWORK",
            "ACTIVE_TRANSACTION_EXISTS",
            "CONFLICT",
            "NOT_FOUND",
        ],
    )
    def test_outcome_values_are_lowercase_names(self, name: str) -> None:
        assert Outcome[name].value == name.lower()


class TestTransactionStatusEnum:
    def test_values(self) -> None:
        assert [s.value for s in TransactionStatus] == [
            "open",
            "pending_match",
            "matched",
            "proof_uploaded",
            "completed",
            "cancelled",
        ]

    def test_string_comparison(self) -> None:
        assert TransactionStatus.OPEN == "open"


class TestResult:
    def test_success(self) -> None:
        result = Result.success(42)
        assert result.ok
        assert result.value == 42
        assert result.outcome is Outcome.SUCCESS

    def test_failure(self) -> None:
        result = Result.failure(Outcome.WRONG_STATE, "nope", TransactionStatus.MATCHED)
        assert not result.ok
        assert result.value is None
        assert result.current_status is TransactionStatus.MATCHED


class TestExceptions:
    def test_operation_failed_inherits_exchange_error(self) -> None:
        assert issubclass(OperationFailed, ExchangeError)
        assert issubclass(ExchangeError, Exception)

    def test_to_result(self) -> None:
        exc = OperationFailed(Outcome.NOT_FOUND, "missing")
        result = exc.to_result()
        assert result.outcome is Outcome.NOT_FOUND
        assert result.message == "missing"

    def test_returns_result_converts_operation_failed(self) -> None:
        @returns_result
        def failing() -> Result[None]:
            raise OperationFailed(Outcome.CONFLICT, "try again")

        result = failing()

        assert result.outcome is Outcome.CONFLICT
        assert result.message == "try again"

    def test_returns_result_propagates_other_errors(self) -> None:
        @returns_result
        def broken() -> Result[None]:
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            broken()


class TestPorts:
    def test_insert_result_values(self) -> None:
        assert {r.name for r in InsertResult} == {"CREATED", "ACTIVE_EXISTS", "DUPLICATE_ID"}

    def test_notification_events(self) -> None:
        assert NotificationEvent.MATCH_REQUEST_RECEIVED.value == "match_request_received"
        assert NotificationEvent.TRANSACTION_CANCELLED.value == "transaction_cancelled"

    @pytest.mark.parametrize(
        ("port", "methods"),
        [
            (
                TransactionRepository,
                [
                    "insert_open",
                    "get",
                    "find_active_for_user",
                    "find_open_offers",
                    "find_pending_requests",
                    "commit",
                ],
            ),
            (UserDirectory, ["get_user", "list_referrals", "increment_trust"]),
            (Notifier, ["notify"]),
            (CurrencyCatalog, ["supported_currencies", "rate"]),
        ],
    )
    def test_port_methods(self, port: type, methods: list[str]) -> None:
        for method in methods:
            assert callable(getattr(port, method))


class TestDomainPurity:
    """Domain layer imports no framework or driver."""

    @pytest.mark.parametrize(
        "pattern",
        [
            "from fastapi",
            "import fastapi",
            "from pydantic",
            "import pydantic",
            "from psycopg",
            "import psycopg",
        ],
    )
    def test_no_framework_imports_in_domain(self, pattern: str) -> None:
        result = subprocess.run(
            ["grep", "-r", pattern, str(DOMAIN_DIR)],
            capture_output=True,
            text=True,
        )
        assert result.returncode != 0, f"Framework import found: {result.stdout}"
