"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory stores seeded with a small referral tree
- A recording notifier
- A wired ExchangeService and a matched pair helper

Referral tree used throughout the suite:

    alice (root)          erin (root)
    ├── bob
    │   └── dave
    └── carol
"""

from decimal import Decimal

import pytest

from trustnet.adapters.currency.static import StaticCurrencyCatalog
from trustnet.adapters.repository.memory import (
    InMemoryTransactionRepository,
    InMemoryUserDirectory,
)
from trustnet.domain.models import Transaction
from trustnet.domain.service import ExchangeService
from tests.fakes import RecordingNotifier


@pytest.fixture
def users() -> InMemoryUserDirectory:
    """User directory seeded with the referral tree above."""
    directory = InMemoryUserDirectory(initial_trust_score=20)
    directory.register("alice", "Alice")
    directory.register("bob", "Bob", referred_by="alice")
    directory.register("carol", "Carol", referred_by="alice")
    directory.register("dave", "Dave", referred_by="bob")
    directory.register("erin", "Erin")
    return directory


@pytest.fixture
def repository() -> InMemoryTransactionRepository:
    return InMemoryTransactionRepository()


@pytest.fixture
def currencies() -> StaticCurrencyCatalog:
    return StaticCurrencyCatalog(
        ["AED", "SDG", "EGP"],
        {"AED_SDG": Decimal("13.5"), "SDG_AED": Decimal("0.075")},
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(
    repository: InMemoryTransactionRepository,
    users: InMemoryUserDirectory,
    notifier: RecordingNotifier,
    currencies: StaticCurrencyCatalog,
) -> ExchangeService:
    return ExchangeService(
        repository=repository,
        users=users,
        notifier=notifier,
        currencies=currencies,
    )


@pytest.fixture
def open_pair(service: ExchangeService) -> tuple[Transaction, Transaction]:
    """Alice offers 1000 AED -> SDG, Bob offers 74 SDG -> AED."""
    alice_tx = service.create_transfer_request("alice", 1000, "AED", "SDG", rate="13.5").value
    bob_tx = service.create_transfer_request("bob", 74, "SDG", "AED").value
    return alice_tx, bob_tx


@pytest.fixture
def matched_pair(
    service: ExchangeService, open_pair: tuple[Transaction, Transaction]
) -> tuple[Transaction, Transaction]:
    """Alice's and Bob's records after Alice requested and Bob accepted."""
    alice_tx, bob_tx = open_pair
    service.initiate_match_request("alice", alice_tx.transaction_id, bob_tx.transaction_id)
    confirmation = service.confirm_match_request("bob", bob_tx.transaction_id, True).value
    return confirmation.requester_transaction, confirmation.transaction
