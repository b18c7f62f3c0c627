"""
Shared fixtures for adversarial tests.

Provides a repository wrapper that holds every racing thread at its first
write until all of them have reached it. No thread writes before every
thread has read, so each decides from the same snapshot and the
conditional writes really collide.
"""

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import pytest

from trustnet.adapters.repository.memory import (
    InMemoryTransactionRepository,
    InMemoryUserDirectory,
)
from trustnet.domain.models import Transaction
from trustnet.domain.ports import InsertResult
from trustnet.domain.service import ExchangeService
from tests.fakes import RecordingNotifier

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial


class InterleavingRepository:
    """
    Delegates to an in-memory repository.

    Once armed for N parties, the first insert_open() or commit() of each
    thread blocks on a barrier. Later writes (retries) pass through.
    """

    def __init__(self, inner: InMemoryTransactionRepository) -> None:
        self._inner = inner
        self._barrier: threading.Barrier | None = None
        self._local = threading.local()

    def arm(self, parties: int) -> None:
        self._barrier = threading.Barrier(parties, timeout=5)

    def disarm(self) -> None:
        self._barrier = None

    def _sync(self) -> None:
        if self._barrier is None or getattr(self._local, "synced", False):
            return
        self._local.synced = True
        self._barrier.wait()

    def insert_open(self, transaction: Transaction) -> InsertResult:
        self._sync()
        return self._inner.insert_open(transaction)

    def commit(self, changes: Sequence[Transaction]) -> bool:
        self._sync()
        return self._inner.commit(changes)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)


@pytest.fixture
def racing_repository(repository: InMemoryTransactionRepository) -> InterleavingRepository:
    return InterleavingRepository(repository)


@pytest.fixture
def racing_service(
    racing_repository: InterleavingRepository,
    users: InMemoryUserDirectory,
    notifier: RecordingNotifier,
    service: ExchangeService,
) -> ExchangeService:
    """Service over the interleaving repository, sharing stores with `service`."""
    return ExchangeService(
        repository=racing_repository,
        users=users,
        notifier=notifier,
        currencies=service.currencies,
    )


@pytest.fixture
def race(racing_repository: InterleavingRepository) -> Callable[..., list[Any]]:
    """Run calls concurrently with their first writes aligned; return results in order."""

    def run(*calls: Callable[[], Any]) -> list[Any]:
        racing_repository.arm(len(calls))
        try:
            with ThreadPoolExecutor(max_workers=len(calls)) as executor:
                futures = [executor.submit(call) for call in calls]
                return [future.result() for future in futures]
        finally:
            racing_repository.disarm()

    return run
