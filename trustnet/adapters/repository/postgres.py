"""
PostgreSQL repository adapters - Implement TransactionRepository and UserDirectory.

This module provides the PostgreSQL implementation of the domain's
repository ports using psycopg3 with raw SQL.

Concurrency Design - Optimistic Writes Over Row Locks:
------------------------------------------------------
1. **One active transaction per user**: enforced by the partial unique index
   uq_transactions_one_active_per_initiator. insert_open() uses
   INSERT ... ON CONFLICT DO NOTHING, so of two racing inserts exactly one
   lands and the other sees rowcount 0.

2. **Conditional multi-record writes**: commit() locks every involved row
   with SELECT ... FOR UPDATE in transaction_id order (no lock-order
   deadlocks), compares each stored version with the version the domain
   read, and only then updates. Any mismatch rolls the whole database
   transaction back, so a matched pair is never half written.

3. **Trust counters**: increment_trust() is a single UPDATE ... SET
   trust_score = trust_score + %s, never a read-modify-write.
"""

import logging
from collections.abc import Collection, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from psycopg import errors
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from trustnet.domain.models import (
    ACTIVE_STATUSES,
    Message,
    Party,
    Proof,
    Relationship,
    Report,
    ReportReason,
    ReportStatus,
    Timestamps,
    Transaction,
    TransactionStatus,
    User,
)
from trustnet.domain.ports import InsertResult

logger = logging.getLogger(__name__)

_ACTIVE = [status.value for status in ACTIVE_STATUSES]

_COLUMNS = """
    transaction_id, initiator_user_id, initiator_amount, initiator_currency,
    recipient_user_id, recipient_amount, recipient_currency, rate, status, notes,
    relationship, pending_partner_transaction_id, partner_transaction_id,
    messages, proofs, reports, created_at, match_requested_at, matched_at,
    completed_at, version
"""


def _message_to_json(message: Message) -> dict[str, Any]:
    return {
        "from_user_id": message.from_user_id,
        "from_user_name": message.from_user_name,
        "to_user_id": message.to_user_id,
        "message": message.message,
        "timestamp": message.timestamp.isoformat(),
        "read": message.read,
    }


def _proof_to_json(proof: Proof) -> dict[str, Any]:
    return {
        "user_id": proof.user_id,
        "image_id": proof.image_id,
        "uploaded_at": proof.uploaded_at.isoformat(),
    }


def _report_to_json(report: Report) -> dict[str, Any]:
    return {
        "user_id": report.user_id,
        "reason": report.reason.value,
        "details": report.details,
        "timestamp": report.timestamp.isoformat(),
        "status": report.status.value,
    }


def _params(transaction: Transaction) -> dict[str, Any]:
    """Column values for INSERT/UPDATE statements."""
    return {
        "transaction_id": transaction.transaction_id,
        "initiator_user_id": transaction.initiator.user_id,
        "initiator_amount": transaction.initiator.amount,
        "initiator_currency": transaction.initiator.currency,
        "recipient_user_id": transaction.recipient.user_id,
        "recipient_amount": transaction.recipient.amount,
        "recipient_currency": transaction.recipient.currency,
        "rate": transaction.rate,
        "status": transaction.status.value,
        "notes": transaction.notes,
        "relationship": transaction.relationship.value if transaction.relationship else None,
        "pending_partner_transaction_id": transaction.pending_partner_transaction_id,
        "partner_transaction_id": transaction.partner_transaction_id,
        "messages": Jsonb([_message_to_json(m) for m in transaction.messages]),
        "proofs": Jsonb([_proof_to_json(p) for p in transaction.proofs]),
        "reports": Jsonb([_report_to_json(r) for r in transaction.reports]),
        "created_at": transaction.timestamps.created,
        "match_requested_at": transaction.timestamps.match_requested,
        "matched_at": transaction.timestamps.matched,
        "completed_at": transaction.timestamps.completed,
        "version": transaction.version,
    }


def _row_to_transaction(row: dict[str, Any]) -> Transaction:
    return Transaction(
        transaction_id=row["transaction_id"],
        initiator=Party(
            user_id=row["initiator_user_id"],
            amount=row["initiator_amount"],
            currency=row["initiator_currency"],
        ),
        recipient=Party(
            user_id=row["recipient_user_id"],
            amount=row["recipient_amount"],
            currency=row["recipient_currency"],
        ),
        rate=row["rate"],
        status=TransactionStatus(row["status"]),
        notes=row["notes"],
        relationship=Relationship(row["relationship"]) if row["relationship"] else None,
        pending_partner_transaction_id=row["pending_partner_transaction_id"],
        partner_transaction_id=row["partner_transaction_id"],
        messages=tuple(
            Message(
                from_user_id=m["from_user_id"],
                from_user_name=m["from_user_name"],
                to_user_id=m["to_user_id"],
                message=m["message"],
                timestamp=datetime.fromisoformat(m["timestamp"]),
                read=m["read"],
            )
            for m in row["messages"]
        ),
        proofs=tuple(
            Proof(
                user_id=p["user_id"],
                image_id=p["image_id"],
                uploaded_at=datetime.fromisoformat(p["uploaded_at"]),
            )
            for p in row["proofs"]
        ),
        reports=tuple(
            Report(
                user_id=r["user_id"],
                reason=ReportReason(r["reason"]),
                details=r["details"],
                timestamp=datetime.fromisoformat(r["timestamp"]),
                status=ReportStatus(r["status"]),
            )
            for r in row["reports"]
        ),
        timestamps=Timestamps(
            created=row["created_at"],
            match_requested=row["match_requested_at"],
            matched=row["matched_at"],
            completed=row["completed_at"],
        ),
        version=row["version"],
    )


class PostgresTransactionRepository:
    """
    Implements TransactionRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def insert_open(self, transaction: Transaction) -> InsertResult:
        """
        Atomically insert a new open transaction.

        ON CONFLICT DO NOTHING covers both the primary key and the partial
        unique index on active initiators; a follow-up lookup tells the two
        apart when nothing was inserted.
        """
        insert_sql = f"""
            INSERT INTO transactions ({_COLUMNS})
            VALUES (
                %(transaction_id)s, %(initiator_user_id)s, %(initiator_amount)s,
                %(initiator_currency)s, %(recipient_user_id)s, %(recipient_amount)s,
                %(recipient_currency)s, %(rate)s, %(status)s, %(notes)s, %(relationship)s,
                %(pending_partner_transaction_id)s, %(partner_transaction_id)s,
                %(messages)s, %(proofs)s, %(reports)s, %(created_at)s,
                %(match_requested_at)s, %(matched_at)s, %(completed_at)s, 0
            )
            ON CONFLICT DO NOTHING
        """

        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(insert_sql, _params(transaction))
            if cursor.rowcount == 1:
                conn.commit()
                return InsertResult.CREATED

            cursor.execute(
                "SELECT 1 FROM transactions WHERE transaction_id = %s",
                (transaction.transaction_id,),
            )
            duplicate = cursor.fetchone() is not None
            conn.commit()
            return InsertResult.DUPLICATE_ID if duplicate else InsertResult.ACTIVE_EXISTS

    def get(self, transaction_id: str) -> Transaction | None:
        sql = f"SELECT {_COLUMNS} FROM transactions WHERE transaction_id = %s"
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (transaction_id,))
            row = cursor.fetchone()
        return _row_to_transaction(row) if row is not None else None

    def find_active_for_user(self, user_id: str) -> list[Transaction]:
        sql = f"""
            SELECT {_COLUMNS} FROM transactions
            WHERE (initiator_user_id = %s OR recipient_user_id = %s)
              AND status = ANY(%s)
            ORDER BY created_at, transaction_id
        """
        return self._select(sql, (user_id, user_id, _ACTIVE))

    def find_open_offers(
        self, initiator_ids: Collection[str], currency: str, target_currency: str
    ) -> list[Transaction]:
        sql = f"""
            SELECT {_COLUMNS} FROM transactions
            WHERE status = %s
              AND initiator_user_id = ANY(%s)
              AND initiator_currency = %s
              AND recipient_currency = %s
            ORDER BY created_at, transaction_id
        """
        return self._select(
            sql, (TransactionStatus.OPEN.value, list(initiator_ids), currency, target_currency)
        )

    def find_pending_requests(self, partner_transaction_id: str) -> list[Transaction]:
        sql = f"""
            SELECT {_COLUMNS} FROM transactions
            WHERE status = %s AND pending_partner_transaction_id = %s
            ORDER BY match_requested_at, transaction_id
        """
        return self._select(sql, (TransactionStatus.PENDING_MATCH.value, partner_transaction_id))

    def commit(self, changes: Sequence[Transaction]) -> bool:
        """
        Write changed records all-or-nothing if no record moved since it was read.

        Uses SELECT FOR UPDATE to lock every involved row before comparing
        versions, preventing interleaved writers from both succeeding.
        """
        expected = {record.transaction_id: record.version for record in changes}

        lock_sql = """
            SELECT transaction_id, version FROM transactions
            WHERE transaction_id = ANY(%s)
            ORDER BY transaction_id
            FOR UPDATE
        """

        update_sql = """
            UPDATE transactions
            SET initiator_amount = %(initiator_amount)s,
                recipient_user_id = %(recipient_user_id)s,
                recipient_amount = %(recipient_amount)s,
                rate = %(rate)s,
                status = %(status)s,
                notes = %(notes)s,
                relationship = %(relationship)s,
                pending_partner_transaction_id = %(pending_partner_transaction_id)s,
                partner_transaction_id = %(partner_transaction_id)s,
                messages = %(messages)s,
                proofs = %(proofs)s,
                reports = %(reports)s,
                match_requested_at = %(match_requested_at)s,
                matched_at = %(matched_at)s,
                completed_at = %(completed_at)s,
                version = version + 1
            WHERE transaction_id = %(transaction_id)s AND version = %(version)s
        """

        with self._pool.connection() as conn, conn.cursor() as cursor:
            try:
                cursor.execute(lock_sql, (sorted(expected),))
                current = dict(cursor.fetchall())
                if any(current.get(tid) != version for tid, version in expected.items()):
                    conn.rollback()
                    return False

                for change in changes:
                    cursor.execute(update_sql, _params(change))
                    if cursor.rowcount != 1:
                        conn.rollback()
                        return False
            except errors.DeadlockDetected:
                conn.rollback()
                logger.warning("Deadlock committing %s, reporting conflict", sorted(expected))
                return False
            conn.commit()
            return True

    def _select(self, sql: str, params: tuple) -> list[Transaction]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()
        return [_row_to_transaction(row) for row in rows]


class PostgresUserDirectory:
    """
    Implements UserDirectory protocol over the identity subsystem's users table.

    Read-only apart from the atomic trust counters.
    """

    _USER_COLUMNS = (
        "user_id, name, referred_by, referral_code, trust_score, completed_transactions"
    )

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get_user(self, user_id: str) -> User | None:
        sql = f"SELECT {self._USER_COLUMNS} FROM users WHERE user_id = %s"
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (user_id,))
            row = cursor.fetchone()
        return User(**row) if row is not None else None

    def list_referrals(self, user_id: str) -> list[User]:
        sql = f"""
            SELECT {self._USER_COLUMNS} FROM users
            WHERE referred_by = %s AND user_id <> %s
            ORDER BY user_id
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (user_id, user_id))
            rows = cursor.fetchall()
        return [User(**row) for row in rows]

    def increment_trust(self, user_id: str, delta: int) -> bool:
        sql = """
            UPDATE users
            SET trust_score = trust_score + %s,
                completed_transactions = completed_transactions + 1
            WHERE user_id = %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (delta, user_id))
            conn.commit()
            return cursor.rowcount == 1


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: trustnet/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
