"""
Ledger Store

Persistence for ledger transactions. Every call opens its own session so the
store can be shared by concurrent ingestion threads. Uniqueness of
`fingerprint` is enforced by the database, not by the check before insert.
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from fintrack.database.models import LedgerTransaction
from fintrack.database.session import session_scope
from fintrack.exceptions import DuplicateTransaction, PersistenceFailure
from fintrack.models.schemas import LedgerEntry, LedgerTransactionCreate, TransactionDirection

logger = logging.getLogger(__name__)


class SqlLedgerStore:
    """Ledger store backed by SQLAlchemy"""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def create(self, transaction: LedgerTransactionCreate) -> LedgerEntry:
        """
        Insert a ledger transaction.

        Raises:
            DuplicateTransaction: a row with the same fingerprint exists
            PersistenceFailure: the write failed for any other reason
        """
        row = LedgerTransaction(
            id=str(uuid.uuid4()),
            name=transaction.name,
            amount=abs(transaction.amount),
            type=transaction.type.value,
            sender_bank_id=transaction.sender_bank_id,
            receiver_bank_id=transaction.receiver_bank_id,
            user_id=transaction.user_id,
            category=transaction.category,
            channel=transaction.channel,
            date=transaction.date,
            merchant=transaction.merchant,
            logo_url=transaction.logo_url,
            website=transaction.website,
            plaid_transaction_id=transaction.plaid_transaction_id,
            fingerprint=transaction.fingerprint,
            created_at=datetime.utcnow(),
        )

        try:
            with session_scope(self._session_factory) as db:
                db.add(row)
                db.flush()
                entry = LedgerEntry.model_validate(row)
        except IntegrityError as e:
            if self.find_by_fingerprint(transaction.fingerprint) is not None:
                raise DuplicateTransaction(transaction.fingerprint) from e
            raise PersistenceFailure(f"Integrity error writing transaction: {e.orig}") from e
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to write transaction: {e}") from e

        logger.debug(f"Created ledger transaction {entry.id} ({entry.type}) fingerprint={entry.fingerprint[:12]}")
        return entry

    def find_by_fingerprint(self, fingerprint: str) -> Optional[LedgerEntry]:
        with session_scope(self._session_factory) as db:
            row = db.query(LedgerTransaction).filter(
                LedgerTransaction.fingerprint == fingerprint
            ).first()
            return LedgerEntry.model_validate(row) if row else None

    def list_by_sender_or_receiver(self, bank_id: str) -> List[LedgerEntry]:
        """
        Transactions where the bank sent money (debit) or received money (credit).

        A row matching both predicates appears once.
        """
        with session_scope(self._session_factory) as db:
            sent = db.query(LedgerTransaction).filter(
                LedgerTransaction.sender_bank_id == bank_id,
                LedgerTransaction.type == TransactionDirection.DEBIT.value,
            ).order_by(LedgerTransaction.created_at.asc()).all()

            received = db.query(LedgerTransaction).filter(
                LedgerTransaction.receiver_bank_id == bank_id,
                LedgerTransaction.type == TransactionDirection.CREDIT.value,
            ).order_by(LedgerTransaction.created_at.asc()).all()

            unique = {}
            for row in sent + received:
                unique.setdefault(row.id, LedgerEntry.model_validate(row))

        return sorted(unique.values(), key=lambda entry: entry.created_at)

    def list_by_user(self, user_id: str, limit: int = 100, order: str = "desc") -> List[LedgerEntry]:
        """Latest (or earliest, with order="asc") ledger rows for a user"""
        date_order = LedgerTransaction.date.asc() if order == "asc" else LedgerTransaction.date.desc()
        created_order = LedgerTransaction.created_at.asc() if order == "asc" else LedgerTransaction.created_at.desc()

        with session_scope(self._session_factory) as db:
            rows = db.query(LedgerTransaction).filter(
                LedgerTransaction.user_id == user_id
            ).order_by(date_order, created_order).limit(limit).all()
            return [LedgerEntry.model_validate(row) for row in rows]

    def count(self) -> int:
        with session_scope(self._session_factory) as db:
            return db.query(LedgerTransaction).count()
