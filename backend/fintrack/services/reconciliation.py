"""
Reconciliation Engine

Produces the authoritative, date-ordered ledger for one bank link by merging
freshly synced aggregator transactions with everything already in the ledger,
including internal transfers where the bank is sender or receiver.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, time as dt_time
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from fintrack.config import settings
from fintrack.database.models import BankLinkStatus
from fintrack.exceptions import DuplicateTransaction, PersistenceFailure
from fintrack.models.schemas import (
    BankLinkRecord,
    ExternalTransaction,
    LedgerEntry,
    LedgerResult,
    LedgerTransactionCreate,
    SyncStatus,
    TransactionDirection,
)
from fintrack.services.categories import map_category
from fintrack.services.fingerprint import fingerprint
from fintrack.services.sync_walker import TransactionSyncWalker

logger = logging.getLogger(__name__)


def merge_ledgers(*sources: Iterable[LedgerEntry]) -> List[LedgerEntry]:
    """
    Merge ledger lists into one, newest date first.

    Entries are deduplicated by id. Entries sharing a date keep their
    creation order.
    """
    unique = {}
    for source in sources:
        for entry in source:
            unique.setdefault(entry.id, entry)

    by_creation = sorted(unique.values(), key=lambda entry: entry.created_at)
    # sorted() is stable, also with reverse=True
    return sorted(by_creation, key=lambda entry: entry.date, reverse=True)


def to_ledger_transaction(txn: ExternalTransaction, bank_link: BankLinkRecord) -> LedgerTransactionCreate:
    """
    Map an aggregator transaction onto a ledger row owned by `bank_link`.

    Negative amounts are debits (the bank is the sender), everything else is
    a credit (the bank is the receiver). The stored amount is always positive.
    """
    is_debit = txn.amount < 0
    merchant = txn.merchant_name or txn.name

    return LedgerTransactionCreate(
        name=txn.name or txn.merchant_name or "Unknown Transaction",
        amount=abs(txn.amount),
        type=TransactionDirection.DEBIT if is_debit else TransactionDirection.CREDIT,
        sender_bank_id=bank_link.id if is_debit else None,
        receiver_bank_id=None if is_debit else bank_link.id,
        user_id=bank_link.user_id,
        category=map_category([txn.category, *txn.category_hierarchy]),
        channel=txn.payment_channel,
        date=datetime.combine(txn.date, dt_time.min),
        merchant=txn.merchant_name,
        logo_url=txn.logo_url,
        website=txn.website,
        plaid_transaction_id=txn.transaction_id,
        fingerprint=fingerprint(txn.amount, txn.date, merchant, bank_link.user_id, bank_link.id),
    )


class ReconciliationEngine:
    """Builds one bank link's ledger from the aggregator and the ledger store"""

    def __init__(
        self,
        plaid_client,
        ledger_store,
        bank_links,
        walker: Optional[TransactionSyncWalker] = None,
        audit_logger=None,
        max_workers: Optional[int] = None,
    ):
        self.plaid_client = plaid_client
        self.ledger_store = ledger_store
        self.bank_links = bank_links
        self.walker = walker or TransactionSyncWalker(plaid_client)
        self.audit_logger = audit_logger
        self.max_workers = max_workers or settings.RECONCILE_MAX_WORKERS

    def reconcile(self, bank_link: BankLinkRecord) -> LedgerResult:
        """
        Sync, persist and merge the ledger for one bank link.

        Aggregator failures are reported through `status`, never raised.

        Args:
            bank_link: Link with a decrypted access token

        Returns:
            LedgerResult with the merged transactions and sync status
        """
        start_time = time.time()
        cursor = self.bank_links.get_cursor(bank_link.id)
        sync_type = "incremental" if cursor else "initial"

        logger.info(f"[RECONCILE] Starting {sync_type} sync for bank link {bank_link.id}")

        walk = self.walker.walk(bank_link.access_token, cursor)

        # The walk covers every account on the item; only this link's account belongs here
        own_transactions = [txn for txn in walk.transactions if txn.account_id == bank_link.account_id]
        if len(own_transactions) < len(walk.transactions):
            logger.debug(
                f"[RECONCILE] Skipping {len(walk.transactions) - len(own_transactions)} transactions "
                f"of other accounts on item {bank_link.item_id}"
            )

        synced = self.ingest(bank_link, own_transactions)
        stored = self.ledger_store.list_by_sender_or_receiver(bank_link.id)
        transactions = merge_ledgers(synced, stored)

        self._record_outcome(bank_link, walk)

        duration_ms = int((time.time() - start_time) * 1000)
        if self.audit_logger is not None:
            self.audit_logger.record_walk(
                bank_link_id=bank_link.id,
                user_id=bank_link.user_id,
                result=walk,
                sync_type=sync_type,
                persisted=len(synced),
                duration_ms=duration_ms,
            )

        logger.info(
            f"[RECONCILE] Bank link {bank_link.id}: status={walk.status.value}, "
            f"synced={len(synced)}, ledger={len(transactions)} in {duration_ms}ms"
        )

        consent_required = walk.status == SyncStatus.CONSENT_REQUIRED
        return LedgerResult(
            transactions=transactions,
            status=walk.status,
            access_token=bank_link.access_token if consent_required else None,
            error_code=walk.error_code,
        )

    def ingest(self, bank_link: BankLinkRecord, transactions: List[ExternalTransaction]) -> List[LedgerEntry]:
        """
        Persist aggregator transactions not yet in the ledger.

        Returns the ledger entries for every transaction that is now stored,
        whether written by this call or earlier. Failed writes are left out.
        """
        if not transactions:
            return []

        if self.max_workers > 1 and len(transactions) > 1:
            workers = min(self.max_workers, len(transactions))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest") as pool:
                results = list(pool.map(lambda txn: self._ingest_one(bank_link, txn), transactions))
        else:
            results = [self._ingest_one(bank_link, txn) for txn in transactions]

        return [entry for entry in results if entry is not None]

    def _ingest_one(self, bank_link: BankLinkRecord, txn: ExternalTransaction) -> Optional[LedgerEntry]:
        try:
            new_txn = to_ledger_transaction(txn, bank_link)

            existing = self.ledger_store.find_by_fingerprint(new_txn.fingerprint)
            if existing is not None:
                logger.debug(f"Duplicate transaction skipped: {new_txn.fingerprint[:12]}")
                return existing

            try:
                return self.ledger_store.create(new_txn)
            except DuplicateTransaction:
                # A concurrent ingestion won the insert
                return self.ledger_store.find_by_fingerprint(new_txn.fingerprint)

        except (PersistenceFailure, SQLAlchemyError) as e:
            logger.error(
                f"[RECONCILE] Error storing transaction {txn.transaction_id} "
                f"for bank link {bank_link.id}: {e}"
            )
            return None

    def _record_outcome(self, bank_link: BankLinkRecord, walk):
        try:
            if walk.status == SyncStatus.COMPLETE:
                self.bank_links.save_cursor(bank_link.id, walk.next_cursor)
                self.bank_links.update_status(bank_link.id, BankLinkStatus.ACTIVE, synced=True)
            elif walk.status == SyncStatus.CONSENT_REQUIRED:
                self.bank_links.update_status(
                    bank_link.id,
                    BankLinkStatus.CONSENT_REQUIRED,
                    error_message=walk.error_message or "Consent required - please re-link your account",
                )
            else:
                self.bank_links.update_status(bank_link.id, BankLinkStatus.ERROR, error_message=walk.error_message)
        except SQLAlchemyError as e:
            logger.error(f"[RECONCILE] Failed to record sync outcome for bank link {bank_link.id}: {e}")
