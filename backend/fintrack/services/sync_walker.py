"""
Sync Cursor Walker

Drives /transactions/sync pagination from a stored cursor until Plaid reports
no more pages, folding added/modified/removed deltas into one result.
"""
import logging
from collections import OrderedDict
from typing import Dict, Optional, Set

from fintrack.config import settings
from fintrack.exceptions import ConsentRequired, TransientSyncFailure
from fintrack.models.schemas import ExternalTransaction, SyncStatus, SyncWalkResult
from fintrack.services.plaid_client import MUTATION_DURING_PAGINATION

logger = logging.getLogger(__name__)


class _WalkState:
    """Accumulated deltas for one pass over the pages"""

    def __init__(self):
        self.transactions: "OrderedDict[str, ExternalTransaction]" = OrderedDict()
        self.removed_ids: Set[str] = set()
        self.pages = 0
        self.added = 0
        self.modified = 0
        self.removed = 0

    def apply_page(self, page: Dict):
        self.pages += 1

        for txn in page.get("added", []):
            self.transactions[txn.transaction_id] = txn
            self.removed_ids.discard(txn.transaction_id)
            self.added += 1

        for txn in page.get("modified", []):
            # Overwrite in place; modifications to transactions from earlier
            # cycles are not appended because persisted rows are immutable
            if txn.transaction_id in self.transactions:
                self.transactions[txn.transaction_id] = txn
            self.modified += 1

        for transaction_id in page.get("removed", []):
            self.transactions.pop(transaction_id, None)
            self.removed_ids.add(transaction_id)
            self.removed += 1

    def result(self, status: SyncStatus, next_cursor: Optional[str] = None,
               error_code: Optional[str] = None, error_message: Optional[str] = None,
               include_transactions: bool = True) -> SyncWalkResult:
        transactions = []
        if include_transactions:
            transactions = [
                txn for txn_id, txn in self.transactions.items()
                if txn_id not in self.removed_ids
            ]
        return SyncWalkResult(
            transactions=transactions,
            next_cursor=next_cursor,
            status=status,
            error_code=error_code,
            error_message=error_message,
            pages=self.pages,
            added=self.added,
            modified=self.modified,
            removed=self.removed,
        )


class TransactionSyncWalker:
    """Walks transaction delta pages for one access token"""

    def __init__(
        self,
        plaid_client,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        max_restarts: Optional[int] = None,
    ):
        self.plaid_client = plaid_client
        self.page_size = page_size or settings.PLAID_SYNC_PAGE_SIZE
        self.max_pages = max_pages or settings.PLAID_SYNC_MAX_PAGES
        self.max_restarts = settings.PLAID_SYNC_MAX_RESTARTS if max_restarts is None else max_restarts

    def walk(self, access_token: str, cursor: Optional[str] = None) -> SyncWalkResult:
        """
        Fetch every page after `cursor`.

        Never raises for aggregator failures:
          - consent revoked: status consent_required, transactions accumulated so far
          - any other failure: status error, no transactions
          - complete: all transactions, next_cursor to persist

        Args:
            access_token: Plaid access token
            cursor: Persisted cursor, None to start from the beginning of history

        Returns:
            SyncWalkResult
        """
        restarts = 0

        while True:
            state = _WalkState()
            current_cursor = cursor

            try:
                while True:
                    if state.pages >= self.max_pages:
                        logger.error(
                            f"[PLAID SYNC] Aborting walk after {state.pages} pages; "
                            f"aggregator kept reporting has_more"
                        )
                        return state.result(
                            SyncStatus.ERROR,
                            error_message=f"Page limit of {self.max_pages} reached",
                            include_transactions=False,
                        )

                    page = self.plaid_client.sync_transactions(
                        access_token=access_token,
                        cursor=current_cursor,
                        count=self.page_size,
                    )
                    state.apply_page(page)

                    if page.get("next_cursor"):
                        current_cursor = page["next_cursor"]

                    if not page.get("has_more"):
                        break

            except ConsentRequired as e:
                logger.warning(
                    f"[PLAID SYNC] Consent required ({e.error_code}) after {state.pages} pages; "
                    f"returning {len(state.transactions)} accumulated transactions"
                )
                return state.result(
                    SyncStatus.CONSENT_REQUIRED,
                    error_code=e.error_code,
                    error_message=str(e),
                )

            except TransientSyncFailure as e:
                if e.error_code == MUTATION_DURING_PAGINATION and restarts < self.max_restarts:
                    restarts += 1
                    logger.warning(
                        f"[PLAID SYNC] Data changed during pagination, restarting walk "
                        f"({restarts}/{self.max_restarts})"
                    )
                    continue

                logger.error(f"[PLAID SYNC] Walk failed after {state.pages} pages: {e}")
                return state.result(
                    SyncStatus.ERROR,
                    error_code=e.error_code,
                    error_message=str(e),
                    include_transactions=False,
                )

            result = state.result(SyncStatus.COMPLETE, next_cursor=current_cursor)
            logger.info(
                f"[PLAID SYNC] Walk complete: {state.pages} pages, {len(result.transactions)} transactions "
                f"(added={state.added}, modified={state.modified}, removed={state.removed})"
            )
            return result
