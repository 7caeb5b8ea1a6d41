"""
Account Aggregator

Portfolio view across all of a user's bank links. Each link is fetched
independently; one failing link never empties the whole view.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from fintrack.config import settings
from fintrack.exceptions import FintrackError, PartialAccountFailure, SyncError
from fintrack.models.schemas import (
    AccountDetail,
    AccountsOverview,
    AccountSummary,
    BankLinkRecord,
    LedgerEntry,
    SyncStatus,
)

logger = logging.getLogger(__name__)


class AccountAggregator:

    def __init__(
        self,
        plaid_client,
        bank_links,
        reconciliation_engine=None,
        ledger_store=None,
        max_workers: Optional[int] = None,
    ):
        self.plaid_client = plaid_client
        self.bank_links = bank_links
        self.reconciliation_engine = reconciliation_engine
        self.ledger_store = ledger_store
        self.max_workers = max_workers or settings.RECONCILE_MAX_WORKERS

    def get_accounts(self, user_id: str) -> AccountsOverview:
        """
        Live balances for every linked account of a user.

        Totals only cover accounts that were fetched successfully.
        """
        links = self.bank_links.get_bank_links(user_id)
        if not links:
            return AccountsOverview()

        workers = max(1, min(self.max_workers, len(links)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="accounts") as pool:
            results = list(pool.map(self._fetch_summary_or_none, links))

        accounts = [account for account in results if account is not None]
        if len(accounts) < len(links):
            logger.warning(
                f"[ACCOUNTS] {len(links) - len(accounts)} of {len(links)} bank links "
                f"could not be fetched for user {user_id}"
            )

        return AccountsOverview(
            data=accounts,
            total_banks=len(accounts),
            total_current_balance=sum(account.current_balance for account in accounts),
        )

    def get_account(self, bank_link_id: str) -> Optional[AccountDetail]:
        """
        One account with its reconciled ledger.

        Returns None when the bank link does not exist. When live account data
        cannot be fetched, `data` is None and the ledger is still returned.
        """
        if self.reconciliation_engine is None:
            raise ValueError("get_account requires a reconciliation engine")

        link = self.bank_links.get_bank_link(bank_link_id)
        if link is None:
            logger.warning(f"[ACCOUNTS] Bank link {bank_link_id} not found")
            return None

        return self._build_detail(link)

    def _build_detail(self, link: BankLinkRecord) -> AccountDetail:
        summary = self._fetch_summary_or_none(link)
        ledger = self.reconciliation_engine.reconcile(link)

        return AccountDetail(
            data=summary,
            transactions=ledger.transactions,
            status=ledger.status,
            access_token=ledger.access_token,
            error_code=ledger.error_code,
        )

    def reconcile_accounts(self, user_id: str) -> List[AccountDetail]:
        """
        Reconciled ledger plus live data for every bank link of a user.

        Each link is reconciled independently and reports its own status.
        """
        if self.reconciliation_engine is None:
            raise ValueError("reconcile_accounts requires a reconciliation engine")

        links = self.bank_links.get_bank_links(user_id)
        if not links:
            return []

        workers = max(1, min(self.max_workers, len(links)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reconcile") as pool:
            return list(pool.map(self._build_detail_or_error, links))

    def _build_detail_or_error(self, link: BankLinkRecord) -> AccountDetail:
        try:
            return self._build_detail(link)
        except (FintrackError, SQLAlchemyError) as e:
            logger.error(f"[ACCOUNTS] Reconciliation failed for bank {link.id}: {e}")
            return AccountDetail(status=SyncStatus.ERROR)

    def get_recent_transactions(self, user_id: str, limit: int = 100) -> List[LedgerEntry]:
        """Latest ledger rows across all of a user's accounts"""
        if self.ledger_store is None:
            raise ValueError("get_recent_transactions requires a ledger store")
        return self.ledger_store.list_by_user(user_id, limit=limit, order="desc")

    def _fetch_summary_or_none(self, link: BankLinkRecord) -> Optional[AccountSummary]:
        try:
            return self.fetch_account_summary(link)
        except (PartialAccountFailure, KeyError, ValueError) as e:
            logger.error(f"[ACCOUNTS] Error processing bank {link.id}: {e}")
            return None

    def fetch_account_summary(self, link: BankLinkRecord) -> AccountSummary:
        """
        Live balance and identity data for one bank link.

        Raises:
            PartialAccountFailure: the aggregator call failed or returned no account
        """
        try:
            response = self.plaid_client.get_accounts(link.access_token)
        except SyncError as e:
            raise PartialAccountFailure(link.id, str(e)) from e

        accounts = response.get("accounts") or []
        account = next((acc for acc in accounts if acc.get("account_id") == link.account_id), None)
        if account is None:
            raise PartialAccountFailure(link.id, f"Account {link.account_id} not returned")

        institution_id = (response.get("item") or {}).get("institution_id")
        institution_name = None
        if institution_id:
            try:
                institution = self.plaid_client.get_institution(institution_id)
                institution_name = institution.get("name")
            except SyncError as e:
                # Balances are still valid without the institution's display name
                logger.warning(f"[ACCOUNTS] Institution lookup failed for {institution_id}: {e}")

        balances = account.get("balances") or {}
        return AccountSummary(
            id=account["account_id"],
            available_balance=balances.get("available") or 0.0,
            current_balance=balances.get("current") or 0.0,
            institution_id=institution_id,
            institution_name=institution_name,
            name=account.get("name") or "Account",
            official_name=account.get("official_name") or account.get("name"),
            mask=account.get("mask") or "0000",
            type=account.get("type") or "depository",
            subtype=account.get("subtype") or "checking",
            bank_link_id=link.id,
            shareable_id=link.shareable_id,
        )

