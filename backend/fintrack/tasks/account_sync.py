"""
Account Sync Background Task

Reconciles one bank link outside the request path.
"""
import logging
from typing import Optional

from rq import get_current_job
from sqlalchemy.orm import sessionmaker

from fintrack.database.bank_links import BankLinkRepository
from fintrack.database.ledger_store import SqlLedgerStore
from fintrack.database.session import get_session_factory
from fintrack.services.plaid_client import get_plaid_client
from fintrack.services.reconciliation import ReconciliationEngine
from fintrack.services.sync_audit_logger import SyncAuditLogger

logger = logging.getLogger(__name__)


def build_reconciliation_engine(
    plaid_client=None,
    session_factory: Optional[sessionmaker] = None,
) -> ReconciliationEngine:
    """Wire the engine to the database and the aggregator client."""
    session_factory = session_factory or get_session_factory()
    plaid_client = plaid_client or get_plaid_client()
    return ReconciliationEngine(
        plaid_client=plaid_client,
        ledger_store=SqlLedgerStore(session_factory),
        bank_links=BankLinkRepository(session_factory),
        audit_logger=SyncAuditLogger(session_factory),
    )


def run_account_sync_job(
    user_id: str,
    bank_link_id: str,
    engine: Optional[ReconciliationEngine] = None,
):
    """
    Background job to reconcile a bank link's ledger

    Args:
        user_id: User ID, must own the bank link
        bank_link_id: Bank link to reconcile
        engine: Pre-built engine (built from settings when omitted)

    Returns:
        Dictionary with sync results
    """
    job = get_current_job()

    def update_stage(stage: str, progress: dict = None):
        if job:
            job.meta["stage"] = stage
            if progress:
                job.meta["progress"] = progress
            job.meta["user_id"] = user_id  # For access control
            job.save_meta()
            logger.info(f"Account sync job {job.id} stage: {stage} progress: {progress}")

    update_stage("starting", {"message": "Initializing account sync..."})
    logger.info(f"Starting account sync job - user: {user_id}, bank link: {bank_link_id}")

    engine = engine or build_reconciliation_engine()

    bank_link = engine.bank_links.get_bank_link(bank_link_id)
    if bank_link is None or bank_link.user_id != user_id:
        raise ValueError(f"Bank link {bank_link_id} not found for user {user_id}")

    update_stage("syncing", {"message": "Fetching transactions..."})
    result = engine.reconcile(bank_link)

    summary = {
        "status": result.status.value,
        "bank_link_id": bank_link_id,
        "transaction_count": len(result.transactions),
        "error_code": result.error_code,
    }
    update_stage("completed", summary)
    logger.info(
        f"Account sync job finished for bank link {bank_link_id}: "
        f"{summary['status']}, {summary['transaction_count']} transactions"
    )
    return summary
