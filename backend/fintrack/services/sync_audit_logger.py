"""
Sync Audit Logger Service

Records every transaction sync walk for debugging and monitoring.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from fintrack.database.models import SyncAuditLog
from fintrack.database.session import session_scope
from fintrack.models.schemas import SyncWalkResult
from fintrack.services.categories import CATEGORY_TABLE_VERSION

logger = logging.getLogger(__name__)


class SyncAuditLogger:
    """Service for logging sync walks against the aggregator."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    @staticmethod
    def create_response_summary(result: SyncWalkResult) -> Dict[str, Any]:
        """
        Create a summary of the walk outcome. Never includes tokens or cursors.
        """
        return {
            "transactions": len(result.transactions),
            "added": result.added,
            "modified": result.modified,
            "removed": result.removed,
            "cursor": "present" if result.next_cursor else "none",
            "category_table": CATEGORY_TABLE_VERSION,
        }

    def record_walk(
        self,
        bank_link_id: str,
        user_id: str,
        result: SyncWalkResult,
        sync_type: str,
        persisted: int = 0,
        duration_ms: Optional[int] = None,
    ) -> Optional[str]:
        """
        Save an audit row for a walk. A failed audit write is logged, never raised.

        Returns:
            The audit log ID, or None if it could not be written
        """
        log_id = str(uuid.uuid4())
        try:
            with session_scope(self._session_factory) as db:
                db.add(SyncAuditLog(
                    id=log_id,
                    bank_link_id=bank_link_id,
                    user_id=user_id,
                    timestamp=datetime.utcnow(),
                    sync_type=sync_type,
                    status=result.status.value,
                    pages=result.pages,
                    added=result.added,
                    modified=result.modified,
                    removed=result.removed,
                    persisted=persisted,
                    error_code=result.error_code,
                    error_message=result.error_message,
                    duration_ms=duration_ms,
                    response_summary=self.create_response_summary(result),
                ))
        except SQLAlchemyError as db_error:
            logger.error(f"Failed to save sync audit log: {db_error}", exc_info=True)
            return None

        logger.info(
            f"Sync audit log saved for bank link {bank_link_id} "
            f"(status: {result.status.value}, pages: {result.pages}, duration: {duration_ms}ms)"
        )
        return log_id
