"""
Bank link persistence: linked accounts, their sync cursors and sync status.

Access tokens are encrypted on write and decrypted on read, so callers only
ever handle BankLinkRecord objects with a usable token.
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional

from cryptography.fernet import InvalidToken
from sqlalchemy.orm import sessionmaker

from fintrack.database.models import BankLink, BankLinkStatus, SyncCursor
from fintrack.database.session import session_scope
from fintrack.models.schemas import BankLinkRecord
from fintrack.services.encryption import EncryptionService

logger = logging.getLogger(__name__)


class BankLinkRepository:

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        encryption: Optional[EncryptionService] = None,
    ):
        self._session_factory = session_factory
        self._encryption = encryption

    @property
    def encryption(self) -> EncryptionService:
        if self._encryption is None:
            self._encryption = EncryptionService()
        return self._encryption

    def _to_record(self, link: BankLink) -> BankLinkRecord:
        return BankLinkRecord(
            id=link.id,
            user_id=link.user_id,
            access_token=self.encryption.decrypt(link.access_token),
            item_id=link.item_id,
            account_id=link.account_id,
            funding_source_url=link.funding_source_url,
            shareable_id=link.shareable_id,
            status=link.status,
        )

    def create_bank_link(
        self,
        user_id: str,
        access_token: str,
        item_id: str,
        account_id: str,
        funding_source_url: Optional[str],
        shareable_id: Optional[str] = None,
    ) -> BankLinkRecord:
        """
        Store a newly linked bank account.

        Args:
            user_id: Owning user
            access_token: Plaid access token (plaintext; encrypted before storage)
            item_id: Plaid item ID
            account_id: Plaid account ID
            funding_source_url: Dwolla funding source URL, stored verbatim
            shareable_id: Identifier safe to share with other users (defaults to account_id)
        """
        link = BankLink(
            id=str(uuid.uuid4()),
            user_id=user_id,
            access_token=self.encryption.encrypt(access_token),
            item_id=item_id,
            account_id=account_id,
            funding_source_url=funding_source_url,
            shareable_id=shareable_id or account_id,
            status=BankLinkStatus.ACTIVE.value,
            created_at=datetime.utcnow(),
        )
        with session_scope(self._session_factory) as db:
            db.add(link)
            db.flush()
            record = self._to_record(link)

        logger.info(f"Created bank link {record.id} for user {user_id}")
        return record

    def get_bank_links(self, user_id: str) -> List[BankLinkRecord]:
        """
        All usable bank links of a user, oldest first.

        Links whose access token can no longer be decrypted (for example after
        a SECRET_KEY rotation) are logged and left out, so they cannot hide
        the user's other accounts.
        """
        with session_scope(self._session_factory) as db:
            links = db.query(BankLink).filter(
                BankLink.user_id == user_id
            ).order_by(BankLink.created_at.asc()).all()

            records = []
            for link in links:
                try:
                    records.append(self._to_record(link))
                except InvalidToken:
                    logger.error(
                        f"Skipping bank link {link.id} of user {user_id}: access token cannot be decrypted, "
                        f"the account must be re-linked"
                    )
            return records

    def get_bank_link(self, bank_link_id: str) -> Optional[BankLinkRecord]:
        with session_scope(self._session_factory) as db:
            link = db.query(BankLink).filter(BankLink.id == bank_link_id).first()
            return self._to_record(link) if link else None

    def get_bank_link_by_account_id(self, account_id: str) -> Optional[BankLinkRecord]:
        with session_scope(self._session_factory) as db:
            link = db.query(BankLink).filter(BankLink.account_id == account_id).first()
            return self._to_record(link) if link else None

    def get_cursor(self, bank_link_id: str) -> Optional[str]:
        with session_scope(self._session_factory) as db:
            cursor_record = db.query(SyncCursor).filter(
                SyncCursor.bank_link_id == bank_link_id
            ).first()
            return cursor_record.cursor if cursor_record else None

    def save_cursor(self, bank_link_id: str, cursor: Optional[str]):
        """Persist the cursor reached by a complete walk. An empty cursor is ignored."""
        if not cursor:
            return
        with session_scope(self._session_factory) as db:
            cursor_record = db.query(SyncCursor).filter(
                SyncCursor.bank_link_id == bank_link_id
            ).first()
            if cursor_record:
                cursor_record.cursor = cursor
                cursor_record.last_sync = datetime.utcnow()
            else:
                db.add(SyncCursor(
                    id=str(uuid.uuid4()),
                    bank_link_id=bank_link_id,
                    cursor=cursor,
                    last_sync=datetime.utcnow(),
                ))

    def update_status(
        self,
        bank_link_id: str,
        status: BankLinkStatus,
        error_message: Optional[str] = None,
        synced: bool = False,
    ):
        with session_scope(self._session_factory) as db:
            link = db.query(BankLink).filter(BankLink.id == bank_link_id).first()
            if not link:
                logger.warning(f"Cannot update status, bank link {bank_link_id} not found")
                return
            link.status = status.value
            link.error_message = error_message
            if synced:
                link.last_synced = datetime.utcnow()
