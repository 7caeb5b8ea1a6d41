"""
SQLAlchemy ORM Models
"""
from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Text, Integer, JSON, Index
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
import enum

Base = declarative_base()


class BankLinkStatus(str, enum.Enum):
    ACTIVE = "active"
    CONSENT_REQUIRED = "consent_required"
    ERROR = "error"


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, nullable=False, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    dwolla_customer_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    bank_links = relationship("BankLink", back_populates="user", cascade="all, delete-orphan")


class BankLink(Base):
    """A linked bank account: one aggregator item/account plus its funding source"""
    __tablename__ = "bank_links"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    access_token = Column(String, nullable=False)  # Fernet-encrypted
    item_id = Column(String, nullable=False, index=True)  # Plaid item ID
    account_id = Column(String, nullable=False, unique=True, index=True)  # Plaid account ID
    funding_source_url = Column(String, nullable=True)  # Dwolla funding source, stored verbatim
    shareable_id = Column(String, nullable=False)
    status = Column(String, default=BankLinkStatus.ACTIVE.value, nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_synced = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="bank_links")
    sync_cursor = relationship("SyncCursor", back_populates="bank_link", uselist=False, cascade="all, delete-orphan")


class SyncCursor(Base):
    """Stores the sync cursor for incremental transaction updates"""
    __tablename__ = "sync_cursors"

    id = Column(String, primary_key=True)
    bank_link_id = Column(String, ForeignKey("bank_links.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    cursor = Column(String, nullable=False)
    last_sync = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    bank_link = relationship("BankLink", back_populates="sync_cursor")


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    amount = Column(Float, nullable=False)  # Always positive; direction lives in `type`
    type = Column(String, nullable=False)  # debit, credit
    sender_bank_id = Column(String, nullable=True, index=True)
    receiver_bank_id = Column(String, nullable=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, default="Uncategorized")
    channel = Column(String, nullable=True)
    date = Column(DateTime, nullable=False, index=True)
    merchant = Column(String, nullable=True)
    logo_url = Column(String, nullable=True)
    website = Column(String, nullable=True)
    plaid_transaction_id = Column(String, nullable=True, index=True)
    fingerprint = Column(String, nullable=False, unique=True, index=True)  # Dedup key, enforced by the store
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_ledger_sender_type", "sender_bank_id", "type"),
        Index("ix_ledger_receiver_type", "receiver_bank_id", "type"),
    )


class SyncAuditLog(Base):
    """One row per transaction sync walk against the aggregator"""
    __tablename__ = "sync_audit_logs"

    id = Column(String, primary_key=True)
    bank_link_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    sync_type = Column(String, nullable=True)  # initial, incremental
    status = Column(String, nullable=False)
    pages = Column(Integer, default=0, nullable=False)
    added = Column(Integer, default=0, nullable=False)
    modified = Column(Integer, default=0, nullable=False)
    removed = Column(Integer, default=0, nullable=False)
    persisted = Column(Integer, default=0, nullable=False)
    error_code = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    response_summary = Column(JSON, nullable=True)
