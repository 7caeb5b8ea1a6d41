from pydantic import BaseModel, Field
from typing import Annotated, Optional, List, Dict, Any, Union, Literal
from datetime import date, datetime
from enum import Enum

class SyncStatus(str, Enum):
    COMPLETE = "complete"
    ERROR = "error"
    CONSENT_REQUIRED = "consent_required"

class TransactionDirection(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"

# Sender/receiver references arrive either as a bare id or as an embedded record.
# They are resolved to a plain id before reaching the ledger.
class IdReference(BaseModel):
    kind: Literal["id"] = "id"
    id: str

class EmbeddedReference(BaseModel):
    kind: Literal["embedded"] = "embedded"
    record: Dict[str, Any]

Reference = Annotated[Union[IdReference, EmbeddedReference], Field(discriminator="kind")]

def resolve_reference(reference: Optional[Union[IdReference, EmbeddedReference, str]]) -> Optional[str]:
    """Resolve a reference to the plain identifier it points at."""
    if reference is None:
        return None
    if isinstance(reference, str):
        return reference
    if isinstance(reference, IdReference):
        return reference.id
    record_id = reference.record.get("id")
    if record_id is None:
        raise ValueError("Embedded reference has no 'id' field")
    return str(record_id)

class ExternalTransaction(BaseModel):
    """A transaction as reported by the aggregator. Never persisted as-is."""
    transaction_id: str
    account_id: str
    name: Optional[str] = None
    amount: float
    date: date
    payment_channel: Optional[str] = None
    category: Optional[str] = None
    category_hierarchy: List[str] = Field(default_factory=list)
    pending: bool = False
    merchant_name: Optional[str] = None
    logo_url: Optional[str] = None
    website: Optional[str] = None

class LedgerTransactionCreate(BaseModel):
    name: str
    amount: float
    type: TransactionDirection
    sender_bank_id: Optional[str] = None
    receiver_bank_id: Optional[str] = None
    user_id: str
    category: str = "Uncategorized"
    channel: Optional[str] = None
    date: datetime
    merchant: Optional[str] = None
    logo_url: Optional[str] = None
    website: Optional[str] = None
    plaid_transaction_id: Optional[str] = None
    fingerprint: str

class LedgerEntry(LedgerTransactionCreate):
    id: str
    created_at: datetime

    class Config:
        from_attributes = True

class BankLinkRecord(BaseModel):
    """A bank link with its access token already decrypted"""
    id: str
    user_id: str
    access_token: str
    item_id: str
    account_id: str
    funding_source_url: Optional[str] = None
    shareable_id: str
    status: str = "active"

class SyncWalkResult(BaseModel):
    transactions: List[ExternalTransaction] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    status: SyncStatus = SyncStatus.COMPLETE
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    pages: int = 0
    added: int = 0
    modified: int = 0
    removed: int = 0

class LedgerResult(BaseModel):
    transactions: List[LedgerEntry] = Field(default_factory=list)
    status: SyncStatus = SyncStatus.COMPLETE
    # Only populated when the user must re-consent (update-mode link)
    access_token: Optional[str] = None
    error_code: Optional[str] = None

class AccountSummary(BaseModel):
    id: str
    available_balance: float = 0.0
    current_balance: float = 0.0
    institution_id: Optional[str] = None
    institution_name: Optional[str] = None
    name: str
    official_name: Optional[str] = None
    mask: str = "0000"
    type: str
    subtype: str = "checking"
    bank_link_id: str
    shareable_id: Optional[str] = None

class AccountsOverview(BaseModel):
    data: List[AccountSummary] = Field(default_factory=list)
    total_banks: int = 0
    total_current_balance: float = 0.0

class AccountDetail(BaseModel):
    data: Optional[AccountSummary] = None
    transactions: List[LedgerEntry] = Field(default_factory=list)
    status: SyncStatus = SyncStatus.COMPLETE
    access_token: Optional[str] = None
    error_code: Optional[str] = None

class TransferResult(BaseModel):
    transfer_url: str
    debit_transaction_id: Optional[str] = None
    credit_transaction_id: Optional[str] = None
