"""
Error taxonomy for ledger sync and reconciliation.

Aggregator failures never reach callers of the reconciliation engine as
exceptions; they are converted to a SyncStatus. The exceptions below are used
between layers.
"""
from typing import Optional


class FintrackError(Exception):
    """Base class for all application errors"""


class ConfigurationError(FintrackError):
    """Missing or malformed configuration detected at startup"""


class SyncError(FintrackError):
    """An aggregator call failed"""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


class TransientSyncFailure(SyncError):
    """Network failure, timeout, rate limit or 5xx from the aggregator. Retry next cycle."""


class ConsentRequired(SyncError):
    """The user revoked or never granted the access scope. Prompt a re-link."""


class DuplicateTransaction(FintrackError):
    """A ledger row with the same fingerprint already exists"""

    def __init__(self, fingerprint: str):
        super().__init__(f"Duplicate transaction fingerprint: {fingerprint}")
        self.fingerprint = fingerprint


class PersistenceFailure(FintrackError):
    """A single ledger write failed"""


class PartialAccountFailure(FintrackError):
    """Live data for one bank link could not be fetched"""

    def __init__(self, bank_link_id: str, message: str):
        super().__init__(f"Bank link {bank_link_id}: {message}")
        self.bank_link_id = bank_link_id


class TransferFailure(FintrackError):
    """The payments processor rejected or failed a transfer"""
