"""
Transfer Service

Moves money between two linked banks and records the transfer in the ledger
so it shows up in both accounts' reconciled ledgers.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from fintrack.exceptions import DuplicateTransaction, PersistenceFailure, TransferFailure
from fintrack.models.schemas import (
    BankLinkRecord,
    LedgerEntry,
    LedgerTransactionCreate,
    Reference,
    TransactionDirection,
    TransferResult,
    resolve_reference,
)
from fintrack.services.fingerprint import fingerprint, normalize_amount

logger = logging.getLogger(__name__)

UserReference = Union[Reference, str, None]


class TransferService:

    def __init__(self, payments_client, ledger_store):
        self.payments_client = payments_client
        self.ledger_store = ledger_store

    def create_transfer(
        self,
        sender_link: BankLinkRecord,
        receiver_link: BankLinkRecord,
        amount: Union[str, float, Decimal],
        name: str = "Transfer",
        sender_user: UserReference = None,
        receiver_user: UserReference = None,
    ) -> TransferResult:
        """
        Initiate a transfer and record it for both banks.

        Two ledger rows are written, both carrying both bank IDs: a debit owned
        by the sender and a credit owned by the receiver.

        Args:
            sender_link: Bank link money leaves
            receiver_link: Bank link money arrives at
            amount: Positive amount
            name: Display name for the ledger rows
            sender_user: Sending user (defaults to the sender link's owner)
            receiver_user: Receiving user (defaults to the receiver link's owner)

        Raises:
            ValueError: non-positive amount, or a link without a funding source
            TransferFailure: the payments processor rejected the transfer
        """
        try:
            value = Decimal(normalize_amount(amount) or "0")
        except InvalidOperation as e:
            raise ValueError(f"Invalid transfer amount: {amount!r}") from e
        if not value.is_finite() or value <= 0:
            raise ValueError("Transfer amount must be positive")
        if not sender_link.funding_source_url or not receiver_link.funding_source_url:
            raise ValueError("Both bank links need a funding source to transfer")

        sender_id = resolve_reference(sender_user) or sender_link.user_id
        receiver_id = resolve_reference(receiver_user) or receiver_link.user_id

        transfer_url = self.payments_client.create_transfer(
            sender_link.funding_source_url,
            receiver_link.funding_source_url,
            f"{value:f}",
        )
        if not transfer_url:
            raise TransferFailure("Payments processor returned no transfer reference")

        now = datetime.utcnow()
        debit = self._record(LedgerTransactionCreate(
            name=name,
            amount=float(value),
            type=TransactionDirection.DEBIT,
            sender_bank_id=sender_link.id,
            receiver_bank_id=receiver_link.id,
            user_id=sender_id,
            category="Transfer",
            channel="transfer",
            date=now,
            # The transfer URL makes repeated same-day transfers distinct
            fingerprint=fingerprint(-value, now, transfer_url, sender_id, sender_link.id),
        ))
        credit = self._record(LedgerTransactionCreate(
            name=name,
            amount=float(value),
            type=TransactionDirection.CREDIT,
            sender_bank_id=sender_link.id,
            receiver_bank_id=receiver_link.id,
            user_id=receiver_id,
            category="Transfer",
            channel="transfer",
            date=now,
            fingerprint=fingerprint(value, now, transfer_url, receiver_id, sender_link.id),
        ))

        return TransferResult(
            transfer_url=transfer_url,
            debit_transaction_id=debit.id if debit else None,
            credit_transaction_id=credit.id if credit else None,
        )

    def _record(self, transaction: LedgerTransactionCreate) -> Optional[LedgerEntry]:
        try:
            return self.ledger_store.create(transaction)
        except DuplicateTransaction:
            return self.ledger_store.find_by_fingerprint(transaction.fingerprint)
        except PersistenceFailure as e:
            logger.error(
                f"Transfer sent but ledger {transaction.type.value} row for user "
                f"{transaction.user_id} could not be stored: {e}"
            )
            return None
