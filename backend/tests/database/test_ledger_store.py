from datetime import datetime

import pytest

from fintrack.exceptions import DuplicateTransaction
from fintrack.models.schemas import LedgerTransactionCreate, TransactionDirection


def _txn(fingerprint, **overrides):
    fields = {
        "name": "Coffee",
        "amount": -4.5,
        "type": TransactionDirection.DEBIT,
        "sender_bank_id": "bank-1",
        "user_id": "user-1",
        "category": "Food and Drink",
        "date": datetime(2024, 3, 1),
        "fingerprint": fingerprint,
    }
    fields.update(overrides)
    return LedgerTransactionCreate(**fields)


def test_create_stores_positive_amount(ledger_store):
    entry = ledger_store.create(_txn("fp-1"))

    assert entry.id
    assert entry.amount == 4.5
    assert entry.created_at is not None
    assert ledger_store.find_by_fingerprint("fp-1").id == entry.id


def test_duplicate_fingerprint_is_rejected(ledger_store):
    ledger_store.create(_txn("fp-1"))

    with pytest.raises(DuplicateTransaction) as excinfo:
        ledger_store.create(_txn("fp-1", name="Coffee again"))

    assert excinfo.value.fingerprint == "fp-1"
    assert ledger_store.count() == 1


def test_find_by_fingerprint_missing(ledger_store):
    assert ledger_store.find_by_fingerprint("nope") is None


def test_list_by_sender_or_receiver_matches_direction(ledger_store):
    sent = ledger_store.create(_txn("sent"))
    received = ledger_store.create(_txn(
        "received",
        type=TransactionDirection.CREDIT,
        sender_bank_id="bank-2",
        receiver_bank_id="bank-1",
    ))
    # bank-1 is the sender but the row is a credit for the receiver
    ledger_store.create(_txn(
        "other-side",
        type=TransactionDirection.CREDIT,
        sender_bank_id="bank-1",
        receiver_bank_id="bank-2",
    ))
    ledger_store.create(_txn("unrelated", sender_bank_id="bank-3"))

    ledger = ledger_store.list_by_sender_or_receiver("bank-1")

    assert [entry.id for entry in ledger] == [sent.id, received.id]


def test_row_matching_both_sides_appears_once(ledger_store):
    ledger_store.create(_txn("self", sender_bank_id="bank-1", receiver_bank_id="bank-1"))

    assert len(ledger_store.list_by_sender_or_receiver("bank-1")) == 1


def test_list_by_user_is_newest_first(ledger_store):
    ledger_store.create(_txn("a", date=datetime(2024, 3, 1)))
    ledger_store.create(_txn("b", date=datetime(2024, 3, 5)))
    ledger_store.create(_txn("c", date=datetime(2024, 3, 3), user_id="user-2"))

    entries = ledger_store.list_by_user("user-1")

    assert [entry.fingerprint for entry in entries] == ["b", "a"]
    assert [entry.fingerprint for entry in ledger_store.list_by_user("user-1", order="asc")] == ["a", "b"]
